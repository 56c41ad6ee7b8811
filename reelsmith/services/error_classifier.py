"""
Error Classifier - Classify errors as retryable or non-retryable
"""

from typing import Dict, Any
import httpx

from reelsmith.services.errors import ErrorType, PipelineError


class ErrorClassifier:
    """
    Classify errors before they are recorded on a job or batch row
    """

    def classify(self, error: Exception) -> Dict[str, Any]:
        """
        Classify error into the persisted error shape

        Args:
            error: Exception to classify

        Returns:
            Dict with code, message, classification, retryable
        """
        if isinstance(error, PipelineError):
            return self._result(error.error_type.value, error.message, error.retryable)

        if isinstance(error, httpx.TimeoutException):
            return self._result(
                ErrorType.DOWNLOAD_FAILED.value,
                "Network timeout while transferring media",
                True,
            )

        elif isinstance(error, httpx.NetworkError):
            return self._result(ErrorType.DOWNLOAD_FAILED.value, "Network error occurred", True)

        elif isinstance(error, httpx.HTTPStatusError):
            status = error.response.status_code

            if status == 429 or 500 <= status < 600:
                return self._result(
                    ErrorType.PROVIDER_UNAVAILABLE.value,
                    f"Remote service temporarily unavailable (HTTP {status})",
                    True,
                )

            return self._result(
                ErrorType.PROVIDER_REJECTED.value,
                f"Remote service rejected the request (HTTP {status})",
                False,
            )

        # Post-processing failures after a successful provider callback default
        # to retryable so an operator can replay them.
        return self._result(
            ErrorType.PROCESSING_ERROR.value,
            f"Post-processing failed: {str(error)}",
            True,
        )

    @staticmethod
    def _result(code: str, message: str, retryable: bool) -> Dict[str, Any]:
        return {
            "code": code,
            "message": message,
            "classification": "retryable" if retryable else "non_retryable",
            "retryable": retryable,
        }
