"""
Pipeline error taxonomy

Every failure recorded on a job or batch row carries an ErrorType whose
retryable flag is fixed here, at the point the error is raised.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Stable error codes persisted as errorType"""

    INVALID_REQUEST = "INVALID_REQUEST"
    PROVIDER_REJECTED = "PROVIDER_REJECTED"
    PROVIDER_UNAVAILABLE = "PROVIDER_UNAVAILABLE"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROCESSING_ERROR = "PROCESSING_ERROR"
    DOWNLOAD_FAILED = "DOWNLOAD_FAILED"
    METADATA_MISSING = "METADATA_MISSING"
    MEDIA_PROCESSING_FAILED = "MEDIA_PROCESSING_FAILED"
    STORAGE_FAILED = "STORAGE_FAILED"
    COMPOSITION_FAILED = "COMPOSITION_FAILED"
    ALL_JOBS_FAILED = "ALL_JOBS_FAILED"
    DELIVERY_FAILED = "DELIVERY_FAILED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    UNKNOWN = "UNKNOWN_ERROR"

    @property
    def retryable(self) -> bool:
        return self in RETRYABLE_ERROR_TYPES


RETRYABLE_ERROR_TYPES = frozenset(
    {
        ErrorType.PROVIDER_UNAVAILABLE,
        ErrorType.PROCESSING_ERROR,
        ErrorType.DOWNLOAD_FAILED,
        ErrorType.STORAGE_FAILED,
        ErrorType.DELIVERY_FAILED,
    }
)


class PipelineError(Exception):
    """Base class for all pipeline errors"""

    error_type: ErrorType = ErrorType.UNKNOWN

    def __init__(
        self,
        message: str,
        error_type: Optional[ErrorType] = None,
        retryable: Optional[bool] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        self.retryable = self.error_type.retryable if retryable is None else retryable
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_type.value,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }


class InvalidRequestError(PipelineError):
    """Fan-out input cannot produce any job (no rooms, no primary image)"""

    error_type = ErrorType.INVALID_REQUEST


class UpstreamError(PipelineError):
    """The generation provider rejected or failed a dispatch"""

    error_type = ErrorType.PROVIDER_REJECTED


class DownloadError(PipelineError):
    """A remote clip or asset could not be fetched"""

    error_type = ErrorType.DOWNLOAD_FAILED


class MetadataError(PipelineError):
    """Probe found no video stream or no duration"""

    error_type = ErrorType.METADATA_MISSING


class MediaProcessingError(PipelineError):
    """An ffmpeg invocation failed or no binary could be resolved"""

    error_type = ErrorType.MEDIA_PROCESSING_FAILED


class StorageError(PipelineError):
    """Object storage upload or download failed"""

    error_type = ErrorType.STORAGE_FAILED


class CompositionError(PipelineError):
    """The final video could not be composed"""

    error_type = ErrorType.COMPOSITION_FAILED


class DeliveryError(PipelineError):
    """An outbound webhook could not be delivered"""

    error_type = ErrorType.DELIVERY_FAILED

    def __init__(
        self,
        message: str,
        retryable: bool,
        attempts: int,
        status_code: Optional[int] = None,
    ):
        super().__init__(
            message,
            retryable=retryable,
            details={"attempts": attempts, "status_code": status_code},
        )
        self.attempts = attempts
        self.status_code = status_code


class AuthenticationError(PipelineError):
    """An inbound provider webhook failed signature verification"""

    error_type = ErrorType.AUTHENTICATION_FAILED
