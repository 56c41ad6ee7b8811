"""
fal.ai Adapter - submit image-to-video requests to the fal queue API
"""

import asyncio
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import fal_client
from fal_client.client import FalClientHTTPError, FalClientTimeoutError
import httpx
from pydantic import BaseModel, Field

from reelsmith.config.constants import (
    ORIENTATION_ASPECT_RATIOS,
    PROVIDER_MAX_RETRY_ATTEMPTS,
    PROVIDER_RETRY_INITIAL_DELAY_S,
    PROVIDER_RETRY_MAX_DELAY_S,
)
from reelsmith.services.clip_downloader import ClipDownloader
from reelsmith.services.errors import ErrorType, UpstreamError
from reelsmith.services.observability import logger


class ClipGenerationRequest(BaseModel):
    """Request for a single clip generation"""

    job_id: str
    prompt: str
    image_urls: List[str] = Field(min_length=1)
    duration: int = 5
    aspect_ratio: str = ORIENTATION_ASPECT_RATIOS["vertical"]


class ClipGenerationResponse(BaseModel):
    """Response from a queued submission"""

    request_id: str
    webhook_url: str


class FalAdapter:
    """
    Adapter for fal.ai image-to-video models

    Submission is fire-and-forget: the provider calls back on the webhook
    URL, which carries our job id so callbacks can be matched before the
    provider request id is stored.
    """

    def __init__(
        self,
        api_key: str,
        model: str,
        webhook_base_url: str,
        max_images: int = 2,
        downloader: Optional[ClipDownloader] = None,
        client: Optional[Any] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.webhook_base_url = webhook_base_url
        self.max_images = max_images
        self.downloader = downloader or ClipDownloader()
        self.client = client or fal_client.SyncClient(key=api_key)

    def build_webhook_url(self, job_id: str) -> str:
        """Append the internal job id to the provider callback URL"""
        parts = urlsplit(self.webhook_base_url)
        query = [(k, v) for k, v in parse_qsl(parts.query) if k != "job_id"]
        query.append(("job_id", job_id))
        return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))

    def _build_arguments(self, request: ClipGenerationRequest) -> Dict[str, Any]:
        arguments: Dict[str, Any] = {
            "prompt": request.prompt,
            "image_url": request.image_urls[0],
            "duration": str(request.duration),
            "aspect_ratio": request.aspect_ratio,
        }
        if len(request.image_urls) > 1:
            arguments["tail_image_url"] = request.image_urls[1]
        return arguments

    async def submit(self, request: ClipGenerationRequest) -> ClipGenerationResponse:
        """
        Submit a clip request to the fal queue

        Args:
            request: Clip generation request

        Returns:
            ClipGenerationResponse with the provider request id

        Raises:
            UpstreamError: If the provider rejects or cannot accept the request
        """
        if not request.prompt.strip():
            raise UpstreamError("Prompt is required", retryable=False)
        if len(request.image_urls) > self.max_images:
            raise UpstreamError(
                f"Provider accepts at most {self.max_images} images, got {len(request.image_urls)}",
                retryable=False,
            )

        webhook_url = self.build_webhook_url(request.job_id)

        logger.info(
            "submit_clip_request",
            job_id=request.job_id,
            model=self.model,
            prompt_length=len(request.prompt),
            image_count=len(request.image_urls),
            duration=request.duration,
            aspect_ratio=request.aspect_ratio,
        )

        try:
            handle = await asyncio.to_thread(
                self.client.submit,
                self.model,
                arguments=self._build_arguments(request),
                webhook_url=webhook_url,
            )
        except UpstreamError:
            raise
        except FalClientHTTPError as e:
            retryable = e.status_code == 429 or e.status_code >= 500
            raise UpstreamError(
                f"Provider returned HTTP {e.status_code}: {e.message}",
                error_type=ErrorType.PROVIDER_UNAVAILABLE if retryable else ErrorType.PROVIDER_REJECTED,
                retryable=retryable,
            ) from e
        except (FalClientTimeoutError, httpx.TimeoutException, httpx.NetworkError) as e:
            raise UpstreamError(
                f"Provider unreachable: {e}",
                error_type=ErrorType.PROVIDER_UNAVAILABLE,
                retryable=True,
            ) from e
        except Exception as e:
            retryable = self._is_retryable_message(str(e))
            raise UpstreamError(
                f"Provider submission failed: {e}",
                error_type=ErrorType.PROVIDER_UNAVAILABLE if retryable else ErrorType.PROVIDER_REJECTED,
                retryable=retryable,
            ) from e

        logger.info(
            "clip_request_submitted",
            job_id=request.job_id,
            request_id=handle.request_id,
        )

        return ClipGenerationResponse(request_id=handle.request_id, webhook_url=webhook_url)

    async def download(self, url: str) -> bytes:
        """Download a finished raw clip"""
        return await self.downloader.fetch_bytes(url)

    @staticmethod
    def _is_retryable_message(message: str) -> bool:
        error_message = message.lower()
        retryable_keywords = [
            'timeout',
            'connection',
            'network',
            'temporary',
            'rate limit',
            '429',
            '500',
            '502',
            '503',
            '504',
        ]

        return any(keyword in error_message for keyword in retryable_keywords)

    async def close(self):
        """Close the download client"""
        await self.downloader.close()


class FalRetryAdapter(FalAdapter):
    """
    fal adapter with automatic retry for transient submission failures
    """

    MAX_RETRY_ATTEMPTS = PROVIDER_MAX_RETRY_ATTEMPTS
    RETRY_INITIAL_DELAY_S = PROVIDER_RETRY_INITIAL_DELAY_S
    RETRY_MAX_DELAY_S = PROVIDER_RETRY_MAX_DELAY_S

    async def submit_with_retry(self, request: ClipGenerationRequest) -> ClipGenerationResponse:
        """
        Submit with exponential backoff on retryable errors

        Raises:
            UpstreamError: Immediately when non-retryable, else once attempts
                are exhausted
        """
        last_error: Optional[UpstreamError] = None

        for attempt in range(self.MAX_RETRY_ATTEMPTS):
            try:
                return await self.submit(request)
            except UpstreamError as e:
                last_error = e

                logger.warning(
                    "clip_request_retry",
                    job_id=request.job_id,
                    attempt=attempt + 1,
                    max_attempts=self.MAX_RETRY_ATTEMPTS,
                    retryable=e.retryable,
                    error=e.message,
                )

                if not e.retryable:
                    raise

                if attempt + 1 < self.MAX_RETRY_ATTEMPTS:
                    delay = min(
                        self.RETRY_INITIAL_DELAY_S * (2 ** attempt),
                        self.RETRY_MAX_DELAY_S,
                    )
                    await asyncio.sleep(delay)

        logger.error(
            "clip_request_exhausted",
            job_id=request.job_id,
            max_attempts=self.MAX_RETRY_ATTEMPTS,
            last_error=str(last_error),
        )
        raise last_error
