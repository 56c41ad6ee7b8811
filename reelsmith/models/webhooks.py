"""
Webhook Models - inbound provider callbacks and outbound notifications
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, ConfigDict, Field


class FalVideo(BaseModel):
    model_config = ConfigDict(extra="allow")

    url: Optional[str] = None
    content_type: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class FalResultPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    video: Optional[FalVideo] = None


class FalWebhookPayload(BaseModel):
    """Body of a provider completion callback"""

    model_config = ConfigDict(extra="allow")

    request_id: str
    gateway_request_id: Optional[str] = None
    status: str
    payload: Optional[FalResultPayload] = None
    error: Optional[Any] = None

    @property
    def is_error(self) -> bool:
        return self.status.upper() == "ERROR" or self.video_url is None

    @property
    def video_url(self) -> Optional[str]:
        if self.payload and self.payload.video and self.payload.video.url:
            return self.payload.video.url
        return None

    @property
    def error_message(self) -> str:
        if isinstance(self.error, str) and self.error:
            return self.error
        if isinstance(self.error, dict):
            for key in ("message", "detail", "error"):
                if self.error.get(key):
                    return str(self.error[key])
        if self.status.upper() == "ERROR":
            return "Provider reported an error without details"
        return "Provider callback carried no video URL"


class JobResult(BaseModel):
    video_url: str = Field(serialization_alias="videoUrl")
    thumbnail_url: Optional[str] = Field(default=None, serialization_alias="thumbnailUrl")
    duration: Optional[float] = None
    file_size: Optional[int] = Field(default=None, serialization_alias="fileSize")


class WebhookError(BaseModel):
    message: str
    code: str = ""
    type: str
    retryable: bool


class JobWebhookPayload(BaseModel):
    """Job-level notification sent to the calling application"""

    job_id: Optional[str] = Field(default=None, serialization_alias="jobId")
    listing_id: str = Field(serialization_alias="listingId")
    batch_id: str = Field(serialization_alias="batchId")
    status: str
    timestamp: str
    result: Optional[JobResult] = None
    error: Optional[WebhookError] = None

    def to_body(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class BatchWebhookPayload(JobWebhookPayload):
    """Batch-final notification; carries the composed video id"""

    video_id: str = Field(serialization_alias="videoId")
