"""
Application Settings Configuration
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Literal, Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Generation provider (fal.ai queue API)
    fal_key: str = Field(default="", env="FAL_KEY")
    fal_model: str = Field(
        default="fal-ai/kling-video/v2.1/standard/image-to-video",
        env="FAL_MODEL",
    )

    # Public URL of the inbound provider webhook endpoint
    fal_webhook_url: str = Field(
        default="http://localhost:8000/v1/webhooks/fal",
        env="FAL_WEBHOOK_URL",
    )

    # Disable only for local development against a fake provider
    fal_webhook_verify: bool = Field(default=True, env="FAL_WEBHOOK_VERIFY")
    fal_jwks_url: str = Field(
        default="https://rest.alpha.fal.ai/.well-known/jwks.json",
        env="FAL_JWKS_URL",
    )

    provider_max_images: int = Field(default=2, env="PROVIDER_MAX_IMAGES")
    default_clip_duration_s: int = Field(default=5, env="DEFAULT_CLIP_DURATION_S")

    # Database
    database_url: str = Field(default="sqlite:///./data/reelsmith.db", env="DATABASE_URL")

    # Redis / RQ
    redis_url: str = Field(default="redis://localhost:6379/0", env="REDIS_URL")
    rq_queue_name: str = Field(default="reelsmith", env="RQ_QUEUE_NAME")
    task_timeout_s: int = Field(default=3600, env="TASK_TIMEOUT_S")

    # Object storage (S3-compatible)
    storage_bucket: str = Field(default="", env="STORAGE_BUCKET")
    storage_endpoint_url: Optional[str] = Field(default=None, env="STORAGE_ENDPOINT_URL")
    storage_region: Optional[str] = Field(default=None, env="STORAGE_REGION")
    storage_access_key_id: Optional[str] = Field(default=None, env="STORAGE_ACCESS_KEY_ID")
    storage_secret_access_key: Optional[str] = Field(default=None, env="STORAGE_SECRET_ACCESS_KEY")
    storage_public_base_url: Optional[str] = Field(default=None, env="STORAGE_PUBLIC_BASE_URL")

    # FFmpeg
    ffmpeg_path: Optional[str] = Field(default=None, env="FFMPEG_PATH")
    ffprobe_path: Optional[str] = Field(default=None, env="FFPROBE_PATH")
    ffmpeg_bundled_dir: str = Field(default="/opt/ffmpeg/bin", env="FFMPEG_BUNDLED_DIR")
    temp_root: Optional[str] = Field(default=None, env="TEMP_ROOT")
    clip_download_timeout_s: float = Field(default=300.0, env="CLIP_DOWNLOAD_TIMEOUT_S")

    # Outbound webhooks to the calling application
    webhook_secret: str = Field(default="", env="WEBHOOK_SECRET")
    webhook_timeout_s: float = Field(default=900.0, env="WEBHOOK_TIMEOUT_S")
    webhook_max_backoff_ms: int = Field(default=300_000, env="WEBHOOK_MAX_BACKOFF_MS")

    # Generation
    generation_concurrency: int = Field(default=3, env="GENERATION_CONCURRENCY")
    enable_priority_secondary: bool = Field(default=True, env="ENABLE_PRIORITY_SECONDARY")
    default_orientation: Literal["vertical", "landscape"] = Field(
        default="vertical", env="DEFAULT_ORIENTATION"
    )

    # Application
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", env="LOG_LEVEL"
    )

    class Config:
        env_file = ".env"
        case_sensitive = False


# Global settings instance
settings = Settings()
