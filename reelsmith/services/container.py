"""
Service wiring shared by the web and worker processes
"""

from typing import Optional

from sqlalchemy.orm import sessionmaker

from reelsmith.config.constants import FFMPEG_FALLBACK_DIRS
from reelsmith.config.settings import Settings
from reelsmith.core.fal_adapter import FalRetryAdapter
from reelsmith.core.fanout_planner import FanoutPlanner
from reelsmith.services.asset_storage import AssetStorage
from reelsmith.services.clip_downloader import ClipDownloader
from reelsmith.services.composition import CompositionEngine
from reelsmith.services.generation_service import VideoGenerationService
from reelsmith.services.media_processor import MediaProcessor, resolve_binary
from reelsmith.services.storage import SqlJobStore
from reelsmith.services.webhook_delivery import WebhookDeliveryService


def build_generation_service(
    settings: Settings,
    session_factory: sessionmaker,
    storage: Optional[AssetStorage] = None,
) -> VideoGenerationService:
    """
    Build a fully wired generation service

    Raises:
        MediaProcessingError: If ffmpeg or ffprobe cannot be resolved
    """
    downloader = ClipDownloader(timeout_s=settings.clip_download_timeout_s)
    media = MediaProcessor(
        ffmpeg_path=resolve_binary("ffmpeg", settings.ffmpeg_path, settings.ffmpeg_bundled_dir, FFMPEG_FALLBACK_DIRS),
        ffprobe_path=resolve_binary("ffprobe", settings.ffprobe_path, settings.ffmpeg_bundled_dir, FFMPEG_FALLBACK_DIRS),
        downloader=downloader,
        temp_root=settings.temp_root,
    )
    storage = storage or AssetStorage(
        bucket=settings.storage_bucket,
        endpoint_url=settings.storage_endpoint_url,
        region=settings.storage_region,
        access_key_id=settings.storage_access_key_id,
        secret_access_key=settings.storage_secret_access_key,
        public_base_url=settings.storage_public_base_url,
    )

    return VideoGenerationService(
        store=SqlJobStore(session_factory),
        planner=FanoutPlanner(
            model=settings.fal_model,
            clip_duration_s=settings.default_clip_duration_s,
            enable_priority_secondary=settings.enable_priority_secondary,
        ),
        provider=FalRetryAdapter(
            api_key=settings.fal_key,
            model=settings.fal_model,
            webhook_base_url=settings.fal_webhook_url,
            max_images=settings.provider_max_images,
            downloader=downloader,
        ),
        media=media,
        storage=storage,
        composer=CompositionEngine(media, storage),
        notifier=WebhookDeliveryService(
            timeout_s=settings.webhook_timeout_s,
            max_backoff_ms=settings.webhook_max_backoff_ms,
        ),
        webhook_secret=settings.webhook_secret,
        concurrency=settings.generation_concurrency,
        default_clip_duration_s=settings.default_clip_duration_s,
    )
