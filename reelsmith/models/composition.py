"""
Composition Models
"""

from typing import List, Literal, Optional
from pydantic import BaseModel, Field

from reelsmith.config.constants import SUBTITLE_DEFAULT_FONT
from reelsmith.models.generation_settings import Orientation


LogoPosition = Literal["top-left", "top-right", "bottom-left", "bottom-right"]


class LogoSettings(BaseModel):
    url: str
    position: LogoPosition = "bottom-right"


class SubtitleSettings(BaseModel):
    enabled: bool = False
    text: str = ""
    font: str = SUBTITLE_DEFAULT_FONT


class CompositionSettings(BaseModel):
    """Options applied when merging a batch's clips"""

    transitions: bool = False
    logo: Optional[LogoSettings] = None
    subtitles: Optional[SubtitleSettings] = None
    orientation: Orientation = "vertical"


class CompositionRequest(BaseModel):
    """Input contract of the composition engine"""

    clip_urls: List[str] = Field(min_length=1)
    settings: CompositionSettings = Field(default_factory=CompositionSettings)
    owner_id: str
    listing_id: str
    batch_id: str
    display_name: Optional[str] = None


class ComposedVideoResult(BaseModel):
    """Output contract of the composition engine"""

    video_url: str
    thumbnail_url: str
    duration: float
    file_size: int


class VideoProbe(BaseModel):
    """Metadata read from a media file with ffprobe"""

    duration: int
    width: int
    height: int
    aspect_ratio: str


class ProcessedClip(BaseModel):
    """A normalized clip ready for upload, held in memory"""

    video: bytes
    thumbnail: bytes
    probe: VideoProbe
    checksum_sha256: str
