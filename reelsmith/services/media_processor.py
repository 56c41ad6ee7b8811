"""
Media Processor - normalize clips, extract thumbnails and probe metadata with ffmpeg
"""

import asyncio
import hashlib
import json
import os
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from typing import Callable, Iterator, List, Optional

from reelsmith.config.constants import (
    ASPECT_RATIO_DIMENSIONS,
    FFMPEG_CRF,
    FFMPEG_FALLBACK_DIRS,
    FFMPEG_FRAME_RATE,
    FFMPEG_PIXEL_FORMAT,
    FFMPEG_PRESET,
    FFMPEG_THUMBNAIL_QUALITY,
    FFMPEG_VIDEO_CODEC,
)
from reelsmith.models.composition import ProcessedClip, VideoProbe
from reelsmith.services.clip_downloader import ClipDownloader
from reelsmith.services.errors import MediaProcessingError, MetadataError
from reelsmith.services.observability import logger


Runner = Callable[..., subprocess.CompletedProcess]


def _is_executable(path: str) -> bool:
    return os.path.isfile(path) and os.access(path, os.X_OK)


def resolve_binary(
    name: str,
    override: Optional[str] = None,
    bundled_dir: Optional[str] = None,
    fallback_dirs: Optional[List[str]] = None,
) -> str:
    """
    Resolve an ffmpeg-family binary

    Order: explicit override, bundled directory, PATH, OS-standard directories.

    Raises:
        MediaProcessingError: If no executable binary is found
    """
    if override:
        if os.sep in override and _is_executable(override):
            return override
        found = shutil.which(override)
        if found:
            return found
        raise MediaProcessingError(f"Configured {name} binary is not executable: {override}")

    if bundled_dir:
        bundled = os.path.join(bundled_dir, name)
        if _is_executable(bundled):
            return bundled

    found = shutil.which(name)
    if found:
        return found

    for directory in fallback_dirs if fallback_dirs is not None else FFMPEG_FALLBACK_DIRS:
        candidate = os.path.join(directory, name)
        if _is_executable(candidate):
            return candidate

    raise MediaProcessingError(f"{name} binary not found")


class MediaProcessor:
    """
    Per-clip media operations

    Every invocation works in its own temp directory, removed on success
    and failure alike.
    """

    def __init__(
        self,
        ffmpeg_path: str,
        ffprobe_path: str,
        downloader: Optional[ClipDownloader] = None,
        temp_root: Optional[str] = None,
        runner: Optional[Runner] = None,
    ):
        self.ffmpeg_path = ffmpeg_path
        self.ffprobe_path = ffprobe_path
        self.downloader = downloader or ClipDownloader()
        self.temp_root = temp_root
        self._runner = runner or subprocess.run

    @contextmanager
    def workspace(self, prefix: str) -> Iterator[str]:
        """Scoped temp directory, always removed"""
        path = tempfile.mkdtemp(prefix=f"{prefix}-", dir=self.temp_root)
        try:
            yield path
        finally:
            shutil.rmtree(path, ignore_errors=True)

    async def run(self, cmd: List[str], operation: str) -> subprocess.CompletedProcess:
        """
        Run an ffmpeg/ffprobe command off the event loop

        Raises:
            MediaProcessingError: On a non-zero exit code
        """
        result = await asyncio.to_thread(
            self._runner,
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

        if result.returncode != 0:
            stderr = result.stderr
            error_msg = stderr.decode("utf-8", errors="ignore") if isinstance(stderr, bytes) else str(stderr or "")
            logger.error("ffmpeg_command_failed", operation=operation, error=error_msg[-2000:])
            raise MediaProcessingError(
                f"{operation} failed: {error_msg[-500:]}",
                details={"operation": operation},
            )
        return result

    async def download(self, url: str, target_path: str) -> str:
        return await self.downloader.download_to(url, target_path)

    async def normalize(
        self,
        input_path: str,
        output_path: str,
        target_aspect_ratio: Optional[str] = None,
    ) -> str:
        """
        Re-encode a clip to a constant frame rate and pixel format

        When a target aspect ratio is given the frame is scaled to fit and
        padded, never cropped.
        """
        filters = []
        if target_aspect_ratio:
            dimensions = ASPECT_RATIO_DIMENSIONS.get(target_aspect_ratio)
            if dimensions is None:
                raise MediaProcessingError(f"Unsupported aspect ratio: {target_aspect_ratio}")
            width, height = dimensions
            filters.append(f"scale={width}:{height}:force_original_aspect_ratio=decrease")
            filters.append(f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2")
        filters.append(f"format={FFMPEG_PIXEL_FORMAT}")
        filters.append(f"fps={FFMPEG_FRAME_RATE}")

        cmd = [
            self.ffmpeg_path,
            "-i", input_path,
            "-vf", ",".join(filters),
            "-c:v", FFMPEG_VIDEO_CODEC,
            "-preset", FFMPEG_PRESET,
            "-crf", FFMPEG_CRF,
            "-movflags", "+faststart",
            "-y",
            output_path,
        ]
        await self.run(cmd, "normalize")
        return output_path

    async def thumbnail(self, input_path: str, output_path: str) -> str:
        """Extract the first frame as a JPEG"""
        cmd = [
            self.ffmpeg_path,
            "-ss", "0",
            "-i", input_path,
            "-frames:v", "1",
            "-q:v", FFMPEG_THUMBNAIL_QUALITY,
            "-y",
            output_path,
        ]
        await self.run(cmd, "thumbnail")
        return output_path

    async def probe(self, input_path: str) -> VideoProbe:
        """
        Read duration and resolution with ffprobe

        Raises:
            MetadataError: If there is no video stream or no duration
        """
        cmd = [
            self.ffprobe_path,
            "-v", "quiet",
            "-print_format", "json",
            "-show_format",
            "-show_streams",
            input_path,
        ]
        result = await self.run(cmd, "probe")
        stdout = result.stdout.decode("utf-8") if isinstance(result.stdout, bytes) else result.stdout

        try:
            metadata = json.loads(stdout or "{}")
        except json.JSONDecodeError as e:
            raise MetadataError(f"Unreadable probe output for {input_path}") from e

        video_stream = next(
            (s for s in metadata.get("streams", []) if s.get("codec_type") == "video"),
            None,
        )
        if video_stream is None:
            raise MetadataError(f"No video stream found in {input_path}")

        raw_duration = metadata.get("format", {}).get("duration") or video_stream.get("duration")
        if raw_duration is None:
            raise MetadataError(f"No duration found in {input_path}")

        width = int(video_stream.get("width") or 0)
        height = int(video_stream.get("height") or 0)
        aspect_ratio = f"{width / height:.2f}" if height else "0.00"

        return VideoProbe(
            duration=round(float(raw_duration)),
            width=width,
            height=height,
            aspect_ratio=aspect_ratio,
        )

    async def duration_seconds(self, video_path: str) -> float:
        """
        Get unrounded video duration in seconds using ffprobe

        Raises:
            MetadataError: If no duration can be read
        """
        cmd = [
            self.ffprobe_path,
            "-v", "error",
            "-show_entries", "format=duration",
            "-of", "default=noprint_wrappers=1:nokey=1",
            video_path,
        ]
        result = await self.run(cmd, "duration")
        stdout = result.stdout.decode("utf-8") if isinstance(result.stdout, bytes) else result.stdout
        try:
            return float((stdout or "").strip())
        except ValueError as e:
            raise MetadataError(f"No duration found in {video_path}") from e

    async def process_clip(
        self,
        source_url: str,
        job_id: str,
        target_aspect_ratio: Optional[str] = None,
    ) -> ProcessedClip:
        """
        Download, normalize, thumbnail and probe one provider clip

        Returns:
            ProcessedClip with the encoded bytes held in memory
        """
        with self.workspace(f"clip-{job_id}") as workdir:
            raw_path = os.path.join(workdir, "raw.mp4")
            normalized_path = os.path.join(workdir, "normalized.mp4")
            thumbnail_path = os.path.join(workdir, "thumbnail.jpg")

            await self.download(source_url, raw_path)
            await self.normalize(raw_path, normalized_path, target_aspect_ratio)
            await self.thumbnail(normalized_path, thumbnail_path)
            probe = await self.probe(normalized_path)

            with open(normalized_path, "rb") as f:
                video = f.read()
            with open(thumbnail_path, "rb") as f:
                thumbnail = f.read()

        logger.info(
            "clip_processed",
            job_id=job_id,
            duration=probe.duration,
            resolution=f"{probe.width}x{probe.height}",
            size_bytes=len(video),
        )

        return ProcessedClip(
            video=video,
            thumbnail=thumbnail,
            probe=probe,
            checksum_sha256=hashlib.sha256(video).hexdigest(),
        )
