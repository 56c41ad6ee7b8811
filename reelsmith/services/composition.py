"""
Composition Engine - merge a batch's clips into the final branded video
"""

import asyncio
import os
from typing import List

from reelsmith.config.constants import (
    COMPOSITION_DIMENSIONS,
    CROSSFADE_DURATION_S,
    FFMPEG_CRF,
    FFMPEG_FRAME_RATE,
    FFMPEG_PIXEL_FORMAT,
    FFMPEG_PRESET,
    FFMPEG_VIDEO_CODEC,
    LOGO_MARGIN_PX,
    LOGO_MAX_SIZE_PX,
    SUBTITLE_FONT_SIZE,
)
from reelsmith.models.composition import (
    ComposedVideoResult,
    CompositionRequest,
    LogoPosition,
    SubtitleSettings,
)
from reelsmith.services.asset_storage import AssetStorage
from reelsmith.services.errors import CompositionError
from reelsmith.services.media_processor import MediaProcessor
from reelsmith.services.observability import logger
from reelsmith.services.subtitles import build_srt


ENCODE_ARGS = [
    "-c:v", FFMPEG_VIDEO_CODEC,
    "-preset", FFMPEG_PRESET,
    "-crf", FFMPEG_CRF,
    "-pix_fmt", FFMPEG_PIXEL_FORMAT,
    "-movflags", "+faststart",
    "-an",
]


def normalize_filter(width: int, height: int) -> str:
    """Bring every input onto one canvas so concat and xfade accept them"""
    return (
        f"format={FFMPEG_PIXEL_FORMAT},fps={FFMPEG_FRAME_RATE},"
        f"scale={width}:{height}:force_original_aspect_ratio=decrease,"
        f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1"
    )


def build_concat_filter(clip_count: int, width: int, height: int) -> str:
    norm = normalize_filter(width, height)
    parts = [f"[{i}:v]{norm}[v{i}]" for i in range(clip_count)]
    inputs = "".join(f"[v{i}]" for i in range(clip_count))
    parts.append(f"{inputs}concat=n={clip_count}:v=1:a=0[outv]")
    return ";".join(parts)


def build_crossfade_filter(
    durations: List[float],
    width: int,
    height: int,
    fade_s: float = CROSSFADE_DURATION_S,
) -> str:
    """
    Chain xfade between consecutive clips

    Each fade starts fade_s before the end of the running output.
    """
    norm = normalize_filter(width, height)
    parts = [f"[{i}:v]{norm}[v{i}]" for i in range(len(durations))]

    previous = "v0"
    elapsed = durations[0]
    for i in range(1, len(durations)):
        offset = max(elapsed - fade_s, 0.0)
        label = "outv" if i == len(durations) - 1 else f"x{i}"
        parts.append(
            f"[{previous}][v{i}]xfade=transition=fade:duration={fade_s}:offset={offset:.3f}[{label}]"
        )
        previous = label
        elapsed = offset + durations[i]
    return ";".join(parts)


def logo_overlay_position(position: LogoPosition, margin: int = LOGO_MARGIN_PX) -> str:
    positions = {
        "top-left": f"{margin}:{margin}",
        "top-right": f"W-w-{margin}:{margin}",
        "bottom-left": f"{margin}:H-h-{margin}",
        "bottom-right": f"W-w-{margin}:H-h-{margin}",
    }
    return positions[position]


def build_logo_filter(position: LogoPosition) -> str:
    return (
        f"[1:v]scale='min({LOGO_MAX_SIZE_PX},iw)':'min({LOGO_MAX_SIZE_PX},ih)'"
        f":force_original_aspect_ratio=decrease[logo];"
        f"[0:v][logo]overlay={logo_overlay_position(position)}[outv]"
    )


def escape_filter_path(path: str) -> str:
    return path.replace("\\", "\\\\").replace(":", "\\:").replace("'", "\\'")


def build_subtitle_filter(srt_path: str, font: str) -> str:
    style = (
        f"FontName={font},FontSize={SUBTITLE_FONT_SIZE},"
        "PrimaryColour=&HFFFFFF,OutlineColour=&H000000,Outline=2"
    )
    return f"subtitles={escape_filter_path(srt_path)}:force_style='{style}'"


class CompositionEngine:
    """
    Compose clips into one video with optional crossfades, logo and subtitles

    Reads clips and returns a result; it never writes job or batch rows.
    """

    def __init__(self, media: MediaProcessor, storage: AssetStorage):
        self.media = media
        self.storage = storage

    async def _fetch(self, url: str, target_path: str) -> str:
        if self.storage.owns_url(url):
            return await self.storage.download_to(url, target_path)
        return await self.media.download(url, target_path)

    async def compose(self, request: CompositionRequest) -> ComposedVideoResult:
        """
        Build, upload and describe the final video

        Raises:
            CompositionError: If any step fails; the workspace is removed first
        """
        settings = request.settings
        width, height = COMPOSITION_DIMENSIONS[settings.orientation]

        logger.info(
            "composition_start",
            batch_id=request.batch_id,
            clip_count=len(request.clip_urls),
            transitions=settings.transitions,
            logo=settings.logo is not None,
            subtitles=bool(settings.subtitles and settings.subtitles.enabled),
        )

        try:
            with self.media.workspace(f"video-composition-{request.batch_id}") as workdir:
                clip_paths = await asyncio.gather(
                    *[
                        self._fetch(url, os.path.join(workdir, f"clip_{i}.mp4"))
                        for i, url in enumerate(request.clip_urls)
                    ]
                )

                current = await self._merge(list(clip_paths), workdir, width, height, settings.transitions)

                if settings.logo is not None:
                    logo_path = await self._fetch(settings.logo.url, os.path.join(workdir, "logo.png"))
                    current = await self._overlay_logo(current, logo_path, settings.logo.position, workdir)

                if settings.subtitles is not None and settings.subtitles.enabled and settings.subtitles.text.strip():
                    current = await self._burn_subtitles(current, settings.subtitles, workdir)

                probe = await self.media.probe(current)
                thumbnail_path = await self.media.thumbnail(current, os.path.join(workdir, "thumbnail.jpg"))
                file_size = os.path.getsize(current)

                metadata = {
                    "owner_id": request.owner_id,
                    "listing_id": request.listing_id,
                    "batch_id": request.batch_id,
                    "display_name": request.display_name,
                }
                video_url, thumbnail_url = await asyncio.gather(
                    self.storage.upload(
                        self.storage.final_video_key(request.owner_id, request.listing_id, request.batch_id),
                        current,
                        "video/mp4",
                        metadata,
                    ),
                    self.storage.upload(
                        self.storage.final_thumbnail_key(request.owner_id, request.listing_id, request.batch_id),
                        thumbnail_path,
                        "image/jpeg",
                        metadata,
                    ),
                )
        except CompositionError:
            raise
        except Exception as e:
            logger.error("composition_failed", batch_id=request.batch_id, error=str(e))
            raise CompositionError(f"Failed to compose video: {e}") from e

        return ComposedVideoResult(
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            duration=probe.duration,
            file_size=file_size,
        )

    async def _merge(
        self,
        clip_paths: List[str],
        workdir: str,
        width: int,
        height: int,
        transitions: bool,
    ) -> str:
        output = os.path.join(workdir, "merged.mp4")
        inputs: List[str] = []
        for path in clip_paths:
            inputs += ["-i", path]

        if len(clip_paths) == 1:
            cmd = [self.media.ffmpeg_path, *inputs, "-vf", normalize_filter(width, height), *ENCODE_ARGS, "-y", output]
        else:
            if transitions:
                durations = [await self.media.duration_seconds(path) for path in clip_paths]
                graph = build_crossfade_filter(durations, width, height)
            else:
                graph = build_concat_filter(len(clip_paths), width, height)
            cmd = [
                self.media.ffmpeg_path,
                *inputs,
                "-filter_complex", graph,
                "-map", "[outv]",
                *ENCODE_ARGS,
                "-y",
                output,
            ]

        await self.media.run(cmd, "merge")
        return output

    async def _overlay_logo(self, video_path: str, logo_path: str, position: LogoPosition, workdir: str) -> str:
        output = os.path.join(workdir, "branded.mp4")
        cmd = [
            self.media.ffmpeg_path,
            "-i", video_path,
            "-i", logo_path,
            "-filter_complex", build_logo_filter(position),
            "-map", "[outv]",
            *ENCODE_ARGS,
            "-y",
            output,
        ]
        await self.media.run(cmd, "logo_overlay")
        return output

    async def _burn_subtitles(
        self,
        video_path: str,
        subtitles: SubtitleSettings,
        workdir: str,
    ) -> str:
        duration_s = await self.media.duration_seconds(video_path)

        srt_path = os.path.join(workdir, "captions.srt")
        with open(srt_path, "w", encoding="utf-8") as f:
            f.write(build_srt(subtitles.text, duration_s))

        output = os.path.join(workdir, "subtitled.mp4")
        cmd = [
            self.media.ffmpeg_path,
            "-i", video_path,
            "-vf", build_subtitle_filter(srt_path, subtitles.font),
            *ENCODE_ARGS,
            "-y",
            output,
        ]
        await self.media.run(cmd, "subtitles")
        return output
