"""
Unit Tests for the Clip Downloader
"""

import httpx
import pytest

from reelsmith.services.clip_downloader import ClipDownloader
from reelsmith.services.errors import DownloadError

pytestmark = pytest.mark.asyncio


def _downloader(handler):
    return ClipDownloader(client=httpx.AsyncClient(transport=httpx.MockTransport(handler)))


async def test_download_writes_file(temp_dir):
    downloader = _downloader(lambda request: httpx.Response(200, content=b"mp4-bytes"))
    target = temp_dir / "nested" / "clip.mp4"

    path = await downloader.download_to("https://fal.media/clip.mp4", str(target))

    assert path == str(target)
    assert target.read_bytes() == b"mp4-bytes"
    await downloader.close()


async def test_http_error_raises_download_error(temp_dir):
    downloader = _downloader(lambda request: httpx.Response(404))

    with pytest.raises(DownloadError, match="Failed to download"):
        await downloader.download_to("https://fal.media/missing.mp4", str(temp_dir / "clip.mp4"))


async def test_empty_body_raises_download_error(temp_dir):
    downloader = _downloader(lambda request: httpx.Response(200, content=b""))

    with pytest.raises(DownloadError, match="empty"):
        await downloader.download_to("https://fal.media/empty.mp4", str(temp_dir / "clip.mp4"))


async def test_timeout_raises_download_error(temp_dir):
    def handler(request):
        raise httpx.ReadTimeout("slow", request=request)

    downloader = _downloader(handler)

    with pytest.raises(DownloadError, match="Timed out"):
        await downloader.fetch_bytes("https://fal.media/slow.mp4")


async def test_fetch_bytes_returns_body():
    downloader = _downloader(lambda request: httpx.Response(200, content=b"jpeg"))

    assert await downloader.fetch_bytes("https://img.example.com/a.jpg") == b"jpeg"
