"""
Clip Downloader - Download generated clips and assets over HTTP
"""

import os
import httpx
from typing import Optional
from pathlib import Path

from reelsmith.services.errors import DownloadError
from reelsmith.services.observability import logger


class ClipDownloader:
    """
    Download generated clips from provider URLs

    The timeout is sized for multi-minute video payloads.
    """

    def __init__(self, timeout_s: float = 300.0, client: Optional[httpx.AsyncClient] = None):
        """Initialize downloader"""
        self.client = client or httpx.AsyncClient(timeout=timeout_s, follow_redirects=True)

    async def download_to(self, url: str, target_path: str) -> str:
        """
        Stream a remote file to disk

        Args:
            url: URL to download
            target_path: Target file path

        Returns:
            Path to the downloaded file

        Raises:
            DownloadError: If the transfer fails, times out or is empty
        """
        logger.info("clip_download_start", url=url, target_path=target_path)

        Path(target_path).parent.mkdir(parents=True, exist_ok=True)

        try:
            async with self.client.stream("GET", url) as response:
                response.raise_for_status()
                with open(target_path, "wb") as f:
                    async for chunk in response.aiter_bytes(chunk_size=8192):
                        f.write(chunk)
        except httpx.TimeoutException as e:
            logger.error("clip_download_timeout", url=url, error=str(e))
            raise DownloadError(f"Timed out downloading {url}") from e
        except httpx.HTTPError as e:
            logger.error("clip_download_failed", url=url, error=str(e))
            raise DownloadError(f"Failed to download {url}: {e}") from e

        size = os.path.getsize(target_path)
        if size == 0:
            raise DownloadError(f"Downloaded file is empty: {url}")

        logger.info("clip_download_complete", url=url, target_path=target_path, size_bytes=size)
        return target_path

    async def fetch_bytes(self, url: str) -> bytes:
        """
        Download a remote file into memory

        Raises:
            DownloadError: If the transfer fails, times out or is empty
        """
        chunks = []
        try:
            async with self.client.stream("GET", url) as response:
                response.raise_for_status()
                async for chunk in response.aiter_bytes(chunk_size=8192):
                    chunks.append(chunk)
        except httpx.TimeoutException as e:
            logger.error("clip_download_timeout", url=url, error=str(e))
            raise DownloadError(f"Timed out downloading {url}") from e
        except httpx.HTTPError as e:
            logger.error("clip_download_failed", url=url, error=str(e))
            raise DownloadError(f"Failed to download {url}: {e}") from e

        data = b"".join(chunks)
        if not data:
            raise DownloadError(f"Downloaded file is empty: {url}")
        return data

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()
