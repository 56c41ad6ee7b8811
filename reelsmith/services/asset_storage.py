"""
Asset Storage Service - S3-compatible object storage for clips, videos and thumbnails
"""

import asyncio
from typing import Any, Dict, Optional, Union
from urllib.parse import unquote, urlsplit

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from reelsmith.services.errors import StorageError
from reelsmith.services.observability import logger


class AssetStorage:
    """
    Builds hierarchical object keys and moves bytes to and from the bucket

    Keys are scoped owner / listing / batch / job, so no two writers share a key.
    """

    def __init__(
        self,
        bucket: str,
        client: Optional[Any] = None,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        access_key_id: Optional[str] = None,
        secret_access_key: Optional[str] = None,
        public_base_url: Optional[str] = None,
    ):
        """Initialize asset storage"""
        self.bucket = bucket
        self.endpoint_url = endpoint_url
        self.public_base_url = public_base_url
        self.client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
        )

    # Keys

    @staticmethod
    def batch_prefix(owner_id: str, listing_id: str, batch_id: str) -> str:
        return f"user_{owner_id}/listings/listing_{listing_id}/videos/video_{batch_id}"

    def job_video_key(self, owner_id: str, listing_id: str, batch_id: str, job_id: str) -> str:
        return f"{self.batch_prefix(owner_id, listing_id, batch_id)}/jobs/job_{job_id}/video.mp4"

    def job_thumbnail_key(self, owner_id: str, listing_id: str, batch_id: str, job_id: str) -> str:
        return f"{self.batch_prefix(owner_id, listing_id, batch_id)}/jobs/job_{job_id}/thumbnail.jpg"

    def final_video_key(self, owner_id: str, listing_id: str, batch_id: str) -> str:
        return f"{self.batch_prefix(owner_id, listing_id, batch_id)}/final.mp4"

    def final_thumbnail_key(self, owner_id: str, listing_id: str, batch_id: str) -> str:
        return f"{self.batch_prefix(owner_id, listing_id, batch_id)}/thumbnail.jpg"

    # URLs

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{key}"
        if self.endpoint_url:
            return f"{self.endpoint_url.rstrip('/')}/{self.bucket}/{key}"
        return f"https://{self.bucket}.s3.amazonaws.com/{key}"

    def owns_url(self, url: str) -> bool:
        """Whether a URL points into this bucket"""
        return url.startswith(self.public_url(""))

    def key_from_url(self, url: str) -> str:
        """Resolve a stored asset URL back to its bucket-relative key"""
        if self.public_base_url and url.startswith(self.public_base_url.rstrip("/") + "/"):
            return unquote(url[len(self.public_base_url.rstrip("/")) + 1:])

        path = unquote(urlsplit(url).path).lstrip("/")
        bucket_prefix = f"{self.bucket}/"
        if path.startswith(bucket_prefix):
            path = path[len(bucket_prefix):]
        if not path:
            raise StorageError(f"Cannot resolve storage key from URL: {url}")
        return path

    # Transfers

    async def upload(
        self,
        key: str,
        body: Union[bytes, str],
        content_type: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> str:
        """
        Upload bytes, or a local file when body is a path

        Returns:
            Public URL of the stored object

        Raises:
            StorageError: If the upload fails
        """
        extra = {
            "ContentType": content_type,
            "Metadata": {k: str(v) for k, v in (metadata or {}).items() if v is not None},
        }
        try:
            if isinstance(body, bytes):
                await asyncio.to_thread(
                    self.client.put_object, Bucket=self.bucket, Key=key, Body=body, **extra
                )
            else:
                await asyncio.to_thread(
                    self.client.upload_file, body, self.bucket, key, ExtraArgs=extra
                )
        except (BotoCoreError, ClientError) as e:
            logger.error("storage_upload_failed", key=key, error=str(e))
            raise StorageError(f"Failed to upload {key}: {e}") from e

        logger.info("storage_upload_complete", key=key, content_type=content_type)
        return self.public_url(key)

    async def download_to(self, url: str, target_path: str) -> str:
        """
        Download a stored asset by its URL

        Raises:
            StorageError: If the object cannot be fetched
        """
        key = self.key_from_url(url)
        try:
            await asyncio.to_thread(self.client.download_file, self.bucket, key, target_path)
        except (BotoCoreError, ClientError) as e:
            logger.error("storage_download_failed", key=key, error=str(e))
            raise StorageError(f"Failed to download {key}: {e}") from e
        return target_path
