"""
Unit Tests for Asset Storage
"""

from unittest.mock import Mock

import pytest
from botocore.exceptions import ClientError

from reelsmith.services.asset_storage import AssetStorage
from reelsmith.services.errors import StorageError


@pytest.fixture
def client():
    return Mock()


@pytest.fixture
def storage(client):
    return AssetStorage(bucket="videos", client=client, public_base_url="https://cdn.example.com/")


def _client_error():
    return ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")


class TestKeys:
    def test_job_keys_are_scoped_per_job(self, storage):
        video = storage.job_video_key("o1", "l1", "b1", "j1")
        thumb = storage.job_thumbnail_key("o1", "l1", "b1", "j1")

        assert video == "user_o1/listings/listing_l1/videos/video_b1/jobs/job_j1/video.mp4"
        assert thumb == "user_o1/listings/listing_l1/videos/video_b1/jobs/job_j1/thumbnail.jpg"
        assert storage.job_video_key("o1", "l1", "b1", "j2") != video

    def test_final_keys_live_under_batch(self, storage):
        assert storage.final_video_key("o1", "l1", "b1").endswith("video_b1/final.mp4")
        assert storage.final_thumbnail_key("o1", "l1", "b1").endswith("video_b1/thumbnail.jpg")


class TestUrls:
    def test_public_url_prefers_cdn(self, storage):
        assert storage.public_url("a/b.mp4") == "https://cdn.example.com/a/b.mp4"

    def test_public_url_with_endpoint(self, client):
        storage = AssetStorage(bucket="videos", client=client, endpoint_url="http://minio:9000/")
        assert storage.public_url("a.mp4") == "http://minio:9000/videos/a.mp4"

    def test_public_url_defaults_to_s3(self, client):
        storage = AssetStorage(bucket="videos", client=client)
        assert storage.public_url("a.mp4") == "https://videos.s3.amazonaws.com/a.mp4"

    def test_owns_url(self, storage):
        assert storage.owns_url("https://cdn.example.com/user_o1/x.mp4")
        assert not storage.owns_url("https://fal.media/files/x.mp4")

    def test_key_from_cdn_url(self, storage):
        assert storage.key_from_url("https://cdn.example.com/user_o1/a%20b.mp4") == "user_o1/a b.mp4"

    def test_key_from_path_style_url(self, client):
        storage = AssetStorage(bucket="videos", client=client, endpoint_url="http://minio:9000")
        assert storage.key_from_url("http://minio:9000/videos/user_o1/a.mp4") == "user_o1/a.mp4"

    def test_key_from_empty_path_raises(self, storage):
        with pytest.raises(StorageError):
            storage.key_from_url("https://other.example.com/")


@pytest.mark.asyncio
class TestTransfers:
    async def test_upload_bytes_uses_put_object(self, storage, client):
        url = await storage.upload("k/video.mp4", b"data", "video/mp4", metadata={"job": "j1", "skip": None})

        assert url == "https://cdn.example.com/k/video.mp4"
        client.put_object.assert_called_once_with(
            Bucket="videos",
            Key="k/video.mp4",
            Body=b"data",
            ContentType="video/mp4",
            Metadata={"job": "j1"},
        )
        client.upload_file.assert_not_called()

    async def test_upload_path_uses_upload_file(self, storage, client):
        await storage.upload("k/final.mp4", "/tmp/final.mp4", "video/mp4")

        client.upload_file.assert_called_once_with(
            "/tmp/final.mp4",
            "videos",
            "k/final.mp4",
            ExtraArgs={"ContentType": "video/mp4", "Metadata": {}},
        )

    async def test_upload_failure_raises_storage_error(self, storage, client):
        client.put_object.side_effect = _client_error()

        with pytest.raises(StorageError, match="Failed to upload"):
            await storage.upload("k/video.mp4", b"data", "video/mp4")

    async def test_download_resolves_key(self, storage, client, temp_dir):
        target = str(temp_dir / "clip.mp4")

        assert await storage.download_to("https://cdn.example.com/k/clip.mp4", target) == target
        client.download_file.assert_called_once_with("videos", "k/clip.mp4", target)

    async def test_download_failure_raises_storage_error(self, storage, client, temp_dir):
        client.download_file.side_effect = _client_error()

        with pytest.raises(StorageError, match="Failed to download"):
            await storage.download_to("https://cdn.example.com/k/clip.mp4", str(temp_dir / "c.mp4"))
