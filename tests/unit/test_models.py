"""
Unit Tests for Data Models
"""

import pytest
from pydantic import ValidationError

from reelsmith.models.composition import CompositionRequest, CompositionSettings
from reelsmith.models.generation_job import GenerationJobModel
from reelsmith.models.generation_settings import (
    GenerationSettingsV1,
    LegacyGenerationSettings,
    parse_generation_settings,
)
from reelsmith.models.listing import ListingImage
from reelsmith.models.webhooks import BatchWebhookPayload, FalWebhookPayload, JobResult, JobWebhookPayload


def _v1(**overrides):
    data = {
        "schema_version": 1,
        "model": "fal-ai/test",
        "image_urls": ["https://img/a.jpg"],
        "prompt": "Forward pan through the kitchen.",
        "template_key": "interior-forward-pan",
        "category": "kitchen",
        "room_id": "room-kitchen",
        "room_name": "Kitchen",
        "sort_order": 0,
    }
    data.update(overrides)
    return data


class TestGenerationSettings:
    def test_current_rows_parse_as_v1(self):
        settings = parse_generation_settings(_v1())

        assert isinstance(settings, GenerationSettingsV1)
        assert settings.duration_s == 5
        assert settings.orientation == "vertical"

    def test_rows_without_version_parse_as_legacy(self):
        settings = parse_generation_settings(
            {"imageUrls": ["https://img/a.jpg"], "prompt": "Pan", "roomName": "Kitchen", "extra": 1}
        )

        assert isinstance(settings, LegacyGenerationSettings)
        assert settings.image_urls == ["https://img/a.jpg"]
        assert settings.room_name == "Kitchen"

    def test_v1_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            parse_generation_settings(_v1(surprise=True))

    def test_v1_requires_an_image(self):
        with pytest.raises(ValidationError):
            parse_generation_settings(_v1(image_urls=[]))

    def test_clip_index_is_zero_or_one(self):
        with pytest.raises(ValidationError):
            parse_generation_settings(_v1(clip_index=2))

    def test_unknown_version_is_rejected(self):
        with pytest.raises(ValidationError):
            parse_generation_settings(_v1(schema_version=7))

    def test_job_model_reads_settings_through_parser(self):
        job = GenerationJobModel(id="j", video_batch_id="b", generation_settings=_v1(), sort_order=0)
        assert job.settings.template_key == "interior-forward-pan"


def test_listing_image_category_is_normalized():
    assert ListingImage(url="u", category="  Kitchen ").category == "kitchen"
    assert ListingImage(url="u", category="  ").category is None


def test_composition_request_needs_a_clip():
    with pytest.raises(ValidationError):
        CompositionRequest(clip_urls=[], owner_id="o", listing_id="l", batch_id="b")


def test_composition_settings_defaults():
    settings = CompositionSettings()
    assert not settings.transitions
    assert settings.logo is None
    assert settings.orientation == "vertical"


class TestFalWebhookPayload:
    def test_success_payload(self):
        payload = FalWebhookPayload.model_validate(
            {"request_id": "r", "status": "OK", "payload": {"video": {"url": "https://cdn/v.mp4"}}}
        )
        assert not payload.is_error
        assert payload.video_url == "https://cdn/v.mp4"

    def test_error_status(self):
        payload = FalWebhookPayload.model_validate(
            {"request_id": "r", "status": "ERROR", "error": {"message": "NSFW content detected"}}
        )
        assert payload.is_error
        assert payload.error_message == "NSFW content detected"

    def test_missing_result_counts_as_error(self):
        payload = FalWebhookPayload.model_validate({"request_id": "r", "status": "OK"})
        assert payload.is_error
        assert payload.error_message == "Provider callback carried no video URL"


def test_outbound_payloads_use_camel_case_and_drop_nulls():
    job_body = JobWebhookPayload(
        job_id="j",
        listing_id="l",
        batch_id="b",
        status="completed",
        timestamp="t",
        result=JobResult(video_url="https://cdn/v.mp4", file_size=10),
    ).to_body()

    assert job_body == {
        "jobId": "j",
        "listingId": "l",
        "batchId": "b",
        "status": "completed",
        "timestamp": "t",
        "result": {"videoUrl": "https://cdn/v.mp4", "fileSize": 10},
    }

    batch_body = BatchWebhookPayload(listing_id="l", batch_id="b", video_id="b", status="failed", timestamp="t").to_body()
    assert batch_body["videoId"] == "b"
    assert "jobId" not in batch_body
