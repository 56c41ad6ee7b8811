"""
Pipeline Flow Tests - plan, dispatch, callbacks and composition over SQLite
"""

import json
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from reelsmith.core.fal_adapter import ClipGenerationResponse
from reelsmith.core.fanout_planner import FanoutPlanner
from reelsmith.models.composition import ComposedVideoResult, ProcessedClip, VideoProbe
from reelsmith.models.webhooks import FalWebhookPayload
from reelsmith.services.asset_storage import AssetStorage
from reelsmith.services.generation_service import VideoGenerationService, WebhookOutcome
from reelsmith.services.webhook_delivery import SIGNATURE_HEADER, WebhookDeliveryService, verify_signature
from tests.fixtures import get_fal_callback

pytestmark = pytest.mark.asyncio

CALLBACK_URL = "https://app.example.com/hooks/video"
SECRET = "integration-secret"


class CallbackReceiver:
    """Records signed deliveries; the first request gets a 503"""

    def __init__(self):
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if len(self.requests) == 1:
            return httpx.Response(503)
        return httpx.Response(200)

    @property
    def bodies(self):
        return [json.loads(request.content) for request in self.requests]


@pytest.fixture
def receiver():
    return CallbackReceiver()


@pytest.fixture
def composer():
    mock = Mock()
    mock.compose = AsyncMock(
        return_value=ComposedVideoResult(
            video_url="https://cdn.example.com/final.mp4",
            thumbnail_url="https://cdn.example.com/thumbnail.jpg",
            duration=15.0,
            file_size=9000,
        )
    )
    return mock


@pytest.fixture
def service(sql_store, receiver, composer):
    counter = iter(range(1, 100))

    async def submit(request):
        return ClipGenerationResponse(request_id=f"req-{next(counter)}", webhook_url="https://hook")

    provider = Mock()
    provider.submit_with_retry = AsyncMock(side_effect=submit)

    media = Mock()
    media.process_clip = AsyncMock(
        return_value=ProcessedClip(
            video=b"clip",
            thumbnail=b"thumb",
            probe=VideoProbe(duration=5, width=1080, height=1920, aspect_ratio="0.56"),
            checksum_sha256="f00d",
        )
    )

    notifier = WebhookDeliveryService(
        client=httpx.AsyncClient(transport=httpx.MockTransport(receiver)),
        sleep=AsyncMock(),
    )
    return VideoGenerationService(
        store=sql_store,
        planner=FanoutPlanner(model="fal-ai/test", picker=lambda candidates: candidates[0]),
        provider=provider,
        media=media,
        storage=AssetStorage(bucket="videos", client=Mock(), public_base_url="https://cdn.example.com"),
        composer=composer,
        notifier=notifier,
        webhook_secret=SECRET,
    )


def _callback(request_id, error=False):
    return FalWebhookPayload.model_validate(get_fal_callback(request_id, error=error))


async def test_listing_to_final_video(service, sql_store, listing_request, receiver, composer):
    batch, jobs = service.plan_generation(listing_request, callback_url=CALLBACK_URL)
    summary = await service.start_generation(batch.id)
    assert summary.jobs_started == 3

    # Out of order, with one redelivery
    for request_id in ("req-2", "req-1", "req-2", "req-3"):
        await service.handle_provider_webhook(_callback(request_id))

    stored = sql_store.get_batch(batch.id)
    assert stored.status == "completed"
    assert stored.video_url == "https://cdn.example.com/final.mp4"
    assert all(job.status == "completed" for job in sql_store.list_batch_jobs(batch.id))

    composer.compose.assert_awaited_once()
    clip_urls = composer.compose.await_args.args[0].clip_urls
    assert clip_urls == [job.video_url for job in sql_store.list_batch_jobs(batch.id)]

    # First delivery is retried after the 503
    bodies = receiver.bodies
    assert bodies[0] == bodies[1]
    delivered = bodies[1:]
    assert [body.get("videoId") for body in delivered] == [None, None, None, batch.id]
    assert delivered[-1]["status"] == "completed"
    for request in receiver.requests:
        assert verify_signature(request.content, request.headers[SIGNATURE_HEADER], SECRET)
    assert sql_store.get_batch(batch.id).webhook_delivered_at is not None


async def test_cancellation_wins_over_late_callbacks(service, sql_store, listing_request, composer):
    batch, _ = service.plan_generation(listing_request, callback_url=CALLBACK_URL)
    await service.start_generation(batch.id)

    result = service.cancel(listing_request.listing_id, reason="Listing withdrawn")

    assert result.canceled_videos == 1
    assert result.canceled_jobs == 3
    for request_id in ("req-1", "req-2", "req-3"):
        assert await service.handle_provider_webhook(_callback(request_id)) == WebhookOutcome.IGNORED_TERMINAL
    assert sql_store.get_batch(batch.id).status == "canceled"
    assert sql_store.get_batch(batch.id).error_message == "Listing withdrawn"
    composer.compose.assert_not_awaited()


async def test_mixed_outcomes_compose_survivors(service, sql_store, listing_request, composer):
    batch, _ = service.plan_generation(listing_request, callback_url=CALLBACK_URL)
    await service.start_generation(batch.id)

    await service.handle_provider_webhook(_callback("req-1"))
    await service.handle_provider_webhook(_callback("req-2", error=True))
    await service.handle_provider_webhook(_callback("req-3"))

    stored = sql_store.get_batch(batch.id)
    assert stored.status == "completed"
    assert stored.error_message == "1 clip(s) failed"
    assert len(composer.compose.await_args.args[0].clip_urls) == 2
