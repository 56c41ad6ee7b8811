"""
Sample test data and fixtures
"""

from typing import Any, Dict

from reelsmith.models.generation_settings import GenerationSettingsV1
from reelsmith.models.listing import JobSpec
from reelsmith.models.video_batch import VideoBatchModel


# Sample provider callbacks
SAMPLE_FAL_SUCCESS = {
    "request_id": "req-1",
    "gateway_request_id": "req-1",
    "status": "OK",
    "payload": {
        "video": {
            "url": "https://v3.fal.media/files/kitchen/output.mp4",
            "content_type": "video/mp4",
            "metadata": {"duration": 5.04},
        }
    },
}

SAMPLE_FAL_ERROR = {
    "request_id": "req-1",
    "gateway_request_id": "req-1",
    "status": "ERROR",
    "error": {"message": "Image failed content moderation"},
}


def get_fal_callback(request_id: str = "req-1", error: bool = False) -> Dict[str, Any]:
    """Get a provider callback body for a request id"""
    body = dict(SAMPLE_FAL_ERROR if error else SAMPLE_FAL_SUCCESS)
    body["request_id"] = request_id
    body["gateway_request_id"] = request_id
    return body


def make_spec(sort_order: int, image_url: str = None) -> JobSpec:
    """Get a planned job with valid current settings"""
    return JobSpec(
        sort_order=sort_order,
        settings=GenerationSettingsV1(
            model="fal-ai/kling-video/v2.1/standard/image-to-video",
            image_urls=[image_url or f"https://img.example.com/{sort_order}.jpg"],
            prompt="Forward pan through the kitchen.",
            template_key="interior-forward-pan",
            category="kitchen",
            room_id="room-kitchen",
            room_name="Kitchen",
            sort_order=sort_order,
        ),
    )


def create_sample_batch(store, jobs: int = 3, listing_id: str = "listing-1", callback_url: str = None):
    """Persist a pending batch with the given number of pending jobs"""
    batch = VideoBatchModel(
        id=VideoBatchModel.generate_id(),
        listing_id=listing_id,
        owner_id="owner-1",
        callback_url=callback_url,
        composition_settings={"orientation": "vertical"},
    )
    return store.create_batch(batch, [make_spec(i) for i in range(jobs)])
