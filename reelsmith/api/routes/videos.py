"""
Videos API Routes - plan, cancel and poll listing videos
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from reelsmith.api.dependencies import get_dispatcher, get_job_store, get_planner
from reelsmith.core.fanout_planner import FanoutPlanner
from reelsmith.models.composition import CompositionSettings
from reelsmith.models.generation_settings import Orientation
from reelsmith.models.listing import ListingGenerationRequest, ListingImage
from reelsmith.services.generation_service import batch_status, cancel_listing, plan_batch
from reelsmith.services.observability import logger
from reelsmith.services.storage import SqlJobStore
from reelsmith.workers.queue import TaskDispatcher


# Request/Response Models


class GenerateVideoRequest(BaseModel):
    """Request to generate a listing video"""

    listing_id: str
    owner_id: str
    images: List[ListingImage] = Field(..., min_length=1)
    primary_image_url: Optional[str] = None
    orientation: Orientation = "vertical"
    ai_directions: Optional[str] = None
    enable_priority_secondary: Optional[bool] = None
    callback_url: Optional[str] = None
    display_name: Optional[str] = None
    composition: Optional[CompositionSettings] = None


class GenerateVideoResponse(BaseModel):
    batch_id: str
    job_ids: List[str]
    task_id: Optional[str] = None
    status: str


class CancelRequest(BaseModel):
    listing_id: str
    batch_ids: Optional[List[str]] = None
    reason: Optional[str] = None


class CancelResponse(BaseModel):
    canceled_videos: int
    canceled_jobs: int


class VideoStatusResponse(BaseModel):
    batch: Dict[str, Any]
    jobs: List[Dict[str, Any]]


router = APIRouter()


@router.post("/videos/generate", response_model=GenerateVideoResponse, status_code=status.HTTP_202_ACCEPTED)
def generate_video(
    request: GenerateVideoRequest,
    store: SqlJobStore = Depends(get_job_store),
    planner: FanoutPlanner = Depends(get_planner),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
):
    """
    Plan one job per room and queue their dispatch

    Planning errors (no rooms, no primary image) surface as 400 through the
    InvalidRequestError handler.
    """
    listing = ListingGenerationRequest(
        listing_id=request.listing_id,
        owner_id=request.owner_id,
        images=request.images,
        primary_image_url=request.primary_image_url,
        orientation=request.orientation,
        ai_directions=request.ai_directions,
        enable_priority_secondary=request.enable_priority_secondary,
    )

    batch, jobs = plan_batch(
        store,
        planner,
        listing,
        callback_url=request.callback_url,
        composition_settings=request.composition,
        display_name=request.display_name,
    )
    task_id = dispatcher.enqueue_generation(batch.id)

    logger.info(
        "generate_queued",
        batch_id=batch.id,
        listing_id=request.listing_id,
        job_count=len(jobs),
        task_id=task_id,
    )

    return GenerateVideoResponse(
        batch_id=batch.id,
        job_ids=[job.id for job in jobs],
        task_id=task_id,
        status=batch.status,
    )


@router.post("/videos/cancel", response_model=CancelResponse)
def cancel_videos(
    request: CancelRequest,
    store: SqlJobStore = Depends(get_job_store),
):
    """Cancel pending and processing work for a listing"""
    result = cancel_listing(store, request.listing_id, request.reason, request.batch_ids)
    return CancelResponse(canceled_videos=result.canceled_videos, canceled_jobs=result.canceled_jobs)


@router.get("/videos/{batch_id}", response_model=VideoStatusResponse)
def get_video_status(
    batch_id: str,
    store: SqlJobStore = Depends(get_job_store),
):
    """Poll a batch and its jobs"""
    found = batch_status(store, batch_id)
    if found is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "NOT_FOUND", "message": f"Video batch not found: {batch_id}"}},
        )
    batch, jobs = found
    return VideoStatusResponse(batch=batch.to_dict(), jobs=[job.to_dict() for job in jobs])
