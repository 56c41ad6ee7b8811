"""
Generation Service - orchestrate fan-out, dispatch, webhook ingestion and composition
"""

import asyncio
import time
import uuid
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

from pydantic import BaseModel, ValidationError

from reelsmith.config.constants import (
    BATCH_WEBHOOK_MAX_RETRIES,
    DEFAULT_CANCEL_REASON,
    JOB_CLAIM_LEASE_S,
    JOB_WEBHOOK_MAX_RETRIES,
    ORIENTATION_ASPECT_RATIOS,
    WEBHOOK_BACKOFF_MS,
)
from reelsmith.core.fal_adapter import ClipGenerationRequest, FalRetryAdapter
from reelsmith.core.fanout_planner import FanoutPlanner
from reelsmith.models.composition import ComposedVideoResult, CompositionRequest, CompositionSettings
from reelsmith.models.generation_job import GenerationJobModel, JobStatus
from reelsmith.models.generation_settings import GenerationSettingsV1
from reelsmith.models.listing import ListingGenerationRequest
from reelsmith.models.video_batch import BatchStatus, VideoBatchModel
from reelsmith.models.webhooks import (
    BatchWebhookPayload,
    FalWebhookPayload,
    JobResult,
    JobWebhookPayload,
    WebhookError,
)
from reelsmith.services.asset_storage import AssetStorage
from reelsmith.services.completion_aggregator import AggregationResult, CompletionAggregator
from reelsmith.services.composition import CompositionEngine
from reelsmith.services.error_classifier import ErrorClassifier
from reelsmith.services.errors import (
    CompositionError,
    DeliveryError,
    ErrorType,
    InvalidRequestError,
    PipelineError,
)
from reelsmith.services.job_state import is_idempotency_boundary, is_terminal_batch_state
from reelsmith.services.media_processor import MediaProcessor
from reelsmith.services.observability import (
    log_composition_duration,
    log_failure_classification,
    log_job_transition,
    logger,
)
from reelsmith.services.webhook_delivery import WebhookDeliveryService


ACTIVE_JOB_STATUSES = [JobStatus.PENDING.value, JobStatus.PROCESSING.value]


class WebhookOutcome(str, Enum):
    """What a provider callback did to its job"""

    IGNORED_UNKNOWN = "ignored_unknown"
    IGNORED_TERMINAL = "ignored_terminal"
    IGNORED_IN_PROGRESS = "ignored_in_progress"
    FAILED = "failed"
    PROCESSING_FAILED = "processing_failed"
    COMPLETED = "completed"


class DispatchSummary(BaseModel):
    jobs_started: int
    failed_jobs: List[dict] = []


class CancelResult(BaseModel):
    canceled_videos: int
    canceled_jobs: int


def _timestamp() -> str:
    return datetime.utcnow().isoformat() + "Z"


def plan_batch(
    store,
    planner: FanoutPlanner,
    request: ListingGenerationRequest,
    callback_url: Optional[str] = None,
    composition_settings: Optional[CompositionSettings] = None,
    display_name: Optional[str] = None,
) -> Tuple[VideoBatchModel, List[GenerationJobModel]]:
    """
    Plan and persist a batch with one pending job per planned clip

    Needs only the store and planner, so the web process can call it
    without media tooling.

    Raises:
        InvalidRequestError: If the listing yields no rooms or has no primary image
    """
    specs = planner.plan(request)
    settings = composition_settings or CompositionSettings(orientation=request.orientation)
    if "orientation" not in settings.model_fields_set:
        # Composition follows the listing unless the caller picked a canvas
        settings = settings.model_copy(update={"orientation": request.orientation})

    batch = VideoBatchModel(
        id=VideoBatchModel.generate_id(),
        listing_id=request.listing_id,
        owner_id=request.owner_id,
        display_name=display_name,
        status=BatchStatus.PENDING.value,
        callback_url=callback_url,
        composition_settings=settings.model_dump(mode="json"),
        webhook_attempts=0,
    )
    batch, jobs = store.create_batch(batch, specs)

    logger.info(
        "generation_planned",
        batch_id=batch.id,
        listing_id=request.listing_id,
        job_count=len(jobs),
    )
    return batch, jobs


def cancel_listing(
    store,
    listing_id: str,
    reason: Optional[str] = None,
    batch_ids: Optional[List[str]] = None,
) -> CancelResult:
    """Cancel pending and processing work for a listing"""
    videos, jobs = store.cancel_listing(listing_id, reason or DEFAULT_CANCEL_REASON, batch_ids)
    logger.info(
        "generation_canceled",
        listing_id=listing_id,
        canceled_videos=videos,
        canceled_jobs=jobs,
    )
    return CancelResult(canceled_videos=videos, canceled_jobs=jobs)


def batch_status(store, batch_id: str) -> Optional[Tuple[VideoBatchModel, List[GenerationJobModel]]]:
    batch = store.get_batch(batch_id)
    if batch is None:
        return None
    return batch, store.list_batch_jobs(batch_id)


class VideoGenerationService:
    """
    Orchestrate the listing video pipeline

    Owns every job and batch row mutation. Collaborators are injected so
    worker and web processes build them once and tests can pass doubles.
    """

    def __init__(
        self,
        store,
        planner: FanoutPlanner,
        provider: FalRetryAdapter,
        media: MediaProcessor,
        storage: AssetStorage,
        composer: CompositionEngine,
        notifier: WebhookDeliveryService,
        webhook_secret: str = "",
        concurrency: int = 3,
        default_clip_duration_s: int = 5,
        classifier: Optional[ErrorClassifier] = None,
        token_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ):
        """Initialize generation service"""
        self.store = store
        self.planner = planner
        self.provider = provider
        self.media = media
        self.storage = storage
        self.composer = composer
        self.notifier = notifier
        self.webhook_secret = webhook_secret
        self.concurrency = max(1, concurrency)
        self.default_clip_duration_s = default_clip_duration_s
        self.classifier = classifier or ErrorClassifier()
        self._token_factory = token_factory
        self.aggregator = CompletionAggregator(store, on_batch_failed=self._notify_batch_failed)

    # Fan-out

    def plan_generation(
        self,
        request: ListingGenerationRequest,
        callback_url: Optional[str] = None,
        composition_settings: Optional[CompositionSettings] = None,
        display_name: Optional[str] = None,
    ) -> Tuple[VideoBatchModel, List[GenerationJobModel]]:
        """
        Plan and persist a batch with one pending job per planned clip

        Raises:
            InvalidRequestError: If the listing yields no rooms or has no primary image
        """
        return plan_batch(self.store, self.planner, request, callback_url, composition_settings, display_name)

    # Dispatch

    async def start_generation(self, batch_id: str, job_ids: Optional[List[str]] = None) -> DispatchSummary:
        """
        Dispatch a batch's pending jobs to the provider

        A failed dispatch fails only its own job. When every dispatch fails
        the batch is failed directly and its owner notified.

        Raises:
            InvalidRequestError: If the batch is unknown or job_ids names jobs of another batch
        """
        batch = self.store.get_batch(batch_id)
        if batch is None:
            raise InvalidRequestError(f"Video batch not found: {batch_id}")
        if is_terminal_batch_state(batch.status):
            raise InvalidRequestError(f"Video batch {batch_id} is already {batch.status}")

        jobs = self.store.list_batch_jobs(batch_id)
        if job_ids:
            foreign = sorted(set(job_ids) - {job.id for job in jobs})
            if foreign:
                raise InvalidRequestError(f"Jobs do not belong to batch {batch_id}: {', '.join(foreign)}")
            jobs = [job for job in jobs if job.id in set(job_ids)]

        pending = [job for job in jobs if job.status == JobStatus.PENDING.value]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _bounded(job: GenerationJobModel) -> Optional[str]:
            async with semaphore:
                return await self.dispatch_job(job)

        errors = await asyncio.gather(*[_bounded(job) for job in pending])
        failed_jobs = [
            {"job_id": job.id, "error": error}
            for job, error in zip(pending, errors)
            if error is not None
        ]
        started = len(pending) - len(failed_jobs)

        logger.info(
            "generation_dispatched",
            batch_id=batch_id,
            jobs_started=started,
            jobs_failed=len(failed_jobs),
        )

        if pending and started == 0:
            logger.error("all_dispatches_failed", batch_id=batch_id, job_count=len(pending))
            applied = self.store.compare_and_set_batch_status(
                batch_id,
                [BatchStatus.PENDING.value],
                BatchStatus.FAILED.value,
                error_message="All video jobs failed to dispatch",
            )
            if applied:
                await self.notify_batch(self.store.get_batch(batch_id), ErrorType.ALL_JOBS_FAILED)
        elif failed_jobs:
            await self.evaluate_batch(batch_id)

        return DispatchSummary(jobs_started=started, failed_jobs=failed_jobs)

    async def dispatch_job(self, job: GenerationJobModel) -> Optional[str]:
        """
        Submit one job to the provider

        Returns:
            None on success, else the error message recorded on the job
        """
        try:
            settings = job.settings
            if isinstance(settings, GenerationSettingsV1):
                duration = settings.duration_s
            else:
                if not settings.prompt or not settings.image_urls:
                    raise InvalidRequestError("Generation settings require a prompt and image URLs")
                duration = self.default_clip_duration_s

            request = ClipGenerationRequest(
                job_id=job.id,
                prompt=settings.prompt,
                image_urls=settings.image_urls,
                duration=duration,
                aspect_ratio=ORIENTATION_ASPECT_RATIOS[settings.orientation],
            )
            response = await self.provider.submit_with_retry(request)
        except ValidationError as e:
            error = InvalidRequestError(f"Invalid generation settings: {e.errors()[0].get('msg', str(e))}")
            self._fail_job(job.id, error.error_type, error.message, error.retryable, ACTIVE_JOB_STATUSES)
            return error.message
        except PipelineError as e:
            self._fail_job(job.id, e.error_type, e.message, e.retryable, ACTIVE_JOB_STATUSES)
            return e.message

        applied = self.store.compare_and_set_status(
            job.id,
            [JobStatus.PENDING.value],
            JobStatus.PROCESSING.value,
            request_id=response.request_id,
            processing_started_at=datetime.utcnow(),
        )
        log_job_transition(job.id, [JobStatus.PENDING.value], JobStatus.PROCESSING.value, applied)
        if not applied:
            # Canceled meanwhile, or a fast callback already moved the job on
            self.store.attach_request_id(job.id, response.request_id)
        return None

    # Provider webhooks

    async def handle_provider_webhook(
        self,
        payload: FalWebhookPayload,
        fallback_job_id: Optional[str] = None,
    ) -> WebhookOutcome:
        """
        Apply a provider callback to its job

        Never raises for job-level problems: failures are recorded on the
        job row so the provider is never asked to redeliver.
        """
        job = self.store.get_job_by_request_id(payload.request_id)
        if job is None and fallback_job_id:
            job = self.store.get_job(fallback_job_id)
            if job is not None:
                backfilled = self.store.attach_request_id(job.id, payload.request_id)
                logger.info(
                    "webhook_matched_by_job_id",
                    job_id=job.id,
                    request_id=payload.request_id,
                    backfilled=backfilled,
                )

        if job is None:
            logger.warning(
                "webhook_job_not_found",
                request_id=payload.request_id,
                fallback_job_id=fallback_job_id,
            )
            return WebhookOutcome.IGNORED_UNKNOWN

        if is_idempotency_boundary(job.status):
            logger.info("webhook_ignored_terminal_job", job_id=job.id, status=job.status)
            return WebhookOutcome.IGNORED_TERMINAL

        self.store.stamp_first_arrival(job.id, datetime.utcnow())

        if payload.is_error:
            return await self._handle_provider_failure(job, payload)
        return await self._handle_provider_success(job, payload)

    async def _handle_provider_failure(
        self,
        job: GenerationJobModel,
        payload: FalWebhookPayload,
    ) -> WebhookOutcome:
        message = payload.error_message
        applied = self._fail_job(job.id, ErrorType.PROVIDER_ERROR, message, False, ACTIVE_JOB_STATUSES)
        if not applied:
            return WebhookOutcome.IGNORED_TERMINAL

        await self.notify_job(
            job,
            JobStatus.FAILED.value,
            error=WebhookError(message=message, type=ErrorType.PROVIDER_ERROR.value, retryable=False),
        )
        await self.evaluate_batch(job.video_batch_id)
        return WebhookOutcome.FAILED

    async def _handle_provider_success(
        self,
        job: GenerationJobModel,
        payload: FalWebhookPayload,
    ) -> WebhookOutcome:
        token = self._token_factory()
        if not self.store.claim_for_processing(job.id, token, datetime.utcnow(), JOB_CLAIM_LEASE_S):
            logger.info("webhook_job_claimed_elsewhere", job_id=job.id, request_id=payload.request_id)
            return WebhookOutcome.IGNORED_IN_PROGRESS

        try:
            batch = self.store.get_batch(job.video_batch_id)
            settings = job.settings
            clip = await self.media.process_clip(
                payload.video_url,
                job.id,
                ORIENTATION_ASPECT_RATIOS.get(settings.orientation),
            )

            upload_metadata = {
                "job_id": job.id,
                "video_id": batch.id,
                "listing_id": batch.listing_id,
                "user_id": batch.owner_id,
                "generation_model": settings.model,
            }
            video_url, thumbnail_url = await asyncio.gather(
                self.storage.upload(
                    self.storage.job_video_key(batch.owner_id, batch.listing_id, batch.id, job.id),
                    clip.video,
                    "video/mp4",
                    upload_metadata,
                ),
                self.storage.upload(
                    self.storage.job_thumbnail_key(batch.owner_id, batch.listing_id, batch.id, job.id),
                    clip.thumbnail,
                    "image/jpeg",
                    upload_metadata,
                ),
            )

            metadata = {
                "duration": clip.probe.duration,
                "file_size": len(clip.video),
                "width": clip.probe.width,
                "height": clip.probe.height,
                "aspect_ratio": clip.probe.aspect_ratio,
                "orientation": settings.orientation or "vertical",
                "checksum_sha256": clip.checksum_sha256,
            }
            applied = self.store.append_result(job.id, token, video_url, thumbnail_url, metadata)
        except Exception as e:
            classification = self.classifier.classify(e)
            log_failure_classification(
                error_code=classification["code"],
                classification=classification["classification"],
                retryable=classification["retryable"],
                job_id=job.id,
            )
            message = classification["message"]
            applied = self._fail_job(
                job.id,
                ErrorType.PROCESSING_ERROR,
                message,
                True,
                ACTIVE_JOB_STATUSES + [JobStatus.FAILED.value],
                token=token,
            )
            if not applied:
                self.store.release_claim(job.id, token)
                logger.warning("job_failure_dropped", job_id=job.id)
                return WebhookOutcome.IGNORED_TERMINAL
            await self.notify_job(
                job,
                JobStatus.FAILED.value,
                error=WebhookError(
                    message=message,
                    code=classification["code"],
                    type=ErrorType.PROCESSING_ERROR.value,
                    retryable=True,
                ),
            )
            await self.evaluate_batch(job.video_batch_id)
            return WebhookOutcome.PROCESSING_FAILED

        log_job_transition(job.id, ["pending", "processing", "failed"], JobStatus.COMPLETED.value, applied)
        if not applied:
            self.store.release_claim(job.id, token)
            logger.warning("job_completion_dropped", job_id=job.id)
            return WebhookOutcome.IGNORED_TERMINAL

        await self.notify_job(
            job,
            JobStatus.COMPLETED.value,
            result=JobResult(
                video_url=video_url,
                thumbnail_url=thumbnail_url,
                duration=metadata["duration"],
                file_size=metadata["file_size"],
            ),
        )
        await self.evaluate_batch(job.video_batch_id)
        return WebhookOutcome.COMPLETED

    def _fail_job(
        self,
        job_id: str,
        error_type: ErrorType,
        message: str,
        retryable: bool,
        expected: List[str],
        token: Optional[str] = None,
    ) -> bool:
        if token is None:
            applied = self.store.compare_and_set_status(
                job_id,
                expected,
                JobStatus.FAILED.value,
                error_message=message,
                error_type=error_type.value,
                error_retryable=retryable,
            )
        else:
            applied = self.store.fail_claimed(job_id, token, error_type.value, message, retryable)
        log_job_transition(job_id, expected, JobStatus.FAILED.value, applied)
        if applied:
            log_failure_classification(
                error_code=error_type.value,
                classification="retryable" if retryable else "non_retryable",
                retryable=retryable,
                job_id=job_id,
            )
        return applied

    # Aggregation and composition

    async def evaluate_batch(self, batch_id: str) -> Optional[ComposedVideoResult]:
        """Run the aggregator and compose when the batch is ready"""
        aggregation = await self.aggregator.evaluate(batch_id)
        if not aggregation.ready:
            return None
        return await self.compose_batch(batch_id, aggregation)

    async def compose_batch(
        self,
        batch_id: str,
        aggregation: AggregationResult,
    ) -> Optional[ComposedVideoResult]:
        """
        Compose a ready batch at most once

        The pending -> processing batch transition is the gate; callers that
        lose it return without composing.
        """
        gate = self.store.compare_and_set_batch_status(
            batch_id,
            [BatchStatus.PENDING.value],
            BatchStatus.PROCESSING.value,
            composition_started_at=datetime.utcnow(),
        )
        if not gate:
            logger.info("composition_already_claimed", batch_id=batch_id)
            return None

        batch = self.store.get_batch(batch_id)
        request = CompositionRequest(
            clip_urls=[job.video_url for job in aggregation.completed_jobs],
            settings=CompositionSettings.model_validate(batch.composition_settings or {}),
            owner_id=batch.owner_id,
            listing_id=batch.listing_id,
            batch_id=batch.id,
            display_name=batch.display_name,
        )

        started = time.monotonic()
        try:
            result = await self.composer.compose(request)
        except CompositionError as e:
            self.store.compare_and_set_batch_status(
                batch_id,
                [BatchStatus.PROCESSING.value],
                BatchStatus.FAILED.value,
                error_message=e.message,
            )
            log_failure_classification(
                error_code=e.error_type.value,
                classification="retryable" if e.retryable else "non_retryable",
                retryable=e.retryable,
                batch_id=batch_id,
            )
            await self.notify_batch(self.store.get_batch(batch_id), ErrorType.COMPOSITION_FAILED)
            return None

        failed_note = None
        if aggregation.failed_count:
            failed_note = f"{aggregation.failed_count} clip(s) failed"

        applied = self.store.compare_and_set_batch_status(
            batch_id,
            [BatchStatus.PROCESSING.value],
            BatchStatus.COMPLETED.value,
            video_url=result.video_url,
            thumbnail_url=result.thumbnail_url,
            batch_metadata={"duration": result.duration, "file_size": result.file_size},
            error_message=failed_note,
        )
        if not applied:
            logger.warning("batch_completion_dropped", batch_id=batch_id)
            return None

        log_composition_duration(batch_id, time.monotonic() - started, len(request.clip_urls))
        await self.notify_batch(self.store.get_batch(batch_id))
        return result

    # Outbound notifications

    def _delivery_target(self, batch: Optional[VideoBatchModel]) -> Optional[str]:
        if batch is None or not batch.callback_url:
            logger.warning("webhook_skipped_no_callback", batch_id=batch.id if batch else None)
            return None
        if not self.webhook_secret:
            logger.warning("webhook_skipped_no_secret", batch_id=batch.id)
            return None
        return batch.callback_url

    async def notify_job(
        self,
        job: GenerationJobModel,
        status: str,
        result: Optional[JobResult] = None,
        error: Optional[WebhookError] = None,
    ) -> None:
        """Best-effort job-level notification; failures are only recorded"""
        batch = self.store.get_batch(job.video_batch_id)
        url = self._delivery_target(batch)
        if url is None:
            return

        payload = JobWebhookPayload(
            job_id=job.id,
            listing_id=batch.listing_id,
            batch_id=batch.id,
            status=status,
            timestamp=_timestamp(),
            result=result,
            error=error,
        )
        try:
            receipt = await self.notifier.send(
                url,
                self.webhook_secret,
                payload.to_body(),
                max_retries=JOB_WEBHOOK_MAX_RETRIES,
                backoff_ms=WEBHOOK_BACKOFF_MS,
            )
        except DeliveryError as e:
            self.store.record_job_delivery(job.id, e.attempts, e.message)
            return
        self.store.record_job_delivery(job.id, receipt.attempts)

    async def _notify_batch_failed(self, batch: VideoBatchModel) -> None:
        await self.notify_batch(batch, ErrorType.ALL_JOBS_FAILED)

    async def notify_batch(
        self,
        batch: Optional[VideoBatchModel],
        error_type: ErrorType = ErrorType.UNKNOWN,
    ) -> None:
        """Best-effort batch-final notification; failures are only recorded"""
        url = self._delivery_target(batch)
        if url is None:
            return

        result = None
        error = None
        if batch.status == BatchStatus.COMPLETED.value:
            metadata = batch.batch_metadata or {}
            result = JobResult(
                video_url=batch.video_url,
                thumbnail_url=batch.thumbnail_url,
                duration=metadata.get("duration"),
                file_size=metadata.get("file_size"),
            )
        else:
            error = WebhookError(
                message=batch.error_message or "Video generation failed",
                type=error_type.value,
                retryable=error_type.retryable,
            )

        payload = BatchWebhookPayload(
            listing_id=batch.listing_id,
            batch_id=batch.id,
            video_id=batch.id,
            status=batch.status,
            timestamp=_timestamp(),
            result=result,
            error=error,
        )
        try:
            receipt = await self.notifier.send(
                url,
                self.webhook_secret,
                payload.to_body(),
                max_retries=BATCH_WEBHOOK_MAX_RETRIES,
                backoff_ms=WEBHOOK_BACKOFF_MS,
            )
        except DeliveryError as e:
            self.store.record_batch_delivery(batch.id, e.attempts, e.message)
            return
        self.store.record_batch_delivery(batch.id, receipt.attempts)

    # Cancellation and status

    def cancel(
        self,
        listing_id: str,
        reason: Optional[str] = None,
        batch_ids: Optional[List[str]] = None,
    ) -> CancelResult:
        return cancel_listing(self.store, listing_id, reason, batch_ids)

    def get_status(self, batch_id: str) -> Optional[Tuple[VideoBatchModel, List[GenerationJobModel]]]:
        return batch_status(self.store, batch_id)

    async def close(self):
        """Close network clients"""
        await self.provider.close()
        await self.notifier.close()
        await self.media.downloader.close()
