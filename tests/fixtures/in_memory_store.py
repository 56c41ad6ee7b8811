"""
In-memory job store with the same method set as SqlJobStore

Reads return detached copies so callers see snapshots, as with SQL rows.
"""

import threading
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from reelsmith.models.generation_job import GenerationJobModel, JobStatus
from reelsmith.models.listing import JobSpec
from reelsmith.models.video_batch import BatchStatus, VideoBatchModel
from reelsmith.services.job_state import IDEMPOTENT_STATUSES, sources_for


def _copy(row):
    model = type(row)
    return model(**{column.name: getattr(row, column.name) for column in model.__table__.columns})


class InMemoryJobStore:
    def __init__(self):
        self.batches: Dict[str, VideoBatchModel] = {}
        self.jobs: Dict[str, GenerationJobModel] = {}
        self._lock = threading.Lock()

    # Creation

    def create_batch(
        self,
        batch: VideoBatchModel,
        specs: List[JobSpec],
    ) -> Tuple[VideoBatchModel, List[GenerationJobModel]]:
        now = datetime.utcnow()
        if batch.id is None:
            batch.id = VideoBatchModel.generate_id()
        batch.status = batch.status or BatchStatus.PENDING.value
        batch.webhook_attempts = batch.webhook_attempts or 0
        batch.created_at = batch.updated_at = now
        jobs = [
            GenerationJobModel(
                id=GenerationJobModel.generate_id(),
                video_batch_id=batch.id,
                status=JobStatus.PENDING.value,
                generation_settings=spec.settings.model_dump(mode="json"),
                sort_order=spec.sort_order,
                error_retryable=False,
                webhook_attempts=0,
                created_at=now,
                updated_at=now,
            )
            for spec in specs
        ]
        with self._lock:
            self.batches[batch.id] = _copy(batch)
            for job in jobs:
                self.jobs[job.id] = _copy(job)
        return batch, jobs

    def add_job(self, job: GenerationJobModel) -> GenerationJobModel:
        """Insert a raw job row, e.g. one carrying legacy settings"""
        now = datetime.utcnow()
        job.created_at = job.created_at or now
        job.updated_at = job.updated_at or now
        job.webhook_attempts = job.webhook_attempts or 0
        self.jobs[job.id] = _copy(job)
        return job

    # Reads

    def get_batch(self, batch_id: str) -> Optional[VideoBatchModel]:
        batch = self.batches.get(batch_id)
        return _copy(batch) if batch else None

    def get_job(self, job_id: str) -> Optional[GenerationJobModel]:
        job = self.jobs.get(job_id)
        return _copy(job) if job else None

    def get_job_by_request_id(self, request_id: str) -> Optional[GenerationJobModel]:
        for job in self.jobs.values():
            if job.request_id == request_id:
                return _copy(job)
        return None

    def list_batch_jobs(self, batch_id: str) -> List[GenerationJobModel]:
        jobs = [job for job in self.jobs.values() if job.video_batch_id == batch_id]
        return [_copy(job) for job in sorted(jobs, key=lambda job: job.sort_order)]

    # Job writes

    def _update_job(self, job_id: str, predicate, **values) -> bool:
        with self._lock:
            job = self.jobs.get(job_id)
            if job is None or not predicate(job):
                return False
            values.setdefault("updated_at", datetime.utcnow())
            for key, value in values.items():
                setattr(job, key, value)
            return True

    def compare_and_set_status(
        self,
        job_id: str,
        expected: Iterable[str],
        new_status: str,
        **fields: Any,
    ) -> bool:
        expected = list(expected)
        return self._update_job(job_id, lambda job: job.status in expected, status=new_status, **fields)

    def attach_request_id(self, job_id: str, request_id: str) -> bool:
        return self._update_job(job_id, lambda job: job.request_id is None, request_id=request_id)

    def stamp_first_arrival(self, job_id: str, at: datetime) -> bool:
        return self._update_job(
            job_id,
            lambda job: job.processing_completed_at is None,
            processing_completed_at=at,
        )

    def claim_for_processing(self, job_id: str, token: str, now: datetime, lease_s: int) -> bool:
        def _claimable(job):
            if job.status in IDEMPOTENT_STATUSES:
                return False
            return job.claim_token is None or job.claimed_at < now - timedelta(seconds=lease_s)

        return self._update_job(job_id, _claimable, claim_token=token, claimed_at=now)

    def release_claim(self, job_id: str, token: str) -> bool:
        return self._update_job(
            job_id,
            lambda job: job.claim_token == token,
            claim_token=None,
            claimed_at=None,
        )

    def append_result(
        self,
        job_id: str,
        token: str,
        video_url: str,
        thumbnail_url: str,
        metadata: Dict[str, Any],
    ) -> bool:
        sources = sources_for(JobStatus.COMPLETED)
        return self._update_job(
            job_id,
            lambda job: job.claim_token == token and job.status in sources,
            status=JobStatus.COMPLETED.value,
            video_url=video_url,
            thumbnail_url=thumbnail_url,
            clip_metadata=metadata,
            error_message=None,
            error_type=None,
            error_retryable=False,
            claim_token=None,
            claimed_at=None,
        )

    def fail_claimed(
        self,
        job_id: str,
        token: str,
        error_type: str,
        message: str,
        retryable: bool,
    ) -> bool:
        sources = sources_for(JobStatus.FAILED) + [JobStatus.FAILED.value]
        return self._update_job(
            job_id,
            lambda job: job.claim_token == token and job.status in sources,
            status=JobStatus.FAILED.value,
            error_message=message,
            error_type=error_type,
            error_retryable=retryable,
            claim_token=None,
            claimed_at=None,
        )

    def record_job_delivery(self, job_id: str, attempts: int, error: Optional[str] = None) -> None:
        values: Dict[str, Any] = {"webhook_attempts": attempts, "webhook_last_error": error}
        if error is None:
            values["webhook_delivered_at"] = datetime.utcnow()
        self._update_job(job_id, lambda job: True, **values)

    # Batch writes

    def _update_batch(self, batch_id: str, predicate, **values) -> bool:
        with self._lock:
            batch = self.batches.get(batch_id)
            if batch is None or not predicate(batch):
                return False
            values.setdefault("updated_at", datetime.utcnow())
            for key, value in values.items():
                setattr(batch, key, value)
            return True

    def compare_and_set_batch_status(
        self,
        batch_id: str,
        expected: Iterable[str],
        new_status: str,
        **fields: Any,
    ) -> bool:
        expected = list(expected)
        return self._update_batch(batch_id, lambda batch: batch.status in expected, status=new_status, **fields)

    def record_batch_delivery(self, batch_id: str, attempts: int, error: Optional[str] = None) -> None:
        values: Dict[str, Any] = {"webhook_attempts": attempts, "webhook_last_error": error}
        if error is None:
            values["webhook_delivered_at"] = datetime.utcnow()
        self._update_batch(batch_id, lambda batch: True, **values)

    # Cancellation

    def cancel_listing(
        self,
        listing_id: str,
        reason: str,
        batch_ids: Optional[List[str]] = None,
    ) -> Tuple[int, int]:
        active = (JobStatus.PENDING.value, JobStatus.PROCESSING.value)
        now = datetime.utcnow()
        canceled_batches = 0
        canceled_jobs = 0
        with self._lock:
            scoped = [
                batch
                for batch in self.batches.values()
                if batch.listing_id == listing_id and (not batch_ids or batch.id in batch_ids)
            ]
            scoped_ids = {batch.id for batch in scoped}
            for batch in scoped:
                if batch.status in (BatchStatus.PENDING.value, BatchStatus.PROCESSING.value):
                    batch.status = BatchStatus.CANCELED.value
                    batch.error_message = reason
                    batch.updated_at = now
                    canceled_batches += 1
            for job in self.jobs.values():
                if job.video_batch_id in scoped_ids and job.status in active:
                    job.status = JobStatus.CANCELED.value
                    job.error_message = reason
                    job.updated_at = now
                    canceled_jobs += 1
        return canceled_batches, canceled_jobs
