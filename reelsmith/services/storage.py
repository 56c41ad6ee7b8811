"""
Storage Service - Database operations for video batches and generation jobs
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import or_, select, update
from sqlalchemy.orm import sessionmaker

from reelsmith.models.generation_job import GenerationJobModel, JobStatus
from reelsmith.models.listing import JobSpec
from reelsmith.models.video_batch import BatchStatus, VideoBatchModel
from reelsmith.services.job_state import IDEMPOTENT_STATUSES, sources_for


class SqlJobStore:
    """
    Job state store backed by SQLAlchemy

    Every status write is a single conditional UPDATE whose row count
    decides whether the caller won the transition.
    """

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # Creation

    def create_batch(
        self,
        batch: VideoBatchModel,
        specs: List[JobSpec],
    ) -> Tuple[VideoBatchModel, List[GenerationJobModel]]:
        """Persist a batch and its planned jobs in one transaction"""
        if batch.id is None:
            batch.id = VideoBatchModel.generate_id()
        jobs = [
            GenerationJobModel(
                id=GenerationJobModel.generate_id(),
                video_batch_id=batch.id,
                status=JobStatus.PENDING.value,
                generation_settings=spec.settings.model_dump(mode="json"),
                sort_order=spec.sort_order,
                error_retryable=False,
                webhook_attempts=0,
            )
            for spec in specs
        ]
        with self._session_factory() as db:
            db.add(batch)
            db.add_all(jobs)
            db.commit()
            db.refresh(batch)
            for job in jobs:
                db.refresh(job)
        return batch, jobs

    # Reads

    def get_batch(self, batch_id: str) -> Optional[VideoBatchModel]:
        with self._session_factory() as db:
            return db.get(VideoBatchModel, batch_id)

    def get_job(self, job_id: str) -> Optional[GenerationJobModel]:
        with self._session_factory() as db:
            return db.get(GenerationJobModel, job_id)

    def get_job_by_request_id(self, request_id: str) -> Optional[GenerationJobModel]:
        with self._session_factory() as db:
            return db.execute(
                select(GenerationJobModel).where(GenerationJobModel.request_id == request_id)
            ).scalar_one_or_none()

    def list_batch_jobs(self, batch_id: str) -> List[GenerationJobModel]:
        with self._session_factory() as db:
            return list(
                db.execute(
                    select(GenerationJobModel)
                    .where(GenerationJobModel.video_batch_id == batch_id)
                    .order_by(GenerationJobModel.sort_order)
                ).scalars()
            )

    # Job writes

    def _update_job(self, *criteria, **values) -> bool:
        values.setdefault("updated_at", datetime.utcnow())
        with self._session_factory() as db:
            result = db.execute(
                update(GenerationJobModel)
                .where(*criteria)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    def compare_and_set_status(
        self,
        job_id: str,
        expected: Iterable[str],
        new_status: str,
        **fields: Any,
    ) -> bool:
        """Move a job to new_status only if it currently holds one of expected"""
        return self._update_job(
            GenerationJobModel.id == job_id,
            GenerationJobModel.status.in_(list(expected)),
            status=new_status,
            **fields,
        )

    def attach_request_id(self, job_id: str, request_id: str) -> bool:
        """Backfill the provider request id if none is recorded yet"""
        return self._update_job(
            GenerationJobModel.id == job_id,
            GenerationJobModel.request_id.is_(None),
            request_id=request_id,
        )

    def stamp_first_arrival(self, job_id: str, at: datetime) -> bool:
        """Set processing_completed_at once, on the first callback"""
        return self._update_job(
            GenerationJobModel.id == job_id,
            GenerationJobModel.processing_completed_at.is_(None),
            processing_completed_at=at,
        )

    def claim_for_processing(self, job_id: str, token: str, now: datetime, lease_s: int) -> bool:
        """
        Take the post-processing lease on a job

        Fails when the job is completed or canceled, or another worker holds
        an unexpired lease.
        """
        return self._update_job(
            GenerationJobModel.id == job_id,
            GenerationJobModel.status.notin_(IDEMPOTENT_STATUSES),
            or_(
                GenerationJobModel.claim_token.is_(None),
                GenerationJobModel.claimed_at < now - timedelta(seconds=lease_s),
            ),
            claim_token=token,
            claimed_at=now,
        )

    def release_claim(self, job_id: str, token: str) -> bool:
        return self._update_job(
            GenerationJobModel.id == job_id,
            GenerationJobModel.claim_token == token,
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
        """Complete a job under the caller's lease"""
        return self._update_job(
            GenerationJobModel.id == job_id,
            GenerationJobModel.claim_token == token,
            GenerationJobModel.status.in_(sources_for(JobStatus.COMPLETED)),
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
        """Fail a job under the caller's lease, releasing the claim"""
        return self._update_job(
            GenerationJobModel.id == job_id,
            GenerationJobModel.claim_token == token,
            GenerationJobModel.status.in_(sources_for(JobStatus.FAILED) + [JobStatus.FAILED.value]),
            status=JobStatus.FAILED.value,
            error_message=message,
            error_type=error_type,
            error_retryable=retryable,
            claim_token=None,
            claimed_at=None,
        )

    def record_job_delivery(
        self,
        job_id: str,
        attempts: int,
        error: Optional[str] = None,
    ) -> None:
        values: Dict[str, Any] = {"webhook_attempts": attempts, "webhook_last_error": error}
        if error is None:
            values["webhook_delivered_at"] = datetime.utcnow()
        self._update_job(GenerationJobModel.id == job_id, **values)

    # Batch writes

    def _update_batch(self, *criteria, **values) -> bool:
        values.setdefault("updated_at", datetime.utcnow())
        with self._session_factory() as db:
            result = db.execute(
                update(VideoBatchModel)
                .where(*criteria)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    def compare_and_set_batch_status(
        self,
        batch_id: str,
        expected: Iterable[str],
        new_status: str,
        **fields: Any,
    ) -> bool:
        return self._update_batch(
            VideoBatchModel.id == batch_id,
            VideoBatchModel.status.in_(list(expected)),
            status=new_status,
            **fields,
        )

    def record_batch_delivery(
        self,
        batch_id: str,
        attempts: int,
        error: Optional[str] = None,
    ) -> None:
        values: Dict[str, Any] = {"webhook_attempts": attempts, "webhook_last_error": error}
        if error is None:
            values["webhook_delivered_at"] = datetime.utcnow()
        self._update_batch(VideoBatchModel.id == batch_id, **values)

    # Cancellation

    def cancel_listing(
        self,
        listing_id: str,
        reason: str,
        batch_ids: Optional[List[str]] = None,
    ) -> Tuple[int, int]:
        """
        Cancel pending and processing batches and jobs of a listing

        Returns:
            (canceled batch count, canceled job count)
        """
        active = [JobStatus.PENDING.value, JobStatus.PROCESSING.value]
        now = datetime.utcnow()
        with self._session_factory() as db:
            batch_query = select(VideoBatchModel.id).where(VideoBatchModel.listing_id == listing_id)
            if batch_ids:
                batch_query = batch_query.where(VideoBatchModel.id.in_(batch_ids))
            scoped_ids = list(db.execute(batch_query).scalars())
            if not scoped_ids:
                return 0, 0

            batches = db.execute(
                update(VideoBatchModel)
                .where(
                    VideoBatchModel.id.in_(scoped_ids),
                    VideoBatchModel.status.in_([BatchStatus.PENDING.value, BatchStatus.PROCESSING.value]),
                )
                .values(status=BatchStatus.CANCELED.value, error_message=reason, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            jobs = db.execute(
                update(GenerationJobModel)
                .where(
                    GenerationJobModel.video_batch_id.in_(scoped_ids),
                    GenerationJobModel.status.in_(active),
                )
                .values(status=JobStatus.CANCELED.value, error_message=reason, updated_at=now)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return batches.rowcount, jobs.rowcount
