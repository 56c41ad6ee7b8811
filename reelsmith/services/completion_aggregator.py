"""
Completion Aggregator - decide whether a batch is ready for composition
"""

from typing import Awaitable, Callable, List, Optional

from pydantic import BaseModel, ConfigDict

from reelsmith.models.generation_job import GenerationJobModel, JobStatus
from reelsmith.models.video_batch import BatchStatus, VideoBatchModel
from reelsmith.services.job_state import batch_sources_for, is_terminal_state
from reelsmith.services.observability import logger


BatchFailedCallback = Callable[[VideoBatchModel], Awaitable[None]]


class AggregationResult(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    ready: bool
    completed_jobs: List[GenerationJobModel] = []
    failed_count: int = 0
    total_count: int = 0


class CompletionAggregator:
    """
    Re-reads a batch's jobs after every job transition

    Safe to run redundantly: the only side effect (failing the batch when
    every job failed) is a compare-and-set, so the failure notification is
    sent by whichever caller wins it.
    """

    def __init__(self, store, on_batch_failed: Optional[BatchFailedCallback] = None):
        self.store = store
        self.on_batch_failed = on_batch_failed

    async def evaluate(self, batch_id: str) -> AggregationResult:
        jobs = self.store.list_batch_jobs(batch_id)
        total = len(jobs)
        failed = [job for job in jobs if job.status == JobStatus.FAILED.value]
        all_done = total > 0 and all(is_terminal_state(job.status) for job in jobs)
        all_failed = total > 0 and len(failed) == total
        completed = sorted(
            (job for job in jobs if job.status == JobStatus.COMPLETED.value and job.video_url),
            key=lambda job: job.sort_order,
        )

        if all_failed:
            await self._fail_batch(batch_id, failed)
            return AggregationResult(ready=False, failed_count=len(failed), total_count=total)

        if not all_done or not completed:
            logger.info(
                "batch_not_ready",
                batch_id=batch_id,
                completed=len(completed),
                failed=len(failed),
                total=total,
            )
            return AggregationResult(
                ready=False,
                completed_jobs=completed,
                failed_count=len(failed),
                total_count=total,
            )

        logger.info("batch_ready", batch_id=batch_id, completed=len(completed), failed=len(failed))
        return AggregationResult(
            ready=True,
            completed_jobs=completed,
            failed_count=len(failed),
            total_count=total,
        )

    async def _fail_batch(self, batch_id: str, failed: List[GenerationJobModel]) -> None:
        culprit = max(failed, key=lambda job: (job.updated_at is not None, job.updated_at, job.sort_order))
        message = (
            f"All {len(failed)} video jobs failed; job {culprit.id} failed with: "
            f"{culprit.error_message or 'unknown error'}"
        )
        applied = self.store.compare_and_set_batch_status(
            batch_id,
            batch_sources_for(BatchStatus.FAILED),
            BatchStatus.FAILED.value,
            error_message=message,
        )
        if not applied:
            logger.info("batch_failure_already_recorded", batch_id=batch_id)
            return

        logger.error("batch_failed", batch_id=batch_id, job_id=culprit.id, error=message)
        if self.on_batch_failed is not None:
            batch = self.store.get_batch(batch_id)
            if batch is not None:
                await self.on_batch_failed(batch)
