"""
RQ queue helpers.
"""

from typing import Any, Dict, Optional

import redis
from rq import Queue

from reelsmith.config.settings import settings


def get_redis_connection() -> redis.Redis:
    return redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    return Queue(name or settings.rq_queue_name, connection=get_redis_connection())


class TaskDispatcher:
    """Enqueue pipeline work onto RQ; the web process never runs it inline"""

    def __init__(self, queue: Optional[Queue] = None):
        self._queue = queue

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = get_queue()
        return self._queue

    def enqueue_provider_webhook(self, payload: Dict[str, Any], fallback_job_id: Optional[str] = None) -> str:
        job = self.queue.enqueue(
            "reelsmith.workers.tasks.run_provider_webhook",
            payload,
            fallback_job_id,
            job_timeout=settings.task_timeout_s,
        )
        return job.id

    def enqueue_generation(self, batch_id: str) -> str:
        job = self.queue.enqueue(
            "reelsmith.workers.tasks.run_start_generation",
            batch_id,
            job_timeout=settings.task_timeout_s,
        )
        return job.id
