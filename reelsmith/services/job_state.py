"""
Job State Management Service

Status writes are compare-and-set: a write names the statuses it may
replace and is dropped when the row has moved on. This makes terminal
states one-way latches under concurrent webhook delivery.
"""

from typing import Any, List

from reelsmith.models.generation_job import JobStatus
from reelsmith.models.video_batch import BatchStatus


class JobStateError(Exception):
    """Exception raised for invalid state transitions"""

    pass


# Valid state transitions
VALID_TRANSITIONS = {
    # A callback can land before dispatch records the request id
    "pending": ["processing", "completed", "failed", "canceled"],
    "processing": ["completed", "failed", "canceled"],
    # A redelivered success may revisit a post-processing failure
    "failed": ["completed"],
    "completed": [],
    "canceled": [],
}

BATCH_TRANSITIONS = {
    # pending -> processing is the composition gate
    "pending": ["processing", "failed", "canceled"],
    "processing": ["completed", "failed", "canceled"],
    "completed": [],
    "failed": [],
    "canceled": [],
}

# Statuses that absorb duplicate callbacks without side effects
IDEMPOTENT_STATUSES = (JobStatus.COMPLETED.value, JobStatus.CANCELED.value)


def _value(status: Any) -> str:
    return status.value if hasattr(status, "value") else status


def sources_for(new_status: Any, transitions: dict = None) -> List[str]:
    """
    Statuses a row may hold for a write to new_status to apply

    Raises:
        JobStateError: If nothing can transition to new_status
    """
    target = _value(new_status)
    table = transitions or VALID_TRANSITIONS
    sources = [state for state, targets in table.items() if target in targets]
    if not sources:
        raise JobStateError(f"No state can transition to {target}")
    return sources


def batch_sources_for(new_status: Any) -> List[str]:
    return sources_for(new_status, BATCH_TRANSITIONS)


def can_transition(current: Any, new_status: Any) -> bool:
    return _value(new_status) in VALID_TRANSITIONS.get(_value(current), [])


def is_idempotency_boundary(status: Any) -> bool:
    """
    Check whether callbacks for a job in this status must be dropped

    Args:
        status: Job status

    Returns:
        True if status is completed or canceled
    """
    return _value(status) in IDEMPOTENT_STATUSES


def is_terminal_state(status: Any) -> bool:
    """
    Check if state is a terminal state for aggregation

    Args:
        status: Job status

    Returns:
        True if status is completed or failed
    """
    return _value(status) in (JobStatus.COMPLETED.value, JobStatus.FAILED.value)


def is_terminal_batch_state(status: Any) -> bool:
    return _value(status) in (
        BatchStatus.COMPLETED.value,
        BatchStatus.FAILED.value,
        BatchStatus.CANCELED.value,
    )
