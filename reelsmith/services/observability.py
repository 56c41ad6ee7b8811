"""
Observability and Logging Service
"""

import logging
import structlog
from typing import Optional

from reelsmith.config.settings import settings


logging.basicConfig(format="%(message)s", level=getattr(logging, settings.log_level, logging.INFO))

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

# Get logger
logger = structlog.get_logger("reelsmith")


def log_failure_classification(
    error_code: str,
    classification: str,
    retryable: bool,
    job_id: Optional[str] = None,
    batch_id: Optional[str] = None,
) -> None:
    """
    Log failure classification event

    Args:
        error_code: Error code (e.g., "PROVIDER_ERROR", "PROCESSING_ERROR")
        classification: Error classification ("retryable" or "non_retryable")
        retryable: Whether error is retryable
        job_id: Optional job ID for context
        batch_id: Optional batch ID for context
    """
    log_data = {
        "error_code": error_code,
        "classification": classification,
        "retryable": retryable,
    }
    if job_id:
        log_data["job_id"] = job_id
    if batch_id:
        log_data["batch_id"] = batch_id

    logger.error("failure_classified", **log_data)


def log_job_transition(
    job_id: str,
    from_statuses: list,
    to_status: str,
    applied: bool,
) -> None:
    """
    Log a compare-and-set status write on a job row

    Args:
        job_id: Job ID
        from_statuses: Statuses the write was conditioned on
        to_status: Target status
        applied: Whether the row matched and was updated
    """
    logger.info(
        "job_transition" if applied else "job_transition_skipped",
        job_id=job_id,
        from_statuses=from_statuses,
        to_status=to_status,
    )


def log_webhook_delivery(
    url: str,
    event_status: str,
    attempts: int,
    delivered: bool,
    error: Optional[str] = None,
) -> None:
    """Log the outcome of an outbound webhook delivery"""
    log_data = {
        "url": url,
        "event_status": event_status,
        "attempts": attempts,
    }
    if error:
        log_data["error"] = error

    if delivered:
        logger.info("webhook_delivered", **log_data)
    else:
        logger.error("webhook_delivery_failed", **log_data)


def log_composition_duration(
    batch_id: str,
    duration_s: float,
    clip_count: int,
) -> None:
    """
    Log final video composition duration

    Args:
        batch_id: Batch ID
        duration_s: Wall-clock seconds spent composing
        clip_count: Number of clips merged
    """
    logger.info(
        "composition_completed",
        batch_id=batch_id,
        duration_s=duration_s,
        clip_count=clip_count,
        avg_duration_per_clip=duration_s / clip_count if clip_count > 0 else 0,
    )
