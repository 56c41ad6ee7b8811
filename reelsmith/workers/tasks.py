"""
RQ task definitions for provider callbacks and batch dispatch.
"""

import asyncio
from typing import Any, Dict, Optional

from reelsmith.config.settings import settings
from reelsmith.models import SessionLocal
from reelsmith.models.webhooks import FalWebhookPayload
from reelsmith.services.container import build_generation_service
from reelsmith.services.observability import logger


def run_provider_webhook(payload: Dict[str, Any], fallback_job_id: Optional[str] = None) -> str:
    parsed = FalWebhookPayload.model_validate(payload)
    logger.info(
        "webhook_worker_start",
        request_id=parsed.request_id,
        fallback_job_id=fallback_job_id,
        status=parsed.status,
    )
    service = build_generation_service(settings, SessionLocal)

    async def _run():
        try:
            return await service.handle_provider_webhook(parsed, fallback_job_id)
        finally:
            await service.close()

    try:
        outcome = asyncio.run(_run())
    except Exception as exc:
        logger.error("webhook_worker_failed", request_id=parsed.request_id, error=str(exc))
        raise
    logger.info("webhook_worker_done", request_id=parsed.request_id, outcome=outcome.value)
    return outcome.value


def run_start_generation(batch_id: str) -> Dict[str, Any]:
    logger.info("generation_worker_start", batch_id=batch_id)
    service = build_generation_service(settings, SessionLocal)

    async def _run():
        try:
            return await service.start_generation(batch_id)
        finally:
            await service.close()

    try:
        summary = asyncio.run(_run())
    except Exception as exc:
        logger.error("generation_worker_failed", batch_id=batch_id, error=str(exc))
        raise
    return summary.model_dump()
