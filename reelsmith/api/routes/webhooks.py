"""
Webhook API Routes - inbound provider callbacks
"""

import json
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError

from reelsmith.api.dependencies import get_dispatcher, get_verifier
from reelsmith.models.webhooks import FalWebhookPayload
from reelsmith.services.errors import AuthenticationError
from reelsmith.services.fal_webhook_verifier import FalWebhookVerifier, missing_headers
from reelsmith.services.observability import logger
from reelsmith.workers.queue import TaskDispatcher


class WebhookAck(BaseModel):
    """Acknowledgement returned to the provider"""

    accepted: bool
    task_id: Optional[str] = None
    message: Optional[str] = None


router = APIRouter()


@router.post("/webhooks/fal", response_model=WebhookAck)
async def receive_fal_webhook(
    request: Request,
    job_id: Optional[str] = Query(default=None),
    verifier: FalWebhookVerifier = Depends(get_verifier),
    dispatcher: TaskDispatcher = Depends(get_dispatcher),
):
    """
    Receive a provider completion callback

    Responds 400 on missing signature headers and 401 on a bad signature.
    Any structurally valid request gets 200, even when processing fails
    later, so the provider does not redeliver.
    """
    body = await request.body()

    if verifier.enabled:
        missing = missing_headers(request.headers)
        if missing:
            logger.warning("fal_webhook_missing_headers", missing=missing, job_id=job_id)
            return JSONResponse(
                status_code=status.HTTP_400_BAD_REQUEST,
                content={
                    "error": {
                        "code": "MISSING_HEADERS",
                        "message": f"Missing webhook headers: {', '.join(missing)}",
                    }
                },
            )

        try:
            await verifier.verify(request.headers, body)
        except AuthenticationError as e:
            logger.warning("fal_webhook_rejected", job_id=job_id, error=e.message)
            return JSONResponse(
                status_code=status.HTTP_401_UNAUTHORIZED,
                content={"error": {"code": e.error_type.value, "message": e.message}},
            )

    try:
        payload = FalWebhookPayload.model_validate(json.loads(body or b"{}"))
    except (ValueError, ValidationError) as e:
        logger.warning("fal_webhook_unparseable", job_id=job_id, error=str(e))
        return WebhookAck(accepted=False, message="Unparseable webhook body")

    try:
        task_id = dispatcher.enqueue_provider_webhook(payload.model_dump(mode="json"), job_id)
    except Exception as e:
        logger.error(
            "fal_webhook_enqueue_failed",
            request_id=payload.request_id,
            job_id=job_id,
            error=str(e),
        )
        return WebhookAck(accepted=False, message="Webhook received but could not be queued")

    logger.info(
        "fal_webhook_queued",
        request_id=payload.request_id,
        job_id=job_id,
        status=payload.status,
        task_id=task_id,
    )
    return WebhookAck(accepted=True, task_id=task_id)
