"""
Webhook Delivery - HMAC-signed outbound notifications with retry and backoff
"""

import asyncio
import hashlib
import hmac
import json
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from pydantic import BaseModel

from reelsmith.config.constants import WEBHOOK_BACKOFF_MS, WEBHOOK_USER_AGENT
from reelsmith.services.errors import DeliveryError
from reelsmith.services.observability import log_webhook_delivery, logger


SIGNATURE_HEADER = "X-Webhook-Signature"
TIMESTAMP_HEADER = "X-Webhook-Timestamp"
ATTEMPT_HEADER = "X-Webhook-Delivery-Attempt"


class DeliveryReceipt(BaseModel):
    attempts: int
    status_code: int


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    """Serialize once so the signature covers the exact bytes sent"""
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8")


def sign_payload(body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    """Receiver-side check, constant time"""
    if not signature or not secret:
        return False
    return hmac.compare_digest(sign_payload(body, secret), signature)


def is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class WebhookDeliveryService:
    """
    Sends signed JSON payloads to the calling application

    4xx other than 429 fails immediately; 429, 5xx and transport errors are
    retried with exponential backoff.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 900.0,
        max_backoff_ms: int = 300_000,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self.client = client or httpx.AsyncClient(timeout=timeout_s)
        self.max_backoff_ms = max_backoff_ms
        self._sleep = sleep or asyncio.sleep

    def backoff_ms(self, attempt: int, base_ms: int) -> int:
        """Delay after a failed attempt (1-based)"""
        return min(base_ms * (2 ** (attempt - 1)), self.max_backoff_ms)

    async def send(
        self,
        url: str,
        secret: str,
        payload: Dict[str, Any],
        max_retries: int = 5,
        backoff_ms: int = WEBHOOK_BACKOFF_MS,
    ) -> DeliveryReceipt:
        """
        Deliver a payload, retrying transient failures

        Args:
            url: Receiver endpoint
            secret: Shared HMAC secret
            payload: JSON-serializable body; its "timestamp" is echoed in a header
            max_retries: Maximum number of attempts
            backoff_ms: Base delay for exponential backoff

        Returns:
            DeliveryReceipt with the number of attempts used

        Raises:
            DeliveryError: On a non-retryable response or once attempts are exhausted
        """
        body = serialize_payload(payload)
        signature = sign_payload(body, secret)
        timestamp = str(payload.get("timestamp", ""))
        event_status = str(payload.get("status", ""))
        last_error = "no attempts made"
        last_status: Optional[int] = None

        for attempt in range(1, max_retries + 1):
            headers = {
                "Content-Type": "application/json",
                "User-Agent": WEBHOOK_USER_AGENT,
                SIGNATURE_HEADER: signature,
                TIMESTAMP_HEADER: timestamp,
                ATTEMPT_HEADER: str(attempt),
            }
            try:
                response = await self.client.post(url, content=body, headers=headers)
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
                last_status = None
                logger.warning("webhook_attempt_failed", url=url, attempt=attempt, error=last_error)
            else:
                if 200 <= response.status_code < 300:
                    log_webhook_delivery(url, event_status, attempt, delivered=True)
                    return DeliveryReceipt(attempts=attempt, status_code=response.status_code)

                last_status = response.status_code
                last_error = f"HTTP {response.status_code}: {response.text[:500]}"
                logger.warning(
                    "webhook_attempt_failed",
                    url=url,
                    attempt=attempt,
                    status_code=response.status_code,
                )

                if not is_retryable_status(response.status_code):
                    log_webhook_delivery(url, event_status, attempt, delivered=False, error=last_error)
                    raise DeliveryError(
                        f"Webhook rejected: {last_error}",
                        retryable=False,
                        attempts=attempt,
                        status_code=response.status_code,
                    )

            if attempt < max_retries:
                await self._sleep(self.backoff_ms(attempt, backoff_ms) / 1000)

        log_webhook_delivery(url, event_status, max_retries, delivered=False, error=last_error)
        raise DeliveryError(
            f"Webhook delivery failed after {max_retries} attempts: {last_error}",
            retryable=True,
            attempts=max_retries,
            status_code=last_status,
        )

    async def close(self):
        await self.client.aclose()
