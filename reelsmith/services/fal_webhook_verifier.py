"""
fal Webhook Verifier - ED25519 signature check for inbound provider callbacks
"""

import base64
import hashlib
import time
from typing import Callable, List, Mapping, Optional

import httpx
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from reelsmith.config.constants import FAL_JWKS_CACHE_TTL_S, FAL_WEBHOOK_TIMESTAMP_TOLERANCE_S
from reelsmith.services.errors import AuthenticationError
from reelsmith.services.observability import logger


REQUEST_ID_HEADER = "x-fal-webhook-request-id"
USER_ID_HEADER = "x-fal-webhook-user-id"
TIMESTAMP_HEADER = "x-fal-webhook-timestamp"
SIGNATURE_HEADER = "x-fal-webhook-signature"

REQUIRED_HEADERS = (REQUEST_ID_HEADER, USER_ID_HEADER, TIMESTAMP_HEADER, SIGNATURE_HEADER)


def _lower_headers(headers: Mapping[str, str]) -> dict:
    return {k.lower(): v for k, v in headers.items()}


def missing_headers(headers: Mapping[str, str]) -> List[str]:
    lowered = _lower_headers(headers)
    return [name for name in REQUIRED_HEADERS if not lowered.get(name)]


def signing_message(request_id: str, user_id: str, timestamp: str, body: bytes) -> bytes:
    return "\n".join(
        [request_id, user_id, timestamp, hashlib.sha256(body).hexdigest()]
    ).encode("utf-8")


def _decode_jwk_x(value: str) -> bytes:
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


class FalWebhookVerifier:
    """
    Verifies fal webhook signatures against the provider's published JWKS

    Keys are cached; the timestamp must fall within a fixed window of now.
    """

    def __init__(
        self,
        jwks_url: str,
        client: Optional[httpx.AsyncClient] = None,
        enabled: bool = True,
        cache_ttl_s: int = FAL_JWKS_CACHE_TTL_S,
        tolerance_s: int = FAL_WEBHOOK_TIMESTAMP_TOLERANCE_S,
        clock: Callable[[], float] = time.time,
    ):
        self.jwks_url = jwks_url
        self.client = client or httpx.AsyncClient(timeout=10.0)
        self.enabled = enabled
        self.cache_ttl_s = cache_ttl_s
        self.tolerance_s = tolerance_s
        self._clock = clock
        self._keys: List[Ed25519PublicKey] = []
        self._keys_fetched_at: Optional[float] = None

    async def _public_keys(self) -> List[Ed25519PublicKey]:
        now = self._clock()
        if self._keys and self._keys_fetched_at is not None and now - self._keys_fetched_at < self.cache_ttl_s:
            return self._keys

        try:
            response = await self.client.get(self.jwks_url)
            response.raise_for_status()
            jwks = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("fal_jwks_fetch_failed", url=self.jwks_url, error=str(e))
            raise AuthenticationError(f"Unable to fetch provider signing keys: {e}") from e

        keys = []
        for jwk in jwks.get("keys", []):
            if jwk.get("crv") != "Ed25519" or not jwk.get("x"):
                continue
            try:
                keys.append(Ed25519PublicKey.from_public_bytes(_decode_jwk_x(jwk["x"])))
            except ValueError:
                logger.warning("fal_jwk_invalid", kid=jwk.get("kid"))

        if not keys:
            raise AuthenticationError("Provider published no usable signing keys")

        self._keys = keys
        self._keys_fetched_at = now
        return keys

    async def verify(self, headers: Mapping[str, str], body: bytes) -> None:
        """
        Verify an inbound callback

        Raises:
            AuthenticationError: If headers are missing, the timestamp is out of
                window, or no published key validates the signature
        """
        if not self.enabled:
            return

        missing = missing_headers(headers)
        if missing:
            raise AuthenticationError(f"Missing webhook headers: {', '.join(missing)}")

        lowered = _lower_headers(headers)
        timestamp = lowered[TIMESTAMP_HEADER]
        try:
            sent_at = int(timestamp)
        except ValueError as e:
            raise AuthenticationError("Invalid webhook timestamp") from e

        if abs(self._clock() - sent_at) > self.tolerance_s:
            raise AuthenticationError("Webhook timestamp outside tolerance window")

        try:
            signature = bytes.fromhex(lowered[SIGNATURE_HEADER])
        except ValueError as e:
            raise AuthenticationError("Malformed webhook signature") from e

        message = signing_message(lowered[REQUEST_ID_HEADER], lowered[USER_ID_HEADER], timestamp, body)

        for key in await self._public_keys():
            try:
                key.verify(signature, message)
                return
            except InvalidSignature:
                continue

        raise AuthenticationError("Webhook signature verification failed")

    async def close(self):
        await self.client.aclose()
