"""
Unit Tests for fal Webhook Verifier
"""

import base64

import httpx
import pytest
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from reelsmith.services.errors import AuthenticationError
from reelsmith.services.fal_webhook_verifier import FalWebhookVerifier, missing_headers, signing_message

pytestmark = pytest.mark.asyncio

NOW = 1_700_000_000
BODY = b'{"request_id":"req-1","status":"OK"}'


def _jwk(private_key):
    raw = private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw)
    return {"kty": "OKP", "crv": "Ed25519", "x": base64.urlsafe_b64encode(raw).rstrip(b"=").decode()}


@pytest.fixture
def private_key():
    return Ed25519PrivateKey.generate()


@pytest.fixture
def jwks_calls():
    return []


@pytest.fixture
def verifier(private_key, jwks_calls):
    def handler(request):
        jwks_calls.append(request.url)
        return httpx.Response(200, json={"keys": [_jwk(private_key)]})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FalWebhookVerifier("https://fal.example/jwks.json", client=client, clock=lambda: NOW)


def _headers(private_key, timestamp=NOW, body=BODY):
    message = signing_message("req-1", "user-1", str(timestamp), body)
    return {
        "X-Fal-Webhook-Request-Id": "req-1",
        "X-Fal-Webhook-User-Id": "user-1",
        "X-Fal-Webhook-Timestamp": str(timestamp),
        "X-Fal-Webhook-Signature": private_key.sign(message).hex(),
    }


async def test_valid_signature_passes(verifier, private_key):
    await verifier.verify(_headers(private_key), BODY)


async def test_tampered_body_is_rejected(verifier, private_key):
    with pytest.raises(AuthenticationError, match="verification failed"):
        await verifier.verify(_headers(private_key), BODY + b" ")


async def test_signature_from_unknown_key_is_rejected(verifier):
    with pytest.raises(AuthenticationError):
        await verifier.verify(_headers(Ed25519PrivateKey.generate()), BODY)


async def test_stale_timestamp_is_rejected(verifier, private_key):
    with pytest.raises(AuthenticationError, match="tolerance"):
        await verifier.verify(_headers(private_key, timestamp=NOW - 301), BODY)


async def test_timestamp_inside_window_passes(verifier, private_key):
    await verifier.verify(_headers(private_key, timestamp=NOW + 299), BODY)


async def test_missing_headers_are_reported(verifier, private_key):
    headers = _headers(private_key)
    del headers["X-Fal-Webhook-Signature"]

    assert missing_headers(headers) == ["x-fal-webhook-signature"]
    with pytest.raises(AuthenticationError, match="Missing"):
        await verifier.verify(headers, BODY)


async def test_jwks_is_cached(verifier, private_key, jwks_calls):
    await verifier.verify(_headers(private_key), BODY)
    await verifier.verify(_headers(private_key), BODY)

    assert len(jwks_calls) == 1


async def test_disabled_verifier_accepts_anything():
    verifier = FalWebhookVerifier("https://fal.example/jwks.json", client=httpx.AsyncClient(), enabled=False)
    await verifier.verify({}, b"")


async def test_jwks_fetch_failure_is_authentication_error(private_key):
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    verifier = FalWebhookVerifier("https://fal.example/jwks.json", client=client, clock=lambda: NOW)

    with pytest.raises(AuthenticationError, match="signing keys"):
        await verifier.verify(_headers(private_key), BODY)
