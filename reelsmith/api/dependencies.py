"""
API dependencies, overridable in tests through app.dependency_overrides
"""

from reelsmith.config.settings import settings
from reelsmith.core.fanout_planner import FanoutPlanner
from reelsmith.models import SessionLocal
from reelsmith.services.fal_webhook_verifier import FalWebhookVerifier
from reelsmith.services.storage import SqlJobStore
from reelsmith.workers.queue import TaskDispatcher


_verifier = None
_dispatcher = None


def get_job_store() -> SqlJobStore:
    return SqlJobStore(SessionLocal)


def get_planner() -> FanoutPlanner:
    return FanoutPlanner(
        model=settings.fal_model,
        clip_duration_s=settings.default_clip_duration_s,
        enable_priority_secondary=settings.enable_priority_secondary,
    )


def get_verifier() -> FalWebhookVerifier:
    # Shared so the JWKS cache survives across requests
    global _verifier
    if _verifier is None:
        _verifier = FalWebhookVerifier(settings.fal_jwks_url, enabled=settings.fal_webhook_verify)
    return _verifier


def get_dispatcher() -> TaskDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = TaskDispatcher()
    return _dispatcher


async def close_dependencies() -> None:
    """Release clients held across requests"""
    global _verifier
    if _verifier is not None:
        await _verifier.close()
        _verifier = None
