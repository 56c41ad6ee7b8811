"""
Pytest Configuration and Fixtures
"""

import os
import pytest
import tempfile
from pathlib import Path
from typing import Generator
from unittest.mock import AsyncMock, Mock

from reelsmith.models import Base, create_db_engine, create_session_factory
from reelsmith.models import generation_job, video_batch  # noqa: F401
from reelsmith.models.listing import ListingGenerationRequest, ListingImage
from reelsmith.services.storage import SqlJobStore
from reelsmith.services.webhook_delivery import DeliveryReceipt
from tests.fixtures.in_memory_store import InMemoryJobStore


@pytest.fixture
def test_db_path() -> Generator[str, None, None]:
    """Create temporary database file"""
    with tempfile.NamedTemporaryFile(mode='w', suffix='.db', delete=False) as f:
        db_path = f.name
    yield db_path
    # Cleanup
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def test_db_engine(test_db_path: str) -> Generator:
    """Create test database engine"""
    engine = create_db_engine(f"sqlite:///{test_db_path}")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def test_session_factory(test_db_engine):
    """Session factory bound to the test database"""
    return create_session_factory(test_db_engine)


@pytest.fixture
def sql_store(test_session_factory) -> SqlJobStore:
    return SqlJobStore(test_session_factory)


@pytest.fixture
def memory_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for file operations"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def listing_request() -> ListingGenerationRequest:
    """Kitchen with a scored secondary photo plus a bathroom"""
    return ListingGenerationRequest(
        listing_id="listing-1",
        owner_id="owner-1",
        primary_image_url="https://img.example.com/front.jpg",
        images=[
            ListingImage(url="https://img.example.com/k1.jpg", category="kitchen", is_primary=True),
            ListingImage(url="https://img.example.com/k2.jpg", category="kitchen", primary_score=0.8),
            ListingImage(url="https://img.example.com/b1.jpg", category="bathroom"),
        ],
    )


@pytest.fixture
def mock_notifier():
    """Webhook delivery double that always succeeds on the first attempt"""
    mock = Mock()
    mock.send = AsyncMock(return_value=DeliveryReceipt(attempts=1, status_code=200))
    mock.close = AsyncMock()
    return mock


# Environment fixtures
@pytest.fixture
def mock_env_vars():
    """Mock environment variables"""
    os.environ["FAL_KEY"] = "test-fal-key"
    os.environ["WEBHOOK_SECRET"] = "test-webhook-secret"
    os.environ["STORAGE_BUCKET"] = "test-bucket"

    yield

    # Cleanup
    for key in ["FAL_KEY", "WEBHOOK_SECRET", "STORAGE_BUCKET"]:
        if key in os.environ:
            del os.environ[key]
