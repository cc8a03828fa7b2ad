"""
Test configuration and fixtures
"""
from unittest.mock import AsyncMock

import httpx
import pytest
from fastapi.testclient import TestClient

from api.config import settings
from api.dependencies import get_upstream
from api.main import app
from api.services.upstream import UpstreamService
from worker.models import PipelineOptions, SourceProbe
from tests.mocks.storage import MockStorageBackend


# Test database configuration
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

STORAGE_BASE = settings.STORAGE_PUBLIC_BASE.rstrip("/")


@pytest.fixture
def probe_1080() -> SourceProbe:
    """Probe of a 1080p source with audio."""
    return SourceProbe(duration=10.0, width=1920, height=1080, codec="h264", bitrate=5_000_000)


@pytest.fixture
def options() -> PipelineOptions:
    return PipelineOptions(title="Test Video", tags=["demo"])


@pytest.fixture
def mock_storage() -> MockStorageBackend:
    return MockStorageBackend({"name": "memory", "public_base": "http://storage.test/bucket"})


@pytest.fixture
def mock_repository():
    repository = AsyncMock()
    repository.insert.side_effect = lambda asset: asset.id
    return repository


@pytest.fixture
def source_file(tmp_path):
    path = tmp_path / "source.mp4"
    path.write_bytes(b"\x00" * 128)
    return path


@pytest.fixture
def gateway():
    """Build a gateway test client whose object store is ``handler``."""
    def factory(handler, **service_kwargs) -> TestClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        service_kwargs.setdefault("retry_delay", 0)
        app.dependency_overrides[get_upstream] = lambda: UpstreamService(http_client, **service_kwargs)
        return TestClient(app)

    yield factory

    app.dependency_overrides.clear()


def storage_url(path: str) -> str:
    """Public storage URL of a key."""
    return f"{STORAGE_BASE}/{path}"
