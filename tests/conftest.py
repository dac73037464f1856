from __future__ import annotations

from collections.abc import AsyncIterator, Iterator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

from app.config import get_settings
from app.main import app
from app.observability.metrics import reset_metrics
from app.services.scheduler import shutdown_scheduler


@pytest.fixture
def access_log_path(tmp_path: Path) -> Path:
    return tmp_path / "logs" / "access-log.log"


@pytest.fixture(autouse=True)
def test_environment(monkeypatch: pytest.MonkeyPatch, access_log_path: Path) -> Iterator[None]:
    monkeypatch.setenv("ACCESS_LOG_PATH", str(access_log_path))
    monkeypatch.setenv("ASYNC_DELAY_MS", "50")
    monkeypatch.delenv("PROPAGATE_CONTEXT", raising=False)
    monkeypatch.delenv("TRUST_TRACEPARENT", raising=False)
    monkeypatch.delenv("ENABLE_METRICS_ENDPOINT", raising=False)
    get_settings.cache_clear()
    reset_metrics()

    yield

    shutdown_scheduler()
    get_settings.cache_clear()


@pytest.fixture
def enable_propagation(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PROPAGATE_CONTEXT", "true")
    get_settings.cache_clear()


@pytest.fixture
async def api_client() -> AsyncIterator[AsyncClient]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
