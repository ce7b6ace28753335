"""
Pytest configuration and shared fixtures.
"""

import asyncio
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from uuid import uuid4

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenant_scheduler.api.main import create_app
from tenant_scheduler.catalog import MemoryCatalogStore
from tenant_scheduler.clock import ManualClock
from tenant_scheduler.db import Base, create_session_factory
from tenant_scheduler.db.connection import get_test_engine
from tenant_scheduler.engine import MemoryQueueEngine
from tenant_scheduler.service import SchedulerService

# Start on a minute boundary so cron arithmetic in tests is easy to follow
START_TIME = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

POLL_INTERVAL = 0.01


@pytest.fixture
def clock() -> ManualClock:
    """Simulated time source."""
    return ManualClock(START_TIME)


@pytest.fixture
def engine(clock: ManualClock) -> MemoryQueueEngine:
    """Simulated queue engine driven by the manual clock."""
    return MemoryQueueEngine(clock=clock, lease_duration_seconds=30)


@pytest.fixture
def catalog() -> MemoryCatalogStore:
    """Catalog store that outlives service restarts within a test."""
    return MemoryCatalogStore()


@pytest.fixture
def make_service(
    catalog: MemoryCatalogStore,
    engine: MemoryQueueEngine,
    clock: ManualClock,
):
    """Factory building services that share the catalog and the engine."""
    def factory(**kwargs: Any) -> SchedulerService:
        kwargs.setdefault("clock", clock)
        kwargs.setdefault("poll_interval", POLL_INTERVAL)
        kwargs.setdefault("shutdown_timeout", 1.0)
        kwargs.setdefault("recovery_interval", 60.0)
        return SchedulerService(catalog, engine, **kwargs)

    return factory


@pytest_asyncio.fixture
async def service(make_service) -> AsyncGenerator[SchedulerService]:
    """A started scheduler service on the memory backends."""
    service = make_service()
    await service.start()
    yield service
    await service.shutdown()


@pytest.fixture
def wait_until() -> Callable[..., Awaitable[None]]:
    """Poll a predicate until it holds, failing the test on timeout."""
    async def waiter(
        predicate: Callable[[], Any],
        timeout: float = 2.0,
        interval: float = POLL_INTERVAL,
    ) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            result = predicate()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return
            if loop.time() > deadline:
                pytest.fail("Condition not met before timeout")
            await asyncio.sleep(interval)

    return waiter


@pytest_asyncio.fixture
async def session_factory(tmp_path: Path) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """Session factory on a fresh SQLite database file."""
    engine = get_test_engine(f"sqlite+aiosqlite:///{tmp_path / 'scheduler.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield create_session_factory(engine)

    await engine.dispose()


@pytest_asyncio.fixture
async def app(service: SchedulerService) -> FastAPI:
    """FastAPI app wired to the test service."""
    return create_app(service=service)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def test_tenant_id() -> str:
    """Generate a test tenant ID."""
    return f"tenant-{uuid4().hex[:8]}"


@pytest.fixture
def sample_job_payload() -> dict[str, Any]:
    """Create a sample job payload."""
    return {"data": {"message": "Hello, World!"}}
