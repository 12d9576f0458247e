# tests/conftest.py
from __future__ import annotations

import os
from typing import AsyncGenerator

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# ============================================================
# settings are cached on first use: pin them before importing the app
# ============================================================
os.environ["ENABLE_PICKUP_SWEEPER"] = "0"
os.environ["AUTO_CREATE_SCHEMA"] = "0"
os.environ.setdefault("LOG_LEVEL", "INFO")

from app.core.config import AppSettings  # noqa: E402
from app.core.container import build_services  # noqa: E402
from app.db.base import Base, init_models  # noqa: E402
from app.db.engine import create_async_engine_safe  # noqa: E402
from app.main import app  # noqa: E402
from app.api.deps import get_services, get_session  # noqa: E402
from app.services.reservation_service import ReservationService  # noqa: E402
from tests.factories import FrozenClock, RecordingNotifier  # noqa: E402

init_models()


# =========================================
# one SQLite file per test (NullPool, write transactions BEGIN IMMEDIATE)
# =========================================
@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine_safe(
        f"sqlite+aiosqlite:///{tmp_path / 'foodsaver-test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture(scope="function")
def async_session_maker(async_engine: AsyncEngine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def session(async_session_maker) -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as sess:
        try:
            yield sess
        finally:
            if sess.in_transaction():
                await sess.rollback()


# =========================================
# clock / settings / collaborators
# =========================================
@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def settings() -> AppSettings:
    return AppSettings(
        ALLOW_MULTIPLE_BUSINESSES=True,
        VERIFICATION_WINDOW_HOURS=2,
        RESERVATION_NUMBER_MAX_RETRIES=5,
        INVENTORY_RETRY_ATTEMPTS=1,
        RELEASE_REVIVES_SOLD_LISTINGS=True,
        DEFAULT_CURRENCY="USD",
        NOTIFY_WEBHOOK_URL=None,
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def service(settings, clock, notifier) -> ReservationService:
    return ReservationService(notifier=notifier, settings=settings, utc_now=clock)


# =========================================
# FastAPI / httpx AsyncClient bound to the per-test database
# =========================================
@pytest_asyncio.fixture(scope="function")
async def client(
    async_session_maker, settings, clock, notifier
) -> AsyncGenerator[httpx.AsyncClient, None]:
    services = build_services(settings, async_session_maker, notifier=notifier, utc_now=clock)

    async def _session_override() -> AsyncGenerator[AsyncSession, None]:
        async with async_session_maker() as sess:
            yield sess

    app.dependency_overrides[get_session] = _session_override
    app.dependency_overrides[get_services] = lambda: services

    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(
            transport=transport,
            base_url="http://testserver",
            timeout=httpx.Timeout(10.0, connect=5.0, read=10.0, write=5.0, pool=5.0),
        ) as c:
            yield c
    finally:
        app.dependency_overrides.pop(get_session, None)
        app.dependency_overrides.pop(get_services, None)
