"""Pytest configuration and shared fixtures.

Organization:
    - Database Fixtures: file-backed SQLite engine, session factory, seed data
    - Provider Fixtures: stubbed HTTP providers and the SMTP relay
    - Runtime Fixtures: a started NotificationRuntime wired to the above
    - Application Fixtures: FastAPI app and HTTP client

The database is a SQLite file per test with ``NullPool``. Adapters, the
rate-limit loader and the reservation router open their own sessions, so
every session must get its own connection; an in-memory database shared
through one pooled connection would let one session's close roll back
another's work. Seed data is committed before the code under test runs.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING
from unittest.mock import AsyncMock

import aiosmtplib
import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from tests.utils import ProviderStub, add_rows, platform_rows

if TYPE_CHECKING:
    from pathlib import Path

    from fastapi import FastAPI
    from sqlalchemy.ext.asyncio import AsyncEngine

    from notify_service.core.settings import EmailSettings, NotificationSettings
    from notify_service.features.notifications.runtime import NotificationRuntime

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_ROOT_PATH", "")
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_ENABLED", "false")
os.environ.setdefault("TASK_BROKER_URL", "")
os.environ.setdefault("LOG_JSON_LOGS", "false")


@pytest.fixture(autouse=True)
def _reset_settings_cache() -> None:
    from notify_service.core.settings import clear_all_caches

    clear_all_caches()


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine]:
    """Fresh SQLite file with every table created."""
    from notify_service.core.database import Base
    from notify_service.core.models import load_all_models

    load_all_models()
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'notify.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.rollback()


@pytest.fixture
async def seeded(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Commit the tenant and users from :func:`tests.utils.platform_rows`."""
    await add_rows(session_factory, *platform_rows())


# ============================================================================
# Provider Fixtures
# ============================================================================


@pytest.fixture
def provider() -> ProviderStub:
    return ProviderStub()


@pytest.fixture
def smtp_send(monkeypatch: pytest.MonkeyPatch) -> AsyncMock:
    """Replace the SMTP relay call; the adapter's MIME message is in ``call_args``."""
    send = AsyncMock(return_value=({}, "OK"))
    monkeypatch.setattr(aiosmtplib, "send", send)
    return send


@pytest.fixture
def notification_settings() -> NotificationSettings:
    from notify_service.core.settings import NotificationSettings

    return NotificationSettings(dispatch_mode="inline", default_locale="en")


@pytest.fixture
def email_settings() -> EmailSettings:
    from notify_service.core.settings import EmailSettings

    return EmailSettings(
        smtp_host="smtp.test",
        smtp_port=2525,
        use_tls=False,
        default_from_email="noreply@example.com",
        default_from_name="Sunrise Notifications",
    )


# ============================================================================
# Runtime Fixtures
# ============================================================================


@pytest.fixture
async def runtime(
    session_factory: async_sessionmaker[AsyncSession],
    provider: ProviderStub,
    notification_settings: NotificationSettings,
    email_settings: EmailSettings,
) -> AsyncGenerator[NotificationRuntime]:
    """Inline-dispatch runtime whose adapters talk to ``provider``."""
    from notify_service.features.notifications.runtime import NotificationRuntime

    client = provider.client()
    runtime = NotificationRuntime(
        settings=notification_settings,
        email_settings=email_settings,
        session_factory=session_factory,
        http_client=client,
    )
    await runtime.start()
    try:
        yield runtime
    finally:
        await runtime.stop()
        await client.aclose()


# ============================================================================
# Application Fixtures
# ============================================================================


@pytest.fixture
def app(
    runtime: NotificationRuntime,
    session_factory: async_sessionmaker[AsyncSession],
) -> FastAPI:
    """Application wired to the test runtime; the lifespan is not run."""
    from notify_service.app.main import create_app
    from notify_service.infra.database.session import get_db_session

    application = create_app()
    application.state.notification_runtime = runtime

    async def _test_session() -> AsyncGenerator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db_session] = _test_session
    return application


@pytest.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
