#!/usr/bin/env python3
"""
Shared fixtures: a throwaway SQLite database per test, a frozen clock and
notifiers that record (or fail) instead of talking to SMTP.
"""

import os
import sys
from datetime import datetime, timedelta, timezone

# Add the project root to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

# Settings are read at import time; pin them before anything from consultbook loads
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./consultbook-test.db")
os.environ.setdefault("BUSINESS_TIMEZONE", "America/Los_Angeles")
os.environ["REDIS_URL"] = ""  # Disable Redis in tests

import pytest
import pytest_asyncio

from consultbook.core.config import Settings
from consultbook.db.base import init_db
from consultbook.db.session import make_engine, make_session_factory
from consultbook.services.cache import AvailabilityCache
from consultbook.services.container import build_services

# Monday 2030-01-07, 08:00 in Los Angeles (PST, UTC-8)
FROZEN_NOW = datetime(2030, 1, 7, 16, 0, tzinfo=timezone.utc)

ADMIN_EMAIL = "admin@acmecorp.com"
ADMIN_PASSWORD = "correct-horse-battery"
OWNER_EMAIL = "owner@acmecorp.com"


class FrozenClock:
    """Callable clock the services read 'now' from; tests move it explicitly."""

    def __init__(self, now: datetime = FROZEN_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    async def send(self, notification) -> None:
        self.sent.append(notification)

    def kinds(self):
        return [n.kind.value for n in self.sent]


class FailingNotifier:
    def __init__(self):
        self.attempts = 0

    async def send(self, notification) -> None:
        self.attempts += 1
        raise ConnectionError("smtp unreachable")


@pytest.fixture
def test_settings():
    return Settings(
        _env_file=None,
        APP_ENV="testing",
        ADMIN_EMAIL=ADMIN_EMAIL,
        ADMIN_INITIAL_PASSWORD=ADMIN_PASSWORD,
        ADMIN_NOTIFY_EMAIL=OWNER_EMAIL,
        FRONTEND_URL="https://book.acmecorp.com",
        MINIMUM_NOTICE_HOURS=20,
        REDIS_URL=None,
    )


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture
async def engine(tmp_path):
    eng = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'consultbook.db'}")
    await init_db(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def services(session_factory, test_settings, notifier, clock):
    svc = build_services(session_factory, test_settings, notifier=notifier,
                         cache=AvailabilityCache(None), clock=clock)
    yield svc
    await svc.close()


@pytest.fixture
def booking_details():
    return {
        "name": "Jane Doe",
        "email": "jane@acmecorp.com",
        "company": "Acme Corp",
        "message": "Looking at a migration",
    }


# Pytest configuration hooks
def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line("markers", "smoke: Quick validation tests (< 30 seconds total)")
    config.addinivalue_line("markers", "slow: Long-running tests (> 30 seconds each)")
    config.addinivalue_line("markers", "integration: Tests that exercise the database or the HTTP app")
    config.addinivalue_line("markers", "unit: Pure unit tests with no external dependencies")


@pytest.fixture
def app_factory(tmp_path, test_settings, notifier, clock):
    """
    Builds the real FastAPI app on a fresh SQLite file. The engine is created
    without pooling: TestClient drives the app from its own event loop.
    """
    from fastapi.testclient import TestClient
    from sqlalchemy.pool import NullPool

    from consultbook.main import create_app

    def _build(**overrides):
        api_engine = make_engine(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}", poolclass=NullPool)
        app = create_app(
            settings=overrides.pop("settings", test_settings),
            engine=api_engine,
            notifier=overrides.pop("notifier", notifier),
            cache=AvailabilityCache(None),
            clock=clock,
            create_tables=True,
        )
        return TestClient(app, **overrides)

    return _build


@pytest.fixture
def client(app_factory):
    with app_factory() as c:
        yield c


@pytest.fixture
def admin_auth():
    return (ADMIN_EMAIL, ADMIN_PASSWORD)
