"""
tests/conftest.py -- Shared test fixtures for OtpGate unit and integration tests.

This module provides:
  - FrozenClock / RecordingMailer: deterministic collaborators for AuthService
  - engine: isolated named shared-memory SQLite engine per test
  - service: AuthService wired to that engine with fast bcrypt
  - make_app: create_app() with test Settings and a lifespan that wires a given
    service into app.state, bypassing real startup
  - api_client: TestClient around such an app

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from auth.errors import MailDeliveryError
from auth.mailer import Mailer
from auth.passwords import CredentialHasher
from auth.service import AuthService
from auth.store import AccountStore, PendingRegistrationStore, create_db_engine
from auth.tokens import SessionIssuer
from core.config import Settings

TEST_SECRET = "test-secret-key-that-is-at-least-32-chars"

# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@dataclass
class SentMail:
    to: str
    subject: str
    body: str


@dataclass
class RecordingMailer(Mailer):
    """Mailer that keeps every message; fail=True makes send() raise."""

    sent: list[SentMail] = field(default_factory=list)
    fail: bool = False

    def send(self, to: str, subject: str, body: str) -> None:
        if self.fail:
            raise MailDeliveryError("relay unavailable")
        self.sent.append(SentMail(to, subject, body))

    def last_otp(self) -> str:
        """Pull the 6-digit code out of the most recent message body."""
        return next(word for word in self.sent[-1].body.replace(".", " ").split() if word.isdigit())


# ---------------------------------------------------------------------------
# Store / service fixtures
# ---------------------------------------------------------------------------


def _memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture(scope="session")
def hasher() -> CredentialHasher:
    """bcrypt at its minimum cost -- same code path, a fraction of the CPU."""
    return CredentialHasher(rounds=4)


@pytest.fixture
def engine():
    """Fresh shared-memory database per test."""
    eng = create_db_engine(_memory_url("test_auth"))
    yield eng
    eng.dispose()


def _build_service(engine, clock, mailer, hasher) -> AuthService:
    return AuthService(
        accounts=AccountStore(engine, clock=clock),
        pending=PendingRegistrationStore(engine, clock=clock),
        hasher=hasher,
        mailer=mailer,
        sessions=SessionIssuer(TEST_SECRET),
        clock=clock,
    )


@pytest.fixture
def service(engine, clock, mailer, hasher) -> AuthService:
    return _build_service(engine, clock, mailer, hasher)


# ---------------------------------------------------------------------------
# HTTP fixture
# ---------------------------------------------------------------------------


def make_test_settings(**overrides) -> Settings:
    """Settings that ignore the process environment and any .env file."""
    values = {
        "environment": "development",
        "secret_key": TEST_SECRET,
        "cors_origins": ["http://localhost:3000"],
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@dataclass
class ApiHarness:
    client: TestClient
    service: AuthService
    mailer: RecordingMailer
    clock: FrozenClock


def _patch_lifespan(service: AuthService, secure_cookies: bool):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = service
        app.state.secure_cookies = secure_cookies
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


def make_app(service: AuthService, secure_cookies: bool = False, **settings_overrides):
    """Build a fresh app around service; no engine or mailer is created from settings."""
    app = create_app(make_test_settings(**settings_overrides))
    app.router.lifespan_context = _patch_lifespan(service, secure_cookies=secure_cookies)
    return app


@pytest.fixture
def api_client(engine, clock, mailer, hasher) -> Generator[ApiHarness, None, None]:
    """Yield an ApiHarness around the real FastAPI app with isolated collaborators.

    The client talks to real route handlers, real stores and a real session
    issuer; only the mailer and the clock are test doubles.
    """
    svc = _build_service(engine, clock, mailer, hasher)

    with TestClient(make_app(svc), raise_server_exceptions=True) as client:
        yield ApiHarness(client=client, service=svc, mailer=mailer, clock=clock)
