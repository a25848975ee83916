"""
tests/conftest.py -- Shared test fixtures for AuthGate.

This module provides:
  - settings / settings_factory: explicit Settings with fast bcrypt and short TTLs
  - clock: a FakeClock shared by issuer, verifier and reset manager
  - store: a private in-memory UserStore for unit tests
  - auth_client / auth_client_factory: TestClient over the auth service with a
    patched lifespan wired to isolated stores
  - resource_client: TestClient over the resource service whose
    HttpTokenVerifier talks to the auth TestClient -- the real HTTP
    verification path, without sockets

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the app fixtures because TestClient runs route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Each fixture gets a unique name so tests never share rows.

The DEBUG env var must be set before any app import so get_settings() can
auto-generate SECRET_KEY in dev mode instead of raising ValueError. Rate
limits are raised so repeated logins across tests are not throttled.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

# CRITICAL: Set env before any api/ or resource_api/ import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("RESET_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app as auth_app
from auth.client import HttpTokenVerifier
from auth.passwords import PasswordHasher
from auth.reset import ResetTokenManager
from auth.service import AuthService
from auth.store import UserStore
from core.config import Settings
from resource_api.main import app as resource_app

TEST_SECRET = "test-secret-key-0123456789abcdef0123456789abcdef"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class CapturingNotifier:
    """ResetNotifier that records tokens instead of delivering them."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_reset_token(self, email: str, raw_token: str) -> None:
        self.sent.append((email, raw_token))

    @property
    def last_token(self) -> str:
        return self.sent[-1][1]


@dataclass
class AuthStack:
    settings: Settings
    store: UserStore
    service: AuthService
    reset_manager: ResetTokenManager
    notifier: CapturingNotifier = field(default_factory=CapturingNotifier)


def _shared_memory_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def _build_auth_stack(settings: Settings, store: UserStore, hasher: PasswordHasher, clock: FakeClock) -> AuthStack:
    notifier = CapturingNotifier()
    service = AuthService(store, settings, hasher=hasher, clock=clock)
    manager = ResetTokenManager(store, hasher, settings, notifier=notifier, clock=clock)
    return AuthStack(settings=settings, store=store, service=service, reset_manager=manager, notifier=notifier)


def _patch_auth_lifespan(stack: AuthStack):
    """Return an async context manager that replaces the real auth lifespan.

    Wires pre-built components into app.state so TestClient routes see
    isolated test stores and the test clock rather than production config.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = stack.settings
        app.state.user_store = stack.store
        app.state.auth_service = stack.service
        app.state.reset_manager = stack.reset_manager
        yield

    return test_lifespan


def _patch_resource_lifespan(store: UserStore, verifier):
    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = store
        app.state.token_verifier = verifier
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings_factory():
    """Return a builder for Settings with test defaults; keyword overrides win."""

    def factory(**overrides) -> Settings:
        values = {
            "debug": True,
            "secret_key": TEST_SECRET,
            "bcrypt_rounds": 4,
            "access_token_expire_seconds": 60,
            "refresh_token_expire_seconds": 3600,
            "reset_token_expire_seconds": 600,
        }
        values.update(overrides)
        return Settings(**values)

    return factory


@pytest.fixture
def settings(settings_factory) -> Settings:
    return settings_factory()


@pytest.fixture(scope="session")
def hasher() -> PasswordHasher:
    """bcrypt at cost 4 -- the minimum -- so the suite stays fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def stack(settings, store, hasher, clock) -> AuthStack:
    return _build_auth_stack(settings, store, hasher, clock)


# ---------------------------------------------------------------------------
# App fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def auth_client_factory(hasher, clock):
    """Yield a builder returning (client, stack) for the auth service.

    Only one auth client may be live per test: both share the module-level
    FastAPI app and therefore app.state.
    """
    opened: list[tuple[TestClient, AuthStack]] = []

    def factory(settings: Settings) -> tuple[TestClient, AuthStack]:
        stack = _build_auth_stack(settings, UserStore(_shared_memory_url("test_auth")), hasher, clock)
        auth_app.router.lifespan_context = _patch_auth_lifespan(stack)
        client = TestClient(auth_app, raise_server_exceptions=True)
        client.__enter__()
        opened.append((client, stack))
        return client, stack

    yield factory

    for client, stack in opened:
        client.__exit__(None, None, None)
        stack.store.close()


@pytest.fixture
def auth_client(auth_client_factory, settings) -> tuple[TestClient, AuthStack]:
    return auth_client_factory(settings)


@pytest.fixture
def resource_client_factory():
    """Yield a builder returning a resource-service TestClient for (store, verifier)."""
    opened: list[TestClient] = []

    def factory(store: UserStore, verifier) -> TestClient:
        resource_app.router.lifespan_context = _patch_resource_lifespan(store, verifier)
        client = TestClient(resource_app, raise_server_exceptions=True)
        client.__enter__()
        opened.append(client)
        return client

    yield factory

    for client in opened:
        client.__exit__(None, None, None)


@pytest.fixture
def resource_client(auth_client, resource_client_factory) -> TestClient:
    """Resource service verifying tokens over HTTP against the auth TestClient.

    The TestClient stands in for the requests.Session: same post() signature,
    same status_code / json() response surface.
    """
    client, stack = auth_client
    verifier = HttpTokenVerifier("http://testserver", timeout=5.0, session=client)
    return resource_client_factory(stack.store, verifier)


@pytest.fixture
def file_stack(tmp_path, settings, hasher, clock) -> Generator[AuthStack, None, None]:
    """AuthStack over a file-backed SQLite DB, for tests that need real write locking across threads."""
    s = UserStore(f"sqlite:///{tmp_path / 'authgate_test.db'}")
    yield _build_auth_stack(settings, s, hasher, clock)
    s.close()
