"""
tests/conftest.py -- Shared test fixtures for TaskNest.

This module provides:
  - engine: an isolated named shared-memory SQLite engine per test
  - user_store / task_store / sessions / auth_service: unit-level collaborators
  - client: TestClient over the real app, with a patched lifespan that wires
    the test engine into app.state
  - new_client: factory for additional clients (separate cookie jars) that
    talk to the same running app -- one per simulated user
  - signup: register + log in a user through the API

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment must be set before any app import:
  DEBUG=true        -- get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4   -- keep hashing fast in tests
  ALLOWED_HOSTS     -- TestClient sends Host: testserver
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager

# CRITICAL: Set env before any auth/core import; Settings is read once.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ALLOWED_HOSTS", '["localhost", "127.0.0.1", "testserver"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app, init_state
from auth.service import AuthService
from auth.sessions import MemorySessionStore
from auth.store import UserStore
from core.database import create_db_engine
from tasks.store import TaskStore

DEFAULT_PASSWORD = "Secret123"

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def make_engine(prefix: str = "tasknest") -> Engine:
    """Create an engine on a fresh named shared-memory SQLite database."""
    return create_db_engine(f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(engine: Engine):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine into app.state through the same init_state() the
    real lifespan uses. The purge_task is a long-sleeping coroutine so
    shutdown has a real asyncio.Task to cancel.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, engine)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()
        app.state.sessions.close()

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = make_engine()
    yield eng
    eng.dispose()


@pytest.fixture
def user_store(engine: Engine) -> UserStore:
    return UserStore(engine)


@pytest.fixture
def task_store(engine: Engine) -> TaskStore:
    return TaskStore(engine)


@pytest.fixture
def sessions() -> MemorySessionStore:
    return MemorySessionStore(ttl_seconds=3600)


@pytest.fixture
def auth_service(user_store: UserStore, task_store: TaskStore, sessions: MemorySessionStore) -> AuthService:
    # task_store is requested so the folders/tasks tables exist for cascades.
    return AuthService(user_store, sessions)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def client(engine: Engine) -> Generator[TestClient, None, None]:
    """TestClient over the real app: real middleware, routing and exception handlers."""
    app.router.lifespan_context = _patch_lifespan(engine)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c


@pytest.fixture
def new_client(client: TestClient) -> Callable[[], TestClient]:
    """Factory for extra clients with their own cookie jar.

    The app is already started by `client`, so these share its state.
    """

    def factory() -> TestClient:
        return TestClient(app, raise_server_exceptions=True)

    return factory


@pytest.fixture
def signup() -> Callable[..., dict]:
    """Return a helper that registers and logs in a user on the given client.

    The client keeps the session cookie; the helper returns the login user dict.
    """

    def _signup(c: TestClient, username: str, email: str, password: str = DEFAULT_PASSWORD) -> dict:
        resp = c.post("/register", json={"username": username, "email": email, "password": password})
        assert resp.status_code == 201, resp.text
        resp = c.post("/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.text
        return resp.json()["user"]

    return _signup
