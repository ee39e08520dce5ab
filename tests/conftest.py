"""
tests/conftest.py -- Shared test fixtures for Queso integration tests.

This module provides:
  - _make_test_store(): creates an isolated in-memory user DB
  - _patch_lifespan(): wires test components into app.state, bypassing real startup
  - api_client: TestClient plus a pre-created user ("alice") and her token
  - store / user_service / codec / auth_service: unit-level fixtures

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Required settings must be in the environment before any app import, because
api.main calls get_settings() at import time and Settings refuses to build
without them.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set required configuration before any core/auth/api import.
os.environ.setdefault("JWT_SECRET", "test-secret-key-that-is-at-least-32-characters-long")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")
os.environ.setdefault("GOOGLE_CLIENT_SECRET", "test-client-secret")
os.environ.setdefault("GOOGLE_REDIRECT_URL", "http://localhost:5173/auth/google/callback")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.oauth import GoogleOAuthClient, GoogleOAuthConfig
from auth.service import AuthService
from auth.tokens import TokenCodec
from core.config import get_settings
from users.service import UserService
from users.store import UserStore

TEST_SECRET = os.environ["JWT_SECRET"]

# ---------------------------------------------------------------------------
# Store helpers
# ---------------------------------------------------------------------------


def _make_test_store(db_suffix: str) -> UserStore:
    """Create an isolated named shared-memory SQLite store.

    Args:
        db_suffix: Unique string appended to the DB name so tests don't share state.
    """
    return UserStore(db_url=f"sqlite:///file:test_users_{db_suffix}?mode=memory&cache=shared&uri=true")


def _patch_lifespan(user_store: UserStore, oauth_session_factory):
    """Return an async context manager that replaces the real lifespan.

    Builds the same component graph as api.main.lifespan, but on the test
    store and with the OAuth transport swapped for a mock factory so no test
    can reach Google.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        settings = get_settings()
        app.state.user_store = user_store
        app.state.user_service = UserService(user_store)
        app.state.codec = TokenCodec(settings.jwt_secret)
        app.state.auth_service = AuthService(app.state.user_service, app.state.codec)
        app.state.oauth_client = GoogleOAuthClient(
            GoogleOAuthConfig.from_settings(settings),
            session_factory=oauth_session_factory,
        )
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit-level fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    s = _make_test_store(uuid.uuid4().hex)
    yield s
    s.close()


@pytest.fixture
def user_service(store: UserStore) -> UserService:
    return UserService(store)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def auth_service(user_service: UserService, codec: TokenCodec) -> AuthService:
    return AuthService(user_service, codec)


# ---------------------------------------------------------------------------
# Integration fixture
# ---------------------------------------------------------------------------


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, MagicMock, str, int], None, None]:
    """Yield (client, oauth_session_factory, token, user_id).

    A local user alice / "correct horse battery" exists before the client
    starts; token is a valid session token for her. oauth_session_factory is
    the MagicMock standing in for authlib's OAuth2Session class -- configure
    its return_value per test.
    """
    user_store = _make_test_store(f"api_{uuid.uuid4().hex}")
    user = UserService(user_store).register("alice", "alice@example.com", "correct horse battery")
    token = TokenCodec(TEST_SECRET).issue(user.id)

    oauth_session_factory = MagicMock(name="OAuth2Session")
    app.router.lifespan_context = _patch_lifespan(user_store, oauth_session_factory)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, oauth_session_factory, token, user.id

    user_store.close()
