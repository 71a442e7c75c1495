"""
tests/conftest.py -- Shared test fixtures for the reading-log API tests.

This module provides:
  - store: isolated in-memory UserStore for unit tests
  - api_client: TestClient over the real app with a patched lifespan
  - client: the same TestClient with an empty cookie jar for each test
  - registered_user / logged_in_user: factories for accounts and sessions

Design: the integration store uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: databases are per-connection and would present a blank schema to each
worker thread. The named URI shares one in-memory instance across threads.

DEBUG must be set before any auth/core import so get_settings() auto-generates
the token secrets instead of raising. Rate limits are raised so the many logins
in one module never trip a 429.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core import -- get_settings() is cached.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("REFRESH_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.store import UserStore

TEST_PASSWORD = "correct horse battery"


def _patch_lifespan(user_store: UserStore):
    """Return a lifespan that wires the test store into app.state.

    The OAuth registry is a stand-in with no clients: no provider is
    configured, so Google sign-in fails closed unless a test replaces the
    verifier.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.user_store = user_store
        app.state.oauth = MagicMock(**{"create_client.return_value": None})
        yield

    return test_lifespan


@pytest.fixture
def store() -> Generator[UserStore, None, None]:
    """Fresh in-memory UserStore, discarded after the test."""
    s = UserStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, UserStore], None, None]:
    """Yield (client, user_store) for API integration tests, one per test module."""
    db_name = f"test_auth_{uuid.uuid4().hex}"
    user_store = UserStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")

    app.router.lifespan_context = _patch_lifespan(user_store)

    with TestClient(app, raise_server_exceptions=True) as test_client:
        yield test_client, user_store

    user_store.close()


@pytest.fixture
def client(api_client) -> TestClient:
    """The module TestClient with no cookies left over from a previous test."""
    test_client, _ = api_client
    test_client.cookies.clear()
    return test_client


@pytest.fixture
def user_store(api_client) -> UserStore:
    return api_client[1]


def unique_email() -> str:
    return f"reader-{uuid.uuid4().hex[:12]}@example.com"


@pytest.fixture
def registered_user(client):
    """Factory: register a fresh account through the API and return its fields."""

    def _register(username: str = "reader", password: str = TEST_PASSWORD) -> dict:
        email = unique_email()
        resp = client.post("/api/auth/register", json={"username": username, "email": email, "password": password})
        assert resp.status_code == 201, resp.text
        return {"id": resp.json()["id"], "email": email, "password": password, "username": username}

    return _register


@pytest.fixture
def logged_in_user(client, registered_user):
    """Factory: register and log in; returns the account plus both tokens.

    The client's cookie jar is cleared afterwards so each test decides
    explicitly where the refresh token comes from.
    """

    def _login() -> dict:
        user = registered_user()
        resp = client.post("/api/auth/login", json={"email": user["email"], "password": user["password"]})
        assert resp.status_code == 200, resp.text
        refresh_token = resp.cookies.get("refreshToken")
        assert refresh_token
        client.cookies.clear()
        return {**user, "access_token": resp.json()["accessToken"], "refresh_token": refresh_token}

    return _login
