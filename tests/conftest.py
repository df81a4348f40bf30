"""
tests/conftest.py -- Shared test fixtures for TokenAuth.

This module provides:
  - engine / users / tokens: isolated in-memory stores for unit tests
  - alice: a stored user with a known password
  - _make_test_stores(): named shared-memory stores for TestClient tests
  - _patch_lifespan(): wires test stores into app.state, bypassing real startup
  - api_client: TestClient plus a bearer token for API integration tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
the TestClient because it runs route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

BCRYPT_ROUNDS is lowered before any project import so every hash in the test
session uses the cheapest cost bcrypt accepts.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import timedelta

os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.main import app
from auth.authenticator import Authenticator
from auth.models import User
from auth.store import TokenStore, UserStore, create_db_engine, init_schema

TEST_ROUNDS = 4
ALICE_EMAIL = "alice@example.com"
ALICE_PASSWORD = "correct horse battery"


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def engine() -> Generator[Engine, None, None]:
    eng = create_db_engine("sqlite:///:memory:")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def users(engine: Engine) -> UserStore:
    return UserStore(engine, bcrypt_rounds=TEST_ROUNDS, retry_delay=0)


@pytest.fixture
def tokens(engine: Engine) -> TokenStore:
    return TokenStore(engine)


@pytest.fixture
def alice(users: UserStore) -> User:
    """A stored user whose password is ALICE_PASSWORD."""
    users.create_user(User(email=ALICE_EMAIL, first_name="Alice", last_name="Liddell"), ALICE_PASSWORD)
    return users.get_by_email(ALICE_EMAIL)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _make_test_stores(db_suffix: str) -> tuple[Engine, UserStore, TokenStore]:
    """Create an isolated named shared-memory SQLite datastore.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state (e.g. 'api', 'health').
    """
    url = f"sqlite:///file:test_auth_{db_suffix}?mode=memory&cache=shared&uri=true"
    eng = create_db_engine(url)
    init_schema(eng)
    return eng, UserStore(eng, bcrypt_rounds=TEST_ROUNDS, retry_delay=0), TokenStore(eng)


def _patch_lifespan(eng: Engine, user_store: UserStore, token_store: TokenStore):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.engine = eng
        app.state.user_store = user_store
        app.state.token_store = token_store
        app.state.authenticator = Authenticator(user_store, token_store, token_ttl=timedelta(hours=1))
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request: pytest.FixtureRequest) -> Generator[tuple[TestClient, str, int], None, None]:
    """Yield (client, token, user_id) for API integration tests.

    The user is created and a token issued before the client starts, so tests
    can send 'Authorization: Bearer <token>' straight away.
    """
    eng, user_store, token_store = _make_test_stores(request.module.__name__)
    uid = user_store.create_user(User(email="apiuser@example.com", first_name="Api"), "apipass123")
    token = Authenticator(user_store, token_store).login("apiuser@example.com", "apipass123")

    app.router.lifespan_context = _patch_lifespan(eng, user_store, token_store)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, token.token, uid

    eng.dispose()
