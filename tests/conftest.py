"""
tests/conftest.py -- Shared test fixtures for Bech-Do unit and integration tests.

This module provides:
  - make_test_db(): a named shared-memory SQLite Database per test module
  - _patch_lifespan(): wires a test Database into app.state via init_state()
  - api_client: TestClient + admin and regular-user tokens for route tests
  - db / accounts / catalog / codec: direct store fixtures for unit tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

Environment must be set before any project import:
  DEBUG=true              get_settings() auto-generates SECRET_KEY
  BCRYPT_ROUNDS=4         bcrypt minimum; keeps the suite fast
  RATE_LIMIT_ENABLED=false  TestClient always comes from one address
  SEED_CATEGORIES=false   fixtures seed explicitly
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

# CRITICAL: Set these before any auth/core import so get_settings() sees them.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SEED_CATEGORIES", "false")

import pytest
from fastapi.testclient import TestClient

from api.main import app, init_state
from auth.models import Account, Role
from auth.store import AccountStore
from auth.tokens import TokenCodec, hash_password
from catalog.store import CatalogStore
from core.config import get_settings
from core.db import Database

# ---------------------------------------------------------------------------
# Database helpers
# ---------------------------------------------------------------------------


def make_test_db(name: str) -> Database:
    """Create an isolated named shared-memory SQLite database.

    A random suffix keeps modules (and repeated fixtures inside one module)
    from sharing state.
    """
    return Database(f"sqlite:///file:test_{name}_{uuid.uuid4().hex[:8]}?mode=memory&cache=shared&uri=true")


def add_account(
    accounts: AccountStore,
    email: str,
    password: str = "secret123",
    role: Role = Role.user,
    is_active: bool = True,
    first_name: str = "Test",
    last_name: str = "User",
) -> int:
    return accounts.create(
        Account(
            email=email,
            password_hash=hash_password(password),
            first_name=first_name,
            last_name=last_name,
            role=role,
            is_active=is_active,
        )
    )


def _patch_lifespan(db: Database):
    """Return an async context manager that replaces the real lifespan.

    Wires the test Database into app.state through the same init_state()
    the production lifespan uses, so routes see real stores and services.
    The Database outlives the client; the fixture closes it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_state(app, db, get_settings())
        app.state.catalog.seed_default_categories()
        yield

    return test_lifespan


# ---------------------------------------------------------------------------
# Unit-test fixtures -- fresh database per test
# ---------------------------------------------------------------------------


@pytest.fixture
def db() -> Generator[Database, None, None]:
    database = make_test_db("unit")
    # Keep one connection open: a shared-cache memory DB is dropped when its
    # last connection closes, and the pool may recycle connections.
    keepalive = database.engine.connect()
    yield database
    keepalive.close()
    database.close()


@pytest.fixture
def accounts(db: Database) -> AccountStore:
    return AccountStore(db)


@pytest.fixture
def catalog(db: Database, accounts: AccountStore) -> CatalogStore:
    store = CatalogStore(db)
    store.seed_default_categories()
    return store


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec("k" * 32, 3600)


@pytest.fixture
def make_account(accounts: AccountStore):
    """Return add_account() bound to the unit-test AccountStore."""

    def _make(email: str, **kwargs) -> int:
        return add_account(accounts, email, **kwargs)

    return _make


# ---------------------------------------------------------------------------
# Integration fixture -- one TestClient per test module for speed
# ---------------------------------------------------------------------------


@dataclass
class ApiContext:
    client: TestClient
    db: Database
    admin_token: str
    admin_id: int
    user_token: str
    user_id: int

    @staticmethod
    def bearer(token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}

    @property
    def admin_headers(self) -> dict[str, str]:
        return self.bearer(self.admin_token)

    @property
    def user_headers(self) -> dict[str, str]:
        return self.bearer(self.user_token)


@pytest.fixture(scope="module")
def api_client() -> Generator[ApiContext, None, None]:
    """Yield an ApiContext for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, gate and services against an isolated database.
    An admin (admin@test.com / adminpass1) and a regular user
    (user@test.com / userpass1) exist before the first request; tokens for
    both are minted with the app's own codec.
    """
    db = make_test_db("api")
    keepalive = db.engine.connect()
    app.router.lifespan_context = _patch_lifespan(db)

    with TestClient(app, raise_server_exceptions=True) as client:
        accounts: AccountStore = app.state.accounts
        codec: TokenCodec = app.state.token_codec
        admin_id = add_account(accounts, "admin@test.com", "adminpass1", role=Role.admin, first_name="Ada")
        user_id = add_account(accounts, "user@test.com", "userpass1", first_name="Uma")
        yield ApiContext(
            client=client,
            db=db,
            admin_token=codec.issue(admin_id, "admin@test.com", Role.admin),
            admin_id=admin_id,
            user_token=codec.issue(user_id, "user@test.com", Role.user),
            user_id=user_id,
        )

    keepalive.close()
    db.close()
