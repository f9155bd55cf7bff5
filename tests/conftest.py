"""
tests/conftest.py -- Shared fixtures for the authn-password test suite.

This module provides:
  - store / manager / emitter / dispatcher: the credential core over an
    in-memory SQLite store, with a MagicMock event emitter
  - add_identity(): provision an identity with a known password
  - api_client: TestClient over the real FastAPI app with a patched lifespan

Environment must be set before any auth/core/api import, because
get_settings() is cached on first use and api/main.py reads it at import:
  BCRYPT_ROUNDS=4          -- minimum bcrypt cost keeps the suite fast
  RATE_LIMIT_ENABLED=false -- tests log in far more than 10 times a minute
  ALLOWED_HOSTS            -- TestClient sends Host: testserver

API tests use named shared-memory SQLite URIs (not plain :memory:) because
TestClient runs sync route handlers in a thread pool; a plain :memory: DB is
per-connection and would present a blank schema to each worker thread.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from unittest.mock import MagicMock

# CRITICAL: set before any auth/core/api import.
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient

from api.main import app, wire_services
from auth.credentials import CredentialManager
from auth.dispatch import PasscodeDispatcher
from auth.models import Identity
from auth.store import IdentityStore

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def add_identity(
    manager: CredentialManager,
    identity_id: str,
    email: str,
    password: str | None = "correct horse battery",
    slug: str | None = None,
    label: str | None = None,
    role: str = "user",
) -> Identity:
    """Provision an identity through the credential manager and return it."""
    identity = Identity(id=identity_id, email=email, slug=slug, label=label or identity_id, role=role)
    manager.create_identity(identity, password=password)
    return identity


# ---------------------------------------------------------------------------
# Core fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[IdentityStore, None, None]:
    s = IdentityStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def manager(store: IdentityStore) -> CredentialManager:
    return CredentialManager(store)


@pytest.fixture
def emitter() -> MagicMock:
    return MagicMock()


@pytest.fixture
def dispatcher(manager: CredentialManager, emitter: MagicMock) -> PasscodeDispatcher:
    return PasscodeDispatcher(manager, emitter)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: IdentityStore, emitter: MagicMock):
    """Return a lifespan that wires the test store and a mock emitter into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        wire_services(app, store, emitter)
        yield

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(request) -> Generator[tuple[TestClient, MagicMock], None, None]:
    """Yield (client, emitter) for API integration tests.

    Seeded identities:
      alice            slug=alice, email alice@example.com, password "alice-password-1"
      shared-1/2       both shared@example.com, password "shared-password"
      solo-shared      shared@example.com too, different password "solo-password"
      pad-1            slug=padder, pad@example.com, password "  padded secret  " (surrounding spaces are part of it)
    """
    db_name = request.module.__name__.replace(".", "_")
    store = IdentityStore(db_url=f"sqlite:///file:{db_name}?mode=memory&cache=shared&uri=true")
    manager = CredentialManager(store)
    add_identity(manager, "alice", "alice@example.com", "alice-password-1", slug="alice", label="Alice")
    add_identity(manager, "shared-1", "shared@example.com", "shared-password", label="Work")
    add_identity(manager, "shared-2", "shared@example.com", "shared-password", label="Home")
    add_identity(manager, "solo-shared", "shared@example.com", "solo-password", label="Solo")
    add_identity(manager, "pad-1", "pad@example.com", "  padded secret  ", slug="padder", label="Padded")

    emitter = MagicMock()
    app.router.lifespan_context = _patch_lifespan(store, emitter)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, emitter

    store.close()
