"""
tests/conftest.py -- Shared test fixtures for St0r Auth tests.

This module provides:
  - store / totp_engine / issuer: unit-level building blocks on an in-memory DB
  - make_account(): inserts an account with a known password
  - api_client: TestClient wired to an isolated store with four accounts

Design: Named shared-memory SQLite URIs (not plain :memory:) are required for
api_client because TestClient runs sync route handlers in a thread pool.
Plain :memory: DBs are per-connection and would present a blank schema to
each worker thread. Unit fixtures stay on one thread and use plain :memory:.

DEBUG must be set before any auth/core import so get_settings() can
auto-generate SECRET_KEY instead of raising. BCRYPT_ROUNDS=4 keeps the suite
fast; the cost factor does not change behaviour.
"""

from __future__ import annotations

import os

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass

import pyotp
import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, attach_services
from auth.models import Account
from auth.passwords import hash_password
from auth.store import AccountStore
from auth.tokens import SessionIssuer
from auth.totp import TOTPEngine
from core.config import get_settings

# Fixed secret so TOTP tests can compute codes without going through /2fa/setup.
ALICE_SECRET = "JBSWY3DPEHPK3PXPJBSWY3DPEHPK3PXP"
TEST_KEY = "test-secret-key-that-is-long-enough-0123456789"


@dataclass
class Seeded:
    """Account ids created by api_client, by name."""

    alice: int
    carol: int
    admin: int
    mallory: int


def make_account(
    store: AccountStore,
    username: str,
    password: str,
    elevated: bool = False,
    totp_secret: str | None = None,
    totp_enabled: bool = False,
) -> int:
    return store.create_account(
        Account(
            username=username,
            email=f"{username}@example.test",
            hashed_password=hash_password(password),
            elevated=elevated,
            totp_secret=totp_secret,
            totp_enabled=totp_enabled,
        )
    )


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """The limiter is a module-level singleton; give every test a fresh window."""
    limiter.reset()


# ---------------------------------------------------------------------------
# Unit fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def totp_engine() -> TOTPEngine:
    return TOTPEngine(issuer="St0r GUI", backup_key=TEST_KEY, window_steps=2)


@pytest.fixture
def issuer() -> SessionIssuer:
    return SessionIssuer(TEST_KEY, lifetime_seconds=24 * 3600)


# ---------------------------------------------------------------------------
# Integration fixture
# ---------------------------------------------------------------------------


def _patch_lifespan(store: AccountStore):
    """Return a lifespan that wires the test store instead of opening the real DB."""

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, store, get_settings())
        yield

    return test_lifespan


@pytest.fixture
def api_client() -> Generator[tuple[TestClient, Seeded], None, None]:
    """Yield (client, seeded ids) against a fresh shared-memory store.

    Accounts:
      alice   / correct        -- standard, 2FA enabled with ALICE_SECRET
      carol   / carolpass123   -- standard, no 2FA
      admin   / adminpass123   -- elevated, no 2FA
      mallory / mallorypass1   -- standard, deactivated
    """
    url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = AccountStore(db_url=url)
    seeded = Seeded(
        alice=make_account(store, "alice", "correct", totp_secret=ALICE_SECRET, totp_enabled=True),
        carol=make_account(store, "carol", "carolpass123"),
        admin=make_account(store, "admin", "adminpass123", elevated=True),
        mallory=make_account(store, "mallory", "mallorypass1"),
    )
    store.deactivate_account(seeded.mallory)

    app.router.lifespan_context = _patch_lifespan(store)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, seeded

    store.close()


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def login_token(client: TestClient, username: str, password: str, totp_token: str | None = None) -> str:
    body = {"username": username, "password": password}
    if totp_token is not None:
        body["totpToken"] = totp_token
    resp = client.post("/api/login", json=body)
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def current_code(secret: str) -> str:
    return pyotp.TOTP(secret).now()
