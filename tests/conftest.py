"""
tests/conftest.py -- Shared fixtures for the Blackbook authentication tests.

This module provides:
  - FakeClock: a settable clock injected into AuthenticationService
  - store: an isolated in-memory AccountStore per test
  - service: AuthenticationService wired to store and clock
  - seeded: one active account (a@b.com / "pw1") with a password login and a
    static token login

Plain sqlite:///:memory: is safe here: SQLAlchemy keeps one connection per
thread for in-memory SQLite, and these tests never leave the main thread.

BCRYPT_ROUNDS must be set before any auth module import so hash_password()
runs at the minimum cost factor.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

# CRITICAL: Set BCRYPT_ROUNDS before any auth/core import. auth/hashing.py
# reads the settings once at module load.
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest

from auth.hashing import hash_password
from auth.models import PROVIDER_PASSWORD, PROVIDER_TOKEN, Account, Credential
from auth.service import AuthenticationService
from auth.store import AccountStore

SEED_EMAIL = "a@b.com"
SEED_PASSWORD = "pw1"
SEED_TOKEN = "static-login-token-0001"
SEED_USER_KEY = "session-key-0001"


class FakeClock:
    """Callable clock whose time only moves when a test moves it."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class Seeded:
    account_id: int
    password_login_id: int
    token_login_id: int


def seed_account(
    store: AccountStore,
    email: str = SEED_EMAIL,
    password: str = SEED_PASSWORD,
    status: str = "active",
    token: str = SEED_TOKEN,
    user_key: str = SEED_USER_KEY,
) -> Seeded:
    """Create an account with one password login and one static token login."""
    account_id = store.create_account(Account(email=email, status=status, user_key=user_key))
    password_login_id = store.create_credential(
        Credential(
            provider=PROVIDER_PASSWORD,
            provider_key=email,
            provider_token=hash_password(password),
            user_id=account_id,
        )
    )
    token_login_id = store.create_credential(
        Credential(provider=PROVIDER_TOKEN, provider_key=PROVIDER_TOKEN, provider_token=token, user_id=account_id)
    )
    return Seeded(account_id, password_login_id, token_login_id)


@pytest.fixture
def clock() -> FakeClock:
    # Close to real time: the store's reset-token filter compares against the
    # real clock, so issued expirations must land in the real future.
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def service(store: AccountStore, clock: FakeClock) -> AuthenticationService:
    return AuthenticationService(store, clock=clock)


@pytest.fixture
def seeded(store: AccountStore) -> Seeded:
    return seed_account(store)


@pytest.fixture
def make_account(store: AccountStore):
    """Return seed_account bound to this test's store."""

    def _make(**kwargs) -> Seeded:
        return seed_account(store, **kwargs)

    return _make
