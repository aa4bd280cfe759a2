"""
auth/stages.py -- Single-purpose pipeline stages shared by the login flows.

Every stage takes a plain value and returns a Result. The service chains them
with Result.and_then, so a stage only ever sees a success value; failures skip
it entirely.

Storage exceptions (SQLAlchemyError) are caught here, at the stage boundary,
logged, and turned into AuthError.STORAGE_FAILURE. They never escape into the
service's callers.

Layer rule: no imports from auth/service.py.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING, Callable

from sqlalchemy.exc import SQLAlchemyError

from auth.models import (
    AUDIT_SUBJECT_AUTHENTICATION,
    PROVIDER_TOKEN,
    STATUS_ACTIVE,
    Account,
    AuditEntry,
    Credential,
)
from auth.result import AuthError, Result

if TYPE_CHECKING:
    from auth.service import Storage

logger = logging.getLogger("blackbook.auth")


class LoginLocator:
    """Find the Credential a login attempt refers to."""

    def __init__(self, store: Storage) -> None:
        self._store = store

    def by_email(self, email: str) -> Result[Credential]:
        try:
            login = self._store.find_credential_by_email(email)
        except SQLAlchemyError:
            logger.exception("Credential lookup by email failed")
            return Result.fail(AuthError.STORAGE_FAILURE)
        if login is None:
            return Result.fail(AuthError.UNKNOWN_EMAIL)
        return Result.success(login)

    def by_token(self, token: str) -> Result[Credential]:
        # Static login tokens use "token" as both provider and provider_key.
        try:
            login = self._store.find_credential(PROVIDER_TOKEN, PROVIDER_TOKEN, token)
        except SQLAlchemyError:
            logger.exception("Credential lookup by token failed")
            return Result.fail(AuthError.STORAGE_FAILURE)
        if login is None:
            return Result.fail(AuthError.INVALID_TOKEN)
        return Result.success(login)


class PasswordVerifier:
    """Check a plaintext password against a Credential's stored hash."""

    def __init__(self, verify_password: Callable[[str, str], bool]) -> None:
        self._verify_password = verify_password

    def verify(self, credential: Credential, plaintext: str) -> Result[Credential]:
        if not self._verify_password(plaintext, credential.provider_token):
            return Result.fail(AuthError.INVALID_CREDENTIALS)
        return Result.success(credential)


class UserResolver:
    """Load the Account a Credential belongs to."""

    def __init__(self, store: Storage) -> None:
        self._store = store

    def resolve(self, credential: Credential) -> Result[Account]:
        try:
            account = self._store.get_account(credential.user_id)
        except SQLAlchemyError:
            logger.exception("Account lookup for login %s failed", credential.id)
            return Result.fail(AuthError.STORAGE_FAILURE)
        if account is None:
            # Logins always reference an existing account; this is a data fault.
            logger.error("Login %s references missing account %s", credential.id, credential.user_id)
            return Result.fail(AuthError.STORAGE_FAILURE)
        return Result.success(account)


class StatusGate:
    """Only accounts whose status is exactly "active" may log in.

    Default deny: suspended, blank, and any status added later are all refused.
    """

    def check(self, account: Account) -> Result[Account]:
        if account.status != STATUS_ACTIVE:
            return Result.fail(AuthError.ACCOUNT_DENIED)
        return Result.success(account)


class LoginRecorder:
    """Write the audit entry and last_login stamp for a successful login.

    Both writes share one transaction: if either fails, neither is kept.
    """

    def __init__(self, store: Storage, clock: Callable[[], datetime]) -> None:
        self._store = store
        self._clock = clock

    def record(self, account: Account) -> Result[Account]:
        now = self._clock()
        entry = AuditEntry(
            user_id=account.id,
            subject=AUDIT_SUBJECT_AUTHENTICATION,
            entry=f"User {account.email} logged in",
            timestamp=now,
        )
        try:
            with self._store.transaction() as conn:
                self._store.insert_audit(entry, conn=conn)
                self._store.update_account(account.id, conn=conn, last_login=now)
        except SQLAlchemyError:
            logger.exception("Recording login for account %s failed; rolled back", account.id)
            return Result.fail(AuthError.STORAGE_FAILURE)
        logger.info("User %s logged in", account.email)
        # The login is committed; a failed re-read must not turn it into a failure.
        try:
            refreshed = self._store.get_account(account.id)
        except SQLAlchemyError:
            logger.warning("Re-reading account %s after login failed; returning local copy", account.id)
            refreshed = None
        return Result.success(refreshed or replace(account, last_login=now))
