"""
auth/service.py -- AuthenticationService: the six public authentication operations.

Each operation is a short linear pipeline over Result:

  authenticate_by_password:  by_email -> verify -> resolve -> check -> record
  authenticate_by_token:     by_token ------------> resolve -> check -> record
  change_password:           by_email -> verify -> hash new password -> update login
  issue_reset_token:         account by email -> new token + expiry -> update account
  validate_reset_token:      account by unexpired reset token
  resolve_session:           account by user_key

The first failing stage decides the outcome; nothing after it runs.

Collaborators (store, hashing functions, token generator, clock) are injected
through the constructor. Defaults wire in the bcrypt functions from
auth/hashing.py and the real UTC clock, so production code only passes a
store and tests swap in fixed clocks or failing stores.

Reset tokens are not cleared after a successful reset; a caller that wants
single use must overwrite or null the token itself after change_password.
"""

from __future__ import annotations

import logging
from contextlib import AbstractContextManager
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError

from auth.hashing import HashingError, burn_verify, generate_token, hash_password, verify_password
from auth.models import Account, AuditEntry, Credential
from auth.result import AuthError, Result
from auth.stages import LoginLocator, LoginRecorder, PasswordVerifier, StatusGate, UserResolver
from core.config import get_settings

logger = logging.getLogger("blackbook.auth")


class Storage(Protocol):
    """What the authentication core needs from persistence. AccountStore implements it."""

    def find_credential(self, provider: str, key: str, token: str) -> Credential | None: ...

    def find_credential_by_email(self, email: str) -> Credential | None: ...

    def get_account(self, account_id: int) -> Account | None: ...

    def find_account_by_email(self, email: str) -> Account | None: ...

    def find_account_by_reset_token(self, token: str) -> Account | None: ...

    def find_account_by_user_key(self, key: str) -> Account | None: ...

    def update_account(self, account_id: int, conn: Any = None, **fields) -> bool: ...

    def update_credential(self, credential_id: int, conn: Any = None, **fields) -> bool: ...

    def get_credential(self, credential_id: int) -> Credential | None: ...

    def insert_audit(self, entry: AuditEntry, conn: Any = None) -> int: ...

    def transaction(self) -> AbstractContextManager[Any]: ...


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthenticationService:
    """Credential and token authentication over an injected Storage.

    Usage:
        service = AuthenticationService(AccountStore())
        result = service.authenticate_by_password("a@b.com", "pw1")
        if result.ok:
            account = result.value
        else:
            print(result.error.public_message)
    """

    def __init__(
        self,
        store: Storage,
        *,
        hash_password: Callable[[str], str] = hash_password,
        verify_password: Callable[[str, str], bool] = verify_password,
        generate_token: Callable[[], str] = generate_token,
        clock: Callable[[], datetime] = utcnow,
        reset_token_ttl: timedelta | None = None,
    ) -> None:
        self._store = store
        self._hash_password = hash_password
        self._generate_token = generate_token
        self._clock = clock
        if reset_token_ttl is None:
            reset_token_ttl = timedelta(hours=get_settings().reset_token_ttl_hours)
        self._reset_token_ttl = reset_token_ttl

        self.locator = LoginLocator(store)
        self.verifier = PasswordVerifier(verify_password)
        self.resolver = UserResolver(store)
        self.gate = StatusGate()
        self.recorder = LoginRecorder(store, clock)

    # ------------------------------------------------------------------
    # Login
    # ------------------------------------------------------------------

    def authenticate_by_token(self, token: str) -> Result[Account]:
        """Log in with the static token every account receives at registration."""
        result = (
            self.locator.by_token(token)
            .and_then(self.resolver.resolve)
            .and_then(self.gate.check)
            .and_then(self.recorder.record)
        )
        if not result.ok:
            logger.warning("Token login failed: %s", result.error.value)
        return result

    def authenticate_by_password(self, email: str, password: str) -> Result[Account]:
        """Log in with email and password.

        Always runs one bcrypt check, even for an unknown email, so response
        time does not reveal whether the email is registered.
        """
        located = self.locator.by_email(email)
        if located.error is AuthError.UNKNOWN_EMAIL:
            burn_verify(password)
        result = (
            located.and_then(lambda login: self.verifier.verify(login, password))
            .and_then(self.resolver.resolve)
            .and_then(self.gate.check)
            .and_then(self.recorder.record)
        )
        if not result.ok:
            logger.warning("Password login failed for %s: %s", email, result.error.value)
        return result

    # ------------------------------------------------------------------
    # Password change
    # ------------------------------------------------------------------

    def change_password(self, email: str, old_password: str, new_password: str) -> Result[Credential]:
        """Replace the stored password hash after checking the old password.

        Returns the updated Credential. The old hash is overwritten, so the
        old password stops working immediately.
        """
        result = (
            self.locator.by_email(email)
            .and_then(lambda login: self.verifier.verify(login, old_password))
            .and_then(lambda login: self._store_new_password(login, new_password))
        )
        if result.ok:
            logger.info("Password changed for %s", email)
        else:
            logger.warning("Password change failed for %s: %s", email, result.error.value)
        return result

    def _store_new_password(self, login: Credential, new_password: str) -> Result[Credential]:
        try:
            hashed = self._hash_password(new_password)
        except HashingError:
            logger.exception("Hashing the new password for login %s failed", login.id)
            return Result.fail(AuthError.STORAGE_FAILURE)
        try:
            self._store.update_credential(login.id, provider_token=hashed)
            updated = self._store.get_credential(login.id)
        except SQLAlchemyError:
            logger.exception("Saving the new password for login %s failed", login.id)
            return Result.fail(AuthError.STORAGE_FAILURE)
        return Result.success(updated or login)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def issue_reset_token(self, email: str) -> Result[str]:
        """Generate, store and return a new reset token valid for the configured TTL.

        Any previously issued token for the account is overwritten. No audit
        entry is written.
        """
        result = self._account_by_email(email).and_then(self._assign_reset_token)
        if result.ok:
            logger.info("Password reset token issued for %s", email)
        else:
            logger.warning("Password reset token not issued for %s: %s", email, result.error.value)
        return result

    def _account_by_email(self, email: str) -> Result[Account]:
        try:
            account = self._store.find_account_by_email(email)
        except SQLAlchemyError:
            logger.exception("Account lookup by email failed")
            return Result.fail(AuthError.STORAGE_FAILURE)
        if account is None:
            return Result.fail(AuthError.UNKNOWN_EMAIL)
        return Result.success(account)

    def _assign_reset_token(self, account: Account) -> Result[str]:
        token = self._generate_token()
        expiration = self._clock() + self._reset_token_ttl
        try:
            self._store.update_account(
                account.id,
                password_reset_token=token,
                password_reset_token_expiration=expiration,
            )
        except SQLAlchemyError:
            logger.exception("Saving the reset token for account %s failed", account.id)
            return Result.fail(AuthError.STORAGE_FAILURE)
        return Result.success(token)

    def validate_reset_token(self, token: str) -> Result[Account]:
        """Return the account holding this reset token if the token has not expired.

        The store filters expired tokens; the expiry is checked again here
        against the injected clock. The token is left in place.
        """
        try:
            account = self._store.find_account_by_reset_token(token)
        except SQLAlchemyError:
            logger.exception("Reset token lookup failed")
            return Result.fail(AuthError.STORAGE_FAILURE)
        if account is None:
            return Result.fail(AuthError.EXPIRED_OR_MISSING_RESET_TOKEN)
        expiration = account.password_reset_token_expiration
        if expiration is None or expiration <= self._clock():
            return Result.fail(AuthError.EXPIRED_OR_MISSING_RESET_TOKEN)
        return Result.success(account)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def resolve_session(self, key: str) -> Result[Account]:
        """Return the account for a session key. Read only; status is not checked."""
        try:
            account = self._store.find_account_by_user_key(key)
        except SQLAlchemyError:
            logger.exception("Session key lookup failed")
            return Result.fail(AuthError.STORAGE_FAILURE)
        if account is None:
            return Result.fail(AuthError.INVALID_SESSION_KEY)
        return Result.success(account)
