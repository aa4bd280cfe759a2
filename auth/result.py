"""
auth/result.py -- AuthError taxonomy and the Result value threaded through pipelines.

Expected authentication failures (wrong password, unknown email, expired reset
token) are ordinary outcomes, not exceptional ones, so the pipeline stages
return them as values instead of raising. Each stage receives the previous
Result and either transforms the success value or passes the failure through
untouched:

    locator.by_email(email)
        .and_then(lambda login: verifier.verify(login, password))
        .and_then(resolver.resolve)

Once a Result carries an error, no later stage runs. A failure is never
upgraded, downgraded, or wrapped.

Layer rule: stdlib only.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")


class AuthError(str, Enum):
    """Why an authentication operation failed. Carries no account reference."""

    INVALID_TOKEN = "invalid_token"
    INVALID_CREDENTIALS = "invalid_credentials"
    UNKNOWN_EMAIL = "unknown_email"
    ACCOUNT_DENIED = "account_denied"
    EXPIRED_OR_MISSING_RESET_TOKEN = "expired_or_missing_reset_token"
    INVALID_SESSION_KEY = "invalid_session_key"
    STORAGE_FAILURE = "storage_failure"

    @property
    def message(self) -> str:
        """Internal, specific description of the failure."""
        return _MESSAGES[self]

    @property
    def public_message(self) -> str:
        """Message safe to show an unauthenticated caller.

        UNKNOWN_EMAIL and INVALID_CREDENTIALS share one message so the answer
        does not reveal whether an account exists for the email.
        """
        if self in (AuthError.UNKNOWN_EMAIL, AuthError.INVALID_CREDENTIALS):
            return "Invalid email or password"
        return self.message


_MESSAGES: dict[AuthError, str] = {
    AuthError.INVALID_TOKEN: "That token is invalid",
    AuthError.INVALID_CREDENTIALS: "That password is invalid",
    AuthError.UNKNOWN_EMAIL: "This email doesn't exist in our system",
    AuthError.ACCOUNT_DENIED: "This account is currently denied access",
    AuthError.EXPIRED_OR_MISSING_RESET_TOKEN: "That reset token is invalid or has expired",
    AuthError.INVALID_SESSION_KEY: "That user key is invalid",
    AuthError.STORAGE_FAILURE: "The account store could not complete the request",
}


@dataclass(frozen=True)
class Result(Generic[T]):
    """Either a success value or an AuthError, never both.

    Build with Result.success(value) / Result.fail(error) rather than the
    constructor so the invariant holds.
    """

    value: T | None = None
    error: AuthError | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def fail(cls, error: AuthError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def and_then(self, fn: Callable[[T], Result[U]]) -> Result[U]:
        """Run the next stage on the success value; pass a failure through as-is."""
        if self.error is not None:
            return Result.fail(self.error)
        return fn(self.value)  # type: ignore[arg-type]

    def map(self, fn: Callable[[T], U]) -> Result[U]:
        """Transform the success value with a function that cannot fail."""
        if self.error is not None:
            return Result.fail(self.error)
        return Result.success(fn(self.value))  # type: ignore[arg-type]

    def unwrap(self) -> T:
        """Return the success value. Raises ValueError on a failed Result."""
        if self.error is not None:
            raise ValueError(f"unwrap() called on failed Result: {self.error.value}")
        return self.value  # type: ignore[return-value]
