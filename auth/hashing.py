"""
auth/hashing.py -- Password hashing and random token utilities.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). Bcrypt is the right
       choice for low-entropy secrets because its cost factor makes brute-force
       expensive. checkpw() compares in constant time. The cost factor comes
       from Settings.bcrypt_rounds.

       The _DUMMY_HASH constant enables timing equalization in password login
       so response time does not reveal whether an email exists.

  Tokens: secrets.token_urlsafe(32) gives 256 bits of entropy, URL-safe so a
       reset token can be dropped into an email link unescaped.

Layer rule: no imports from auth/store.py or auth/service.py. Import from
core/ is allowed.
"""

from __future__ import annotations

import secrets

import bcrypt

from core.config import get_settings

_settings = get_settings()

_TOKEN_BYTES = 32


class HashingError(Exception):
    """The hashing primitive refused the input (e.g. over bcrypt's 72-byte limit)."""


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    Raises HashingError if bcrypt rejects the input. Recent bcrypt releases
    raise ValueError for passwords longer than 72 bytes instead of silently
    truncating them.
    """
    try:
        hashed = bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=_settings.bcrypt_rounds))
    except (ValueError, TypeError) as exc:
        raise HashingError(str(exc)) from exc
    return hashed.decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def generate_token() -> str:
    """Return a fresh URL-safe random token (reset tokens, session keys, static login tokens)."""
    return secrets.token_urlsafe(_TOKEN_BYTES)


# Timing equalization dummy hash.
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_HASH: str = hash_password("blackbook_timing_dummy")


def burn_verify(plain: str) -> None:
    """Run one bcrypt check against the dummy hash and discard the answer."""
    verify_password(plain, _DUMMY_HASH)
