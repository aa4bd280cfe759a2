"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and the
authentication service do the work.

Layer rule: no imports from core/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

# ---------------------------------------------------------------------------
# Domain constants
# ---------------------------------------------------------------------------

PROVIDER_PASSWORD = "password"
PROVIDER_TOKEN = "token"

# The only status that may log in. Anything else is denied.
STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"

AUDIT_SUBJECT_AUTHENTICATION = "Authentication"


@dataclass
class Account:
    """A user account.

    status is free-form on purpose: the store accepts any string so new
    statuses can be introduced without a migration, and the login gate treats
    everything except STATUS_ACTIVE as denied.

    user_key is the random session key assigned at registration.
    The reset token pair is overwritten on every issue and never cleared.
    """

    email: str
    status: str = STATUS_ACTIVE
    id: int | None = None
    user_key: str | None = None
    password_reset_token: str | None = None
    password_reset_token_expiration: datetime | None = None
    last_login: datetime | None = None
    created_at: datetime | None = None


@dataclass
class Credential:
    """A login method bound to one account.

    provider_token holds a bcrypt hash for password logins and the raw static
    token for token logins.
    """

    provider: str  # "password" | "token"
    provider_key: str
    provider_token: str
    user_id: int
    id: int | None = None


@dataclass(frozen=True)
class AuditEntry:
    """Append-only log line written on every successful login."""

    user_id: int
    subject: str
    entry: str
    timestamp: datetime
    id: int | None = None
