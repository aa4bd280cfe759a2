"""
auth/store.py -- SQLAlchemy Core persistence layer for accounts, logins and audit entries.

Pattern: Repository + Data Mapper.
AccountStore is the repository; _row_to_account / _row_to_credential /
_row_to_audit are the mappers. The authentication service never touches SQL
directly.

Security:
  All queries use bound parameters. No f-strings in SQL.
  Update methods accept only whitelisted column names.

Timestamps are stored as ISO 8601 UTC text with fixed microsecond precision,
so lexicographic comparison in SQL matches chronological order. The reset
token expiry filter relies on this.

Transactions:
  Every write runs inside engine.begin() (commit on success, rollback on
  exception). Writes that must be atomic together share the connection from
  transaction() by passing it as conn=.

DB path: auth/blackbook_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from auth/service.py or auth/stages.py.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, MetaData, String, Table, Text, create_engine, event, select
from sqlalchemy.engine import Connection, Engine

from auth.hashing import generate_token
from auth.models import PROVIDER_PASSWORD, Account, AuditEntry, Credential
from core.config import get_settings

logger = logging.getLogger("blackbook.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("status", String(30), nullable=False, server_default="active"),
    Column("user_key", String(64), nullable=False, unique=True),
    Column("password_reset_token", String(64), index=True),
    Column("password_reset_token_expiration", String(32)),  # ISO 8601 UTC
    Column("last_login", String(32)),  # ISO 8601 UTC
    Column("created_at", String(32), nullable=False),
)

_logins = Table(
    "logins",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("provider", String(30), nullable=False),  # "password" | "token"
    Column("provider_key", String(255), nullable=False),
    Column("provider_token", Text, nullable=False),  # bcrypt hash or static token
)

_user_logs = Table(
    "user_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("subject", String(100), nullable=False),
    Column("entry", Text, nullable=False),
    Column("timestamp", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block during writes.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    # Naive datetimes are taken to be UTC.
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account, Credential and AuditEntry records.

    Usage:
        store = AccountStore()
        uid = store.create_account(Account(email="a@b.com"))
        store.create_credential(Credential(PROVIDER_PASSWORD, "a@b.com", hash_password("pw"), uid))
        login = store.find_credential_by_email("a@b.com")
        store.close()
    """

    # Columns update_account / update_credential may touch. Validated before
    # any SQL is built so callers cannot smuggle in id or user_key changes.
    _ACCOUNT_FIELDS: set = {
        "email",
        "status",
        "password_reset_token",
        "password_reset_token_expiration",
        "last_login",
    }
    _ACCOUNT_TIME_FIELDS: set = {"password_reset_token_expiration", "last_login"}
    _CREDENTIAL_FIELDS: set = {"provider_key", "provider_token"}

    def __init__(self, db_url: str | None = None) -> None:
        db_url = db_url or get_settings().database_url
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection whose writes commit together or not at all.

        Commits when the block exits normally, rolls back and re-raises on any
        exception, and always returns the connection to the pool.
        """
        with self.engine.begin() as conn:
            yield conn

    @contextmanager
    def _writer(self, conn: Connection | None) -> Iterator[Connection]:
        # Join the caller's transaction if given one, otherwise open our own.
        if conn is not None:
            yield conn
            return
        with self.engine.begin() as own:
            yield own

    # ------------------------------------------------------------------
    # Registration-side inserts
    # ------------------------------------------------------------------

    def create_account(self, account: Account) -> int:
        """Insert a new account and return its assigned database ID.

        A random user_key is generated when the account has none.
        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        expiration = account.password_reset_token_expiration
        with self._writer(None) as conn:
            result = conn.execute(
                _accounts.insert().values(
                    email=account.email,
                    status=account.status,
                    user_key=account.user_key or generate_token(),
                    password_reset_token=account.password_reset_token,
                    password_reset_token_expiration=_to_iso(expiration) if expiration else None,
                    last_login=_to_iso(account.last_login) if account.last_login else None,
                    created_at=_now_iso(),
                )
            )
            return result.inserted_primary_key[0]

    def create_credential(self, credential: Credential) -> int:
        """Insert a login method for an existing account and return its ID."""
        with self._writer(None) as conn:
            result = conn.execute(
                _logins.insert().values(
                    user_id=credential.user_id,
                    provider=credential.provider,
                    provider_key=credential.provider_key,
                    provider_token=credential.provider_token,
                )
            )
            return result.inserted_primary_key[0]

    # ------------------------------------------------------------------
    # Credential queries
    # ------------------------------------------------------------------

    def find_credential(self, provider: str, key: str, token: str) -> Credential | None:
        """Exact match on (provider, provider_key, provider_token). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _logins.select().where(
                    (_logins.c.provider == provider)
                    & (_logins.c.provider_key == key)
                    & (_logins.c.provider_token == token)
                )
            ).first()
        return _row_to_credential(row) if row is not None else None

    def find_credential_by_email(self, email: str) -> Credential | None:
        """Return the password login of the account with this email, or None."""
        stmt = (
            select(_logins)
            .join(_accounts, _accounts.c.id == _logins.c.user_id)
            .where((_accounts.c.email == email) & (_logins.c.provider == PROVIDER_PASSWORD))
        )
        with self.engine.connect() as conn:
            row = conn.execute(stmt).first()
        return _row_to_credential(row) if row is not None else None

    def update_credential(self, credential_id: int, conn: Connection | None = None, **fields) -> bool:
        """Update provider_key / provider_token. Returns False if credential_id was not found."""
        unknown = set(fields) - self._CREDENTIAL_FIELDS
        if unknown:
            raise ValueError(f"Unknown credential fields: {unknown!r}")
        if not fields:
            return False
        with self._writer(conn) as c:
            result = c.execute(_logins.update().where(_logins.c.id == credential_id).values(**fields))
        return result.rowcount > 0

    def get_credential(self, credential_id: int) -> Credential | None:
        with self.engine.connect() as conn:
            row = conn.execute(_logins.select().where(_logins.c.id == credential_id)).first()
        return _row_to_credential(row) if row is not None else None

    # ------------------------------------------------------------------
    # Account queries
    # ------------------------------------------------------------------

    def get_account(self, account_id: int) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).first()
        return _row_to_account(row) if row is not None else None

    def find_account_by_email(self, email: str) -> Account | None:
        """Exact (case-sensitive) email match. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).first()
        return _row_to_account(row) if row is not None else None

    def find_account_by_reset_token(self, token: str) -> Account | None:
        """Return the account holding this reset token if it has not expired yet."""
        with self.engine.connect() as conn:
            row = conn.execute(
                _accounts.select().where(
                    (_accounts.c.password_reset_token == token)
                    & (_accounts.c.password_reset_token_expiration.is_not(None))
                    & (_accounts.c.password_reset_token_expiration > _now_iso())
                )
            ).first()
        return _row_to_account(row) if row is not None else None

    def find_account_by_user_key(self, key: str) -> Account | None:
        """Look up an account by its session key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.user_key == key)).first()
        return _row_to_account(row) if row is not None else None

    def update_account(self, account_id: int, conn: Connection | None = None, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: email, status, password_reset_token,
        password_reset_token_expiration, last_login. Datetime values are
        converted to ISO text here. Unknown keys raise ValueError.

        Returns True if a row was updated, False if account_id was not found.
        """
        unknown = set(fields) - self._ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if not fields:
            return False
        for name in self._ACCOUNT_TIME_FIELDS & set(fields):
            if fields[name] is not None:
                fields[name] = _to_iso(fields[name])
        with self._writer(conn) as c:
            result = c.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Audit log
    # ------------------------------------------------------------------

    def insert_audit(self, entry: AuditEntry, conn: Connection | None = None) -> int:
        """Append an audit entry and return its ID. Entries are never updated."""
        with self._writer(conn) as c:
            result = c.execute(
                _user_logs.insert().values(
                    user_id=entry.user_id,
                    subject=entry.subject,
                    entry=entry.entry,
                    timestamp=_to_iso(entry.timestamp),
                )
            )
            return result.inserted_primary_key[0]

    def list_audit_entries(self, user_id: int) -> list[AuditEntry]:
        """Return all audit entries for an account, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _user_logs.select().where(_user_logs.c.user_id == user_id).order_by(_user_logs.c.id)
            ).fetchall()
        return [_row_to_audit(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        status=row.status,
        user_key=row.user_key,
        password_reset_token=row.password_reset_token,
        password_reset_token_expiration=_from_iso(row.password_reset_token_expiration),
        last_login=_from_iso(row.last_login),
        created_at=_from_iso(row.created_at),
    )


def _row_to_credential(row) -> Credential:
    return Credential(
        id=row.id,
        user_id=row.user_id,
        provider=row.provider,
        provider_key=row.provider_key,
        provider_token=row.provider_token,
    )


def _row_to_audit(row) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        user_id=row.user_id,
        subject=row.subject,
        entry=row.entry,
        timestamp=_from_iso(row.timestamp),
    )
