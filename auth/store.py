"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper.
PendingRegistrationStore and AccountStore are the repositories;
_row_to_pending / _row_to_account are the mappers. The service and the routes
never touch SQL directly.

Both repositories share one Engine built by create_db_engine(). Every method
opens its own connection and commits before returning, so each call is one
atomic single-row operation -- the only atomicity the service relies on.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness:
  pending_registrations.email and accounts.email are UNIQUE. An insert that
  collides raises ConflictError. This is what settles two concurrent
  verify-otp calls for the same email: the second account insert loses.

Timestamps are stored as ISO 8601 UTC strings with fixed microsecond
precision, so string comparison in purge_expired() matches time order.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.errors import ConflictError
from auth.models import Account, PendingRegistration

Clock = Callable[[], datetime]

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_pending = Table(
    "pending_registrations",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(255), nullable=False),
    Column("password_hash", Text, nullable=False),
    Column("otp", Integer, nullable=False),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(255), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_db_engine(db_url: str) -> Engine:
    """Build the shared Engine and make sure both tables exist."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str) -> datetime:
    return datetime.fromisoformat(value)


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class PendingRegistrationStore:
    """Repository for unverified signups, keyed by email.

    Usage:
        pending = PendingRegistrationStore(engine)
        pending.create("a@x.com", "A", pw_hash, 123456, ttl_seconds=300)
        row = pending.find_by_email("a@x.com")
        pending.delete_by_email("a@x.com")
    """

    def __init__(self, engine: Engine, clock: Clock = utcnow) -> None:
        self.engine = engine
        self._clock = clock

    def create(self, email: str, name: str, password_hash: str, otp: int, ttl_seconds: int) -> PendingRegistration:
        """Insert a pending registration expiring ttl_seconds from now.

        Raises ConflictError if one already exists for email.
        """
        now = self._clock()
        record = PendingRegistration(
            email=email,
            name=name,
            password_hash=password_hash,
            otp=otp,
            expires_at=now + timedelta(seconds=ttl_seconds),
            created_at=now,
        )
        try:
            with self.engine.connect() as conn:
                conn.execute(
                    _pending.insert().values(
                        email=record.email,
                        name=record.name,
                        password_hash=record.password_hash,
                        otp=record.otp,
                        expires_at=_to_iso(record.expires_at),
                        created_at=_to_iso(now),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError("A verification is already pending for this email.") from exc
        return record

    def find_by_email(self, email: str) -> PendingRegistration | None:
        with self.engine.connect() as conn:
            row = conn.execute(_pending.select().where(_pending.c.email == email)).fetchone()
        return _row_to_pending(row) if row is not None else None

    def delete_by_email(self, email: str) -> bool:
        """Delete the pending registration for email. Idempotent.

        Returns True if a row was removed, False if there was nothing to delete.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_pending.delete().where(_pending.c.email == email))
            conn.commit()
        return result.rowcount > 0

    def purge_expired(self) -> int:
        """Delete every pending registration past its expiry. Returns rows removed."""
        cutoff = _to_iso(self._clock())
        with self.engine.connect() as conn:
            result = conn.execute(_pending.delete().where(_pending.c.expires_at < cutoff))
            conn.commit()
        return result.rowcount


class AccountStore:
    """Repository for verified accounts."""

    def __init__(self, engine: Engine, clock: Clock = utcnow) -> None:
        self.engine = engine
        self._clock = clock

    def create(self, name: str, email: str, password_hash: str) -> Account:
        """Insert an account and return it with its assigned ID.

        Raises ConflictError if email is already registered. Callers check
        find_by_email() first for a friendly error; the UNIQUE index is the
        real guarantee.
        """
        now = self._clock()
        try:
            with self.engine.connect() as conn:
                result = conn.execute(
                    _accounts.insert().values(
                        name=name,
                        email=email,
                        password_hash=password_hash,
                        created_at=_to_iso(now),
                    )
                )
                conn.commit()
        except IntegrityError as exc:
            raise ConflictError() from exc
        return Account(
            id=result.inserted_primary_key[0],
            name=name,
            email=email,
            password_hash=password_hash,
            created_at=now,
        )

    def find_by_email(self, email: str) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: int) -> Account | None:
        with self.engine.connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_pending(row) -> PendingRegistration:
    return PendingRegistration(
        email=row.email,
        name=row.name,
        password_hash=row.password_hash,
        otp=row.otp,
        expires_at=_from_iso(row.expires_at),
        created_at=_from_iso(row.created_at),
    )


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        name=row.name,
        email=row.email,
        password_hash=row.password_hash,
        created_at=_from_iso(row.created_at),
    )
