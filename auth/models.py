"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic beyond derived checks).
Dataclasses own domain shape; stores and the service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class PendingRegistration:
    """An unverified signup awaiting OTP confirmation.

    Nothing here is an account yet. The password is already hashed so the
    row can be promoted to an Account verbatim once the OTP matches.
    """

    email: str
    name: str
    password_hash: str
    otp: int
    expires_at: datetime  # timezone-aware UTC
    created_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at


@dataclass
class Account:
    """A verified user. Created only by a successful OTP verification."""

    name: str
    email: str
    password_hash: str
    id: int | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class SessionClaims:
    """Verified contents of a session token."""

    account_id: int
    email: str
    issued_at: datetime
    expires_at: datetime
