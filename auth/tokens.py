"""
auth/tokens.py -- Session tokens (JWT) and the session cookie.

Security design decisions:
  JWT: python-jose with HS256. Tokens are signed with SECRET_KEY and carry the
       account id (sub), email, iat and exp. A session is valid iff the
       signature verifies and exp is in the future; nothing is stored server
       side. SessionIssuer receives the secret through its constructor -- there
       is no module-level key.

  verify() raises instead of returning None so callers can tell an expired
       session from a forged one in logs. Both end up as 401 at the route.

  Cookie: "token", httpOnly (no JS access), SameSite=Strict (never sent on
       cross-site requests), Secure in production only. No Max-Age: the
       cookie lives for the browser session while the token itself expires
       server-side after token_expire_seconds.

  Clearing the cookie repeats every attribute used when it was set. Browsers
       match on name+path+domain, but some clients refuse to overwrite a
       Secure/SameSite cookie with a deletion that lacks the same flags.

Layer rule: no imports from api/. The cookie helpers take any Starlette
Response, which is the only framework type this module touches.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from auth.errors import ExpiredTokenError, InvalidTokenError
from auth.models import SessionClaims
from auth.store import Clock, utcnow

logger = logging.getLogger("otpgate.auth")

_ALGORITHM = "HS256"

SESSION_COOKIE = "token"
DEFAULT_SESSION_SECONDS = 24 * 60 * 60


class SessionIssuer:
    """Creates and validates signed session tokens."""

    def __init__(self, secret_key: str, ttl_seconds: int = DEFAULT_SESSION_SECONDS, clock: Clock = utcnow) -> None:
        self._secret_key = secret_key
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def issue(self, account_id: int, email: str) -> str:
        """Encode a signed JWT for account_id, expiring ttl_seconds from now."""
        issued_at = self._clock()
        payload = {
            "sub": str(account_id),  # RFC 7519: sub is a string
            "email": email,
            "iat": issued_at,
            "exp": issued_at + timedelta(seconds=self.ttl_seconds),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> SessionClaims:
        """Decode and verify a session token.

        Raises ExpiredTokenError if exp has passed, InvalidTokenError for a bad
        signature, a malformed token or missing claims.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except ExpiredSignatureError as exc:
            raise ExpiredTokenError("Session token has expired.") from exc
        except JWTError as exc:
            raise InvalidTokenError(f"Session token rejected: {exc}") from exc

        try:
            return SessionClaims(
                account_id=int(payload["sub"]),
                email=payload["email"],
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise InvalidTokenError("Session token is missing required claims.") from exc


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, token: str, secure: bool) -> None:
    """Write the session token as an httpOnly, SameSite=Strict cookie."""
    response.set_cookie(
        SESSION_COOKIE,
        value=token,
        httponly=True,
        samesite="strict",
        secure=secure,
    )


def clear_session_cookie(response, secure: bool) -> None:
    """Expire the session cookie using the same attributes set_session_cookie() used."""
    response.delete_cookie(
        SESSION_COOKIE,
        httponly=True,
        samesite="strict",
        secure=secure,
    )
