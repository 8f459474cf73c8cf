"""
auth/errors.py -- Exception taxonomy for the auth package.

Two families:

  AuthError and its subclasses are request-level outcomes. Each carries the
  machine-readable code, the client-facing message and the HTTP status the
  api/ layer should answer with. AuthService raises only these.

  HashFormatError, InvalidTokenError, ExpiredTokenError and MailDeliveryError
  are component-level failures raised by the hasher, the session issuer and
  the mailers. AuthService translates them at its boundary.

Layer rule: stdlib only. api/ maps AuthError to HTTP; auth/ never imports
fastapi here.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for request-level auth failures."""

    status_code: int = 400
    code: str = "auth_error"
    message: str = "Authentication error."

    def __init__(self, message: str | None = None, *, detail: str | None = None) -> None:
        self.message = message or self.message
        self.detail = detail
        super().__init__(self.message)


class BadRequestError(AuthError):
    code = "bad_request"
    message = "All fields are required."


class ConflictError(AuthError):
    """Duplicate account or outstanding pending registration.

    Reported as 400 (not 409) to keep the signup contract at 400/500.
    """

    code = "conflict"
    message = "User already exists."


class NotFoundError(AuthError):
    code = "otp_not_found"
    message = "OTP not found. Please sign up again."


class ExpiredError(AuthError):
    code = "otp_expired"
    message = "OTP expired. Please sign up again."


class InvalidOtpError(AuthError):
    code = "invalid_otp"
    message = "Invalid OTP. Please try again."


class UnauthorizedError(AuthError):
    status_code = 401
    code = "unauthorized"
    message = "Unauthorized."


class ServerError(AuthError):
    status_code = 500
    code = "server_error"
    message = "Server error."


# ---------------------------------------------------------------------------
# Component errors
# ---------------------------------------------------------------------------


class HashFormatError(ValueError):
    """The stored password hash is not a valid bcrypt hash."""


class InvalidTokenError(Exception):
    """Session token is malformed, has a bad signature, or lacks claims."""


class ExpiredTokenError(InvalidTokenError):
    """Session token signature is valid but its exp claim has passed."""


class MailDeliveryError(Exception):
    """The mail transport could not hand the message off."""
