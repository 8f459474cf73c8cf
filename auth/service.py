"""
auth/service.py -- Signup, OTP verification and session orchestration.

Per email address the service walks a small state machine:

    NoAccount --signup--> PendingVerification --verify_otp--> Verified

PendingVerification is a row in pending_registrations; Verified is a row in
accounts. Sessions are stateless signed tokens and never touch the database.

Collaborators are injected through the constructor: both stores, the hasher,
the mailer, the session issuer, the OTP generator and the clock. The service
holds no other state, so one instance is shared by every request thread.

Failure contract: every method raises an AuthError subclass. Downstream
failures (database, mail transport, malformed stored hash) surface as
ServerError with the original exception chained.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sqlalchemy.exc import SQLAlchemyError

from auth.errors import (
    BadRequestError,
    ConflictError,
    ExpiredError,
    ExpiredTokenError,
    HashFormatError,
    InvalidOtpError,
    InvalidTokenError,
    MailDeliveryError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)
from auth.mailer import Mailer, otp_message
from auth.models import Account, SessionClaims
from auth.otp import generate_otp
from auth.passwords import CredentialHasher
from auth.store import AccountStore, Clock, PendingRegistrationStore, utcnow
from auth.tokens import SessionIssuer

logger = logging.getLogger("otpgate.auth")

DEFAULT_OTP_TTL_SECONDS = 300

_BAD_CREDENTIALS = "Invalid email or password"


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AuthService:
    def __init__(
        self,
        accounts: AccountStore,
        pending: PendingRegistrationStore,
        hasher: CredentialHasher,
        mailer: Mailer,
        sessions: SessionIssuer,
        otp_generator: Callable[[], int] = generate_otp,
        clock: Clock = utcnow,
        otp_ttl_seconds: int = DEFAULT_OTP_TTL_SECONDS,
    ) -> None:
        self.accounts = accounts
        self.pending = pending
        self.hasher = hasher
        self.mailer = mailer
        self.sessions = sessions
        self._generate_otp = otp_generator
        self._clock = clock
        self.otp_ttl_seconds = otp_ttl_seconds

    # ------------------------------------------------------------------
    # Signup
    # ------------------------------------------------------------------

    def signup(self, name: str | None, email: str | None, password: str | None) -> None:
        """Start a registration: store a pending record and mail its OTP.

        Nothing is written to accounts here. An unexpired pending record for
        the same email is a conflict; an expired one is replaced.

        If the mail cannot be sent the pending record is deleted again before
        ServerError is raised, so a failed signup leaves no state behind and
        the user can simply retry.
        """
        name = (name or "").strip()
        email = normalize_email(email)
        if not name or not email or not password:
            raise BadRequestError()

        try:
            if self.accounts.find_by_email(email) is not None:
                raise ConflictError("User already exists.")

            existing = self.pending.find_by_email(email)
            if existing is not None:
                if not existing.is_expired(self._clock()):
                    raise ConflictError("A verification code was already sent to this email.")
                self.pending.delete_by_email(email)

            try:
                password_hash = self.hasher.hash(password)
            except ValueError as exc:
                logger.exception("Password hashing failed for %s", email)
                raise ServerError() from exc
            otp = self._generate_otp()
            self.pending.create(email, name, password_hash, otp, self.otp_ttl_seconds)
        except SQLAlchemyError as exc:
            logger.exception("Signup storage failure for %s", email)
            raise ServerError() from exc

        subject, body = otp_message(otp, self.otp_ttl_seconds)
        try:
            self.mailer.send(email, subject, body)
        except MailDeliveryError as exc:
            logger.error("OTP mail to %s failed, discarding pending registration: %s", email, exc)
            try:
                self.pending.delete_by_email(email)
            except SQLAlchemyError:
                # The expiry sweep removes it later.
                logger.exception("Could not discard pending registration for %s", email)
            raise ServerError("Could not send the verification email.") from exc

        logger.info("Pending registration created for %s", email)

    # ------------------------------------------------------------------
    # OTP verification
    # ------------------------------------------------------------------

    def verify_otp(self, email: str | None, otp: str | int | None) -> Account:
        """Promote a pending registration to an account if otp matches.

        Order of checks matters: expiry is tested before the code, so a late
        attempt consumes the record even when the code is right. A wrong code
        keeps the record so the user can retry until it expires.
        """
        email = normalize_email(email)
        submitted = str(otp).strip() if otp is not None else ""
        if not email or not submitted:
            raise BadRequestError("Email and OTP are required.")

        try:
            record = self.pending.find_by_email(email)
            if record is None:
                raise NotFoundError()

            if record.is_expired(self._clock()):
                self.pending.delete_by_email(email)
                logger.info("Expired OTP attempt for %s, pending registration removed", email)
                raise ExpiredError()

            try:
                code = int(submitted)
            except ValueError:
                code = None
            if code != record.otp:
                logger.info("Invalid OTP attempt for %s", email)
                raise InvalidOtpError()

            account = self.accounts.create(record.name, record.email, record.password_hash)
            self.pending.delete_by_email(email)
        except SQLAlchemyError as exc:
            logger.exception("OTP verification storage failure for %s", email)
            raise ServerError() from exc

        logger.info("Account %s created for %s", account.id, email)
        return account

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def signin(self, email: str | None, password: str | None) -> tuple[Account, str]:
        """Check credentials and issue a session token.

        Unknown email and wrong password raise the same UnauthorizedError, and
        both pay for one bcrypt check, so neither the body nor the timing
        tells an attacker which emails are registered.
        """
        email = normalize_email(email)
        password = password or ""

        try:
            account = self.accounts.find_by_email(email) if email else None
            if account is None:
                self.hasher.dummy_verify(password)
                raise UnauthorizedError(_BAD_CREDENTIALS)
            if not self.hasher.verify(password, account.password_hash):
                raise UnauthorizedError(_BAD_CREDENTIALS)
        except (SQLAlchemyError, HashFormatError) as exc:
            logger.exception("Signin failure for %s", email)
            raise ServerError() from exc

        token = self.sessions.issue(account.id, account.email)
        logger.info("Account %s signed in", account.id)
        return account, token

    def verify_session(self, token: str | None) -> SessionClaims:
        """Verify a session token. Raises UnauthorizedError on any failure."""
        if not token:
            raise UnauthorizedError()
        try:
            return self.sessions.verify(token)
        except ExpiredTokenError as exc:
            raise UnauthorizedError("Session expired.") from exc
        except InvalidTokenError as exc:
            logger.warning("Rejected session token: %s", exc)
            raise UnauthorizedError() from exc

    def me(self, token: str | None) -> Account:
        """Return the account behind a session token, looked up fresh."""
        claims = self.verify_session(token)
        try:
            account = self.accounts.find_by_id(claims.account_id)
        except SQLAlchemyError as exc:
            logger.exception("Session lookup failure for account %s", claims.account_id)
            raise ServerError() from exc
        if account is None:
            raise UnauthorizedError()
        return account

    def logout(self, token: str | None) -> SessionClaims | None:
        """Record a logout and return the claims of the session being ended.

        Sessions are stateless, so nothing is revoked here; the caller clears
        the cookie. A missing, forged or expired token is not an error.
        """
        if not token:
            return None
        try:
            claims = self.sessions.verify(token)
        except InvalidTokenError:
            logger.info("Logout with an invalid or expired session token")
            return None
        logger.info("Account %s signed out", claims.account_id)
        return claims
