"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is used directly rather than through passlib: passlib's wrap-bug
detection hashes a >72 byte password, which bcrypt 4.x rejects outright.

bcrypt reads at most 72 bytes of input. Older releases silently truncate
longer passwords and bcrypt 5 raises ValueError, so the limit is enforced
here in UTF-8 bytes, not characters: hash() refuses a longer password and
verify() reports it as a mismatch. SignupRequest applies the same limit so
the API answers 400 before the hasher is reached.

Cost factor defaults to 10 (2^10 rounds). Tests pass rounds=4, the bcrypt
minimum, to keep the suite fast; hashes at any cost verify with the same code.
"""

from __future__ import annotations

import bcrypt

from auth.errors import HashFormatError

DEFAULT_ROUNDS = 10
MAX_PASSWORD_BYTES = 72


def password_too_long(plaintext: str) -> bool:
    return len(plaintext.encode("utf-8")) > MAX_PASSWORD_BYTES


class CredentialHasher:
    """One-way hash and verify for account passwords."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS) -> None:
        self.rounds = rounds
        # Timing equalization: signin for an unknown email still pays for one
        # bcrypt check, so response time does not reveal which emails exist.
        self._dummy_hash = self.hash("otpgate_timing_dummy")

    def hash(self, plaintext: str) -> str:
        """Return a bcrypt hash of plaintext with a fresh salt.

        Raises ValueError if plaintext is longer than MAX_PASSWORD_BYTES once
        UTF-8 encoded.
        """
        secret = plaintext.encode("utf-8")
        if len(secret) > MAX_PASSWORD_BYTES:
            raise ValueError(f"Password is longer than {MAX_PASSWORD_BYTES} bytes")
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(secret, salt).decode("utf-8")

    def verify(self, plaintext: str, hashed: str) -> bool:
        """Return True if plaintext matches hashed.

        A mismatch is False, never an exception; so is a password too long to
        have been hashed, which still costs one bcrypt check. A hashed value
        that is not a bcrypt hash at all raises HashFormatError.
        """
        secret = plaintext.encode("utf-8")
        if len(secret) > MAX_PASSWORD_BYTES:
            self._checkpw(secret[:MAX_PASSWORD_BYTES], hashed)
            return False
        return self._checkpw(secret, hashed)

    def dummy_verify(self, plaintext: str) -> None:
        """Burn one bcrypt check against a throwaway hash."""
        self.verify(plaintext, self._dummy_hash)

    @staticmethod
    def _checkpw(secret: bytes, hashed: str) -> bool:
        # secret is at most 72 bytes here, so a ValueError is about hashed.
        try:
            return bcrypt.checkpw(secret, hashed.encode("utf-8"))
        except ValueError as exc:
            raise HashFormatError(f"Malformed password hash: {exc}") from exc
