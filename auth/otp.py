"""
auth/otp.py -- One-time password generation.

secrets.randbelow draws from the OS CSPRNG, so codes are not predictable from
earlier ones the way random.randint output would be.
"""

from __future__ import annotations

import secrets

OTP_MIN = 100000
OTP_MAX = 999999


def generate_otp() -> int:
    """Return a uniformly distributed 6-digit code in [100000, 999999]."""
    return OTP_MIN + secrets.randbelow(OTP_MAX - OTP_MIN + 1)
