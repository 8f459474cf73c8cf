"""
API request and response models for OtpGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Request fields are Optional on purpose: a missing field is a domain-level
BadRequestError raised by AuthService ("All fields are required"), not a
framework validation error with a different envelope.
"""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from auth.models import Account
from auth.passwords import MAX_PASSWORD_BYTES, password_too_long

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class SignupRequest(BaseModel):
    """Request body for POST /api/v1/auth/signup."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, max_length=255)
    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=MAX_PASSWORD_BYTES)

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        # max_length counts characters; bcrypt counts UTF-8 bytes.
        if value is not None and password_too_long(value):
            raise ValueError(f"must be at most {MAX_PASSWORD_BYTES} bytes when UTF-8 encoded")
        return value


class VerifyOtpRequest(BaseModel):
    """Request body for POST /api/v1/auth/verify-otp.

    otp is accepted as a string or a number; AuthService parses it as an
    integer before comparing.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    otp: Optional[Union[str, int]] = None


class SigninRequest(BaseModel):
    """Request body for POST /api/v1/auth/signin."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    # No byte check: a password too long to hash is just a failed signin.
    password: Optional[str] = Field(default=None, max_length=MAX_PASSWORD_BYTES)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class VerifyOtpResponse(BaseModel):
    """Response for a successful POST /api/v1/auth/verify-otp (201)."""

    model_config = ConfigDict(frozen=True)

    message: str
    userId: int  # noqa: N815 -- wire name is camelCase


class UserInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    email: str

    @classmethod
    def from_account(cls, account: Account) -> "UserInfo":
        return cls(id=account.id, email=account.email)


class SigninResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    user: UserInfo


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user: UserInfo


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
