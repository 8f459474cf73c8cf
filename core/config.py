"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for OtpGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. Only the
      composition roots (api/main.py lifespan, main.py CLI) call it; services
      receive their collaborators through constructors.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. ENVIRONMENT decides the SECRET_KEY policy and the cookie
      Secure flag; MAIL_MODE decides which transport settings are mandatory.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT HS256 signing
  relies on key entropy -- a short key weakens every session token.

  In production (ENVIRONMENT=production, the default) a missing SECRET_KEY is
  a hard startup failure. Development generates a throwaway key.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("otpgate.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'otpgate_auth.db'}"

_MAIL_MODES = ("console", "smtp", "mailgun")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file (provided ENVIRONMENT=development
    or SECRET_KEY is set). The model_validator enforces production-safety
    rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    environment: str = "production"  # "production" or "development"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL
    cors_origins: list[str] = ["http://localhost:3000"]

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 86400  # 1 day
    otp_ttl_seconds: int = 300  # 5 minutes
    bcrypt_rounds: int = 10
    pending_purge_interval_seconds: int = 600

    # ------------------------------------------------------------------
    # Mail
    # ------------------------------------------------------------------

    mail_mode: str = "console"
    mail_from: str = ""
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_timeout_seconds: float = 10.0
    mailgun_api_key: str = ""
    mailgun_domain: str = ""

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def secure_cookies(self) -> bool:
        """Session cookies carry the Secure flag only in production (TLS)."""
        return self.is_production

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Development: auto-generate a random key with a warning. Sessions will
            not survive restart -- acceptable for local dev.

        Production: refuse to start if SECRET_KEY is missing. A random key in
            production would silently log every user out on each restart.

        Both: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if not self.is_production:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set ENVIRONMENT=development."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_mail(self) -> "Settings":
        """Reject a mail transport that is selected but not configured.

        MAIL_FROM falls back to SMTP_USER, mirroring the common setup where the
        authenticated SMTP account is also the sender address.
        """
        self.mail_mode = self.mail_mode.lower()
        if self.mail_mode not in _MAIL_MODES:
            raise ValueError(f"MAIL_MODE must be one of {_MAIL_MODES!r}, got {self.mail_mode!r}.")
        if not self.mail_from:
            self.mail_from = self.smtp_user or "no-reply@localhost"
        if self.mail_mode == "smtp" and not self.smtp_host:
            raise ValueError("SMTP_HOST is required when MAIL_MODE=smtp.")
        if self.mail_mode == "mailgun" and not (self.mailgun_api_key and self.mailgun_domain):
            raise ValueError("MAILGUN_API_KEY and MAILGUN_DOMAIN are required when MAIL_MODE=mailgun.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
