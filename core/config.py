"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the billing auth service happen here. No
module should call os.getenv() or os.environ.get() directly -- import
get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The
      instance is treated as read-only after startup and handed explicitly to
      the service constructors (TokenService, OtpEngine, AdminProvisioning,
      build_mailer) -- services never reach back into get_settings().

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET, otp_expire_min -> OTP_EXPIRE_MIN).

  @model_validator(mode="after"): Cross-field validation once all fields are
      resolved. Dev mode (DEBUG=true) generates missing signing secrets with a
      warning; production mode refuses to start without them.

Security notes:
  Signing secrets shorter than 32 chars are rejected outright. Access and
  refresh tokens use separate secrets so a leaked access secret cannot mint
  refresh tokens.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("billingauth.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'billing_auth.db'}"

_MIN_SECRET_LENGTH = 32

_DEFAULT_ACCESS_EXPIRE = "1h"
_DEFAULT_REFRESH_EXPIRE = "7d"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Every field has a default except the two signing secrets, which the
    model_validator fills in (debug) or demands (production).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = _DEFAULT_DB_URL
    host: str = "0.0.0.0"  # nosec B104 -- bind address for the container entrypoint
    port: int = 4000
    cors_allow_origins: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    jwt_secret: str = ""
    jwt_refresh_secret: str = ""
    # Duration strings: <integer><d|h|m|s>, see auth.tokens.parse_duration
    jwt_expire: str = _DEFAULT_ACCESS_EXPIRE
    jwt_refresh_expire: str = _DEFAULT_REFRESH_EXPIRE

    # ------------------------------------------------------------------
    # OTP and passwords
    # ------------------------------------------------------------------

    otp_expire_min: int = 10
    bcrypt_rounds: int = 10

    # ------------------------------------------------------------------
    # First admin bootstrap (inert once an Admin exists)
    # ------------------------------------------------------------------

    first_admin_name: str = ""
    first_admin_email: str = ""
    first_admin_password: str = ""

    # ------------------------------------------------------------------
    # Email transport
    # ------------------------------------------------------------------

    email_backend: str = "smtp"  # "smtp" or "console"
    email_host: str = "smtp.gmail.com"
    email_port: int = 587
    email_user: str = ""
    email_pass: str = ""
    email_from: str = ""

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the signing secret policy for both JWT secrets.

        Dev mode (DEBUG=true): auto-generate a random secret with a warning.
            Tokens will not survive a restart -- acceptable for local dev.

        Production mode: refuse to start if either secret is missing.

        Both modes: reject secrets shorter than 32 characters.
        """
        for field in ("jwt_secret", "jwt_refresh_secret"):
            value = getattr(self, field)
            if not value:
                if not self.debug:
                    raise ValueError(
                        f"{field.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
                value = secrets.token_hex(32)
                setattr(self, field, value)
                logger.warning("Using auto-generated %s. Tokens will not persist across restarts.", field.upper())
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{field.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        # JWT_EXPIRE= (set but blank) means "use the default", not parse_duration's 7d fallback.
        if not self.jwt_expire.strip():
            self.jwt_expire = _DEFAULT_ACCESS_EXPIRE
        if not self.jwt_refresh_expire.strip():
            self.jwt_refresh_expire = _DEFAULT_REFRESH_EXPIRE
        if self.email_backend not in ("smtp", "console"):
            raise ValueError("EMAIL_BACKEND must be 'smtp' or 'console'.")
        return self

    @property
    def first_admin_configured(self) -> bool:
        return bool(self.first_admin_name and self.first_admin_email and self.first_admin_password)

    @property
    def sender_address(self) -> str:
        return self.email_from or self.email_user


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
