"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the enrollment portal happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates missing secrets with a
      warning; production mode refuses to start without them.

Security notes:
  [M6] Secrets shorter than 32 chars are rejected outright. Session id hashing
       and JWT signing both rely on key entropy -- a short key weakens both.

  [M7] In production mode (DEBUG not set or false), a missing SESSION_SECRET or
       JWT_SECRET is a hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
registrar/, sessions/, or notifications/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("enrollment.config")

_MIN_SECRET_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
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
    environment: str = Field(
        default="development",
        validation_alias=AliasChoices("ENVIRONMENT", "NODE_ENV"),
    )
    host: str = "0.0.0.0"  # nosec B104 -- bind address for the container
    port: int = 5000
    client_origin: str = "http://localhost:5000"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]

    # Empty string = local SQLite fallback (see core.database).
    database_url: str = ""

    # ------------------------------------------------------------------
    # Sessions (cookie-backed, server-side)
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    session_secret: str = ""
    session_ttl_seconds: int = 24 * 60 * 60
    session_db_path: str = ""
    session_auth_enabled: bool = True
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Bearer tokens
    # ------------------------------------------------------------------

    jwt_secret: str = ""
    token_expire_seconds: int = 24 * 60 * 60
    token_auth_enabled: bool = True

    # ------------------------------------------------------------------
    # Email (SMTP) -- empty user/pass means email delivery is disabled
    # ------------------------------------------------------------------

    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_pass: str = ""
    smtp_from: str = ""
    smtp_use_tls: bool = True

    # ------------------------------------------------------------------
    # SMS (Twilio) -- empty values mean SMS delivery is disabled
    # ------------------------------------------------------------------

    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_phone_number: str = ""

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"

    # ------------------------------------------------------------------
    # Derived
    # ------------------------------------------------------------------

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def email_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_pass)

    @property
    def sms_configured(self) -> bool:
        # Twilio account SIDs always start with "AC"; anything else is a placeholder.
        return bool(
            self.twilio_account_sid.startswith("AC") and self.twilio_auth_token and self.twilio_phone_number
        )

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Enforce the secret policy for SESSION_SECRET and JWT_SECRET [M7].

        Dev mode (DEBUG=true): auto-generate a random secret with a warning.
            Sessions and tokens will not survive restart.

        Production mode (DEBUG=false or not set): refuse to start if either
            secret is missing.

        Both modes: reject secrets shorter than 32 characters [M6].
        """
        for name in ("session_secret", "jwt_secret"):
            value = getattr(self, name)
            if not value:
                if self.debug:
                    value = secrets.token_hex(32)
                    setattr(self, name, value)
                    logger.warning(
                        "Using auto-generated %s. Logins will not persist across restarts.", name.upper()
                    )
                else:
                    raise ValueError(
                        f"{name.upper()} is required in production mode. "
                        "Set it in your environment or .env file. "
                        "To run in development mode, set DEBUG=true."
                    )
            if len(value) < _MIN_SECRET_LENGTH:
                raise ValueError(f"{name.upper()} must be at least {_MIN_SECRET_LENGTH} characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
