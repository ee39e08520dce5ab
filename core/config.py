"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for Queso happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET).

  @model_validator(mode="after"): Cross-field validation once every field is
      resolved. Missing required secrets raise here, which aborts startup.

Security notes:
  JWT_SECRET shorter than 32 chars is rejected outright. HS256 signing relies
  on key entropy -- a short key weakens every issued token.

  There is no auto-generated fallback secret. A server started without
  JWT_SECRET or the Google OAuth credentials refuses to boot.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or users/.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("queso.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Required values (JWT_SECRET, GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET,
    GOOGLE_REDIRECT_URL) default to the empty string, which is the sentinel
    for "not configured". The model_validator turns any empty required value
    into a startup failure.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    log_level: str = "INFO"
    database_url: str = "sqlite:///queso.db"
    cors_origins: list[str] = ["http://localhost:5173"]

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    jwt_secret: str = ""

    # ------------------------------------------------------------------
    # Google OAuth
    # ------------------------------------------------------------------

    google_client_id: str = ""
    google_client_secret: str = ""
    google_redirect_url: str = ""
    google_auth_url: str = "https://accounts.google.com/o/oauth2/v2/auth"
    google_token_url: str = "https://oauth2.googleapis.com/token"
    google_userinfo_url: str = "https://www.googleapis.com/oauth2/v2/userinfo"
    oauth_timeout_seconds: float = 10.0
    # How a username is picked for an account created on first Google login.
    oauth_username_policy: Literal["email_local_part", "display_name"] = "email_local_part"

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_required(self) -> "Settings":
        """Refuse to build a Settings object with missing required values.

        Both the signing secret and the OAuth client configuration are needed
        before the first request can be served, so their absence is a startup
        error rather than something each request discovers on its own.
        """
        missing = [
            name.upper()
            for name in ("jwt_secret", "google_client_id", "google_client_secret", "google_redirect_url")
            if not getattr(self, name)
        ]
        if missing:
            raise ValueError(
                f"Missing required configuration: {', '.join(missing)}. "
                "Set them in your environment or .env file."
            )
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if "*" in self.cors_origins:
            logger.warning("CORS_ORIGINS contains '*'; any site can call the API from a browser.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
