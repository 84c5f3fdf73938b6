"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for ChatLink happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. crypto_key -> CRYPTO_KEY, ccube_app_id -> CCUBE_APP_ID).

  @model_validator(mode="after"): DEBUG-conditional key policy. Dev mode
      generates SECRET_KEY / CRYPTO_KEY with a warning, production mode refuses
      to start without them.

The sync layer (chat/) never calls get_settings() itself. api/main.py reads the
singleton once at startup and passes it into the orchestrator, gateway and
codec constructors, so there is no ambient remote-platform state.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY or
       CRYPTO_KEY is a hard startup failure. A random CRYPTO_KEY in production
       would make every stored remote secret undecryptable after a restart.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or chat/.
"""

import logging
import secrets
from functools import lru_cache

from cryptography.fernet import Fernet
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("chatlink.config")

_DEFAULT_DB_URL = "sqlite:///chatlink.db"


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
    # Empty string is the sentinel for "not configured" (see validator).
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Secondary credential encryption
    # ------------------------------------------------------------------

    # Fernet key (urlsafe base64, 32 bytes). Encrypts the remote platform
    # password stored on each user row.
    crypto_key: str = ""

    # ------------------------------------------------------------------
    # Remote messaging platform (ConnectyCube)
    # ------------------------------------------------------------------

    ccube_app_id: str = ""
    ccube_auth_key: str = ""
    ccube_auth_secret: str = ""
    ccube_api_url: str = "https://api.connectycube.com"
    # Applied to every outbound call (connect + read).
    remote_timeout_seconds: float = 10.0
    remote_push_environment: str = "development"

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    secure_cookies: bool = False
    token_expire_seconds: int = 3600

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_keys(self) -> "Settings":
        """Enforce SECRET_KEY and CRYPTO_KEY policy [M6][M7].

        Dev mode (DEBUG=true): auto-generate missing keys with a warning.
        Production mode: refuse to start if either key is missing.
        Both modes: reject SECRET_KEY shorter than 32 characters and a
        CRYPTO_KEY that Fernet cannot load.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")

        if not self.crypto_key:
            if self.debug:
                self.crypto_key = Fernet.generate_key().decode("ascii")
                logger.warning(
                    "WARNING: Using auto-generated CRYPTO_KEY. "
                    "Stored remote credentials will be unreadable after a restart."
                )
            else:
                raise ValueError(
                    "CRYPTO_KEY is required in production mode. " "Generate one with: python main.py gen-key"
                )
        try:
            Fernet(self.crypto_key.encode("ascii"))
        except (ValueError, UnicodeEncodeError) as exc:
            raise ValueError("CRYPTO_KEY must be a urlsafe base64-encoded 32-byte key.") from exc

        if self.remote_push_environment not in ("development", "production"):
            raise ValueError("REMOTE_PUSH_ENVIRONMENT must be 'development' or 'production'.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
