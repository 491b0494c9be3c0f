"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for CredGuard happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used for the DEBUG-conditional cost
      factor floor: dev mode may hash cheaply, production refuses to start
      with a weak bcrypt cost.

Two store URLs:
  DATABASE_URL is the authentication pathway. ADMIN_DATABASE_URL is the
  administrative/diagnostic pathway. They are expected to name the same
  physical store; the consistency auditor exists to catch the day they
  silently stop doing so. An empty ADMIN_DATABASE_URL means "same as
  DATABASE_URL".

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("credguard.config")

# Mirrors auth.models.Role. Kept as plain strings so core/ stays import-free.
KNOWN_ROLES = ("FAN", "CREATOR", "ADMIN")

# bcrypt's accepted log2 cost range.
MIN_BCRYPT_ROUNDS = 4
MAX_BCRYPT_ROUNDS = 31
# Anything below this is refused outside debug mode.
PRODUCTION_MIN_ROUNDS = 10


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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

    # ------------------------------------------------------------------
    # Credential store
    # ------------------------------------------------------------------

    # Empty string = the default SQLite file beside auth/store.py.
    database_url: str = ""
    admin_database_url: str = ""

    startup_grace_seconds: float = 30.0
    startup_connect_attempts: int = 5
    startup_retry_delay: float = 1.0

    # ------------------------------------------------------------------
    # Credentials
    # ------------------------------------------------------------------

    bcrypt_rounds: int = 12
    default_role: str = "FAN"
    rehash_on_login: bool = True

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    authorize_rate_limit: str = "10/minute"
    # memory:// keeps counters per process; redis://host:6379 shares them.
    rate_limit_storage_uri: str = "memory://"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # Host headers TrustedHostMiddleware accepts. JSON list in the env var.
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_credentials_policy(self) -> "Settings":
        """Reject cost factors bcrypt cannot use, and weak ones in production.

        Dev mode (DEBUG=true): any cost bcrypt accepts is allowed, so the test
            suite can run at cost 4.

        Production mode: a cost below PRODUCTION_MIN_ROUNDS is a hard startup
            failure. Lowering the cost only affects new hashes; existing
            hashes keep the cost they were written with.
        """
        if not MIN_BCRYPT_ROUNDS <= self.bcrypt_rounds <= MAX_BCRYPT_ROUNDS:
            raise ValueError(f"BCRYPT_ROUNDS must be between {MIN_BCRYPT_ROUNDS} and {MAX_BCRYPT_ROUNDS}.")
        if self.bcrypt_rounds < PRODUCTION_MIN_ROUNDS:
            if self.debug:
                logger.warning("Using bcrypt cost %d. Not suitable for production.", self.bcrypt_rounds)
            else:
                raise ValueError(
                    f"BCRYPT_ROUNDS below {PRODUCTION_MIN_ROUNDS} is refused in production mode. "
                    "To run with a cheap cost factor, set DEBUG=true."
                )
        self.default_role = self.default_role.upper()
        if self.default_role not in KNOWN_ROLES:
            raise ValueError(f"DEFAULT_ROLE must be one of {', '.join(KNOWN_ROLES)}.")
        if self.startup_connect_attempts < 1:
            raise ValueError("STARTUP_CONNECT_ATTEMPTS must be at least 1.")
        return self

    @property
    def resolved_admin_database_url(self) -> str:
        """The diagnostic pathway URL, falling back to the primary one."""
        return self.admin_database_url or self.database_url


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
