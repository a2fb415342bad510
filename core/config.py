"""
core/config.py -- Settings for the users router, its collection and its secrets.

Every knob is an environment variable (or a line in .env) named after the
field in upper case: SECRETS_DIR, SECRET_BYTES, USERS_DB_URL,
COLLECTION_NAME, USERS_PREFIX, BCRYPT_ROUNDS, TOKEN_EXPIRE_SECONDS,
ALLOWED_HOSTS, DEBUG. get_settings() builds them once per process;
create_app() also accepts an explicit Settings so tests can point each app
at its own temp directory and in-memory database.

COLLECTION_NAME is the default namespace: it names the SQL table, the
signing-secret file and the token audience, so it must be a single safe
path component (check_namespace).

Security notes:
  Signing secrets are NOT configured here. Each collection namespace gets its
  own random secret file under SECRETS_DIR, created on first use (see
  auth/secrets_store.py). SECRET_BYTES below 256 is rejected outright.

  TOKEN_EXPIRE_SECONDS defaults to 0, meaning issued tokens carry no exp
  claim and stay valid until the namespace secret is replaced. Deployments
  should set a positive value.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("jwtusers.config")

# Namespaces double as file names under SECRETS_DIR, so they are restricted
# to a single safe path component.
NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")

MIN_SECRET_BYTES = 256


def check_namespace(name: str) -> str:
    """Return name unchanged if it is usable as a namespace, else raise ValueError."""
    if not isinstance(name, str) or not NAMESPACE_PATTERN.match(name) or name in (".", ".."):
        raise ValueError(f"Invalid namespace {name!r}: use letters, digits, '_', '.' or '-'.")
    return name


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
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "testserver"]

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    secrets_dir: Path = Path("secrets")
    secret_bytes: int = MIN_SECRET_BYTES

    # ------------------------------------------------------------------
    # Users collection
    # ------------------------------------------------------------------

    users_db_url: str = "sqlite:///./jwtusers.db"
    collection_name: str = "users"
    users_prefix: str = "/users"
    bcrypt_rounds: int = 12

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    token_expire_seconds: int = 0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("secret_bytes")
    @classmethod
    def validate_secret_bytes(cls, value: int) -> int:
        if value < MIN_SECRET_BYTES:
            raise ValueError(f"SECRET_BYTES must be at least {MIN_SECRET_BYTES}.")
        return value

    @field_validator("collection_name")
    @classmethod
    def validate_collection_name(cls, value: str) -> str:
        return check_namespace(value)

    @field_validator("token_expire_seconds")
    @classmethod
    def validate_token_expire_seconds(cls, value: int) -> int:
        if value < 0:
            raise ValueError("TOKEN_EXPIRE_SECONDS must be 0 (no expiry) or positive.")
        if value == 0:
            logger.warning("TOKEN_EXPIRE_SECONDS=0 -- issued tokens will not expire.")
        return value

    @field_validator("users_prefix")
    @classmethod
    def validate_users_prefix(cls, value: str) -> str:
        """Normalize to a leading slash and no trailing slash. The root is not allowed."""
        value = value.strip().rstrip("/")
        if not value:
            raise ValueError("USERS_PREFIX must not be empty or '/'.")
        if not value.startswith("/"):
            value = "/" + value
        return value


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, reading the environment on first call.

    main.py and asgi.py go through here. Tests that change SECRETS_DIR or
    COLLECTION_NAME via monkeypatch must call get_settings.cache_clear().
    """
    return Settings()
