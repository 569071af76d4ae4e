"""Configuration service for the todolist service.

Settings are read once per process from environment variables (optionally
primed from a dotenv file picked by ``APP_ENV``) into an immutable record that is
then passed explicitly to every component that needs it.
"""

import os
from datetime import timedelta
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.app_error import Errors
from common.utils.utils import get_logger, parse_duration

logger = get_logger()

_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent.parent


class HttpConfig(BaseModel):
    """HTTP listener configuration."""

    model_config = ConfigDict(frozen=True)

    host: str = "0.0.0.0"
    port: int
    prefix: str = ""
    enable_cors: bool = False


class PostgresConfig(BaseModel):
    """Postgres connection configuration used by the migration commands."""

    model_config = ConfigDict(frozen=True)

    url: str | None = None
    debug: bool = False
    migrate: bool = False

    def require_url(self) -> str:
        if not self.url:
            raise Errors.Config.MISSING_DATABASE_URL.create()
        return self.url

    @property
    def sync_url(self) -> str:
        """The database URL in the form SQLAlchemy's default sync driver expects."""
        url = self.require_url()
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql://", 1)
        if url.startswith("postgresql+asyncpg://"):
            return url.replace("postgresql+asyncpg://", "postgresql://", 1)
        return url


class DatabaseSettings(BaseSettings):
    """Settings needed by the database commands, bound from environment variables."""

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=True,
        populate_by_name=True,
    )

    service_name: str = Field(default="todolist", alias="SERVICE_NAME")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    postgres_url: str | None = Field(default=None, alias="POSTGRES_URL")
    postgres_debug: bool = Field(default=False, alias="POSTGRES_DEBUG")
    postgres_migrate: bool = Field(default=False, alias="POSTGRES_MIGRATE")

    @field_validator("postgres_url")
    @classmethod
    def _empty_url_is_unset(cls, value: str | None) -> str | None:
        return value or None

    @property
    def postgres(self) -> PostgresConfig:
        return PostgresConfig(url=self.postgres_url, debug=self.postgres_debug, migrate=self.postgres_migrate)


class Settings(DatabaseSettings):
    """Application settings bound from environment variables."""

    # HTTP
    http_host: str = Field(default="0.0.0.0", alias="HTTP_HOST")
    http_port: int = Field(..., alias="HTTP_PORT", ge=0, le=65535)
    http_path_prefix: str = Field(default="", alias="HTTP_PATH_PREFIX")
    http_enable_cors: bool = Field(default=False, alias="HTTP_ENABLE_CORS")

    # Service
    version: str = Field(default="unknown", alias="APP_VERSION")
    telemetry_port: int = Field(default=3030, alias="TELEMETRY_PORT", ge=0, le=65535)
    shutdown_timeout: timedelta = Field(default=timedelta(seconds=20), alias="SHUTDOWN_TIMEOUT")

    @field_validator("http_path_prefix")
    @classmethod
    def _normalize_prefix(cls, value: str) -> str:
        prefix = value.strip().rstrip("/")
        if prefix and not prefix.startswith("/"):
            prefix = f"/{prefix}"
        return prefix

    @field_validator("shutdown_timeout", mode="before")
    @classmethod
    def _parse_shutdown_timeout(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = parse_duration(value)
        elif isinstance(value, int | float) and not isinstance(value, bool):
            try:
                value = timedelta(seconds=value)
            except OverflowError as e:
                raise ValueError(f"duration {value!r} out of range") from e
        if isinstance(value, timedelta) and value < timedelta(0):
            raise ValueError("shutdown timeout must not be negative")
        return value

    @property
    def http(self) -> HttpConfig:
        return HttpConfig(
            host=self.http_host,
            port=self.http_port,
            prefix=self.http_path_prefix,
            enable_cors=self.http_enable_cors,
        )


def get_env_file_path() -> Path | None:
    """Pick the dotenv file for the current ``APP_ENV``.

    ``.env.<APP_ENV>`` wins, then the generic ``.env`` (which ``just env <name>``
    links to one of the environment files).
    """
    env = os.getenv("APP_ENV", "local")
    for candidate in (_PROJECT_ROOT / f".env.{env}", _PROJECT_ROOT / ".env"):
        if candidate.exists():
            return candidate
    return None


def load_env_file(env_file: Path | None) -> None:
    """Load the dotenv file into the process environment without overriding it."""
    if env_file is None:
        logger.debug("No environment file found. Using process environment only.")
        return
    logger.debug("Loading environment file", env_file=str(env_file))
    _ = load_dotenv(env_file, override=False)


def load_settings(env_file: Path | None = None, **overrides: Any) -> Settings:
    """Load and validate settings, failing fast on any invalid or missing value.

    Args:
        env_file: Optional dotenv file whose values fill in unset variables.
        **overrides: Explicit values (by env var name) that take precedence over the environment.

    Raises:
        AppException: ``config/invalid`` naming every offending variable.
    """
    return _load(Settings, env_file, overrides)


def load_database_settings(env_file: Path | None = None, **overrides: Any) -> DatabaseSettings:
    """Like :func:`load_settings` but only requires what the database commands need."""
    return _load(DatabaseSettings, env_file, overrides)


def _load[S: DatabaseSettings](settings_cls: type[S], env_file: Path | None, overrides: dict[str, Any]) -> S:
    load_env_file(env_file)
    try:
        return settings_cls(**overrides)
    except ValidationError as e:
        problems = {
            ".".join(str(part) for part in error["loc"]) or "settings": error["msg"] for error in e.errors()
        }
        raise Errors.Config.INVALID.create(
            message=f"Invalid configuration: {', '.join(sorted(problems))}",
            details=problems,
            cause=e,
        ) from e
