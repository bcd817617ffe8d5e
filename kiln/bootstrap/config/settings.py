import os
from pathlib import Path
from typing import Annotated, Any, Literal, Mapping

from dotenv import dotenv_values
from pydantic import Field, TypeAdapter, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kiln.core.exception import ConfigError

REQUIRED_ENV_VARS = (
    "PORT",
    "APP_SECRET",
    "JWT_EXPIRES_IN",
)

DATABASE_ENV_VARS = (
    "PG_HOST",
    "PG_PORT",
    "PG_USER",
    "PG_PASSWORD",
    "PG_DATABASE",
)

POOLED_SHUTDOWN_TIMEOUT = 15.0
PLAIN_SHUTDOWN_TIMEOUT = 30.0

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]

_BOOL = TypeAdapter(bool)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    port: Annotated[
        int,
        Field(
            description="TCP port the HTTP listener binds to. 0 lets the OS pick one.",
            default=8000,
            ge=0,
            le=65535,
        )
    ]

    host: Annotated[
        str,
        Field(description="Bind address of the HTTP listener.", default="0.0.0.0")
    ]

    app_env: Annotated[
        str,
        Field(description="Deployment environment name.", default="development")
    ]

    app_secret: Annotated[
        str,
        Field(description="Secret used to sign bearer tokens.", default="")
    ]

    jwt_expires_in: Annotated[
        str,
        Field(description="Lifetime of issued bearer tokens, e.g. '1d'.", default="")
    ]

    database_enabled: Annotated[
        bool,
        Field(
            description=(
                "Whether the PostgreSQL pool is part of the process.\n"
                "When disabled the PG_* variables are not required and the\n"
                "shutdown timeout defaults to 30 seconds instead of 15."
            ),
            default=True,
        )
    ]

    pg_host: Annotated[str, Field(default="")]
    pg_port: Annotated[int, Field(default=5432, gt=0, le=65535)]
    pg_user: Annotated[str, Field(default="")]
    pg_password: Annotated[str, Field(default="")]
    pg_database: Annotated[str, Field(default="")]
    pg_pool_min_size: Annotated[int, Field(default=1, ge=0)]
    pg_pool_max_size: Annotated[int, Field(default=10, gt=0)]

    cloudinary_name: Annotated[str, Field(default="")]
    cloudinary_api_key: Annotated[str, Field(default="")]
    cloudinary_api_secret: Annotated[str, Field(default="")]

    shutdown_timeout: Annotated[
        float | None,
        Field(
            description=(
                "Maximum time (in seconds) the listener may take to close during\n"
                "a graceful shutdown before the process is forced to exit."
            ),
            default=None,
            gt=0,
        )
    ]

    keep_alive_timeout: Annotated[
        float,
        Field(description="Idle time before a keep-alive connection is closed.", default=65.0, gt=0)
    ]

    headers_timeout: Annotated[
        float,
        Field(description="Time allowed to receive complete request headers.", default=66.0, gt=0)
    ]

    body_limit: Annotated[
        int,
        Field(description="Largest JSON or form body the parser accepts, in bytes.", default=100 * 1024, gt=0)
    ]

    compression_threshold: Annotated[
        int,
        Field(description="Smallest response body that gets compressed, in bytes.", default=0, ge=0)
    ]

    trust_proxy: Annotated[
        int,
        Field(description="Number of reverse proxy hops trusted for client addresses.", default=1, ge=0)
    ]

    log_level: Annotated[
        LogLevel,
        Field(description="Root logging level, overridden by --log-level.", default="INFO")
    ]

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @model_validator(mode="after")
    def check_pool_bounds(self) -> "Settings":
        if self.pg_pool_min_size > self.pg_pool_max_size:
            raise ValueError("PG_POOL_MIN_SIZE must not exceed PG_POOL_MAX_SIZE")
        return self

    @property
    def graceful_shutdown_timeout(self) -> float:
        if self.shutdown_timeout is not None:
            return self.shutdown_timeout
        return POOLED_SHUTDOWN_TIMEOUT if self.database_enabled else PLAIN_SHUTDOWN_TIMEOUT


def required_env_vars(values: Mapping[str, str]) -> list[str]:
    names = list(REQUIRED_ENV_VARS)
    if _database_enabled(values):
        names.extend(DATABASE_ENV_VARS)
    return names


def _database_enabled(values: Mapping[str, str]) -> bool:
    raw = values.get("DATABASE_ENABLED")
    if raw is None:
        return True
    try:
        return _BOOL.validate_python(raw.strip())
    except ValidationError:
        # rejected later by Settings itself
        return True


def load_settings(env_file: Path | None = None) -> Settings:
    """
    Build the process settings from the environment and an optional dotenv file.

    Process variables win over the file. Every missing required variable is
    reported at once.
    """
    file_values: dict[str, str] = {}
    if env_file is not None:
        file_values = {k: v for k, v in dotenv_values(env_file).items() if v is not None}

    values = {**file_values, **os.environ}
    missing = [name for name in required_env_vars(values) if not values.get(name)]
    if missing:
        raise ConfigError.missing_vars(missing)

    try:
        return Settings(_env_file=env_file)
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']).upper() or 'CONFIG'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ConfigError(f"Invalid configuration: {details}") from exc
