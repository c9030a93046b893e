"""Application configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path
from typing import Mapping, Optional
from urllib.parse import quote_plus

from .errors import ConfigError

ENV_PREFIX = "DISPOSITION_SERVICE_"

DEFAULT_DRIVER = "mysql+pymysql"

# Local frontend dev servers allowed by the original deployment.
DEFAULT_CORS_ORIGINS: tuple[str, ...] = (
    "http://localhost:5174",
    "http://localhost:3000",
    "http://127.0.0.1:5174",
    "http://127.0.0.1:3000",
)

_TRUTHY = {"1", "true", "yes", "on"}


def _read_env_file(path: Path) -> dict[str, str]:
    """Read ``KEY=value`` lines, allowing comments, ``export`` and quoting."""

    variables: dict[str, str] = {}
    for line in path.read_text().splitlines():
        key, sep, value = line.strip().removeprefix("export ").partition("=")
        if not sep or key.startswith("#"):
            continue
        variables[key.strip()] = value.strip().strip("\"'")
    return variables


def _load_profile_env(env: Mapping[str, str]) -> dict[str, str]:
    """Load variables from ``.env.<profile>`` in the working directory.

    ``DISPOSITION_SERVICE_ENV_FILE`` names a file explicitly; it must exist.
    """

    explicit_file = env.get(f"{ENV_PREFIX}ENV_FILE")
    if explicit_file:
        path = Path(explicit_file)
        if not path.is_file():
            raise ConfigError(f"Environment file {explicit_file!r} does not exist")
        return _read_env_file(path)

    path = Path.cwd() / f".env.{env.get(f'{ENV_PREFIX}ENV', 'local')}"
    return _read_env_file(path) if path.is_file() else {}


def normalize_database_url(url: str) -> str:
    """Route bare ``mysql://`` URLs through the PyMySQL driver."""

    if url.startswith("mysql://"):
        return DEFAULT_DRIVER + url[len("mysql") :]
    return url


def _build_database_url(env: Mapping[str, str]) -> str | None:
    """Construct a SQLAlchemy URL from discrete environment variables."""

    host = env.get(f"{ENV_PREFIX}DB_HOST")
    if not host:
        return None

    username = env.get(f"{ENV_PREFIX}DB_USERNAME")
    if not username:
        raise ConfigError(
            f"{ENV_PREFIX}DB_USERNAME must be set when using discrete database settings"
        )
    if f"{ENV_PREFIX}DB_PASSWORD" not in env:
        raise ConfigError(
            f"{ENV_PREFIX}DB_PASSWORD must be set when using discrete database settings"
        )

    password = env.get(f"{ENV_PREFIX}DB_PASSWORD", "")
    port = env.get(f"{ENV_PREFIX}DB_PORT", "3306")
    database = env.get(f"{ENV_PREFIX}DB_NAME", "stocks")
    driver = env.get(f"{ENV_PREFIX}DB_DRIVER", DEFAULT_DRIVER)

    auth = f"{quote_plus(username)}:{quote_plus(password)}"
    port_part = f":{port}" if port else ""
    return f"{driver}://{auth}@{host}{port_part}/{database}"


def _optional_number(env: Mapping[str, str], key: str, kind: type) -> Optional[float]:
    raw = env.get(key)
    if raw is None or not raw.strip():
        return None
    try:
        value = kind(raw.strip())
    except ValueError as exc:
        raise ConfigError(f"{key} must be a number, got {raw!r}") from exc
    if value <= 0:
        raise ConfigError(f"{key} must be positive, got {raw!r}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime configuration."""

    database_url: str
    pool_size: Optional[int] = None
    pool_timeout: Optional[float] = None
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    host: str = "127.0.0.1"
    port: int = 8888
    create_schema: bool = False

    @staticmethod
    def load(env: Mapping[str, str] | None = None) -> "Settings":
        """Load settings from environment variables."""

        base_env = dict(os.environ if env is None else env)
        file_env = _load_profile_env(base_env)
        # Environment variables set in the shell take precedence over the file.
        merged_env = {**file_env, **base_env}

        database_url = merged_env.get(f"{ENV_PREFIX}DATABASE_URL") or merged_env.get(
            "DATABASE_URL"
        )
        if not database_url:
            database_url = _build_database_url(merged_env)
        if not database_url:
            raise ConfigError(
                f"{ENV_PREFIX}DATABASE_URL must be set or provide discrete database settings via the env file"
            )

        origins_env = merged_env.get(f"{ENV_PREFIX}CORS_ORIGINS")
        if origins_env:
            cors_origins = tuple(
                origin.strip() for origin in origins_env.split(",") if origin.strip()
            )
        else:
            cors_origins = DEFAULT_CORS_ORIGINS

        port = _optional_number(merged_env, f"{ENV_PREFIX}PORT", int)

        return Settings(
            database_url=normalize_database_url(database_url.strip()),
            pool_size=_optional_number(merged_env, f"{ENV_PREFIX}POOL_SIZE", int),
            pool_timeout=_optional_number(merged_env, f"{ENV_PREFIX}POOL_TIMEOUT", float),
            cors_origins=cors_origins,
            host=merged_env.get(f"{ENV_PREFIX}HOST", "127.0.0.1"),
            port=int(port) if port is not None else 8888,
            create_schema=merged_env.get(f"{ENV_PREFIX}CREATE_SCHEMA", "").strip().lower()
            in _TRUTHY,
        )


__all__ = ["Settings", "DEFAULT_CORS_ORIGINS", "normalize_database_url"]
