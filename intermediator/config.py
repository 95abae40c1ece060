"""
CONFIG.PY — SINGLE SOURCE OF TRUTH (SSOT)

This module is the ONLY place allowed to:
- Read environment variables
- Query the configurations table

Platform credentials and infrastructure settings are env-only and required.
Per-platform behaviour settings (auto sync, intervals, test mode, HTTP
timeouts) live in the configurations table; missing keys fall back to the
documented defaults, malformed values fail early.

Loading is async because the table is read through the async engine. The
first successful load is cached for the life of the process:

    from intermediator.config import get_config

    app_config = await get_config()

Do not access os.getenv or the configurations table directly from any other module.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

from dotenv import load_dotenv
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import create_async_engine


PROJECT_ROOT = Path(__file__).resolve().parents[1]

# Load variables from .env if it exists; OS env overrides these automatically
load_dotenv(PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)

PLATFORMS = ("plus", "saboritte")

ENV_ONLY_KEYS = [
    "RUN_ENV",
    "PIPELINE_TIMEZONE",
    "DATABASE_URL",
    "ALEMBIC_CONFIG",
    "PLUS_API_URL",
    "PLUS_EMAIL",
    "PLUS_SENHA",
    "PLUS_API_SECRET",
    "SABORITTE_API_URL",
    "SABORITTE_EMAIL",
    "SABORITTE_SENHA",
    "SABORITTE_API_SECRET",
]

# May be absent or blank (disables the log file).
OPTIONAL_ENV_KEYS = ["JSON_LOG_FILE"]

SETTING_DEFAULTS: Dict[str, str] = {
    "auto_sync": "true",
    "sync_interval": "300",
    "test_mode": "false",
    "notify_errors": "true",
    "http_timeout_ms": "90000",
    "http_max_retries": "3",
}

TRUE_VALUES = {"1", "true", "yes", "on"}
FALSE_VALUES = {"0", "false", "no", "off"}


class ConfigError(RuntimeError):
    """Raised when configuration cannot be loaded."""


def _fail(message: str) -> ConfigError:
    logger.error(message)
    return ConfigError(message)


def _require_env(key: str) -> str:
    value = os.getenv(key)
    if value is None:
        raise _fail(f"Missing required environment variable: {key}")
    stripped = value.strip()
    if not stripped:
        raise _fail(f"Environment variable {key} cannot be blank")
    return stripped


def _load_env_values() -> Dict[str, str]:
    values = {key: _require_env(key) for key in ENV_ONLY_KEYS}
    for key in OPTIONAL_ENV_KEYS:
        values[key] = (os.getenv(key) or "").strip()
    return values


def _parse_bool(value: str, *, key: str) -> bool:
    normalized = value.strip().lower()
    if normalized in TRUE_VALUES:
        return True
    if normalized in FALSE_VALUES:
        return False
    raise _fail(f"Config key {key} must be a boolean string; got {value!r}")


def _parse_int(value: str, *, key: str, minimum: int = 0) -> int:
    try:
        parsed = int(value.strip())
    except ValueError:
        raise _fail(f"Config key {key} must be an integer; got {value!r}") from None
    if parsed < minimum:
        raise _fail(f"Config key {key} must be >= {minimum}; got {parsed}")
    return parsed


def _clean_url(value: str, *, key: str) -> str:
    stripped = value.strip().rstrip("/")
    if not stripped:
        raise _fail(f"Config key {key} cannot be blank")
    return stripped


async def _fetch_platform_rows(database_url: str) -> Dict[str, Dict[str, str]]:
    grouped: Dict[str, Dict[str, str]] = {platform: {} for platform in PLATFORMS}
    stmt = text("SELECT platform, config_key, config_value FROM configurations WHERE active = TRUE")
    # Throwaway engine; the shared cache in common.db belongs to the stores.
    engine = create_async_engine(database_url)
    try:
        async with engine.connect() as connection:
            for row in await connection.execute(stmt):
                if row.platform in grouped and row.config_value is not None:
                    grouped[row.platform][row.config_key] = row.config_value
    except SQLAlchemyError as exc:
        message = "Unable to load configuration from configurations table"
        logger.exception(message)
        raise ConfigError(message) from exc
    finally:
        await engine.dispose()
    return grouped


@dataclass(slots=True, frozen=True)
class PlatformCredentials:
    api_url: str
    email: str
    senha: str
    api_secret: str


@dataclass(slots=True, frozen=True)
class PlatformSettings:
    auto_sync: bool = True
    sync_interval: int = 300
    test_mode: bool = False
    notify_errors: bool = True
    http_timeout_ms: int = 90_000
    http_max_retries: int = 3

    @classmethod
    def from_rows(cls, platform: str, rows: Mapping[str, str]) -> PlatformSettings:
        values = {**SETTING_DEFAULTS, **{k: v for k, v in rows.items() if k in SETTING_DEFAULTS}}
        return cls(
            auto_sync=_parse_bool(values["auto_sync"], key=f"{platform}.auto_sync"),
            sync_interval=_parse_int(values["sync_interval"], key=f"{platform}.sync_interval", minimum=1),
            test_mode=_parse_bool(values["test_mode"], key=f"{platform}.test_mode"),
            notify_errors=_parse_bool(values["notify_errors"], key=f"{platform}.notify_errors"),
            http_timeout_ms=_parse_int(
                values["http_timeout_ms"], key=f"{platform}.http_timeout_ms", minimum=1
            ),
            http_max_retries=_parse_int(
                values["http_max_retries"], key=f"{platform}.http_max_retries", minimum=1
            ),
        )


@dataclass(slots=True, frozen=True)
class PlatformConfig:
    name: str
    credentials: PlatformCredentials
    settings: PlatformSettings


def _platform_credentials(prefix: str, env_values: Mapping[str, str]) -> PlatformCredentials:
    return PlatformCredentials(
        api_url=_clean_url(env_values[f"{prefix}_API_URL"], key=f"{prefix}_API_URL"),
        email=env_values[f"{prefix}_EMAIL"],
        senha=env_values[f"{prefix}_SENHA"],
        api_secret=env_values[f"{prefix}_API_SECRET"],
    )


@dataclass(slots=True, frozen=True)
class Config:
    run_env: str
    pipeline_timezone: str
    database_url: str
    alembic_config: str
    json_log_file: str
    plus: PlatformConfig
    saboritte: PlatformConfig

    @classmethod
    async def load_from_env_and_db(cls) -> Config:
        env_values = _load_env_values()
        database_url = env_values["DATABASE_URL"]
        db_values = await _fetch_platform_rows(database_url)

        unknown = sorted(
            f"{platform}.{key}"
            for platform, rows in db_values.items()
            for key in rows
            if key not in SETTING_DEFAULTS
        )
        if unknown:
            logger.warning("Ignoring unknown configuration keys: %s", ", ".join(unknown))

        return cls(
            run_env=env_values["RUN_ENV"],
            pipeline_timezone=env_values["PIPELINE_TIMEZONE"],
            database_url=database_url,
            alembic_config=env_values["ALEMBIC_CONFIG"],
            json_log_file=env_values["JSON_LOG_FILE"],
            plus=PlatformConfig(
                name="plus",
                credentials=_platform_credentials("PLUS", env_values),
                settings=PlatformSettings.from_rows("plus", db_values["plus"]),
            ),
            saboritte=PlatformConfig(
                name="saboritte",
                credentials=_platform_credentials("SABORITTE", env_values),
                settings=PlatformSettings.from_rows("saboritte", db_values["saboritte"]),
            ),
        )


@dataclass(slots=True, frozen=True)
class DatabaseSettings:
    database_url: str
    alembic_config: str


def get_database_settings() -> DatabaseSettings:
    """Env-only subset needed before the configurations table exists."""

    return DatabaseSettings(
        database_url=_require_env("DATABASE_URL"),
        alembic_config=_require_env("ALEMBIC_CONFIG"),
    )


_loaded: Optional[Config] = None


async def get_config() -> Config:
    global _loaded
    if _loaded is None:
        _loaded = await Config.load_from_env_and_db()
    return _loaded
