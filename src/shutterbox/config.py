"""Configuration helpers for the shutter service."""

from __future__ import annotations

import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from loguru import logger

DEFAULT_RECONCILE_INTERVAL = 60
DEFAULT_LOG_RETENTION_DAYS = 7
DEFAULT_LOG_CLEANUP_INTERVAL = 3600
DEFAULT_STATIC_DIR = "public"
SUPPORTED_LOCALES = ("en", "zh")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_int(name: str, default: int, *, minimum: int = 1) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer value for {}: {!r}", name, raw)
        return default
    if value < minimum:
        logger.warning("Ignoring out-of-range value for {}: {}", name, value)
        return default
    return value


def _candidate_env_paths(start: Path) -> Iterable[Path]:
    """Yield plausible .env locations from closest to farthest."""
    override = os.environ.get("SHUTTERBOX_ENV_FILE")
    if override:
        yield Path(override).expanduser()

    for directory in (start, *start.parents):
        yield directory / ".env"


def _discover_env_path() -> Path | None:
    """Return the first .env path that exists, if any."""
    package_dir = Path(__file__).resolve().parent
    for candidate in _candidate_env_paths(package_dir):
        if candidate.exists():
            return candidate
    return None


def _load_env_file(path: Path | None = None) -> None:
    """Populate os.environ with values from a .env file if present."""
    env_path = path or _discover_env_path()
    if env_path is None or not env_path.exists():
        logger.debug("No .env file discovered for configuration")
        return

    logger.bind(path=str(env_path)).info("Loading environment variables from .env")
    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        # Real environment variables win over the file.
        os.environ.setdefault(key, value)


_load_env_file()


@dataclass(frozen=True)
class Settings:
    """Typed accessors for configuration derived from the environment."""

    reconcile_interval_seconds: int = DEFAULT_RECONCILE_INTERVAL
    log_retention_days: int = DEFAULT_LOG_RETENTION_DAYS
    log_cleanup_interval_seconds: int = DEFAULT_LOG_CLEANUP_INTERVAL
    timezone: str | None = None
    locale: str = "en"
    static_dir: str = DEFAULT_STATIC_DIR
    background_tasks: bool = True

    @classmethod
    def from_env(cls) -> Settings:
        locale = os.environ.get("SHUTTERBOX_LOCALE", "en").strip().lower() or "en"
        if locale not in SUPPORTED_LOCALES:
            logger.warning("Unsupported locale {!r}; falling back to 'en'", locale)
            locale = "en"

        timezone = os.environ.get("SHUTTERBOX_TIMEZONE", "").strip() or None
        background_env = os.environ.get("SHUTTERBOX_BACKGROUND_TASKS")
        background_tasks = (
            _parse_bool(background_env) if background_env is not None else True
        )

        settings = cls(
            reconcile_interval_seconds=_parse_int(
                "SHUTTERBOX_RECONCILE_INTERVAL", DEFAULT_RECONCILE_INTERVAL
            ),
            log_retention_days=_parse_int(
                "SHUTTERBOX_LOG_RETENTION_DAYS", DEFAULT_LOG_RETENTION_DAYS
            ),
            log_cleanup_interval_seconds=_parse_int(
                "SHUTTERBOX_LOG_CLEANUP_INTERVAL", DEFAULT_LOG_CLEANUP_INTERVAL
            ),
            timezone=timezone,
            locale=locale,
            static_dir=os.environ.get("SHUTTERBOX_STATIC_DIR", DEFAULT_STATIC_DIR),
            background_tasks=background_tasks,
        )
        logger.bind(
            timezone=settings.timezone or "local",
            locale=settings.locale,
            background_tasks=settings.background_tasks,
        ).info("Configuration loaded from environment")
        return settings


settings = Settings.from_env()
