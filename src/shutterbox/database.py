"""Database settings, engine lifecycle and timestamp storage format."""

from __future__ import annotations

import os
from datetime import UTC, datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock

from pydantic import BaseModel, Field
from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .utils import logger

# Matches SQLite's CURRENT_TIMESTAMP so rows written by older deployments sort
# and compare correctly as text.
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


class DatabaseSettings(BaseModel):
    """Configuration values for the database connection."""

    url: str | None = Field(default=None)
    echo: bool = Field(default=False)
    mode: str = Field(default="memory")

    @classmethod
    def load(cls) -> DatabaseSettings:
        return cls(
            url=os.getenv("SHUTTERBOX_DB_URL") or None,
            echo=os.getenv("SHUTTERBOX_DB_ECHO", "false").lower()
            in {"1", "true", "yes", "on"},
            mode=os.getenv("SHUTTERBOX_DB_MODE", "memory").lower(),
        )


@lru_cache
def get_database_settings() -> DatabaseSettings:
    """Return cached database settings."""
    return DatabaseSettings.load()


_engine_lock = Lock()
_engine: Engine | None = None
_session_factory: sessionmaker[Session] | None = None


def is_database_configured() -> bool:
    """Return True when the environment selects the database repositories."""
    settings = get_database_settings()
    if settings.mode == "memory":
        return False
    if not settings.url:
        return False
    return settings.mode in {"auto", "database"}


def format_timestamp(moment: datetime) -> str:
    """Render ``moment`` as a UTC ``YYYY-MM-DD HH:MM:SS`` column value."""
    return moment.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(raw: str) -> datetime:
    """Read a stored timestamp; values without an offset are UTC."""
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=UTC)
    return parsed.astimezone(UTC)


def _ensure_sqlite_directory(url: str) -> None:
    if url.startswith("sqlite:///"):
        db_path = Path(url.replace("sqlite:///", "", 1))
        db_path.parent.mkdir(parents=True, exist_ok=True)


def prepare_schema(engine: Engine) -> None:
    """Ensure the schedule and log tables exist."""
    from .db_models import Base  # Local import to avoid circular deps

    Base.metadata.create_all(engine)


def _connect(settings: DatabaseSettings) -> Engine:
    """Create an engine with a ready schema, or raise without leaking it."""
    url = settings.url or ""
    connect_args: dict[str, object] = {}
    if url.startswith("sqlite"):
        _ensure_sqlite_directory(url)
        # Background loops reach the store from worker threads.
        connect_args["check_same_thread"] = False

    engine = create_engine(url, echo=settings.echo, connect_args=connect_args)
    try:
        prepare_schema(engine)
    except SQLAlchemyError:
        engine.dispose()
        raise
    return engine


def get_engine() -> Engine | None:
    """Return the configured SQLAlchemy engine, if any.

    The engine is published only once its tables exist; a failed attempt is
    retried on the next call.
    """
    global _engine, _session_factory

    if not is_database_configured():
        return None

    if _engine is None:
        with _engine_lock:
            if _engine is None:
                engine = _connect(get_database_settings())
                _session_factory = sessionmaker(bind=engine, autoflush=False)
                _engine = engine
                logger.bind(url=engine.url.render_as_string(hide_password=True)).info(
                    "Database engine created"
                )
    return _engine


def get_session_factory() -> sessionmaker[Session]:
    """Return the session factory bound to the configured engine."""
    if get_engine() is None or _session_factory is None:
        raise RuntimeError(
            "Database is not configured. Set SHUTTERBOX_DB_URL and "
            "SHUTTERBOX_DB_MODE=database (or auto) to enable SQL storage."
        )
    return _session_factory


def reset_engine() -> None:
    """Dispose the engine and forget cached settings so the next call reconnects."""
    global _engine, _session_factory

    with _engine_lock:
        if _engine is not None:
            _engine.dispose()
        _engine = None
        _session_factory = None
    get_database_settings.cache_clear()
