"""Audit log repository abstractions and helpers."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from functools import lru_cache
from threading import Lock
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .database import (
    format_timestamp,
    get_engine,
    get_session_factory,
    is_database_configured,
    parse_timestamp,
)
from .db_models import LogModel
from .utils import logger

DEFAULT_PAGE_SIZE = 50


@dataclass(frozen=True)
class LogEntry:
    """Represents one row of the append-only audit log."""

    id: int | None
    status: str
    message: str
    timestamp: datetime


class LogRepository(Protocol):
    """Storage abstraction for audit log entries."""

    def record(self, entry: LogEntry) -> LogEntry:
        ...

    def list_recent(self, limit: int = DEFAULT_PAGE_SIZE) -> list[LogEntry]:
        ...

    def delete_older_than(self, cutoff: datetime) -> int:
        ...


class InMemoryLogRepository(LogRepository):
    """Simple in-memory log store used when no database is configured."""

    def __init__(self) -> None:
        self._entries: list[LogEntry] = []
        self._lock = Lock()
        self._counter = 0

    def record(self, entry: LogEntry) -> LogEntry:
        with self._lock:
            self._counter += 1
            stored = replace(entry, id=self._counter)
            self._entries.append(stored)
            return stored

    def list_recent(self, limit: int = DEFAULT_PAGE_SIZE) -> list[LogEntry]:
        with self._lock:
            ordered = sorted(
                self._entries,
                key=lambda entry: (entry.timestamp, entry.id or 0),
                reverse=True,
            )
            return ordered[:limit]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._lock:
            kept = [entry for entry in self._entries if entry.timestamp >= cutoff]
            removed = len(self._entries) - len(kept)
            self._entries = kept
            return removed


def _model_to_entry(model: LogModel) -> LogEntry:
    return LogEntry(
        id=model.id,
        status=model.status,
        message=model.message,
        timestamp=parse_timestamp(model.timestamp),
    )


class SQLLogRepository(LogRepository):
    """SQLAlchemy-backed log repository."""

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def record(self, entry: LogEntry) -> LogEntry:
        model = LogModel(
            status=entry.status,
            message=entry.message,
            timestamp=format_timestamp(entry.timestamp),
        )
        with self._session_factory() as session:
            session.add(model)
            session.commit()
            session.refresh(model)
            return _model_to_entry(model)

    def list_recent(self, limit: int = DEFAULT_PAGE_SIZE) -> list[LogEntry]:
        with self._session_factory() as session:
            rows = (
                session.execute(
                    select(LogModel)
                    .order_by(LogModel.timestamp.desc(), LogModel.id.desc())
                    .limit(limit)
                )
                .scalars()
                .all()
            )
            return [_model_to_entry(row) for row in rows]

    def delete_older_than(self, cutoff: datetime) -> int:
        with self._session_factory() as session:
            result = session.execute(
                delete(LogModel).where(LogModel.timestamp < format_timestamp(cutoff))
            )
            session.commit()
            return result.rowcount or 0


@lru_cache
def _default_log_repository() -> InMemoryLogRepository:
    return InMemoryLogRepository()


def get_log_repository() -> LogRepository:
    """Return the configured log repository."""
    if is_database_configured() and get_engine() is not None:
        return SQLLogRepository(get_session_factory())
    return _default_log_repository()


def record_log(
    *,
    status: str,
    message: str,
    timestamp: datetime | None = None,
    repository: LogRepository | None = None,
) -> LogEntry | None:
    """Append an audit log entry.

    Appends are fire-and-forget: a storage failure is reported to the process
    log and ``None`` is returned so the calling command still completes.
    """
    entry = LogEntry(
        id=None,
        status=status,
        message=message,
        timestamp=timestamp or datetime.now(tz=UTC),
    )
    logger.bind(status=status or "-").info(message)
    try:
        return (repository or get_log_repository()).record(entry)
    except SQLAlchemyError as exc:
        logger.bind(status=status).error("Failed to insert log entry: {}", exc)
        return None


__all__ = [
    "DEFAULT_PAGE_SIZE",
    "LogEntry",
    "LogRepository",
    "InMemoryLogRepository",
    "SQLLogRepository",
    "get_log_repository",
    "record_log",
]
