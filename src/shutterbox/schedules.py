"""Repositories and helpers for managing recurring shutter schedules."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import UTC, datetime
from functools import lru_cache
from threading import Lock
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from .database import (
    format_timestamp,
    get_engine,
    get_session_factory,
    is_database_configured,
    parse_timestamp,
)
from .db_models import ScheduleModel
from .schemas import ScheduleCreateRequest, ScheduleUpdateRequest
from .triggers import format_days

# Utility ---------------------------------------------------------------------


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class ScheduleRecord:
    """A persisted schedule definition, exactly as stored.

    ``time`` and ``days`` stay in their stored text form; rows written by
    other tools may be malformed and are only parsed when triggers are built.
    """

    id: int
    name: str
    time: str
    days: str
    command: str
    enabled: bool
    created_at: datetime


def _model_to_record(model: ScheduleModel) -> ScheduleRecord:
    return ScheduleRecord(
        id=model.id,
        name=model.name,
        time=model.time,
        days=model.days,
        command=model.command,
        enabled=bool(model.enabled),
        created_at=parse_timestamp(model.created_at),
    )


def _update_fields(update: ScheduleUpdateRequest) -> dict[str, object]:
    data = update.model_dump(exclude_unset=True)
    fields: dict[str, object] = {}
    for key in ("name", "time", "command", "enabled"):
        if data.get(key) is not None:
            fields[key] = data[key]
    if data.get("days") is not None:
        fields["days"] = format_days(data["days"])
    return fields


def _sort_key(record: ScheduleRecord) -> tuple[str, int]:
    return record.time, record.id


# Repository protocol ---------------------------------------------------------


class ScheduleRepository(Protocol):
    """Abstraction used by routers and the reconciler to manage schedules."""

    def list(self, *, enabled: bool | None = None) -> list[ScheduleRecord]:
        ...

    def get(self, schedule_id: int) -> ScheduleRecord | None:
        ...

    def create(self, payload: ScheduleCreateRequest) -> ScheduleRecord:
        ...

    def update(
        self, schedule_id: int, payload: ScheduleUpdateRequest
    ) -> ScheduleRecord | None:
        ...

    def delete(self, schedule_id: int) -> bool:
        ...


# In-memory repository --------------------------------------------------------


class InMemoryScheduleRepository(ScheduleRepository):
    def __init__(self, records: list[ScheduleRecord] | None = None) -> None:
        self._records: dict[int, ScheduleRecord] = {
            record.id: record for record in records or []
        }
        self._counter = max(self._records, default=0)
        self._lock = Lock()

    def list(self, *, enabled: bool | None = None) -> list[ScheduleRecord]:
        with self._lock:
            records = list(self._records.values())
        if enabled is not None:
            records = [record for record in records if record.enabled is enabled]
        return sorted(records, key=_sort_key)

    def get(self, schedule_id: int) -> ScheduleRecord | None:
        with self._lock:
            return self._records.get(schedule_id)

    def create(self, payload: ScheduleCreateRequest) -> ScheduleRecord:
        with self._lock:
            self._counter += 1
            record = ScheduleRecord(
                id=self._counter,
                name=payload.name,
                time=payload.time,
                days=format_days(payload.days),
                command=payload.command,
                enabled=payload.enabled,
                created_at=_now(),
            )
            self._records[record.id] = record
            return record

    def update(
        self, schedule_id: int, payload: ScheduleUpdateRequest
    ) -> ScheduleRecord | None:
        with self._lock:
            existing = self._records.get(schedule_id)
            if existing is None:
                return None
            updated = replace(existing, **_update_fields(payload))
            self._records[schedule_id] = updated
            return updated

    def delete(self, schedule_id: int) -> bool:
        with self._lock:
            return self._records.pop(schedule_id, None) is not None


# SQLAlchemy repository -------------------------------------------------------


class SqlScheduleRepository(ScheduleRepository):
    def __init__(self, session_factory: sessionmaker[Session] | None = None) -> None:
        self._session_factory = session_factory or get_session_factory()

    def _session(self) -> Session:
        return self._session_factory()

    def list(self, *, enabled: bool | None = None) -> list[ScheduleRecord]:
        stmt = select(ScheduleModel).order_by(ScheduleModel.time, ScheduleModel.id)
        if enabled is not None:
            stmt = stmt.where(ScheduleModel.enabled == enabled)
        with self._session() as session:
            rows = session.execute(stmt).scalars().all()
            return [_model_to_record(row) for row in rows]

    def get(self, schedule_id: int) -> ScheduleRecord | None:
        with self._session() as session:
            row = session.get(ScheduleModel, schedule_id)
            return _model_to_record(row) if row else None

    def create(self, payload: ScheduleCreateRequest) -> ScheduleRecord:
        model = ScheduleModel(
            name=payload.name,
            time=payload.time,
            command=payload.command,
            days=format_days(payload.days),
            enabled=payload.enabled,
            created_at=format_timestamp(_now()),
        )
        with self._session() as session:
            session.add(model)
            session.commit()
            session.refresh(model)
            return _model_to_record(model)

    def update(
        self, schedule_id: int, payload: ScheduleUpdateRequest
    ) -> ScheduleRecord | None:
        with self._session() as session:
            existing = session.get(ScheduleModel, schedule_id)
            if existing is None:
                return None
            for key, value in _update_fields(payload).items():
                setattr(existing, key, value)
            session.commit()
            session.refresh(existing)
            return _model_to_record(existing)

    def delete(self, schedule_id: int) -> bool:
        with self._session() as session:
            existing = session.get(ScheduleModel, schedule_id)
            if existing is None:
                return False
            session.delete(existing)
            session.commit()
            return True


# Repository factory ----------------------------------------------------------


@lru_cache
def _default_schedule_repository() -> InMemoryScheduleRepository:
    return InMemoryScheduleRepository()


def get_schedule_repository() -> ScheduleRepository:
    """Return the configured schedule repository."""
    if is_database_configured() and get_engine() is not None:
        return SqlScheduleRepository()
    return _default_schedule_repository()
