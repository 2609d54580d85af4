"""Pydantic models for the shutter FastAPI backend."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from .triggers import parse_days, parse_time
from .vocabulary import Action


def _to_camel(string: str) -> str:
    first, *rest = string.split("_")
    return first + "".join(word.capitalize() for word in rest)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=_to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Device-facing models


class MailboxResponse(BaseModel):
    command: str = ""


class CommandRequest(BaseModel):
    # Free text on purpose: unknown actions get a domain rejection, not a 422.
    action: str = Field(..., validation_alias=AliasChoices("action", "command"))


class CommandResponse(BaseModel):
    accepted: bool
    command: str | None = None
    reason: str | None = None


class DeviceReport(CamelModel):
    status: str | None = None
    message: str | None = None
    source_ip: str | None = Field(
        default=None, validation_alias=AliasChoices("sourceIp", "source_ip", "ip")
    )


class DeviceHeartbeat(CamelModel):
    status: str | None = None
    ip: str | None = None


class AckResponse(BaseModel):
    success: bool = True


class DeviceStatusSnapshot(CamelModel):
    status: str
    last_update: datetime
    ip: str = ""


# ---------------------------------------------------------------------------
# Schedule models


def _validate_time(value: str) -> str:
    hour, minute = parse_time(value)
    return f"{hour:02d}:{minute:02d}"


def _validate_days(value: Any) -> list[int]:
    if isinstance(value, (str, list, tuple, set)):
        return list(parse_days(value))
    raise ValueError("days must be a list of weekday numbers or a comma list.")


class ScheduleDefinition(CamelModel):
    id: int
    name: str
    time: str
    days: list[int]
    command: str
    enabled: bool = True
    created_at: datetime


class ScheduleCreateRequest(CamelModel):
    name: str = Field(..., min_length=1, max_length=255)
    time: str
    days: list[int]
    command: Action
    enabled: bool = True

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        return _validate_time(value)

    @field_validator("days", mode="before")
    @classmethod
    def _check_days(cls, value: Any) -> list[int]:
        return _validate_days(value)


class ScheduleUpdateRequest(CamelModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    time: str | None = None
    days: list[int] | None = None
    command: Action | None = None
    enabled: bool | None = None

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str | None) -> str | None:
        return None if value is None else _validate_time(value)

    @field_validator("days", mode="before")
    @classmethod
    def _check_days(cls, value: Any) -> list[int] | None:
        return None if value is None else _validate_days(value)


class TriggerInfo(CamelModel):
    schedule_id: int
    name: str
    command: Action
    hour: int
    minute: int
    days: list[int]


class TriggerListResponse(CamelModel):
    triggers: list[TriggerInfo] = Field(default_factory=list)


class ReconcileResponse(CamelModel):
    installed: int


# ---------------------------------------------------------------------------
# Log models


class LogEntryOut(BaseModel):
    id: int | None = None
    status: str
    message: str
    timestamp: datetime


class LogListResponse(BaseModel):
    logs: list[LogEntryOut] = Field(default_factory=list)


__all__ = [
    "MailboxResponse",
    "CommandRequest",
    "CommandResponse",
    "DeviceReport",
    "DeviceHeartbeat",
    "AckResponse",
    "DeviceStatusSnapshot",
    "ScheduleDefinition",
    "ScheduleCreateRequest",
    "ScheduleUpdateRequest",
    "TriggerInfo",
    "TriggerListResponse",
    "ReconcileResponse",
    "LogEntryOut",
    "LogListResponse",
]
