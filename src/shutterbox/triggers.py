"""Time-of-day/day-of-week trigger rules built from schedule definitions."""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from .vocabulary import Action, is_action

_TIME_PATTERN = re.compile(r"^\s*(\d{1,2}):(\d{2})\s*$")


def parse_time(value: str) -> tuple[int, int]:
    """Split an ``HH:MM`` string into hour and minute."""
    match = _TIME_PATTERN.match(value or "")
    if match is None:
        raise ValueError(f"Invalid time {value!r}; expected HH:MM.")
    hour, minute = int(match.group(1)), int(match.group(2))
    if not 0 <= hour <= 23 or not 0 <= minute <= 59:
        raise ValueError(f"Time {value!r} is out of range.")
    return hour, minute


def parse_days(value: str | Iterable[int | str]) -> tuple[int, ...]:
    """Normalize a day set (``"1,3,5"`` or ``[1, 3, 5]``) to sorted weekday numbers.

    Weekdays use the cron numbering: 0 is Sunday and 6 is Saturday.
    """
    tokens: Iterable[int | str]
    if isinstance(value, str):
        tokens = [token for token in value.split(",") if token.strip()]
    else:
        tokens = value

    days: set[int] = set()
    for token in tokens:
        if isinstance(token, bool):
            raise ValueError(f"Invalid weekday {token!r}.")
        try:
            day = int(token)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid weekday {token!r}.") from exc
        if not 0 <= day <= 6:
            raise ValueError(f"Weekday {day} is out of range 0-6.")
        days.add(day)
    if not days:
        raise ValueError("At least one weekday is required.")
    return tuple(sorted(days))


def format_days(days: Iterable[int]) -> str:
    return ",".join(str(day) for day in sorted(set(days)))


def cron_weekday(moment: datetime) -> int:
    """Return the weekday of ``moment`` with Sunday as 0."""
    return moment.isoweekday() % 7


@dataclass(frozen=True)
class Trigger:
    """A live recurrence rule bound to one enabled schedule definition."""

    schedule_id: int
    name: str
    command: Action
    hour: int
    minute: int
    days: tuple[int, ...]

    @classmethod
    def build(
        cls,
        *,
        schedule_id: int,
        name: str,
        command: str,
        time: str,
        days: str | Iterable[int | str],
    ) -> Trigger:
        if not is_action(command):
            raise ValueError(f"Unknown command {command!r}.")
        hour, minute = parse_time(time)
        return cls(
            schedule_id=schedule_id,
            name=name,
            command=command,
            hour=hour,
            minute=minute,
            days=parse_days(days),
        )

    def matches(self, moment: datetime) -> bool:
        return (
            moment.hour == self.hour
            and moment.minute == self.minute
            and cron_weekday(moment) in self.days
        )


__all__ = ["Trigger", "parse_time", "parse_days", "format_days", "cron_weekday"]
