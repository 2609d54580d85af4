"""Rebuilds live time triggers from persisted schedules and fires them."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from datetime import datetime, timedelta, tzinfo
from threading import Lock
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.exc import SQLAlchemyError

from .dispatcher import CommandDispatcher
from .schedules import ScheduleRecord, ScheduleRepository, get_schedule_repository
from .triggers import Trigger
from .utils import logger


def resolve_timezone(name: str | None) -> ZoneInfo | None:
    """Return the zone for ``name``; ``None`` means server local time."""
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Invalid timezone {!r}; using server local time.", name)
        return None


def _build_trigger(record: ScheduleRecord) -> Trigger | None:
    try:
        return Trigger.build(
            schedule_id=record.id,
            name=record.name,
            command=record.command,
            time=record.time,
            days=record.days,
        )
    except ValueError as exc:
        logger.warning(
            "Skipping malformed schedule definition.",
            schedule_id=record.id,
            name=record.name,
            error=str(exc),
        )
        return None


class ScheduleReconciler:
    """Owns the live trigger set.

    Every pass tears down all triggers and rebuilds them from the enabled
    definitions in the store. Passes are serialized; a pass and a clock tick
    never interleave.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        *,
        repository: ScheduleRepository | None = None,
        timezone: tzinfo | None = None,
        interval_seconds: int = 60,
    ) -> None:
        self._dispatcher = dispatcher
        self._repository = repository
        self._timezone = timezone
        self.interval_seconds = interval_seconds
        self._lock = Lock()
        self._triggers: dict[int, Trigger] = {}
        self._last_tick: datetime | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._running = False

    @property
    def repository(self) -> ScheduleRepository:
        return self._repository or get_schedule_repository()

    def triggers(self) -> list[Trigger]:
        with self._lock:
            return sorted(
                self._triggers.values(),
                key=lambda trigger: (trigger.hour, trigger.minute, trigger.schedule_id),
            )

    def reconcile(self) -> int:
        """Replace the live triggers with the enabled definitions; return the count."""
        with self._lock:
            try:
                records = self.repository.list(enabled=True)
            except SQLAlchemyError as exc:
                logger.error(
                    "Failed to load schedules; keeping {} live triggers: {}",
                    len(self._triggers),
                    exc,
                )
                return len(self._triggers)

            self._triggers.clear()
            for record in records:
                if not record.enabled:
                    continue
                trigger = _build_trigger(record)
                if trigger is not None:
                    self._triggers[trigger.schedule_id] = trigger
            installed = len(self._triggers)

        logger.info("Scheduled {} trigger(s)", installed)
        return installed

    def now(self) -> datetime:
        if self._timezone is None:
            return datetime.now()
        return datetime.now(self._timezone)

    def tick(self, now: datetime | None = None) -> list[Trigger]:
        """Fire every trigger due in the minute of ``now``; once per minute."""
        current = now or self.now()
        if current.tzinfo is not None and self._timezone is not None:
            current = current.astimezone(self._timezone)
        minute = current.replace(second=0, microsecond=0)

        with self._lock:
            if self._last_tick == minute:
                return []
            self._last_tick = minute
            due = [trigger for trigger in self._triggers.values() if trigger.matches(minute)]

        for trigger in due:
            self._fire(trigger)
        return due

    def _fire(self, trigger: Trigger) -> None:
        logger.info(
            "Running scheduled command.",
            schedule_id=trigger.schedule_id,
            name=trigger.name,
            command=trigger.command,
        )
        try:
            self._dispatcher.issue(trigger.command, schedule_name=trigger.name)
        except Exception as exc:  # pragma: no cover - background loop
            logger.exception(
                "Scheduled command failed.", schedule_id=trigger.schedule_id, error=str(exc)
            )

    # Background loops -------------------------------------------------------

    async def start(self) -> None:
        if self._tasks:
            return
        self._running = True
        loop = asyncio.get_running_loop()
        self._tasks = [
            loop.create_task(self._run_clock()),
            loop.create_task(self._run_reconcile()),
        ]
        logger.info("Schedule reconciler started.")

    async def stop(self) -> None:
        self._running = False
        for task in self._tasks:
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task
        self._tasks = []
        logger.info("Schedule reconciler stopped.")

    def _seconds_until_next_minute(self) -> float:
        current = self.now()
        following = current.replace(second=0, microsecond=0) + timedelta(minutes=1)
        return max((following - current).total_seconds(), 0.05)

    async def _run_clock(self) -> None:
        while self._running:
            await asyncio.sleep(self._seconds_until_next_minute())
            try:
                await asyncio.to_thread(self.tick)
            except Exception as exc:  # pragma: no cover - background loop
                logger.exception("Trigger clock iteration failed.", error=str(exc))

    async def _run_reconcile(self) -> None:
        while self._running:
            try:
                await asyncio.to_thread(self.reconcile)
            except Exception as exc:  # pragma: no cover - background loop
                logger.exception("Schedule reconciliation failed.", error=str(exc))
            await asyncio.sleep(self.interval_seconds)


__all__ = ["ScheduleReconciler", "resolve_timezone"]
