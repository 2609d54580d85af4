"""Periodic deletion of audit log rows past the retention horizon."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError

from .logs import LogRepository, get_log_repository
from .utils import logger


@dataclass
class RetentionSweeper:
    retention_days: int = 7
    interval_seconds: int = 3600
    repository: LogRepository | None = None
    _task: asyncio.Task[None] | None = field(default=None, init=False)
    _running: bool = field(default=False, init=False)

    def cutoff(self, now: datetime | None = None) -> datetime:
        return (now or datetime.now(tz=UTC)) - timedelta(days=self.retention_days)

    def sweep(self, *, now: datetime | None = None) -> int:
        """Delete entries older than the horizon; return how many were removed."""
        cutoff = self.cutoff(now)
        try:
            removed = (self.repository or get_log_repository()).delete_older_than(cutoff)
        except SQLAlchemyError as exc:
            logger.error("Log cleanup failed: {}", exc)
            return 0
        logger.bind(cutoff=cutoff.isoformat()).info(
            "Removed {} old log entries (keeping {} days)", removed, self.retention_days
        )
        return removed

    async def start(self) -> None:
        if self._task:
            return
        self._running = True
        loop = asyncio.get_running_loop()
        self._task = loop.create_task(self._run())
        logger.info("Retention sweeper started.")

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Retention sweeper stopped.")

    async def _run(self) -> None:
        while self._running:
            await asyncio.sleep(self.interval_seconds)
            try:
                await asyncio.to_thread(self.sweep)
            except Exception as exc:  # pragma: no cover - background loop
                logger.exception("Retention sweep iteration failed.", error=str(exc))


__all__ = ["RetentionSweeper"]
