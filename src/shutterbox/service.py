"""Service object owning the shared shutter state, injected into request handlers."""

from __future__ import annotations

from functools import lru_cache

from . import config
from .config import Settings
from .device import CommandMailbox, DeviceStatus, DeviceStatusTracker
from .dispatcher import CommandDispatcher, DispatchResult
from .logs import LogEntry, LogRepository, get_log_repository, record_log
from .reconciler import ScheduleReconciler, resolve_timezone
from .retention import RetentionSweeper
from .schedules import ScheduleRepository, get_schedule_repository
from .utils import logger
from .vocabulary import Action, message


class ShutterController:
    """Bundles the tracker, mailbox, dispatcher, reconciler and sweeper."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        log_repository: LogRepository | None = None,
        schedule_repository: ScheduleRepository | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self._log_repository = log_repository
        self._schedule_repository = schedule_repository
        self.tracker = DeviceStatusTracker()
        self.mailbox = CommandMailbox()
        self.dispatcher = CommandDispatcher(
            self.tracker,
            self.mailbox,
            log_repository=log_repository,
            locale=self.settings.locale,
        )
        self.reconciler = ScheduleReconciler(
            self.dispatcher,
            repository=schedule_repository,
            timezone=resolve_timezone(self.settings.timezone),
            interval_seconds=self.settings.reconcile_interval_seconds,
        )
        self.sweeper = RetentionSweeper(
            retention_days=self.settings.log_retention_days,
            interval_seconds=self.settings.log_cleanup_interval_seconds,
            repository=log_repository,
        )

    @property
    def logs(self) -> LogRepository:
        return self._log_repository or get_log_repository()

    @property
    def schedules(self) -> ScheduleRepository:
        return self._schedule_repository or get_schedule_repository()

    # Device-facing operations ----------------------------------------------

    def poll(self) -> Action | None:
        """Hand the pending command to the device and clear it."""
        command = self.mailbox.peek_and_clear()
        if command is not None:
            logger.bind(command=command).debug("Command delivered to device")
        return command

    def dispatch(self, action: str) -> DispatchResult:
        return self.dispatcher.dispatch(action)

    def report(
        self, status: str | None, text: str, source_ip: str | None = None
    ) -> LogEntry | None:
        """Record a device self-report; the log keeps the raw status text."""
        self.tracker.report(status, source_ip)
        return record_log(status=status or "", message=text, repository=self._log_repository)

    def heartbeat(self, status: str | None, ip: str | None = None) -> LogEntry | None:
        text = message(
            "heartbeat",
            self.settings.locale,
            ip=ip or "unknown",
            status=status or "",
        )
        return self.report(status, text, ip)

    def device_status(self) -> DeviceStatus:
        return self.tracker.current()

    # Lifecycle ---------------------------------------------------------------

    async def start(self) -> None:
        self.reconciler.reconcile()
        self.sweeper.sweep()
        if not self.settings.background_tasks:
            logger.info("Background tasks disabled by configuration")
            return
        await self.reconciler.start()
        await self.sweeper.start()

    async def stop(self) -> None:
        await self.reconciler.stop()
        await self.sweeper.stop()


@lru_cache
def get_controller() -> ShutterController:
    """Return the process-wide controller used by the API."""
    return ShutterController(config.settings)


__all__ = ["ShutterController", "get_controller"]
