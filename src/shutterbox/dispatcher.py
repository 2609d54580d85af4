"""Validation and dispatch of shutter commands into the device mailbox."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from .device import CommandMailbox, DeviceStatusTracker
from .logs import LogRepository, record_log
from .utils import logger
from .vocabulary import MOVING_STATES, Action, describe_action, is_action, message

REASON_UNKNOWN_COMMAND = "unknown_command"
REASON_ALREADY_CLOSED = "already_closed"
REASON_ALREADY_OPEN = "already_open"


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of a dispatch attempt."""

    accepted: bool
    command: str | None = None
    reason: str | None = None
    code: str | None = None
    delivered: tuple[Action, ...] = ()


class CommandDispatcher:
    """Checks requested actions against the tracked status and fills the mailbox.

    The status check and the mailbox write happen under one lock so two
    concurrent requests can never both validate against the same stale state.
    """

    def __init__(
        self,
        tracker: DeviceStatusTracker,
        mailbox: CommandMailbox,
        *,
        log_repository: LogRepository | None = None,
        locale: str = "en",
    ) -> None:
        self._tracker = tracker
        self._mailbox = mailbox
        self._log_repository = log_repository
        self._locale = locale
        self._lock = Lock()

    def dispatch(self, action: str) -> DispatchResult:
        """Validate ``action`` against the current status and issue it."""
        if not is_action(action):
            return self._reject(
                action, REASON_UNKNOWN_COMMAND, message("unknown_command", self._locale, action=action)
            )

        with self._lock:
            status = self._tracker.current().status
            if action == "down" and status == "closed":
                return self._reject(
                    action, REASON_ALREADY_CLOSED, message("rejected_down", self._locale)
                )
            if action == "up" and status == "open":
                return self._reject(
                    action, REASON_ALREADY_OPEN, message("rejected_up", self._locale)
                )
            delivered = self._write(action, status)

        description = describe_action(action, self._locale)
        self._log(action, message("manual", self._locale, description=description))
        return DispatchResult(accepted=True, command=action, delivered=delivered)

    def issue(self, action: Action, *, schedule_name: str) -> DispatchResult:
        """Write ``action`` on behalf of a schedule, without the status checks."""
        with self._lock:
            delivered = self._write(action, self._tracker.current().status)

        description = describe_action(action, self._locale)
        self._log(
            action,
            message("scheduled", self._locale, name=schedule_name, description=description),
        )
        return DispatchResult(accepted=True, command=action, delivered=delivered)

    def _write(self, action: Action, status: str) -> tuple[Action, ...]:
        if action == "lock" and status in MOVING_STATES:
            # The poll that consumes "stop" releases "lock" into the slot.
            self._mailbox.set("stop", follow_up="lock")
            logger.bind(status=status).info(
                "Lock requested while moving; queued stop before lock"
            )
            return ("stop", "lock")
        self._mailbox.set(action)
        return (action,)

    def _reject(self, action: str, code: str, reason: str) -> DispatchResult:
        logger.bind(command=action, code=code).info("Command rejected: {}", reason)
        return DispatchResult(accepted=False, command=action, reason=reason, code=code)

    def _log(self, status: str, text: str) -> None:
        record_log(status=status, message=text, repository=self._log_repository)


__all__ = [
    "DispatchResult",
    "CommandDispatcher",
    "REASON_UNKNOWN_COMMAND",
    "REASON_ALREADY_CLOSED",
    "REASON_ALREADY_OPEN",
]
