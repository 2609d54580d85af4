"""Last-known device state and the single-slot command mailbox."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from threading import Lock

from .utils import logger
from .vocabulary import INITIAL_STATE, MOVING_STATES, Action, DeviceState, is_device_state


@dataclass(frozen=True)
class DeviceStatus:
    """Point-in-time copy of the tracked device state."""

    status: DeviceState
    last_update: datetime
    source_ip: str = ""

    @property
    def moving(self) -> bool:
        return self.status in MOVING_STATES


class DeviceStatusTracker:
    """Last-write-wins register of the state the device reported about itself.

    Self-reports are ground truth and are never rejected; only values outside
    the known state vocabulary are kept out of the register.
    """

    def __init__(self, initial: DeviceState = INITIAL_STATE) -> None:
        self._lock = Lock()
        self._status = DeviceStatus(status=initial, last_update=datetime.now(tz=UTC))

    def current(self) -> DeviceStatus:
        with self._lock:
            return self._status

    def report(
        self,
        status: str | None,
        source_ip: str | None = None,
        *,
        at: datetime | None = None,
    ) -> bool:
        """Record a self-report; return True when the tracked status changed value."""
        with self._lock:
            previous = self._status
            new_status = previous.status
            if is_device_state(status):
                new_status = status
            else:
                logger.bind(status=status).debug(
                    "Ignoring unknown device status for tracking"
                )
            self._status = DeviceStatus(
                status=new_status,
                last_update=at or datetime.now(tz=UTC),
                source_ip=source_ip or previous.source_ip,
            )
            return new_status != previous.status


class CommandMailbox:
    """Holds at most one pending command for the polling device.

    A write replaces whatever is unread. A write may carry a follow-up command
    that is promoted into the slot by the poll that consumes the first one, so
    the device is guaranteed to see both in order unless a newer write
    replaces them.
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._value: Action | None = None
        self._follow_up: Action | None = None

    def set(self, action: Action, *, follow_up: Action | None = None) -> None:
        with self._lock:
            self._value = action
            self._follow_up = follow_up

    def peek(self) -> Action | None:
        with self._lock:
            return self._value

    def peek_and_clear(self) -> Action | None:
        with self._lock:
            value = self._value
            if value is None:
                return None
            self._value = self._follow_up
            self._follow_up = None
            return value

    def pending(self) -> tuple[Action, ...]:
        """Return the queued slot value and follow-up, in delivery order."""
        with self._lock:
            return tuple(
                action for action in (self._value, self._follow_up) if action is not None
            )


__all__ = ["DeviceStatus", "DeviceStatusTracker", "CommandMailbox"]
