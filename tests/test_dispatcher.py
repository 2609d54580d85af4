"""Tests for command validation and dispatch."""

from __future__ import annotations

import threading

import pytest

from shutterbox.device import CommandMailbox, DeviceStatusTracker
from shutterbox.dispatcher import (
    REASON_ALREADY_CLOSED,
    REASON_ALREADY_OPEN,
    REASON_UNKNOWN_COMMAND,
    CommandDispatcher,
)
from shutterbox.logs import InMemoryLogRepository
from shutterbox.vocabulary import ACTIONS, DEVICE_STATES


def _make_dispatcher(status: str = "closed", *, locale: str = "en"):
    tracker = DeviceStatusTracker()
    tracker.report(status)
    mailbox = CommandMailbox()
    logs = InMemoryLogRepository()
    dispatcher = CommandDispatcher(tracker, mailbox, log_repository=logs, locale=locale)
    return dispatcher, tracker, mailbox, logs


def test_down_rejected_when_closed_without_side_effects():
    dispatcher, _, mailbox, logs = _make_dispatcher("closed")
    mailbox.set("stop")

    result = dispatcher.dispatch("down")

    assert result.accepted is False
    assert result.code == REASON_ALREADY_CLOSED
    assert result.reason
    assert mailbox.peek() == "stop"
    assert logs.list_recent() == []


def test_up_rejected_when_open():
    dispatcher, _, mailbox, logs = _make_dispatcher("open")

    result = dispatcher.dispatch("up")

    assert result.accepted is False
    assert result.code == REASON_ALREADY_OPEN
    assert mailbox.peek() is None
    assert logs.list_recent() == []


def test_down_accepted_when_open_writes_mailbox_and_one_log_row():
    dispatcher, _, mailbox, logs = _make_dispatcher("open")

    result = dispatcher.dispatch("down")

    assert result.accepted is True
    assert result.command == "down"
    assert mailbox.peek() == "down"
    entries = logs.list_recent()
    assert len(entries) == 1
    assert entries[0].status == "down"
    assert "lowering" in entries[0].message
    assert entries[0].message.startswith("Manual command")


def test_unknown_action_rejected_before_status_check():
    dispatcher, _, mailbox, logs = _make_dispatcher("open")

    result = dispatcher.dispatch("explode")

    assert result.accepted is False
    assert result.code == REASON_UNKNOWN_COMMAND
    assert "not a recognized command" in result.reason
    assert mailbox.peek() is None
    assert logs.list_recent() == []


@pytest.mark.parametrize("status", sorted(DEVICE_STATES))
@pytest.mark.parametrize("action", sorted(ACTIONS))
def test_only_two_combinations_are_rejected(status, action):
    dispatcher, _, mailbox, _ = _make_dispatcher(status)

    result = dispatcher.dispatch(action)

    expected_rejection = (action, status) in {("down", "closed"), ("up", "open")}
    assert result.accepted is not expected_rejection
    if expected_rejection:
        assert mailbox.peek() is None
    else:
        assert mailbox.pending()[-1] == action


def test_mailbox_holds_last_accepted_command():
    dispatcher, _, mailbox, logs = _make_dispatcher("stopped")

    for action in ("up", "down", "stop", "up"):
        assert dispatcher.dispatch(action).accepted

    assert mailbox.peek_and_clear() == "up"
    assert mailbox.peek_and_clear() is None
    assert len(logs.list_recent()) == 4


@pytest.mark.parametrize("moving", ["moving_up", "moving_down"])
def test_lock_while_moving_delivers_stop_before_lock(moving):
    dispatcher, _, mailbox, logs = _make_dispatcher(moving)

    result = dispatcher.dispatch("lock")

    assert result.accepted is True
    assert result.delivered == ("stop", "lock")
    assert mailbox.peek_and_clear() == "stop"
    assert mailbox.peek_and_clear() == "lock"
    assert mailbox.peek_and_clear() is None
    assert [entry.status for entry in logs.list_recent()] == ["lock"]


def test_lock_while_stationary_is_written_directly():
    dispatcher, _, mailbox, _ = _make_dispatcher("stopped")

    result = dispatcher.dispatch("lock")

    assert result.delivered == ("lock",)
    assert mailbox.peek_and_clear() == "lock"
    assert mailbox.peek_and_clear() is None


def test_new_command_replaces_pending_stop_lock_pair():
    dispatcher, _, mailbox, _ = _make_dispatcher("moving_down")
    dispatcher.dispatch("lock")

    dispatcher.dispatch("up")

    assert mailbox.peek_and_clear() == "up"
    assert mailbox.peek_and_clear() is None


def test_issue_skips_validation_and_names_the_schedule():
    dispatcher, _, mailbox, logs = _make_dispatcher("closed")

    result = dispatcher.issue("down", schedule_name="Night")

    assert result.accepted is True
    assert mailbox.peek() == "down"
    entry = logs.list_recent()[0]
    assert entry.status == "down"
    assert entry.message == 'Schedule "Night" - shutter lowering'


def test_localized_messages():
    dispatcher, _, _, logs = _make_dispatcher("open", locale="zh")

    dispatcher.dispatch("down")
    rejected = dispatcher.dispatch("bogus")

    assert logs.list_recent()[0].message == "手动执行 - 卷帘门开始下降"
    assert rejected.code == REASON_UNKNOWN_COMMAND


def test_dispatch_survives_log_storage_failure():
    from sqlalchemy.exc import OperationalError

    class BrokenLogs(InMemoryLogRepository):
        def record(self, entry):
            raise OperationalError("INSERT INTO logs", {}, Exception("disk full"))

    tracker = DeviceStatusTracker()
    tracker.report("open")
    mailbox = CommandMailbox()
    dispatcher = CommandDispatcher(tracker, mailbox, log_repository=BrokenLogs())

    result = dispatcher.dispatch("down")

    assert result.accepted is True
    assert mailbox.peek() == "down"


class RecordingMailbox(CommandMailbox):
    def __init__(self) -> None:
        super().__init__()
        self.writes: list[str] = []

    def set(self, action, *, follow_up=None) -> None:
        super().set(action, follow_up=follow_up)
        self.writes.append(action)


def _run_together(*targets) -> None:
    start = threading.Barrier(len(targets))

    def runner(target):
        start.wait()
        target()

    threads = [threading.Thread(target=runner, args=(target,)) for target in targets]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()


def test_concurrent_dispatches_leave_the_last_write_in_the_mailbox():
    tracker = DeviceStatusTracker()
    tracker.report("stopped")
    mailbox = RecordingMailbox()
    logs = InMemoryLogRepository()
    dispatcher = CommandDispatcher(tracker, mailbox, log_repository=logs)
    results = []
    results_lock = threading.Lock()

    def send(action):
        def target() -> None:
            for _ in range(25):
                result = dispatcher.dispatch(action)
                with results_lock:
                    results.append(result)

        return target

    _run_together(*(send(action) for action in ("up", "down", "stop", "up", "down", "stop")))

    assert len(results) == 150
    assert all(result.accepted for result in results)
    assert len(mailbox.writes) == 150
    assert mailbox.pending() == (mailbox.writes[-1],)
    assert len(logs.list_recent(500)) == 150


def test_dispatch_racing_status_reports_writes_only_accepted_commands():
    tracker = DeviceStatusTracker()
    mailbox = RecordingMailbox()
    logs = InMemoryLogRepository()
    dispatcher = CommandDispatcher(tracker, mailbox, log_repository=logs)
    accepted = []
    accepted_lock = threading.Lock()

    def report() -> None:
        for index in range(200):
            tracker.report("open" if index % 2 else "closed")

    def send() -> None:
        for _ in range(100):
            result = dispatcher.dispatch("down")
            if result.accepted:
                with accepted_lock:
                    accepted.append(result)

    _run_together(report, send, send)

    assert len(mailbox.writes) == len(accepted)
    assert len(logs.list_recent(500)) == len(accepted)
    assert set(mailbox.writes) <= {"down"}


def test_dispatch_racing_polls_delivers_no_command_twice():
    tracker = DeviceStatusTracker()
    tracker.report("stopped")
    mailbox = RecordingMailbox()
    dispatcher = CommandDispatcher(tracker, mailbox, log_repository=InMemoryLogRepository())
    delivered: list[str] = []
    delivered_lock = threading.Lock()

    def send() -> None:
        for index in range(100):
            dispatcher.dispatch("up" if index % 2 else "down")

    def poll() -> None:
        for _ in range(200):
            value = mailbox.peek_and_clear()
            if value is not None:
                with delivered_lock:
                    delivered.append(value)

    _run_together(send, poll, poll)

    assert len(delivered) + len(mailbox.pending()) <= len(mailbox.writes)
    assert len(mailbox.pending()) <= 1
