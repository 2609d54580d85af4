"""Command and device-state vocabularies plus their human-readable wording."""

from __future__ import annotations

from typing import Literal, TypeGuard, get_args

Action = Literal["up", "down", "stop", "lock"]
DeviceState = Literal["closed", "open", "stopped", "locked", "moving_up", "moving_down"]

ACTIONS: frozenset[str] = frozenset(get_args(Action))
DEVICE_STATES: frozenset[str] = frozenset(get_args(DeviceState))
MOVING_STATES: frozenset[str] = frozenset({"moving_up", "moving_down"})

INITIAL_STATE: DeviceState = "closed"

_ACTION_DESCRIPTIONS: dict[str, dict[str, str]] = {
    "en": {
        "up": "raising",
        "down": "lowering",
        "stop": "stopping/unlocking",
        "lock": "locking",
    },
    "zh": {
        "up": "上升",
        "down": "下降",
        "stop": "停止/解锁",
        "lock": "锁定",
    },
}

_MESSAGES: dict[str, dict[str, str]] = {
    "en": {
        "manual": "Manual command - shutter {description}",
        "scheduled": 'Schedule "{name}" - shutter {description}',
        "heartbeat": "Device heartbeat - from IP {ip} - status: {status}",
        "rejected_down": "Shutter is already fully closed; cannot lower further",
        "rejected_up": "Shutter is already fully open; cannot raise further",
        "unknown_command": "{action!r} is not a recognized command",
    },
    "zh": {
        "manual": "手动执行 - 卷帘门开始{description}",
        "scheduled": '定时任务 "{name}" - 卷帘门开始{description}',
        "heartbeat": "设备心跳 - 来自IP {ip} - 状态: {status}",
        "rejected_down": "卷帘门已关闭，无法再下降",
        "rejected_up": "卷帘门已打开，无法再上升",
        "unknown_command": "{action!r} 不是可识别的命令",
    },
}


def is_action(value: object) -> TypeGuard[Action]:
    return isinstance(value, str) and value in ACTIONS


def is_device_state(value: object) -> TypeGuard[DeviceState]:
    return isinstance(value, str) and value in DEVICE_STATES


def _table(mapping: dict[str, dict[str, str]], locale: str) -> dict[str, str]:
    return mapping.get(locale, mapping["en"])


def describe_action(action: str, locale: str = "en") -> str:
    """Return the wording used in log messages for an action kind."""
    return _table(_ACTION_DESCRIPTIONS, locale).get(action, action)


def message(key: str, locale: str = "en", **values: object) -> str:
    """Render one of the localized message templates."""
    return _table(_MESSAGES, locale)[key].format(**values)


__all__ = [
    "Action",
    "DeviceState",
    "ACTIONS",
    "DEVICE_STATES",
    "MOVING_STATES",
    "INITIAL_STATE",
    "is_action",
    "is_device_state",
    "describe_action",
    "message",
]
