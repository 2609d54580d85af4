"""Tests for the configuration helpers."""

from __future__ import annotations

import importlib
import os
import sys
from pathlib import Path

import pytest

MODULE_NAME = "shutterbox.config"


@pytest.fixture(autouse=True)
def _restore_environment():
    snapshot = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(snapshot)
    sys.modules.pop(MODULE_NAME, None)
    importlib.import_module(MODULE_NAME)


def _reload_config(monkeypatch: pytest.MonkeyPatch, env_file: Path) -> object:
    monkeypatch.setenv("SHUTTERBOX_ENV_FILE", str(env_file))
    sys.modules.pop(MODULE_NAME, None)
    return importlib.import_module(MODULE_NAME)


def test_defaults_without_env_file(tmp_path, monkeypatch):
    for key in list(os.environ):
        if key.startswith("SHUTTERBOX_"):
            monkeypatch.delenv(key)

    config = _reload_config(monkeypatch, tmp_path / "missing.env")

    assert config.settings.reconcile_interval_seconds == 60
    assert config.settings.log_retention_days == 7
    assert config.settings.log_cleanup_interval_seconds == 3600
    assert config.settings.timezone is None
    assert config.settings.locale == "en"
    assert config.settings.background_tasks is True


def test_settings_loaded_from_env_file(tmp_path, monkeypatch):
    monkeypatch.delenv("SHUTTERBOX_LOCALE", raising=False)
    monkeypatch.delenv("SHUTTERBOX_RECONCILE_INTERVAL", raising=False)
    monkeypatch.delenv("SHUTTERBOX_TIMEZONE", raising=False)
    env_file = tmp_path / ".env"
    env_file.write_text(
        "# shutter settings\n"
        "SHUTTERBOX_LOCALE=zh\n"
        "SHUTTERBOX_RECONCILE_INTERVAL='30'\n"
        'SHUTTERBOX_TIMEZONE="Asia/Shanghai"\n',
        encoding="utf-8",
    )

    config = _reload_config(monkeypatch, env_file)

    assert config.settings.locale == "zh"
    assert config.settings.reconcile_interval_seconds == 30
    assert config.settings.timezone == "Asia/Shanghai"


def test_environment_variable_overrides_env_file(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("SHUTTERBOX_LOCALE=zh\n", encoding="utf-8")
    monkeypatch.setenv("SHUTTERBOX_LOCALE", "en")
    monkeypatch.setenv("SHUTTERBOX_BACKGROUND_TASKS", "off")

    config = _reload_config(monkeypatch, env_file)

    assert config.settings.locale == "en"
    assert config.settings.background_tasks is False


def test_invalid_values_fall_back_to_defaults(tmp_path, monkeypatch):
    monkeypatch.setenv("SHUTTERBOX_LOG_RETENTION_DAYS", "a week")
    monkeypatch.setenv("SHUTTERBOX_LOG_CLEANUP_INTERVAL", "0")
    monkeypatch.setenv("SHUTTERBOX_LOCALE", "fr")

    config = _reload_config(monkeypatch, tmp_path / "missing.env")

    assert config.settings.log_retention_days == 7
    assert config.settings.log_cleanup_interval_seconds == 3600
    assert config.settings.locale == "en"
