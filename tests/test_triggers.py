"""Tests for trigger parsing and matching."""

from __future__ import annotations

from datetime import datetime

import pytest

from shutterbox.triggers import Trigger, cron_weekday, format_days, parse_days, parse_time


def test_parse_time_accepts_single_digit_hour():
    assert parse_time("7:05") == (7, 5)
    assert parse_time("23:59") == (23, 59)


@pytest.mark.parametrize("value", ["24:00", "12:60", "7h30", "", "07:3"])
def test_parse_time_rejects_malformed_values(value):
    with pytest.raises(ValueError):
        parse_time(value)


def test_parse_days_accepts_comma_string_and_list():
    assert parse_days("5,1,3") == (1, 3, 5)
    assert parse_days([3, 1, 3]) == (1, 3)
    assert parse_days(" 0 , 6 ") == (0, 6)


@pytest.mark.parametrize("value", ["", "mon", [7], [-1], [], [True]])
def test_parse_days_rejects_malformed_values(value):
    with pytest.raises(ValueError):
        parse_days(value)


def test_format_days_matches_stored_form():
    assert format_days([5, 1, 3, 1]) == "1,3,5"


def test_cron_weekday_counts_sunday_as_zero():
    assert cron_weekday(datetime(2026, 10, 18)) == 0  # Sunday
    assert cron_weekday(datetime(2026, 10, 19)) == 1  # Monday
    assert cron_weekday(datetime(2026, 10, 24)) == 6  # Saturday


def test_trigger_matches_time_and_day():
    trigger = Trigger.build(
        schedule_id=1, name="Morning", command="up", time="07:30", days="1,3,5"
    )

    assert trigger.matches(datetime(2026, 10, 19, 7, 30, 45))
    assert not trigger.matches(datetime(2026, 10, 19, 7, 31))
    assert not trigger.matches(datetime(2026, 10, 20, 7, 30))


def test_trigger_build_rejects_unknown_command():
    with pytest.raises(ValueError, match="Unknown command"):
        Trigger.build(schedule_id=1, name="Bad", command="open", time="07:30", days="1")
