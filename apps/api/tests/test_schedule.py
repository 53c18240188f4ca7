"""Tests for schedule parsing."""

from datetime import timedelta

import pytest
from celery.schedules import crontab

from cdn_broker.utils.schedule import parse_schedule


def test_five_field_cron():
    schedule = parse_schedule("30 2 * * 1")

    assert isinstance(schedule, crontab)
    assert schedule == crontab(minute="30", hour="2", day_of_week="1")


def test_six_field_cron_with_zero_seconds():
    assert parse_schedule("0 0 * * * *") == crontab(minute="0", hour="*")


@pytest.mark.parametrize(
    "macro,expected",
    [
        ("@hourly", crontab(minute="0")),
        ("@daily", crontab(minute="0", hour="0")),
        ("@weekly", crontab(minute="0", hour="0", day_of_week="0")),
    ],
)
def test_macros(macro, expected):
    assert parse_schedule(macro) == expected


@pytest.mark.parametrize(
    "expression,expected",
    [
        ("@every 2m", timedelta(minutes=2)),
        ("@every 30s", timedelta(seconds=30)),
        ("@every 1h", timedelta(hours=1)),
    ],
)
def test_every(expression, expected):
    assert parse_schedule(expression) == expected


@pytest.mark.parametrize(
    "expression",
    ["", "   ", "@fortnightly", "* * *", "30 0 * * * *", "@every 0m"],
)
def test_invalid_schedules(expression):
    with pytest.raises(ValueError):
        parse_schedule(expression)
