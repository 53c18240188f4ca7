"""Cron-style schedule strings to Celery beat schedules."""

import re
from datetime import timedelta
from typing import Union

from celery.schedules import crontab

MACROS = {
    "@yearly": "0 0 1 1 *",
    "@annually": "0 0 1 1 *",
    "@monthly": "0 0 1 * *",
    "@weekly": "0 0 * * 0",
    "@daily": "0 0 * * *",
    "@midnight": "0 0 * * *",
    "@hourly": "0 * * * *",
}

EVERY = re.compile(r"^@every\s+(\d+)([smh])$")
UNITS = {"s": "seconds", "m": "minutes", "h": "hours"}


def parse_schedule(expression: str) -> Union[crontab, timedelta]:
    """Parse a five-field cron expression, a macro or "@every <n><s|m|h>".

    A six-field expression is accepted when its leading seconds field is 0.
    """
    value = (expression or "").strip()
    if not value:
        raise ValueError("schedule must be a non-empty cron expression")

    every = EVERY.match(value)
    if every:
        amount = int(every.group(1))
        if amount <= 0:
            raise ValueError(f"schedule interval must be positive: {expression!r}")
        return timedelta(**{UNITS[every.group(2)]: amount})

    value = MACROS.get(value, value)
    if value.startswith("@"):
        raise ValueError(f"unknown schedule macro: {expression!r}")

    fields = value.split()
    if len(fields) == 6:
        if fields[0] != "0":
            raise ValueError(f"sub-minute schedules are not supported: {expression!r}")
        fields = fields[1:]
    if len(fields) != 5:
        raise ValueError(f"expected five cron fields, got {len(fields)}: {expression!r}")

    minute, hour, day_of_month, month_of_year, day_of_week = fields
    return crontab(
        minute=minute,
        hour=hour,
        day_of_month=day_of_month,
        month_of_year=month_of_year,
        day_of_week=day_of_week,
    )
