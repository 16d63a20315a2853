"""Timestamp helpers shared by the agent, the applier and the conflict detector."""

import calendar
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

from src.models.task import RecurrencePattern


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso_now() -> str:
    """Current instant as ISO-8601 text with offset (the format the model is asked to use)."""
    return to_iso(utc_now())


def to_iso(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso_datetime(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Parse ISO-8601 text into an aware datetime.

    Returns None for anything unparseable. Naive values are read as UTC.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def add_months(value: datetime, months: int) -> datetime:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def shift_by_pattern(value: datetime, pattern: RecurrencePattern, step: int) -> datetime:
    """Return the start of the ``step``-th recurrence instance."""
    if step <= 0 or pattern == RecurrencePattern.NONE:
        return value
    if pattern == RecurrencePattern.DAILY:
        return value + timedelta(days=step)
    if pattern == RecurrencePattern.WEEKLY:
        return value + timedelta(weeks=step)
    return add_months(value, step)
