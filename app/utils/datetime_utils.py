"""
Calendar helpers shared by the activity analytics engine.

Timestamps are handled as-is: naive values are treated as local wall-clock
time, aware values keep their zone. No conversion happens here.
"""
import calendar
from datetime import datetime
from typing import Any, Dict, Mapping


def start_of_day(value: datetime) -> datetime:
    """Truncate a timestamp to midnight of the same calendar day."""
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def subtract_months(value: datetime, months: int) -> datetime:
    """
    Step a timestamp back by whole calendar months.

    The day-of-month is clamped to the length of the target month, so
    March 31st minus one month lands on the last day of February.

    Args:
        value: Timestamp to move
        months: Number of months to go back (negative values move forward)

    Returns:
        The shifted timestamp with the time-of-day preserved
    """
    month_index = value.year * 12 + (value.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return value.replace(year=year, month=month, day=min(value.day, last_day))


def isoformat_keys(mapping: Mapping[datetime, Any]) -> Dict[str, Any]:
    """Render datetime-keyed mappings with ISO-8601 string keys for JSON output."""
    return {key.isoformat(): item for key, item in mapping.items()}


def match_timezone(value: datetime, reference: datetime) -> datetime:
    """
    Express ``value`` in the same naive/aware form as ``reference``.

    A naive value is read as local time. Aware values are converted to the
    reference's zone, or to local wall-clock time when the reference is naive.
    """
    if (value.tzinfo is None) == (reference.tzinfo is None):
        return value
    if value.tzinfo is None:
        return value.astimezone(reference.tzinfo)
    return value.astimezone().replace(tzinfo=None)
