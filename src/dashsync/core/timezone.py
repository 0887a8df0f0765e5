"""Timezone utilities; all client timestamps are UTC."""

from datetime import date, datetime
from typing import Optional, Union

import pytz
from dateutil import parser as date_parser

UTC_TZ = pytz.utc


def now_utc() -> datetime:
    """Return current time in UTC."""
    return datetime.now(UTC_TZ)


def to_utc(dt: datetime) -> datetime:
    """Convert a datetime to UTC."""
    if dt.tzinfo is None:
        # Assume naive datetime is already UTC
        return UTC_TZ.localize(dt)
    return dt.astimezone(UTC_TZ)


def parse_datetime_utc(value: Union[str, int, float], default_tz: Optional[pytz.BaseTzInfo] = None) -> datetime:
    """
    Parse a server timestamp and return it in UTC.

    Accepts ISO-8601 strings and epoch milliseconds (as sent by the dashboard API).
    If no timezone is provided in the string, assumes UTC.
    """
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, UTC_TZ)
    dt = date_parser.parse(value)
    if dt.tzinfo is None:
        tz = default_tz or UTC_TZ
        dt = tz.localize(dt)
    return to_utc(dt)


def parse_date(value: Union[str, date, datetime]) -> date:
    """Parse a calendar date from a date, datetime or string."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date_parser.parse(value).date()
