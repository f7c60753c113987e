"""
Date Handling Module

Business logic works on ``datetime.date`` only. Strings cross the boundary in
two shapes: ISO ``YYYY-MM-DD`` (storage, vouchers, reports) and the display
format ``DD/MM/YYYY`` used by the collection desk. Both are parsed here and
nowhere else.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Union

from .exceptions import ValidationError


DISPLAY_FORMAT = "%d/%m/%Y"

DateLike = Union[date, datetime, str, None]


def parse_date(value: DateLike) -> Optional[date]:
    """
    Parse a date from any accepted boundary representation.

    Accepts ``date``, ``datetime`` (date part kept), ISO strings (with or
    without a time part) and ``DD/MM/YYYY`` strings. Empty values give None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValidationError(f"Unsupported date value: {value!r}")

    text = value.strip()
    try:
        if "/" in text:
            return datetime.strptime(text, DISPLAY_FORMAT).date()
        if "T" in text or " " in text:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        return date.fromisoformat(text)
    except ValueError as e:
        raise ValidationError(f"Invalid date: {value}") from e


def require_date(value: DateLike, field: str = "date") -> date:
    parsed = parse_date(value)
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed


def format_display(value: Optional[date]) -> Optional[str]:
    """Render a date as DD/MM/YYYY"""
    if value is None:
        return None
    return value.strftime(DISPLAY_FORMAT)


def format_iso(value: Optional[date]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat()


def add_months(start_date: date, months: int) -> date:
    """Add months to a date, clamping to the last day of short months"""
    month = start_date.month - 1 + months
    year = start_date.year + month // 12
    month = month % 12 + 1
    day = min(start_date.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def start_of_day(value: date) -> datetime:
    return datetime(value.year, value.month, value.day)


def days_between(earlier: date, later: date) -> int:
    return (later - earlier).days


class Clock:
    """
    Source of "today" and "now" for every business rule.

    A fixed ``business_date`` pins the clock to that day (midday), which the
    counter staff use to post back-dated work and the tests use for
    determinism.
    """

    def __init__(self, business_date: Optional[date] = None):
        self.business_date = business_date

    def today(self) -> date:
        if self.business_date is not None:
            return self.business_date
        return date.today()

    def now(self) -> datetime:
        if self.business_date is not None:
            return start_of_day(self.business_date) + timedelta(hours=12)
        return datetime.now()

    def utcnow(self) -> datetime:
        return datetime.now(timezone.utc)
