"""Shared date and time helpers used across the scheduler.

Times of day are carried as integer minutes since midnight. ``HH:MM``
strings and localized date labels exist only at the edges.
"""

import re
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Optional

from advisory_scheduler.errors import ValidationError

TIME_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")
ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ISO_DATETIME_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})T\d{2}:\d{2}")
SLASH_DATE_PATTERN = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")
LOCALIZED_DATE_PATTERN = re.compile(r"^(\w{3}) (\d{1,2}) (\w{3})$")

MINUTES_PER_DAY = 24 * 60

SPANISH_MONTHS: dict[str, int] = {
    "Ene": 1, "Feb": 2, "Mar": 3, "Abr": 4, "May": 5, "Jun": 6,
    "Jul": 7, "Ago": 8, "Sep": 9, "Oct": 10, "Nov": 11, "Dic": 12,
}

# Indexed by date.weekday() (Monday == 0)
SPANISH_WEEKDAYS = ["Lun", "Mar", "Mié", "Jue", "Vie", "Sáb", "Dom"]


def parse_time(value: str, field: str = "time") -> int:
    """Parse a 24-hour ``HH:MM`` string into minutes since midnight.

    Examples:
        >>> parse_time("14:00")
        840
        >>> parse_time("9:05")
        545
    """
    match = TIME_PATTERN.match(value.strip()) if isinstance(value, str) else None
    if not match:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM (24-hour).", field=field)
    return int(match.group(1)) * 60 + int(match.group(2))


def format_time(minutes: int) -> str:
    """Format minutes since midnight as a zero-padded ``HH:MM`` string."""
    minutes %= MINUTES_PER_DAY
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def _build_date(year: int, month: int, day: int, raw: str, field: str) -> date:
    try:
        return date(year, month, day)
    except ValueError:
        raise ValidationError(f"Invalid date {raw!r}.", field=field) from None


def parse_date(value: str, today: Optional[date] = None, field: str = "date") -> date:
    """Parse a request date.

    ISO ``YYYY-MM-DD`` is the wire format. ``DD/MM/YYYY`` and the
    localized ``"Lun 16 Jun"`` label are accepted for older clients; the
    localized form has no year, so the current year is assumed and a date
    already in the past rolls over to next year.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Date is required.", field=field)
    raw = value.strip()

    if ISO_DATE_PATTERN.match(raw):
        year, month, day = (int(p) for p in raw.split("-"))
        return _build_date(year, month, day, raw, field)

    iso_dt = ISO_DATETIME_PATTERN.match(raw)
    if iso_dt:
        year, month, day = (int(p) for p in iso_dt.group(1).split("-"))
        return _build_date(year, month, day, raw, field)

    slash = SLASH_DATE_PATTERN.match(raw)
    if slash:
        day, month, year = (int(g) for g in slash.groups())
        return _build_date(year, month, day, raw, field)

    localized = LOCALIZED_DATE_PATTERN.match(raw)
    if localized:
        month = SPANISH_MONTHS.get(localized.group(3).capitalize())
        if month is None:
            raise ValidationError(f"Unknown month in {raw!r}.", field=field)
        day = int(localized.group(2))
        today = today or date.today()
        parsed = _build_date(today.year, month, day, raw, field)
        if parsed < today:
            parsed = _build_date(today.year + 1, month, day, raw, field)
        return parsed

    raise ValidationError(
        f"Unsupported date format {raw!r}. Use YYYY-MM-DD.", field=field
    )


def format_display_date(value: date) -> str:
    """Localized label for presentation, e.g. ``"Lun 16 Jun"``."""
    month = next(name for name, num in SPANISH_MONTHS.items() if num == value.month)
    return f"{SPANISH_WEEKDAYS[value.weekday()]} {value.day:02d} {month}"


def day_of_week(value: date) -> int:
    """Day of week with Sunday == 0 and Saturday == 6."""
    return (value.weekday() + 1) % 7


def local_datetime(value: date, minutes: int, tz: tzinfo) -> datetime:
    """Combine a date and minutes since midnight into an aware datetime."""
    return datetime.combine(value, time(0, 0), tzinfo=tz) + timedelta(minutes=minutes)


def date_range(start: date, end: date):
    """Yield each date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
