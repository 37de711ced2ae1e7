"""Event date parsing and normalization helpers.

Event dates arrive in several representations (date-only ISO strings,
full ISO-8601 datetimes, epoch milliseconds as numeric strings or numbers)
and are always stored as calendar dates and read back as ``YYYY-MM-DD``.

Example:
    Parse on write, format on read:
        >>> from app.utils.dates import parse_event_date, format_event_date
        >>> parse_event_date("2025-01-01T23:30:00-05:00")
        datetime.date(2025, 1, 2)
        >>> parse_event_date("1735689600000")
        datetime.date(2025, 1, 1)
        >>> format_event_date(datetime.date(2025, 1, 1))
        '2025-01-01'
"""

from __future__ import annotations

import datetime
import math
import re

_EPOCH_PATTERN = re.compile(r"^-?\d+(\.\d+)?$")


def _to_utc_date(value: datetime.datetime) -> datetime.date:
    if value.tzinfo is not None:
        value = value.astimezone(datetime.UTC)
    return value.date()


def _from_epoch_millis(raw: float | str) -> datetime.date:
    try:
        millis = float(raw)
    except OverflowError as exc:
        raise ValueError("epoch value out of range") from exc
    if not math.isfinite(millis):
        raise ValueError("epoch value must be finite")
    try:
        moment = datetime.datetime.fromtimestamp(millis / 1000, tz=datetime.UTC)
    except (OverflowError, OSError) as exc:
        raise ValueError("epoch value out of range") from exc
    return moment.date()


def parse_event_date(value: object) -> datetime.date:
    """Parse a caller-supplied event date into a calendar date.

    Accepts ``datetime.date``/``datetime.datetime`` objects, ISO-8601
    date or datetime strings, and epoch milliseconds given either as a
    number or as a numeric string. Aware datetimes are converted to UTC
    before the date is taken.

    Args:
        value: Raw date value from a request payload.

    Returns:
        The calendar date.

    Raises:
        ValueError: If the value cannot be interpreted as a date.
    """
    if isinstance(value, datetime.datetime):
        return _to_utc_date(value)
    if isinstance(value, datetime.date):
        return value
    if isinstance(value, bool):
        raise ValueError("date must be a string")
    if isinstance(value, int | float):
        return _from_epoch_millis(value)
    if not isinstance(value, str):
        raise ValueError("date must be a string")

    text = value.strip()
    if not text:
        raise ValueError("date must not be empty")
    if _EPOCH_PATTERN.match(text):
        return _from_epoch_millis(text)
    try:
        return datetime.date.fromisoformat(text)
    except ValueError:
        pass
    return _to_utc_date(datetime.datetime.fromisoformat(text))


def format_event_date(value: object) -> str:
    """Normalize a stored date value to ``YYYY-MM-DD``.

    Dates read from PostgreSQL arrive as ``datetime.date``; timestamps and
    strings are tolerated for rows written by older schemas.
    """
    if isinstance(value, datetime.datetime):
        return _to_utc_date(value).isoformat()
    if isinstance(value, datetime.date):
        return value.isoformat()
    if isinstance(value, str):
        try:
            return parse_event_date(value).isoformat()
        except ValueError:
            return value[:10]
    return str(value)
