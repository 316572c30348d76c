from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from pydantic import TypeAdapter

_DATETIME = TypeAdapter(datetime)

DUE_DATE_UNITS = ("days", "weeks", "months")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat()


def add_days_iso(start: datetime, days: int) -> str:
    return (start + timedelta(days=days)).isoformat()


def add_months(start: date, months: int) -> date:
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def offset_date(start: date, value: int, unit: str) -> date:
    if unit == "weeks":
        return start + timedelta(weeks=value)
    if unit == "months":
        return add_months(start, value)
    return start + timedelta(days=value)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accepts datetimes (Postgres rows) and ISO strings (PostgREST/in-memory rows).
    PostgREST trims trailing zeros from fractional seconds, so strings go
    through pydantic rather than ``datetime.fromisoformat``.
    Naive values are treated as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = _DATETIME.validate_python(str(value).strip())
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def to_date_ymd(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    for fmt in ("%Y-%m-%d", "%Y/%m/%d", "%Y.%m.%d"):
        try:
            return datetime.strptime(text, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    # Timestamps such as "2026-05-01T10:00:00Z": keep the date part if it is a real day.
    if len(text) >= 10 and text[4] == "-" and text[7] == "-" and not text[10:11].isdigit():
        try:
            return datetime.strptime(text[:10], "%Y-%m-%d").strftime("%Y-%m-%d")
        except ValueError:
            return None
    return None
