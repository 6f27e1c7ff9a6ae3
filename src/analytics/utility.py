from datetime import date, datetime, timezone
from typing import Any, Optional

import pandas as pd

# pandas 会把这些词解析成相对当前时刻的时间
RELATIVE_WORDS = {'now', 'today', 'tomorrow', 'yesterday'}


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a stored timestamp into an aware UTC datetime, None when unparseable.

    Naive values are treated as UTC, date-only strings as UTC midnight.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            dt = datetime.fromisoformat(text.replace('Z', '+00:00'))
        except ValueError:
            if text.lower() in RELATIVE_WORDS:
                return None
            parsed = pd.to_datetime(text, utc=True, errors='coerce')
            if pd.isna(parsed):
                return None
            dt = parsed.to_pydatetime()
    else:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    try:
        return dt.astimezone(timezone.utc)
    except OverflowError:
        return None


def to_iso(dt: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2025-01-01T08:00:00.000Z"""
    return dt.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now
