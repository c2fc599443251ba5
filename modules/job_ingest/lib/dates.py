from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as _date_parser
from dateutil.relativedelta import relativedelta

from .utils import utc_now

_NOW_WORDS = ("just now", "recently", "today")
_AGO_RE = re.compile(r"(\d+)\s+(minute|hour|day|week|month)s?\s+ago")

# Literal dates at or before this year are treated as misparses.
_MIN_LITERAL_YEAR = 2000


def _shift(now: datetime, amount: int, unit: str) -> datetime:
    if unit == "minute":
        return now - timedelta(minutes=amount)
    if unit == "hour":
        return now - timedelta(hours=amount)
    if unit == "day":
        return now - timedelta(days=amount)
    if unit == "week":
        return now - timedelta(days=amount * 7)
    # month: calendar subtraction, clamped to the target month's last day
    return now - relativedelta(months=amount)


def parse_relative_date(text: str | None, now: datetime | None = None) -> datetime | None:
    """
    Convert a "posted X ago" phrase into an absolute UTC datetime.

    Rules, first match wins (case-insensitive):
      - "just now" / "recently" / "today"      -> now
      - "yesterday"                             -> now - 1 day
      - "<N> minute|hour|day|week|month(s) ago" -> now - N units
      - a literal date with year > 2000         -> that date (naive = UTC)
    Anything else returns None; callers keep the raw phrase for display.
    """
    if not text:
        return None
    now = now or utc_now()
    lower = text.lower()

    if any(w in lower for w in _NOW_WORDS):
        return now
    if "yesterday" in lower:
        return now - timedelta(days=1)

    m = _AGO_RE.search(lower)
    if m:
        try:
            return _shift(now, int(m.group(1)), m.group(2))
        except (OverflowError, ValueError):
            # N units back falls outside the representable date range
            return None

    try:
        direct = _date_parser.parse(text)
    except (ValueError, OverflowError):
        return None
    if direct.year <= _MIN_LITERAL_YEAR:
        return None
    return direct if direct.tzinfo else direct.replace(tzinfo=timezone.utc)
