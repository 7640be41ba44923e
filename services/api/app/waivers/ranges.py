from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone

from services.api.app.waivers.matcher import parse_timestamp

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True, slots=True)
class TimeRange:
    start: datetime
    end: datetime

    def contains(self, value: datetime | None) -> bool:
        return value is not None and self.start <= value < self.end


def _parse_bound(value: str | None, *, end: bool) -> datetime | None:
    text = (value or "").strip()
    if not text:
        return None
    if _DATE_ONLY.match(text):
        try:
            day = datetime.strptime(text, "%Y-%m-%d").date()
        except ValueError:
            return None
        if end:
            # Date-only "to" includes the whole day.
            day = day + timedelta(days=1)
        return datetime.combine(day, time.min, tzinfo=timezone.utc)
    return parse_timestamp(text)


def parse_range(
    from_value: str | None,
    to_value: str | None,
    *,
    default_days: int | None = None,
    now: datetime | None = None,
) -> TimeRange | None:
    """Build a [start, end) range from `from`/`to` query values.

    Values are YYYY-MM-DD (UTC days) or ISO timestamps. With neither given, the range is
    the last `default_days` days ending at the end of today, or None when no default is
    wanted.
    """

    now = now or datetime.now(timezone.utc)
    start = _parse_bound(from_value, end=False)
    stop = _parse_bound(to_value, end=True)

    if start is None and stop is None:
        if default_days is None:
            return None
        stop = datetime.combine(now.date() + timedelta(days=1), time.min, tzinfo=timezone.utc)
        return TimeRange(start=stop - timedelta(days=default_days), end=stop)

    if start is None:
        start = datetime(1970, 1, 1, tzinfo=timezone.utc)
    if stop is None:
        stop = now + timedelta(seconds=1)
    return TimeRange(start=start, end=stop)


def format_upstream(value: datetime) -> str:
    """Smartwaiver's fromDts/toDts format (UTC)."""

    return value.astimezone(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
