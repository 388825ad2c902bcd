"""Calendar day arithmetic in the application timezone.

Every component that needs to know which local day an instant belongs to
(sequencing, day grouping, monthly reports) goes through these helpers so
they all agree on where midnight falls.
"""

from __future__ import annotations

from calendar import monthrange
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from flask import current_app


@dataclass(frozen=True)
class DayWindow:
    """Half-open ``[start, end)`` UTC interval covering one local calendar day."""

    day: date
    start: datetime
    end: datetime

    def contains(self, ts: datetime) -> bool:
        return self.start <= as_aware_utc(ts) < self.end


def app_timezone() -> ZoneInfo:
    return timezone_from_name(current_app.config.get("APP_TIMEZONE", "Europe/Madrid"))


def timezone_from_name(tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


def as_aware_utc(ts: datetime) -> datetime:
    # Naive values come back from SQLite and are stored as UTC.
    aware_ts = ts if ts.tzinfo else ts.replace(tzinfo=timezone.utc)
    return aware_ts.astimezone(timezone.utc)


def to_local(ts: datetime, tz: tzinfo) -> datetime:
    return as_aware_utc(ts).astimezone(tz)


def local_day(ts: datetime, tz: tzinfo) -> date:
    return to_local(ts, tz).date()


def minutes_of_day(ts: datetime, tz: tzinfo) -> int:
    local_ts = to_local(ts, tz)
    return local_ts.hour * 60 + local_ts.minute


def window_for_day(day: date, tz: tzinfo) -> DayWindow:
    start_local = datetime.combine(day, time.min, tzinfo=tz)
    end_local = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return DayWindow(day=day, start=start_local.astimezone(timezone.utc), end=end_local.astimezone(timezone.utc))


def day_window(reference: datetime, tz: tzinfo) -> DayWindow:
    """Window of the local day containing ``reference``."""
    return window_for_day(local_day(reference, tz), tz)


def range_window(start_day: date, end_day: date, tz: tzinfo) -> tuple[datetime, datetime]:
    """Half-open UTC bounds covering ``start_day`` through ``end_day`` inclusive."""
    return window_for_day(start_day, tz).start, window_for_day(end_day, tz).end


def month_days(year: int, month: int) -> list[date]:
    return [date(year, month, day) for day in range(1, monthrange(year, month)[1] + 1)]


def month_window(year: int, month: int, tz: tzinfo) -> tuple[datetime, datetime]:
    days = month_days(year, month)
    return range_window(days[0], days[-1], tz)


def week_days(anchor: date) -> list[date]:
    start_day = anchor - timedelta(days=anchor.weekday())
    return [start_day + timedelta(days=offset) for offset in range(7)]
