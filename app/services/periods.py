"""
Period resolver — turns a template cadence + time zone into a concrete,
half-open [start, end) interval and a stable period key.

Keys
----
  weekly   "2026-W41"            ISO week-year / week of `start`
  monthly  "2026-09"
  yearly   "2025"
  custom   "20261001_20261015"   start / exclusive end, local dates

All boundaries are local midnights in the resolved zone. Unknown zones fall
back to settings.DEFAULT_TIMEZONE. Invalid inputs resolve to None, which the
batch treats as "skip this template".

Public API
----------
resolve_zone(name)                                         -> (ZoneInfo, str)
nth_complete_period(cadence, timezone, offset, now)        -> Period | None
parse_manual_range(timezone, start_date, end_date, now)    -> Period | None
resolve_period(cadence, timezone, offset, start, end, now) -> Period | None
period_label(period)                                       -> str
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from app.core.config import settings

logger = logging.getLogger(__name__)

MAX_PERIOD_OFFSET = 260
MAX_CUSTOM_RANGE_DAYS = 365

# English month names regardless of the process locale.
MONTH_ABBREVIATIONS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


@dataclass(frozen=True)
class Period:
    start: datetime   # aware, local midnight
    end: datetime     # aware, local midnight, exclusive
    key: str
    timezone: str

    @property
    def days(self) -> int:
        """Number of local calendar days covered."""
        return (self.end.date() - self.start.date()).days

    def contains(self, instant: Optional[datetime]) -> bool:
        return instant is not None and self.start <= instant < self.end


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def resolve_zone(name: Optional[str]) -> tuple[ZoneInfo, str]:
    """Return (zone, canonical name); unknown or blank names fall back."""
    candidate = name.strip() if isinstance(name, str) else ""
    if candidate:
        try:
            return ZoneInfo(candidate), candidate
        except (ZoneInfoNotFoundError, ValueError, OSError):
            logger.warning("Unknown timezone %r, falling back to %s", candidate, settings.DEFAULT_TIMEZONE)
    fallback = settings.DEFAULT_TIMEZONE
    try:
        return ZoneInfo(fallback), fallback
    except (ZoneInfoNotFoundError, ValueError, OSError):
        return ZoneInfo("UTC"), "UTC"


def _midnight(day: date, tz: ZoneInfo) -> datetime:
    return datetime.combine(day, time(0, 0), tzinfo=tz)


def _shift_months(first_of_month: date, months: int) -> date:
    index = first_of_month.year * 12 + (first_of_month.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def _clamp_offset(offset) -> int:
    try:
        value = int(offset)
    except (TypeError, ValueError):
        return 0
    return max(0, min(MAX_PERIOD_OFFSET, value))


def _parse_local_date(raw: str, tz: ZoneInfo) -> Optional[date]:
    """Accept 'YYYY-MM-DD' or a full ISO datetime; return the local date."""
    text = raw.strip() if isinstance(raw, str) else ""
    if not text:
        return None
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed.astimezone(tz).date()


# ---------------------------------------------------------------------------
# Public — cadence periods
# ---------------------------------------------------------------------------

def nth_complete_period(
    cadence: str,
    timezone_name: Optional[str],
    offset: int = 0,
    now: Optional[datetime] = None,
) -> Optional[Period]:
    """
    The complete period `offset` units before the one containing `now`.
    offset=0 is the most recently completed period.
    """
    tz, tz_name = resolve_zone(timezone_name)
    off = _clamp_offset(offset)
    today = (now or _now()).astimezone(tz).date()
    cadence = getattr(cadence, "value", cadence)

    if cadence == "weekly":
        this_monday = today - timedelta(days=today.weekday())
        start_day = this_monday - timedelta(weeks=off + 1)
        end_day = this_monday - timedelta(weeks=off)
        iso_year, iso_week, _ = start_day.isocalendar()
        key = f"{iso_year}-W{iso_week:02d}"
    elif cadence == "monthly":
        this_month = today.replace(day=1)
        start_day = _shift_months(this_month, -(off + 1))
        end_day = _shift_months(this_month, -off)
        key = f"{start_day.year}-{start_day.month:02d}"
    elif cadence == "yearly":
        start_day = date(today.year - off - 1, 1, 1)
        end_day = date(today.year - off, 1, 1)
        key = f"{start_day.year}"
    else:
        return None

    return Period(
        start=_midnight(start_day, tz),
        end=_midnight(end_day, tz),
        key=key,
        timezone=tz_name,
    )


# ---------------------------------------------------------------------------
# Public — custom ranges
# ---------------------------------------------------------------------------

def parse_manual_range(
    timezone_name: Optional[str],
    start_date: str,
    end_date: str,
    now: Optional[datetime] = None,
) -> Optional[Period]:
    """
    Explicit [start_date, end_date) range in the template's zone.
    end_date is exclusive; "through today" means end_date = tomorrow.
    """
    tz, tz_name = resolve_zone(timezone_name)
    start_day = _parse_local_date(start_date, tz)
    end_day = _parse_local_date(end_date, tz)
    if start_day is None or end_day is None:
        return None
    if end_day <= start_day:
        return None

    tomorrow = (now or _now()).astimezone(tz).date() + timedelta(days=1)
    if end_day > tomorrow:
        return None
    if (end_day - start_day).days > MAX_CUSTOM_RANGE_DAYS:
        return None

    return Period(
        start=_midnight(start_day, tz),
        end=_midnight(end_day, tz),
        key=f"{start_day:%Y%m%d}_{end_day:%Y%m%d}",
        timezone=tz_name,
    )


def resolve_period(
    cadence: str,
    timezone_name: Optional[str],
    offset: int = 0,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Optional[Period]:
    """Custom range when both dates are given, otherwise the cadence period."""
    if start_date and end_date:
        return parse_manual_range(timezone_name, start_date, end_date, now=now)
    return nth_complete_period(cadence, timezone_name, offset, now=now)


def period_label(period: Period) -> str:
    """'Oct 12, 2026 – Oct 18, 2026' (end shown inclusive)."""
    last_day = period.end.date() - timedelta(days=1)
    first_day = period.start.date()
    return f"{_day_label(first_day)} – {_day_label(last_day)}"


def _day_label(day: date) -> str:
    return f"{MONTH_ABBREVIATIONS[day.month - 1]} {day.day}, {day.year}"
