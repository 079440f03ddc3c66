"""
Tests for the period resolver.

Covers:
- Determinism of (cadence, timezone, offset)
- Weekly / monthly / yearly keys and boundaries, offsets, clamping
- Local midnights across DST
- Unknown zone fallback
- Custom range validation
"""
import locale
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from app.services.periods import (
    MAX_PERIOD_OFFSET,
    nth_complete_period,
    parse_manual_range,
    period_label,
    resolve_period,
    resolve_zone,
)

# Wednesday
NOW = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)


class TestDeterminism:
    def test_same_inputs_same_period(self):
        a = nth_complete_period("weekly", "America/New_York", 2, now=NOW)
        b = nth_complete_period("weekly", "America/New_York", 2, now=NOW)
        assert (a.start.isoformat(), a.end.isoformat(), a.key) == (
            b.start.isoformat(), b.end.isoformat(), b.key,
        )

    def test_manual_cadence_without_range_is_none(self):
        assert nth_complete_period("manual", "UTC", 0, now=NOW) is None

    def test_unknown_cadence_is_none(self):
        assert nth_complete_period("fortnightly", "UTC", 0, now=NOW) is None


class TestWeekly:
    def test_last_complete_iso_week(self):
        p = nth_complete_period("weekly", "UTC", 0, now=NOW)
        assert p.start == datetime(2026, 10, 12, tzinfo=ZoneInfo("UTC"))
        assert p.end == datetime(2026, 10, 19, tzinfo=ZoneInfo("UTC"))
        assert p.key == "2026-W42"
        assert p.days == 7

    def test_offset_goes_back(self):
        p = nth_complete_period("weekly", "UTC", 1, now=NOW)
        assert p.key == "2026-W41"
        assert p.start.date() == date(2026, 10, 5)

    def test_iso_week_year_at_year_boundary(self):
        # Mon 2026-12-28 belongs to ISO week 53 of 2026
        p = nth_complete_period("weekly", "UTC", 0, now=datetime(2027, 1, 6, tzinfo=timezone.utc))
        assert p.start.date() == date(2026, 12, 28)
        assert p.key == "2026-W53"

    def test_offset_is_clamped(self):
        p = nth_complete_period("weekly", "UTC", 10_000, now=NOW)
        q = nth_complete_period("weekly", "UTC", MAX_PERIOD_OFFSET, now=NOW)
        assert p.key == q.key

    def test_negative_offset_is_zero(self):
        assert nth_complete_period("weekly", "UTC", -3, now=NOW).key == "2026-W42"

    def test_local_midnight_in_zone(self):
        p = nth_complete_period("weekly", "America/New_York", 0, now=NOW)
        assert p.start.utcoffset() == timedelta(hours=-4)
        assert (p.start.hour, p.start.minute) == (0, 0)

    def test_week_spanning_dst_end(self):
        # US DST ends Sun 2026-11-01
        p = nth_complete_period("weekly", "America/New_York", 0, now=datetime(2026, 11, 4, 12, tzinfo=timezone.utc))
        assert p.start.date() == date(2026, 10, 26)
        assert p.start.utcoffset() == timedelta(hours=-4)
        assert p.end.utcoffset() == timedelta(hours=-5)
        assert p.days == 7
        elapsed = p.end.astimezone(timezone.utc) - p.start.astimezone(timezone.utc)
        assert elapsed == timedelta(days=7, hours=1)


class TestMonthlyYearly:
    def test_last_complete_month(self):
        p = nth_complete_period("monthly", "UTC", 0, now=NOW)
        assert p.key == "2026-09"
        assert p.start.date() == date(2026, 9, 1)
        assert p.end.date() == date(2026, 10, 1)
        assert p.days == 30

    def test_month_offset_crosses_year(self):
        p = nth_complete_period("monthly", "UTC", 10, now=NOW)
        assert p.key == "2025-11"

    def test_last_complete_year(self):
        p = nth_complete_period("yearly", "UTC", 0, now=NOW)
        assert p.key == "2025"
        assert p.days == 365


class TestZones:
    def test_unknown_zone_falls_back(self):
        _, name = resolve_zone("Mars/Olympus_Mons")
        assert name == "UTC"

    def test_blank_zone_falls_back(self):
        _, name = resolve_zone("   ")
        assert name == "UTC"

    def test_period_with_unknown_zone_still_resolves(self):
        p = nth_complete_period("weekly", "Not/AZone", 0, now=NOW)
        assert p is not None
        assert p.timezone == "UTC"


class TestManualRange:
    def test_valid_range(self):
        p = parse_manual_range("UTC", "2026-10-01", "2026-10-15", now=NOW)
        assert p.key == "20261001_20261015"
        assert p.days == 14

    def test_end_exclusive_through_today(self):
        p = parse_manual_range("UTC", "2026-10-20", "2026-10-22", now=NOW)
        assert p is not None

    def test_end_after_tomorrow_rejected(self):
        assert parse_manual_range("UTC", "2026-10-20", "2026-10-23", now=NOW) is None

    def test_end_not_after_start_rejected(self):
        assert parse_manual_range("UTC", "2026-10-10", "2026-10-10", now=NOW) is None

    def test_span_over_a_year_rejected(self):
        assert parse_manual_range("UTC", "2025-01-01", "2026-10-01", now=NOW) is None

    def test_unparseable_dates_rejected(self):
        assert parse_manual_range("UTC", "last week", "2026-10-01", now=NOW) is None

    def test_iso_datetime_accepted(self):
        p = parse_manual_range("UTC", "2026-10-01T08:30:00Z", "2026-10-05", now=NOW)
        assert p.start.date() == date(2026, 10, 1)

    def test_resolve_period_prefers_range(self):
        p = resolve_period("weekly", "UTC", 0, "2026-10-01", "2026-10-15", now=NOW)
        assert p.key == "20261001_20261015"

    def test_resolve_period_manual_cadence_with_range(self):
        p = resolve_period("manual", "UTC", 0, "2026-10-01", "2026-10-15", now=NOW)
        assert p is not None


class TestLabel:
    def test_label_shows_inclusive_end(self):
        p = nth_complete_period("weekly", "UTC", 0, now=NOW)
        assert period_label(p) == "Oct 12, 2026 – Oct 18, 2026"

    def test_yearly_label_spans_calendar_year(self):
        p = nth_complete_period("yearly", "UTC", 0, now=NOW)
        assert period_label(p) == "Jan 1, 2025 – Dec 31, 2025"

    def test_label_ignores_process_locale(self):
        saved = locale.setlocale(locale.LC_TIME)
        for name in ("de_DE.UTF-8", "fr_FR.UTF-8", "es_ES.UTF-8"):
            try:
                locale.setlocale(locale.LC_TIME, name)
                break
            except locale.Error:
                continue
        else:
            pytest.skip("no non-English locale installed")
        try:
            p = nth_complete_period("monthly", "UTC", 6, now=NOW)
            assert period_label(p) == "Mar 1, 2026 – Mar 31, 2026"
        finally:
            locale.setlocale(locale.LC_TIME, saved)
