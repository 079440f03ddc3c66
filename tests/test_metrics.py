"""
Tests for the metrics engine.

Covers:
- Candidate set: in-period, carried-forward inclusion / exclusion
- Completion counters including the updated_at fallback
- Goal and arc rollups
- Time shape: active days, streaks, zone-local days
"""
from datetime import date, datetime, timezone

from app.models.activity import ActivityStatus
from app.services.domain_loader import ActivityRecord, ArcRecord, DomainSnapshot, GoalRecord
from app.services.metrics import (
    completion_time,
    compute_metrics,
    compute_time_shape,
    is_carried_forward,
    longest_streak,
    select_candidates,
)
from app.services.periods import Period, nth_complete_period

NOW = datetime(2026, 10, 21, 12, 0, tzinfo=timezone.utc)
WEEK = nth_complete_period("weekly", "UTC", 0, now=NOW)   # Mon 12 Oct → Mon 19 Oct


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _a(id, status=ActivityStatus.planned, **kw):
    return ActivityRecord(id=id, title=kw.pop("title", id), status=status, **kw)


class TestCarriedForward:
    def test_open_item_from_before_is_carried(self):
        a = _a("old-open", created_at=utc(2026, 10, 1))
        assert is_carried_forward(a, WEEK)
        assert [x.id for x in select_candidates([a], WEEK).candidates] == ["old-open"]

    def test_completed_before_start_is_not_carried(self):
        a = _a("old-done", ActivityStatus.done, created_at=utc(2026, 10, 1), completed_at=utc(2026, 10, 5))
        assert not is_carried_forward(a, WEEK)
        assert select_candidates([a], WEEK).candidates == []

    def test_fallback_completion_before_start_is_not_carried(self):
        a = _a("old-done-fallback", ActivityStatus.done, created_at=utc(2026, 10, 1), updated_at=utc(2026, 10, 5))
        assert not is_carried_forward(a, WEEK)

    def test_abandoned_statuses_are_not_carried(self):
        for status in (ActivityStatus.cancelled, ActivityStatus.skipped):
            assert not is_carried_forward(_a("x", status, created_at=utc(2026, 10, 1)), WEEK)

    def test_created_inside_period_is_not_carried(self):
        assert not is_carried_forward(_a("new", created_at=utc(2026, 10, 13)), WEEK)

    def test_candidates_deduplicated(self):
        a = _a("both", created_at=utc(2026, 10, 1), started_at=utc(2026, 10, 13))
        result = select_candidates([a], WEEK)
        assert len(result.in_period) == 1
        assert len(result.carried_forward) == 1
        assert len(result.candidates) == 1

    def test_no_timestamps_is_not_a_candidate(self):
        assert select_candidates([_a("bare")], WEEK).candidates == []


class TestCompletion:
    def test_primary_completion(self):
        a = _a("x", ActivityStatus.done, completed_at=utc(2026, 10, 14), updated_at=utc(2026, 10, 15))
        assert completion_time(a) == (utc(2026, 10, 14), False)

    def test_fallback_completion(self):
        a = _a("x", ActivityStatus.done, updated_at=utc(2026, 10, 15))
        assert completion_time(a) == (utc(2026, 10, 15), True)

    def test_not_done_without_completed_at(self):
        assert completion_time(_a("x", updated_at=utc(2026, 10, 15))) == (None, False)

    def test_fallback_has_its_own_counter(self):
        included = [
            _a("p", ActivityStatus.done, created_at=utc(2026, 10, 12), completed_at=utc(2026, 10, 13)),
            _a("f", ActivityStatus.done, created_at=utc(2026, 10, 12), updated_at=utc(2026, 10, 14)),
        ]
        m = compute_metrics(WEEK, included, DomainSnapshot(activities=included))
        assert m.activities.completed_count == 1
        assert m.activities.completed_via_fallback_count == 1


class TestStreaks:
    def test_gap_breaks_streak(self):
        # Mon, Tue, Wed, Fri
        days = [date(2026, 10, 12), date(2026, 10, 13), date(2026, 10, 14), date(2026, 10, 16)]
        assert longest_streak(days) == 3

    def test_empty(self):
        assert longest_streak([]) == 0

    def test_duplicates_ignored(self):
        assert longest_streak([date(2026, 10, 12), date(2026, 10, 12)]) == 1

    def test_time_shape_from_activities(self):
        acts = [
            _a("mon", created_at=utc(2026, 10, 12, 9)),
            _a("tue", created_at=utc(2026, 10, 13, 9)),
            _a("wed", created_at=utc(2026, 10, 14, 9)),
            _a("fri", created_at=utc(2026, 10, 16, 9)),
            _a("before", created_at=utc(2026, 10, 2, 9)),
        ]
        shape = compute_time_shape(acts, WEEK)
        assert shape.active_days_count == 4
        assert shape.longest_active_streak_days == 3

    def test_days_are_zone_local(self):
        tokyo_week = nth_complete_period("weekly", "Asia/Tokyo", 0, now=NOW)
        # 23:30 UTC on Mon 12 Oct is Tue 13 Oct in Tokyo; 16:00 UTC Tue is Wed 01:00 in Tokyo
        acts = [
            _a("a", created_at=utc(2026, 10, 12, 23, 30)),
            _a("b", created_at=utc(2026, 10, 13, 16, 0)),
        ]
        shape = compute_time_shape(acts, tokyo_week)
        assert shape.active_days_count == 2
        assert shape.longest_active_streak_days == 2


class TestRollups:
    def _snapshot(self, activities):
        return DomainSnapshot(
            activities=activities,
            goals=[
                GoalRecord(id="g1", title="Launch", description="Ship v1", arc_id="arc1"),
                GoalRecord(id="g2", title="Health", arc_id=None),
            ],
            arcs=[ArcRecord(id="arc1", title="Builder", description="Make things")],
        )

    def test_goal_and_arc_rollups(self):
        acts = [
            _a("a1", ActivityStatus.done, goal_id="g1", created_at=utc(2026, 10, 12), completed_at=utc(2026, 10, 13)),
            _a("a2", ActivityStatus.done, goal_id="g1", created_at=utc(2026, 10, 12), completed_at=utc(2026, 10, 15)),
            _a("a3", ActivityStatus.in_progress, goal_id="g1", created_at=utc(2026, 10, 14), started_at=utc(2026, 10, 16)),
            _a("a4", goal_id="g2", created_at=utc(2026, 10, 17)),
        ]
        m = compute_metrics(WEEK, acts, self._snapshot(acts))

        g1 = next(g for g in m.goals if g.goal_id == "g1")
        assert g1.goal_title == "Launch"
        assert g1.completed_count == 2
        assert g1.in_progress_count == 1
        assert g1.created_count == 3
        assert g1.first_activity_at == "2026-10-13T00:00:00+00:00"
        assert g1.last_activity_at == "2026-10-16T00:00:00+00:00"
        assert [g.goal_id for g in m.goals] == ["g1", "g2"]

        assert len(m.arcs) == 1
        arc = m.arcs[0]
        assert arc.arc_id == "arc1"
        assert arc.activity_count_total == 3
        assert arc.completed_count == 2
        assert arc.goals_advanced_count == 1

    def test_started_not_completed(self):
        acts = [_a("s", ActivityStatus.in_progress, created_at=utc(2026, 10, 12), started_at=utc(2026, 10, 13))]
        m = compute_metrics(WEEK, acts, self._snapshot(acts))
        assert m.activities.started_not_completed_count == 1

    def test_effort_and_top_tags(self):
        acts = [
            _a("t1", created_at=utc(2026, 10, 12), tags=("work", "deep"), effort_minutes=30),
            _a("t2", created_at=utc(2026, 10, 13), tags=("work",), effort_minutes=45),
        ]
        m = compute_metrics(WEEK, acts, self._snapshot(acts))
        assert m.effort.total_minutes == 75
        assert m.effort.top_tags[0] == {"tag": "work", "count": 2}

    def test_identical_input_identical_output(self):
        acts = [_a("x", ActivityStatus.done, goal_id="g1", created_at=utc(2026, 10, 12), completed_at=utc(2026, 10, 13))]
        snap = self._snapshot(acts)
        assert compute_metrics(WEEK, acts, snap).to_dict() == compute_metrics(WEEK, acts, snap).to_dict()

    def test_custom_period_days(self):
        period = Period(
            start=utc(2026, 10, 1), end=utc(2026, 10, 15), key="20261001_20261015", timezone="UTC",
        )
        m = compute_metrics(period, [], DomainSnapshot())
        assert m.period_days == 14
        assert m.timezone == "UTC"
