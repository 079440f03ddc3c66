"""
Metrics engine — deterministic statistics for one (user, period).

Candidate set
-------------
  in-period        any of created/started/completed/updated in [start, end)
  carried-forward  earliest known timestamp < start, not completed before
                   start, status not abandoned (cancelled / skipped)
  candidates       in-period ∪ carried-forward, deduplicated by id

Completion
----------
Primary completion is `completed_at`. An activity with no `completed_at`
whose status is `done` is treated as completed at `updated_at`; those are
counted in `completed_via_fallback_count` and never in `completed_count`.

All local-date work (touched days, active days, streaks) uses the period's
zone. Output is plain dataclasses; `ChapterMetrics.to_dict()` is what gets
persisted and sent to the generator.

Public API
----------
completion_time(activity)                      -> (datetime | None, bool)
is_carried_forward(activity, period)           -> bool
select_candidates(activities, period)          -> CandidateSet
longest_streak(days)                           -> int
compute_time_shape(activities, period)         -> TimeShape
compute_metrics(period, included, snapshot)    -> ChapterMetrics
"""
from __future__ import annotations

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from typing import Iterable, Optional

from app.models.activity import ActivityStatus
from app.services.domain_loader import ActivityRecord, DomainSnapshot, activity_time
from app.services.periods import Period, resolve_zone

ROLLUP_CAP = 60
TOP_TAGS_CAP = 8

ABANDONED_STATUSES = frozenset({ActivityStatus.cancelled, ActivityStatus.skipped})


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class ActivityCounts:
    created_count: int = 0
    completed_count: int = 0
    completed_via_fallback_count: int = 0
    started_not_completed_count: int = 0
    carried_forward_count: int = 0
    touched_count: int = 0


@dataclass
class GoalRollup:
    goal_id: str
    goal_title: Optional[str]
    goal_description: Optional[str]
    completed_count: int = 0
    completed_via_fallback_count: int = 0
    in_progress_count: int = 0
    created_count: int = 0
    first_activity_at: Optional[str] = None
    last_activity_at: Optional[str] = None
    touched_days_count: int = 0


@dataclass
class ArcRollup:
    arc_id: str
    arc_title: Optional[str]
    arc_description: Optional[str]
    activity_count_total: int = 0
    completed_count: int = 0
    goals_advanced_count: int = 0
    active_days_count: int = 0
    first_activity_at: Optional[str] = None
    last_activity_at: Optional[str] = None


@dataclass
class TimeShape:
    active_days_count: int = 0
    longest_active_streak_days: int = 0


@dataclass
class EffortSummary:
    total_minutes: int = 0
    top_tags: list[dict] = field(default_factory=list)


@dataclass
class ChapterMetrics:
    timezone: str
    period_days: int
    activities: ActivityCounts
    goals: list[GoalRollup]
    arcs: list[ArcRollup]
    time_shape: TimeShape
    effort: EffortSummary

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CandidateSet:
    in_period: list[ActivityRecord]
    carried_forward: list[ActivityRecord]
    candidates: list[ActivityRecord]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _iso_utc(ts: Optional[datetime]) -> Optional[str]:
    return ts.astimezone(timezone.utc).isoformat() if ts is not None else None


def completion_time(activity: ActivityRecord) -> tuple[Optional[datetime], bool]:
    """(completion instant, came_from_fallback)."""
    if activity.completed_at is not None:
        return activity.completed_at, False
    if activity.is_done and activity.updated_at is not None:
        return activity.updated_at, True
    return None, False


def is_carried_forward(activity: ActivityRecord, period: Period) -> bool:
    stamps = activity.timestamps()
    if not stamps or min(stamps) >= period.start:
        return False
    completed, _ = completion_time(activity)
    if completed is not None and completed < period.start:
        return False
    return activity.status not in ABANDONED_STATUSES


def _touched_in(activity: ActivityRecord, period: Period) -> bool:
    return any(period.contains(ts) for ts in activity.timestamps())


def select_candidates(activities: list[ActivityRecord], period: Period) -> CandidateSet:
    in_period = [a for a in activities if _touched_in(a, period)]
    carried = [a for a in activities if is_carried_forward(a, period)]

    seen: set[str] = set()
    candidates: list[ActivityRecord] = []
    for a in in_period + carried:
        if a.id in seen:
            continue
        seen.add(a.id)
        candidates.append(a)
    return CandidateSet(in_period=in_period, carried_forward=carried, candidates=candidates)


def _local_days(activity: ActivityRecord, period: Period, tz) -> set[date]:
    return {ts.astimezone(tz).date() for ts in activity.timestamps() if period.contains(ts)}


def longest_streak(days: Iterable[date]) -> int:
    """Longest run of consecutive calendar dates."""
    longest = 0
    current = 0
    previous: Optional[date] = None
    for day in sorted(set(days)):
        if previous is not None and (day - previous).days == 1:
            current += 1
        else:
            current = 1
        previous = day
        longest = max(longest, current)
    return longest


def compute_time_shape(activities: list[ActivityRecord], period: Period) -> TimeShape:
    tz, _ = resolve_zone(period.timezone)
    active_days: set[date] = set()
    for a in activities:
        active_days |= _local_days(a, period, tz)
    return TimeShape(
        active_days_count=len(active_days),
        longest_active_streak_days=longest_streak(active_days),
    )


def _effort_summary(activities: list[ActivityRecord]) -> EffortSummary:
    tag_counts: Counter[str] = Counter()
    total = 0
    for a in activities:
        if a.effort_minutes:
            total += max(0, a.effort_minutes)
        tag_counts.update(t for t in a.tags if t)
    # ties broken by tag name
    top = sorted(tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))[:TOP_TAGS_CAP]
    return EffortSummary(total_minutes=total, top_tags=[{"tag": t, "count": c} for t, c in top])


def _widen(current: tuple[Optional[datetime], Optional[datetime]], ts: datetime):
    first, last = current
    return (ts if first is None or ts < first else first, ts if last is None or ts > last else last)


# ---------------------------------------------------------------------------
# Public — main entry point
# ---------------------------------------------------------------------------

def compute_metrics(
    period: Period,
    included: list[ActivityRecord],
    snapshot: DomainSnapshot,
) -> ChapterMetrics:
    """Aggregate counts, goal/arc rollups and time shape over `included`."""
    tz, tz_name = resolve_zone(period.timezone)
    counts = ActivityCounts()

    goals: dict[str, GoalRollup] = {}
    goal_span: dict[str, tuple] = {}
    goal_days: dict[str, set[date]] = {}

    arcs: dict[str, ArcRollup] = {}
    arc_span: dict[str, tuple] = {}
    arc_days: dict[str, set[date]] = {}
    arc_goals: dict[str, set[str]] = {}

    for a in included:
        completed, via_fallback = completion_time(a)
        created_in = period.contains(a.created_at)
        started_in = period.contains(a.started_at)
        completed_in = period.contains(completed)
        touch = activity_time(a)
        touch_in = period.contains(touch)
        days = _local_days(a, period, tz)

        if created_in:
            counts.created_count += 1
        if completed_in and via_fallback:
            counts.completed_via_fallback_count += 1
        elif completed_in:
            counts.completed_count += 1
        if started_in and not completed_in and not a.is_done:
            counts.started_not_completed_count += 1
        if is_carried_forward(a, period):
            counts.carried_forward_count += 1
        if days:
            counts.touched_count += 1

        if a.goal_id:
            goal = snapshot.goals_by_id.get(a.goal_id)
            rollup = goals.setdefault(a.goal_id, GoalRollup(
                goal_id=a.goal_id,
                goal_title=goal.title if goal else None,
                goal_description=goal.description if goal else None,
            ))
            if created_in:
                rollup.created_count += 1
            if completed_in and via_fallback:
                rollup.completed_via_fallback_count += 1
            elif completed_in:
                rollup.completed_count += 1
            if not a.is_done:
                rollup.in_progress_count += 1
            if touch_in:
                goal_span[a.goal_id] = _widen(goal_span.get(a.goal_id, (None, None)), touch)
            goal_days.setdefault(a.goal_id, set()).update(days)

        arc_id = snapshot.arc_for(a)
        if arc_id:
            arc = snapshot.arcs_by_id.get(arc_id)
            rollup = arcs.setdefault(arc_id, ArcRollup(
                arc_id=arc_id,
                arc_title=arc.title if arc else None,
                arc_description=arc.description if arc else None,
            ))
            rollup.activity_count_total += 1
            if completed_in:
                rollup.completed_count += 1
                if a.goal_id:
                    arc_goals.setdefault(arc_id, set()).add(a.goal_id)
            if touch_in:
                arc_span[arc_id] = _widen(arc_span.get(arc_id, (None, None)), touch)
            arc_days.setdefault(arc_id, set()).update(days)

    for goal_id, rollup in goals.items():
        first, last = goal_span.get(goal_id, (None, None))
        rollup.first_activity_at = _iso_utc(first)
        rollup.last_activity_at = _iso_utc(last)
        rollup.touched_days_count = len(goal_days.get(goal_id, ()))

    for arc_id, rollup in arcs.items():
        first, last = arc_span.get(arc_id, (None, None))
        rollup.first_activity_at = _iso_utc(first)
        rollup.last_activity_at = _iso_utc(last)
        rollup.active_days_count = len(arc_days.get(arc_id, ()))
        rollup.goals_advanced_count = len(arc_goals.get(arc_id, ()))

    goal_list = sorted(
        goals.values(),
        key=lambda g: (-(g.completed_count + g.completed_via_fallback_count), -g.in_progress_count, g.goal_id),
    )[:ROLLUP_CAP]
    arc_list = sorted(
        arcs.values(),
        key=lambda r: (-r.activity_count_total, -r.completed_count, r.arc_id),
    )[:ROLLUP_CAP]

    return ChapterMetrics(
        timezone=tz_name,
        period_days=period.days,
        activities=counts,
        goals=goal_list,
        arcs=arc_list,
        time_shape=compute_time_shape(included, period),
        effort=_effort_summary(included),
    )
