"""
Evidence selector — the citable material handed to the narrative generator.

Noteworthy examples
-------------------
Each selected activity carries one or more reasons:

  first_completion_for_goal_ever      first completion in the period for a
                                      goal that never had one before
  first_completion_for_goal_in_period first completion in the period for a
                                      goal with earlier completions
  long_running_completed              started before the period, completed in it
  first_activity_in_arc_in_period     earliest touch of an arc with no prior signal
  user_marked_important               carries the "important" tag
  high_effort_proxy                   top-3 by recorded effort minutes

An example scores the highest weight among its reasons (REASON_WEIGHTS);
ties go to the most recent relevant timestamp, then to the lower id. The
list is capped at 5 for periods of ≤ 14 days, 10 otherwise.

Story hooks
-----------
Thematic angles derived from the metrics bundle. Hooks scoring at or below
HOOK_SCORE_FLOOR are dropped; when none remain a "spotlight" hook is
produced. Hooks only reference ids from the noteworthy list, so every id
the generator is asked to cite resolves (see EvidenceBundle.dangling_activity_ids).
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from app.services.domain_loader import ActivityRecord, activity_time
from app.services.metrics import ChapterMetrics
from app.services.periods import Period


class Reason:
    FIRST_COMPLETION_EVER = "first_completion_for_goal_ever"
    FIRST_COMPLETION_IN_PERIOD = "first_completion_for_goal_in_period"
    LONG_RUNNING_COMPLETED = "long_running_completed"
    FIRST_ARC_ACTIVITY = "first_activity_in_arc_in_period"
    USER_MARKED_IMPORTANT = "user_marked_important"
    HIGH_EFFORT = "high_effort_proxy"


DEFAULT_REASON_WEIGHTS: dict[str, int] = {
    Reason.FIRST_COMPLETION_EVER: 90,
    Reason.FIRST_COMPLETION_IN_PERIOD: 90,
    Reason.LONG_RUNNING_COMPLETED: 80,
    Reason.FIRST_ARC_ACTIVITY: 70,
    Reason.USER_MARKED_IMPORTANT: 65,
    Reason.HIGH_EFFORT: 60,
}

SHORT_PERIOD_DAYS = 14
SHORT_PERIOD_CAP = 5
LONG_PERIOD_CAP = 10
HIGH_EFFORT_TOP_N = 3
IMPORTANT_TAG = "important"

STORY_HOOK_CAP = 3
HOOK_SCORE_FLOOR = 0

FULL_EVIDENCE_RECENT = 50
TITLE_MAX = 140
NOTES_SNIPPET_MAX = 220
TAGS_MAX = 10

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class NoteworthyExample:
    activity_id: str
    title: str
    status: Optional[str]
    arc_id: Optional[str]
    goal_id: Optional[str]
    created_at: Optional[str]
    started_at: Optional[str]
    completed_at: Optional[str]
    reasons: list[str] = field(default_factory=list)


@dataclass
class StoryHook:
    hook_id: str
    title: str
    why_this_matters: str
    supporting_metrics: dict[str, int]
    supporting_activity_ids: list[str]


@dataclass
class EvidenceBundle:
    noteworthy_examples: list[NoteworthyExample]
    lead_examples: list[NoteworthyExample]
    story_hooks: list[StoryHook]
    activities_full: list[dict]
    activities_compact: list[dict]
    filter_snapshot: dict

    def allowed_activity_ids(self) -> set[str]:
        """Ids the generator may cite: noteworthy ∪ full evidence."""
        ids = {e.activity_id for e in self.noteworthy_examples}
        ids.update(a["activity_id"] for a in self.activities_full)
        return ids

    def dangling_activity_ids(self) -> set[str]:
        """Ids referenced by hooks or lead examples that cannot be resolved."""
        allowed = self.allowed_activity_ids()
        referenced = {i for h in self.story_hooks for i in h.supporting_activity_ids}
        referenced.update(e.activity_id for e in self.lead_examples)
        return referenced - allowed

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def clamp_text(raw: Optional[str], max_len: int) -> str:
    text = raw or ""
    return f"{text[:max_len]}…" if len(text) > max_len else text


def notes_snippet(activity: ActivityRecord) -> Optional[str]:
    cleaned = " ".join((activity.notes or "").split())
    if not cleaned:
        return None
    return clamp_text(cleaned, NOTES_SNIPPET_MAX)


def _iso(ts: Optional[datetime]) -> Optional[str]:
    return ts.isoformat() if ts is not None else None


def example_cap(period: Period) -> int:
    return SHORT_PERIOD_CAP if period.days <= SHORT_PERIOD_DAYS else LONG_PERIOD_CAP


@dataclass
class _Scored:
    example: NoteworthyExample
    score: int
    tiebreak: datetime


# ---------------------------------------------------------------------------
# Noteworthy examples
# ---------------------------------------------------------------------------

def select_noteworthy_examples(
    all_activities: list[ActivityRecord],
    included: list[ActivityRecord],
    period: Period,
    arc_for: Callable[[ActivityRecord], Optional[str]],
    weights: Optional[dict[str, int]] = None,
) -> list[NoteworthyExample]:
    """Rank included activities by selection reason; return the capped list."""
    weights = {**DEFAULT_REASON_WEIGHTS, **(weights or {})}
    scored: dict[str, _Scored] = {}

    def add(a: ActivityRecord, reason: str, tiebreak: Optional[datetime]) -> None:
        score = weights.get(reason, 0)
        stamp = tiebreak or _EPOCH
        entry = scored.get(a.id)
        if entry is not None:
            if reason not in entry.example.reasons:
                entry.example.reasons.append(reason)
            entry.score = max(entry.score, score)
            entry.tiebreak = max(entry.tiebreak, stamp)
            return
        scored[a.id] = _Scored(
            example=NoteworthyExample(
                activity_id=a.id,
                title=clamp_text(a.title, TITLE_MAX),
                status=a.status.value,
                arc_id=a.arc_id,
                goal_id=a.goal_id,
                created_at=_iso(a.created_at),
                started_at=_iso(a.started_at),
                completed_at=_iso(a.completed_at),
                reasons=[reason],
            ),
            score=score,
            tiebreak=stamp,
        )

    # Goals with a completion before the period started.
    goals_completed_before = {
        a.goal_id for a in all_activities
        if a.goal_id and a.completed_at is not None and a.completed_at < period.start
    }

    first_completion: dict[str, ActivityRecord] = {}
    for a in included:
        if not a.goal_id or not period.contains(a.completed_at):
            continue
        current = first_completion.get(a.goal_id)
        if current is None or a.completed_at < current.completed_at:
            first_completion[a.goal_id] = a
    for goal_id, a in first_completion.items():
        reason = Reason.FIRST_COMPLETION_IN_PERIOD if goal_id in goals_completed_before else Reason.FIRST_COMPLETION_EVER
        add(a, reason, a.completed_at)

    for a in included:
        if (
            a.started_at is not None
            and a.started_at < period.start
            and period.contains(a.completed_at)
        ):
            add(a, Reason.LONG_RUNNING_COMPLETED, a.completed_at)

    arcs_seen_before: set[str] = set()
    for a in all_activities:
        arc_id = arc_for(a)
        touched = activity_time(a)
        if arc_id and touched is not None and touched < period.start:
            arcs_seen_before.add(arc_id)
    first_in_arc: dict[str, ActivityRecord] = {}
    for a in included:
        arc_id = arc_for(a)
        touched = activity_time(a)
        if not arc_id or arc_id in arcs_seen_before or not period.contains(touched):
            continue
        current = first_in_arc.get(arc_id)
        if current is None or touched < activity_time(current):
            first_in_arc[arc_id] = a
    for a in first_in_arc.values():
        add(a, Reason.FIRST_ARC_ACTIVITY, activity_time(a))

    by_effort = sorted(
        (a for a in included if (a.effort_minutes or 0) > 0),
        key=lambda a: -(a.effort_minutes or 0),
    )
    for a in by_effort[:HIGH_EFFORT_TOP_N]:
        add(a, Reason.HIGH_EFFORT, activity_time(a))

    for a in included:
        if any(t.strip().lower() == IMPORTANT_TAG for t in a.tags):
            add(a, Reason.USER_MARKED_IMPORTANT, activity_time(a))

    ranked = sorted(
        scored.values(),
        key=lambda s: (-s.score, -s.tiebreak.timestamp(), s.example.activity_id),
    )
    return [s.example for s in ranked[:example_cap(period)]]


# ---------------------------------------------------------------------------
# Story hooks
# ---------------------------------------------------------------------------

_PERIOD_NOUNS = {"weekly": "week", "monthly": "month", "yearly": "year"}


def period_noun(cadence: Optional[str], period: Period) -> str:
    noun = _PERIOD_NOUNS.get(getattr(cadence, "value", cadence) or "")
    if noun:
        return noun
    return "week" if period.days <= 7 else "stretch"


def _ids(examples: list[NoteworthyExample], limit: int) -> list[str]:
    return [e.activity_id for e in examples[:limit]]


def build_story_hooks(
    metrics: ChapterMetrics,
    examples: list[NoteworthyExample],
    noun: str = "week",
) -> list[StoryHook]:
    """Up to STORY_HOOK_CAP angles, best first; never empty."""
    counts = metrics.activities
    active_days = metrics.time_shape.active_days_count
    streak = metrics.time_shape.longest_active_streak_days
    candidates: list[tuple[float, StoryHook]] = []

    completed = counts.completed_count
    carried = counts.carried_forward_count
    ratio = carried / completed if completed > 0 else carried
    candidates.append((
        min(100.0, round(ratio * 25) + carried / 2),
        StoryHook(
            hook_id="backlog_pressure",
            title="Backlog pressure met sustained follow-through",
            why_this_matters=(
                "A large carry-forward load changes the feel of a period; progress "
                "becomes a story of triage and follow-through."
            ),
            supporting_metrics={
                "carried_forward_count": carried,
                "completed_count": completed,
                "created_count": counts.created_count,
                "active_days_count": active_days,
            },
            supporting_activity_ids=_ids(examples, 4),
        ),
    ))

    if active_days > 0:
        candidates.append((
            round(streak / max(1, active_days) * 85),
            StoryHook(
                hook_id="consistency_streak",
                title=f"A streak shaped the {noun}",
                why_this_matters=(
                    "Consistency creates momentum; a streak is a concrete signature "
                    "of repeatable follow-through."
                ),
                supporting_metrics={
                    "active_days_count": active_days,
                    "longest_active_streak_days": streak,
                },
                supporting_activity_ids=_ids(examples, 3),
            ),
        ))

    firsts = [e for e in examples if any("first_completion" in r for r in e.reasons)]
    long_runners = [e for e in examples if Reason.LONG_RUNNING_COMPLETED in e.reasons]
    if firsts or long_runners:
        pivots = list(dict.fromkeys(e.activity_id for e in firsts + long_runners))
        candidates.append((
            min(100, len(firsts) * 20 + len(long_runners) * 18),
            StoryHook(
                hook_id="turning_points",
                title="Turning points: firsts and long-runners crossing the line",
                why_this_matters=(
                    "First completions and long-running finishes are natural narrative "
                    "pivots: they mark a shift from setup to payoff."
                ),
                supporting_metrics={
                    "completed_count": completed,
                    "created_count": counts.created_count,
                },
                supporting_activity_ids=pivots[:6],
            ),
        ))

    ranked = [
        hook for score, hook in sorted(candidates, key=lambda c: -c[0])
        if score > HOOK_SCORE_FLOOR
    ]
    if not ranked:
        important = [e for e in examples if Reason.USER_MARKED_IMPORTANT in e.reasons]
        ranked = [StoryHook(
            hook_id="spotlight",
            title=f"The {noun}'s spotlight items",
            why_this_matters=(
                "When the signal is diffuse, the story lives in the items you "
                "implicitly elevated."
            ),
            supporting_metrics={
                "completed_count": completed,
                "active_days_count": active_days,
            },
            supporting_activity_ids=_ids(important or examples, 5),
        )]
    return ranked[:STORY_HOOK_CAP]


# ---------------------------------------------------------------------------
# Bundle
# ---------------------------------------------------------------------------

def _full_entry(a: ActivityRecord) -> dict:
    return {
        "activity_id": a.id,
        "title": clamp_text(a.title, TITLE_MAX),
        "status": a.status.value,
        "arc_id": a.arc_id,
        "goal_id": a.goal_id,
        "created_at": _iso(a.created_at),
        "started_at": _iso(a.started_at),
        "completed_at": _iso(a.completed_at),
        "notes_snippet": notes_snippet(a),
        "tags": list(a.tags[:TAGS_MAX]),
    }


def _compact_entry(a: ActivityRecord) -> dict:
    return {
        "activity_id": a.id,
        "status": a.status.value,
        "arc_id": a.arc_id,
        "goal_id": a.goal_id,
        "created_at": _iso(a.created_at),
        "started_at": _iso(a.started_at),
        "completed_at": _iso(a.completed_at),
    }


def build_evidence(
    all_activities: list[ActivityRecord],
    included: list[ActivityRecord],
    period: Period,
    metrics: ChapterMetrics,
    arc_for: Callable[[ActivityRecord], Optional[str]],
    filter_snapshot: Optional[dict] = None,
    cadence: Optional[str] = None,
    weights: Optional[dict[str, int]] = None,
) -> EvidenceBundle:
    examples = select_noteworthy_examples(all_activities, included, period, arc_for, weights)
    noteworthy_ids = {e.activity_id for e in examples}

    # Most recent first; stable for equal times.
    recent = sorted(included, key=lambda a: -(activity_time(a) or _EPOCH).timestamp())
    full_source = recent[:FULL_EVIDENCE_RECENT] + [a for a in included if a.id in noteworthy_ids]
    seen: set[str] = set()
    activities_full = []
    for a in full_source:
        if a.id in seen:
            continue
        seen.add(a.id)
        activities_full.append(_full_entry(a))

    return EvidenceBundle(
        noteworthy_examples=examples,
        lead_examples=examples[:2],
        story_hooks=build_story_hooks(metrics, examples, period_noun(cadence, period)),
        activities_full=activities_full,
        activities_compact=[_compact_entry(a) for a in included],
        filter_snapshot=filter_snapshot or {},
    )
