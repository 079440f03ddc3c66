"""
Domain loader — read-only snapshot of a user's arcs, goals and activities.

This is the boundary to the app's persistence layer. The pipeline only sees
the frozen records defined here; any callable with the signature of
`load_user_domain` can be injected in its place.
"""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import cached_property
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.models.activity import Activity, ActivityStatus
from app.models.arc import Arc
from app.models.goal import Goal


# ---------------------------------------------------------------------------
# Records (plain frozen dataclasses — no ORM, no Pydantic)
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ActivityRecord:
    id: str
    title: str
    status: ActivityStatus
    goal_id: Optional[str] = None
    arc_id: Optional[str] = None
    tags: tuple[str, ...] = ()
    effort_minutes: Optional[int] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_done(self) -> bool:
        return self.status == ActivityStatus.done

    def timestamps(self) -> list[datetime]:
        """All present timestamps: created, started, completed, updated."""
        return [
            ts for ts in (self.created_at, self.started_at, self.completed_at, self.updated_at)
            if ts is not None
        ]


@dataclass(frozen=True)
class GoalRecord:
    id: str
    title: str
    description: Optional[str] = None
    arc_id: Optional[str] = None


@dataclass(frozen=True)
class ArcRecord:
    id: str
    title: str
    description: Optional[str] = None


@dataclass
class DomainSnapshot:
    activities: list[ActivityRecord] = field(default_factory=list)
    goals: list[GoalRecord] = field(default_factory=list)
    arcs: list[ArcRecord] = field(default_factory=list)

    @cached_property
    def goals_by_id(self) -> dict[str, GoalRecord]:
        return {g.id: g for g in self.goals}

    @cached_property
    def arcs_by_id(self) -> dict[str, ArcRecord]:
        return {a.id: a for a in self.arcs}

    def arc_for(self, activity: ActivityRecord) -> Optional[str]:
        """The activity's own arc, else the parent arc of its goal."""
        if activity.arc_id:
            return activity.arc_id
        if activity.goal_id:
            goal = self.goals_by_id.get(activity.goal_id)
            if goal is not None:
                return goal.arc_id
        return None


DomainLoader = Callable[[Session, str], DomainSnapshot]


def activity_time(activity: ActivityRecord) -> Optional[datetime]:
    """completed → started → updated → created; None if no timestamp."""
    for ts in (activity.completed_at, activity.started_at, activity.updated_at, activity.created_at):
        if ts is not None:
            return ts
    return None


# ---------------------------------------------------------------------------
# ORM → record conversion
# ---------------------------------------------------------------------------

def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo; stored instants are UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _status(value) -> ActivityStatus:
    raw = value.value if hasattr(value, "value") else str(value or "")
    try:
        return ActivityStatus(raw.strip().lower())
    except ValueError:
        return ActivityStatus.planned


def _tags(text: Optional[str]) -> tuple[str, ...]:
    if not text:
        return ()
    try:
        items = json.loads(text)
    except (ValueError, TypeError):
        return ()
    if not isinstance(items, list):
        return ()
    return tuple(str(t).strip() for t in items if str(t).strip())


def activity_from_row(row: Activity) -> ActivityRecord:
    return ActivityRecord(
        id=str(row.id),
        title=row.title or "",
        status=_status(row.status),
        goal_id=row.goal_id,
        arc_id=row.arc_id,
        tags=_tags(row.tags),
        effort_minutes=row.effort_minutes,
        created_at=_aware(row.created_at),
        started_at=_aware(row.started_at),
        completed_at=_aware(row.completed_at),
        updated_at=_aware(row.updated_at),
        notes=row.notes,
    )


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def load_user_domain(db: Session, user_id: str) -> DomainSnapshot:
    """Load everything the pipeline needs for one user, ordered by id."""
    activities = (
        db.query(Activity).filter(Activity.user_id == user_id).order_by(Activity.id).all()
    )
    goals = db.query(Goal).filter(Goal.user_id == user_id).order_by(Goal.id).all()
    arcs = db.query(Arc).filter(Arc.user_id == user_id).order_by(Arc.id).all()

    return DomainSnapshot(
        activities=[activity_from_row(a) for a in activities],
        goals=[
            GoalRecord(id=g.id, title=g.title, description=g.description, arc_id=g.arc_id)
            for g in goals
        ],
        arcs=[ArcRecord(id=a.id, title=a.title, description=a.narrative) for a in arcs],
    )
