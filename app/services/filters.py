"""
Activity filters attached to a chapter template.

A template stores a list of groups (or {"groups": [...]}) plus a top-level
group logic. Each group holds conditions joined by its own logic:

    [{"logic": "and", "conditions": [
        {"field": "status", "operator": "eq", "value": "done"},
        {"field": "tags", "operator": "contains", "value": "work"}
    ]}]

Fields and operators are closed enums; conditions that name anything else
are dropped at parse time (logged). Evaluation dispatches through
_OPERATORS, one function per operator.
"""
from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from app.services.domain_loader import ActivityRecord

logger = logging.getLogger(__name__)


class FilterField(str, enum.Enum):
    status = "status"
    tags = "tags"
    goal_id = "goal_id"
    arc_id = "arc_id"
    title = "title"
    effort_minutes = "effort_minutes"
    created_at = "created_at"
    started_at = "started_at"
    completed_at = "completed_at"
    updated_at = "updated_at"


class FilterOperator(str, enum.Enum):
    eq = "eq"
    neq = "neq"
    contains = "contains"
    gt = "gt"
    lt = "lt"
    gte = "gte"
    lte = "lte"
    exists = "exists"
    nexists = "nexists"
    in_ = "in"


class GroupLogic(str, enum.Enum):
    and_ = "and"
    or_ = "or"


# Names written by older clients.
_FIELD_ALIASES = {
    "goalId": FilterField.goal_id,
    "arcId": FilterField.arc_id,
    "createdAt": FilterField.created_at,
    "startedAt": FilterField.started_at,
    "completedAt": FilterField.completed_at,
    "updatedAt": FilterField.updated_at,
    "actualMinutes": FilterField.effort_minutes,
}

_TIMESTAMP_FIELDS = {
    FilterField.created_at,
    FilterField.started_at,
    FilterField.completed_at,
    FilterField.updated_at,
}

_FIELD_VALUE: dict[FilterField, Callable[[ActivityRecord], Any]] = {
    FilterField.status: lambda a: a.status.value,
    FilterField.tags: lambda a: list(a.tags),
    FilterField.goal_id: lambda a: a.goal_id,
    FilterField.arc_id: lambda a: a.arc_id,
    FilterField.title: lambda a: a.title,
    FilterField.effort_minutes: lambda a: a.effort_minutes,
    FilterField.created_at: lambda a: a.created_at,
    FilterField.started_at: lambda a: a.started_at,
    FilterField.completed_at: lambda a: a.completed_at,
    FilterField.updated_at: lambda a: a.updated_at,
}


def _plain(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class FilterCondition:
    field: FilterField
    operator: FilterOperator
    value: Any = None

    def to_dict(self) -> dict:
        return {"field": self.field.value, "operator": self.operator.value, "value": _plain(self.value)}


@dataclass(frozen=True)
class FilterGroup:
    logic: GroupLogic
    conditions: tuple[FilterCondition, ...]

    def to_dict(self) -> dict:
        return {"logic": self.logic.value, "conditions": [c.to_dict() for c in self.conditions]}


# ---------------------------------------------------------------------------
# Operators
# ---------------------------------------------------------------------------

def _is_blank(v: Any) -> bool:
    return v is None or v == "" or v == []


def _op_eq(actual: Any, expected: Any) -> bool:
    return actual == expected


def _op_neq(actual: Any, expected: Any) -> bool:
    return actual != expected


def _op_contains(actual: Any, expected: Any) -> bool:
    if _is_blank(expected):
        return False
    needle = str(expected).lower()
    if isinstance(actual, str):
        return needle in actual.lower()
    if isinstance(actual, list):
        return any(needle in str(v).lower() for v in actual)
    return False


def _ordered(compare: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def _op(actual: Any, expected: Any) -> bool:
        if actual is None or expected is None:
            return False
        try:
            return compare(actual, expected)
        except TypeError:
            return False
    return _op


def _op_exists(actual: Any, expected: Any) -> bool:
    return not _is_blank(actual)


def _op_nexists(actual: Any, expected: Any) -> bool:
    return _is_blank(actual)


def _op_in(actual: Any, expected: Any) -> bool:
    if not isinstance(expected, list):
        return False
    if isinstance(actual, list):
        return any(v in expected for v in actual)
    return actual in expected


_OPERATORS: dict[FilterOperator, Callable[[Any, Any], bool]] = {
    FilterOperator.eq: _op_eq,
    FilterOperator.neq: _op_neq,
    FilterOperator.contains: _op_contains,
    FilterOperator.gt: _ordered(lambda a, b: a > b),
    FilterOperator.lt: _ordered(lambda a, b: a < b),
    FilterOperator.gte: _ordered(lambda a, b: a >= b),
    FilterOperator.lte: _ordered(lambda a, b: a <= b),
    FilterOperator.exists: _op_exists,
    FilterOperator.nexists: _op_nexists,
    FilterOperator.in_: _op_in,
}


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------

def _parse_field(raw: Any) -> Optional[FilterField]:
    if not isinstance(raw, str):
        return None
    if raw in _FIELD_ALIASES:
        return _FIELD_ALIASES[raw]
    try:
        return FilterField(raw)
    except ValueError:
        return None


def _coerce_timestamp(raw: Any) -> Any:
    if not isinstance(raw, str):
        return raw
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_condition(raw: Any) -> Optional[FilterCondition]:
    if not isinstance(raw, dict):
        return None
    field = _parse_field(raw.get("field"))
    try:
        operator = FilterOperator(raw.get("operator"))
    except ValueError:
        operator = None
    if field is None or operator is None:
        logger.warning("Dropping filter condition with unknown field/operator: %r", raw)
        return None
    value = raw.get("value")
    if field in _TIMESTAMP_FIELDS:
        value = [_coerce_timestamp(v) for v in value] if isinstance(value, list) else _coerce_timestamp(value)
    return FilterCondition(field=field, operator=operator, value=value)


def parse_group_logic(raw: Any, default: GroupLogic = GroupLogic.or_) -> GroupLogic:
    try:
        return GroupLogic(raw)
    except ValueError:
        return default


def parse_filter_groups(filter_json: Any) -> list[FilterGroup]:
    """Accept a JSON string, a list of groups, or {"groups": [...]}."""
    data = filter_json
    if isinstance(data, str):
        try:
            data = json.loads(data) if data.strip() else []
        except ValueError:
            logger.warning("Ignoring unparseable filter_json")
            return []
    if isinstance(data, dict):
        data = data.get("groups", [])
    if not isinstance(data, list):
        return []

    groups: list[FilterGroup] = []
    for raw_group in data:
        if not isinstance(raw_group, dict):
            continue
        raw_conditions = raw_group.get("conditions") or []
        conditions = tuple(
            c for c in (_parse_condition(rc) for rc in raw_conditions) if c is not None
        )
        groups.append(FilterGroup(logic=parse_group_logic(raw_group.get("logic")), conditions=conditions))
    return groups


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------

def matches_condition(activity: ActivityRecord, condition: FilterCondition) -> bool:
    actual = _FIELD_VALUE[condition.field](activity)
    return _OPERATORS[condition.operator](actual, condition.value)


def _matches_group(activity: ActivityRecord, group: FilterGroup) -> bool:
    if not group.conditions:
        return True
    results = (matches_condition(activity, c) for c in group.conditions)
    return all(results) if group.logic == GroupLogic.and_ else any(results)


def apply_activity_filters(
    activities: list[ActivityRecord],
    groups: list[FilterGroup],
    group_logic: Any = GroupLogic.or_,
) -> list[ActivityRecord]:
    """Keep activities matching the groups; no groups means no filtering."""
    if not groups:
        return list(activities)
    logic = parse_group_logic(getattr(group_logic, "value", group_logic))
    combine = all if logic == GroupLogic.and_ else any
    return [a for a in activities if combine(_matches_group(a, g) for g in groups)]
