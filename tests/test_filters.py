"""
Tests for template activity filters: parsing, operators, group logic.
"""
from datetime import datetime, timezone

from app.models.activity import ActivityStatus
from app.services.domain_loader import ActivityRecord
from app.services.filters import (
    FilterCondition,
    FilterField,
    FilterOperator,
    GroupLogic,
    apply_activity_filters,
    matches_condition,
    parse_filter_groups,
)


def _a(id, **kw):
    kw.setdefault("status", ActivityStatus.planned)
    return ActivityRecord(id=id, title=kw.pop("title", id), **kw)


WORK_DONE = _a("a1", status=ActivityStatus.done, tags=("work", "deep"), effort_minutes=90,
               completed_at=datetime(2026, 10, 14, tzinfo=timezone.utc))
HOME_OPEN = _a("a2", tags=("home",), goal_id="g1", effort_minutes=15)
UNTAGGED = _a("a3", title="Call the bank")


class TestParsing:
    def test_list_of_groups(self):
        groups = parse_filter_groups('[{"logic": "and", "conditions": [{"field": "status", "operator": "eq", "value": "done"}]}]')
        assert len(groups) == 1
        assert groups[0].logic == GroupLogic.and_
        assert groups[0].conditions[0].field == FilterField.status

    def test_groups_wrapper_object(self):
        groups = parse_filter_groups({"groups": [{"conditions": []}]})
        assert len(groups) == 1
        assert groups[0].logic == GroupLogic.or_

    def test_unknown_field_or_operator_dropped(self):
        groups = parse_filter_groups([{"conditions": [
            {"field": "mood", "operator": "eq", "value": "x"},
            {"field": "status", "operator": "like", "value": "x"},
            {"field": "status", "operator": "eq", "value": "done"},
        ]}])
        assert len(groups[0].conditions) == 1

    def test_camel_case_field_alias(self):
        groups = parse_filter_groups([{"conditions": [{"field": "goalId", "operator": "exists"}]}])
        assert groups[0].conditions[0].field == FilterField.goal_id

    def test_garbage_is_no_filter(self):
        assert parse_filter_groups("{not json") == []
        assert parse_filter_groups(None) == []
        assert parse_filter_groups(42) == []

    def test_timestamp_values_coerced(self):
        groups = parse_filter_groups([{"conditions": [
            {"field": "completedAt", "operator": "gte", "value": "2026-10-12T00:00:00Z"},
        ]}])
        value = groups[0].conditions[0].value
        assert isinstance(value, datetime)
        assert value.tzinfo is not None

    def test_to_dict_is_json_plain(self):
        groups = parse_filter_groups([{"conditions": [
            {"field": "completed_at", "operator": "gte", "value": "2026-10-12T00:00:00Z"},
        ]}])
        assert groups[0].to_dict()["conditions"][0]["value"] == "2026-10-12T00:00:00+00:00"


class TestOperators:
    def test_contains_on_tags_is_case_insensitive(self):
        cond = FilterCondition(FilterField.tags, FilterOperator.contains, "WORK")
        assert matches_condition(WORK_DONE, cond)
        assert not matches_condition(HOME_OPEN, cond)

    def test_contains_on_title(self):
        cond = FilterCondition(FilterField.title, FilterOperator.contains, "bank")
        assert matches_condition(UNTAGGED, cond)

    def test_numeric_comparison(self):
        cond = FilterCondition(FilterField.effort_minutes, FilterOperator.gt, 60)
        assert matches_condition(WORK_DONE, cond)
        assert not matches_condition(HOME_OPEN, cond)
        assert not matches_condition(UNTAGGED, cond)

    def test_exists_and_nexists(self):
        exists = FilterCondition(FilterField.goal_id, FilterOperator.exists)
        nexists = FilterCondition(FilterField.tags, FilterOperator.nexists)
        assert matches_condition(HOME_OPEN, exists)
        assert not matches_condition(WORK_DONE, exists)
        assert matches_condition(UNTAGGED, nexists)

    def test_in_operator(self):
        cond = FilterCondition(FilterField.status, FilterOperator.in_, ["done", "skipped"])
        assert matches_condition(WORK_DONE, cond)
        assert not matches_condition(HOME_OPEN, cond)

    def test_timestamp_comparison(self):
        groups = parse_filter_groups([{"conditions": [
            {"field": "completed_at", "operator": "gte", "value": "2026-10-12"},
        ]}])
        assert matches_condition(WORK_DONE, groups[0].conditions[0])
        assert not matches_condition(HOME_OPEN, groups[0].conditions[0])


class TestGroupLogic:
    activities = [WORK_DONE, HOME_OPEN, UNTAGGED]

    def test_no_groups_keeps_everything(self):
        assert apply_activity_filters(self.activities, []) == self.activities

    def test_and_within_group(self):
        groups = parse_filter_groups([{"logic": "and", "conditions": [
            {"field": "tags", "operator": "contains", "value": "work"},
            {"field": "status", "operator": "eq", "value": "done"},
        ]}])
        assert [a.id for a in apply_activity_filters(self.activities, groups)] == ["a1"]

    def test_or_across_groups_by_default(self):
        groups = parse_filter_groups([
            {"conditions": [{"field": "tags", "operator": "contains", "value": "work"}]},
            {"conditions": [{"field": "tags", "operator": "contains", "value": "home"}]},
        ])
        assert [a.id for a in apply_activity_filters(self.activities, groups)] == ["a1", "a2"]

    def test_and_across_groups(self):
        groups = parse_filter_groups([
            {"conditions": [{"field": "tags", "operator": "contains", "value": "work"}]},
            {"conditions": [{"field": "status", "operator": "neq", "value": "done"}]},
        ])
        assert apply_activity_filters(self.activities, groups, "and") == []

    def test_empty_group_matches_all(self):
        groups = parse_filter_groups([{"conditions": []}])
        assert len(apply_activity_filters(self.activities, groups)) == 3
