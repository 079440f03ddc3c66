"""
Output validator — all-or-nothing structural and grounding checks on a
generated chapter.

Rules are checked in order; the first violation raises
ChapterOutputInvalidError whose `rule` names the failed check. Nothing is
repaired or partially accepted.
"""
from __future__ import annotations

import re
from typing import Any

from app.core.errors import ChapterOutputInvalidError
from app.services.narrative_request import (
    MIN_CITED_EXAMPLES,
    MIN_STORY_BODY_CHARS,
    REQUIRED_SECTION_KEYS,
)
from app.services.periods import Period

BANNED_TITLE_PATTERNS = (
    re.compile(r"^reflecting on\b", re.IGNORECASE),
)
BANNED_DEK_PATTERNS = (
    re.compile(r"^this chapter highlights\b", re.IGNORECASE),
)


def _fail(rule: str, message: str) -> None:
    raise ChapterOutputInvalidError(rule, message)


def _text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def _check_headline(output: dict) -> None:
    title = _text(output.get("title"))
    dek = _text(output.get("dek"))
    if not title:
        _fail("missing_title", "Output missing title")
    if not dek:
        _fail("missing_dek", "Output missing dek")
    if any(p.search(title) for p in BANNED_TITLE_PATTERNS):
        _fail("banned_title", 'Title is generic/banned ("Reflecting on…")')
    if any(p.search(dek) for p in BANNED_DEK_PATTERNS):
        _fail("banned_dek", 'Dek is generic/banned ("This chapter highlights…")')


def _check_period(output: dict, period: Period, label: str) -> None:
    echo = output.get("period")
    if not isinstance(echo, dict):
        _fail("missing_period", "Output missing period")
    if not all(isinstance(echo.get(k), str) for k in ("start", "end", "label")):
        _fail("invalid_period", "Output period is invalid")
    if (
        echo["start"] != period.start.isoformat()
        or echo["end"] != period.end.isoformat()
        or echo["label"] != label
    ):
        _fail("period_mismatch", "Output period fields do not match canonical period")


def _check_sections(output: dict) -> None:
    sections = output.get("sections")
    if not isinstance(sections, list):
        _fail("missing_sections", "Output missing sections array")
    keys = {s.get("key") for s in sections if isinstance(s, dict) and isinstance(s.get("key"), str)}
    for key in REQUIRED_SECTION_KEYS:
        if key not in keys:
            _fail("missing_section", f"Output missing section: {key}")

    story = next(s for s in sections if isinstance(s, dict) and s.get("key") == "story")
    body = _text(story.get("body"))
    if not body:
        _fail("missing_story_body", "story.body is missing")
    if len(body) < MIN_STORY_BODY_CHARS:
        _fail("story_too_short", "story.body is too short (must be article-length)")


def _check_citations(output: dict, allowed_ids: set[str]) -> None:
    citations = output.get("citations")
    if not isinstance(citations, dict):
        _fail("missing_citations", "Output missing citations")
    if citations.get("metrics_used") is not True:
        _fail("metrics_not_used", "citations.metrics_used must be true")
    used = citations.get("examples_used")
    if not isinstance(used, list):
        _fail("invalid_examples_used", "citations.examples_used must be an array")
    if len(used) < MIN_CITED_EXAMPLES:
        _fail(
            "too_few_examples",
            f"citations.examples_used must include at least {MIN_CITED_EXAMPLES} activity ids",
        )
    for activity_id in used:
        if not isinstance(activity_id, str) or not activity_id.strip():
            _fail("invalid_example_id", "citations.examples_used contains invalid id")
        if activity_id not in allowed_ids:
            _fail(
                "unknown_example_id",
                f"citations.examples_used references unknown activity_id: {activity_id}",
            )


def _check_mentions(output: dict, allowed_ids: set[str]) -> None:
    mentions = output.get("noteworthy_mentions")
    if not isinstance(mentions, list):
        return
    for mention in mentions:
        activity_id = mention.get("activity_id") if isinstance(mention, dict) else None
        if not isinstance(activity_id, str) or activity_id not in allowed_ids:
            _fail("unknown_mention_id", "noteworthy_mentions references unknown activity_id")


def validate_chapter_output(
    output: Any,
    period: Period,
    label: str,
    allowed_ids: set[str],
) -> None:
    """Raise ChapterOutputInvalidError on the first rule `output` breaks."""
    if not isinstance(output, dict):
        _fail("not_an_object", "Output is not a JSON object")
    _check_headline(output)
    _check_period(output, period, label)
    _check_sections(output)
    _check_citations(output, allowed_ids)
    _check_mentions(output, allowed_ids)
