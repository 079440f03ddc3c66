"""
Narrative request builder — one chat-completion request per chapter.

The request is a system instruction block (voice + hard writing constraints)
and a single user message carrying a JSON payload:

    task, period, stable_context, metrics, evidence,
    output_schema, writing_requirements

Generation parameters
---------------------
MAX_TOKENS_BY_PROFILE

    kind        short   medium   deep
    report        800      900   1600
    reflection    800     1100   1600

    then raised to a floor: 1900 for periods ≥ 180 days, 1200 otherwise.

TEMPERATURE_BY_TONE

    report      0.25 regardless of tone
    reflection  direct 0.45 · playful 0.8 · gentle / neutral 0.65

Public API
----------
resolve_generation_params(kind, detail_level, tone, period_days) -> GenerationParams
build_stable_context(goals, arcs)                                 -> dict
build_chapter_request(template, period, label, metrics,
                      stable_context, evidence, model)            -> NarrativeRequest
"""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

from app.services.domain_loader import ArcRecord, GoalRecord
from app.services.evidence import EvidenceBundle
from app.services.metrics import ChapterMetrics
from app.services.periods import Period

MIN_STORY_BODY_CHARS = 900
MIN_CITED_EXAMPLES = 4

LONG_PERIOD_DAYS = 180
LONG_PERIOD_TOKEN_FLOOR = 1900
TOKEN_FLOOR = 1200

MAX_TOKENS_BY_PROFILE: dict[tuple[str, str], int] = {
    ("report", "short"): 800,
    ("report", "medium"): 900,
    ("report", "deep"): 1600,
    ("reflection", "short"): 800,
    ("reflection", "medium"): 1100,
    ("reflection", "deep"): 1600,
}

TEMPERATURE_BY_TONE: dict[tuple[str, str], float] = {
    ("report", "gentle"): 0.25,
    ("report", "direct"): 0.25,
    ("report", "playful"): 0.25,
    ("report", "neutral"): 0.25,
    ("reflection", "gentle"): 0.65,
    ("reflection", "direct"): 0.45,
    ("reflection", "playful"): 0.8,
    ("reflection", "neutral"): 0.65,
}

DEFAULT_DETAIL_LEVEL = "medium"
DEFAULT_TONE_BY_KIND = {"report": "neutral", "reflection": "gentle"}

BANNED_PHRASES = (
    "This chapter highlights",
    "Reflecting on",
    "a week of growth",
    "meaningful activities",
)

REQUIRED_SECTION_KEYS = (
    "story",
    "where_time_went",
    "forces",
    "highlights",
    "patterns",
    "next_experiments",
)


@dataclass(frozen=True)
class GenerationParams:
    kind: str
    detail_level: str
    tone: str
    temperature: float
    max_tokens: int


@dataclass
class NarrativeRequest:
    model: str
    messages: list[dict]
    temperature: float
    max_tokens: int

    def to_payload(self) -> dict:
        return {
            "model": self.model,
            "messages": self.messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "response_format": {"type": "json_object"},
        }


def _norm(value, default: str) -> str:
    raw = getattr(value, "value", value)
    text = raw.strip().lower() if isinstance(raw, str) else ""
    return text or default


# ---------------------------------------------------------------------------
# Generation parameters
# ---------------------------------------------------------------------------

def resolve_generation_params(
    kind,
    detail_level=None,
    tone=None,
    period_days: int = 7,
) -> GenerationParams:
    kind = "report" if _norm(kind, "reflection") == "report" else "reflection"
    detail = _norm(detail_level, DEFAULT_DETAIL_LEVEL)
    if (kind, detail) not in MAX_TOKENS_BY_PROFILE:
        detail = DEFAULT_DETAIL_LEVEL
    tone = _norm(tone, DEFAULT_TONE_BY_KIND[kind])
    if (kind, tone) not in TEMPERATURE_BY_TONE:
        tone = DEFAULT_TONE_BY_KIND[kind]

    floor = LONG_PERIOD_TOKEN_FLOOR if period_days >= LONG_PERIOD_DAYS else TOKEN_FLOOR
    return GenerationParams(
        kind=kind,
        detail_level=detail,
        tone=tone,
        temperature=TEMPERATURE_BY_TONE[(kind, tone)],
        max_tokens=max(MAX_TOKENS_BY_PROFILE[(kind, detail)], floor),
    )


# ---------------------------------------------------------------------------
# Prompt parts
# ---------------------------------------------------------------------------

def build_stable_context(goals: list[GoalRecord], arcs: list[ArcRecord]) -> dict:
    """Titles and descriptions only; no activity data."""
    return {
        "arcs": [
            {"id": a.id, "title": a.title, "description": a.description}
            for a in arcs
        ],
        "goals": [
            {"id": g.id, "title": g.title, "description": g.description, "arc_id": g.arc_id}
            for g in goals
        ],
    }


def _system_prompt(params: GenerationParams) -> str:
    banned = ", ".join(f'"{p}"' for p in BANNED_PHRASES)
    return "\n".join([
        'You write "Chapters": investigative-reporter-voiced reflections on a stretch of someone\'s life.',
        "Non-negotiables: never invent facts; celebration must emerge from evidence; never shame.",
        "You MAY reference numbers only if they appear in the provided metrics object.",
        "You MUST only mention activities that appear in evidence.noteworthy_examples or evidence.activities_full.",
        "When you mention an activity, you MUST include its activity_id in citations.examples_used.",
        f"citations.examples_used MUST list at least {MIN_CITED_EXAMPLES} activity ids; citations.metrics_used MUST be true.",
        "Output MUST be valid JSON (no markdown fences) matching the provided output schema exactly.",
        "The period object in your output MUST copy start, end and label from the input period verbatim.",
        f"story.body MUST be article-length: at least {MIN_STORY_BODY_CHARS} characters.",
        "Write like an article: a newsworthy headline, a dek, then a cohesive narrative with subheads.",
        "Anti-generic rule: no vague praise unless immediately justified by a metric or a quoted activity title.",
        "Hard constraint: every paragraph in story.body must include at least ONE concrete anchor: "
        "(a) a number from metrics, (b) a quoted activity title, or (c) a named arc or goal title from stable_context.",
        f"Banned phrases (do not use): {banned}.",
        f"Kind: {params.kind}. Tone hint: {params.tone}. Detail level: {params.detail_level}.",
        'Forbidden: inventing intent or emotion, shaming language ("should have", "failed to"), ungrounded superlatives.',
    ])


_OUTPUT_SCHEMA = {
    "title": "string",
    "dek": "string",
    "period": {"start": "string", "end": "string", "label": "string"},
    "sections": [
        {"key": "story", "title": "The Story", "body": "string (article body; include subheads inline)"},
        {"key": "where_time_went", "title": "Where the Work Landed", "bullets": ["string"]},
        {"key": "forces", "title": "Your Forces", "items": [{"force": "string", "body": "string"}]},
        {"key": "highlights", "title": "Highlights", "bullets": ["string"]},
        {"key": "patterns", "title": "Patterns", "bullets": ["string"]},
        {"key": "next_experiments", "title": "Next Experiments", "bullets": ["string"]},
    ],
    "noteworthy_mentions": [{"activity_id": "string", "title": "string", "reason": "string"}],
    "citations": {"metrics_used": True, "examples_used": ["activity_id"]},
}

_WRITING_REQUIREMENTS = {
    "headline_rules": [
        'title must be a headline (no "Chapter:" prefix, no dates unless essential)',
        'keep it specific and evidence-based (avoid generic "A Busy Week")',
    ],
    "dek_rules": [
        "dek is 1-2 concrete sentences anchored in a metric or a piece of evidence",
    ],
    "story_rules": [
        "story.body is a cohesive article with 4-8 short subheads",
        "lead with a reported lede, then a nut graf grounding the period and key metrics",
        "pick ONE story hook from evidence.story_hooks and make the headline reflect it",
        "quote at least 4 activity titles exactly as given in evidence.activities_full",
        "quiet arcs or goals are mentioned neutrally",
        "no numbered lists in the article body",
    ],
    "section_rules": [
        "other sections stay small and support the article",
        "at most 3 bullets or items per supporting section",
        "bullets and items never introduce facts beyond metrics and evidence",
    ],
}


# ---------------------------------------------------------------------------
# Public — main entry point
# ---------------------------------------------------------------------------

def build_chapter_request(
    template,
    period: Period,
    label: str,
    metrics: ChapterMetrics,
    stable_context: dict,
    evidence: EvidenceBundle,
    model: str,
    params: Optional[GenerationParams] = None,
) -> NarrativeRequest:
    """Assemble the request for one template/period."""
    params = params or resolve_generation_params(
        template.kind, template.detail_level, template.tone, metrics.period_days,
    )
    payload = {
        "task": "Generate a Chapter JSON using ONLY the provided stable context, deterministic metrics and evidence.",
        "period": {
            "start": period.start.isoformat(),
            "end": period.end.isoformat(),
            "label": label,
            "timezone": period.timezone,
            "days": metrics.period_days,
        },
        "stable_context": stable_context,
        "metrics": metrics.to_dict(),
        "evidence": evidence.to_dict(),
        "output_schema": _OUTPUT_SCHEMA,
        "writing_requirements": _WRITING_REQUIREMENTS,
    }
    return NarrativeRequest(
        model=model,
        messages=[
            {"role": "system", "content": _system_prompt(params)},
            {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
        ],
        temperature=params.temperature,
        max_tokens=params.max_tokens,
    )
