"""
Chapter pipeline — the batch job.

Per template, independently:

    resolve period → skip if already ready (unless force) → load domain
    → candidates → filters → metrics + evidence → upsert "pending"
    → build request → generate → validate → upsert "ready" | "failed"

Rules:
- Scheduled runs see every enabled, non-manual template; manual runs are
  scoped to the caller.
- A template's failure is recorded as its outcome and never stops the batch.
- A persistence failure stops further writes for that template.
- The only network call is GenerationClient.generate.

Public API
----------
run_chapters(db, mode, caller_id, ...) -> BatchSummary
"""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import (
    ChapterOutputInvalidError,
    ChapterPersistenceError,
    GenerationError,
    TemplateNotFoundError,
    UnauthorizedError,
)
from app.models.chapter import ChapterStatus
from app.models.chapter_template import Cadence, ChapterTemplate
from app.services import chapter_store
from app.services.domain_loader import DomainLoader, load_user_domain
from app.services.evidence import build_evidence
from app.services.filters import apply_activity_filters, parse_filter_groups, parse_group_logic
from app.services.generation_client import GenerationClient, default_client
from app.services.metrics import compute_metrics, select_candidates
from app.services.narrative_request import build_chapter_request, build_stable_context
from app.services.output_validator import validate_chapter_output
from app.services.periods import Period, period_label, resolve_period

logger = logging.getLogger(__name__)

MODE_SCHEDULED = "scheduled"
MODE_MANUAL = "manual"

DEFAULT_LIMIT = 50
MAX_LIMIT = 500


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class TemplateOutcome:
    template_id: int
    user_id: str
    period_key: Optional[str]
    ok: bool
    action: str                      # "generated" | "skipped" | "failed"
    reason: Optional[str] = None
    error: Optional[str] = None


@dataclass
class BatchSummary:
    mode: str
    processed: int = 0
    results: list[TemplateOutcome] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _ev(v) -> str:
    return v.value if hasattr(v, "value") else str(v)


def _clamp_limit(limit) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    return max(1, min(MAX_LIMIT, value))


# ---------------------------------------------------------------------------
# Template selection
# ---------------------------------------------------------------------------

def _list_templates(
    db: Session,
    mode: str,
    caller_id: Optional[str],
    template_id: Optional[int],
    limit: int,
) -> list[ChapterTemplate]:
    q = db.query(ChapterTemplate).filter(ChapterTemplate.enabled.is_(True))
    if mode == MODE_MANUAL:
        q = q.filter(ChapterTemplate.user_id == caller_id)
    else:
        q = q.filter(ChapterTemplate.cadence != Cadence.manual)
    if template_id is not None:
        q = q.filter(ChapterTemplate.id == template_id)
    return q.order_by(ChapterTemplate.id).limit(limit).all()


# ---------------------------------------------------------------------------
# One template
# ---------------------------------------------------------------------------

def _generate_one(
    db: Session,
    template: ChapterTemplate,
    period: Period,
    client: GenerationClient,
    load_domain: DomainLoader,
) -> TemplateOutcome:
    user_id = template.user_id
    label = period_label(period)

    snapshot = load_domain(db, user_id)
    candidate_set = select_candidates(snapshot.activities, period)
    groups = parse_filter_groups(template.filter_json)
    group_logic = parse_group_logic(template.filter_group_logic)
    included = apply_activity_filters(candidate_set.candidates, groups, group_logic)

    filter_snapshot = {
        "group_logic": group_logic.value,
        "groups": [g.to_dict() for g in groups],
    }
    metrics = compute_metrics(period, included, snapshot)
    evidence = build_evidence(
        snapshot.activities,
        included,
        period,
        metrics,
        snapshot.arc_for,
        filter_snapshot=filter_snapshot,
        cadence=_ev(template.cadence),
    )

    input_summary = {
        "period": {
            "key": period.key,
            "start": period.start.isoformat(),
            "end": period.end.isoformat(),
            "timezone": period.timezone,
            "label": label,
            "days": period.days,
        },
        "counts": {
            "arcs": len(snapshot.arcs),
            "goals": len(snapshot.goals),
            "activities_in_period": len(candidate_set.in_period),
            "activities_carried_forward": len(candidate_set.carried_forward),
            "activities_included": len(included),
        },
        "filter": evidence.filter_snapshot,
        "noteworthy_examples": [asdict(e) for e in evidence.noteworthy_examples],
    }
    metrics_dict = metrics.to_dict()

    chapter_store.upsert_chapter(
        db, user_id, template.id, period,
        input_summary=input_summary,
        metrics=metrics_dict,
        status=ChapterStatus.pending.value,
    )

    request = build_chapter_request(
        template,
        period,
        label,
        metrics,
        build_stable_context(snapshot.goals, snapshot.arcs),
        evidence,
        model=settings.CHAPTERS_MODEL,
    )

    error: Optional[str] = None
    output: Optional[dict] = None
    try:
        output = client.generate(request)
        validate_chapter_output(output, period, label, evidence.allowed_activity_ids())
    except GenerationError as e:
        error = e.message
        output = None
    except ChapterOutputInvalidError as e:
        logger.warning("Template %s output rejected (%s): %s", template.id, e.rule, e.message)
        error = f"AI output validation failed: {e.message}"
        output = None

    status = ChapterStatus.ready.value if error is None else ChapterStatus.failed.value
    chapter_store.upsert_chapter(
        db, user_id, template.id, period,
        input_summary=input_summary,
        metrics=metrics_dict,
        output=output,
        status=status,
        error=error,
    )
    if error is not None:
        return TemplateOutcome(template.id, user_id, period.key, ok=False, action="failed", error=error)
    return TemplateOutcome(template.id, user_id, period.key, ok=True, action="generated")


def _process_template(
    db: Session,
    template: ChapterTemplate,
    force: bool,
    period_offset: int,
    start_date: Optional[str],
    end_date: Optional[str],
    client: GenerationClient,
    load_domain: DomainLoader,
    now: Optional[datetime],
) -> TemplateOutcome:
    period = resolve_period(
        _ev(template.cadence), template.timezone, period_offset, start_date, end_date, now=now,
    )
    if period is None:
        return TemplateOutcome(
            template.id, template.user_id, None, ok=False, action="skipped", reason="invalid_period",
        )

    try:
        existing = chapter_store.get_chapter(db, template.user_id, template.id, period.key)
        if existing is not None and existing.status == ChapterStatus.ready.value and not force:
            return TemplateOutcome(
                template.id, template.user_id, period.key, ok=True, action="skipped", reason="already_ready",
            )
        return _generate_one(db, template, period, client, load_domain)
    except ChapterPersistenceError as e:
        return TemplateOutcome(template.id, template.user_id, period.key, ok=False, action="failed", error=e.message)
    except Exception as e:
        db.rollback()
        logger.exception("Template %s failed for period %s", template.id, period.key)
        error = f"{type(e).__name__}: {e}"
        try:
            chapter_store.upsert_chapter(
                db, template.user_id, template.id, period,
                status=ChapterStatus.failed.value, error=error,
            )
        except ChapterPersistenceError as write_error:
            logger.error("Could not record failure for template %s: %s", template.id, write_error.message)
        return TemplateOutcome(template.id, template.user_id, period.key, ok=False, action="failed", error=error)


# ---------------------------------------------------------------------------
# Public — main entry point
# ---------------------------------------------------------------------------

def run_chapters(
    db: Session,
    mode: str = MODE_SCHEDULED,
    caller_id: Optional[str] = None,
    template_id: Optional[int] = None,
    limit: int = DEFAULT_LIMIT,
    force: bool = False,
    period_offset: int = 0,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    client: Optional[GenerationClient] = None,
    load_domain: DomainLoader = load_user_domain,
    now: Optional[datetime] = None,
) -> BatchSummary:
    """
    Run the batch over eligible templates.

    Raises:
        UnauthorizedError: manual mode without a caller
        TemplateNotFoundError: an explicit template_id matched nothing eligible
    """
    if mode == MODE_MANUAL and not caller_id:
        raise UnauthorizedError()

    templates = _list_templates(db, mode, caller_id, template_id, _clamp_limit(limit))
    if template_id is not None and not templates:
        raise TemplateNotFoundError(template_id)

    client = client or default_client()
    summary = BatchSummary(mode=mode)
    for template in templates:
        outcome = _process_template(
            db, template, force, period_offset, start_date, end_date, client, load_domain, now,
        )
        logger.info(
            "Chapter template=%s user=%s period=%s action=%s reason=%s error=%s",
            outcome.template_id, outcome.user_id, outcome.period_key,
            outcome.action, outcome.reason, outcome.error,
        )
        summary.results.append(outcome)

    summary.processed = len(summary.results)
    return summary
