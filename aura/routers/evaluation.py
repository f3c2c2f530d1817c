"""
Rule evaluation router.

POST /auras/{aura_id}/rules/evaluate - evaluate an Aura's rules against given sense data
GET  /auras/{aura_id}/triggers       - recent trigger log (newest first)
POST /rules/preview                  - evaluate one unsaved rule
POST /cron/evaluate-rules            - run one evaluation cycle (cron entry point)
GET  /cron/evaluate-rules            - worker status
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.orm import Session

from aura.core.config import settings
from aura.core.dependencies import get_catalog, get_worker
from aura.core.errors import CronUnauthorizedError
from aura.db.base import get_db
from aura.schemas.common import NOT_FOUND, UNAUTHORIZED
from aura.schemas.evaluation import (
    CronConfigOut,
    CronEvaluationResponse,
    CronStatusResponse,
    WorkerResultOut,
)
from aura.schemas.rule import (
    EvaluateRequest,
    EvaluateResponse,
    PreviewRequest,
    PreviewResponse,
    TriggerLogListResponse,
    TriggerLogResponse,
    TriggerResultOut,
)
from aura.services import rules as rule_store
from aura.services.cooldown import FrequencyEnforcement, effective_cooldown
from aura.services.evaluation_worker import EvaluationWorker, WorkerResult
from aura.services.rule_engine import (
    Rule,
    TriggerResult,
    build_rule_context,
    evaluate_rules,
)
from aura.services.sensor_catalog import SensorCatalog
from aura.services.trigger_history import TriggerHistory
from aura.services.trigger_log import (
    aura_lane,
    get_recent_triggers,
    load_history,
    persist_triggers,
)

router = APIRouter(tags=["evaluation"])


# ---------------------------------------------------------------------------
# Serialization helpers
# ---------------------------------------------------------------------------

def _utc(dt: Optional[datetime]) -> datetime:
    if dt is None:
        return datetime.now(tz=timezone.utc)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _result_to_out(result: TriggerResult) -> TriggerResultOut:
    return TriggerResultOut(
        rule_id=result.rule.id,
        rule_name=result.rule.name,
        action_type=result.rule.action.type,
        message=result.message,
        priority=result.priority,
        channels=result.channels,
    )


def _worker_result_to_out(result: WorkerResult) -> WorkerResultOut:
    return WorkerResultOut(
        processed=result.processed,
        succeeded=result.succeeded,
        failed=result.failed,
        triggered=result.triggered,
        duration_ms=result.duration_ms,
        errors=result.errors,
        skipped=result.skipped,
        started_at=result.started_at.isoformat() if result.started_at else None,
    )


# ---------------------------------------------------------------------------
# Per-Aura evaluation
# ---------------------------------------------------------------------------

@router.post(
    "/auras/{aura_id}/rules/evaluate",
    response_model=EvaluateResponse,
    responses=NOT_FOUND,
    summary="Evaluate an Aura's rules against supplied sense data",
)
def evaluate_aura_rules(
    aura_id: int,
    payload: EvaluateRequest,
    db: Session = Depends(get_db),
    catalog: SensorCatalog = Depends(get_catalog),
):
    """
    Runs the same evaluation as the cron cycle for a single Aura, but with
    caller-supplied sense data. Cooldowns are honoured. Unless `dry_run`,
    triggered rules are written to the trigger log (no notification is sent).
    Runs for the same Aura are serialized, this call included.

    Clock senses and time triggers read `now` in its own offset, so
    `2030-01-02T09:00:00-05:00` evaluates as 9 AM. Without `now` the
    current UTC time is used.
    """
    now = _utc(payload.now)
    with aura_lane(db, aura_id) as aura:
        rules = rule_store.load_rules(db, aura_id)
        context = build_rule_context(payload.sense_data, rule_store.aura_personality(aura), now)
        history = load_history(db, aura_id, now.timestamp())

        results = evaluate_rules(
            rules,
            context,
            history,
            now.timestamp(),
            catalog=catalog,
            default_cooldown=settings.DEFAULT_COOLDOWN_SECONDS,
            frequency_enforcement=FrequencyEnforcement(settings.FREQUENCY_ENFORCEMENT),
        )
        if not payload.dry_run:
            persist_triggers(db, aura_id, results)
        db.commit()

    return EvaluateResponse(
        aura_id=aura_id,
        evaluated_at=now.isoformat(),
        time_of_day=context.time_of_day,
        day_of_week=context.day_of_week,
        triggered=[_result_to_out(r) for r in results],
    )


@router.get(
    "/auras/{aura_id}/triggers",
    response_model=TriggerLogListResponse,
    responses=NOT_FOUND,
    summary="Recent rule triggers for an Aura (newest first)",
)
def list_triggers(
    aura_id: int,
    limit: int = Query(
        default=settings.TRIGGER_HISTORY_DISPLAY_LIMIT, ge=1, le=200, description="Page size.",
    ),
    offset: int = Query(default=0, ge=0, description="Skip N items."),
    db: Session = Depends(get_db),
):
    rule_store.get_aura(db, aura_id)
    total, items = get_recent_triggers(db, aura_id, limit=limit, offset=offset)
    return TriggerLogListResponse(
        total=total,
        items=[
            TriggerLogResponse(
                id=row.id,
                rule_id=row.rule_id,
                aura_id=row.aura_id,
                triggered_at=row.triggered_at.isoformat(),
                message=row.message,
                action_type=row.action_type,
            )
            for row in items
        ],
    )


@router.post(
    "/rules/preview",
    response_model=PreviewResponse,
    summary="Preview whether an unsaved rule would fire",
)
def preview_rule(payload: PreviewRequest, catalog: SensorCatalog = Depends(get_catalog)):
    """Evaluates the rule once with an empty trigger history. Nothing is stored."""
    now = _utc(payload.now)
    rule = Rule(
        id="preview",
        aura_id=None,
        name=payload.name,
        trigger=payload.trigger,
        action=payload.action,
    )
    context = build_rule_context(payload.sense_data, None, now)
    results = evaluate_rules([rule], context, TriggerHistory(), now.timestamp(), catalog=catalog)
    return PreviewResponse(
        triggered=bool(results),
        message=results[0].message if results else None,
        effective_cooldown=effective_cooldown(payload.trigger, settings.DEFAULT_COOLDOWN_SECONDS),
    )


# ---------------------------------------------------------------------------
# Cron
# ---------------------------------------------------------------------------

@router.post(
    "/cron/evaluate-rules",
    response_model=CronEvaluationResponse,
    responses=UNAUTHORIZED,
    summary="Run one proactive rule-evaluation cycle",
)
def run_evaluation_cycle(
    x_cron_secret: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
    worker: EvaluationWorker = Depends(get_worker),
):
    """
    Called by the external scheduler. In production the `X-Cron-Secret`
    header must match `CRON_SECRET`. Overlapping calls are reported with
    `skipped: true`.
    """
    if settings.is_production and (not x_cron_secret or x_cron_secret != settings.CRON_SECRET):
        raise CronUnauthorizedError()

    result = worker.run_cycle(db)
    return CronEvaluationResponse(
        success=not result.errors,
        timestamp=datetime.now(tz=timezone.utc).isoformat(),
        result=_worker_result_to_out(result),
    )


@router.get(
    "/cron/evaluate-rules",
    response_model=CronStatusResponse,
    summary="Evaluation worker status",
)
def evaluation_status(worker: EvaluationWorker = Depends(get_worker)):
    return CronStatusResponse(
        status="healthy",
        is_running=worker.is_running,
        last_result=_worker_result_to_out(worker.last_result) if worker.last_result else None,
        config=CronConfigOut(
            batch_size=worker.batch_size,
            interval_seconds=worker.interval_seconds,
            default_cooldown_seconds=worker.default_cooldown,
            frequency_enforcement=worker.frequency_enforcement.value,
        ),
    )
