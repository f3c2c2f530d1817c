"""
Evaluation worker - one proactive rule-evaluation cycle over all Auras.

run_cycle(db, now)
------------------
  1. select eligible Auras: enabled, proactive, with rules, and not
     evaluated within EVALUATION_INTERVAL_SECONDS
  2. process them in batches; per Aura (its own lane):
       fetch sense data → build RuleContext → rebuild TriggerHistory from
       the trigger log → evaluate_rules → append trigger log rows →
       stamp last_evaluation_at → commit → dispatch notifications
  3. return a WorkerResult summary

A failing Aura is rolled back, counted and logged; the cycle carries on.
A failing sense-data fetch evaluates with empty sense data. Only one cycle
runs at a time per worker; an overlapping call returns `skipped=True`.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.orm import Session

from aura.models.aura import Aura
from aura.models.behavior_rule import BehaviorRule
from aura.services.cache import InvalidationBus, TTLCache
from aura.services.cooldown import DEFAULT_COOLDOWN_SECONDS, FrequencyEnforcement
from aura.services.providers import (
    NotificationDispatcher,
    NotificationPayload,
    SenseDataProvider,
    readings_to_sense_data,
)
from aura.services.rule_engine import (
    Rule,
    TriggerResult,
    build_rule_context,
    evaluate_rules,
)
from aura.services.rules import RULES_TOPIC, aura_personality, aura_senses, load_rules
from aura.services.sensor_catalog import DEFAULT_CATALOG, SensorCatalog
from aura.services.trigger_log import aura_lane, load_history, persist_triggers, to_epoch

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class AuraEvaluation:
    aura_id: int
    triggered: list[TriggerResult]
    duration_ms: int


@dataclass
class WorkerResult:
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    triggered: int = 0
    duration_ms: int = 0
    errors: list[str] = field(default_factory=list)
    skipped: bool = False
    started_at: Optional[datetime] = None


def _chunks(items: list, size: int) -> list[list]:
    size = max(size, 1)
    return [items[i:i + size] for i in range(0, len(items), size)]


# ---------------------------------------------------------------------------
# Worker
# ---------------------------------------------------------------------------

class EvaluationWorker:

    def __init__(
        self,
        sense_provider: SenseDataProvider,
        dispatcher: NotificationDispatcher,
        *,
        catalog: SensorCatalog = DEFAULT_CATALOG,
        bus: Optional[InvalidationBus] = None,
        rule_cache_ttl: float = 60,
        batch_size: int = 50,
        interval_seconds: int = 300,
        default_cooldown: int = DEFAULT_COOLDOWN_SECONDS,
        frequency_enforcement: FrequencyEnforcement | str = FrequencyEnforcement.uniform,
    ):
        self.sense_provider = sense_provider
        self.dispatcher = dispatcher
        self.catalog = catalog
        self.batch_size = batch_size
        self.interval_seconds = interval_seconds
        self.default_cooldown = default_cooldown
        self.frequency_enforcement = FrequencyEnforcement(frequency_enforcement)
        self.rule_cache = TTLCache(ttl_seconds=rule_cache_ttl)
        if bus is not None:
            self.rule_cache.bind(bus, RULES_TOPIC)
        self.last_result: Optional[WorkerResult] = None
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    # -- selection ------------------------------------------------------------

    def eligible_auras(self, db: Session, now: datetime) -> list[Aura]:
        candidates = (
            db.query(Aura)
            .filter(
                Aura.enabled == True,  # noqa: E712
                Aura.proactive_enabled == True,  # noqa: E712
                Aura.rules.any(BehaviorRule.enabled == True),  # noqa: E712
            )
            .order_by(Aura.id)
            .all()
        )
        cutoff = now.timestamp() - self.interval_seconds
        return [
            a for a in candidates
            if a.last_evaluation_at is None or to_epoch(a.last_evaluation_at) <= cutoff
        ]

    def rules_for(self, db: Session, aura_id: int) -> list[Rule]:
        return self.rule_cache.get_or_load(aura_id, lambda: load_rules(db, aura_id))

    # -- per Aura -------------------------------------------------------------

    def _sense_data(self, aura: Aura) -> dict:
        try:
            return readings_to_sense_data(self.sense_provider.get_sense_data(aura_senses(aura)))
        except Exception:
            logger.warning(
                "Sense data fetch failed for aura %s", aura.id,
                exc_info=True, extra={"aura_id": aura.id},
            )
            return {}

    def evaluate_aura(self, db: Session, aura: Aura, now: datetime) -> AuraEvaluation:
        """
        Evaluate one Aura and persist its triggers. Commits. Holds the
        Aura's lane, so it never overlaps an HTTP evaluation of the same Aura.
        """
        started = time.perf_counter()
        now_ts = now.timestamp()
        aura_id = aura.id

        with aura_lane(db, aura_id) as locked:
            rules = self.rules_for(db, aura_id)
            context = build_rule_context(self._sense_data(locked), aura_personality(locked), now)
            history = load_history(db, aura_id, now_ts)

            results = evaluate_rules(
                rules,
                context,
                history,
                now_ts,
                catalog=self.catalog,
                default_cooldown=self.default_cooldown,
                frequency_enforcement=self.frequency_enforcement,
            )

            persist_triggers(db, aura_id, results)
            locked.last_evaluation_at = now
            db.commit()

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.debug(
            "Aura %s evaluated: %d triggered (%dms)", aura_id, len(results), duration_ms,
            extra={"aura_id": aura_id, "duration_ms": duration_ms},
        )
        return AuraEvaluation(aura_id=aura_id, triggered=results, duration_ms=duration_ms)

    def _dispatch(self, aura_id: int, results: list[TriggerResult], errors: list[str]) -> None:
        for result in results:
            payload = NotificationPayload(
                aura_id=aura_id,
                rule_id=result.rule.id,
                message=result.message,
                priority=result.priority,
                channels=result.channels,
                context={"rule_name": result.rule.name, "action_type": result.rule.action.type},
            )
            try:
                self.dispatcher.dispatch(payload)
            except Exception as exc:
                logger.exception(
                    "Dispatch failed for rule %s", result.rule.id,
                    extra={"aura_id": aura_id, "rule_id": result.rule.id},
                )
                errors.append(f"Rule {result.rule.id}: dispatch failed: {exc}")

    # -- cycle ----------------------------------------------------------------

    def run_cycle(self, db: Session, now: Optional[datetime] = None) -> WorkerResult:
        now = now or datetime.now(tz=timezone.utc)
        if not self._lock.acquire(blocking=False):
            logger.info("Evaluation already running, skipping")
            return WorkerResult(skipped=True, started_at=now)

        started = time.perf_counter()
        result = WorkerResult(started_at=now)
        try:
            auras = self.eligible_auras(db, now)
            logger.info("Rule evaluation cycle: %d eligible auras", len(auras))

            for batch in _chunks(auras, self.batch_size):
                for aura in batch:
                    aura_id = aura.id
                    result.processed += 1
                    try:
                        evaluation = self.evaluate_aura(db, aura, now)
                    except Exception as exc:
                        db.rollback()
                        result.failed += 1
                        result.errors.append(f"Aura {aura_id}: {exc}")
                        logger.exception(
                            "Evaluation failed for aura %s", aura_id, extra={"aura_id": aura_id},
                        )
                        continue
                    result.succeeded += 1
                    result.triggered += len(evaluation.triggered)
                    self._dispatch(aura_id, evaluation.triggered, result.errors)

            result.duration_ms = int((time.perf_counter() - started) * 1000)
            logger.info(
                "Rule evaluation cycle done: processed=%d succeeded=%d failed=%d triggered=%d (%dms)",
                result.processed, result.succeeded, result.failed, result.triggered,
                result.duration_ms,
                extra={"duration_ms": result.duration_ms},
            )
            self.last_result = result
            return result
        finally:
            self._lock.release()
