"""
Rule Evaluator - decides which of an Aura's behavior rules fire this cycle.

evaluate_rules(rules, context, history, now)
--------------------------------------------
For each rule, in input order:

  1. skip if disabled
  2. skip if still cooling down (TriggerHistory + cooldown policy)
  3. resolve the sensor reading(s); unknown sensor metadata → skip
  4. apply the comparator; unsatisfied → skip
  5. render the action message, record the trigger, emit a TriggerResult

Results keep input order. A rule fires at most once per call. Bad data in
one rule never stops the others: malformed thresholds are logged and the
rule is treated as not triggered.

The function is synchronous and does no I/O; fetching sense data and
delivering/persisting results belong to the caller (evaluation_worker).
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Hashable, Mapping, Optional, Sequence

from aura.schemas.rule import (
    CompoundTrigger,
    RuleAction,
    SimpleTrigger,
    ThresholdTrigger,
    TimeTrigger,
    Trigger,
)
from aura.services.comparator import ComparisonError, as_number, evaluate_comparison
from aura.services.cooldown import (
    DEFAULT_COOLDOWN_SECONDS,
    FrequencyEnforcement,
    effective_cooldown,
    frequency_window,
)
from aura.services.sensor_catalog import DEFAULT_CATALOG, SensorCatalog, SensorType
from aura.services.trigger_history import TriggerHistory

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "A rule was triggered!"
PERSONALITY_TRAITS = ("warmth", "playfulness", "verbosity", "empathy", "creativity")
_DEFAULT_TRAIT = 50
_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_PLACEHOLDER = re.compile(r"\{([^}]+)\}")


# ---------------------------------------------------------------------------
# Types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    """Immutable snapshot of a behavior rule for one evaluation call."""
    id: Hashable
    aura_id: Hashable
    name: str
    trigger: Trigger
    action: RuleAction
    priority: int = 0
    enabled: bool = True


@dataclass
class RuleContext:
    sense_data: dict[str, Any]
    aura_personality: dict[str, int]
    time_of_day: str
    day_of_week: str
    moment: datetime


@dataclass
class TriggerResult:
    rule: Rule
    message: str
    triggered_at: float = field(default=0.0)

    @property
    def channels(self) -> list[str]:
        return list(self.rule.action.channels or ["IN_APP"])

    @property
    def priority(self) -> int:
        if self.rule.action.priority is not None:
            return self.rule.action.priority
        return self.rule.priority


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------

def time_of_day_for(hour: int) -> str:
    if hour < 12:
        return "morning"
    if hour < 18:
        return "afternoon"
    return "evening"


def detailed_time_of_day(hour: int) -> str:
    """Six-bucket variant used by the `time.time_of_day` sense."""
    if hour < 5:
        return "late_night"
    if hour < 8:
        return "early_morning"
    if hour < 12:
        return "morning"
    if hour < 17:
        return "afternoon"
    if hour < 21:
        return "evening"
    return "night"


def personality_traits(personality: Optional[Mapping[str, Any]]) -> dict[str, int]:
    """The five numeric traits, 0-100; missing ones default to 50."""
    personality = personality or {}
    traits = {}
    for trait in PERSONALITY_TRAITS:
        raw = as_number(personality.get(trait))
        value = _DEFAULT_TRAIT if raw is None else int(raw)
        traits[trait] = min(max(value, 0), 100)
    return traits


def build_rule_context(
    sense_data: Optional[Mapping[str, Any]] = None,
    personality: Optional[Mapping[str, Any]] = None,
    now: Optional[datetime] = None,
) -> RuleContext:
    """
    Snapshot for one evaluation cycle. The clock senses (`time.hour`,
    `time.minute`, `time.day_of_week`, `time.time_of_day`) are added unless
    the caller already supplied them.

    Wall-clock fields are read from `now` in its own offset, never the
    server's local zone. The worker passes UTC; pass an aware datetime in
    the user's zone to evaluate on their clock. Defaults to UTC now.
    """
    moment = now or datetime.now(tz=timezone.utc)
    data = dict(sense_data or {})
    day_name = _WEEKDAYS[moment.weekday()]
    data.setdefault("time.hour", moment.hour)
    data.setdefault("time.minute", moment.minute)
    data.setdefault("time.day_of_week", day_name.lower())
    data.setdefault("time.time_of_day", detailed_time_of_day(moment.hour))
    return RuleContext(
        sense_data=data,
        aura_personality=personality_traits(personality),
        time_of_day=time_of_day_for(moment.hour),
        day_of_week=day_name,
        moment=moment,
    )


def resolve_sensor_value(sensor: str, sense_data: Mapping[str, Any]) -> Any:
    """
    Reading for `sensor`: exact key first, then a dotted path into nested
    sense payloads (`weather.temperature` → sense_data["weather"]["temperature"]).
    None when absent.
    """
    if sensor in sense_data:
        return sense_data[sensor]
    value: Any = sense_data
    for part in sensor.split("."):
        if isinstance(value, Mapping) and part in value:
            value = value[part]
        else:
            return None
    return value


# ---------------------------------------------------------------------------
# Message rendering
# ---------------------------------------------------------------------------

def _format_reading(value: Any) -> str:
    if isinstance(value, dict) and "value" in value:
        value = value.get("label") or value["value"]
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_message(action: RuleAction, context: RuleContext) -> str:
    """
    The action's message with `{sensor.path}` placeholders filled from the
    context's sense data. Placeholders without a reading are left verbatim.
    """
    if not action.message:
        return action.default_message or FALLBACK_MESSAGE

    def _sub(match: re.Match) -> str:
        value = resolve_sensor_value(match.group(1).strip(), context.sense_data)
        return match.group(0) if value is None else _format_reading(value)

    return _PLACEHOLDER.sub(_sub, action.message)


# ---------------------------------------------------------------------------
# Condition evaluation
# ---------------------------------------------------------------------------

def _simple_met(trigger: SimpleTrigger, context: RuleContext, catalog: SensorCatalog) -> bool:
    meta = catalog.get_sensor_config(trigger.sensor)
    if meta is None:
        logger.debug(
            "Unknown sensor %r, rule cannot fire", trigger.sensor, extra={"sensor": trigger.sensor},
        )
        return False
    actual = resolve_sensor_value(trigger.sensor, context.sense_data)
    if actual is None:
        return False
    return evaluate_comparison(
        meta.type, trigger.operator, trigger.value, actual, meta.allowed_operators,
    )


def _threshold_met(trigger: ThresholdTrigger, context: RuleContext, catalog: SensorCatalog) -> bool:
    meta = catalog.get_sensor_config(trigger.sensor)
    if meta is None or meta.type not in (SensorType.numeric, SensorType.duration):
        return False
    reading = as_number(resolve_sensor_value(trigger.sensor, context.sense_data))
    if reading is None:
        return False
    for band in trigger.thresholds:
        if band.min is not None and reading < band.min:
            continue
        if band.max is not None and reading > band.max:
            continue
        return True
    return False


def _time_met(trigger: TimeTrigger, context: RuleContext) -> bool:
    moment = context.moment
    if trigger.time_range:
        start, end = trigger.time_range
        if moment.hour < start or moment.hour > end:
            return False
    if trigger.days_of_week:
        # 0 = Sunday
        if (moment.weekday() + 1) % 7 not in trigger.days_of_week:
            return False
    return True


def condition_met(trigger: Trigger, context: RuleContext, catalog: SensorCatalog = DEFAULT_CATALOG) -> bool:
    """Raises ComparisonError for malformed thresholds."""
    if isinstance(trigger, SimpleTrigger):
        return _simple_met(trigger, context, catalog)
    if isinstance(trigger, CompoundTrigger):
        outcomes = (condition_met(c, context, catalog) for c in trigger.conditions)
        return all(outcomes) if trigger.logic == "AND" else any(outcomes)
    if isinstance(trigger, TimeTrigger):
        return _time_met(trigger, context)
    if isinstance(trigger, ThresholdTrigger):
        return _threshold_met(trigger, context, catalog)
    return False


# ---------------------------------------------------------------------------
# Throttling
# ---------------------------------------------------------------------------

def _allowed_by_rate_limit(
    rule: Rule,
    history: TriggerHistory,
    now: float,
    default_cooldown: int,
    enforcement: FrequencyEnforcement,
) -> bool:
    window = frequency_window(rule.trigger) if enforcement == FrequencyEnforcement.sliding_window else None
    if window is not None:
        return history.can_trigger_in_window(
            rule.id, now, window.limit, window.period_seconds, window.minimum_gap,
        )
    return history.can_trigger(rule.id, now, effective_cooldown(rule.trigger, default_cooldown))


# ---------------------------------------------------------------------------
# Public - main entry point
# ---------------------------------------------------------------------------

def evaluate_rules(
    rules: Sequence[Rule],
    context: RuleContext,
    history: TriggerHistory,
    now: Optional[float] = None,
    *,
    catalog: SensorCatalog = DEFAULT_CATALOG,
    default_cooldown: int = DEFAULT_COOLDOWN_SECONDS,
    frequency_enforcement: FrequencyEnforcement = FrequencyEnforcement.uniform,
) -> list[TriggerResult]:
    """
    Evaluate `rules` against `context`, record new triggers in `history`
    and return them in input order. `now` (epoch seconds) defaults to the
    context's moment.
    """
    if rules is None:
        raise TypeError("rules must be a sequence of Rule, not None")
    if now is None:
        now = context.moment.timestamp()
    enforcement = FrequencyEnforcement(frequency_enforcement)

    results: list[TriggerResult] = []
    fired: set = set()

    for rule in tuple(rules):
        if not rule.enabled or rule.id in fired:
            continue
        if not _allowed_by_rate_limit(rule, history, now, default_cooldown, enforcement):
            continue

        try:
            if not condition_met(rule.trigger, context, catalog):
                continue
        except ComparisonError as exc:
            logger.warning(
                "Rule %s (%s) skipped: %s", rule.id, rule.name, exc,
                extra={"aura_id": rule.aura_id, "rule_id": rule.id},
            )
            continue

        message = render_message(rule.action, context)
        window = frequency_window(rule.trigger) if enforcement == FrequencyEnforcement.sliding_window else None
        history.record_trigger(rule.id, now, window.period_seconds if window else None)
        fired.add(rule.id)
        results.append(TriggerResult(rule=rule, message=message, triggered_at=now))

    return results
