"""
Rule store: Aura and BehaviorRule persistence.

Public API
----------
create_aura / get_aura / list_auras / delete_aura
list_rules / get_rule / create_rule / update_rule / set_rule_enabled / delete_rule
validate_trigger(trigger, catalog)   → raises on unknown sensors / operators
load_rules(db, aura_id)              → list[Rule] (engine snapshots)

Triggers are validated here, at the creation boundary, against the sensor
catalog. Editing a rule's trigger, or re-enabling it, clears its trigger
log so an old cooldown cannot block the edited rule.

Every change publishes `rules:<aura_id>` on the InvalidationBus (if one is
given) so cached rule lists are dropped. All functions commit.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from aura.core.errors import (
    AuraNotFoundError,
    InvalidRuleError,
    RuleNotFoundError,
    UnknownSensorError,
    UnsupportedOperatorError,
)
from aura.models.aura import Aura
from aura.models.behavior_rule import BehaviorRule
from aura.schemas.rule import (
    CompoundTrigger,
    RuleAction,
    RuleCreate,
    RuleUpdate,
    SimpleTrigger,
    ThresholdTrigger,
    TimeTrigger,
    Trigger,
    dump_action,
    dump_trigger,
    parse_trigger,
)
from aura.services.cache import InvalidationBus
from aura.services.comparator import ComparisonError, as_bool, as_number
from aura.services.rule_engine import Rule
from aura.services.sensor_catalog import DEFAULT_CATALOG, SensorCatalog, SensorType
from aura.services.trigger_log import clear_rule_history

logger = logging.getLogger(__name__)

RULES_TOPIC = "rules"


def _publish(bus: Optional[InvalidationBus], aura_id: int) -> None:
    if bus is not None:
        bus.publish(RULES_TOPIC, aura_id)


def _loads(raw: Optional[str], default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except (ValueError, TypeError):
        return default


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def _validate_simple(trigger: SimpleTrigger, catalog: SensorCatalog) -> None:
    meta = catalog.get_sensor_config(trigger.sensor)
    if meta is None:
        raise UnknownSensorError(trigger.sensor)
    allowed = list(meta.allowed_operators)
    if trigger.operator not in allowed:
        raise UnsupportedOperatorError(trigger.sensor, trigger.operator, allowed)

    value = trigger.value
    if trigger.operator == "between":
        if (
            not isinstance(value, (list, tuple))
            or len(value) != 2
            or as_number(value[0]) is None
            or as_number(value[1]) is None
        ):
            raise InvalidRuleError(
                "between expects a [min, max] pair of numbers.",
                details={"sensor": trigger.sensor, "value": value},
            )
    elif meta.type in (SensorType.numeric, SensorType.duration):
        if as_number(value) is None:
            raise InvalidRuleError(
                f"Sensor '{trigger.sensor}' compares numbers.",
                details={"sensor": trigger.sensor, "value": value},
            )
    elif meta.type == SensorType.boolean:
        try:
            as_bool(value)
        except ComparisonError:
            raise InvalidRuleError(
                f"Sensor '{trigger.sensor}' compares true/false.",
                details={"sensor": trigger.sensor, "value": value},
            ) from None
    elif meta.type == SensorType.enum:
        allowed_values = [e.value for e in meta.enum_values]
        if allowed_values and value not in allowed_values:
            raise InvalidRuleError(
                f"'{value}' is not a value of sensor '{trigger.sensor}'.",
                details={"sensor": trigger.sensor, "allowed": allowed_values},
            )
    elif not isinstance(value, str) or not value:
        raise InvalidRuleError(
            "contains expects a non-empty string.",
            details={"sensor": trigger.sensor},
        )


def validate_trigger(trigger: Trigger, catalog: SensorCatalog = DEFAULT_CATALOG) -> None:
    if isinstance(trigger, SimpleTrigger):
        _validate_simple(trigger, catalog)
    elif isinstance(trigger, ThresholdTrigger):
        meta = catalog.get_sensor_config(trigger.sensor)
        if meta is None:
            raise UnknownSensorError(trigger.sensor)
        if meta.type not in (SensorType.numeric, SensorType.duration):
            raise InvalidRuleError(
                "Threshold triggers need a numeric sensor.",
                details={"sensor": trigger.sensor},
            )
    elif isinstance(trigger, TimeTrigger):
        if trigger.time_range and not all(0 <= h <= 23 for h in trigger.time_range):
            raise InvalidRuleError("time_range hours must be 0-23.")
        if trigger.days_of_week and not all(0 <= d <= 6 for d in trigger.days_of_week):
            raise InvalidRuleError("days_of_week must be 0 (Sunday) to 6 (Saturday).")
    elif isinstance(trigger, CompoundTrigger):
        for condition in trigger.conditions:
            validate_trigger(condition, catalog)


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------

def to_rule(row: BehaviorRule) -> Optional[Rule]:
    """Engine snapshot of a stored rule; None (logged) if the JSON is unusable."""
    try:
        trigger = parse_trigger(_loads(row.trigger, {}))
        action = RuleAction.model_validate(_loads(row.action, {}))
    except ValidationError as exc:
        logger.warning("Rule %s has an invalid trigger/action, skipping: %s", row.id, exc)
        return None
    return Rule(
        id=row.id,
        aura_id=row.aura_id,
        name=row.name,
        trigger=trigger,
        action=action,
        priority=row.priority,
        enabled=row.enabled,
    )


def load_rules(db: Session, aura_id: int) -> list[Rule]:
    rows = (
        db.query(BehaviorRule)
        .filter(BehaviorRule.aura_id == aura_id)
        .order_by(BehaviorRule.id)
        .all()
    )
    return [rule for rule in (to_rule(r) for r in rows) if rule is not None]


def rule_trigger(row: BehaviorRule) -> dict[str, Any]:
    return _loads(row.trigger, {})


def rule_action(row: BehaviorRule) -> dict[str, Any]:
    return _loads(row.action, {})


def aura_personality(aura: Aura) -> dict[str, Any]:
    return _loads(aura.personality, {})


def aura_senses(aura: Aura) -> list[str]:
    return _loads(aura.senses, [])


# ---------------------------------------------------------------------------
# Auras
# ---------------------------------------------------------------------------

def create_aura(
    db: Session,
    name: str,
    personality: Optional[dict[str, Any]] = None,
    senses: Optional[list[str]] = None,
    enabled: bool = True,
    proactive_enabled: bool = True,
) -> Aura:
    aura = Aura(
        name=name,
        personality=json.dumps(personality or {}),
        senses=json.dumps(senses or []),
        enabled=enabled,
        proactive_enabled=proactive_enabled,
    )
    db.add(aura)
    db.commit()
    db.refresh(aura)
    return aura


def get_aura(db: Session, aura_id: int) -> Aura:
    aura = db.get(Aura, aura_id)
    if aura is None:
        raise AuraNotFoundError(aura_id)
    return aura


def list_auras(db: Session) -> list[Aura]:
    return db.query(Aura).order_by(Aura.id).all()


def delete_aura(db: Session, aura_id: int, bus: Optional[InvalidationBus] = None) -> None:
    """Delete an Aura; its rules and trigger log go with it."""
    aura = get_aura(db, aura_id)
    db.delete(aura)
    db.commit()
    _publish(bus, aura_id)


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def list_rules(db: Session, aura_id: int) -> list[BehaviorRule]:
    get_aura(db, aura_id)
    return (
        db.query(BehaviorRule)
        .filter(BehaviorRule.aura_id == aura_id)
        .order_by(BehaviorRule.priority.desc(), BehaviorRule.id)
        .all()
    )


def get_rule(db: Session, rule_id: int) -> BehaviorRule:
    rule = db.get(BehaviorRule, rule_id)
    if rule is None:
        raise RuleNotFoundError(rule_id)
    return rule


def create_rule(
    db: Session,
    aura_id: int,
    payload: RuleCreate,
    catalog: SensorCatalog = DEFAULT_CATALOG,
    bus: Optional[InvalidationBus] = None,
) -> BehaviorRule:
    get_aura(db, aura_id)
    validate_trigger(payload.trigger, catalog)
    rule = BehaviorRule(
        aura_id=aura_id,
        name=payload.name,
        trigger=json.dumps(dump_trigger(payload.trigger)),
        action=json.dumps(dump_action(payload.action)),
        priority=payload.priority,
        enabled=payload.enabled,
    )
    db.add(rule)
    db.commit()
    db.refresh(rule)
    _publish(bus, aura_id)
    return rule


def update_rule(
    db: Session,
    rule_id: int,
    payload: RuleUpdate,
    catalog: SensorCatalog = DEFAULT_CATALOG,
    bus: Optional[InvalidationBus] = None,
) -> BehaviorRule:
    rule = get_rule(db, rule_id)
    reset = False

    if payload.trigger is not None:
        validate_trigger(payload.trigger, catalog)
        new_trigger = json.dumps(dump_trigger(payload.trigger))
        reset = new_trigger != rule.trigger
        rule.trigger = new_trigger
    if payload.action is not None:
        rule.action = json.dumps(dump_action(payload.action))
    if payload.name is not None:
        rule.name = payload.name
    if payload.priority is not None:
        rule.priority = payload.priority
    if payload.enabled is not None:
        reset = reset or (payload.enabled and not rule.enabled)
        rule.enabled = payload.enabled

    if reset:
        clear_rule_history(db, rule.id)
    db.commit()
    db.refresh(rule)
    _publish(bus, rule.aura_id)
    return rule


def set_rule_enabled(
    db: Session,
    rule_id: int,
    enabled: bool,
    bus: Optional[InvalidationBus] = None,
) -> BehaviorRule:
    return update_rule(db, rule_id, RuleUpdate(enabled=enabled), bus=bus)


def delete_rule(db: Session, rule_id: int, bus: Optional[InvalidationBus] = None) -> None:
    rule = get_rule(db, rule_id)
    aura_id = rule.aura_id
    db.delete(rule)
    db.commit()
    _publish(bus, aura_id)
