"""
Behavior rule router.

GET    /auras/{aura_id}/rules   - list an Aura's rules (priority desc)
POST   /auras/{aura_id}/rules   - create a rule
GET    /rules/{rule_id}         - one rule
PUT    /rules/{rule_id}         - partial update (trigger edits reset cooldowns)
PATCH  /rules/{rule_id}/enabled - toggle
DELETE /rules/{rule_id}         - delete
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from aura.core.config import settings
from aura.core.dependencies import get_bus, get_catalog
from aura.db.base import get_db
from aura.models.behavior_rule import BehaviorRule
from aura.schemas.common import INVALID_RULE, NOT_FOUND
from aura.schemas.rule import (
    RuleCreate,
    RuleEnabledUpdate,
    RuleListResponse,
    RuleResponse,
    RuleUpdate,
)
from aura.services import rules as rule_store
from aura.services.cache import InvalidationBus
from aura.services.cooldown import effective_cooldown
from aura.services.sensor_catalog import SensorCatalog

router = APIRouter(tags=["rules"])


# ---------------------------------------------------------------------------
# Serialization helper
# ---------------------------------------------------------------------------

def rule_to_response(row: BehaviorRule) -> RuleResponse:
    snapshot = rule_store.to_rule(row)
    cooldown = (
        effective_cooldown(snapshot.trigger, settings.DEFAULT_COOLDOWN_SECONDS)
        if snapshot is not None
        else settings.DEFAULT_COOLDOWN_SECONDS
    )
    return RuleResponse(
        id=row.id,
        aura_id=row.aura_id,
        name=row.name,
        trigger=rule_store.rule_trigger(row),
        action=rule_store.rule_action(row),
        priority=row.priority,
        enabled=row.enabled,
        effective_cooldown=cooldown,
        created_at=row.created_at.isoformat() if row.created_at else "",
        updated_at=row.updated_at.isoformat() if row.updated_at else "",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get(
    "/auras/{aura_id}/rules",
    response_model=RuleListResponse,
    responses=NOT_FOUND,
    summary="List an Aura's behavior rules",
)
def list_rules(aura_id: int, db: Session = Depends(get_db)):
    rows = rule_store.list_rules(db, aura_id)
    return RuleListResponse(total=len(rows), items=[rule_to_response(r) for r in rows])


@router.post(
    "/auras/{aura_id}/rules",
    response_model=RuleResponse,
    status_code=status.HTTP_201_CREATED,
    responses={**NOT_FOUND, **INVALID_RULE},
    summary="Create a behavior rule",
)
def create_rule(
    aura_id: int,
    payload: RuleCreate,
    db: Session = Depends(get_db),
    catalog: SensorCatalog = Depends(get_catalog),
    bus: InvalidationBus = Depends(get_bus),
):
    """
    The trigger is checked against the sensor catalog: unknown sensors,
    operators the sensor does not support and malformed `between` ranges
    are rejected here rather than silently never firing.
    """
    row = rule_store.create_rule(db, aura_id, payload, catalog=catalog, bus=bus)
    return rule_to_response(row)


@router.get(
    "/rules/{rule_id}",
    response_model=RuleResponse,
    responses=NOT_FOUND,
    summary="Get a behavior rule",
)
def get_rule(rule_id: int, db: Session = Depends(get_db)):
    return rule_to_response(rule_store.get_rule(db, rule_id))


@router.put(
    "/rules/{rule_id}",
    response_model=RuleResponse,
    responses={**NOT_FOUND, **INVALID_RULE},
    summary="Update a behavior rule",
)
def update_rule(
    rule_id: int,
    payload: RuleUpdate,
    db: Session = Depends(get_db),
    catalog: SensorCatalog = Depends(get_catalog),
    bus: InvalidationBus = Depends(get_bus),
):
    """Changing the trigger, or re-enabling the rule, clears its cooldown state."""
    row = rule_store.update_rule(db, rule_id, payload, catalog=catalog, bus=bus)
    return rule_to_response(row)


@router.patch(
    "/rules/{rule_id}/enabled",
    response_model=RuleResponse,
    responses=NOT_FOUND,
    summary="Enable or disable a behavior rule",
)
def toggle_rule(
    rule_id: int,
    payload: RuleEnabledUpdate,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_bus),
):
    row = rule_store.set_rule_enabled(db, rule_id, payload.enabled, bus=bus)
    return rule_to_response(row)


@router.delete(
    "/rules/{rule_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND,
    summary="Delete a behavior rule",
)
def delete_rule(
    rule_id: int,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_bus),
):
    rule_store.delete_rule(db, rule_id, bus=bus)
