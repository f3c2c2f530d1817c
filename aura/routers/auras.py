"""
Aura router.

POST   /auras           - create an Aura
GET    /auras           - list Auras
GET    /auras/{id}      - one Aura
DELETE /auras/{id}      - delete an Aura with its rules and trigger log
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from aura.core.dependencies import get_bus
from aura.db.base import get_db
from aura.models.aura import Aura
from aura.schemas.aura import AuraCreate, AuraListResponse, AuraResponse
from aura.schemas.common import NOT_FOUND
from aura.services import rules as rule_store
from aura.services.cache import InvalidationBus
from aura.services.rule_engine import personality_traits

router = APIRouter(prefix="/auras", tags=["auras"])


def aura_to_response(aura: Aura) -> AuraResponse:
    return AuraResponse(
        id=aura.id,
        name=aura.name,
        personality=personality_traits(rule_store.aura_personality(aura)),
        senses=rule_store.aura_senses(aura),
        enabled=aura.enabled,
        proactive_enabled=aura.proactive_enabled,
        rule_count=len(aura.rules),
        last_evaluation_at=aura.last_evaluation_at.isoformat() if aura.last_evaluation_at else None,
        created_at=aura.created_at.isoformat() if aura.created_at else "",
    )


@router.post(
    "",
    response_model=AuraResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an Aura",
)
def create_aura(payload: AuraCreate, db: Session = Depends(get_db)):
    aura = rule_store.create_aura(
        db,
        name=payload.name,
        personality=payload.personality.model_dump(exclude_none=True),
        senses=payload.senses,
        enabled=payload.enabled,
        proactive_enabled=payload.proactive_enabled,
    )
    return aura_to_response(aura)


@router.get("", response_model=AuraListResponse, summary="List Auras")
def list_auras(db: Session = Depends(get_db)):
    auras = rule_store.list_auras(db)
    return AuraListResponse(total=len(auras), items=[aura_to_response(a) for a in auras])


@router.get("/{aura_id}", response_model=AuraResponse, responses=NOT_FOUND, summary="Get an Aura")
def get_aura(aura_id: int, db: Session = Depends(get_db)):
    return aura_to_response(rule_store.get_aura(db, aura_id))


@router.delete(
    "/{aura_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses=NOT_FOUND,
    summary="Delete an Aura (cascades to rules and trigger log)",
)
def delete_aura(
    aura_id: int,
    db: Session = Depends(get_db),
    bus: InvalidationBus = Depends(get_bus),
):
    rule_store.delete_aura(db, aura_id, bus=bus)
