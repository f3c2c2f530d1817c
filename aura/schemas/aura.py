"""
Aura schemas.

POST /auras → AuraCreate → AuraResponse
"""
from typing import Annotated, Optional

from pydantic import BaseModel, Field


class Personality(BaseModel):
    """Numeric traits, 0-100. Missing traits are treated as 50 during evaluation."""
    warmth: Optional[int] = Field(default=None, ge=0, le=100)
    playfulness: Optional[int] = Field(default=None, ge=0, le=100)
    verbosity: Optional[int] = Field(default=None, ge=0, le=100)
    empathy: Optional[int] = Field(default=None, ge=0, le=100)
    creativity: Optional[int] = Field(default=None, ge=0, le=100)


class AuraCreate(BaseModel):
    name: Annotated[str, Field(min_length=1, max_length=128, examples=["Sunny"])]
    personality: Personality = Field(default_factory=Personality)
    senses: list[str] = Field(
        default_factory=list,
        description="Sense ids the Aura reads, e.g. weather, fitness, sleep.",
        examples=[["weather", "fitness"]],
    )
    enabled: bool = True
    proactive_enabled: bool = True


class AuraResponse(BaseModel):
    id: int
    name: str
    personality: dict[str, int]
    senses: list[str]
    enabled: bool
    proactive_enabled: bool
    rule_count: int
    last_evaluation_at: Optional[str] = None
    created_at: str


class AuraListResponse(BaseModel):
    total: int
    items: list[AuraResponse]
