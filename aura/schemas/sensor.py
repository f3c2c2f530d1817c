"""
Sensor catalog schemas.

GET  /sensors            → SensorListResponse
POST /sensors/readings   → SenseReadingsRequest
"""
from typing import Any, Optional

from pydantic import BaseModel, Field


class EnumValueOut(BaseModel):
    value: str
    label: str


class SensorOut(BaseModel):
    id: str
    name: str
    type: str = Field(description='"numeric" | "duration" | "enum" | "boolean" | "text"')
    unit: Optional[str] = None
    range: Optional[dict[str, float]] = None
    enum_values: list[EnumValueOut] = Field(default_factory=list)
    category: str
    operators: list[str]


class SensorListResponse(BaseModel):
    total: int
    items: list[SensorOut]


class SenseReadingIn(BaseModel):
    sense_id: str = Field(min_length=1, examples=["weather"])
    data: Any = Field(examples=[{"temperature": 31, "conditions": "sunny"}])


class SenseReadingsRequest(BaseModel):
    readings: list[SenseReadingIn] = Field(min_length=1)


class SenseReadingsResponse(BaseModel):
    updated: list[str]
