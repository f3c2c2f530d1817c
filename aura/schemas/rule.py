"""
Behavior rule schemas.

Triggers are a closed sum type discriminated on `type`:

  simple     - sensor / operator / value
  compound   - AND / OR over nested triggers
  time       - hour range and weekdays
  threshold  - sensor reading inside any of several bands

Every trigger kind carries the same rate-limit fields (cooldown or
frequency limit). Keys are snake_case; the camelCase names used by the
rule builder (`frequencyLimit`, `minimumGap`, ...) are accepted as aliases
and are what gets stored.

POST /auras/{id}/rules          → RuleCreate        → RuleResponse
PUT  /rules/{id}                → RuleUpdate        → RuleResponse
POST /auras/{id}/rules/evaluate → EvaluateRequest   → EvaluateResponse
POST /rules/preview             → PreviewRequest    → PreviewResponse
"""
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

Operator = Literal["==", "!=", "<", "<=", ">", ">=", "between", "contains"]
FrequencyPeriod = Literal["hour", "day", "week", "month"]
ActionType = Literal[
    "notify", "alert", "respond", "log", "webhook", "prompt", "prompt_respond",
]


# ---------------------------------------------------------------------------
# Trigger kinds
# ---------------------------------------------------------------------------

class _TriggerBase(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    cooldown: Optional[int] = Field(
        default=None,
        description="Minimum seconds between firings (simple mode).",
    )
    # Not range-checked: the cooldown policy clamps zero/negative limits to 1.
    frequency_limit: Optional[int] = Field(default=None, alias="frequencyLimit")
    frequency_period: Optional[FrequencyPeriod] = Field(
        default=None, alias="frequencyPeriod",
    )
    minimum_gap: Optional[int] = Field(default=None, alias="minimumGap")


class SimpleTrigger(_TriggerBase):
    type: Literal["simple"] = "simple"
    sensor: str = Field(min_length=1, examples=["weather.temperature"])
    operator: Operator
    value: Any = Field(
        default=None,
        description='Threshold. `between` takes a `[min, max]` pair.',
        examples=[30, [18, 24], "sunny", True],
    )


class CompoundTrigger(_TriggerBase):
    type: Literal["compound"] = "compound"
    logic: Literal["AND", "OR"] = "AND"
    conditions: list["Trigger"] = Field(min_length=1)


class TimeTrigger(_TriggerBase):
    type: Literal["time"] = "time"
    time_range: Optional[tuple[int, int]] = Field(
        default=None,
        alias="timeRange",
        description="Inclusive [start_hour, end_hour], 0-23.",
    )
    days_of_week: Optional[list[int]] = Field(
        default=None,
        alias="daysOfWeek",
        description="0 = Sunday ... 6 = Saturday.",
    )


class ThresholdBand(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    label: Optional[str] = None


class ThresholdTrigger(_TriggerBase):
    type: Literal["threshold"] = "threshold"
    sensor: str = Field(min_length=1)
    thresholds: list[ThresholdBand] = Field(min_length=1)


Trigger = Annotated[
    Union[SimpleTrigger, CompoundTrigger, TimeTrigger, ThresholdTrigger],
    Field(discriminator="type"),
]

CompoundTrigger.model_rebuild()

_trigger_adapter: TypeAdapter[Trigger] = TypeAdapter(Trigger)


def _default_trigger_type(data: Any) -> Any:
    """Rules saved before trigger kinds existed have no `type`: they are simple."""
    if not isinstance(data, dict):
        return data
    if "type" not in data:
        data = {**data, "type": "simple"}
    if isinstance(data.get("conditions"), list):
        data = {**data, "conditions": [_default_trigger_type(c) for c in data["conditions"]]}
    return data


def parse_trigger(data: Any) -> Trigger:
    """Validate a stored/raw trigger dict. Raises pydantic.ValidationError."""
    return _trigger_adapter.validate_python(_default_trigger_type(data))


def dump_trigger(trigger: Trigger) -> dict[str, Any]:
    return trigger.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# Action
# ---------------------------------------------------------------------------

class RuleAction(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: ActionType = "notify"
    message: Optional[str] = Field(
        default=None,
        max_length=2_000,
        description="Template. `{sensor.path}` is replaced by the current reading.",
        examples=["It's {weather.temperature}°C out, stay hydrated!"],
    )
    default_message: Optional[str] = Field(default=None, alias="defaultMessage")
    channels: Optional[list[str]] = Field(default=None, examples=[["IN_APP"]])
    priority: Optional[int] = None
    severity: Optional[Literal["info", "warning", "critical"]] = None


def dump_action(action: RuleAction) -> dict[str, Any]:
    return action.model_dump(by_alias=True, exclude_none=True)


# ---------------------------------------------------------------------------
# CRUD schemas
# ---------------------------------------------------------------------------

class RuleCreate(BaseModel):
    name: Annotated[str, Field(min_length=1, max_length=128)]
    trigger: Trigger
    action: RuleAction
    priority: int = Field(default=0, description="Display ordering only.")
    enabled: bool = True

    @field_validator("trigger", mode="before")
    @classmethod
    def default_trigger_type(cls, v: Any) -> Any:
        return _default_trigger_type(v)

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v: Any) -> Any:
        return v.strip() if isinstance(v, str) else v


class RuleUpdate(BaseModel):
    """Partial update; omitted fields are left untouched."""
    name: Optional[Annotated[str, Field(min_length=1, max_length=128)]] = None
    trigger: Optional[Trigger] = None
    action: Optional[RuleAction] = None
    priority: Optional[int] = None
    enabled: Optional[bool] = None

    @field_validator("trigger", mode="before")
    @classmethod
    def default_trigger_type(cls, v: Any) -> Any:
        return _default_trigger_type(v)


class RuleEnabledUpdate(BaseModel):
    enabled: bool


class RuleResponse(BaseModel):
    id: int
    aura_id: int
    name: str
    trigger: dict[str, Any]
    action: dict[str, Any]
    priority: int
    enabled: bool
    effective_cooldown: int = Field(
        description="Minimum seconds between firings after cooldown/frequency policy.",
    )
    created_at: str
    updated_at: str


class RuleListResponse(BaseModel):
    total: int
    items: list[RuleResponse]


# ---------------------------------------------------------------------------
# Evaluation schemas
# ---------------------------------------------------------------------------

class TriggerResultOut(BaseModel):
    rule_id: Optional[int]
    rule_name: str
    action_type: str
    message: str
    priority: int
    channels: list[str]


class EvaluateRequest(BaseModel):
    sense_data: dict[str, Any] = Field(
        default_factory=dict,
        description="Sensor id (or sense id with nested readings) → current value.",
        examples=[{"weather": {"temperature": 31, "conditions": "sunny"}}],
    )
    now: Optional[datetime] = Field(
        default=None, description="Evaluation instant. Defaults to current UTC time.",
    )
    dry_run: bool = Field(
        default=False, description="Evaluate without recording triggers.",
    )


class EvaluateResponse(BaseModel):
    aura_id: int
    evaluated_at: str
    time_of_day: str
    day_of_week: str
    triggered: list[TriggerResultOut]


class PreviewRequest(BaseModel):
    name: str = "Preview"
    trigger: Trigger
    action: RuleAction = Field(default_factory=RuleAction)
    sense_data: dict[str, Any] = Field(default_factory=dict)
    now: Optional[datetime] = None

    @field_validator("trigger", mode="before")
    @classmethod
    def default_trigger_type(cls, v: Any) -> Any:
        return _default_trigger_type(v)


class PreviewResponse(BaseModel):
    triggered: bool
    message: Optional[str] = None
    effective_cooldown: int


class TriggerLogResponse(BaseModel):
    id: int
    rule_id: int
    aura_id: int
    triggered_at: str
    message: Optional[str]
    action_type: Optional[str]


class TriggerLogListResponse(BaseModel):
    total: int
    items: list[TriggerLogResponse]
