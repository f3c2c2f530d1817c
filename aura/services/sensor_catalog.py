"""
Static sensor metadata catalog.

The comparator needs to know a sensor's value type (and which operators
make sense for it) before comparing a reading against a rule threshold.
Rules that reference a sensor missing from the catalog never fire.

The catalog is injectable: anything with `get_sensor_config(sensor_id)`
satisfies `SensorCatalog`. `DEFAULT_CATALOG` carries the built-in senses.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Mapping, Optional, Protocol


class SensorType(str, enum.Enum):
    numeric = "numeric"
    duration = "duration"
    enum = "enum"
    boolean = "boolean"
    text = "text"


NUMERIC_OPERATORS = ("==", "!=", "<", "<=", ">", ">=", "between")

# Operators the comparator implements, per value type.
TYPE_OPERATORS: dict[SensorType, tuple[str, ...]] = {
    SensorType.numeric: NUMERIC_OPERATORS,
    SensorType.duration: NUMERIC_OPERATORS,
    SensorType.enum: ("==", "!="),
    SensorType.boolean: ("==",),
    SensorType.text: ("contains",),
}


@dataclass(frozen=True)
class EnumValue:
    value: str
    label: str


@dataclass(frozen=True)
class SensorMetadata:
    id: str
    name: str
    type: SensorType
    unit: Optional[str] = None
    range: Optional[tuple[float, float]] = None
    enum_values: tuple[EnumValue, ...] = field(default_factory=tuple)
    category: str = "digital"
    operators: Optional[tuple[str, ...]] = None

    @property
    def allowed_operators(self) -> tuple[str, ...]:
        """Operators valid for this sensor: its own list narrowed to the type's."""
        supported = TYPE_OPERATORS[self.type]
        if self.operators is None:
            return supported
        return tuple(op for op in self.operators if op in supported)


class SensorCatalog(Protocol):
    def get_sensor_config(self, sensor_id: str) -> Optional[SensorMetadata]: ...


class StaticSensorCatalog:
    """Catalog backed by a plain mapping of sensor id → metadata."""

    def __init__(self, configs: Mapping[str, SensorMetadata] | list[SensorMetadata]):
        if isinstance(configs, Mapping):
            self._configs = dict(configs)
        else:
            self._configs = {c.id: c for c in configs}

    def get_sensor_config(self, sensor_id: str) -> Optional[SensorMetadata]:
        return self._configs.get(sensor_id)

    def all(self) -> list[SensorMetadata]:
        return list(self._configs.values())

    def __contains__(self, sensor_id: object) -> bool:
        return sensor_id in self._configs

    def __len__(self) -> int:
        return len(self._configs)


def _enum(*pairs: tuple[str, str]) -> tuple[EnumValue, ...]:
    return tuple(EnumValue(value=v, label=label) for v, label in pairs)


def _numeric(sensor_id, name, unit, lo, hi, category, *, duration=False, operators=None):
    return SensorMetadata(
        id=sensor_id,
        name=name,
        type=SensorType.duration if duration else SensorType.numeric,
        unit=unit,
        range=(lo, hi),
        category=category,
        operators=operators,
    )


SENSOR_CONFIGS: list[SensorMetadata] = [
    # Environmental
    _numeric("weather.temperature", "Temperature", "°C", -50, 50, "environmental"),
    SensorMetadata(
        id="weather.conditions",
        name="Weather Conditions",
        type=SensorType.enum,
        enum_values=_enum(
            ("sunny", "Sunny"), ("cloudy", "Cloudy"), ("rainy", "Rainy"),
            ("stormy", "Stormy"), ("snowy", "Snowy"), ("foggy", "Foggy"),
        ),
        category="environmental",
    ),
    _numeric("weather.humidity", "Humidity", "%", 0, 100, "environmental"),
    _numeric("weather.pressure", "Air Pressure", "hPa", 900, 1100, "environmental"),
    _numeric("air_quality.aqi", "Air Quality Index", "AQI", 0, 500, "environmental"),
    _numeric("air_quality.pm25", "PM2.5", "μg/m³", 0, 500, "environmental"),
    _numeric("soil_moisture.value", "Soil Moisture", "%", 0, 100, "environmental"),
    SensorMetadata(
        id="light.is_on",
        name="Light On",
        type=SensorType.boolean,
        category="environmental",
    ),

    # Personal
    _numeric("sleep.duration", "Sleep Duration", "hours", 0, 24, "personal", duration=True),
    SensorMetadata(
        id="sleep.quality",
        name="Sleep Quality",
        type=SensorType.enum,
        enum_values=_enum(
            ("poor", "Poor"), ("fair", "Fair"), ("good", "Good"), ("excellent", "Excellent"),
        ),
        category="personal",
    ),
    SensorMetadata(
        id="sleep.stage",
        name="Sleep Stage",
        type=SensorType.enum,
        enum_values=_enum(
            ("awake", "Awake"), ("light", "Light Sleep"), ("deep", "Deep Sleep"), ("rem", "REM Sleep"),
        ),
        category="personal",
    ),
    _numeric("fitness.heartRate", "Heart Rate", "bpm", 40, 200, "biological"),
    _numeric(
        "fitness.steps", "Steps", "steps", 0, 50000, "biological",
        operators=("<", "<=", ">", ">=", "==", "!="),
    ),
    _numeric("fitness.calories", "Calories Burned", "cal", 0, 10000, "biological"),
    _numeric("fitness.distance", "Distance", "km", 0, 100, "biological"),
    SensorMetadata(
        id="fitness.activity",
        name="Activity",
        type=SensorType.enum,
        enum_values=_enum(
            ("sedentary", "Sedentary"), ("walking", "Walking"), ("running", "Running"),
            ("cycling", "Cycling"), ("workout", "Workout"),
        ),
        category="biological",
    ),

    # Digital
    _numeric(
        "calendar.timeUntilNext", "Time Until Next Event", "minutes", 0, 1440, "digital",
        duration=True, operators=("<", "<=", ">", ">=", "between"),
    ),
    SensorMetadata(
        id="calendar.nextEvent",
        name="Next Event Type",
        type=SensorType.enum,
        enum_values=_enum(
            ("meeting", "Meeting"), ("appointment", "Appointment"), ("workout", "Workout"),
            ("social", "Social"), ("travel", "Travel"),
        ),
        category="digital",
    ),
    SensorMetadata(
        id="calendar.busy",
        name="Currently Busy",
        type=SensorType.boolean,
        category="digital",
    ),
    SensorMetadata(id="news", name="News Headlines", type=SensorType.text, category="digital"),
    SensorMetadata(id="location.city", name="City", type=SensorType.text, category="personal"),
    SensorMetadata(
        id="location.place",
        name="Place",
        type=SensorType.enum,
        enum_values=_enum(
            ("home", "Home"), ("work", "Work"), ("gym", "Gym"), ("outdoors", "Outdoors"),
            ("traveling", "Traveling"),
        ),
        category="personal",
    ),

    # Clock senses, injected into every rule context
    _numeric("time.hour", "Current Hour", "hour (24h format)", 0, 23, "digital"),
    _numeric("time.minute", "Current Minute", "minute", 0, 59, "digital"),
    SensorMetadata(
        id="time.day_of_week",
        name="Day of Week",
        type=SensorType.enum,
        enum_values=_enum(
            ("monday", "Monday"), ("tuesday", "Tuesday"), ("wednesday", "Wednesday"),
            ("thursday", "Thursday"), ("friday", "Friday"), ("saturday", "Saturday"),
            ("sunday", "Sunday"),
        ),
        category="digital",
    ),
    SensorMetadata(
        id="time.time_of_day",
        name="Time of Day",
        type=SensorType.enum,
        enum_values=_enum(
            ("early_morning", "Early Morning (5-8 AM)"),
            ("morning", "Morning (8-12 PM)"),
            ("afternoon", "Afternoon (12-5 PM)"),
            ("evening", "Evening (5-9 PM)"),
            ("night", "Night (9 PM-12 AM)"),
            ("late_night", "Late Night (12-5 AM)"),
        ),
        category="digital",
    ),
]

DEFAULT_CATALOG = StaticSensorCatalog(SENSOR_CONFIGS)


def get_sensor_config(sensor_id: str) -> Optional[SensorMetadata]:
    """Lookup in the built-in catalog."""
    return DEFAULT_CATALOG.get_sensor_config(sensor_id)
