"""
Sensor value comparator.

Pure, type-aware comparison of a live sensor reading against a rule's
operator and threshold:

  numeric / duration : ==  !=  <  <=  >  >=  between   (between is inclusive)
  enum               : ==  !=    (string equality on the `value` field, never the label)
  boolean            : ==        (both sides coerced to bool)
  text               : contains  (case-insensitive substring)

Two entry points:

  evaluate_comparison(...) → bool, raises ComparisonError on malformed input
  compare(...)             → bool, never raises (fail closed)

A missing reading (None) is never an error, just unsatisfied.
"""
from __future__ import annotations

import math
from decimal import Decimal
from typing import Any, Iterable, Optional

from aura.services.sensor_catalog import TYPE_OPERATORS, SensorType

_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off", ""})


class ComparisonError(ValueError):
    """Rule threshold or reading cannot be compared (malformed data)."""


# ---------------------------------------------------------------------------
# Coercion helpers
# ---------------------------------------------------------------------------

def as_number(v: Any) -> Optional[float]:
    """Numeric value of `v`, or None. Booleans are not numbers here."""
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float, Decimal)):
        n = float(v)
    elif isinstance(v, str):
        try:
            n = float(v.strip())
        except ValueError:
            return None
    else:
        return None
    if math.isnan(n):
        return None
    return n


def as_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    if isinstance(v, str):
        s = v.strip().lower()
        if s in _TRUE_STRINGS:
            return True
        if s in _FALSE_STRINGS:
            return False
    raise ComparisonError(f"cannot interpret {v!r} as a boolean")


def enum_value(v: Any) -> Optional[str]:
    """`{value, label}` readings compare on `value`; bare strings as-is."""
    if isinstance(v, dict):
        v = v.get("value")
    if v is None:
        return None
    return str(v)


# ---------------------------------------------------------------------------
# Per-type comparisons
# ---------------------------------------------------------------------------

def _compare_numeric(operator: str, value: Any, actual: Any) -> bool:
    reading = as_number(actual)
    if reading is None:
        # Non-numeric reading: unsatisfied, not an error.
        return False

    if operator == "between":
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ComparisonError(f"between expects [min, max], got {value!r}")
        lo, hi = as_number(value[0]), as_number(value[1])
        if lo is None or hi is None:
            raise ComparisonError(f"between bounds must be numeric, got {value!r}")
        # min > max is an empty range
        return lo <= reading <= hi

    threshold = as_number(value)
    if threshold is None:
        raise ComparisonError(f"operator {operator!r} expects a numeric value, got {value!r}")

    if operator == "==":
        return reading == threshold
    if operator == "!=":
        return reading != threshold
    if operator == "<":
        return reading < threshold
    if operator == "<=":
        return reading <= threshold
    if operator == ">":
        return reading > threshold
    if operator == ">=":
        return reading >= threshold
    raise ComparisonError(f"unsupported numeric operator {operator!r}")


def _compare_enum(operator: str, value: Any, actual: Any) -> bool:
    expected = enum_value(value)
    if expected is None:
        raise ComparisonError("enum comparison needs a value")
    reading = enum_value(actual)
    if reading is None:
        return False
    if operator == "==":
        return reading == expected
    return reading != expected


def _compare_boolean(value: Any, actual: Any) -> bool:
    expected = as_bool(value)
    try:
        reading = as_bool(actual)
    except ComparisonError:
        return False
    return reading == expected


def _compare_text(value: Any, actual: Any) -> bool:
    if not isinstance(value, str) or not value:
        raise ComparisonError(f"contains expects a non-empty string, got {value!r}")
    needle = value.lower()
    if isinstance(actual, str):
        return needle in actual.lower()
    if isinstance(actual, (list, tuple)):
        # e.g. a list of headlines: any item may match
        return any(isinstance(item, str) and needle in item.lower() for item in actual)
    return False


# ---------------------------------------------------------------------------
# Public
# ---------------------------------------------------------------------------

def evaluate_comparison(
    sensor_type: SensorType | str,
    operator: str,
    value: Any,
    actual: Any,
    allowed_operators: Optional[Iterable[str]] = None,
) -> bool:
    """
    Compare `actual` against `operator`/`value` for a sensor of `sensor_type`.
    Raises ComparisonError when the rule side is malformed (unknown type,
    operator not valid for the type, bad threshold). A missing or
    wrongly-typed reading just returns False.
    """
    try:
        kind = SensorType(sensor_type)
    except ValueError:
        raise ComparisonError(f"unknown sensor type {sensor_type!r}") from None

    permitted = TYPE_OPERATORS[kind]
    if allowed_operators is not None:
        permitted = tuple(op for op in permitted if op in set(allowed_operators))
    if operator not in permitted:
        raise ComparisonError(
            f"operator {operator!r} not supported for {kind.value} sensors"
        )

    if actual is None:
        return False

    if kind in (SensorType.numeric, SensorType.duration):
        return _compare_numeric(operator, value, actual)
    if kind == SensorType.enum:
        return _compare_enum(operator, value, actual)
    if kind == SensorType.boolean:
        return _compare_boolean(value, actual)
    return _compare_text(value, actual)


def compare(
    sensor_type: SensorType | str,
    operator: str,
    value: Any,
    actual: Any,
    allowed_operators: Optional[Iterable[str]] = None,
) -> bool:
    """Fail-closed wrapper around evaluate_comparison: never raises."""
    try:
        return evaluate_comparison(sensor_type, operator, value, actual, allowed_operators)
    except ComparisonError:
        return False
