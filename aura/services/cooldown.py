"""
Cooldown / frequency policy.

Turns a rule's rate-limit fields into the minimum number of seconds that
must pass between two firings of that rule.

Simple mode
    `cooldown` seconds, DEFAULT_COOLDOWN_SECONDS when unset.

Frequency mode (both `frequency_limit` and `frequency_period` set)
    effective = max(ceil(period_seconds / frequency_limit), minimum_gap)

    This spaces firings uniformly: on average a rule never exceeds
    `frequency_limit` per period, but it is not a hard cap inside an
    arbitrary rolling window. `FrequencyEnforcement.sliding_window`
    switches the evaluator to a true rolling count instead (see
    TriggerHistory.can_trigger_in_window).

Months are a fixed 30 days. The result is always a positive integer.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Any, Optional

DEFAULT_COOLDOWN_SECONDS = 300

PERIOD_SECONDS: dict[str, int] = {
    "hour": 3_600,
    "day": 86_400,
    "week": 604_800,
    "month": 2_592_000,
}


class FrequencyEnforcement(str, enum.Enum):
    uniform = "uniform"
    sliding_window = "sliding_window"


@dataclass(frozen=True)
class FrequencyWindow:
    """Hard-cap parameters for the sliding-window mode."""
    limit: int
    period_seconds: int
    minimum_gap: int


def _as_int(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool):
        return None
    try:
        return int(v)
    except (TypeError, ValueError):
        return None


def is_frequency_mode(trigger: Any) -> bool:
    return (
        _as_int(getattr(trigger, "frequency_limit", None)) is not None
        and bool(getattr(trigger, "frequency_period", None))
    )


def cooldown_from_frequency(
    frequency_limit: Optional[int],
    frequency_period: Optional[str],
    minimum_gap: Optional[int] = None,
) -> int:
    """max(period / limit, minimum_gap), limit clamped to >= 1."""
    gap = max(_as_int(minimum_gap) or 0, 0)
    period = PERIOD_SECONDS.get(frequency_period or "")
    if period is None:
        return max(gap, 1)
    limit = max(_as_int(frequency_limit) or 1, 1)
    return max(math.ceil(period / limit), gap, 1)


def effective_cooldown(trigger: Any, default_cooldown: int = DEFAULT_COOLDOWN_SECONDS) -> int:
    """Effective minimum seconds between firings for `trigger`."""
    if is_frequency_mode(trigger):
        return cooldown_from_frequency(
            trigger.frequency_limit,
            trigger.frequency_period,
            getattr(trigger, "minimum_gap", None),
        )
    cooldown = _as_int(getattr(trigger, "cooldown", None))
    if cooldown is None:
        cooldown = default_cooldown
    return max(cooldown, 1)


def frequency_window(trigger: Any) -> Optional[FrequencyWindow]:
    """Sliding-window parameters, or None when the rule is not in frequency mode."""
    if not is_frequency_mode(trigger):
        return None
    period = PERIOD_SECONDS.get(trigger.frequency_period)
    if period is None:
        return None
    return FrequencyWindow(
        limit=max(_as_int(trigger.frequency_limit) or 1, 1),
        period_seconds=period,
        minimum_gap=max(_as_int(getattr(trigger, "minimum_gap", None)) or 0, 0),
    )
