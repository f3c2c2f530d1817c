"""
Trigger history / cooldown state tracker.

Per-rule bookkeeping of when a rule last fired and the timestamps of its
recent firings. No business logic beyond that: the evaluator asks
`can_trigger` (cooldown) or `can_trigger_in_window` (sliding-window
frequency cap) and calls `record_trigger` when a rule fires.

One TriggerHistory belongs to one Aura's evaluation lane and is never
shared between Auras. Timestamps are epoch seconds.

The durable copy lives in `rule_trigger_log`; see services/trigger_log.py.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Hashable, Iterable, Optional

RuleId = Hashable

# Timestamps kept per rule when no frequency window bounds them.
_DEFAULT_KEEP = 50


@dataclass
class TriggerRecord:
    rule_id: RuleId
    last_triggered_at: Optional[float] = None
    trigger_timestamps: deque = field(default_factory=deque)

    def prune(self, now: float, window_seconds: float) -> None:
        cutoff = now - window_seconds
        while self.trigger_timestamps and self.trigger_timestamps[0] <= cutoff:
            self.trigger_timestamps.popleft()


class TriggerHistory:

    def __init__(self, aura_id: Optional[Hashable] = None, keep: int = _DEFAULT_KEEP):
        self.aura_id = aura_id
        self._keep = max(keep, 1)
        self._records: dict[RuleId, TriggerRecord] = {}

    # -- queries --------------------------------------------------------------

    def record(self, rule_id: RuleId) -> Optional[TriggerRecord]:
        return self._records.get(rule_id)

    def last_triggered_at(self, rule_id: RuleId) -> Optional[float]:
        rec = self._records.get(rule_id)
        return rec.last_triggered_at if rec else None

    def can_trigger(self, rule_id: RuleId, now: float, effective_cooldown: float) -> bool:
        """True unless the rule fired less than `effective_cooldown` seconds ago."""
        last = self.last_triggered_at(rule_id)
        if last is None:
            return True
        return now - last >= effective_cooldown

    def can_trigger_in_window(
        self,
        rule_id: RuleId,
        now: float,
        limit: int,
        period_seconds: float,
        minimum_gap: float = 0,
    ) -> bool:
        """
        Hard cap: fewer than `limit` firings in the last `period_seconds`,
        and at least `minimum_gap` seconds since the last one.
        """
        rec = self._records.get(rule_id)
        if rec is None or rec.last_triggered_at is None:
            return True
        if now - rec.last_triggered_at < minimum_gap:
            return False
        cutoff = now - period_seconds
        in_window = sum(1 for ts in rec.trigger_timestamps if ts > cutoff)
        return in_window < max(limit, 1)

    def recent(self, limit: int = 10) -> list[tuple[RuleId, float]]:
        """Newest-first (rule_id, timestamp) pairs across all rules."""
        events = [
            (rule_id, ts)
            for rule_id, rec in self._records.items()
            for ts in rec.trigger_timestamps
        ]
        events.sort(key=lambda e: e[1], reverse=True)
        return events[:limit]

    # -- mutation -------------------------------------------------------------

    def record_trigger(
        self,
        rule_id: RuleId,
        now: float,
        window_seconds: Optional[float] = None,
    ) -> TriggerRecord:
        rec = self._records.get(rule_id)
        if rec is None:
            rec = self._records[rule_id] = TriggerRecord(rule_id=rule_id)
        rec.trigger_timestamps.append(now)
        if rec.last_triggered_at is None or now > rec.last_triggered_at:
            rec.last_triggered_at = now
        if window_seconds is not None:
            rec.prune(now, window_seconds)
        else:
            while len(rec.trigger_timestamps) > self._keep:
                rec.trigger_timestamps.popleft()
        return rec

    def restore(
        self,
        rule_id: RuleId,
        last_triggered_at: Optional[float],
        timestamps: Iterable[float] = (),
    ) -> TriggerRecord:
        """Load persisted state for one rule (replaces whatever was there)."""
        rec = TriggerRecord(
            rule_id=rule_id,
            last_triggered_at=last_triggered_at,
            trigger_timestamps=deque(sorted(timestamps)),
        )
        if rec.trigger_timestamps and (
            rec.last_triggered_at is None or rec.trigger_timestamps[-1] > rec.last_triggered_at
        ):
            rec.last_triggered_at = rec.trigger_timestamps[-1]
        self._records[rule_id] = rec
        return rec

    def reset(self, rule_id: RuleId) -> None:
        self._records.pop(rule_id, None)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._records

    def __len__(self) -> int:
        return len(self._records)
