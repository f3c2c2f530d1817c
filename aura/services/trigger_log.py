"""
Durable trigger history backed by `rule_trigger_log`.

Public API
----------
load_history(db, aura_id, now)              → TriggerHistory for one Aura
persist_triggers(db, aura_id, results)      → list[RuleTriggerLog] (flush only)
clear_rule_history(db, rule_id)             → rows deleted (flush only)
aura_lane(db, aura_id)                      → context manager, yields the locked Aura
get_recent_triggers(db, aura_id, limit)     → (total, newest-first page)

Rows are partitioned by aura_id, so every Aura's evaluation lane gets its
own history object and never sees another Aura's state.

Read-evaluate-write of one Aura's history must not interleave with another
run for the same Aura, or both runs see no recent firing and both fire.
`aura_lane` serializes them: a per-process lock per Aura id, plus
`SELECT ... FOR UPDATE` on the Aura row for other processes (Postgres;
SQLite ignores FOR UPDATE and relies on the process lock). Both are held
until the block exits, so the caller commits inside it.
"""
from __future__ import annotations

import threading
from collections import defaultdict
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Iterator, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from aura.core.errors import AuraNotFoundError
from aura.models.aura import Aura
from aura.models.rule_trigger_log import RuleTriggerLog
from aura.services.cooldown import PERIOD_SECONDS
from aura.services.rule_engine import TriggerResult
from aura.services.trigger_history import TriggerHistory

# Longest frequency period; older timestamps never matter for a window check.
_LOOKBACK_SECONDS = PERIOD_SECONDS["month"]

_lane_locks: dict[int, threading.Lock] = defaultdict(threading.Lock)
_lane_locks_guard = threading.Lock()


def to_epoch(dt: datetime) -> float:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.timestamp()


def from_epoch(ts: float) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc)


def load_history(db: Session, aura_id: int, now: Optional[float] = None) -> TriggerHistory:
    """
    Rebuild one Aura's TriggerHistory: every rule's last firing, plus the
    firings within the longest frequency period for sliding-window checks.
    """
    history = TriggerHistory(aura_id=aura_id)

    last_rows = (
        db.query(RuleTriggerLog.rule_id, func.max(RuleTriggerLog.triggered_at))
        .filter(RuleTriggerLog.aura_id == aura_id)
        .group_by(RuleTriggerLog.rule_id)
        .all()
    )
    if not last_rows:
        return history

    q = db.query(RuleTriggerLog.rule_id, RuleTriggerLog.triggered_at).filter(
        RuleTriggerLog.aura_id == aura_id
    )
    if now is not None:
        q = q.filter(RuleTriggerLog.triggered_at >= from_epoch(now - _LOOKBACK_SECONDS))

    window: dict[int, list[float]] = defaultdict(list)
    for rule_id, triggered_at in q.all():
        window[rule_id].append(to_epoch(triggered_at))

    for rule_id, last in last_rows:
        history.restore(rule_id, to_epoch(last), window.get(rule_id, ()))
    return history


def persist_triggers(
    db: Session,
    aura_id: int,
    results: Iterable[TriggerResult],
) -> list[RuleTriggerLog]:
    """Append one log row per result. Flushes; the caller commits."""
    rows = []
    for result in results:
        row = RuleTriggerLog(
            rule_id=result.rule.id,
            aura_id=aura_id,
            triggered_at=from_epoch(result.triggered_at),
            message=result.message,
            action_type=result.rule.action.type,
        )
        db.add(row)
        rows.append(row)
    if rows:
        db.flush()
    return rows


def clear_rule_history(db: Session, rule_id: int) -> int:
    """Forget a rule's firings so an edited / re-enabled rule starts fresh."""
    deleted = (
        db.query(RuleTriggerLog)
        .filter(RuleTriggerLog.rule_id == rule_id)
        .delete(synchronize_session=False)
    )
    db.flush()
    return deleted


def get_recent_triggers(
    db: Session,
    aura_id: int,
    limit: int = 10,
    offset: int = 0,
) -> tuple[int, list[RuleTriggerLog]]:
    """Return (total, page) of an Aura's trigger log, newest first."""
    q = db.query(RuleTriggerLog).filter(RuleTriggerLog.aura_id == aura_id)
    total = q.count()
    items = (
        q.order_by(RuleTriggerLog.triggered_at.desc(), RuleTriggerLog.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return total, items


@contextmanager
def aura_lane(db: Session, aura_id: int) -> Iterator[Aura]:
    """
    Exclusive evaluation lane for one Aura. Yields the Aura row, locked.
    Commit inside the block; an exception rolls back before the lane is
    released.
    """
    with _lane_locks_guard:
        lock = _lane_locks[aura_id]
    with lock:
        aura = (
            db.query(Aura)
            .filter(Aura.id == aura_id)
            .populate_existing()
            .with_for_update()
            .one_or_none()
        )
        if aura is None:
            db.rollback()
            raise AuraNotFoundError(aura_id)
        try:
            yield aura
        except BaseException:
            db.rollback()
            raise
