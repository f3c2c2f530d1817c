"""
Narrow interfaces to the collaborators around the rule engine.

SenseDataProvider       get_sense_data(sense_ids) → list[SenseReading]
NotificationDispatcher  dispatch(payload)

The real implementations (third-party health/weather APIs, push/SMS
fan-out) live outside this service. The in-memory versions below back the
HTTP API and the tests.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass
class SenseReading:
    sense_id: str
    data: Any


@dataclass
class NotificationPayload:
    aura_id: Hashable
    rule_id: Hashable
    message: str
    priority: int = 0
    channels: list[str] = field(default_factory=lambda: ["IN_APP"])
    context: dict[str, Any] = field(default_factory=dict)


class SenseDataProvider(Protocol):
    def get_sense_data(self, sense_ids: list[str]) -> list[SenseReading]: ...


class NotificationDispatcher(Protocol):
    def dispatch(self, payload: NotificationPayload) -> None: ...


def readings_to_sense_data(readings: Iterable[SenseReading]) -> dict[str, Any]:
    """[{sense_id, data}, ...] → {sense_id: data} as the rule context expects."""
    return {r.sense_id: r.data for r in readings}


class StaticSenseDataProvider:
    """Latest reading per sense id, pushed in by the caller."""

    def __init__(self, readings: Optional[dict[str, Any]] = None):
        self._readings: dict[str, Any] = dict(readings or {})
        self._lock = threading.Lock()

    def update(self, sense_id: str, data: Any) -> None:
        with self._lock:
            self._readings[sense_id] = data

    def clear(self) -> None:
        with self._lock:
            self._readings.clear()

    def get_sense_data(self, sense_ids: list[str]) -> list[SenseReading]:
        with self._lock:
            return [
                SenseReading(sense_id=sid, data=self._readings[sid])
                for sid in sense_ids
                if sid in self._readings
            ]


class LoggingNotificationDispatcher:
    """Logs each notification and keeps the most recent ones in memory."""

    def __init__(self, keep: int = 100):
        self.keep = keep
        self.sent: list[NotificationPayload] = []
        self._lock = threading.Lock()

    def dispatch(self, payload: NotificationPayload) -> None:
        logger.info(
            "Notify aura=%s rule=%s channels=%s: %s",
            payload.aura_id, payload.rule_id, ",".join(payload.channels), payload.message,
        )
        with self._lock:
            self.sent.append(payload)
            if len(self.sent) > self.keep:
                del self.sent[:len(self.sent) - self.keep]
