"""
In-process TTL cache with explicit invalidation events.

TTLCache memoizes values for `ttl_seconds`; InvalidationBus is a small
publish/subscribe channel. A cache bound to a topic drops the published
key whenever someone announces a change:

    bus = InvalidationBus()
    rules_cache = TTLCache(ttl_seconds=60).bind(bus, "rules")
    ...
    bus.publish("rules", aura_id)     # after a rule edit
"""
from __future__ import annotations

import logging
import threading
import time
from collections import OrderedDict, defaultdict
from typing import Any, Callable, Hashable, Optional

logger = logging.getLogger(__name__)

Listener = Callable[[Hashable], Any]

_MISSING = object()


class InvalidationBus:

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)
        self._lock = threading.Lock()

    def subscribe(self, topic: str, listener: Listener) -> None:
        with self._lock:
            self._listeners[topic].append(listener)

    def unsubscribe(self, topic: str, listener: Listener) -> None:
        with self._lock:
            if listener in self._listeners.get(topic, []):
                self._listeners[topic].remove(listener)

    def publish(self, topic: str, key: Hashable) -> int:
        """Notify every listener of `topic`. Returns how many were called."""
        with self._lock:
            listeners = list(self._listeners.get(topic, []))
        for listener in listeners:
            listener(key)
        logger.debug("Invalidated %s:%s (%d listeners)", topic, key, len(listeners))
        return len(listeners)


class TTLCache:

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[Hashable, tuple[float, Any]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            expires_at, value = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + self.ttl_seconds, value)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def get_or_load(self, key: Hashable, loader: Callable[[], Any]) -> Any:
        value = self.get(key, _MISSING)
        if value is _MISSING:
            value = loader()
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def bind(self, bus: InvalidationBus, topic: str) -> "TTLCache":
        bus.subscribe(topic, self.invalidate)
        return self

    def __contains__(self, key: object) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def __len__(self) -> int:
        return len(self._entries)
