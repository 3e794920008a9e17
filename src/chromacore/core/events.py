"""
Notification bus.

Producers (channel stores, the effect engine, the registry) publish events
without blocking; a single dispatcher thread delivers them to subscribers
in publish order. Delivery is advisory: consumers use it for observability,
never for consistency.
"""

from __future__ import annotations

import itertools
import queue
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Optional

import structlog

logger = structlog.get_logger()


class EventKind(Enum):
    ADAPTERS_DISCOVERED = "adapters_discovered"
    UNIVERSE_CONNECTED = "universe_connected"
    UNIVERSE_DISCONNECTED = "universe_disconnected"
    CHANNEL_CHANGED = "channel_changed"
    CHANNELS_CHANGED = "channels_changed"
    FIXTURE_DEFINED = "fixture_defined"
    FIXTURE_CONTROLLED = "fixture_controlled"
    FIXTURE_DELETED = "fixture_deleted"
    SCENE_SAVED = "scene_saved"
    SCENE_LOADED = "scene_loaded"
    SCENE_DELETED = "scene_deleted"
    EFFECT_STARTED = "effect_started"
    EFFECT_COMPLETED = "effect_completed"
    EFFECT_STOPPED = "effect_stopped"


@dataclass(frozen=True)
class Event:
    kind: EventKind
    payload: dict[str, Any]
    timestamp: float = field(default_factory=time.time)


Handler = Callable[[Event], None]


@dataclass
class _Subscription:
    handler: Handler
    kinds: Optional[frozenset[EventKind]]

    def wants(self, kind: EventKind) -> bool:
        return self.kinds is None or kind in self.kinds


class EventBus:
    """
    Outbound event queue with an explicit subscription API.

    ``publish`` only enqueues, so it never blocks the writer that produced
    the event. Handler exceptions are logged and do not stop delivery to
    the remaining subscribers.
    """

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._queue: queue.Queue = queue.Queue()
        self._subscribers: dict[int, _Subscription] = {}
        self._sub_lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()
        self._closed = False

        # Stats
        self._delivered = 0
        self._handler_errors = 0

    def subscribe(
        self,
        handler: Handler,
        kinds: Optional[Iterable[EventKind]] = None,
    ) -> int:
        """Register a handler, optionally filtered to some event kinds."""
        sub = _Subscription(handler, frozenset(kinds) if kinds is not None else None)
        with self._sub_lock:
            token = next(self._tokens)
            self._subscribers[token] = sub
        self._ensure_dispatcher()
        return token

    def unsubscribe(self, token: int) -> bool:
        with self._sub_lock:
            return self._subscribers.pop(token, None) is not None

    def publish(self, kind: EventKind, **payload: Any) -> None:
        if not self.enabled or self._closed:
            return
        with self._sub_lock:
            if not self._subscribers:
                return
        self._queue.put(Event(kind=kind, payload=payload))

    def flush(self, timeout: float = 1.0) -> bool:
        """Wait until every event queued before this call has been delivered."""
        if self._thread is None or self._closed:
            return True
        marker = threading.Event()
        self._queue.put(marker)
        return marker.wait(timeout)

    def close(self, timeout: float = 1.0) -> None:
        if self._closed:
            return
        self._closed = True
        if self._thread is not None:
            self._queue.put(None)
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.debug(
            "Event bus closed",
            delivered=self._delivered,
            handler_errors=self._handler_errors,
        )

    def get_stats(self) -> dict:
        return {
            "subscribers": len(self._subscribers),
            "pending": self._queue.qsize(),
            "delivered": self._delivered,
            "handler_errors": self._handler_errors,
        }

    def _ensure_dispatcher(self) -> None:
        with self._start_lock:
            if self._thread is not None or self._closed:
                return
            self._thread = threading.Thread(
                target=self._dispatch_loop,
                name="Chroma-Events",
                daemon=True,
            )
            self._thread.start()

    def _dispatch_loop(self) -> None:
        while True:
            item = self._queue.get()
            if item is None:
                return
            if isinstance(item, threading.Event):
                item.set()
                continue
            self._deliver(item)

    def _deliver(self, event: Event) -> None:
        with self._sub_lock:
            targets = [s for s in self._subscribers.values() if s.wants(event.kind)]

        for sub in targets:
            try:
                sub.handler(event)
                self._delivered += 1
            except Exception as e:
                self._handler_errors += 1
                logger.error(
                    "Event handler failed",
                    kind=event.kind.value,
                    error=str(e),
                )
