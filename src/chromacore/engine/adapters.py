"""
Adapter catalog.

Physical enumeration of DMX interfaces happens outside this package; the
catalog only holds the descriptors that ``connect`` validates against.
"""

from __future__ import annotations

import threading
from typing import Iterable, List, Optional

import structlog

from chromacore.core.config import AdapterConfig
from chromacore.core.events import EventBus, EventKind
from chromacore.core.exceptions import AdapterNotFoundError

logger = structlog.get_logger()

AdapterDescriptor = AdapterConfig


class AdapterCatalog:
    """Known adapters, keyed by id."""

    def __init__(
        self,
        descriptors: Iterable[AdapterDescriptor] = (),
        events: Optional[EventBus] = None,
    ):
        self._lock = threading.Lock()
        self._adapters: dict[str, AdapterDescriptor] = {a.id: a for a in descriptors}
        self._events = events

    def discover(
        self,
        descriptors: Optional[Iterable[AdapterDescriptor]] = None,
    ) -> List[AdapterDescriptor]:
        """
        Refresh the catalog.

        With no argument the current descriptors are re-announced; an
        external discovery layer passes its fresh list to replace them.
        """
        with self._lock:
            if descriptors is not None:
                self._adapters = {a.id: a for a in descriptors}
            adapters = list(self._adapters.values())

        logger.info("Adapters discovered", count=len(adapters))
        if self._events is not None:
            self._events.publish(
                EventKind.ADAPTERS_DISCOVERED,
                adapters=[a.model_dump() for a in adapters],
            )
        return adapters

    def list(self) -> List[AdapterDescriptor]:
        with self._lock:
            return list(self._adapters.values())

    def require(self, adapter_id: str) -> AdapterDescriptor:
        """Return the descriptor for an available adapter or raise."""
        with self._lock:
            adapter = self._adapters.get(adapter_id)
            available = [a.id for a in self._adapters.values() if a.available]
        if adapter is None or not adapter.available:
            raise AdapterNotFoundError(adapter_id, available)
        return adapter
