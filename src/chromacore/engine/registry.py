"""
Universe Registry: owns universe lifecycles and the per-universe components.

The registry is the single owner of every universe record. Fixtures,
scenes, effects and frame encoding are reached through it so that all
mutation paths stay in one place.
"""

from __future__ import annotations

import itertools
import threading
from typing import Any, List, Mapping, Optional

import structlog

from chromacore.core.config import Settings
from chromacore.core.events import EventBus, EventKind
from chromacore.core.exceptions import UniverseNotFoundError
from chromacore.core.state import ConnectionStatus, Universe, UniverseStatus
from chromacore.dmx.channel_store import ChannelStore
from chromacore.dmx.frame import FrameEncoder
from chromacore.engine.adapters import AdapterCatalog, AdapterDescriptor
from chromacore.engine.effects import EffectEngine
from chromacore.engine.fixtures import FixtureMap
from chromacore.engine.scenes import SceneStore

logger = structlog.get_logger()


class UniverseRegistry:
    """
    Lighting-control engine entry point.

    Usage::

        with UniverseRegistry() as registry:
            universe = registry.connect("main", "enttec-1")
            universe.set_channel(1, 255)
            registry.effects.start_fade("main", [1], 0, duration_s=2.0)
            frame = registry.encode("main")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        events: Optional[EventBus] = None,
    ):
        self.settings = settings or Settings()
        self.events = events or EventBus(enabled=self.settings.events.enabled)

        self._lock = threading.RLock()
        self._universes: dict[str, Universe] = {}
        self._numbers = itertools.count()

        self.adapters = AdapterCatalog(self.settings.adapters, events=self.events)
        self.fixtures = FixtureMap(self, events=self.events)
        self.scenes = SceneStore(self, events=self.events)
        self.effects = EffectEngine(self, config=self.settings.effects, events=self.events)
        self.frames = FrameEncoder(self)

    @property
    def lock(self) -> threading.RLock:
        """Held while universe records change; hold it to act on one atomically."""
        return self._lock

    def __enter__(self) -> "UniverseRegistry":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def connect(self, universe_id: str, adapter_id: str) -> Universe:
        """
        Connect a universe through an adapter and return its handle.

        Reconnecting an existing id replaces the old record: its effects are
        stopped and its store is closed so stale handles cannot write.
        """
        self.adapters.require(adapter_id)

        with self._lock:
            previous = self._universes.get(universe_id)
            if previous is not None:
                self._retire(previous, reason="universe reconnected")
            universe = Universe(
                id=universe_id,
                adapter_id=adapter_id,
                number=next(self._numbers),
                store=ChannelStore(universe_id, events=self.events),
            )
            self._universes[universe_id] = universe

        logger.info(
            "Universe connected",
            universe=universe_id,
            adapter=adapter_id,
            replaced=previous is not None,
        )
        self.events.publish(
            EventKind.UNIVERSE_CONNECTED,
            universe_id=universe_id,
            adapter_id=adapter_id,
            number=universe.number,
        )
        return universe

    def disconnect(self, universe_id: str) -> None:
        """Stop the universe's effects and mark it DISCONNECTED."""
        with self._lock:
            universe = self._universes.get(universe_id)
            if universe is None:
                raise UniverseNotFoundError(universe_id)
            if not universe.connected:
                return
            self._retire(universe, reason="universe disconnected")

        logger.info("Universe disconnected", universe=universe_id)
        self.events.publish(EventKind.UNIVERSE_DISCONNECTED, universe_id=universe_id)

    def shutdown(self) -> None:
        """Stop every effect and the notification bus."""
        self.effects.stop_all(reason="registry shutdown")
        self.effects.join(timeout=1.0)
        self.events.close(timeout=self.settings.events.flush_timeout_s)
        logger.info("Registry shut down")

    def _retire(self, universe: Universe, reason: str) -> None:
        # Caller holds self._lock
        self.effects.stop_all(universe.id, reason=reason)
        universe.store.close()
        universe.status = ConnectionStatus.DISCONNECTED

    # -------------------------------------------------------------------------
    # Lookup / status
    # -------------------------------------------------------------------------

    def universe(self, universe_id: str, require_connected: bool = True) -> Universe:
        """
        Return the handle for ``universe_id``.

        Write paths require a connected universe; read paths (status,
        snapshots, frames, scene capture) also accept a disconnected one.
        """
        with self._lock:
            universe = self._universes.get(universe_id)
        if universe is None:
            raise UniverseNotFoundError(universe_id)
        if require_connected and not universe.connected:
            raise UniverseNotFoundError(universe_id, "universe is disconnected")
        return universe

    def status(self, universe_id: str) -> UniverseStatus:
        universe = self.universe(universe_id, require_connected=False)
        return UniverseStatus(
            id=universe.id,
            adapter_id=universe.adapter_id,
            number=universe.number,
            status=universe.status.value,
            channels=universe.store.snapshot(),
            last_update=universe.last_update,
            created_at=universe.created_at,
            fixture_count=self.fixtures.count(universe_id),
            active_effect_count=self.effects.count_active(universe_id),
        )

    def list_all(self) -> List[UniverseStatus]:
        with self._lock:
            ids = [u.id for u in sorted(self._universes.values(), key=lambda u: u.number)]
        return [self.status(universe_id) for universe_id in ids]

    def list_adapters(self) -> List[AdapterDescriptor]:
        return self.adapters.list()

    def discover_adapters(self) -> List[AdapterDescriptor]:
        return self.adapters.discover()

    # -------------------------------------------------------------------------
    # Channel pass-throughs
    # -------------------------------------------------------------------------

    def set_channel(self, universe_id: str, channel: int, value: int) -> None:
        self.universe(universe_id).set_channel(channel, value)

    def set_channels(self, universe_id: str, channels: Mapping[Any, Any]) -> int:
        return self.universe(universe_id).set_channels(channels)

    def snapshot(self, universe_id: str) -> list[int]:
        return self.universe(universe_id, require_connected=False).snapshot()

    def encode(self, universe_id: str) -> bytes:
        return self.frames.encode(universe_id)
