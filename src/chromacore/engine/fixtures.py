"""
Fixture Map: named channel ranges inside a universe.

A fixture owns no storage. Controlling it translates fixture-relative
values into absolute channel writes on the owning universe's store.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING, Any, List, Mapping, Optional, Sequence

import structlog

from chromacore.core.events import EventBus, EventKind
from chromacore.core.exceptions import ChannelOutOfRangeError, FixtureNotFoundError
from chromacore.core.state import Fixture
from chromacore.dmx.universe import (
    DMX_CHANNEL_MAX,
    coerce_int,
    is_valid_dmx_channel,
    is_valid_dmx_value,
)

if TYPE_CHECKING:
    from chromacore.engine.registry import UniverseRegistry

logger = structlog.get_logger()


class FixtureMap:
    """
    Fixtures keyed by a generated id, unique per ``(universe, name)``.

    Callers only ever receive copies; the map keeps the live records.
    """

    def __init__(self, registry: "UniverseRegistry", events: Optional[EventBus] = None):
        self._registry = registry
        self._events = events
        self._lock = threading.Lock()
        self._fixtures: dict[str, Fixture] = {}
        self._ids: dict[tuple[str, str], str] = {}

    def define(
        self,
        universe_id: str,
        name: str,
        start_channel: int,
        channel_count: int,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> Fixture:
        """
        Map a fixture onto ``channel_count`` channels from ``start_channel``.

        Fixtures may overlap each other; the last write to a channel wins.
        Defining the same name twice in a universe replaces the earlier
        fixture and keeps its id.
        """
        self._registry.universe(universe_id)

        if not is_valid_dmx_channel(start_channel):
            raise ChannelOutOfRangeError(start_channel)
        if not isinstance(channel_count, int) or channel_count < 1:
            raise ChannelOutOfRangeError(channel_count)
        end_channel = start_channel + channel_count - 1
        if end_channel > DMX_CHANNEL_MAX:
            raise ChannelOutOfRangeError(end_channel)

        with self._lock:
            key = (universe_id, name)
            fixture_id = self._ids.get(key) or f"fixture-{uuid.uuid4().hex[:12]}"
            fixture = Fixture(
                id=fixture_id,
                name=name,
                universe_id=universe_id,
                start_channel=start_channel,
                channel_count=channel_count,
                metadata=dict(metadata or {}),
            )
            self._ids[key] = fixture_id
            self._fixtures[fixture_id] = fixture
            view = _copy(fixture)

        logger.info(
            "Fixture mapped",
            fixture=fixture_id,
            name=name,
            universe=universe_id,
            channels=f"{start_channel}-{end_channel}",
        )
        if self._events is not None:
            self._events.publish(EventKind.FIXTURE_DEFINED, fixture=view.to_dict())
        return view

    def control(self, fixture_id: str, values: Sequence[Any]) -> int:
        """
        Write ``values[i]`` to ``start_channel + i``.

        Values past the fixture's footprint are ignored; invalid values are
        skipped by the store's batch policy. Returns the count applied.
        """
        fixture = self.get(fixture_id)
        universe = self._registry.universe(fixture.universe_id)

        values = list(values)[: fixture.channel_count]
        channels = {
            fixture.start_channel + offset: value for offset, value in enumerate(values)
        }
        applied = universe.store.set_channels(channels)

        with self._lock:
            live = self._fixtures.get(fixture_id)
            if live is not None:
                for offset, raw in enumerate(values[: live.channel_count]):
                    value = coerce_int(raw)
                    if is_valid_dmx_value(value):
                        live.current_values[offset] = value
                written = list(live.current_values)
            else:
                written = list(fixture.current_values)

        if self._events is not None:
            self._events.publish(
                EventKind.FIXTURE_CONTROLLED,
                fixture_id=fixture_id,
                values=written,
            )
        return applied

    def get(self, fixture_id: str) -> Fixture:
        with self._lock:
            fixture = self._fixtures.get(fixture_id)
            if fixture is not None:
                return _copy(fixture)
        raise FixtureNotFoundError(fixture_id)

    def list(self, universe_id: Optional[str] = None) -> List[Fixture]:
        with self._lock:
            return [
                _copy(f) for f in self._fixtures.values()
                if universe_id is None or f.universe_id == universe_id
            ]

    def count(self, universe_id: str) -> int:
        with self._lock:
            return sum(1 for f in self._fixtures.values() if f.universe_id == universe_id)

    def delete(self, fixture_id: str) -> bool:
        """Forget a fixture. Its channels keep their current values."""
        with self._lock:
            removed = self._fixtures.pop(fixture_id, None)
            if removed is not None:
                self._ids.pop((removed.universe_id, removed.name), None)
        if removed is None:
            return False
        if self._events is not None:
            self._events.publish(EventKind.FIXTURE_DELETED, fixture_id=fixture_id)
        return True


def _copy(fixture: Fixture) -> Fixture:
    # Caller holds the map lock
    return replace(
        fixture,
        metadata=dict(fixture.metadata),
        current_values=list(fixture.current_values),
    )
