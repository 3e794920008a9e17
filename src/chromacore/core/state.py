"""
Record types shared across the engine.

Universes, fixtures and scenes are owned by their stores; the TypedDicts
at the bottom are the read-only views handed back to callers.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional, TypedDict

from chromacore.dmx.channel_store import ChannelStore


class ConnectionStatus(Enum):
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"


class EffectKind(Enum):
    FADE = "FADE"
    CHASE = "CHASE"
    STROBE = "STROBE"


class EffectState(Enum):
    """Effect lifecycle. Only ever moves forward."""

    CREATED = "CREATED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    STOPPED = "STOPPED"

    @property
    def finished(self) -> bool:
        return self in (EffectState.COMPLETED, EffectState.STOPPED)


@dataclass
class Universe:
    """
    Handle to one connected universe.

    Writes go straight to the universe's Channel Store; once the universe
    is disconnected (or replaced by a reconnect) the store refuses them.
    """

    id: str
    adapter_id: str
    number: int
    store: ChannelStore
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    created_at: float = field(default_factory=time.time)

    @property
    def connected(self) -> bool:
        return self.status is ConnectionStatus.CONNECTED

    @property
    def last_update(self) -> float:
        return self.store.last_update

    def set_channel(self, channel: int, value: int) -> None:
        self.store.set_channel(channel, value)

    def set_channels(self, channels: Mapping[Any, Any]) -> int:
        return self.store.set_channels(channels)

    def snapshot(self) -> list[int]:
        return self.store.snapshot()


@dataclass
class Fixture:
    """Named view over a contiguous channel range of a universe."""

    id: str
    name: str
    universe_id: str
    start_channel: int
    channel_count: int
    metadata: dict[str, Any] = field(default_factory=dict)
    current_values: list[int] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        if not self.current_values:
            self.current_values = [0] * self.channel_count

    @property
    def end_channel(self) -> int:
        return self.start_channel + self.channel_count - 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "universe_id": self.universe_id,
            "start_channel": self.start_channel,
            "channel_count": self.channel_count,
            "metadata": dict(self.metadata),
            "current_values": list(self.current_values),
            "created_at": self.created_at,
        }


@dataclass
class Scene:
    """Named set of channel values across one or more universes."""

    id: str
    name: str
    data: dict[str, dict[int, int]]
    created_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "data": {u: dict(channels) for u, channels in self.data.items()},
            "created_at": self.created_at,
        }


class UniverseStatus(TypedDict):
    """Point-in-time status of one universe."""

    id: str
    adapter_id: str
    number: int
    status: str
    channels: list[int]
    last_update: float
    created_at: float
    fixture_count: int
    active_effect_count: int


class EffectInfo(TypedDict):
    """Read-only view of an effect."""

    id: str
    kind: str
    universe_id: str
    state: str
    channels: list[int]
    params: dict[str, Any]
    start_time: Optional[float]
    end_time: Optional[float]
    stop_reason: Optional[str]
    ticks: int
