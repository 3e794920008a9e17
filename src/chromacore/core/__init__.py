"""Core system components for Chromacore."""

from chromacore.core.exceptions import (
    AdapterNotFoundError,
    ChannelOutOfRangeError,
    ChromaError,
    ConfigError,
    EffectNotFoundError,
    FixtureNotFoundError,
    InvalidEffectParametersError,
    SceneNotFoundError,
    UniverseNotFoundError,
    ValueOutOfRangeError,
)
from chromacore.core.config import Settings
from chromacore.core.events import Event, EventBus, EventKind
from chromacore.core.state import (
    ConnectionStatus,
    EffectKind,
    EffectState,
    Fixture,
    Scene,
    Universe,
)

__all__ = [
    "Settings",
    "Event",
    "EventBus",
    "EventKind",
    "ConnectionStatus",
    "EffectKind",
    "EffectState",
    "Fixture",
    "Scene",
    "Universe",
    "ChromaError",
    "ConfigError",
    "UniverseNotFoundError",
    "AdapterNotFoundError",
    "ChannelOutOfRangeError",
    "ValueOutOfRangeError",
    "FixtureNotFoundError",
    "SceneNotFoundError",
    "EffectNotFoundError",
    "InvalidEffectParametersError",
]
