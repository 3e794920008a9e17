"""
Chromacore: DMX512 lighting-control engine

Tracks per-universe channel state, runs concurrent timed effects (fades,
chases, strobes) against it and encodes universes into DMX512 frames for
an external adapter transport.
"""

__version__ = "0.1.0"
__author__ = "Chromacore Team"

from chromacore.core.config import Settings
from chromacore.core.state import EffectKind, EffectState
from chromacore.engine.registry import UniverseRegistry

__all__ = [
    "UniverseRegistry",
    "EffectKind",
    "EffectState",
    "Settings",
    "__version__",
]
