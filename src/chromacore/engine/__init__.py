"""Lighting engine components: universes, fixtures, scenes and effects."""

from chromacore.engine.adapters import AdapterCatalog, AdapterDescriptor
from chromacore.engine.effects import (
    ChaseEffect,
    ChaseParams,
    Effect,
    EffectEngine,
    FadeEffect,
    FadeParams,
    StrobeEffect,
    StrobeParams,
)
from chromacore.engine.fixtures import FixtureMap
from chromacore.engine.registry import UniverseRegistry
from chromacore.engine.scenes import SceneStore

__all__ = [
    "AdapterCatalog",
    "AdapterDescriptor",
    "ChaseEffect",
    "ChaseParams",
    "Effect",
    "EffectEngine",
    "FadeEffect",
    "FadeParams",
    "FixtureMap",
    "SceneStore",
    "StrobeEffect",
    "StrobeParams",
    "UniverseRegistry",
]
