"""
Scene Store: named channel snapshots.

Loading a scene is an instantaneous batch write per universe; it never
runs as an effect.
"""

from __future__ import annotations

import threading
import uuid
from dataclasses import replace
from typing import TYPE_CHECKING, Any, Iterable, List, Mapping, Optional

import structlog

from chromacore.core.events import EventBus, EventKind
from chromacore.core.exceptions import SceneNotFoundError, UniverseNotFoundError
from chromacore.core.state import Scene
from chromacore.dmx.universe import DMX_CHANNEL_MIN

if TYPE_CHECKING:
    from chromacore.engine.registry import UniverseRegistry

logger = structlog.get_logger()


class SceneStore:
    """In-memory scene store."""

    def __init__(self, registry: "UniverseRegistry", events: Optional[EventBus] = None):
        self._registry = registry
        self._events = events
        self._lock = threading.Lock()
        self._scenes: dict[str, Scene] = {}

    def save(self, name: str, universe_ids: Iterable[str]) -> Scene:
        """Capture the full current state of each listed universe."""
        data: dict[str, dict[int, int]] = {}
        for universe_id in universe_ids:
            universe = self._registry.universe(universe_id, require_connected=False)
            snapshot = universe.store.snapshot()
            data[universe_id] = {
                DMX_CHANNEL_MIN + offset: value for offset, value in enumerate(snapshot)
            }
        return self._store(name, data)

    def define(self, name: str, data: Mapping[str, Mapping[Any, Any]]) -> Scene:
        """
        Store a pre-authored scene.

        Entries are kept as given; invalid channels or values are skipped
        when the scene is loaded.
        """
        return self._store(name, {u: dict(channels) for u, channels in data.items()})

    def load(self, scene_id: str) -> dict[str, int]:
        """
        Apply a scene. Returns the number of channels applied per universe.

        Universes that are gone or disconnected are skipped so the rest of
        the scene still lands.
        """
        scene = self.get(scene_id)

        applied: dict[str, int] = {}
        for universe_id, channels in scene.data.items():
            try:
                universe = self._registry.universe(universe_id)
                applied[universe_id] = universe.store.set_channels(channels)
            except UniverseNotFoundError as e:
                logger.warning(
                    "Skipping universe in scene",
                    scene=scene_id,
                    universe=universe_id,
                    reason=e.message,
                )

        logger.info("Scene loaded", scene=scene_id, name=scene.name, universes=len(applied))
        if self._events is not None:
            self._events.publish(
                EventKind.SCENE_LOADED,
                scene_id=scene_id,
                name=scene.name,
                applied=dict(applied),
            )
        return applied

    def get(self, scene_id: str) -> Scene:
        with self._lock:
            scene = self._scenes.get(scene_id)
        if scene is None:
            raise SceneNotFoundError(scene_id)
        return _copy(scene)

    def delete(self, scene_id: str) -> bool:
        with self._lock:
            removed = self._scenes.pop(scene_id, None)
        if removed is None:
            return False
        if self._events is not None:
            self._events.publish(EventKind.SCENE_DELETED, scene_id=scene_id)
        return True

    def list(self) -> List[Scene]:
        with self._lock:
            scenes = list(self._scenes.values())
        return [_copy(s) for s in scenes]

    def _store(self, name: str, data: dict[str, dict[Any, Any]]) -> Scene:
        scene = Scene(id=f"scene-{uuid.uuid4().hex[:12]}", name=name, data=data)
        with self._lock:
            self._scenes[scene.id] = scene

        logger.info("Scene saved", scene=scene.id, name=name, universes=list(data))
        if self._events is not None:
            self._events.publish(EventKind.SCENE_SAVED, scene_id=scene.id, name=name)
        return _copy(scene)


def _copy(scene: Scene) -> Scene:
    # Stored scenes are never mutated, so copying needs no lock
    return replace(scene, data={u: dict(channels) for u, channels in scene.data.items()})
