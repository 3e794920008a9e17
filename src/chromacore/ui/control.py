"""
Control surface: request/response access to the engine.

Requests are plain mappings::

    {"id": 7, "op": "set_channel", "params": {"universe_id": "main", "channel": 1, "value": 255}}

and every response is JSON serializable::

    {"id": 7, "ok": true, "result": {...}}
    {"id": 7, "ok": false, "error": {"kind": "ChannelOutOfRange", "message": "..."}}

Every operation is safe to retry except ``start_effect``, which creates a
new effect each time it is called.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chromacore.core.exceptions import ChromaError, InvalidRequestError
from chromacore.engine.registry import UniverseRegistry

logger = structlog.get_logger()


class _Request(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _Empty(_Request):
    pass


class UniverseRequest(_Request):
    universe_id: str


class ConnectRequest(_Request):
    universe_id: str
    adapter_id: str


class SetChannelRequest(_Request):
    universe_id: str
    channel: Any
    value: Any


class SetChannelsRequest(_Request):
    universe_id: str
    channels: Dict[Any, Any]


class DefineFixtureRequest(_Request):
    universe_id: str
    name: str
    start_channel: int
    channel_count: int
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ControlFixtureRequest(_Request):
    fixture_id: str
    values: List[Any]


class FixtureRequest(_Request):
    fixture_id: str


class ListFixturesRequest(_Request):
    universe_id: Optional[str] = None


class SaveSceneRequest(_Request):
    name: str
    universe_ids: List[str] = Field(min_length=1)


class DefineSceneRequest(_Request):
    name: str
    data: Dict[str, Dict[Any, Any]]


class SceneRequest(_Request):
    scene_id: str


class StartEffectRequest(_Request):
    kind: str
    universe_id: str
    params: Dict[str, Any] = Field(default_factory=dict)


class EffectRequest(_Request):
    effect_id: str


class OptionalUniverseRequest(_Request):
    universe_id: Optional[str] = None


class PruneEffectsRequest(_Request):
    older_than_s: float = Field(default=0.0, ge=0)


Handler = Callable[[UniverseRegistry, Any], Any]


def _connect(registry: UniverseRegistry, req: ConnectRequest) -> Any:
    universe = registry.connect(req.universe_id, req.adapter_id)
    return registry.status(universe.id)


def _disconnect(registry: UniverseRegistry, req: UniverseRequest) -> Any:
    registry.disconnect(req.universe_id)
    return {"universe_id": req.universe_id, "status": "DISCONNECTED"}


def _set_channel(registry: UniverseRegistry, req: SetChannelRequest) -> Any:
    registry.set_channel(req.universe_id, req.channel, req.value)
    return {"channel": req.channel, "value": req.value}


def _start_effect(registry: UniverseRegistry, req: StartEffectRequest) -> Any:
    return {"effect_id": registry.effects.start(req.kind, req.universe_id, req.params)}


def _get_frame(registry: UniverseRegistry, req: UniverseRequest) -> Any:
    frame = registry.encode(req.universe_id)
    return {"universe_id": req.universe_id, "length": len(frame), "frame": frame.hex()}


OPERATIONS: dict[str, tuple[type[_Request], Handler]] = {
    "list_adapters": (_Empty, lambda r, q: [a.model_dump() for a in r.list_adapters()]),
    "discover_adapters": (
        _Empty,
        lambda r, q: [a.model_dump() for a in r.discover_adapters()],
    ),
    "connect": (ConnectRequest, _connect),
    "disconnect": (UniverseRequest, _disconnect),
    "status": (UniverseRequest, lambda r, q: r.status(q.universe_id)),
    "list_universes": (_Empty, lambda r, q: r.list_all()),
    "set_channel": (SetChannelRequest, _set_channel),
    "set_channels": (
        SetChannelsRequest,
        lambda r, q: {"applied": r.set_channels(q.universe_id, q.channels)},
    ),
    "define_fixture": (
        DefineFixtureRequest,
        lambda r, q: r.fixtures.define(
            q.universe_id, q.name, q.start_channel, q.channel_count, q.metadata
        ).to_dict(),
    ),
    "control_fixture": (
        ControlFixtureRequest,
        lambda r, q: {"applied": r.fixtures.control(q.fixture_id, q.values)},
    ),
    "list_fixtures": (
        ListFixturesRequest,
        lambda r, q: [f.to_dict() for f in r.fixtures.list(q.universe_id)],
    ),
    "delete_fixture": (
        FixtureRequest,
        lambda r, q: {"deleted": r.fixtures.delete(q.fixture_id)},
    ),
    "save_scene": (
        SaveSceneRequest,
        lambda r, q: r.scenes.save(q.name, q.universe_ids).to_dict(),
    ),
    "define_scene": (
        DefineSceneRequest,
        lambda r, q: r.scenes.define(q.name, q.data).to_dict(),
    ),
    "load_scene": (SceneRequest, lambda r, q: {"applied": r.scenes.load(q.scene_id)}),
    "delete_scene": (SceneRequest, lambda r, q: {"deleted": r.scenes.delete(q.scene_id)}),
    "list_scenes": (_Empty, lambda r, q: [s.to_dict() for s in r.scenes.list()]),
    "start_effect": (StartEffectRequest, _start_effect),
    "stop_effect": (EffectRequest, lambda r, q: {"stopped": r.effects.stop(q.effect_id)}),
    "stop_all_effects": (
        OptionalUniverseRequest,
        lambda r, q: {"stopped": r.effects.stop_all(q.universe_id)},
    ),
    "effect_status": (EffectRequest, lambda r, q: r.effects.status(q.effect_id)),
    "list_effects": (
        OptionalUniverseRequest,
        lambda r, q: r.effects.list_active(q.universe_id),
    ),
    "prune_effects": (
        PruneEffectsRequest,
        lambda r, q: {"pruned": r.effects.prune(q.older_than_s)},
    ),
    "get_frame": (UniverseRequest, _get_frame),
}


class ControlSurface:
    """Dispatches control requests to a registry and wraps the outcome."""

    def __init__(self, registry: UniverseRegistry):
        self.registry = registry

    def handle(self, request: Mapping[str, Any]) -> dict[str, Any]:
        request_id = request.get("id") if isinstance(request, Mapping) else None
        try:
            result = self._dispatch(request)
        except ChromaError as e:
            logger.debug("Control request failed", op=_op_name(request), kind=e.kind)
            return {"id": request_id, "ok": False, "error": e.to_dict()}
        except Exception as e:
            logger.error("Control request crashed", op=_op_name(request), error=str(e))
            return {
                "id": request_id,
                "ok": False,
                "error": {"kind": "InternalError", "message": str(e)},
            }
        return {"id": request_id, "ok": True, "result": result}

    def _dispatch(self, request: Mapping[str, Any]) -> Any:
        if not isinstance(request, Mapping):
            raise InvalidRequestError("request must be an object")
        op = request.get("op")
        if op not in OPERATIONS:
            raise InvalidRequestError(f"unknown operation {op!r}")

        params = request.get("params") or {}
        if not isinstance(params, Mapping):
            raise InvalidRequestError("params must be an object")

        model, handler = OPERATIONS[op]
        try:
            parsed = model.model_validate(params)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"]) or "params"
            raise InvalidRequestError(f"{op}: {location}: {first['msg']}") from None
        return handler(self.registry, parsed)


def _op_name(request: Any) -> Any:
    return request.get("op") if isinstance(request, Mapping) else None
