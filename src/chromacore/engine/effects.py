"""
Effect Engine: timed, repeatedly applied channel mutations.

Each effect runs on its own worker thread and sleeps on a private
``threading.Event`` between ticks. A tick holds the effect's lock while it
checks the run state and commits its write, and ``stop`` takes the same
lock, so once ``stop`` returns the effect can no longer write.

Overlapping effects are not arbitrated: whichever write reaches the
channel store last wins.
"""

from __future__ import annotations

import threading
import time
import uuid
from typing import TYPE_CHECKING, Annotated, Any, Callable, List, Mapping, Optional, Union

import numpy as np
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from chromacore.core.config import EffectsConfig
from chromacore.core.events import EventBus, EventKind
from chromacore.core.exceptions import (
    ChannelOutOfRangeError,
    ChromaError,
    EffectNotFoundError,
    InvalidEffectParametersError,
    ValueOutOfRangeError,
)
from chromacore.core.state import EffectInfo, EffectKind, EffectState, Universe
from chromacore.dmx.universe import (
    DMX_VALUE_MAX,
    DMX_VALUE_MIN,
    clamp_dmx_value,
    is_valid_dmx_channel,
    is_valid_dmx_value,
)

if TYPE_CHECKING:
    from chromacore.engine.registry import UniverseRegistry

logger = structlog.get_logger()


# =============================================================================
# Parameters
# =============================================================================


class FadeParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channels: List[int] = Field(min_length=1)
    target_value: int
    duration_s: float = Field(gt=0)


class ChaseParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channel_groups: List[Annotated[List[int], Field(min_length=1)]] = Field(min_length=1)
    step_interval_s: float = Field(gt=0)


class StrobeParams(BaseModel):
    model_config = ConfigDict(extra="forbid")

    channels: List[int] = Field(min_length=1)
    frequency_hz: float = Field(gt=0)
    duration_s: Optional[float] = Field(default=None, gt=0)  # None = until stopped


EffectParams = Union[FadeParams, ChaseParams, StrobeParams]


# =============================================================================
# Effects
# =============================================================================


FinishCallback = Callable[["Effect", EffectState, Optional[str]], None]


class Effect:
    """
    Base class for a scheduled effect.

    Subclasses implement ``_step`` which performs one write and returns
    True when the effect has reached its natural end.
    """

    kind: EffectKind

    def __init__(
        self,
        effect_id: str,
        universe: Universe,
        params: EffectParams,
        interval_s: float,
    ):
        self.id = effect_id
        self.universe = universe
        self.params = params
        self.interval_s = interval_s

        self.state = EffectState.CREATED
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self.stop_reason: Optional[str] = None
        self.ticks = 0

        # Tick/stop serialization
        self._lock = threading.Lock()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._t0 = 0.0
        self._on_finish: Optional[FinishCallback] = None

    @property
    def universe_id(self) -> str:
        return self.universe.id

    @property
    def channels(self) -> list[int]:
        return list(self.params.channels)

    def start(self, on_finish: Optional[FinishCallback] = None) -> None:
        with self._lock:
            if self.state is not EffectState.CREATED:
                return
            self._on_finish = on_finish
            self._prepare()
            self.state = EffectState.RUNNING
            self.start_time = time.time()
            self._t0 = time.monotonic()

        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"Effect-{self.id}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, reason: str = "stopped") -> bool:
        """Mark the effect STOPPED. Returns False if it was not running."""
        with self._lock:
            if self.state is not EffectState.RUNNING:
                return False
            self._finish(EffectState.STOPPED, reason)
        return True

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)

    def tick(self) -> bool:
        """Run one step. Returns True while the effect should keep ticking."""
        outcome: Optional[tuple[EffectState, Optional[str]]] = None

        with self._lock:
            if self.state is not EffectState.RUNNING:
                return False
            elapsed = time.monotonic() - self._t0
            try:
                done = self._step(elapsed)
                self.ticks += 1
            except Exception as e:
                reason = e.message if isinstance(e, ChromaError) else repr(e)
                self._finish(EffectState.STOPPED, reason)
                outcome = (EffectState.STOPPED, reason)
            else:
                if done:
                    self._finish(EffectState.COMPLETED, None)
                    outcome = (EffectState.COMPLETED, None)

        if outcome is None:
            return True
        if self._on_finish is not None:
            self._on_finish(self, *outcome)
        return False

    def info(self) -> EffectInfo:
        with self._lock:
            return EffectInfo(
                id=self.id,
                kind=self.kind.value,
                universe_id=self.universe_id,
                state=self.state.value,
                channels=self.channels,
                params=self.params.model_dump(),
                start_time=self.start_time,
                end_time=self.end_time,
                stop_reason=self.stop_reason,
                ticks=self.ticks,
            )

    def _run_loop(self) -> None:
        while not self._wake.wait(self.interval_s):
            if not self.tick():
                break

    def _finish(self, state: EffectState, reason: Optional[str]) -> None:
        # Caller holds self._lock
        self.state = state
        self.stop_reason = reason
        self.end_time = time.time()
        self._wake.set()

    def _write(self, values: Mapping[int, int]) -> None:
        self.universe.store.set_channels({ch: clamp_dmx_value(v) for ch, v in values.items()})

    def _prepare(self) -> None:
        pass

    def _step(self, elapsed: float) -> bool:
        raise NotImplementedError


class FadeEffect(Effect):
    """Linear interpolation from the captured start values to a target."""

    kind = EffectKind.FADE
    params: FadeParams

    def _prepare(self) -> None:
        self._start_values = np.array(
            self.universe.store.values(self.params.channels), dtype=np.float64
        )

    def _step(self, elapsed: float) -> bool:
        progress = min(elapsed / self.params.duration_s, 1.0)
        target = float(self.params.target_value)
        # Round half up, then clip into the DMX value range.
        values = np.floor(self._start_values + (target - self._start_values) * progress + 0.5)
        values = np.clip(values, DMX_VALUE_MIN, DMX_VALUE_MAX).astype(int)
        self._write(dict(zip(self.params.channels, values.tolist())))
        return progress >= 1.0


class ChaseEffect(Effect):
    """Lights one channel group at a time, cycling until stopped."""

    kind = EffectKind.CHASE
    params: ChaseParams

    def _prepare(self) -> None:
        self.step = 0

    @property
    def channels(self) -> list[int]:
        return [ch for group in self.params.channel_groups for ch in group]

    def _step(self, elapsed: float) -> bool:
        groups = self.params.channel_groups
        updates = {ch: DMX_VALUE_MIN for ch in self.channels}
        for ch in groups[self.step % len(groups)]:
            updates[ch] = DMX_VALUE_MAX
        self._write(updates)
        self.step += 1
        return False


class StrobeEffect(Effect):
    """Toggles channels between 0 and 255 every half period."""

    kind = EffectKind.STROBE
    params: StrobeParams

    def _prepare(self) -> None:
        self._on = False

    def _step(self, elapsed: float) -> bool:
        duration = self.params.duration_s
        if duration is not None and elapsed > duration:
            return True
        value = DMX_VALUE_MAX if self._on else DMX_VALUE_MIN
        self._write({ch: value for ch in self.params.channels})
        self._on = not self._on
        return False


_EFFECT_TYPES: dict[EffectKind, tuple[type[Effect], type[BaseModel]]] = {
    EffectKind.FADE: (FadeEffect, FadeParams),
    EffectKind.CHASE: (ChaseEffect, ChaseParams),
    EffectKind.STROBE: (StrobeEffect, StrobeParams),
}


# =============================================================================
# Engine
# =============================================================================


class EffectEngine:
    """
    Creates, schedules and cancels effects.

    Finished effects stay queryable through ``status`` until ``prune``.
    """

    def __init__(
        self,
        registry: "UniverseRegistry",
        config: Optional[EffectsConfig] = None,
        events: Optional[EventBus] = None,
    ):
        self._registry = registry
        self.config = config or EffectsConfig()
        self._events = events
        self._lock = threading.Lock()
        self._effects: dict[str, Effect] = {}

    def start(
        self,
        kind: Union[EffectKind, str],
        universe_id: str,
        params: Optional[Mapping[str, Any]] = None,
    ) -> str:
        """Validate parameters, register the effect and start ticking it."""
        effect_kind = self._parse_kind(kind)
        validated = self._validate(effect_kind, params or {})
        self.prune(older_than_s=self.config.retain_finished_s)

        effect_cls, _ = _EFFECT_TYPES[effect_kind]
        effect_id = f"{effect_kind.value.lower()}-{uuid.uuid4().hex[:12]}"

        # Registry lock: a concurrent disconnect either runs before the
        # lookup below or sees the effect registered and stops it.
        with self._registry.lock:
            universe = self._registry.universe(universe_id)
            effect = effect_cls(
                effect_id=effect_id,
                universe=universe,
                params=validated,
                interval_s=self._interval_for(validated),
            )
            with self._lock:
                self._effects[effect_id] = effect
            try:
                effect.start(on_finish=self._on_effect_finished)
            except ChromaError:
                with self._lock:
                    self._effects.pop(effect_id, None)
                raise

        logger.info(
            "Effect started",
            effect=effect_id,
            kind=effect_kind.value,
            universe=universe_id,
        )
        self._publish(EventKind.EFFECT_STARTED, effect)
        return effect_id

    def start_fade(
        self,
        universe_id: str,
        channels: List[int],
        target_value: int,
        duration_s: Optional[float] = None,
    ) -> str:
        params: dict[str, Any] = {"channels": channels, "target_value": target_value}
        if duration_s is not None:
            params["duration_s"] = duration_s
        return self.start(EffectKind.FADE, universe_id, params)

    def start_chase(
        self,
        universe_id: str,
        channel_groups: List[List[int]],
        step_interval_s: Optional[float] = None,
    ) -> str:
        params: dict[str, Any] = {"channel_groups": channel_groups}
        if step_interval_s is not None:
            params["step_interval_s"] = step_interval_s
        return self.start(EffectKind.CHASE, universe_id, params)

    def start_strobe(
        self,
        universe_id: str,
        channels: List[int],
        frequency_hz: Optional[float] = None,
        duration_s: Optional[float] = None,
    ) -> str:
        params: dict[str, Any] = {"channels": channels}
        if frequency_hz is not None:
            params["frequency_hz"] = frequency_hz
        if duration_s is not None:
            params["duration_s"] = duration_s
        return self.start(EffectKind.STROBE, universe_id, params)

    def stop(self, effect_id: str, reason: str = "stopped") -> bool:
        """Stop a running effect. Unknown or finished effects are a no-op."""
        with self._lock:
            effect = self._effects.get(effect_id)
        if effect is None or not effect.stop(reason):
            return False

        logger.info("Effect stopped", effect=effect_id, reason=reason)
        self._publish(EventKind.EFFECT_STOPPED, effect)
        return True

    def stop_all(
        self,
        universe_id: Optional[str] = None,
        reason: str = "stopped",
    ) -> List[str]:
        """Stop every running effect, optionally only those of one universe."""
        with self._lock:
            candidates = [
                e for e in self._effects.values()
                if universe_id is None or e.universe_id == universe_id
            ]

        stopped = [e.id for e in candidates if self.stop(e.id, reason)]
        logger.info(
            "Effects stopped",
            universe=universe_id or "all",
            count=len(stopped),
        )
        return stopped

    def status(self, effect_id: str) -> EffectInfo:
        with self._lock:
            effect = self._effects.get(effect_id)
        if effect is None:
            raise EffectNotFoundError(effect_id)
        return effect.info()

    def list_active(self, universe_id: Optional[str] = None) -> List[EffectInfo]:
        with self._lock:
            effects = list(self._effects.values())
        return [
            e.info() for e in effects
            if e.state is EffectState.RUNNING
            and (universe_id is None or e.universe_id == universe_id)
        ]

    def count_active(self, universe_id: str) -> int:
        return len(self.list_active(universe_id))

    def prune(self, older_than_s: float = 0.0) -> int:
        """
        Forget completed and stopped effects that finished at least
        ``older_than_s`` seconds ago. Returns how many were dropped.
        """
        cutoff = time.time() - older_than_s
        with self._lock:
            finished = [
                eid for eid, e in self._effects.items()
                if e.state.finished and e.end_time is not None and e.end_time <= cutoff
            ]
            for eid in finished:
                del self._effects[eid]
        return len(finished)

    def join(self, timeout: float = 1.0) -> None:
        """Wait for worker threads of finished effects to exit."""
        with self._lock:
            effects = list(self._effects.values())
        for effect in effects:
            if effect.state.finished:
                effect.join(timeout)

    # -------------------------------------------------------------------------

    def _parse_kind(self, kind: Union[EffectKind, str]) -> EffectKind:
        if isinstance(kind, EffectKind):
            return kind
        try:
            return EffectKind(str(kind).upper())
        except ValueError:
            raise InvalidEffectParametersError(str(kind), "unknown effect kind") from None

    def _validate(self, kind: EffectKind, params: Mapping[str, Any]) -> EffectParams:
        _, params_cls = _EFFECT_TYPES[kind]
        merged = {**self._defaults_for(kind), **params}
        try:
            validated = params_cls.model_validate(merged)
        except ValidationError as e:
            raise InvalidEffectParametersError(kind.value, _describe(e)) from None

        if isinstance(validated, ChaseParams):
            channels = [ch for group in validated.channel_groups for ch in group]
        else:
            channels = validated.channels
        for channel in channels:
            if not is_valid_dmx_channel(channel):
                raise ChannelOutOfRangeError(channel)
        if isinstance(validated, FadeParams) and not is_valid_dmx_value(validated.target_value):
            raise ValueOutOfRangeError(validated.target_value)
        return validated

    def _defaults_for(self, kind: EffectKind) -> dict[str, Any]:
        if kind is EffectKind.FADE:
            return {"duration_s": self.config.fade_duration_s}
        if kind is EffectKind.CHASE:
            return {"step_interval_s": self.config.chase_step_s}
        return {
            "frequency_hz": self.config.strobe_frequency_hz,
            "duration_s": self.config.strobe_duration_s,
        }

    def _interval_for(self, params: EffectParams) -> float:
        if isinstance(params, FadeParams):
            return self.config.fade_tick_s
        if isinstance(params, ChaseParams):
            return params.step_interval_s
        return 1.0 / (2.0 * params.frequency_hz)

    def _on_effect_finished(
        self,
        effect: Effect,
        state: EffectState,
        reason: Optional[str],
    ) -> None:
        if state is EffectState.COMPLETED:
            logger.info("Effect completed", effect=effect.id, ticks=effect.ticks)
            self._publish(EventKind.EFFECT_COMPLETED, effect)
        else:
            logger.warning("Effect terminated", effect=effect.id, reason=reason)
            self._publish(EventKind.EFFECT_STOPPED, effect)

    def _publish(self, kind: EventKind, effect: Effect) -> None:
        if self._events is not None:
            self._events.publish(kind, effect=effect.info())


def _describe(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "params"
    return f"{location}: {first['msg']}"
