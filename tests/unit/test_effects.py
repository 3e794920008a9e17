from __future__ import annotations

import threading
import time

import pytest

from chromacore.core.config import EffectsConfig, Settings
from chromacore.core.events import EventKind
from chromacore.core.exceptions import (
    ChannelOutOfRangeError,
    EffectNotFoundError,
    InvalidEffectParametersError,
    UniverseNotFoundError,
    ValueOutOfRangeError,
)
from chromacore.core.state import EffectKind
from chromacore.engine.registry import UniverseRegistry


def _wait_for_state(registry: UniverseRegistry, effect_id: str, state: str, timeout: float = 2.0) -> str:
    deadline = time.monotonic() + timeout
    current = registry.effects.status(effect_id)["state"]
    while current != state and time.monotonic() < deadline:
        time.sleep(0.01)
        current = registry.effects.status(effect_id)["state"]
    return current


def _wait_until(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while not predicate() and time.monotonic() < deadline:
        time.sleep(0.01)
    return predicate()


# ---------------------------------------------------------------------------
# Fade
# ---------------------------------------------------------------------------


def test_fade_lands_exactly_on_target() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_fade("main", [1], 200, duration_s=0.1)

        samples = []
        deadline = time.monotonic() + 2.0
        while time.monotonic() < deadline:
            samples.append(registry.encode("main")[1])
            if registry.effects.status(effect_id)["state"] == "COMPLETED":
                break
            time.sleep(0.005)
        samples.append(registry.encode("main")[1])

        assert registry.effects.status(effect_id)["state"] == "COMPLETED"
        assert samples[-1] == 200
        assert samples == sorted(samples)


def test_fade_interpolates_from_captured_start_values() -> None:
    settings = Settings(effects=EffectsConfig(fade_tick_s=60.0))
    with UniverseRegistry(settings) as registry:
        registry.connect("main", "enttec-1")
        registry.set_channels("main", {1: 0, 2: 100})
        effect_id = registry.effects.start_fade("main", [1, 2], 200, duration_s=60.0)
        effect = registry.effects._effects[effect_id]

        # Pretend half the duration has passed, then tick by hand.
        effect._t0 = time.monotonic() - 30.0
        assert effect.tick() is True

        assert registry.snapshot("main")[:2] == [100, 150]
        registry.effects.stop(effect_id)


def test_fade_down_to_zero() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        registry.set_channel("main", 3, 255)
        effect_id = registry.effects.start_fade("main", [3], 0, duration_s=0.05)

        assert _wait_for_state(registry, effect_id, "COMPLETED") == "COMPLETED"
        assert registry.encode("main")[3] == 0


def test_fade_tick_cadence_is_configurable() -> None:
    settings = Settings(effects=EffectsConfig(fade_tick_s=0.01))
    with UniverseRegistry(settings) as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_fade("main", [1], 255, duration_s=0.2)

        assert _wait_for_state(registry, effect_id, "COMPLETED") == "COMPLETED"
        assert registry.effects.status(effect_id)["ticks"] >= 10


# ---------------------------------------------------------------------------
# Chase
# ---------------------------------------------------------------------------


def test_chase_lights_one_group_per_step() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        registry.set_channel("main", 5, 77)
        effect_id = registry.effects.start_chase("main", [[1, 2], [3], [4]], step_interval_s=60.0)
        effect = registry.effects._effects[effect_id]
        assert registry.effects.status(effect_id)["channels"] == [1, 2, 3, 4]

        effect.tick()
        assert registry.snapshot("main")[:5] == [255, 255, 0, 0, 77]
        effect.tick()
        assert registry.snapshot("main")[:5] == [0, 0, 255, 0, 77]
        effect.tick()
        assert registry.snapshot("main")[:5] == [0, 0, 0, 255, 77]
        effect.tick()
        assert registry.snapshot("main")[:5] == [255, 255, 0, 0, 77]

        registry.effects.stop(effect_id)


def test_chase_runs_until_stopped() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_chase("main", [[1], [2]], step_interval_s=0.01)

        time.sleep(0.2)
        info = registry.effects.status(effect_id)

        assert info["state"] == "RUNNING"
        assert info["ticks"] > 2


def test_stop_freezes_channel_state() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_chase(
            "main", [[1], [2], [3], [4]], step_interval_s=0.005
        )
        time.sleep(0.1)

        assert registry.effects.stop(effect_id) is True
        before = registry.snapshot("main")
        time.sleep(0.5)
        after = registry.snapshot("main")

        assert before == after
        assert registry.effects.status(effect_id)["state"] == "STOPPED"


def test_stop_is_idempotent() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_chase("main", [[1]], step_interval_s=0.05)

        assert registry.effects.stop(effect_id) is True
        assert registry.effects.stop(effect_id) is False
        assert registry.effects.stop("chase-unknown") is False


# ---------------------------------------------------------------------------
# Strobe
# ---------------------------------------------------------------------------


def test_strobe_alternates_off_then_on() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        registry.set_channels("main", {1: 100, 2: 100})
        effect_id = registry.effects.start_strobe("main", [1, 2], frequency_hz=0.01)
        effect = registry.effects._effects[effect_id]

        assert effect.interval_s == pytest.approx(50.0)
        effect.tick()
        assert registry.snapshot("main")[:2] == [0, 0]
        effect.tick()
        assert registry.snapshot("main")[:2] == [255, 255]
        effect.tick()
        assert registry.snapshot("main")[:2] == [0, 0]

        registry.effects.stop(effect_id)


def test_strobe_with_duration_completes() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_strobe(
            "main", [1], frequency_hz=20.0, duration_s=0.1
        )

        assert _wait_for_state(registry, effect_id, "COMPLETED") == "COMPLETED"
        assert registry.encode("main")[1] in (0, 255)


def test_unbounded_strobe_keeps_running() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_strobe("main", [1], frequency_hz=50.0)

        time.sleep(0.2)
        assert registry.effects.status(effect_id)["state"] == "RUNNING"


# ---------------------------------------------------------------------------
# Engine operations
# ---------------------------------------------------------------------------


def test_start_accepts_kind_names_and_params_mapping() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start(
            "fade", "main", {"channels": [1], "target_value": 10, "duration_s": 5.0}
        )
        info = registry.effects.status(effect_id)

        assert effect_id.startswith("fade-")
        assert info["kind"] == EffectKind.FADE.value
        assert info["params"]["target_value"] == 10
        assert info["channels"] == [1]


def test_start_creates_a_new_effect_each_call() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        first = registry.effects.start_chase("main", [[1]])
        second = registry.effects.start_chase("main", [[1]])

        assert first != second
        assert len(registry.effects.list_active("main")) == 2


@pytest.mark.parametrize(
    "kind,params",
    [
        ("fade", {"channels": [], "target_value": 10}),
        ("fade", {"channels": [1], "target_value": 10, "duration_s": 0}),
        ("fade", {"channels": [1], "target_value": 10, "duration_s": -1}),
        ("fade", {"channels": [1]}),
        ("chase", {"channel_groups": []}),
        ("chase", {"channel_groups": [[1], []]}),
        ("chase", {"channel_groups": [[1]], "step_interval_s": 0}),
        ("strobe", {"channels": []}),
        ("strobe", {"channels": [1], "frequency_hz": 0}),
        ("strobe", {"channels": [1], "duration_s": 0}),
        ("strobe", {"channels": [1], "speed": 3}),
        ("sparkle", {"channels": [1]}),
    ],
)
def test_invalid_parameters_are_rejected(kind: str, params: dict) -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        with pytest.raises(InvalidEffectParametersError):
            registry.effects.start(kind, "main", params)
        assert registry.effects.list_active() == []


def test_out_of_range_channels_and_targets_are_rejected() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")

        with pytest.raises(ChannelOutOfRangeError):
            registry.effects.start_fade("main", [0], 10, duration_s=1.0)
        with pytest.raises(ChannelOutOfRangeError):
            registry.effects.start_chase("main", [[1], [513]])
        with pytest.raises(ValueOutOfRangeError):
            registry.effects.start_fade("main", [1], 256, duration_s=1.0)


def test_status_unknown_effect() -> None:
    with UniverseRegistry() as registry:
        with pytest.raises(EffectNotFoundError):
            registry.effects.status("fade-missing")


def test_stop_all_filters_by_universe() -> None:
    with UniverseRegistry() as registry:
        registry.connect("a", "enttec-1")
        registry.connect("b", "enttec-1")
        a1 = registry.effects.start_chase("a", [[1]])
        a2 = registry.effects.start_strobe("a", [2])
        b1 = registry.effects.start_chase("b", [[1]])

        stopped = registry.effects.stop_all("a")

        assert sorted(stopped) == sorted([a1, a2])
        assert [e["id"] for e in registry.effects.list_active()] == [b1]

        assert registry.effects.stop_all() == [b1]
        assert registry.effects.list_active() == []


def test_disconnect_stops_every_effect_of_the_universe() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        fade = registry.effects.start_fade("main", [1], 255, duration_s=10.0)
        chase = registry.effects.start_chase("main", [[2], [3]], step_interval_s=0.01)

        registry.disconnect("main")

        assert registry.effects.list_active("main") == []
        assert registry.effects.status(fade)["state"] == "STOPPED"
        assert registry.effects.status(chase)["state"] == "STOPPED"
        assert registry.status("main")["active_effect_count"] == 0


def test_tick_failure_stops_effect_and_notifies() -> None:
    with UniverseRegistry() as registry:
        seen = []
        registry.events.subscribe(seen.append, kinds=[EventKind.EFFECT_STOPPED])
        universe = registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_chase("main", [[1]], step_interval_s=0.01)

        # Simulate the universe vanishing underneath the effect.
        universe.store.close()

        assert _wait_for_state(registry, effect_id, "STOPPED") == "STOPPED"
        assert "disconnected" in registry.effects.status(effect_id)["stop_reason"]
        assert _wait_until(lambda: len(seen) == 1)
        assert [e.payload["effect"]["id"] for e in seen] == [effect_id]


def test_completed_effect_cannot_be_stopped() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        effect_id = registry.effects.start_fade("main", [1], 10, duration_s=0.02)

        assert _wait_for_state(registry, effect_id, "COMPLETED") == "COMPLETED"
        assert registry.effects.stop(effect_id) is False
        assert registry.effects.status(effect_id)["state"] == "COMPLETED"


def test_prune_forgets_finished_effects() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        done = registry.effects.start_chase("main", [[1]])
        running = registry.effects.start_chase("main", [[2]])
        registry.effects.stop(done)

        assert registry.effects.prune() == 1
        with pytest.raises(EffectNotFoundError):
            registry.effects.status(done)
        assert registry.effects.status(running)["state"] == "RUNNING"


def test_prune_keeps_recently_finished_effects() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        done = registry.effects.start_chase("main", [[1]], step_interval_s=60.0)
        registry.effects.stop(done)

        assert registry.effects.prune(older_than_s=60.0) == 0
        assert registry.effects.status(done)["state"] == "STOPPED"


def test_start_drops_finished_effects_past_retention() -> None:
    settings = Settings(effects=EffectsConfig(retain_finished_s=0.0))
    with UniverseRegistry(settings) as registry:
        registry.connect("main", "enttec-1")
        done = registry.effects.start_chase("main", [[1]], step_interval_s=60.0)
        registry.effects.stop(done)

        registry.effects.start_chase("main", [[2]], step_interval_s=60.0)

        with pytest.raises(EffectNotFoundError):
            registry.effects.status(done)


def test_finished_effects_are_retained_by_default() -> None:
    with UniverseRegistry() as registry:
        registry.connect("main", "enttec-1")
        done = registry.effects.start_chase("main", [[1]], step_interval_s=60.0)
        registry.effects.stop(done)

        registry.effects.start_chase("main", [[2]], step_interval_s=60.0)

        assert registry.effects.status(done)["state"] == "STOPPED"


def test_start_racing_disconnect_never_leaves_running_effects() -> None:
    with UniverseRegistry() as registry:
        for _ in range(50):
            registry.connect("main", "enttec-1")
            started: list[str] = []

            def starter() -> None:
                while True:
                    try:
                        started.append(
                            registry.effects.start_strobe("main", [1], frequency_hz=1.0)
                        )
                    except UniverseNotFoundError:
                        return

            worker = threading.Thread(target=starter)
            worker.start()
            time.sleep(0.002)
            registry.disconnect("main")
            worker.join(timeout=2.0)

            assert not worker.is_alive()
            assert registry.effects.count_active("main") == 0
            assert all(
                registry.effects.status(eid)["state"] == "STOPPED" for eid in started
            )
            registry.effects.prune()


def test_lifecycle_notifications() -> None:
    with UniverseRegistry() as registry:
        kinds = []
        registry.events.subscribe(
            lambda e: kinds.append(e.kind),
            kinds=[EventKind.EFFECT_STARTED, EventKind.EFFECT_COMPLETED, EventKind.EFFECT_STOPPED],
        )
        registry.connect("main", "enttec-1")
        fade = registry.effects.start_fade("main", [1], 10, duration_s=0.02)
        chase = registry.effects.start_chase("main", [[2]])
        _wait_for_state(registry, fade, "COMPLETED")
        registry.effects.stop(chase)

        assert _wait_until(lambda: EventKind.EFFECT_COMPLETED in kinds)
        assert registry.events.flush(timeout=1.0)
        assert kinds.count(EventKind.EFFECT_STARTED) == 2
        assert kinds.count(EventKind.EFFECT_COMPLETED) == 1
        assert kinds.count(EventKind.EFFECT_STOPPED) == 1
