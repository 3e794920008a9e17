"""
Custom Exceptions for Chromacore.

Every error carries a stable ``kind`` string so the control surface can
report structured failures without inspecting class names.
"""

from __future__ import annotations

from typing import Any, Optional


class ChromaError(Exception):
    """Base exception for all Chromacore errors."""

    kind = "ChromaError"

    def __init__(self, message: str, recoverable: bool = True):
        super().__init__(message)
        self.message = message
        self.recoverable = recoverable

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "message": self.message}


# =============================================================================
# Universe / Adapter Errors
# =============================================================================


class UniverseNotFoundError(ChromaError):
    """Universe is unknown, or disconnected when a write was attempted."""

    kind = "UniverseNotFound"

    def __init__(self, universe_id: str, reason: Optional[str] = None):
        message = f"Universe {universe_id} not found"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.universe_id = universe_id


class AdapterNotFoundError(ChromaError):
    """Adapter id is not among the discovered adapters."""

    kind = "AdapterNotFound"

    def __init__(self, adapter_id: str, available: list[str]):
        ids = ", ".join(available) if available else "none"
        super().__init__(f"Adapter {adapter_id} not found. Available: {ids}")
        self.adapter_id = adapter_id
        self.available = available


# =============================================================================
# Channel Errors
# =============================================================================


class ChannelOutOfRangeError(ChromaError):
    """Channel number outside 1-512."""

    kind = "ChannelOutOfRange"

    def __init__(self, channel: Any):
        super().__init__(f"Channel must be between 1 and 512, got {channel!r}")
        self.channel = channel


class ValueOutOfRangeError(ChromaError):
    """Channel value outside 0-255."""

    kind = "ValueOutOfRange"

    def __init__(self, value: Any):
        super().__init__(f"Value must be between 0 and 255, got {value!r}")
        self.value = value


# =============================================================================
# Fixture / Scene / Effect Errors
# =============================================================================


class FixtureNotFoundError(ChromaError):
    kind = "FixtureNotFound"

    def __init__(self, fixture_id: str):
        super().__init__(f"Fixture {fixture_id} not found")
        self.fixture_id = fixture_id


class SceneNotFoundError(ChromaError):
    kind = "SceneNotFound"

    def __init__(self, scene_id: str):
        super().__init__(f"Scene {scene_id} not found")
        self.scene_id = scene_id


class EffectNotFoundError(ChromaError):
    kind = "EffectNotFound"

    def __init__(self, effect_id: str):
        super().__init__(f"Effect {effect_id} not found")
        self.effect_id = effect_id


class InvalidEffectParametersError(ChromaError):
    """Effect parameters failed validation (empty channels, bad duration, ...)."""

    kind = "InvalidEffectParameters"

    def __init__(self, effect_kind: str, reason: str):
        super().__init__(f"Invalid {effect_kind} parameters: {reason}")
        self.effect_kind = effect_kind
        self.reason = reason


# =============================================================================
# Control Surface / Configuration Errors
# =============================================================================


class InvalidRequestError(ChromaError):
    """Control request is malformed or names an unknown operation."""

    kind = "InvalidRequest"

    def __init__(self, reason: str):
        super().__init__(f"Invalid request: {reason}")
        self.reason = reason


class ConfigError(ChromaError):
    """Invalid configuration."""

    kind = "ConfigError"

    def __init__(self, message: str):
        super().__init__(message, recoverable=False)
