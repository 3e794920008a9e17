"""
Configuration Management for Chromacore.

Uses Pydantic Settings for type-safe configuration with environment
variable support and YAML file loading.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from chromacore.core.exceptions import ConfigError


class EffectsConfig(BaseModel):
    """Effect scheduling defaults."""
    fade_tick_s: float = Field(default=0.05, gt=0)  # Fade interpolation cadence
    fade_duration_s: float = Field(default=3.0, gt=0)
    chase_step_s: float = Field(default=0.2, gt=0)
    strobe_frequency_hz: float = Field(default=5.0, gt=0)
    strobe_duration_s: Optional[float] = Field(default=None, gt=0)  # None = until stopped
    retain_finished_s: float = Field(default=60.0, ge=0)  # Finished effects stay queryable this long


class AdapterConfig(BaseModel):
    """Descriptor of an adapter known to the discovery layer."""
    id: str
    name: str
    kind: str  # "DMXKing", "ENTTEC", "ELATION", ...
    available: bool = True


def _default_adapters() -> List[AdapterConfig]:
    return [
        AdapterConfig(id="dmx-king-1", name="DMX King Interface", kind="DMXKing"),
        AdapterConfig(id="enttec-1", name="Enttec OpenDMX", kind="ENTTEC"),
        AdapterConfig(id="elation-1", name="Elation DMXIS", kind="ELATION"),
    ]


class EventsConfig(BaseModel):
    """Notification bus configuration."""
    enabled: bool = True
    flush_timeout_s: float = 1.0


class Settings(BaseSettings):
    """
    Main application settings.

    Can be configured via:
    - Environment variables (prefixed with CHROMA_)
    - YAML config file
    - Direct instantiation
    """

    model_config = SettingsConfigDict(
        env_prefix="CHROMA_",
        env_nested_delimiter="__",
    )

    effects: EffectsConfig = Field(default_factory=EffectsConfig)
    adapters: List[AdapterConfig] = Field(default_factory=_default_adapters)
    events: EventsConfig = Field(default_factory=EventsConfig)

    # Debug
    debug: bool = False
    log_level: str = "INFO"

    @classmethod
    def from_yaml(cls, path: Path) -> "Settings":
        """Load settings from a YAML file. Raises ConfigError if it is invalid."""
        try:
            with open(path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Cannot parse {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{path} must contain a mapping at the top level")
        try:
            return cls(**data)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            raise ConfigError(f"{path}: {location}: {first['msg']}") from e

    def to_yaml(self, path: Path) -> None:
        """Save settings to a YAML file."""
        with open(path, "w") as f:
            yaml.dump(self.model_dump(), f, default_flow_style=False)
