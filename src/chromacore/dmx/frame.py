"""DMX512 frame encoding."""

from __future__ import annotations

from typing import TYPE_CHECKING

from chromacore.dmx.universe import extract_channel_payload

if TYPE_CHECKING:
    from chromacore.engine.registry import UniverseRegistry


class FrameEncoder:
    """
    Serializes a universe's channel store into the wire frame.

    Frame layout (513 bytes):
    - byte 0: start code 0x00 (null start code)
    - bytes 1-512: channels 1-512

    The frame is copied under the store lock, so it is a point-in-time
    view even while effects keep writing.
    """

    def __init__(self, registry: "UniverseRegistry"):
        self._registry = registry

    def encode(self, universe_id: str) -> bytes:
        universe = self._registry.universe(universe_id, require_connected=False)
        return universe.store.frame()

    def payload(self, universe_id: str) -> bytes:
        """Return the 512 data slots without the start code."""
        return extract_channel_payload(self.encode(universe_id))
