"""DMX channel storage and frame helpers."""

from chromacore.dmx.channel_store import ChannelStore
from chromacore.dmx.frame import FrameEncoder
from chromacore.dmx.universe import (
    DMX_CHANNEL_COUNT,
    DMX_CHANNEL_MAX,
    DMX_CHANNEL_MIN,
    DMX_START_CODE,
    DMX_UNIVERSE_SIZE,
    create_universe_buffer,
    extract_channel_payload,
    is_valid_dmx_channel,
    is_valid_dmx_value,
)

__all__ = [
    "ChannelStore",
    "FrameEncoder",
    "DMX_CHANNEL_COUNT",
    "DMX_CHANNEL_MIN",
    "DMX_CHANNEL_MAX",
    "DMX_START_CODE",
    "DMX_UNIVERSE_SIZE",
    "create_universe_buffer",
    "extract_channel_payload",
    "is_valid_dmx_channel",
    "is_valid_dmx_value",
]
