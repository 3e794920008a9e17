"""Canonical DMX universe sizing and indexing helpers."""

from __future__ import annotations

import re
from numbers import Integral
from typing import Any, Optional

DMX_START_CODE = 0x00
DMX_START_CODE_INDEX = 0
DMX_CHANNEL_COUNT = 512
DMX_CHANNEL_MIN = 1
DMX_CHANNEL_MAX = DMX_CHANNEL_COUNT
DMX_UNIVERSE_SIZE = DMX_CHANNEL_COUNT + 1
DMX_VALUE_MIN = 0
DMX_VALUE_MAX = 255

# ASCII digits only; str.isdigit also accepts superscripts
_DECIMAL_RE = re.compile(r"[+-]?[0-9]+")


def create_universe_buffer() -> bytearray:
    """Create a DMX universe buffer including start code + 512 channels."""
    universe = bytearray(DMX_UNIVERSE_SIZE)
    universe[DMX_START_CODE_INDEX] = DMX_START_CODE
    return universe


def is_valid_dmx_channel(channel: Any) -> bool:
    """Return True when a channel index is a valid 1-based DMX slot."""
    return _is_int(channel) and DMX_CHANNEL_MIN <= channel <= DMX_CHANNEL_MAX


def is_valid_dmx_value(value: Any) -> bool:
    """Return True when a value fits in one DMX slot."""
    return _is_int(value) and DMX_VALUE_MIN <= value <= DMX_VALUE_MAX


def clamp_dmx_value(value: float) -> int:
    return max(DMX_VALUE_MIN, min(DMX_VALUE_MAX, int(value)))


def coerce_int(raw: Any) -> Optional[int]:
    """
    Best-effort integer parse for batch input.

    Accepts ints, integral floats and decimal strings ("12"). Returns None
    for anything else so callers can skip the entry.
    """
    if isinstance(raw, bool):
        return None
    if isinstance(raw, Integral):
        return int(raw)
    if isinstance(raw, float):
        return int(raw) if raw.is_integer() else None
    if isinstance(raw, str):
        text = raw.strip()
        if _DECIMAL_RE.fullmatch(text):
            return int(text)
    return None


def extract_channel_payload(universe: bytes) -> bytes:
    """Return the 512-channel payload from a full universe buffer."""
    return universe[DMX_CHANNEL_MIN:DMX_UNIVERSE_SIZE]


def _is_int(value: Any) -> bool:
    return isinstance(value, Integral) and not isinstance(value, bool)
