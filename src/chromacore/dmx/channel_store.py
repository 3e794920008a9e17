"""
Channel Store: the 512-slot value array of one universe.

Every write path (direct channel writes, fixture control, scene loads and
effect ticks) ends up here, so this lock is the only thing that has to
serialize access to the slot buffer and its last-update timestamp.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Iterable, Mapping, Optional

import structlog

from chromacore.core.events import EventBus, EventKind
from chromacore.core.exceptions import (
    ChannelOutOfRangeError,
    UniverseNotFoundError,
    ValueOutOfRangeError,
)
from chromacore.dmx.universe import (
    DMX_CHANNEL_MIN,
    DMX_UNIVERSE_SIZE,
    coerce_int,
    create_universe_buffer,
    is_valid_dmx_channel,
    is_valid_dmx_value,
)

logger = structlog.get_logger()


class ChannelStore:
    """
    Thread-safe channel array for a single universe.

    The buffer keeps the DMX start code at index 0 so that channel ``n``
    lives at index ``n`` and a frame is a plain copy of the buffer.
    """

    def __init__(self, universe_id: str, events: Optional[EventBus] = None):
        self.universe_id = universe_id
        self._events = events

        # Universe buffer (start code + 512 channels)
        self._universe = create_universe_buffer()
        self._lock = threading.Lock()
        self._last_update = time.time()
        self._closed = False

    @property
    def last_update(self) -> float:
        with self._lock:
            return self._last_update

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Refuse further writes. Current values stay readable."""
        with self._lock:
            self._closed = True

    def set_channel(self, channel: int, value: int) -> None:
        """Set one channel, raising on an out-of-range channel or value."""
        if not is_valid_dmx_channel(channel):
            raise ChannelOutOfRangeError(channel)
        if not is_valid_dmx_value(value):
            raise ValueOutOfRangeError(value)

        with self._lock:
            self._check_open()
            self._universe[channel] = value
            self._last_update = time.time()

        if self._events is not None:
            self._events.publish(
                EventKind.CHANNEL_CHANGED,
                universe_id=self.universe_id,
                channel=int(channel),
                value=int(value),
            )

    def set_channels(self, channels: Mapping[Any, Any]) -> int:
        """
        Apply a batch of ``channel -> value`` writes.

        Invalid entries (unparsable keys, channels outside 1-512, values
        outside 0-255) are skipped. Returns the number of entries applied.
        """
        updates: list[tuple[int, int]] = []
        for raw_channel, raw_value in channels.items():
            channel = coerce_int(raw_channel)
            value = coerce_int(raw_value)
            if channel is None or value is None:
                continue
            if is_valid_dmx_channel(channel) and is_valid_dmx_value(value):
                updates.append((channel, value))

        with self._lock:
            self._check_open()
            for channel, value in updates:
                self._universe[channel] = value
            self._last_update = time.time()

        skipped = len(channels) - len(updates)
        if skipped:
            logger.debug(
                "Skipped invalid channel writes",
                universe=self.universe_id,
                skipped=skipped,
            )

        if self._events is not None:
            self._events.publish(
                EventKind.CHANNELS_CHANGED,
                universe_id=self.universe_id,
                channels=updates,
            )
        return len(updates)

    def get(self, channel: int) -> int:
        if not is_valid_dmx_channel(channel):
            raise ChannelOutOfRangeError(channel)
        with self._lock:
            return self._universe[channel]

    def values(self, channels: Iterable[int]) -> list[int]:
        """Read several channels under a single lock acquisition."""
        wanted = list(channels)
        for channel in wanted:
            if not is_valid_dmx_channel(channel):
                raise ChannelOutOfRangeError(channel)
        with self._lock:
            return [self._universe[channel] for channel in wanted]

    def snapshot(self) -> list[int]:
        """Return a copy of channels 1-512."""
        with self._lock:
            return list(self._universe[DMX_CHANNEL_MIN:DMX_UNIVERSE_SIZE])

    def frame(self) -> bytes:
        """Return an immutable copy of start code + 512 channels."""
        with self._lock:
            return bytes(self._universe)

    def _check_open(self) -> None:
        if self._closed:
            raise UniverseNotFoundError(self.universe_id, "universe is disconnected")
