"""Decoder for the binary stream sent by the motion-control board over UART.

The board emits three kinds of frames, each introduced by a 32-bit
little-endian synchronisation word and followed by a 32-bit little-endian
payload length:

* sample frames (``0xCAFED00D``) carrying float32 values,
* configuration frames (``0xCAFEDECA``) carrying raw float32 settings,
* description frames (``0xDEADBEEF``) carrying comma-separated field names.

A sample is only queued once the synchronisation word of the following
frame has been received intact; any byte that breaks a synchronisation
word discards the sample that was waiting.
"""

from __future__ import annotations

import logging
import struct
from collections import deque
from collections.abc import Iterable, Iterator
from enum import Enum, auto

__all__ = [
    "SAMPLE_SYNC",
    "CONFIG_SYNC",
    "CONNECTION_SYNC",
    "DEFAULT_MAX_VALUES",
    "StreamDecoder",
]

SAMPLE_SYNC = 0xCAFED00D
CONFIG_SYNC = 0xCAFEDECA
CONNECTION_SYNC = 0xDEADBEEF

DEFAULT_MAX_VALUES = 50

_FLOAT_SIZE = 4
_HEADER_SIZE = 4

_log = logging.getLogger(__name__)


class _State(Enum):
    SYNC = auto()
    SAMPLE = auto()
    CONFIG = auto()
    DESCRIPTION = auto()


# Checked in this order: a byte advances the first word it matches.
_SYNC_WORDS: tuple[tuple[bytes, _State], ...] = (
    (SAMPLE_SYNC.to_bytes(4, "little"), _State.SAMPLE),
    (CONFIG_SYNC.to_bytes(4, "little"), _State.CONFIG),
    (CONNECTION_SYNC.to_bytes(4, "little"), _State.DESCRIPTION),
)


def _unpack_floats(payload: bytes) -> list[float]:
    count = len(payload) // _FLOAT_SIZE
    return list(struct.unpack(f"<{count}f", payload[: count * _FLOAT_SIZE]))


class StreamDecoder:
    """Incremental decoder turning raw UART bytes into samples and metadata."""

    def __init__(self, max_values: int = DEFAULT_MAX_VALUES) -> None:
        if max_values < 0:
            raise ValueError("max_values must not be negative")
        self.max_values = max_values
        self.config_available = False

        self._state = _State.SYNC
        self._sync_progress = [0] * len(_SYNC_WORDS)

        self._buffer = bytearray()
        self._expected = 0

        self._pending: list[float] | None = None
        self._samples: deque[list[float]] = deque()

        self._config = b""
        self._description: list[str] = []
        self._description_available = False

    def process_bytes(self, data: Iterable[int]) -> None:
        """Feed received bytes into the decoder."""
        for byte in bytes(data):
            if self._state is _State.SYNC:
                self._look_for_sync(byte)
            else:
                self._read_payload(byte)

    def samples(self) -> Iterator[list[float]]:
        """Yield and remove every complete sample decoded so far, oldest first."""
        while self._samples:
            yield self._samples.popleft()

    def take_description(self) -> list[str] | None:
        """Return the field names of a newly received description, once."""
        if not self._description_available:
            return None
        self._description_available = False
        return list(self._description)

    def config_values(self) -> list[float]:
        """Return the float values of the last configuration frame received."""
        return _unpack_floats(self._config)

    @property
    def config(self) -> bytes:
        """Raw payload of the last configuration frame received."""
        return self._config

    def _look_for_sync(self, byte: int) -> None:
        for slot, (word, _) in enumerate(_SYNC_WORDS):
            if byte == word[self._sync_progress[slot]]:
                self._sync_progress[slot] += 1
                break
        else:
            self._pending = None
            self._sync_progress = [0] * len(_SYNC_WORDS)
            _log.debug("drop ..")
            return

        for slot, (word, next_state) in enumerate(_SYNC_WORDS):
            if self._sync_progress[slot] == len(word):
                if next_state is _State.DESCRIPTION:
                    _log.debug("description message")
                self._sync_progress = [0] * len(_SYNC_WORDS)
                self._enter(next_state)

    def _enter(self, state: _State) -> None:
        if self._pending is not None:
            self._samples.append(self._pending)
            self._pending = None
        self._buffer.clear()
        self._expected = 0
        self._state = state

    def _read_payload(self, byte: int) -> None:
        self._buffer.append(byte)

        if self._expected == 0:
            if len(self._buffer) == _HEADER_SIZE:
                self._expected = int.from_bytes(self._buffer, "little")
                self._buffer.clear()
                if (
                    self._state is _State.SAMPLE
                    and self._expected > self.max_values * _FLOAT_SIZE
                ):
                    _log.debug(
                        "Want to retrieve %d bytes in the stream, probably garbage",
                        self._expected,
                    )
                    self._expected = 0
                    self._pending = None
                    self._state = _State.SYNC
            return

        if len(self._buffer) == self._expected:
            payload = bytes(self._buffer)
            state = self._state
            self._buffer.clear()
            self._expected = 0
            self._state = _State.SYNC
            if state is _State.SAMPLE:
                self._pending = _unpack_floats(payload)
            elif state is _State.CONFIG:
                self._config = payload
                self.config_available = True
            else:
                self._store_description(payload)

    def _store_description(self, payload: bytes) -> None:
        text = payload.split(b"\0", 1)[0].decode("latin-1")
        self._description = [field for field in text.split(",") if field]
        self._description_available = True