"""Streaming of motion-control telemetry from a serial port into time series."""

from __future__ import annotations

import argparse
import glob
import logging
import math
import os
import struct
import sys
import threading
import time
from collections.abc import Iterable, Sequence
from typing import BinaryIO, Callable, Protocol, Union

from .control import ControlPanel
from .decoder import CONNECTION_SYNC, DEFAULT_MAX_VALUES, StreamDecoder

__all__ = [
    "ASSERV_FREQ",
    "BAUDRATE",
    "DEFAULT_LOG_PATH",
    "AsservStream",
    "list_ports",
    "main",
]

ASSERV_FREQ = 600.0
"""Rate, in Hz, of the board's control loop; sample timestamps count its ticks."""

BAUDRATE = 115200
DEFAULT_LOG_PATH = "commandLog"

_READ_SIZE = 512
_POLL_INTERVAL = 0.0005

_log = logging.getLogger(__name__)

Point = tuple[float, float]


class _Port(Protocol):
    def read(self, size: int) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def close(self) -> None: ...


def list_ports() -> list[str]:
    """Return the ACM serial devices present, in the order they are offered."""
    return sorted(glob.glob("/dev/ttyACM*"), reverse=True)


def _open_serial(path: str) -> _Port:
    import serial

    return serial.Serial(
        path,
        baudrate=BAUDRATE,
        bytesize=serial.EIGHTBITS,
        parity=serial.PARITY_NONE,
        stopbits=serial.STOPBITS_ONE,
        timeout=0,
    )


def _open_log(path: str | os.PathLike[str]) -> BinaryIO | None:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o660)
    except OSError as exc:
        _log.warning("Unable to open command log %s: %s", path, exc)
        return None
    return os.fdopen(fd, "ab", buffering=0)


class AsservStream:
    """Reads decoded telemetry from the board and accumulates it per field."""

    def __init__(
        self,
        port: Union[str, _Port],
        log_path: str | os.PathLike[str] | None = DEFAULT_LOG_PATH,
        max_values: int = DEFAULT_MAX_VALUES,
    ) -> None:
        self.port = port
        self.log_path = log_path
        self.decoder = StreamDecoder(max_values)
        self.fields: list[str] = []
        self.panel: ControlPanel | None = None
        self.on_data: Callable[[], None] | None = None

        self._connection: _Port | None = None
        self._log_file: BinaryIO | None = None
        self._series: dict[str, list[Point]] = {}
        self._lock = threading.Lock()
        self._running = False
        self._thread: threading.Thread | None = None

    def start(self) -> bool:
        """Open the port, announce the connection and start the reader thread."""
        if self._running:
            return True
        if isinstance(self.port, str):
            connection = _open_serial(self.port)
            _log.info("Port %s opened", self.port)
        else:
            connection = self.port
        self._connection = connection
        if self.log_path is not None:
            self._log_file = _open_log(self.log_path)

        connection.write(struct.pack("<I", CONNECTION_SYNC))

        with self._lock:
            for points in self._series.values():
                points.append((0.0, 0.0))
        self._running = True
        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

        self.panel = ControlPanel(connection, self.decoder, self._log_file)
        return True

    def shutdown(self) -> None:
        """Stop the reader thread and close the port and the command log."""
        if not self._running:
            return
        self._running = False
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self._thread = None
        if self._connection is not None:
            self._connection.close()
            self._connection = None
        if self._log_file is not None:
            self._log_file.close()
            self._log_file = None

    def is_running(self) -> bool:
        return self._running

    def __enter__(self) -> AsservStream:
        self.start()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def feed(self, data: Iterable[int]) -> None:
        """Hand received bytes to the decoder."""
        self.decoder.process_bytes(data)

    def push_cycle(self) -> bool:
        """Move decoded data into the series; return whether points were added."""
        description = self.decoder.take_description()
        if description is not None:
            self.fields = description
            with self._lock:
                for index, name in enumerate(description):
                    self._series.setdefault(name, [])
                    _log.info("[%d] => %s", index, name)
            return False

        added = False
        for sample in self.decoder.samples():
            timestamp = self.value_from_name("timestamp", sample) / ASSERV_FREQ
            with self._lock:
                for name, points in self._series.items():
                    value = self.value_from_name(name, sample)
                    if math.isnan(value):
                        value = 0.0
                    points.append((timestamp, value))
            added = True
        if added and self.on_data is not None:
            self.on_data()
        return added

    def value_from_name(self, name: str, sample: Sequence[float]) -> float:
        """Return the value of field ``name`` in ``sample``, or 0 when absent."""
        try:
            index = self.fields.index(name)
        except ValueError:
            return 0.0
        if index >= len(sample):
            return 0.0
        return float(sample[index])

    def series(self) -> dict[str, list[Point]]:
        """Return a snapshot of every series as (time, value) points."""
        with self._lock:
            return {name: list(points) for name, points in self._series.items()}

    def _loop(self) -> None:
        while self._running and self._connection is not None:
            data = self._connection.read(_READ_SIZE)
            if data:
                self.feed(data)
            self.push_cycle()
            time.sleep(_POLL_INTERVAL)


def main(argv: Sequence[str] | None = None) -> int:
    """Stream from the board and send command lines read from standard input."""
    parser = argparse.ArgumentParser(
        prog="asservstream",
        description="Read motion-control telemetry and send commands to the board.",
    )
    parser.add_argument("port", nargs="?", help="serial device (default: first ttyACM)")
    parser.add_argument("--log", default=DEFAULT_LOG_PATH, help="command log file")
    parser.add_argument(
        "--max-values", type=int, default=DEFAULT_MAX_VALUES,
        help="largest number of values accepted in a sample",
    )
    args = parser.parse_args(argv)

    port = args.port
    if port is None:
        ports = list_ports()
        if not ports:
            print("No serial port found", file=sys.stderr)
            return 1
        port = ports[0]

    stream = AsservStream(port, args.log, args.max_values)
    try:
        stream.start()
    except OSError as exc:
        print(f"Unable to open {port}: {exc}", file=sys.stderr)
        return 1

    try:
        for line in sys.stdin:
            command = line.strip()
            if command and stream.panel is not None:
                stream.panel.send(command)
    except KeyboardInterrupt:
        pass
    finally:
        stream.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())