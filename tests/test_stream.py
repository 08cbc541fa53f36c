import struct
import threading
import time

import pytest

from asservstream.decoder import CONNECTION_SYNC, SAMPLE_SYNC
from asservstream.stream import ASSERV_FREQ, AsservStream, list_ports, main


class FakePort:
    def __init__(self, incoming=b""):
        self.incoming = bytearray(incoming)
        self.written = bytearray()
        self.closed = False
        self._lock = threading.Lock()

    def read(self, size):
        with self._lock:
            chunk = bytes(self.incoming[:size])
            del self.incoming[:size]
            return chunk

    def write(self, data):
        self.written += data
        return len(data)

    def close(self):
        self.closed = True


def frame(sync, payload):
    return struct.pack("<II", sync, len(payload)) + payload


def description(names):
    return frame(CONNECTION_SYNC, ",".join(names).encode())


def sample(*values):
    return frame(SAMPLE_SYNC, struct.pack(f"<{len(values)}f", *values))


SAMPLE_SYNC_BYTES = struct.pack("<I", SAMPLE_SYNC)


def test_description_creates_series():
    stream = AsservStream(FakePort(), None, 50)
    stream.feed(description(["timestamp", "x", "y"]))
    assert stream.push_cycle() is False
    assert stream.fields == ["timestamp", "x", "y"]
    assert stream.series() == {"timestamp": [], "x": [], "y": []}


def test_sample_points_use_timestamp_in_seconds():
    stream = AsservStream(FakePort(), None, 50)
    stream.feed(description(["timestamp", "x"]))
    stream.push_cycle()
    stream.feed(sample(ASSERV_FREQ, 1.5) + SAMPLE_SYNC_BYTES)
    assert stream.push_cycle() is True
    series = stream.series()
    assert series["x"] == [(1.0, 1.5)]
    assert series["timestamp"] == [(1.0, ASSERV_FREQ)]


def test_nan_values_become_zero():
    stream = AsservStream(FakePort(), None, 50)
    stream.feed(description(["timestamp", "x"]))
    stream.push_cycle()
    stream.feed(sample(0.0, float("nan")) + SAMPLE_SYNC_BYTES)
    stream.push_cycle()
    assert stream.series()["x"] == [(0.0, 0.0)]


def test_no_data_returns_false_and_callback_not_called():
    stream = AsservStream(FakePort(), None, 50)
    calls = []
    stream.on_data = lambda: calls.append(1)
    assert stream.push_cycle() is False
    assert calls == []


def test_callback_called_when_data_added():
    stream = AsservStream(FakePort(), None, 50)
    calls = []
    stream.on_data = lambda: calls.append(1)
    stream.feed(description(["timestamp"]))
    stream.push_cycle()
    stream.feed(sample(2.0) + SAMPLE_SYNC_BYTES)
    stream.push_cycle()
    assert calls == [1]


def test_value_from_name():
    stream = AsservStream(FakePort(), None, 50)
    stream.feed(description(["timestamp", "x", "y"]))
    stream.push_cycle()
    assert stream.value_from_name("y", [1.0, 2.0, 3.0]) == 3.0
    assert stream.value_from_name("missing", [1.0, 2.0, 3.0]) == 0.0
    assert stream.value_from_name("y", [1.0]) == 0.0


def test_start_sends_connection_word_and_shutdown_closes():
    port = FakePort()
    stream = AsservStream(port, None, 50)
    assert stream.start() is True
    try:
        assert stream.is_running() is True
        assert bytes(port.written[:4]) == b"\xef\xbe\xad\xde"
    finally:
        stream.shutdown()
    assert stream.is_running() is False
    assert port.closed is True


def test_start_adds_dummy_point_to_existing_series():
    stream = AsservStream(FakePort(), None, 50)
    stream.feed(description(["timestamp", "x"]))
    stream.push_cycle()
    with stream:
        snapshot = stream.series()
    assert snapshot["x"][0] == (0.0, 0.0)


def test_reader_thread_decodes_port_data():
    data = (
        description(["timestamp", "x"])
        + sample(ASSERV_FREQ, 2.0)
        + SAMPLE_SYNC_BYTES
    )
    stream = AsservStream(FakePort(data), None, 50)
    with stream:
        deadline = time.monotonic() + 5
        while time.monotonic() < deadline:
            if stream.series().get("x"):
                break
            time.sleep(0.01)
    assert stream.series()["x"] == [(1.0, 2.0)]


def test_panel_commands_logged(tmp_path):
    log_path = tmp_path / "commands"
    port = FakePort()
    stream = AsservStream(port, log_path, 50)
    with stream:
        stream.panel.reset()
    assert log_path.read_bytes() == b"asserv reset\0\n"
    assert port.written.endswith(b"asserv reset\0")


def test_list_ports_reverse_order(monkeypatch):
    monkeypatch.setattr(
        "glob.glob", lambda pattern: ["/dev/ttyACM0", "/dev/ttyACM1"]
    )
    assert list_ports() == ["/dev/ttyACM1", "/dev/ttyACM0"]


def test_main_without_ports_fails(monkeypatch):
    monkeypatch.setattr("glob.glob", lambda pattern: [])
    assert main([]) == 1


def test_main_with_unopenable_port_fails(tmp_path):
    missing = str(tmp_path / "no-such-device")
    assert main([missing, "--log", str(tmp_path / "log")]) == 1


def test_negative_max_values_rejected():
    with pytest.raises(ValueError):
        AsservStream(FakePort(), None, -1)