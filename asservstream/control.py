"""Text command channel to the motion-control board and its tuning state."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Protocol, Union

from .decoder import StreamDecoder

__all__ = [
    "Side",
    "AsservConfig",
    "ControlPanel",
    "format_range_label",
    "MAX_COMMAND_LENGTH",
    "RANGE_COUNT",
]

_log = logging.getLogger(__name__)

MAX_COMMAND_LENGTH = 127
"""Longest command, in bytes, the board's command buffer accepts."""

RANGE_COUNT = 3
"""Number of speed ranges, each with its own speed-loop gains, per wheel."""

_CONFIG_VALUE_COUNT = 2 * 3 * RANGE_COUNT + 6

Number = Union[int, float, str]


class _Transport(Protocol):
    def write(self, data: bytes) -> int | None: ...


class Side(Enum):
    """Wheel side, valued with the letter used on the wire."""

    LEFT = "l"
    RIGHT = "r"


def _arg(value: Number) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    return str(value)


def _number(value: float) -> str:
    return format(value, "g")


def format_range_label(ranges: tuple[float, float, float]) -> str:
    """Describe the three speed ranges bounded by ``ranges`` in text."""
    low, mid, high = (_number(value) for value in ranges)
    return (
        f"Speed Range:   1=>[0;{low}]   2=>[{low};{mid}]   3=>[{mid};{high}]"
    )


@dataclass(frozen=True)
class AsservConfig:
    """Settings reported by the board in a configuration frame."""

    left_kp: tuple[float, float, float]
    left_ki: tuple[float, float, float]
    left_ranges: tuple[float, float, float]
    right_kp: tuple[float, float, float]
    right_ki: tuple[float, float, float]
    right_ranges: tuple[float, float, float]
    distance_kp: float
    angle_kp: float
    angle_acc: float
    dist_acc_max: float
    dist_acc_min: float
    dist_acc_threshold: float

    @property
    def left_range_label(self) -> str:
        return format_range_label(self.left_ranges)

    @property
    def right_range_label(self) -> str:
        return format_range_label(self.right_ranges)


@dataclass
class _WheelGains:
    kp: list[float]
    ki: list[float]
    ranges: list[float]

    @classmethod
    def zero(cls) -> _WheelGains:
        return cls([0.0] * RANGE_COUNT, [0.0] * RANGE_COUNT, [0.0] * RANGE_COUNT)


def _check_range(index: int) -> int:
    if not 0 <= index < RANGE_COUNT:
        raise ValueError(f"speed range index must be in 0..{RANGE_COUNT - 1}")
    return index


class ControlPanel:
    """Sends text commands to the board and tracks per-range speed gains."""

    def __init__(
        self,
        transport: _Transport,
        decoder: StreamDecoder,
        log: BinaryIO | None = None,
        left_range: int = 0,
        right_range: int = 0,
    ) -> None:
        self.transport = transport
        self.decoder = decoder
        self.log = log
        self.left_range = _check_range(left_range)
        self.right_range = _check_range(right_range)
        self._gains = {Side.LEFT: _WheelGains.zero(), Side.RIGHT: _WheelGains.zero()}

    def send(self, command: str) -> None:
        """Write ``command`` to the board and append it to the command log."""
        data = command.encode("ascii")
        if len(data.rstrip(b"\0")) > MAX_COMMAND_LENGTH:
            raise ValueError(
                f"command longer than {MAX_COMMAND_LENGTH} bytes: {command!r}"
            )
        _log.info("Sending: %r", command)
        written = self.transport.write(data)
        if written is not None and written != len(data):
            _log.error(
                "Unable to send full command (wanted %d sent %d)", len(data), written
            )
        if self.log is not None:
            self.log.write(data)
            self.log.write(b"\n")

    def _send_fixed(self, command: str) -> None:
        # Fixed commands go out with their terminating NUL byte.
        self.send(command + "\0")

    def reset(self) -> None:
        self._send_fixed("asserv reset")

    def enable_motor(self, enabled: bool) -> None:
        self._send_fixed(f"asserv enablemotor {_arg(bool(enabled))}")

    def enable_polar(self, enabled: bool) -> None:
        self._send_fixed(f"asserv enablepolar {_arg(bool(enabled))}")

    def set_speed_control(
        self, side: Side | str, kp: Number, ki: Number, speed_range: Number
    ) -> None:
        side = Side(side)
        self.send(
            f"asserv speedcontrol {side.value} {_arg(kp)} {_arg(ki)} {_arg(speed_range)}"
        )

    def set_distance_control(self, kp: Number) -> None:
        self.send(f"asserv distcontrol {_arg(kp)}")

    def set_angle_control(self, kp: Number) -> None:
        self.send(f"asserv anglecontrol {_arg(kp)}")

    def set_angle_acceleration(self, acc: Number) -> None:
        self.send(f"asserv angleacc {_arg(acc)}")

    def set_distance_acceleration(
        self, acc_max: Number, acc_min: Number, threshold: Number
    ) -> None:
        self.send(f"asserv distacc {_arg(acc_max)} {_arg(acc_min)} {_arg(threshold)}")

    def set_distance_acc_dec(
        self,
        acc_fw: Number,
        dec_fw: Number,
        acc_bw: Number,
        dec_bw: Number,
        damping: Number,
    ) -> None:
        args = " ".join(_arg(v) for v in (acc_fw, dec_fw, acc_bw, dec_bw, damping))
        self.send(f"asserv distaccdec {args}")

    def robot_linear_speed_step(self, speed: Number, duration: Number) -> None:
        self.send(f"asserv robotfwspeedstep {_arg(speed)} {_arg(duration)}")

    def robot_angular_speed_step(self, speed: Number, duration: Number) -> None:
        self.send(f"asserv robotangspeedstep {_arg(speed)} {_arg(duration)}")

    def wheel_speed_step(
        self, side: Side | str, speed: Number, duration: Number
    ) -> None:
        side = Side(side)
        self.send(f"asserv wheelspeedstep {side.value} {_arg(speed)} {_arg(duration)}")

    def add_distance(self, distance: Number) -> None:
        self.send(f"asserv adddist {_arg(distance)}")

    def add_angle(self, angle: Number) -> None:
        self.send(f"asserv addangle {_arg(angle)}")

    def add_goto(self, x: Number, y: Number) -> None:
        self.send(f"asserv addgoto {_arg(x)} {_arg(y)}")

    def goto_test(self) -> None:
        self.send("asserv gototest")

    def request_config(self) -> None:
        self.send("asserv get_config")

    def select_range(
        self, side: Side | str, index: int, kp: float, ki: float
    ) -> tuple[float, float]:
        """Keep ``kp``/``ki`` for the current range, switch to ``index``.

        Returns the gains remembered for the newly selected range.
        """
        side = Side(side)
        index = _check_range(index)
        gains = self._gains[side]
        current = self.left_range if side is Side.LEFT else self.right_range
        gains.kp[current] = kp
        gains.ki[current] = ki
        if side is Side.LEFT:
            self.left_range = index
        else:
            self.right_range = index
        return gains.kp[index], gains.ki[index]

    def apply_config(self) -> AsservConfig:
        """Load the settings of the last configuration frame the decoder holds."""
        values = self.decoder.config_values()
        if len(values) < _CONFIG_VALUE_COUNT:
            raise ValueError(
                f"configuration holds {len(values)} values, "
                f"expected at least {_CONFIG_VALUE_COUNT}"
            )
        it = iter(values)
        for side in (Side.LEFT, Side.RIGHT):
            gains = self._gains[side]
            for index in range(RANGE_COUNT):
                gains.kp[index] = next(it)
                gains.ki[index] = next(it)
                gains.ranges[index] = next(it)
        left, right = self._gains[Side.LEFT], self._gains[Side.RIGHT]
        return AsservConfig(
            left_kp=tuple(left.kp),
            left_ki=tuple(left.ki),
            left_ranges=tuple(left.ranges),
            right_kp=tuple(right.kp),
            right_ki=tuple(right.ki),
            right_ranges=tuple(right.ranges),
            distance_kp=next(it),
            angle_kp=next(it),
            angle_acc=next(it),
            dist_acc_max=next(it),
            dist_acc_min=next(it),
            dist_acc_threshold=next(it),
        )