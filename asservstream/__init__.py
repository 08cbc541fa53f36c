"""Decode a motion-control board's telemetry stream and send it commands."""

__version__ = "0.1.0"
__all__ = ["decoder", "control", "stream"]