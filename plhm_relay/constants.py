"""Shared constants used across the relay."""
from __future__ import annotations

from enum import IntFlag


class DataField(IntFlag):
    """Record fields that can be requested from the tracker."""

    NONE = 0
    POSITION = 0x1
    EULER = 0x2
    TIMESTAMP = 0x4


DEFAULT_DEVICE_PATH = "/dev/ttyUSB0"
DEFAULT_NAMESPACE = "/liberty"
DEFAULT_MAPPER_ALIAS = "polhemus"
DEFAULT_RATE_HZ = 240
DEFAULT_MAX_STATIONS = 8

POSITION_AXES = ("x", "y", "z")
EULER_AXES = ("azimuth", "elevation", "roll")
POSITION_UNIT = "cm"

STATUS_WAITING = "waiting"
STATUS_DEVICE_NOT_FOUND = "device_not_found"
STATUS_DEVICE_NOT_OPEN = "device_found_but_not_open"
STATUS_DATA_ERROR = "data_stream_error"
STATUS_SENDING = "sending"

STATUS_STRINGS = (
    STATUS_WAITING,
    STATUS_DEVICE_NOT_FOUND,
    STATUS_DEVICE_NOT_OPEN,
    STATUS_DATA_ERROR,
    STATUS_SENDING,
)
