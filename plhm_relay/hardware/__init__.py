"""Hardware abstraction helpers."""
from __future__ import annotations

from .device_manager import (
    UNKNOWN_DEVICE_TYPE,
    DeviceCommandError,
    DeviceError,
    DeviceNotFound,
    DeviceOpenFailed,
    ReadError,
    ReadTimeout,
    Record,
    SimulatedTracker,
    TrackerDevice,
    create_device,
)

__all__ = [
    "UNKNOWN_DEVICE_TYPE",
    "DeviceCommandError",
    "DeviceError",
    "DeviceNotFound",
    "DeviceOpenFailed",
    "ReadError",
    "ReadTimeout",
    "Record",
    "SimulatedTracker",
    "TrackerDevice",
    "create_device",
]
