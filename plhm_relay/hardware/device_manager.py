"""Hardware interface layer for Polhemus-style motion trackers."""
from __future__ import annotations

import importlib
import math
import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol, Tuple

from ..config import DeviceConfig
from ..constants import DataField


class DeviceError(RuntimeError):
    """Base class for tracker failures."""


class DeviceNotFound(DeviceError):
    """Raised when no tracker is present at the configured path."""


class DeviceOpenFailed(DeviceError):
    """Raised when the tracker exists but cannot be opened."""


class DeviceCommandError(DeviceError):
    """A configuration or control request was rejected by the tracker."""

    def __init__(self, step: str, message: str = "") -> None:
        super().__init__(f"{step} failed" + (f": {message}" if message else ""))
        self.step = step


class ReadError(DeviceError):
    """A data record could not be decoded."""


class ReadTimeout(ReadError):
    """No data record arrived within the device timeout."""


@dataclass(slots=True, frozen=True)
class Record:
    """One decoded sample for one station."""

    station: int
    fields: DataField
    read_time: float
    position: Optional[Tuple[float, float, float]] = None
    euler: Optional[Tuple[float, float, float]] = None
    timestamp: Optional[int] = None

    @property
    def read_time_ms(self) -> float:
        return self.read_time * 1000.0

    def has(self, flag: DataField) -> bool:
        return bool(self.fields & flag)


class TrackerDevice(Protocol):
    """Operations the relay needs from a tracker driver.

    Every method raises a :class:`DeviceError` subclass on failure.
    """

    @property
    def device_open(self) -> bool:  # pragma: no cover - protocol signature
        ...

    def find_device(self, path: str) -> bool:  # pragma: no cover - protocol signature
        ...

    def open(self, path: str) -> None:  # pragma: no cover - protocol signature
        ...

    def close(self) -> None:  # pragma: no cover - protocol signature
        ...

    def request_data(self) -> None:  # pragma: no cover - protocol signature
        ...

    def request_continuous(self) -> None:  # pragma: no cover - protocol signature
        ...

    def read_until_timeout(self, timeout_ms: int) -> bool:  # pragma: no cover - protocol signature
        ...

    def reset(self) -> None:  # pragma: no cover - protocol signature
        ...

    def text_mode(self) -> None:  # pragma: no cover - protocol signature
        ...

    def binary_mode(self) -> None:  # pragma: no cover - protocol signature
        ...

    def get_version(self) -> str:  # pragma: no cover - protocol signature
        ...

    def read_bits(self) -> None:  # pragma: no cover - protocol signature
        ...

    def get_stations(self) -> int:  # pragma: no cover - protocol signature
        ...

    def set_hemisphere(self, hemisphere: str) -> None:  # pragma: no cover - protocol signature
        ...

    def set_units(self, units: str) -> None:  # pragma: no cover - protocol signature
        ...

    def set_rate(self, rate: int) -> None:  # pragma: no cover - protocol signature
        ...

    def set_data_fields(self, fields: DataField) -> None:  # pragma: no cover - protocol signature
        ...

    def read_record(self, station: int) -> Record:  # pragma: no cover - protocol signature
        ...


DriverFactory = Callable[[DeviceConfig], TrackerDevice]

UNKNOWN_DEVICE_TYPE = "unknown"


class SimulatedTracker:
    """In-memory tracker producing smooth per-station motion for bench runs."""

    def __init__(self, config: DeviceConfig, clock: Callable[[], float] = time.time) -> None:
        self._config = config
        self._clock = clock
        self._open = False
        self._binary = False
        self._continuous = False
        self._fields = DataField.NONE
        self._frame = 0
        self._last_read_time = 0.0
        self.present = True

    @property
    def device_open(self) -> bool:
        return self._open

    def find_device(self, path: str) -> bool:
        _ = path
        return self.present

    def open(self, path: str) -> None:
        if not self.present:
            raise DeviceOpenFailed(f"no simulated tracker at {path}")
        self._open = True

    def close(self) -> None:
        self._open = False
        self._binary = False
        self._continuous = False

    def request_data(self) -> None:
        self._require_open("data_request")
        self._continuous = False

    def request_continuous(self) -> None:
        self._require_open("data_request_continuous")
        self._continuous = True

    def read_until_timeout(self, timeout_ms: int) -> bool:
        _ = timeout_ms
        return False

    def reset(self) -> None:
        self._require_open("reset")

    def text_mode(self) -> None:
        self._require_open("text_mode")
        self._binary = False

    def binary_mode(self) -> None:
        self._require_open("binary_mode")
        self._binary = True

    def get_version(self) -> str:
        self._require_open("get_version")
        return "liberty"

    def read_bits(self) -> None:
        self._require_open("read_bits")

    def get_stations(self) -> int:
        self._require_open("get_stations")
        return self._config.sim_stations

    def set_hemisphere(self, hemisphere: str) -> None:
        _ = hemisphere
        self._require_open("set_hemisphere")

    def set_units(self, units: str) -> None:
        _ = units
        self._require_open("set_units")

    def set_rate(self, rate: int) -> None:
        _ = rate
        self._require_open("set_rate")

    def set_data_fields(self, fields: DataField) -> None:
        self._require_open("set_data_fields")
        self._fields = DataField(fields)

    def read_record(self, station: int) -> Record:
        if not self._open or not self._binary:
            raise ReadError("simulated tracker is not streaming")
        if station == 0:
            self._frame += 1
        read_time = max(self._clock(), self._last_read_time)
        self._last_read_time = read_time
        phase = self._frame / 60.0 + station
        position = euler = None
        timestamp = None
        if self._fields & DataField.POSITION:
            position = (
                round(10.0 * math.cos(phase), 4),
                round(10.0 * math.sin(phase), 4),
                round(5.0 + station, 4),
            )
        if self._fields & DataField.EULER:
            euler = (
                round(math.degrees(phase) % 360.0 - 180.0, 4),
                round(15.0 * math.sin(phase), 4),
                round(5.0 * math.cos(phase), 4),
            )
        if self._fields & DataField.TIMESTAMP:
            timestamp = self._frame
        return Record(
            station=station,
            fields=self._fields,
            read_time=read_time,
            position=position,
            euler=euler,
            timestamp=timestamp,
        )

    def _require_open(self, step: str) -> None:
        if not self._open:
            raise DeviceCommandError(step, "device is not open")


def create_device(
    config: DeviceConfig,
    *,
    driver_factory: Optional[DriverFactory] = None,
) -> TrackerDevice:
    """Create a tracker driver based on *config.transport*."""

    if driver_factory is not None:
        return driver_factory(config)
    transport = (config.transport or "plhm").lower()
    if transport == "sim":
        return SimulatedTracker(config)
    if transport == "plhm":
        return _load_driver_factory(config.driver)(config)
    raise ValueError(f"Unsupported transport '{config.transport}'")


def _load_driver_factory(spec: Optional[str]) -> DriverFactory:
    if not spec:
        raise RuntimeError(
            "The 'plhm' transport requires `device.driver` (module:callable) naming a tracker driver factory"
        )
    module_name, _, attribute = spec.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Driver factory must look like 'module:callable', got '{spec}'")
    module = importlib.import_module(module_name)
    try:
        factory = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"Driver factory '{attribute}' not found in module '{module_name}'") from exc
    if not callable(factory):
        raise ValueError(f"Driver factory '{spec}' is not callable")
    return factory
