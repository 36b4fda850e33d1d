"""Output sinks fed by the fan-out engine."""
from __future__ import annotations

import logging
import struct
import sys
from typing import Any, List, Optional, Protocol, TextIO

from ..config import MappingConfig, OutputConfig
from ..constants import EULER_AXES, POSITION_AXES, DataField
from ..hardware import Record
from ..transport import OscAddress, UdpTransport
from .registry import EULER_KINDS, POSITION_KINDS, SignalKind, SignalRegistry
from .state import RunState

try:
    import libmapper as mpr  # type: ignore
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    mpr = None

logger = logging.getLogger(__name__)


class SinkWriteFailed(RuntimeError):
    """A sink could not deliver a record."""


class Sink(Protocol):
    name: str

    def begin_pass(self) -> None:  # pragma: no cover - protocol signature
        ...

    def publish(self, record: Record) -> None:  # pragma: no cover - protocol signature
        ...

    def end_pass(self) -> None:  # pragma: no cover - protocol signature
        ...

    def close(self) -> None:  # pragma: no cover - protocol signature
        ...


def encode_hex_float(value: float) -> str:
    """Render *value* as the big-endian IEEE-754 float32 bit pattern."""

    (bits,) = struct.unpack(">I", struct.pack(">f", value))
    return f"0x{bits:08x}"


def decode_hex_float(text: str) -> float:
    """Inverse of :func:`encode_hex_float`; the ``0x`` prefix is optional."""

    bits = int(text.strip(), 16)
    return struct.unpack(">f", bits.to_bytes(4, "big"))[0]


def format_record(record: Record, hex_floats: bool = False) -> str:
    """Return the log line for *record*, newline included.

    Field order is station, position, euler, timestamp, read time.
    """

    render = encode_hex_float if hex_floats else (lambda value: f"{value:.4f}")
    parts: List[str] = [str(record.station)]
    if record.has(DataField.POSITION) and record.position is not None:
        parts.extend(render(value) for value in record.position)
    if record.has(DataField.EULER) and record.euler is not None:
        parts.extend(render(value) for value in record.euler)
    if record.has(DataField.TIMESTAMP) and record.timestamp is not None:
        parts.append(str(record.timestamp & 0xFFFFFFFF))
    parts.append(f"{record.read_time_ms:f}")
    return ", ".join(parts) + "\n"


class LogSink:
    """Write one text line per record to a stream."""

    name = "log"

    def __init__(self, stream: TextIO, hex_floats: bool = False, owns_stream: bool = False) -> None:
        self._stream = stream
        self._hex_floats = hex_floats
        self._owns_stream = owns_stream

    @classmethod
    def from_config(cls, config: OutputConfig) -> Optional["LogSink"]:
        if not config.enabled:
            return None
        if config.to_stdout:
            return cls(sys.stdout, hex_floats=config.hex_floats)
        assert config.path is not None
        handle = open(config.path, "w", encoding="utf-8")
        return cls(handle, hex_floats=config.hex_floats, owns_stream=True)

    def begin_pass(self) -> None:
        pass

    def publish(self, record: Record) -> None:
        try:
            self._stream.write(format_record(record, self._hex_floats))
        except (OSError, ValueError) as exc:
            raise SinkWriteFailed(f"log write failed: {exc}") from exc

    def end_pass(self) -> None:
        try:
            self._stream.flush()
        except (OSError, ValueError) as exc:
            raise SinkWriteFailed(f"log flush failed: {exc}") from exc

    def close(self) -> None:
        if self._owns_stream:
            self._stream.close()


class RemoteSink:
    """Send each record field as scalar OSC messages to the current remote address."""

    name = "remote"

    def __init__(self, transport: UdpTransport, state: RunState, namespace: str) -> None:
        self._transport = transport
        self._state = state
        self._namespace = namespace.rstrip("/")
        self._address: Optional[OscAddress] = None

    @property
    def enabled(self) -> bool:
        return self._state.remote_address is not None

    def begin_pass(self) -> None:
        self._address = self._state.remote_address

    def publish(self, record: Record) -> None:
        address = self._address
        if address is None:
            return
        base = f"{self._namespace}/marker/{record.station}"
        try:
            if record.has(DataField.POSITION) and record.position is not None:
                for axis, value in zip(POSITION_AXES, record.position):
                    self._transport.send(address, f"{base}/{axis}", "f", value)
            if record.has(DataField.EULER) and record.euler is not None:
                for axis, value in zip(EULER_AXES, record.euler):
                    self._transport.send(address, f"{base}/{axis}", "f", value)
            if record.has(DataField.TIMESTAMP) and record.timestamp is not None:
                self._transport.send(address, f"{base}/timestamp", "i", record.timestamp)
            self._transport.send(address, f"{base}/readtime", "d", record.read_time_ms)
        except OSError as exc:
            raise SinkWriteFailed(f"send to {address.url} failed: {exc}") from exc

    def end_pass(self) -> None:
        self._address = None

    def close(self) -> None:
        pass


class SignalDevice(Protocol):
    """Dynamic mapping device able to host named output signals."""

    def add_output(self, name: str, unit: Optional[str]) -> Any:  # pragma: no cover - protocol signature
        ...

    def now(self) -> Any:  # pragma: no cover - protocol signature
        ...

    def begin_batch(self, timetag: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def update(self, signal: Any, value: float, timetag: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def end_batch(self, timetag: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def remove_output(self, signal: Any) -> None:  # pragma: no cover - protocol signature
        ...

    def poll(self, timeout_ms: int = 0) -> None:  # pragma: no cover - protocol signature
        ...

    def free(self) -> None:  # pragma: no cover - protocol signature
        ...


def signal_name(station: int, kind: SignalKind) -> str:
    return f"/marker.{station}/{kind.value}"


class MappingSink:
    """Publish records onto lazily registered per-station signals."""

    name = "mapping"

    def __init__(self, device: SignalDevice, registry: Optional[SignalRegistry] = None) -> None:
        self._device = device
        self._registry = registry if registry is not None else SignalRegistry()
        self._timetag: Any = None
        self._rejected: set[int] = set()

    @property
    def registry(self) -> SignalRegistry:
        return self._registry

    def poll(self, timeout_ms: int = 0) -> None:
        self._device.poll(timeout_ms)

    def begin_pass(self) -> None:
        self._timetag = self._device.now()
        self._device.begin_batch(self._timetag)

    def publish(self, record: Record) -> None:
        if not self._register(record.station):
            return
        timetag = self._timetag if self._timetag is not None else self._device.now()
        if record.has(DataField.POSITION) and record.position is not None:
            for kind, value in zip(POSITION_KINDS, record.position):
                self._device.update(self._registry.get(record.station, kind), value, timetag)
        if record.has(DataField.EULER) and record.euler is not None:
            for kind, value in zip(EULER_KINDS, record.euler):
                self._device.update(self._registry.get(record.station, kind), value, timetag)

    def end_pass(self) -> None:
        if self._timetag is not None:
            self._device.end_batch(self._timetag)
        self._timetag = None

    def close(self) -> None:
        for key in list(self._registry):
            self._device.remove_output(self._registry.get(key.station, key.kind))
        self._registry.clear()
        self._rejected.clear()
        self._device.free()

    def _register(self, station: int) -> bool:
        if station in self._registry:
            return True
        if station in self._rejected:
            return False
        try:
            self._registry.ensure_station(
                station,
                lambda st, kind: self._device.add_output(signal_name(st, kind), kind.unit),
            )
        except ValueError as exc:
            self._rejected.add(station)
            logger.warning("Not registering signals: %s", exc)
            return False
        logger.info("Registered mapping signals for station %s", station)
        return True


class LibmapperDevice:
    """:class:`SignalDevice` backed by the optional ``libmapper`` package."""

    def __init__(self, alias: str) -> None:
        if mpr is None:
            raise RuntimeError(
                "Dynamic mapping requires the 'libmapper' package. Install it or disable mapping."
            )
        self._device = mpr.Device(alias)

    def add_output(self, name: str, unit: Optional[str]) -> Any:
        return self._device.add_signal(mpr.Direction.OUTGOING, name.lstrip("/"), 1, mpr.Type.FLOAT, unit)

    def now(self) -> Any:
        return mpr.Time()

    def begin_batch(self, timetag: Any) -> None:
        # updates until the next set_time/poll carry this tag
        self._device.set_time(timetag)

    def update(self, signal: Any, value: float, timetag: Any) -> None:
        _ = timetag
        signal.set_value(float(value))

    def end_batch(self, timetag: Any) -> None:
        _ = timetag
        self._device.update_maps()
        self._device.poll(0)

    def remove_output(self, signal: Any) -> None:
        self._device.remove_signal(signal)

    def poll(self, timeout_ms: int = 0) -> None:
        self._device.poll(timeout_ms)

    def free(self) -> None:
        self._device.free()


def create_mapping_sink(config: MappingConfig, device: Optional[SignalDevice] = None) -> Optional[MappingSink]:
    if not config.enabled:
        return None
    return MappingSink(
        device if device is not None else LibmapperDevice(config.alias),
        SignalRegistry(config.max_stations),
    )
