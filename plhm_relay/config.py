"""Configuration management for the tracker relay."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

from .constants import (
    DEFAULT_DEVICE_PATH,
    DEFAULT_MAPPER_ALIAS,
    DEFAULT_MAX_STATIONS,
    DEFAULT_NAMESPACE,
    DEFAULT_RATE_HZ,
    DataField,
)

SUPPORTED_TRANSPORTS = {"plhm", "sim"}
SUPPORTED_UNITS = {"metric", "imperial"}


@dataclass(slots=True)
class DeviceConfig:
    """Tracker connection and configuration parameters."""

    transport: str = "plhm"
    path: str = DEFAULT_DEVICE_PATH
    driver: Optional[str] = None
    reset: bool = False
    rate: int = DEFAULT_RATE_HZ
    hemisphere: str = "+z"
    units: str = "metric"
    flush_timeout_ms: int = 500
    max_flush_reads: int = 64
    drain_reads: int = 3
    sim_stations: int = 2

    def __post_init__(self) -> None:
        self.transport = (self.transport or "plhm").strip().lower()
        if self.transport not in SUPPORTED_TRANSPORTS:
            allowed = ", ".join(sorted(SUPPORTED_TRANSPORTS))
            raise ValueError(f"transport must be one of {allowed}")
        self.units = (self.units or "metric").strip().lower()
        if self.units not in SUPPORTED_UNITS:
            allowed = ", ".join(sorted(SUPPORTED_UNITS))
            raise ValueError(f"units must be one of {allowed}")
        if self.driver is not None:
            self.driver = str(self.driver).strip() or None
        try:
            timeout = int(self.flush_timeout_ms)
        except (TypeError, ValueError):
            timeout = 500
        self.flush_timeout_ms = max(timeout, 1)
        try:
            reads = int(self.max_flush_reads)
        except (TypeError, ValueError):
            reads = 64
        self.max_flush_reads = max(reads, 1)
        try:
            drains = int(self.drain_reads)
        except (TypeError, ValueError):
            drains = 3
        self.drain_reads = max(drains, 0)
        try:
            stations = int(self.sim_stations)
        except (TypeError, ValueError):
            stations = 2
        self.sim_stations = max(stations, 1)


@dataclass(slots=True)
class AcquisitionConfig:
    '''Runtime behaviour of the acquisition loop.'''

    daemon: bool = False
    position: bool = False
    euler: bool = False
    timestamp: bool = False
    poll_period_ms: Optional[float] = None
    restart_delay_s: float = 1.0
    show_rate: bool = True
    rate_window: int = 30

    def __post_init__(self) -> None:
        if self.poll_period_ms is not None:
            period = float(self.poll_period_ms)
            if period < 0:
                raise ValueError("poll_period_ms must be zero or positive")
            self.poll_period_ms = period
        try:
            delay = float(self.restart_delay_s)
        except (TypeError, ValueError):
            delay = 1.0
        self.restart_delay_s = max(delay, 0.0)
        try:
            window = int(self.rate_window)
        except (TypeError, ValueError):
            window = 30
        self.rate_window = max(window, 1)

    @property
    def requested_fields(self) -> DataField:
        fields = DataField.NONE
        if self.position:
            fields |= DataField.POSITION
        if self.euler:
            fields |= DataField.EULER
        if self.timestamp:
            fields |= DataField.TIMESTAMP
        return fields

    @property
    def poll_mode(self) -> bool:
        return self.poll_period_ms is not None

    @property
    def poll_period_us(self) -> Optional[int]:
        if self.poll_period_ms is None:
            return None
        return int(self.poll_period_ms * 1000)


@dataclass(slots=True)
class OutputConfig:
    """Text log sink settings."""

    path: Optional[str] = None
    hex_floats: bool = False

    def __post_init__(self) -> None:
        if isinstance(self.path, Path):
            self.path = str(self.path)
        if self.path is not None and not str(self.path).strip():
            self.path = None

    @property
    def enabled(self) -> bool:
        return self.path is not None

    @property
    def to_stdout(self) -> bool:
        return self.path == "-"


@dataclass(slots=True)
class NetworkConfig:
    """OSC destination and command channel settings."""

    send_url: Optional[str] = None
    listen_host: str = "0.0.0.0"
    listen_port: int = 0
    namespace: str = DEFAULT_NAMESPACE

    def __post_init__(self) -> None:
        if self.send_url is not None:
            self.send_url = str(self.send_url).strip() or None
        try:
            port = int(self.listen_port)
        except (TypeError, ValueError):
            port = 0
        if port < 0 or port > 65535:
            raise ValueError("listen_port must be between 0 and 65535")
        self.listen_port = port
        namespace = "/" + (self.namespace or DEFAULT_NAMESPACE).strip().strip("/")
        self.namespace = namespace if namespace != "/" else DEFAULT_NAMESPACE


@dataclass(slots=True)
class MappingConfig:
    """Dynamic signal mapping settings."""

    enabled: bool = False
    alias: str = DEFAULT_MAPPER_ALIAS
    max_stations: int = DEFAULT_MAX_STATIONS

    def __post_init__(self) -> None:
        self.alias = (self.alias or DEFAULT_MAPPER_ALIAS).strip() or DEFAULT_MAPPER_ALIAS
        try:
            limit = int(self.max_stations)
        except (TypeError, ValueError):
            limit = DEFAULT_MAX_STATIONS
        self.max_stations = max(limit, 1)


@dataclass(slots=True)
class AppConfig:
    """Top-level application configuration bundle."""

    device: DeviceConfig = field(default_factory=DeviceConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    mapping: MappingConfig = field(default_factory=MappingConfig)

    @property
    def requested_fields(self) -> DataField:
        return self.acquisition.requested_fields

    def validate(self) -> None:
        """Raise ``ValueError`` when the configuration cannot run."""

        if not self.requested_fields:
            raise ValueError("No data requested; enable position, euler or timestamp")

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "AppConfig":
        """Create a configuration instance from a nested dictionary."""

        def _section(name: str, factory: Any) -> Any:
            data = payload.get(name, {}) if payload else {}
            if isinstance(data, dict):
                return factory(**data)
            raise TypeError(f"Expected mapping for section '{name}', got {type(data).__name__}")

        return cls(
            device=_section("device", DeviceConfig),
            acquisition=_section("acquisition", AcquisitionConfig),
            output=_section("output", OutputConfig),
            network=_section("network", NetworkConfig),
            mapping=_section("mapping", MappingConfig),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Return a serialisable representation of the configuration."""

        def _asdict(obj: Any) -> Dict[str, Any]:
            return {name: getattr(obj, name) for name in obj.__dataclass_fields__}  # type: ignore[attr-defined]

        return {
            'device': _asdict(self.device),
            'acquisition': _asdict(self.acquisition),
            'output': _asdict(self.output),
            'network': _asdict(self.network),
            'mapping': _asdict(self.mapping),
        }


def load_config(path: Optional[Path]) -> AppConfig:
    """Load configuration from *path* if provided, otherwise return defaults."""

    if path is None:
        return AppConfig()
    resolved = path.expanduser()
    if not resolved.exists():
        return AppConfig()
    payload: Dict[str, Any]
    suffix = resolved.suffix.lower()
    if suffix in {".json", ".jsn"}:
        payload = _load_json(resolved)
    elif suffix in {".toml", ".tml"}:
        payload = _load_toml(resolved)
    elif suffix in {".yaml", ".yml"}:
        payload = _load_yaml(resolved)
    else:
        raise ValueError(f"Unsupported configuration format: {resolved.suffix}")
    return AppConfig.from_dict(payload)


def _load_json(path: Path) -> Dict[str, Any]:
    import json

    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _load_toml(path: Path) -> Dict[str, Any]:
    import tomllib

    with path.open("rb") as handle:
        return tomllib.load(handle)


def _load_yaml(path: Path) -> Dict[str, Any]:
    import yaml

    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}
