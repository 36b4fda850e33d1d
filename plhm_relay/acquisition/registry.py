"""Per-station output signal registry for the dynamic mapping sink."""
from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Dict, Iterator, NamedTuple, Optional

from ..constants import DEFAULT_MAX_STATIONS, EULER_AXES, POSITION_AXES, POSITION_UNIT


class SignalKind(str, Enum):
    X = "x"
    Y = "y"
    Z = "z"
    AZIMUTH = "azimuth"
    ELEVATION = "elevation"
    ROLL = "roll"

    @property
    def unit(self) -> Optional[str]:
        return POSITION_UNIT if self.value in POSITION_AXES else None


POSITION_KINDS = tuple(SignalKind(axis) for axis in POSITION_AXES)
EULER_KINDS = tuple(SignalKind(axis) for axis in EULER_AXES)


class SignalKey(NamedTuple):
    station: int
    kind: SignalKind


SignalFactory = Callable[[int, SignalKind], Any]


class SignalRegistry:
    """Map ``(station, kind)`` to opaque signal handles, created on first use.

    ``max_stations`` bounds the station ids that may be registered.
    """

    def __init__(self, max_stations: int = DEFAULT_MAX_STATIONS) -> None:
        self._max_stations = max_stations
        self._signals: Dict[SignalKey, Any] = {}

    @property
    def max_stations(self) -> int:
        return self._max_stations

    def __contains__(self, station: object) -> bool:
        return isinstance(station, int) and SignalKey(station, SignalKind.X) in self._signals

    def __len__(self) -> int:
        return len(self._signals)

    def __iter__(self) -> Iterator[SignalKey]:
        return iter(self._signals)

    def ensure_station(self, station: int, factory: SignalFactory) -> bool:
        """Register all six signals for *station* unless present.

        Returns ``True`` when signals were created by this call.
        """

        if station in self:
            return False
        if station < 0 or station >= self._max_stations:
            raise ValueError(f"station {station} outside [0, {self._max_stations})")
        created = {SignalKey(station, kind): factory(station, kind) for kind in SignalKind}
        self._signals.update(created)
        return True

    def get(self, station: int, kind: SignalKind) -> Any:
        return self._signals[SignalKey(station, kind)]

    def clear(self) -> None:
        self._signals.clear()
