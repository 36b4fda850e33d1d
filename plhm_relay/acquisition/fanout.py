"""Distribute decoded tracker records to every enabled sink."""
from __future__ import annotations

import logging
import sys
import time
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

from ..constants import DataField
from ..hardware import DeviceError, TrackerDevice
from .sinks import Sink
from .state import RunState

logger = logging.getLogger(__name__)


def _write_rate_line(rate_hz: float) -> None:
    sys.stderr.write(f"Update frequency: {rate_hz:0.2f} Hz           \r")
    sys.stderr.flush()


class FrequencyMonitor:
    """Estimate the pass rate every *window* passes."""

    def __init__(
        self,
        window: int = 30,
        clock: Callable[[], float] = time.monotonic,
        emit: Optional[Callable[[float], None]] = _write_rate_line,
    ) -> None:
        self._window = max(int(window), 1)
        self._clock = clock
        self._emit = emit
        self._count = 0
        self._checkpoint: Optional[float] = None
        self.last_rate_hz: Optional[float] = None

    def reset(self) -> None:
        self._count = 0
        self._checkpoint = None

    def tick(self) -> Optional[float]:
        """Count one pass; return the new rate when a window completes.

        The first tick after a reset only sets the checkpoint, so every window
        spans exactly *window* intervals.
        """

        if self._checkpoint is None:
            self._checkpoint = self._clock()
            return None
        self._count += 1
        if self._count < self._window:
            return None
        now = self._clock()
        elapsed = now - self._checkpoint
        self._checkpoint = now
        self._count = 0
        if elapsed <= 0:
            return None
        rate = self._window / elapsed
        self.last_rate_hz = rate
        if self._emit is not None:
            try:
                self._emit(rate)
            except (OSError, ValueError):
                logger.debug("Could not write frequency line", exc_info=True)
        return rate


@dataclass(slots=True)
class Session:
    """Configured device session; created only after configuration succeeds."""

    device: TrackerDevice
    station_count: int
    requested_fields: DataField
    device_type: str
    poll_mode: bool


@dataclass(slots=True)
class FanoutStats:
    passes: int = 0
    records: int = 0
    read_failures: int = 0
    sink_failures: int = 0


class FanoutEngine:
    """Read one record per station per pass and hand it to every sink."""

    def __init__(
        self,
        state: RunState,
        sinks: Iterable[Sink],
        monitor: Optional[FrequencyMonitor] = None,
    ) -> None:
        self._state = state
        self._sinks: List[Sink] = list(sinks)
        self._monitor = monitor
        self._stats = FanoutStats()

    @property
    def stats(self) -> FanoutStats:
        return self._stats

    @property
    def sinks(self) -> List[Sink]:
        return list(self._sinks)

    def reset_monitor(self) -> None:
        if self._monitor is not None:
            self._monitor.reset()

    def run_pass(self, session: Session) -> bool:
        """Run one streaming iteration; return ``False`` when a read failed."""

        if self._monitor is not None:
            self._monitor.tick()
        self._stats.passes += 1
        if session.poll_mode:
            try:
                session.device.request_data()
            except DeviceError as exc:
                logger.warning("Data request failed: %s", exc)
                self._state.mark_data_good(False)
                self._stats.read_failures += 1
                return False

        self._each_sink("begin_pass")
        try:
            for station in range(session.station_count):
                try:
                    record = session.device.read_record(station)
                except DeviceError as exc:
                    logger.warning("Record read failed for station %s: %s", station, exc)
                    self._state.mark_data_good(False)
                    self._stats.read_failures += 1
                    return False
                self._state.mark_data_good(True)
                self._stats.records += 1
                self._each_sink("publish", record)
        finally:
            self._each_sink("end_pass")
        return True

    def _each_sink(self, method: str, *args) -> None:
        for sink in self._sinks:
            try:
                getattr(sink, method)(*args)
            except Exception as exc:  # pylint: disable=broad-except
                self._stats.sink_failures += 1
                logger.warning("Sink '%s' %s failed: %s", getattr(sink, "name", sink), method, exc)
