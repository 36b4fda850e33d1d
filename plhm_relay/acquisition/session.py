"""Device session lifecycle: search, open, configure, stream, drain, close."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional

from ..config import AppConfig
from ..hardware import (
    UNKNOWN_DEVICE_TYPE,
    DeviceError,
    DeviceNotFound,
    DeviceOpenFailed,
    ReadError,
    TrackerDevice,
)
from .fanout import FanoutEngine, Session
from .state import RunState

logger = logging.getLogger(__name__)


class SessionPhase(str, Enum):
    SEARCHING = "searching"
    OPENING = "opening"
    CONFIGURING = "configuring"
    STREAMING = "streaming"
    DRAINING = "draining"
    CLOSED = "closed"
    FAILED = "failed"


class ConfigurationFailed(RuntimeError):
    '''Raised when a step of the configuration sequence fails.'''

    def __init__(self, step: str, original: Exception) -> None:
        super().__init__(f"{step}: {original}")
        self.step = step
        self.original = original


class CycleStatus(str, Enum):
    STOPPED = "stopped"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(slots=True)
class CycleResult:
    status: CycleStatus
    stage: Optional[str] = None
    error: Optional[BaseException] = None

    @property
    def failed(self) -> bool:
        return self.status is CycleStatus.FAILED


class DeviceSessionMachine:
    """Drive one acquisition cycle per :meth:`run_cycle` call.

    The device handle is released on every exit path before the call returns.
    """

    def __init__(
        self,
        device: TrackerDevice,
        config: AppConfig,
        state: RunState,
        engine: FanoutEngine,
        *,
        has_listener: Callable[[], bool] = lambda: True,
        should_continue: Callable[[], bool] = lambda: True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._device = device
        self._config = config
        self._state = state
        self._engine = engine
        self._has_listener = has_listener
        self._should_continue = should_continue
        self._sleep = sleep
        self._phase = SessionPhase.CLOSED
        self.transitions: List[SessionPhase] = []
        self.session: Optional[Session] = None

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    def _enter(self, phase: SessionPhase) -> None:
        self._phase = phase
        self.transitions.append(phase)

    def run_cycle(self) -> CycleResult:
        self.transitions = []
        self.session = None
        device_cfg = self._config.device

        self._enter(SessionPhase.SEARCHING)
        try:
            found = self._device.find_device(device_cfg.path)
        except DeviceError as exc:
            logger.debug("Device discovery failed: %s", exc)
            found = False
        if not found:
            self._state.mark_device_found(False)
            self._enter(SessionPhase.FAILED)
            return CycleResult(
                CycleStatus.FAILED,
                stage="find_device",
                error=DeviceNotFound(f"Could not find device at {device_cfg.path}"),
            )
        self._state.mark_device_found(True)

        if self._config.acquisition.daemon and not self._has_listener():
            logger.debug("Nobody is listening; not opening %s", device_cfg.path)
            self._enter(SessionPhase.SEARCHING)
            return CycleResult(CycleStatus.SKIPPED)

        self._enter(SessionPhase.OPENING)
        try:
            self._device.open(device_cfg.path)
        except DeviceError as exc:
            self._state.mark_device_open(False)
            self._enter(SessionPhase.FAILED)
            error = exc if isinstance(exc, DeviceOpenFailed) else DeviceOpenFailed(str(exc))
            return CycleResult(CycleStatus.FAILED, stage="open_device", error=error)
        self._state.mark_device_open(True)

        result = CycleResult(CycleStatus.STOPPED)
        streamed = False
        try:
            self._enter(SessionPhase.CONFIGURING)
            self.session = self._configure()
            self._enter(SessionPhase.STREAMING)
            streamed = True
            result = self._stream(self.session)
        except ConfigurationFailed as exc:
            logger.warning("Configuration failed at %s", exc)
            self._enter(SessionPhase.FAILED)
            result = CycleResult(CycleStatus.FAILED, stage=exc.step, error=exc)
        finally:
            if streamed:
                self._enter(SessionPhase.DRAINING)
                self._drain()
            self._close()
        return result

    def _step(self, name: str, call: Callable[..., Any], *args: Any) -> Any:
        try:
            return call(*args)
        except DeviceError as exc:
            raise ConfigurationFailed(name, exc) from exc

    def _configure(self) -> Session:
        device = self._device
        device_cfg = self._config.device
        acquisition = self._config.acquisition

        # stop any continuous data left over from a previous run
        self._step("data_request", device.request_data)
        for _ in range(device_cfg.max_flush_reads):
            if not self._step("flush", device.read_until_timeout, device_cfg.flush_timeout_ms):
                break

        if device_cfg.reset:
            logger.info("Resetting device (takes about 10 seconds)")
            self._step("reset", device.reset)

        self._step("text_mode", device.text_mode)
        device_type = self._step("get_version", device.get_version)
        if not device_type or device_type == UNKNOWN_DEVICE_TYPE:
            logger.warning("Device type unknown.")
            device_type = UNKNOWN_DEVICE_TYPE
        self._step("read_bits", device.read_bits)
        stations = self._step("get_stations", device.get_stations)
        if not stations or stations < 1:
            raise ConfigurationFailed("get_stations", DeviceError("no active stations reported"))
        self._step("set_hemisphere", device.set_hemisphere, device_cfg.hemisphere)
        self._step("set_units", device.set_units, device_cfg.units)
        self._step("set_rate", device.set_rate, device_cfg.rate)
        fields = acquisition.requested_fields
        self._step("set_data_fields", device.set_data_fields, fields)
        self._step("binary_mode", device.binary_mode)
        if not acquisition.poll_mode:
            self._step("data_request_continuous", device.request_continuous)

        logger.info("Streaming %s station(s) from %s device", stations, device_type)
        return Session(
            device=device,
            station_count=int(stations),
            requested_fields=fields,
            device_type=device_type,
            poll_mode=acquisition.poll_mode,
        )

    def _stream(self, session: Session) -> CycleResult:
        period_us = self._config.acquisition.poll_period_us
        self._engine.reset_monitor()
        while self._state.running and self._should_continue():
            if not self._engine.run_pass(session):
                self._enter(SessionPhase.FAILED)
                return CycleResult(
                    CycleStatus.FAILED,
                    stage="read_record",
                    error=ReadError("data stream error"),
                )
            if period_us:
                self._sleep(period_us / 1_000_000.0)
        return CycleResult(CycleStatus.STOPPED)

    def _drain(self) -> None:
        device = self._device
        device_cfg = self._config.device
        try:
            device.request_data()
        except DeviceError as exc:
            logger.warning("Teardown data_request failed: %s", exc)
        for _ in range(device_cfg.drain_reads):
            try:
                device.read_until_timeout(device_cfg.flush_timeout_ms)
            except DeviceError as exc:
                logger.warning("Teardown read failed: %s", exc)
        try:
            device.text_mode()
        except DeviceError as exc:
            logger.warning("Teardown text_mode failed: %s", exc)

    def _close(self) -> None:
        try:
            self._device.close()
        except DeviceError as exc:
            logger.warning("Device close failed: %s", exc)
        finally:
            self._state.mark_device_open(False)
            self._enter(SessionPhase.CLOSED)
