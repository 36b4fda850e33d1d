"""Relay service orchestrating the tracker session, sinks, and retries."""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

from ..config import AppConfig, NetworkConfig
from ..hardware import TrackerDevice, create_device
from ..transport import OscAddress, UdpTransport, parse_osc_url, resolve_address
from .fanout import FanoutEngine, FanoutStats, FrequencyMonitor
from .session import CycleResult, CycleStatus, DeviceSessionMachine
from .sinks import LogSink, MappingSink, RemoteSink, Sink, SignalDevice, create_mapping_sink
from .state import RunState

logger = logging.getLogger(__name__)


class AcquisitionFailure(RuntimeError):
    '''Raised outside daemon mode when a cycle ends in failure.'''

    def __init__(self, stage: str, error: Optional[BaseException]) -> None:
        detail = str(error) if error is not None else "failed"
        super().__init__(f"{stage}: {detail}")
        self.stage = stage
        self.error = error


@dataclass(slots=True)
class ServiceStats:
    cycles: int = 0
    failures: int = 0
    skipped: int = 0
    last_result: Optional[CycleResult] = None


def initial_remote_address(network: NetworkConfig) -> Optional[OscAddress]:
    """Resolve ``network.send_url``; raises ``AddressResolutionFailed``."""

    if not network.send_url:
        return None
    host, port = parse_osc_url(network.send_url)
    return resolve_address(host, port)


class RelayService:
    """Run acquisition cycles until stopped, restarting them in daemon mode."""

    def __init__(
        self,
        config: AppConfig,
        state: Optional[RunState] = None,
        *,
        device_factory: Optional[Callable[[], TrackerDevice]] = None,
        transport: Optional[UdpTransport] = None,
        mapping_device: Optional[SignalDevice] = None,
        log_sink: Optional[LogSink] = None,
        monitor: Optional[FrequencyMonitor] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        config.validate()
        self._config = config
        self._state = state if state is not None else RunState(
            running=True,
            remote_address=initial_remote_address(config.network),
        )
        self._device_factory = device_factory or (lambda: create_device(config.device))
        self._owns_transport = transport is None
        self._transport = transport if transport is not None else UdpTransport()
        self._mapping_device = mapping_device
        self._log_sink = log_sink
        self._monitor = monitor
        self._sleep = sleep
        self._stop_requested = threading.Event()
        self._stats = ServiceStats()
        self._mapping_sink: Optional[MappingSink] = None
        self._engine: Optional[FanoutEngine] = None

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def transport(self) -> UdpTransport:
        return self._transport

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def stats(self) -> ServiceStats:
        return self._stats

    @property
    def fanout_stats(self) -> Optional[FanoutStats]:
        return self._engine.stats if self._engine is not None else None

    def request_stop(self) -> None:
        self._stop_requested.set()
        self._state.stop()

    def has_listener(self) -> bool:
        """Whether any sink would receive data if the device were opened."""

        if not self._state.running:
            return False
        return (
            self._state.remote_address is not None
            or self._config.output.enabled
            or self._config.mapping.enabled
        )

    def _open_sinks(self, sinks: List[Sink]) -> None:
        """Append enabled sinks to *sinks* as each one opens."""

        log_sink = self._log_sink or LogSink.from_config(self._config.output)
        if log_sink is not None:
            self._log_sink = log_sink
            sinks.append(log_sink)
        sinks.append(RemoteSink(self._transport, self._state, self._config.network.namespace))
        self._mapping_sink = create_mapping_sink(self._config.mapping, self._mapping_device)
        if self._mapping_sink is not None:
            sinks.append(self._mapping_sink)

    def _close_sinks(self, sinks: List[Sink]) -> None:
        for sink in sinks:
            try:
                sink.close()
            except Exception as exc:  # pylint: disable=broad-except
                logger.warning("Closing sink '%s' failed: %s", getattr(sink, "name", sink), exc)
        self._mapping_sink = None
        if self._owns_transport:
            self._transport.close()

    def _make_monitor(self) -> Optional[FrequencyMonitor]:
        if self._monitor is not None:
            return self._monitor
        acquisition = self._config.acquisition
        if not acquisition.show_rate:
            return None
        return FrequencyMonitor(window=acquisition.rate_window)

    def run(self) -> None:
        acquisition = self._config.acquisition
        sinks: List[Sink] = []
        try:
            device = self._device_factory()
            self._open_sinks(sinks)
            self._engine = FanoutEngine(self._state, sinks, self._make_monitor())
            machine = DeviceSessionMachine(
                device,
                self._config,
                self._state,
                self._engine,
                has_listener=self.has_listener,
                should_continue=lambda: not self._stop_requested.is_set(),
                sleep=self._sleep,
            )
            delay = 0.0
            while not self._stop_requested.is_set():
                if delay > 0 and self._stop_requested.wait(delay):
                    break
                delay = acquisition.restart_delay_s
                self._poll_mapping()
                result = machine.run_cycle()
                self._record(result)
                if acquisition.daemon:
                    continue
                if result.failed:
                    raise AcquisitionFailure(result.stage or "acquisition", result.error)
                break
        finally:
            self._close_sinks(sinks)

    def _poll_mapping(self) -> None:
        if self._mapping_sink is None:
            return
        try:
            self._mapping_sink.poll(0)
        except Exception as exc:  # pylint: disable=broad-except
            logger.warning("Mapping device poll failed: %s", exc)

    def _record(self, result: CycleResult) -> None:
        self._stats.cycles += 1
        self._stats.last_result = result
        if result.status is CycleStatus.SKIPPED:
            self._stats.skipped += 1
            return
        if not result.failed:
            return
        self._stats.failures += 1
        if not self._config.acquisition.daemon:
            return
        if result.stage == "find_device":
            logger.debug("Device not found; retrying")
        else:
            logger.warning("Cycle failed at %s: %s; retrying", result.stage, result.error)
