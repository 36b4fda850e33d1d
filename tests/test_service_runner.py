from __future__ import annotations

from plhm_relay.acquisition import RelayService
from plhm_relay.config import AppConfig
from plhm_relay.service import ServiceRunner
from plhm_relay.transport import OscListener, encode_message


class FakeTransport:
    def __init__(self) -> None:
        self.sent = []

    def send(self, address, path, typetags, *args):
        self.sent.append((address, path, typetags, args))

    def close(self):
        pass


class OneShotTracker:
    """Device that is never found; lets the runner exercise a single cycle."""

    def __init__(self, on_search=None) -> None:
        self.on_search = on_search

    def find_device(self, path):
        if self.on_search is not None:
            self.on_search()
        return False


def make_service(tracker, transport=None, daemon=False) -> RelayService:
    config = AppConfig()
    config.acquisition.euler = True
    config.acquisition.daemon = daemon
    config.acquisition.restart_delay_s = 0.0
    config.acquisition.show_rate = False
    return RelayService(config, device_factory=lambda: tracker, transport=transport or FakeTransport())


def test_runner_without_listener_just_runs_service() -> None:
    service = make_service(OneShotTracker(), daemon=True)
    service.request_stop()
    runner = ServiceRunner(service)
    assert runner.listener is None
    assert runner.listen_address is None
    runner.run()
    assert service.stats.cycles == 0


def test_runner_binds_listener_for_the_duration_of_the_run() -> None:
    seen = []
    listener = OscListener(host="127.0.0.1", port=0)
    service_ref = []

    def on_search():
        seen.append(runner.listen_address)
        service_ref[0].request_stop()

    service = make_service(OneShotTracker(on_search), daemon=True)
    service_ref.append(service)
    runner = ServiceRunner(service, listener=listener)
    runner.run()

    assert seen and seen[0] is not None
    assert seen[0][0] == "127.0.0.1"
    assert runner.listen_address is None


def test_runner_registers_command_channel() -> None:
    transport = FakeTransport()
    service = make_service(OneShotTracker(), transport=transport)
    listener = OscListener()
    ServiceRunner(service, listener=listener)

    sender = ("127.0.0.1", 50000)
    listener.dispatch(encode_message("/liberty/stop", "", []), sender)
    assert service.state.running is False

    listener.dispatch(encode_message("/liberty/start", "i", [9100]), sender)
    assert service.state.running is True
    assert service.state.remote_address.port == 9100

    listener.dispatch(encode_message("/liberty/status", "i", [9101]), sender)
    _, path, typetags, args = transport.sent[-1]
    assert (path, typetags, args) == ("/liberty/status", "s", ("device_not_found",))


def test_runner_creates_listener_from_port() -> None:
    service = make_service(OneShotTracker())
    runner = ServiceRunner(service, listen_host="127.0.0.1", listen_port=9)
    assert isinstance(runner.listener, OscListener)
    assert runner.listen_address is None
