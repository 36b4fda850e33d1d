from __future__ import annotations

import pytest

from plhm_relay.acquisition.state import RunState
from plhm_relay.commands import CommandChannel, destination_from
from plhm_relay.transport import AddressResolutionFailed, OscAddress, OscListener, encode_message


class FakeTransport:
    def __init__(self, fail: bool = False) -> None:
        self.sent = []
        self.fail = fail

    def send(self, address, path, typetags, *args):
        if self.fail:
            raise OSError("network unreachable")
        self.sent.append((address, path, typetags, args))


def fake_resolver(host: str, port: int) -> OscAddress:
    if host == "nowhere.invalid":
        raise AddressResolutionFailed(f"cannot resolve {host}")
    return OscAddress(host=host, port=port, sockaddr=(host, port))


SENDER = ("192.168.1.20", 40000)


@pytest.fixture
def state() -> RunState:
    return RunState(running=False)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def channel(state, transport) -> CommandChannel:
    return CommandChannel(state, transport, "/liberty", resolver=fake_resolver)


def test_destination_from_port_uses_sender_host() -> None:
    by_port = destination_from(SENDER, [9000], fake_resolver)
    by_pair = destination_from(SENDER, ["192.168.1.20", 9000], fake_resolver)
    assert by_port == by_pair

    mapped = destination_from(("::ffff:10.0.0.7", 1), [9000], fake_resolver)
    assert mapped.host == "10.0.0.7"

    with pytest.raises(AddressResolutionFailed):
        destination_from(SENDER, [], fake_resolver)


def test_start_with_port_and_with_host_port_are_equivalent(state, channel) -> None:
    channel.handle_start(SENDER, [9000])
    first = state.remote_address
    assert state.running is True

    state.stop()
    channel.handle_start(SENDER, ["192.168.1.20", 9000])
    assert state.remote_address == first
    assert state.running is True


def test_start_without_arguments_restarts_previous_destination(state, channel) -> None:
    channel.handle_start(SENDER, [9000])
    previous = state.remote_address
    channel.handle_stop(SENDER, [])
    assert state.running is False

    channel.handle_start(SENDER, [])
    assert state.running is True
    assert state.remote_address == previous


def test_start_without_arguments_and_no_destination_is_ignored(state, channel, caplog) -> None:
    with caplog.at_level("ERROR"):
        channel.handle_start(SENDER, [])
    assert state.running is False
    assert state.remote_address is None
    assert "no previous remote address" in caplog.text


def test_failed_resolution_keeps_previous_state(state, channel) -> None:
    channel.handle_start(SENDER, [9000])
    previous = state.remote_address
    state.stop()

    channel.handle_start(SENDER, ["nowhere.invalid", 9001])
    assert state.remote_address == previous
    assert state.running is False


def test_status_reply_goes_to_requested_destination(state, channel, transport) -> None:
    channel.handle_status(SENDER, [7000])
    assert transport.sent == [
        (fake_resolver("192.168.1.20", 7000), "/liberty/status", "s", ("waiting",)),
    ]

    state.start()
    state.mark_device_open(True)
    channel.handle_status(SENDER, ["10.1.1.1", 7001])
    address, path, typetags, args = transport.sent[-1]
    assert address.host == "10.1.1.1"
    assert args == ("data_stream_error",)


def test_status_does_not_change_state(state, channel) -> None:
    channel.handle_status(SENDER, [7000])
    assert state.running is False
    assert state.remote_address is None


def test_status_reply_errors_are_logged(state) -> None:
    channel = CommandChannel(state, FakeTransport(fail=True), "/liberty", resolver=fake_resolver)
    channel.handle_status(SENDER, [7000])


def test_register_wires_all_signatures_on_listener(state, channel) -> None:
    listener = OscListener()
    channel.register(listener)

    assert listener.dispatch(encode_message("/liberty/start", "i", [9000]), SENDER)
    assert state.running is True
    assert listener.dispatch(encode_message("/liberty/stop", "", []), SENDER)
    assert state.running is False
    assert listener.dispatch(encode_message("/liberty/start", "", []), SENDER)
    assert state.running is True
    assert not listener.dispatch(encode_message("/other/stop", "", []), SENDER)
    assert [path for path, _, _ in channel.signatures()].count("/liberty/start") == 3
