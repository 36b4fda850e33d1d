from __future__ import annotations

import socket
import struct
import threading

import pytest

from plhm_relay.transport import (
    AddressResolutionFailed,
    OscListener,
    OscReader,
    UdpTransport,
    encode_message,
    parse_osc_url,
    resolve_address,
    sender_host,
)


def test_encode_message_layout() -> None:
    payload = encode_message("/liberty/status", "s", ["sending"])
    assert payload.startswith(b"/liberty/status\x00")
    assert len(payload) % 4 == 0
    assert b",s\x00\x00" in payload
    assert payload.endswith(b"sending\x00")


def test_encode_message_packs_unsigned_ints_as_bit_pattern() -> None:
    payload = encode_message("/t", "i", [0xFFFFFFFE])
    assert payload[-4:] == b"\xff\xff\xff\xfe"


def test_encode_then_read_mixed_arguments() -> None:
    payload = encode_message("/liberty/marker/1/x", "fids", [1.5, 42, 3.25, "abc"])
    path, typetags, args = OscReader(payload).read_message()
    assert path == "/liberty/marker/1/x"
    assert typetags == "fids"
    assert args == [1.5, 42, 3.25, "abc"]


def test_encode_rejects_bad_input() -> None:
    with pytest.raises(ValueError):
        encode_message("nopath", "", [])
    with pytest.raises(ValueError):
        encode_message("/a", "ii", [1])
    with pytest.raises(ValueError):
        encode_message("/a", "b", [b"x"])


def test_reader_handles_messages_without_arguments() -> None:
    assert OscReader(b"/stop\x00\x00\x00").read_message() == ("/stop", "", [])
    assert OscReader(encode_message("/stop", "", [])).read_message() == ("/stop", "", [])


def test_reader_rejects_malformed_packets() -> None:
    with pytest.raises(ValueError):
        OscReader(b"/a\x00\x00,i\x00\x00\x00\x01").read_message()
    with pytest.raises(ValueError):
        OscReader(b"#bundle\x00" + b"\x00" * 8).read_message()
    with pytest.raises(ValueError):
        OscReader(b"/a\x00\x00xi\x00\x00" + struct.pack(">i", 1)).read_message()


def test_parse_osc_url_variants() -> None:
    assert parse_osc_url("osc.udp://localhost:9999") == ("localhost", 9999)
    assert parse_osc_url("127.0.0.1:7000/") == ("127.0.0.1", 7000)
    with pytest.raises(AddressResolutionFailed):
        parse_osc_url("osc.tcp://localhost:9999")
    with pytest.raises(AddressResolutionFailed):
        parse_osc_url("localhost")
    with pytest.raises(AddressResolutionFailed):
        parse_osc_url("osc.udp://localhost:port")


def test_resolve_address() -> None:
    address = resolve_address("127.0.0.1", 9000)
    assert address.sockaddr == ("127.0.0.1", 9000)
    assert address.url == "osc.udp://127.0.0.1:9000"
    with pytest.raises(AddressResolutionFailed):
        resolve_address("", 9000)
    with pytest.raises(AddressResolutionFailed):
        resolve_address("127.0.0.1", 0)
    with pytest.raises(AddressResolutionFailed):
        resolve_address("127.0.0.1", "abc")


def test_sender_host_strips_only_mapped_ipv4() -> None:
    assert sender_host("::ffff:192.168.1.20") == "192.168.1.20"
    assert sender_host("::ffff:zzzz") == "::ffff:zzzz"
    assert sender_host("10.0.0.1") == "10.0.0.1"


def test_listener_dispatch_routes_by_path_and_typetags() -> None:
    listener = OscListener()
    calls = []
    listener.register("/liberty/start", "i", lambda sender, args: calls.append(("port", sender, args)))
    listener.register("/liberty/start", "si", lambda sender, args: calls.append(("host", sender, args)))

    sender = ("10.0.0.5", 5555)
    assert listener.dispatch(encode_message("/liberty/start", "i", [9000]), sender) is True
    assert listener.dispatch(encode_message("/liberty/start", "si", ["h", 9001]), sender) is True
    assert listener.dispatch(encode_message("/liberty/start", "f", [1.0]), sender) is False
    assert listener.dispatch(b"garbage", sender) is False

    assert calls == [("port", sender, [9000]), ("host", sender, ["h", 9001])]


def test_listener_survives_handler_errors() -> None:
    listener = OscListener()

    def broken(sender, args):
        raise RuntimeError("boom")

    listener.register("/x", "", broken)
    assert listener.dispatch(encode_message("/x", "", []), ("127.0.0.1", 1)) is True


def test_listener_receives_over_udp_and_transport_sends() -> None:
    listener = OscListener(host="127.0.0.1", port=0, poll_timeout_s=0.05)
    received = threading.Event()
    captured = []

    def handler(sender, args):
        captured.append(args)
        received.set()

    listener.register("/liberty/status", "i", handler)
    listener.start()
    try:
        host, port = listener.address
        with UdpTransport() as transport:
            transport.send(resolve_address(host, port), "/liberty/status", "i", 4242)
            assert received.wait(2.0)
    finally:
        listener.stop()

    assert captured == [[4242]]
    assert listener.address is None


def test_transport_delivers_to_plain_socket() -> None:
    receiver = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    receiver.bind(("127.0.0.1", 0))
    receiver.settimeout(2.0)
    try:
        port = receiver.getsockname()[1]
        transport = UdpTransport()
        transport.send(resolve_address("127.0.0.1", port), "/liberty/marker/0/x", "f", 2.5)
        transport.close()
        data, _ = receiver.recvfrom(1024)
    finally:
        receiver.close()
    assert OscReader(data).read_message() == ("/liberty/marker/0/x", "f", [2.5])
