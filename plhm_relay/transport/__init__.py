"""OSC message transport."""
from __future__ import annotations

from .osc import (
    AddressResolutionFailed,
    OscAddress,
    OscListener,
    OscReader,
    UdpTransport,
    encode_message,
    parse_osc_url,
    resolve_address,
    sender_host,
)

__all__ = [
    "AddressResolutionFailed",
    "OscAddress",
    "OscListener",
    "OscReader",
    "UdpTransport",
    "encode_message",
    "parse_osc_url",
    "resolve_address",
    "sender_host",
]
