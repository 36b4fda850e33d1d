"""
Minimal OSC (Open Sound Control) transport over UDP.

Provides the message codec, destination addresses, a fire-and-forget
sender and a threaded listener that dispatches inbound messages to
handlers registered by (path, typetags).
"""
from __future__ import annotations

import ipaddress
import logging
import socket
import struct
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

OSC_URL_PREFIX = "osc.udp://"
MAX_DATAGRAM = 65535

MessageHandler = Callable[[Tuple[str, int], List[Any]], None]


class AddressResolutionFailed(ValueError):
    """Raised when a host/port pair cannot be turned into a destination."""


@dataclass(slots=True, frozen=True)
class OscAddress:
    """Resolved UDP destination for outbound messages."""

    host: str
    port: int
    sockaddr: Tuple[str, int]

    @property
    def url(self) -> str:
        return f"{OSC_URL_PREFIX}{self.host}:{self.port}"


def resolve_address(host: str, port: int) -> OscAddress:
    """Resolve *host* and *port* to an :class:`OscAddress`."""

    host = (host or "").strip()
    if not host:
        raise AddressResolutionFailed("host must not be empty")
    try:
        port = int(port)
    except (TypeError, ValueError) as exc:
        raise AddressResolutionFailed(f"invalid port {port!r}") from exc
    if port <= 0 or port > 65535:
        raise AddressResolutionFailed(f"port {port} out of range")
    try:
        infos = socket.getaddrinfo(host, port, socket.AF_INET, socket.SOCK_DGRAM)
    except (socket.gaierror, UnicodeError) as exc:
        raise AddressResolutionFailed(f"cannot resolve {host}:{port}: {exc}") from exc
    if not infos:
        raise AddressResolutionFailed(f"cannot resolve {host}:{port}")
    sockaddr = infos[0][4]
    return OscAddress(host=host, port=port, sockaddr=(sockaddr[0], sockaddr[1]))


def parse_osc_url(url: str) -> Tuple[str, int]:
    """Split ``osc.udp://host:port`` (or ``host:port``) into its parts."""

    text = (url or "").strip()
    if text.startswith(OSC_URL_PREFIX):
        text = text[len(OSC_URL_PREFIX):]
    elif "://" in text:
        raise AddressResolutionFailed(f"unsupported OSC URL scheme in '{url}'")
    text = text.rstrip("/")
    host, sep, port_text = text.rpartition(":")
    if not sep or not host:
        raise AddressResolutionFailed(f"OSC URL '{url}' must include host and port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    try:
        port = int(port_text)
    except ValueError as exc:
        raise AddressResolutionFailed(f"invalid port in OSC URL '{url}'") from exc
    return host, port


def sender_host(host: str) -> str:
    """Return *host* with an IPv4-mapped IPv6 prefix removed."""

    # Dual-stack sockets report IPv4 peers as ::ffff:a.b.c.d.
    if host.lower().startswith("::ffff:"):
        candidate = host[7:]
        try:
            ipaddress.IPv4Address(candidate)
        except ValueError:
            return host
        return candidate
    return host


def _pad(data: bytes) -> bytes:
    return data + b"\x00" * (4 - (len(data) % 4))


def encode_message(path: str, typetags: str, args: Sequence[Any]) -> bytes:
    """Encode a single OSC message."""

    if not path.startswith("/"):
        raise ValueError(f"OSC path must start with '/': {path!r}")
    if len(typetags) != len(args):
        raise ValueError("typetags and arguments differ in length")
    chunks = [_pad(path.encode("utf-8")), _pad(("," + typetags).encode("ascii"))]
    for tag, value in zip(typetags, args):
        if tag == "i":
            chunks.append(struct.pack(">I", int(value) & 0xFFFFFFFF))
        elif tag == "f":
            chunks.append(struct.pack(">f", float(value)))
        elif tag == "d":
            chunks.append(struct.pack(">d", float(value)))
        elif tag == "s":
            chunks.append(_pad(str(value).encode("utf-8")))
        else:
            raise ValueError(f"Unsupported OSC arg type: {tag}")
    return b"".join(chunks)


class OscReader:
    """Parse a single OSC message packet."""

    def __init__(self, data: bytes):
        self.data = data
        self.i = 0
        self.n = len(data)

    def _read_padded_string(self) -> str:
        start = self.i
        try:
            end = self.data.index(b'\x00', start)
        except ValueError:
            raise ValueError("OSC string not null-terminated")
        s = self.data[start:end].decode('utf-8', errors='replace')
        self.i = (end + 4) & ~0x03
        if self.i > self.n:
            raise ValueError("OSC string padding overflow")
        return s

    def _read(self, fmt: str, size: int, label: str) -> Any:
        if self.i + size > self.n:
            raise ValueError(f"OSC {label} truncated")
        val = struct.unpack(fmt, self.data[self.i:self.i + size])[0]
        self.i += size
        return val

    def read_message(self) -> Tuple[str, str, List[Any]]:
        """Return ``(path, typetags, args)``; raises ``ValueError`` when malformed."""

        address = self._read_padded_string()
        if not address:
            raise ValueError("Empty OSC address")
        if address == "#bundle":
            raise ValueError("OSC bundles are not supported")
        if self.i >= self.n:
            return address, "", []
        typetags = self._read_padded_string()
        if not typetags.startswith(','):
            raise ValueError("OSC typetags missing ',' prefix")
        argspec = typetags[1:]
        args: List[Any] = []
        for t in argspec:
            if t == 'i':
                args.append(self._read(">i", 4, "int32"))
            elif t == 'f':
                args.append(self._read(">f", 4, "float32"))
            elif t == 'd':
                args.append(self._read(">d", 8, "float64"))
            elif t == 's':
                args.append(self._read_padded_string())
            else:
                raise ValueError(f"Unsupported OSC arg type: {t}")
        return address, argspec, args


class UdpTransport:
    """Fire-and-forget OSC sender sharing one UDP socket."""

    def __init__(self) -> None:
        self._sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        self._lock = threading.Lock()

    def send(self, address: OscAddress, path: str, typetags: str, *args: Any) -> None:
        payload = encode_message(path, typetags, args)
        with self._lock:
            self._sock.sendto(payload, address.sockaddr)

    def close(self) -> None:
        with self._lock:
            self._sock.close()

    def __enter__(self) -> "UdpTransport":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class OscListener:
    """Background UDP server dispatching OSC messages to registered handlers."""

    def __init__(self, host: str = "0.0.0.0", port: int = 0, poll_timeout_s: float = 0.5) -> None:
        self._host = host
        self._port = port
        self._poll_timeout_s = poll_timeout_s
        self._handlers: Dict[Tuple[str, str], MessageHandler] = {}
        self._lock = threading.Lock()
        self._sock: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()

    @property
    def address(self) -> Optional[Tuple[str, int]]:
        if self._sock is None:
            return None
        host, port = self._sock.getsockname()[:2]
        return host, port

    def register(self, path: str, typetags: str, handler: MessageHandler) -> None:
        with self._lock:
            self._handlers[(path, typetags)] = handler

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        sock.bind((self._host, self._port))
        sock.settimeout(self._poll_timeout_s)
        self._sock = sock
        self._running.set()
        self._thread = threading.Thread(target=self._serve, name='osc-listener', daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._running.clear()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=2.0)
        self._thread = None
        if self._sock is not None:
            self._sock.close()
            self._sock = None

    def dispatch(self, data: bytes, sender: Tuple[str, int]) -> bool:
        """Decode *data* and invoke the matching handler; return whether one ran."""

        try:
            path, typetags, args = OscReader(data).read_message()
        except ValueError as exc:
            logger.warning("Dropping malformed OSC packet from %s:%s: %s", sender[0], sender[1], exc)
            return False
        with self._lock:
            handler = self._handlers.get((path, typetags))
        if handler is None:
            logger.debug("No handler for %s ,%s", path, typetags)
            return False
        try:
            handler(sender, args)
        except Exception:  # pylint: disable=broad-except
            logger.exception("Handler for %s ,%s failed", path, typetags)
        return True

    def _serve(self) -> None:
        sock = self._sock
        assert sock is not None
        while self._running.is_set():
            try:
                data, sender = sock.recvfrom(MAX_DATAGRAM)
            except socket.timeout:
                continue
            except OSError:
                break
            self.dispatch(data, (sender[0], sender[1]))
