"""Remote start/stop/status control over OSC."""
from __future__ import annotations

import logging
from typing import Any, Callable, List, Sequence, Tuple

from ..acquisition.state import RunState
from ..constants import DEFAULT_NAMESPACE
from ..transport import (
    AddressResolutionFailed,
    OscAddress,
    OscListener,
    UdpTransport,
    resolve_address,
    sender_host,
)

logger = logging.getLogger(__name__)

Sender = Tuple[str, int]
Resolver = Callable[[str, int], OscAddress]


def destination_from(sender: Sender, args: Sequence[Any], resolver: Resolver = resolve_address) -> OscAddress:
    """Build the address named by ``(port)`` or ``(host, port)`` arguments.

    With a single port argument the host is the sender's own address.
    """

    if len(args) == 1:
        host, port = sender_host(sender[0]), args[0]
    elif len(args) == 2:
        host, port = str(args[0]), args[1]
    else:
        raise AddressResolutionFailed(f"expected (port) or (host, port), got {len(args)} argument(s)")
    return resolver(host, int(port))


class CommandChannel:
    """Handlers for ``start``, ``stop`` and ``status`` under *namespace*."""

    def __init__(
        self,
        state: RunState,
        transport: UdpTransport,
        namespace: str = DEFAULT_NAMESPACE,
        resolver: Resolver = resolve_address,
    ) -> None:
        self._state = state
        self._transport = transport
        self._namespace = namespace.rstrip("/")
        self._resolver = resolver

    def path(self, name: str) -> str:
        return f"{self._namespace}/{name}"

    def signatures(self) -> List[Tuple[str, str, Callable[[Sender, List[Any]], None]]]:
        return [
            (self.path("start"), "i", self.handle_start),
            (self.path("start"), "si", self.handle_start),
            (self.path("start"), "", self.handle_start),
            (self.path("stop"), "", self.handle_stop),
            (self.path("status"), "i", self.handle_status),
            (self.path("status"), "si", self.handle_status),
        ]

    def register(self, listener: OscListener) -> None:
        for path, typetags, handler in self.signatures():
            listener.register(path, typetags, handler)

    def handle_start(self, sender: Sender, args: List[Any]) -> None:
        if not args:
            current = self._state.remote_address
            if current is None:
                logger.error("start without a destination and no previous remote address; ignoring")
                return
            self._state.start()
            logger.info("starting... %s", current.url)
            return
        try:
            address = destination_from(sender, args, self._resolver)
        except (AddressResolutionFailed, ValueError) as exc:
            logger.error("Ignoring start from %s:%s: %s", sender[0], sender[1], exc)
            return
        self._state.start(address)
        logger.info("starting... %s", address.url)

    def handle_stop(self, sender: Sender, args: List[Any]) -> None:
        _ = args
        logger.info("stopping.. (requested by %s:%s)", sender[0], sender[1])
        self._state.stop()

    def handle_status(self, sender: Sender, args: List[Any]) -> None:
        try:
            address = destination_from(sender, args, self._resolver)
        except (AddressResolutionFailed, ValueError) as exc:
            logger.error("Ignoring status request from %s:%s: %s", sender[0], sender[1], exc)
            return
        status = self._state.status
        try:
            self._transport.send(address, self.path("status"), "s", status)
        except OSError as exc:
            logger.warning("Status reply to %s failed: %s", address.url, exc)
