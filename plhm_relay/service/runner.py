"""Service integration: command listener lifecycle around the relay run."""
from __future__ import annotations

from contextlib import ExitStack
from typing import Optional, Tuple

from ..acquisition.service import RelayService
from ..commands import CommandChannel
from ..transport import OscListener


class ServiceRunner:
    """Bind the command channel listener to a :class:`RelayService` run."""

    def __init__(
        self,
        service: RelayService,
        listen_host: Optional[str] = None,
        listen_port: int = 0,
        listener: Optional[OscListener] = None,
    ) -> None:
        self.service = service
        network = service.config.network
        self.channel = CommandChannel(service.state, service.transport, network.namespace)
        self._listener = listener
        if self._listener is None and listen_port > 0:
            self._listener = OscListener(host=listen_host or network.listen_host, port=listen_port)
        if self._listener is not None:
            self.channel.register(self._listener)

    @property
    def listener(self) -> Optional[OscListener]:
        return self._listener

    @property
    def listen_address(self) -> Optional[Tuple[str, int]]:
        if self._listener:
            return self._listener.address
        return None

    def run(self) -> None:
        """Run the relay; the listener is stopped on every exit path."""

        with ExitStack() as stack:
            if self._listener is not None:
                self._listener.start()
                stack.callback(self._listener.stop)
            self.service.run()
