"""Run state shared between the acquisition loop and the command channel."""
from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional

from ..constants import (
    STATUS_DATA_ERROR,
    STATUS_DEVICE_NOT_FOUND,
    STATUS_DEVICE_NOT_OPEN,
    STATUS_SENDING,
    STATUS_WAITING,
)
from ..transport import OscAddress


def derive_status(running: bool, device_found: bool, device_open: bool, data_good: bool) -> str:
    """Return the status string for the given flags; the first matching rule wins."""

    if not running:
        return STATUS_WAITING
    if not device_found:
        return STATUS_DEVICE_NOT_FOUND
    if not device_open:
        return STATUS_DEVICE_NOT_OPEN
    if not data_good:
        return STATUS_DATA_ERROR
    return STATUS_SENDING


@dataclass(slots=True, frozen=True)
class RunStateSnapshot:
    running: bool
    device_found: bool
    device_open: bool
    data_good: bool
    remote_address: Optional[OscAddress]

    @property
    def status(self) -> str:
        return derive_status(self.running, self.device_found, self.device_open, self.data_good)


class RunState:
    """Lock-guarded relay status.

    ``running`` and ``remote_address`` are written by the command channel and
    read by the acquisition loop. The device health flags are written by the
    acquisition loop only and are diagnostics for ``status`` replies.
    """

    def __init__(self, running: bool = True, remote_address: Optional[OscAddress] = None) -> None:
        self._lock = threading.Lock()
        self._running = running
        self._remote_address = remote_address
        self._device_found = False
        self._device_open = False
        self._data_good = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running

    @property
    def remote_address(self) -> Optional[OscAddress]:
        with self._lock:
            return self._remote_address

    @property
    def status(self) -> str:
        return self.snapshot().status

    def start(self, address: Optional[OscAddress] = None) -> Optional[OscAddress]:
        """Set ``running`` and, when given, replace the remote address.

        Returns the address that was replaced.
        """

        with self._lock:
            previous = self._remote_address
            if address is not None:
                self._remote_address = address
            self._running = True
            return previous

    def stop(self) -> None:
        with self._lock:
            self._running = False

    def mark_device_found(self, found: bool) -> None:
        with self._lock:
            self._device_found = found
            if not found:
                self._device_open = False
                self._data_good = False

    def mark_device_open(self, is_open: bool) -> None:
        with self._lock:
            self._device_open = is_open
            if is_open:
                self._device_found = True
            else:
                self._data_good = False

    def mark_data_good(self, good: bool) -> None:
        with self._lock:
            self._data_good = good and self._device_open

    def snapshot(self) -> RunStateSnapshot:
        with self._lock:
            return RunStateSnapshot(
                running=self._running,
                device_found=self._device_found,
                device_open=self._device_open,
                data_good=self._data_good,
                remote_address=self._remote_address,
            )
