"""Shared CLI helpers for the relay service script."""
from __future__ import annotations

from argparse import Namespace

from ..config import AppConfig


def apply_overrides(config: AppConfig, args: Namespace) -> AppConfig:
    """Apply command-line overrides stored in *args* to *config*."""

    device = config.device
    acquisition = config.acquisition
    output = config.output
    network = config.network

    if getattr(args, "device", None):
        device.path = args.device
    if getattr(args, "transport", None):
        device.transport = args.transport.lower()
    if getattr(args, "reset", False):
        device.reset = True

    if getattr(args, "daemon", False):
        acquisition.daemon = True
    if getattr(args, "position", False):
        acquisition.position = True
    if getattr(args, "euler", False):
        acquisition.euler = True
    if getattr(args, "timestamp", False):
        acquisition.timestamp = True
    poll = getattr(args, "poll", None)
    if poll is not None:
        if poll < 0:
            raise ValueError("Poll period must not be negative")
        acquisition.poll_period_ms = float(poll)
    if getattr(args, "quiet", False):
        acquisition.show_rate = False

    if getattr(args, "output", None):
        output.path = args.output
    if getattr(args, "hex", False):
        output.hex_floats = True

    if getattr(args, "send", None):
        network.send_url = args.send
    if getattr(args, "listen", None) is not None:
        if args.listen < 0 or args.listen > 65535:
            raise ValueError("Listen port must be between 0 and 65535")
        network.listen_port = args.listen

    if getattr(args, "mapper", False):
        config.mapping.enabled = True
    return config
