"""Relay Polhemus tracker records to log files, OSC peers, and mapping signals."""
from __future__ import annotations

from .config import AppConfig, load_config

__version__ = "0.1.0"

__all__ = ["AppConfig", "__version__", "load_config"]
