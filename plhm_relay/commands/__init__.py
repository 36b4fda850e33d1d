"""Remote command channel."""
from __future__ import annotations

from .channel import CommandChannel, destination_from

__all__ = ["CommandChannel", "destination_from"]
