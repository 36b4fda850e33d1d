"""Service lifecycle helpers."""
from __future__ import annotations

from .runner import ServiceRunner

__all__ = ["ServiceRunner"]
