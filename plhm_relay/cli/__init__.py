"""Command-line helpers."""
from __future__ import annotations

from .common import apply_overrides

__all__ = ["apply_overrides"]
