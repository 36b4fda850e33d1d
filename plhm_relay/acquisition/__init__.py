"""Acquisition service entry points."""
from __future__ import annotations

from .service import AcquisitionFailure, RelayService, ServiceStats
from .state import RunState, derive_status

__all__ = ["AcquisitionFailure", "RelayService", "RunState", "ServiceStats", "derive_status"]
