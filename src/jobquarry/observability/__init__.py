"""Logging and metrics for JobQuarry."""

from __future__ import annotations

from .logging import configure_logging
from .metrics import METRICS, increment

__all__ = ["configure_logging", "METRICS", "increment"]
