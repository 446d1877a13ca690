"""
JobQuarry - resilient job-listing harvester.
"""

from __future__ import annotations

__version__ = "0.1.0"

from .config import Config
from .pipeline import Harvester, RunReport

__all__ = ["__version__", "Config", "Harvester", "RunReport"]
