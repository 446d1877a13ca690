"""Configuration models for JobQuarry."""

from .config import (
    BudgetConfig,
    Config,
    CrawlerConfig,
    IdentityConfig,
    MonitoringConfig,
    OutputConfig,
    SearchConfig,
)

__all__ = [
    "BudgetConfig",
    "Config",
    "CrawlerConfig",
    "IdentityConfig",
    "MonitoringConfig",
    "OutputConfig",
    "SearchConfig",
]
