"""
Configuration management for JobQuarry using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Optional, Tuple

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from jobquarry.models import SearchQuery

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Nested Configuration Models ---


class CrawlerConfig(BaseModel):
    """Fetch, politeness, retry and concurrency settings."""

    timeout: float = Field(default=25.0, gt=0, description="Per-request timeout in seconds.")
    handler_timeout: float = Field(default=60.0, gt=0, description="Upper bound for one task, fetch included.")
    listing_delay: Tuple[float, float] = Field(
        default=(0.05, 0.2), description="Politeness delay range (seconds) before listing requests."
    )
    detail_delay: Tuple[float, float] = Field(
        default=(0.1, 0.4), description="Politeness delay range (seconds) before detail requests."
    )
    backoff_base: float = Field(default=1.0, ge=0, description="Base of the exponential backoff in seconds.")
    backoff_cap: float = Field(default=30.0, ge=0, description="Maximum backoff in seconds.")
    blocked_statuses: List[int] = Field(default=[403, 429, 503], description="Status codes treated as blocking.")
    min_body_length: int = Field(default=500, ge=0, description="Shorter HTML bodies are treated as blocked.")
    fallback_impersonate: str = Field(default="chrome124", description="curl_cffi browser profile for the fallback.")
    proxies: List[str] = Field(default_factory=list, description="Egress proxy URLs, rotated per request.")
    max_concurrency: int = Field(default=10, ge=1, description="Upper bound on concurrent tasks.")
    min_concurrency: int = Field(default=3, ge=1, description="Lower floor on concurrent tasks.")
    scale_up_after: int = Field(default=5, ge=1, description="Consecutive successes before raising concurrency.")
    max_task_retries: int = Field(default=3, ge=0, description="Re-queues allowed per task after a failed fetch.")
    request_multiplier: int = Field(default=8, ge=1, description="Request cap is target times this value.")
    run_timeout_seconds: Optional[float] = Field(default=None, description="Hard deadline for the run.")
    use_data_api: bool = Field(default=True, description="Use the JSON data endpoint once a build id is known.")

    @field_validator("listing_delay", "detail_delay")
    @classmethod
    def validate_range(cls, v: Tuple[float, float]) -> Tuple[float, float]:
        low, high = v
        if low < 0 or high < low:
            raise ValueError("delay range must satisfy 0 <= low <= high")
        return v

    @field_validator("proxies", mode="before")
    @classmethod
    def split_proxies(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [proxy.strip() for proxy in v.split(",") if proxy.strip()]
        return v

    @model_validator(mode="after")
    def check_bounds(self) -> "CrawlerConfig":
        if self.min_concurrency > self.max_concurrency:
            raise ValueError("min_concurrency cannot exceed max_concurrency")
        if self.detail_delay[1] < self.listing_delay[1]:
            raise ValueError("detail_delay must not be shorter than listing_delay")
        return self


class IdentityConfig(BaseModel):
    """Identity pool and retirement thresholds."""

    pool_size: int = Field(default=100, ge=1, description="Maximum number of live identities.")
    max_usage: int = Field(default=15, ge=1, description="Retire after this many requests.")
    max_error_score: float = Field(default=1.0, gt=0, description="Retire once the error score reaches this.")
    max_age_seconds: float = Field(default=900.0, gt=0, description="Retire identities older than this.")


class BudgetConfig(BaseModel):
    """Global crawl budget."""

    target: int = Field(default=20, ge=1, description="Number of records to persist.")
    max_pages: int = Field(default=5, ge=1, description="Maximum listing pages to visit.")


class SearchConfig(BaseModel):
    """Search query inputs."""

    keyword: str = "software engineer"
    location: str = "USA"
    remote: bool = False
    freshness_days: Optional[int] = Field(default=None, description="Only postings from the last N days.")
    start_urls: List[str] = Field(default_factory=list, description="Explicit seed URLs; override keyword/location.")

    def to_query(self) -> SearchQuery:
        return SearchQuery(
            keyword=self.keyword,
            location=self.location,
            remote=self.remote,
            freshness_days=self.freshness_days,
            start_urls=tuple(self.start_urls),
        )


class OutputConfig(BaseModel):
    """Dataset sink configuration."""

    path: Path = Field(default=Path("./data/jobs.jsonl"), description="JSONL dataset file.")


class MonitoringConfig(BaseModel):
    """Configuration for logging."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: Optional[str] = Field(default=None, description="Path to log file. If None, logs to console.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "JobQuarry"
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    identity: IdentityConfig = Field(default_factory=IdentityConfig)
    budget: BudgetConfig = Field(default_factory=BudgetConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="JOBQUARRY_", env_nested_delimiter="__", case_sensitive=False)

    @property
    def max_requests(self) -> int:
        """Hard cap on requests issued during one run."""
        return self.budget.target * self.crawler.request_multiplier

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)
