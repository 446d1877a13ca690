"""
Core data models shared by the gateway, cascade, flow controller and assembler.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from jobquarry.exceptions import ConfigurationError

SENTINEL = "not available"
SOURCE_NAME = "SimplyHired"


class Stage(Enum):
    """Crawl stage a task or fetch belongs to."""

    LISTING = "listing"
    DETAIL = "detail"


class FetchStatus(Enum):
    """Classification of a single HTTP exchange."""

    OK = "ok"
    BLOCKED = "blocked"
    EMPTY = "empty"
    NETWORK_ERROR = "network_error"


@dataclass(frozen=True)
class SearchQuery:
    """What to search for. Immutable once the run starts."""

    keyword: str = ""
    location: str = ""
    remote: bool = False
    freshness_days: Optional[int] = None
    start_urls: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "keyword", (self.keyword or "").strip())
        object.__setattr__(self, "location", (self.location or "").strip())
        object.__setattr__(self, "start_urls", tuple(u.strip() for u in self.start_urls if u and u.strip()))
        if self.freshness_days is not None and self.freshness_days <= 0:
            raise ConfigurationError("freshness_days must be positive")

    def validate(self) -> None:
        """Raise ConfigurationError when the query cannot produce a seed URL."""
        if not (self.keyword or self.location or self.remote or self.start_urls):
            raise ConfigurationError("Search query needs a keyword, a location, remote=True or start URLs")


@dataclass
class FetchResult:
    """Outcome of one gateway call. Consumed immediately by the cascade."""

    status: FetchStatus
    url: str
    status_code: int = 0
    text: str = ""
    final_url: str = ""
    transport: str = ""
    attempts: int = 1
    elapsed: float = 0.0
    cookies: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is FetchStatus.OK


@dataclass(frozen=True)
class ListingRecord:
    """Partial record harvested from a listing page."""

    title: str
    url: str
    company: str = ""
    location: str = ""
    salary: str = ""
    employment_type: str = ""
    date_posted: str = ""
    summary: str = ""


@dataclass
class DetailRecord:
    """Fields harvested from a detail page. ``None`` means "not found"."""

    title: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    salary: Optional[str] = None
    employment_type: Optional[str] = None
    date_posted: Optional[str] = None
    description_text: Optional[str] = None
    description_html: Optional[str] = None

    def fill_missing(self, other: "DetailRecord") -> None:
        """Copy values from ``other`` into fields that are still empty. Never overwrites."""
        for f in fields(self):
            if not getattr(self, f.name) and getattr(other, f.name):
                setattr(self, f.name, getattr(other, f.name))

    def is_empty(self) -> bool:
        return not any(getattr(self, f.name) for f in fields(self))


@dataclass(frozen=True)
class JobRecord:
    """Persisted record. Every field is a string; unknown values hold ``SENTINEL``."""

    title: str
    company: str
    location: str
    salary: str
    employment_type: str
    date_posted: str
    description_text: str
    description_html: str
    url: str
    source: str
    scraped_at: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
