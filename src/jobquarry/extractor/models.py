"""
Data models for the extraction cascade.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple, Union

from bs4 import BeautifulSoup
from selectolax.parser import HTMLParser

from jobquarry.models import DetailRecord, ListingRecord, Stage

Record = Union[ListingRecord, DetailRecord]

_UNPARSED = object()


class PageDocument:
    """
    A fetched payload with lazily built parse trees.

    Strategies share one instance per page so the HTML is parsed at most once
    per parser, however many strategies look at it.
    """

    def __init__(self, payload: str) -> None:
        self.payload = payload or ""
        self._tree: Optional[HTMLParser] = None
        self._soup: Optional[BeautifulSoup] = None
        self._json: Any = _UNPARSED

    @property
    def tree(self) -> HTMLParser:
        """selectolax tree for CSS-driven extraction."""
        if self._tree is None:
            self._tree = HTMLParser(self.payload)
        return self._tree

    @property
    def soup(self) -> BeautifulSoup:
        """BeautifulSoup tree for script-embedded structured data."""
        if self._soup is None:
            self._soup = BeautifulSoup(self.payload, "html.parser")
        return self._soup

    @property
    def looks_like_json(self) -> bool:
        return self.payload.lstrip()[:1] in ("{", "[")

    def json(self) -> Any:
        """The payload decoded as JSON. Raises ValueError when it is not JSON."""
        if self._json is _UNPARSED:
            try:
                self._json = json.loads(self.payload)
            except ValueError:
                self._json = None
                raise
        if self._json is None:
            raise ValueError("payload is not valid JSON")
        return self._json


@dataclass(frozen=True)
class ExtractionContext:
    """Where the payload came from."""

    stage: Stage
    url: Optional[str] = None
    page: int = 1


@dataclass(frozen=True)
class StrategyResult:
    """Output of one strategy. ``records`` empty means "no data here"."""

    records: Tuple[Record, ...] = ()
    cursor: Optional[str] = None
    build_id: Optional[str] = None

    @classmethod
    def empty(cls, build_id: Optional[str] = None) -> "StrategyResult":
        return cls(records=(), build_id=build_id)


@dataclass(frozen=True)
class ExtractionOutcome:
    """Cascade result for one page."""

    stage: Stage
    records: Tuple[Record, ...] = ()
    strategy: Optional[str] = None
    cursor: Optional[str] = None
    build_id: Optional[str] = None
    next_locator: Optional[str] = None
    document: Optional[PageDocument] = field(default=None, compare=False, repr=False)

    @property
    def has_data(self) -> bool:
        return bool(self.records)
