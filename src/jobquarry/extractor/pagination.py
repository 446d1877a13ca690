"""
Next-listing-page resolution.

Cursor-bearing strategies hand back an opaque token that is substituted into
the current search URL; HTML pages are followed through their next-page anchor.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

import structlog
from selectolax.parser import HTMLParser

from .models import ExtractionOutcome
from .text import absolute_url, clean_text

logger = structlog.get_logger(__name__)

CURSOR_PARAM = "cursor"

NEXT_ANCHOR_SELECTORS: List[str] = [
    'a[aria-label="Next page"]',
    'a[rel="next"]',
    '[data-testid="pageNumberBlockNext"] a',
    'a[data-testid="pageNumberBlockNext"]',
]

NEXT_ANCHOR_TEXTS = {"next", "next page", "›", "»", "next ›", "next »"}


@dataclass(frozen=True)
class PaginationState:
    """Position in one query's listing chain."""

    page: int = 1
    locator: str = ""
    source: str = "seed"

    def advance(self, locator: str, source: str) -> "PaginationState":
        return PaginationState(page=self.page + 1, locator=locator, source=source)


def with_cursor(url: str, cursor: str) -> str:
    """Set ``cursor=<token>`` on ``url``, keeping its path and every other parameter."""
    parsed = urlparse(url)
    params = [(k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True) if k != CURSOR_PARAM]
    params.append((CURSOR_PARAM, cursor))
    return urlunparse(parsed._replace(query=urlencode(params)))


def find_next_anchor(tree: HTMLParser, base: str) -> Optional[str]:
    for selector in NEXT_ANCHOR_SELECTORS:
        node = tree.css_first(selector)
        if node is not None:
            href = absolute_url(node.attributes.get("href"), base)
            if href:
                return href
    for node in tree.css("a[href]"):
        if clean_text(node.text(separator=" ")).lower() in NEXT_ANCHOR_TEXTS:
            href = absolute_url(node.attributes.get("href"), base)
            if href:
                return href
    return None


class PaginationResolver:
    """Turns an extraction outcome into the next listing locator, if any."""

    def resolve_next(self, outcome: ExtractionOutcome, current_locator: str) -> Optional[str]:
        next_locator: Optional[str] = None
        if outcome.cursor:
            next_locator = with_cursor(current_locator, outcome.cursor)
        elif outcome.document is not None and not outcome.document.looks_like_json:
            next_locator = find_next_anchor(outcome.document.tree, current_locator)

        if next_locator is None or next_locator == current_locator:
            return None
        logger.debug("Resolved next listing page", strategy=outcome.strategy, next_locator=next_locator)
        return next_locator

    def advance(self, state: PaginationState, outcome: ExtractionOutcome) -> Optional[PaginationState]:
        """The listing position after ``state``, or None when the chain ends here."""
        if not outcome.next_locator:
            return None
        return state.advance(outcome.next_locator, "cursor" if outcome.cursor else "html")
