"""
Listing-page extraction strategies, in cascade priority order.

1. ``next_data``  - the ``__NEXT_DATA__`` page-state blob in server HTML
2. ``data_api``   - the ``/_next/data/<buildId>/search.json`` response
3. ``html_cards`` - CSS heuristics over the rendered result cards
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog
from selectolax.parser import Node

from jobquarry.exceptions import MalformedEmbeddedDataError
from jobquarry.models import ListingRecord, Stage

from .models import ExtractionContext, PageDocument, StrategyResult
from .text import absolute_url, clean_text, format_salary, normalize_employment_type

logger = structlog.get_logger(__name__)


def _first(item: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def salary_from_item(item: Mapping[str, Any]) -> str:
    """Salary text from a JSON job item (object with min/max/type, or scalar)."""
    salary = _first(item, "salary", "estimatedSalary", "salaryInfo")
    if isinstance(salary, Mapping):
        return format_salary(
            _first(salary, "min", "minValue", "minimum"),
            _first(salary, "max", "maxValue", "maximum"),
            _first(salary, "type", "period", "unit"),
        )
    if isinstance(salary, (int, float)):
        return format_salary(salary)
    return clean_text(salary)


def listing_from_item(item: Any) -> Optional[ListingRecord]:
    """Map one embedded JSON job item to a ListingRecord; None when title or link is missing."""
    if not isinstance(item, Mapping):
        return None
    title = clean_text(_first(item, "title", "jobTitle"))
    link = absolute_url(_first(item, "viewJobLink", "url", "link"))
    if not title or not link:
        return None
    company = _first(item, "company", "companyName")
    if isinstance(company, Mapping):
        company = company.get("name")
    return ListingRecord(
        title=title,
        url=link,
        company=clean_text(company),
        location=clean_text(_first(item, "location", "formattedLocation")),
        salary=salary_from_item(item),
        employment_type=normalize_employment_type(_first(item, "employmentType", "jobType", "jobTypes")),
        date_posted=clean_text(_first(item, "datePosted", "formattedDate", "dateOnIndeed")),
        summary=clean_text(_first(item, "snippet", "summary", "description")),
    )


def records_from_page_props(page_props: Any) -> Tuple[ListingRecord, ...]:
    if not isinstance(page_props, Mapping):
        return ()
    jobs = page_props.get("jobs") or []
    if not isinstance(jobs, Sequence):
        return ()
    records = (listing_from_item(item) for item in jobs)
    return tuple(r for r in records if r is not None)


def cursor_from_page_props(page_props: Any, page: int) -> Optional[str]:
    """Cursor for ``page + 1`` from ``pageProps.pageCursors``."""
    if not isinstance(page_props, Mapping):
        return None
    cursors = page_props.get("pageCursors")
    if not isinstance(cursors, Mapping):
        return None
    cursor = cursors.get(str(page + 1))
    return str(cursor) if cursor else None


class NextDataStrategy:
    """Embedded page-state JSON in ``<script id="__NEXT_DATA__">``."""

    name = "next_data"
    stage = Stage.LISTING

    def extract(self, document: PageDocument, context: ExtractionContext) -> StrategyResult:
        if document.looks_like_json:
            return StrategyResult.empty()
        script = document.tree.css_first("script#__NEXT_DATA__")
        if script is None:
            return StrategyResult.empty()
        raw = script.text(deep=True)
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise MalformedEmbeddedDataError(self.name, str(e)) from e
        if not isinstance(data, Mapping):
            raise MalformedEmbeddedDataError(self.name, "top-level value is not an object")

        build_id = data.get("buildId") or None
        page_props = (data.get("props") or {}).get("pageProps") if isinstance(data.get("props"), Mapping) else None
        return StrategyResult(
            records=records_from_page_props(page_props),
            cursor=cursor_from_page_props(page_props, context.page),
            build_id=str(build_id) if build_id else None,
        )


class DataApiStrategy:
    """Response of the internal ``/_next/data/<buildId>/search.json`` endpoint."""

    name = "data_api"
    stage = Stage.LISTING

    def extract(self, document: PageDocument, context: ExtractionContext) -> StrategyResult:
        if not document.looks_like_json:
            return StrategyResult.empty()
        try:
            data = document.json()
        except ValueError as e:
            raise MalformedEmbeddedDataError(self.name, str(e)) from e
        if not isinstance(data, Mapping):
            return StrategyResult.empty()
        page_props = data.get("pageProps")
        return StrategyResult(
            records=records_from_page_props(page_props),
            cursor=cursor_from_page_props(page_props, context.page),
        )


# Card containers, tried in order until one matches anything.
CARD_SELECTORS: List[str] = [
    'div[data-testid="searchSerpJob"]',
    'li[data-testid="itemListing"]',
    "[data-jobkey]",
    "article",
]

# Generic containers only count as cards when they hold a job link.
JOB_LINK_CARD_SELECTORS = {"article"}

FIELD_SELECTORS: Dict[str, List[str]] = {
    "title": ['h2[data-testid="searchSerpJobTitle"]', "h2 a", "h3 a", "h2", "h3"],
    "company": ['span[data-testid="companyName"]', '[data-testid="searchSerpJobCompanyName"]', ".jobposting-company"],
    "location": ['span[data-testid="jobLocation"]', '[data-testid="searchSerpJobLocation"]', ".jobposting-location"],
    "salary": [
        'span[data-testid="jobSalaryInfo"]',
        '[data-testid="searchSerpJobSalaryConfirmed"]',
        '[data-testid="searchSerpJobSalaryEst"]',
    ],
    "summary": ['[data-testid="job-snippet"]', '[data-testid="searchSerpJobSnippet"]', "p"],
    "date_posted": ['[data-testid="searchSerpJobDateStamp"]', "time"],
}

# Bare anchor/heading patterns for layouts without recognizable cards.
HEADING_ANCHOR_SELECTORS: List[str] = ['h2 a[href*="/job/"]', 'h3 a[href*="/job/"]']

JOB_LINK_SELECTOR = 'a[href*="/job/"]'


def first_text(node: Node, selectors: Sequence[str]) -> str:
    for selector in selectors:
        found = node.css_first(selector)
        if found is not None:
            text = clean_text(found.text(separator=" "))
            if text:
                return text
    return ""


def _href_of(node: Optional[Node]) -> Optional[str]:
    if node is None:
        return None
    href = node.attributes.get("href")
    if href:
        return href
    anchor = node.css_first("a[href]")
    return anchor.attributes.get("href") if anchor is not None else None


class HtmlCardStrategy:
    """Structural HTML heuristics with selector fallbacks."""

    name = "html_cards"
    stage = Stage.LISTING

    def __init__(
        self,
        card_selectors: Optional[Sequence[str]] = None,
        field_selectors: Optional[Dict[str, List[str]]] = None,
    ) -> None:
        self.card_selectors = list(card_selectors or CARD_SELECTORS)
        self.field_selectors = field_selectors or FIELD_SELECTORS

    def _card_to_record(self, card: Node, base: str) -> Optional[ListingRecord]:
        title_node = None
        for selector in self.field_selectors["title"]:
            title_node = card.css_first(selector)
            if title_node is not None and clean_text(title_node.text(separator=" ")):
                break
            title_node = None
        title = clean_text(title_node.text(separator=" ")) if title_node is not None else ""
        href = _href_of(title_node) or _href_of(card.css_first(JOB_LINK_SELECTOR))
        if href is None and card.tag == "a":
            href = card.attributes.get("href")
        link = absolute_url(href, base)
        if not title or not link:
            return None
        return ListingRecord(
            title=title,
            url=link,
            company=first_text(card, self.field_selectors["company"]),
            location=first_text(card, self.field_selectors["location"]),
            salary=first_text(card, self.field_selectors["salary"]),
            summary=first_text(card, self.field_selectors["summary"]),
            date_posted=first_text(card, self.field_selectors["date_posted"]),
        )

    def extract(self, document: PageDocument, context: ExtractionContext) -> StrategyResult:
        if document.looks_like_json or not document.payload.strip():
            return StrategyResult.empty()
        tree = document.tree
        base = context.url or "https://www.simplyhired.com"

        for selector in self.card_selectors:
            cards = tree.css(selector)
            if selector in JOB_LINK_CARD_SELECTORS:
                cards = [card for card in cards if card.css_first(JOB_LINK_SELECTOR) is not None]
            if not cards:
                continue
            records = tuple(r for r in (self._card_to_record(card, base) for card in cards) if r is not None)
            if records:
                logger.debug("Card selector matched", selector=selector, count=len(records))
                return StrategyResult(records=records)

        for selector in HEADING_ANCHOR_SELECTORS:
            records_list: List[ListingRecord] = []
            seen = set()
            for anchor in tree.css(selector):
                title = clean_text(anchor.text(separator=" "))
                link = absolute_url(anchor.attributes.get("href"), base)
                if title and link and link not in seen:
                    seen.add(link)
                    records_list.append(ListingRecord(title=title, url=link))
            if records_list:
                logger.debug("Heading anchor selector matched", selector=selector, count=len(records_list))
                return StrategyResult(records=tuple(records_list))

        return StrategyResult.empty()
