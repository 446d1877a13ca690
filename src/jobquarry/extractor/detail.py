"""
Detail-page extraction strategies.

``json_ld`` reads the schema.org ``JobPosting`` block; ``attribute_html`` reads
the rendered view-job markup. The cascade merges their fields in that order.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

import structlog
from selectolax.parser import HTMLParser, Node

from jobquarry.exceptions import MalformedEmbeddedDataError
from jobquarry.models import DetailRecord, Stage

from .models import ExtractionContext, PageDocument, StrategyResult
from .text import clean_text, format_salary, html_to_text, normalize_employment_type

logger = structlog.get_logger(__name__)

REMOTE_LOCATION = "Remote"


def _iter_nodes(data: Any) -> Iterator[Mapping[str, Any]]:
    if isinstance(data, list):
        for item in data:
            yield from _iter_nodes(item)
    elif isinstance(data, Mapping):
        yield data
        graph = data.get("@graph")
        if graph is not None:
            yield from _iter_nodes(graph)


def is_job_posting(node: Mapping[str, Any]) -> bool:
    kind = node.get("@type")
    if isinstance(kind, list):
        return "JobPosting" in kind
    return kind == "JobPosting"


def _location_text(posting: Mapping[str, Any]) -> str:
    if str(posting.get("jobLocationType", "")).upper() == "TELECOMMUTE":
        return REMOTE_LOCATION
    locations = posting.get("jobLocation")
    if isinstance(locations, Mapping):
        locations = [locations]
    if not isinstance(locations, list):
        return clean_text(locations) if isinstance(locations, str) else ""
    parts: List[str] = []
    for place in locations:
        if not isinstance(place, Mapping):
            continue
        address = place.get("address")
        if isinstance(address, str):
            parts.append(clean_text(address))
            continue
        if not isinstance(address, Mapping):
            continue
        pieces = [clean_text(address.get(k)) for k in ("addressLocality", "addressRegion")]
        text = ", ".join(p for p in pieces if p)
        if text:
            parts.append(text)
    return "; ".join(dict.fromkeys(parts))


def _salary_text(posting: Mapping[str, Any]) -> str:
    salary = posting.get("baseSalary") or posting.get("estimatedSalary")
    if isinstance(salary, list):
        salary = salary[0] if salary else None
    if not isinstance(salary, Mapping):
        return clean_text(salary) if salary else ""
    value = salary.get("value")
    if isinstance(value, Mapping):
        unit = value.get("unitText") or salary.get("unitText")
        return format_salary(value.get("minValue", value.get("value")), value.get("maxValue"), unit)
    return format_salary(value, None, salary.get("unitText"))


def posting_to_detail(posting: Mapping[str, Any]) -> DetailRecord:
    organization = posting.get("hiringOrganization")
    company = organization.get("name") if isinstance(organization, Mapping) else organization
    description_html = posting.get("description")
    description_html = str(description_html).strip() if description_html else None
    return DetailRecord(
        title=clean_text(posting.get("title")) or None,
        company=clean_text(company) or None,
        location=_location_text(posting) or None,
        salary=_salary_text(posting) or None,
        employment_type=normalize_employment_type(posting.get("employmentType")) or None,
        date_posted=clean_text(posting.get("datePosted")) or None,
        description_text=html_to_text(description_html) or None,
        description_html=description_html or None,
    )


class JsonLdStrategy:
    """schema.org ``JobPosting`` from ``<script type="application/ld+json">``."""

    name = "json_ld"
    stage = Stage.DETAIL

    def extract(self, document: PageDocument, context: ExtractionContext) -> StrategyResult:
        if document.looks_like_json:
            return StrategyResult.empty()
        scripts = document.soup.find_all("script", type="application/ld+json")
        if not scripts:
            return StrategyResult.empty()

        failures = 0
        for script in scripts:
            raw = script.string or script.get_text()
            if not raw or not raw.strip():
                continue
            try:
                data = json.loads(raw.strip())
            except json.JSONDecodeError as e:
                failures += 1
                logger.debug("Invalid JSON-LD block", url=context.url, error=str(e))
                continue
            for node in _iter_nodes(data):
                if is_job_posting(node):
                    detail = posting_to_detail(node)
                    if detail.is_empty():
                        return StrategyResult.empty()
                    return StrategyResult(records=(detail,))

        if failures == len(scripts):
            raise MalformedEmbeddedDataError(self.name, f"{failures} unparsable JSON-LD block(s)")
        return StrategyResult.empty()


DETAIL_SELECTORS: Dict[str, List[str]] = {
    "title": ['[data-testid="viewJobTitle"]', "h1"],
    "company": ['[data-testid="viewJobCompanyName"]', '[data-testid="detailCompanyName"]', ".company-name"],
    "location": ['[data-testid="viewJobCompanyLocation"]', '[data-testid="detailLocation"]', ".location"],
    "salary": [
        '[data-testid="viewJobBodyJobCompensation"] [data-testid="detailText"]',
        '[data-testid="viewJobBodyJobCompensation"]',
        '[data-testid="detailSalary"]',
    ],
    "employment_type": [
        '[data-testid="viewJobBodyJobDetailsJobType"] [data-testid="detailText"]',
        '[data-testid="viewJobBodyJobDetailsJobType"]',
    ],
    "date_posted": ['[data-testid="viewJobBodyJobPostingTimestamp"] [data-testid="detailText"]', "time"],
}

DESCRIPTION_SELECTORS: List[str] = [
    '[data-testid="viewJobBodyJobFullDescriptionContent"]',
    '[data-testid="viewJobBodyJobFullDescription"]',
    "#job-description",
    ".job-description",
]


def _first_node(tree: HTMLParser, selectors: Sequence[str]) -> Optional[Node]:
    for selector in selectors:
        node = tree.css_first(selector)
        if node is not None and clean_text(node.text(separator=" ")):
            return node
    return None


class AttributeHtmlStrategy:
    """``data-testid`` attributes on the server-rendered detail view."""

    name = "attribute_html"
    stage = Stage.DETAIL

    def __init__(
        self,
        selectors: Optional[Dict[str, List[str]]] = None,
        description_selectors: Optional[Sequence[str]] = None,
    ) -> None:
        self.selectors = selectors or DETAIL_SELECTORS
        self.description_selectors = list(description_selectors or DESCRIPTION_SELECTORS)

    def extract(self, document: PageDocument, context: ExtractionContext) -> StrategyResult:
        if document.looks_like_json or not document.payload.strip():
            return StrategyResult.empty()
        tree = document.tree
        values: Dict[str, Optional[str]] = {}
        for field_name, chain in self.selectors.items():
            node = _first_node(tree, chain)
            values[field_name] = clean_text(node.text(separator=" ")) if node is not None else None

        description = _first_node(tree, self.description_selectors)
        if description is not None:
            values["description_html"] = description.html
            values["description_text"] = html_to_text(description.html) or None
        if values.get("employment_type"):
            values["employment_type"] = normalize_employment_type(values["employment_type"])

        detail = DetailRecord(**values)
        if detail.is_empty():
            return StrategyResult.empty()
        return StrategyResult(records=(detail,))
