"""
Seed and data-endpoint URL construction.
"""

from __future__ import annotations

from typing import List
from urllib.parse import urlencode, urlparse, urlunparse

from jobquarry.crawler.user_agents import SITE_ORIGIN
from jobquarry.extractor.text import absolute_url
from jobquarry.models import SearchQuery

SEARCH_PATH = "/search"
REMOTE_LOCATION = "Remote"


def build_search_url(query: SearchQuery) -> str:
    """``https://www.simplyhired.com/search?q=<kw>&l=<loc>[&t=<days>]``."""
    params = []
    if query.keyword:
        params.append(("q", query.keyword))
    location = REMOTE_LOCATION if query.remote else query.location
    if location:
        params.append(("l", location))
    if query.freshness_days:
        params.append(("t", str(query.freshness_days)))
    return f"{SITE_ORIGIN}{SEARCH_PATH}?{urlencode(params)}"


def build_search_urls(query: SearchQuery) -> List[str]:
    """
    Seed URLs for a query. Explicit start URLs win over keyword/location.

    Raises:
        ConfigurationError: the query cannot produce any seed
    """
    query.validate()
    if query.start_urls:
        seeds = [absolute_url(url if "://" in url or url.startswith("/") else f"https://{url}") for url in query.start_urls]
        return list(dict.fromkeys(s for s in seeds if s))
    return [build_search_url(query)]


def data_url(build_id: str, url: str) -> str:
    """
    Map a search URL onto the ``/_next/data/<buildId>/search.json`` endpoint,
    keeping the query string. URLs already on the data endpoint get the new build id.
    """
    parsed = urlparse(url)
    return urlunparse(
        parsed._replace(
            scheme=parsed.scheme or "https",
            netloc=parsed.netloc or urlparse(SITE_ORIGIN).netloc,
            path=f"/_next/data/{build_id}/search.json",
        )
    )
