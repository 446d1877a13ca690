"""
Text normalization helpers shared by the extraction strategies.
"""

from __future__ import annotations

import html
import re
from typing import Any, Optional
from urllib.parse import urljoin, urlparse

from selectolax.parser import HTMLParser

from jobquarry.crawler.user_agents import SITE_ORIGIN

_TAG_PATTERN = re.compile(r"<[^>]+>")
_WHITESPACE_PATTERN = re.compile(r"\s+")


def clean_text(value: Any) -> str:
    """Decode entities, strip markup artifacts and collapse whitespace."""
    if value is None:
        return ""
    text = html.unescape(str(value))
    if "<" in text:
        text = _TAG_PATTERN.sub(" ", text)
    return _WHITESPACE_PATTERN.sub(" ", text).strip()


def html_to_text(markup: Optional[str]) -> str:
    """Visible text of an HTML fragment, whitespace-collapsed."""
    if not markup or not markup.strip():
        return ""
    tree = HTMLParser(markup)
    for node in tree.css("script, style, noscript"):
        node.decompose()
    root = tree.body or tree.root
    if root is None:
        return clean_text(markup)
    return clean_text(root.text(separator=" "))


def absolute_url(href: Optional[str], base: str = SITE_ORIGIN) -> Optional[str]:
    """Resolve ``href`` against the site (or ``base``). Returns None for empty or javascript links."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith(("javascript:", "#", "mailto:")):
        return None
    if href.startswith(("http://", "https://")):
        return href
    if href.startswith("//"):
        return f"https:{href}"
    if not urlparse(base).path:
        base = base + "/"
    return urljoin(base, href)


def _money(value: Any) -> Optional[str]:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        stripped = value.replace(",", "").replace("$", "").strip()
        try:
            value = float(stripped)
        except ValueError:
            return clean_text(value) or None
    if isinstance(value, (int, float)):
        if float(value).is_integer():
            return f"${int(value):,}"
        return f"${value:,.2f}"
    return None


def format_salary(low: Any = None, high: Any = None, period: Any = None) -> str:
    """Render a salary as ``"$min - $max - type"``, e.g. ``"$80,000 - $120,000 - year"``.

    Missing parts are skipped; a salary with no amount renders as ``""``.
    """
    low_text, high_text = _money(low), _money(high)
    if high_text == low_text:
        high_text = None
    amounts = [text for text in (low_text, high_text) if text]
    if not amounts:
        return ""
    period_text = clean_text(period).lower() if period else ""
    return " - ".join(amounts + ([period_text] if period_text else []))


def normalize_employment_type(value: Any) -> str:
    """``"FULL_TIME"`` → ``"Full-time"``; lists are joined with commas."""
    if isinstance(value, (list, tuple)):
        return ", ".join(filter(None, (normalize_employment_type(v) for v in value)))
    text = clean_text(value)
    if text and text.replace("_", "").replace("-", "").isupper():
        return text.replace("_", "-").capitalize()
    return text
