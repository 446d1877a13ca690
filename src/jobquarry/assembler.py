"""
Record assembly: listing metadata + detail extraction -> persisted JobRecord.
"""

from __future__ import annotations

import html
from datetime import datetime, timezone
from typing import Optional

from jobquarry.models import SENTINEL, SOURCE_NAME, DetailRecord, JobRecord, ListingRecord

_MERGED_FIELDS = ("title", "company", "location", "salary", "employment_type", "date_posted")


def _pick(*values: Optional[str]) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return SENTINEL


def utc_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


class RecordAssembler:
    """
    Pure merge of a listing partial and an optional detail record.

    Every field takes the detail value if present, else the listing value,
    else ``"not available"``. ``detail=None`` (detail fetch abandoned) yields a
    record built from listing metadata alone.
    """

    def __init__(self, source: str = SOURCE_NAME) -> None:
        self.source = source

    def assemble(
        self,
        listing: ListingRecord,
        detail: Optional[DetailRecord] = None,
        *,
        url: Optional[str] = None,
        scraped_at: Optional[str] = None,
    ) -> JobRecord:
        detail = detail or DetailRecord()
        merged = {name: _pick(getattr(detail, name), getattr(listing, name)) for name in _MERGED_FIELDS}

        summary = listing.summary.strip() if listing.summary else ""
        description_text = _pick(detail.description_text, summary)
        description_html = _pick(detail.description_html, html.escape(summary) if summary else None)

        return JobRecord(
            **merged,
            description_text=description_text,
            description_html=description_html,
            url=_pick(url, listing.url),
            source=self.source,
            scraped_at=scraped_at or utc_timestamp(),
        )
