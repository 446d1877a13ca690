"""
Tests for record assembly and its sentinel defaults.
"""

from dataclasses import fields
from datetime import datetime, timezone

import pytest

from jobquarry.assembler import RecordAssembler, utc_timestamp
from jobquarry.models import SENTINEL, DetailRecord, JobRecord, ListingRecord

LISTING = ListingRecord(
    title="Data Scientist",
    url="https://www.simplyhired.com/job/abc",
    company="Acme",
    location="Remote",
    salary="$100,000 - year",
    summary="Build <models> & pipelines",
)


@pytest.mark.unit
class TestRecordAssembler:
    def test_listing_only_record_has_no_undefined_fields(self):
        record = RecordAssembler().assemble(LISTING, None, scraped_at="2024-05-01T00:00:00Z")

        for f in fields(JobRecord):
            value = getattr(record, f.name)
            assert isinstance(value, str) and value
        assert record.title == "Data Scientist"
        assert record.employment_type == SENTINEL
        assert record.date_posted == SENTINEL
        assert record.description_text == "Build <models> & pipelines"
        assert record.description_html == "Build &lt;models&gt; &amp; pipelines"
        assert record.source == "SimplyHired"

    def test_detail_values_win(self):
        detail = DetailRecord(
            title="Senior Data Scientist",
            company="Acme Analytics",
            description_text="Full description",
            description_html="<p>Full description</p>",
        )

        record = RecordAssembler().assemble(LISTING, detail)

        assert record.title == "Senior Data Scientist"
        assert record.company == "Acme Analytics"
        assert record.location == "Remote"
        assert record.description_html == "<p>Full description</p>"

    def test_blank_detail_value_does_not_hide_listing_value(self):
        record = RecordAssembler().assemble(LISTING, DetailRecord(company="   "))
        assert record.company == "Acme"

    def test_missing_summary_gives_sentinel_description(self):
        listing = ListingRecord(title="Nurse", url="https://www.simplyhired.com/job/n1")

        record = RecordAssembler().assemble(listing, None)

        assert record.description_text == SENTINEL
        assert record.description_html == SENTINEL
        assert record.company == SENTINEL

    def test_url_override_and_timestamp(self):
        record = RecordAssembler().assemble(LISTING, None, url="https://www.simplyhired.com/job/final")

        assert record.url == "https://www.simplyhired.com/job/final"
        assert record.scraped_at.endswith("Z")
        assert datetime.fromisoformat(record.scraped_at.replace("Z", "+00:00")).tzinfo is not None

    def test_to_dict_has_persisted_schema(self):
        record = RecordAssembler().assemble(LISTING, None)
        assert list(record.to_dict()) == [
            "title",
            "company",
            "location",
            "salary",
            "employment_type",
            "date_posted",
            "description_text",
            "description_html",
            "url",
            "source",
            "scraped_at",
        ]


@pytest.mark.unit
def test_utc_timestamp_format():
    moment = datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc)
    assert utc_timestamp(moment) == "2024-05-01T12:30:00Z"
