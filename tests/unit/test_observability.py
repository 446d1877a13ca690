"""
Tests for metrics and structured logging setup.
"""

import json
import logging

import pytest
import structlog
from helpers.pages import PADDING

from jobquarry.config import MonitoringConfig
from jobquarry.models import Stage
from jobquarry.observability import METRICS, configure_logging, increment
from jobquarry.observability.metrics import Counter


def get_histogram_count(histogram):
    """Get current observation count from histogram."""
    for metric in histogram.collect():
        for sample in metric.samples:
            if sample.name.endswith("_count"):
                return sample.value
    return 0.0


@pytest.mark.unit
class TestMetrics:
    @pytest.mark.asyncio
    async def test_fetch_latency_histogram_observed(self, gateway, primary):
        histogram = METRICS["fetch_latency_seconds"]
        primary.default = (200, f"<html><body>{PADDING}</body></html>")
        before = get_histogram_count(histogram)

        await gateway.fetch("https://www.simplyhired.com/search?q=x", Stage.LISTING)

        assert get_histogram_count(histogram) == before + 1

    def test_duplicate_registration_reuses_collector(self):
        first = Counter("jobquarry_test_duplicate_total", "Test counter")
        second = Counter("jobquarry_test_duplicate_total", "Test counter")

        assert first is second

    def test_increment_ignores_unknown_metric(self):
        increment("no_such_metric", reason="x")

    def test_increment_labelled_counter(self):
        counter = METRICS["identities_retired_total"]
        before = counter.labels(reason="age")._value.get()

        increment("identities_retired_total", reason="age")

        assert counter.labels(reason="age")._value.get() == before + 1


@pytest.mark.unit
class TestLogging:
    @pytest.fixture(autouse=True)
    def restore_logging(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        for handler in root.handlers:
            handler.close()
        root.handlers = handlers
        root.setLevel(level)
        structlog.reset_defaults()

    def test_file_logging_is_json(self, tmp_path):
        log_file = tmp_path / "logs" / "run.log"
        configure_logging(MonitoringConfig(log_level="INFO", log_file=str(log_file)))

        structlog.contextvars.bind_contextvars(run_id="run-42")
        try:
            structlog.get_logger("jobquarry.test").info("Listing page processed", page=2)
        finally:
            structlog.contextvars.unbind_contextvars("run_id")
        for handler in logging.getLogger().handlers:
            handler.flush()

        events = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
        processed = [e for e in events if e["event"] == "Listing page processed"]
        assert processed[0]["page"] == 2
        assert processed[0]["run_id"] == "run-42"
        assert processed[0]["level"] == "info"

    def test_level_is_applied_to_root_logger(self):
        configure_logging(MonitoringConfig(log_level="warning"))
        assert logging.getLogger().level == logging.WARNING
