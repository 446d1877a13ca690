"""
Defines Prometheus metrics for the harvester.
"""

from __future__ import annotations

from typing import Any, Dict

from prometheus_client import REGISTRY as _PROM_REGISTRY
from prometheus_client import Counter as _OrigCounter
from prometheus_client import Gauge as _OrigGauge
from prometheus_client import Histogram as _OrigHistogram

# ---------------------------------------------------------------------------
# Duplicate-safe Prometheus metric wrappers
# ---------------------------------------------------------------------------
# Importing this module more than once (test reloads) must not raise on
# duplicate registration.


def _duplicate_safe_factory(metric_cls):
    """Return a factory that reuses an existing collector if already present."""

    def _factory(name: str, documentation: str, *args, **kwargs):  # type: ignore[override]
        existing = _PROM_REGISTRY._names_to_collectors.get(name)
        if existing is not None:
            return existing  # type: ignore[return-value]

        try:
            return metric_cls(name, documentation, *args, **kwargs)  # type: ignore[call-arg]
        except ValueError:
            # Registration lost the race; fall back to the now-existing collector.
            return _PROM_REGISTRY._names_to_collectors[name]  # type: ignore[return-value]

    return _factory


Counter = _duplicate_safe_factory(_OrigCounter)  # type: ignore[assignment]
Gauge = _duplicate_safe_factory(_OrigGauge)  # type: ignore[assignment]
Histogram = _duplicate_safe_factory(_OrigHistogram)  # type: ignore[assignment]


def _create_metrics() -> Dict[str, Any]:
    return {
        "fetches_total": Counter(
            "jobquarry_fetches_total",
            "HTTP exchanges by stage, transport and classification",
            ["stage", "transport", "status"],
        ),
        "fetch_latency_seconds": Histogram(
            "jobquarry_fetch_latency_seconds",
            "Time taken by a single HTTP exchange",
            buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
        ),
        "identities_retired_total": Counter(
            "jobquarry_identities_retired_total",
            "Identities retired by the pool",
            ["reason"],
        ),
        "listing_pages_total": Counter(
            "jobquarry_listing_pages_total",
            "Listing pages processed, by winning extraction strategy",
            ["strategy"],
        ),
        "records_persisted_total": Counter(
            "jobquarry_records_persisted_total",
            "Records written to the dataset sink",
            ["detail"],
        ),
        "concurrency_limit": Gauge(
            "jobquarry_concurrency_limit",
            "Current adaptive concurrency limit",
        ),
    }


METRICS: Dict[str, Any] = _create_metrics()


def increment(name: str, value: float = 1.0, **labels: Any) -> None:
    """Increment a counter metric, silently ignoring unknown names."""
    metric = METRICS.get(name)
    if metric is None:
        return
    if labels:
        metric.labels(**labels).inc(value)
    else:
        metric.inc(value)
