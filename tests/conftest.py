"""
Shared test configuration for JobQuarry.

Fixtures build a run configuration without delays, a gateway wired to
scripted transports, and a recording sleep so backoff is observable without
waiting for it.
"""

# Standard library imports
import random

# Third-party imports
import pytest

# Local imports
from helpers import RecordingSleep, ScriptedTransport
from jobquarry.config import Config
from jobquarry.crawler import FetchGateway, HeaderProfileFactory, IdentityPool, ProxyRotator


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line("markers", "integration: Integration tests across modules")


@pytest.fixture
def test_config(tmp_path) -> Config:
    """Run configuration with zero delays and a temporary dataset file."""
    return Config.model_validate(
        {
            "crawler": {
                "listing_delay": (0.0, 0.0),
                "detail_delay": (0.0, 0.0),
                "backoff_base": 1.0,
                "backoff_cap": 30.0,
                "max_concurrency": 4,
                "min_concurrency": 2,
                "timeout": 5.0,
                "handler_timeout": 10.0,
            },
            "budget": {"target": 20, "max_pages": 5},
            "search": {"keyword": "data scientist", "location": "Remote"},
            "output": {"path": str(tmp_path / "jobs.jsonl")},
        }
    )


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def identity_pool(test_config) -> IdentityPool:
    return IdentityPool(test_config.identity, HeaderProfileFactory(random.Random(7)))


@pytest.fixture
def primary() -> ScriptedTransport:
    return ScriptedTransport(name="aiohttp")


@pytest.fixture
def fallback() -> ScriptedTransport:
    return ScriptedTransport(name="curl_cffi")


@pytest.fixture
def gateway(test_config, identity_pool, primary, fallback, recording_sleep) -> FetchGateway:
    """Gateway over scripted transports; sleeping is recorded, not performed."""
    return FetchGateway(
        test_config.crawler,
        identity_pool,
        primary=primary,
        fallback=fallback,
        proxies=ProxyRotator([]),
        sleep=recording_sleep,
        rng=random.Random(42),
    )
