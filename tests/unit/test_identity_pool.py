"""
Tests for the identity pool: checkout semantics and retirement policy.
"""

import asyncio

import pytest

from jobquarry.config.config import IdentityConfig
from jobquarry.crawler.identity import Identity, IdentityPool, should_retire
from jobquarry.models import FetchResult, FetchStatus


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def result(status: FetchStatus, cookies=None) -> FetchResult:
    return FetchResult(status=status, url="https://www.simplyhired.com/search", cookies=cookies or {})


@pytest.mark.unit
class TestShouldRetire:
    config = IdentityConfig(max_usage=15, max_error_score=1.0, max_age_seconds=900)

    def test_fresh_identity_is_kept(self):
        identity = Identity(headers={}, created_at=0.0)
        assert should_retire(identity, self.config, now=10.0) is None

    def test_usage_threshold(self):
        identity = Identity(headers={}, created_at=0.0, usage_count=15)
        assert should_retire(identity, self.config, now=10.0) == "usage"

    def test_error_threshold(self):
        identity = Identity(headers={}, created_at=0.0, error_score=1.0)
        assert should_retire(identity, self.config, now=10.0) == "errors"

    def test_age_threshold(self):
        identity = Identity(headers={}, created_at=0.0)
        assert should_retire(identity, self.config, now=900.0) == "age"


@pytest.mark.unit
class TestIdentityPool:
    @pytest.mark.asyncio
    async def test_acquire_marks_identity_in_use_and_carries_headers(self):
        pool = IdentityPool(IdentityConfig(pool_size=2))
        identity = await pool.acquire()

        assert identity.in_use
        assert identity.user_agent.startswith("Mozilla/5.0")
        assert "accept-language" in identity.headers

    @pytest.mark.asyncio
    async def test_concurrent_acquires_never_share_an_identity(self):
        pool = IdentityPool(IdentityConfig(pool_size=3))
        identities = await asyncio.gather(*(pool.acquire() for _ in range(10)))

        assert len({i.id for i in identities}) == 10
        assert pool.get_stats()["in_use"] == 10

    @pytest.mark.asyncio
    async def test_idle_identity_is_reused_once_pool_is_full(self):
        pool = IdentityPool(IdentityConfig(pool_size=1))
        first = await pool.acquire()
        await pool.record_outcome(first, result(FetchStatus.OK))

        second = await pool.acquire()

        assert second is first
        assert pool.created_count == 1

    @pytest.mark.asyncio
    async def test_block_retires_identity_and_it_is_never_reused(self):
        pool = IdentityPool(IdentityConfig(pool_size=1, max_error_score=1.0))
        identity = await pool.acquire()

        retired = await pool.record_outcome(identity, result(FetchStatus.BLOCKED))
        replacement = await pool.acquire()

        assert retired
        assert identity.retired
        assert replacement is not identity
        assert pool.retired_count == 1

    @pytest.mark.asyncio
    async def test_network_error_weighs_half_a_block(self):
        pool = IdentityPool(IdentityConfig(pool_size=1, max_error_score=1.0))
        identity = await pool.acquire()

        assert not await pool.record_outcome(identity, result(FetchStatus.NETWORK_ERROR))
        assert identity.error_score == pytest.approx(0.5)

        await pool.acquire()
        assert await pool.record_outcome(identity, result(FetchStatus.NETWORK_ERROR))

    @pytest.mark.asyncio
    async def test_success_decays_error_score_and_keeps_cookies(self):
        pool = IdentityPool(IdentityConfig(pool_size=1, max_error_score=2.0))
        identity = await pool.acquire()
        await pool.record_outcome(identity, result(FetchStatus.BLOCKED))
        await pool.acquire()
        await pool.record_outcome(identity, result(FetchStatus.OK, cookies={"sh_session": "abc"}))

        assert identity.error_score == pytest.approx(0.5)
        assert identity.cookies == {"sh_session": "abc"}
        assert identity.usage_count == 2

    @pytest.mark.asyncio
    async def test_usage_limit_retires_after_max_usage(self):
        pool = IdentityPool(IdentityConfig(pool_size=1, max_usage=3))
        identity = await pool.acquire()
        for _ in range(3):
            await pool.record_outcome(identity, result(FetchStatus.OK))
            if not identity.retired:
                assert await pool.acquire() is identity

        assert identity.retired
        assert identity.usage_count == 3

    @pytest.mark.asyncio
    async def test_aged_idle_identity_is_replaced_on_acquire(self):
        clock = FakeClock()
        pool = IdentityPool(IdentityConfig(pool_size=1, max_age_seconds=60), clock=clock)
        identity = await pool.acquire()
        await pool.release(identity)

        clock.now += 61
        replacement = await pool.acquire()

        assert identity.retired
        assert replacement is not identity

    @pytest.mark.asyncio
    async def test_explicit_retire(self):
        pool = IdentityPool(IdentityConfig(pool_size=5))
        identity = await pool.acquire()
        await pool.retire(identity, reason="blocked")

        stats = pool.get_stats()
        assert identity.retired
        assert stats["retired"] == 1
        assert stats["live"] == 0
