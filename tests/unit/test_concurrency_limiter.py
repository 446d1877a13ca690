"""
Tests for the adaptive concurrency limiter and proxy rotation.
"""

import asyncio
import random

import pytest

from jobquarry.crawler import AdaptiveConcurrencyLimiter, ProxyRotator


@pytest.mark.unit
class TestAdaptiveConcurrencyLimiter:
    def test_rejects_inverted_bounds(self):
        with pytest.raises(ValueError):
            AdaptiveConcurrencyLimiter(5, 2)

    @pytest.mark.asyncio
    async def test_starts_at_floor_and_grows_after_successes(self):
        limiter = AdaptiveConcurrencyLimiter(2, 4, scale_up_after=3)
        assert limiter.limit == 2

        for _ in range(3):
            await limiter.record_success()
        assert limiter.limit == 3

        for _ in range(10):
            await limiter.record_success()
        assert limiter.limit == 4

    @pytest.mark.asyncio
    async def test_block_shrinks_but_never_below_floor(self):
        limiter = AdaptiveConcurrencyLimiter(2, 4, scale_up_after=1)
        await limiter.record_success()
        await limiter.record_success()
        assert limiter.limit == 4

        for _ in range(5):
            await limiter.record_block()
        assert limiter.limit == 2

    @pytest.mark.asyncio
    async def test_active_slots_never_exceed_limit(self):
        limiter = AdaptiveConcurrencyLimiter(2, 2)
        peak = 0

        async def job():
            nonlocal peak
            async with limiter.slot():
                peak = max(peak, limiter.active)
                await asyncio.sleep(0.01)

        await asyncio.gather(*(job() for _ in range(8)))

        assert peak == 2
        assert limiter.active == 0


@pytest.mark.unit
class TestProxyRotator:
    def test_no_proxies_means_direct(self):
        rotator = ProxyRotator([])
        assert rotator.next_proxy() is None
        assert len(rotator) == 0

    def test_round_robin(self):
        rotator = ProxyRotator(["http://a:1", "http://b:2"], shuffle=False)
        assert [rotator.next_proxy() for _ in range(3)] == ["http://a:1", "http://b:2", "http://a:1"]

    def test_proxy_requires_scheme(self):
        with pytest.raises(ValueError):
            ProxyRotator(["proxy.example.com:8080"])

    @pytest.mark.parametrize("proxy", ["proxy.example.com:8080", "localhost:3128", "http://"])
    def test_proxy_needs_scheme_and_host(self, proxy):
        with pytest.raises(ValueError):
            ProxyRotator([proxy])

    def test_shuffle_uses_injected_rng(self):
        proxies = [f"http://p{i}:8080" for i in range(6)]
        expected = list(proxies)
        random.Random(5).shuffle(expected)

        rotator = ProxyRotator(proxies, rng=random.Random(5))

        assert rotator.proxies == expected
        assert [rotator.next_proxy() for _ in range(6)] == expected
