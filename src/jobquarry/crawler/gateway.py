"""
Fetch gateway: blocking detection, backoff and identity rotation.

Every request goes out with a checked-out identity through the primary
transport. A response that looks like soft blocking is answered with a
jittered exponential backoff, retirement of the identity used, and exactly
one retry through the fallback transport with a fresh identity.
"""

from __future__ import annotations

import asyncio
import random
import time
from typing import Awaitable, Callable, Optional

import structlog

from jobquarry.config.config import CrawlerConfig
from jobquarry.exceptions import BlockedError, EmptyResponseError, NetworkError
from jobquarry.models import FetchResult, FetchStatus, Stage
from jobquarry.observability.metrics import METRICS, increment

from .identity import Identity, IdentityPool
from .proxies import ProxyRotator
from .transports import AiohttpTransport, CurlCffiTransport, Transport, TransportError
from .user_agents import SITE_ORIGIN, request_headers

logger = structlog.get_logger(__name__)

JITTER_RANGE = (0.8, 1.2)  # ±20% jitter

LISTING_REFERER = "https://www.google.com/"
DETAIL_REFERER = f"{SITE_ORIGIN}/search"


def classify_response(
    status_code: int,
    text: str,
    *,
    blocked_statuses: frozenset[int] | set[int],
    min_body_length: int,
    data_request: bool = False,
) -> FetchStatus:
    """Classify an HTTP exchange as OK, BLOCKED or EMPTY."""
    if status_code in blocked_statuses:
        return FetchStatus.BLOCKED
    body = text.strip()
    if 200 <= status_code < 300 and not body:
        return FetchStatus.EMPTY
    if not data_request and 200 <= status_code < 300 and len(body) < min_body_length:
        # Real pages are never this small; challenge stubs and soft blocks are.
        return FetchStatus.BLOCKED
    return FetchStatus.OK


class FetchGateway:
    """Performs fetches on behalf of listing and detail tasks."""

    def __init__(
        self,
        config: CrawlerConfig,
        identity_pool: IdentityPool,
        *,
        primary: Optional[Transport] = None,
        fallback: Optional[Transport] = None,
        proxies: Optional[ProxyRotator] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.config = config
        self.identity_pool = identity_pool
        self.primary: Transport = primary or AiohttpTransport()
        self.fallback: Transport = fallback or CurlCffiTransport(config.fallback_impersonate)
        self._sleep = sleep
        self._rng = rng or random.Random()
        self.proxies = proxies if proxies is not None else ProxyRotator(config.proxies, rng=self._rng)
        self._blocked_statuses = frozenset(config.blocked_statuses)
        self.requests_issued = 0

    def base_backoff(self, attempt: int) -> float:
        """Backoff before jitter: ``base * 2**attempt``, capped."""
        return min(self.config.backoff_cap, self.config.backoff_base * (2**attempt))

    def backoff_delay(self, attempt: int) -> float:
        """Calculate exponential backoff delay with jitter."""
        return self.base_backoff(attempt) * self._rng.uniform(*JITTER_RANGE)

    def politeness_delay(self, stage: Stage) -> float:
        """Delay before a request; detail pages model slower reading."""
        low, high = self.config.detail_delay if stage is Stage.DETAIL else self.config.listing_delay
        return self._rng.uniform(low, high)

    async def _exchange(
        self,
        transport: Transport,
        url: str,
        stage: Stage,
        identity: Identity,
        referer: Optional[str],
        data_request: bool,
        attempts: int,
    ) -> FetchResult:
        headers = request_headers(identity.headers, referer, data_request=data_request)
        proxy = self.proxies.next_proxy()
        self.requests_issued += 1
        start = time.monotonic()
        try:
            response = await transport.get(
                url,
                headers=headers,
                cookies=dict(identity.cookies),
                proxy=proxy,
                timeout=self.config.timeout,
            )
        except TransportError as e:
            elapsed = time.monotonic() - start
            logger.warning(
                "Request failed", url=url, stage=stage.value, transport=transport.name, error=str(e), attempt=attempts
            )
            result = FetchResult(
                status=FetchStatus.NETWORK_ERROR,
                url=url,
                final_url=url,
                transport=transport.name,
                attempts=attempts,
                elapsed=elapsed,
            )
        else:
            elapsed = time.monotonic() - start
            status = classify_response(
                response.status,
                response.text,
                blocked_statuses=self._blocked_statuses,
                min_body_length=self.config.min_body_length,
                data_request=data_request,
            )
            result = FetchResult(
                status=status,
                url=url,
                status_code=response.status,
                text=response.text,
                final_url=response.final_url or url,
                transport=transport.name,
                attempts=attempts,
                elapsed=elapsed,
                cookies=response.cookies,
            )

        increment("fetches_total", stage=stage.value, transport=transport.name, status=result.status.value)
        if "fetch_latency_seconds" in METRICS:
            METRICS["fetch_latency_seconds"].observe(elapsed)
        return result

    async def _checked_out_exchange(
        self,
        transport: Transport,
        url: str,
        stage: Stage,
        referer: Optional[str],
        data_request: bool,
        attempts: int,
        delay: Optional[float] = None,
    ) -> FetchResult:
        """One exchange on a freshly checked-out identity; a failed identity is retired."""
        identity = await self.identity_pool.acquire()
        try:
            if delay is not None:
                await self._sleep(delay)
            result = await self._exchange(transport, url, stage, identity, referer, data_request, attempts)
            await self.identity_pool.record_outcome(identity, result)
        except BaseException:
            # Cancelled or crashed mid-request: check the identity back in.
            await self.identity_pool.release(identity)
            raise
        if not result.ok:
            await self.identity_pool.retire(identity, reason=result.status.value)
        return result

    async def fetch(
        self,
        url: str,
        stage: Stage,
        *,
        referer: Optional[str] = None,
        data_request: bool = False,
        attempt: int = 0,
    ) -> FetchResult:
        """
        Fetch ``url`` for ``stage``.

        Args:
            url: Absolute URL to fetch
            stage: Listing or detail; selects the politeness range and default referer
            referer: Overrides the stage's default referer
            data_request: Marks a request to the JSON data endpoint
            attempt: Task-level retry count, used to scale the backoff

        Returns:
            An OK-classified FetchResult

        Raises:
            BlockedError, EmptyResponseError, NetworkError: the fallback retry also failed
        """
        if referer is None:
            referer = DETAIL_REFERER if stage is Stage.DETAIL else LISTING_REFERER

        result = await self._checked_out_exchange(
            self.primary, url, stage, referer, data_request, attempts=1, delay=self.politeness_delay(stage)
        )
        if result.ok:
            return result

        delay = self.backoff_delay(attempt)
        logger.info(
            "Soft block detected, retrying via fallback transport",
            url=url,
            stage=stage.value,
            status=result.status.value,
            status_code=result.status_code,
            backoff=round(delay, 2),
            attempt=attempt,
        )
        await self._sleep(delay)

        retry = await self._checked_out_exchange(self.fallback, url, stage, referer, data_request, attempts=2)
        if retry.ok:
            return retry

        message = f"{retry.status.value} after fallback retry (status {retry.status_code}): {url}"
        if retry.status is FetchStatus.BLOCKED:
            raise BlockedError(message, retry)
        if retry.status is FetchStatus.EMPTY:
            raise EmptyResponseError(message, retry)
        raise NetworkError(message, retry)

    async def close(self) -> None:
        """Close both transports."""
        await self.primary.close()
        await self.fallback.close()
