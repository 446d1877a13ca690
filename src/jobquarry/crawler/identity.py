"""
Identity pool with checkout/checkin semantics and threshold-based retirement.

An identity is a simulated client: a header profile, a cookie jar and the
counters used to decide when the site has probably fingerprinted it. An
identity is handed to exactly one outstanding request at a time.
"""

from __future__ import annotations

import asyncio
import itertools
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from jobquarry.config.config import IdentityConfig
from jobquarry.models import FetchResult, FetchStatus
from jobquarry.observability.metrics import increment

from .user_agents import HeaderProfileFactory

logger = structlog.get_logger(__name__)

_ids = itertools.count(1)

ERROR_WEIGHTS: Dict[FetchStatus, float] = {
    FetchStatus.BLOCKED: 1.0,
    FetchStatus.EMPTY: 1.0,
    FetchStatus.NETWORK_ERROR: 0.5,
}
SUCCESS_DECAY = 0.5


@dataclass
class Identity:
    """A reusable client profile. Mutated only by IdentityPool."""

    headers: Dict[str, str]
    created_at: float
    id: int = field(default_factory=lambda: next(_ids))
    cookies: Dict[str, str] = field(default_factory=dict)
    usage_count: int = 0
    error_score: float = 0.0
    retired: bool = False
    in_use: bool = False

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")


def should_retire(identity: Identity, config: IdentityConfig, now: float) -> Optional[str]:
    """Return the retirement reason, or None if the identity may be reused."""
    if identity.usage_count >= config.max_usage:
        return "usage"
    if identity.error_score >= config.max_error_score:
        return "errors"
    if now - identity.created_at >= config.max_age_seconds:
        return "age"
    return None


class IdentityPool:
    """
    Pool of identities shared by all workers.

    Checkout and retirement happen under one lock so that two workers can
    never hold the same identity, and a just-retired identity is never handed
    out again. Acquisition never waits: when every live identity is checked
    out a new one is created, even past ``pool_size``.
    """

    def __init__(
        self,
        config: IdentityConfig,
        profile_factory: Optional[HeaderProfileFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.profile_factory = profile_factory or HeaderProfileFactory()
        self._clock = clock
        self._identities: List[Identity] = []
        self._lock = asyncio.Lock()
        self.created_count = 0
        self.retired_count = 0

    def _create(self) -> Identity:
        identity = Identity(headers=self.profile_factory.create_profile(), created_at=self._clock())
        self._identities.append(identity)
        self.created_count += 1
        logger.debug("Identity created", identity_id=identity.id, user_agent=identity.user_agent)
        return identity

    def _retire_locked(self, identity: Identity, reason: str) -> None:
        if identity.retired:
            return
        identity.retired = True
        self.retired_count += 1
        increment("identities_retired_total", reason=reason)
        logger.debug(
            "Identity retired",
            identity_id=identity.id,
            reason=reason,
            usage=identity.usage_count,
            error_score=identity.error_score,
        )

    def _evict_locked(self) -> None:
        self._identities = [i for i in self._identities if not (i.retired and not i.in_use)]

    async def acquire(self) -> Identity:
        """Check out an identity for one request."""
        async with self._lock:
            now = self._clock()
            for identity in self._identities:
                if identity.in_use or identity.retired:
                    continue
                reason = should_retire(identity, self.config, now)
                if reason:
                    self._retire_locked(identity, reason)
            self._evict_locked()

            idle = [i for i in self._identities if not i.in_use and not i.retired]
            if len(self._identities) < self.config.pool_size or not idle:
                identity = self._create()
            else:
                identity = min(idle, key=lambda i: i.usage_count)
            identity.in_use = True
            return identity

    async def release(self, identity: Identity) -> None:
        """Check an identity back in without recording an outcome."""
        async with self._lock:
            identity.in_use = False
            self._evict_locked()

    async def record_outcome(self, identity: Identity, result: FetchResult) -> bool:
        """Update counters, check the identity back in, and retire it if a threshold is crossed.

        Returns True if the identity was retired.
        """
        async with self._lock:
            identity.usage_count += 1
            if result.status is FetchStatus.OK:
                identity.error_score = max(0.0, identity.error_score - SUCCESS_DECAY)
            else:
                identity.error_score += ERROR_WEIGHTS.get(result.status, 1.0)
            if result.cookies:
                identity.cookies.update(result.cookies)
            identity.in_use = False

            reason = should_retire(identity, self.config, self._clock())
            if reason:
                self._retire_locked(identity, reason)
            self._evict_locked()
            return identity.retired

    async def retire(self, identity: Identity, reason: str = "blocked") -> None:
        """Retire an identity immediately. It is never handed out again."""
        async with self._lock:
            self._retire_locked(identity, reason)
            self._evict_locked()

    def get_stats(self) -> Dict[str, int]:
        return {
            "live": sum(1 for i in self._identities if not i.retired),
            "in_use": sum(1 for i in self._identities if i.in_use),
            "created": self.created_count,
            "retired": self.retired_count,
        }
