"""
Egress proxy rotation.
"""

from __future__ import annotations

import random
from typing import List, Optional, Sequence
from urllib.parse import urlparse

import structlog

logger = structlog.get_logger(__name__)


class ProxyRotator:
    """Round-robin over configured proxy URLs. With none configured every request goes direct."""

    def __init__(
        self,
        proxies: Sequence[str] = (),
        shuffle: bool = True,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.proxies: List[str] = [p.strip() for p in proxies if p and p.strip()]
        for proxy in self.proxies:
            if "://" not in proxy or not urlparse(proxy).netloc:
                raise ValueError(f"Proxy URL needs a scheme and host: {proxy!r}")
        if shuffle:
            (rng or random.Random()).shuffle(self.proxies)  # Randomize initial order
        self._index = 0
        if self.proxies:
            logger.info("Proxy rotation enabled", proxy_count=len(self.proxies))

    def next_proxy(self) -> Optional[str]:
        """Return the egress endpoint for the next request."""
        if not self.proxies:
            return None
        proxy = self.proxies[self._index % len(self.proxies)]
        self._index += 1
        return proxy

    def __len__(self) -> int:
        return len(self.proxies)
