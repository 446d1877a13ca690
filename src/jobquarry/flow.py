"""
Flow control: capacity accounting and termination for a harvesting run.

The FlowController owns the run's CrawlBudget. Every admission decision is
made under one asyncio.Lock so two workers can never both take the last slot.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace

import structlog

from jobquarry.models import Stage

logger = structlog.get_logger(__name__)


@dataclass
class CrawlBudget:
    """
    Counters for one run.

    ``detail_admitted`` is always ``records_persisted + in_flight``, so
    ``records_persisted <= detail_admitted <= target`` holds at every step.
    """

    target: int
    max_pages: int
    pages_visited: int = 0
    detail_admitted: int = 0
    in_flight: int = 0
    records_persisted: int = 0
    frozen: bool = False

    @property
    def remaining_capacity(self) -> int:
        return max(0, self.target - self.records_persisted - self.in_flight)

    @property
    def shortfall(self) -> int:
        return max(0, self.target - self.records_persisted)

    @property
    def page_ceiling_reached(self) -> bool:
        return self.pages_visited >= self.max_pages


class FlowController:
    """Atomic admission, page counting and terminal detection over a CrawlBudget."""

    def __init__(self, target: int, max_pages: int) -> None:
        if target < 1 or max_pages < 1:
            raise ValueError("target and max_pages must be positive")
        self._budget = CrawlBudget(target=target, max_pages=max_pages)
        self._lock = asyncio.Lock()
        self.logger = logger.bind(component="FlowController")

    @property
    def budget(self) -> CrawlBudget:
        return self._budget

    async def admit(self, n: int, stage: Stage = Stage.DETAIL) -> int:
        """
        Reserve up to ``n`` slots.

        Detail admission returns ``min(n, target - persisted - in_flight)`` and
        holds those slots in flight until they are persisted or released.
        Listing admission does not consume record capacity.
        """
        if n <= 0:
            return 0
        async with self._lock:
            budget = self._budget
            if budget.frozen:
                return 0
            if stage is Stage.LISTING:
                return 0 if budget.page_ceiling_reached else n
            admitted = min(n, budget.remaining_capacity)
            budget.in_flight += admitted
            budget.detail_admitted += admitted
            if admitted < n:
                self.logger.debug("Admission capped", requested=n, admitted=admitted, in_flight=budget.in_flight)
            return admitted

    async def register_page_visited(self) -> bool:
        """Count a listing page. False means stop scheduling listing pages."""
        async with self._lock:
            budget = self._budget
            if budget.frozen or budget.page_ceiling_reached:
                return False
            budget.pages_visited += 1
            return True

    async def register_persisted(self, n: int = 1) -> None:
        async with self._lock:
            budget = self._budget
            moved = min(n, budget.in_flight)
            budget.in_flight -= moved
            # Persisting without a reservation still counts, but admitted follows.
            budget.detail_admitted += n - moved
            budget.records_persisted += n
            if budget.records_persisted >= budget.target and not budget.frozen:
                budget.frozen = True
                self.logger.info("Target reached, budget frozen", persisted=budget.records_persisted)

    async def release(self, n: int = 1) -> None:
        """Return in-flight slots of detail tasks that will not be persisted."""
        async with self._lock:
            budget = self._budget
            returned = min(n, budget.in_flight)
            budget.in_flight -= returned
            budget.detail_admitted -= returned

    def is_terminal(self, pending_listing: int = 0) -> bool:
        budget = self._budget
        if budget.records_persisted >= budget.target:
            return True
        return budget.in_flight == 0 and pending_listing == 0

    def snapshot(self) -> CrawlBudget:
        return replace(self._budget)
