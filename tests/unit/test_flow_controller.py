"""
Tests for the flow controller: admission bounds, page ceiling, termination.
"""

import asyncio

import pytest

from jobquarry.flow import FlowController
from jobquarry.models import Stage


@pytest.mark.unit
class TestAdmission:
    @pytest.mark.asyncio
    async def test_admits_up_to_remaining_capacity(self):
        flow = FlowController(target=50, max_pages=5)

        assert await flow.admit(20) == 20
        assert await flow.admit(20) == 20
        assert await flow.admit(20) == 10
        assert await flow.admit(5) == 0

        budget = flow.snapshot()
        assert budget.in_flight == 50
        assert budget.detail_admitted == 50

    @pytest.mark.asyncio
    async def test_concurrent_admission_never_over_admits(self):
        flow = FlowController(target=25, max_pages=5)

        admitted = await asyncio.gather(*(flow.admit(3) for _ in range(20)))

        assert sum(admitted) == 25
        assert all(n >= 0 for n in admitted)

    @pytest.mark.asyncio
    async def test_non_positive_request(self):
        flow = FlowController(target=5, max_pages=1)
        assert await flow.admit(0) == 0
        assert await flow.admit(-3) == 0

    @pytest.mark.asyncio
    async def test_listing_admission_does_not_use_record_capacity(self):
        flow = FlowController(target=2, max_pages=3)
        await flow.admit(2)

        assert await flow.admit(1, Stage.LISTING) == 1
        assert flow.budget.remaining_capacity == 0

    @pytest.mark.asyncio
    async def test_released_slots_can_be_admitted_again(self):
        flow = FlowController(target=3, max_pages=1)
        await flow.admit(3)
        await flow.release(2)

        assert await flow.admit(5) == 2
        assert flow.budget.detail_admitted == 3

    @pytest.mark.asyncio
    async def test_frozen_budget_admits_nothing(self):
        flow = FlowController(target=2, max_pages=5)
        await flow.admit(2)
        await flow.register_persisted(2)

        assert flow.budget.frozen
        assert await flow.admit(1) == 0
        assert await flow.admit(1, Stage.LISTING) == 0


@pytest.mark.unit
class TestPagesAndPersistence:
    @pytest.mark.asyncio
    async def test_page_counter_never_exceeds_ceiling(self):
        flow = FlowController(target=100, max_pages=2)

        results = [await flow.register_page_visited() for _ in range(4)]

        assert results == [True, True, False, False]
        assert flow.budget.pages_visited == 2
        assert await flow.admit(1, Stage.LISTING) == 0

    @pytest.mark.asyncio
    async def test_persisted_never_exceeds_admitted(self):
        flow = FlowController(target=10, max_pages=5)
        await flow.admit(4)
        for _ in range(4):
            await flow.register_persisted(1)
            budget = flow.snapshot()
            assert budget.records_persisted <= budget.detail_admitted <= budget.target

        assert flow.budget.in_flight == 0
        assert flow.budget.records_persisted == 4

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self):
        flow = FlowController(target=5, max_pages=5)
        snapshot = flow.snapshot()
        await flow.admit(3)

        assert snapshot.in_flight == 0
        assert flow.budget.in_flight == 3


@pytest.mark.unit
class TestTermination:
    @pytest.mark.asyncio
    async def test_terminal_once_target_persisted(self):
        flow = FlowController(target=2, max_pages=5)
        await flow.admit(2)
        await flow.register_persisted(2)

        assert flow.is_terminal(pending_listing=3)

    @pytest.mark.asyncio
    async def test_not_terminal_while_detail_work_in_flight(self):
        flow = FlowController(target=10, max_pages=1)
        await flow.register_page_visited()
        await flow.admit(3)

        assert not flow.is_terminal()

    def test_not_terminal_while_listing_work_pending(self):
        flow = FlowController(target=10, max_pages=5)
        assert not flow.is_terminal(pending_listing=1)

    @pytest.mark.asyncio
    async def test_terminal_when_all_work_drained_short_of_target(self):
        flow = FlowController(target=50, max_pages=5)
        await flow.admit(40)
        await flow.register_persisted(40)

        assert flow.is_terminal()
        assert flow.budget.shortfall == 10

    def test_rejects_non_positive_budget(self):
        with pytest.raises(ValueError):
            FlowController(target=0, max_pages=1)
