"""
Harvester orchestration for JobQuarry.

A fixed set of workers drains one asyncio.Queue holding listing and detail
tasks. The AdaptiveConcurrencyLimiter decides how many of them run at once,
the FlowController decides what may be enqueued, and the run ends when no
task is outstanding or a hard stop (request cap, deadline) fires.
"""

from __future__ import annotations

import asyncio
import time
from collections import Counter
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional, Set
from uuid import uuid4

import structlog

from jobquarry.assembler import RecordAssembler
from jobquarry.config.config import Config
from jobquarry.crawler.concurrency import AdaptiveConcurrencyLimiter
from jobquarry.crawler.gateway import FetchGateway
from jobquarry.crawler.identity import IdentityPool
from jobquarry.exceptions import BlockedError, FetchError
from jobquarry.extractor.cascade import ExtractionCascade
from jobquarry.extractor.pagination import PaginationState
from jobquarry.flow import FlowController
from jobquarry.models import JobRecord, ListingRecord, SearchQuery, Stage
from jobquarry.observability.metrics import increment
from jobquarry.seeds import build_search_urls, data_url
from jobquarry.storage.sinks import DatasetSink, JsonlDatasetSink

logger = structlog.get_logger(__name__)

PROGRESS_EVERY = 10


@dataclass(frozen=True)
class CrawlTask:
    """
    One unit of work on the queue.

    ``locator`` is always the HTML search or detail URL; listing tasks with
    ``data_request`` set are fetched from the JSON data endpoint instead.
    Listing tasks carry their position in the page chain.
    """

    stage: Stage
    locator: str
    pagination: Optional[PaginationState] = None
    listing: Optional[ListingRecord] = None
    data_request: bool = False
    retry_count: int = 0
    page_counted: bool = False

    @property
    def page(self) -> int:
        return self.pagination.page if self.pagination else 1


@dataclass
class RunReport:
    """Summary of a finished run. A shortfall is reported, never raised."""

    run_id: str
    target: int
    records_persisted: int
    shortfall: int
    pages_visited: int
    detail_tasks_admitted: int
    requests_issued: int
    stop_reason: str
    elapsed_seconds: float
    build_id: Optional[str] = None
    listing_strategies: Dict[str, int] = field(default_factory=dict)
    listing_only_records: int = 0
    listing_pages_skipped: int = 0
    identities: Dict[str, int] = field(default_factory=dict)
    concurrency: Dict[str, int] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.shortfall == 0

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["completed"] = self.completed
        return data


class Harvester:
    """
    Runs one search query to completion.

    Collaborators default to the production implementations built from
    ``config``; tests inject fakes for the gateway and sink.
    """

    def __init__(
        self,
        config: Config,
        *,
        gateway: Optional[FetchGateway] = None,
        cascade: Optional[ExtractionCascade] = None,
        flow: Optional[FlowController] = None,
        assembler: Optional[RecordAssembler] = None,
        sink: Optional[DatasetSink] = None,
        limiter: Optional[AdaptiveConcurrencyLimiter] = None,
    ) -> None:
        self.config = config
        crawler = config.crawler
        self.gateway = gateway or FetchGateway(crawler, IdentityPool(config.identity))
        self.cascade = cascade or ExtractionCascade()
        self.flow = flow or FlowController(config.budget.target, config.budget.max_pages)
        self.assembler = assembler or RecordAssembler()
        self.sink: DatasetSink = sink or JsonlDatasetSink(config.output.path)
        self.limiter = limiter or AdaptiveConcurrencyLimiter(
            crawler.min_concurrency, crawler.max_concurrency, crawler.scale_up_after
        )
        self.run_id = str(uuid4())
        self.logger = logger.bind(component="Harvester")

        self._queue: asyncio.Queue[CrawlTask] = asyncio.Queue()
        self._outstanding = 0
        self._pending_listing = 0
        self._done = asyncio.Event()
        self._stop_reason: Optional[str] = None
        self._seen_urls: Set[str] = set()
        self._build_id: Optional[str] = None
        self._strategy_counts: Counter[str] = Counter()
        self._listing_only = 0
        self._pages_skipped = 0

    # -- queue bookkeeping -------------------------------------------------

    def _enqueue(self, task: CrawlTask) -> None:
        self._outstanding += 1
        if task.stage is Stage.LISTING:
            self._pending_listing += 1
        self._queue.put_nowait(task)

    def _finish(self, task: CrawlTask) -> None:
        self._outstanding -= 1
        if task.stage is Stage.LISTING:
            self._pending_listing -= 1
        if self._outstanding <= 0:
            self._done.set()

    def _hard_stop_reason(self) -> Optional[str]:
        if self._stop_reason:
            return self._stop_reason
        if self.gateway.requests_issued >= self.config.max_requests:
            self._stop_reason = "request_cap"
            self.logger.warning(
                "Request cap reached, draining", requests=self.gateway.requests_issued, cap=self.config.max_requests
            )
        return self._stop_reason

    def _should_drop(self, task: CrawlTask) -> bool:
        if self._hard_stop_reason():
            return True
        return self.flow.is_terminal(self._pending_listing)

    # -- run ---------------------------------------------------------------

    async def run(self, query: Optional[SearchQuery] = None) -> RunReport:
        """
        Harvest until the target is met, the listing chain is exhausted, or a
        hard stop fires.

        Raises:
            ConfigurationError: the query cannot produce any seed URL
        """
        query = query or self.config.search.to_query()
        seeds = build_search_urls(query)
        structlog.contextvars.bind_contextvars(run_id=self.run_id)
        started = time.monotonic()

        self.logger.info(
            "Starting harvest",
            target=self.flow.budget.target,
            max_pages=self.flow.budget.max_pages,
            seeds=seeds,
            max_concurrency=self.limiter.max_concurrency,
        )

        try:
            for seed in seeds:
                if await self.flow.admit(1, Stage.LISTING):
                    self._enqueue(
                        CrawlTask(stage=Stage.LISTING, locator=seed, pagination=PaginationState(locator=seed))
                    )
            if self._outstanding == 0:
                self._done.set()

            await self._process()
        finally:
            await self.gateway.close()
            await self.sink.close()
            structlog.contextvars.unbind_contextvars("run_id")

        report = self._report(time.monotonic() - started)
        self.logger.info(
            "Harvest finished",
            persisted=report.records_persisted,
            target=report.target,
            shortfall=report.shortfall,
            pages=report.pages_visited,
            stop_reason=report.stop_reason,
        )
        if report.shortfall:
            self.logger.warning("Target not reached", shortfall=report.shortfall, persisted=report.records_persisted)
        return report

    async def _process(self) -> None:
        num_workers = self.limiter.max_concurrency
        workers = [asyncio.create_task(self._worker(f"worker-{i}")) for i in range(num_workers)]
        try:
            deadline = self.config.crawler.run_timeout_seconds
            try:
                async with asyncio.timeout(deadline):
                    await self._done.wait()
            except TimeoutError:
                self._stop_reason = "deadline"
                self.logger.warning("Run deadline reached, stopping", deadline=deadline)
        finally:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _worker(self, worker_id: str) -> None:
        while True:
            task = await self._queue.get()
            try:
                if self._should_drop(task):
                    await self._drop(task)
                    continue
                async with self.limiter.slot():
                    await self._run_task(task, worker_id)
            except Exception as e:
                await self._handle_error(e, task, worker_id)
            finally:
                self._queue.task_done()
                self._finish(task)

    async def _handle_error(self, error: Exception, task: CrawlTask, worker_id: str) -> None:
        """Unexpected task failure: log it and give back any reserved detail slot."""
        self.logger.error(
            "Task failed unexpectedly",
            stage=task.stage.value,
            url=task.locator,
            worker=worker_id,
            error=str(error),
            exc_info=True,
        )
        if task.stage is Stage.DETAIL:
            await self.flow.release(1)

    async def _drop(self, task: CrawlTask) -> None:
        if task.stage is Stage.DETAIL:
            await self.flow.release(1)
        self.logger.debug("Dropped task after stop", stage=task.stage.value, url=task.locator)

    async def _run_task(self, task: CrawlTask, worker_id: str) -> None:
        handler = self._handle_listing if task.stage is Stage.LISTING else self._handle_detail
        if task.stage is Stage.LISTING and not task.page_counted:
            if not await self.flow.register_page_visited():
                self.logger.info("Listing page ceiling reached", url=task.locator, page=task.page)
                return
            task = replace(task, page_counted=True)
        try:
            async with asyncio.timeout(self.config.crawler.handler_timeout):
                await handler(task)
        except (FetchError, TimeoutError) as e:
            if isinstance(e, BlockedError):
                await self.limiter.record_block()
            await self._retry_or_abandon(task, e, worker_id)

    async def _retry_or_abandon(self, task: CrawlTask, error: Exception, worker_id: str) -> None:
        if task.retry_count < self.config.crawler.max_task_retries:
            self.logger.info(
                "Task failed, re-queueing",
                stage=task.stage.value,
                url=task.locator,
                retry=task.retry_count + 1,
                error=str(error) or type(error).__name__,
                worker=worker_id,
            )
            self._enqueue(replace(task, retry_count=task.retry_count + 1))
            return

        if task.stage is Stage.LISTING:
            self._pages_skipped += 1
            self.logger.warning("Listing page abandoned", url=task.locator, page=task.page, error=str(error))
            return

        self.logger.warning("Detail page abandoned, keeping listing data", url=task.locator, error=str(error))
        if task.listing is None:
            raise RuntimeError("detail task without listing data")
        await self._persist(self.assembler.assemble(task.listing, None, url=task.locator), detail=False)

    # -- handlers ----------------------------------------------------------

    async def _handle_listing(self, task: CrawlTask) -> None:
        url = data_url(self._build_id, task.locator) if task.data_request and self._build_id else task.locator
        result = await self.gateway.fetch(
            url, Stage.LISTING, data_request=task.data_request, attempt=task.retry_count
        )
        await self._record_fetch(result.attempts)

        outcome = self.cascade.extract(result.text, Stage.LISTING, url=task.locator, page=task.page)
        if outcome.build_id and outcome.build_id != self._build_id:
            self._build_id = outcome.build_id
            self.logger.info("Observed build id", build_id=self._build_id)

        strategy = outcome.strategy or "none"
        self._strategy_counts[strategy] += 1
        increment("listing_pages_total", strategy=strategy)

        if not outcome.has_data:
            if task.data_request:
                self.logger.info("Data endpoint returned no jobs, refetching as HTML", url=task.locator)
                self._enqueue(replace(task, data_request=False, retry_count=0))
                return
            self.logger.warning("No jobs on listing page", url=task.locator, page=task.page, status=result.status_code)
            return

        fresh: List[ListingRecord] = []
        for record in outcome.records:
            if isinstance(record, ListingRecord) and record.url not in self._seen_urls:
                fresh.append(record)
        admitted = await self.flow.admit(len(fresh), Stage.DETAIL)
        for record in fresh[:admitted]:
            self._seen_urls.add(record.url)
            self._enqueue(CrawlTask(stage=Stage.DETAIL, locator=record.url, listing=record))

        state = task.pagination or PaginationState(locator=task.locator)
        self.logger.info(
            "Listing page processed",
            page=state.page,
            source=state.source,
            strategy=strategy,
            found=len(outcome.records),
            admitted=admitted,
            next_locator=outcome.next_locator,
        )

        next_state = self.cascade.resolver.advance(state, outcome)
        if next_state and self.flow.budget.remaining_capacity > 0:
            if await self.flow.admit(1, Stage.LISTING):
                self._enqueue(
                    CrawlTask(
                        stage=Stage.LISTING,
                        locator=next_state.locator,
                        pagination=next_state,
                        data_request=bool(self.config.crawler.use_data_api and self._build_id and outcome.cursor),
                    )
                )

    async def _handle_detail(self, task: CrawlTask) -> None:
        if task.listing is None:
            raise RuntimeError("detail task without listing data")
        result = await self.gateway.fetch(task.locator, Stage.DETAIL, attempt=task.retry_count)
        await self._record_fetch(result.attempts)

        outcome = self.cascade.extract(result.text, Stage.DETAIL, url=task.locator)
        detail = outcome.records[0] if outcome.has_data else None
        if detail is None:
            self.logger.debug("No detail fields found", url=task.locator, status=result.status_code)
        await self._persist(self.assembler.assemble(task.listing, detail, url=task.locator), detail=detail is not None)

    async def _record_fetch(self, attempts: int) -> None:
        if attempts > 1:
            await self.limiter.record_block()
        else:
            await self.limiter.record_success()

    async def _persist(self, record: JobRecord, *, detail: bool) -> None:
        try:
            await self.sink.write(record)
        except OSError as e:
            await self.flow.release(1)
            self.logger.error("Failed to persist record", url=record.url, error=str(e))
            return

        await self.flow.register_persisted(1)
        if not detail:
            self._listing_only += 1
        increment("records_persisted_total", detail="yes" if detail else "no")

        persisted = self.flow.budget.records_persisted
        if persisted == 1 or persisted % PROGRESS_EVERY == 0:
            self.logger.info("Saved records", persisted=persisted, target=self.flow.budget.target, title=record.title)

    def _report(self, elapsed: float) -> RunReport:
        budget = self.flow.snapshot()
        stop_reason = self._stop_reason or ("target_reached" if budget.frozen else "exhausted")
        return RunReport(
            run_id=self.run_id,
            target=budget.target,
            records_persisted=budget.records_persisted,
            shortfall=budget.shortfall,
            pages_visited=budget.pages_visited,
            detail_tasks_admitted=budget.detail_admitted,
            requests_issued=self.gateway.requests_issued,
            stop_reason=stop_reason,
            elapsed_seconds=round(elapsed, 3),
            build_id=self._build_id,
            listing_strategies=dict(self._strategy_counts),
            listing_only_records=self._listing_only,
            listing_pages_skipped=self._pages_skipped,
            identities=self.gateway.identity_pool.get_stats(),
            concurrency=self.limiter.get_stats(),
        )
