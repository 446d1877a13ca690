"""
ExtractionCascade for JobQuarry.

Runs stage-specific strategies in a fixed priority order. On listing pages the
first strategy producing at least one record wins outright; on detail pages
the strategies' fields are merged, earlier strategies taking precedence.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional, Sequence

import structlog

from jobquarry.exceptions import MalformedEmbeddedDataError
from jobquarry.models import DetailRecord, Stage

from .detail import AttributeHtmlStrategy, JsonLdStrategy
from .listing import DataApiStrategy, HtmlCardStrategy, NextDataStrategy
from .models import ExtractionContext, ExtractionOutcome, PageDocument
from .pagination import PaginationResolver
from .protocols import ExtractionStrategy
from .text import html_to_text

logger = structlog.get_logger(__name__)


def default_strategies() -> Dict[Stage, List[ExtractionStrategy]]:
    return {
        Stage.LISTING: [NextDataStrategy(), DataApiStrategy(), HtmlCardStrategy()],
        Stage.DETAIL: [JsonLdStrategy(), AttributeHtmlStrategy()],
    }


class ExtractionCascade:
    """
    Turns a fetched payload into records plus the next listing locator.

    Pure and synchronous: no I/O, and the same payload and stage always give
    equal records.
    """

    def __init__(
        self,
        strategies: Optional[Dict[Stage, Sequence[ExtractionStrategy]]] = None,
        resolver: Optional[PaginationResolver] = None,
    ) -> None:
        self._strategies: Dict[Stage, List[ExtractionStrategy]] = {
            stage: list(chain) for stage, chain in (strategies or default_strategies()).items()
        }
        for stage, chain in self._strategies.items():
            for strategy in chain:
                if strategy.stage is not stage:
                    raise ValueError(f"Strategy '{strategy.name}' belongs to {strategy.stage.value}, not {stage.value}")
        self.resolver = resolver or PaginationResolver()
        self.logger = logger.bind(component="ExtractionCascade")

    def extract(self, payload: str, stage: Stage, *, url: Optional[str] = None, page: int = 1) -> ExtractionOutcome:
        """
        Extract records from ``payload``.

        Args:
            payload: Response body (HTML or JSON)
            stage: Which strategy chain to run
            url: Locator the payload was fetched from
            page: Listing page index, used to pick the next cursor

        Returns:
            ExtractionOutcome; empty records when nothing matched
        """
        document = PageDocument(payload)
        context = ExtractionContext(stage=stage, url=url, page=page)
        if stage is Stage.DETAIL:
            return self._extract_detail(document, context)
        return self._extract_listing(document, context)

    def _extract_listing(self, document: PageDocument, context: ExtractionContext) -> ExtractionOutcome:
        build_id: Optional[str] = None
        for strategy in self._strategies.get(Stage.LISTING, []):
            try:
                result = strategy.extract(document, context)
            except MalformedEmbeddedDataError as e:
                self.logger.warning("Malformed embedded data", strategy=e.strategy, reason=e.reason, url=context.url)
                continue

            build_id = build_id or result.build_id
            if not result.records:
                self.logger.debug("Strategy found no records", strategy=strategy.name, url=context.url)
                continue

            outcome = ExtractionOutcome(
                stage=Stage.LISTING,
                records=result.records,
                strategy=strategy.name,
                cursor=result.cursor,
                build_id=build_id,
                document=document,
            )
            next_locator = self.resolver.resolve_next(outcome, context.url) if context.url else None
            self.logger.debug(
                "Listing extraction completed",
                strategy=strategy.name,
                records=len(result.records),
                next_locator=next_locator,
            )
            return replace(outcome, next_locator=next_locator)

        return ExtractionOutcome(stage=Stage.LISTING, build_id=build_id, document=document)

    def _extract_detail(self, document: PageDocument, context: ExtractionContext) -> ExtractionOutcome:
        merged = DetailRecord()
        contributors: List[str] = []
        for strategy in self._strategies.get(Stage.DETAIL, []):
            try:
                result = strategy.extract(document, context)
            except MalformedEmbeddedDataError as e:
                self.logger.warning("Malformed embedded data", strategy=e.strategy, reason=e.reason, url=context.url)
                continue
            for record in result.records:
                if isinstance(record, DetailRecord):
                    merged.fill_missing(record)
                    contributors.append(strategy.name)

        if merged.is_empty():
            return ExtractionOutcome(stage=Stage.DETAIL, document=document)
        if not merged.description_text and merged.description_html:
            merged.description_text = html_to_text(merged.description_html) or None
        return ExtractionOutcome(
            stage=Stage.DETAIL,
            records=(merged,),
            strategy="+".join(dict.fromkeys(contributors)),
            document=document,
        )
