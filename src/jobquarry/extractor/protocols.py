"""
Protocols for pluggable extraction strategies.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from jobquarry.models import Stage

from .models import ExtractionContext, PageDocument, StrategyResult


@runtime_checkable
class ExtractionStrategy(Protocol):
    """Pluggable payload-to-records strategy for one crawl stage."""

    name: str
    stage: Stage

    def extract(self, document: PageDocument, context: ExtractionContext) -> StrategyResult:
        """Extract records from a page.

        Args:
            document: Fetched payload with lazily parsed trees
            context: URL and page index of the payload

        Returns:
            StrategyResult; empty records when the strategy does not apply

        Raises:
            MalformedEmbeddedDataError: structured data present but unparsable
        """
        ...
