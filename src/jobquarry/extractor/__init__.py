"""
Extraction cascade: listing and detail strategies plus pagination.
"""

from .cascade import ExtractionCascade, default_strategies
from .detail import AttributeHtmlStrategy, JsonLdStrategy
from .listing import DataApiStrategy, HtmlCardStrategy, NextDataStrategy
from .models import ExtractionContext, ExtractionOutcome, PageDocument, StrategyResult
from .pagination import PaginationResolver, PaginationState
from .protocols import ExtractionStrategy

__all__ = [
    "AttributeHtmlStrategy",
    "DataApiStrategy",
    "ExtractionCascade",
    "ExtractionContext",
    "ExtractionOutcome",
    "ExtractionStrategy",
    "HtmlCardStrategy",
    "JsonLdStrategy",
    "NextDataStrategy",
    "PageDocument",
    "PaginationResolver",
    "PaginationState",
    "StrategyResult",
    "default_strategies",
]
