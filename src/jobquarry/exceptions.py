"""
Exception hierarchy for JobQuarry.

Only ``ConfigurationError`` is fatal to a run. Fetch errors are raised by the
gateway after its fallback retry and are handled by the harvester's task
retry loop. ``MalformedEmbeddedDataError`` never leaves the extraction cascade.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from jobquarry.models import FetchResult


class JobQuarryError(Exception):
    """Base class for all JobQuarry errors."""


class ConfigurationError(JobQuarryError):
    """Raised at startup when the run cannot be configured (e.g. no usable seed query)."""


class FetchError(JobQuarryError):
    """A fetch that still failed after the fallback transport retry."""

    def __init__(self, message: str, result: Optional["FetchResult"] = None) -> None:
        super().__init__(message)
        self.result = result

    @property
    def status_code(self) -> int:
        return self.result.status_code if self.result else 0


class BlockedError(FetchError):
    """Explicit anti-bot signal (403/429/503 or an implausibly short page)."""


class EmptyResponseError(FetchError):
    """2xx response with an empty body."""


class NetworkError(FetchError):
    """Transport failure or timeout."""


class MalformedEmbeddedDataError(JobQuarryError):
    """Structured payload present but unparsable; the cascade falls through."""

    def __init__(self, strategy: str, reason: str) -> None:
        super().__init__(f"{strategy}: {reason}")
        self.strategy = strategy
        self.reason = reason
