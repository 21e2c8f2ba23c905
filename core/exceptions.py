"""
Exception types for the road risk engine.

Validation problems are reported through ValidationResult and never raised.
Only fetch-boundary failures surface as exceptions.
"""

from typing import Dict, Optional


class RoadRiskError(Exception):
    """Base class for all engine errors."""


class SourceFailure(RoadRiskError):
    """A single provider fetch failed or timed out."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class AggregateFailure(RoadRiskError):
    """Every configured provider failed or was rejected."""

    def __init__(self, failures: Dict[str, str], message: Optional[str] = None):
        self.failures = dict(failures)
        if message is None:
            details = "; ".join(f"{name}: {reason}" for name, reason in self.failures.items())
            message = f"All weather API sources failed. Errors: {details or 'no providers configured'}"
        super().__init__(message)


class ForecastUnavailable(SourceFailure):
    """No usable forecast exists for the requested date."""
