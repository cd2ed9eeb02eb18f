"""Error taxonomy for the pricing pipeline.

Only ConfigurationMissing aborts a run. SourceUnavailable and
PersistenceFailure are caught at the (card, condition) boundary and
reported in the batch summary.
"""

from __future__ import annotations

from enum import Enum


class FailureKind(str, Enum):
    """Reason codes reported per (card, condition) pair."""
    SOURCE_UNAVAILABLE = "source_unavailable"
    NO_PRICE_FOUND = "no_price_found"
    OUTLIER_REJECTED = "outlier_rejected"
    PERSISTENCE_FAILURE = "persistence_failure"
    CONFIGURATION_MISSING = "configuration_missing"


class PricingError(Exception):
    """Base class for pipeline errors."""

    kind: FailureKind


class ConfigurationMissing(PricingError):
    """A required credential or environment value is absent."""

    kind = FailureKind.CONFIGURATION_MISSING

    def __init__(self, names: list[str] | str) -> None:
        self.names = [names] if isinstance(names, str) else list(names)
        super().__init__(f"Missing configuration: {', '.join(self.names)}")


class SourceUnavailable(PricingError):
    """An upstream price source failed (network error, non-2xx, bad payload)."""

    kind = FailureKind.SOURCE_UNAVAILABLE

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class PersistenceFailure(PricingError):
    """A write to the price store failed."""

    kind = FailureKind.PERSISTENCE_FAILURE

    def __init__(self, card_id: str, reason: str) -> None:
        self.card_id = card_id
        self.reason = reason
        super().__init__(f"{card_id}: {reason}")
