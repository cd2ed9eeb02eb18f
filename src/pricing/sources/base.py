"""Base class for price source adapters.

Every adapter turns a card + condition into zero or more Listings from one
external source. Failures never escape ``fetch()``: they come back as a
SourceResult carrying the error and no listings, so the driver can log the
source and move on.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation

import requests

from ..common.config import Config
from ..common.errors import SourceUnavailable
from ..common.http_client import HTTPClient
from ..models import CardRecord, Listing, PriceCondition

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    """Outcome of one adapter call for one (card, condition)."""

    source: str
    listings: list[Listing] = field(default_factory=list)
    error: SourceUnavailable | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BaseSourceAdapter(ABC):
    """Abstract base for price sources."""

    name: str = "base"

    def __init__(
        self,
        config: Config | None = None,
        client: HTTPClient | None = None,
    ) -> None:
        self.config = config or Config()
        self._client = client or HTTPClient(self.config)

    @abstractmethod
    def search_listings(
        self, card: CardRecord, condition: PriceCondition
    ) -> list[Listing]:
        """Fetch listings for a card. Raises SourceUnavailable on failure."""
        ...

    def fetch(self, card: CardRecord, condition: PriceCondition) -> SourceResult:
        """Fetch listings, converting any source failure into a SourceResult."""
        try:
            listings = self.search_listings(card, condition)
        except SourceUnavailable as exc:
            return SourceResult(source=self.name, error=exc)
        except requests.RequestException as exc:
            return SourceResult(
                source=self.name,
                error=SourceUnavailable(self.name, _describe_request_error(exc)),
            )
        except (ValueError, TypeError, AttributeError, KeyError) as exc:
            logger.debug("%s: unparseable response", self.name, exc_info=True)
            return SourceResult(
                source=self.name,
                error=SourceUnavailable(
                    self.name, f"malformed payload ({type(exc).__name__}: {exc})"
                ),
            )

        logger.debug(
            "%s: %d listings for %s %s",
            self.name, len(listings), card.identity.card_number, condition.value,
        )
        return SourceResult(source=self.name, listings=listings)

    @staticmethod
    def _to_decimal(value: object) -> Decimal | None:
        """Parse a price value; None for anything non-numeric or non-positive."""
        try:
            amount = Decimal(str(value))
        except (InvalidOperation, ValueError, TypeError):
            return None
        if not amount.is_finite() or amount <= 0:
            return None
        return amount

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def _describe_request_error(exc: requests.RequestException) -> str:
    """Short reason string for logs and the batch summary."""
    response = getattr(exc, "response", None)
    if response is not None:
        return f"HTTP {response.status_code}"
    return f"{type(exc).__name__}: {exc}"
