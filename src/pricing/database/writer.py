"""Persistence writer.

Makes a ReconciledPrice durable: updates the card's current-price columns
and appends one price-history row. The two writes are independent; a
failure in one does not stop the other, and every failure is logged with
the card identity and returned to the caller.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..common.errors import PersistenceFailure
from ..models import PriceHistoryEntry, ReconciledPrice
from .store import PriceStore

logger = logging.getLogger(__name__)


@dataclass
class WriteResult:
    """Outcome of persisting one ReconciledPrice."""

    upserted: bool = False
    history_appended: bool = False
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.upserted and self.history_appended

    @property
    def partial(self) -> bool:
        return self.upserted != self.history_appended


class PriceWriter:
    """Write reconciled prices to a PriceStore."""

    def __init__(self, store: PriceStore) -> None:
        self.store = store

    def write(self, price: ReconciledPrice) -> WriteResult:
        result = WriteResult()

        try:
            self.store.upsert_card_price(price)
            result.upserted = True
        except Exception as e:
            reason = _reason(e)
            logger.error(
                "Current-price update failed for %s %s: %s",
                price.card_id, price.condition.value, reason,
            )
            result.errors.append(f"upsert: {reason}")

        try:
            self.store.append_price_history(PriceHistoryEntry.from_reconciled(price))
            result.history_appended = True
        except Exception as e:
            reason = _reason(e)
            logger.error(
                "History append failed for %s %s: %s",
                price.card_id, price.condition.value, reason,
            )
            result.errors.append(f"history: {reason}")

        if result.partial:
            logger.warning(
                "Partial write for %s %s (upserted=%s, history=%s)",
                price.card_id, price.condition.value,
                result.upserted, result.history_appended,
            )
        return result


def _reason(exc: Exception) -> str:
    """Store errors arrive as PersistenceFailure; anything else is unexpected."""
    if isinstance(exc, PersistenceFailure):
        return exc.reason
    return f"{type(exc).__name__}: {exc}"
