"""Data models for the pricing pipeline.

CardIdentity and CardRecord are read-only to the pipeline. Listing is
ephemeral (produced by a source adapter, discarded after reconciliation).
ReconciledPrice and PriceHistoryEntry are what the persistence writer
makes durable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceCondition(str, Enum):
    """Card condition a price applies to."""
    RAW = "RAW"
    PSA10 = "PSA10"

    @property
    def column(self) -> str:
        """Column/table suffix used by the stores (raw | psa10)."""
        return self.value.lower()


# Slug markers for special prints → search qualifier
SPECIAL_PRINT_QUALIFIERS = {
    "manga": "(Manga, Super Parallel)",
}


@dataclass(frozen=True)
class CardIdentity:
    """Immutable reference to a trading card in the catalog."""

    card_id: str
    card_number: str  # e.g. "OP07-051"
    slug: str
    rarity: str = ""
    name_localized: dict[str, str] = field(default_factory=dict, compare=False)

    @property
    def name_en(self) -> str:
        return self.name_localized.get("en", "")

    @property
    def display_name(self) -> str:
        return (
            self.name_localized.get("en")
            or self.name_localized.get("ja")
            or self.card_number
        )

    @property
    def special_print_qualifier(self) -> str:
        """Search qualifier for alt-art/rare prints, or "" for a regular print."""
        slug = self.slug.lower()
        for marker, qualifier in SPECIAL_PRINT_QUALIFIERS.items():
            if marker in slug:
                return qualifier
        return ""


@dataclass
class CardRecord:
    """A card's master record as read from the store."""

    identity: CardIdentity
    reference_prices: dict[PriceCondition, int | None] = field(default_factory=dict)
    storefront_urls: dict[PriceCondition, list[str]] = field(default_factory=dict)

    @property
    def card_id(self) -> str:
        return self.identity.card_id

    def reference_price(self, condition: PriceCondition) -> int | None:
        """Last known price in home currency (JPY), None for a new card."""
        value = self.reference_prices.get(condition)
        return value if value else None

    def urls_for(self, condition: PriceCondition) -> list[str]:
        return [u for u in self.storefront_urls.get(condition, []) if u]


@dataclass
class Listing:
    """A single candidate price observed on one source."""

    price: Decimal
    currency: str  # ISO 4217, e.g. USD | JPY
    title: str
    url: str
    source: str  # ebay | storefront
    observed_at: datetime = field(default_factory=utcnow)


@dataclass
class ReconciledPrice:
    """The pipeline's output for one (card, condition) pass.

    ``amount``/``currency`` are the representative listing's own price;
    ``amount_home`` is the same value in the home currency and is what the
    plausibility bound applies to.
    """

    card_id: str
    condition: PriceCondition
    amount: Decimal
    currency: str
    amount_home: int
    source_url: str
    source: str = ""
    home_currency: str = "JPY"
    reconciled_at: datetime = field(default_factory=utcnow)


@dataclass
class PriceHistoryEntry:
    """Append-only price history row."""

    card_id: str
    condition: PriceCondition
    amount: Decimal
    currency: str
    amount_home: int
    recorded_at: datetime
    id: int | None = None

    @classmethod
    def from_reconciled(cls, price: ReconciledPrice) -> PriceHistoryEntry:
        return cls(
            card_id=price.card_id,
            condition=price.condition,
            amount=price.amount,
            currency=price.currency,
            amount_home=price.amount_home,
            recorded_at=price.reconciled_at,
        )


@dataclass
class ExchangeRate:
    """One exchange-rate observation: 1 base = rate target."""

    base_currency: str
    target_currency: str
    rate: Decimal
    recorded_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "base_currency": self.base_currency,
            "target_currency": self.target_currency,
            "rate": float(self.rate),
            "recorded_at": self.recorded_at.isoformat(),
        }


@dataclass
class ScrapeState:
    """Persisted batch cursor."""

    current_offset: int = 0
    is_running: bool = False
    last_run_at: datetime | None = None
    last_completed_at: datetime | None = None
