"""Outlier filter and representative-price selection.

Given the reference price for a (card, condition) and the normalized
candidates from every source that ran, the reconciler:

1. Computes threshold = reference * plausibility_ratio (0 without a reference)
2. Discards candidates strictly below the threshold
3. Picks a representative from the survivors (cheapest, or mean)
4. Tags the representative's URL for its source

Candidates are compared in the home currency. The representative keeps the
listing's own amount and currency.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Literal

from src.common.config import AffiliateSettings, PipelineSettings

from ..common.errors import FailureKind
from ..models import CardRecord, PriceCondition, ReconciledPrice, utcnow
from ..normalizer.currency import NormalizedListing
from .affiliate import affiliate_taggers

logger = logging.getLogger(__name__)

SelectionPolicy = Literal["cheapest", "mean"]


@dataclass
class PriceStats:
    """Auxiliary statistics over the surviving candidates (home currency)."""

    count: int = 0
    mean: int | None = None
    min: int | None = None
    max: int | None = None

    @classmethod
    def from_amounts(cls, amounts: list[int]) -> PriceStats:
        if not amounts:
            return cls()
        mean = (Decimal(sum(amounts)) / len(amounts)).quantize(
            Decimal(1), rounding=ROUND_HALF_UP
        )
        return cls(count=len(amounts), mean=int(mean), min=min(amounts), max=max(amounts))

    def to_dict(self) -> dict:
        return {"count": self.count, "mean": self.mean, "min": self.min, "max": self.max}


@dataclass
class ReconciliationResult:
    """Result of one reconciliation pass.

    ``price`` is None when nothing survived; ``outcome`` then says why
    (NO_PRICE_FOUND or OUTLIER_REJECTED).
    """

    price: ReconciledPrice | None
    outcome: FailureKind | None = None
    threshold: Decimal = Decimal(0)
    candidate_count: int = 0
    rejected_count: int = 0
    stats: PriceStats = field(default_factory=PriceStats)

    @property
    def updated(self) -> bool:
        return self.price is not None


class Reconciler:
    """Reduce candidate listings to at most one ReconciledPrice."""

    def __init__(
        self,
        home_currency: str = "JPY",
        plausibility_ratio: float = 0.5,
        policy: SelectionPolicy = "cheapest",
        url_taggers: dict[str, Callable[[str], str]] | None = None,
    ) -> None:
        self.home_currency = home_currency.upper()
        self.plausibility_ratio = Decimal(str(plausibility_ratio))
        self.policy = policy
        self.url_taggers = url_taggers or {}

    @classmethod
    def from_settings(
        cls, pipeline: PipelineSettings, affiliate: AffiliateSettings
    ) -> Reconciler:
        return cls(
            home_currency=pipeline.home_currency,
            plausibility_ratio=pipeline.plausibility_ratio,
            policy=pipeline.selection_policy,
            url_taggers=affiliate_taggers(affiliate),
        )

    def threshold(self, reference: int | None) -> Decimal:
        if not reference:
            return Decimal(0)
        return Decimal(reference) * self.plausibility_ratio

    def tag_url(self, source: str, url: str) -> str:
        tagger = self.url_taggers.get(source)
        return tagger(url) if tagger else url

    def reconcile(
        self,
        card: CardRecord,
        condition: PriceCondition,
        candidates: list[NormalizedListing],
    ) -> ReconciliationResult:
        """Filter candidates against the reference and select a representative.

        Candidates may come from several sources; filtering and selection
        apply to their union.
        """
        reference = card.reference_price(condition)
        threshold = self.threshold(reference)

        if not candidates:
            return ReconciliationResult(
                price=None, outcome=FailureKind.NO_PRICE_FOUND, threshold=threshold
            )

        survivors = [c for c in candidates if c.amount_home >= threshold]
        rejected = len(candidates) - len(survivors)
        if rejected:
            logger.info(
                "  %s %s: rejected %d/%d candidates below ¥%s (reference ¥%s)",
                card.identity.card_number, condition.value, rejected,
                len(candidates), f"{threshold:,.0f}", f"{reference:,}",
            )

        if not survivors:
            return ReconciliationResult(
                price=None,
                outcome=FailureKind.OUTLIER_REJECTED,
                threshold=threshold,
                candidate_count=len(candidates),
                rejected_count=rejected,
            )

        # Stable: ties keep source order
        survivors.sort(key=lambda c: c.amount_home)
        stats = PriceStats.from_amounts([c.amount_home for c in survivors])
        cheapest = survivors[0]

        if self.policy == "mean" and len(survivors) > 1:
            amount = Decimal(stats.mean)
            currency = self.home_currency
            amount_home = stats.mean
        else:
            amount = cheapest.listing.price
            currency = cheapest.listing.currency
            amount_home = cheapest.amount_home

        price = ReconciledPrice(
            card_id=card.card_id,
            condition=condition,
            amount=amount,
            currency=currency,
            amount_home=amount_home,
            source_url=self.tag_url(cheapest.listing.source, cheapest.listing.url),
            source=cheapest.listing.source,
            home_currency=self.home_currency,
            reconciled_at=utcnow(),
        )

        logger.info(
            "  %s %s: %s %s (¥%s) from %s [n=%d min=¥%s mean=¥%s max=¥%s]",
            card.identity.card_number, condition.value, price.amount, price.currency,
            f"{price.amount_home:,}", price.source, stats.count,
            f"{stats.min:,}", f"{stats.mean:,}", f"{stats.max:,}",
        )
        return ReconciliationResult(
            price=price,
            threshold=threshold,
            candidate_count=len(candidates),
            rejected_count=rejected,
            stats=stats,
        )
