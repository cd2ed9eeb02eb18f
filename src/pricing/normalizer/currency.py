"""Currency normalization.

Pure functions: no I/O. A listing is converted into the home currency
using the latest known rate for its currency; listings whose currency has
no known rate are dropped rather than converted at 1:1.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable

from ..models import ExchangeRate, Listing

logger = logging.getLogger(__name__)

# Minor-unit exponents; currencies not listed are assumed to have 2
CURRENCY_EXPONENTS = {"JPY": 0, "KRW": 0, "USD": 2, "EUR": 2, "GBP": 2}

# Cross rates are resolved through this currency
PIVOT_CURRENCY = "USD"


def quantize_for(amount: Decimal, currency: str) -> Decimal:
    """Round to the currency's minor unit (half up)."""
    exponent = CURRENCY_EXPONENTS.get(currency.upper(), 2)
    return amount.quantize(Decimal(1).scaleb(-exponent), rounding=ROUND_HALF_UP)


class ExchangeRateTable:
    """Latest rate per currency pair, with inverse and pivot lookups."""

    def __init__(self, rates: Iterable[ExchangeRate] = ()) -> None:
        self._rates: dict[tuple[str, str], ExchangeRate] = {}
        for rate in rates:
            self.add(rate)

    def add(self, rate: ExchangeRate) -> None:
        """Record a rate observation; the most recent one per pair wins."""
        if rate.rate <= 0:
            logger.warning(
                "Ignoring non-positive rate %s→%s: %s",
                rate.base_currency, rate.target_currency, rate.rate,
            )
            return
        key = (rate.base_currency.upper(), rate.target_currency.upper())
        existing = self._rates.get(key)
        if existing is None or rate.recorded_at >= existing.recorded_at:
            self._rates[key] = rate

    def _direct(self, base: str, target: str) -> Decimal | None:
        if base == target:
            return Decimal(1)
        if rate := self._rates.get((base, target)):
            return Decimal(rate.rate)
        if inverse := self._rates.get((target, base)):
            return Decimal(1) / Decimal(inverse.rate)
        return None

    def rate(self, base: str, target: str) -> Decimal | None:
        """How many ``target`` units one ``base`` unit buys, or None."""
        base, target = base.upper(), target.upper()
        direct = self._direct(base, target)
        if direct is not None:
            return direct
        to_pivot = self._direct(base, PIVOT_CURRENCY)
        from_pivot = self._direct(PIVOT_CURRENCY, target)
        if to_pivot is None or from_pivot is None:
            return None
        return to_pivot * from_pivot

    def __len__(self) -> int:
        return len(self._rates)

    def __repr__(self) -> str:
        pairs = ", ".join(f"{b}/{t}={r.rate}" for (b, t), r in self._rates.items())
        return f"ExchangeRateTable({pairs})"


def convert(
    amount: Decimal,
    from_currency: str,
    to_currency: str,
    rates: ExchangeRateTable,
) -> Decimal | None:
    """Convert an amount, rounded to the target currency's minor unit."""
    rate = rates.rate(from_currency, to_currency)
    if rate is None:
        return None
    return quantize_for(Decimal(amount) * rate, to_currency)


@dataclass
class NormalizedListing:
    """A listing together with its price in the home currency."""

    listing: Listing
    amount_home: int
    home_currency: str = "JPY"


def normalize_listing(
    listing: Listing,
    home_currency: str,
    rates: ExchangeRateTable,
) -> NormalizedListing | None:
    """Express a listing's price in the home currency, in whole units.

    Returns None when the listing's currency cannot be resolved.
    """
    rate = rates.rate(listing.currency, home_currency)
    if rate is None:
        return None
    whole = (listing.price * rate).quantize(Decimal(1), rounding=ROUND_HALF_UP)
    return NormalizedListing(
        listing=listing,
        amount_home=int(whole),
        home_currency=home_currency.upper(),
    )


def normalize_listings(
    listings: Iterable[Listing],
    home_currency: str,
    rates: ExchangeRateTable,
) -> list[NormalizedListing]:
    """Normalize listings in order, dropping unresolvable currencies."""
    normalized: list[NormalizedListing] = []
    for listing in listings:
        item = normalize_listing(listing, home_currency, rates)
        if item is None:
            logger.info(
                "  Dropped %s listing: no %s→%s rate (%s)",
                listing.source, listing.currency, home_currency, listing.url,
            )
            continue
        normalized.append(item)
    return normalized
