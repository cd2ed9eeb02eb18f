"""Exchange-rate loading and refresh.

The pipeline reads the latest stored rates once per batch. At the start of a
full pass the rates can be refreshed from exchangerate-api.com and appended
to the store's rate history.

API endpoint: GET https://api.exchangerate-api.com/v4/latest/USD
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import TYPE_CHECKING

from ..common.config import Config
from ..common.http_client import HTTPClient
from ..models import ExchangeRate, utcnow
from .currency import PIVOT_CURRENCY, ExchangeRateTable

if TYPE_CHECKING:
    from ..database.store import PriceStore

logger = logging.getLogger(__name__)

# Pairs read from the store for each batch
TRACKED_PAIRS = [("USD", "JPY"), ("USD", "EUR"), ("USD", "GBP")]


def load_rate_table(
    store: PriceStore,
    home_currency: str = "JPY",
    fallback_usd_jpy: float = 150.0,
) -> ExchangeRateTable:
    """Build a rate table from the latest stored rates.

    Falls back to ``fallback_usd_jpy`` when no USD→JPY rate is available.
    """
    table = ExchangeRateTable()
    pairs = list(TRACKED_PAIRS)
    if (PIVOT_CURRENCY, home_currency) not in pairs and home_currency != PIVOT_CURRENCY:
        pairs.append((PIVOT_CURRENCY, home_currency))

    for base, target in pairs:
        try:
            rate = store.get_latest_exchange_rate(base, target)
        except Exception as e:
            logger.warning("Could not read %s→%s rate: %s", base, target, e)
            rate = None
        if rate is not None:
            table.add(rate)

    if home_currency == "JPY" and table.rate("USD", "JPY") is None:
        logger.warning(
            "No USD→JPY rate available, using fallback %.2f", fallback_usd_jpy
        )
        table.add(ExchangeRate("USD", "JPY", Decimal(str(fallback_usd_jpy))))

    logger.info("Exchange rates: %r", table)
    return table


class ExchangeRateFetcher:
    """Fetch current USD-based rates and append them to the store."""

    TARGETS = ("JPY", "EUR", "GBP")

    def __init__(
        self,
        config: Config | None = None,
        client: HTTPClient | None = None,
    ) -> None:
        self.config = config or Config()
        self._client = client or HTTPClient(self.config)

    def fetch_latest(self) -> list[ExchangeRate]:
        """Fetch USD→{JPY,EUR,GBP} and the derived JPY→USD rate.

        Raises:
            requests.RequestException: On network error or non-2xx status.
            ValueError: If the payload is not JSON or lacks a required rate.
        """
        resp = self._client.get(self.config.exchange_rate_api_url)
        data = resp.json()
        quoted = data.get("rates") or {}

        now = utcnow()
        rates: list[ExchangeRate] = []
        for target in self.TARGETS:
            if target not in quoted:
                raise ValueError(f"Rate USD→{target} missing from response")
            rates.append(ExchangeRate("USD", target, Decimal(str(quoted[target])), now))

        usd_jpy = rates[0].rate
        rates.append(ExchangeRate("JPY", "USD", Decimal(1) / usd_jpy, now))
        return rates

    def refresh(self, store: PriceStore) -> list[ExchangeRate]:
        """Fetch the latest rates and append them to the store's history."""
        rates = self.fetch_latest()
        store.insert_exchange_rates(rates)
        logger.info(
            "Exchange rates updated: %s",
            ", ".join(f"{r.base_currency}/{r.target_currency}={r.rate:.6f}" for r in rates),
        )
        return rates

    def close(self) -> None:
        self._client.close()
