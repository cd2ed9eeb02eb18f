"""eBay Browse API price source.

Searches fixed-price listings in the CCG individual-card category for
Japanese prints of a card and returns them cheapest-first.

Auth: OAuth client-credentials grant. One application token is requested
the first time it is needed and reused for the rest of the run.

API endpoint: GET https://api.ebay.com/buy/browse/v1/item_summary/search
"""

from __future__ import annotations

import logging

import requests

from src.common.config import AffiliateSettings, EbaySettings, settings

from ..common.config import Config
from ..common.errors import SourceUnavailable
from ..common.http_client import HTTPClient
from ..models import CardIdentity, CardRecord, Listing, PriceCondition
from .base import BaseSourceAdapter, _describe_request_error

logger = logging.getLogger(__name__)

OAUTH_SCOPE = "https://api.ebay.com/oauth/api_scope"

# Always excluded: fakes, digital items, lots, non-Japanese prints
GENERIC_EXCLUSIONS = "-proxy -replica -digital -playset -English -EN"

# Condition-specific include/exclude terms
CONDITION_TERMS = {
    PriceCondition.RAW: "-PSA -BGS -CGC -ARS -graded -slab",
    PriceCondition.PSA10: "PSA 10 -BGS -CGC -ARS",
}

MARKET_QUALIFIER = "(Japanese, JP)"


def build_search_query(identity: CardIdentity, condition: PriceCondition) -> str:
    """Build the free-text Browse API query for a card and condition.

    Format: {number} {rarity} {special-print} {english name} (Japanese, JP)
            {generic exclusions} {condition terms}
    """
    parts = [identity.card_number]
    if identity.rarity:
        parts.append(identity.rarity)
    if qualifier := identity.special_print_qualifier:
        parts.append(qualifier)
    if identity.name_en:
        parts.append(identity.name_en)
    parts.append(MARKET_QUALIFIER)
    parts.append(GENERIC_EXCLUSIONS)
    parts.append(CONDITION_TERMS[condition])
    return " ".join(parts)


class EbayBrowseAdapter(BaseSourceAdapter):
    """Source adapter for the eBay Browse API.

    Usage:
        with EbayBrowseAdapter(config) as ebay:
            result = ebay.fetch(card, PriceCondition.RAW)
    """

    name = "ebay"

    def __init__(
        self,
        config: Config | None = None,
        client: HTTPClient | None = None,
        ebay_settings: EbaySettings | None = None,
        affiliate: AffiliateSettings | None = None,
    ) -> None:
        super().__init__(config, client)
        self.config.require("ebay_app_id", "ebay_cert_id")
        self.ebay_settings = ebay_settings or settings.ebay
        self.affiliate = affiliate or settings.affiliate
        self._token: str | None = None

    def _get_access_token(self) -> str:
        """Exchange app credentials for an application access token."""
        if self._token:
            return self._token

        try:
            resp = self._client.post(
                self.config.ebay_token_url,
                data={"grant_type": "client_credentials", "scope": OAUTH_SCOPE},
                auth=(self.config.ebay_app_id, self.config.ebay_cert_id),
            )
            token = resp.json().get("access_token")
        except requests.RequestException as exc:
            raise SourceUnavailable(
                self.name, f"token request failed: {_describe_request_error(exc)}"
            ) from exc
        except ValueError as exc:
            raise SourceUnavailable(self.name, "token response is not JSON") from exc

        if not token:
            raise SourceUnavailable(self.name, "token response has no access_token")

        logger.info("Obtained eBay application token")
        self._token = token
        return token

    def search_listings(
        self, card: CardRecord, condition: PriceCondition
    ) -> list[Listing]:
        """Search eBay for fixed-price listings, cheapest first."""
        token = self._get_access_token()
        query = build_search_query(card.identity, condition)

        params = {
            "q": query,
            "category_ids": self.ebay_settings.category_id,
            "limit": str(self.ebay_settings.result_limit),
            "sort": "price",
            "filter": f"buyingOptions:{{{self.ebay_settings.buying_option}}}",
        }
        headers = {
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
            "X-EBAY-C-MARKETPLACE-ID": self.ebay_settings.marketplace_id,
            "X-EBAY-C-ENDUSERCTX": (
                f"affiliateCampaignId={self.affiliate.campaign_id},"
                f"affiliateReferenceId={self.affiliate.custom_id}"
            ),
        }

        logger.debug("eBay query (%s): %s", condition.value, query)
        resp = self._client.get(
            self.config.ebay_search_url, params=params, headers=headers
        )

        try:
            data = resp.json()
        except ValueError as exc:
            raise SourceUnavailable(self.name, "malformed payload (not JSON)") from exc
        if not isinstance(data, dict):
            raise SourceUnavailable(self.name, "malformed payload (not an object)")

        items = data.get("itemSummaries") or []
        if not isinstance(items, list):
            raise SourceUnavailable(self.name, "malformed payload (itemSummaries is not a list)")

        listings: list[Listing] = []
        for item in items:
            if not isinstance(item, dict):
                continue
            try:
                listing = self._parse_item(item)
            except (AttributeError, TypeError):
                logger.debug("Failed to parse eBay item", exc_info=True)
                continue
            if listing:
                listings.append(listing)

        listings.sort(key=lambda listing: listing.price)

        logger.info(
            "eBay: %d listings for %s %s",
            len(listings), card.identity.card_number, condition.value,
        )
        return listings

    def _parse_item(self, item: dict) -> Listing | None:
        """Parse one itemSummary. Returns None if the item should be skipped."""
        price_obj = item.get("price") or {}
        amount = self._to_decimal(price_obj.get("value"))
        currency = price_obj.get("currency")
        url = item.get("itemAffiliateWebUrl") or item.get("itemWebUrl")
        if amount is None or not isinstance(currency, str) or not currency.strip():
            return None
        if not isinstance(url, str) or not url:
            return None

        return Listing(
            price=amount,
            currency=currency.strip().upper(),
            title=str(item.get("title") or ""),
            url=url,
            source=self.name,
        )
