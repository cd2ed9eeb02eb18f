"""Japanese retail storefront price source.

Cards carry up to three storefront product URLs per condition
(tcg-raftel.com, mercardop.jp, cardrush-op.jp). Each page is fetched and
its JPY selling price extracted with site-specific selectors, falling back
to generic price selectors and finally to text patterns over the page body.
"""

from __future__ import annotations

import logging
import re
from decimal import Decimal
from urllib.parse import urlparse

import requests
from bs4 import BeautifulSoup

from ..models import CardRecord, Listing, PriceCondition
from ..common.errors import SourceUnavailable
from .base import BaseSourceAdapter, _describe_request_error

logger = logging.getLogger(__name__)

# Plausible JPY range for a single card. Outside it the number is a
# shipping fee, a point balance, a phone number, etc.
MIN_PRICE_JPY = 100
MAX_PRICE_JPY = 50_000_000

# Host fragment → selectors tried in order
SITE_SELECTORS: dict[str, list[str]] = {
    "raftel": [
        "#pricech",
        ".selling_price .figure",
        ".item_detail_box .item_price",
        ".selling_price",
    ],
    "mercard": [
        ".product-detail-price",
        ".product_price",
        ".item-price",
        ".detail-price",
    ],
    "cardrush": [
        ".item_detail_price",
        ".selling_price",
        ".price-box",
    ],
}

GENERIC_SELECTORS = [".product-price", ".price", '[class*="price"]']

_PRICE_TEXT_RE = re.compile(r"[¥￥]?\s*([0-9][0-9,]*)\s*円?")
_BODY_PATTERNS = [
    re.compile(r"販売価格\s*[:：]?\s*[¥￥]?\s*([0-9,]+)\s*円"),
    re.compile(r"([0-9]{1,3}(?:,[0-9]{3})+)\s*円\s*[\(（]税込"),
    re.compile(r"価格\s*[:：]?\s*[¥￥]?\s*([0-9,]+)"),
]


def site_key(url: str) -> str:
    """Return the SITE_SELECTORS key for a storefront URL, or ""."""
    host = urlparse(url).netloc.lower()
    for key in SITE_SELECTORS:
        if key in host:
            return key
    return ""


def parse_price_text(text: str) -> int | None:
    """Extract a JPY price from a short text like '¥84,800円(税込)'."""
    if not text:
        return None
    match = _PRICE_TEXT_RE.search(text)
    if not match:
        return None
    return _bounded(match.group(1))


def extract_price(html: str, url: str = "") -> int | None:
    """Extract the selling price (JPY) from a storefront product page."""
    soup = BeautifulSoup(html, "lxml")

    key = site_key(url)
    selectors = SITE_SELECTORS.get(key, []) + GENERIC_SELECTORS
    if not key:
        # Unknown host: try every site's selectors before the generic ones
        selectors = [s for group in SITE_SELECTORS.values() for s in group] + GENERIC_SELECTORS

    for selector in selectors:
        el = soup.select_one(selector)
        if el is None:
            continue
        price = parse_price_text(el.get_text(strip=True))
        if price:
            return price

    body = soup.body or soup
    body_text = body.get_text(" ", strip=True)
    for pattern in _BODY_PATTERNS:
        match = pattern.search(body_text)
        if match:
            price = _bounded(match.group(1))
            if price:
                return price
    return None


def extract_title(html: str) -> str:
    soup = BeautifulSoup(html, "lxml")
    og = soup.find("meta", attrs={"property": "og:title"})
    if og and og.get("content"):
        return og["content"].strip()
    if soup.title and soup.title.get_text(strip=True):
        return soup.title.get_text(strip=True)
    h1 = soup.find("h1")
    return h1.get_text(strip=True) if h1 else ""


def _bounded(digits: str) -> int | None:
    cleaned = digits.replace(",", "")
    if not cleaned.isdigit():
        return None
    value = int(cleaned)
    if MIN_PRICE_JPY <= value <= MAX_PRICE_JPY:
        return value
    return None


class StorefrontAdapter(BaseSourceAdapter):
    """Source adapter for Japanese retail storefront product pages.

    Usage:
        with StorefrontAdapter(config) as shops:
            result = shops.fetch(card, PriceCondition.PSA10)
    """

    name = "storefront"

    def search_listings(
        self, card: CardRecord, condition: PriceCondition
    ) -> list[Listing]:
        """Fetch every storefront URL the card has for this condition.

        A failing URL is logged and skipped. SourceUnavailable is raised only
        when no URL produced a listing and at least one of them failed.
        """
        listings: list[Listing] = []
        errors: list[str] = []

        for url in card.urls_for(condition):
            site = site_key(url) or urlparse(url).netloc
            try:
                resp = self._client.get(
                    url, cache_key=f"{site}_{card.identity.card_number}_{condition.column}"
                )
            except requests.RequestException as exc:
                reason = _describe_request_error(exc)
                logger.warning(
                    "  %s (%s) failed for %s: %s",
                    site, condition.value, card.identity.card_number, reason,
                )
                errors.append(f"{site}: {reason}")
                continue

            price = extract_price(resp.text, url)
            if price is None:
                logger.info(
                    "  %s (%s): price not found for %s",
                    site, condition.value, card.identity.card_number,
                )
                continue

            listings.append(
                Listing(
                    price=Decimal(price),
                    currency="JPY",
                    title=extract_title(resp.text),
                    url=url,
                    source=self.name,
                )
            )
            logger.info(
                "  %s (%s): ¥%s", site, condition.value, f"{price:,}"
            )

        if not listings and errors:
            raise SourceUnavailable(self.name, "; ".join(errors))
        return listings
