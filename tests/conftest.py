"""Shared test fixtures for the card price pipeline."""

import sys
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Ensure src is importable
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.pricing.common.config import Config
from src.pricing.database.store import SQLitePriceStore
from src.pricing.models import CardIdentity, CardRecord, Listing, PriceCondition
from src.pricing.sources.base import BaseSourceAdapter


class FakeAdapter(BaseSourceAdapter):
    """In-memory source adapter.

    ``listings`` may be a list (same for every condition) or a dict keyed by
    PriceCondition. ``error`` is raised from search_listings when set.
    """

    def __init__(self, name="fake", listings=None, error=None):
        super().__init__(Config(), client=MagicMock())
        self.name = name
        self.listings = listings or []
        self.error = error
        self.calls = []

    def search_listings(self, card, condition):
        self.calls.append((card.card_id, condition))
        if self.error is not None:
            raise self.error
        if isinstance(self.listings, dict):
            return list(self.listings.get(condition, []))
        return list(self.listings)


def make_listing(amount, currency="USD", source="ebay", url=None, title="") -> Listing:
    return Listing(
        price=Decimal(str(amount)),
        currency=currency,
        title=title or f"listing {amount} {currency}",
        url=url or f"https://www.ebay.com/itm/{str(amount).replace('.', '')}",
        source=source,
    )


def make_card(
    card_id="card-0001",
    card_number="OP07-051",
    slug="op07-051-boa-hancock",
    raw=None,
    psa10=None,
    raw_urls=None,
    psa10_urls=None,
) -> CardRecord:
    return CardRecord(
        identity=CardIdentity(
            card_id=card_id,
            card_number=card_number,
            slug=slug,
            rarity="SR",
            name_localized={"en": "Boa Hancock", "ja": "ボア・ハンコック"},
        ),
        reference_prices={PriceCondition.RAW: raw, PriceCondition.PSA10: psa10},
        storefront_urls={
            PriceCondition.RAW: raw_urls or [],
            PriceCondition.PSA10: psa10_urls or [],
        },
    )


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the test fixtures directory."""
    return PROJECT_ROOT / "tests" / "fixtures"


@pytest.fixture
def temp_db(tmp_path):
    """Provide a Config pointing to a temporary SQLite database."""
    db_file = tmp_path / "test_prices.db"
    return Config(
        price_store="sqlite",
        database_path=str(db_file),
        raw_html_cache_dir="",
        ebay_app_id="test-app-id",
        ebay_cert_id="test-cert-id",
        cron_secret="test-secret",
    )


@pytest.fixture
def store(temp_db):
    """Provide an initialized SQLitePriceStore on the temp database."""
    return SQLitePriceStore(temp_db.database_abs_path)


@pytest.fixture
def sample_card() -> CardRecord:
    """OP07-051 with a RAW reference of ¥8,000 and no PSA10 reference."""
    return make_card(raw=8000)


@pytest.fixture
def seeded_store(store):
    """Store with three cards inserted out of order."""
    store.add_card(make_card(card_id="card-0003", card_number="OP05-119", raw=120000))
    store.add_card(make_card(card_id="card-0001", raw=8000))
    store.add_card(
        make_card(
            card_id="card-0002",
            card_number="OP01-120",
            slug="op01-120-shanks-manga",
            psa10=300000,
            psa10_urls=["https://www.tcg-raftel.com/product/9001"],
        )
    )
    return store


@pytest.fixture
def now() -> datetime:
    return datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
