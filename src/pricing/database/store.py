"""Price store interface and the SQLite implementation.

The card master table holds, per condition (raw | psa10):

    price_{c}             current price in JPY (also the next run's reference)
    price_{c}_listing     representative listing's own amount
    price_{c}_currency    representative listing's currency
    listing_url_{c}       affiliate-tagged listing URL
    price_{c}_scraped_at  when the current price was reconciled
    scrape_url_{c}_1..3   storefront product pages

History lives in one append-only table per condition:
market_prices_raw and market_prices_psa10.
"""

from __future__ import annotations

import logging
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Mapping

from ..common.errors import PersistenceFailure
from ..models import (
    CardIdentity,
    CardRecord,
    ExchangeRate,
    PriceCondition,
    PriceHistoryEntry,
    ReconciledPrice,
    ScrapeState,
)
from .connection import get_connection, init_db

logger = logging.getLogger(__name__)

STOREFRONT_URL_SLOTS = 3


def history_table(condition: PriceCondition) -> str:
    return f"market_prices_{condition.column}"


def card_from_row(row: Mapping[str, Any]) -> CardRecord:
    """Build a CardRecord from a cards row (sqlite3.Row or dict)."""
    keys = set(row.keys())

    def get(key: str) -> Any:
        return row[key] if key in keys else None

    names = {
        lang: value
        for lang, value in (("en", get("name_en")), ("ja", get("name_ja")))
        if value
    }
    identity = CardIdentity(
        card_id=str(row["card_id"]),
        card_number=get("card_number") or "",
        slug=get("slug") or "",
        rarity=get("rarity_en") or "",
        name_localized=names,
    )

    reference_prices: dict[PriceCondition, int | None] = {}
    storefront_urls: dict[PriceCondition, list[str]] = {}
    for condition in PriceCondition:
        c = condition.column
        price = get(f"price_{c}")
        reference_prices[condition] = int(price) if price else None
        storefront_urls[condition] = [
            url
            for url in (get(f"scrape_url_{c}_{i}") for i in range(1, STOREFRONT_URL_SLOTS + 1))
            if url
        ]

    return CardRecord(
        identity=identity,
        reference_prices=reference_prices,
        storefront_urls=storefront_urls,
    )


def card_price_columns(price: ReconciledPrice) -> dict[str, Any]:
    """Columns written onto the card master record for a reconciled price."""
    c = price.condition.column
    scraped_at = price.reconciled_at.isoformat()
    return {
        f"price_{c}": price.amount_home,
        f"price_{c}_listing": str(price.amount),
        f"price_{c}_currency": price.currency,
        f"listing_url_{c}": price.source_url,
        f"price_{c}_scraped_at": scraped_at,
        "last_scraped_at": scraped_at,
    }


def history_row(entry: PriceHistoryEntry) -> dict[str, Any]:
    return {
        "card_id": entry.card_id,
        "price": entry.amount_home,
        "listing_price": str(entry.amount),
        "currency": entry.currency,
        "recorded_at": entry.recorded_at.isoformat(),
    }


def parse_timestamp(value: Any) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class PriceStore(ABC):
    """Persistence collaborator for cards, price history, rates and the cursor."""

    @abstractmethod
    def count_cards(self) -> int:
        ...

    @abstractmethod
    def list_cards(self, offset: int = 0, limit: int | None = None) -> list[CardRecord]:
        """Cards in ascending card_id order."""
        ...

    @abstractmethod
    def get_card(self, card_id: str) -> CardRecord | None:
        ...

    @abstractmethod
    def upsert_card_price(self, price: ReconciledPrice) -> None:
        """Write the current price onto the card record. Raises PersistenceFailure."""
        ...

    @abstractmethod
    def append_price_history(self, entry: PriceHistoryEntry) -> int | None:
        """Append a history row. Raises PersistenceFailure."""
        ...

    @abstractmethod
    def get_latest_exchange_rate(self, base: str, target: str) -> ExchangeRate | None:
        ...

    @abstractmethod
    def insert_exchange_rates(self, rates: list[ExchangeRate]) -> None:
        ...

    @abstractmethod
    def get_scrape_state(self) -> ScrapeState:
        ...

    @abstractmethod
    def save_scrape_state(self, state: ScrapeState) -> None:
        ...


class SQLitePriceStore(PriceStore):
    """PriceStore backed by a local SQLite database.

    Usage:
        store = SQLitePriceStore("data/card_prices.db")
        cards = store.list_cards(offset=0, limit=15)
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        self.db_path = db_path
        init_db(db_path)

    def _connect(self) -> sqlite3.Connection:
        return get_connection(self.db_path)

    # --- Cards ---

    def add_card(self, card: CardRecord) -> None:
        """Insert or replace a card master record (catalog import, tests)."""
        row: dict[str, Any] = {
            "card_id": card.card_id,
            "card_number": card.identity.card_number,
            "slug": card.identity.slug,
            "name_en": card.identity.name_localized.get("en", ""),
            "name_ja": card.identity.name_localized.get("ja", ""),
            "rarity_en": card.identity.rarity,
        }
        for condition in PriceCondition:
            c = condition.column
            row[f"price_{c}"] = card.reference_price(condition)
            urls = card.urls_for(condition)[:STOREFRONT_URL_SLOTS]
            for i in range(STOREFRONT_URL_SLOTS):
                row[f"scrape_url_{c}_{i + 1}"] = urls[i] if i < len(urls) else None

        columns = ", ".join(row)
        placeholders = ", ".join(f":{k}" for k in row)
        conn = self._connect()
        try:
            conn.execute(
                f"INSERT OR REPLACE INTO cards ({columns}) VALUES ({placeholders})", row
            )
            conn.commit()
        finally:
            conn.close()

    def count_cards(self) -> int:
        conn = self._connect()
        try:
            return conn.execute("SELECT COUNT(*) FROM cards").fetchone()[0]
        finally:
            conn.close()

    def list_cards(self, offset: int = 0, limit: int | None = None) -> list[CardRecord]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT * FROM cards ORDER BY card_id LIMIT ? OFFSET ?",
                (-1 if limit is None else limit, offset),
            ).fetchall()
        finally:
            conn.close()
        return [card_from_row(r) for r in rows]

    def get_card(self, card_id: str) -> CardRecord | None:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT * FROM cards WHERE card_id = ?", (card_id,)
            ).fetchone()
        finally:
            conn.close()
        return card_from_row(row) if row else None

    def upsert_card_price(self, price: ReconciledPrice) -> None:
        columns = card_price_columns(price)
        assignments = ", ".join(f"{k} = :{k}" for k in columns)
        conn = None
        try:
            conn = self._connect()
            cursor = conn.execute(
                f"UPDATE cards SET {assignments} WHERE card_id = :card_id",
                {**columns, "card_id": price.card_id},
            )
            conn.commit()
        except sqlite3.Error as e:
            raise PersistenceFailure(price.card_id, f"card update failed: {e}") from e
        finally:
            if conn is not None:
                conn.close()
        if cursor.rowcount == 0:
            raise PersistenceFailure(price.card_id, "card not found")

    def append_price_history(self, entry: PriceHistoryEntry) -> int | None:
        row = history_row(entry)
        conn = None
        try:
            conn = self._connect()
            cursor = conn.execute(
                f"""INSERT INTO {history_table(entry.condition)}
                    (card_id, price, listing_price, currency, recorded_at)
                    VALUES (:card_id, :price, :listing_price, :currency, :recorded_at)""",
                row,
            )
            conn.commit()
            return cursor.lastrowid
        except sqlite3.Error as e:
            raise PersistenceFailure(entry.card_id, f"history insert failed: {e}") from e
        finally:
            if conn is not None:
                conn.close()

    def get_price_history(
        self, card_id: str, condition: PriceCondition
    ) -> list[PriceHistoryEntry]:
        """History rows for one card, oldest first."""
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT * FROM {history_table(condition)} WHERE card_id = ? ORDER BY id",
                (card_id,),
            ).fetchall()
        finally:
            conn.close()
        return [
            PriceHistoryEntry(
                card_id=r["card_id"],
                condition=condition,
                amount=Decimal(r["listing_price"]),
                currency=r["currency"],
                amount_home=r["price"],
                recorded_at=parse_timestamp(r["recorded_at"]),
                id=r["id"],
            )
            for r in rows
        ]

    # --- Exchange rates ---

    def get_latest_exchange_rate(self, base: str, target: str) -> ExchangeRate | None:
        conn = self._connect()
        try:
            row = conn.execute(
                """SELECT * FROM exchange_rates
                   WHERE base_currency = ? AND target_currency = ?
                   ORDER BY recorded_at DESC, id DESC LIMIT 1""",
                (base, target),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return ExchangeRate(
            base_currency=row["base_currency"],
            target_currency=row["target_currency"],
            rate=Decimal(str(row["rate"])),
            recorded_at=parse_timestamp(row["recorded_at"]),
        )

    def insert_exchange_rates(self, rates: list[ExchangeRate]) -> None:
        conn = self._connect()
        try:
            conn.executemany(
                """INSERT INTO exchange_rates
                   (base_currency, target_currency, rate, recorded_at)
                   VALUES (:base_currency, :target_currency, :rate, :recorded_at)""",
                [r.to_dict() for r in rates],
            )
            conn.commit()
        finally:
            conn.close()

    # --- Cursor ---

    def get_scrape_state(self) -> ScrapeState:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM scraping_state WHERE id = 1").fetchone()
        finally:
            conn.close()
        if row is None:
            return ScrapeState()
        return ScrapeState(
            current_offset=row["current_offset"],
            is_running=bool(row["is_running"]),
            last_run_at=parse_timestamp(row["last_run_at"]),
            last_completed_at=parse_timestamp(row["last_completed_at"]),
        )

    def save_scrape_state(self, state: ScrapeState) -> None:
        conn = self._connect()
        try:
            conn.execute(
                """INSERT INTO scraping_state
                   (id, current_offset, is_running, last_run_at, last_completed_at)
                   VALUES (1, ?, ?, ?, ?)
                   ON CONFLICT(id) DO UPDATE SET
                       current_offset = excluded.current_offset,
                       is_running = excluded.is_running,
                       last_run_at = excluded.last_run_at,
                       last_completed_at = excluded.last_completed_at""",
                (
                    state.current_offset,
                    int(state.is_running),
                    state.last_run_at.isoformat() if state.last_run_at else None,
                    state.last_completed_at.isoformat() if state.last_completed_at else None,
                ),
            )
            conn.commit()
        finally:
            conn.close()
