"""SQLite database connection and schema management."""

from __future__ import annotations

import logging
import sqlite3
from pathlib import Path

from ..common.config import Config

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS cards (
    card_id TEXT PRIMARY KEY,
    card_number TEXT NOT NULL,
    slug TEXT NOT NULL DEFAULT '',
    name_en TEXT DEFAULT '',
    name_ja TEXT DEFAULT '',
    rarity_en TEXT DEFAULT '',
    price_raw INTEGER,
    price_raw_listing TEXT,
    price_raw_currency TEXT,
    listing_url_raw TEXT,
    price_raw_scraped_at TEXT,
    price_psa10 INTEGER,
    price_psa10_listing TEXT,
    price_psa10_currency TEXT,
    listing_url_psa10 TEXT,
    price_psa10_scraped_at TEXT,
    scrape_url_raw_1 TEXT,
    scrape_url_raw_2 TEXT,
    scrape_url_raw_3 TEXT,
    scrape_url_psa10_1 TEXT,
    scrape_url_psa10_2 TEXT,
    scrape_url_psa10_3 TEXT,
    last_scraped_at TEXT
);

CREATE TABLE IF NOT EXISTS market_prices_raw (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    card_id TEXT NOT NULL,
    price INTEGER NOT NULL,
    listing_price TEXT NOT NULL,
    currency TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    FOREIGN KEY (card_id) REFERENCES cards(card_id)
);

CREATE TABLE IF NOT EXISTS market_prices_psa10 (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    card_id TEXT NOT NULL,
    price INTEGER NOT NULL,
    listing_price TEXT NOT NULL,
    currency TEXT NOT NULL,
    recorded_at TEXT NOT NULL,
    FOREIGN KEY (card_id) REFERENCES cards(card_id)
);

CREATE INDEX IF NOT EXISTS idx_market_prices_raw_card
    ON market_prices_raw(card_id, recorded_at);

CREATE INDEX IF NOT EXISTS idx_market_prices_psa10_card
    ON market_prices_psa10(card_id, recorded_at);

CREATE TABLE IF NOT EXISTS exchange_rates (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    base_currency TEXT NOT NULL,
    target_currency TEXT NOT NULL,
    rate REAL NOT NULL,
    recorded_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_exchange_rates_pair
    ON exchange_rates(base_currency, target_currency, recorded_at);

CREATE TABLE IF NOT EXISTS scraping_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    current_offset INTEGER NOT NULL DEFAULT 0,
    is_running INTEGER NOT NULL DEFAULT 0,
    last_run_at TEXT,
    last_completed_at TEXT
);
"""


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """Get a SQLite connection with row factory enabled.

    Args:
        db_path: Database file. Defaults to Config().database_abs_path.

    Returns:
        sqlite3.Connection with Row factory.
    """
    path = Path(db_path) if db_path else Config().database_abs_path
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Initialize database schema (idempotent)."""
    conn = get_connection(db_path)
    try:
        conn.executescript(_SCHEMA_SQL)
        conn.commit()
        logger.info("Database schema initialized at %s", db_path or Config().database_abs_path)
    finally:
        conn.close()
