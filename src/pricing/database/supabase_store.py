"""Supabase-backed price store.

Same tables and columns as the SQLite store, accessed through the
PostgREST client from supabase-py. The client is created on first use.

Env vars: SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY
"""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Optional

from ..common.errors import ConfigurationMissing, PersistenceFailure
from ..models import (
    CardRecord,
    ExchangeRate,
    PriceHistoryEntry,
    ReconciledPrice,
    ScrapeState,
)
from .store import (
    PriceStore,
    card_from_row,
    card_price_columns,
    history_row,
    history_table,
    parse_timestamp,
)

logger = logging.getLogger(__name__)


class SupabasePriceStore(PriceStore):
    """PriceStore backed by the Supabase (Postgres) project."""

    def __init__(
        self,
        supabase_url: Optional[str] = None,
        supabase_key: Optional[str] = None,
        client=None,
    ):
        self._supabase_url = supabase_url or ""
        self._supabase_key = supabase_key or ""
        self._client = client  # Lazy init

    def _get_client(self):
        """Lazy-initialize the Supabase client."""
        if self._client is not None:
            return self._client
        missing = []
        if not self._supabase_url:
            missing.append("SUPABASE_URL")
        if not self._supabase_key:
            missing.append("SUPABASE_SERVICE_ROLE_KEY")
        if missing:
            raise ConfigurationMissing(missing)
        from supabase import create_client

        self._client = create_client(self._supabase_url, self._supabase_key)
        logger.info("Connected to Supabase: %s", self._supabase_url)
        return self._client

    # --- Cards ---

    def count_cards(self) -> int:
        resp = (
            self._get_client()
            .table("cards")
            .select("card_id", count="exact")
            .limit(1)
            .execute()
        )
        return resp.count or 0

    def list_cards(self, offset: int = 0, limit: int | None = None) -> list[CardRecord]:
        query = self._get_client().table("cards").select("*").order("card_id")
        if limit is not None:
            query = query.range(offset, offset + limit - 1)
        elif offset:
            query = query.range(offset, offset + self.count_cards())
        resp = query.execute()
        return [card_from_row(row) for row in resp.data or []]

    def get_card(self, card_id: str) -> CardRecord | None:
        resp = (
            self._get_client()
            .table("cards")
            .select("*")
            .eq("card_id", card_id)
            .limit(1)
            .execute()
        )
        return card_from_row(resp.data[0]) if resp.data else None

    def upsert_card_price(self, price: ReconciledPrice) -> None:
        try:
            resp = (
                self._get_client()
                .table("cards")
                .update(card_price_columns(price))
                .eq("card_id", price.card_id)
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(price.card_id, f"card update failed: {e}") from e
        if not resp.data:
            raise PersistenceFailure(price.card_id, "card not found")

    def append_price_history(self, entry: PriceHistoryEntry) -> int | None:
        try:
            resp = (
                self._get_client()
                .table(history_table(entry.condition))
                .insert(history_row(entry))
                .execute()
            )
        except Exception as e:
            raise PersistenceFailure(entry.card_id, f"history insert failed: {e}") from e
        return resp.data[0].get("id") if resp.data else None

    # --- Exchange rates ---

    def get_latest_exchange_rate(self, base: str, target: str) -> ExchangeRate | None:
        resp = (
            self._get_client()
            .table("exchange_rates")
            .select("*")
            .eq("base_currency", base)
            .eq("target_currency", target)
            .order("recorded_at", desc=True)
            .limit(1)
            .execute()
        )
        if not resp.data:
            return None
        row = resp.data[0]
        return ExchangeRate(
            base_currency=row["base_currency"],
            target_currency=row["target_currency"],
            rate=Decimal(str(row["rate"])),
            recorded_at=parse_timestamp(row["recorded_at"]),
        )

    def insert_exchange_rates(self, rates: list[ExchangeRate]) -> None:
        self._get_client().table("exchange_rates").insert(
            [r.to_dict() for r in rates]
        ).execute()

    # --- Cursor ---

    def get_scrape_state(self) -> ScrapeState:
        resp = (
            self._get_client()
            .table("scraping_state")
            .select("*")
            .eq("id", 1)
            .limit(1)
            .execute()
        )
        if not resp.data:
            return ScrapeState()
        row = resp.data[0]
        return ScrapeState(
            current_offset=row.get("current_offset") or 0,
            is_running=bool(row.get("is_running")),
            last_run_at=parse_timestamp(row.get("last_run_at")),
            last_completed_at=parse_timestamp(row.get("last_completed_at")),
        )

    def save_scrape_state(self, state: ScrapeState) -> None:
        self._get_client().table("scraping_state").upsert(
            {
                "id": 1,
                "current_offset": state.current_offset,
                "is_running": state.is_running,
                "last_run_at": state.last_run_at.isoformat() if state.last_run_at else None,
                "last_completed_at": (
                    state.last_completed_at.isoformat() if state.last_completed_at else None
                ),
            }
        ).execute()
