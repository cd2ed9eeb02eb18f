"""Batch controller.

Runs one batch step over the card catalog:

    IDLE → FETCHING_CARDS → (PROCESSING_CARD)* → DONE

Each card is processed for RAW then PSA10. A pair runs every configured
source adapter, normalizes the union of their listings into the home
currency, reconciles against the card's reference price and writes the
result. Errors are isolated per pair; only failing to read the catalog
aborts the batch.

The cursor (next offset) is saved after every card, so a batch cut short
by the time budget or by the host resumes where it stopped. Continuing to
the next batch is the caller's job (see ``run_until_complete``).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable

from src.common.config import PipelineSettings
from src.common.models import BatchSummary, FailureEntry

from ..common.errors import FailureKind
from ..database.store import PriceStore
from ..database.writer import PriceWriter
from ..models import CardRecord, PriceCondition, ReconciledPrice, ScrapeState, utcnow
from ..normalizer.currency import ExchangeRateTable, normalize_listings
from ..normalizer.rates import ExchangeRateFetcher, load_rate_table
from ..reconciler.reconciler import Reconciler
from ..sources.base import BaseSourceAdapter
from .pacing import PairPacer


class PipelineState(str, Enum):
    IDLE = "idle"
    FETCHING_CARDS = "fetching_cards"
    PROCESSING_CARD = "processing_card"
    DONE = "done"


class PairOutcome(str, Enum):
    """Final outcome of one (card, condition) pair."""
    UPDATED = "updated"
    SOURCE_UNAVAILABLE = FailureKind.SOURCE_UNAVAILABLE.value
    NO_PRICE_FOUND = FailureKind.NO_PRICE_FOUND.value
    OUTLIER_REJECTED = FailureKind.OUTLIER_REJECTED.value
    PERSISTENCE_FAILURE = FailureKind.PERSISTENCE_FAILURE.value

    @property
    def is_failure(self) -> bool:
        return self in (PairOutcome.SOURCE_UNAVAILABLE, PairOutcome.PERSISTENCE_FAILURE)

    @property
    def is_skip(self) -> bool:
        return self in (PairOutcome.NO_PRICE_FOUND, PairOutcome.OUTLIER_REJECTED)


@dataclass
class PairReport:
    card: CardRecord
    condition: PriceCondition
    outcome: PairOutcome
    price: ReconciledPrice | None = None
    failures: list[FailureEntry] = field(default_factory=list)


class BatchController:
    """Drive the pipeline over one batch of cards.

    Usage:
        controller = build_controller()
        summary = controller.run_batch()
        while summary.has_more:
            summary = controller.run_batch()
    """

    CONDITIONS = (PriceCondition.RAW, PriceCondition.PSA10)

    def __init__(
        self,
        store: PriceStore,
        adapters: list[BaseSourceAdapter],
        reconciler: Reconciler,
        writer: PriceWriter | None = None,
        pacer: PairPacer | None = None,
        pipeline: PipelineSettings | None = None,
        rate_fetcher: ExchangeRateFetcher | None = None,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.adapters = adapters
        self.reconciler = reconciler
        self.writer = writer or PriceWriter(store)
        self.pipeline = pipeline or PipelineSettings()
        self.pacer = pacer or PairPacer.from_settings(self.pipeline)
        self.rate_fetcher = rate_fetcher
        self.log = logger or logging.getLogger(__name__)
        self._clock = clock
        self._monotonic = monotonic
        self.state = PipelineState.IDLE

    # --- Cursor ---

    def resolve_offset(self, state: ScrapeState, now: datetime) -> int:
        """Offset to resume from, reset to 0 once the last pass is old enough."""
        offset = state.current_offset or 0
        if state.last_completed_at is not None:
            age_days = (now - state.last_completed_at).total_seconds() / 86400
            if age_days >= self.pipeline.cursor_reset_days:
                self.log.info(
                    "Last pass completed %.1f days ago, restarting from offset 0",
                    age_days,
                )
                offset = 0
        return offset

    # --- Exchange rates ---

    def _load_rates(self, offset: int) -> ExchangeRateTable:
        if offset == 0 and self.rate_fetcher and self.pipeline.refresh_exchange_rates:
            try:
                self.rate_fetcher.refresh(self.store)
            except Exception as e:
                self.log.error("Failed to update exchange rates: %s", e)
        return load_rate_table(
            self.store,
            home_currency=self.pipeline.home_currency,
            fallback_usd_jpy=self.pipeline.fallback_usd_jpy_rate,
        )

    # --- Pair processing ---

    def process_pair(
        self,
        card: CardRecord,
        condition: PriceCondition,
        rates: ExchangeRateTable,
    ) -> PairReport:
        """Run sources → normalizer → reconciler → writer for one pair."""
        identity = card.identity
        source_failures: list[FailureEntry] = []
        listings = []

        for adapter in self.adapters:
            result = adapter.fetch(card, condition)
            if result.error is not None:
                self.log.warning(
                    "[%s %s] %s unavailable: %s",
                    identity.card_number, condition.value, result.source, result.error.reason,
                )
                source_failures.append(
                    FailureEntry(
                        card_id=card.card_id,
                        card_number=identity.card_number,
                        condition=condition.value,
                        kind=FailureKind.SOURCE_UNAVAILABLE.value,
                        reason=result.error.reason,
                        source=result.source,
                    )
                )
            listings.extend(result.listings)

        if not listings and source_failures:
            return PairReport(card, condition, PairOutcome.SOURCE_UNAVAILABLE, failures=source_failures)

        candidates = normalize_listings(listings, self.pipeline.home_currency, rates)
        reconciled = self.reconciler.reconcile(card, condition, candidates)

        if reconciled.price is None:
            self.log.info(
                "[%s %s] no update (%s)",
                identity.card_number, condition.value, reconciled.outcome.value,
            )
            return PairReport(
                card, condition, PairOutcome(reconciled.outcome.value), failures=source_failures
            )

        written = self.writer.write(reconciled.price)
        if not written.ok:
            failure = FailureEntry(
                card_id=card.card_id,
                card_number=identity.card_number,
                condition=condition.value,
                kind=FailureKind.PERSISTENCE_FAILURE.value,
                reason="; ".join(written.errors),
            )
            return PairReport(
                card, condition, PairOutcome.PERSISTENCE_FAILURE,
                price=reconciled.price, failures=source_failures + [failure],
            )

        return PairReport(
            card, condition, PairOutcome.UPDATED, price=reconciled.price, failures=source_failures
        )

    # --- Batch ---

    def run_batch(self, offset: int | None = None, limit: int | None = None) -> BatchSummary:
        """Process one batch of cards starting at ``offset``.

        Without an explicit offset the batch resumes from the stored cursor.
        Raises only if the card catalog cannot be read.
        """
        started = self._clock()
        start_tick = self._monotonic()
        limit = limit or self.pipeline.batch_size
        self.state = PipelineState.FETCHING_CARDS

        scrape_state = self.store.get_scrape_state()
        if offset is None:
            offset = self.resolve_offset(scrape_state, started)
        total = self.store.count_cards()
        summary = BatchSummary(offset=offset, next_offset=offset, total=total, started_at=started)

        if total and offset >= total:
            self.log.info("Already completed: offset %d of %d cards", offset, total)
            summary.finished_at = self._clock()
            self.state = PipelineState.DONE
            return summary

        rates = self._load_rates(offset)
        cards = self.store.list_cards(offset=offset, limit=limit)
        self.log.info(
            "Batch start: offset=%d, %d cards (of %d), sources=%s",
            offset, len(cards), total, ",".join(a.name for a in self.adapters),
        )
        self._save_state(
            ScrapeState(
                current_offset=offset,
                is_running=True,
                last_run_at=started,
                last_completed_at=scrape_state.last_completed_at,
            )
        )

        done = 0
        for card in cards:
            budget = self.pipeline.time_budget_seconds
            if budget is not None and self._monotonic() - start_tick >= budget:
                self.log.warning(
                    "Time budget of %.0fs reached after %d cards, stopping batch", budget, done
                )
                break

            self.state = PipelineState.PROCESSING_CARD
            self.log.info(
                "[%d/%d] %s %s", offset + done + 1, total,
                card.identity.card_number, card.identity.display_name,
            )
            for condition in self.CONDITIONS:
                report = self.process_pair(card, condition, rates)
                self._account(summary, report)
                self.pacer.after_pair()

            done += 1
            self._save_state(
                ScrapeState(
                    current_offset=offset + done,
                    is_running=True,
                    last_run_at=started,
                    last_completed_at=scrape_state.last_completed_at,
                )
            )

        summary.next_offset = offset + done
        summary.has_more = summary.next_offset < total
        summary.finished_at = self._clock()
        self._save_state(
            ScrapeState(
                current_offset=summary.next_offset,
                is_running=False,
                last_run_at=started,
                last_completed_at=(
                    summary.finished_at if not summary.has_more else scrape_state.last_completed_at
                ),
            )
        )
        self.state = PipelineState.DONE

        self.log.info(
            "Batch done: processed=%d succeeded=%d failed=%d skipped=%d next_offset=%d has_more=%s",
            summary.processed, summary.succeeded, summary.failed, summary.skipped,
            summary.next_offset, summary.has_more,
        )
        return summary

    def run_until_complete(
        self,
        offset: int | None = None,
        limit: int | None = None,
        max_batches: int | None = None,
    ) -> BatchSummary:
        """Run batch steps back to back until the catalog is exhausted."""
        summary = step = self.run_batch(offset=offset, limit=limit)
        batches = 1
        while step.has_more:
            if max_batches is not None and batches >= max_batches:
                break
            if step.next_offset == step.offset:
                # No progress (time budget smaller than one card)
                self.log.error("Batch made no progress at offset %d, stopping", step.offset)
                break
            step = self.run_batch(offset=step.next_offset, limit=limit)
            summary = summary.merge(step)
            batches += 1
        return summary

    def _save_state(self, state: ScrapeState) -> None:
        """Persist the cursor. A failed save is logged; the batch carries on."""
        try:
            self.store.save_scrape_state(state)
        except Exception as e:
            self.log.error("Failed to save cursor at offset %d: %s", state.current_offset, e)

    def close(self) -> None:
        """Release the HTTP sessions held by adapters and the rate fetcher."""
        for adapter in self.adapters:
            adapter.close()
        if self.rate_fetcher is not None:
            self.rate_fetcher.close()

    def __enter__(self) -> BatchController:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _account(self, summary: BatchSummary, report: PairReport) -> None:
        summary.processed += 1
        if report.outcome == PairOutcome.UPDATED:
            summary.succeeded += 1
        elif report.outcome.is_failure:
            summary.failed += 1
        else:
            summary.skipped += 1
        summary.failures.extend(report.failures)
