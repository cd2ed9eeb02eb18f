"""Tests for the batch controller."""

from __future__ import annotations

import logging
import sqlite3
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests

from src.common.config import AffiliateSettings, PipelineSettings
from src.pricing.common.errors import SourceUnavailable
from src.pricing.database.store import SQLitePriceStore
from src.pricing.database.writer import WriteResult
from src.pricing.driver.controller import BatchController, PairOutcome, PipelineState
from src.pricing.driver.pacing import PairPacer
from src.pricing.models import ExchangeRate, PriceCondition, ScrapeState
from src.pricing.reconciler.affiliate import affiliate_taggers
from src.pricing.reconciler.reconciler import Reconciler

from conftest import FakeAdapter, make_card, make_listing


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def rate_fetcher():
    return MagicMock()


@pytest.fixture
def build(seeded_store, sleeps, rate_fetcher, now):
    """Factory for a controller over the seeded store."""

    def _build(adapters=None, store=None, pipeline=None, **kwargs):
        pipeline = pipeline or PipelineSettings(batch_size=2)
        fetcher = kwargs.pop("rate_fetcher", rate_fetcher)
        return BatchController(
            store=store or seeded_store,
            adapters=adapters if adapters is not None else [
                FakeAdapter("ebay", [make_listing("55"), make_listing("20")])
            ],
            reconciler=Reconciler(url_taggers=affiliate_taggers(AffiliateSettings())),
            pacer=PairPacer(0.5, 5, 2.0, sleep=sleeps.append),
            pipeline=pipeline,
            rate_fetcher=fetcher,
            clock=lambda: now,
            **kwargs,
        )

    return _build


class TestRunBatch:
    def test_summary_counts(self, build):
        controller = build()
        summary = controller.run_batch()

        # card-0001: RAW ¥8,250 (≥ ¥4,000), PSA10 ¥3,000 (no reference)
        # card-0002: RAW ¥3,000 (no reference), PSA10 rejected (floor ¥150,000)
        assert summary.processed == 4
        assert summary.succeeded == 3
        assert summary.failed == 0
        assert summary.skipped == 1
        assert summary.offset == 0
        assert summary.next_offset == 2
        assert summary.total == 3
        assert summary.has_more is True
        assert controller.state == PipelineState.DONE

    def test_prices_written(self, build, seeded_store):
        build().run_batch()
        card = seeded_store.get_card("card-0001")
        assert card.reference_price(PriceCondition.RAW) == 8250
        assert card.reference_price(PriceCondition.PSA10) == 3000
        history = seeded_store.get_price_history("card-0001", PriceCondition.RAW)
        assert len(history) == 1
        assert history[0].amount == Decimal("55")
        assert history[0].currency == "USD"
        # Rejected pair leaves the reference untouched
        assert seeded_store.get_card("card-0002").reference_price(PriceCondition.PSA10) == 300000

    def test_raw_then_psa10(self, build):
        adapter = FakeAdapter("ebay", [make_listing("55")])
        build([adapter]).run_batch()
        assert adapter.calls == [
            ("card-0001", PriceCondition.RAW),
            ("card-0001", PriceCondition.PSA10),
            ("card-0002", PriceCondition.RAW),
            ("card-0002", PriceCondition.PSA10),
        ]

    def test_cursor_saved(self, build, seeded_store, now):
        build().run_batch()
        state = seeded_store.get_scrape_state()
        assert state.current_offset == 2
        assert state.is_running is False
        assert state.last_run_at == now
        assert state.last_completed_at is None

    def test_resumes_from_cursor(self, build, seeded_store, now):
        controller = build()
        controller.run_batch()
        summary = controller.run_batch()
        assert summary.offset == 2
        assert summary.processed == 2
        assert summary.has_more is False
        assert seeded_store.get_scrape_state().last_completed_at == now

    def test_explicit_offset_overrides_cursor(self, build, seeded_store):
        seeded_store.save_scrape_state(ScrapeState(current_offset=2))
        summary = build().run_batch(offset=0, limit=1)
        assert summary.offset == 0
        assert summary.processed == 2

    def test_already_completed(self, build, seeded_store, now):
        seeded_store.save_scrape_state(
            ScrapeState(current_offset=3, last_completed_at=now - timedelta(days=1))
        )
        adapter = FakeAdapter("ebay", [make_listing("55")])
        summary = build([adapter]).run_batch()
        assert summary.processed == 0
        assert summary.has_more is False
        assert adapter.calls == []

    def test_cursor_resets_after_a_week(self, build, seeded_store, now):
        seeded_store.save_scrape_state(
            ScrapeState(current_offset=3, last_completed_at=now - timedelta(days=6))
        )
        summary = build().run_batch()
        assert summary.offset == 0
        assert summary.processed == 4

    def test_pacing_after_every_pair(self, build, sleeps):
        build(pipeline=PipelineSettings(batch_size=3)).run_batch()
        assert sleeps == [0.5, 0.5, 0.5, 0.5, 2.0, 0.5]


class TestFailureIsolation:
    def test_http_500_counted_as_failed(self, build, seeded_store):
        resp = MagicMock()
        resp.status_code = 500
        adapter = FakeAdapter("ebay", error=requests.HTTPError(response=resp))
        summary = build([adapter]).run_batch()

        assert summary.processed == 4
        assert summary.failed == 4
        assert summary.succeeded == 0
        assert {f.kind for f in summary.failures} == {"source_unavailable"}
        assert summary.failures[0].card_id == "card-0001"
        assert summary.failures[0].card_number == "OP07-051"
        assert summary.failures[0].reason == "HTTP 500"
        assert summary.failures[0].source == "ebay"
        assert seeded_store.get_price_history("card-0001", PriceCondition.RAW) == []

    def test_other_source_still_used(self, build):
        adapters = [
            FakeAdapter("ebay", error=SourceUnavailable("ebay", "HTTP 503")),
            FakeAdapter("storefront", [make_listing(9000, currency="JPY", source="storefront")]),
        ]
        summary = build(adapters).run_batch(limit=1)
        assert summary.succeeded == 2
        assert summary.failed == 0
        # Source errors are still reported
        assert [f.reason for f in summary.failures] == ["HTTP 503", "HTTP 503"]

    def test_empty_result_writes_nothing(self, build, seeded_store):
        summary = build([FakeAdapter("ebay", [])]).run_batch()
        assert summary.skipped == 4
        assert summary.failures == []
        assert seeded_store.get_price_history("card-0001", PriceCondition.RAW) == []
        assert seeded_store.get_card("card-0001").reference_price(PriceCondition.RAW) == 8000

    def test_persistence_failure_counted(self, build):
        writer = MagicMock()
        writer.write.return_value = WriteResult(
            upserted=False, history_appended=True, errors=["upsert: database is locked"]
        )
        summary = build(writer=writer).run_batch(limit=1)
        assert summary.failed == 2
        assert summary.failures[0].kind == "persistence_failure"
        assert summary.failures[0].reason == "upsert: database is locked"

    def test_pair_outcome_classification(self):
        assert PairOutcome.SOURCE_UNAVAILABLE.is_failure
        assert PairOutcome.PERSISTENCE_FAILURE.is_failure
        assert PairOutcome.OUTLIER_REJECTED.is_skip
        assert PairOutcome.NO_PRICE_FOUND.is_skip
        assert not PairOutcome.UPDATED.is_failure

    def test_source_failure_logged(self, build, caplog):
        logger = logging.getLogger("test.pipeline.events")
        adapter = FakeAdapter("ebay", error=SourceUnavailable("ebay", "HTTP 500"))
        with caplog.at_level(logging.WARNING, logger="test.pipeline.events"):
            build([adapter], logger=logger).run_batch(limit=1)
        messages = [r.getMessage() for r in caplog.records if r.name == "test.pipeline.events"]
        assert any("OP07-051" in m and "HTTP 500" in m for m in messages)


    def test_malformed_source_payload_counted_as_failed(self, build):
        adapter = FakeAdapter("ebay", error=TypeError("'int' object is not iterable"))
        summary = build([adapter]).run_batch()
        assert summary.processed == 4
        assert summary.failed == 4
        assert {f.kind for f in summary.failures} == {"source_unavailable"}
        assert summary.failures[0].reason.startswith("malformed payload")

    def test_locked_database_counted_as_failed(self, build, seeded_store, monkeypatch):
        def locked(*args):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(seeded_store, "upsert_card_price", locked)
        monkeypatch.setattr(seeded_store, "append_price_history", locked)
        summary = build().run_batch(limit=1)
        assert summary.processed == 2
        assert summary.failed == 2
        assert summary.next_offset == 1
        assert [f.kind for f in summary.failures] == ["persistence_failure"] * 2
        assert "database is locked" in summary.failures[0].reason


class TestExchangeRates:
    def test_refresh_only_at_start_of_pass(self, build, rate_fetcher):
        controller = build()
        controller.run_batch()
        controller.run_batch()
        rate_fetcher.refresh.assert_called_once()

    def test_refresh_failure_is_not_fatal(self, build, rate_fetcher):
        rate_fetcher.refresh.side_effect = requests.ConnectionError("down")
        summary = build().run_batch()
        assert summary.succeeded == 3

    def test_stored_rate_used(self, build, seeded_store):
        seeded_store.insert_exchange_rates([ExchangeRate("USD", "JPY", Decimal("100"))])
        build([FakeAdapter("ebay", [make_listing("55")])]).run_batch(limit=1)
        assert seeded_store.get_card("card-0001").reference_price(PriceCondition.RAW) == 5500


class TestResumption:
    def test_time_budget_stops_batch(self, build, seeded_store):
        ticks = iter([0.0, 0.0, 11.0])
        controller = build(
            pipeline=PipelineSettings(batch_size=3, time_budget_seconds=10),
            monotonic=lambda: next(ticks),
        )
        summary = controller.run_batch()
        assert summary.processed == 2
        assert summary.next_offset == 1
        assert summary.has_more is True
        assert seeded_store.get_scrape_state().current_offset == 1

    def test_run_until_complete(self, build, seeded_store, now):
        summary = build().run_until_complete()
        assert summary.processed == 6
        assert summary.offset == 0
        assert summary.next_offset == 3
        assert summary.has_more is False
        assert seeded_store.get_scrape_state().last_completed_at == now

    def test_run_until_complete_max_batches(self, build):
        summary = build(pipeline=PipelineSettings(batch_size=1)).run_until_complete(max_batches=2)
        assert summary.next_offset == 2
        assert summary.has_more is True

    def test_empty_catalog(self, build, tmp_path):
        store = SQLitePriceStore(tmp_path / "empty.db")
        summary = build(store=store).run_batch()
        assert summary.processed == 0
        assert summary.has_more is False
        assert store.get_scrape_state().last_completed_at is not None


class TestClose:
    def test_close_releases_sessions(self, build, rate_fetcher):
        adapter = FakeAdapter("ebay")
        with build([adapter]) as controller:
            controller.run_batch(limit=1)
        adapter._client.close.assert_called_once()
        rate_fetcher.close.assert_called_once()

    def test_close_without_rate_fetcher(self, build):
        adapter = FakeAdapter("ebay")
        build([adapter], rate_fetcher=None).close()
        adapter._client.close.assert_called_once()


class TestCursorSaveFailure:
    def test_cursor_save_failure_does_not_abort(self, build, seeded_store, monkeypatch):
        def locked(state):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(seeded_store, "save_scrape_state", locked)
        summary = build().run_batch(offset=0)
        assert summary.processed == 4
        assert summary.succeeded == 3
        assert summary.next_offset == 2
