"""Tests for common modules: settings, batch summary models, logging."""

import logging
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from src.common.config import AffiliateSettings, PipelineSettings, Settings
from src.common.logging import setup_logging
from src.common.models import BatchSummary, FailureEntry


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.pipeline.home_currency == "JPY"
        assert s.pipeline.plausibility_ratio == 0.5
        assert s.pipeline.selection_policy == "cheapest"
        assert s.pipeline.sources == ["ebay"]
        assert s.pipeline.batch_size == 15
        assert s.pipeline.time_budget_seconds is None
        assert s.ebay.marketplace_id == "EBAY_US"
        assert s.affiliate.campaign_id == "5339135615"

    def test_load_from_yaml(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "pipeline:\n"
            "  plausibility_ratio: 0.3\n"
            "  selection_policy: mean\n"
            "  sources: [ebay, storefront]\n"
            "affiliate:\n"
            "  custom_id: other\n",
            encoding="utf-8",
        )
        s = Settings.load(path)
        assert s.pipeline.plausibility_ratio == 0.3
        assert s.pipeline.selection_policy == "mean"
        assert s.pipeline.sources == ["ebay", "storefront"]
        assert s.pipeline.batch_size == 15
        assert s.affiliate.custom_id == "other"
        assert s.affiliate.mkcid == "1"

    def test_load_missing_file_uses_defaults(self, tmp_path):
        s = Settings.load(tmp_path / "nope.yaml")
        assert s == Settings()

    def test_load_empty_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text("", encoding="utf-8")
        assert Settings.load(path) == Settings()

    def test_shipped_settings_file_is_valid(self, project_root):
        s = Settings.load(project_root / "config" / "settings.yaml")
        assert s.pipeline.cooldown_every == 5
        assert s.ebay.category_id == "183454"

    def test_ratio_out_of_range(self):
        with pytest.raises(ValidationError):
            PipelineSettings(plausibility_ratio=1.5)

    def test_unknown_policy(self):
        with pytest.raises(ValidationError):
            PipelineSettings(selection_policy="median")

    def test_batch_size_positive(self):
        with pytest.raises(ValidationError):
            PipelineSettings(batch_size=0)

    def test_affiliate_values_are_strings(self):
        assert AffiliateSettings().siteid == "0"


class TestBatchSummary:
    def _failure(self, card_id):
        return FailureEntry(
            card_id=card_id,
            condition="raw",
            kind="no_price_found",
            reason="no listings",
        )

    def test_defaults(self):
        summary = BatchSummary()
        assert summary.processed == 0
        assert summary.failures == []
        assert summary.has_more is False
        assert summary.started_at.tzinfo is not None

    def test_merge(self):
        t0 = datetime(2026, 10, 19, 3, 0, tzinfo=timezone.utc)
        t1 = datetime(2026, 10, 19, 3, 5, tzinfo=timezone.utc)
        first = BatchSummary(
            processed=4, succeeded=3, failed=1, failures=[self._failure("a")],
            offset=0, next_offset=2, total=3, has_more=True, started_at=t0,
        )
        second = BatchSummary(
            processed=2, succeeded=1, skipped=1, failures=[self._failure("c")],
            offset=2, next_offset=3, total=3, has_more=False, finished_at=t1,
        )
        merged = first.merge(second)
        assert merged.processed == 6
        assert merged.succeeded == 4
        assert merged.failed == 1
        assert merged.skipped == 1
        assert [f.card_id for f in merged.failures] == ["a", "c"]
        assert merged.offset == 0
        assert merged.next_offset == 3
        assert merged.has_more is False
        assert merged.started_at == t0
        assert merged.finished_at == t1

    def test_json_dump(self):
        summary = BatchSummary(processed=1, failed=1, failures=[self._failure("a")])
        data = summary.model_dump(mode="json")
        assert data["failures"][0]["kind"] == "no_price_found"
        assert data["failures"][0]["source"] is None
        assert isinstance(data["started_at"], str)


class TestLogging:
    def test_setup_logging_is_idempotent(self):
        name = "src.test_setup_logging"
        logger = setup_logging(logging.INFO, module_name=name)
        again = setup_logging(module_name=name)
        assert logger is again
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO

    def test_level_from_name(self):
        logger = setup_logging(level="debug", module_name="src.test_level_name")
        assert logger.level == logging.DEBUG

    def test_level_from_env(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        logger = setup_logging(module_name="src.test_level_env")
        assert logger.level == logging.WARNING

    def test_quiets_http_loggers(self):
        setup_logging(module_name="src.test_noisy")
        assert logging.getLogger("urllib3").level == logging.WARNING
