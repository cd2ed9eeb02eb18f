"""Assemble a BatchController from configuration."""

from __future__ import annotations

import logging
import time
from typing import Callable

from src.common.config import Settings, settings as default_settings

from ..common.config import Config
from ..common.http_client import HTTPClient
from ..database.store import PriceStore, SQLitePriceStore
from ..database.supabase_store import SupabasePriceStore
from ..database.writer import PriceWriter
from ..normalizer.rates import ExchangeRateFetcher
from ..reconciler.reconciler import Reconciler
from ..sources import SOURCES, EbayBrowseAdapter
from ..sources.base import BaseSourceAdapter
from .controller import BatchController
from .pacing import PairPacer

logger = logging.getLogger(__name__)


def build_store(config: Config) -> PriceStore:
    """Select the store backend named by PRICE_STORE."""
    if config.price_store == "supabase":
        config.require("supabase_url", "supabase_key")
        return SupabasePriceStore(config.supabase_url, config.supabase_key)
    if config.price_store == "sqlite":
        return SQLitePriceStore(config.database_abs_path)
    raise ValueError(f"Unknown PRICE_STORE: {config.price_store!r} (sqlite | supabase)")


def build_adapters(
    names: list[str],
    config: Config,
    client: HTTPClient,
    app_settings: Settings,
) -> list[BaseSourceAdapter]:
    """Instantiate source adapters in the given order.

    Raises:
        ValueError: Unknown source name.
        ConfigurationMissing: A source's credentials are not set.
    """
    adapters: list[BaseSourceAdapter] = []
    for name in names:
        adapter_cls = SOURCES.get(name)
        if adapter_cls is None:
            raise ValueError(f"Unknown source: {name!r} (available: {', '.join(SOURCES)})")
        if adapter_cls is EbayBrowseAdapter:
            adapters.append(
                EbayBrowseAdapter(
                    config, client,
                    ebay_settings=app_settings.ebay,
                    affiliate=app_settings.affiliate,
                )
            )
        else:
            adapters.append(adapter_cls(config, client))
    return adapters


def build_controller(
    config: Config | None = None,
    app_settings: Settings | None = None,
    sources: list[str] | None = None,
    sleep: Callable[[float], None] = time.sleep,
) -> BatchController:
    """Build the full pipeline. Configuration errors surface here, before any work."""
    config = config or Config()
    app_settings = app_settings or default_settings
    pipeline = app_settings.pipeline
    names = sources or pipeline.sources

    client = HTTPClient(config)
    adapters = build_adapters(names, config, client, app_settings)
    store = build_store(config)

    logger.info(
        "Pipeline: store=%s sources=%s policy=%s ratio=%.2f",
        config.price_store, ",".join(names), pipeline.selection_policy,
        pipeline.plausibility_ratio,
    )
    return BatchController(
        store=store,
        adapters=adapters,
        reconciler=Reconciler.from_settings(pipeline, app_settings.affiliate),
        writer=PriceWriter(store),
        pacer=PairPacer.from_settings(pipeline, sleep=sleep),
        pipeline=pipeline,
        rate_fetcher=ExchangeRateFetcher(config, client),
    )
