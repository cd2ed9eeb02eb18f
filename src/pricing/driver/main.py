"""CLI entry point for the card price pipeline.

Usage:
    # One batch step, resuming from the stored cursor:
    python -m src.pricing.driver.main

    # Whole catalog, batch after batch:
    python -m src.pricing.driver.main --all --output data/summary.json

    # Explicit window, storefronts only:
    python -m src.pricing.driver.main --offset 30 --limit 10 --sources storefront
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from ..common.config import Config
from ..common.errors import ConfigurationMissing
from .factory import build_controller

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger(__name__)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="One Piece card price pipeline")
    parser.add_argument(
        "--all",
        action="store_true",
        help="Keep running batches until every card is processed",
    )
    parser.add_argument(
        "--offset",
        type=int,
        help="Start offset (default: resume from stored cursor)",
    )
    parser.add_argument(
        "--limit",
        type=int,
        help="Cards per batch (default: pipeline.batch_size)",
    )
    parser.add_argument(
        "--sources",
        type=str,
        help="Comma-separated sources, e.g. 'ebay,storefront'",
    )
    parser.add_argument(
        "--output",
        type=str,
        help="Write the batch summary JSON here",
    )

    args = parser.parse_args(argv)
    sources = [s.strip() for s in args.sources.split(",") if s.strip()] if args.sources else None

    try:
        controller = build_controller(Config(), sources=sources)
    except (ConfigurationMissing, ValueError) as e:
        logger.error("%s", e)
        return 2

    with controller:
        if args.all:
            summary = controller.run_until_complete(offset=args.offset, limit=args.limit)
        else:
            summary = controller.run_batch(offset=args.offset, limit=args.limit)

    payload = summary.model_dump(mode="json")
    if args.output:
        out = Path(args.output)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        logger.info("Summary saved to %s", out)
    else:
        print(json.dumps(payload, ensure_ascii=False, indent=2))

    logger.info(
        "Done: processed=%d succeeded=%d failed=%d skipped=%d",
        summary.processed, summary.succeeded, summary.failed, summary.skipped,
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
