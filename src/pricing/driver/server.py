"""HTTP trigger for scheduled price updates.

An external scheduler calls the cron endpoint; each call runs one batch
step and returns the summary with ``next_offset`` and ``has_more``. The
endpoint never calls itself: the scheduler (or ``main --all``) decides
whether to continue.

Usage:
    python -m src.pricing.driver.server
    curl -H "Authorization: Bearer $CRON_SECRET" \
        "http://localhost:8000/api/cron/scrape-prices?offset=0"
"""

from __future__ import annotations

import hmac
import logging
import os
from typing import Callable, Optional

from fastapi import Depends, FastAPI, Header, Query
from fastapi.responses import JSONResponse

from src.common.logging import setup_logging

from ..common.config import Config
from ..common.errors import ConfigurationMissing
from .controller import BatchController
from .factory import build_controller

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Card Price Pipeline")


def get_config() -> Config:
    return Config()


def get_controller_factory() -> Callable[[Config], BatchController]:
    """Dependency returning the controller builder (overridden in tests)."""
    return build_controller


def _authorized(authorization: Optional[str], secret: str) -> bool:
    expected = f"Bearer {secret}"
    return hmac.compare_digest((authorization or "").encode(), expected.encode())


@app.get("/health")
def health():
    return {"status": "ok"}


@app.api_route("/api/cron/scrape-prices", methods=["GET", "POST"])
def scrape_prices(
    offset: Optional[int] = Query(default=None, ge=0),
    limit: Optional[int] = Query(default=None, ge=1),
    authorization: Optional[str] = Header(default=None),
    config: Config = Depends(get_config),
    controller_factory: Callable[[Config], BatchController] = Depends(get_controller_factory),
):
    if not config.cron_secret:
        logger.error("CRON_SECRET is not set; refusing to run")
        return JSONResponse(
            status_code=500,
            content={"error": str(ConfigurationMissing("CRON_SECRET"))},
        )
    if not _authorized(authorization, config.cron_secret):
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        controller = controller_factory(config)
        with controller:
            summary = controller.run_batch(offset=offset, limit=limit)
    except ConfigurationMissing as e:
        logger.error("Configuration error: %s", e)
        return JSONResponse(status_code=500, content={"error": str(e)})
    except Exception as e:
        logger.exception("Batch failed")
        return JSONResponse(status_code=500, content={"error": str(e)})

    return JSONResponse(status_code=200, content=summary.model_dump(mode="json"))


if __name__ == "__main__":
    import uvicorn

    port = int(os.environ.get("PORT", "8000"))
    uvicorn.run("src.pricing.driver.server:app", host="0.0.0.0", port=port, reload=False)
