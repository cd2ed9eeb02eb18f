"""Configuration management for the pricing pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationMissing

# Load .env from project root
_PROJECT_ROOT = Path(__file__).resolve().parents[3]
load_dotenv(_PROJECT_ROOT / ".env")


@dataclass
class Config:
    """Central configuration loaded from environment variables."""

    # Store backend: sqlite | supabase
    price_store: str = field(
        default_factory=lambda: os.getenv("PRICE_STORE", "sqlite")
    )

    # SQLite
    database_path: str = field(
        default_factory=lambda: os.getenv(
            "DATABASE_PATH", "data/card_prices.db"
        )
    )

    # Supabase
    supabase_url: str = field(
        default_factory=lambda: os.getenv("SUPABASE_URL")
        or os.getenv("NEXT_PUBLIC_SUPABASE_URL", "")
    )
    supabase_key: str = field(
        default_factory=lambda: os.getenv("SUPABASE_SERVICE_ROLE_KEY")
        or os.getenv("SUPABASE_SERVICE_KEY", "")
    )

    # eBay developer credentials (client-credentials grant)
    ebay_app_id: str = field(default_factory=lambda: os.getenv("EBAY_APP_ID", ""))
    ebay_cert_id: str = field(default_factory=lambda: os.getenv("EBAY_CERT_ID", ""))

    # Shared secret for the cron trigger
    cron_secret: str = field(default_factory=lambda: os.getenv("CRON_SECRET", ""))

    # Scraping
    request_timeout: int = 30
    rate_limit_rpm: int = 30

    # Cache
    raw_html_cache_dir: str = field(
        default_factory=lambda: os.getenv("RAW_HTML_CACHE_DIR", "")
    )

    # Upstream endpoints
    ebay_token_url: str = "https://api.ebay.com/identity/v1/oauth2/token"
    ebay_search_url: str = "https://api.ebay.com/buy/browse/v1/item_summary/search"
    exchange_rate_api_url: str = "https://api.exchangerate-api.com/v4/latest/USD"

    def __post_init__(self) -> None:
        """Load overrides from environment."""
        if timeout := os.getenv("REQUEST_TIMEOUT"):
            self.request_timeout = int(timeout)
        if rpm := os.getenv("RATE_LIMIT_REQUESTS_PER_MINUTE"):
            self.rate_limit_rpm = int(rpm)
        if url := os.getenv("EBAY_TOKEN_URL"):
            self.ebay_token_url = url
        if url := os.getenv("EBAY_SEARCH_URL"):
            self.ebay_search_url = url
        if url := os.getenv("EXCHANGE_RATE_API_URL"):
            self.exchange_rate_api_url = url

    def require(self, *names: str) -> None:
        """Raise ConfigurationMissing for every named attribute that is empty."""
        missing = [name for name in names if not getattr(self, name, "")]
        if missing:
            raise ConfigurationMissing([_ENV_NAMES.get(n, n.upper()) for n in missing])

    @property
    def database_abs_path(self) -> Path:
        """Resolve database path relative to project root."""
        p = Path(self.database_path)
        if p.is_absolute():
            return p
        return _PROJECT_ROOT / p

    @property
    def raw_html_cache_abs_dir(self) -> Path | None:
        """Resolve raw HTML cache dir relative to project root (None = disabled)."""
        if not self.raw_html_cache_dir:
            return None
        p = Path(self.raw_html_cache_dir)
        if p.is_absolute():
            return p
        return _PROJECT_ROOT / p


# Attribute → environment variable, for error messages
_ENV_NAMES = {
    "supabase_url": "SUPABASE_URL",
    "supabase_key": "SUPABASE_SERVICE_ROLE_KEY",
    "ebay_app_id": "EBAY_APP_ID",
    "ebay_cert_id": "EBAY_CERT_ID",
    "cron_secret": "CRON_SECRET",
}
