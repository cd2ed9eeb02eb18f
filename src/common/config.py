"""Project configuration and paths.

Loads pipeline tuning from config/settings.yaml. Secrets and
environment-specific values live in src.pricing.common.config.Config.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field

# === Paths ===
PROJECT_ROOT = Path(__file__).parent.parent.parent
CONFIG_DIR = PROJECT_ROOT / "config"
DATA_DIR = PROJECT_ROOT / "data"

# Load .env from project root
load_dotenv(PROJECT_ROOT / ".env")


class PipelineSettings(BaseModel):
    """Batch reconciliation settings."""
    home_currency: str = "JPY"
    plausibility_ratio: float = Field(default=0.5, ge=0, le=1)
    selection_policy: Literal["cheapest", "mean"] = "cheapest"
    sources: list[str] = Field(default_factory=lambda: ["ebay"])
    batch_size: int = Field(default=15, ge=1)
    time_budget_seconds: Optional[float] = None
    pair_delay_seconds: float = 0.5
    cooldown_every: int = Field(default=5, ge=1)
    cooldown_seconds: float = 2.0
    fallback_usd_jpy_rate: float = 150.0
    cursor_reset_days: int = 6
    refresh_exchange_rates: bool = True


class EbaySettings(BaseModel):
    """eBay Browse API search settings."""
    marketplace_id: str = "EBAY_US"
    category_id: str = "183454"  # CCG Individual Cards
    result_limit: int = 10
    buying_option: str = "FIXED_PRICE"


class AffiliateSettings(BaseModel):
    """eBay Partner Network tracking parameters."""
    campaign_id: str = "5339135615"
    custom_id: str = "gemfolio"
    mkcid: str = "1"
    mkrid: str = "711-53200-19255-0"
    siteid: str = "0"
    toolid: str = "10001"


class Settings(BaseModel):
    """Top-level application settings."""
    pipeline: PipelineSettings = Field(default_factory=PipelineSettings)
    ebay: EbaySettings = Field(default_factory=EbaySettings)
    affiliate: AffiliateSettings = Field(default_factory=AffiliateSettings)

    @classmethod
    def load(cls, path: Path | None = None) -> Settings:
        """Load settings from config/settings.yaml, falling back to defaults."""
        settings_path = path or CONFIG_DIR / "settings.yaml"
        if settings_path.exists():
            with open(settings_path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            return cls(**data)
        return cls()


# Singleton settings instance
settings = Settings.load()
