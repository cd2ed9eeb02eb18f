"""Shared Pydantic data models for the card price pipeline.

These models define the contract between the batch driver and its
callers (CLI, cron endpoint). Internal pipeline types live in
src.pricing.models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field


class FailureEntry(BaseModel):
    """One failed or skipped (card, condition, source) in a batch."""
    card_id: str
    card_number: str = ""
    condition: str
    kind: str = Field(description="source_unavailable | no_price_found | ...")
    reason: str
    source: Optional[str] = None


class BatchSummary(BaseModel):
    """Result of one batch step.

    ``processed`` counts (card, condition) pairs. Every processed pair is
    exactly one of succeeded, failed or skipped.
    """
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    failures: list[FailureEntry] = Field(default_factory=list)
    offset: int = 0
    next_offset: int = 0
    total: int = 0
    has_more: bool = False
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    def merge(self, other: BatchSummary) -> BatchSummary:
        """Combine two consecutive batch steps into one summary."""
        return BatchSummary(
            processed=self.processed + other.processed,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            skipped=self.skipped + other.skipped,
            failures=self.failures + other.failures,
            offset=self.offset,
            next_offset=other.next_offset,
            total=other.total,
            has_more=other.has_more,
            started_at=self.started_at,
            finished_at=other.finished_at,
        )
