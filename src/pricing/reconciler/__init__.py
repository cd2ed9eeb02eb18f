"""Outlier Filter / Reconciler."""

from .affiliate import affiliate_taggers, tag_affiliate_url
from .reconciler import PriceStats, ReconciliationResult, Reconciler

__all__ = [
    "PriceStats",
    "ReconciliationResult",
    "Reconciler",
    "affiliate_taggers",
    "tag_affiliate_url",
]
