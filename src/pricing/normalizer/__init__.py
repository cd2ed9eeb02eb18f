"""Price Normalizer - currency conversion into the home currency."""

from .currency import (
    ExchangeRateTable,
    NormalizedListing,
    convert,
    normalize_listing,
    normalize_listings,
)
from .rates import ExchangeRateFetcher, load_rate_table

__all__ = [
    "ExchangeRateFetcher",
    "ExchangeRateTable",
    "NormalizedListing",
    "convert",
    "load_rate_table",
    "normalize_listing",
    "normalize_listings",
]
