"""Price source adapters - eBay Browse API and Japanese retail storefronts."""

from .base import BaseSourceAdapter, SourceResult
from .ebay import EbayBrowseAdapter, build_search_query
from .storefront import StorefrontAdapter, extract_price

# Registry of available sources
SOURCES: dict[str, type[BaseSourceAdapter]] = {
    "ebay": EbayBrowseAdapter,
    "storefront": StorefrontAdapter,
}

__all__ = [
    "BaseSourceAdapter",
    "EbayBrowseAdapter",
    "SOURCES",
    "SourceResult",
    "StorefrontAdapter",
    "build_search_query",
    "extract_price",
]
