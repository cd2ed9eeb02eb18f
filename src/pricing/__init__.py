"""
Card price acquisition and reconciliation pipeline.

Modules:
- sources: Source adapters (eBay Browse API, Japanese retail storefronts)
- normalizer: Currency conversion into the home currency (JPY)
- reconciler: Plausibility filter, representative selection, affiliate tagging
- database: Price store (SQLite / Supabase) and persistence writer
- driver: Batch controller, pacing, CLI and HTTP trigger
- common: Shared utilities
"""

__version__ = "0.1.0"
