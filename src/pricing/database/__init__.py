"""Price store backends and the persistence writer."""

from .connection import get_connection, init_db
from .store import PriceStore, SQLitePriceStore
from .supabase_store import SupabasePriceStore
from .writer import PriceWriter, WriteResult

__all__ = [
    "PriceStore",
    "PriceWriter",
    "SQLitePriceStore",
    "SupabasePriceStore",
    "WriteResult",
    "get_connection",
    "init_db",
]
