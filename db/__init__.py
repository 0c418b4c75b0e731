"""Entity store clients and factory."""

from typing import Optional, Union

from config import settings

from .memory_store import InMemoryStore
from .supabase_client import SupabaseClient

Store = Union[SupabaseClient, InMemoryStore]

# Global store instance
_db_client: Optional[Store] = None


def get_db_client() -> Store:
    """Get or create the entity store selected by ``settings.store_backend``."""
    global _db_client
    if _db_client is None:
        if settings.store_backend == "memory":
            _db_client = InMemoryStore()
        else:
            _db_client = SupabaseClient()
    return _db_client


def reset_db_client() -> None:
    """Drop the cached store instance (used after reconfiguration)."""
    global _db_client
    _db_client = None


__all__ = ["InMemoryStore", "Store", "SupabaseClient", "get_db_client", "reset_db_client"]
