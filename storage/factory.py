from __future__ import annotations

from typing import Optional, Union

from storage.memory_store import InMemoryStore
from storage.supabase_store import SupabaseStore
from telemetry.logging_utils import get_logger

logger = get_logger(__name__)

Store = Union[SupabaseStore, InMemoryStore]


def build_store(url: Optional[str], key: Optional[str]) -> Store:
    """Supabase when credentials are configured, otherwise the in-memory demo store."""
    if url and key:
        logger.info("store_selected", extra={"backend": "supabase"})
        return SupabaseStore(url, key)
    logger.warning(
        "store_demo_mode",
        extra={"backend": "memory", "reason": "SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY not set"},
    )
    return InMemoryStore()


def is_demo_store(store: Store) -> bool:
    return isinstance(store, InMemoryStore)
