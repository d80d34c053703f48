"""Composition root owning the caches of one session."""

import logging
from datetime import datetime
from typing import Any, Iterable, Optional

from tiercache.config import CacheConfig
from tiercache.existence import ExistenceCache
from tiercache.remote import RemoteDocumentStore
from tiercache.staleness import RefreshPlan, is_older_than_threshold, plan_refresh
from tiercache.stores import (
    JSONFileKeyValueStore,
    MemoryKeyValueStore,
    PersistentKeyValueStore,
)
from tiercache.tiered import TieredDocumentCache
from tiercache.ttl import TTLCache

logger = logging.getLogger(__name__)


def build_store(config: CacheConfig) -> PersistentKeyValueStore:
    """Create the persistent store described by config."""
    if config.store_path is not None:
        return JSONFileKeyValueStore(
            config.store_path,
            max_bytes=config.max_store_bytes,
            lock_timeout=config.lock_timeout,
        )
    return MemoryKeyValueStore(max_bytes=config.max_store_bytes)


class CacheSession:
    """One independent set of caches for a session.

    Construct once at start-up and pass it to whatever needs a cache.
    ``close`` drops the in-memory state; ``reset`` also wipes this
    session's persistent documents.

    Examples:
        >>> with CacheSession() as session:
        ...     session.values.set("teams_list", ["A", "B"])
        ...     session.documents.set("m1", {"id": "m1", "date": "2024-01-02"})
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        store: Optional[PersistentKeyValueStore] = None,
        remote: Optional[RemoteDocumentStore] = None,
    ):
        """Initialize session.

        Args:
            config: Cache configuration (defaults if None)
            store: Persistent tier (built from config if None)
            remote: Remote store used by ``existence`` when no fetcher is given
        """
        self.config = config or CacheConfig()
        self.store = store if store is not None else build_store(self.config)

        self.values: TTLCache = TTLCache(default_ttl=self.config.default_ttl)
        self.existence = ExistenceCache(ttl=self.config.existence_ttl, remote=remote)
        self.documents = TieredDocumentCache(
            self.store,
            prefix=self.config.storage_prefix,
            fallback_to_cached=self.config.fallback_to_cached,
        )
        logger.info(
            f"Cache session started (store={type(self.store).__name__}, "
            f"ttl={self.config.default_ttl}s, existence_ttl={self.config.existence_ttl}s)"
        )

    def is_archived(self, date_string: Any, now: Optional[datetime] = None) -> bool:
        """Check whether a document date is past the configured stale threshold."""
        return is_older_than_threshold(
            date_string, self.config.stale_threshold_days, now=now
        )

    def plan_refresh(self, docs: Iterable[Any]) -> RefreshPlan:
        """Plan a refresh of docs against this session's document cache."""
        return plan_refresh(docs, self.documents.is_cached)

    def close(self) -> None:
        """Drop all in-memory cache state."""
        self.values.clear()
        self.existence.invalidate_all()
        self.documents.clear()
        logger.info("Cache session closed")

    def reset(self) -> None:
        """Drop in-memory state and this session's persistent documents."""
        self.values.clear()
        self.existence.invalidate_all()
        self.documents.clear(persistent=True)
        logger.info("Cache session reset")

    def __enter__(self) -> "CacheSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
