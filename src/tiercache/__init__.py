"""tiercache: Session-scoped document caching in front of a remote document store.

Key components:
- TTLCache: Key/value cache with lazy TTL expiry
- ExistenceCache: Memoized remote lookups, including confirmed absence
- TieredDocumentCache: Memory tier over a persistent key-value store
- CacheSession: Owns one instance of each cache for a session
"""

__version__ = "0.1.0"

from tiercache.config import CacheConfig
from tiercache.existence import ExistenceCache, ExistenceRecord
from tiercache.remote import ExistenceResult, RemoteDocumentStore, TransientError
from tiercache.session import CacheSession
from tiercache.staleness import (
    DocumentRef,
    RefreshPlan,
    is_older_than_threshold,
    plan_refresh,
    sort_by_date_descending,
)
from tiercache.stores import (
    JSONFileKeyValueStore,
    MemoryKeyValueStore,
    PersistentKeyValueStore,
    QuotaExceededError,
    StoreError,
    StoreUnavailableError,
)
from tiercache.tiered import TieredDocumentCache
from tiercache.ttl import CacheEntry, TTLCache

__all__ = [
    "CacheConfig",
    "CacheEntry",
    "CacheSession",
    "DocumentRef",
    "ExistenceCache",
    "ExistenceRecord",
    "ExistenceResult",
    "JSONFileKeyValueStore",
    "MemoryKeyValueStore",
    "PersistentKeyValueStore",
    "QuotaExceededError",
    "RefreshPlan",
    "RemoteDocumentStore",
    "StoreError",
    "StoreUnavailableError",
    "TTLCache",
    "TieredDocumentCache",
    "TransientError",
    "__version__",
    "is_older_than_threshold",
    "plan_refresh",
    "sort_by_date_descending",
]
