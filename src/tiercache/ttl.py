"""In-memory key/value cache with lazy time-to-live expiry."""

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60  # 5 minutes

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    """A cached value and the time it was written (seconds since epoch)."""

    value: V
    stored_at: float


class TTLCache(Generic[K, V]):
    """Key/value cache whose entries expire on read.

    There is no background sweeper: an entry older than the TTL passed to
    ``get`` is removed at the moment it is read. Values are deep-copied on
    write and on read, so callers never share state with the cache.

    Examples:
        >>> cache = TTLCache()
        >>> cache.set("players_list", ["a", "b"])
        >>> cache.get("players_list")
        ['a', 'b']
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize cache.

        Args:
            default_ttl: TTL in seconds used when ``get`` is called without one
            clock: Returns the current time in seconds
        """
        self.default_ttl = _check_ttl(default_ttl)
        self._clock = clock
        self._entries: Dict[K, CacheEntry[V]] = {}
        self._stats = {"hits": 0, "misses": 0, "expirations": 0}

    def _live_entry(self, key: K, ttl: Optional[float]) -> Optional[CacheEntry[V]]:
        ttl = self.default_ttl if ttl is None else _check_ttl(ttl)

        entry = self._entries.get(key)
        if entry is None:
            self._stats["misses"] += 1
            return None

        if self._clock() - entry.stored_at > ttl:
            del self._entries[key]
            self._stats["expirations"] += 1
            self._stats["misses"] += 1
            logger.debug(f"Expired cache entry for key: {key}")
            return None

        self._stats["hits"] += 1
        return entry

    def get(self, key: K, ttl: Optional[float] = None, default: Any = None) -> Any:
        """Get a fresh value.

        Args:
            key: Cache key
            ttl: Maximum age in seconds (defaults to ``default_ttl``)
            default: Returned on a miss

        Returns:
            Copy of the cached value, or ``default`` if absent or expired
        """
        entry = self._live_entry(key, ttl)
        if entry is None:
            return default
        return copy.deepcopy(entry.value)

    def get_with_timestamp(
        self, key: K, ttl: Optional[float] = None
    ) -> Optional[CacheEntry[V]]:
        """Get a fresh entry together with its write time.

        Same expiry rules as ``get``.

        Returns:
            CacheEntry with a copied value, or None on a miss
        """
        entry = self._live_entry(key, ttl)
        if entry is None:
            return None
        return CacheEntry(copy.deepcopy(entry.value), entry.stored_at)

    def set(self, key: K, value: V) -> None:
        """Store value, replacing any existing entry."""
        self._entries[key] = CacheEntry(copy.deepcopy(value), self._clock())

    def invalidate(self, key: K) -> None:
        """Remove key if present."""
        self._entries.pop(key, None)

    def clear(self) -> None:
        """Remove all entries."""
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        # Raw presence, ignores expiry
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, Any]:
        """Get hit/miss statistics.

        Returns:
            Statistics dict including ``hit_rate``
        """
        stats: Dict[str, Any] = dict(self._stats)
        stats["entries"] = len(self._entries)
        total_requests = stats["hits"] + stats["misses"]
        stats["hit_rate"] = stats["hits"] / total_requests if total_requests > 0 else 0.0
        return stats


def _check_ttl(ttl: float) -> float:
    if ttl < 0:
        raise ValueError(f"TTL must be non-negative, got {ttl}")
    return ttl
