"""Two-tier document cache: process memory in front of a persistent store."""

import asyncio
import copy
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, NamedTuple, Optional

import orjson

from tiercache.stores import (
    PersistentKeyValueStore,
    QuotaExceededError,
    StoreError,
    StoreUnavailableError,
)

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_PREFIX = "tiercache_doc_"

Loader = Callable[[str], Awaitable[Any]]

_MISSING = object()


class ErrorKind(Enum):
    """Non-fatal failures of the persistent tier."""

    DECODE = "decode"
    ENCODE = "encode"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAVAILABLE = "unavailable"
    NOT_FOUND = "not_found"


class Result(NamedTuple):
    """Outcome of a persistent tier operation."""

    value: Any = None
    error: Optional[ErrorKind] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class TieredDocumentCache:
    """Document cache with a memory tier and a persistent tier.

    Reads check memory first, then the persistent store; a persistent hit is
    promoted into memory. Writes always land in memory and are mirrored to
    the persistent store on a best-effort basis: if the store is full,
    unavailable, or the value cannot be serialised, the cache keeps working
    from memory alone. Corrupt persisted data is discarded as a miss.

    Documents never expire here. Which documents to re-fetch is decided by
    the caller, see ``tiercache.staleness.plan_refresh``.
    """

    def __init__(
        self,
        store: PersistentKeyValueStore,
        prefix: str = DEFAULT_STORAGE_PREFIX,
        fallback_to_cached: bool = True,
    ):
        """Initialize tiered cache.

        Args:
            store: Persistent tier
            prefix: Namespace prepended to every persistent key
            fallback_to_cached: In ``get_or_load``, return a cached copy when
                the loader fails
        """
        self.store = store
        self.prefix = prefix
        self.fallback_to_cached = fallback_to_cached
        self._memory: Dict[str, Any] = {}
        self._in_flight: Dict[str, "asyncio.Future[Any]"] = {}
        self._stats = {
            "memory_hits": 0,
            "persistent_hits": 0,
            "misses": 0,
            "decode_failures": 0,
            "write_failures": 0,
        }

    def storage_key(self, doc_id: str) -> str:
        """Persistent key for a document id."""
        return f"{self.prefix}{doc_id}"

    # --- Persistent tier helpers ---

    def _read_persisted(self, doc_id: str) -> Result:
        key = self.storage_key(doc_id)
        try:
            raw = self.store.get_item(key)
        except StoreError as e:
            logger.warning(f"Persistent store read failed for {key}: {e}")
            return Result(error=ErrorKind.UNAVAILABLE)

        if raw is None:
            return Result(error=ErrorKind.NOT_FOUND)

        try:
            return Result(value=orjson.loads(raw))
        except (orjson.JSONDecodeError, TypeError) as e:
            logger.warning(f"Discarding unreadable cached document {key}: {e}")
            return Result(error=ErrorKind.DECODE)

    def _write_persisted(self, doc_id: str, value: Any) -> Result:
        key = self.storage_key(doc_id)
        try:
            raw = orjson.dumps(value).decode("utf-8")
        except (TypeError, ValueError) as e:
            logger.warning(f"Cannot serialise document {doc_id}, keeping in memory only: {e}")
            return Result(error=ErrorKind.ENCODE)

        try:
            self.store.set_item(key, raw)
        except QuotaExceededError as e:
            logger.warning(f"Persistent store full, keeping {doc_id} in memory only: {e}")
            return Result(error=ErrorKind.QUOTA_EXCEEDED)
        except StoreUnavailableError as e:
            logger.warning(f"Persistent store unavailable, keeping {doc_id} in memory only: {e}")
            return Result(error=ErrorKind.UNAVAILABLE)
        return Result(value=raw)

    def _remove_persisted(self, doc_id: str) -> Result:
        key = self.storage_key(doc_id)
        try:
            self.store.remove_item(key)
        except StoreError as e:
            logger.warning(f"Persistent store remove failed for {key}: {e}")
            return Result(error=ErrorKind.UNAVAILABLE)
        return Result()

    # --- Public interface ---

    def get(self, doc_id: str, default: Any = None) -> Any:
        """Get a cached document.

        Args:
            doc_id: Document id
            default: Returned on a miss

        Returns:
            Copy of the cached document, or ``default``
        """
        if doc_id in self._memory:
            self._stats["memory_hits"] += 1
            return copy.deepcopy(self._memory[doc_id])

        result = self._read_persisted(doc_id)
        if result.ok:
            self._stats["persistent_hits"] += 1
            self._memory[doc_id] = result.value
            logger.debug(f"Promoted document {doc_id} from persistent tier")
            return copy.deepcopy(result.value)

        if result.error is ErrorKind.DECODE:
            self._stats["decode_failures"] += 1
        self._stats["misses"] += 1
        return default

    def set(self, doc_id: str, value: Any) -> None:
        """Cache a document in memory and, if possible, persistently."""
        self._memory[doc_id] = copy.deepcopy(value)
        if not self._write_persisted(doc_id, value).ok:
            self._stats["write_failures"] += 1

    def is_cached(self, doc_id: str) -> bool:
        """Check whether doc_id is available from either tier.

        Does not promote or count towards statistics.
        """
        return doc_id in self._memory or self._read_persisted(doc_id).ok

    def invalidate(self, doc_id: str) -> None:
        """Remove a document from both tiers."""
        self._memory.pop(doc_id, None)
        self._remove_persisted(doc_id)

    def clear(self, persistent: bool = False) -> None:
        """Empty the memory tier, and optionally the namespaced persistent keys."""
        self._memory.clear()
        if not persistent:
            return
        for key in self.persisted_keys():
            try:
                self.store.remove_item(key)
            except StoreError as e:
                logger.warning(f"Persistent store remove failed for {key}: {e}")

    def persisted_keys(self) -> List[str]:
        """Persistent keys belonging to this cache's namespace."""
        try:
            keys = self.store.keys()
        except StoreError as e:
            logger.warning(f"Cannot list persistent store keys: {e}")
            return []
        return [k for k in keys if k.startswith(self.prefix)]

    def persisted_ids(self) -> List[str]:
        """Document ids present in the persistent tier."""
        return [k[len(self.prefix):] for k in self.persisted_keys()]

    async def get_or_load(self, doc_id: str, loader: Loader) -> Any:
        """Load a document remotely, sharing one load between concurrent callers.

        A non-None result is cached with ``set``; None means the document
        does not exist and nothing is cached. If the loader raises and
        ``fallback_to_cached`` is set, a cached copy is returned instead
        when one exists.

        Cancelling the caller that started a load cancels the load and
        nothing is written. Callers that joined it are not cancelled: they
        start a new load instead. Joiners can be cancelled independently.

        Args:
            doc_id: Document id
            loader: Coroutine function fetching the document by id

        Returns:
            The loaded (or fallback cached) document, or None
        """
        while True:
            pending = self._in_flight.get(doc_id)
            if pending is None:
                return await self._start_load(doc_id, loader)

            logger.debug(f"Joining in-flight load for {doc_id}")
            try:
                return await asyncio.shield(pending)
            except asyncio.CancelledError:
                # Re-raise unless it was the shared load that got cancelled.
                if not pending.cancelled():
                    raise
                if self._in_flight.get(doc_id) is pending:
                    del self._in_flight[doc_id]
                logger.debug(f"Shared load for {doc_id} was cancelled, loading again")

    async def _start_load(self, doc_id: str, loader: Loader) -> Any:
        task = asyncio.ensure_future(self._load(doc_id, loader))
        self._in_flight[doc_id] = task

        def _forget(done: "asyncio.Future[Any]") -> None:
            if self._in_flight.get(doc_id) is done:
                del self._in_flight[doc_id]

        task.add_done_callback(_forget)
        return await task

    async def _load(self, doc_id: str, loader: Loader) -> Any:
        try:
            value = await loader(doc_id)
        except Exception as e:
            if self.fallback_to_cached:
                cached = self.get(doc_id, default=_MISSING)
                if cached is not _MISSING:
                    logger.warning(f"Loading {doc_id} failed, serving cached copy: {e}")
                    return cached
            logger.error(f"Loading {doc_id} failed: {e}")
            raise

        if value is None:
            return None
        self.set(doc_id, value)
        return copy.deepcopy(value)

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics.

        Returns:
            Statistics dict including ``hit_rate``
        """
        stats: Dict[str, Any] = dict(self._stats)
        stats["memory_entries"] = len(self._memory)
        hits = stats["memory_hits"] + stats["persistent_hits"]
        total_requests = hits + stats["misses"]
        stats["hit_rate"] = hits / total_requests if total_requests > 0 else 0.0
        return stats
