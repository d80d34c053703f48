"""Memoization of remote document lookups, including negative results."""

import copy
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from tiercache.remote import ExistenceResult, RemoteDocumentStore
from tiercache.ttl import TTLCache

logger = logging.getLogger(__name__)

DEFAULT_EXISTENCE_TTL_SECONDS = 10 * 60  # 10 minutes

Fetcher = Callable[[str], Awaitable[Any]]


@dataclass(frozen=True)
class ExistenceRecord:
    """Memoized lookup result and the time it was stored."""

    stored_at: float
    exists: bool
    value: Any = None

    def __post_init__(self):
        if not self.exists and self.value is not None:
            raise ValueError("Absent records cannot carry a value")


class ExistenceCache:
    """Remembers whether documents exist remotely, and their content.

    Three states are observable per id: unknown (never queried or expired),
    confirmed absent, and confirmed present with data. Absence is cached for
    the same TTL as presence, so repeated lookups of a missing id hit the
    remote store once per TTL window.

    Concurrent misses for the same id each call the fetcher; there is no
    in-flight de-duplication.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_EXISTENCE_TTL_SECONDS,
        remote: Optional[RemoteDocumentStore] = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize existence cache.

        Args:
            ttl: Default record lifetime in seconds
            remote: Store queried when ``get_or_fetch`` is given no fetcher
            clock: Returns the current time in seconds
        """
        self.remote = remote
        self._records: TTLCache[str, ExistenceResult] = TTLCache(
            default_ttl=ttl, clock=clock
        )

    @property
    def ttl(self) -> float:
        return self._records.default_ttl

    def peek(self, doc_id: str, ttl: Optional[float] = None) -> Optional[ExistenceRecord]:
        """Return the live record for doc_id without fetching.

        Returns:
            ExistenceRecord, or None if the state is unknown
        """
        entry = self._records.get_with_timestamp(doc_id, ttl)
        if entry is None:
            return None
        return ExistenceRecord(
            stored_at=entry.stored_at,
            exists=entry.value.exists,
            value=entry.value.data,
        )

    async def get_or_fetch(
        self,
        doc_id: str,
        ttl: Optional[float] = None,
        fetcher: Optional[Fetcher] = None,
    ) -> ExistenceResult:
        """Return the memoized lookup for doc_id, fetching on a miss.

        Args:
            doc_id: Document id
            ttl: Maximum record age in seconds (defaults to the cache TTL)
            fetcher: Coroutine function returning an ExistenceResult or an
                ``{exists, data}`` mapping. Defaults to ``remote.get_by_id``.

        Returns:
            ExistenceResult for the document

        Raises:
            Any exception raised by the fetcher, unchanged. Nothing is
            cached in that case.
        """
        cached = self._records.get(doc_id, ttl)
        if cached is not None:
            logger.debug(f"Existence cache hit for {doc_id}: exists={cached.exists}")
            return cached

        if fetcher is None:
            if self.remote is None:
                raise ValueError("No fetcher given and no remote store configured")
            fetcher = self.remote.get_by_id

        result = ExistenceResult.coerce(await fetcher(doc_id))
        self._records.set(doc_id, result)
        logger.debug(f"Existence cache stored {doc_id}: exists={result.exists}")
        return ExistenceResult(result.exists, copy.deepcopy(result.data))

    def invalidate(self, doc_id: str) -> None:
        """Forget the record for doc_id."""
        self._records.invalidate(doc_id)

    def invalidate_all(self) -> None:
        """Forget every record."""
        self._records.clear()

    def get_stats(self) -> Dict[str, Any]:
        """Get hit/miss statistics of the underlying record cache."""
        return self._records.get_stats()
