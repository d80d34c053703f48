"""Contract for the remote document store the caches sit in front of."""

from dataclasses import dataclass
from typing import Any, Generic, Mapping, Optional, TypeVar

from typing_extensions import Protocol

V = TypeVar("V")


class TransientError(Exception):
    """Raised by remote stores for failed lookups.

    The caches never retry; retry policy belongs to the caller.
    """

    pass


@dataclass(frozen=True)
class ExistenceResult(Generic[V]):
    """Answer to "does this document exist, and what does it contain"."""

    exists: bool
    data: Optional[V] = None

    def __post_init__(self):
        if not self.exists and self.data is not None:
            raise ValueError("Absent documents cannot carry data")

    @classmethod
    def coerce(cls, raw: Any) -> "ExistenceResult":
        """Build a result from an ExistenceResult or an ``{exists, data}`` mapping.

        Data on an absent result is dropped.

        Raises:
            TypeError: If raw is neither
        """
        if isinstance(raw, ExistenceResult):
            return raw
        if isinstance(raw, Mapping) and "exists" in raw:
            exists = bool(raw["exists"])
            return cls(exists=exists, data=raw.get("data") if exists else None)
        raise TypeError(
            f"Expected ExistenceResult or mapping with 'exists', got {type(raw).__name__}"
        )


class RemoteDocumentStore(Protocol):
    """Async lookup of documents by id."""

    async def get_by_id(self, doc_id: str) -> ExistenceResult:
        """Fetch a document.

        Raises:
            TransientError: If the lookup failed
        """
        ...
