"""Staleness policy for collections of dated documents.

Only the newest document of a collection is expected to change, so only it
is refreshed from the network on each access. Older documents are archival:
once cached they are served from cache without expiry, and they are fetched
remotely only to populate the cache the first time.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, List, Mapping, NamedTuple, Optional, TypeVar

from typing_extensions import TypedDict

DEFAULT_THRESHOLD_DAYS = 7

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

T = TypeVar("T")


class DocumentRef(TypedDict, total=False):
    """Minimal shape of a dated document."""

    id: str
    date: str  # ISO 8601


class RefreshPlan(NamedTuple):
    """Partition of documents by how they should be obtained."""

    refresh: list  # newest document, always re-fetched
    fetch_once: list  # older documents not yet cached
    from_cache: list  # older documents served from cache


def parse_date(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 date or datetime string.

    A trailing ``Z``, short fractional seconds and ``+HHMM`` offsets are
    accepted. Timezone-naive values are taken as UTC.

    Returns:
        Aware datetime, or None if value is not a parsable string
    """
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def is_older_than_threshold(
    date_string: Any, threshold_days: float, now: Optional[datetime] = None
) -> bool:
    """Check whether a document date lies more than threshold_days in the past.

    Unparsable dates are never considered old, so such documents keep being
    re-fetched.

    Args:
        date_string: ISO 8601 date of the document
        threshold_days: Age threshold in days
        now: Reference time (defaults to the current UTC time)

    Returns:
        True if the date is strictly older than the threshold

    Examples:
        >>> is_older_than_threshold("2024-01-01", 7, now=datetime(2024, 1, 10))
        True
        >>> is_older_than_threshold("not-a-date", 7)
        False
    """
    parsed = parse_date(date_string)
    if parsed is None:
        return False

    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    return now - parsed > timedelta(days=threshold_days)


def _doc_date(doc: Any) -> Any:
    if isinstance(doc, Mapping):
        return doc.get("date")
    return getattr(doc, "date", None)


def _sort_key(doc: Any) -> datetime:
    return parse_date(_doc_date(doc)) or _EPOCH


def sort_by_date_descending(docs: Iterable[T]) -> List[T]:
    """Sort documents newest first.

    The sort is stable. Documents without a parsable date sort as the epoch,
    which puts them after every dated document from 1970 on.

    Args:
        docs: Mappings or objects with a ``date`` field

    Returns:
        New sorted list
    """
    # reverse=True keeps equal keys in their original order
    return sorted(docs, key=_sort_key, reverse=True)


def _doc_id(doc: Any) -> Any:
    if isinstance(doc, Mapping):
        return doc.get("id")
    return getattr(doc, "id", None)


def plan_refresh(docs: Iterable[T], is_cached: Callable[[Any], bool]) -> RefreshPlan:
    """Decide which documents to fetch from the network.

    The newest document is always refreshed. Every other document is served
    from cache when ``is_cached(doc_id)`` is true, and fetched once
    otherwise.

    Args:
        docs: Mappings or objects with ``id`` and ``date`` fields
        is_cached: Predicate telling whether a document id is cached

    Returns:
        RefreshPlan with documents in newest-first order
    """
    ordered = sort_by_date_descending(docs)
    if not ordered:
        return RefreshPlan([], [], [])

    newest, older = ordered[0], ordered[1:]
    fetch_once = []
    from_cache = []
    for doc in older:
        if is_cached(_doc_id(doc)):
            from_cache.append(doc)
        else:
            fetch_once.append(doc)

    return RefreshPlan([newest], fetch_once, from_cache)
