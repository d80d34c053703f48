"""Unit tests for the existence cache."""

import asyncio

import pytest

from conftest import CountingFetcher
from tiercache.existence import (
    DEFAULT_EXISTENCE_TTL_SECONDS,
    ExistenceCache,
    ExistenceRecord,
)
from tiercache.remote import ExistenceResult, TransientError


@pytest.fixture
def cache(clock):
    return ExistenceCache(clock=clock)


class TestGetOrFetch:
    """Test memoized lookups."""

    def test_absent_result_cached_within_ttl(self, cache):
        fetcher = CountingFetcher()

        first = asyncio.run(cache.get_or_fetch("missing-id", ttl=60, fetcher=fetcher))
        second = asyncio.run(cache.get_or_fetch("missing-id", ttl=60, fetcher=fetcher))

        assert first == ExistenceResult(exists=False, data=None)
        assert second == ExistenceResult(exists=False, data=None)
        assert fetcher.calls == ["missing-id"]

    def test_present_result_cached(self, cache):
        fetcher = CountingFetcher({"m1": {"team": "A", "shots": []}})

        result = asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        again = asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))

        assert result.exists is True
        assert result.data == {"team": "A", "shots": []}
        assert again == result
        assert len(fetcher.calls) == 1

    def test_refetch_after_ttl(self, cache, clock):
        fetcher = CountingFetcher()
        asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        clock.advance(DEFAULT_EXISTENCE_TTL_SECONDS + 1)
        asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        assert fetcher.calls == ["m1", "m1"]

    def test_positional_ttl_then_fetcher(self, cache, clock):
        fetcher = CountingFetcher()

        result = asyncio.run(cache.get_or_fetch("missing-id", 600, fetcher))
        clock.advance(300)
        asyncio.run(cache.get_or_fetch("missing-id", 600, fetcher))
        clock.advance(301)
        asyncio.run(cache.get_or_fetch("missing-id", 600, fetcher))

        assert result == ExistenceResult(exists=False, data=None)
        assert fetcher.calls == ["missing-id", "missing-id"]

    def test_default_ttl_is_ten_minutes(self, cache):
        assert cache.ttl == 600

    def test_fetcher_may_return_existence_result(self, cache):
        async def fetcher(doc_id):
            return ExistenceResult(exists=True, data={"id": doc_id})

        result = asyncio.run(cache.get_or_fetch("m2", fetcher=fetcher))
        assert result == ExistenceResult(True, {"id": "m2"})

    def test_absent_mapping_drops_data(self, cache):
        async def fetcher(doc_id):
            return {"exists": False, "data": {"stale": True}}

        result = asyncio.run(cache.get_or_fetch("m3", fetcher=fetcher))
        assert result == ExistenceResult(False, None)

    def test_invalid_fetcher_result_raises(self, cache):
        async def fetcher(doc_id):
            return "yes"

        with pytest.raises(TypeError):
            asyncio.run(cache.get_or_fetch("m4", fetcher=fetcher))
        assert cache.peek("m4") is None

    def test_returned_data_is_a_copy(self, cache):
        fetcher = CountingFetcher({"m1": {"shots": [1]}})
        result = asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        result.data["shots"].append(2)
        again = asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        assert again.data == {"shots": [1]}


class TestRemoteStore:
    """Test lookups through a configured remote store."""

    def test_uses_remote_when_no_fetcher(self, clock):
        class Remote:
            def __init__(self):
                self.calls = 0

            async def get_by_id(self, doc_id):
                self.calls += 1
                return ExistenceResult(True, {"id": doc_id})

        remote = Remote()
        cache = ExistenceCache(remote=remote, clock=clock)
        asyncio.run(cache.get_or_fetch("m1"))
        asyncio.run(cache.get_or_fetch("m1"))
        assert remote.calls == 1

    def test_no_fetcher_and_no_remote_raises(self, cache):
        with pytest.raises(ValueError, match="No fetcher"):
            asyncio.run(cache.get_or_fetch("m1"))


class TestFailures:
    """Test that fetch failures leave the cache unchanged."""

    def test_failure_propagates_and_nothing_stored(self, cache):
        error = TransientError("unavailable")
        failing = CountingFetcher(error=error)

        with pytest.raises(TransientError) as exc_info:
            asyncio.run(cache.get_or_fetch("m1", fetcher=failing))
        assert exc_info.value is error
        assert cache.peek("m1") is None

        working = CountingFetcher({"m1": {"ok": True}})
        result = asyncio.run(cache.get_or_fetch("m1", fetcher=working))
        assert result.exists is True
        assert working.calls == ["m1"]

    def test_no_deduplication_of_concurrent_misses(self, cache):
        async def slow_fetcher(doc_id):
            calls.append(doc_id)
            await asyncio.sleep(0)
            return {"exists": False, "data": None}

        calls = []

        async def run_both():
            return await asyncio.gather(
                cache.get_or_fetch("m1", fetcher=slow_fetcher),
                cache.get_or_fetch("m1", fetcher=slow_fetcher),
            )

        asyncio.run(run_both())
        assert calls == ["m1", "m1"]


class TestPeekAndInvalidate:
    """Test tri-state inspection and invalidation."""

    def test_peek_states(self, cache, clock):
        assert cache.peek("a") is None

        asyncio.run(cache.get_or_fetch("a", fetcher=CountingFetcher()))
        asyncio.run(cache.get_or_fetch("b", fetcher=CountingFetcher({"b": {"x": 1}})))

        assert cache.peek("a") == ExistenceRecord(clock.now, False, None)
        assert cache.peek("b") == ExistenceRecord(clock.now, True, {"x": 1})

    def test_record_invariant(self):
        with pytest.raises(ValueError):
            ExistenceRecord(stored_at=0.0, exists=False, value={"x": 1})

    def test_invalidate_forces_refetch(self, cache):
        fetcher = CountingFetcher()
        asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        cache.invalidate("m1")
        asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        assert fetcher.calls == ["m1", "m1"]

    def test_invalidate_all(self, cache):
        fetcher = CountingFetcher()
        asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        asyncio.run(cache.get_or_fetch("m2", fetcher=fetcher))
        cache.invalidate_all()
        assert cache.peek("m1") is None
        assert cache.peek("m2") is None

    def test_stats(self, cache):
        fetcher = CountingFetcher()
        asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        asyncio.run(cache.get_or_fetch("m1", fetcher=fetcher))
        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
