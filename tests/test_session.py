"""Tests for the cache session composition root."""

import asyncio
from datetime import datetime, timezone

from tiercache.config import CacheConfig
from tiercache.remote import ExistenceResult
from tiercache.session import CacheSession, build_store
from tiercache.stores import JSONFileKeyValueStore, MemoryKeyValueStore


class TestBuildStore:
    """Test store selection from configuration."""

    def test_memory_store_by_default(self):
        store = build_store(CacheConfig())
        assert isinstance(store, MemoryKeyValueStore)
        assert store.max_bytes == CacheConfig().max_store_bytes

    def test_file_store_when_path_configured(self, tmp_path):
        store = build_store(CacheConfig(store_path=tmp_path / "s.json", lock_timeout=2))
        assert isinstance(store, JSONFileKeyValueStore)
        assert store.path == tmp_path / "s.json"
        assert store.lock_timeout == 2


class TestCacheSession:
    """Test wiring and teardown."""

    def test_components_use_config(self):
        config = CacheConfig(default_ttl=42, existence_ttl=99, storage_prefix="p_")
        session = CacheSession(config)
        assert session.values.default_ttl == 42
        assert session.existence.ttl == 99
        assert session.documents.prefix == "p_"
        assert session.documents.store is session.store

    def test_sessions_are_independent(self):
        first = CacheSession()
        second = CacheSession()
        first.values.set("teams_list", ["A"])
        first.documents.set("m1", {"id": "m1"})
        assert second.values.get("teams_list") is None
        assert second.documents.get("m1") is None

    def test_close_keeps_persistent_documents(self, tmp_path):
        config = CacheConfig(store_path=tmp_path / "session.json")
        with CacheSession(config) as session:
            session.values.set("players_list", [1, 2])
            session.documents.set("m1", {"id": "m1", "date": "2024-01-02"})

        assert session.values.get("players_list") is None

        # Page reload: new session object over the same session store
        reloaded = CacheSession(config)
        assert reloaded.documents.get("m1") == {"id": "m1", "date": "2024-01-02"}

    def test_reset_wipes_persistent_documents(self, tmp_path):
        config = CacheConfig(store_path=tmp_path / "session.json")
        session = CacheSession(config)
        session.documents.set("m1", {"id": "m1"})
        session.reset()

        assert CacheSession(config).documents.get("m1") is None

    def test_existence_uses_remote(self):
        class Remote:
            async def get_by_id(self, doc_id):
                return ExistenceResult(False)

        session = CacheSession(remote=Remote())
        result = asyncio.run(session.existence.get_or_fetch("m9"))
        assert result.exists is False

        session.close()
        assert session.existence.peek("m9") is None


class TestStaleness:
    """Test the configured staleness policy."""

    def test_is_archived_uses_configured_threshold(self):
        now = datetime(2024, 1, 10, tzinfo=timezone.utc)
        assert CacheSession().is_archived("2024-01-01", now=now) is True

        lenient = CacheSession(CacheConfig(stale_threshold_days=30))
        assert lenient.is_archived("2024-01-01", now=now) is False
        assert lenient.is_archived("not-a-date", now=now) is False

    def test_plan_refresh_uses_document_cache(self):
        session = CacheSession()
        session.documents.set("m1", {"id": "m1", "date": "2024-01-01"})
        docs = [
            {"id": "m1", "date": "2024-01-01"},
            {"id": "m2", "date": "2024-02-01"},
            {"id": "m3", "date": "2024-03-01"},
        ]

        plan = session.plan_refresh(docs)

        assert [d["id"] for d in plan.refresh] == ["m3"]
        assert [d["id"] for d in plan.fetch_once] == ["m2"]
        assert [d["id"] for d in plan.from_cache] == ["m1"]
