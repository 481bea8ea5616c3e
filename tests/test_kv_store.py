"""
Tests for the key-value store backends
"""
import json
from unittest.mock import Mock

import pytest


@pytest.fixture
def memory_store():
    from listing_wizard.services.kv_store import InMemoryKeyValueStore
    return InMemoryKeyValueStore()


@pytest.fixture
def disk_store(tmp_path):
    from listing_wizard.services.kv_store import LocalDiskKeyValueStore
    return LocalDiskKeyValueStore(base_path=str(tmp_path / "kv"))


@pytest.fixture
def sql_store():
    from listing_wizard.services.sql_store import SqlKeyValueStore
    return SqlKeyValueStore.from_url("sqlite://")


@pytest.fixture(params=["memory_store", "disk_store", "sql_store"])
def store(request):
    """Each durable-storage adapter behind the same contract"""
    return request.getfixturevalue(request.param)


class TestKeyValueStoreContract:
    """Behaviour shared by every backend"""

    def test_get_missing_returns_none(self, store):
        assert store.get("project:missing") is None

    def test_set_then_get(self, store):
        store.set("project:1", {"id": "1", "title": "Widget", "images": ["https://a.example/1.png"]})

        assert store.get("project:1") == {"id": "1", "title": "Widget", "images": ["https://a.example/1.png"]}

    def test_set_overwrites(self, store):
        store.set("usage:u1:2025-03", {"listingsGenerated": 1})
        store.set("usage:u1:2025-03", {"listingsGenerated": 2})

        assert store.get("usage:u1:2025-03") == {"listingsGenerated": 2}

    def test_delete(self, store):
        store.set("project:1", {"id": "1"})

        assert store.delete("project:1") is True
        assert store.get("project:1") is None
        assert store.delete("project:1") is False

    def test_scan_by_prefix(self, store):
        store.set("project:a", {"id": "a"})
        store.set("project:b", {"id": "b"})
        store.set("usage:u1:2025-03", {})
        store.set("subscription:u1", {})

        assert sorted(store.scan("project:")) == ["project:a", "project:b"]
        assert list(store.scan("usage:u1:")) == ["usage:u1:2025-03"]

    def test_scan_treats_prefix_literally(self, store):
        store.set("usage:user_1:2025-03", {})
        store.set("usage:userX1:2025-03", {})

        assert list(store.scan("usage:user_1:")) == ["usage:user_1:2025-03"]

    def test_returned_documents_are_copies(self, store):
        store.set("project:1", {"images": ["a"]})

        document = store.get("project:1")
        document["images"].append("b")

        assert store.get("project:1") == {"images": ["a"]}


class TestLocalDiskKeyValueStore:
    """Disk-specific behaviour"""

    def test_keys_with_separators_are_encoded(self, disk_store):
        disk_store.set("usage:u/1:2025-03", {"ok": True})

        files = list(disk_store.base_path.glob("*.json"))
        assert len(files) == 1
        assert "/" not in files[0].name
        assert list(disk_store.scan("usage:")) == ["usage:u/1:2025-03"]

    def test_documents_survive_reopen(self, tmp_path):
        from listing_wizard.services.kv_store import LocalDiskKeyValueStore

        LocalDiskKeyValueStore(base_path=str(tmp_path)).set("project:1", {"title": "Kept"})

        assert LocalDiskKeyValueStore(base_path=str(tmp_path)).get("project:1") == {"title": "Kept"}

    def test_no_temp_files_left_behind(self, disk_store):
        disk_store.set("project:1", {"title": "Widget"})

        assert list(disk_store.base_path.glob("*.tmp")) == []


class TestRedisKeyValueStore:
    """Redis backend against a mocked client"""

    def test_set_serializes_under_namespace(self):
        from listing_wizard.services.redis_store import RedisKeyValueStore

        client = Mock()
        store = RedisKeyValueStore(client, namespace="lw:")
        store.set("project:1", {"title": "Widget"})

        client.set.assert_called_once_with("lw:project:1", json.dumps({"title": "Widget"}))

    def test_get_deserializes(self):
        from listing_wizard.services.redis_store import RedisKeyValueStore

        client = Mock()
        client.get = Mock(return_value='{"title": "Widget"}')
        store = RedisKeyValueStore(client, namespace="lw:")

        assert store.get("project:1") == {"title": "Widget"}
        client.get.assert_called_once_with("lw:project:1")

    def test_get_missing(self):
        from listing_wizard.services.redis_store import RedisKeyValueStore

        client = Mock()
        client.get = Mock(return_value=None)

        assert RedisKeyValueStore(client).get("project:1") is None

    def test_delete_reports_removal(self):
        from listing_wizard.services.redis_store import RedisKeyValueStore

        client = Mock()
        client.delete = Mock(side_effect=[1, 0])
        store = RedisKeyValueStore(client)

        assert store.delete("project:1") is True
        assert store.delete("project:1") is False

    def test_scan_strips_namespace(self):
        from listing_wizard.services.redis_store import RedisKeyValueStore

        client = Mock()
        client.scan_iter = Mock(return_value=iter(["lw:project:a", "lw:project:b"]))
        store = RedisKeyValueStore(client, namespace="lw:")

        assert list(store.scan("project:")) == ["project:a", "project:b"]
        client.scan_iter.assert_called_once_with(match="lw:project:*")

    def test_get_redis_client_without_url(self):
        from listing_wizard.services.redis_store import get_redis_client

        assert get_redis_client(None) is None


class TestKeyValueStoreFactory:
    """get_kv_store backend selection"""

    def test_memory_backend(self):
        from listing_wizard.services.kv_store import InMemoryKeyValueStore, get_kv_store

        assert isinstance(get_kv_store("memory"), InMemoryKeyValueStore)

    def test_unknown_backend(self):
        from listing_wizard.services.kv_store import get_kv_store

        with pytest.raises(ValueError):
            get_kv_store("cassandra")
