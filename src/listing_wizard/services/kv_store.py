"""
Key-Value Store Interface and Implementations
Durable storage adapter for projects, usage records and subscriptions
(in-memory, local filesystem, Redis, SQL)
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterator, Optional
import copy
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from urllib.parse import quote, unquote

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Abstract base class for key-value stores holding JSON documents"""

    @abstractmethod
    def get(self, key: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a document by key

        Args:
            key: Storage key (e.g. "project:abc123")

        Returns:
            Document dict or None if not found
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Dict[str, Any]) -> None:
        """
        Store a document, replacing any previous value

        Args:
            key: Storage key
            value: JSON-serializable dict
        """
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """
        Delete a document by key

        Args:
            key: Storage key

        Returns:
            True if deleted, False if it was already absent
        """
        pass

    @abstractmethod
    def scan(self, prefix: str) -> Iterator[str]:
        """
        Iterate over keys starting with prefix

        Args:
            prefix: Key prefix (e.g. "project:")

        Yields:
            Matching keys
        """
        pass


class InMemoryKeyValueStore(KeyValueStore):
    """Process-local store (default for dev and tests)"""

    def __init__(self):
        self._data: Dict[str, Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            value = self._data.get(key)
            return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Dict[str, Any]) -> None:
        # Round-trip through JSON so callers get the same guarantees as the durable stores
        document = json.loads(json.dumps(value))
        with self._lock:
            self._data[key] = document

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._data.pop(key, None) is not None

    def scan(self, prefix: str) -> Iterator[str]:
        with self._lock:
            keys = [key for key in self._data if key.startswith(prefix)]
        yield from keys

    def clear(self):
        """Drop every document"""
        with self._lock:
            self._data.clear()


class LocalDiskKeyValueStore(KeyValueStore):
    """One JSON file per key under a base directory"""

    def __init__(self, base_path: Optional[str] = None):
        """
        Initialize local disk store

        Args:
            base_path: Base directory for documents (default: STORE_PATH or ./data)
        """
        self.base_path = Path(base_path or os.getenv("STORE_PATH", "./data"))
        self.base_path.mkdir(parents=True, exist_ok=True)
        logger.info(f"LocalDiskKeyValueStore initialized at {self.base_path}")

    def _path_for(self, key: str) -> Path:
        return self.base_path / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        file_path = self._path_for(key)
        if not file_path.exists():
            return None
        with open(file_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def set(self, key: str, value: Dict[str, Any]) -> None:
        file_path = self._path_for(key)
        payload = json.dumps(value)

        # Write to a temp file then rename so readers never see a partial document
        fd, tmp_path = tempfile.mkstemp(dir=self.base_path, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, file_path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.debug(f"Stored {len(payload)} bytes to {file_path}")

    def delete(self, key: str) -> bool:
        file_path = self._path_for(key)
        try:
            file_path.unlink()
        except FileNotFoundError:
            return False
        logger.debug(f"Deleted {file_path}")
        return True

    def scan(self, prefix: str) -> Iterator[str]:
        for file_path in sorted(self.base_path.glob("*.json")):
            key = unquote(file_path.stem)
            if key.startswith(prefix):
                yield key


def get_kv_store(backend_name: str = None) -> KeyValueStore:
    """
    Factory function to get the configured key-value store

    Args:
        backend_name: 'memory', 'disk', 'redis', 'sql' (None reads STORE_BACKEND)

    Returns:
        KeyValueStore instance
    """
    from ..config import config

    if backend_name is None:
        backend_name = config.STORE_BACKEND

    backend_name = backend_name.lower()
    if backend_name == "memory":
        return InMemoryKeyValueStore()
    elif backend_name == "disk":
        return LocalDiskKeyValueStore(config.STORE_PATH)
    elif backend_name == "redis":
        from .redis_store import RedisKeyValueStore, get_redis_client
        client = get_redis_client(config.REDIS_URL)
        if client is None:
            raise ValueError("REDIS_URL must point to a reachable Redis server for STORE_BACKEND=redis")
        return RedisKeyValueStore(client)
    elif backend_name == "sql":
        from .sql_store import SqlKeyValueStore
        if not config.DATABASE_URL:
            raise ValueError("DATABASE_URL environment variable required for STORE_BACKEND=sql")
        return SqlKeyValueStore.from_url(config.DATABASE_URL)
    else:
        raise ValueError(f"Unknown store backend: {backend_name}")
