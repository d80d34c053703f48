"""Persistent key-value stores backing the slow tier of the document cache."""

import abc
import json
import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

from filelock import FileLock, Timeout

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Base exception for persistent store errors."""

    pass


class QuotaExceededError(StoreError):
    """Raised when a write would exceed the store's size quota."""

    pass


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be read or written."""

    pass


class PersistentKeyValueStore(abc.ABC):
    """String-keyed store holding UTF-8 JSON strings.

    Modelled on browser session storage: values are strings, writes may fail
    with a quota or availability error, reads of unknown keys return None.
    """

    @abc.abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string for key, or None if absent."""
        pass

    @abc.abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """Store value under key.

        Raises:
            QuotaExceededError: If the write would exceed the quota
            StoreUnavailableError: If the store cannot be written
        """
        pass

    @abc.abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove key if present."""
        pass

    @abc.abstractmethod
    def keys(self) -> List[str]:
        """Return all keys currently stored."""
        pass


def _entry_size(key: str, value: str) -> int:
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryKeyValueStore(PersistentKeyValueStore):
    """In-process store, optionally bounded by a byte quota.

    Sizes are counted as UTF-8 bytes of keys plus values.
    """

    def __init__(self, max_bytes: Optional[int] = None):
        self.max_bytes = max_bytes
        self._items: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Store values must be str, got {type(value).__name__}")

        if self.max_bytes is not None:
            current = self.size_bytes()
            if key in self._items:
                current -= _entry_size(key, self._items[key])
            if current + _entry_size(key, value) > self.max_bytes:
                raise QuotaExceededError(
                    f"Writing {key!r} would exceed quota of {self.max_bytes} bytes"
                )

        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._items)

    def size_bytes(self) -> int:
        """Total size of stored keys and values in bytes."""
        return sum(_entry_size(k, v) for k, v in self._items.items())


class JSONFileKeyValueStore(PersistentKeyValueStore):
    """Store persisted as a single JSON object in a file.

    Every operation takes a file lock so that several processes can share
    one session file. Writes go through a temp file and an atomic replace.
    A corrupted file is treated as empty.
    """

    def __init__(
        self,
        path: Path,
        max_bytes: Optional[int] = None,
        lock_timeout: float = 10.0,
    ):
        """Initialize file-backed store.

        Args:
            path: JSON file holding the store contents (created lazily)
            max_bytes: Optional quota in bytes of keys plus values
            lock_timeout: Seconds to wait for the file lock
        """
        self.path = Path(path).expanduser()
        self.max_bytes = max_bytes
        self.lock_timeout = lock_timeout
        self.lock_path = self.path.with_name(self.path.name + ".lock")

    def _lock(self) -> FileLock:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreUnavailableError(
                f"Cannot create store directory {self.path.parent}: {e}"
            ) from e
        return FileLock(self.lock_path, timeout=self.lock_timeout)

    def _read(self) -> Dict[str, str]:
        """Read file contents with the lock already held."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.warning(f"Store file {self.path} is corrupted, treating as empty")
            return {}
        except OSError as e:
            raise StoreUnavailableError(f"Cannot read store file {self.path}: {e}") from e

        if not isinstance(data, dict):
            logger.warning(f"Store file {self.path} has unexpected layout, ignoring")
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, items: Dict[str, str]) -> None:
        """Write file contents with the lock already held."""
        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(temp_path, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as cleanup_error:
                    logger.warning(f"Failed to clean up temp file: {cleanup_error}")
            if e.errno == 28:  # ENOSPC
                raise QuotaExceededError(f"Disk full writing {self.path}") from e
            raise StoreUnavailableError(f"Cannot write store file {self.path}: {e}") from e

    def get_item(self, key: str) -> Optional[str]:
        try:
            with self._lock():
                return self._read().get(key)
        except Timeout as e:
            raise StoreUnavailableError(
                f"Timeout acquiring lock for {self.path} after {self.lock_timeout} seconds"
            ) from e

    def set_item(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise TypeError(f"Store values must be str, got {type(value).__name__}")
        try:
            with self._lock():
                items = self._read()
                items[key] = value
                if self.max_bytes is not None:
                    total = sum(_entry_size(k, v) for k, v in items.items())
                    if total > self.max_bytes:
                        raise QuotaExceededError(
                            f"Writing {key!r} would exceed quota of {self.max_bytes} bytes"
                        )
                self._write(items)
        except Timeout as e:
            raise StoreUnavailableError(
                f"Timeout acquiring lock for {self.path} after {self.lock_timeout} seconds"
            ) from e

    def remove_item(self, key: str) -> None:
        try:
            with self._lock():
                items = self._read()
                if key in items:
                    del items[key]
                    self._write(items)
        except Timeout as e:
            raise StoreUnavailableError(
                f"Timeout acquiring lock for {self.path} after {self.lock_timeout} seconds"
            ) from e

    def keys(self) -> List[str]:
        try:
            with self._lock():
                return list(self._read())
        except Timeout as e:
            raise StoreUnavailableError(
                f"Timeout acquiring lock for {self.path} after {self.lock_timeout} seconds"
            ) from e
