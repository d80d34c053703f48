"""Cache configuration management."""

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tiercache.existence import DEFAULT_EXISTENCE_TTL_SECONDS
from tiercache.staleness import DEFAULT_THRESHOLD_DAYS
from tiercache.tiered import DEFAULT_STORAGE_PREFIX
from tiercache.ttl import DEFAULT_TTL_SECONDS

DEFAULT_MAX_STORE_BYTES = 5 * 1024 * 1024  # 5 MiB, typical session storage quota


@dataclass
class CacheConfig:
    """Configuration for a cache session.

    Attributes:
        default_ttl: TTL in seconds for the generic value cache (5 minutes)
        existence_ttl: TTL in seconds for existence records (10 minutes)
        stale_threshold_days: Age after which a document counts as archival
        storage_prefix: Namespace for persistent document keys
        store_path: JSON file for the persistent tier. If None, the
            persistent tier lives in process memory.
        max_store_bytes: Quota of the persistent tier (None = unlimited)
        lock_timeout: Seconds to wait for the store file lock
        fallback_to_cached: Serve cached documents when a load fails
    """

    default_ttl: float = DEFAULT_TTL_SECONDS
    existence_ttl: float = DEFAULT_EXISTENCE_TTL_SECONDS
    stale_threshold_days: float = DEFAULT_THRESHOLD_DAYS
    storage_prefix: str = DEFAULT_STORAGE_PREFIX
    store_path: Optional[Path] = None
    max_store_bytes: Optional[int] = DEFAULT_MAX_STORE_BYTES
    lock_timeout: float = 10.0
    fallback_to_cached: bool = True

    def __post_init__(self):
        """Ensure store_path is an expanded Path and TTLs are sane."""
        if self.store_path is not None and not isinstance(self.store_path, Path):
            self.store_path = Path(self.store_path)
        if self.store_path is not None:
            self.store_path = self.store_path.expanduser()

        if self.default_ttl < 0 or self.existence_ttl < 0:
            raise ValueError("TTLs must be non-negative")

    @classmethod
    def load(cls, config_path: Path) -> "CacheConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file

        Returns:
            CacheConfig instance (defaults if the file does not exist)
        """
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if data.get("store_path") is not None:
            data["store_path"] = Path(data["store_path"])

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to a JSON file.

        Args:
            config_path: Path to config file
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "default_ttl": self.default_ttl,
            "existence_ttl": self.existence_ttl,
            "stale_threshold_days": self.stale_threshold_days,
            "storage_prefix": self.storage_prefix,
            "store_path": str(self.store_path) if self.store_path else None,
            "max_store_bytes": self.max_store_bytes,
            "lock_timeout": self.lock_timeout,
            "fallback_to_cached": self.fallback_to_cached,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            TIERCACHE_DEFAULT_TTL: Value cache TTL in seconds
            TIERCACHE_EXISTENCE_TTL: Existence record TTL in seconds
            TIERCACHE_STALE_DAYS: Archival threshold in days
            TIERCACHE_PREFIX: Persistent key namespace
            TIERCACHE_STORE_PATH: Persistent store file
            TIERCACHE_MAX_STORE_BYTES: Persistent store quota in bytes

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("TIERCACHE_DEFAULT_TTL"):
            config.default_ttl = float(os.getenv("TIERCACHE_DEFAULT_TTL"))

        if os.getenv("TIERCACHE_EXISTENCE_TTL"):
            config.existence_ttl = float(os.getenv("TIERCACHE_EXISTENCE_TTL"))

        if os.getenv("TIERCACHE_STALE_DAYS"):
            config.stale_threshold_days = float(os.getenv("TIERCACHE_STALE_DAYS"))

        if os.getenv("TIERCACHE_PREFIX"):
            config.storage_prefix = os.getenv("TIERCACHE_PREFIX")

        if os.getenv("TIERCACHE_STORE_PATH"):
            config.store_path = Path(os.getenv("TIERCACHE_STORE_PATH")).expanduser()

        if os.getenv("TIERCACHE_MAX_STORE_BYTES"):
            config.max_store_bytes = int(os.getenv("TIERCACHE_MAX_STORE_BYTES"))

        return config
