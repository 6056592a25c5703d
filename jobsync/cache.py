"""Expiring key-value caches.

All caches share one shape: a flat mapping from a normalized key to a
record of ``{"value": <payload>, "fetched_at": <ISO timestamp>}``. Each
cache instance has its own TTL policy; an entry is valid while
``now - fetched_at < ttl``. A refresh replaces the whole entry.

Backing stores:
  - `MemoryStore` keeps everything in a dict (tests, dry runs)
  - `JsonFileStore` keeps one JSON document per cache, rewritten
    atomically on every put; a missing or corrupt file is an empty cache

Keys are normalized per cache: `normalize` by default, or whatever key
function the cache is opened with (enrichment uses `company_cache_key`).

The `company-text` and `role-text` policies back the external content
generator; the pipeline itself only opens `ats` and `enrichment`.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

from jobsync.models import normalize, parse_timestamp
from jobsync.storage import DEFAULT_DATA_DIR, read_json, write_json

logger = logging.getLogger(__name__)

# Cache name -> (file name, TTL). None means entries never expire.
CACHE_POLICIES: dict[str, tuple[str, Optional[timedelta]]] = {
    "ats": ("ats-cache.json", timedelta(days=30)),
    "enrichment": ("enrichment-cache.json", timedelta(days=30)),
    "company-text": ("company-text-cache.json", timedelta(days=365)),
    "role-text": ("role-text-cache.json", None),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CacheEntry:
    """A cached payload and the moment it was fetched or generated."""

    value: Any
    fetched_at: datetime

    def to_dict(self) -> dict:
        return {"value": self.value, "fetched_at": self.fetched_at.isoformat()}

    @classmethod
    def from_dict(cls, raw: Any) -> Optional[CacheEntry]:
        if not isinstance(raw, dict) or "value" not in raw:
            return None
        fetched_at = parse_timestamp(raw.get("fetched_at"))
        if fetched_at is None:
            return None
        return cls(value=raw["value"], fetched_at=fetched_at)


class KeyValueStore(ABC):
    """Minimal persistence contract behind every cache."""

    @abstractmethod
    def get(self, key: str) -> Optional[dict]:
        ...

    @abstractmethod
    def put(self, key: str, record: dict) -> None:
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...


class MemoryStore(KeyValueStore):
    def __init__(self, initial: Optional[dict[str, dict]] = None):
        self._data: dict[str, dict] = dict(initial or {})

    def get(self, key: str) -> Optional[dict]:
        return self._data.get(key)

    def put(self, key: str, record: dict) -> None:
        self._data[key] = record

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """Whole-keyspace JSON snapshot, loaded lazily and rewritten per put."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._data: Optional[dict[str, dict]] = None

    def _load(self) -> dict[str, dict]:
        if self._data is None:
            raw = read_json(self.path, default={})
            if not isinstance(raw, dict):
                logger.warning("Cache file %s is not a JSON object; starting empty", self.path)
                raw = {}
            self._data = raw
        return self._data

    def get(self, key: str) -> Optional[dict]:
        return self._load().get(key)

    def put(self, key: str, record: dict) -> None:
        data = self._load()
        data[key] = record
        write_json(self.path, data)

    def keys(self) -> list[str]:
        return list(self._load())


class TTLCache:
    """A named cache with a TTL policy over any `KeyValueStore`.

    Keys pass through `key_func` (default `jobsync.models.normalize`, so
    lookups are insensitive to case, punctuation and spacing).
    """

    def __init__(
        self,
        store: KeyValueStore,
        ttl: Optional[timedelta],
        name: str = "cache",
        clock: Callable[[], datetime] = _utcnow,
        key_func: Callable[[str], str] = normalize,
    ):
        self.store = store
        self.ttl = ttl
        self.name = name
        self._clock = clock
        self.key_func = key_func

    def normalize_key(self, key: str) -> str:
        return self.key_func(key)

    def is_valid(self, entry: CacheEntry) -> bool:
        if self.ttl is None:
            return True
        return self._clock() - entry.fetched_at < self.ttl

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry for `key` whether or not it is still valid."""
        return CacheEntry.from_dict(self.store.get(self.normalize_key(key)))

    def get(self, key: str) -> Any:
        """Return the cached payload, or None when absent or expired."""
        entry = self.get_entry(key)
        if entry is None or not self.is_valid(entry):
            return None
        return entry.value

    def put(self, key: str, value: Any) -> CacheEntry:
        entry = CacheEntry(value=value, fetched_at=self._clock())
        self.store.put(self.normalize_key(key), entry.to_dict())
        return entry

    def items(self) -> Iterator[tuple[str, Any]]:
        """Yield `(key, payload)` for every valid entry."""
        for key in self.store.keys():
            entry = CacheEntry.from_dict(self.store.get(key))
            if entry is not None and self.is_valid(entry):
                yield key, entry.value


def open_cache(
    name: str,
    data_dir: str | Path = DEFAULT_DATA_DIR,
    clock: Callable[[], datetime] = _utcnow,
    key_func: Callable[[str], str] = normalize,
) -> TTLCache:
    """Open one of the named caches in `CACHE_POLICIES` backed by its JSON file."""
    try:
        filename, ttl = CACHE_POLICIES[name]
    except KeyError:
        raise ValueError(f"Unknown cache '{name}'") from None
    store = JsonFileStore(Path(data_dir) / filename)
    return TTLCache(store, ttl, name=name, clock=clock, key_func=key_func)
