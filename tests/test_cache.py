"""Tests for the TTL cache and its backing stores."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from jobsync.cache import CACHE_POLICIES, CacheEntry, JsonFileStore, MemoryStore, TTLCache, open_cache

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


class MutableClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock(T0)


def test_put_then_get(clock):
    """A stored value should be returned before it expires."""
    cache = TTLCache(MemoryStore(), timedelta(days=30), clock=clock)
    cache.put("Gensler", {"provider": "greenhouse"})
    assert cache.get("Gensler") == {"provider": "greenhouse"}


def test_keys_are_normalized(clock):
    """Default keys are normalized like fingerprint parts."""
    cache = TTLCache(MemoryStore(), timedelta(days=30), clock=clock)
    cache.put("Smith & Partners, LLC", 1)
    assert cache.get("smith  partners llc") == 1


def test_custom_key_function(clock):
    """A cache opened with its own key function stores keys exactly as it computes them."""
    cache = TTLCache(MemoryStore(), timedelta(days=30), clock=clock, key_func=str.casefold)
    cache.put("Société & Co", 1)

    assert cache.store.keys() == ["société & co"]
    assert cache.get("SOCIÉTÉ & CO") == 1
    assert cache.get("Societe Co") is None


def test_missing_key_is_absent(clock):
    """An unknown key returns None."""
    cache = TTLCache(MemoryStore(), timedelta(days=30), clock=clock)
    assert cache.get("nope") is None


def test_entry_just_inside_ttl_is_valid(clock):
    """An entry one second younger than the TTL is still valid."""
    cache = TTLCache(MemoryStore(), timedelta(days=30), clock=clock)
    cache.put("k", "v")
    clock.now = T0 + timedelta(days=30) - timedelta(seconds=1)
    assert cache.get("k") == "v"


def test_entry_aged_exactly_ttl_is_expired(clock):
    """An entry aged exactly the TTL is expired."""
    cache = TTLCache(MemoryStore(), timedelta(days=30), clock=clock)
    cache.put("k", "v")
    clock.now = T0 + timedelta(days=30)
    assert cache.get("k") is None
    assert not cache.is_valid(cache.get_entry("k"))
    # The raw entry is still there until refreshed
    assert cache.get_entry("k").value == "v"


def test_no_ttl_never_expires(clock):
    """A cache without a TTL keeps entries forever."""
    cache = TTLCache(MemoryStore(), None, clock=clock)
    cache.put("k", "v")
    clock.now = T0 + timedelta(days=10_000)
    assert cache.get("k") == "v"


def test_put_replaces_whole_entry(clock):
    """A refresh replaces both the payload and the timestamp."""
    cache = TTLCache(MemoryStore(), timedelta(days=1), clock=clock)
    cache.put("k", {"a": 1, "b": 2})
    clock.now = T0 + timedelta(days=2)
    cache.put("k", {"a": 3})
    assert cache.get("k") == {"a": 3}
    assert cache.get_entry("k").fetched_at == T0 + timedelta(days=2)


def test_items_yields_only_valid_entries(clock):
    """Iteration should skip expired entries."""
    cache = TTLCache(MemoryStore(), timedelta(days=1), clock=clock)
    cache.put("old", 1)
    clock.now = T0 + timedelta(hours=23)
    cache.put("new", 2)
    clock.now = T0 + timedelta(days=1)
    assert dict(cache.items()) == {"new": 2}


def test_file_store_round_trips_through_disk(tmp_path, clock):
    """The JSON store persists entries across reopening."""
    path = tmp_path / "cache.json"
    TTLCache(JsonFileStore(path), timedelta(days=30), clock=clock).put("Acme", {"x": 1})

    on_disk = json.loads(path.read_text())
    assert on_disk["acme"]["value"] == {"x": 1}
    assert on_disk["acme"]["fetched_at"] == T0.isoformat()

    reopened = TTLCache(JsonFileStore(path), timedelta(days=30), clock=clock)
    assert reopened.get("Acme") == {"x": 1}


def test_file_store_leaves_no_temp_file(tmp_path, clock):
    """Atomic writes leave a backup but no temp file behind."""
    path = tmp_path / "cache.json"
    cache = TTLCache(JsonFileStore(path), timedelta(days=30), clock=clock)
    cache.put("a", 1)
    cache.put("b", 2)
    assert not (tmp_path / "cache.json.tmp").exists()
    assert (tmp_path / "cache.json.bak").exists()


def test_missing_file_is_empty_cache(tmp_path, clock):
    """A missing cache file behaves as an empty cache."""
    cache = TTLCache(JsonFileStore(tmp_path / "absent.json"), timedelta(days=30), clock=clock)
    assert cache.get("anything") is None
    assert list(cache.items()) == []


def test_corrupt_file_is_empty_cache(tmp_path, clock):
    """A corrupt cache file is treated as empty and then overwritten."""
    path = tmp_path / "cache.json"
    path.write_text("{not json")
    cache = TTLCache(JsonFileStore(path), timedelta(days=30), clock=clock)
    assert cache.get("anything") is None

    cache.put("fresh", 1)
    assert json.loads(path.read_text())["fresh"]["value"] == 1


def test_corrupt_file_restored_from_backup(tmp_path, clock):
    """A corrupt cache file falls back to its backup copy."""
    path = tmp_path / "cache.json"
    store = JsonFileStore(path)
    cache = TTLCache(store, timedelta(days=30), clock=clock)
    cache.put("a", 1)
    cache.put("b", 2)  # backup now holds {"a": ...}
    path.write_text("garbage")

    restored = TTLCache(JsonFileStore(path), timedelta(days=30), clock=clock)
    assert restored.get("a") == 1


def test_malformed_entry_is_ignored(clock):
    """Entries without a value or a parseable timestamp are absent."""
    store = MemoryStore({"k": {"value": 1, "fetched_at": "not a date"}, "j": "junk"})
    cache = TTLCache(store, timedelta(days=1), clock=clock)
    assert cache.get("k") is None
    assert cache.get("j") is None
    assert list(cache.items()) == []


def test_cache_entry_from_dict():
    """CacheEntry should parse its stored form."""
    entry = CacheEntry.from_dict({"value": [1], "fetched_at": "2026-01-01T00:00:00+00:00"})
    assert entry == CacheEntry(value=[1], fetched_at=T0)
    assert CacheEntry.from_dict(None) is None


def test_named_caches_have_independent_policies(tmp_path, clock):
    """Each named cache has its own TTL and file."""
    ats = open_cache("ats", tmp_path, clock=clock)
    role_text = open_cache("role-text", tmp_path, clock=clock)
    company_text = open_cache("company-text", tmp_path, clock=clock)

    assert ats.ttl == timedelta(days=30)
    assert company_text.ttl == timedelta(days=365)
    assert role_text.ttl is None

    ats.put("Acme", "ats")
    role_text.put("Acme", "role")
    assert ats.get("Acme") == "ats"
    assert role_text.get("Acme") == "role"
    assert (tmp_path / CACHE_POLICIES["ats"][0]).exists()
    assert (tmp_path / CACHE_POLICIES["role-text"][0]).exists()


def test_unknown_cache_name(tmp_path):
    """Opening an unknown cache name is an error."""
    with pytest.raises(ValueError):
        open_cache("bogus", tmp_path)
