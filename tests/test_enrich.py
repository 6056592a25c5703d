"""Tests for PDL company enrichment."""

from datetime import timedelta

import requests
import responses

from jobsync.cache import MemoryStore, TTLCache
from jobsync.enrich import PDL_URL, CompanyEnricher, company_cache_key, employee_band

from conftest import NOW, no_sleep


class NoopLimiter:
    def acquire(self):
        return 0.0


PDL_PAYLOAD = {
    "name": "gensler",
    "employee_count": 6500,
    "industry": "architecture & planning",
    "location": {"locality": "san francisco", "region": "california"},
    "summary": "Global design firm.",
    "founded": 1965,
    "type": "private",
}


def _enricher(api_key="key", store=None):
    cache = TTLCache(
        store or MemoryStore(), timedelta(days=30), name="enrichment",
        clock=lambda: NOW, key_func=company_cache_key,
    )
    return CompanyEnricher(cache, api_key=api_key, limiter=NoopLimiter(), sleep=no_sleep)


def test_company_cache_key_drops_suffixes():
    """Legal suffixes, commas and periods should not affect the key."""
    assert company_cache_key("Gensler, Inc.") == "gensler"
    assert company_cache_key("Smith  Group LLC") == "smith"


def test_company_cache_key_keeps_accents_and_ampersands():
    """Accented letters and '&' are part of the company name."""
    assert company_cache_key("Société Générale") == "société générale"
    assert company_cache_key("Smith & Partners") == "smith & partners"
    assert company_cache_key("Smith & Partners") != company_cache_key("Smith Partners")


def test_employee_band():
    """Headcounts should map to the collection's employee bands."""
    assert employee_band(None) == ""
    assert employee_band(12) == "1-50 employees"
    assert employee_band(450) == "200-500 employees"
    assert employee_band(6500) == "5,000+ employees"


@responses.activate
def test_lookup_fetches_then_caches():
    """The first lookup hits the API; a variant spelling is then a cache hit."""
    responses.add(responses.GET, PDL_URL, json=PDL_PAYLOAD)
    enricher = _enricher()

    first = enricher.lookup("Gensler")
    second = enricher.lookup("Gensler, Inc.")

    assert first.cache_hit is False
    assert first.data == {
        "employee_count": "5,000+ employees",
        "industry": "architecture & planning",
        "hq": "san francisco, california",
        "summary": "Global design firm.",
        "founded": "1965",
        "company_type": "private",
    }
    assert second.cache_hit is True
    assert second.data == first.data
    assert len(responses.calls) == 1
    assert responses.calls[0].request.headers["X-Api-Key"] == "key"


@responses.activate
def test_non_ascii_names_do_not_share_cache_entries():
    """Two different CJK company names must not collide in the cache."""
    store = MemoryStore()
    enricher = _enricher(api_key="", store=store)
    enricher.cache.put(company_cache_key("日建設計"), {"industry": "architecture"})

    other = enricher.lookup("株式会社")

    assert other.cache_hit is False
    assert other.data is None
    assert enricher.lookup("日建設計").data == {"industry": "architecture"}
    assert store.keys() == ["日建設計"]


@responses.activate
def test_accented_name_is_stored_under_its_own_key():
    """A fetched entry is stored under the unmangled, case-folded name."""
    responses.add(responses.GET, PDL_URL, json=PDL_PAYLOAD)
    store = MemoryStore()
    enricher = _enricher(store=store)

    enricher.lookup("Société Générale")

    assert store.keys() == ["société générale"]
    assert enricher.lookup("Societe Generale").cache_hit is False


@responses.activate
def test_ampersand_names_are_distinct_entries():
    """'Smith & Partners' should not be served the entry for 'Smith Partners'."""
    enricher = _enricher(api_key="")
    enricher.cache.put(company_cache_key("Smith Partners"), {"industry": "engineering"})

    result = enricher.lookup("Smith & Partners")

    assert result.cache_hit is False
    assert result.data is None


@responses.activate
def test_name_without_usable_text_skips_cache_and_api():
    """A name that is only suffixes or punctuation is never looked up or stored."""
    responses.add(responses.GET, PDL_URL, json=PDL_PAYLOAD)
    store = MemoryStore()
    enricher = _enricher(store=store)

    for name in ("Inc.", "", ", LLC"):
        result = enricher.lookup(name)
        assert result.data is None
        assert result.cache_hit is False

    assert len(responses.calls) == 0
    assert store.keys() == []


@responses.activate
def test_unknown_company_is_not_cached():
    """A 404 from the API means no data, and nothing is cached."""
    responses.add(responses.GET, PDL_URL, status=404)
    enricher = _enricher()

    result = enricher.lookup("Tiny Studio")

    assert result.data is None
    assert enricher.cache.get(company_cache_key("Tiny Studio")) is None


@responses.activate
def test_api_error_degrades_to_no_data():
    """An auth error should not raise out of lookup."""
    responses.add(responses.GET, PDL_URL, status=401)
    assert _enricher().lookup("Gensler").data is None


@responses.activate
def test_transport_error_degrades_to_no_data():
    """A connection failure should not raise out of lookup."""
    responses.add(responses.GET, PDL_URL, body=requests.ConnectionError("down"))
    assert _enricher().lookup("Gensler").data is None


@responses.activate
def test_without_api_key_only_cache_is_used():
    """Without credentials, cached companies resolve and others return nothing."""
    store = MemoryStore()
    enricher = _enricher(api_key="", store=store)
    enricher.cache.put(company_cache_key("Gensler"), {"industry": "architecture"})

    assert enricher.lookup("Gensler").data == {"industry": "architecture"}
    assert enricher.lookup("Unknown Co").data is None
    assert len(responses.calls) == 0
