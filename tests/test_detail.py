"""Detail cache and detail fetcher behaviour."""

import json

from engine.cache import DetailCache
from engine.detail import DetailFetcher
from engine.errors import ProviderError, ProviderUnavailable, RateLimitError, StorageError
from engine.storage import MemoryStore

from conftest import FakeMarketplace, FakeProvider, make_product


class BrokenStore(MemoryStore):
    def get(self, key):
        raise StorageError("disk gone")

    def set(self, key, value):
        raise StorageError("disk gone")


def _network_calls(primary, secondary):
    return len(primary.detail_calls) + len(secondary.calls)


class TestDetailCache:

    def test_put_then_get(self, store):
        """A stored product comes back equal."""
        cache = DetailCache(store)
        p = make_product("B01", rating=4.5)
        cache.put("B01", p)
        assert cache.get("B01") == p

    def test_entries_persist_under_namespaced_key(self, store):
        """Entries are written to the store under productCache:<id>."""
        DetailCache(store).put("B01", make_product("B01"))
        raw = store.get("productCache:B01")
        assert json.loads(raw)["id"] == "B01"

        # A new cache over the same store (app restart) sees the entry
        assert DetailCache(store).get("B01").title == "Product B01"
        assert DetailCache(store).cached_ids() == ["B01"]

    def test_miss_returns_none(self, store):
        """Unknown ids are a miss."""
        assert DetailCache(store).get("nope") is None

    def test_unreadable_entry_is_a_miss(self, store):
        """Corrupt persisted JSON is treated as no entry."""
        store.set("productCache:B02", "{not json")
        assert DetailCache(store).get("B02") is None

    def test_storage_failure_is_a_miss(self):
        """Storage errors are logged and never raised to callers."""
        cache = DetailCache(BrokenStore())
        assert cache.get("B03") is None
        cache.put("B03", make_product("B03"))
        # Still served from memory for the session
        assert cache.get("B03").id == "B03"


class TestDetailFetcher:

    def test_second_fetch_is_a_cache_hit(self, store):
        """Two sequential fetches of one id make exactly one network call."""
        primary = FakeMarketplace(details={"B01": make_product("B01", "Lamp")})
        secondary = FakeProvider("serpapi")
        fetcher = DetailFetcher(DetailCache(store), primary, secondary)

        first = fetcher.fetch_detail("B01")
        second = fetcher.fetch_detail("B01")

        assert first == second
        assert first.title == "Lamp"
        assert _network_calls(primary, secondary) == 1

    def test_rate_limited_primary_uses_secondary_and_caches(self, store):
        """A rate-limited primary falls back to the secondary search and caches it."""
        primary = FakeMarketplace(errors={"B05": RateLimitError("amazon", "429", status=429)})
        match = make_product("serp-0-abc", "Desk Fan", store="Walmart", price="$24.99")
        secondary = FakeProvider("serpapi", results={"B05": [match]})
        cache = DetailCache(store)

        product = DetailFetcher(cache, primary, secondary).fetch_detail("B05")

        assert product.id == "B05"
        assert product.store == "Walmart"
        assert product.title == "Desk Fan"
        assert product.price == "$24.99"
        assert cache.get("B05") == product
        assert secondary.calls == ["B05"]

    def test_other_primary_errors_skip_secondary(self, store):
        """A plain provider error (e.g. unknown ASIN) goes straight to the placeholder."""
        primary = FakeMarketplace()
        secondary = FakeProvider("serpapi", default=[make_product("x")])

        product = DetailFetcher(DetailCache(store), primary, secondary).fetch_detail("B06")

        assert product.price == "N/A"
        assert secondary.calls == []

    def test_placeholder_when_everything_fails(self, store):
        """All paths failing yields an uncached placeholder with a usable URL."""
        primary = FakeMarketplace(errors={"B07": RateLimitError("amazon", "429", status=429)})
        secondary = FakeProvider("serpapi")
        cache = DetailCache(store)

        product = DetailFetcher(cache, primary, secondary).fetch_detail("B07")

        assert product.title == "Product Information Unavailable"
        assert product.price == "N/A"
        assert product.product_url
        assert "B07" in product.product_url
        assert cache.get("B07") is None

    def test_placeholder_is_retried_later(self, store):
        """Because placeholders are not cached, a later fetch hits providers again."""
        primary = FakeMarketplace(errors={"B08": ProviderUnavailable("amazon", "down")})
        secondary = FakeProvider("serpapi")
        fetcher = DetailFetcher(DetailCache(store), primary, secondary)

        fetcher.fetch_detail("B08")
        del primary.errors["B08"]
        primary.details["B08"] = make_product("B08", "Back Online")

        assert fetcher.fetch_detail("B08").title == "Back Online"
        assert primary.detail_calls == ["B08", "B08"]

    def test_test_widget_scenario(self, store):
        """Primary down, secondary finds Test Widget; the repeat fetch makes no calls."""
        primary = FakeMarketplace(errors={"B000TEST01": ProviderUnavailable("amazon", "HTTP 503", status=503)})
        widget = make_product("serp-0-1", "Test Widget", store="Google Shopping")
        secondary = FakeProvider("serpapi", results={"B000TEST01": [widget]})
        fetcher = DetailFetcher(DetailCache(store), primary, secondary)

        first = fetcher.fetch_detail("B000TEST01")
        calls_after_first = _network_calls(primary, secondary)
        second = fetcher.fetch_detail("B000TEST01")

        assert first.title == "Test Widget"
        assert second.title == "Test Widget"
        assert _network_calls(primary, secondary) == calls_after_first

    def test_fetch_many_is_positional_and_isolated(self, store):
        """Batch results line up with the requested ids; one failure does not spoil others."""

        class Exploding(FakeMarketplace):
            def product_details(self, asin):
                if asin == "BOOM":
                    raise RuntimeError("unexpected")
                return super().product_details(asin)

        primary = Exploding(details={
            "A1": make_product("A1", "First"),
            "A3": make_product("A3", "Third"),
        })
        fetcher = DetailFetcher(DetailCache(store), primary, FakeProvider("serpapi"), max_workers=3)

        results = fetcher.fetch_many(["A1", "BOOM", "A3", "MISSING"])

        assert [p.id for p in results] == ["A1", "BOOM", "A3", "MISSING"]
        assert results[0].title == "First"
        assert results[1].price == "N/A"
        assert results[2].title == "Third"
        assert results[3].price == "N/A"

    def test_fetch_many_empty(self, store):
        """An empty batch returns an empty list without starting workers."""
        fetcher = DetailFetcher(DetailCache(store), FakeMarketplace())
        assert fetcher.fetch_many([]) == []

    def test_no_secondary_configured(self, store):
        """Without a secondary, a rate-limited primary gives the placeholder."""
        primary = FakeMarketplace(errors={"B09": RateLimitError("amazon", "429")})
        product = DetailFetcher(DetailCache(store), primary).fetch_detail("B09")
        assert product.price == "N/A"

    def test_provider_error_keeps_status(self):
        """Provider errors carry the provider name and HTTP status."""
        err = RateLimitError("amazon", "slow down", status=429)
        assert isinstance(err, ProviderError)
        assert err.provider == "amazon"
        assert err.status == 429
