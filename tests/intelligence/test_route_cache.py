"""Tests for the two-tier route cache."""

import json

import pytest


class TestCacheKeys:
    """Tests for exact and fuzzy key computation."""

    def test_exact_key_normalizes_case_and_whitespace(self):
        """Test exact keys ignore case and repeated whitespace."""
        from routing_core.intelligence.route_cache import compute_exact_key

        key = compute_exact_key("org-1", "Create  a Task ")

        assert key == compute_exact_key("org-1", "create a task")
        assert len(key) == 16

    def test_exact_key_scoped_by_org(self):
        """Test the organization is part of the key."""
        from routing_core.intelligence.route_cache import compute_exact_key

        assert compute_exact_key("org-1", "create a task") != compute_exact_key("org-2", "create a task")

    def test_fuzzy_key_ignores_order_and_stop_words(self):
        """Test near-identical phrasings share a fuzzy key."""
        from routing_core.intelligence.route_cache import compute_fuzzy_key, fuzzy_tokens

        assert fuzzy_tokens("please create the task") == ["create", "task"]
        assert compute_fuzzy_key("org-1", "please create the task") == compute_fuzzy_key(
            "org-1", "create task please"
        )
        assert compute_fuzzy_key("org-1", "create task").startswith("f:")

    def test_fuzzy_tokens_strip_punctuation(self):
        """Test punctuation and one-character tokens are dropped."""
        from routing_core.intelligence.route_cache import fuzzy_tokens

        assert fuzzy_tokens("Create a task, now!") == ["create", "now", "task"]

    @pytest.mark.parametrize("request_text", ["do it", "is that", "please, just do it!", "좀 그"])
    def test_no_fuzzy_key_without_content_tokens(self, request_text):
        """Test stop-word-only requests get no fuzzy key."""
        from routing_core.intelligence.route_cache import compute_fuzzy_key

        assert compute_fuzzy_key("org-1", request_text) is None


class TestStopWordOnlyRequests:
    """Tests for requests with no content tokens."""

    @pytest.mark.asyncio
    async def test_stop_word_requests_do_not_share_an_entry(self, fake_shared_cache):
        """Test two stop-word-only requests are cached independently."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache(shared_cache=fake_shared_cache)

        await cache.cache_route("org-1", "do it", "update", [], 0.9, "llm")

        assert await cache.get_cached_route("org-1", "is that") is None
        assert (await cache.get_cached_route("org-1", "do it")).category == "update"
        assert cache.get_stats()["memory_entries"] == 1
        assert len(fake_shared_cache.store) == 1


class TestRouteCache:
    """Tests for RouteCache."""

    @pytest.mark.asyncio
    async def test_round_trip(self):
        """Test a cached route is returned for the same request."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache()

        stored = await cache.cache_route("org-1", "create a task", "create", ["linear-task"], 0.9, "pattern")
        route = await cache.get_cached_route("org-1", "create a task")

        assert stored is True
        assert route.category == "create"
        assert route.skills == ["linear-task"]
        assert route.confidence == 0.9
        assert route.method == "pattern"
        assert route.hit_count == 1

    @pytest.mark.asyncio
    async def test_fuzzy_hit(self):
        """Test a reworded request hits the fuzzy key."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache()
        await cache.cache_route("org-1", "please create the task", "create", [], 0.9, "pattern")

        route = await cache.get_cached_route("org-1", "create task please")

        assert route is not None
        assert route.category == "create"

    @pytest.mark.asyncio
    async def test_other_org_misses(self):
        """Test routes never leak across organizations."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache()
        await cache.cache_route("org-1", "create a task", "create", [], 0.9, "pattern")

        assert await cache.get_cached_route("org-2", "create a task") is None

    @pytest.mark.asyncio
    async def test_low_confidence_not_cached(self):
        """Test routes below the confidence floor are rejected."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache()

        stored = await cache.cache_route("org-1", "do the thing", "unknown", [], 0.59, "pattern")

        assert stored is False
        assert await cache.get_cached_route("org-1", "do the thing") is None
        assert cache.get_stats()["memory_entries"] == 0

    @pytest.mark.asyncio
    async def test_eviction_keeps_size_bounded(self):
        """Test the oldest entries are evicted at capacity."""
        from routing_core.intelligence.route_cache import RouteCache, RouteCacheConfig

        cache = RouteCache(RouteCacheConfig(max_memory_entries=5, use_shared=False))

        for i in range(10):
            await cache.cache_route("org-1", f"create report number{i}", "create", [], 0.9, "pattern")
            assert len(cache._memory) <= 5

        assert await cache.get_cached_route("org-1", "create report number0") is None
        assert await cache.get_cached_route("org-1", "create report number9") is not None

    @pytest.mark.asyncio
    async def test_shared_write_uses_ttl(self, fake_shared_cache):
        """Test both keys are written to the shared tier with the TTL."""
        from routing_core.intelligence.route_cache import RouteCache, RouteCacheConfig

        cache = RouteCache(RouteCacheConfig(ttl_seconds=120), shared_cache=fake_shared_cache)

        await cache.cache_route("org-1", "create a task", "create", ["linear-task"], 0.9, "llm")

        assert len(fake_shared_cache.store) == 2
        assert all(key.startswith("route_cache:") for key in fake_shared_cache.store)
        assert set(fake_shared_cache.ttls.values()) == {120}
        payload = json.loads(next(iter(fake_shared_cache.store.values())))
        assert payload["category"] == "create"
        assert payload["method"] == "llm"

    @pytest.mark.asyncio
    async def test_shared_hit_is_promoted(self, fake_shared_cache):
        """Test a shared-tier hit lands in the local tier."""
        from routing_core.intelligence.route_cache import RouteCache

        writer = RouteCache(shared_cache=fake_shared_cache)
        await writer.cache_route("org-1", "create a task", "create", [], 0.9, "pattern")

        reader = RouteCache(shared_cache=fake_shared_cache)
        assert reader.get_stats()["memory_entries"] == 0

        route = await reader.get_cached_route("org-1", "create a task")

        assert route.category == "create"
        assert reader.get_stats()["memory_entries"] == 1

        fake_shared_cache.store.clear()
        assert await reader.get_cached_route("org-1", "create a task") is not None

    @pytest.mark.asyncio
    async def test_shared_failures_are_swallowed(self, failing_shared_cache):
        """Test an unreachable shared tier degrades to local-only."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache(shared_cache=failing_shared_cache)

        assert await cache.cache_route("org-1", "create a task", "create", [], 0.9, "pattern") is True
        assert await cache.get_cached_route("org-1", "create a task") is not None
        assert await cache.get_cached_route("org-1", "something else entirely") is None
        assert await cache.invalidate_org_routes("org-1") == 2

    @pytest.mark.asyncio
    async def test_use_shared_false_ignores_client(self, fake_shared_cache):
        """Test disabling the shared tier ignores a provided client."""
        from routing_core.intelligence.route_cache import RouteCache, RouteCacheConfig

        cache = RouteCache(RouteCacheConfig(use_shared=False), shared_cache=fake_shared_cache)
        await cache.cache_route("org-1", "create a task", "create", [], 0.9, "pattern")

        assert fake_shared_cache.store == {}
        assert cache.get_stats()["shared_enabled"] is False

    @pytest.mark.asyncio
    async def test_invalidate_clears_both_tiers(self, fake_shared_cache):
        """Test invalidation empties local and shared tiers."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache(shared_cache=fake_shared_cache)
        await cache.cache_route("org-1", "create a task", "create", [], 0.9, "pattern")
        await cache.cache_route("org-2", "delete the report", "delete", [], 0.9, "pattern")
        fake_shared_cache.store["unrelated"] = "keep"

        removed = await cache.invalidate_org_routes("org-1")

        assert removed == 8
        assert cache.get_stats()["memory_entries"] == 0
        assert fake_shared_cache.store == {"unrelated": "keep"}

    @pytest.mark.asyncio
    async def test_stats_top_hits(self):
        """Test stats report the most-hit entries first."""
        from routing_core.intelligence.route_cache import RouteCache

        cache = RouteCache()
        await cache.cache_route("org-1", "create a task", "create", [], 0.9, "pattern")
        await cache.cache_route("org-1", "delete the report", "delete", [], 0.9, "pattern")
        for _ in range(3):
            await cache.get_cached_route("org-1", "delete the report")

        stats = cache.get_stats()

        assert stats["memory_entries"] == 4
        assert stats["max_memory_entries"] == 500
        assert stats["ttl_seconds"] == 300
        assert stats["top_hits"][0]["category"] == "delete"
        assert stats["top_hits"][0]["hit_count"] == 3

    def test_cached_route_from_dict(self):
        """Test deserialization fills defaults."""
        from routing_core.intelligence.route_cache import CachedRoute

        route = CachedRoute.from_dict({"category": "read", "confidence": "0.8"})

        assert route.skills == []
        assert route.confidence == 0.8
        assert route.method == "unknown"
        assert route.hit_count == 0
