from __future__ import annotations

from unittest.mock import MagicMock

from recipe_catalog.recipes.cache import (
    POPULAR_CATEGORIES_KEY,
    CategoryStatsCache,
    TTLCache,
    compute_popular_categories,
)
from recipe_catalog.recipes.config import SearchConfig


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _seed_categories(make_recipe):
    # Desserts x3, Breads x2, Drinks x2, then one each
    for n, category in enumerate(
        ["Desserts", "Desserts", "Desserts", "Breads", "Breads", "Drinks", "Drinks", "Soups", "Salads", "Appetizers", None]
    ):
        make_recipe(f"Recipe {n}", category=category)


def test_cache_miss_then_hit():
    cache = TTLCache()

    assert cache.get("k") is None
    cache.set("k", ["a"], ttl=60)
    assert cache.get("k") == ["a"]

    stats = cache.stats()
    assert stats["misses"] == 1
    assert stats["hits"] == 1
    assert stats["hit_rate"] == 50.0
    assert stats["keys"] == ["k"]


def test_cache_entry_expires():
    clock = FakeClock()
    cache = TTLCache(clock=clock)
    cache.set("k", "v", ttl=10)

    clock.now += 9
    assert cache.get("k") == "v"
    clock.now += 1
    assert cache.get("k") is None
    assert cache.stats()["size"] == 0


def test_fetch_computes_once_until_invalidated():
    cache = TTLCache()
    compute = MagicMock(return_value=["x"])

    assert cache.fetch("k", 60, compute) == ["x"]
    assert cache.fetch("k", 60, compute) == ["x"]
    assert compute.call_count == 1

    assert cache.invalidate("k") is True
    assert cache.invalidate("k") is False
    cache.fetch("k", 60, compute)
    assert compute.call_count == 2


def test_clear_resets_entries_and_stats():
    cache = TTLCache()
    cache.fetch("k", 60, lambda: 1)
    cache.get("k")

    cache.clear()

    assert cache.stats() == {"size": 0, "keys": [], "hits": 0, "misses": 0, "hit_rate": 0.0}


def test_popular_categories_top_five_ties_by_name(db, make_recipe):
    _seed_categories(make_recipe)

    assert compute_popular_categories(db, 5) == ["Desserts", "Breads", "Drinks", "Appetizers", "Salads"]


def test_popular_categories_cached_for_a_week(db, make_recipe):
    _seed_categories(make_recipe)
    clock = FakeClock()
    stats = CategoryStatsCache(cache=TTLCache(clock=clock))

    first = stats.popular_categories(db)
    make_recipe("Another Soup", category="Soups")
    make_recipe("Yet Another Soup", category="Soups")
    make_recipe("Third Soup", category="Soups")

    assert stats.popular_categories(db) == first

    clock.now += SearchConfig().popular_categories_ttl
    assert stats.popular_categories(db)[0] == "Soups"


def test_refresh_recomputes_immediately(db, make_recipe):
    _seed_categories(make_recipe)
    stats = CategoryStatsCache()
    stats.popular_categories(db)
    for n in range(4):
        make_recipe(f"Soup {n}", category="Soups")

    assert stats.refresh(db)[0] == "Soups"
    assert stats.cache.stats()["keys"] == [POPULAR_CATEGORIES_KEY]


def test_limit_comes_from_config(db, make_recipe):
    _seed_categories(make_recipe)
    stats = CategoryStatsCache(config=SearchConfig(popular_categories_limit=2))

    assert stats.popular_categories(db) == ["Desserts", "Breads"]


def test_cache_stats_endpoint(client, make_recipe):
    make_recipe("Brownies", category="Desserts")
    client.get("/api/categories/popular")
    client.get("/api/categories/popular")

    resp = client.get("/cache/stats")

    assert resp.status_code == 200
    body = resp.json()
    assert body["hits"] == 1
    assert body["misses"] == 1
    assert "hit_rate" in body


def test_refresh_endpoint(client, make_recipe):
    make_recipe("Brownies", category="Desserts")
    assert client.get("/api/categories/popular").json() == {"categories": ["Desserts"]}
    make_recipe("Tomato Soup", category="Soups")
    make_recipe("Leek Soup", category="Soups")

    resp = client.post("/cache/popular-categories/refresh")

    assert resp.status_code == 200
    assert resp.json() == {"categories": ["Soups", "Desserts"]}


def test_clear_endpoint(client, make_recipe):
    make_recipe("Brownies", category="Desserts")
    client.get("/api/categories/popular")

    resp = client.delete("/cache")

    assert resp.status_code == 200
    assert client.get("/cache/stats").json()["size"] == 0
