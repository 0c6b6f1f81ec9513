from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import Any

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..db.models import Recipe
from .config import DEFAULT_SEARCH_CONFIG, SearchConfig

POPULAR_CATEGORIES_KEY = "popular_categories"


class TTLCache:
    """Small in-process key/value cache with per-entry expiry and hit stats."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._entries: dict[str, dict[str, Any]] = {}
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry and self._clock() < entry["expires_at"]:
                self._hits += 1
                return entry["value"]
            if entry:
                del self._entries[key]
            self._misses += 1
            return None

    def set(self, key: str, value: Any, ttl: float) -> None:
        with self._lock:
            self._entries[key] = {"value": value, "expires_at": self._clock() + ttl}

    def fetch(self, key: str, ttl: float, compute: Callable[[], Any]) -> Any:
        value = self.get(key)
        if value is None:
            value = compute()
            self.set(key, value, ttl)
        return value

    def invalidate(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._hits = 0
            self._misses = 0

    def stats(self) -> dict:
        with self._lock:
            total = self._hits + self._misses
            return {
                "size": len(self._entries),
                "keys": sorted(self._entries),
                "hits": self._hits,
                "misses": self._misses,
                "hit_rate": round(self._hits / total * 100, 1) if total > 0 else 0.0,
            }


def compute_popular_categories(db: Session, limit: int) -> list[str]:
    """Most common categories by recipe count, ties broken by name."""
    recipe_count = func.count(Recipe.id)
    rows = (
        db.query(Recipe.category, recipe_count)
        .filter(Recipe.category.isnot(None))
        .group_by(Recipe.category)
        .order_by(recipe_count.desc(), Recipe.category.asc())
        .limit(limit)
        .all()
    )
    return [category for category, _ in rows]


class CategoryStatsCache:
    """Owns the cached popular-categories aggregate for the search engine."""

    def __init__(
        self,
        cache: TTLCache | None = None,
        config: SearchConfig = DEFAULT_SEARCH_CONFIG,
    ) -> None:
        self.cache = cache or TTLCache()
        self.config = config

    def popular_categories(self, db: Session) -> list[str]:
        return self.cache.fetch(
            POPULAR_CATEGORIES_KEY,
            self.config.popular_categories_ttl,
            lambda: compute_popular_categories(db, self.config.popular_categories_limit),
        )

    def invalidate(self) -> bool:
        return self.cache.invalidate(POPULAR_CATEGORIES_KEY)

    def refresh(self, db: Session) -> list[str]:
        self.invalidate()
        return self.popular_categories(db)
