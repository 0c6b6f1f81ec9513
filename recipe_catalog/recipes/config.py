from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SearchConfig:
    page_size: int = 12
    popular_categories_limit: int = 5
    popular_categories_ttl: float = 7 * 24 * 60 * 60  # one week


DEFAULT_SEARCH_CONFIG = SearchConfig()
