"""Catalog statistics for the dashboard."""

from __future__ import annotations

from typing import Any

from pricetracker.catalog.search_log import SearchQueryLog
from pricetracker.catalog.store import CatalogStore
from pricetracker.utils.cache import STATS_CACHE_KEY, STATS_CACHE_TTL, Cache
from pricetracker.utils.dates import isoformat, utcnow

RECENT_SEARCHES = 10


class StatisticsAggregator:
    def __init__(
        self,
        store: CatalogStore,
        search_log: SearchQueryLog,
        cache: Cache,
        *,
        ttl: int = STATS_CACHE_TTL,
    ) -> None:
        self.store = store
        self.search_log = search_log
        self.cache = cache
        self.ttl = ttl

    def compute(self) -> dict[str, Any]:
        return {
            "success": True,
            "totalProducts": self.store.count(),
            "bySite": self.store.count_by_site(),
            "recentSearches": [record.to_dict() for record in self.search_log.recent(RECENT_SEARCHES)],
            "totalSearches": self.search_log.count(),
            "productsWithPriceHistory": self.store.count_with_price_changes(),
            "lastUpdated": isoformat(utcnow()),
        }

    def get(self) -> tuple[dict[str, Any], bool]:
        cached = self.cache.get(STATS_CACHE_KEY)
        if cached is not None:
            return cached, True
        stats = self.compute()
        self.cache.set(STATS_CACHE_KEY, stats, self.ttl)
        return stats, False

    def invalidate(self) -> None:
        self.cache.delete(STATS_CACHE_KEY)
