"""Paginated, filtered and full-text reads over the catalog."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any

from pricetracker.catalog.models import ListingFilter, Page, PageRequest, SortSpec
from pricetracker.catalog.search_log import SearchQueryLog
from pricetracker.catalog.store import CatalogStore, sort_column
from pricetracker.errors import ValidationError
from pricetracker.utils.cache import PRODUCTS_CACHE_TTL, Cache, listing_cache_key

DEFAULT_PAGE_SIZE = int(os.environ.get("DEFAULT_PAGE_SIZE", 20))
MAX_PAGE_SIZE = int(os.environ.get("MAX_PAGE_SIZE", 100))
SORT_ORDERS = {"asc", "desc"}


@dataclass(slots=True)
class ListingQuery:
    site: str | None = None
    search_query: str | None = None
    page: int = 1
    limit: int = DEFAULT_PAGE_SIZE
    sort_by: str = "scrapedAt"
    order: str = "desc"


def page_request(page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> PageRequest:
    return PageRequest(page=max(page, 1), limit=min(max(limit, 1), MAX_PAGE_SIZE))


def page_payload(key: str, page: Page) -> dict[str, Any]:
    return {
        "success": True,
        key: [item.to_dict() for item in page.items],
        "pagination": page.pagination(),
    }


class QueryEngine:
    def __init__(
        self,
        store: CatalogStore,
        search_log: SearchQueryLog,
        cache: Cache,
        *,
        ttl: int = PRODUCTS_CACHE_TTL,
    ) -> None:
        self.store = store
        self.search_log = search_log
        self.cache = cache
        self.ttl = ttl

    def list_products(self, query: ListingQuery) -> tuple[dict[str, Any], bool]:
        """Return the listing payload and whether it came from the cache.

        Entries are not invalidated on ingestion; they expire by TTL only.
        """
        if query.order not in SORT_ORDERS:
            raise ValidationError("order must be 'asc' or 'desc'")
        sort_column(query.sort_by)
        request = page_request(query.page, query.limit)
        key = listing_cache_key(
            query.site, query.search_query, request.page, request.limit, query.sort_by, query.order
        )
        cached = self.cache.get(key)
        if cached is not None:
            return cached, True
        page = self.store.find(
            ListingFilter(site=query.site, search_query=query.search_query),
            SortSpec(field=query.sort_by, order=query.order),
            request,
        )
        payload = page_payload("products", page)
        self.cache.set(key, payload, self.ttl)
        return payload, False

    def search(self, term: str, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict[str, Any]:
        result = self.store.full_text_search(term, page_request(page, limit))
        return page_payload("products", result)

    def search_history(self, page: int = 1, limit: int = DEFAULT_PAGE_SIZE) -> dict[str, Any]:
        return page_payload("searches", self.search_log.page(page_request(page, limit)))
