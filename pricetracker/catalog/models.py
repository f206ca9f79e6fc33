"""Catalog data models and merge rules."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pricetracker.utils.dates import isoformat


class Site(str, Enum):
    AMAZON = "Amazon"
    FLIPKART = "Flipkart"
    MYNTRA = "Myntra"


class MergeRule(str, Enum):
    OVERWRITE = "overwrite"
    SET_ON_INSERT = "set_on_insert"
    INCREMENT = "increment"


# How each products column behaves when an ingested record meets an existing row.
# Price history is handled separately as a bounded append.
PRODUCT_MERGE_RULES: dict[str, MergeRule] = {
    "title": MergeRule.OVERWRITE,
    "price": MergeRule.OVERWRITE,
    "original_price": MergeRule.OVERWRITE,
    "discount": MergeRule.OVERWRITE,
    "image": MergeRule.OVERWRITE,
    "rating": MergeRule.OVERWRITE,
    "reviews": MergeRule.OVERWRITE,
    "site": MergeRule.OVERWRITE,
    "search_query": MergeRule.OVERWRITE,
    "category": MergeRule.OVERWRITE,
    "brand": MergeRule.OVERWRITE,
    "availability": MergeRule.OVERWRITE,
    "last_seen_at": MergeRule.OVERWRITE,
    "updated_at": MergeRule.OVERWRITE,
    "scraped_at": MergeRule.SET_ON_INSERT,
    "first_seen_at": MergeRule.SET_ON_INSERT,
    "created_at": MergeRule.SET_ON_INSERT,
    "scraped_count": MergeRule.INCREMENT,
}


@dataclass(slots=True)
class ScrapedProduct:
    """One product record as submitted by the scraper."""

    url: str | None = None
    title: str | None = None
    price: str | None = None
    original_price: str | None = None
    discount: str | None = None
    image: str | None = None
    rating: str | None = None
    reviews: str | None = None
    site: Site | None = None
    category: str | None = None
    brand: str | None = None
    availability: bool | None = None


@dataclass(slots=True)
class Batch:
    site: Site
    products: list[ScrapedProduct]
    search_query: str | None = None
    source_url: str | None = None
    scraped_at: datetime | None = None


@dataclass(slots=True)
class UpsertCommand:
    """Insert-or-merge of one product keyed by url."""

    url: str
    site: Site
    search_query: str
    scraped_at: datetime
    title: str | None = None
    price: str | None = None
    original_price: str | None = None
    discount: str | None = None
    image: str | None = None
    rating: str | None = None
    reviews: str | None = None
    category: str | None = None
    brand: str | None = None
    availability: bool = True

    @classmethod
    def from_scraped(
        cls,
        product: ScrapedProduct,
        *,
        site: Site,
        search_query: str,
        scraped_at: datetime,
    ) -> "UpsertCommand":
        if not product.url:
            raise ValueError("url is required for an upsert")
        return cls(
            url=product.url,
            site=product.site or site,
            search_query=search_query,
            scraped_at=scraped_at,
            title=product.title,
            price=product.price,
            original_price=product.original_price,
            discount=product.discount,
            image=product.image,
            rating=product.rating,
            reviews=product.reviews,
            category=product.category,
            brand=product.brand,
            availability=product.availability is not False,
        )

    def insert_values(self, now: datetime) -> dict[str, Any]:
        """Column values for a first sighting of this url."""
        return {
            "url": self.url,
            "title": self.title,
            "price": self.price,
            "original_price": self.original_price,
            "discount": self.discount,
            "image": self.image,
            "rating": self.rating,
            "reviews": self.reviews,
            "site": Site(self.site).value,
            "search_query": self.search_query,
            "category": self.category,
            "brand": self.brand,
            "availability": self.availability,
            "scraped_at": self.scraped_at,
            "first_seen_at": now,
            "last_seen_at": now,
            "scraped_count": 1,
            "created_at": now,
            "updated_at": now,
        }

    def history_entry(self, now: datetime) -> dict[str, Any]:
        return {"price": self.price, "observed_at": now}


@dataclass(slots=True)
class UpsertSummary:
    inserted: int = 0
    updated: int = 0


@dataclass(slots=True)
class PricePoint:
    price: str | None
    observed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {"price": self.price, "observedAt": isoformat(self.observed_at)}


@dataclass(slots=True)
class Product:
    id: int
    url: str
    site: str
    title: str | None = None
    price: str | None = None
    original_price: str | None = None
    discount: str | None = None
    image: str | None = None
    rating: str | None = None
    reviews: str | None = None
    search_query: str | None = None
    category: str | None = None
    brand: str | None = None
    availability: bool = True
    scraped_at: datetime | None = None
    first_seen_at: datetime | None = None
    last_seen_at: datetime | None = None
    scraped_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    price_history: list[PricePoint] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "price": self.price,
            "originalPrice": self.original_price,
            "discount": self.discount,
            "image": self.image,
            "rating": self.rating,
            "reviews": self.reviews,
            "site": self.site,
            "searchQuery": self.search_query,
            "category": self.category,
            "brand": self.brand,
            "availability": self.availability,
            "scrapedAt": isoformat(self.scraped_at),
            "firstSeenAt": isoformat(self.first_seen_at),
            "lastSeenAt": isoformat(self.last_seen_at),
            "scrapedCount": self.scraped_count,
            "priceHistory": [point.to_dict() for point in self.price_history],
            "createdAt": isoformat(self.created_at),
            "updatedAt": isoformat(self.updated_at),
        }


@dataclass(slots=True)
class SearchQueryRecord:
    id: int
    query: str
    site: str | None
    url: str | None
    product_count: int
    scraped_at: datetime
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "query": self.query,
            "site": self.site,
            "url": self.url,
            "productCount": self.product_count,
            "scrapedAt": isoformat(self.scraped_at),
            "createdAt": isoformat(self.created_at),
        }


@dataclass(slots=True)
class ListingFilter:
    site: str | None = None
    search_query: str | None = None


@dataclass(slots=True)
class SortSpec:
    field: str = "scrapedAt"
    order: str = "desc"

    @property
    def descending(self) -> bool:
        return self.order == "desc"


@dataclass(slots=True)
class PageRequest:
    page: int = 1
    limit: int = 20

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit


@dataclass(slots=True)
class Page:
    items: list[Any]
    total: int
    request: PageRequest

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.request.limit)

    def pagination(self) -> dict[str, int]:
        return {
            "total": self.total,
            "page": self.request.page,
            "limit": self.request.limit,
            "pages": self.pages,
        }
