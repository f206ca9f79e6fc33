"""Request models for the catalog API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from pricetracker.catalog.models import Batch, ScrapedProduct, Site
from pricetracker.utils.dates import to_naive_utc


class ProductIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    url: str | None = None
    title: str | None = None
    price: str | None = None
    original_price: str | None = Field(default=None, alias="originalPrice")
    discount: str | None = None
    image: str | None = None
    rating: str | None = None
    reviews: str | None = None
    site: Site | None = None
    category: str | None = None
    brand: str | None = None
    availability: bool | None = None

    def to_scraped(self) -> ScrapedProduct:
        return ScrapedProduct(**self.model_dump())


class BatchIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    site: Site
    products: list[ProductIn] | None = None
    search_query: str | None = Field(default=None, alias="searchQuery")
    url: str | None = None
    scraped_at: datetime | None = Field(default=None, alias="scrapedAt")

    def to_batch(self) -> Batch:
        return Batch(
            site=self.site,
            products=[product.to_scraped() for product in self.products or []],
            search_query=self.search_query,
            source_url=self.url,
            scraped_at=to_naive_utc(self.scraped_at) if self.scraped_at else None,
        )
