"""Batch ingestion: validate, log the search, merge into the catalog."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from pricetracker.catalog.models import Batch, UpsertCommand
from pricetracker.catalog.search_log import SearchQueryLog
from pricetracker.catalog.store import CatalogStore
from pricetracker.errors import ValidationError
from pricetracker.logic.stats import StatisticsAggregator
from pricetracker.utils.cache import Cache
from pricetracker.utils.dates import utcnow

logger = logging.getLogger(__name__)

UNKNOWN_QUERY = "unknown"


@dataclass(slots=True)
class IngestResult:
    search_query_id: int
    products_count: int
    inserted: int
    updated: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "message": "Products saved successfully",
            "searchQueryId": self.search_query_id,
            "productsCount": self.products_count,
            "inserted": self.inserted,
            "updated": self.updated,
        }


class IngestionProcessor:
    def __init__(
        self,
        store: CatalogStore,
        search_log: SearchQueryLog,
        stats: StatisticsAggregator,
        cache: Cache,
    ) -> None:
        self.store = store
        self.search_log = search_log
        self.stats = stats
        self.cache = cache

    def ingest(self, batch: Batch) -> IngestResult:
        if not batch.products:
            raise ValidationError("Invalid products data")
        logger.info("Received %s products from %s", len(batch.products), batch.site.value)
        now = utcnow()
        scraped_at = batch.scraped_at or now
        query = batch.search_query or UNKNOWN_QUERY
        search_query_id = self.search_log.record(
            query,
            batch.site.value,
            batch.source_url,
            len(batch.products),
            scraped_at,
            now=now,
        )
        commands = [
            UpsertCommand.from_scraped(product, site=batch.site, search_query=query, scraped_at=scraped_at)
            for product in batch.products
            if product.url
        ]
        skipped = len(batch.products) - len(commands)
        if skipped:
            logger.info("Skipped %s products without a url", skipped)
        summary = self.store.upsert_batch(commands, now=now)
        # Listing entries are left to expire by TTL.
        self.stats.invalidate()
        logger.info(
            "Saved %s products from %s (%s inserted, %s updated)",
            len(commands),
            batch.site.value,
            summary.inserted,
            summary.updated,
        )
        return IngestResult(
            search_query_id=search_query_id,
            products_count=len(batch.products),
            inserted=summary.inserted,
            updated=summary.updated,
        )

    def clear_all(self, *, confirm: bool) -> None:
        """Wipe the catalog, the search log and the cache."""
        self.store.delete_all(confirm=confirm)
        self.search_log.clear()
        self.cache.flush()
