"""Append-only log of ingested batches."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping

from sqlalchemy import delete, func, insert, select
from sqlalchemy.engine import Engine

from pricetracker.catalog.models import Page, PageRequest, SearchQueryRecord
from pricetracker.db.schema import search_queries
from pricetracker.errors import storage_errors
from pricetracker.utils.dates import utcnow

NEWEST_FIRST = (search_queries.c.created_at.desc(), search_queries.c.id.desc())


class SearchQueryLog:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def record(
        self,
        query: str,
        site: str | None,
        source_url: str | None,
        product_count: int,
        scraped_at: datetime,
        *,
        now: datetime | None = None,
    ) -> int:
        stmt = (
            insert(search_queries)
            .values(
                query=query,
                site=site,
                url=source_url,
                product_count=product_count,
                scraped_at=scraped_at,
                created_at=now or utcnow(),
            )
            .returning(search_queries.c.id)
        )
        with storage_errors("Failed to save products"):
            with self.engine.begin() as conn:
                return int(conn.execute(stmt).scalar_one())

    def recent(self, limit: int = 10) -> list[SearchQueryRecord]:
        query = select(search_queries).order_by(*NEWEST_FIRST).limit(limit)
        with storage_errors("Failed to fetch searches"):
            with self.engine.connect() as conn:
                return [_to_record(row) for row in conn.execute(query).mappings()]

    def count(self) -> int:
        with storage_errors("Failed to fetch searches"):
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(search_queries)).scalar_one()

    def page(self, request: PageRequest) -> Page:
        query = select(search_queries).order_by(*NEWEST_FIRST).offset(request.skip).limit(request.limit)
        with storage_errors("Failed to fetch searches"):
            with self.engine.connect() as conn:
                records = [_to_record(row) for row in conn.execute(query).mappings()]
        return Page(records, self.count(), request)

    def clear(self) -> int:
        with storage_errors("Failed to clear data"):
            with self.engine.begin() as conn:
                return conn.execute(delete(search_queries)).rowcount


def _to_record(row: Mapping[str, Any]) -> SearchQueryRecord:
    return SearchQueryRecord(
        id=row["id"],
        query=row["query"],
        site=row["site"],
        url=row["url"],
        product_count=row["product_count"],
        scraped_at=row["scraped_at"],
        created_at=row["created_at"],
    )
