"""Catalog store: atomic upsert-merge and reads over the products table."""

from __future__ import annotations

import logging
import os
import re
from collections import Counter
from datetime import datetime
from typing import Any, Iterable, Mapping, Sequence

from sqlalchemy import Text, delete, func, insert, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.sql import ColumnElement, text

from pricetracker.catalog.models import (
    PRODUCT_MERGE_RULES,
    ListingFilter,
    MergeRule,
    Page,
    PageRequest,
    PricePoint,
    Product,
    Site,
    SortSpec,
    UpsertCommand,
    UpsertSummary,
)
from pricetracker.db.schema import price_history, products
from pricetracker.errors import NotFound, StorageFailure, ValidationError, storage_errors
from pricetracker.utils.dates import utcnow

logger = logging.getLogger(__name__)

PRICE_HISTORY_LIMIT = int(os.environ.get("PRICE_HISTORY_LIMIT", 100))

WORD_RE = re.compile(r"\w+")

SORT_COLUMNS = {
    "id": products.c.id,
    "url": products.c.url,
    "title": products.c.title,
    "price": products.c.price,
    "originalPrice": products.c.original_price,
    "discount": products.c.discount,
    "image": products.c.image,
    "rating": products.c.rating,
    "reviews": products.c.reviews,
    "site": products.c.site,
    "searchQuery": products.c.search_query,
    "category": products.c.category,
    "brand": products.c.brand,
    "availability": products.c.availability,
    "scrapedAt": products.c.scraped_at,
    "firstSeenAt": products.c.first_seen_at,
    "lastSeenAt": products.c.last_seen_at,
    "scrapedCount": products.c.scraped_count,
    "createdAt": products.c.created_at,
    "updatedAt": products.c.updated_at,
}

DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

TRIM_HISTORY_SQL = text(
    """
    DELETE FROM price_history
    WHERE product_id = :product_id
      AND id NOT IN (
        SELECT id FROM price_history
        WHERE product_id = :product_id
        ORDER BY id DESC
        LIMIT :limit
      )
    """
)


def sort_column(name: str) -> ColumnElement:
    try:
        return SORT_COLUMNS[name]
    except KeyError:
        raise ValidationError(f"Cannot sort by '{name}'") from None


def search_terms(term: str) -> list[str]:
    return WORD_RE.findall(term.lower())


def tsquery_text(terms: Sequence[str]) -> str:
    """Any-term tsquery, e.g. ``boat | earbuds``."""
    return " | ".join(terms)


def relevance(title: str | None, brand: str | None, terms: Sequence[str]) -> int:
    tokens = Counter(WORD_RE.findall(f"{title or ''} {brand or ''}".lower()))
    return sum(tokens[t] for t in terms)


class CatalogStore:
    def __init__(self, engine: Engine, *, history_limit: int = PRICE_HISTORY_LIMIT) -> None:
        self.engine = engine
        self.history_limit = history_limit

    # Writes

    def upsert_batch(self, commands: Iterable[UpsertCommand], *, now: datetime | None = None) -> UpsertSummary:
        """Merge each command into the catalog, one transaction per url.

        A failure aborts the remaining commands; earlier commits stay.
        """
        now = now or utcnow()
        summary = UpsertSummary()
        for command in commands:
            with storage_errors("Failed to save products"):
                inserted = self.upsert(command, now=now)
            if inserted:
                summary.inserted += 1
            else:
                summary.updated += 1
        return summary

    def upsert(self, command: UpsertCommand, *, now: datetime) -> bool:
        """Insert or merge one product. Returns True when the url was new."""
        stmt = self._insert_statement().values(**command.insert_values(now))
        stmt = stmt.on_conflict_do_update(index_elements=["url"], set_=_merge_assignments(stmt))
        stmt = stmt.returning(products.c.id, products.c.scraped_count)
        with self.engine.begin() as conn:
            product_id, scraped_count = conn.execute(stmt).one()
            conn.execute(
                insert(price_history).values(product_id=product_id, **command.history_entry(now))
            )
            conn.execute(TRIM_HISTORY_SQL, {"product_id": product_id, "limit": self.history_limit})
        return scraped_count == 1

    def delete_by_id(self, product_id: int) -> None:
        with storage_errors("Failed to delete product"):
            with self.engine.begin() as conn:
                conn.execute(delete(price_history).where(price_history.c.product_id == product_id))
                result = conn.execute(delete(products).where(products.c.id == product_id))
        if result.rowcount == 0:
            raise NotFound("Product not found")

    def delete_all(self, *, confirm: bool) -> int:
        if not confirm:
            raise ValidationError("Add ?confirm=yes to delete all products")
        with storage_errors("Failed to clear data"):
            with self.engine.begin() as conn:
                conn.execute(delete(price_history))
                result = conn.execute(delete(products))
        logger.warning("Deleted %s products from the catalog", result.rowcount)
        return result.rowcount

    # Reads

    def find_by_id(self, product_id: int) -> Product:
        with storage_errors("Failed to fetch product"):
            with self.engine.connect() as conn:
                row = conn.execute(select(products).where(products.c.id == product_id)).mappings().first()
                if row is None:
                    raise NotFound("Product not found")
                history = self._load_history(conn, [product_id])
        return _to_product(row, history)

    def find(self, listing: ListingFilter, sort: SortSpec, request: PageRequest) -> Page:
        column = sort_column(sort.field)
        conditions = _listing_conditions(listing)
        if sort.descending:
            ordering = [column.desc(), products.c.id.desc()]
        else:
            ordering = [column.asc(), products.c.id.asc()]
        query = (
            select(products)
            .where(*conditions)
            .order_by(*ordering)
            .offset(request.skip)
            .limit(request.limit)
        )
        with storage_errors("Failed to fetch products"):
            with self.engine.connect() as conn:
                rows = conn.execute(query).mappings().all()
                history = self._load_history(conn, [row["id"] for row in rows])
            total = self._count(conditions)
        return Page([_to_product(row, history) for row in rows], total, request)

    def full_text_search(self, term: str, request: PageRequest) -> Page:
        """Match title and brand, most relevant first, ties by insertion order."""
        with storage_errors("Failed to search products"):
            if self.engine.dialect.name == "postgresql":
                return self._search_tsvector(term, request)
            return self._search_scored(term, request)

    def count(self, site: str | None = None) -> int:
        conditions = _listing_conditions(ListingFilter(site=site))
        with storage_errors("Failed to count products"):
            return self._count(conditions)

    def count_by_site(self) -> dict[str, int]:
        query = select(products.c.site, func.count()).group_by(products.c.site)
        with storage_errors("Failed to count products"):
            with self.engine.connect() as conn:
                counts = dict(conn.execute(query).all())
        return {site.value: counts.get(site.value, 0) for site in Site}

    def count_with_price_changes(self) -> int:
        """Products whose history holds more than one observation."""
        tracked = (
            select(price_history.c.product_id)
            .group_by(price_history.c.product_id)
            .having(func.count() > 1)
            .subquery()
        )
        with storage_errors("Failed to count products"):
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(tracked)).scalar_one()

    # Internals

    def _insert_statement(self):
        try:
            return DIALECT_INSERTS[self.engine.dialect.name](products)
        except KeyError:
            raise StorageFailure(
                "Failed to save products",
                details=f"Unsupported database dialect: {self.engine.dialect.name}",
            ) from None

    def _count(self, conditions: Sequence[ColumnElement]) -> int:
        with self.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(products).where(*conditions)).scalar_one()

    def _search_tsvector(self, term: str, request: PageRequest) -> Page:
        terms = search_terms(term)
        if not terms:
            return Page([], 0, request)
        document = func.to_tsvector(
            "english",
            func.coalesce(products.c.title, "") + " " + func.coalesce(products.c.brand, ""),
        )
        query = func.to_tsquery("english", tsquery_text(terms))
        match = document.op("@@")(query)
        ranked = (
            select(products)
            .where(match)
            .order_by(func.ts_rank(document, query).desc(), products.c.id.asc())
            .offset(request.skip)
            .limit(request.limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(ranked).mappings().all()
            history = self._load_history(conn, [row["id"] for row in rows])
        total = self._count([match])
        return Page([_to_product(row, history) for row in rows], total, request)

    def _search_scored(self, term: str, request: PageRequest) -> Page:
        # Scores every candidate row in Python; meant for SQLite and small catalogs.
        terms = search_terms(term)
        if not terms:
            return Page([], 0, request)
        title = func.lower(func.coalesce(products.c.title, ""), type_=Text)
        brand = func.lower(func.coalesce(products.c.brand, ""), type_=Text)
        candidates = (
            select(products.c.id, products.c.title, products.c.brand)
            .where(or_(*(title.contains(t, autoescape=True) | brand.contains(t, autoescape=True) for t in terms)))
            .order_by(products.c.id)
        )
        with self.engine.connect() as conn:
            scored = []
            for row in conn.execute(candidates):
                score = relevance(row.title, row.brand, terms)
                if score > 0:
                    scored.append((score, row.id))
            scored.sort(key=lambda item: (-item[0], item[1]))
            page_ids = [product_id for _, product_id in scored[request.skip:request.skip + request.limit]]
            rows = conn.execute(select(products).where(products.c.id.in_(page_ids))).mappings().all() if page_ids else []
            history = self._load_history(conn, page_ids)
        by_id = {row["id"]: row for row in rows}
        items = [_to_product(by_id[pid], history) for pid in page_ids if pid in by_id]
        return Page(items, len(scored), request)

    def _load_history(self, conn: Connection, product_ids: Sequence[int]) -> dict[int, list[PricePoint]]:
        if not product_ids:
            return {}
        query = (
            select(price_history.c.product_id, price_history.c.price, price_history.c.observed_at)
            .where(price_history.c.product_id.in_(product_ids))
            .order_by(price_history.c.id)
        )
        history: dict[int, list[PricePoint]] = {}
        for product_id, price, observed_at in conn.execute(query):
            history.setdefault(product_id, []).append(PricePoint(price=price, observed_at=observed_at))
        return history


def _merge_assignments(stmt) -> dict[str, Any]:
    assignments: dict[str, Any] = {}
    for column, rule in PRODUCT_MERGE_RULES.items():
        if rule is MergeRule.OVERWRITE:
            assignments[column] = stmt.excluded[column]
        elif rule is MergeRule.INCREMENT:
            assignments[column] = products.c[column] + 1
    return assignments


def _listing_conditions(listing: ListingFilter) -> list[ColumnElement]:
    conditions: list[ColumnElement] = []
    if listing.site:
        conditions.append(products.c.site == listing.site)
    if listing.search_query:
        conditions.append(
            func.lower(products.c.search_query, type_=Text).contains(listing.search_query.lower(), autoescape=True)
        )
    return conditions


def _to_product(row: Mapping[str, Any], history: Mapping[int, list[PricePoint]]) -> Product:
    return Product(
        id=row["id"],
        url=row["url"],
        site=row["site"],
        title=row["title"],
        price=row["price"],
        original_price=row["original_price"],
        discount=row["discount"],
        image=row["image"],
        rating=row["rating"],
        reviews=row["reviews"],
        search_query=row["search_query"],
        category=row["category"],
        brand=row["brand"],
        availability=bool(row["availability"]),
        scraped_at=row["scraped_at"],
        first_seen_at=row["first_seen_at"],
        last_seen_at=row["last_seen_at"],
        scraped_count=row["scraped_count"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        price_history=list(history.get(row["id"], [])),
    )
