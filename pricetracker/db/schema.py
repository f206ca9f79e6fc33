"""Table definitions for the catalog and the search query log."""

from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, MetaData, String, Table, Text

metadata = MetaData()

products = Table(
    "products",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("url", Text, nullable=False, unique=True),
    Column("title", Text),
    Column("price", Text),
    Column("original_price", Text),
    Column("discount", Text),
    Column("image", Text),
    Column("rating", Text),
    Column("reviews", Text),
    Column("site", String(32), nullable=False),
    Column("search_query", Text),
    Column("category", Text),
    Column("brand", Text),
    Column("availability", Boolean, nullable=False, default=True),
    Column("scraped_at", DateTime, nullable=False),
    Column("first_seen_at", DateTime, nullable=False),
    Column("last_seen_at", DateTime, nullable=False),
    Column("scraped_count", Integer, nullable=False, default=0),
    Column("created_at", DateTime, nullable=False),
    Column("updated_at", DateTime, nullable=False),
)

Index("ix_products_site_scraped_at", products.c.site, products.c.scraped_at)
Index("ix_products_search_query", products.c.search_query)

price_history = Table(
    "price_history",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False, index=True),
    Column("price", Text),
    Column("observed_at", DateTime, nullable=False),
)

search_queries = Table(
    "search_queries",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("query", Text, nullable=False),
    Column("site", String(32)),
    Column("url", Text),
    Column("product_count", Integer, nullable=False),
    Column("scraped_at", DateTime, nullable=False),
    Column("created_at", DateTime, nullable=False, index=True),
)
