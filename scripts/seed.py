"""Seed the catalog with a demo batch per site."""

from __future__ import annotations

from dotenv import load_dotenv

from pricetracker.catalog.models import Batch, ScrapedProduct, Site
from pricetracker.catalog.search_log import SearchQueryLog
from pricetracker.catalog.store import CatalogStore
from pricetracker.db.migrate import run_migrations
from pricetracker.db.session import create_engine_from_env
from pricetracker.ingest.processor import IngestionProcessor
from pricetracker.logic.stats import StatisticsAggregator
from pricetracker.utils.cache import create_cache_from_env


DEMO_BATCHES = [
    Batch(
        site=Site.AMAZON,
        search_query="wireless earbuds",
        source_url="https://www.amazon.in/s?k=wireless+earbuds",
        products=[
            ScrapedProduct(url="https://www.amazon.in/dp/B0DEMO0001", title="Boat Airdopes 141", price="₹1,099", original_price="₹4,490", discount="76% off", rating="4.1", reviews="3,21,554", brand="boAt"),
            ScrapedProduct(url="https://www.amazon.in/dp/B0DEMO0002", title="Noise Buds VS104", price="₹999", original_price="₹3,499", discount="71% off", rating="4.0", reviews="41,007", brand="Noise"),
        ],
    ),
    Batch(
        site=Site.FLIPKART,
        search_query="running shoes",
        source_url="https://www.flipkart.com/search?q=running+shoes",
        products=[
            ScrapedProduct(url="https://www.flipkart.com/p/itmdemo0001", title="Campus North Plus Running Shoes", price="₹749", original_price="₹1,499", discount="50% off", rating="3.9", brand="Campus"),
        ],
    ),
    Batch(
        site=Site.MYNTRA,
        search_query="kurta",
        source_url="https://www.myntra.com/kurta",
        products=[
            ScrapedProduct(url="https://www.myntra.com/kurtas/demo/1", title="Women Printed Straight Kurta", price="Rs. 599", original_price="Rs. 1999", discount="(70% OFF)", rating="4.2", brand="Anouk"),
        ],
    ),
]


def main() -> None:
    load_dotenv()
    engine = create_engine_from_env()
    run_migrations(engine)
    store = CatalogStore(engine)
    search_log = SearchQueryLog(engine)
    cache = create_cache_from_env()
    processor = IngestionProcessor(store, search_log, StatisticsAggregator(store, search_log, cache), cache)
    for batch in DEMO_BATCHES:
        result = processor.ingest(batch)
        print(f"{batch.site.value}: {result.inserted} inserted, {result.updated} updated")
    print("Seed complete")


if __name__ == "__main__":
    main()
