import pytest
from fastapi.testclient import TestClient

from pricetracker.api.main import create_app
from pricetracker.catalog.search_log import SearchQueryLog
from pricetracker.catalog.store import CatalogStore
from pricetracker.db.migrate import run_migrations
from pricetracker.db.session import create_engine_for_url
from pricetracker.ingest.processor import IngestionProcessor
from pricetracker.logic.stats import StatisticsAggregator
from pricetracker.utils.cache import NullCache

from factories import MemoryCache


@pytest.fixture()
def engine(tmp_path):
    engine = create_engine_for_url(f"sqlite:///{tmp_path / 'catalog.db'}")
    run_migrations(engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def store(engine):
    return CatalogStore(engine)


@pytest.fixture()
def search_log(engine):
    return SearchQueryLog(engine)


@pytest.fixture()
def cache():
    return MemoryCache()


@pytest.fixture()
def stats(store, search_log, cache):
    return StatisticsAggregator(store, search_log, cache)


@pytest.fixture()
def processor(store, search_log, stats, cache):
    return IngestionProcessor(store, search_log, stats, cache)


@pytest.fixture()
def client(engine, cache):
    app = create_app(engine=engine, cache=cache)
    with TestClient(app) as client:
        yield client


@pytest.fixture()
def uncached_client(engine):
    app = create_app(engine=engine, cache=NullCache())
    with TestClient(app) as client:
        yield client
