"""FastAPI application for catalog ingestion and dashboard reads."""

from __future__ import annotations

import logging
import os
import re
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException as StarletteHTTPException

from pricetracker import __version__
from pricetracker.api.schemas import BatchIn
from pricetracker.catalog.search_log import SearchQueryLog
from pricetracker.catalog.store import CatalogStore
from pricetracker.db.migrate import run_migrations
from pricetracker.db.session import create_engine_from_env, ping
from pricetracker.errors import NotFound, TrackerError
from pricetracker.ingest.processor import IngestionProcessor
from pricetracker.logic.query import DEFAULT_PAGE_SIZE, ListingQuery, QueryEngine
from pricetracker.logic.stats import StatisticsAggregator
from pricetracker.utils.cache import Cache, create_cache_from_env
from pricetracker.utils.dates import isoformat, utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_PRODUCT_ID = 2**63 - 1


def get_store(request: Request) -> CatalogStore:
    return CatalogStore(request.app.state.engine)


def get_search_log(request: Request) -> SearchQueryLog:
    return SearchQueryLog(request.app.state.engine)


def get_cache(request: Request) -> Cache:
    return request.app.state.cache


def get_stats(
    store: CatalogStore = Depends(get_store),
    search_log: SearchQueryLog = Depends(get_search_log),
    cache: Cache = Depends(get_cache),
) -> StatisticsAggregator:
    return StatisticsAggregator(store, search_log, cache)


def get_query_engine(
    store: CatalogStore = Depends(get_store),
    search_log: SearchQueryLog = Depends(get_search_log),
    cache: Cache = Depends(get_cache),
) -> QueryEngine:
    return QueryEngine(store, search_log, cache)


def get_processor(
    store: CatalogStore = Depends(get_store),
    search_log: SearchQueryLog = Depends(get_search_log),
    stats: StatisticsAggregator = Depends(get_stats),
    cache: Cache = Depends(get_cache),
) -> IngestionProcessor:
    return IngestionProcessor(store, search_log, stats, cache)


def _parse_id(value: str) -> int:
    # ASCII digits within the BIGINT range
    if not re.fullmatch(r"[0-9]+", value) or int(value) > MAX_PRODUCT_ID:
        raise NotFound("Product not found")
    return int(value)


@router.get("/health")
def health(request: Request) -> dict[str, Any]:
    state = request.app.state
    return {
        "status": "healthy",
        "timestamp": isoformat(utcnow()),
        "storageConnected": ping(state.engine),
        "cacheConnected": state.cache.ping(),
        "uptime": round(time.monotonic() - state.started, 3),
        "version": __version__,
    }


@router.post("/products", status_code=201)
def save_products(payload: BatchIn, processor: IngestionProcessor = Depends(get_processor)) -> dict[str, Any]:
    return processor.ingest(payload.to_batch()).to_dict()


@router.get("/products")
def list_products(
    site: str | None = None,
    search_query: str | None = Query(default=None, alias="searchQuery"),
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    sort_by: str = Query(default="scrapedAt", alias="sortBy"),
    order: str = "desc",
    queries: QueryEngine = Depends(get_query_engine),
) -> dict[str, Any]:
    listing = ListingQuery(
        site=site,
        search_query=search_query,
        page=page,
        limit=limit,
        sort_by=sort_by,
        order=order,
    )
    payload, from_cache = queries.list_products(listing)
    if from_cache:
        return {**payload, "fromCache": True}
    return payload


@router.get("/products/search/{term}")
def search_products(
    term: str,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    queries: QueryEngine = Depends(get_query_engine),
) -> dict[str, Any]:
    return queries.search(term, page, limit)


@router.get("/products/{product_id}")
def get_product(product_id: str, store: CatalogStore = Depends(get_store)) -> dict[str, Any]:
    return {"success": True, "product": store.find_by_id(_parse_id(product_id)).to_dict()}


@router.delete("/products/{product_id}")
def delete_product(product_id: str, store: CatalogStore = Depends(get_store)) -> dict[str, Any]:
    store.delete_by_id(_parse_id(product_id))
    return {"success": True, "message": "Product deleted"}


@router.delete("/products")
def clear_products(
    confirm: str | None = None,
    processor: IngestionProcessor = Depends(get_processor),
) -> dict[str, Any]:
    processor.clear_all(confirm=confirm == "yes")
    return {"success": True, "message": "All data cleared"}


@router.get("/stats")
def get_statistics(stats: StatisticsAggregator = Depends(get_stats)) -> dict[str, Any]:
    payload, from_cache = stats.get()
    if from_cache:
        return {**payload, "fromCache": True}
    return payload


@router.get("/searches")
def list_searches(
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    queries: QueryEngine = Depends(get_query_engine),
) -> dict[str, Any]:
    return queries.search_history(page, limit)


async def tracker_error_handler(request: Request, exc: TrackerError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    if any("products" in error.get("loc", ()) for error in errors):
        message = "Invalid products data"
    else:
        message = "Invalid request"
    return JSONResponse({"error": message, "details": jsonable_encoder(errors)}, status_code=400)


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    error = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse({"error": error}, status_code=exc.status_code)


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Server error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "Internal server error", "message": str(exc)}, status_code=500)


def create_app(engine: Engine | None = None, cache: Cache | None = None) -> FastAPI:
    """Build the application. Engine and cache come from the environment when not given."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        load_dotenv()
        if app.state.engine is None:
            app.state.engine = create_engine_from_env()
        if app.state.cache is None:
            app.state.cache = create_cache_from_env()
        run_migrations(app.state.engine)
        logger.info(
            "Storage %s, cache %s",
            "connected" if ping(app.state.engine) else "disconnected",
            "connected" if app.state.cache.ping() else "disabled",
        )
        yield
        app.state.engine.dispose()

    app = FastAPI(title="Product Tracker API", version=__version__, lifespan=lifespan)
    app.state.engine = engine
    app.state.cache = cache
    app.state.started = time.monotonic()

    origins = [origin.strip() for origin in os.environ.get("CORS_ORIGINS", "*").split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        allow_credentials=True,
    )
    app.add_exception_handler(TrackerError, tracker_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
    app.include_router(router, prefix=os.environ.get("API_PREFIX", ""))
    return app


app = create_app()


def run() -> None:
    import uvicorn

    load_dotenv()
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO"),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(app, host=os.environ.get("HOST", "0.0.0.0"), port=int(os.environ.get("PORT", 5001)))


if __name__ == "__main__":
    run()
