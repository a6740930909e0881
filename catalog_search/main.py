"""
Catalog Search - FastAPI Application
Product search over the catalog: ranked full search, typeahead suggestions,
facets and an admin reindex endpoint.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from catalog_search.config import config
from catalog_search.errors import (
    CapabilityMissingError,
    SearchError,
    SearchTimeoutError,
    StoreError,
    ValidationError,
)
from catalog_search.indexer import Indexer
from catalog_search.store import SearchStore, SQLiteSearchStore
from catalog_search.api.dependencies import RateLimiter
from catalog_search.api.middleware import register_middleware
from catalog_search.api.models import ErrorResponse
from catalog_search.api.routes import all_routers
from catalog_search.services.indexing_service import IndexingService
from catalog_search.services.search_service import SearchService
from catalog_search.services.system_service import SystemService

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


def build_store() -> SearchStore:
    """Create the store selected by SEARCH_BACKEND."""
    if config.SEARCH_BACKEND.lower() == "postgres":
        from catalog_search.db_postgres import PostgresSearchStore
        return PostgresSearchStore()
    return SQLiteSearchStore()


def _status_for(exc: SearchError) -> int:
    if isinstance(exc, ValidationError):
        return 400
    if isinstance(exc, (CapabilityMissingError, SearchTimeoutError)):
        return 503
    return 500


def create_app(
    store: Optional[SearchStore] = None,
    rate_limiter: Optional[RateLimiter] = None
) -> FastAPI:
    """
    Build the application.

    Args:
        store: Backing store; defaults to the one configured by SEARCH_BACKEND.
        rate_limiter: Limiter for public search routes; defaults to the configured bucket.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.
        Handles startup and shutdown events.
        """
        # Startup
        logger.info("Starting catalog search...")

        try:
            # Validate configuration
            config.validate()

            search_store = store or build_store()
            await search_store.initialize()

            app.state.store = search_store
            app.state.search_service = SearchService(search_store)
            app.state.indexing_service = IndexingService(Indexer(search_store))
            app.state.system_service = SystemService(search_store)
            app.state.rate_limiter = rate_limiter or RateLimiter(
                config.RATE_LIMIT_CAPACITY,
                config.RATE_LIMIT_REFILL_PER_SECOND,
            )

            stats = await search_store.stats()
            logger.info(
                f"Search backend '{search_store.backend}' ready: "
                f"{stats['document_count']} of {stats['product_count']} products indexed"
            )

        except ValueError as e:
            logger.error(f"Configuration error: {e}")
            raise
        except Exception as e:
            logger.error(f"Startup error: {e}")
            raise

        yield

        # Shutdown
        logger.info("Shutting down catalog search...")
        await app.state.store.close()
        logger.info("Catalog search stopped")

    app = FastAPI(
        title="Catalog Search API",
        description="Product search, suggestions and facets over the catalog",
        version="1.0.0",
        lifespan=lifespan
    )

    register_middleware(app)

    for router in all_routers:
        app.include_router(router)

    # Exception handlers
    @app.exception_handler(SearchError)
    async def search_error_handler(request, exc: SearchError):
        status_code = _status_for(exc)
        if status_code >= 500:
            logger.error(f"{request.url.path} failed: {exc.code}: {exc}")
        error = ErrorResponse(
            error="Invalid request" if status_code == 400 else "Search unavailable",
            detail=str(exc),
            code=exc.code,
        )
        return JSONResponse(status_code=status_code, content=error.model_dump())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request, exc: RequestValidationError):
        error = ErrorResponse(
            error="Invalid request",
            detail="; ".join(
                f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}"
                for err in exc.errors()
            ),
            code=ValidationError.code,
        )
        return JSONResponse(status_code=400, content=error.model_dump())

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.error(f"Unhandled exception: {exc}")
        error = ErrorResponse(error="Internal server error", detail=str(exc))
        return JSONResponse(status_code=500, content=error.model_dump(exclude_none=True))

    return app


app = create_app()


# Entry point for running with uvicorn directly
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "catalog_search.main:app",
        host=config.API_HOST,
        port=config.API_PORT,
        reload=False,
        log_level=config.LOG_LEVEL.lower()
    )
