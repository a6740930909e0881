"""
PostgreSQL backend for catalog search.
Provides the asyncpg pool, the search schema installer and a SearchStore
over tsvector ranking plus pg_trgm similarity.
"""

import asyncio
import logging
from contextlib import asynccontextmanager, contextmanager
from typing import Any, Optional, Sequence

import asyncpg

from catalog_search.config import Config
from catalog_search.dialects import PostgresDialect, Statement
from catalog_search.errors import CapabilityMissingError, SearchTimeoutError, StoreError
from catalog_search.store import SearchStore

logger = logging.getLogger(__name__)

# Search-owned objects layered on the catalog's tables
SEARCH_SCHEMA_SQL = """
CREATE EXTENSION IF NOT EXISTS pg_trgm;
CREATE EXTENSION IF NOT EXISTS unaccent;

ALTER TABLE products ADD COLUMN IF NOT EXISTS search_vector tsvector;

CREATE INDEX IF NOT EXISTS idx_products_search_vector ON products USING GIN (search_vector);
CREATE INDEX IF NOT EXISTS idx_products_title_trgm ON products USING GIN (title gin_trgm_ops);
CREATE INDEX IF NOT EXISTS idx_products_brand_trgm ON products USING GIN (brand gin_trgm_ops);
CREATE INDEX IF NOT EXISTS idx_products_visibility ON products (published, publish_at, unpublish_at);

CREATE OR REPLACE VIEW product_search_facets AS
SELECT
    pc.category_id AS category_id,
    c.name AS category_name,
    COUNT(DISTINCT p.id) AS product_count
FROM products p
JOIN product_categories pc ON pc.product_id = p.id
JOIN categories c ON c.id = pc.category_id
WHERE p.published = TRUE
  AND (p.publish_at IS NULL OR p.publish_at <= NOW())
  AND (p.unpublish_at IS NULL OR p.unpublish_at > NOW())
GROUP BY pc.category_id, c.name;
"""

CAPABILITIES_SQL = """
SELECT
    EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'pg_trgm') AS pg_trgm,
    EXISTS(SELECT 1 FROM pg_extension WHERE extname = 'unaccent') AS unaccent,
    EXISTS(
        SELECT 1 FROM information_schema.columns
        WHERE table_name = 'products' AND column_name = 'search_vector'
    ) AS search_vector,
    EXISTS(
        SELECT 1 FROM information_schema.views
        WHERE table_name = 'product_search_facets'
    ) AS facet_view
"""

_MISSING_OBJECT_ERRORS = (
    asyncpg.exceptions.UndefinedTableError,
    asyncpg.exceptions.UndefinedFunctionError,
    asyncpg.exceptions.UndefinedColumnError,
    asyncpg.exceptions.UndefinedObjectError,
)


class PostgresDatabase:
    """
    Async PostgreSQL connection manager.
    The catalog tables belong to the catalog service; only search objects are created here.
    """

    def __init__(self, connection_url: Optional[str] = None):
        self.connection_url = connection_url or Config.POSTGRES_URL
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> asyncpg.Pool:
        """Get or create connection pool."""
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                self.connection_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
            logger.info("PostgreSQL connection pool created")
        return self._pool

    async def close(self) -> None:
        """Close connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info("PostgreSQL connection pool closed")

    @asynccontextmanager
    async def acquire(self):
        """Context manager for acquiring a connection."""
        pool = await self.connect()
        async with pool.acquire() as conn:
            yield conn

    @asynccontextmanager
    async def transaction(self):
        """Context manager for a database transaction."""
        async with self.acquire() as conn:
            async with conn.transaction():
                yield conn

    async def initialize_search_schema(self) -> None:
        """Install extensions, the search_vector column, indexes and the facet view."""
        async with self.acquire() as conn:
            await conn.execute(SEARCH_SCHEMA_SQL)
        logger.info("PostgreSQL search schema installed")


@contextmanager
def _translate_postgres_errors():
    """Map asyncpg failures onto the search error hierarchy."""
    try:
        yield
    except asyncio.TimeoutError as e:
        raise SearchTimeoutError("Search query exceeded its deadline") from e
    except asyncpg.exceptions.QueryCanceledError as e:
        raise SearchTimeoutError(str(e)) from e
    except _MISSING_OBJECT_ERRORS as e:
        raise CapabilityMissingError(str(e)) from e
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        raise StoreError(str(e)) from e


def _status_rowcount(status: str) -> int:
    """Row count from a command tag such as 'UPDATE 12'."""
    last = status.rsplit(" ", 1)[-1] if status else ""
    return int(last) if last.isdigit() else 0


class PostgresSearchStore(SearchStore):
    """SearchStore over the catalog's PostgreSQL database."""

    dialect = PostgresDialect()
    required_capabilities = ("pg_trgm", "unaccent", "search_vector")

    def __init__(self, database: Optional[PostgresDatabase] = None):
        self.database = database or get_postgres_db()

    async def initialize(self) -> None:
        with _translate_postgres_errors():
            await self.database.connect()

    async def close(self) -> None:
        await self.database.close()

    async def fetch(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None
    ) -> list[dict]:
        with _translate_postgres_errors():
            async with self.database.acquire() as conn:
                rows = await conn.fetch(sql, *params, timeout=timeout)
                return [dict(row) for row in rows]

    async def run_batch(
        self,
        statements: list[Statement],
        timeout: Optional[float] = None
    ) -> list[int]:
        counts = []
        with _translate_postgres_errors():
            async with self.database.transaction() as conn:
                for sql, params in statements:
                    status = await conn.execute(sql, *params, timeout=timeout)
                    counts.append(_status_rowcount(status))
        return counts

    async def capabilities(self) -> dict[str, bool]:
        row = await self.fetchrow(CAPABILITIES_SQL)
        return {name: bool(row[name]) for name in ("pg_trgm", "unaccent", "search_vector", "facet_view")}

    async def stats(self) -> dict:
        row = await self.fetchrow("""
            SELECT
                COUNT(*) AS product_count,
                COUNT(search_vector) AS document_count
            FROM products
        """)
        return {
            "product_count": row["product_count"],
            "document_count": row["document_count"],
        }


# Singleton instance (lazily initialized)
_postgres_db: Optional[PostgresDatabase] = None


def get_postgres_db() -> PostgresDatabase:
    """Get PostgreSQL database instance."""
    global _postgres_db
    if _postgres_db is None:
        _postgres_db = PostgresDatabase()
    return _postgres_db
