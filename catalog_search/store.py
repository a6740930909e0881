"""
Backing-store interface used by the search components, and its embedded
SQLite implementation.

Components only ever talk to a SearchStore: they build SQL through
`store.dialect` and execute it with a per-call deadline.
"""

import asyncio
import logging
import sqlite3
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Any, Optional, Sequence

from catalog_search.db import Database, db
from catalog_search.dialects import Dialect, SQLiteDialect, Statement
from catalog_search.errors import CapabilityMissingError, SearchTimeoutError, StoreError

logger = logging.getLogger(__name__)


class SearchStore(ABC):
    """Async query interface over the catalog and its text index."""

    dialect: Dialect
    # Capabilities without which search cannot run at all
    required_capabilities: tuple[str, ...] = ()

    @property
    def backend(self) -> str:
        return self.dialect.name

    async def initialize(self) -> None:
        """Create or verify the search schema."""

    async def close(self) -> None:
        """Release connections."""

    @abstractmethod
    async def fetch(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None
    ) -> list[dict]:
        """Run a query and return all rows as dicts."""

    async def fetchrow(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None
    ) -> Optional[dict]:
        rows = await self.fetch(sql, params, timeout=timeout)
        return rows[0] if rows else None

    @abstractmethod
    async def run_batch(
        self,
        statements: list[Statement],
        timeout: Optional[float] = None
    ) -> list[int]:
        """Run statements in one transaction; return each statement's row count."""

    @abstractmethod
    async def capabilities(self) -> dict[str, bool]:
        """Which search primitives are installed."""

    @abstractmethod
    async def stats(self) -> dict:
        """Product and document counts."""


@contextmanager
def _translate_sqlite_errors():
    """Map sqlite3 errors onto the search error hierarchy."""
    try:
        yield
    except sqlite3.OperationalError as e:
        message = str(e)
        if "interrupted" in message:
            raise SearchTimeoutError("Search query exceeded its deadline") from e
        if message.startswith(("no such table", "no such function", "no such module", "no such column")):
            raise CapabilityMissingError(message) from e
        raise StoreError(message) from e
    except sqlite3.Error as e:
        raise StoreError(str(e)) from e


class SQLiteSearchStore(SearchStore):
    """
    Embedded store on SQLite FTS5.

    Each call runs in a worker thread on that thread's own connection,
    so concurrent requests never share a cursor.
    """

    dialect = SQLiteDialect()
    required_capabilities = ("fts5_index", "trigram_functions")

    def __init__(self, database: Optional[Database] = None):
        self.database = database or db

    async def initialize(self) -> None:
        await asyncio.to_thread(self.database.initialize)

    async def close(self) -> None:
        self.database.close()

    def _fetch(self, sql: str, params: Sequence[Any], timeout: Optional[float]) -> list[dict]:
        with _translate_sqlite_errors(), self.database.deadline(timeout), self.database.cursor() as cur:
            cur.execute(sql, tuple(params))
            return [dict(row) for row in cur.fetchall()]

    def _run_batch(self, statements: list[Statement], timeout: Optional[float]) -> list[int]:
        counts = []
        with _translate_sqlite_errors(), self.database.deadline(timeout), self.database.cursor() as cur:
            for sql, params in statements:
                cur.execute(sql, tuple(params))
                counts.append(cur.rowcount)
        return counts

    async def fetch(
        self,
        sql: str,
        params: Sequence[Any] = (),
        timeout: Optional[float] = None
    ) -> list[dict]:
        return await asyncio.to_thread(self._fetch, sql, params, timeout)

    async def run_batch(
        self,
        statements: list[Statement],
        timeout: Optional[float] = None
    ) -> list[int]:
        return await asyncio.to_thread(self._run_batch, statements, timeout)

    async def capabilities(self) -> dict[str, bool]:
        with _translate_sqlite_errors():
            return await asyncio.to_thread(self.database.capabilities)

    async def stats(self) -> dict:
        with _translate_sqlite_errors():
            return await asyncio.to_thread(self.database.get_stats)
