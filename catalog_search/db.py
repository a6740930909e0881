"""
Database module for the embedded search backend.
Manages a SQLite database with the catalog read model and an FTS5 index.
"""

import sqlite3
import logging
import threading
import time
from pathlib import Path
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Optional, Generator

from catalog_search.config import config
from catalog_search.normalize import document_rank, fold_text, word_similarity

logger = logging.getLogger(__name__)

# Same layout as strftime('%Y-%m-%d %H:%M:%f', 'now') so text comparisons order correctly
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

# VM instructions between deadline checks
PROGRESS_INTERVAL = 1000


def to_db_timestamp(value: Optional[datetime]) -> Optional[str]:
    """Render a datetime as UTC text with millisecond precision. Naive values are UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)[:-3]


def from_db_timestamp(value) -> Optional[datetime]:
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def register_functions(conn: sqlite3.Connection) -> None:
    """Expose folding, document rank and trigram word similarity to SQL."""
    conn.create_function("search_fold", 1, fold_text, deterministic=True)
    conn.create_function("search_rank", 4, document_rank, deterministic=True)
    conn.create_function("word_similarity", 2, word_similarity, deterministic=True)


class Database:
    """SQLite database manager with FTS5 support."""

    def __init__(self, db_path: Optional[Path] = None):
        self.db_path = db_path or config.DATABASE_PATH
        self._local = threading.local()
        self._connections: list[sqlite3.Connection] = []
        self._lock = threading.Lock()

    def connect(self) -> sqlite3.Connection:
        """Get or create this thread's database connection."""
        conn = getattr(self._local, "connection", None)
        if conn is None:
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=5.0
            )
            conn.row_factory = sqlite3.Row
            # Enable foreign keys
            conn.execute("PRAGMA foreign_keys = ON")
            # Readers must not block on the catalog writer
            conn.execute("PRAGMA journal_mode = WAL")
            register_functions(conn)
            self._local.connection = conn
            with self._lock:
                self._connections.append(conn)
        return conn

    def close(self) -> None:
        """Close every connection opened by any thread."""
        with self._lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    @contextmanager
    def cursor(self) -> Generator[sqlite3.Cursor, None, None]:
        """Context manager for database cursor with auto-commit."""
        conn = self.connect()
        cursor = conn.cursor()
        try:
            yield cursor
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    @contextmanager
    def deadline(self, seconds: Optional[float]) -> Generator[None, None, None]:
        """
        Abort statements on this thread's connection once `seconds` elapse.
        SQLite raises OperationalError("interrupted") when the handler fires.
        """
        if not seconds:
            yield
            return

        conn = self.connect()
        expires = time.monotonic() + seconds
        conn.set_progress_handler(
            lambda: 1 if time.monotonic() > expires else 0,
            PROGRESS_INTERVAL
        )
        try:
            yield
        finally:
            conn.set_progress_handler(None, 0)

    def initialize(self) -> None:
        """Create database schema if not exists."""
        logger.info(f"Initializing database at {self.db_path}")

        with self.cursor() as cur:
            # Catalog read model (owned by the catalog subsystem)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS categories (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    slug TEXT UNIQUE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    title TEXT NOT NULL,
                    slug TEXT UNIQUE NOT NULL,
                    brand TEXT,
                    tags TEXT NOT NULL DEFAULT '[]',
                    description TEXT,
                    primary_sku TEXT,
                    published INTEGER NOT NULL DEFAULT 0,
                    publish_at TEXT,
                    unpublish_at TEXT,
                    created_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%d %H:%M:%f', 'now'))
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS product_variants (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_id INTEGER NOT NULL,
                    sku TEXT,
                    price_cents INTEGER NOT NULL,
                    currency TEXT NOT NULL DEFAULT 'INR',
                    FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS product_categories (
                    product_id INTEGER NOT NULL,
                    category_id INTEGER NOT NULL,
                    PRIMARY KEY (product_id, category_id),
                    FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE,
                    FOREIGN KEY (category_id) REFERENCES categories(id) ON DELETE CASCADE
                )
            """)

            cur.execute("""
                CREATE TABLE IF NOT EXISTS product_images (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    product_id INTEGER NOT NULL,
                    image_key TEXT NOT NULL,
                    sort_order INTEGER NOT NULL DEFAULT 0,
                    FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
                )
            """)

            # Create indexes for performance
            cur.execute("CREATE INDEX IF NOT EXISTS idx_variants_product_price ON product_variants(product_id, price_cents)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_product_categories_category ON product_categories(category_id)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_product_images_product ON product_images(product_id, sort_order)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_products_visibility ON products(published, publish_at, unpublish_at)")
            cur.execute("CREATE INDEX IF NOT EXISTS idx_products_created_at ON products(created_at)")

            # Visible products per category, read by the facet aggregator
            cur.execute("""
                CREATE VIEW IF NOT EXISTS product_search_facets AS
                SELECT
                    pc.category_id AS category_id,
                    c.name AS category_name,
                    COUNT(DISTINCT p.id) AS product_count
                FROM products p
                JOIN product_categories pc ON pc.product_id = p.id
                JOIN categories c ON c.id = pc.category_id
                WHERE p.published = 1
                  AND (p.publish_at IS NULL OR p.publish_at <= strftime('%Y-%m-%d %H:%M:%f', 'now'))
                  AND (p.unpublish_at IS NULL OR p.unpublish_at > strftime('%Y-%m-%d %H:%M:%f', 'now'))
                GROUP BY pc.category_id, c.name
            """)

            # Searchable documents: rowid = product id, columns in weight order A, B, C
            try:
                cur.execute("""
                    CREATE VIRTUAL TABLE IF NOT EXISTS product_search USING fts5(
                        title,
                        brand_tags,
                        body,
                        tokenize = 'unicode61 remove_diacritics 2',
                        prefix = '2 3 4'
                    )
                """)
            except sqlite3.OperationalError as e:
                # Left for the health check to report
                logger.error(f"FTS5 index unavailable: {e}")

        logger.info("Database initialized successfully")

    def capabilities(self) -> dict[str, bool]:
        """Report which search primitives are installed."""
        with self.cursor() as cur:
            cur.execute("""
                SELECT name FROM sqlite_master
                WHERE name IN ('product_search', 'product_search_facets')
            """)
            names = {row["name"] for row in cur.fetchall()}

            try:
                cur.execute("SELECT word_similarity('probe', 'probe') AS ok")
                trigram = cur.fetchone()["ok"] == 1.0
            except sqlite3.OperationalError:
                trigram = False

        return {
            "fts5_index": "product_search" in names,
            "trigram_functions": trigram,
            "facet_view": "product_search_facets" in names,
        }

    def get_stats(self) -> dict:
        """Get database statistics."""
        with self.cursor() as cur:
            cur.execute("SELECT COUNT(*) as count FROM products")
            product_count = cur.fetchone()["count"]

            cur.execute("SELECT COUNT(*) as count FROM product_search")
            document_count = cur.fetchone()["count"]

            return {
                "product_count": product_count,
                "document_count": document_count,
            }


# Singleton database instance
db = Database()
