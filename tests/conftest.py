"""
Pytest configuration and shared fixtures for catalog search tests.
"""

import tempfile
import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from catalog_search.catalog import Catalog
from catalog_search.db import Database
from catalog_search.indexer import Indexer
from catalog_search.store import SQLiteSearchStore


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    temp_path = Path(tempfile.mkdtemp())
    yield temp_path
    shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def temp_db(temp_dir: Path) -> Generator[Database, None, None]:
    """Create a temporary database for tests."""
    db_path = temp_dir / "test.db"
    database = Database(db_path)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def store(temp_db: Database) -> SQLiteSearchStore:
    """Search store over the temporary database."""
    return SQLiteSearchStore(temp_db)


@pytest.fixture
def indexer(store: SQLiteSearchStore) -> Indexer:
    return Indexer(store)


@pytest.fixture
def catalog(store: SQLiteSearchStore, indexer: Indexer) -> Catalog:
    """Catalog write path wired to the indexer."""
    return Catalog(store, indexer)


@pytest.fixture
def now() -> datetime:
    return datetime.now(timezone.utc)


@pytest.fixture
def seed_sarees(catalog: Catalog, now: datetime):
    """
    Async seeding helper for a small saree catalog.

    Returns a coroutine function that creates two categories and a mix of
    visible and hidden products, and returns their ids by name.
    """
    async def _seed() -> dict:
        sarees = await catalog.upsert_category("Sarees", "sarees")
        fabrics = await catalog.upsert_category("Fabrics", "fabrics")

        ids = {"sarees": sarees, "fabrics": fabrics}
        ids["premium"] = await catalog.create_product(
            "Premium Banarasi Silk Saree",
            "premium-banarasi-silk-saree",
            brand="Royal Weaves",
            tags=["wedding", "handloom"],
            description="Handwoven Banarasi silk with zari border.",
            primary_sku="RW-BAN-001",
            variants=[("RW-BAN-001", 125000)],
            category_ids=[sarees],
            images=["products/premium-banarasi.jpg"],
        )
        ids["banarasi"] = await catalog.create_product(
            "Banarasi Silk Saree",
            "banarasi-silk-saree",
            brand="Kashi Looms",
            tags=["silk"],
            description="Classic Banarasi saree.",
            variants=[80000, 95000],
            category_ids=[sarees],
        )
        ids["bandhani"] = await catalog.create_product(
            "Bandhani Cotton Saree",
            "bandhani-cotton-saree",
            brand="Kutch Crafts",
            tags=["cotton", "tie-dye"],
            description="Tie-dye cotton saree from Kutch.",
            variants=[45000],
            category_ids=[sarees, fabrics],
        )
        ids["heritage"] = await catalog.create_product(
            "Heritage Banarasi Pure Silk",
            "heritage-banarasi-pure-silk",
            brand="Heritage House",
            description="Pure silk heirloom piece.",
            variants=[210000],
            category_ids=[sarees],
        )
        ids["draft"] = await catalog.create_product(
            "Draft Silk Saree",
            "draft-silk-saree",
            brand="Royal Weaves",
            published=False,
            variants=[50000],
            category_ids=[sarees],
        )
        ids["scheduled"] = await catalog.create_product(
            "Scheduled Silk Saree",
            "scheduled-silk-saree",
            publish_at=now + timedelta(days=7),
            variants=[60000],
            category_ids=[sarees],
        )
        ids["expired"] = await catalog.create_product(
            "Expired Silk Saree",
            "expired-silk-saree",
            unpublish_at=now - timedelta(days=1),
            variants=[70000],
            category_ids=[sarees, fabrics],
        )
        return ids

    return _seed


@pytest.fixture
def seed_many(catalog: Catalog, now: datetime):
    """Async helper creating `count` visible products that all match "kurta"."""
    async def _seed(count: int = 25) -> list[int]:
        category = await catalog.upsert_category("Kurtas", "kurtas")
        ids = []
        for n in range(count):
            ids.append(await catalog.create_product(
                f"Cotton Kurta {n:02d}",
                f"cotton-kurta-{n:02d}",
                brand="Loom Co",
                description="Everyday cotton kurta.",
                variants=[1000 + (n % 5) * 100],
                category_ids=[category],
                created_at=now - timedelta(minutes=count - n),
            ))
        return ids

    return _seed
