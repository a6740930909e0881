"""
Install the PostgreSQL search schema for catalog search.
Usage: python run_migration.py [--reindex]
"""

import argparse
import asyncio

from catalog_search.config import Config
from catalog_search.db_postgres import PostgresDatabase, PostgresSearchStore
from catalog_search.indexer import Indexer
from catalog_search.services.indexing_service import IndexingService


async def run_migration(reindex: bool = False) -> bool:
    if not Config.POSTGRES_URL:
        print("ERROR: DATABASE_URL not set in .env file")
        return False

    print("Connecting to PostgreSQL...")
    database = PostgresDatabase(Config.POSTGRES_URL)
    store = PostgresSearchStore(database)

    try:
        print("Installing search schema...")
        await database.initialize_search_schema()
        print("Migration completed successfully!")

        capabilities = await store.capabilities()
        print("\nSearch capabilities:")
        for name, present in capabilities.items():
            print(f"  - {name}: {'ok' if present else 'MISSING'}")

        if reindex:
            print("\nRebuilding search vectors...")
            stats = await IndexingService(Indexer(store)).reindex_all()
            print(f"Reindexed {stats.updated_count} products in {stats.duration_ms}ms")

        return all(capabilities.get(name) for name in store.required_capabilities)

    except Exception as e:
        print(f"ERROR: {e}")
        return False

    finally:
        await database.close()


def main():
    parser = argparse.ArgumentParser(description="Install the catalog search schema in PostgreSQL")
    parser.add_argument(
        "--reindex",
        action="store_true",
        help="Rebuild every product's search vector after installing the schema",
    )
    args = parser.parse_args()

    ok = asyncio.run(run_migration(reindex=args.reindex))
    raise SystemExit(0 if ok else 1)


if __name__ == "__main__":
    main()
