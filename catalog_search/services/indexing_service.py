"""
Indexing service: full rebuild of the search index for operators.
"""

import logging
import time
from datetime import datetime, timezone

from catalog_search.indexer import Indexer
from catalog_search.models import ReindexStats

logger = logging.getLogger(__name__)


class IndexingService:
    """
    Runs the bulk reindex and reports what it did.

    Callers must not start a reindex while another one is running.
    """

    def __init__(self, indexer: Indexer):
        self.indexer = indexer

    async def reindex_all(self) -> ReindexStats:
        """
        Rebuild every searchable document.

        Returns:
            ReindexStats with the number of documents written and wall-clock duration.

        Raises:
            StoreError: If the rebuild fails. Nothing is committed in that case.
        """
        logger.info("Starting full search reindex")
        started = time.perf_counter()

        try:
            updated = await self.indexer.reindex_all()
        except Exception as e:
            logger.error(f"Search reindex failed: {e}")
            raise

        duration_ms = int((time.perf_counter() - started) * 1000)
        logger.info(f"Search reindex complete: {updated} documents in {duration_ms}ms")

        return ReindexStats(
            updated_count=updated,
            duration_ms=duration_ms,
            timestamp=datetime.now(timezone.utc),
        )
