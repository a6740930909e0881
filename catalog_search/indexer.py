"""
Text index maintainer.
Derives a product's searchable document and keeps the text index in step
with catalog writes.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from catalog_search.store import SearchStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchableDocument:
    """Weighted text fields of one product: title (A), brand + tags (B), description + SKU (C)."""
    product_id: int
    title: str
    brand_tags: str
    body: str


def build_document(product: dict) -> SearchableDocument:
    """
    Derive the searchable document from a product row.

    Args:
        product: Mapping with id, title, brand, tags, description and primary_sku.

    Returns:
        SearchableDocument with outer spaces trimmed from the combined fields.
    """
    tags = " ".join(str(tag) for tag in (product.get("tags") or []))
    brand_tags = f"{product.get('brand') or ''} {tags}".strip(" ")
    body = f"{product.get('description') or ''} {product.get('primary_sku') or ''}".strip(" ")

    return SearchableDocument(
        product_id=int(product["id"]),
        title=product.get("title") or "",
        brand_tags=brand_tags,
        body=body,
    )


class Indexer:
    """Maintains SearchableDocuments in the store's text index."""

    def __init__(self, store: SearchStore):
        self.store = store

    async def _load_product(self, product_id: int) -> Optional[dict]:
        dialect = self.store.dialect
        row = await self.store.fetchrow(
            f"""
            SELECT id, title, brand, tags, description, primary_sku
            FROM products WHERE id = {dialect.placeholder(1)}
            """,
            (product_id,),
        )
        if row is None:
            return None
        row["tags"] = dialect.read_tags(row.get("tags"))
        return row

    async def index_product(self, product_id: int) -> bool:
        """
        Rebuild one product's document.

        Returns:
            True if the document was written, False if the product no longer exists.
        """
        product = await self._load_product(product_id)
        if product is None:
            await self.remove_product(product_id)
            return False

        document = build_document(product)
        await self.store.run_batch(self.store.dialect.index_document_statements(document))
        logger.debug(f"Indexed product {product_id}")
        return True

    async def remove_product(self, product_id: int) -> None:
        await self.store.run_batch(self.store.dialect.remove_document_statements(product_id))
        logger.debug(f"Removed product {product_id} from index")

    async def on_product_changed(self, product_id: int) -> bool:
        """
        Called by the catalog write path after a product is created or updated.
        Index failures are logged and never fail the product write.
        """
        try:
            return await self.index_product(product_id)
        except Exception as e:
            logger.warning(f"Failed to index product {product_id}: {e}")
            return False

    async def reindex_all(self) -> int:
        """
        Rebuild every document in one transaction.

        Returns:
            Number of documents written.

        Raises:
            StoreError: If the rebuild fails; nothing is committed.
        """
        counts = await self.store.run_batch(self.store.dialect.reindex_statements())
        return counts[-1] if counts else 0
