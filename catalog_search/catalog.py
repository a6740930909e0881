"""
Catalog write path.

Product and category writes are owned by the catalog; this module is the
narrow surface search depends on. Every accepted product create or update
calls the indexer's change hook so the text index follows the catalog.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional

from catalog_search.dialects import QueryParams, Statement
from catalog_search.indexer import Indexer
from catalog_search.store import SearchStore

logger = logging.getLogger(__name__)

PRODUCT_COLUMNS = (
    "title",
    "slug",
    "brand",
    "tags",
    "description",
    "primary_sku",
    "published",
    "publish_at",
    "unpublish_at",
    "created_at",
)

_TIMESTAMP_COLUMNS = {"publish_at", "unpublish_at", "created_at"}


class Catalog:
    """Product and category writes with index maintenance."""

    def __init__(self, store: SearchStore, indexer: Optional[Indexer] = None):
        self.store = store
        self.indexer = indexer or Indexer(store)

    def _column_value(self, column: str, value):
        dialect = self.store.dialect
        if column == "tags":
            return dialect.tags_param(list(value or []))
        if column in _TIMESTAMP_COLUMNS:
            return dialect.timestamp_param(value)
        if column == "published":
            return bool(value)
        return value

    def _children_statements(
        self,
        product_id: int,
        variants: Optional[Iterable] = None,
        category_ids: Optional[Iterable[int]] = None,
        images: Optional[Iterable[str]] = None,
    ) -> list[Statement]:
        """Replace variants, category memberships and images that were given."""
        p = self.store.dialect.placeholder
        statements: list[Statement] = []

        if variants is not None:
            statements.append((f"DELETE FROM product_variants WHERE product_id = {p(1)}", (product_id,)))
            for variant in variants:
                sku, price = variant if isinstance(variant, tuple) else (None, variant)
                statements.append((
                    f"INSERT INTO product_variants (product_id, sku, price_cents) VALUES ({p(1)}, {p(2)}, {p(3)})",
                    (product_id, sku, int(price)),
                ))

        if category_ids is not None:
            statements.append((f"DELETE FROM product_categories WHERE product_id = {p(1)}", (product_id,)))
            for category_id in category_ids:
                statements.append((
                    f"INSERT INTO product_categories (product_id, category_id) VALUES ({p(1)}, {p(2)})",
                    (product_id, category_id),
                ))

        if images is not None:
            statements.append((f"DELETE FROM product_images WHERE product_id = {p(1)}", (product_id,)))
            for position, image_key in enumerate(images):
                statements.append((
                    f"INSERT INTO product_images (product_id, image_key, sort_order) VALUES ({p(1)}, {p(2)}, {p(3)})",
                    (product_id, image_key, position),
                ))

        return statements

    async def upsert_category(self, name: str, slug: Optional[str] = None) -> int:
        """Create a category or rename the one with the same slug; returns its id."""
        params = QueryParams(self.store.dialect)
        name_param = params.add(name)
        slug_param = params.add(slug or name.strip().lower().replace(" ", "-"))
        row = await self.store.fetchrow(
            f"""
            INSERT INTO categories (name, slug) VALUES ({name_param}, {slug_param})
            ON CONFLICT (slug) DO UPDATE SET name = excluded.name
            RETURNING id
            """,
            params.values,
        )
        return row["id"]

    async def create_product(
        self,
        title: str,
        slug: str,
        variants: Iterable = (),
        category_ids: Iterable[int] = (),
        images: Iterable[str] = (),
        **fields
    ) -> int:
        """
        Insert a product with its variants, categories and images.

        Args:
            title: Product title.
            slug: Unique URL slug.
            variants: Prices in minor units, or (sku, price) tuples.
            category_ids: Categories the product belongs to.
            images: Image keys in display order.
            **fields: Other product columns (brand, tags, description,
                primary_sku, published, publish_at, unpublish_at, created_at).

        Returns:
            The new product id.
        """
        values = {"title": title, "slug": slug, "tags": [], "published": True}
        values.update(fields)
        unknown = set(values) - set(PRODUCT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown product fields: {sorted(unknown)}")
        if values.get("created_at") is None:
            values.pop("created_at", None)

        params = QueryParams(self.store.dialect)
        columns = list(values)
        placeholders = [params.add(self._column_value(c, values[c])) for c in columns]
        row = await self.store.fetchrow(
            f"""
            INSERT INTO products ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
            RETURNING id
            """,
            params.values,
        )
        product_id = row["id"]

        children = self._children_statements(product_id, list(variants), list(category_ids), list(images))
        if children:
            await self.store.run_batch(children)

        await self.indexer.on_product_changed(product_id)
        logger.info(f"Created product {product_id} ({slug})")
        return product_id

    async def update_product(
        self,
        product_id: int,
        variants: Optional[Iterable] = None,
        category_ids: Optional[Iterable[int]] = None,
        images: Optional[Iterable[str]] = None,
        **fields
    ) -> bool:
        """
        Update product columns and replace any given child collections.

        Returns:
            True if the product exists.
        """
        unknown = set(fields) - set(PRODUCT_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown product fields: {sorted(unknown)}")

        params = QueryParams(self.store.dialect)
        id_param = params.add(product_id)
        if fields:
            assignments = [f"{c} = {params.add(self._column_value(c, v))}" for c, v in fields.items()]
            updated = await self.store.run_batch([(
                f"UPDATE products SET {', '.join(assignments)} WHERE id = {id_param}",
                tuple(params.values),
            )])
            exists = updated[0] > 0
        else:
            exists = await self.store.fetchrow(
                f"SELECT id FROM products WHERE id = {id_param}", params.values
            ) is not None

        if not exists:
            return False

        children = self._children_statements(
            product_id,
            list(variants) if variants is not None else None,
            list(category_ids) if category_ids is not None else None,
            list(images) if images is not None else None,
        )
        if children:
            await self.store.run_batch(children)

        await self.indexer.on_product_changed(product_id)
        return True

    async def delete_product(self, product_id: int) -> bool:
        """Delete a product; its document leaves the index with it."""
        p = self.store.dialect.placeholder
        deleted = await self.store.run_batch([
            (f"DELETE FROM products WHERE id = {p(1)}", (product_id,)),
        ])
        try:
            await self.indexer.remove_product(product_id)
        except Exception as e:
            logger.warning(f"Failed to remove product {product_id} from index: {e}")
        return deleted[0] > 0

    async def set_published(
        self,
        product_id: int,
        published: bool,
        publish_at: Optional[datetime] = None,
        unpublish_at: Optional[datetime] = None
    ) -> bool:
        """Change a product's publish state and window."""
        return await self.update_product(
            product_id,
            published=published,
            publish_at=publish_at,
            unpublish_at=unpublish_at,
        )
