"""
Facet aggregation over the visible catalog.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from catalog_search.dialects import QueryParams, visibility_predicate
from catalog_search.errors import CapabilityMissingError
from catalog_search.models import CategoryFacet, FacetSet, PriceFacet
from catalog_search.normalize import sanitize_query
from catalog_search.store import SearchStore

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_LIMIT = 20


class FacetAggregator:
    """Category counts and price statistics for filter UIs."""

    def __init__(
        self,
        store: SearchStore,
        timeout: Optional[float] = None,
        category_limit: int = DEFAULT_CATEGORY_LIMIT,
        max_query_length: int = 500,
    ):
        self.store = store
        self.timeout = timeout
        self.category_limit = category_limit
        self.max_query_length = max_query_length

    async def _categories(self) -> list[CategoryFacet]:
        """Top categories from the facet view; the view applies visibility at the store's clock."""
        params = QueryParams(self.store.dialect)
        rows = await self.store.fetch(
            f"""
            SELECT category_id, category_name, product_count
            FROM product_search_facets
            WHERE product_count > 0
            ORDER BY product_count DESC, category_id ASC
            LIMIT {params.add(self.category_limit)}
            """,
            params.values,
            timeout=self.timeout,
        )
        return [
            CategoryFacet(
                id=row["category_id"],
                name=row["category_name"],
                product_count=int(row["product_count"]),
            )
            for row in rows
        ]

    async def _price_range(self, now: datetime) -> PriceFacet:
        dialect = self.store.dialect
        params = QueryParams(dialect)
        now_param = params.add(dialect.timestamp_param(now))
        row = await self.store.fetchrow(
            f"""
            SELECT
                MIN(price) AS min_price,
                MAX(price) AS max_price,
                AVG(price) AS avg_price
            FROM (
                SELECT MIN(v.price_cents) AS price
                FROM products p
                JOIN product_variants v ON v.product_id = p.id
                WHERE {visibility_predicate("p", now_param)}
                GROUP BY p.id
            ) priced
            """,
            params.values,
            timeout=self.timeout,
        )
        if not row or row["min_price"] is None:
            return PriceFacet()
        return PriceFacet(
            min=int(row["min_price"]),
            max=int(row["max_price"]),
            avg=int(round(float(row["avg_price"]))),
        )

    async def facets(
        self,
        query_context: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> FacetSet:
        """
        Aggregate facets over every visible product.

        `now` sets the visibility window for price statistics only; category
        counts come from the facet view and always use the store's clock.
        `query_context` is accepted for future query-scoped facets; it is
        sanitized but does not narrow the aggregates.
        """
        context = sanitize_query(query_context, self.max_query_length)
        if context:
            logger.debug(f"Facet request with query context '{context}'")

        try:
            categories = await self._categories()
            price_range = await self._price_range(now or datetime.now(timezone.utc))
        except CapabilityMissingError as e:
            logger.warning(f"Facet view unavailable, returning empty facets: {e}")
            return FacetSet.empty()

        return FacetSet(categories=categories, price_range=price_range)
