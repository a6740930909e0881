"""
Search service: full search, suggestions and facets for the API layer.
"""

import asyncio
import logging
from typing import Optional

from catalog_search.config import Config
from catalog_search.errors import SearchTimeoutError
from catalog_search.facets import FacetAggregator
from catalog_search.models import SearchRequest
from catalog_search.planner import QueryPlanner
from catalog_search.store import SearchStore
from catalog_search.suggestions import SuggestionEngine
from catalog_search.api.models.search import (
    CategoryFacet,
    FacetsResponse,
    PriceRange,
    SearchResponse,
    SearchResult,
    Suggestion,
)

logger = logging.getLogger(__name__)


class SearchService:
    """Validates requests, bounds them in time and shapes responses."""

    def __init__(self, store: SearchStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = Config.SEARCH_TIMEOUT_SECONDS if timeout is None else timeout
        self.planner = QueryPlanner(store, timeout=self.timeout)
        self.suggestions = SuggestionEngine(
            store,
            timeout=self.timeout,
            threshold=Config.SUGGEST_SIMILARITY_THRESHOLD,
            max_query_length=Config.SUGGEST_MAX_QUERY_LENGTH,
            default_limit=Config.SUGGEST_DEFAULT_LIMIT,
            max_limit=Config.SUGGEST_MAX_LIMIT,
        )
        self.facet_aggregator = FacetAggregator(
            store,
            timeout=self.timeout,
            category_limit=Config.FACET_CATEGORY_LIMIT,
            max_query_length=Config.SEARCH_MAX_QUERY_LENGTH,
        )

    async def _bounded(self, operation):
        """Await `operation` under the request deadline."""
        if not self.timeout:
            return await operation
        try:
            return await asyncio.wait_for(operation, self.timeout)
        except asyncio.TimeoutError as e:
            raise SearchTimeoutError("Search exceeded its deadline") from e

    async def search(
        self,
        query: Optional[str],
        category_id: Optional[int] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        sort: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> SearchResponse:
        """
        Full search with filters, sorting and cursor pagination.

        Raises:
            ValidationError: If the request is invalid (including the cursor).
            StoreError: If the store fails or the deadline passes.
        """
        request = SearchRequest.create(
            query,
            category_id=category_id,
            min_price=min_price,
            max_price=max_price,
            sort=sort,
            cursor=cursor,
            limit=limit,
            max_query_length=Config.SEARCH_MAX_QUERY_LENGTH,
            default_limit=Config.SEARCH_DEFAULT_LIMIT,
            max_limit=Config.SEARCH_MAX_LIMIT,
        )
        # Cursor problems are client errors and never reach the store
        self.planner.resolve_cursor(request)

        page = await self._bounded(self.planner.search(request))
        return SearchResponse(
            items=[
                SearchResult(
                    id=item.id,
                    title=item.title,
                    slug=item.slug,
                    price=item.price,
                    image=item.image,
                    excerpt=item.excerpt,
                    score=item.score,
                    brand=item.brand,
                    tags=item.tags,
                    sku=item.sku,
                )
                for item in page.items
            ],
            next_cursor=page.next_cursor,
        )

    async def suggest(self, query: Optional[str], limit: Optional[int] = None) -> list[Suggestion]:
        """Typeahead suggestions for a partial query."""
        suggestions = await self._bounded(self.suggestions.suggest(query, limit))
        return [
            Suggestion(
                id=s.id,
                title=s.title,
                slug=s.slug,
                price=s.price,
                image=s.image,
                highlight=s.highlight,
            )
            for s in suggestions
        ]

    async def facets(self, query: Optional[str] = None) -> FacetsResponse:
        """Category and price facets over the visible catalog."""
        facet_set = await self._bounded(self.facet_aggregator.facets(query))
        return FacetsResponse(
            categories=[
                CategoryFacet(id=c.id, name=c.name, product_count=c.product_count)
                for c in facet_set.categories
            ],
            price_range=PriceRange(
                min=facet_set.price_range.min,
                max=facet_set.price_range.max,
                avg=facet_set.price_range.avg,
            ),
        )
