"""
Search routes: GET /search, /search/suggest, /search/facets
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Response

from catalog_search.api.dependencies import get_search_service, rate_limit
from catalog_search.api.models.search import FacetsResponse, SearchResponse, Suggestion
from catalog_search.api.models.system import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Search"])

SEARCH_CACHE_CONTROL = "public, max-age=30, stale-while-revalidate=60"
SUGGEST_CACHE_CONTROL = "public, max-age=30"
FACETS_CACHE_CONTROL = "public, max-age=600"

ERROR_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid query, filter or cursor"},
    429: {"description": "Rate limit exceeded"},
    503: {"model": ErrorResponse, "description": "Search index unavailable or timed out"},
}


@router.get(
    "/search",
    response_model=SearchResponse,
    dependencies=[Depends(rate_limit)],
    responses=ERROR_RESPONSES,
)
async def search(
    response: Response,
    q: Optional[str] = Query(None, description="Search query"),
    category: Optional[int] = Query(None, description="Restrict to one category id"),
    min_price: Optional[int] = Query(None, description="Inclusive lower price bound (minor units)"),
    max_price: Optional[int] = Query(None, description="Inclusive upper price bound (minor units)"),
    sort: Optional[str] = Query(None, description="relevance, price_asc, price_desc or newest"),
    cursor: Optional[str] = Query(None, description="Token from a previous page's nextCursor"),
    limit: Optional[int] = Query(None, description="Page size, 1-100"),
    service=Depends(get_search_service),
):
    """
    Full product search.
    Ranks by weighted text relevance unless another sort is requested and
    pages with an opaque cursor.
    """
    result = await service.search(
        q,
        category_id=category,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        cursor=cursor,
        limit=limit,
    )
    response.headers["Cache-Control"] = SEARCH_CACHE_CONTROL
    return result


@router.get(
    "/search/suggest",
    response_model=list[Suggestion],
    dependencies=[Depends(rate_limit)],
    responses=ERROR_RESPONSES,
)
async def suggest(
    response: Response,
    q: Optional[str] = Query(None, description="Partial query"),
    limit: Optional[int] = Query(None, description="Number of suggestions, 1-50"),
    service=Depends(get_search_service),
):
    """
    Typeahead suggestions.
    Title prefix matches come first, then fuzzy title matches, then fuzzy brand matches.
    """
    result = await service.suggest(q, limit)
    response.headers["Cache-Control"] = SUGGEST_CACHE_CONTROL
    return result


@router.get("/search/facets", response_model=FacetsResponse)
async def facets(
    response: Response,
    q: Optional[str] = Query(None, description="Query context"),
    service=Depends(get_search_service),
):
    """Category counts and price range over the visible catalog."""
    result = await service.facets(q)
    response.headers["Cache-Control"] = FACETS_CACHE_CONTROL
    return result
