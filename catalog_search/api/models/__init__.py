"""
Pydantic models (schemas) for API request/response types.

All models are re-exported here for convenience:
    from catalog_search.api.models import SearchResponse, FacetsResponse, ...
"""

from catalog_search.api.models.system import (
    HealthResponse,
    ErrorResponse,
)
from catalog_search.api.models.search import (
    SearchResult,
    SearchResponse,
    Suggestion,
    CategoryFacet,
    PriceRange,
    FacetsResponse,
    ReindexResponse,
)

__all__ = [
    "HealthResponse",
    "ErrorResponse",
    "SearchResult",
    "SearchResponse",
    "Suggestion",
    "CategoryFacet",
    "PriceRange",
    "FacetsResponse",
    "ReindexResponse",
]
