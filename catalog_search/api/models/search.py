"""
Search-related API models: full search, suggestions, facets and reindex.
Field names are snake_case in Python and camelCase on the wire.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SearchResult(BaseModel):
    """Single product hit."""
    id: int
    title: str
    slug: str
    price: int
    image: str
    excerpt: str
    score: float
    brand: str = ""
    tags: list[str] = []
    sku: str = ""


class SearchResponse(BaseModel):
    """One page of search results."""
    model_config = ConfigDict(populate_by_name=True)

    items: list[SearchResult]
    next_cursor: Optional[str] = Field(None, alias="nextCursor")


class Suggestion(BaseModel):
    """Autocomplete entry."""
    id: int
    title: str
    slug: str
    price: int
    image: str
    highlight: Optional[str] = None


class CategoryFacet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int
    name: str
    product_count: int = Field(alias="productCount")


class PriceRange(BaseModel):
    min: int = 0
    max: int = 0
    avg: int = 0


class FacetsResponse(BaseModel):
    """Filter options over the visible catalog."""
    model_config = ConfigDict(populate_by_name=True)

    categories: list[CategoryFacet] = []
    price_range: PriceRange = Field(default_factory=PriceRange, alias="priceRange")


class ReindexResponse(BaseModel):
    """Result of a full index rebuild."""
    model_config = ConfigDict(populate_by_name=True)

    updated_count: int = Field(alias="updatedCount")
    duration_ms: int = Field(alias="durationMs")
    timestamp: datetime
