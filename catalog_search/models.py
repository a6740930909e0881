"""
Domain types for product search: requests, sort modes, ranking keys and
the result shapes produced by the planner, suggestion engine and facets.
"""

import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union

from catalog_search.errors import ValidationError
from catalog_search.normalize import sanitize_query, search_terms


class SortMode(str, Enum):
    """Result orderings supported by full search."""
    RELEVANCE = "relevance"
    PRICE_ASC = "price_asc"
    PRICE_DESC = "price_desc"
    NEWEST = "newest"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SortMode":
        """Unrecognized or missing values fall back to relevance."""
        if not value:
            return cls.RELEVANCE
        try:
            return cls(value.strip().lower())
        except ValueError:
            return cls.RELEVANCE

    @property
    def key_kind(self) -> "KeyKind":
        if self is SortMode.RELEVANCE:
            return KeyKind.SCORE
        if self is SortMode.NEWEST:
            return KeyKind.CREATED
        return KeyKind.PRICE


class KeyKind(str, Enum):
    """Tag of the ranking key stored in a cursor."""
    SCORE = "score"      # float relevance score
    PRICE = "price"      # int minor currency units
    CREATED = "created"  # timezone-aware creation timestamp


@dataclass(frozen=True)
class RankingKey:
    """Value of the active sort column for one row."""
    kind: KeyKind
    value: Union[float, int, datetime]


# Largest value a signed 64-bit database integer holds
MAX_DB_INTEGER = 2 ** 63 - 1


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    """Unset or 0 means default; anything else is forced into [1, maximum]."""
    if not limit:
        return default
    return max(1, min(limit, maximum))


@dataclass(frozen=True)
class SearchRequest:
    """A validated, bounded full-search request."""
    query: str
    category_id: Optional[int] = None
    min_price: Optional[int] = None
    max_price: Optional[int] = None
    sort: SortMode = SortMode.RELEVANCE
    cursor: Optional[str] = None
    limit: int = 20

    @classmethod
    def create(
        cls,
        query: Optional[str],
        category_id: Optional[int] = None,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        sort: Optional[str] = None,
        cursor: Optional[str] = None,
        limit: Optional[int] = None,
        max_query_length: int = 500,
        default_limit: int = 20,
        max_limit: int = 100,
    ) -> "SearchRequest":
        """
        Sanitize and bound raw request parameters.

        Raises:
            ValidationError: If the query is blank, an id or price is out of range
                or the price range is inverted.
        """
        text = sanitize_query(query, max_query_length)
        if not text:
            raise ValidationError("Query cannot be empty")

        if category_id is not None and not -MAX_DB_INTEGER <= category_id <= MAX_DB_INTEGER:
            raise ValidationError("category is out of range")
        for name, value in (("min_price", min_price), ("max_price", max_price)):
            if value is not None and value < 0:
                raise ValidationError(f"{name} cannot be negative")
            if value is not None and value > MAX_DB_INTEGER:
                raise ValidationError(f"{name} is out of range")
        if min_price is not None and max_price is not None and min_price > max_price:
            raise ValidationError("min_price cannot exceed max_price")

        return cls(
            query=text,
            category_id=category_id,
            min_price=min_price,
            max_price=max_price,
            sort=SortMode.parse(sort),
            cursor=cursor.strip() if cursor and cursor.strip() else None,
            limit=clamp_limit(limit, default_limit, max_limit),
        )

    @property
    def terms(self) -> list[str]:
        return search_terms(self.query)

    def fingerprint(self) -> str:
        """Short digest of everything a cursor must agree with."""
        payload = json.dumps(
            {
                "q": self.terms,
                "c": self.category_id,
                "min": self.min_price,
                "max": self.max_price,
                "s": self.sort.value,
            },
            sort_keys=True,
            separators=(",", ":"),
        )
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


@dataclass
class SearchResult:
    """Single product hit."""
    id: int
    title: str
    slug: str
    price: int
    image: str
    excerpt: str
    score: float
    brand: str = ""
    tags: list[str] = field(default_factory=list)
    sku: str = ""


@dataclass
class SearchPage:
    """One page of results plus the token for the next one."""
    items: list[SearchResult]
    next_cursor: Optional[str] = None


@dataclass
class Suggestion:
    """Autocomplete entry."""
    id: int
    title: str
    slug: str
    price: int
    image: str
    highlight: Optional[str] = None


@dataclass
class CategoryFacet:
    id: int
    name: str
    product_count: int


@dataclass
class PriceFacet:
    min: int = 0
    max: int = 0
    avg: int = 0


@dataclass
class FacetSet:
    """Filter options over the visible catalog."""
    categories: list[CategoryFacet] = field(default_factory=list)
    price_range: PriceFacet = field(default_factory=PriceFacet)

    @classmethod
    def empty(cls) -> "FacetSet":
        return cls()


@dataclass
class ReindexStats:
    """Outcome of a full index rebuild."""
    updated_count: int
    duration_ms: int
    timestamp: datetime
