"""
SQL dialects for the two supported backing stores.

The planner, suggestion engine, facets and indexer build their SQL from
shared fragments; everything that differs between SQLite FTS5 and
PostgreSQL tsvector/pg_trgm lives behind a Dialect.
"""

import json
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from catalog_search.db import from_db_timestamp, to_db_timestamp
from catalog_search.normalize import FIELD_WEIGHTS

Statement = tuple[str, tuple]


class QueryParams:
    """Collects bind values and hands out numbered placeholders."""

    def __init__(self, dialect: "Dialect"):
        self._dialect = dialect
        self.values: list[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(value)
        return self._dialect.placeholder(len(self.values))


def visibility_predicate(alias: str, now: str) -> str:
    """Eligibility of a product row: published and inside its publish window."""
    return (
        f"{alias}.published = TRUE"
        f" AND ({alias}.publish_at IS NULL OR {alias}.publish_at <= {now})"
        f" AND ({alias}.unpublish_at IS NULL OR {alias}.unpublish_at > {now})"
    )


def primary_price_sql(alias: str) -> str:
    """Price of the cheapest variant; products without variants count as 0."""
    return (
        "COALESCE((SELECT MIN(v.price_cents) FROM product_variants v"
        f" WHERE v.product_id = {alias}.id), 0)"
    )


def primary_image_sql(alias: str) -> str:
    return (
        "(SELECT i.image_key FROM product_images i"
        f" WHERE i.product_id = {alias}.id ORDER BY i.sort_order, i.id LIMIT 1)"
    )


class Dialect(ABC):
    """Backend-specific SQL and value conversions."""

    name: str = ""

    @abstractmethod
    def placeholder(self, index: int) -> str:
        """Bind marker for the 1-based parameter `index`."""

    @abstractmethod
    def fold(self, expr: str) -> str:
        """SQL expression that lowercases and strips accents from `expr`."""

    @abstractmethod
    def match_query(self, terms: list[str]) -> str:
        """Text-index query requiring every term as a prefix."""

    @abstractmethod
    def text_match_sql(self, params: QueryParams, terms: list[str]) -> str:
        """
        SELECT yielding (product_id, score) for documents matching every term.

        Binds its own values through `params`. The score of a document must
        not depend on the rest of the corpus, since cursors carry it.
        """

    @abstractmethod
    def timestamp_param(self, value: Optional[datetime]) -> Any:
        ...

    def read_timestamp(self, value: Any) -> Optional[datetime]:
        return from_db_timestamp(value)

    @abstractmethod
    def read_tags(self, value: Any) -> list[str]:
        ...

    @abstractmethod
    def tags_param(self, tags: list[str]) -> Any:
        ...

    @abstractmethod
    def index_document_statements(self, document) -> list[Statement]:
        """Replace one product's searchable document."""

    @abstractmethod
    def remove_document_statements(self, product_id: int) -> list[Statement]:
        ...

    @abstractmethod
    def reindex_statements(self) -> list[Statement]:
        """Rebuild every document; the last statement's row count is reported."""


class SQLiteDialect(Dialect):
    """SQLite with an FTS5 `product_search` table keyed by product rowid."""

    name = "sqlite"

    def placeholder(self, index: int) -> str:
        return f"?{index}"

    def fold(self, expr: str) -> str:
        return f"search_fold({expr})"

    def match_query(self, terms: list[str]) -> str:
        return " AND ".join(f'"{term}"*' for term in terms)

    def text_match_sql(self, params: QueryParams, terms: list[str]) -> str:
        # Scores come from the row alone so cursors survive writes to other products
        match = params.add(self.match_query(terms))
        needle = params.add(" ".join(terms))
        return (
            f"SELECT rowid AS product_id,"
            f" search_rank({needle}, title, brand_tags, body) AS score"
            f" FROM product_search WHERE product_search MATCH {match}"
        )

    def timestamp_param(self, value: Optional[datetime]) -> Optional[str]:
        return to_db_timestamp(value)

    def read_tags(self, value: Any) -> list[str]:
        if not value:
            return []
        if isinstance(value, list):
            return value
        try:
            tags = json.loads(value)
        except ValueError:
            return []
        return [str(tag) for tag in tags] if isinstance(tags, list) else []

    def tags_param(self, tags: list[str]) -> str:
        return json.dumps(list(tags))

    def index_document_statements(self, document) -> list[Statement]:
        return [
            ("DELETE FROM product_search WHERE rowid = ?1", (document.product_id,)),
            (
                "INSERT INTO product_search (rowid, title, brand_tags, body)"
                " VALUES (?1, ?2, ?3, ?4)",
                (document.product_id, document.title, document.brand_tags, document.body),
            ),
        ]

    def remove_document_statements(self, product_id: int) -> list[Statement]:
        return [("DELETE FROM product_search WHERE rowid = ?1", (product_id,))]

    def reindex_statements(self) -> list[Statement]:
        return [
            ("DELETE FROM product_search", ()),
            ("""
                INSERT INTO product_search (rowid, title, brand_tags, body)
                SELECT
                    p.id,
                    p.title,
                    trim(coalesce(p.brand, '') || ' ' ||
                         coalesce((SELECT group_concat(value, ' ') FROM json_each(p.tags)), ''), ' '),
                    trim(coalesce(p.description, '') || ' ' || coalesce(p.primary_sku, ''), ' ')
                FROM products p
            """, ()),
        ]


class PostgresDialect(Dialect):
    """PostgreSQL with a weighted `products.search_vector` plus pg_trgm and unaccent."""

    name = "postgres"

    _VECTOR_SQL = (
        "setweight(to_tsvector('simple', unaccent({title})), 'A') || "
        "setweight(to_tsvector('simple', unaccent({brand_tags})), 'B') || "
        "setweight(to_tsvector('simple', unaccent({body})), 'C')"
    )

    def placeholder(self, index: int) -> str:
        return f"${index}"

    def fold(self, expr: str) -> str:
        return f"lower(unaccent({expr}))"

    def match_query(self, terms: list[str]) -> str:
        return " & ".join(f"{term}:*" for term in terms)

    def text_match_sql(self, params: QueryParams, terms: list[str]) -> str:
        match = params.add(self.match_query(terms))
        a, b, c = FIELD_WEIGHTS
        weights = f"'{{0.1, {c}, {b}, {a}}}'::float4[]"
        return (
            f"SELECT p.id AS product_id,"
            f" ts_rank({weights}, p.search_vector, to_tsquery('simple', {match}))::float8 AS score"
            f" FROM products p WHERE p.search_vector @@ to_tsquery('simple', {match})"
        )

    def timestamp_param(self, value: Optional[datetime]) -> Optional[datetime]:
        return from_db_timestamp(value)

    def read_tags(self, value: Any) -> list[str]:
        return list(value or [])

    def tags_param(self, tags: list[str]) -> list[str]:
        return list(tags)

    def index_document_statements(self, document) -> list[Statement]:
        vector = self._VECTOR_SQL.format(title="$2::text", brand_tags="$3::text", body="$4::text")
        return [(
            f"UPDATE products SET search_vector = {vector} WHERE id = $1",
            (document.product_id, document.title, document.brand_tags, document.body),
        )]

    def remove_document_statements(self, product_id: int) -> list[Statement]:
        return [("UPDATE products SET search_vector = NULL WHERE id = $1", (product_id,))]

    def reindex_statements(self) -> list[Statement]:
        vector = self._VECTOR_SQL.format(
            title="coalesce(title, '')",
            brand_tags="btrim(coalesce(brand, '') || ' ' || array_to_string(coalesce(tags, '{}'), ' '), ' ')",
            body="btrim(coalesce(description, '') || ' ' || coalesce(primary_sku, ''), ' ')",
        )
        return [(f"UPDATE products SET search_vector = {vector}", ())]
