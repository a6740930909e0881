"""
Query planner for full product search.

Builds one filtered, ranked read that joins the text index with the
catalog, applies the cursor as a continuation predicate and fetches one
row beyond the page to decide whether another page exists.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from catalog_search.cursor import Cursor, decode_cursor, encode_cursor
from catalog_search.dialects import (
    QueryParams,
    Statement,
    primary_image_sql,
    primary_price_sql,
    visibility_predicate,
)
from catalog_search.errors import CursorError
from catalog_search.models import (
    KeyKind,
    RankingKey,
    SearchPage,
    SearchRequest,
    SearchResult,
    SortMode,
)
from catalog_search.normalize import excerpt
from catalog_search.store import SearchStore

logger = logging.getLogger(__name__)

# Sort column and direction per mode; ties always fall to id DESC
_ORDERING = {
    SortMode.RELEVANCE: ("score", "DESC"),
    SortMode.PRICE_ASC: ("price", "ASC"),
    SortMode.PRICE_DESC: ("price", "DESC"),
    SortMode.NEWEST: ("created_at", "DESC"),
}


class QueryPlanner:
    """Plans and runs full-search queries against a SearchStore."""

    def __init__(self, store: SearchStore, timeout: Optional[float] = None):
        self.store = store
        self.timeout = timeout

    def resolve_cursor(self, request: SearchRequest) -> Optional[Cursor]:
        """
        Decode the request's cursor and check it belongs to this request.

        Raises:
            CursorError: If the token is malformed, was issued for a different
                query or filter set, or carries a key of the wrong kind.
        """
        if not request.cursor:
            return None

        cursor = decode_cursor(request.cursor)
        if cursor.fingerprint != request.fingerprint():
            raise CursorError("Cursor was issued for a different query")
        if cursor.key.kind is not request.sort.key_kind:
            raise CursorError(f"Cursor does not fit sort '{request.sort.value}'")
        return cursor

    def build(
        self,
        request: SearchRequest,
        terms: list[str],
        cursor: Optional[Cursor],
        now: datetime
    ) -> Statement:
        """Build the page query for `request`; returns (sql, params)."""
        dialect = self.store.dialect
        params = QueryParams(dialect)

        text_match = dialect.text_match_sql(params, terms)
        now_param = params.add(dialect.timestamp_param(now))

        inner = [visibility_predicate("p", now_param)]
        if request.category_id is not None:
            inner.append(
                "EXISTS (SELECT 1 FROM product_categories pc"
                f" WHERE pc.product_id = p.id AND pc.category_id = {params.add(request.category_id)})"
            )

        outer = []
        if request.min_price is not None:
            outer.append(f"c.price >= {params.add(request.min_price)}")
        if request.max_price is not None:
            outer.append(f"c.price <= {params.add(request.max_price)}")

        column, direction = _ORDERING[request.sort]
        if cursor is not None:
            key = cursor.key.value
            if cursor.key.kind is KeyKind.CREATED:
                key = dialect.timestamp_param(key)
            key_param = params.add(key)
            id_param = params.add(cursor.product_id)
            beyond = ">" if direction == "ASC" else "<"
            outer.append(
                f"(c.{column} {beyond} {key_param}"
                f" OR (c.{column} = {key_param} AND c.id < {id_param}))"
            )

        limit_param = params.add(request.limit + 1)
        where = f"WHERE {' AND '.join(outer)}" if outer else ""

        sql = f"""
            WITH matched AS MATERIALIZED (
                {text_match}
            ),
            candidates AS (
                SELECT
                    p.id, p.title, p.slug, p.brand, p.tags, p.description,
                    p.primary_sku, p.created_at,
                    m.score AS score,
                    {primary_price_sql("p")} AS price,
                    {primary_image_sql("p")} AS image
                FROM matched m
                JOIN products p ON p.id = m.product_id
                WHERE {" AND ".join(inner)}
            )
            SELECT * FROM candidates c
            {where}
            ORDER BY c.{column} {direction}, c.id DESC
            LIMIT {limit_param}
        """
        return sql, tuple(params.values)

    def _ranking_key(self, sort: SortMode, row: dict) -> RankingKey:
        kind = sort.key_kind
        if kind is KeyKind.SCORE:
            return RankingKey(kind, float(row["score"]))
        if kind is KeyKind.PRICE:
            return RankingKey(kind, int(row["price"]))
        return RankingKey(kind, self.store.dialect.read_timestamp(row["created_at"]))

    def _to_result(self, row: dict) -> SearchResult:
        return SearchResult(
            id=row["id"],
            title=row["title"],
            slug=row["slug"],
            price=int(row["price"] or 0),
            image=row["image"] or "",
            excerpt=excerpt(row["description"]),
            score=float(row["score"]),
            brand=row["brand"] or "",
            tags=self.store.dialect.read_tags(row["tags"]),
            sku=row["primary_sku"] or "",
        )

    async def search(self, request: SearchRequest, now: Optional[datetime] = None) -> SearchPage:
        """
        Run one page of a search.

        Args:
            request: Validated request.
            now: Reference time for the visibility window (defaults to current UTC).

        Returns:
            SearchPage with at most `request.limit` items and a cursor when more remain.

        Raises:
            CursorError: If the cursor is invalid for this request.
            StoreError: If the store fails or times out.
        """
        cursor = self.resolve_cursor(request)

        terms = request.terms
        if not terms:
            # Nothing indexable left (e.g. only punctuation)
            return SearchPage(items=[])

        sql, params = self.build(request, terms, cursor, now or datetime.now(timezone.utc))
        rows = await self.store.fetch(sql, params, timeout=self.timeout)

        has_more = len(rows) > request.limit
        rows = rows[:request.limit]

        next_cursor = None
        if has_more:
            last = rows[-1]
            next_cursor = encode_cursor(
                last["id"],
                self._ranking_key(request.sort, last),
                request.fingerprint(),
            )

        logger.debug(f"Search '{request.query}' returned {len(rows)} rows (more={has_more})")
        return SearchPage(
            items=[self._to_result(row) for row in rows],
            next_cursor=next_cursor,
        )
