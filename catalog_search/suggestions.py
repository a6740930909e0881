"""
Autocomplete suggestions: title prefix matches first, then fuzzy title
matches, then fuzzy brand matches.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from catalog_search.dialects import QueryParams, primary_image_sql, primary_price_sql, visibility_predicate
from catalog_search.errors import ValidationError
from catalog_search.models import Suggestion, clamp_limit
from catalog_search.normalize import escape_like, fold_text, highlight, sanitize_query
from catalog_search.store import SearchStore

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.5


class SuggestionEngine:
    """Tiered typeahead over visible product titles and brands."""

    def __init__(
        self,
        store: SearchStore,
        timeout: Optional[float] = None,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
        max_query_length: int = 100,
        default_limit: int = 8,
        max_limit: int = 50,
    ):
        self.store = store
        self.timeout = timeout
        self.threshold = threshold
        self.max_query_length = max_query_length
        self.default_limit = default_limit
        self.max_limit = max_limit

    def _build(self, query: str, limit: int, now: datetime) -> tuple[str, tuple]:
        dialect = self.store.dialect
        params = QueryParams(dialect)

        folded = fold_text(query)
        prefix = params.add(escape_like(folded) + "%")
        needle = params.add(folded)
        threshold = params.add(self.threshold)
        now_param = params.add(dialect.timestamp_param(now))
        limit_param = params.add(limit)

        title = dialect.fold("p.title")
        brand = dialect.fold("COALESCE(p.brand, '')")

        sql = f"""
            SELECT * FROM (
                SELECT
                    p.id, p.title, p.slug,
                    {primary_price_sql("p")} AS price,
                    {primary_image_sql("p")} AS image,
                    CASE
                        WHEN {title} LIKE {prefix} ESCAPE '\\' THEN 1
                        WHEN word_similarity({needle}, {title}) > {threshold} THEN 2
                        WHEN word_similarity({needle}, {brand}) > {threshold} THEN 3
                    END AS tier,
                    word_similarity({needle}, {title}) AS title_similarity,
                    word_similarity({needle}, {brand}) AS brand_similarity
                FROM products p
                WHERE {visibility_predicate("p", now_param)}
            ) s
            WHERE s.tier IS NOT NULL
            ORDER BY
                s.tier,
                CASE WHEN s.tier = 3 THEN s.brand_similarity ELSE s.title_similarity END DESC,
                s.id DESC
            LIMIT {limit_param}
        """
        return sql, tuple(params.values)

    async def suggest(
        self,
        query: Optional[str],
        limit: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> list[Suggestion]:
        """
        Suggest products for a partial query.

        Args:
            query: Raw user input; capped and sanitized here.
            limit: Requested count, clamped to [1, max_limit].
            now: Reference time for the visibility window.

        Returns:
            Suggestions ordered prefix tier, title-similarity tier, brand-similarity tier.

        Raises:
            ValidationError: If the query is blank.
        """
        text = sanitize_query(query, self.max_query_length)
        if not text:
            raise ValidationError("Query cannot be empty")

        sql, params = self._build(
            text,
            clamp_limit(limit, self.default_limit, self.max_limit),
            now or datetime.now(timezone.utc),
        )
        rows = await self.store.fetch(sql, params, timeout=self.timeout)

        return [
            Suggestion(
                id=row["id"],
                title=row["title"],
                slug=row["slug"],
                price=int(row["price"] or 0),
                image=row["image"] or "",
                highlight=highlight(row["title"], text),
            )
            for row in rows
        ]
