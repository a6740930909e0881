"""
Tests for the query planner: filtering, ordering, visibility and cursor pagination.
"""

from datetime import timedelta

import pytest

from catalog_search.catalog import Catalog
from catalog_search.cursor import decode_cursor, encode_cursor
from catalog_search.errors import CursorError, ValidationError
from catalog_search.models import KeyKind, RankingKey, SearchRequest, SortMode
from catalog_search.planner import QueryPlanner
from catalog_search.store import SQLiteSearchStore

ALL_SORTS = ["relevance", "price_asc", "price_desc", "newest"]


def _request(query, **kwargs) -> SearchRequest:
    return SearchRequest.create(query, **kwargs)


async def _collect(planner: QueryPlanner, query: str, cursor=None, **kwargs) -> list:
    """Follow cursors to the end and return every page."""
    pages = []
    while True:
        page = await planner.search(_request(query, cursor=cursor, **kwargs))
        pages.append(page)
        if page.next_cursor is None:
            return pages
        cursor = page.next_cursor


class TestSearchRequest:
    """Tests for request validation and bounding."""

    def test_blank_query_rejected(self):
        with pytest.raises(ValidationError):
            SearchRequest.create("   ")
        with pytest.raises(ValidationError):
            SearchRequest.create(None)

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            SearchRequest.create("silk", min_price=-1)

    def test_inverted_price_range_rejected(self):
        with pytest.raises(ValidationError):
            SearchRequest.create("silk", min_price=500, max_price=100)

    @pytest.mark.parametrize("kwargs", [
        {"category_id": 2 ** 70},
        {"category_id": -(2 ** 64)},
        {"min_price": 2 ** 63},
        {"max_price": 2 ** 70},
    ])
    def test_out_of_range_integers_rejected(self, kwargs):
        with pytest.raises(ValidationError):
            SearchRequest.create("silk", **kwargs)

    def test_largest_integers_accepted(self):
        request = SearchRequest.create("silk", category_id=2 ** 63 - 1, max_price=2 ** 63 - 1)
        assert request.max_price == 2 ** 63 - 1

    @pytest.mark.parametrize("raw, expected", [
        (None, 20),
        (0, 20),
        (1, 1),
        (50, 50),
        (100, 100),
        (1000, 100),
        (-5, 1),
    ])
    def test_limit_clamped(self, raw, expected):
        assert SearchRequest.create("silk", limit=raw).limit == expected

    def test_query_truncated(self):
        assert len(SearchRequest.create("s" * 900).query) == 500

    def test_unknown_sort_falls_back_to_relevance(self):
        assert SearchRequest.create("silk", sort="cheapest").sort is SortMode.RELEVANCE
        assert SearchRequest.create("silk", sort="PRICE_ASC").sort is SortMode.PRICE_ASC

    def test_fingerprint_ignores_cursor_and_limit(self):
        a = SearchRequest.create("Silk  Saree", limit=5)
        b = SearchRequest.create("silk saree", limit=50, cursor="abc")
        assert a.fingerprint() == b.fingerprint()

    def test_fingerprint_tracks_filters_and_sort(self):
        base = SearchRequest.create("silk")
        assert base.fingerprint() != SearchRequest.create("silk", category_id=1).fingerprint()
        assert base.fingerprint() != SearchRequest.create("silk", max_price=10).fingerprint()
        assert base.fingerprint() != SearchRequest.create("silk", sort="newest").fingerprint()
        assert base.fingerprint() != SearchRequest.create("cotton").fingerprint()


class TestScenarios:
    """End-to-end search scenarios over the saree catalog."""

    @pytest.mark.asyncio
    async def test_silk_saree_found_with_positive_score(self, store: SQLiteSearchStore, seed_sarees):
        ids = await seed_sarees()
        page = await QueryPlanner(store).search(_request("silk saree", limit=5))

        hits = {item.id: item for item in page.items}
        assert ids["premium"] in hits
        assert hits[ids["premium"]].score > 0
        assert hits[ids["premium"]].price == 125000
        assert hits[ids["premium"]].brand == "Royal Weaves"
        assert hits[ids["premium"]].image == "products/premium-banarasi.jpg"
        assert hits[ids["premium"]].excerpt == "Handwoven Banarasi silk with zari border."
        assert hits[ids["premium"]].tags == ["wedding", "handloom"]

    @pytest.mark.asyncio
    async def test_other_category_excludes_product(self, store: SQLiteSearchStore, seed_sarees):
        ids = await seed_sarees()
        page = await QueryPlanner(store).search(_request("silk saree", category_id=ids["fabrics"]))

        assert ids["premium"] not in {item.id for item in page.items}

    @pytest.mark.asyncio
    async def test_no_match_is_empty_page(self, store: SQLiteSearchStore, seed_sarees):
        await seed_sarees()
        page = await QueryPlanner(store).search(_request("xyzxyz-no-match"))

        assert page.items == []
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_punctuation_only_is_empty_page(self, store: SQLiteSearchStore, seed_sarees):
        await seed_sarees()
        page = await QueryPlanner(store).search(_request("?!"))

        assert page.items == []
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_all_terms_required(self, store: SQLiteSearchStore, seed_sarees):
        """Every term must match; "cotton silk" matches neither saree alone."""
        await seed_sarees()
        page = await QueryPlanner(store).search(_request("cotton silk"))

        assert page.items == []

    @pytest.mark.asyncio
    async def test_prefix_and_accent_matching(self, store: SQLiteSearchStore, seed_sarees):
        ids = await seed_sarees()
        page = await QueryPlanner(store).search(_request("Banár"))

        assert {ids["premium"], ids["banarasi"], ids["heritage"]} <= {item.id for item in page.items}

    @pytest.mark.asyncio
    async def test_matches_brand_tags_and_sku(self, store: SQLiteSearchStore, seed_sarees):
        ids = await seed_sarees()
        planner = QueryPlanner(store)

        assert [i.id for i in (await planner.search(_request("royal weaves"))).items] == [ids["premium"]]
        assert [i.id for i in (await planner.search(_request("handloom"))).items] == [ids["premium"]]
        assert [i.id for i in (await planner.search(_request("RW-BAN-001"))).items] == [ids["premium"]]

    @pytest.mark.asyncio
    async def test_title_outranks_body(self, store: SQLiteSearchStore, catalog: Catalog):
        """A title hit ranks above a description-only hit."""
        in_body = await catalog.create_product("Plain Shawl", "plain-shawl", description="pashmina wool")
        in_title = await catalog.create_product("Pashmina Shawl", "pashmina-shawl", description="wool")

        page = await QueryPlanner(store).search(_request("pashmina"))

        assert [item.id for item in page.items] == [in_title, in_body]


class TestVisibility:
    """Hidden products never appear, whatever the filters or sort."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sort", ALL_SORTS)
    async def test_hidden_products_excluded(self, store: SQLiteSearchStore, seed_sarees, sort):
        ids = await seed_sarees()
        hidden = {ids["draft"], ids["scheduled"], ids["expired"]}
        planner = QueryPlanner(store)

        for kwargs in ({}, {"category_id": ids["sarees"]}, {"category_id": ids["fabrics"]},
                       {"min_price": 0, "max_price": 10 ** 9}):
            page = await planner.search(_request("silk saree", sort=sort, **kwargs))
            assert hidden.isdisjoint(item.id for item in page.items)

    @pytest.mark.asyncio
    async def test_window_boundaries(self, store: SQLiteSearchStore, catalog: Catalog, now):
        """publish_at is inclusive, unpublish_at exclusive."""
        opening = await catalog.create_product("Window Saree A", "window-a", publish_at=now)
        closing = await catalog.create_product("Window Saree B", "window-b", unpublish_at=now)

        page = await QueryPlanner(store).search(_request("window saree"), now=now)
        found = {item.id for item in page.items}

        assert opening in found
        assert closing not in found

    @pytest.mark.asyncio
    async def test_becomes_visible_when_published(self, store: SQLiteSearchStore, catalog: Catalog):
        product_id = await catalog.create_product("Later Saree", "later-saree", published=False)
        planner = QueryPlanner(store)

        assert (await planner.search(_request("later"))).items == []

        await catalog.set_published(product_id, True)
        assert [i.id for i in (await planner.search(_request("later"))).items] == [product_id]


class TestFiltersAndSorting:
    """Tests for price filters and sort orders."""

    @pytest.mark.asyncio
    async def test_price_bounds_inclusive(self, store: SQLiteSearchStore, seed_sarees):
        ids = await seed_sarees()
        page = await QueryPlanner(store).search(
            _request("saree", min_price=80000, max_price=125000)
        )

        assert {item.id for item in page.items} == {ids["premium"], ids["banarasi"]}

    @pytest.mark.asyncio
    async def test_price_uses_cheapest_variant(self, store: SQLiteSearchStore, seed_sarees):
        ids = await seed_sarees()
        page = await QueryPlanner(store).search(_request("classic"))

        assert [(item.id, item.price) for item in page.items] == [(ids["banarasi"], 80000)]

    @pytest.mark.asyncio
    async def test_product_without_variant_prices_zero(self, store: SQLiteSearchStore, catalog: Catalog):
        product_id = await catalog.create_product("Sample Dupatta", "sample-dupatta")
        page = await QueryPlanner(store).search(_request("dupatta", max_price=0))

        assert [(item.id, item.price) for item in page.items] == [(product_id, 0)]

    @pytest.mark.asyncio
    async def test_price_sorts(self, store: SQLiteSearchStore, seed_sarees):
        await seed_sarees()
        planner = QueryPlanner(store)

        ascending = [i.price for i in (await planner.search(_request("saree", sort="price_asc"))).items]
        descending = [i.price for i in (await planner.search(_request("saree", sort="price_desc"))).items]

        assert ascending == [45000, 80000, 125000]
        assert descending == [125000, 80000, 45000]

    @pytest.mark.asyncio
    async def test_newest_sort(self, store: SQLiteSearchStore, seed_many):
        ids = await seed_many(5)
        page = await QueryPlanner(store).search(_request("kurta", sort="newest"))

        assert [item.id for item in page.items] == list(reversed(ids))

    @pytest.mark.asyncio
    async def test_relevance_sort_descending(self, store: SQLiteSearchStore, seed_sarees):
        await seed_sarees()
        page = await QueryPlanner(store).search(_request("banarasi"))
        scores = [item.score for item in page.items]

        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_limit_respected(self, store: SQLiteSearchStore, seed_many):
        await seed_many(25)
        page = await QueryPlanner(store).search(_request("kurta", limit=1000))

        assert len(page.items) <= 100
        assert len(page.items) == 25


class TestPagination:
    """Tests for cursor pagination."""

    @pytest.mark.asyncio
    async def test_25_items_in_pages_of_10(self, store: SQLiteSearchStore, seed_many):
        ids = await seed_many(25)
        pages = await _collect(QueryPlanner(store), "kurta", limit=10)

        assert [len(page.items) for page in pages] == [10, 10, 5]
        assert pages[0].next_cursor is not None
        assert pages[1].next_cursor is not None
        assert pages[2].next_cursor is None

        seen = [item.id for page in pages for item in page.items]
        assert len(seen) == len(set(seen))
        assert set(seen) == set(ids)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sort", ALL_SORTS)
    async def test_pages_continue_sort_order(self, store: SQLiteSearchStore, seed_many, sort):
        """Concatenated pages equal one large page, for every sort mode."""
        await seed_many(13)
        planner = QueryPlanner(store)

        single = await planner.search(_request("kurta", sort=sort, limit=100))
        pages = await _collect(planner, "kurta", sort=sort, limit=4)

        assert [i.id for page in pages for i in page.items] == [i.id for i in single.items]

    @pytest.mark.asyncio
    async def test_exact_page_has_no_cursor(self, store: SQLiteSearchStore, seed_many):
        await seed_many(10)
        page = await QueryPlanner(store).search(_request("kurta", limit=10))

        assert len(page.items) == 10
        assert page.next_cursor is None

    @pytest.mark.asyncio
    async def test_cursor_carries_sort_key(self, store: SQLiteSearchStore, seed_many):
        await seed_many(6)
        request = _request("kurta", sort="price_asc", limit=2)
        page = await QueryPlanner(store).search(request)

        cursor = decode_cursor(page.next_cursor)
        assert cursor.product_id == page.items[-1].id
        assert cursor.key == RankingKey(KeyKind.PRICE, page.items[-1].price)
        assert cursor.fingerprint == request.fingerprint()

    @pytest.mark.asyncio
    async def test_corrupted_cursor_rejected(self, store: SQLiteSearchStore, seed_many):
        await seed_many(3)
        with pytest.raises(CursorError):
            await QueryPlanner(store).search(_request("kurta", cursor="garbage!!"))

    @pytest.mark.asyncio
    async def test_cursor_from_other_query_rejected(self, store: SQLiteSearchStore, seed_many):
        await seed_many(6)
        planner = QueryPlanner(store)
        page = await planner.search(_request("kurta", limit=2))

        with pytest.raises(CursorError):
            await planner.search(_request("cotton", cursor=page.next_cursor, limit=2))

    @pytest.mark.asyncio
    async def test_cursor_from_other_sort_rejected(self, store: SQLiteSearchStore, seed_many):
        await seed_many(6)
        planner = QueryPlanner(store)
        page = await planner.search(_request("kurta", sort="price_asc", limit=2))

        with pytest.raises(CursorError):
            await planner.search(_request("kurta", sort="price_desc", cursor=page.next_cursor, limit=2))

    @pytest.mark.asyncio
    async def test_wrong_key_kind_rejected(self, store: SQLiteSearchStore):
        """A cursor whose key does not fit the sort is rejected even with a matching fingerprint."""
        request = _request("kurta", sort="newest")
        token = encode_cursor(1, RankingKey(KeyKind.PRICE, 100), request.fingerprint())

        with pytest.raises(CursorError):
            await QueryPlanner(store).search(_request("kurta", sort="newest", cursor=token))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sort", ALL_SORTS)
    async def test_writes_between_pages_keep_continuation(
        self, store: SQLiteSearchStore, catalog: Catalog, seed_many, now, sort
    ):
        """Products created between pages neither repeat nor skip existing rows."""
        ids = await seed_many(12)
        planner = QueryPlanner(store)
        first = await planner.search(_request("kurta", sort=sort, limit=4))
        first_ids = [item.id for item in first.items]

        for n in range(5):
            await catalog.create_product(
                f"Cotton Kurta Extra {n}",
                f"cotton-kurta-extra-{n}",
                brand="Loom Co",
                description="Everyday cotton kurta.",
                variants=[1000 + n * 100],
                created_at=now + timedelta(minutes=n + 1),
            )

        rest = await _collect(planner, "kurta", cursor=first.next_cursor, sort=sort, limit=4)
        rest_ids = [item.id for page in rest for item in page.items]

        assert set(first_ids).isdisjoint(rest_ids)
        assert len(rest_ids) == len(set(rest_ids))
        assert set(ids) - set(first_ids) <= set(rest_ids)

    @pytest.mark.asyncio
    async def test_relevance_page_two_after_bulk_insert(
        self, store: SQLiteSearchStore, catalog: Catalog, seed_many
    ):
        """Page two of a relevance search continues where page one stopped after new matches arrive."""
        ids = await seed_many(25)
        planner = QueryPlanner(store)
        first = await planner.search(_request("kurta", limit=10))

        for n in range(10):
            await catalog.create_product(
                f"Cotton Kurta Late {n}",
                f"cotton-kurta-late-{n}",
                brand="Loom Co",
                description="Everyday cotton kurta.",
                variants=[1000],
            )

        second = await planner.search(_request("kurta", limit=10, cursor=first.next_cursor))

        assert [item.id for item in first.items] == list(reversed(ids))[:10]
        assert [item.id for item in second.items] == list(reversed(ids))[10:20]

    @pytest.mark.asyncio
    async def test_score_ignores_rest_of_catalog(self, store: SQLiteSearchStore, catalog: Catalog):
        """A product's relevance score does not move when other products are indexed."""
        product_id = await catalog.create_product(
            "Linen Kurta", "linen-kurta", description="Breathable linen kurta."
        )
        planner = QueryPlanner(store)
        before = (await planner.search(_request("linen kurta"))).items[0].score

        for n in range(5):
            await catalog.create_product(
                f"Linen Shirt {n}", f"linen-shirt-{n}", description="Linen kurta style shirt, linen weave."
            )
        after = {item.id: item.score for item in (await planner.search(_request("linen kurta"))).items}

        assert after[product_id] == before
