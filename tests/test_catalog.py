import asyncio

import pytest

from conftest import make_product
from tienda.db.models import BackendError, Order, QueryResult
from tienda.services.catalog import (
    LOAD_ERROR,
    CatalogFeed,
    CatalogFilters,
    build_query,
    resort_page,
)


class FakeBackend:
    """Serves slices of a fixed product list, recording every query."""

    def __init__(self, products, fail=False, delay=0.0):
        self.products = products
        self.fail = fail
        self.delay = delay
        self.queries = []

    async def select(self, query):
        self.queries.append(query)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise BackendError("connection refused")
        end = query.offset + query.limit if query.limit is not None else None
        return QueryResult(items=self.products[query.offset:end], total=len(self.products))


def products(n):
    return [make_product(id=i, name=f"Producto {i:02d}", price=float(i)) for i in range(1, n + 1)]


# ---------------- filters and query ----------------

def test_filters_from_params_normalizes_unknown_values():
    f = CatalogFilters.from_params("Juguetes", "Autos", "  pera ", "random")

    assert f == CatalogFilters(category="Todo", subcategory="Todo", search="pera", sort="alphabetical")


def test_filters_drop_subcategory_of_other_category():
    f = CatalogFilters.from_params("Frutas", "Vinos")
    assert (f.category, f.subcategory) == ("Frutas", "Todo")


def test_query_always_hides_paused_products():
    q = build_query(CatalogFilters(), limit=12)

    assert q.eq == (("is_paused", False),)
    assert q.order == (Order("name"), Order("id"))
    assert (q.offset, q.limit) == (0, 12)


def test_query_category_and_subcategory():
    q = build_query(CatalogFilters(category="Bebidas", subcategory="Vinos"), offset=24, limit=12)

    assert q.eq == (("is_paused", False), ("category", "Bebidas"), ("subcategory", "Vinos"))
    assert q.offset == 24


def test_search_overrides_category():
    q = build_query(CatalogFilters(category="Bebidas", subcategory="Vinos", search="ban"), limit=12)

    assert q.eq == (("is_paused", False),)
    assert q.ilike == ("name", "ban")


@pytest.mark.parametrize(
    "sort, expected",
    [
        ("price_asc", (Order("price"), Order("id"))),
        ("price_desc", (Order("price", desc=True), Order("id"))),
        ("offers", (Order("promotion_price", desc=True, nulls_first=False), Order("name"), Order("id"))),
    ],
)
def test_query_order_per_sort(sort, expected):
    assert build_query(CatalogFilters(sort=sort), limit=12).order == expected


# ---------------- page re-sort ----------------

def test_price_sort_uses_offer_price():
    cheap_offer = make_product(id=1, name="A", price=100, promotion_price=50)
    plain = make_product(id=2, name="B", price=80)

    assert [p.id for p in resort_page([plain, cheap_offer], "price_asc")] == [1, 2]
    assert [p.id for p in resort_page([cheap_offer, plain], "price_desc")] == [2, 1]


def test_price_sort_is_stable_for_ties():
    a = make_product(id=1, name="A", price=10)
    b = make_product(id=2, name="B", price=20, promotion_price=10)

    assert [p.id for p in resort_page([b, a], "price_asc")] == [2, 1]


def test_offers_first_then_alphabetical():
    a = make_product(id=1, name="A", price=10, promotion_price=5)
    b = make_product(id=2, name="B", price=10)
    c = make_product(id=3, name="C", price=10, promotion_price=7)

    assert [p.name for p in resort_page([b, c, a], "offers")] == ["A", "C", "B"]


def test_zero_promotion_is_not_an_offer():
    a = make_product(id=1, name="A", price=10, promotion_price=0)
    b = make_product(id=2, name="B", price=10, promotion_price=3)

    assert [p.name for p in resort_page([a, b], "offers")] == ["B", "A"]


def test_alphabetical_keeps_backend_order():
    page = [make_product(id=2, name="b"), make_product(id=1, name="a")]
    assert resort_page(page, "alphabetical") == page


# ---------------- feed ----------------

def test_feed_pages_until_total():
    backend = FakeBackend(products(30))
    feed = CatalogFeed(backend, page_size=12, timeout=1)

    async def run():
        await feed.set_filters(CatalogFilters())
        await feed.load_more()
        await feed.load_more()
        return await feed.load_more()

    extra = asyncio.run(run())

    assert extra == []
    assert [p.id for p in feed.items] == list(range(1, 31))
    assert feed.has_more is False
    assert [q.offset for q in backend.queries] == [0, 12, 24]


def test_feed_empty_page_stops_loading():
    feed = CatalogFeed(FakeBackend([]), page_size=12, timeout=1)
    asyncio.run(feed.set_filters(CatalogFilters()))

    assert feed.items == []
    assert feed.has_more is False
    assert feed.can_load_more is False


def test_feed_ignores_duplicate_trigger_while_loading():
    backend = FakeBackend(products(30), delay=0.05)
    feed = CatalogFeed(backend, page_size=12, timeout=1)

    async def run():
        feed.reset(CatalogFilters())
        return await asyncio.gather(feed.load_more(), feed.load_more())

    first, second = asyncio.run(run())

    assert len(first) == 12
    assert second == []
    assert len(backend.queries) == 1


def test_feed_discards_stale_response():
    backend = FakeBackend(products(5), delay=0.05)
    feed = CatalogFeed(backend, page_size=12, timeout=1)

    async def run():
        feed.reset(CatalogFilters())
        pending = asyncio.ensure_future(feed.load_more())
        await asyncio.sleep(0)
        feed.reset(CatalogFilters(search="zzz"))
        return await pending

    assert asyncio.run(run()) == []
    assert feed.items == []
    assert feed.filters.search == "zzz"
    assert feed.has_more is True
    assert feed.loading is False


def test_feed_error_stops_loading():
    feed = CatalogFeed(FakeBackend(products(5), fail=True), page_size=12, timeout=1)
    asyncio.run(feed.set_filters(CatalogFilters()))

    assert feed.error == LOAD_ERROR
    assert feed.loading is False
    assert feed.can_load_more is False


def test_feed_timeout_is_an_error():
    feed = CatalogFeed(FakeBackend(products(5), delay=0.5), page_size=12, timeout=0.01)
    asyncio.run(feed.set_filters(CatalogFilters()))

    assert feed.error == LOAD_ERROR


def test_feed_unexpected_error_does_not_leave_loading_stuck():
    backend = FakeBackend(products(3))

    async def broken(query):
        raise ValueError("bad row")

    backend.select = broken
    feed = CatalogFeed(backend, page_size=12, timeout=1)

    with pytest.raises(ValueError):
        asyncio.run(feed.set_filters(CatalogFilters()))
    assert feed.loading is False

    del backend.select
    assert asyncio.run(feed.load_more())
    assert len(feed.items) == 3


def test_feed_reset_clears_error():
    backend = FakeBackend(products(3), fail=True)
    feed = CatalogFeed(backend, page_size=12, timeout=1)
    asyncio.run(feed.set_filters(CatalogFilters()))

    backend.fail = False
    asyncio.run(feed.set_filters(CatalogFilters()))

    assert feed.error is None
    assert len(feed.items) == 3


def test_feed_drops_already_shown_ids():
    # un producto que cambia de posición entre páginas no se repite
    backend = FakeBackend(products(4))
    feed = CatalogFeed(backend, page_size=2, timeout=1)

    async def run():
        await feed.set_filters(CatalogFilters())
        backend.products = [backend.products[1]] + backend.products
        await feed.load_more()

    asyncio.run(run())
    assert [p.id for p in feed.items] == [1, 2, 3]


def test_feed_price_sort_is_page_local():
    items = [
        make_product(id=1, name="a", price=10, promotion_price=1),
        make_product(id=2, name="b", price=5),
        make_product(id=3, name="c", price=20, promotion_price=2),
    ]
    feed = CatalogFeed(FakeBackend(items), page_size=2, timeout=1)

    async def run():
        await feed.set_filters(CatalogFilters(sort="price_asc"))
        await feed.load_more()

    asyncio.run(run())
    assert [p.id for p in feed.items] == [1, 2, 3]


# ---------------- against sqlite ----------------

def test_search_finds_across_categories(backend, seed):
    seed(
        {"name": "Banana", "category": "Frutas", "price": 900, "unit_type": "kg"},
        {"name": "Pan de BANANA", "category": "Almacén", "price": 1500, "unit_type": "unit"},
        {"name": "Manzana", "category": "Frutas", "price": 700, "unit_type": "kg"},
    )
    feed = CatalogFeed(backend, page_size=12, timeout=5)

    asyncio.run(feed.set_filters(CatalogFilters.from_params("Bebidas", "Vinos", "ban")))

    assert sorted(p.name for p in feed.items) == ["Banana", "Pan de BANANA"]


def test_offers_group_first_across_pages(backend, seed):
    seed(
        {"name": "A", "category": "Frutas", "price": 10, "unit_type": "kg"},
        {"name": "B", "category": "Frutas", "price": 10, "unit_type": "kg", "promotion_price": 8},
        {"name": "C", "category": "Frutas", "price": 10, "unit_type": "kg"},
        {"name": "D", "category": "Frutas", "price": 10, "unit_type": "kg", "promotion_price": 9},
    )
    feed = CatalogFeed(backend, page_size=2, timeout=5)

    async def run():
        await feed.set_filters(CatalogFilters(sort="offers"))
        await feed.load_more()

    asyncio.run(run())
    assert [p.name for p in feed.items[:2]] == ["B", "D"]
    assert sorted(p.name for p in feed.items[2:]) == ["A", "C"]


def test_paused_products_are_hidden(backend, seed):
    seed(
        {"name": "Visible", "category": "Frutas", "price": 10, "unit_type": "kg"},
        {"name": "Oculto", "category": "Frutas", "price": 10, "unit_type": "kg", "is_paused": True},
    )
    feed = CatalogFeed(backend, page_size=12, timeout=5)
    asyncio.run(feed.set_filters(CatalogFilters()))

    assert [p.name for p in feed.items] == ["Visible"]
    assert feed.total == 1
