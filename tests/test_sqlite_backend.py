import asyncio
import sqlite3

import pytest

from tienda.db.models import BackendError, Order, ProductQuery
from tienda.db.sqlite import SqliteBackend, compile_order, compile_where


def test_compile_where_and_order():
    q = ProductQuery(
        eq=(("is_paused", False), ("subcategory", None)),
        ilike=("name", "50%_off"),
        order=(Order("promotion_price", desc=True, nulls_first=False), Order("name")),
    )
    where, params = compile_where(q)

    assert where == " WHERE is_paused = ? AND subcategory IS NULL AND casefold(name) LIKE ? ESCAPE '\\'"
    assert params == [0, "%50\\%\\_off%"]
    assert compile_order(q) == " ORDER BY promotion_price DESC NULLS LAST, name ASC"


def test_unknown_column_is_rejected():
    with pytest.raises(ValueError):
        compile_where(ProductQuery(eq=(("price; DROP TABLE products", 1),)))


def test_insert_get_update_delete(backend):
    async def run():
        p = await backend.insert(
            {"name": "Limón", "category": "Frutas", "subcategory": "Cítricos", "price": 1200.5, "unit_type": "kg"}
        )
        assert p.id > 0
        assert p.created_at
        assert p.is_paused is False

        got = await backend.get(p.id)
        assert got.name == "Limón"
        assert got.subcategory == "Cítricos"

        updated = await backend.update(p.id, {"promotion_price": 999.0, "is_paused": True})
        assert updated.promotion_price == 999.0
        assert updated.is_paused is True

        assert await backend.update(p.id + 100, {"price": 1}) is None
        assert await backend.delete(p.id) is True
        assert await backend.delete(p.id) is False
        assert await backend.get(p.id) is None

    asyncio.run(run())


def test_select_counts_exact_total(backend, seed):
    seed(*({"name": f"P{i}", "category": "Almacén", "price": i + 1, "unit_type": "unit"} for i in range(7)))

    result = asyncio.run(backend.select(ProductQuery(order=(Order("price", desc=True),), offset=2, limit=3)))

    assert result.total == 7
    assert [p.price for p in result.items] == [5, 4, 3]


def test_search_ignores_case_outside_ascii(backend, seed):
    seed({"name": "ÑOQUIS de papa", "category": "Almacén", "price": 10, "unit_type": "unit"})

    result = asyncio.run(backend.select(ProductQuery(ilike=("name", "ñoquis"))))

    assert [p.name for p in result.items] == ["ÑOQUIS de papa"]


def test_invalid_unit_type_is_a_backend_error(backend):
    with pytest.raises(BackendError):
        asyncio.run(backend.insert({"name": "X", "category": "Frutas", "price": 1, "unit_type": "litro"}))


def test_missing_table_is_a_backend_error(db_path):
    backend = SqliteBackend(db_path)
    conn = sqlite3.connect(db_path)
    conn.execute("DROP TABLE products")
    conn.commit()
    conn.close()

    with pytest.raises(BackendError):
        asyncio.run(backend.select(ProductQuery()))
