import asyncio

import pytest

from tienda.db.factory import Backends
from tienda.db.local import LocalAuth, LocalImageStorage
from tienda.db.models import Product
from tienda.db.sqlite import SqliteBackend, SqliteKeyValueStorage

ADMIN_EMAIL = "admin@tienda.test"
ADMIN_PASSWORD = "secreto"


def make_product(
    id: int = 1,
    name: str = "Banana",
    category: str = "Frutas",
    price: float = 100.0,
    unit_type: str = "kg",
    promotion_price=None,
    **kwargs,
) -> Product:
    return Product(
        id=id,
        name=name,
        category=category,
        price=price,
        unit_type=unit_type,
        promotion_price=promotion_price,
        **kwargs,
    )


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "tienda.db")


@pytest.fixture
def backend(db_path):
    return SqliteBackend(db_path)


@pytest.fixture
def seed(backend):
    def _seed(*rows):
        return [asyncio.run(backend.insert(dict(r))) for r in rows]

    return _seed


@pytest.fixture
def backends(db_path, tmp_path):
    return Backends(
        products=SqliteBackend(db_path),
        images=LocalImageStorage(str(tmp_path / "uploads")),
        auth=LocalAuth(email=ADMIN_EMAIL, password=ADMIN_PASSWORD, session_hours=1),
        storage=SqliteKeyValueStorage(db_path),
    )
