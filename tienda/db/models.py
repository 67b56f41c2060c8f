"""
Backend-neutral row and query types.

Both backends (local SQLite and the hosted Supabase project) speak these
types, so the catalog engine and the admin service never see SQL or
PostgREST syntax.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from tienda.constants import UNIT_KG

PRODUCT_COLUMNS = (
    "id",
    "name",
    "category",
    "subcategory",
    "price",
    "unit_type",
    "promotion_price",
    "image_url",
    "is_paused",
    "created_at",
)

# columnas que el admin puede escribir
WRITABLE_COLUMNS = (
    "name",
    "category",
    "subcategory",
    "price",
    "unit_type",
    "promotion_price",
    "image_url",
    "is_paused",
)


class BackendError(Exception):
    """Network or database failure talking to the product backend."""


class StorageError(Exception):
    """Durable key-value storage could not be read or written."""


class AuthError(Exception):
    """Sign-in rejected or auth service unavailable."""


@dataclass(frozen=True)
class Product:
    id: int
    name: str
    category: str
    price: float
    unit_type: str = UNIT_KG
    subcategory: Optional[str] = None
    promotion_price: Optional[float] = None
    image_url: Optional[str] = None
    is_paused: bool = False
    created_at: Optional[str] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Product":
        promo = row.get("promotion_price")
        return cls(
            id=int(row["id"]),
            name=str(row["name"]),
            category=str(row.get("category") or ""),
            subcategory=row.get("subcategory") or None,
            price=float(row.get("price") or 0),
            unit_type=str(row.get("unit_type") or UNIT_KG),
            promotion_price=float(promo) if promo is not None else None,
            image_url=row.get("image_url") or None,
            is_paused=bool(row.get("is_paused")),
            created_at=str(row["created_at"]) if row.get("created_at") else None,
        )


@dataclass(frozen=True)
class Order:
    column: str
    desc: bool = False
    nulls_first: Optional[bool] = None  # None = backend default


@dataclass(frozen=True)
class ProductQuery:
    """
    What the catalog asks of a backend:
    - eq: column = value for every pair
    - ilike: (column, text) case-insensitive substring match
    - order: columns in priority order
    - offset/limit: range to return; count is always exact
    """

    eq: Tuple[Tuple[str, Any], ...] = ()
    ilike: Optional[Tuple[str, str]] = None
    order: Tuple[Order, ...] = ()
    offset: int = 0
    limit: Optional[int] = None


@dataclass
class QueryResult:
    items: List[Product] = field(default_factory=list)
    total: int = 0


@dataclass(frozen=True)
class AuthSession:
    email: str
    access_token: str
    expires_at: datetime
