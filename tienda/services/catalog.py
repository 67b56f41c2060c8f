"""
Catalog query engine.

Turning filter state into the visible product list is a two-phase pipeline:

1. build_query() -> a ProductQuery the backend can run (equality filters,
   substring search, simple column ordering, offset/limit, exact count);
2. resort_page() -> client-side corrections the backend ordering cannot
   express: effective price (promotion or base price) and offers first.

CatalogFeed holds the pages loaded so far for one shopper and guards the
scroll-driven loading against duplicate triggers and stale responses.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Set

from tienda.config import settings
from tienda.constants import (
    ALL,
    CATEGORIES,
    SORT_ALPHABETICAL,
    SORT_OFFERS,
    SORT_OPTIONS,
    SORT_PRICE_ASC,
    SORT_PRICE_DESC,
)
from tienda.db.models import BackendError, Order, Product, ProductQuery, QueryResult
from tienda.services.pricing import effective_price, has_offer

logger = logging.getLogger(__name__)

LOAD_ERROR = "No se pudieron cargar los productos. Probá de nuevo."


class ProductSource(Protocol):
    async def select(self, query: ProductQuery) -> QueryResult: ...


@dataclass(frozen=True)
class CatalogFilters:
    category: str = ALL
    subcategory: str = ALL
    search: str = ""
    sort: str = SORT_ALPHABETICAL

    @classmethod
    def from_params(
        cls,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        search: Optional[str] = None,
        sort: Optional[str] = None,
    ) -> "CatalogFilters":
        """Normalize raw request values; anything unknown falls back to 'all'."""
        cat = category if category in CATEGORIES else ALL
        sub = subcategory if cat != ALL and subcategory in CATEGORIES[cat] else ALL
        return cls(
            category=cat,
            subcategory=sub,
            search=(search or "").strip(),
            sort=sort if sort in SORT_OPTIONS else SORT_ALPHABETICAL,
        )


def _order_for(sort: str) -> tuple:
    if sort == SORT_PRICE_ASC:
        return (Order("price"), Order("id"))
    if sort == SORT_PRICE_DESC:
        return (Order("price", desc=True), Order("id"))
    if sort == SORT_OFFERS:
        # agrupa los productos con promoción adelante en todas las páginas
        return (Order("promotion_price", desc=True, nulls_first=False), Order("name"), Order("id"))
    return (Order("name"), Order("id"))


def build_query(filters: CatalogFilters, offset: int = 0, limit: Optional[int] = None) -> ProductQuery:
    eq: List[tuple] = [("is_paused", False)]
    ilike = None
    if filters.search:
        # buscar ignora categoría y subcategoría
        ilike = ("name", filters.search)
    elif filters.category != ALL:
        eq.append(("category", filters.category))
        if filters.subcategory != ALL:
            eq.append(("subcategory", filters.subcategory))

    return ProductQuery(
        eq=tuple(eq),
        ilike=ilike,
        order=_order_for(filters.sort),
        offset=offset,
        limit=limit if limit is not None else settings.page_size,
    )


def _name_key(p: Product) -> Any:
    return p.name.casefold()


def resort_page(products: List[Product], sort: str) -> List[Product]:
    """Stable re-sort of one fetched page; the input list is not modified."""
    if sort == SORT_PRICE_ASC:
        return sorted(products, key=lambda p: effective_price(p.price, p.promotion_price))
    if sort == SORT_PRICE_DESC:
        return sorted(products, key=lambda p: effective_price(p.price, p.promotion_price), reverse=True)
    if sort == SORT_OFFERS:
        return sorted(products, key=lambda p: (not has_offer(p.promotion_price), _name_key(p)))
    return list(products)


class CatalogFeed:
    def __init__(self, backend: ProductSource, page_size: int | None = None, timeout: float | None = None):
        self.backend = backend
        self.page_size = page_size or settings.page_size
        self.timeout = timeout or settings.request_timeout
        self.filters = CatalogFilters()
        self.generation = 0
        self.items: List[Product] = []
        self.total = 0
        self.offset = 0
        self.has_more = True
        self.loading = False
        self.error: Optional[str] = None
        self._seen: Set[int] = set()

    @property
    def can_load_more(self) -> bool:
        return self.has_more and not self.loading and self.error is None

    def reset(self, filters: CatalogFilters) -> None:
        """Drop every loaded page; responses issued before this are ignored."""
        self.generation += 1
        self.filters = filters
        self.items = []
        self._seen = set()
        self.total = 0
        self.offset = 0
        self.has_more = True
        self.loading = False
        self.error = None

    async def set_filters(self, filters: CatalogFilters) -> List[Product]:
        self.reset(filters)
        return await self.load_more()

    async def load_more(self) -> List[Product]:
        """Fetch and append the next page. Returns only the newly shown products."""
        if not self.can_load_more:
            return []

        generation = self.generation
        query = build_query(self.filters, offset=self.offset, limit=self.page_size)
        self.loading = True
        try:
            result = await asyncio.wait_for(self.backend.select(query), timeout=self.timeout)
        except (BackendError, asyncio.TimeoutError) as e:
            if generation != self.generation:
                return []
            logger.warning("catalog page at offset %s failed: %s", query.offset, str(e) or type(e).__name__)
            self.error = LOAD_ERROR
            return []
        finally:
            # a newer generation owns the flag once reset() ran
            if generation == self.generation:
                self.loading = False

        if generation != self.generation:
            logger.debug("discarding page for stale generation %s (now %s)", generation, self.generation)
            return []

        self.offset += len(result.items)
        self.total = result.total
        self.has_more = bool(result.items) and self.offset < result.total

        fresh = [p for p in resort_page(result.items, self.filters.sort) if p.id not in self._seen]
        self._seen.update(p.id for p in fresh)
        self.items.extend(fresh)
        return fresh
