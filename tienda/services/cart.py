"""
Cart store: the single source of truth for a shopper's in-progress order.

Lines are kept in insertion order, one per product id. Each line carries a
snapshot of the product taken when it was added, plus a quantity that is
either a WeightQuantity (kg products) or a UnitQuantity (unit products),
never both. Every mutation writes the whole list to key-value storage and
then notifies subscribers.
"""
from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol, Union

from tienda.constants import CART_STORAGE_KEY, MAX_KG, MAX_UNITS, UNIT_KG, UNIT_TYPES, UNIT_UNIT
from tienda.db.models import Product, StorageError
from tienda.services.pricing import units_subtotal, weight_subtotal
from tienda.utils.validators import parse_quantities

logger = logging.getLogger(__name__)


class KeyValueStorage(Protocol):
    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    def __init__(self, data: Dict[str, str] | None = None):
        self.data: Dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


@dataclass(frozen=True)
class WeightQuantity:
    kg: int = 0
    grams: int = 0

    @property
    def is_empty(self) -> bool:
        return self.kg == 0 and self.grams == 0

    @property
    def total_kg(self) -> float:
        return self.kg + self.grams / 1000


@dataclass(frozen=True)
class UnitQuantity:
    units: int = 0

    @property
    def is_empty(self) -> bool:
        return self.units == 0


Quantity = Union[WeightQuantity, UnitQuantity]


def quantity_for(unit_type: str, kg: int = 0, grams: int = 0, units: int = 0) -> Quantity:
    """Pick the variant that matches the unit type; the other fields are ignored."""
    if unit_type == UNIT_KG:
        return WeightQuantity(kg=kg, grams=grams)
    if unit_type == UNIT_UNIT:
        return UnitQuantity(units=units)
    raise ValueError(f"unknown unit type: {unit_type!r}")


@dataclass(frozen=True)
class ProductSnapshot:
    product_id: int
    name: str
    price: float
    unit_type: str
    image_url: Optional[str] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None

    @classmethod
    def from_product(cls, product: Product) -> "ProductSnapshot":
        # precio base congelado al momento de agregar; la oferta solo se muestra en la tarjeta
        return cls(
            product_id=product.id,
            name=product.name,
            price=product.price,
            unit_type=product.unit_type,
            image_url=product.image_url,
            category=product.category,
            subcategory=product.subcategory,
        )


@dataclass(frozen=True)
class CartLine:
    snapshot: ProductSnapshot
    quantity: Quantity

    def __post_init__(self):
        expected = WeightQuantity if self.snapshot.unit_type == UNIT_KG else UnitQuantity
        if not isinstance(self.quantity, expected):
            raise ValueError(
                f"{self.snapshot.unit_type} line needs {expected.__name__}, got {type(self.quantity).__name__}"
            )

    @property
    def product_id(self) -> int:
        return self.snapshot.product_id

    @property
    def subtotal(self) -> float:
        return line_subtotal(self)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self.snapshot)
        if isinstance(self.quantity, WeightQuantity):
            data["quantity_kg"] = self.quantity.kg
            data["quantity_grams"] = self.quantity.grams
        else:
            data["quantity_units"] = self.quantity.units
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CartLine":
        if not isinstance(data, dict):
            raise ValueError("cart line must be an object")
        unit_type = data["unit_type"]
        if unit_type not in UNIT_TYPES:
            raise ValueError(f"unknown unit type: {unit_type!r}")
        snapshot = ProductSnapshot(
            product_id=int(data["product_id"]),
            name=str(data["name"]),
            price=float(data["price"]),
            unit_type=unit_type,
            image_url=data.get("image_url"),
            category=data.get("category"),
            subcategory=data.get("subcategory"),
        )
        quantity = quantity_for(
            unit_type,
            kg=int(data.get("quantity_kg") or 0),
            grams=int(data.get("quantity_grams") or 0),
            units=int(data.get("quantity_units") or 0),
        )
        if quantity.is_empty:
            raise ValueError("stored cart line has zero quantity")
        return cls(snapshot=snapshot, quantity=quantity)


def line_subtotal(line: CartLine) -> float:
    q = line.quantity
    if isinstance(q, WeightQuantity):
        return weight_subtotal(line.snapshot.price, q.kg, q.grams)
    return units_subtotal(line.snapshot.price, q.units)


Listener = Callable[["CartStore"], None]


class CartStore:
    def __init__(self, storage: KeyValueStorage | None = None, key: str = CART_STORAGE_KEY):
        self.key = key
        self._storage = storage
        self._lines: List[CartLine] = []
        self._listeners: List[Listener] = []
        self.reset_count = 0
        self._restore()

    # ---------------- persistence ----------------

    @property
    def is_persistent(self) -> bool:
        return self._storage is not None

    def _degrade(self, action: str, err: Exception) -> None:
        logger.error("cart storage %s failed for %s, keeping cart in memory: %s", action, self.key, err)
        self._storage = None

    def _restore(self) -> None:
        if self._storage is None:
            return
        try:
            raw = self._storage.get(self.key)
        except StorageError as e:
            self._degrade("read", e)
            return
        if raw is None:
            return

        try:
            data = json.loads(raw)
            if not isinstance(data, list):
                raise ValueError(f"expected a list, got {type(data).__name__}")
            lines = [CartLine.from_dict(d) for d in data]
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("discarding corrupted cart %s: %s", self.key, e)
            try:
                self._storage.remove(self.key)
            except StorageError as se:
                self._degrade("remove", se)
            return

        # un producto repetido en el storage: gana la última línea
        by_id: Dict[int, CartLine] = {}
        for line in lines:
            by_id[line.product_id] = line
        self._lines = list(by_id.values())

    def _persist(self) -> None:
        if self._storage is None:
            return
        try:
            self._storage.set(self.key, json.dumps([l.to_dict() for l in self._lines], ensure_ascii=False))
        except StorageError as e:
            self._degrade("write", e)

    def _changed(self) -> None:
        self._persist()
        for listener in list(self._listeners):
            listener(self)

    # ---------------- subscribe ----------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ---------------- queries ----------------

    @property
    def lines(self) -> List[CartLine]:
        return list(self._lines)

    def get(self, product_id: int) -> Optional[CartLine]:
        for line in self._lines:
            if line.product_id == product_id:
                return line
        return None

    def total_line_count(self) -> int:
        return len(self._lines)

    def total_price(self) -> float:
        return sum((line_subtotal(l) for l in self._lines), 0.0)

    # ---------------- mutations ----------------

    def add_or_update(
        self,
        snapshot: ProductSnapshot,
        kg: Any = None,
        grams: Any = None,
        units: Any = None,
    ) -> Optional[CartLine]:
        """
        Replace (or append) the product's line with these quantities.
        A zero total removes the line instead. Raises ValueError on invalid
        input without touching the cart.
        """
        q = parse_quantities(kg, grams, units)
        quantity = quantity_for(snapshot.unit_type, **q)

        idx = next((i for i, l in enumerate(self._lines) if l.product_id == snapshot.product_id), -1)
        if quantity.is_empty:
            if idx == -1:
                return None
            del self._lines[idx]
            self._changed()
            return None

        line = CartLine(snapshot=snapshot, quantity=quantity)
        if idx == -1:
            self._lines.append(line)
        else:
            self._lines[idx] = line
        self._changed()
        return line

    def remove(self, product_id: int) -> bool:
        before = len(self._lines)
        self._lines = [l for l in self._lines if l.product_id != product_id]
        if len(self._lines) == before:
            return False
        self._changed()
        return True

    def clear(self) -> None:
        self._lines = []
        self.reset_count += 1
        self._changed()


BUTTON_BUY = "buy"
BUTTON_MODIFY = "modify"
BUTTON_BOUGHT = "bought"

BUTTON_LABELS = {
    BUTTON_BUY: "Comprar",
    BUTTON_MODIFY: "Modificar",
    BUTTON_BOUGHT: "Comprado",
}


class QuantityDraft:
    """
    Local quantity inputs of one product card, reconciled against the cart.

    The draft starts from the product's cart quantity. If the shopper edits
    it, committing replaces the line with the edited amount; if not, each
    commit adds one more kilo (grams kept) or one more unit.
    """

    def __init__(self, store: CartStore, product: Product):
        self.store = store
        self.product = product
        self.kg, self.grams, self.units = self._cart_values()

    def _cart_values(self):
        line = self.store.get(self.product.id)
        if line is None:
            return 0, 0, 0
        q = line.quantity
        if isinstance(q, WeightQuantity):
            return q.kg, q.grams, 0
        return 0, 0, q.units

    @property
    def in_cart(self) -> bool:
        return self.store.get(self.product.id) is not None

    @property
    def is_modified(self) -> bool:
        return (self.kg, self.grams, self.units) != self._cart_values()

    @property
    def button(self) -> str:
        if not self.in_cart:
            return BUTTON_BUY
        return BUTTON_MODIFY if self.is_modified else BUTTON_BOUGHT

    @property
    def subtotal(self) -> float:
        price = self.product.price
        if self.product.unit_type == UNIT_KG:
            return weight_subtotal(price, self.kg, self.grams)
        return units_subtotal(price, self.units)

    def set(self, kg: Any = None, grams: Any = None, units: Any = None) -> "QuantityDraft":
        q = parse_quantities(kg, grams, units)
        self.kg, self.grams, self.units = q["kg"], q["grams"], q["units"]
        return self

    def commit(self) -> Optional[CartLine]:
        snapshot = ProductSnapshot.from_product(self.product)
        if not self.is_modified:
            if self.product.unit_type == UNIT_KG:
                self.kg = min(MAX_KG, self.kg + 1)
            else:
                self.units = min(MAX_UNITS, self.units + 1)
        return self.store.add_or_update(snapshot, kg=self.kg, grams=self.grams, units=self.units)

    def discard(self) -> bool:
        """'Quitar': drop the line and zero the inputs."""
        self.kg = self.grams = self.units = 0
        return self.store.remove(self.product.id)


