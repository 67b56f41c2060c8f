from __future__ import annotations

from typing import Any, Dict, List, Optional

from tienda.constants import ALL, CATEGORIES, MAX_GRAMS, MAX_KG, MAX_UNITS, UNIT_TYPES


class ValidationError(ValueError):
    def __init__(self, errors: List[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


def require_positive_number(v: float, name: str = "value") -> None:
    if v <= 0:
        raise ValueError(f"{name} must be > 0")


def parse_price(text: Any) -> float:
    return float(str(text).strip().replace(",", "."))


def parse_quantity(value: Any, name: str, maximum: int) -> int:
    """Whole number in [0, maximum]; empty input counts as 0."""
    if value is None:
        return 0
    text = str(value).strip()
    if text == "":
        return 0
    if not text.isdigit():
        raise ValueError(f"{name} debe ser un número entero")
    n = int(text)
    if n > maximum:
        raise ValueError(f"{name} no puede superar {maximum}")
    return n


def parse_quantities(kg: Any = None, grams: Any = None, units: Any = None) -> Dict[str, int]:
    return {
        "kg": parse_quantity(kg, "kilos", MAX_KG),
        "grams": parse_quantity(grams, "gramos", MAX_GRAMS),
        "units": parse_quantity(units, "unidades", MAX_UNITS),
    }


def normalize_subcategory(category: str, subcategory: Optional[str]) -> Optional[str]:
    sub = (subcategory or "").strip()
    if not sub or sub == ALL:
        return None
    if sub not in CATEGORIES.get(category, []):
        raise ValueError(f"la subcategoría {sub!r} no pertenece a {category!r}")
    return sub


def normalize_promotion(value: Any) -> Optional[float]:
    text = str(value).strip() if value is not None else ""
    if text in ("", "-"):
        return None
    promo = parse_price(text)
    return promo if promo > 0 else None


def validate_product_form(form: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
    """
    Admin product fields -> clean column dict. Collects every error before
    raising so the form can show them all at once. With partial=True only
    the fields present in `form` are checked and returned.
    """
    errors: List[str] = []
    out: Dict[str, Any] = {}

    def present(key: str) -> bool:
        return not partial or key in form

    if present("name"):
        name = str(form.get("name") or "").strip()
        if not name:
            errors.append("El nombre es obligatorio.")
        out["name"] = name

    if present("price"):
        try:
            price = parse_price(form.get("price"))
            require_positive_number(price, "price")
            out["price"] = price
        except (TypeError, ValueError):
            errors.append("El precio debe ser un número mayor a 0.")

    category = str(form.get("category") or "").strip()
    if present("category"):
        if category not in CATEGORIES:
            errors.append("Elegí una categoría válida.")
        out["category"] = category

    if present("subcategory") or present("category"):
        try:
            out["subcategory"] = normalize_subcategory(category, form.get("subcategory"))
        except ValueError as e:
            errors.append(str(e))

    if present("unit_type"):
        unit_type = str(form.get("unit_type") or "").strip()
        if unit_type not in UNIT_TYPES:
            errors.append("El tipo de unidad debe ser kg o unit.")
        out["unit_type"] = unit_type

    if present("promotion_price"):
        try:
            out["promotion_price"] = normalize_promotion(form.get("promotion_price"))
        except (TypeError, ValueError):
            errors.append("El precio de promoción debe ser un número.")

    if present("image_url"):
        out["image_url"] = (str(form.get("image_url") or "").strip() or None)

    if present("is_paused"):
        out["is_paused"] = str(form.get("is_paused") or "").lower() in ("1", "true", "on", "yes")

    if errors:
        raise ValidationError(errors)
    return out
