from __future__ import annotations

from typing import Optional


def has_offer(promotion_price: Optional[float]) -> bool:
    return promotion_price is not None and promotion_price > 0


def effective_price(price: float, promotion_price: Optional[float]) -> float:
    """Sale price: the promotion when it is set and positive, else the base price."""
    return float(promotion_price) if has_offer(promotion_price) else float(price)


def weight_subtotal(price: float, kg: int, grams: int) -> float:
    # el precio es por kilo
    return (kg + grams / 1000) * price


def units_subtotal(price: float, units: int) -> float:
    return units * price
