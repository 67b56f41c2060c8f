from __future__ import annotations

from typing import List, Optional
from urllib.parse import quote

from tienda.services.cart import CartLine, WeightQuantity
from tienda.utils.formatters import money_short

GREETING = "Hola! Quisiera hacer el siguiente pedido:"

# mismo juego de caracteres que encodeURIComponent
URI_SAFE = "-_.!~*'()"


def quantity_text(line: CartLine, short: bool = False) -> str:
    q = line.quantity
    if isinstance(q, WeightQuantity):
        return f"{q.kg} kg {q.grams} gr"
    return f"{q.units} u." if short else f"{q.units} unidades"


def build_order_message(lines: List[CartLine], total: float) -> str:
    parts = [GREETING, ""]
    for line in lines:
        parts.append(f"- {line.snapshot.name}: {quantity_text(line)}")
    parts.append("")
    parts.append(f"Total aproximado: {money_short(total)}")
    return "\n".join(parts)


def whatsapp_url(number: str, message: str) -> str:
    digits = "".join(ch for ch in number if ch.isdigit())
    return f"https://wa.me/{digits}?text={quote(message, safe=URI_SAFE)}"


def checkout_url(lines: List[CartLine], total: float, number: str) -> Optional[str]:
    if not lines:
        return None
    return whatsapp_url(number, build_order_message(lines, total))
