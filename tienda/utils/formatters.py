from tienda.config import settings


def number_es(v: float, min_decimals: int = 0, max_decimals: int = 2) -> str:
    """es-AR style: 1234.5 -> '1.234,5' (dot thousands, comma decimals)."""
    text = f"{v:,.{max_decimals}f}"
    if max_decimals > min_decimals and "." in text:
        whole, frac = text.split(".")
        frac = frac.rstrip("0")
        if len(frac) < min_decimals:
            frac = frac.ljust(min_decimals, "0")
        text = f"{whole}.{frac}" if frac else whole
    return text.replace(",", "_").replace(".", ",").replace("_", ".")


def money(v: float) -> str:
    return f"{settings.currency}{number_es(v, settings.decimals, settings.decimals)}"


def money_short(v: float) -> str:
    return f"{settings.currency}{number_es(v, 0, settings.decimals)}"
