ALL = "Todo"

CATEGORIES = {
    "Frutas": ["Cítricos", "Bayas", "Con carozo"],
    "Verdura": ["Hojas verdes", "De raíz", "Tomates y pimientos"],
    "Carnicería": ["Vacuno", "Cerdo", "Pollo"],
    "Fiambres": ["Jamón cocido", "Queso", "Picada"],
    "Almacén": ["Pastas y arroces", "Conservas", "Legumbres", "Lacteos", "Tabaco", "Golosinas"],
    "Limpieza": ["Ropa", "Multiusos", "Baño"],
    "Bebidas": ["Agua", "Gaseosas", "Energizantes", "Vinos", "Licores", "Sodas", "Cervezas"],
}

# orden de los botones del storefront
MAIN_CATEGORIES = [ALL] + list(CATEGORIES.keys())

UNIT_KG = "kg"
UNIT_UNIT = "unit"
UNIT_TYPES = {
    UNIT_KG: "kg",
    UNIT_UNIT: "c/u",
}

SORT_ALPHABETICAL = "alphabetical"
SORT_PRICE_ASC = "price_asc"
SORT_PRICE_DESC = "price_desc"
SORT_OFFERS = "offers"
SORT_OPTIONS = {
    SORT_ALPHABETICAL: "Alfabético",
    SORT_PRICE_ASC: "Menor precio",
    SORT_PRICE_DESC: "Mayor precio",
    SORT_OFFERS: "Ofertas primero",
}

MAX_KG = 900
MAX_GRAMS = 999
MAX_UNITS = 900
GRAMS_STEP = 100

CART_STORAGE_KEY = "cart"


def subcategories_for(category: str) -> list[str]:
    """Subcategories of a category with "Todo" first, or [] if it has none."""
    subs = CATEGORIES.get(category)
    return [ALL] + subs if subs else []
