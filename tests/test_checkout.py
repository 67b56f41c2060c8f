from urllib.parse import parse_qs, urlsplit

from tienda.services.cart import CartStore, ProductSnapshot
from tienda.services.checkout import build_order_message, checkout_url, quantity_text, whatsapp_url


def filled_cart():
    store = CartStore()
    store.add_or_update(ProductSnapshot(1, "Banana", 1000.0, "kg"), kg=1, grams=500)
    store.add_or_update(ProductSnapshot(2, "Agua & Soda", 300.0, "unit"), units=3)
    return store


def test_quantity_text():
    store = filled_cart()
    banana, agua = store.lines

    assert quantity_text(banana) == "1 kg 500 gr"
    assert quantity_text(agua) == "3 unidades"
    assert quantity_text(agua, short=True) == "3 u."


def test_order_message():
    store = filled_cart()

    message = build_order_message(store.lines, store.total_price())

    assert message.splitlines() == [
        "Hola! Quisiera hacer el siguiente pedido:",
        "",
        "- Banana: 1 kg 500 gr",
        "- Agua & Soda: 3 unidades",
        "",
        "Total aproximado: $2.400",
    ]


def test_whatsapp_url_encodes_message():
    url = whatsapp_url("+54 9 11 3275-0873", "Hola! 1 kg & 2 u.\n(ok)")

    assert url.startswith("https://wa.me/5491132750873?text=")
    assert "%26" in url
    assert "%0A" in url
    assert "(ok)" in url
    assert parse_qs(urlsplit(url).query)["text"] == ["Hola! 1 kg & 2 u.\n(ok)"]


def test_checkout_needs_lines():
    assert checkout_url([], 0, "5491132750873") is None


def test_checkout_url_round_trips_message():
    store = filled_cart()

    url = checkout_url(store.lines, store.total_price(), "5491132750873")

    text = parse_qs(urlsplit(url).query)["text"][0]
    assert text == build_order_message(store.lines, store.total_price())
