import pytest

from tienda.constants import subcategories_for
from tienda.services.pricing import effective_price, has_offer, units_subtotal, weight_subtotal
from tienda.utils.formatters import money, money_short, number_es
from tienda.utils.validators import (
    ValidationError,
    normalize_promotion,
    parse_quantities,
    parse_quantity,
    validate_product_form,
)


@pytest.mark.parametrize(
    "value, expected",
    [(None, 0), ("", 0), ("  ", 0), ("0", 0), ("7", 7), (12, 12), ("900", 900)],
)
def test_parse_quantity(value, expected):
    assert parse_quantity(value, "kilos", 900) == expected


@pytest.mark.parametrize("value", ["901", "-1", "1.5", "abc", "1e3"])
def test_parse_quantity_rejects(value):
    with pytest.raises(ValueError):
        parse_quantity(value, "kilos", 900)


def test_grams_allow_up_to_999():
    assert parse_quantities(grams="999") == {"kg": 0, "grams": 999, "units": 0}
    with pytest.raises(ValueError):
        parse_quantities(grams="1000")


@pytest.mark.parametrize("value", [None, "", "-", "0", "-5", 0])
def test_promotion_not_positive_is_none(value):
    assert normalize_promotion(value) is None


def test_promotion_accepts_comma_decimal():
    assert normalize_promotion("1250,5") == 1250.5


def test_product_form_ok():
    data = validate_product_form(
        {
            "name": " Tomate perita ",
            "price": "1500,0",
            "category": "Verdura",
            "subcategory": "Tomates y pimientos",
            "unit_type": "kg",
            "promotion_price": "",
            "image_url": "",
            "is_paused": "on",
        }
    )

    assert data == {
        "name": "Tomate perita",
        "price": 1500.0,
        "category": "Verdura",
        "subcategory": "Tomates y pimientos",
        "unit_type": "kg",
        "promotion_price": None,
        "image_url": None,
        "is_paused": True,
    }


def test_product_form_collects_every_error():
    with pytest.raises(ValidationError) as exc:
        validate_product_form({"name": "", "price": "0", "category": "Juguetes", "unit_type": "litro"})

    assert len(exc.value.errors) == 4


def test_subcategory_must_belong_to_category():
    with pytest.raises(ValidationError, match="no pertenece"):
        validate_product_form(
            {"name": "Vino", "price": "10", "category": "Frutas", "subcategory": "Vinos", "unit_type": "unit"}
        )


def test_subcategory_all_is_stored_as_none():
    data = validate_product_form({"name": "Uva", "price": "10", "category": "Frutas", "subcategory": "Todo", "unit_type": "kg"})
    assert data["subcategory"] is None


def test_partial_form_only_touches_given_fields():
    assert validate_product_form({"price": "99,9"}, partial=True) == {"price": 99.9}
    assert validate_product_form({"promotion_price": "-"}, partial=True) == {"promotion_price": None}


def test_subcategories_for():
    assert subcategories_for("Frutas")[0] == "Todo"
    assert subcategories_for("Todo") == []


def test_pricing():
    assert has_offer(None) is False
    assert has_offer(0) is False
    assert has_offer(5) is True
    assert effective_price(100, 80) == 80
    assert effective_price(100, 0) == 100
    assert weight_subtotal(100, 1, 500) == pytest.approx(150)
    assert units_subtotal(25, 4) == 100


def test_number_es():
    assert number_es(1234567.891, 2, 2) == "1.234.567,89"
    assert number_es(1500, 0, 2) == "1.500"
    assert number_es(1500.5, 0, 2) == "1.500,5"


def test_money():
    assert money(1500) == "$1.500,00"
    assert money_short(1500) == "$1.500"
    assert money_short(0.25) == "$0,25"
