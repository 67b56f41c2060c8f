from aiogram.types import KeyboardButton, ReplyKeyboardMarkup

from tienda.constants import CATEGORIES, UNIT_TYPES

SKIP = "-"


def main_kb() -> ReplyKeyboardMarkup:
    return ReplyKeyboardMarkup(
        keyboard=[
            [KeyboardButton(text="/help"), KeyboardButton(text="/products")],
            [KeyboardButton(text="/product_add"), KeyboardButton(text="/ping")],
        ],
        resize_keyboard=True,
    )


def _rows(labels, per_row: int = 3):
    buttons = [KeyboardButton(text=t) for t in labels]
    return [buttons[i:i + per_row] for i in range(0, len(buttons), per_row)]


def categories_kb() -> ReplyKeyboardMarkup:
    rows = _rows(CATEGORIES.keys())
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)


def subcategories_kb(category: str) -> ReplyKeyboardMarkup:
    rows = _rows(CATEGORIES.get(category, []))
    rows.append([KeyboardButton(text=SKIP), KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)


def units_kb() -> ReplyKeyboardMarkup:
    rows = _rows(UNIT_TYPES.keys())
    rows.append([KeyboardButton(text="/cancel")])
    return ReplyKeyboardMarkup(keyboard=rows, resize_keyboard=True, one_time_keyboard=True)
