from aiogram.fsm.state import State, StatesGroup


class ProductAdd(StatesGroup):
    waiting_name = State()
    waiting_category = State()
    waiting_subcategory = State()
    waiting_unit = State()
    waiting_price = State()
