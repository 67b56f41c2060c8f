"""
Optional Telegram admin front end over ProductAdmin. The web panel covers the
same operations and does not import this package.
"""
import shlex

from aiogram import Router, html
from aiogram.filters import Command
from aiogram.fsm.context import FSMContext
from aiogram.types import Message, ReplyKeyboardRemove

from tienda.bot.keyboards import SKIP, categories_kb, main_kb, subcategories_kb, units_kb
from tienda.bot.states import ProductAdd
from tienda.config import settings
from tienda.constants import CATEGORIES, UNIT_TYPES
from tienda.db.models import BackendError, Product
from tienda.services.pricing import has_offer
from tienda.services.products import ProductAdmin
from tienda.utils.formatters import money_short
from tienda.utils.validators import parse_price

router = Router()

MAX_LISTED = 50


def _is_admin(message: Message) -> bool:
    try:
        return int(message.from_user.id) == int(settings.admin_id)
    except Exception:
        return False


def _args(message: Message) -> list[str]:
    return (message.text or "").split()[1:]


def _parse_id(text: str) -> int | None:
    t = text.strip().lstrip("#")
    return int(t) if t.isdigit() else None


def product_line(p: Product) -> str:
    price = money_short(p.price)
    if has_offer(p.promotion_price):
        price = f"<s>{price}</s> {money_short(p.promotion_price)}"
    where = p.category + (f" / {p.subcategory}" if p.subcategory else "")
    paused = " ⏸" if p.is_paused else ""
    return f"#{p.id} {html.quote(p.name)} ({html.quote(where)}) {price} {UNIT_TYPES[p.unit_type]}{paused}"


@router.message(Command("start"))
async def cmd_start(message: Message):
    if not _is_admin(message):
        return
    await message.answer(f"✅ {html.quote(settings.store_name)}: bot de administración", reply_markup=main_kb())


@router.message(Command("cancel"))
async def cmd_cancel(message: Message, state: FSMContext):
    if not _is_admin(message):
        return
    await state.clear()
    await message.answer("❎ Cancelado. Podés escribir comandos de nuevo.", reply_markup=ReplyKeyboardRemove())


@router.message(Command("help"))
async def cmd_help(message: Message):
    if not _is_admin(message):
        return

    text = (
        "<b>Comandos</b>\n\n"
        "/start, /help, /ping\n"
        "/cancel: cancelar la carga en curso\n\n"
        "<b>Productos</b>\n"
        "/products [texto]: listar (incluye pausados)\n"
        "/product_add: asistente de alta\n"
        '/product_add "Nombre" CATEGORÍA kg|unit PRECIO [SUBCATEGORÍA]\n'
        "/price ID PRECIO\n"
        "/promo ID PRECIO|-\n"
        "/pause ID, /resume ID\n"
        "/delete ID\n"
    )
    await message.answer(text)


@router.message(Command("ping"))
async def cmd_ping(message: Message):
    if not _is_admin(message):
        return
    await message.answer("pong ✅")


@router.message(Command("products"))
async def cmd_products(message: Message, admin: ProductAdmin):
    if not _is_admin(message):
        return

    parts = (message.text or "").split(maxsplit=1)
    search = parts[1].strip() if len(parts) > 1 else ""
    try:
        items, total = await admin.list(search, limit=MAX_LISTED)
    except BackendError as e:
        await message.answer(f"❌ {html.quote(str(e))}")
        return

    if not items:
        await message.answer("No hay productos. Agregá uno: /product_add")
        return

    lines = [f"<b>Productos ({total}):</b>"]
    lines.extend(product_line(p) for p in items)
    if total > len(items):
        lines.append(f"… y {total - len(items)} más, filtrá con /products texto")
    await message.answer("\n".join(lines))


@router.message(Command("product_add"))
async def cmd_product_add(message: Message, state: FSMContext, admin: ProductAdmin):
    if not _is_admin(message):
        return

    try:
        args = shlex.split(message.text or "")
    except ValueError:
        args = []

    if len(args) >= 5:
        _, name, category, unit_type, price = args[:5]
        form = {
            "name": name,
            "category": category,
            "unit_type": unit_type,
            "price": price,
            "subcategory": args[5] if len(args) > 5 else None,
        }
        ok, err, product = await admin.create(form)
        if not ok:
            await message.answer(f"❌ {html.quote(err)}")
            return
        await message.answer(f"✅ Producto agregado: {product_line(product)}")
        return

    await state.clear()
    await state.set_state(ProductAdd.waiting_name)
    await message.answer(
        "Ok, cargamos un producto.\n\n1/5) Escribí el NOMBRE\nCancelar: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_name)
async def product_add_name(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    name = (message.text or "").strip()
    if not name or name.startswith("/"):
        await message.answer("Escribí el nombre como texto. Cancelar: /cancel")
        return

    await state.update_data(name=name)
    await state.set_state(ProductAdd.waiting_category)
    await message.answer("2/5) Elegí la CATEGORÍA", reply_markup=categories_kb())


@router.message(ProductAdd.waiting_category)
async def product_add_category(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    category = (message.text or "").strip()
    if category not in CATEGORIES:
        await message.answer("Elegí una categoría del teclado. Cancelar: /cancel", reply_markup=categories_kb())
        return

    await state.update_data(category=category)
    await state.set_state(ProductAdd.waiting_subcategory)
    await message.answer(
        f"3/5) Elegí la SUBCATEGORÍA, o '{SKIP}' para ninguna",
        reply_markup=subcategories_kb(category),
    )


@router.message(ProductAdd.waiting_subcategory)
async def product_add_subcategory(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    raw = (message.text or "").strip()
    data = await state.get_data()
    category = data.get("category", "")
    if raw != SKIP and raw not in CATEGORIES.get(category, []):
        await message.answer(
            f"Elegí una subcategoría de {html.quote(category)} o '{SKIP}'. Cancelar: /cancel",
            reply_markup=subcategories_kb(category),
        )
        return

    await state.update_data(subcategory=None if raw == SKIP else raw)
    await state.set_state(ProductAdd.waiting_unit)
    await message.answer("4/5) ¿Se vende por kg o por unidad (unit)?", reply_markup=units_kb())


@router.message(ProductAdd.waiting_unit)
async def product_add_unit(message: Message, state: FSMContext):
    if not _is_admin(message):
        return

    unit_type = (message.text or "").strip().lower()
    if unit_type not in UNIT_TYPES:
        await message.answer("Respondé kg o unit. Cancelar: /cancel", reply_markup=units_kb())
        return

    await state.update_data(unit_type=unit_type)
    await state.set_state(ProductAdd.waiting_price)
    per = "por kilo" if unit_type == "kg" else "por unidad"
    await message.answer(
        f"5/5) Escribí el PRECIO {per}.\nEjemplo: 1250,50\nCancelar: /cancel",
        reply_markup=ReplyKeyboardRemove(),
    )


@router.message(ProductAdd.waiting_price)
async def product_add_price(message: Message, state: FSMContext, admin: ProductAdmin):
    if not _is_admin(message):
        return

    raw = (message.text or "").strip()
    try:
        price = parse_price(raw)
        if price <= 0:
            raise ValueError("price <= 0")
    except ValueError:
        await message.answer("El precio tiene que ser un número mayor a 0, por ejemplo 1250,50\nCancelar: /cancel")
        return

    data = await state.get_data()
    form = {**data, "price": price}
    try:
        ok, err, product = await admin.create(form)
    finally:
        await state.clear()

    if not ok:
        await message.answer(f"❌ {html.quote(err)}")
        return
    await message.answer(f"✅ Producto agregado: {product_line(product)}")


@router.message(Command("price"))
async def cmd_price(message: Message, admin: ProductAdmin):
    if not _is_admin(message):
        return

    args = _args(message)
    product_id = _parse_id(args[0]) if args else None
    if len(args) != 2 or product_id is None:
        await message.answer("Formato: /price ID PRECIO")
        return

    ok, err, product = await admin.set_price(product_id, args[1])
    if not ok:
        await message.answer(f"❌ {html.quote(err)}")
        return
    await message.answer(f"✅ Precio actualizado: {product_line(product)}")


@router.message(Command("promo"))
async def cmd_promo(message: Message, admin: ProductAdmin):
    if not _is_admin(message):
        return

    args = _args(message)
    product_id = _parse_id(args[0]) if args else None
    if len(args) != 2 or product_id is None:
        await message.answer("Formato: /promo ID PRECIO, o /promo ID - para quitar la oferta")
        return

    ok, err, product = await admin.set_promotion(product_id, args[1])
    if not ok:
        await message.answer(f"❌ {html.quote(err)}")
        return
    status = "Oferta actualizada" if has_offer(product.promotion_price) else "Oferta quitada"
    await message.answer(f"✅ {status}: {product_line(product)}")


async def _set_paused(message: Message, admin: ProductAdmin, paused: bool) -> None:
    args = _args(message)
    product_id = _parse_id(args[0]) if len(args) == 1 else None
    if product_id is None:
        await message.answer(f"Formato: /{'pause' if paused else 'resume'} ID")
        return

    ok, err, product = await admin.set_paused(product_id, paused)
    if not ok:
        await message.answer(f"❌ {html.quote(err)}")
        return
    status = "Pausado" if paused else "Reanudado"
    await message.answer(f"✅ {status}: {product_line(product)}")


@router.message(Command("pause"))
async def cmd_pause(message: Message, admin: ProductAdmin):
    if not _is_admin(message):
        return
    await _set_paused(message, admin, True)


@router.message(Command("resume"))
async def cmd_resume(message: Message, admin: ProductAdmin):
    if not _is_admin(message):
        return
    await _set_paused(message, admin, False)


@router.message(Command("delete"))
async def cmd_delete(message: Message, admin: ProductAdmin):
    if not _is_admin(message):
        return

    args = _args(message)
    product_id = _parse_id(args[0]) if len(args) == 1 else None
    if product_id is None:
        await message.answer("Formato: /delete ID")
        return

    ok, err = await admin.delete(product_id)
    if not ok:
        await message.answer(f"❌ {html.quote(err)}")
        return
    await message.answer(f"🗑 Producto #{product_id} borrado")
