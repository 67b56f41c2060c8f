from __future__ import annotations

import logging
import secrets
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode, urlsplit

from fastapi import FastAPI, File, Form, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

from tienda.config import settings
from tienda.constants import (
    ALL,
    CATEGORIES,
    GRAMS_STEP,
    MAIN_CATEGORIES,
    MAX_KG,
    MAX_UNITS,
    SORT_ALPHABETICAL,
    SORT_OPTIONS,
    UNIT_KG,
    UNIT_TYPES,
    subcategories_for,
)
from tienda.db.factory import make_backends
from tienda.db.local import UPLOAD_URL_PREFIX
from tienda.db.models import AuthError, BackendError, Product
from tienda.services.auth import AdminSessions
from tienda.services.cart import BUTTON_LABELS, CartStore, QuantityDraft
from tienda.services.catalog import CatalogFeed, CatalogFilters
from tienda.services.checkout import checkout_url, quantity_text
from tienda.services.pricing import effective_price, has_offer
from tienda.services.products import ProductAdmin
from tienda.utils.formatters import money, money_short

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
TEMPLATES_DIR = BASE_DIR / "templates"
STATIC_DIR = BASE_DIR / "static"

SESSION_COOKIE = "tienda_sid"
ADMIN_COOKIE = "tienda_admin"
ONE_YEAR = 60 * 60 * 24 * 365

app = FastAPI(title="Tienda San Luis")

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
templates.env.filters["money"] = money
templates.env.filters["money_short"] = money_short
templates.env.filters["quantity_text"] = quantity_text
templates.env.globals["unit_label"] = UNIT_TYPES
templates.env.globals["button_labels"] = BUTTON_LABELS

if STATIC_DIR.exists():
    app.mount("/static", StaticFiles(directory=str(STATIC_DIR)), name="static")
app.mount(UPLOAD_URL_PREFIX, StaticFiles(directory=settings.upload_dir, check_dir=False), name="uploads")


class SessionCache(OrderedDict):
    """Per-browser objects keyed by sid; the least recently used is evicted past maxsize."""

    def __init__(self, maxsize: int):
        super().__init__()
        self.maxsize = maxsize

    def lookup(self, sid: str) -> Any:
        value = self.get(sid)
        if value is not None:
            self.move_to_end(sid)
        return value

    def put(self, sid: str, value: Any) -> None:
        self[sid] = value
        self.move_to_end(sid)
        while len(self) > self.maxsize:
            old, _ = self.popitem(last=False)
            logger.debug("evicted session state %s", old)


# estado por navegador, clave = cookie tienda_sid; un carrito desalojado se
# vuelve a leer del storage
CARTS = SessionCache(settings.max_sessions)
FEEDS = SessionCache(settings.max_sessions)


@app.on_event("startup")
def _startup() -> None:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
    if getattr(app.state, "backends", None) is None:
        app.state.backends = make_backends()
    backends = app.state.backends
    app.state.sessions = AdminSessions(backends.auth)
    app.state.sessions.subscribe(lambda event, s: logger.info("auth %s: %s", event, s.email))
    app.state.admin = ProductAdmin(backends.products, backends.images)


@app.on_event("shutdown")
async def _shutdown() -> None:
    backends = getattr(app.state, "backends", None)
    if backends is not None:
        await backends.close()


@app.middleware("http")
async def _session_cookie(request: Request, call_next):
    sid = request.cookies.get(SESSION_COOKIE)
    is_new = not sid
    if is_new:
        sid = secrets.token_hex(16)
    request.state.sid = sid
    response = await call_next(request)
    if is_new:
        response.set_cookie(SESSION_COOKIE, sid, max_age=ONE_YEAR, httponly=True, samesite="lax")
    return response


def _cart(request: Request) -> CartStore:
    sid = request.state.sid
    store = CARTS.lookup(sid)
    if store is None:
        store = CartStore(storage=app.state.backends.storage, key=f"cart:{sid}")
        store.subscribe(lambda s: logger.debug("cart %s: %s lines", s.key, s.total_line_count()))
        CARTS.put(sid, store)
    return store


def _feed(request: Request) -> CatalogFeed:
    sid = request.state.sid
    feed = FEEDS.lookup(sid)
    if feed is None:
        feed = CatalogFeed(app.state.backends.products)
        FEEDS.put(sid, feed)
    return feed


def _local_path(url: str) -> str:
    # solo redirecciones dentro del sitio
    parts = urlsplit(url or "/")
    if parts.scheme or parts.netloc or not parts.path.startswith("/"):
        return "/"
    return parts.path + (f"?{parts.query}" if parts.query else "")


def _back(url: str, msg: str = "") -> RedirectResponse:
    target = _local_path(url)
    if msg:
        target += ("&" if "?" in target else "?") + urlencode({"msg": msg})
    return RedirectResponse(url=target, status_code=303)


def _render(request: Request, name: str, ctx: dict[str, Any]) -> HTMLResponse:
    base = {
        "store_name": settings.store_name,
        "cart_count": _cart(request).total_line_count(),
    }
    base.update(ctx)
    return templates.TemplateResponse(request, name, base)


def _cards(store: CartStore, products: List[Product]) -> List[Dict[str, Any]]:
    cards = []
    for p in products:
        draft = QuantityDraft(store, p)
        cards.append(
            {
                "product": p,
                "draft": draft,
                "offer": has_offer(p.promotion_price),
                "price": effective_price(p.price, p.promotion_price),
                "is_kg": p.unit_type == UNIT_KG,
            }
        )
    return cards


def _card_ctx(store: CartStore) -> Dict[str, Any]:
    return {
        "reset_count": store.reset_count,
        "max_kg": MAX_KG,
        "max_units": MAX_UNITS,
        "grams_step": GRAMS_STEP,
    }


# ---------------- storefront ----------------

@app.get("/", response_class=HTMLResponse)
async def index(
    request: Request,
    category: str = ALL,
    subcategory: str = ALL,
    q: str = "",
    sort: str = SORT_ALPHABETICAL,
    msg: str = "",
):
    filters = CatalogFilters.from_params(category, subcategory, q, sort)
    feed = _feed(request)
    await feed.set_filters(filters)
    store = _cart(request)
    return _render(
        request,
        "index.html",
        {
            "filters": filters,
            "feed": feed,
            "cards": _cards(store, feed.items),
            "categories": MAIN_CATEGORIES,
            "subcategories": subcategories_for(filters.category),
            "sort_options": SORT_OPTIONS,
            "message": msg,
            "next_url": str(request.url.path) + (f"?{request.url.query}" if request.url.query else ""),
            **_card_ctx(store),
        },
    )


@app.get("/catalog/more", response_class=HTMLResponse)
async def catalog_more(request: Request, gen: int = -1, next: str = "/"):
    feed = _feed(request)
    if gen != feed.generation:
        # respuesta para un filtro que ya cambió
        return Response(status_code=204, headers={"X-Has-More": "0"})

    fresh = await feed.load_more()
    store = _cart(request)
    response = templates.TemplateResponse(
        request,
        "_product_cards.html",
        {
            "cards": _cards(store, fresh),
            "error": feed.error,
            "next_url": _local_path(next),
            **_card_ctx(store),
        },
    )
    response.headers["X-Has-More"] = "1" if feed.can_load_more or feed.loading else "0"
    return response


# ---------------- cart ----------------

@app.post("/cart/add")
async def cart_add(
    request: Request,
    product_id: int = Form(...),
    kg: str = Form(""),
    grams: str = Form(""),
    units: str = Form(""),
    reset: int = Form(0),
    next: str = Form("/"),
):
    store = _cart(request)
    try:
        product = await app.state.backends.products.get(product_id)
    except BackendError as e:
        logger.error("cart add: product #%s lookup failed: %s", product_id, e)
        return _back(next, "No se pudo agregar el producto. Probá de nuevo.")
    if product is None or product.is_paused:
        return _back(next, "Ese producto ya no está disponible.")

    draft = QuantityDraft(store, product)
    if reset == store.reset_count:
        try:
            draft.set(kg=kg, grams=grams, units=units)
        except ValueError as e:
            return _back(next, f"Cantidad inválida: {e}")
    # si el canasto se vació después de dibujar la tarjeta, se ignoran sus valores
    draft.commit()
    return _back(next)


@app.post("/cart/remove")
async def cart_remove(request: Request, product_id: int = Form(...), next: str = Form("/cart")):
    _cart(request).remove(product_id)
    return _back(next)


@app.post("/cart/clear")
async def cart_clear(request: Request, next: str = Form("/cart")):
    _cart(request).clear()
    return _back(next)


@app.get("/cart", response_class=HTMLResponse)
async def cart_view(request: Request, msg: str = ""):
    store = _cart(request)
    total = store.total_price()
    return _render(
        request,
        "cart.html",
        {
            "lines": store.lines,
            "total": total,
            "whatsapp_url": checkout_url(store.lines, total, settings.whatsapp_number),
            "message": msg,
        },
    )


@app.get("/checkout")
async def checkout(request: Request):
    store = _cart(request)
    url = checkout_url(store.lines, store.total_price(), settings.whatsapp_number)
    if url is None:
        return _back("/cart", "El canasto está vacío.")
    return RedirectResponse(url=url, status_code=303)


# ---------------- admin ----------------

def _admin_session(request: Request):
    return app.state.sessions.get(request.cookies.get(ADMIN_COOKIE))


def _login_redirect() -> RedirectResponse:
    return RedirectResponse(url="/admin/login", status_code=303)


async def _image_tuple(image: Optional[UploadFile]):
    if image is None or not image.filename:
        return None
    content = await image.read()
    return (image.filename, content, image.content_type) if content else None


@app.get("/admin/login", response_class=HTMLResponse)
def admin_login_get(request: Request):
    return _render(request, "admin_login.html", {"error": "", "email": ""})


@app.post("/admin/login")
async def admin_login_post(request: Request, email: str = Form(...), password: str = Form(...)):
    try:
        token = await app.state.sessions.sign_in(email, password)
    except AuthError as e:
        return _render(request, "admin_login.html", {"error": str(e), "email": email})
    response = RedirectResponse(url="/admin", status_code=303)
    response.set_cookie(ADMIN_COOKIE, token, httponly=True, samesite="lax", max_age=settings.session_hours * 3600)
    return response


@app.get("/admin/logout")
async def admin_logout(request: Request):
    await app.state.sessions.sign_out(request.cookies.get(ADMIN_COOKIE))
    response = RedirectResponse(url="/admin/login", status_code=303)
    response.delete_cookie(ADMIN_COOKIE)
    return response


@app.get("/admin", response_class=HTMLResponse)
async def admin_products(request: Request, q: str = "", msg: str = ""):
    session = _admin_session(request)
    if session is None:
        return _login_redirect()
    error = ""
    try:
        products, total = await app.state.admin.list(q)
    except BackendError as e:
        logger.error("admin list failed: %s", e)
        products, total, error = [], 0, "No se pudieron cargar los productos."
    return _render(
        request,
        "admin_products.html",
        {"products": products, "total": total, "q": q, "message": msg, "error": error, "admin": session},
    )


def _form_ctx(product: Optional[Product], form: Dict[str, Any], error: str = "") -> Dict[str, Any]:
    return {
        "product": product,
        "form": form,
        "error": error,
        "categories": CATEGORIES,
        "unit_types": UNIT_TYPES,
    }


def _form_from_product(p: Product) -> Dict[str, Any]:
    return {
        "name": p.name,
        "price": p.price,
        "category": p.category,
        "subcategory": p.subcategory or ALL,
        "unit_type": p.unit_type,
        "promotion_price": "" if p.promotion_price is None else p.promotion_price,
        "image_url": p.image_url or "",
        "is_paused": p.is_paused,
    }


@app.get("/admin/products/new", response_class=HTMLResponse)
def admin_product_new(request: Request):
    if _admin_session(request) is None:
        return _login_redirect()
    form = {"unit_type": UNIT_KG, "subcategory": ALL}
    return _render(request, "admin_product_form.html", _form_ctx(None, form))


@app.post("/admin/products")
async def admin_product_create(
    request: Request,
    name: str = Form(""),
    price: str = Form(""),
    category: str = Form(""),
    subcategory: str = Form(ALL),
    unit_type: str = Form(UNIT_KG),
    promotion_price: str = Form(""),
    image_url: str = Form(""),
    is_paused: str = Form(""),
    image: Optional[UploadFile] = File(None),
):
    if _admin_session(request) is None:
        return _login_redirect()
    form = dict(
        name=name,
        price=price,
        category=category,
        subcategory=subcategory,
        unit_type=unit_type,
        promotion_price=promotion_price,
        image_url=image_url,
        is_paused=is_paused,
    )
    ok, err, product = await app.state.admin.create(form, await _image_tuple(image))
    if not ok:
        return _render(request, "admin_product_form.html", _form_ctx(None, form, err))
    return _back("/admin", f"Producto creado: {product.name}")


@app.get("/admin/products/{product_id}/edit", response_class=HTMLResponse)
async def admin_product_edit(request: Request, product_id: int):
    if _admin_session(request) is None:
        return _login_redirect()
    try:
        product = await app.state.admin.get(product_id)
    except BackendError as e:
        logger.error("admin edit: load #%s failed: %s", product_id, e)
        return _back("/admin", "No se pudo cargar el producto.")
    if product is None:
        return _back("/admin", "Producto no encontrado.")
    return _render(request, "admin_product_form.html", _form_ctx(product, _form_from_product(product)))


@app.post("/admin/products/{product_id}")
async def admin_product_update(
    request: Request,
    product_id: int,
    name: str = Form(""),
    price: str = Form(""),
    category: str = Form(""),
    subcategory: str = Form(ALL),
    unit_type: str = Form(UNIT_KG),
    promotion_price: str = Form(""),
    image_url: str = Form(""),
    is_paused: str = Form(""),
    image: Optional[UploadFile] = File(None),
):
    if _admin_session(request) is None:
        return _login_redirect()
    form = dict(
        name=name,
        price=price,
        category=category,
        subcategory=subcategory,
        unit_type=unit_type,
        promotion_price=promotion_price,
        image_url=image_url,
        is_paused=is_paused,
    )
    ok, err, product = await app.state.admin.update(product_id, form, await _image_tuple(image))
    if not ok:
        existing = None
        try:
            existing = await app.state.admin.get(product_id)
        except BackendError:
            logger.warning("admin update: reload of #%s failed", product_id)
        return _render(request, "admin_product_form.html", _form_ctx(existing, form, err))
    return _back("/admin", f"Producto guardado: {product.name}")


@app.post("/admin/products/{product_id}/pause")
async def admin_product_pause(request: Request, product_id: int):
    if _admin_session(request) is None:
        return _login_redirect()
    ok, err, product = await app.state.admin.toggle_paused(product_id)
    if not ok:
        return _back("/admin", err)
    state = "pausado" if product.is_paused else "activo"
    return _back("/admin", f"{product.name}: {state}")


@app.post("/admin/products/{product_id}/delete")
async def admin_product_delete(request: Request, product_id: int):
    if _admin_session(request) is None:
        return _login_redirect()
    ok, err = await app.state.admin.delete(product_id)
    return _back("/admin", "Producto borrado." if ok else err)
