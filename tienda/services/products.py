"""
Admin product operations.

Writes return (ok, err, product) so both the web panel and the Telegram bot
can show a message without try/except at every call site.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from tienda.db.models import BackendError, Order, Product, ProductQuery
from tienda.utils.validators import ValidationError, validate_product_form

logger = logging.getLogger(__name__)

Result = Tuple[bool, str, Optional[Product]]


class ProductAdmin:
    def __init__(self, backend: Any, images: Any = None):
        self.backend = backend
        self.images = images

    async def list(self, search: str = "", limit: int = 500) -> Tuple[List[Product], int]:
        # el admin ve también los pausados
        text = search.strip()
        query = ProductQuery(
            ilike=("name", text) if text else None,
            order=(Order("name"), Order("id")),
            limit=limit,
        )
        result = await self.backend.select(query)
        return result.items, result.total

    async def get(self, product_id: int) -> Optional[Product]:
        return await self.backend.get(product_id)

    async def _upload(self, image: Optional[Tuple[str, bytes, Optional[str]]]) -> Optional[str]:
        if not image or not image[1]:
            return None
        if self.images is None:
            raise BackendError("no hay almacenamiento de imágenes configurado")
        filename, content, content_type = image
        return await self.images.upload(filename, content, content_type)

    async def create(self, form: Dict[str, Any], image: Optional[Tuple[str, bytes, Optional[str]]] = None) -> Result:
        try:
            data = validate_product_form(form)
        except ValidationError as e:
            return False, str(e), None

        try:
            url = await self._upload(image)
            if url:
                data["image_url"] = url
            product = await self.backend.insert(data)
        except BackendError as e:
            logger.error("create product failed: %s", e)
            return False, f"Error al guardar el producto: {e}", None

        logger.info("product created: #%s %s", product.id, product.name)
        return True, "ok", product

    async def update(
        self,
        product_id: int,
        form: Dict[str, Any],
        image: Optional[Tuple[str, bytes, Optional[str]]] = None,
        partial: bool = False,
    ) -> Result:
        try:
            data = validate_product_form(form, partial=partial)
        except ValidationError as e:
            return False, str(e), None

        try:
            url = await self._upload(image)
            if url:
                data["image_url"] = url
            product = await self.backend.update(product_id, data)
        except BackendError as e:
            logger.error("update product #%s failed: %s", product_id, e)
            return False, f"Error al guardar el producto: {e}", None

        if product is None:
            return False, "producto no encontrado", None
        logger.info("product updated: #%s %s", product.id, product.name)
        return True, "ok", product

    async def set_price(self, product_id: int, price: Any) -> Result:
        return await self.update(product_id, {"price": price}, partial=True)

    async def set_promotion(self, product_id: int, promotion_price: Any) -> Result:
        return await self.update(product_id, {"promotion_price": promotion_price}, partial=True)

    async def set_paused(self, product_id: int, paused: bool) -> Result:
        return await self.update(product_id, {"is_paused": "1" if paused else ""}, partial=True)

    async def toggle_paused(self, product_id: int) -> Result:
        try:
            product = await self.get(product_id)
        except BackendError as e:
            logger.error("load product #%s failed: %s", product_id, e)
            return False, f"Error al leer el producto: {e}", None
        if product is None:
            return False, "producto no encontrado", None
        return await self.set_paused(product_id, not product.is_paused)

    async def delete(self, product_id: int) -> Tuple[bool, str]:
        try:
            deleted = await self.backend.delete(product_id)
        except BackendError as e:
            logger.error("delete product #%s failed: %s", product_id, e)
            return False, f"Error al borrar el producto: {e}"
        if not deleted:
            return False, "producto no encontrado"
        logger.info("product deleted: #%s", product_id)
        return True, "ok"
