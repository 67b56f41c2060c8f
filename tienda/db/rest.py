"""
Supabase backend: PostgREST rows, Storage objects and GoTrue password auth.

All three share one aiohttp session. As with the JS client, a successful
sign-in stores the user's access token on the client and later writes are
sent with it, so row-level security sees the admin user.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from tienda.config import settings
from tienda.db.local import safe_suffix
from tienda.db.models import (
    AuthError,
    AuthSession,
    BackendError,
    Product,
    ProductQuery,
    QueryResult,
)

logger = logging.getLogger(__name__)

PRODUCTS_TABLE = "products"
_CONTENT_RANGE_RE = re.compile(r"^(?:\d+-\d+|\*)/(\d+|\*)$")


def _literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def postgrest_params(query: ProductQuery) -> List[Tuple[str, str]]:
    params: List[Tuple[str, str]] = [("select", "*")]
    for column, value in query.eq:
        if value is None:
            params.append((column, "is.null"))
        else:
            params.append((column, f"eq.{_literal(value)}"))

    if query.ilike:
        column, text = query.ilike
        # * y % son comodines en ilike
        cleaned = text.replace("*", "").replace("%", "")
        params.append((column, f"ilike.*{cleaned}*"))

    if query.order:
        parts = []
        for o in query.order:
            part = f"{o.column}.{'desc' if o.desc else 'asc'}"
            if o.nulls_first is True:
                part += ".nullsfirst"
            elif o.nulls_first is False:
                part += ".nullslast"
            parts.append(part)
        params.append(("order", ",".join(parts)))

    if query.offset:
        params.append(("offset", str(int(query.offset))))
    if query.limit is not None:
        params.append(("limit", str(int(query.limit))))
    return params


def _product(row: Any) -> Product:
    try:
        return Product.from_row(row)
    except (KeyError, TypeError, ValueError) as e:
        raise BackendError(f"malformed product row: {e!r}") from e


def parse_content_range(value: Optional[str]) -> Optional[int]:
    """'0-11/57' -> 57, '*/0' -> 0; None when the header is missing or has no total."""
    if not value:
        return None
    m = _CONTENT_RANGE_RE.match(value.strip())
    if not m or m.group(1) == "*":
        return None
    return int(m.group(1))


class SupabaseClient:
    def __init__(self, url: str | None = None, key: str | None = None, timeout: float | None = None):
        self.url = (url or settings.supabase_url).rstrip("/")
        self.key = key or settings.supabase_key
        self.timeout = timeout or settings.request_timeout
        self.access_token: Optional[str] = None
        self.token_expires_at: Optional[datetime] = None
        self._http: Optional[aiohttp.ClientSession] = None
        if not self.url or not self.key:
            raise RuntimeError("SUPABASE_URL / SUPABASE_KEY are empty. Set them in .env")

    def _session(self) -> aiohttp.ClientSession:
        if self._http is None or self._http.closed:
            self._http = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout))
        return self._http

    def set_token(self, token: str, expires_at: datetime) -> None:
        self.access_token = token
        self.token_expires_at = expires_at

    def clear_token(self) -> None:
        self.access_token = None
        self.token_expires_at = None

    def bearer(self) -> str:
        """The signed-in user's token while it is valid, else the anon key."""
        if self.access_token and self.token_expires_at and datetime.now() >= self.token_expires_at:
            logger.info("admin token expired, back to the anon key")
            self.clear_token()
        return self.access_token or self.key

    def headers(self, extra: Dict[str, str] | None = None) -> Dict[str, str]:
        h = {
            "apikey": self.key,
            "Authorization": f"Bearer {self.bearer()}",
        }
        if extra:
            h.update(extra)
        return h

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Any = None,
        json_body: Any = None,
        data: bytes | None = None,
        headers: Dict[str, str] | None = None,
    ) -> Tuple[int, Dict[str, str], Any]:
        url = f"{self.url}{path}"
        try:
            async with self._session().request(
                method,
                url,
                params=params,
                json=json_body,
                data=data,
                headers=self.headers(headers),
            ) as resp:
                text = await resp.text()
                body = json.loads(text) if text else None
                return resp.status, dict(resp.headers), body
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise BackendError(f"{method} {path}: {e}") from e

    async def checked(self, method: str, path: str, **kwargs) -> Tuple[Dict[str, str], Any]:
        status, headers, body = await self.request(method, path, **kwargs)
        if status >= 400:
            message = body.get("message") if isinstance(body, dict) else body
            logger.warning("%s %s -> %s: %s", method, path, status, message)
            raise BackendError(f"{method} {path} -> {status}: {message}")
        return headers, body

    async def close(self) -> None:
        if self._http is not None and not self._http.closed:
            await self._http.close()


class SupabaseBackend:
    def __init__(self, client: SupabaseClient, table: str = PRODUCTS_TABLE):
        self.client = client
        self.path = f"/rest/v1/{table}"

    async def select(self, query: ProductQuery) -> QueryResult:
        headers, body = await self.client.checked(
            "GET",
            self.path,
            params=postgrest_params(query),
            headers={"Prefer": "count=exact"},
        )
        rows = body or []
        total = parse_content_range(headers.get("Content-Range"))
        return QueryResult(
            items=[_product(r) for r in rows],
            total=total if total is not None else query.offset + len(rows),
        )

    async def get(self, product_id: int) -> Optional[Product]:
        _, body = await self.client.checked(
            "GET", self.path, params=[("select", "*"), ("id", f"eq.{int(product_id)}")]
        )
        return _product(body[0]) if body else None

    async def insert(self, data: Dict[str, Any]) -> Product:
        _, body = await self.client.checked(
            "POST", self.path, json_body=data, headers={"Prefer": "return=representation"}
        )
        if not body:
            raise BackendError("insert returned no row")
        return _product(body[0])

    async def update(self, product_id: int, data: Dict[str, Any]) -> Optional[Product]:
        _, body = await self.client.checked(
            "PATCH",
            self.path,
            params=[("id", f"eq.{int(product_id)}")],
            json_body=data,
            headers={"Prefer": "return=representation"},
        )
        return _product(body[0]) if body else None

    async def delete(self, product_id: int) -> bool:
        _, body = await self.client.checked(
            "DELETE",
            self.path,
            params=[("id", f"eq.{int(product_id)}")],
            headers={"Prefer": "return=representation"},
        )
        return bool(body)

    async def close(self) -> None:
        await self.client.close()


class SupabaseStorage:
    def __init__(self, client: SupabaseClient, bucket: str | None = None):
        self.client = client
        self.bucket = bucket or settings.supabase_bucket

    def public_url(self, name: str) -> str:
        return f"{self.client.url}/storage/v1/object/public/{self.bucket}/{name}"

    async def upload(self, filename: str, content: bytes, content_type: str | None = None) -> str:
        name = f"products/{uuid.uuid4().hex}{safe_suffix(filename)}"
        await self.client.checked(
            "POST",
            f"/storage/v1/object/{self.bucket}/{name}",
            data=content,
            headers={
                "Content-Type": content_type or "application/octet-stream",
                "x-upsert": "false",
            },
        )
        return self.public_url(name)

    async def close(self) -> None:
        await self.client.close()


class SupabaseAuth:
    def __init__(self, client: SupabaseClient):
        self.client = client

    async def sign_in(self, email: str, password: str) -> AuthSession:
        try:
            status, _, body = await self.client.request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "password"},
                json_body={"email": email.strip(), "password": password},
            )
        except BackendError as e:
            raise AuthError("Servicio de autenticación no disponible.") from e

        if status >= 400 or not isinstance(body, dict) or "access_token" not in body:
            logger.info("sign-in rejected for %s (%s)", email, status)
            raise AuthError("Usuario o contraseña incorrectos.")

        user = body.get("user") or {}
        expires_in = body.get("expires_in")
        session = AuthSession(
            email=str(user.get("email") or email).lower(),
            access_token=body["access_token"],
            expires_at=datetime.now() + timedelta(seconds=int(expires_in) if expires_in is not None else 3600),
        )
        self.client.set_token(session.access_token, session.expires_at)
        return session

    def expire(self, session: AuthSession) -> None:
        if self.client.access_token == session.access_token:
            self.client.clear_token()

    async def sign_out(self, session: AuthSession) -> None:
        try:
            await self.client.request(
                "POST",
                "/auth/v1/logout",
                headers={"Authorization": f"Bearer {session.access_token}"},
            )
        except BackendError:
            logger.warning("sign-out request failed; dropping session locally")
        self.expire(session)

    async def close(self) -> None:
        await self.client.close()
