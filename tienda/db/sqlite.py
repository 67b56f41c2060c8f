from __future__ import annotations

import asyncio
import logging
import os
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from tienda.config import settings
from tienda.db.models import (
    PRODUCT_COLUMNS,
    WRITABLE_COLUMNS,
    BackendError,
    Product,
    ProductQuery,
    QueryResult,
    StorageError,
)

logger = logging.getLogger(__name__)

SCHEMA_PATH = os.path.join(os.path.dirname(__file__), "schema.sql")


def _casefold(value: Any) -> Any:
    return value.casefold() if isinstance(value, str) else value


def _connect(db_path: str | None = None) -> sqlite3.Connection:
    path = db_path or settings.db_path
    if path != ":memory:":
        os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    # LIKE de sqlite solo ignora mayúsculas en ASCII
    conn.create_function("casefold", 1, _casefold, deterministic=True)
    return conn


def init_db(db_path: str | None = None) -> None:
    conn = _connect(db_path)
    try:
        with open(SCHEMA_PATH, "r", encoding="utf-8") as f:
            conn.executescript(f.read())
        conn.commit()
    finally:
        conn.close()


# ---------------- query compilation ----------------

def _check_column(column: str) -> str:
    if column not in PRODUCT_COLUMNS:
        raise ValueError(f"unknown column: {column}")
    return column


def _escape_like(text: str) -> str:
    return text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def compile_where(query: ProductQuery) -> Tuple[str, List[Any]]:
    clauses: List[str] = []
    params: List[Any] = []
    for column, value in query.eq:
        _check_column(column)
        if value is None:
            clauses.append(f"{column} IS NULL")
            continue
        clauses.append(f"{column} = ?")
        params.append(int(value) if isinstance(value, bool) else value)

    if query.ilike:
        column, text = query.ilike
        _check_column(column)
        clauses.append(f"casefold({column}) LIKE ? ESCAPE '\\'")
        params.append(f"%{_escape_like(text.casefold())}%")

    where = " WHERE " + " AND ".join(clauses) if clauses else ""
    return where, params


def compile_order(query: ProductQuery) -> str:
    parts = []
    for o in query.order:
        part = f"{_check_column(o.column)} {'DESC' if o.desc else 'ASC'}"
        if o.nulls_first is True:
            part += " NULLS FIRST"
        elif o.nulls_first is False:
            part += " NULLS LAST"
        parts.append(part)
    return " ORDER BY " + ", ".join(parts) if parts else ""


# ---------------- products ----------------

def select_products(query: ProductQuery, db_path: str | None = None) -> Tuple[List[Dict[str, Any]], int]:
    where, params = compile_where(query)
    order = compile_order(query)
    conn = _connect(db_path)
    try:
        total = int(conn.execute(f"SELECT COUNT(*) FROM products{where}", params).fetchone()[0])

        sql = f"SELECT {', '.join(PRODUCT_COLUMNS)} FROM products{where}{order}"
        page_params = list(params)
        if query.limit is not None:
            sql += " LIMIT ? OFFSET ?"
            page_params += [int(query.limit), int(query.offset)]
        elif query.offset:
            sql += " LIMIT -1 OFFSET ?"
            page_params.append(int(query.offset))

        rows = conn.execute(sql, page_params).fetchall()
        return [dict(r) for r in rows], total
    finally:
        conn.close()


def get_product(product_id: int, db_path: str | None = None) -> Optional[Dict[str, Any]]:
    conn = _connect(db_path)
    try:
        row = conn.execute(
            f"SELECT {', '.join(PRODUCT_COLUMNS)} FROM products WHERE id = ?",
            (int(product_id),),
        ).fetchone()
        return dict(row) if row else None
    finally:
        conn.close()


def _writable(data: Dict[str, Any]) -> Dict[str, Any]:
    out = {}
    for k, v in data.items():
        if k not in WRITABLE_COLUMNS:
            raise ValueError(f"column is not writable: {k}")
        out[k] = int(v) if isinstance(v, bool) else v
    return out


def insert_product(data: Dict[str, Any], db_path: str | None = None) -> Dict[str, Any]:
    values = _writable(data)
    cols = list(values.keys())
    conn = _connect(db_path)
    try:
        cur = conn.execute(
            f"INSERT INTO products({', '.join(cols)}) VALUES({', '.join('?' for _ in cols)})",
            [values[c] for c in cols],
        )
        conn.commit()
        product_id = int(cur.lastrowid)
    finally:
        conn.close()
    return get_product(product_id, db_path)


def update_product(product_id: int, data: Dict[str, Any], db_path: str | None = None) -> Optional[Dict[str, Any]]:
    values = _writable(data)
    if not values:
        return get_product(product_id, db_path)
    conn = _connect(db_path)
    try:
        assignments = ", ".join(f"{c} = ?" for c in values)
        cur = conn.execute(
            f"UPDATE products SET {assignments} WHERE id = ?",
            list(values.values()) + [int(product_id)],
        )
        conn.commit()
        if cur.rowcount == 0:
            return None
    finally:
        conn.close()
    return get_product(product_id, db_path)


def delete_product(product_id: int, db_path: str | None = None) -> bool:
    conn = _connect(db_path)
    try:
        cur = conn.execute("DELETE FROM products WHERE id = ?", (int(product_id),))
        conn.commit()
        return cur.rowcount > 0
    finally:
        conn.close()


class SqliteBackend:
    """Async facade over the sqlite functions; queries run in a worker thread."""

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or settings.db_path
        init_db(self.db_path)

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args, self.db_path)
        except sqlite3.Error as e:
            logger.exception("sqlite error in %s", fn.__name__)
            raise BackendError(str(e)) from e

    async def select(self, query: ProductQuery) -> QueryResult:
        rows, total = await self._run(select_products, query)
        return QueryResult(items=[Product.from_row(r) for r in rows], total=total)

    async def get(self, product_id: int) -> Optional[Product]:
        row = await self._run(get_product, product_id)
        return Product.from_row(row) if row else None

    async def insert(self, data: Dict[str, Any]) -> Product:
        return Product.from_row(await self._run(insert_product, data))

    async def update(self, product_id: int, data: Dict[str, Any]) -> Optional[Product]:
        row = await self._run(update_product, product_id, data)
        return Product.from_row(row) if row else None

    async def delete(self, product_id: int) -> bool:
        return await self._run(delete_product, product_id)

    async def close(self) -> None:
        return None


# ---------------- key/value storage ----------------

class SqliteKeyValueStorage:
    """get/set/remove persistence used by the cart store."""

    def __init__(self, db_path: str | None = None):
        self.db_path = db_path or settings.db_path
        try:
            init_db(self.db_path)
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def get(self, key: str) -> Optional[str]:
        try:
            conn = _connect(self.db_path)
            try:
                row = conn.execute("SELECT value FROM kv_storage WHERE key = ?", (key,)).fetchone()
                return row["value"] if row else None
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def set(self, key: str, value: str) -> None:
        updated_at = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        try:
            conn = _connect(self.db_path)
            try:
                conn.execute(
                    "INSERT INTO kv_storage(key, value, updated_at) VALUES(?,?,?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=excluded.updated_at",
                    (key, value, updated_at),
                )
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e

    def remove(self, key: str) -> None:
        try:
            conn = _connect(self.db_path)
            try:
                conn.execute("DELETE FROM kv_storage WHERE key = ?", (key,))
                conn.commit()
            finally:
                conn.close()
        except sqlite3.Error as e:
            raise StorageError(str(e)) from e
