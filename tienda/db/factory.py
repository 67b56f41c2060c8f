from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from tienda.config import settings
from tienda.db.local import LocalAuth, LocalImageStorage
from tienda.db.sqlite import SqliteBackend, SqliteKeyValueStorage


@dataclass
class Backends:
    products: Any
    images: Any
    auth: Any
    storage: Any  # key/value del carrito, siempre local

    async def close(self) -> None:
        # en supabase los tres comparten el mismo cliente http
        await self.products.close()


def make_backends(kind: str | None = None) -> Backends:
    kind = (kind or settings.backend).lower()
    storage = SqliteKeyValueStorage(settings.db_path)

    if kind == "supabase":
        from tienda.db.rest import SupabaseAuth, SupabaseBackend, SupabaseClient, SupabaseStorage

        client = SupabaseClient()
        return Backends(
            products=SupabaseBackend(client),
            images=SupabaseStorage(client),
            auth=SupabaseAuth(client),
            storage=storage,
        )

    if kind != "sqlite":
        raise RuntimeError(f"BACKEND must be sqlite or supabase, got {kind!r}")

    return Backends(
        products=SqliteBackend(settings.db_path),
        images=LocalImageStorage(settings.upload_dir),
        auth=LocalAuth(),
        storage=storage,
    )
