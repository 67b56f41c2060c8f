from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ROOT_DIR = Path(__file__).resolve().parents[1]  # .../tienda-san-luis
load_dotenv(dotenv_path=ROOT_DIR / ".env")


def _get_env(*keys: str, default: str | None = None) -> str | None:
    for k in keys:
        v = os.getenv(k)
        if v is not None and str(v).strip() != "":
            return v.strip()
    return default


def _get_int(*keys: str, default: int | None = None) -> int | None:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return int(v)


def _get_float(*keys: str, default: float) -> float:
    v = _get_env(*keys, default=None)
    if v is None:
        return default
    return float(v.replace(",", "."))


def _get_path(*keys: str, default: str) -> str:
    v = _get_env(*keys, default=default)
    return str(v)


@dataclass(frozen=True)
class Settings:
    bot_token: str
    admin_id: int
    db_path: str
    upload_dir: str
    backend: str  # sqlite | supabase
    supabase_url: str
    supabase_key: str
    supabase_bucket: str
    admin_email: str
    admin_password: str
    whatsapp_number: str
    store_name: str
    currency: str
    decimals: int
    page_size: int
    request_timeout: float
    session_hours: int
    max_sessions: int
    log_level: str


settings = Settings(
    bot_token=_get_env("BOT_TOKEN", "TELEGRAM_BOT_TOKEN", default="") or "",
    admin_id=_get_int("ADMIN_ID", "ADMIN_TG_ID", default=0) or 0,
    db_path=_get_path("DB_PATH", "DATABASE_PATH", default=str(ROOT_DIR / "data" / "tienda.db")),
    upload_dir=_get_path("UPLOAD_DIR", default=str(ROOT_DIR / "data" / "uploads")),
    backend=(_get_env("BACKEND", default="") or ("supabase" if _get_env("SUPABASE_URL") else "sqlite")).lower(),
    supabase_url=(_get_env("SUPABASE_URL", default="") or "").rstrip("/"),
    supabase_key=_get_env("SUPABASE_KEY", "SUPABASE_ANON_KEY", default="") or "",
    supabase_bucket=_get_env("SUPABASE_BUCKET", default="product-images") or "product-images",
    admin_email=_get_env("ADMIN_EMAIL", default="admin@tiendasanluis.local") or "",
    admin_password=_get_env("ADMIN_PASSWORD", default="") or "",
    whatsapp_number=_get_env("WHATSAPP_NUMBER", default="5491132750873") or "",
    store_name=_get_env("STORE_NAME", default="La Vieja Estación") or "La Vieja Estación",
    currency=_get_env("CURRENCY", default="$") or "$",
    decimals=_get_int("DECIMALS", default=2),
    page_size=_get_int("PAGE_SIZE", default=12) or 12,
    request_timeout=_get_float("REQUEST_TIMEOUT", default=10.0),
    session_hours=_get_int("SESSION_HOURS", default=8) or 8,
    max_sessions=_get_int("MAX_SESSIONS", default=1000) or 1000,
    log_level=(_get_env("LOG_LEVEL", default="INFO") or "INFO").upper(),
)
