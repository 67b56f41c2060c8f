from __future__ import annotations

import asyncio
import hmac
import re
import secrets
import uuid
from datetime import datetime, timedelta
from pathlib import Path

from tienda.config import settings
from tienda.db.models import AuthError, AuthSession, BackendError

UPLOAD_URL_PREFIX = "/uploads"


def safe_suffix(filename: str) -> str:
    suffix = Path(filename or "").suffix.lower()
    return suffix if re.fullmatch(r"\.[a-z0-9]{1,5}", suffix) else ""


class LocalImageStorage:
    """Stores product images under UPLOAD_DIR; the web app serves them at /uploads."""

    def __init__(self, upload_dir: str | None = None, url_prefix: str = UPLOAD_URL_PREFIX):
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.url_prefix = url_prefix.rstrip("/")

    def _write(self, name: str, content: bytes) -> None:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        (self.upload_dir / name).write_bytes(content)

    async def upload(self, filename: str, content: bytes, content_type: str | None = None) -> str:
        name = f"{uuid.uuid4().hex}{safe_suffix(filename)}"
        try:
            await asyncio.to_thread(self._write, name, content)
        except OSError as e:
            raise BackendError(f"no se pudo guardar la imagen: {e}") from e
        return f"{self.url_prefix}/{name}"

    async def close(self) -> None:
        return None


class LocalAuth:
    """Single admin account taken from ADMIN_EMAIL / ADMIN_PASSWORD."""

    def __init__(self, email: str | None = None, password: str | None = None, session_hours: int | None = None):
        self.email = (email if email is not None else settings.admin_email).strip().lower()
        self.password = password if password is not None else settings.admin_password
        self.session_hours = session_hours or settings.session_hours

    async def sign_in(self, email: str, password: str) -> AuthSession:
        if not self.password:
            raise AuthError("ADMIN_PASSWORD no está configurado")
        email_ok = hmac.compare_digest(email.strip().lower().encode(), self.email.encode())
        password_ok = hmac.compare_digest(password.encode(), self.password.encode())
        if not (email_ok and password_ok):
            raise AuthError("Usuario o contraseña incorrectos.")
        return AuthSession(
            email=self.email,
            access_token=secrets.token_urlsafe(32),
            expires_at=datetime.now() + timedelta(hours=self.session_hours),
        )

    def expire(self, session: AuthSession) -> None:
        return None

    async def sign_out(self, session: AuthSession) -> None:
        return None

    async def close(self) -> None:
        return None
