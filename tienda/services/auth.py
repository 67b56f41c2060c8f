from __future__ import annotations

import logging
import secrets
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from tienda.db.models import AuthSession

logger = logging.getLogger(__name__)

SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"

Listener = Callable[[str, AuthSession], None]


class AdminSessions:
    """Admin sign-in state for the web panel, keyed by an opaque cookie token."""

    def __init__(self, auth: Any):
        self.auth = auth
        self._sessions: Dict[str, AuthSession] = {}
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener) if listener in self._listeners else None

    def _emit(self, event: str, session: AuthSession) -> None:
        for listener in list(self._listeners):
            listener(event, session)

    async def sign_in(self, email: str, password: str) -> str:
        """Returns the cookie token; AuthError propagates to the login form."""
        session = await self.auth.sign_in(email, password)
        token = secrets.token_urlsafe(24)
        self._sessions[token] = session
        logger.info("admin signed in: %s", session.email)
        self._emit(SIGNED_IN, session)
        return token

    def get(self, token: Optional[str]) -> Optional[AuthSession]:
        if not token:
            return None
        session = self._sessions.get(token)
        if session is None:
            return None
        if session.expires_at <= datetime.now():
            del self._sessions[token]
            self.auth.expire(session)
            logger.info("admin session expired: %s", session.email)
            self._emit(SIGNED_OUT, session)
            return None
        return session

    async def sign_out(self, token: Optional[str]) -> None:
        session = self._sessions.pop(token, None) if token else None
        if session is None:
            return
        await self.auth.sign_out(session)
        logger.info("admin signed out: %s", session.email)
        self._emit(SIGNED_OUT, session)
