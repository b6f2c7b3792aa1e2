"""
Session providers feeding the AuthGate.

Why: The gate needs to answer "who is behind this access token" for every
request. Providers hide where that answer comes from: a server-side token
table for development/tests, or Supabase Auth verifying a user JWT.

Security: Tokens are opaque to the gate and never logged. The in-memory
provider keeps records server-side only; cookies carry the token alone.
"""
from __future__ import annotations

import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol

_log = logging.getLogger("refstore.identity_access")

SIGNED_IN = "signed_in"
SIGNED_OUT = "signed_out"


def _now() -> int:
    return int(time.time())


@dataclass
class SessionRecord:
    user_id: str
    email: Optional[str]
    access_token: str
    expires_at: Optional[int] = None

    @property
    def expired(self) -> bool:
        return bool(self.expires_at and self.expires_at < _now())


SessionListener = Callable[[str, SessionRecord], Any]


class SessionProviderProtocol(Protocol):
    def session_for_token(self, token: str) -> Optional[SessionRecord]: ...

    def sign_out(self, token: str) -> None: ...

    def add_listener(self, callback: SessionListener) -> Callable[[], None]: ...


class _Listeners:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callbacks: List[SessionListener] = []

    def add(self, callback: SessionListener) -> Callable[[], None]:
        with self._lock:
            self._callbacks.append(callback)

        def _remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return _remove

    def emit(self, event: str, record: SessionRecord) -> None:
        with self._lock:
            callbacks = list(self._callbacks)
        for callback in callbacks:
            try:
                callback(event, record)
            except Exception as exc:
                _log.warning("session listener failed: event=%s error=%s", event, exc.__class__.__name__)


class InMemorySessionProvider:
    """Token table for development and tests; one record per signed-in caller."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, SessionRecord] = {}
        self._listeners = _Listeners()

    def sign_in(
        self,
        *,
        email: Optional[str] = None,
        user_id: Optional[str] = None,
        access_token: Optional[str] = None,
        ttl_seconds: int = 3600,
    ) -> SessionRecord:
        rec = SessionRecord(
            user_id=user_id or secrets.token_hex(8),
            email=email,
            access_token=access_token or secrets.token_urlsafe(24),
            expires_at=_now() + ttl_seconds,
        )
        with self._lock:
            self._sessions[rec.access_token] = rec
        self._listeners.emit(SIGNED_IN, rec)
        return rec

    def sign_out(self, token: str) -> None:
        with self._lock:
            rec = self._sessions.pop(token, None)
        if rec is not None:
            self._listeners.emit(SIGNED_OUT, rec)

    def session_for_token(self, token: str) -> Optional[SessionRecord]:
        with self._lock:
            rec = self._sessions.get(token)
            if rec is None:
                return None
            if not rec.expired:
                return rec
            self._sessions.pop(token, None)
        self._listeners.emit(SIGNED_OUT, rec)
        return None

    def add_listener(self, callback: SessionListener) -> Callable[[], None]:
        return self._listeners.add(callback)


class SupabaseSessionProvider:
    """Verify user JWTs against Supabase Auth.

    Duck-typed: expects `client.auth.get_user(jwt)` returning an object with
    `user` (`id`, `email`), and optionally `client.auth.admin.sign_out(jwt)`.
    Browsers sign in with Supabase directly and present the access token.
    """

    def __init__(self, client: Any):
        self._auth = getattr(client, "auth", client)
        self._listeners = _Listeners()

    def session_for_token(self, token: str) -> Optional[SessionRecord]:
        try:
            res = self._auth.get_user(token)
        except Exception as exc:
            _log.info("auth get_user rejected token: error=%s", exc.__class__.__name__)
            return None
        user = getattr(res, "user", None)
        if user is None or not getattr(user, "id", None):
            return None
        return SessionRecord(user_id=str(user.id), email=getattr(user, "email", None), access_token=token)

    def sign_out(self, token: str) -> None:
        rec = self.session_for_token(token)
        if rec is None:
            return
        admin = getattr(self._auth, "admin", None)
        try:
            if admin is not None:
                admin.sign_out(token)
        except Exception as exc:
            _log.warning("auth sign_out failed: error=%s", exc.__class__.__name__)
        self._listeners.emit(SIGNED_OUT, rec)

    def add_listener(self, callback: SessionListener) -> Callable[[], None]:
        return self._listeners.add(callback)


__all__ = [
    "InMemorySessionProvider",
    "SIGNED_IN",
    "SIGNED_OUT",
    "SessionProviderProtocol",
    "SessionRecord",
    "SupabaseSessionProvider",
]
