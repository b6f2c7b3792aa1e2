"""
AuthGate: per-request sign-in signal and guarded rendering for host UIs.

Why: Hosts should only offer storage actions to signed-in callers. Each
request is resolved on its own: a `Authorization: Bearer <token>` header wins,
otherwise the session cookie. The gate is a usability affordance, not a
security boundary: the storage backend still rejects unauthorised calls.
"""
from __future__ import annotations

from typing import Any, Callable, Optional

from refstore.identity_access.sessions import SIGNED_IN, SessionProviderProtocol, SessionRecord

SESSION_COOKIE_NAME = "refstore_session"


def token_from_request(request: Any) -> Optional[str]:
    """Return the caller's access token from the Authorization header or cookie."""
    if request is None:
        return None
    auth = (request.headers.get("authorization") or "").strip()
    scheme, _, value = auth.partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return value.strip()
    cookie = (request.cookies.get(SESSION_COOKIE_NAME) or "").strip()
    return cookie or None


class AuthGate:
    def __init__(self, provider: SessionProviderProtocol):
        self.provider = provider

    def current_user(self, request: Any) -> Optional[SessionRecord]:
        token = token_from_request(request)
        if not token:
            return None
        return self.provider.session_for_token(token)

    def is_signed_in(self, request: Any) -> bool:
        return self.current_user(request) is not None

    def current_user_token(self, request: Any) -> Optional[str]:
        rec = self.current_user(request)
        return rec.access_token if rec else None

    def when_signed_in(
        self,
        request: Any,
        render_fn: Callable[[SessionRecord], Any],
        fallback: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """Return `render_fn(user)` for a signed-in caller, else `fallback()` (or "")."""
        user = self.current_user(request)
        if user is not None:
            return render_fn(user)
        return fallback() if fallback is not None else ""

    def on_change(self, callback: Callable[[bool, SessionRecord], Any]) -> Callable[[], None]:
        """Notify `callback(signed_in, user)` when a session starts or ends."""
        return self.provider.add_listener(lambda event, rec: callback(event == SIGNED_IN, rec))


__all__ = ["AuthGate", "SESSION_COOKIE_NAME", "token_from_request"]
