"""
Session routes: start and end a caller's session on the host.

Behavior:
    - POST /auth/session: adopt an access token (e.g. from a Supabase browser
      sign-in) after the provider verified it; sets the session cookie.
    - POST /auth/dev-login: development sign-in against the in-memory
      provider; 404 in production-like environments or with other providers.
    - POST /auth/logout: ends the caller's session and clears the cookie.

Security:
    The cookie is httpOnly and carries the access token only. Responses are
    private and non-storable.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from refstore.identity_access.gate import SESSION_COOKIE_NAME, token_from_request
from refstore.identity_access.sessions import InMemorySessionProvider, SessionRecord
from refstore.web import config as _cfg
from refstore.web.routes import storage as storage_routes
from refstore.web.routes.storage import _private_response, _read_payload

auth_router = APIRouter(tags=["Auth"])
logger = logging.getLogger("refstore.web")

DEV_SESSION_TTL_SECONDS = 3600


def _set_session_cookie(response: JSONResponse, value: str, *, max_age: Optional[int] = None) -> None:
    opts = _cfg.session_cookie_options()
    if max_age is not None:
        opts["max_age"] = max_age
    response.set_cookie(key=SESSION_COOKIE_NAME, value=value, **opts)


def _session_body(rec: SessionRecord) -> dict:
    return {"user_id": rec.user_id, "email": rec.email, "expires_at": rec.expires_at}


@auth_router.post("/auth/session")
async def adopt_session(request: Request):
    payload = await _read_payload(request)
    token = payload.get("access_token") if payload else None
    if not isinstance(token, str) or not token.strip():
        return _private_response({"error": "invalid_argument", "detail": "access_token_required"}, status_code=400)
    rec = storage_routes.AUTH_GATE.provider.session_for_token(token.strip())
    if rec is None:
        return _private_response({"error": "unauthenticated"}, status_code=401)
    response = _private_response(_session_body(rec), status_code=200)
    _set_session_cookie(response, rec.access_token)
    return response


@auth_router.post("/auth/dev-login")
async def dev_login(request: Request):
    """Create an in-memory session; the token is also returned for Bearer use."""
    provider = storage_routes.AUTH_GATE.provider
    if not _cfg.is_dev_login_allowed() or not isinstance(provider, InMemorySessionProvider):
        return _private_response({"error": "not_found"}, status_code=404)
    payload = await _read_payload(request)
    if payload is None:
        return _private_response({"error": "invalid_argument", "detail": "malformed_body"}, status_code=400)
    email = payload.get("email")
    if email is not None and not isinstance(email, str):
        return _private_response({"error": "invalid_argument", "detail": "email_must_be_string"}, status_code=400)
    rec = provider.sign_in(email=(email or "").strip() or None, ttl_seconds=DEV_SESSION_TTL_SECONDS)
    logger.info("dev session created: user_id=%s", rec.user_id)
    response = _private_response({**_session_body(rec), "access_token": rec.access_token}, status_code=200)
    _set_session_cookie(response, rec.access_token, max_age=DEV_SESSION_TTL_SECONDS)
    return response


@auth_router.post("/auth/logout")
async def logout(request: Request):
    token = token_from_request(request)
    if token:
        storage_routes.AUTH_GATE.provider.sign_out(token)
    response = _private_response({"signed_out": True}, status_code=200)
    opts = _cfg.session_cookie_options()
    response.delete_cookie(
        key=SESSION_COOKIE_NAME,
        path=opts["path"],
        secure=opts["secure"],
        httponly=opts["httponly"],
        samesite=opts["samesite"],
    )
    return response


__all__ = ["auth_router"]
