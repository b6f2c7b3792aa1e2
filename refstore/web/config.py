"""
Configuration and startup security checks for the refstore host.

Why: Prevent accidental insecure deployments without burdening local
development. The single guard below reads environment variables and raises
`SystemExit` on fatal misconfiguration in production-like environments.
"""
from __future__ import annotations

import os

from refstore.storage.config import get_backend_name, get_supabase_key


def _is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def get_environment() -> str:
    return (os.getenv("REFSTORE_ENV") or "dev").strip().lower()


def get_auth_provider_name() -> str:
    """Return "supabase" or "memory" (AUTH_PROVIDER, default memory)."""
    value = (os.getenv("AUTH_PROVIDER") or "memory").strip().lower()
    return value if value in ("supabase", "memory") else "memory"


def session_cookie_options() -> dict:
    """Cookie flags for the session cookie; `Secure` outside dev/test."""
    return {
        "httponly": True,
        "secure": _is_prod_like(get_environment()),
        "samesite": "lax",
        "path": "/",
    }


def is_dev_login_allowed() -> bool:
    """Dev sign-in is never offered in production-like environments."""
    return not _is_prod_like(get_environment())


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Checks (prod/stage only):
    - The storage backend must be Supabase, never the local filesystem.
    - A Supabase key must be set and not a known dummy placeholder.
    - SUPABASE_URL must use https.
    - The in-memory auth provider is a development stand-in and is refused.
    """
    env = get_environment()
    if not _is_prod_like(env):
        return  # dev/test remain permissive

    if get_backend_name() != "supabase":
        raise SystemExit("Refusing to start: STORAGE_BACKEND must be supabase in production.")

    key = get_supabase_key()
    if not key or key.upper() in {"DUMMY_DO_NOT_USE", "CHANGE_ME"}:
        raise SystemExit("Refusing to start: Supabase key is unset or a dummy placeholder in production.")

    url = (os.getenv("SUPABASE_URL") or "").strip().lower()
    if url.startswith("http://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production (got http).")

    if get_auth_provider_name() == "memory":
        raise SystemExit("Refusing to start: AUTH_PROVIDER=memory is not allowed in production/staging.")


__all__ = [
    "ensure_secure_config_on_startup",
    "get_auth_provider_name",
    "get_environment",
    "is_dev_login_allowed",
    "session_cookie_options",
]
