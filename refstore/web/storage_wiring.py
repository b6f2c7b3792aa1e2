"""
Wiring helpers for storage backends and the auth gate.

Why:
    Startup may happen before Supabase is reachable locally. These helpers
    pick a backend from the environment, fall back to a direct storage3
    client for local `supabase start` setups (non-JWT keys), and keep the
    Null backend when nothing usable is configured, so the host still boots.

Security:
    Requires SUPABASE_URL plus SUPABASE_SERVICE_ROLE_KEY (or SUPABASE_KEY).
    Keys stay server-side; only signed download URLs reach browsers.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Optional, Tuple
from urllib.parse import urlparse as _urlparse

from refstore.identity_access.gate import AuthGate
from refstore.identity_access.sessions import InMemorySessionProvider, SupabaseSessionProvider
from refstore.storage.backends.local import LocalFilesStorageBackend
from refstore.storage.backends.ports import NullStorageBackend, StorageBackendProtocol
from refstore.storage.backends.supabase import SupabaseStorageBackend
from refstore.storage.bootstrap import ensure_buckets_from_env
from refstore.storage.config import get_backend_name, get_local_root, get_supabase_key
from refstore.web.config import get_auth_provider_name

logger = logging.getLogger("refstore.web")

LOCAL_FILES_ROUTE = "/files"


def _is_local_host(url: str) -> bool:
    host = (_urlparse(url).hostname or "").lower()
    return host in {"127.0.0.1", "localhost"}


def create_supabase_client() -> Optional[Any]:
    """Return a supabase client, or None when unconfigured or unavailable."""
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = get_supabase_key()
    if not url or not key:
        return None
    try:
        from supabase import create_client
    except ImportError as exc:
        logger.warning("supabase package unavailable: %s", exc.__class__.__name__)
        return None
    try:
        return create_client(url, key)
    except Exception as exc:
        logger.warning("Supabase client unavailable: %s: %s", exc.__class__.__name__, str(exc))
        return None


def _storage3_fallback() -> Optional[Any]:
    """Direct storage3 client for local stacks whose keys are not JWTs."""
    url = (os.getenv("SUPABASE_URL") or "").strip()
    key = get_supabase_key()
    force = (os.getenv("SUPABASE_FALLBACK_STORAGE3", "false").lower() == "true")
    if not url or not key or not (force or _is_local_host(url)):
        return None
    try:
        from storage3 import SyncStorageClient
    except ImportError as exc:
        logger.warning("storage3 client import failed: %s: %s", exc.__class__.__name__, str(exc))
        return None
    headers = {"Authorization": f"Bearer {key}", "apikey": key}
    return SyncStorageClient(f"{url.rstrip('/')}/storage/v1", headers)


def build_storage_backend(client: Optional[Any] = None) -> StorageBackendProtocol:
    """Select the storage backend from the environment.

    Behavior:
        - STORAGE_BACKEND=local (or no Supabase config): filesystem backend
          rooted at STORAGE_LOCAL_ROOT, download locators under /files.
        - Supabase: the given/created client, else the storage3 fallback,
          else the Null backend (logged).
        - Runs the dev bucket bootstrap after Supabase wiring.
    """
    if get_backend_name() == "local":
        root = get_local_root()
        logger.info("Storage backend wired: local (%s)", root)
        return LocalFilesStorageBackend(root, public_base_url=LOCAL_FILES_ROUTE)

    client = client if client is not None else create_supabase_client()
    if client is None:
        client = _storage3_fallback()
    if client is None:
        logger.warning("Storage backend not configured: falling back to Null backend")
        return NullStorageBackend()

    backend = SupabaseStorageBackend(client)
    logger.info("Storage backend wired: Supabase")
    ensure_buckets_from_env()
    return backend


def build_auth_gate(client: Optional[Any] = None) -> AuthGate:
    """AUTH_PROVIDER=supabase uses the client's auth; anything else is in-memory."""
    if get_auth_provider_name() == "supabase":
        client = client if client is not None else create_supabase_client()
        if client is not None:
            return AuthGate(SupabaseSessionProvider(client))
        logger.warning("AUTH_PROVIDER=supabase but no client available: using in-memory sessions")
    return AuthGate(InMemorySessionProvider())


def wire_from_env() -> Tuple[StorageBackendProtocol, AuthGate]:
    """Build backend and gate, sharing one supabase client when both need it."""
    client = None
    if get_backend_name() == "supabase" or get_auth_provider_name() == "supabase":
        client = create_supabase_client()
    return build_storage_backend(client), build_auth_gate(client)


__all__ = [
    "LOCAL_FILES_ROUTE",
    "build_auth_gate",
    "build_storage_backend",
    "create_supabase_client",
    "wire_from_env",
]
