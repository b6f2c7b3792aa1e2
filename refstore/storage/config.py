"""
Centralized storage configuration.

Intent:
    Provide a single source of truth for the bucket name, backend selection,
    listing defaults and size limits, each with an environment-variable
    override. Prevents drift between the client, the wiring helper and the
    web binding, and keeps tests simple (monkeypatch env, call the getter).

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os
from dataclasses import dataclass


BUCKET_DEFAULT = "uploads"
LOCAL_ROOT_DEFAULT = ".storage"
DOWNLOAD_TTL_DEFAULT = 60 * 60
DOWNLOAD_TTL_MAX = 7 * 24 * 60 * 60
MAX_UPLOAD_BYTES_DEFAULT = 50 * 1024 * 1024


def _env(name: str, default: str = "") -> str:
    return (os.getenv(name, default) or "").strip()


def _env_flag(name: str, default: str = "false") -> bool:
    return _env(name, default).lower() in ("1", "true", "yes")


def _parse_int_env(name: str, default: int, *, minimum: int = 0, contract_max: int | None = None) -> int:
    raw = _env(name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    if value < minimum:
        return default
    if isinstance(contract_max, int) and contract_max > 0:
        value = min(value, contract_max)
    return value


def get_bucket() -> str:
    """Return the configured bucket name.

    Env:
        STORAGE_BUCKET – optional override; otherwise BUCKET_DEFAULT.
    """
    return _env("STORAGE_BUCKET") or BUCKET_DEFAULT


def get_backend_name() -> str:
    """Return "supabase" or "local".

    Env:
        STORAGE_BACKEND – explicit choice. Without it, Supabase is selected when
        SUPABASE_URL and a key are present, the local filesystem otherwise.
    """
    explicit = _env("STORAGE_BACKEND").lower()
    if explicit in ("supabase", "local"):
        return explicit
    if _env("SUPABASE_URL") and get_supabase_key():
        return "supabase"
    return "local"


def get_supabase_key() -> str:
    """Service role key preferred; falls back to SUPABASE_KEY (anon/user key)."""
    return _env("SUPABASE_SERVICE_ROLE_KEY") or _env("SUPABASE_KEY")


def get_local_root() -> str:
    return _env("STORAGE_LOCAL_ROOT") or LOCAL_ROOT_DEFAULT


def get_download_ttl_seconds() -> int:
    """Lifetime of download URLs (default 1h, clamped to 7 days)."""
    return _parse_int_env("STORAGE_DOWNLOAD_TTL_SECONDS", DOWNLOAD_TTL_DEFAULT, minimum=1, contract_max=DOWNLOAD_TTL_MAX)


def get_list_recursive() -> bool:
    return _env_flag("STORAGE_LIST_RECURSIVE")


def get_list_max_results() -> int:
    """Maximum entries returned by a listing; 0 means unlimited."""
    return _parse_int_env("STORAGE_LIST_MAX_RESULTS", 0)


def get_max_upload_bytes() -> int:
    """Maximum upload size (default/clamped 50 MiB)."""
    return _parse_int_env(
        "STORAGE_MAX_UPLOAD_BYTES",
        MAX_UPLOAD_BYTES_DEFAULT,
        minimum=1,
        contract_max=MAX_UPLOAD_BYTES_DEFAULT,
    )


@dataclass(frozen=True)
class StorageSettings:
    """Immutable snapshot of storage settings handed to a StorageClient."""

    bucket: str = BUCKET_DEFAULT
    download_ttl_seconds: int = DOWNLOAD_TTL_DEFAULT
    list_recursive: bool = False
    list_max_results: int = 0
    max_upload_bytes: int = MAX_UPLOAD_BYTES_DEFAULT


def load_storage_settings() -> StorageSettings:
    return StorageSettings(
        bucket=get_bucket(),
        download_ttl_seconds=get_download_ttl_seconds(),
        list_recursive=get_list_recursive(),
        list_max_results=get_list_max_results(),
        max_upload_bytes=get_max_upload_bytes(),
    )


__all__ = [
    "BUCKET_DEFAULT",
    "StorageSettings",
    "get_backend_name",
    "get_bucket",
    "get_download_ttl_seconds",
    "get_list_max_results",
    "get_list_recursive",
    "get_local_root",
    "get_max_upload_bytes",
    "get_supabase_key",
    "load_storage_settings",
]
