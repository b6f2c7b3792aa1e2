"""
Bucket bootstrap for development stacks.

A fresh `supabase start` has no buckets, so the first upload would fail with
a 404/400 from Storage. When `AUTO_CREATE_STORAGE_BUCKETS=true` the host asks
the Storage REST API for the configured bucket at startup and creates it
(private) when it is missing.

Never raises: every outcome is logged on `refstore.storage` and returned as
one of "disabled", "exists", "created", "missing".
"""
from __future__ import annotations

import logging
import os
from typing import List, Set

import requests

from refstore.storage.config import get_bucket

_log = logging.getLogger("refstore.storage")

# (connect, read) seconds; startup must not hang on an unreachable stack
HTTP_TIMEOUT = (3, 10)


class _BucketApi:
    """Minimal client for `/storage/v1/bucket` using the service role key."""

    def __init__(self, base_url: str, service_key: str):
        self.url = f"{base_url.rstrip('/')}/storage/v1/bucket"
        self.headers = {"apikey": service_key, "Authorization": f"Bearer {service_key}"}

    def names(self) -> Set[str]:
        try:
            resp = requests.get(self.url, headers=self.headers, timeout=HTTP_TIMEOUT)
        except requests.RequestException as exc:
            _log.warning("bucket listing failed: error=%s", exc.__class__.__name__)
            return set()
        try:
            rows = resp.json()
        except ValueError:
            rows = None
        if not isinstance(rows, list):
            _log.warning("bucket listing returned status=%s", getattr(resp, "status_code", "?"))
            return set()
        return {str(row.get("name") or row.get("id")) for row in rows if isinstance(row, dict)}

    def create(self, name: str) -> bool:
        body = {"name": name, "public": False}
        try:
            resp = requests.post(self.url, headers=self.headers, json=body, timeout=HTTP_TIMEOUT)
        except requests.RequestException as exc:
            _log.warning("bucket create failed: bucket=%s error=%s", name, exc.__class__.__name__)
            return False
        status = getattr(resp, "status_code", 500)
        if 200 <= status < 300:
            _log.info("bucket created: bucket=%s", name)
            return True
        _log.warning("bucket create failed: bucket=%s status=%s body=%s", name, status, getattr(resp, "text", ""))
        return False


def ensure_bucket(base_url: str, service_key: str, name: str) -> str:
    """Create bucket `name` unless it exists; re-check after creating."""
    api = _BucketApi(base_url, service_key)
    if name in api.names():
        return "exists"
    api.create(name)
    if name in api.names():
        return "created"
    _log.warning("bucket still missing after create attempt: bucket=%s", name)
    return "missing"


def ensure_buckets_from_env() -> List[str]:
    """Bootstrap the configured bucket when AUTO_CREATE_STORAGE_BUCKETS=true.

    Env: SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY, STORAGE_BUCKET.
    Returns one outcome per bucket (currently only the configured one).
    """
    flag = (os.getenv("AUTO_CREATE_STORAGE_BUCKETS") or "").strip().lower()
    if flag not in ("1", "true", "yes"):
        return ["disabled"]
    base = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not base or not key:
        _log.warning("bucket bootstrap skipped: SUPABASE_URL or service role key missing")
        return ["disabled"]
    _log.warning("AUTO_CREATE_STORAGE_BUCKETS is a development convenience; disable it outside dev")
    return [ensure_bucket(base, key, get_bucket())]


__all__ = ["HTTP_TIMEOUT", "ensure_bucket", "ensure_buckets_from_env"]
