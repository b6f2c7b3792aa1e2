"""
Supabase-backed storage backend.

This backend implements StorageBackendProtocol using a provided Supabase
client. It is duck-typed so tests can pass small fakes. The client is
expected to expose `.storage.from_(bucket)` (supabase.create_client) or
`.from_(bucket)` directly (storage3 SyncStorageClient), returning an object
offering:

- upload(path, file, file_options) / update(path, file, file_options)
- download(path) -> bytes
- create_signed_url(path, expires_in, options=None) -> { signedURL | signed_url | url }
- list(path, options) -> [ { name, id, updated_at, metadata } ]
- remove([path]) -> [ removed objects ]

Error handling:
    storage3 raises `StorageException` whose first argument is the API error
    payload ({"statusCode", "error", "message"}); httpx/requests transport
    errors surface as-is. `_translate_exception` maps both onto the
    refstore error kinds.

Security:
    With the service role key the backend bypasses row level security; the
    wiring helper documents which key it picked.
"""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse as _urlparse, urlunparse as _urlunparse

import httpx
import requests

from refstore.storage.errors import (
    NetworkError,
    NotFoundError,
    StorageError,
    error_for_status,
)

LIST_PAGE_SIZE = 1000


def _status_of(value: Any) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _translate_exception(exc: Exception) -> StorageError:
    """Map a Supabase/storage3/transport exception onto a storage error kind."""
    if isinstance(exc, StorageError):
        return exc
    if isinstance(exc, (httpx.TransportError, requests.ConnectionError, requests.Timeout)):
        return NetworkError(f"transport_error: {exc.__class__.__name__}")
    if isinstance(exc, httpx.HTTPStatusError):
        return error_for_status(exc.response.status_code, "http_status_error")

    payload: Dict[str, Any] = {}
    if exc.args and isinstance(exc.args[0], dict):
        payload = exc.args[0]
    status = _status_of(payload.get("statusCode") or getattr(exc, "status", None) or getattr(exc, "code", None))
    error = str(payload.get("error") or "").lower()
    if payload:
        message = str(payload.get("message") or "")
    else:
        message = str(exc.args[0]) if exc.args else ""
    # Storage API reports missing objects as 400 with error "not_found" in some versions.
    if status == 404 or error in ("not_found", "notfound") or "not found" in message.lower():
        return NotFoundError(message or "object_not_found")
    if status is None:
        return StorageError(f"{exc.__class__.__name__}: {message}".strip(": "))
    return error_for_status(status, message)


class SupabaseStorageBackend:
    """Storage backend using a supabase client for Storage operations."""

    def __init__(self, client: Any):
        # Duck-typed supabase client, e.g., from `supabase import create_client(...)`.
        self._client = client

    # --- Helpers -----------------------------------------------------------------

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client."""
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)
        raise StorageError("invalid_supabase_client")

    @staticmethod
    def _norm_key(bucket: str, key: str) -> str:
        # storage3 prepends the bucket id; keys must be bucket-relative
        norm_key = (key or "").lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    @staticmethod
    def _first_key(d: Dict[str, Any], *keys: str) -> Any:
        for k in keys:
            if k in d and d[k] is not None:
                return d[k]
        return None

    def _list_page(self, b: Any, prefix: str, offset: int, search: str = "") -> List[Dict[str, Any]]:
        options: Dict[str, Any] = {
            "limit": LIST_PAGE_SIZE,
            "offset": offset,
            "sortBy": {"column": "name", "order": "asc"},
        }
        if search:
            options["search"] = search
        res = b.list(prefix or None, options)
        if isinstance(res, dict):
            res = res.get("data") or []
        return [it for it in (res or []) if isinstance(it, dict)]

    def _list_entries(self, b: Any, prefix: str) -> List[Dict[str, Any]]:
        entries: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page = self._list_page(b, prefix, offset)
            entries.extend(page)
            if len(page) < LIST_PAGE_SIZE:
                return entries
            offset += LIST_PAGE_SIZE

    @staticmethod
    def _is_folder(entry: Dict[str, Any]) -> bool:
        # Storage lists folders as entries without an object id
        return entry.get("id") is None

    def _find_object(self, b: Any, key: str) -> Dict[str, Any]:
        parent, _, name = key.rpartition("/")
        for entry in self._list_page(b, parent, 0, search=name):
            if entry.get("name") == name and not self._is_folder(entry):
                return entry
        raise NotFoundError("object_not_found")

    # --- Protocol methods --------------------------------------------------------

    def put_object(
        self,
        *,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """Upload (upsert) a binary object.

        Some client versions expect file options with either kebab or camel
        case, so both spellings of the content type are passed.
        """
        b = self._bucket(bucket)
        norm_key = self._norm_key(bucket, key)
        opts: Dict[str, Any] = {"content-type": content_type, "contentType": content_type, "upsert": "true"}
        if metadata:
            opts["metadata"] = {str(k): str(v) for k, v in metadata.items()}
        try:
            b.upload(norm_key, body, opts)
        except Exception as exc:
            raise _translate_exception(exc) from exc
        return {"size": len(body), "content_type": content_type}

    def presign_download(
        self, *, bucket: str, key: str, expires_in: int, filename: Optional[str] = None
    ) -> Dict[str, Any]:
        b = self._bucket(bucket)
        norm_key = self._norm_key(bucket, key)
        opts = {"download": filename} if filename else None
        try:
            res = b.create_signed_url(norm_key, expires_in, opts) if opts else b.create_signed_url(norm_key, expires_in)
        except Exception as exc:
            raise _translate_exception(exc) from exc
        url = None
        expires_at = None
        if isinstance(res, dict):
            url = self._first_key(res, "signedURL", "signedUrl", "signed_url", "url")
            expires_at = self._first_key(res, "expires_at", "expiresAt")
            data = res.get("data") if "data" in res else None
            if url is None and isinstance(data, dict):
                url = self._first_key(data, "signedURL", "signedUrl", "signed_url", "url")
        if not url:
            raise StorageError("failed_to_presign_download")
        if not expires_at:
            expires_at = (datetime.now(timezone.utc) + timedelta(seconds=expires_in)).isoformat(timespec="seconds")
        return {"url": self._normalize_signed_url_host(str(url)), "expires_at": expires_at}

    def head_object(self, *, bucket: str, key: str) -> Dict[str, Any]:
        b = self._bucket(bucket)
        norm_key = self._norm_key(bucket, key)
        try:
            entry = self._find_object(b, norm_key)
        except StorageError:
            raise
        except Exception as exc:
            raise _translate_exception(exc) from exc
        meta = entry.get("metadata") if isinstance(entry.get("metadata"), dict) else {}
        custom = entry.get("user_metadata") if isinstance(entry.get("user_metadata"), dict) else {}
        return {
            "size": _status_of(meta.get("size") or meta.get("contentLength")),
            "content_type": meta.get("mimetype") or meta.get("contentType"),
            "updated_at": entry.get("updated_at") or meta.get("lastModified"),
            "metadata": dict(custom),
        }

    def delete_object(self, *, bucket: str, key: str) -> None:
        b = self._bucket(bucket)
        norm_key = self._norm_key(bucket, key)
        # remove() reports success for missing paths, so check existence first.
        self.head_object(bucket=bucket, key=norm_key)
        try:
            removed = b.remove([norm_key])
        except Exception as exc:
            raise _translate_exception(exc) from exc
        if isinstance(removed, list) and not removed:
            raise NotFoundError("object_not_found")

    def list_objects(self, *, bucket: str, prefix: str, recursive: bool = False) -> List[str]:
        b = self._bucket(bucket)
        root = self._norm_key(bucket, prefix).rstrip("/")
        try:
            if not recursive:
                return sorted(str(e.get("name")) for e in self._list_entries(b, root) if e.get("name"))
            names: List[str] = []
            pending = [""]
            while pending:
                rel = pending.pop()
                folder = f"{root}/{rel}".strip("/") if rel else root
                for entry in self._list_entries(b, folder):
                    name = entry.get("name")
                    if not name:
                        continue
                    child = f"{rel}/{name}" if rel else str(name)
                    if self._is_folder(entry):
                        pending.append(child)
                    else:
                        names.append(child)
            return sorted(names)
        except Exception as exc:
            raise _translate_exception(exc) from exc

    def update_metadata(
        self,
        *,
        bucket: str,
        key: str,
        metadata: Dict[str, str],
        content_type: Optional[str] = None,
    ) -> None:
        """Replace custom metadata on an existing object.

        Supabase Storage has no metadata-only update, so the object is
        downloaded and written back with the new options.
        """
        current = self.head_object(bucket=bucket, key=key)
        b = self._bucket(bucket)
        norm_key = self._norm_key(bucket, key)
        ctype = content_type or current.get("content_type") or "application/octet-stream"
        opts = {
            "content-type": ctype,
            "contentType": ctype,
            "upsert": "true",
            "metadata": {str(k): str(v) for k, v in metadata.items()},
        }
        try:
            body = b.download(norm_key)
            b.update(norm_key, body, opts)
        except Exception as exc:
            raise _translate_exception(exc) from exc

    # --- Local helpers ---------------------------------------------------------

    def _normalize_signed_url_host(self, url: str) -> str:
        """For local dev, rewrite signed URL host to the SUPABASE_URL host.

        Some local setups return signed URLs with container-internal hosts that
        the browser cannot resolve. The token is path-bound, so swapping scheme
        and host keeps it valid. Only active when
        SUPABASE_REWRITE_SIGNED_URL_HOST=true.
        """
        base = (os.getenv("SUPABASE_URL") or "").strip()
        force = (os.getenv("SUPABASE_REWRITE_SIGNED_URL_HOST", "false").lower() == "true")
        if not base or not force:
            return url
        src = _urlparse(url)
        dst = _urlparse(base)
        if not src.scheme or not src.netloc or not dst.hostname:
            return url
        netloc = dst.hostname
        if dst.port and ((dst.scheme == "http" and dst.port != 80) or (dst.scheme == "https" and dst.port != 443)):
            netloc = f"{netloc}:{dst.port}"
        path = src.path or "/"
        if path.startswith("/object/"):
            path = "/storage/v1" + path
        while "//" in path:
            path = path.replace("//", "/")
        return _urlunparse((dst.scheme or src.scheme, netloc, path, src.params, src.query, src.fragment))


__all__ = ["SupabaseStorageBackend", "LIST_PAGE_SIZE"]
