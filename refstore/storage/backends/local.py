"""
Local filesystem storage backend.

Intent:
    Development and test stand-in for a cloud bucket. Objects live under
    `{root}/{bucket}/{key}`; content type and custom metadata are kept in a
    JSON sidecar tree under `{root}/.refstore-meta/` so listings stay clean.

Download locators:
    With `public_base_url` set (e.g. "/files" when the web binding serves the
    root) the locator is `{public_base_url}/{bucket}/{key}`; otherwise a
    `file://` URI. Locators carry no signature, so `expires_at` is advisory.
"""
from __future__ import annotations

import errno
import json
import mimetypes
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from refstore.storage.errors import (
    InvalidArgumentError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)

META_DIRNAME = ".refstore-meta"


def _translate_os_error(exc: OSError) -> StorageError:
    if isinstance(exc, FileNotFoundError):
        return NotFoundError("object_not_found")
    if isinstance(exc, PermissionError):
        return PermissionDeniedError("permission_denied")
    if isinstance(exc, (IsADirectoryError, NotADirectoryError)):
        return InvalidArgumentError("not_an_object")
    if exc.errno in (errno.ENOSPC, errno.EIO):
        return NetworkError(f"io_error: {exc.__class__.__name__}")
    return StorageError(f"os_error: {exc.__class__.__name__}")


class LocalFilesStorageBackend:
    """Filesystem implementation of StorageBackendProtocol."""

    def __init__(self, root: str | os.PathLike, *, public_base_url: Optional[str] = None):
        self.root = Path(root).resolve()
        self.public_base_url = public_base_url.rstrip("/") if public_base_url else None

    # --- Helpers -----------------------------------------------------------------

    def _path(self, bucket: str, key: str) -> Path:
        safe = key.lstrip("/")
        base = (self.root / bucket).resolve()
        target = (base / safe).resolve() if safe else base
        if target != base and base not in target.parents:
            raise InvalidArgumentError("reference_path_traversal")
        return target

    def local_path(self, bucket: str, key: str) -> Path:
        """Filesystem path of an object (used by the host to serve locators)."""
        return self._path(bucket, key)

    def _meta_path(self, bucket: str, key: str) -> Path:
        return self.root / META_DIRNAME / bucket / f"{key.lstrip('/')}.json"

    def _read_meta(self, bucket: str, key: str) -> Dict[str, Any]:
        try:
            with open(self._meta_path(bucket, key), "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_meta(self, bucket: str, key: str, data: Dict[str, Any]) -> None:
        path = self._meta_path(bucket, key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    @staticmethod
    def _prune_empty_dirs(start: Path, stop: Path) -> None:
        # Buckets have no real folders; drop directories emptied by a delete.
        current = start
        while current != stop and stop in current.parents:
            try:
                current.rmdir()
            except OSError:
                return
            current = current.parent

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
        path = self._path(bucket, key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(body)
            self._write_meta(bucket, key, {"content_type": content_type, "metadata": dict(metadata or {})})
        except OSError as exc:
            raise _translate_os_error(exc) from exc
        return {"size": len(body), "content_type": content_type}

    def presign_download(
        self, *, bucket: str, key: str, expires_in: int, filename: Optional[str] = None
    ) -> Dict[str, Any]:
        path = self._path(bucket, key)
        if not path.is_file():
            raise NotFoundError("object_not_found")
        if self.public_base_url:
            url = f"{self.public_base_url}/{quote(bucket)}/{quote(key.lstrip('/'))}"
            if filename:
                url = f"{url}?download={quote(filename)}"
        else:
            url = path.as_uri()
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=expires_in)
        return {"url": url, "expires_at": expires_at.isoformat(timespec="seconds")}

    def head_object(self, *, bucket: str, key: str) -> Dict[str, Any]:
        path = self._path(bucket, key)
        if not path.is_file():
            raise NotFoundError("object_not_found")
        try:
            st = path.stat()
        except OSError as exc:
            raise _translate_os_error(exc) from exc
        meta = self._read_meta(bucket, key)
        content_type = meta.get("content_type") or mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        return {
            "size": st.st_size,
            "content_type": content_type,
            "updated_at": datetime.fromtimestamp(st.st_mtime, timezone.utc).isoformat(timespec="seconds"),
            "metadata": dict(meta.get("metadata") or {}),
        }

    def delete_object(self, *, bucket: str, key: str) -> None:
        path = self._path(bucket, key)
        if not path.is_file():
            raise NotFoundError("object_not_found")
        try:
            path.unlink()
            self._meta_path(bucket, key).unlink(missing_ok=True)
        except OSError as exc:
            raise _translate_os_error(exc) from exc
        self._prune_empty_dirs(path.parent, self._path(bucket, ""))

    def list_objects(self, *, bucket: str, prefix: str, recursive: bool = False) -> List[str]:
        base = self._path(bucket, prefix)
        if not base.is_dir():
            return []
        try:
            if recursive:
                names = [p.relative_to(base).as_posix() for p in base.rglob("*") if p.is_file()]
            else:
                names = [p.name for p in base.iterdir()]
        except OSError as exc:
            raise _translate_os_error(exc) from exc
        return sorted(names)

    def update_metadata(
        self,
        *,
        bucket: str,
        key: str,
        metadata: Dict[str, str],
        content_type: Optional[str] = None,
    ) -> None:
        path = self._path(bucket, key)
        if not path.is_file():
            raise NotFoundError("object_not_found")
        current = self._read_meta(bucket, key)
        current["metadata"] = dict(metadata)
        if content_type:
            current["content_type"] = content_type
        try:
            self._write_meta(bucket, key, current)
        except OSError as exc:
            raise _translate_os_error(exc) from exc


__all__ = ["LocalFilesStorageBackend", "META_DIRNAME"]
