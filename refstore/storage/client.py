"""
Reference-scoped asynchronous storage client.

Intent:
    Give host applications a small facade over an object-storage backend:
    point the client at a path with `set_reference`, then fire upload,
    download, delete, list and metadata operations against it. Every
    operation returns immediately; the outcome is published later to the
    AsyncResultRegistry under the caller's response identifier.

Behavior:
    - The current reference is captured when an operation is dispatched.
      Calling `set_reference` afterwards never changes what an in-flight
      operation targets.
    - Backend calls are blocking SDK calls; they run in the loop's default
      executor so the event loop stays responsive.
    - Failures never raise from the dispatch call. They resolve the
      operation as FAILED with a `StorageError` kind.
    - Without a response identifier the outcome is discarded (debug log only).
    - No retries, no timeouts, no cancellation: those belong to the backend.

Permissions:
    The client does not check authentication. The backend rejects
    unauthorised calls, which surface as `PermissionDeniedError`.
"""
from __future__ import annotations

import asyncio
import functools
import logging
import mimetypes
import os
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, Dict, Mapping, NamedTuple, Optional, Set, Union

from refstore.storage.backends.ports import StorageBackendProtocol
from refstore.storage.config import StorageSettings
from refstore.storage.errors import InvalidArgumentError, NotFoundError, StorageError
from refstore.storage.reference import StorageReference
from refstore.storage.registry import AsyncResultRegistry, OperationKind, PendingOperation

_log = logging.getLogger("refstore.storage")

UploadSource = Union[str, os.PathLike, bytes, bytearray, memoryview, BinaryIO]
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class _UploadBody(NamedTuple):
    body: bytes
    filename: Optional[str]


def _read_upload_source(source: Any) -> _UploadBody:
    """Return (body, filename hint) for a path, raw bytes, or binary file object."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return _UploadBody(bytes(source), None)
    if isinstance(source, (str, os.PathLike)):
        raw = os.fspath(source)
        if isinstance(raw, bytes):
            raw = os.fsdecode(raw)
        if not raw.strip():
            raise InvalidArgumentError("empty_local_path")
        path = Path(raw)
        if path.is_dir():
            raise InvalidArgumentError("local_path_is_directory")
        try:
            return _UploadBody(path.read_bytes(), path.name)
        except FileNotFoundError as exc:
            raise NotFoundError("local_file_not_found") from exc
        except OSError as exc:
            raise NotFoundError(f"local_file_unreadable: {exc.__class__.__name__}") from exc
    read = getattr(source, "read", None)
    if callable(read):
        try:
            data = read()
        except (ValueError, OSError) as exc:
            raise InvalidArgumentError(f"upload_buffer_unreadable: {exc.__class__.__name__}") from exc
        if not isinstance(data, (bytes, bytearray)):
            raise InvalidArgumentError("upload_buffer_not_binary")
        name = getattr(source, "name", None)
        return _UploadBody(bytes(data), os.path.basename(name) if isinstance(name, str) else None)
    raise InvalidArgumentError("unsupported_upload_source")


def _capture_upload_source(source: Any) -> Union[str, os.PathLike, _UploadBody, StorageError]:
    """Read buffers and file objects now; paths are read later in the executor.

    The caller may close or reuse a file object as soon as dispatch returns.
    A read failure is kept and delivered through the registry.
    """
    if isinstance(source, (str, os.PathLike)):
        return source
    try:
        return _read_upload_source(source)
    except StorageError as exc:
        return exc


def _guess_content_type(*names: Optional[str]) -> str:
    for name in names:
        if name:
            guessed, _ = mimetypes.guess_type(name)
            if guessed:
                return guessed
    return DEFAULT_CONTENT_TYPE


class StorageClient:
    """Facade binding a backend, a current reference and a result registry."""

    def __init__(
        self,
        backend: StorageBackendProtocol,
        *,
        registry: AsyncResultRegistry | None = None,
        settings: StorageSettings | None = None,
        reference: str = "",
    ):
        self.backend = backend
        self.registry = registry if registry is not None else AsyncResultRegistry()
        self.settings = settings or StorageSettings()
        self._reference = StorageReference(reference)
        self._tasks: Set[asyncio.Task] = set()

    # --- Reference scoping -------------------------------------------------------

    def set_reference(self, path: str) -> "StorageClient":
        """Point subsequent operations at `path`. Never validates against the backend."""
        self._reference = StorageReference(path)
        return self

    def current_reference(self) -> str:
        return self._reference.path

    @property
    def ref(self) -> StorageReference:
        return self._reference

    @property
    def bucket(self) -> str:
        return self.settings.bucket

    @property
    def pending_count(self) -> int:
        return len(self._tasks)

    # --- Operations --------------------------------------------------------------

    def upload_file(
        self,
        local_path: UploadSource,
        response_id: Optional[str] = None,
        *,
        content_type: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        """Upload a local file or in-memory buffer to the current reference.

        Resolves to {"path", "name", "bucket", "size", "content_type", "metadata"}.
        An existing object at the reference is overwritten. Buffers and file
        objects are read during this call; paths are read when the work runs.
        """
        source = _capture_upload_source(local_path)
        work = functools.partial(self._upload, source=source, content_type=content_type, metadata=metadata)
        self._dispatch(OperationKind.UPLOAD, response_id, work)

    def download_file(
        self,
        response_id: Optional[str] = None,
        *,
        expires_in: Optional[int] = None,
        filename: Optional[str] = None,
    ) -> None:
        """Resolve to a download locator {"url", "expires_at", "path"}; no bytes move."""
        work = functools.partial(self._download, expires_in=expires_in, filename=filename)
        self._dispatch(OperationKind.DOWNLOAD, response_id, work)

    def delete_file(self, response_id: Optional[str] = None) -> None:
        self._dispatch(OperationKind.DELETE, response_id, self._delete)

    def list_files(
        self,
        response_id: Optional[str] = None,
        *,
        recursive: Optional[bool] = None,
        max_results: Optional[int] = None,
    ) -> None:
        """Resolve to the sorted child names under the current reference.

        Non-recursive and unlimited unless configured otherwise. An empty
        directory-like reference resolves to an empty list.
        """
        work = functools.partial(self._list, recursive=recursive, max_results=max_results)
        self._dispatch(OperationKind.LIST, response_id, work)

    def get_metadata(self, response_id: Optional[str] = None) -> None:
        self._dispatch(OperationKind.METADATA, response_id, self._metadata)

    def update_metadata(
        self,
        metadata: Mapping[str, Any],
        response_id: Optional[str] = None,
        *,
        content_type: Optional[str] = None,
    ) -> None:
        """Replace custom metadata of the object; resolves to the refreshed metadata."""
        work = functools.partial(self._update_metadata, metadata=metadata, content_type=content_type)
        self._dispatch(OperationKind.UPDATE_METADATA, response_id, work)

    async def drain(self) -> None:
        """Wait until every dispatched operation has resolved."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # --- Dispatch ----------------------------------------------------------------

    def _dispatch(
        self,
        kind: OperationKind,
        response_id: Optional[str],
        work: Callable[[StorageReference], Any],
    ) -> None:
        loop = asyncio.get_running_loop()
        snapshot = self._reference
        observed = response_id is not None
        op = PendingOperation(
            id=str(response_id) if observed else f"anon-{uuid.uuid4().hex}",
            kind=kind,
            reference=snapshot.path,
            observed=observed,
        )
        _log.debug("dispatch kind=%s id=%s reference=%s", kind.value, op.id, snapshot.path)
        task = loop.create_task(self._run(op, snapshot, work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self, op: PendingOperation, reference: StorageReference, work: Callable[[StorageReference], Any]) -> None:
        loop = asyncio.get_running_loop()
        try:
            reference.validate()
            result = await loop.run_in_executor(None, work, reference)
        except StorageError as exc:
            op.fail(exc)
        except Exception as exc:
            _log.warning(
                "storage operation crashed: kind=%s id=%s error=%s", op.kind.value, op.id, exc.__class__.__name__
            )
            op.fail(StorageError(f"unexpected_error: {exc.__class__.__name__}"))
        else:
            op.succeed(result)

        if op.error is not None:
            _log.info("operation failed: kind=%s id=%s error=%s", op.kind.value, op.id, op.error.kind)
        if not op.observed:
            _log.debug("discarding unobserved result: kind=%s status=%s", op.kind.value, op.status.value)
        self.registry._resolve(op)

    # --- Work functions (executor threads) ---------------------------------------

    def _upload(
        self,
        reference: StorageReference,
        *,
        source: Any,
        content_type: Optional[str],
        metadata: Optional[Mapping[str, Any]],
    ) -> Dict[str, Any]:
        if reference.is_root:
            raise InvalidArgumentError("reference_is_bucket_root")
        if metadata is not None and not isinstance(metadata, Mapping):
            raise InvalidArgumentError("metadata_not_mapping")
        if isinstance(source, StorageError):
            raise source
        body, filename = source if isinstance(source, _UploadBody) else _read_upload_source(source)
        if len(body) > self.settings.max_upload_bytes:
            raise InvalidArgumentError("upload_too_large")
        ctype = content_type or _guess_content_type(filename, reference.name)
        custom = {str(k): str(v) for k, v in (metadata or {}).items()}
        info = self.backend.put_object(
            bucket=self.bucket,
            key=reference.path,
            body=body,
            content_type=ctype,
            metadata=custom or None,
        )
        info = info or {}
        return {
            "path": reference.path,
            "name": reference.name,
            "bucket": self.bucket,
            "size": info.get("size") if info.get("size") is not None else len(body),
            "content_type": info.get("content_type") or ctype,
            "metadata": custom,
        }

    def _download(self, reference: StorageReference, *, expires_in: Optional[int], filename: Optional[str]) -> Dict[str, Any]:
        ttl = int(expires_in) if expires_in else self.settings.download_ttl_seconds
        if ttl <= 0:
            raise InvalidArgumentError("expires_in_not_positive")
        res = self.backend.presign_download(bucket=self.bucket, key=reference.path, expires_in=ttl, filename=filename)
        url = res.get("url") if isinstance(res, dict) else None
        if not url:
            raise StorageError("failed_to_presign_download")
        expires_at = res.get("expires_at")
        if not expires_at:
            # Fallback: compute server-side expiry when the backend omits it
            expires_at = (datetime.now(timezone.utc) + timedelta(seconds=ttl)).isoformat(timespec="seconds")
        return {"url": str(url), "expires_at": expires_at, "path": reference.path}

    def _delete(self, reference: StorageReference) -> bool:
        if reference.is_root:
            raise InvalidArgumentError("reference_is_bucket_root")
        self.backend.delete_object(bucket=self.bucket, key=reference.path)
        return True

    def _list(self, reference: StorageReference, *, recursive: Optional[bool], max_results: Optional[int]) -> list[str]:
        deep = self.settings.list_recursive if recursive is None else bool(recursive)
        limit = self.settings.list_max_results if max_results is None else int(max_results)
        if limit < 0:
            raise InvalidArgumentError("max_results_negative")
        names = sorted(self.backend.list_objects(bucket=self.bucket, prefix=reference.path, recursive=deep))
        return names[:limit] if limit else names

    def _metadata(self, reference: StorageReference) -> Dict[str, Any]:
        head = self.backend.head_object(bucket=self.bucket, key=reference.path)
        return {
            "path": reference.path,
            "name": reference.name,
            "bucket": self.bucket,
            "size": head.get("size"),
            "content_type": head.get("content_type"),
            "updated_at": head.get("updated_at"),
            "metadata": dict(head.get("metadata") or {}),
        }

    def _update_metadata(
        self,
        reference: StorageReference,
        *,
        metadata: Mapping[str, Any],
        content_type: Optional[str],
    ) -> Dict[str, Any]:
        if not isinstance(metadata, Mapping):
            raise InvalidArgumentError("metadata_not_mapping")
        custom = {str(k): str(v) for k, v in metadata.items()}
        self.backend.update_metadata(bucket=self.bucket, key=reference.path, metadata=custom, content_type=content_type)
        return self._metadata(reference)


__all__ = ["StorageClient", "UploadSource"]
