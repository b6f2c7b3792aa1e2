"""Storage backend port used by the StorageClient."""
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol

from refstore.storage.errors import StorageError


class StorageBackendProtocol(Protocol):
    """Blocking object-storage calls the client runs off the event loop.

    Implementations translate their native failures into
    `refstore.storage.errors` kinds; they never return error markers.
    Keys are relative to the bucket and carry no leading slash.
    """

    def put_object(
        self,
        *,
        bucket: str,
        key: str,
        body: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]: ...

    def presign_download(
        self, *, bucket: str, key: str, expires_in: int, filename: Optional[str] = None
    ) -> Dict[str, Any]: ...

    def head_object(self, *, bucket: str, key: str) -> Dict[str, Any]: ...

    def delete_object(self, *, bucket: str, key: str) -> None: ...

    def list_objects(self, *, bucket: str, prefix: str, recursive: bool = False) -> List[str]: ...

    def update_metadata(
        self,
        *,
        bucket: str,
        key: str,
        metadata: Dict[str, str],
        content_type: Optional[str] = None,
    ) -> None: ...


class NullStorageBackend:
    """Fallback backend that signals storage is not configured."""

    def _unavailable(self) -> StorageError:
        return StorageError("storage_backend_not_configured", kind="storage_backend_not_configured")

    def put_object(self, *, bucket, key, body, content_type, metadata=None):  # noqa: D401
        raise self._unavailable()

    def presign_download(self, *, bucket, key, expires_in, filename=None):  # noqa: D401
        raise self._unavailable()

    def head_object(self, *, bucket, key):  # noqa: D401
        raise self._unavailable()

    def delete_object(self, *, bucket, key):  # noqa: D401
        raise self._unavailable()

    def list_objects(self, *, bucket, prefix, recursive=False):  # noqa: D401
        raise self._unavailable()

    def update_metadata(self, *, bucket, key, metadata, content_type=None):  # noqa: D401
        raise self._unavailable()


__all__ = ["StorageBackendProtocol", "NullStorageBackend"]
