"""
Error kinds for storage operations.

Why:
    Callers observe failures through the result registry, long after the
    dispatch call returned. A small, closed set of error kinds lets hosts
    branch on `error.kind` without knowing which backend SDK produced it.

Behavior:
    - Every backend adapter translates its native exceptions into one of the
      classes below. Anything unrecognised becomes a plain `StorageError`
      with kind "unknown".
    - `PermissionDeniedError` deliberately does not reuse Python's builtin
      `PermissionError` name (an `OSError` subclass) to avoid shadowing it.
"""
from __future__ import annotations


class StorageError(Exception):
    """Base class for every storage failure delivered to observers."""

    kind = "unknown"

    def __init__(self, message: str = "", *, kind: str | None = None):
        super().__init__(message or (kind or self.kind))
        if kind is not None:
            self.kind = kind
        self.message = message or self.kind

    def to_dict(self) -> dict:
        return {"kind": self.kind, "message": self.message}


class NotFoundError(StorageError):
    """The referenced object (or local upload source) does not exist."""

    kind = "not_found"


class PermissionDeniedError(StorageError):
    """The authenticated identity lacks the required access."""

    kind = "permission_denied"


class NetworkError(StorageError):
    """Transport failure or backend unavailable."""

    kind = "network"


class InvalidArgumentError(StorageError):
    """Malformed local path, buffer, or storage reference."""

    kind = "invalid_argument"


def error_for_status(status: int | None, message: str = "") -> StorageError:
    """Map an HTTP-like status code to the matching storage error kind.

    400/409/413/422 are client-side mistakes, 401/403 access problems, 404 a
    missing object and 5xx (or no status at all) a backend/transport problem.
    """
    if status == 404:
        return NotFoundError(message or "not_found")
    if status in (401, 403):
        return PermissionDeniedError(message or "permission_denied")
    if status in (400, 409, 413, 422):
        return InvalidArgumentError(message or "invalid_argument")
    if status is None or status >= 500:
        return NetworkError(message or "backend_unavailable")
    return StorageError(message or f"status_{status}")


__all__ = [
    "StorageError",
    "NotFoundError",
    "PermissionDeniedError",
    "NetworkError",
    "InvalidArgumentError",
    "error_for_status",
]
