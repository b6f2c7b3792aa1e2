"""
Storage references: slash-delimited pointers into a bucket.

Conventions:
    - Leading/trailing slashes are dropped and repeated slashes collapse, so
      "/a//b/" and "a/b" denote the same reference.
    - The empty path is the bucket root.
    - Creating a reference never fails and never talks to the backend. A
      malformed path (traversal segments, backslashes, control characters) is
      kept as-is and reported by `validate()`, which the client calls when an
      operation is dispatched so the failure travels through the registry.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from refstore.storage.errors import InvalidArgumentError

_MULTI_SLASH_RE = re.compile(r"/{2,}")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
MAX_PATH_LENGTH = 1024


def normalize_path(path: str | None) -> str:
    value = str(path or "").strip()
    value = _MULTI_SLASH_RE.sub("/", value)
    return value.strip("/")


@dataclass(frozen=True)
class StorageReference:
    """Immutable pointer to a bucket, directory-like prefix, or object."""

    path: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", normalize_path(self.path))

    @property
    def full_path(self) -> str:
        return self.path

    @property
    def name(self) -> str:
        """Last path segment ("" at the root)."""
        return self.path.rsplit("/", 1)[-1] if self.path else ""

    @property
    def is_root(self) -> bool:
        return not self.path

    @property
    def parent(self) -> Optional["StorageReference"]:
        if self.is_root:
            return None
        head, _, _ = self.path.rpartition("/")
        return StorageReference(head)

    @property
    def root(self) -> "StorageReference":
        return StorageReference("")

    def child(self, name: str) -> "StorageReference":
        """Return the reference for `name` below this one (name may contain slashes)."""
        sub = normalize_path(name)
        if not sub:
            return self
        return StorageReference(f"{self.path}/{sub}" if self.path else sub)

    def validate(self) -> "StorageReference":
        """Raise InvalidArgumentError when the path is malformed; return self otherwise."""
        if len(self.path) > MAX_PATH_LENGTH:
            raise InvalidArgumentError("reference_too_long")
        if "\\" in self.path or _CONTROL_RE.search(self.path):
            raise InvalidArgumentError("reference_invalid_characters")
        if any(seg in (".", "..") for seg in self.path.split("/")):
            raise InvalidArgumentError("reference_path_traversal")
        return self

    def __str__(self) -> str:
        return self.path


__all__ = ["StorageReference", "normalize_path", "MAX_PATH_LENGTH"]
