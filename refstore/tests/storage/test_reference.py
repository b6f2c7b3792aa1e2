"""
Storage references: normalization and deferred validation.
"""
from __future__ import annotations

import pytest

from refstore.storage.errors import InvalidArgumentError
from refstore.storage.reference import StorageReference, normalize_path


def test_normalize_collapses_and_strips_slashes():
    assert normalize_path("/a//b/") == "a/b"
    assert normalize_path(None) == ""
    assert StorageReference("  /images///a.png ").path == "images/a.png"


def test_root_parent_child_and_name():
    root = StorageReference("")
    assert root.is_root and root.name == "" and root.parent is None

    ref = root.child("images").child("/a.png")
    assert ref.path == "images/a.png"
    assert ref.name == "a.png"
    assert ref.parent == StorageReference("images")
    assert ref.root.is_root
    assert str(ref) == "images/a.png"


def test_creating_a_malformed_reference_never_raises():
    ref = StorageReference("a/../b")
    assert ref.path == "a/../b"
    with pytest.raises(InvalidArgumentError) as exc:
        ref.validate()
    assert exc.value.message == "reference_path_traversal"


@pytest.mark.parametrize(
    "path, reason",
    [
        ("a\\b", "reference_invalid_characters"),
        ("a/\x00b", "reference_invalid_characters"),
        ("./a", "reference_path_traversal"),
        ("x" * 1025, "reference_too_long"),
    ],
)
def test_validate_rejects_malformed_paths(path, reason):
    with pytest.raises(InvalidArgumentError) as exc:
        StorageReference(path).validate()
    assert exc.value.kind == "invalid_argument"
    assert exc.value.message == reason


def test_validate_accepts_regular_paths():
    ref = StorageReference("users/42/report..final.pdf")
    assert ref.validate() is ref
