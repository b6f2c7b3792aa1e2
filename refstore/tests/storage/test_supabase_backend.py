"""
Supabase storage backend: duck-typed client fakes.

Why:
    The backend must work with both `supabase.create_client(...)` clients
    (`.storage.from_`) and bare storage3 clients (`.from_`), and translate
    storage3/httpx failures into refstore error kinds without a live stack.
"""
from __future__ import annotations

from types import SimpleNamespace

import httpx
import pytest

from refstore.storage.backends import supabase as supa
from refstore.storage.backends.supabase import LIST_PAGE_SIZE, SupabaseStorageBackend
from refstore.storage.errors import (
    InvalidArgumentError,
    NetworkError,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
)


class StorageApiError(Exception):
    """Mimics storage3's StorageException: first arg is the API payload."""


class _FakeBucket:
    def __init__(self):
        self.objects = {}
        self.uploads = []
        self.removed = []
        self.list_calls = []
        self.signed_response = None

    def _entry(self, name, key):
        body, opts = self.objects[key]
        return {
            "name": name,
            "id": f"id-{key}",
            "updated_at": "2026-01-01T00:00:00Z",
            "metadata": {"size": len(body), "mimetype": opts.get("content-type")},
            "user_metadata": opts.get("metadata") or {},
        }

    def upload(self, path, file, file_options):
        self.uploads.append((path, file_options))
        self.objects[path] = (file, file_options)

    def update(self, path, file, file_options):
        self.upload(path, file, file_options)

    def download(self, path):
        return self.objects[path][0]

    def create_signed_url(self, path, expires_in, options=None):
        if self.signed_response is not None:
            return self.signed_response
        return {"signedURL": f"https://sb.example/object/sign/uploads/{path}?token=t"}

    def list(self, path=None, options=None):
        self.list_calls.append((path, dict(options or {})))
        prefix = f"{path}/" if path else ""
        children = {}
        for key in self.objects:
            if not key.startswith(prefix):
                continue
            head, sep, _rest = key[len(prefix):].partition("/")
            if sep:
                children[head] = {"name": head, "id": None}
            else:
                children[head] = self._entry(head, key)
        rows = [children[name] for name in sorted(children)]
        search = (options or {}).get("search")
        if search:
            rows = [r for r in rows if search in r["name"]]
        offset = (options or {}).get("offset", 0)
        limit = (options or {}).get("limit", 100)
        return rows[offset:offset + limit]

    def remove(self, paths):
        out = []
        for p in paths:
            if p in self.objects:
                del self.objects[p]
                out.append({"name": p})
        self.removed.extend(paths)
        return out


def _client(bucket):
    return SimpleNamespace(storage=SimpleNamespace(from_=lambda name: bucket))


def test_put_and_head_roundtrip_with_supabase_client():
    bucket = _FakeBucket()
    backend = SupabaseStorageBackend(_client(bucket))
    info = backend.put_object(
        bucket="uploads", key="uploads/a/b.png", body=b"1234", content_type="image/png", metadata={"k": 1}
    )
    assert info == {"size": 4, "content_type": "image/png"}
    path, opts = bucket.uploads[0]
    assert path == "a/b.png"
    assert opts["content-type"] == opts["contentType"] == "image/png"
    assert opts["upsert"] == "true"
    assert opts["metadata"] == {"k": "1"}

    head = backend.head_object(bucket="uploads", key="a/b.png")
    assert head["size"] == 4
    assert head["content_type"] == "image/png"
    assert head["metadata"] == {"k": "1"}


def test_storage3_client_exposing_from_directly():
    bucket = _FakeBucket()
    backend = SupabaseStorageBackend(SimpleNamespace(from_=lambda name: bucket))
    backend.put_object(bucket="uploads", key="x.txt", body=b"x", content_type="text/plain")
    assert "x.txt" in bucket.objects


def test_invalid_client_raises_storage_error():
    backend = SupabaseStorageBackend(object())
    with pytest.raises(StorageError) as exc:
        backend.head_object(bucket="uploads", key="x")
    assert exc.value.message == "invalid_supabase_client"


@pytest.mark.parametrize("key", ["signedURL", "signedUrl", "signed_url", "url"])
def test_presign_accepts_any_url_spelling(key):
    bucket = _FakeBucket()
    bucket.signed_response = {key: "https://sb.example/signed"}
    backend = SupabaseStorageBackend(_client(bucket))
    res = backend.presign_download(bucket="uploads", key="a.txt", expires_in=60)
    assert res["url"] == "https://sb.example/signed"
    assert res["expires_at"]


def test_presign_without_url_fails():
    bucket = _FakeBucket()
    bucket.signed_response = {"error": "nope"}
    backend = SupabaseStorageBackend(_client(bucket))
    with pytest.raises(StorageError):
        backend.presign_download(bucket="uploads", key="a.txt", expires_in=60)


def test_signed_url_host_rewrite(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUPABASE_URL", "http://127.0.0.1:54321")
    monkeypatch.setenv("SUPABASE_REWRITE_SIGNED_URL_HOST", "true")
    bucket = _FakeBucket()
    bucket.signed_response = {"signedURL": "http://kong:8000/object/sign/uploads/a.txt?token=t"}
    backend = SupabaseStorageBackend(_client(bucket))
    res = backend.presign_download(bucket="uploads", key="a.txt", expires_in=60)
    assert res["url"] == "http://127.0.0.1:54321/storage/v1/object/sign/uploads/a.txt?token=t"


def test_delete_checks_for_missing_object():
    bucket = _FakeBucket()
    backend = SupabaseStorageBackend(_client(bucket))
    with pytest.raises(NotFoundError):
        backend.delete_object(bucket="uploads", key="ghost.txt")
    assert bucket.removed == []

    backend.put_object(bucket="uploads", key="docs/a.txt", body=b"a", content_type="text/plain")
    backend.delete_object(bucket="uploads", key="docs/a.txt")
    assert bucket.removed == ["docs/a.txt"]


def test_list_non_recursive_and_recursive():
    bucket = _FakeBucket()
    backend = SupabaseStorageBackend(_client(bucket))
    for key in ("docs/b.txt", "docs/a.txt", "docs/sub/c.txt", "other.txt"):
        backend.put_object(bucket="uploads", key=key, body=b"x", content_type="text/plain")

    assert backend.list_objects(bucket="uploads", prefix="docs") == ["a.txt", "b.txt", "sub"]
    assert backend.list_objects(bucket="uploads", prefix="docs", recursive=True) == ["a.txt", "b.txt", "sub/c.txt"]
    assert backend.list_objects(bucket="uploads", prefix="empty") == []


def test_list_follows_pagination():
    bucket = _FakeBucket()
    backend = SupabaseStorageBackend(_client(bucket))
    for i in range(LIST_PAGE_SIZE + 5):
        bucket.objects[f"many/f{i:05d}"] = (b"", {})
    names = backend.list_objects(bucket="uploads", prefix="many")
    assert len(names) == LIST_PAGE_SIZE + 5
    offsets = [opts["offset"] for (_p, opts) in bucket.list_calls]
    assert offsets == [0, LIST_PAGE_SIZE]


def test_update_metadata_rewrites_object():
    bucket = _FakeBucket()
    backend = SupabaseStorageBackend(_client(bucket))
    backend.put_object(bucket="uploads", key="n.txt", body=b"abc", content_type="text/plain")
    backend.update_metadata(bucket="uploads", key="n.txt", metadata={"tag": "x"})
    body, opts = bucket.objects["n.txt"]
    assert body == b"abc"
    assert opts["metadata"] == {"tag": "x"}
    assert opts["content-type"] == "text/plain"


@pytest.mark.parametrize(
    "exc, cls",
    [
        (StorageApiError({"statusCode": 404, "error": "not_found", "message": "Object not found"}), NotFoundError),
        (StorageApiError({"statusCode": "400", "error": "not_found", "message": "x"}), NotFoundError),
        (StorageApiError({"statusCode": 403, "error": "Unauthorized", "message": "denied"}), PermissionDeniedError),
        (StorageApiError({"statusCode": 413, "error": "Payload too large", "message": "big"}), InvalidArgumentError),
        (StorageApiError({"statusCode": 503, "error": "Unavailable", "message": "down"}), NetworkError),
        (httpx.ConnectError("refused"), NetworkError),
    ],
)
def test_translate_exception_maps_kinds(exc, cls):
    assert isinstance(supa._translate_exception(exc), cls)


def test_translate_http_status_error():
    request = httpx.Request("GET", "https://sb.example/storage/v1/object/x")
    response = httpx.Response(401, request=request)
    err = supa._translate_exception(httpx.HTTPStatusError("unauthorized", request=request, response=response))
    assert isinstance(err, PermissionDeniedError)


def test_translate_unknown_exception_is_generic():
    err = supa._translate_exception(RuntimeError("weird"))
    assert type(err) is StorageError
    assert err.message == "RuntimeError: weird"


def test_upload_errors_are_translated():
    class _Failing(_FakeBucket):
        def upload(self, path, file, file_options):
            raise StorageApiError({"statusCode": 403, "error": "Unauthorized", "message": "new row violates rls"})

    backend = SupabaseStorageBackend(_client(_Failing()))
    with pytest.raises(PermissionDeniedError) as exc:
        backend.put_object(bucket="uploads", key="a.txt", body=b"a", content_type="text/plain")
    assert exc.value.message == "new row violates rls"
