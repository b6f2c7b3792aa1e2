"""
Storage wiring: backend and auth gate selection from the environment.

Notes:
    A minimal fake `supabase` module is injected into `sys.modules` so the
    Supabase path can be exercised without the real client or network.
"""
from __future__ import annotations

import sys
import types
from types import SimpleNamespace

import pytest

from refstore.identity_access.sessions import InMemorySessionProvider, SupabaseSessionProvider
from refstore.storage.backends.local import LocalFilesStorageBackend
from refstore.storage.backends.ports import NullStorageBackend
from refstore.storage.backends.supabase import SupabaseStorageBackend
from refstore.web import storage_wiring


def _install_fake_supabase_module(monkeypatch: pytest.MonkeyPatch, created: list) -> None:
    class _FakeAuth:
        def get_user(self, jwt):
            return SimpleNamespace(user=None)

    class _FakeClient:
        def __init__(self) -> None:
            self.storage = SimpleNamespace(from_=lambda bucket: SimpleNamespace())
            self.auth = _FakeAuth()

    def create_client(url: str, key: str):
        created.append((url, key))
        return _FakeClient()

    monkeypatch.setitem(sys.modules, "supabase", types.SimpleNamespace(create_client=create_client))


def test_local_backend_by_default(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.setenv("STORAGE_LOCAL_ROOT", str(tmp_path))
    backend, gate = storage_wiring.wire_from_env()
    assert isinstance(backend, LocalFilesStorageBackend)
    assert backend.root == tmp_path.resolve()
    assert backend.public_base_url == storage_wiring.LOCAL_FILES_ROUTE
    assert isinstance(gate.provider, InMemorySessionProvider)


def test_supabase_backend_and_auth_share_one_client(monkeypatch: pytest.MonkeyPatch):
    created: list = []
    _install_fake_supabase_module(monkeypatch, created)
    monkeypatch.setenv("SUPABASE_URL", "http://supabase.local:54321")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")
    monkeypatch.setenv("AUTH_PROVIDER", "supabase")

    backend, gate = storage_wiring.wire_from_env()
    assert isinstance(backend, SupabaseStorageBackend)
    assert isinstance(gate.provider, SupabaseSessionProvider)
    assert created == [("http://supabase.local:54321", "test-service-role-key")]


def test_supabase_without_client_falls_back_to_null(monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture):
    monkeypatch.setenv("STORAGE_BACKEND", "supabase")
    monkeypatch.setattr(storage_wiring, "create_supabase_client", lambda: None)
    monkeypatch.setattr(storage_wiring, "_storage3_fallback", lambda: None)
    with caplog.at_level("WARNING", logger="refstore.web"):
        backend = storage_wiring.build_storage_backend()
    assert isinstance(backend, NullStorageBackend)
    assert any("Null backend" in rec.getMessage() for rec in caplog.records)


def test_create_client_failure_returns_none(monkeypatch: pytest.MonkeyPatch):
    def create_client(url, key):
        raise ValueError("Invalid API key")

    monkeypatch.setitem(sys.modules, "supabase", types.SimpleNamespace(create_client=create_client))
    monkeypatch.setenv("SUPABASE_URL", "http://127.0.0.1:54321")
    monkeypatch.setenv("SUPABASE_SERVICE_ROLE_KEY", "sb_secret_local")
    assert storage_wiring.create_supabase_client() is None


def test_supabase_auth_without_client_uses_memory(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("AUTH_PROVIDER", "supabase")
    monkeypatch.setattr(storage_wiring, "create_supabase_client", lambda: None)
    gate = storage_wiring.build_auth_gate()
    assert isinstance(gate.provider, InMemorySessionProvider)
