"""
Pytest configuration for refstore tests.

Why: Force AnyIO to use the asyncio backend (the client schedules work on the
running asyncio loop) and keep storage/auth environment variables from the
developer shell out of the tests.
"""
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

_ENV_VARS = (
    "REFSTORE_ENV",
    "AUTH_PROVIDER",
    "STORAGE_BACKEND",
    "STORAGE_BUCKET",
    "STORAGE_LOCAL_ROOT",
    "STORAGE_DOWNLOAD_TTL_SECONDS",
    "STORAGE_LIST_RECURSIVE",
    "STORAGE_LIST_MAX_RESULTS",
    "STORAGE_MAX_UPLOAD_BYTES",
    "SUPABASE_URL",
    "SUPABASE_KEY",
    "SUPABASE_SERVICE_ROLE_KEY",
    "SUPABASE_FALLBACK_STORAGE3",
    "SUPABASE_REWRITE_SIGNED_URL_HOST",
    "AUTO_CREATE_STORAGE_BUCKETS",
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clean_storage_env(monkeypatch: pytest.MonkeyPatch):
    """Start every test from dev defaults: local backend, in-memory auth."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    yield
