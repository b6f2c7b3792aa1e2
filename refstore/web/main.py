"refstore host"
from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, HTMLResponse, JSONResponse

from refstore.storage.backends.local import LocalFilesStorageBackend
from refstore.storage.client import StorageClient
from refstore.storage.config import load_storage_settings
from refstore.storage.errors import InvalidArgumentError, NotFoundError
from refstore.web import config as _cfg
from refstore.web.components import Layout, SignInHint, StorageActions
from refstore.web.routes import storage as storage_routes
from refstore.web.routes.auth import auth_router
from refstore.web.routes.storage import storage_router
from refstore.web.storage_wiring import LOCAL_FILES_ROUTE, wire_from_env


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via REFSTORE_ENABLE_DOTENV (default true).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("REFSTORE_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

# Fail fast on insecure production configuration
_cfg.ensure_secure_config_on_startup()

logger = logging.getLogger("refstore.web")


def wire_app() -> None:
    """(Re)build the storage client and auth gate from the environment."""
    backend, gate = wire_from_env()
    storage_routes.set_storage_client(StorageClient(backend, settings=load_storage_settings()))
    storage_routes.set_auth_gate(gate)


wire_app()


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    yield
    pending = storage_routes.STORAGE_CLIENT.pending_count
    if pending:
        logger.info("waiting for %s pending storage operations", pending)
    await storage_routes.STORAGE_CLIENT.drain()


app = FastAPI(
    title="refstore",
    description="Reference-scoped storage facade",
    version="0.1.0",
    lifespan=_lifespan,
)
app.include_router(auth_router)
app.include_router(storage_router)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
async def index(request: Request):
    gate = storage_routes.AUTH_GATE
    client = storage_routes.STORAGE_CLIENT
    user = gate.current_user(request)
    content = gate.when_signed_in(
        request,
        lambda _user: StorageActions(client.current_reference()).render(),
        lambda: SignInHint().render(),
    )
    page = Layout("Files", content, user_email=user.email if user else None)
    return HTMLResponse(page.render(), headers={"Cache-Control": "private, no-store"})


@app.get(LOCAL_FILES_ROUTE + "/{bucket}/{key:path}")
async def local_file(request: Request, bucket: str, key: str, download: str | None = None):
    """Serve objects of the local backend (the locators it hands out)."""
    client = storage_routes.STORAGE_CLIENT
    backend = client.backend
    if not storage_routes.AUTH_GATE.is_signed_in(request):
        return JSONResponse({"error": "unauthenticated"}, status_code=401)
    if not isinstance(backend, LocalFilesStorageBackend) or bucket != client.bucket:
        return JSONResponse({"error": "not_found"}, status_code=404)
    try:
        path = backend.local_path(bucket, key)
    except InvalidArgumentError:
        return JSONResponse({"error": "not_found"}, status_code=404)
    if not path.is_file():
        return JSONResponse({"error": "not_found"}, status_code=404)
    try:
        head = backend.head_object(bucket=bucket, key=key)
    except NotFoundError:
        # removed between the existence check and the metadata read
        return JSONResponse({"error": "not_found"}, status_code=404)
    return FileResponse(
        path,
        media_type=head.get("content_type"),
        filename=download or None,
        content_disposition_type="attachment" if download else "inline",
        headers={"Cache-Control": "private, no-store"},
    )
