"""
Storage routes: the StorageClient facade exposed to the host UI.

Why:
    The host observes results by response id, like a reactive input: an
    operation dispatched with `response_id=up` becomes readable at
    `/api/inputs/up` once it resolves.

Behavior:
    - Dispatch routes answer 202 immediately; the outcome is never part of
      the dispatch response.
    - Every route requires a signed-in caller: the AuthGate resolves the
      Bearer token or session cookie of each request (401 otherwise).
    - Responses are private and non-storable.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qs

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from refstore.identity_access.gate import AuthGate
from refstore.identity_access.sessions import InMemorySessionProvider
from refstore.storage.backends.ports import NullStorageBackend
from refstore.storage.client import StorageClient
from refstore.storage.registry import UNSET

storage_router = APIRouter(tags=["Storage"])
logger = logging.getLogger("refstore.web")

STORAGE_CLIENT: StorageClient = StorageClient(NullStorageBackend())
AUTH_GATE: AuthGate = AuthGate(InMemorySessionProvider())


def set_storage_client(client: StorageClient) -> None:
    """Allow tests or startup code to provide a concrete storage client."""
    global STORAGE_CLIENT
    STORAGE_CLIENT = client


def set_auth_gate(gate: AuthGate) -> None:
    global AUTH_GATE
    AUTH_GATE = gate


def _private_response(body: Any, *, status_code: int) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers={"Cache-Control": "private, no-store"})


def _require_signed_in(request: Request) -> Optional[JSONResponse]:
    if not AUTH_GATE.is_signed_in(request):
        return _private_response({"error": "unauthenticated"}, status_code=401)
    return None


def _invalid(detail: str) -> JSONResponse:
    return _private_response({"error": "invalid_argument", "detail": detail}, status_code=400)


def _clean_response_id(response_id: Optional[str]) -> Optional[str]:
    value = (response_id or "").strip()
    return value or None


def _dispatched(kind: str, response_id: Optional[str]) -> JSONResponse:
    body = {
        "dispatched": kind,
        "response_id": response_id,
        "reference": STORAGE_CLIENT.current_reference(),
    }
    return _private_response(body, status_code=202)


async def _read_payload(request: Request) -> Optional[Dict[str, Any]]:
    """Parse a JSON or urlencoded body; None when malformed."""
    raw = await request.body()
    ctype = (request.headers.get("content-type") or "").lower()
    if "application/x-www-form-urlencoded" in ctype:
        parsed = parse_qs(raw.decode("utf-8", "replace"), keep_blank_values=True)
        return {k: v[-1] for k, v in parsed.items()}
    try:
        payload = json.loads(raw or b"{}")
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


# --- Reference -------------------------------------------------------------------


@storage_router.get("/api/storage/reference")
async def get_reference(request: Request):
    error = _require_signed_in(request)
    if error:
        return error
    return _private_response({"reference": STORAGE_CLIENT.current_reference()}, status_code=200)


@storage_router.put("/api/storage/reference")
async def put_reference(request: Request):
    """Replace the current reference. Malformed paths fail later, per operation."""
    error = _require_signed_in(request)
    if error:
        return error
    payload = await _read_payload(request)
    if payload is None or not isinstance(payload.get("path", ""), str):
        return _invalid("path_must_be_string")
    STORAGE_CLIENT.set_reference(payload.get("path", ""))
    return _private_response({"reference": STORAGE_CLIENT.current_reference()}, status_code=200)


# --- Operations ------------------------------------------------------------------


@storage_router.post("/api/storage/upload")
async def upload(request: Request, response_id: Optional[str] = None, filename: Optional[str] = None):
    """Upload the raw request body to the current reference."""
    error = _require_signed_in(request)
    if error:
        return error
    body = await request.body()
    logger.debug("upload received: bytes=%s", len(body))
    ctype = (request.headers.get("content-type") or "").split(";")[0].strip() or None
    rid = _clean_response_id(response_id)
    metadata = {"filename": filename} if filename else None
    STORAGE_CLIENT.upload_file(body, rid, content_type=ctype, metadata=metadata)
    return _dispatched("upload", rid)


@storage_router.post("/api/storage/download")
async def download(
    request: Request,
    response_id: Optional[str] = None,
    expires_in: Optional[int] = None,
    filename: Optional[str] = None,
):
    error = _require_signed_in(request)
    if error:
        return error
    rid = _clean_response_id(response_id)
    STORAGE_CLIENT.download_file(rid, expires_in=expires_in, filename=filename)
    return _dispatched("download", rid)


@storage_router.post("/api/storage/delete")
async def delete(request: Request, response_id: Optional[str] = None):
    error = _require_signed_in(request)
    if error:
        return error
    rid = _clean_response_id(response_id)
    STORAGE_CLIENT.delete_file(rid)
    return _dispatched("delete", rid)


@storage_router.post("/api/storage/list")
async def list_files(
    request: Request,
    response_id: Optional[str] = None,
    recursive: Optional[bool] = None,
    max_results: Optional[int] = None,
):
    error = _require_signed_in(request)
    if error:
        return error
    rid = _clean_response_id(response_id)
    STORAGE_CLIENT.list_files(rid, recursive=recursive, max_results=max_results)
    return _dispatched("list", rid)


@storage_router.post("/api/storage/metadata")
async def metadata(request: Request, response_id: Optional[str] = None):
    error = _require_signed_in(request)
    if error:
        return error
    rid = _clean_response_id(response_id)
    STORAGE_CLIENT.get_metadata(rid)
    return _dispatched("metadata", rid)


@storage_router.patch("/api/storage/metadata")
async def update_metadata(request: Request, response_id: Optional[str] = None):
    error = _require_signed_in(request)
    if error:
        return error
    payload = await _read_payload(request)
    if payload is None or not isinstance(payload.get("metadata"), dict):
        return _invalid("metadata_must_be_object")
    content_type = payload.get("content_type")
    if content_type is not None and not isinstance(content_type, str):
        return _invalid("content_type_must_be_string")
    rid = _clean_response_id(response_id)
    STORAGE_CLIENT.update_metadata(payload["metadata"], rid, content_type=content_type)
    return _dispatched("update_metadata", rid)


# --- Inputs ----------------------------------------------------------------------


@storage_router.get("/api/inputs")
async def list_inputs(request: Request):
    error = _require_signed_in(request)
    if error:
        return error
    return _private_response(STORAGE_CLIENT.registry.snapshot(), status_code=200)


@storage_router.get("/api/inputs/{response_id}")
async def get_input(request: Request, response_id: str):
    """Return the terminal state stored under `response_id`, or status "unset"."""
    error = _require_signed_in(request)
    if error:
        return error
    op = STORAGE_CLIENT.registry.get(response_id)
    if op is UNSET:
        return _private_response({"id": response_id, "status": "unset"}, status_code=200)
    return _private_response(op.to_dict(), status_code=200)


__all__ = ["storage_router", "set_storage_client", "set_auth_gate"]
