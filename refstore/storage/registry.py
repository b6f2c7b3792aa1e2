"""
Result registry for asynchronously resolved storage operations.

Why:
    Storage operations return immediately; their outcome arrives later on the
    event loop. Hosts observe outcomes under a response identifier they chose
    at dispatch time, the same way a reactive UI exposes a named input.

Behavior:
    - `get(id)` never blocks and returns `UNSET` until an operation dispatched
      under `id` has resolved.
    - Last write wins on *resolution* order: when two operations share an id,
      the one that resolves later is what observers see.
    - Operations dispatched without an id are never written.
    - Only the StorageClient writes (`_resolve`); hosts read or subscribe.

Thread safety:
    Writes normally happen on the event loop thread. The maps are still
    guarded by a lock so hosts reading from worker threads see consistent
    state.
"""
from __future__ import annotations

import asyncio
import enum
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from refstore.storage.errors import StorageError

_log = logging.getLogger("refstore.storage")


class OperationKind(str, enum.Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"
    DELETE = "delete"
    LIST = "list"
    METADATA = "metadata"
    UPDATE_METADATA = "update_metadata"


class OperationStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class _Unset:
    """Sentinel for identifiers that were never used or have not resolved."""

    _instance: Optional["_Unset"] = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()


@dataclass
class PendingOperation:
    id: str
    kind: OperationKind
    reference: str
    observed: bool = True
    status: OperationStatus = OperationStatus.PENDING
    result: Any = None
    error: Optional[StorageError] = None
    dispatched_at: float = field(default_factory=time.time)
    resolved_at: Optional[float] = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not OperationStatus.PENDING

    def succeed(self, result: Any) -> None:
        self._finish(OperationStatus.SUCCEEDED, result=result)

    def fail(self, error: StorageError) -> None:
        self._finish(OperationStatus.FAILED, error=error)

    def _finish(self, status: OperationStatus, *, result: Any = None, error: Optional[StorageError] = None) -> None:
        if self.is_terminal:
            raise RuntimeError("operation_already_resolved")
        self.status = status
        self.result = result
        self.error = error
        self.resolved_at = time.time()

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly view used by the host binding."""
        body: Dict[str, Any] = {
            "id": self.id,
            "kind": self.kind.value,
            "reference": self.reference,
            "status": self.status.value,
        }
        if self.status is OperationStatus.SUCCEEDED:
            body["result"] = self.result
        elif self.status is OperationStatus.FAILED and self.error is not None:
            body["error"] = self.error.to_dict()
        return body


Observer = Callable[[PendingOperation], Any]


class AsyncResultRegistry:
    """Map response identifiers to the latest resolved operation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, PendingOperation] = {}
        self._observers: Dict[str, List[Observer]] = {}
        self._global_observers: List[Observer] = []
        self._waiters: Dict[str, List[asyncio.Future]] = {}

    # --- Reads -------------------------------------------------------------------

    def get(self, response_id: str) -> PendingOperation | _Unset:
        with self._lock:
            return self._entries.get(response_id, UNSET)

    def ids(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            entries = dict(self._entries)
        return {rid: op.to_dict() for rid, op in entries.items()}

    def __contains__(self, response_id: object) -> bool:
        with self._lock:
            return response_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # --- Observers ---------------------------------------------------------------

    def subscribe(self, response_id: str, callback: Observer) -> Callable[[], None]:
        """Call `callback` on every resolution under `response_id`.

        A terminal state already present is replayed immediately. Returns a
        function that removes the subscription.
        """
        with self._lock:
            self._observers.setdefault(response_id, []).append(callback)
            current = self._entries.get(response_id)
        if current is not None:
            self._notify(callback, current)

        def _unsubscribe() -> None:
            with self._lock:
                callbacks = self._observers.get(response_id) or []
                if callback in callbacks:
                    callbacks.remove(callback)
                if not callbacks:
                    self._observers.pop(response_id, None)

        return _unsubscribe

    def subscribe_all(self, callback: Observer) -> Callable[[], None]:
        """Observe every identified resolution (no replay)."""
        with self._lock:
            self._global_observers.append(callback)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._global_observers:
                    self._global_observers.remove(callback)

        return _unsubscribe

    async def wait(self, response_id: str, timeout: float | None = None) -> PendingOperation:
        """Return the terminal state for `response_id`, waiting for the next resolution if unset."""
        loop = asyncio.get_running_loop()
        with self._lock:
            current = self._entries.get(response_id)
            if current is not None:
                return current
            fut: asyncio.Future = loop.create_future()
            self._waiters.setdefault(response_id, []).append(fut)
        try:
            return await asyncio.wait_for(fut, timeout)
        finally:
            with self._lock:
                pending = self._waiters.get(response_id) or []
                if fut in pending:
                    pending.remove(fut)
                if not pending:
                    self._waiters.pop(response_id, None)

    # --- Writes (StorageClient only) ---------------------------------------------

    def _resolve(self, op: PendingOperation) -> None:
        if not op.is_terminal:
            raise RuntimeError("operation_not_resolved")
        if not op.observed:
            return
        with self._lock:
            self._entries[op.id] = op
            callbacks = list(self._observers.get(op.id) or []) + list(self._global_observers)
            waiters = self._waiters.pop(op.id, [])
        for fut in waiters:
            if not fut.done():
                fut.get_loop().call_soon_threadsafe(_set_future_result, fut, op)
        for callback in callbacks:
            self._notify(callback, op)

    def clear(self) -> None:
        """Drop stored results and observers.

        Futures of running `wait()` calls stay registered: they resolve on the
        next resolution of their id, or time out, and remove themselves.
        """
        with self._lock:
            self._entries.clear()
            self._observers.clear()
            self._global_observers.clear()

    @staticmethod
    def _notify(callback: Observer, op: PendingOperation) -> None:
        try:
            callback(op)
        except Exception as exc:
            _log.warning(
                "registry observer failed: id=%s error=%s", op.id, exc.__class__.__name__
            )


def _set_future_result(fut: asyncio.Future, op: PendingOperation) -> None:
    if not fut.done():
        fut.set_result(op)


__all__ = [
    "AsyncResultRegistry",
    "OperationKind",
    "OperationStatus",
    "PendingOperation",
    "UNSET",
]
