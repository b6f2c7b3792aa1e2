"""
Result registry: unset reads, replayed subscriptions, last write wins.
"""
from __future__ import annotations

import asyncio

import pytest

from refstore.storage.errors import NotFoundError
from refstore.storage.registry import (
    UNSET,
    AsyncResultRegistry,
    OperationKind,
    OperationStatus,
    PendingOperation,
)


def _op(rid: str, *, observed: bool = True, result=None, error=None) -> PendingOperation:
    op = PendingOperation(id=rid, kind=OperationKind.LIST, reference="docs", observed=observed)
    if error is not None:
        op.fail(error)
    else:
        op.succeed(result)
    return op


def test_get_unknown_id_is_unset():
    reg = AsyncResultRegistry()
    assert reg.get("never-used") is UNSET
    assert not UNSET
    assert "never-used" not in reg


def test_resolved_entry_is_readable_repeatedly():
    reg = AsyncResultRegistry()
    reg._resolve(_op("ls", result=["a", "b"]))
    first = reg.get("ls")
    assert first.status is OperationStatus.SUCCEEDED
    assert first.result == ["a", "b"]
    assert reg.get("ls") is first
    assert reg.ids() == ["ls"] and len(reg) == 1


def test_last_resolution_wins():
    reg = AsyncResultRegistry()
    reg._resolve(_op("r", result="first"))
    reg._resolve(_op("r", error=NotFoundError("object_not_found")))
    got = reg.get("r")
    assert got.status is OperationStatus.FAILED
    assert got.error.kind == "not_found"
    assert reg.snapshot()["r"]["error"] == {"kind": "not_found", "message": "object_not_found"}


def test_unobserved_operation_is_never_written():
    reg = AsyncResultRegistry()
    seen = []
    reg.subscribe_all(seen.append)
    reg._resolve(_op("anon-1", observed=False, result=True))
    assert len(reg) == 0 and seen == []


def test_pending_operation_cannot_be_written_or_resolved_twice():
    reg = AsyncResultRegistry()
    pending = PendingOperation(id="x", kind=OperationKind.DELETE, reference="a")
    with pytest.raises(RuntimeError):
        reg._resolve(pending)
    pending.succeed(True)
    with pytest.raises(RuntimeError):
        pending.fail(NotFoundError())


def test_subscribe_replays_and_unsubscribes():
    reg = AsyncResultRegistry()
    reg._resolve(_op("up", result={"size": 1}))
    seen = []
    unsubscribe = reg.subscribe("up", lambda op: seen.append(op.result))
    assert seen == [{"size": 1}]

    reg._resolve(_op("up", result={"size": 2}))
    unsubscribe()
    reg._resolve(_op("up", result={"size": 3}))
    assert seen == [{"size": 1}, {"size": 2}]


def test_failing_observer_is_logged_not_raised(caplog: pytest.LogCaptureFixture):
    reg = AsyncResultRegistry()

    def _boom(_op):
        raise ValueError("nope")

    reg.subscribe("dl", _boom)
    with caplog.at_level("WARNING", logger="refstore.storage"):
        reg._resolve(_op("dl", result={"url": "u"}))
    assert reg.get("dl").result == {"url": "u"}
    assert any("registry observer failed" in rec.getMessage() for rec in caplog.records)


@pytest.mark.anyio
async def test_wait_returns_next_resolution():
    reg = AsyncResultRegistry()

    async def _later():
        await asyncio.sleep(0)
        reg._resolve(_op("meta", result={"size": 3}))

    task = asyncio.create_task(_later())
    op = await reg.wait("meta", timeout=1)
    await task
    assert op.result == {"size": 3}


@pytest.mark.anyio
async def test_wait_times_out_when_nothing_resolves():
    reg = AsyncResultRegistry()
    with pytest.raises(asyncio.TimeoutError):
        await reg.wait("missing", timeout=0.01)


@pytest.mark.anyio
async def test_clear_keeps_running_waits_and_leaves_no_waiters_behind():
    reg = AsyncResultRegistry()
    reg._resolve(_op("old", result=["stale"]))
    waiting = asyncio.create_task(reg.wait("meta", timeout=1))
    timing_out = asyncio.create_task(reg.wait("never", timeout=0.01))
    await asyncio.sleep(0)

    reg.clear()
    assert reg.get("old") is UNSET
    reg._resolve(_op("meta", result={"size": 3}))

    assert (await waiting).result == {"size": 3}
    with pytest.raises(asyncio.TimeoutError):
        await timing_out
    assert reg._waiters == {}
