"""Tests for flow scopes and the auth-state stream."""

import asyncio

import pytest

from healthtrack.events import AuthStateStream
from healthtrack.exceptions import ScopeClosed
from healthtrack.scope import FlowScope
from healthtrack.types.auth import Account


@pytest.mark.asyncio
async def test_run_returns_result():
    scope = FlowScope()

    async def work():
        return 42

    assert await scope.run(work()) == 42
    assert scope.pending == 0


@pytest.mark.asyncio
async def test_close_cancels_pending_call():
    scope = FlowScope()
    started = asyncio.Event()

    async def slow():
        started.set()
        await asyncio.sleep(10)

    pending = asyncio.ensure_future(scope.run(slow()))
    await started.wait()
    scope.close()

    with pytest.raises(ScopeClosed):
        await pending
    assert scope.pending == 0


@pytest.mark.asyncio
async def test_closed_scope_refuses_new_calls():
    scope = FlowScope()
    scope.close()

    async def work():
        return 1

    with pytest.raises(ScopeClosed):
        await scope.run(work())


@pytest.mark.asyncio
async def test_stream_delivers_in_order_and_survives_failing_listener():
    stream = AuthStateStream()
    seen = []

    async def broken(account):
        raise RuntimeError("listener bug")

    async def first(account):
        seen.append(("first", account.uid if account else None))

    async def second(account):
        seen.append(("second", account.uid if account else None))

    stream.subscribe(first)
    stream.subscribe(broken)
    unsubscribe = stream.subscribe(second)

    await stream.emit(Account(uid="uid-1"))
    unsubscribe()
    await stream.emit(None)

    assert seen == [("first", "uid-1"), ("second", "uid-1"), ("first", None)]
    assert stream.current is None
