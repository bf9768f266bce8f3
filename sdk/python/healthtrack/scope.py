"""Lifetime scope for a flow's in-flight provider calls."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from .exceptions import ScopeClosed

T = TypeVar("T")


class FlowScope:
    """Ties awaited calls to the lifetime of the screen that started them.

    ``close()`` cancels pending calls. A result that arrives after the scope
    closed is dropped and :class:`ScopeClosed` is raised in its place, so the
    caller never applies state for a screen that is gone.
    """

    def __init__(self) -> None:
        self._closed = False
        self._tasks: set[asyncio.Future] = set()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def run(self, awaitable: Awaitable[T]) -> T:
        if self._closed:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise ScopeClosed("scope is closed")
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        try:
            result = await task
        except asyncio.CancelledError:
            if self._closed:
                raise ScopeClosed("scope closed while awaiting") from None
            raise
        finally:
            self._tasks.discard(task)
        if self._closed:
            raise ScopeClosed("scope closed while awaiting")
        return result

    def close(self) -> None:
        self._closed = True
        for task in list(self._tasks):
            task.cancel()
