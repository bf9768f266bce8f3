"""Authentication-state change stream."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional

from .types.auth import Account

logger = logging.getLogger(__name__)

AuthListener = Callable[[Optional[Account]], Awaitable[None]]


class AuthStateStream:
    """Fan-out of sign-in / sign-out events to async listeners.

    Listeners are awaited in subscription order; a failing listener is logged
    and does not stop delivery to the others.
    """

    def __init__(self) -> None:
        self._listeners: list[AuthListener] = []
        self._current: Optional[Account] = None

    @property
    def current(self) -> Optional[Account]:
        return self._current

    def subscribe(self, listener: AuthListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def emit(self, account: Optional[Account]) -> None:
        self._current = account
        for listener in list(self._listeners):
            try:
                await listener(account)
            except Exception:
                logger.exception("auth state listener %r failed", listener)
