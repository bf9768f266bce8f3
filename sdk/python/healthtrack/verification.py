"""Per-account verification flags over a two-tier store.

The remote ``users/{uid}`` document is authoritative; the local cache only
speeds up reads. On :meth:`VerificationStateTracker.load` the remote copy
always wins and overwrites the cache. Writes update the in-memory status and
the cache first and then the remote document; a failed remote write is raised
to the caller but the optimistic status stays in place until the next load.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .cache import user_key
from .exceptions import PhoneVerificationRequired
from .ports import DocumentStore, LocalCache
from .services.documents import USERS
from .types.profile import VerificationStatus

logger = logging.getLogger(__name__)

CACHE_FIELD = "verification"

StatusListener = Callable[[str, VerificationStatus], None]


class VerificationStateTracker:
    def __init__(self, documents: DocumentStore, cache: LocalCache) -> None:
        self._documents = documents
        self._cache = cache
        self._statuses: dict[str, VerificationStatus] = {}
        self._listeners: list[StatusListener] = []

    def add_listener(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def current(self, uid: str) -> Optional[VerificationStatus]:
        return self._statuses.get(uid)

    def _apply(self, uid: str, status: VerificationStatus) -> None:
        self._statuses[uid] = status
        for listener in list(self._listeners):
            listener(uid, status)

    async def read_local(self, uid: str) -> Optional[VerificationStatus]:
        raw = await self._cache.get(user_key(uid, CACHE_FIELD))
        if raw is None:
            return None
        try:
            return VerificationStatus.model_validate_json(raw)
        except ValidationError:
            logger.warning("discarding unreadable cached verification status for %s", uid)
            return None

    async def read_remote(self, uid: str) -> VerificationStatus:
        data = await self._documents.get(USERS, uid)
        try:
            return VerificationStatus.from_document(data or {})
        except ValidationError:
            logger.warning("verification fields for %s are malformed, treating as unverified", uid)
            return VerificationStatus()

    @staticmethod
    def reconcile(local: Optional[VerificationStatus], remote: VerificationStatus) -> VerificationStatus:
        """Remote always wins."""
        return remote

    async def _write_local(self, uid: str, status: VerificationStatus) -> None:
        await self._cache.set(user_key(uid, CACHE_FIELD), status.model_dump_json(by_alias=True))

    async def load(self, uid: str) -> VerificationStatus:
        local = await self.read_local(uid)
        if local is not None:
            self._apply(uid, local)
        remote = await self.read_remote(uid)
        status = self.reconcile(local, remote)
        if status != local:
            if local is not None:
                logger.info("cached verification status for %s was stale", uid)
            await self._write_local(uid, status)
        self._apply(uid, status)
        return status

    async def _status(self, uid: str) -> VerificationStatus:
        status = self._statuses.get(uid)
        if status is None:
            status = await self.load(uid)
        return status

    async def _write(self, uid: str, status: VerificationStatus, fields: dict[str, Any]) -> VerificationStatus:
        self._apply(uid, status)
        await self._write_local(uid, status)
        await self._documents.set(USERS, uid, fields, merge=True)
        return status

    async def mark_phone_verified(self, uid: str, phone_number: str) -> VerificationStatus:
        status = (await self._status(uid)).model_copy(update={"phone_verified": True, "phone_number": phone_number})
        return await self._write(uid, status, {"phoneVerified": True, "phoneNumber": phone_number})

    async def mark_two_factor_enabled(self, uid: str, enabled: bool) -> VerificationStatus:
        current = await self._status(uid)
        if enabled and not current.phone_verified:
            raise PhoneVerificationRequired("Verify a phone number before enabling two-factor authentication")
        status = current.model_copy(update={"two_factor_enabled": enabled})
        return await self._write(uid, status, {"twoFactorEnabled": enabled})

    async def mark_email_verified(self, uid: str) -> VerificationStatus:
        status = (await self._status(uid)).model_copy(update={"email_verified": True})
        return await self._write(uid, status, {"emailVerified": True})

    async def forget(self, uid: str) -> None:
        self._statuses.pop(uid, None)
        await self._cache.remove(user_key(uid, CACHE_FIELD))
