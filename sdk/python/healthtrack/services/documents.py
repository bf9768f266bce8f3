from __future__ import annotations

import copy
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, TypeVar

from .._firestore import decode_fields, encode_fields
from ..exceptions import ApiError, HealthTrackError, NotFoundError, StorageError, StorageQuotaExceeded, StorageUnauthorized

if TYPE_CHECKING:
    from .._http import HttpClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

USERS = "users"


def translate_storage_error(exc: HealthTrackError) -> StorageError:
    if isinstance(exc, ApiError):
        if exc.status_code in (401, 403) or exc.error in ("PERMISSION_DENIED", "UNAUTHENTICATED"):
            return StorageUnauthorized(exc.message or "Permission denied", exc)
        if exc.status_code == 429 or exc.error == "RESOURCE_EXHAUSTED":
            return StorageQuotaExceeded(exc.message or "Quota exceeded", exc)
    return StorageError(str(exc), exc)


class FirestoreService:
    """Document store over the Firestore REST API.

    ``token_source`` supplies the signed-in account's ID token for each request.
    """

    def __init__(self, http: HttpClient, token_source: Optional[Callable[[], Optional[str]]] = None) -> None:
        self._http = http
        self._token_source = token_source

    def _authorize(self) -> None:
        token = self._token_source() if self._token_source else None
        if token:
            self._http.set_token(token)
        else:
            self._http.clear_token()

    async def _call(self, request: Callable[[], Awaitable[T]]) -> T:
        self._authorize()
        try:
            return await request()
        except HealthTrackError as e:
            err = translate_storage_error(e)
            logger.warning("document store request failed: %s", err)
            raise err from e

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        self._authorize()
        try:
            data = await self._http.get(f"/{collection}/{doc_id}")
        except NotFoundError:
            return None
        except HealthTrackError as e:
            raise translate_storage_error(e) from e
        return decode_fields((data or {}).get("fields") or {})

    async def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        params = {"updateMask.fieldPaths": list(data)} if merge else None
        await self._call(lambda: self._http.patch(
            f"/{collection}/{doc_id}", json={"fields": encode_fields(data)}, params=params,
        ))


class InMemoryDocumentStore:
    def __init__(self) -> None:
        self._docs: dict[tuple[str, str], dict[str, Any]] = {}

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        doc = self._docs.get((collection, doc_id))
        return copy.deepcopy(doc) if doc is not None else None

    async def set(self, collection: str, doc_id: str, data: dict[str, Any], merge: bool = False) -> None:
        key = (collection, doc_id)
        if merge and key in self._docs:
            self._docs[key].update(copy.deepcopy(data))
        else:
            self._docs[key] = copy.deepcopy(data)
