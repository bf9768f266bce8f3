"""Internal HTTP transport for HealthTrack SDK."""

from __future__ import annotations

import logging
import re
from typing import Any, Optional

import httpx

from .exceptions import ApiError, HealthTrackError, NotFoundError

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^[A-Z][A-Z0-9_]*$")


def _parse_error(resp: httpx.Response) -> tuple[str, str]:
    """Return ``(code, message)`` from a Google-style error body.

    Identity Toolkit puts the machine code in ``message`` (optionally followed
    by `` : detail``); Firestore puts it in ``status``.
    """
    try:
        body = resp.json()
    except ValueError:
        return "", resp.text
    if not isinstance(body, dict):
        return "", resp.text
    err = body.get("error")
    if not isinstance(err, dict):
        return str(err or ""), str(body.get("message", ""))
    raw = str(err.get("message", ""))
    head, _, detail = raw.partition(" : ")
    head = head.strip()
    if _CODE_RE.match(head):
        return head, detail.strip() or head
    return str(err.get("status", "")), raw


class HttpClient:
    """Low-level async HTTP client wrapping httpx."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._token: Optional[str] = token
        self._api_key = api_key
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    @property
    def base_url(self) -> str:
        return self._base_url

    def set_token(self, token: str) -> None:
        self._token = token

    def clear_token(self) -> None:
        self._token = None

    def _headers(self) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _params(self, params: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
        merged: dict[str, Any] = dict(params or {})
        if self._api_key:
            merged["key"] = self._api_key
        return merged or None

    def _handle_response(self, resp: httpx.Response) -> Any:
        if resp.status_code == 204:
            return None
        if 200 <= resp.status_code < 300:
            if not resp.content:
                return None
            return resp.json()
        error, message = _parse_error(resp)
        logger.debug("HTTP %s from %s: %s %s", resp.status_code, resp.request.url.path, error, message)
        if resp.status_code == 404:
            raise NotFoundError(error or "not_found", message or "Resource not found")
        raise ApiError(resp.status_code, error, message)

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._client.request(
                method, url, headers=self._headers(), params=self._params(params), json=json,
            )
        except httpx.HTTPError as e:
            raise HealthTrackError(f"Request failed: {e}") from e
        return self._handle_response(resp)

    async def get(self, path: str, params: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("GET", path, params=params)

    async def post(self, path: str, json: Optional[dict[str, Any]] = None) -> Any:
        return await self._request("POST", path, json=json)

    async def patch(
        self, path: str, json: Optional[dict[str, Any]] = None, params: Optional[dict[str, Any]] = None,
    ) -> Any:
        return await self._request("PATCH", path, json=json, params=params)

    async def close(self) -> None:
        await self._client.aclose()
