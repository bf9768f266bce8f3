"""Local key-value cache.

Per-account entries live under ``@user:<uid>:<field>`` so that switching
accounts on one device never surfaces another account's data. Device-wide
entries (the onboarding flag) use plain keys and survive sign-out.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

ONBOARDED_KEY = "@isOnboarded"
AUTHENTICATED_KEY = "@isAuthenticated"


def user_key(uid: str, field: str) -> str:
    return f"@user:{uid}:{field}"


def user_prefix(uid: str) -> str:
    return f"@user:{uid}:"


class InMemoryCache:
    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    async def remove_prefix(self, prefix: str) -> None:
        for key in [k for k in self._data if k.startswith(prefix)]:
            del self._data[key]

    async def keys(self) -> list[str]:
        return list(self._data)


class JsonFileCache(InMemoryCache):
    """Cache persisted to a single JSON file, rewritten on every change.

    Writes run in a worker thread; the lock keeps the newest snapshot last.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        super().__init__()
        self._path = Path(path)
        self._lock: Optional[asyncio.Lock] = None
        if self._path.is_file():
            try:
                loaded = json.loads(self._path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("cache file %s unreadable, starting empty", self._path)
            else:
                if isinstance(loaded, dict):
                    self._data = {str(k): str(v) for k, v in loaded.items()}

    def _write(self, payload: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(payload, encoding="utf-8")
        tmp.replace(self._path)

    async def _flush(self) -> None:
        if self._lock is None:
            self._lock = asyncio.Lock()
        async with self._lock:
            payload = json.dumps(self._data, sort_keys=True)
            await asyncio.to_thread(self._write, payload)

    async def set(self, key: str, value: str) -> None:
        await super().set(key, value)
        await self._flush()

    async def remove(self, key: str) -> None:
        await super().remove(key)
        await self._flush()

    async def remove_prefix(self, prefix: str) -> None:
        await super().remove_prefix(prefix)
        await self._flush()
