"""
Storage protocols and reference implementations.

PersistentStore — synchronous key-value storage (local durable fallback).
RemoteCartStore — async guest/user cart storage (the backend).
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

from charmcart.errors import TransientError

type Record = Mapping[str, Any]


# ═══════════════════════════════════════════════════════════════════════════════
# Local key-value store
# ═══════════════════════════════════════════════════════════════════════════════


class PersistentStore(Protocol):
    """Synchronous key-value storage of JSON-compatible records."""

    def get(self, key: str) -> Record | None: ...

    def set(self, key: str, value: Record) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self, prefix: str = "") -> list[str]: ...


class MemoryKeyValueStore:
    """
    In-memory key-value store.

    Note: Только для тестов — данные не переживут рестарт.
    """

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> Record | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: Record) -> None:
        # Stored as text so callers never share mutable state with the store
        self._data[key] = json.dumps(value)

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._data if k.startswith(prefix)]

    def set_raw(self, key: str, raw: str) -> None:
        """Write an arbitrary string (corrupt-record fixtures)."""
        self._data[key] = raw


class JsonFileStore:
    """
    Key-value store backed by a single JSON file.

    Every write rewrites the file through a temp file + os.replace.
    Unreadable values are returned as None by `get` and still listed by
    `keys`, so a sweep can remove them.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def get(self, key: str) -> Record | None:
        raw = self._load().get(key)
        if raw is None:
            return None
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            return None
        return value if isinstance(value, dict) else None

    def set(self, key: str, value: Record) -> None:
        data = self._load()
        data[key] = json.dumps(value)
        self._dump(data)

    def delete(self, key: str) -> bool:
        data = self._load()
        if key not in data:
            return False
        del data[key]
        self._dump(data)
        return True

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._load() if k.startswith(prefix)]

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open(encoding="utf-8") as f:
            data = json.load(f)
        return {str(k): v if isinstance(v, str) else json.dumps(v) for k, v in data.items()}

    def _dump(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f)
        os.replace(tmp, self.path)


# ═══════════════════════════════════════════════════════════════════════════════
# Remote cart store
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class StoredCart:
    """Cart record as the backend returns it."""

    owner_id: str
    payload: Record
    updated_at: datetime


class RemoteCartStore(Protocol):
    async def get_guest_cart(self, session_id: str) -> StoredCart | None: ...

    async def save_guest_cart(self, session_id: str, payload: Record, updated_at: datetime) -> None: ...

    async def delete_guest_cart(self, session_id: str) -> bool: ...

    async def list_guest_carts(self) -> list[StoredCart]: ...

    async def get_user_cart(self, user_id: str) -> StoredCart | None: ...

    async def save_user_cart(self, user_id: str, payload: Record, updated_at: datetime) -> None: ...

    async def delete_user_cart(self, user_id: str) -> bool: ...

    async def list_user_carts(self) -> list[StoredCart]: ...


class MemoryRemoteCartStore:
    """
    In-memory backend with outage simulation.

    `available = False` makes every call raise TransientError.
    `fail_next(n)` makes the next n calls raise, then recovers.
    """

    def __init__(self) -> None:
        self._guest: dict[str, StoredCart] = {}
        self._user: dict[str, StoredCart] = {}
        self._lock = asyncio.Lock()
        self._pending_failures = 0
        self._failure: Exception | None = None
        self.available = True
        self.calls = 0

    def fail_next(self, n: int, error: Exception | None = None) -> None:
        self._pending_failures = n
        self._failure = error

    def _check(self) -> None:
        self.calls += 1
        if self._pending_failures > 0:
            self._pending_failures -= 1
            raise self._failure or TransientError("Cart backend timeout")
        if not self.available:
            raise TransientError("Cart backend unavailable")

    async def get_guest_cart(self, session_id: str) -> StoredCart | None:
        async with self._lock:
            self._check()
            return self._guest.get(session_id)

    async def save_guest_cart(self, session_id: str, payload: Record, updated_at: datetime) -> None:
        async with self._lock:
            self._check()
            self._guest[session_id] = StoredCart(session_id, dict(payload), updated_at)

    async def delete_guest_cart(self, session_id: str) -> bool:
        async with self._lock:
            self._check()
            return self._guest.pop(session_id, None) is not None

    async def list_guest_carts(self) -> list[StoredCart]:
        async with self._lock:
            self._check()
            return list(self._guest.values())

    async def get_user_cart(self, user_id: str) -> StoredCart | None:
        async with self._lock:
            self._check()
            return self._user.get(user_id)

    async def save_user_cart(self, user_id: str, payload: Record, updated_at: datetime) -> None:
        async with self._lock:
            self._check()
            self._user[user_id] = StoredCart(user_id, dict(payload), updated_at)

    async def delete_user_cart(self, user_id: str) -> bool:
        async with self._lock:
            self._check()
            return self._user.pop(user_id, None) is not None

    async def list_user_carts(self) -> list[StoredCart]:
        async with self._lock:
            self._check()
            return list(self._user.values())


__all__ = (
    "Record",
    "PersistentStore",
    "MemoryKeyValueStore",
    "JsonFileStore",
    "StoredCart",
    "RemoteCartStore",
    "MemoryRemoteCartStore",
)
