from __future__ import annotations

import asyncio
import os
import re
from collections import OrderedDict
from pathlib import Path
from typing import Protocol

import structlog
from redis.asyncio import Redis

logger = structlog.get_logger()

REDIS_PREFIX = "genie_chat:session:"


class SessionStorage(Protocol):
    """Key-value port for the serialized session document."""

    async def get(self, key: str) -> str | None: ...

    async def set(self, key: str, value: str) -> None: ...


class MemoryStorage:
    """Process-local storage, used by tests and the ``memory`` backend.

    With ``max_entries`` set, the least recently written documents are
    evicted once the limit is exceeded.
    """

    def __init__(self, initial: dict[str, str] | None = None, max_entries: int | None = None) -> None:
        self.data: OrderedDict[str, str] = OrderedDict(initial or {})
        self.max_entries = max_entries

    async def get(self, key: str) -> str | None:
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.data.move_to_end(key)
        if self.max_entries is not None:
            while len(self.data) > self.max_entries:
                evicted, _ = self.data.popitem(last=False)
                logger.info("memory_session_evicted", key=evicted)


class FileStorage:
    """One JSON document per key under a directory.

    Writes go to a temporary file that replaces the target, so a crash
    mid-write leaves the previous document intact.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{safe}.json"

    def _read(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def _write(self, key: str, value: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(value, encoding="utf-8")
        os.replace(tmp_path, path)

    async def get(self, key: str) -> str | None:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: str) -> None:
        await asyncio.to_thread(self._write, key, value)


class RedisStorage:
    """Session documents stored as plain Redis strings."""

    def __init__(self, client: Redis, prefix: str = REDIS_PREFIX) -> None:
        self._client = client
        self._prefix = prefix

    async def get(self, key: str) -> str | None:
        return await self._client.get(self._prefix + key)

    async def set(self, key: str, value: str) -> None:
        await self._client.set(self._prefix + key, value)


_shared_memory_storage: MemoryStorage | None = None


def create_storage(backend: str) -> SessionStorage:
    """Build the configured storage backend (``memory``, ``file`` or ``redis``)."""
    from genie_chat.config import settings

    global _shared_memory_storage
    if backend == "memory":
        if _shared_memory_storage is None:
            _shared_memory_storage = MemoryStorage(max_entries=settings.MEMORY_SESSION_LIMIT)
        return _shared_memory_storage
    if backend == "file":
        return FileStorage(settings.SESSION_DIR)
    if backend == "redis":
        from genie_chat.clients import get_redis_client

        return RedisStorage(get_redis_client())
    raise ValueError(f"Unknown session backend: {backend}")
