"""Persistent cache backend on ``diskcache``.

diskcache keeps entries in a SQLite-backed directory that several processes
can share safely, which makes it the drop-in durable tier when the gateway
runs as more than one worker.
"""

import asyncio
import logging
import sqlite3
from pathlib import Path
from typing import List, Optional

import diskcache as dc

from onugate.domain.errors import CacheBackendError
from onugate.domain.interfaces.cache import CacheBackend
from onugate.domain.models.cache import CacheEntry
from onugate.domain.models.common import CacheKey

logger = logging.getLogger(__name__)


class DiskCacheBackend(CacheBackend):
    """Stores ``CacheEntry.to_record()`` dicts in a diskcache.Cache."""

    backend_id = "diskcache"

    def __init__(self, cache_dir: Path, cache: Optional[dc.Cache] = None):
        try:
            self.cache = cache if cache is not None else dc.Cache(str(cache_dir), timeout=1)
        except (OSError, sqlite3.Error) as e:
            raise CacheBackendError(f"Failed to open diskcache at {cache_dir}: {e}") from e
        logger.info(f"DiskCacheBackend initialized at: {self.cache.directory}")

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        try:
            record = await asyncio.to_thread(self.cache.get, key)
        except (OSError, sqlite3.Error) as e:
            raise CacheBackendError(f"diskcache read failed for {key}: {e}") from e
        if not isinstance(record, dict):
            return None
        return CacheEntry.from_record(record, key=key)

    async def set(self, entry: CacheEntry) -> None:
        await asyncio.to_thread(self.set_nowait, entry)

    def set_nowait(self, entry: CacheEntry) -> None:
        try:
            # diskcache writes are transactional; no expiry, staleness is ours to judge.
            self.cache.set(entry.key, entry.to_record())
        except (OSError, sqlite3.Error) as e:
            raise CacheBackendError(f"diskcache write failed for {entry.key}: {e}") from e
        logger.debug(f"Stored item in diskcache: key={entry.key}")

    async def delete(self, key: CacheKey) -> None:
        try:
            await asyncio.to_thread(self.cache.delete, key)
        except (OSError, sqlite3.Error) as e:
            raise CacheBackendError(f"diskcache delete failed for {key}: {e}") from e

    async def keys(self) -> List[CacheKey]:
        return [CacheKey(str(key)) for key in await asyncio.to_thread(list, self.cache.iterkeys())]

    async def close(self) -> None:
        await asyncio.to_thread(self.cache.close)
