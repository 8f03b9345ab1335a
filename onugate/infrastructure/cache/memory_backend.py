"""Volatile, process-local cache backend."""

import logging
from typing import Dict, List, Optional

from onugate.domain.interfaces.cache import CacheBackend
from onugate.domain.models.cache import CacheEntry
from onugate.domain.models.common import CacheKey

logger = logging.getLogger(__name__)


class MemoryCacheBackend(CacheBackend):
    """Dictionary of immutable entries; a write swaps one reference."""

    backend_id = "memory"

    def __init__(self):
        self._entries: Dict[CacheKey, CacheEntry] = {}

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def get_nowait(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def set(self, entry: CacheEntry) -> None:
        self.set_nowait(entry)

    def set_nowait(self, entry: CacheEntry) -> None:
        self._entries[entry.key] = entry
        logger.debug(f"Stored item in memory cache: key={entry.key}")

    async def delete(self, key: CacheKey) -> None:
        if self._entries.pop(key, None) is not None:
            logger.debug(f"Deleted item from memory cache: key={key}")

    async def keys(self) -> List[CacheKey]:
        return list(self._entries)
