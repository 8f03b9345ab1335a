"""Two-tier cache store: volatile memory in front of a persistent backend.

Every key lives in the volatile tier. A designated set of durable keys (the
bulk device-details snapshot) is also mirrored to the persistent tier on each
write and reloaded at startup, so a restart does not begin cold.
"""

import logging
import time
from typing import Any, Callable, Iterable, Optional

from onugate.domain.errors import CacheBackendError, NoCacheAvailable
from onugate.domain.interfaces.cache import CacheBackend
from onugate.domain.models.cache import CacheEntry
from onugate.domain.models.common import CacheKey

logger = logging.getLogger(__name__)


class CacheStore:
    """Owns every CacheEntry; the upstream client is its only writer."""

    def __init__(
        self,
        volatile: CacheBackend,
        persistent: Optional[CacheBackend] = None,
        durable_keys: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the cache store.

        Args:
            volatile: Backend holding every entry for the life of the process.
            persistent: Backend mirroring the durable keys (None disables durability).
            durable_keys: Keys mirrored to the persistent backend.
            clock: Source of Unix timestamps (injectable for tests).
        """
        self.volatile = volatile
        self.persistent = persistent
        self.durable_keys = frozenset(durable_keys)
        self.clock = clock
        logger.info(
            f"CacheStore initialized: volatile={volatile.backend_id}, "
            f"persistent={persistent.backend_id if persistent else 'none'}, durable_keys={sorted(self.durable_keys)}"
        )

    def is_durable(self, key: CacheKey) -> bool:
        return self.persistent is not None and key in self.durable_keys

    async def read(self, key: CacheKey) -> Optional[CacheEntry]:
        """Returns the entry for ``key`` (fresh or stale), or None if never fetched."""
        entry = await self.volatile.get(key)
        if entry is None and self.is_durable(key):
            try:
                entry = await self.persistent.get(key)
            except CacheBackendError as e:
                logger.warning(f"Durable cache read failed for {key}: {e}")
                return None
            if entry is not None:
                # Promote so later reads stay in memory
                await self.volatile.set(entry)
        if entry is None or entry.data is None:
            return None
        return entry

    async def write(self, key: CacheKey, data: Any, ttl: float) -> CacheEntry:
        """Replaces the entry for ``key``; durable keys are mirrored to disk."""
        entry = CacheEntry(key=key, data=data, last_fetch=self.clock(), ttl=ttl)
        await self.volatile.set(entry)
        if self.is_durable(key):
            try:
                await self.persistent.set(entry)
            except CacheBackendError as e:
                # The in-memory entry stays valid for this process.
                logger.error(f"Durable cache write failed for {key}: {e}")
        return entry

    async def invalidate(self, key: CacheKey, durable: bool = True) -> None:
        """Drops ``key`` from memory and, unless ``durable`` is False, from disk.

        Pass ``durable=False`` when a write follows: the persistent backends
        replace entries atomically, and keeping the old record means a failed
        rewrite still leaves the previous snapshot on disk.
        """
        await self.volatile.delete(key)
        if durable and self.is_durable(key):
            try:
                await self.persistent.delete(key)
            except CacheBackendError as e:
                logger.error(f"Durable cache delete failed for {key}: {e}")
        logger.debug(f"Invalidated cache key: {key}")

    async def is_fresh(self, key: CacheKey) -> bool:
        entry = await self.read(key)
        return entry is not None and entry.is_fresh(self.clock())

    async def require(self, key: CacheKey) -> CacheEntry:
        """Like read(), but a missing entry is an error rather than None."""
        entry = await self.read(key)
        if entry is None:
            raise NoCacheAvailable(key)
        return entry

    def age(self, entry: CacheEntry) -> float:
        return max(0.0, self.clock() - entry.last_fetch)

    async def load(self) -> int:
        """Reloads durable keys from the persistent backend into memory.

        Returns:
            The number of entries restored.
        """
        if self.persistent is None:
            return 0
        restored = 0
        for key in sorted(self.durable_keys):
            try:
                entry = await self.persistent.get(CacheKey(key))
            except CacheBackendError as e:
                logger.warning(f"Could not read durable cache for {key}: {e}")
                continue
            if entry is None or entry.data is None:
                continue
            await self.volatile.set(entry)
            restored += 1
            logger.info(f"Durable cache loaded for {key} (age {self.age(entry):.0f}s)")
        return restored

    async def flush(self) -> int:
        """Best-effort write-back of durable keys; failures are logged, never raised.

        Returns:
            The number of entries written.
        """
        if self.persistent is None:
            return 0
        written = 0
        for key in sorted(self.durable_keys):
            entry = await self.volatile.get(CacheKey(key))
            if entry is None or entry.data is None:
                continue
            try:
                await self.persistent.set(entry)
                written += 1
            except CacheBackendError as e:
                logger.error(f"Error flushing durable cache for {key}: {e}")
        logger.info(f"Durable cache flushed ({written} entries).")
        return written

    def flush_nowait(self) -> int:
        """Blocking variant of flush() for atexit hooks.

        By the time atexit handlers run, the thread pools behind aiofiles and
        ``asyncio.to_thread`` refuse new work, so this path never touches the
        event loop. Failures are logged, never raised.

        Returns:
            The number of entries written.
        """
        if self.persistent is None:
            return 0
        written = 0
        for key in sorted(self.durable_keys):
            try:
                entry = self.volatile.get_nowait(CacheKey(key))
                if entry is None or entry.data is None:
                    continue
                self.persistent.set_nowait(entry)
                written += 1
            except (CacheBackendError, NotImplementedError) as e:
                logger.error(f"Error flushing durable cache for {key} at exit: {e}")
        logger.info(f"Durable cache flushed at exit ({written} entries).")
        return written

    async def close(self) -> None:
        await self.volatile.close()
        if self.persistent is not None:
            await self.persistent.close()
