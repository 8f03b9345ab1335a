"""Interface for cache storage backends.

A backend stores whole ``CacheEntry`` values under a key. The cache store
composes a volatile backend (process memory) with a persistent one (disk or a
shared key-value store) without knowing which concrete backends it holds.
"""

import abc
from typing import List, Optional

from onugate.domain.models.cache import CacheEntry
from onugate.domain.models.common import CacheKey


class CacheBackend(abc.ABC):
    """Abstract Base Class for cache backends."""

    backend_id: str = "abstract"

    @abc.abstractmethod
    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        """Retrieves the entry stored under ``key``, stale or not.

        Args:
            key: The cache key to retrieve.

        Returns:
            The stored entry, or None if nothing was ever written (or it was
            invalidated). Freshness is decided by the caller.
        """
        pass

    @abc.abstractmethod
    async def set(self, entry: CacheEntry) -> None:
        """Stores ``entry`` under ``entry.key``, replacing any previous value atomically.

        Args:
            entry: The entry to store.
        """
        pass

    @abc.abstractmethod
    async def delete(self, key: CacheKey) -> None:
        """Removes the entry stored under ``key``; a missing key is not an error."""
        pass

    def get_nowait(self, key: CacheKey) -> Optional[CacheEntry]:
        """Synchronous get, usable once the event loop and its executor are gone.

        Raises:
            NotImplementedError: The backend only supports async access.
        """
        raise NotImplementedError(f"{type(self).__name__} has no synchronous read")

    def set_nowait(self, entry: CacheEntry) -> None:
        """Synchronous set, usable once the event loop and its executor are gone.

        Raises:
            NotImplementedError: The backend only supports async access.
        """
        raise NotImplementedError(f"{type(self).__name__} has no synchronous write")

    async def keys(self) -> List[CacheKey]:
        """Lists stored keys. Backends that cannot enumerate return an empty list."""
        return []

    async def close(self) -> None:
        """Releases backend resources (files, connections)."""
        return None
