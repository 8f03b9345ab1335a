"""Persistent cache backend: one JSON document per key on the local disk.

Each file holds ``{key, data, lastFetch, ttl}`` and is reloaded verbatim at
startup. Writes go to a temporary file first and are moved into place with
``os.replace`` so a reader (or a crash) never sees half a document.
"""

import hashlib
import json
import logging
import os
from pathlib import Path
from typing import List, Optional

import aiofiles

from onugate.domain.errors import CacheBackendError
from onugate.domain.interfaces.cache import CacheBackend
from onugate.domain.models.cache import CacheEntry
from onugate.domain.models.common import CacheKey

logger = logging.getLogger(__name__)


class FileCacheBackend(CacheBackend):
    """Stores each entry in ``<cache_dir>/<sha256(key)>.json``."""

    backend_id = "file"

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self._setup_dir()
        logger.info(f"FileCacheBackend initialized at: {self.cache_dir}")

    def _setup_dir(self) -> None:
        """Creates the cache directory if it doesn't exist."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create cache directory {self.cache_dir}: {e}")
            raise CacheBackendError(f"Cannot create cache directory {self.cache_dir}: {e}") from e

    def _get_filepath(self, key: CacheKey) -> Path:
        """Generates a safe file path for a cache key."""
        hashed_key = hashlib.sha256(str(key).encode('utf-8')).hexdigest()
        return self.cache_dir / f"{hashed_key}.json"

    async def _read_record(self, path: Path) -> Optional[dict]:
        try:
            async with aiofiles.open(path, mode='r', encoding='utf-8') as f:
                raw = await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheBackendError(f"Failed to read cache file {path}: {e}") from e
        try:
            record = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Corrupted cache file {path}: {e}. Ignoring it.")
            return None
        if not isinstance(record, dict):
            logger.warning(f"Cache file {path} does not hold an object. Ignoring it.")
            return None
        return record

    async def get(self, key: CacheKey) -> Optional[CacheEntry]:
        record = await self._read_record(self._get_filepath(key))
        if record is None:
            return None
        logger.debug(f"Disk cache hit for key: {key}")
        return CacheEntry.from_record(record, key=key)

    @staticmethod
    def _serialize(entry: CacheEntry) -> str:
        try:
            return json.dumps(entry.to_record(), ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as e:
            raise CacheBackendError(f"Cache entry for {entry.key} is not JSON-serializable: {e}") from e

    async def set(self, entry: CacheEntry) -> None:
        filepath = self._get_filepath(entry.key)
        temp_filepath = filepath.with_suffix('.tmp')
        payload = self._serialize(entry)
        try:
            async with aiofiles.open(temp_filepath, mode='w', encoding='utf-8') as f:
                await f.write(payload)
            os.replace(temp_filepath, filepath)
        except OSError as e:
            temp_filepath.unlink(missing_ok=True)
            raise CacheBackendError(f"Failed to write cache file {filepath}: {e}") from e
        logger.debug(f"Stored item in disk cache: key={entry.key}, file={filepath}")

    def set_nowait(self, entry: CacheEntry) -> None:
        """Blocking write for interpreter shutdown, where aiofiles' executor is gone."""
        filepath = self._get_filepath(entry.key)
        temp_filepath = filepath.with_suffix('.tmp')
        payload = self._serialize(entry)
        try:
            with open(temp_filepath, 'w', encoding='utf-8') as f:
                f.write(payload)
            os.replace(temp_filepath, filepath)
        except OSError as e:
            temp_filepath.unlink(missing_ok=True)
            raise CacheBackendError(f"Failed to write cache file {filepath}: {e}") from e
        logger.debug(f"Stored item in disk cache (sync): key={entry.key}, file={filepath}")

    async def delete(self, key: CacheKey) -> None:
        filepath = self._get_filepath(key)
        try:
            filepath.unlink(missing_ok=True)
        except OSError as e:
            raise CacheBackendError(f"Failed to delete cache file {filepath}: {e}") from e
        logger.debug(f"Deleted item from disk cache: key={key}")

    async def keys(self) -> List[CacheKey]:
        found = []
        for path in sorted(self.cache_dir.glob("*.json")):
            record = await self._read_record(path)
            if record and record.get("key"):
                found.append(CacheKey(record["key"]))
        return found
