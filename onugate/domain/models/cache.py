"""Cache entry value object shared by every cache backend."""

import copy
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from onugate.domain.models.common import CacheKey


@dataclass(frozen=True)
class CacheEntry:
    """One cached upstream payload.

    Entries are immutable: a write replaces the whole entry under its key, so a
    concurrent reader sees either the old entry or the new one.
    """
    key: CacheKey
    data: Any
    last_fetch: float = field(default_factory=time.time)  # Unix timestamp (seconds)
    ttl: float = 0.0  # Seconds

    def is_fresh(self, now: Optional[float] = None) -> bool:
        current = time.time() if now is None else now
        return self.data is not None and current - self.last_fetch < self.ttl

    def snapshot(self) -> Any:
        """Returns a deep copy of the data so callers cannot mutate the cache."""
        return copy.deepcopy(self.data)

    def to_record(self) -> Dict[str, Any]:
        """Serializable on-disk layout: ``{key, data, lastFetch, ttl}``."""
        return {
            "key": self.key,
            "data": self.data,
            "lastFetch": self.last_fetch,
            "ttl": self.ttl,
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any], key: Optional[CacheKey] = None) -> "CacheEntry":
        return cls(
            key=CacheKey(record.get("key") or key or ""),
            data=record.get("data"),
            last_fetch=float(record.get("lastFetch") or 0.0),
            ttl=float(record.get("ttl") or 0.0),
        )
