"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like cache keys, upstream
paths and result envelopes, ensuring consistency and type safety.
"""

from typing import Any, Dict, NewType, TypedDict

# === Upstream Context ===
ResourceKind = NewType("ResourceKind", str)      # Logical endpoint name, e.g. 'get_onus_statuses'
UpstreamPath = NewType("UpstreamPath", str)      # Path relative to the upstream base URL

# === Caching Context ===
CacheKey = NewType("CacheKey", str)              # Unique key for a cache entry

# Result envelopes are plain dicts so they can be handed to any wire format:
#   {'status': True, 'response': ..., 'cached': False}
#   {'status': False, 'error': '...'}
Result = Dict[str, Any]


class RefreshOutcome(TypedDict):
    """Result of a forced repopulation of the bulk device-details cache."""
    ok: bool
    total: int
