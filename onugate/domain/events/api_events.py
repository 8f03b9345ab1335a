"""Domain Events related to upstream calls and cache resilience.

Examples include events for when calls are retried, fail, succeed or are
answered from the cache instead of the upstream.
"""

from dataclasses import dataclass, field
import logging
import time
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


@dataclass
class UpstreamCallInitiated(DomainEvent):
    """Event triggered when an upstream call is about to be made."""
    endpoint: str
    attempt_number: int = 1
    timestamp: float = field(default_factory=time.time)


@dataclass
class UpstreamCallSucceeded(DomainEvent):
    """Event triggered when an upstream call returns a usable result."""
    endpoint: str
    latency_ms: float
    response_summary: Optional[Any] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class UpstreamCallFailed(DomainEvent):
    """Event triggered when an upstream call fails definitively (after retries)."""
    endpoint: str
    error_type: str
    error_message: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed upstream call."""
    endpoint: str
    attempt_number: int
    delay_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class CallDeferred(DomainEvent):
    """Event triggered when an upstream call waits on outbound pacing."""
    endpoint: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheFallbackUsed(DomainEvent):
    """Event triggered when a failed fetch is answered from the cache."""
    cache_key: str
    reason: str  # 'rate_limit' or 'transport_error'
    age_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheRefreshed(DomainEvent):
    """Event triggered when a forced refresh repopulates a cache entry."""
    cache_key: str
    total: int
    timestamp: float = field(default_factory=time.time)


def dispatch_event(event: DomainEvent) -> None:
    """Publishes an event. Events currently go to the debug log only."""
    logger.debug(f"EVENT: {event}")
