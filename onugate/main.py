"""Composition root for the onugate gateway.

Reads configuration, sets up logging and wires transport, retry policy, cache
store, upstream client and device service together. Hosts (a web app, a
worker, a test) call ``create_gateway()`` once and ``Gateway.close()`` on
shutdown.
"""

import atexit
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

# --- Core Layer ---
from onugate.core.services.onu_service import OnuService
from onugate.core.services.reconciliation_service import ReconciliationService

# --- Infrastructure Layer ---
# Config
from onugate.infrastructure.config.settings import (
    DEFAULT_BASE_DELAY_SECONDS,
    DEFAULT_CACHE_DIR,
    DEFAULT_DETAILS_TTL_SECONDS,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_STATUS_TTL_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    DEFAULT_TOKEN_HEADER,
    DEFAULT_TTL_SECONDS,
    get_config,
    get_low_signal_threshold,
    get_olt_map,
    get_upstream_base_url,
    get_upstream_token,
    load_configuration,
)
# Cache
from onugate.infrastructure.cache.cache_store import CacheStore
from onugate.infrastructure.cache.diskcache_backend import DiskCacheBackend
from onugate.infrastructure.cache.file_backend import FileCacheBackend
from onugate.infrastructure.cache.memory_backend import MemoryCacheBackend
# Monitoring
from onugate.infrastructure.monitoring.logger_setup import DEFAULT_LOG_FORMAT, level_from_name, setup_logging
# Resilience
from onugate.infrastructure.resilience.api_retry import ApiRetryService
from onugate.infrastructure.resilience.rate_limiter import DEFAULT_QUOTA_HEADROOM, RateLimiter
# Transport / upstream
from onugate.infrastructure.transport.http_transport import HttpTransport
from onugate.infrastructure.upstream.client import UpstreamClient
from onugate.infrastructure.upstream.endpoints import BULK_DETAILS, ONU_STATUSES, build_cache_key, resolve_path

logger = logging.getLogger(__name__)

DEFAULT_PACING_WINDOW_SECONDS = 60.0


@dataclass
class Gateway:
    """Every wired component, plus shutdown."""
    transport: HttpTransport
    retry_service: ApiRetryService
    cache_store: CacheStore
    upstream: UpstreamClient
    reconciliation: ReconciliationService
    onu_service: OnuService
    rate_limiter: Optional[RateLimiter] = None
    closed: bool = field(default=False, init=False)

    async def close(self) -> None:
        """Flushes the durable cache and releases the HTTP client and backends."""
        if self.closed:
            return
        self.closed = True
        await self.cache_store.flush()
        await self.upstream.close()
        await self.cache_store.close()
        logger.info("Gateway closed.")

    def flush_at_exit(self) -> None:
        """Best-effort durable flush for processes that exit without close().

        Runs synchronously: atexit handlers cannot use the event loop's executor.
        """
        if self.closed:
            return
        self.cache_store.flush_nowait()


def _create_persistent_backend(cache_dir: Path):
    backend_name = str(get_config('cache.backend', 'file')).lower()
    if backend_name == 'diskcache':
        return DiskCacheBackend(cache_dir)
    if backend_name != 'file':
        logger.warning(f"Unknown cache.backend '{backend_name}', using 'file'.")
    return FileCacheBackend(cache_dir)


def create_dependencies() -> Gateway:
    """Creates and wires up all dependencies for the gateway.

    This acts as the Composition Root. Durable cache entries are not loaded
    yet; ``create_gateway()`` does that.
    """
    logger.info("Initializing gateway dependencies...")

    # 1. Load Configuration First
    load_configuration()
    setup_logging(
        log_level=level_from_name(get_config('logging.level', 'INFO')),
        log_format=get_config('logging.format', DEFAULT_LOG_FORMAT),
        log_file=get_config('logging.file'),
    )
    logger.info("Configuration and logging initialized.")

    # 2. Transport
    base_url = get_upstream_base_url()
    if not base_url:
        raise ValueError("Upstream base URL is not configured (set UPSTREAM_BASE_URL or SMARTOLT_BASE).")
    token = get_upstream_token()
    if not token:
        logger.warning("Upstream token not configured; requests will be unauthenticated.")
    transport = HttpTransport(
        base_url=base_url,
        token=token,
        token_header=get_config('upstream.token_header', DEFAULT_TOKEN_HEADER, coerce=False),
        timeout=float(get_config('upstream.timeout_seconds', DEFAULT_TIMEOUT_SECONDS)),
        verify_tls=bool(get_config('upstream.verify_tls', True)),
    )

    # 3. Resilience
    rate_limiter = None
    hourly_quota = get_config('rate_limit.hourly_quota')
    max_requests = get_config('rate_limit.max_requests')
    if hourly_quota:
        rate_limiter = RateLimiter.for_hourly_quota(
            int(hourly_quota),
            headroom=float(get_config('rate_limit.headroom', DEFAULT_QUOTA_HEADROOM)),
        )
    elif max_requests:
        rate_limiter = RateLimiter(
            max_requests=int(max_requests),
            time_window=float(get_config('rate_limit.window_seconds', DEFAULT_PACING_WINDOW_SECONDS)),
        )
    retry_service = ApiRetryService(
        max_attempts=int(get_config('retry.max_attempts', DEFAULT_MAX_ATTEMPTS)),
        base_delay=float(get_config('retry.base_delay_seconds', DEFAULT_BASE_DELAY_SECONDS)),
        rate_limiter=rate_limiter,
    )

    # 4. Cache
    cache_dir = Path(get_config('cache.dir', DEFAULT_CACHE_DIR)).expanduser()
    cache_store = CacheStore(
        volatile=MemoryCacheBackend(),
        persistent=_create_persistent_backend(cache_dir),
        durable_keys=[build_cache_key(resolve_path(BULK_DETAILS))],
    )

    # 5. Upstream client and services
    upstream = UpstreamClient(
        transport=transport,
        retry_service=retry_service,
        cache_store=cache_store,
        ttls={
            BULK_DETAILS: float(get_config('cache.details_ttl_seconds', DEFAULT_DETAILS_TTL_SECONDS)),
            ONU_STATUSES: float(get_config('cache.status_ttl_seconds', DEFAULT_STATUS_TTL_SECONDS)),
        },
        default_ttl=float(get_config('cache.default_ttl_seconds', DEFAULT_TTL_SECONDS)),
    )
    reconciliation = ReconciliationService(low_signal_threshold=get_low_signal_threshold())
    onu_service = OnuService(upstream=upstream, reconciliation=reconciliation, olt_map=get_olt_map())

    logger.info("All dependencies initialized successfully.")
    return Gateway(
        transport=transport,
        retry_service=retry_service,
        cache_store=cache_store,
        upstream=upstream,
        reconciliation=reconciliation,
        onu_service=onu_service,
        rate_limiter=rate_limiter,
    )


async def create_gateway(register_exit_flush: bool = True) -> Gateway:
    """Builds the gateway and restores durable cache entries from disk."""
    gateway = create_dependencies()
    restored = await gateway.cache_store.load()
    logger.info(f"Restored {restored} durable cache entr{'y' if restored == 1 else 'ies'}.")
    if register_exit_flush:
        atexit.register(gateway.flush_at_exit)
    return gateway
