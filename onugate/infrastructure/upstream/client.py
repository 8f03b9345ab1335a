"""Upstream client: transport, retry policy and cache store composed.

Fallback order for reads:
1. Fresh cache entry (no upstream call).
2. Upstream through the retry policy; successful results are written through.
3. On throttling or transport failure after retries, the last cached value
   (stale is fine), annotated ``cached=True``.
4. Otherwise a structured failure (throttling) or the TransportError itself.

Upstream rejections (``status: false`` for any other reason) are returned as-is
and never replaced by cached data.
"""

import copy
import logging
from typing import Any, Dict, Mapping, Optional

from onugate.domain.errors import GatewayError, RateLimitExceeded, TransportError, UpstreamRejection
from onugate.domain.events.api_events import CacheFallbackUsed, CacheRefreshed, dispatch_event
from onugate.domain.interfaces.transport import RawResult, Transport
from onugate.domain.models.common import CacheKey, RefreshOutcome, Result
from onugate.domain.models.devices import extract_device_list
from onugate.infrastructure.cache.cache_store import CacheStore
from onugate.infrastructure.config.settings import DEFAULT_TTL_SECONDS
from onugate.infrastructure.resilience.api_retry import ApiRetryService
from onugate.infrastructure.resilience.rate_limit_signals import is_failed, result_message
from onugate.infrastructure.upstream.endpoints import BULK_DETAILS, build_cache_key, resolve_path

logger = logging.getLogger(__name__)

NO_CACHE_MESSAGE = "upstream limit reached, no cache available"


def normalize_result(raw: RawResult) -> Result:
    """Turns a RawResult into the ``{status, response|error}`` envelope.

    4xx responses always come out with ``status: False`` and an error text,
    using the HTTP reason phrase when the body carries none (so 403/429 still
    read as throttling).
    """
    body = raw.body
    http_error = f"HTTP {raw.status_code} {raw.reason}".strip()
    if isinstance(body, dict):
        result = dict(body)
        if raw.is_client_error:
            result["status"] = False
            if not result_message(result):
                result["error"] = http_error
        return result
    if raw.is_client_error:
        text = str(body or "").strip()
        return {"status": False, "error": f"{http_error}: {text[:200]}" if text else http_error}
    return {"status": True, "response": body}


def annotate(result: Result, cached: bool) -> Result:
    return {**result, "cached": cached}


class UpstreamClient:
    """fetch / mutate / force_refresh against the upstream API."""

    def __init__(
        self,
        transport: Transport,
        retry_service: ApiRetryService,
        cache_store: CacheStore,
        ttls: Optional[Mapping[str, float]] = None,
        default_ttl: float = DEFAULT_TTL_SECONDS,
    ):
        """Initializes the client.

        Args:
            transport: HTTP transport to the upstream.
            retry_service: Retry policy wrapped around every upstream call.
            cache_store: Cache the client writes through to.
            ttls: Per-resource-kind TTLs in seconds.
            default_ttl: TTL for resource kinds missing from ``ttls``.
        """
        self.transport = transport
        self.retry_service = retry_service
        self.cache = cache_store
        self.ttls: Dict[str, float] = dict(ttls or {})
        self.default_ttl = default_ttl
        logger.info(f"UpstreamClient initialized: ttls={self.ttls}, default_ttl={default_ttl}s")

    def ttl_for(self, kind: str) -> float:
        return float(self.ttls.get(kind, self.default_ttl))

    async def _call(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        form: Optional[Mapping[str, Any]] = None,
    ) -> Result:
        raw = await self.transport.call(method, path, params=params, form=form)
        return normalize_result(raw)

    async def _fallback(self, key: CacheKey, reason: str) -> Optional[Result]:
        entry = await self.cache.read(key)
        if entry is None:
            return None
        age = self.cache.age(entry)
        dispatch_event(CacheFallbackUsed(cache_key=key, reason=reason, age_seconds=age))
        logger.info(f"Using cached data for {key} ({reason}, age {age:.0f}s)")
        return annotate(entry.snapshot(), cached=True)

    async def fetch(
        self,
        resource_kind: str,
        params: Optional[Mapping[str, Any]] = None,
        use_cache: bool = True,
        *,
        path_id: Optional[Any] = None,
    ) -> Result:
        """Reads a resource, preferring fresh cache and falling back to stale cache.

        Args:
            resource_kind: Endpoint name (see ``ENDPOINTS``).
            params: Query parameters.
            use_cache: False skips the freshness check (the result is still cached).
            path_id: Optional id appended to the path (e.g. an OLT id).

        Returns:
            The upstream (or cached) result, always carrying ``status`` and
            ``cached`` flags.

        Raises:
            TransportError: Upstream unreachable and nothing cached for the key.
        """
        path = resolve_path(resource_kind, path_id)
        key = build_cache_key(path, params)

        if use_cache:
            entry = await self.cache.read(key)
            if entry is not None and entry.is_fresh(self.cache.clock()):
                logger.debug(f"Using fresh cache for {key}")
                return annotate(entry.snapshot(), cached=False)

        logger.info(f"Requesting {path} from upstream...")
        try:
            result = await self.retry_service.execute_with_retry(
                self._call, "GET", path, params, endpoint_name=path
            )
        except RateLimitExceeded as e:
            logger.warning(f"Upstream limit reached for {path}: {e}")
            cached = await self._fallback(key, "rate_limit")
            if cached is not None:
                return cached
            return {"status": False, "error": NO_CACHE_MESSAGE}
        except TransportError as e:
            logger.error(f"Upstream error for {path}: {e}")
            cached = await self._fallback(key, "transport_error")
            if cached is not None:
                return cached
            raise

        if is_failed(result):
            logger.warning(f"Upstream rejected {path}: {result_message(result)}")
            return result

        await self.cache.write(key, result, self.ttl_for(resource_kind))
        return annotate(copy.deepcopy(result), cached=False)

    async def mutate(
        self,
        action: str,
        params: Optional[Mapping[str, Any]] = None,
        *,
        path_id: Optional[Any] = None,
    ) -> Result:
        """Posts a form-encoded action to the upstream; never cached.

        Raises:
            RateLimitExceeded: Throttled on every attempt.
            TransportError: Upstream unreachable after retries.
        """
        path = resolve_path(action, path_id)
        try:
            return await self.retry_service.execute_with_retry(
                self._call, "POST", path, None, dict(params or {}), endpoint_name=path
            )
        except GatewayError as e:
            logger.error(f"Error in POST {path}: {e}")
            raise

    async def force_refresh(self) -> RefreshOutcome:
        """Re-fetches the bulk device details and replaces the cached snapshot.

        On any failure the existing entry is left untouched. On success the
        in-memory entry is dropped and rewritten; the durable record is
        replaced in place, so a failed disk write keeps the previous snapshot.
        """
        path = resolve_path(BULK_DETAILS)
        key = build_cache_key(path)
        logger.info("Forcing a full refresh of ONU details from upstream...")
        try:
            result = await self.retry_service.execute_with_retry(
                self._call, "GET", path, None, endpoint_name=path
            )
        except GatewayError as e:
            logger.warning(f"Could not refresh ONU details: {e}")
            return RefreshOutcome(ok=False, total=0)

        if is_failed(result):
            logger.warning(f"Upstream refused the ONU details refresh: {result_message(result)}")
            return RefreshOutcome(ok=False, total=0)

        total = len(extract_device_list(result))
        await self.cache.invalidate(key, durable=False)
        await self.cache.write(key, result, self.ttl_for(BULK_DETAILS))
        dispatch_event(CacheRefreshed(cache_key=key, total=total))
        logger.info(f"Cache updated with {total} ONUs.")
        return RefreshOutcome(ok=True, total=total)

    @staticmethod
    def raise_for_rejection(result: Result) -> Result:
        """Raises UpstreamRejection for ``status: false`` results, else returns them."""
        if is_failed(result):
            raise UpstreamRejection(result_message(result) or "Upstream rejected the request", result=result)
        return result

    async def close(self) -> None:
        await self.transport.close()
