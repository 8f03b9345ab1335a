import httpx
import pytest
from unittest.mock import AsyncMock

from onugate.infrastructure.cache.cache_store import CacheStore
from onugate.infrastructure.cache.memory_backend import MemoryCacheBackend
from onugate.infrastructure.config.settings import clear_test_config
from onugate.infrastructure.resilience.api_retry import ApiRetryService
from onugate.infrastructure.transport.http_transport import HttpTransport
from onugate.infrastructure.upstream.client import UpstreamClient

BASE_URL = "https://olt.test"


class FakeClock:
    """Callable clock the tests move by hand."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class UpstreamStub:
    """httpx.MockTransport handler with scripted responses per path.

    Each path holds a queue; the last queued item keeps being served. Items
    are httpx.Response objects or exceptions to raise.
    """

    def __init__(self):
        self.routes = {}
        self.requests = []

    def add(self, path, *responses):
        self.routes.setdefault(path, []).extend(responses)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"status": False, "error": f"no route {request.url.path}"})
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, Exception):
            raise item
        # Fresh copy per request; the client binds and closes each response.
        return httpx.Response(item.status_code, headers=item.headers, content=item.content)

    def calls(self, path):
        return [r for r in self.requests if r.url.path == path]


@pytest.fixture(autouse=True)
def _reset_test_config():
    yield
    clear_test_config()


@pytest.fixture
def sleeps():
    """Stands in for asyncio.sleep; inspect ``await_args_list`` for the delays."""
    return AsyncMock(return_value=None)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def upstream_stub():
    return UpstreamStub()


@pytest.fixture
def transport(upstream_stub):
    client = httpx.AsyncClient(base_url=BASE_URL, transport=httpx.MockTransport(upstream_stub))
    return HttpTransport(base_url=BASE_URL, token="secret-token", client=client)


@pytest.fixture
def retry_service(sleeps):
    return ApiRetryService(max_attempts=2, base_delay=3.0, sleep_func=sleeps)


@pytest.fixture
def cache_store(clock):
    return CacheStore(volatile=MemoryCacheBackend(), clock=clock)


@pytest.fixture
def upstream_client(transport, retry_service, cache_store):
    return UpstreamClient(
        transport=transport,
        retry_service=retry_service,
        cache_store=cache_store,
        ttls={"get_all_onus_details": 3600, "get_onus_statuses": 60},
        default_ttl=300,
    )
