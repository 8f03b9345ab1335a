import logging

import pytest
from unittest.mock import AsyncMock

from onugate.domain.errors import CacheBackendError, NoCacheAvailable
from onugate.domain.models.cache import CacheEntry
from onugate.domain.models.common import CacheKey
from onugate.infrastructure.cache.cache_store import CacheStore
from onugate.infrastructure.cache.file_backend import FileCacheBackend
from onugate.infrastructure.cache.memory_backend import MemoryCacheBackend

DETAILS = CacheKey("/onu/get_all_onus_details")
OLTS = CacheKey("/system/get_olts")


@pytest.fixture
def durable_store(tmp_path, clock):
    return CacheStore(
        volatile=MemoryCacheBackend(),
        persistent=FileCacheBackend(tmp_path),
        durable_keys=[DETAILS],
        clock=clock,
    )


async def test_read_unknown_key_is_none(cache_store):
    assert await cache_store.read(OLTS) is None
    assert not await cache_store.is_fresh(OLTS)


async def test_write_stamps_clock_and_becomes_fresh(cache_store, clock):
    entry = await cache_store.write(OLTS, {"status": True}, ttl=60)

    assert entry.last_fetch == clock.now
    assert await cache_store.is_fresh(OLTS)
    clock.advance(60)
    assert not await cache_store.is_fresh(OLTS)
    # Stale entries are still readable for fallback.
    assert (await cache_store.read(OLTS)).data == {"status": True}


async def test_require_raises_when_missing(cache_store):
    with pytest.raises(NoCacheAvailable):
        await cache_store.require(OLTS)


async def test_age_is_seconds_since_fetch(cache_store, clock):
    entry = await cache_store.write(OLTS, [1], ttl=5)
    clock.advance(42)

    assert cache_store.age(entry) == 42


async def test_durable_key_is_mirrored_and_survives_restart(tmp_path, durable_store, clock):
    await durable_store.write(DETAILS, {"response": {"onus": [{"sn": "A"}]}}, ttl=3600)
    await durable_store.write(OLTS, {"response": []}, ttl=60)

    restarted = CacheStore(
        volatile=MemoryCacheBackend(),
        persistent=FileCacheBackend(tmp_path),
        durable_keys=[DETAILS],
        clock=clock,
    )
    assert await restarted.load() == 1
    assert (await restarted.read(DETAILS)).data == {"response": {"onus": [{"sn": "A"}]}}
    assert await restarted.read(OLTS) is None


async def test_durable_read_promotes_into_memory(durable_store):
    await durable_store.persistent.set(CacheEntry(key=DETAILS, data=[1], last_fetch=1.0, ttl=1))

    assert (await durable_store.read(DETAILS)).data == [1]
    assert await durable_store.volatile.get(DETAILS) is not None


async def test_invalidate_clears_both_tiers(durable_store):
    await durable_store.write(DETAILS, [1], ttl=3600)

    await durable_store.invalidate(DETAILS)

    assert await durable_store.volatile.get(DETAILS) is None
    assert await durable_store.persistent.get(DETAILS) is None


async def test_persistent_failures_do_not_break_writes(clock):
    persistent = AsyncMock()
    persistent.backend_id = "broken"
    persistent.set.side_effect = CacheBackendError("read-only filesystem")
    store = CacheStore(volatile=MemoryCacheBackend(), persistent=persistent, durable_keys=[DETAILS], clock=clock)

    await store.write(DETAILS, [1], ttl=60)

    assert (await store.read(DETAILS)).data == [1]
    assert await store.flush() == 0


async def test_flush_writes_durable_keys_only(durable_store):
    await durable_store.volatile.set(CacheEntry(key=DETAILS, data=[1], last_fetch=1.0, ttl=1))
    await durable_store.volatile.set(CacheEntry(key=OLTS, data=[2], last_fetch=1.0, ttl=1))

    assert await durable_store.flush() == 1
    assert await durable_store.persistent.keys() == [DETAILS]


async def test_load_and_flush_without_persistent_tier(cache_store):
    assert await cache_store.load() == 0
    assert await cache_store.flush() == 0


async def test_invalidate_memory_only_keeps_durable_record(durable_store):
    await durable_store.write(DETAILS, [1], ttl=3600)

    await durable_store.invalidate(DETAILS, durable=False)

    assert await durable_store.volatile.get(DETAILS) is None
    assert (await durable_store.persistent.get(DETAILS)).data == [1]


async def test_failed_rewrite_keeps_previous_snapshot_on_disk(tmp_path, durable_store, mocker):
    await durable_store.write(DETAILS, ["old"], ttl=3600)
    await durable_store.invalidate(DETAILS, durable=False)
    mocker.patch.object(durable_store.persistent, "set", side_effect=CacheBackendError("disk full"))

    await durable_store.write(DETAILS, ["new"], ttl=3600)

    assert (await durable_store.read(DETAILS)).data == ["new"]
    assert (await FileCacheBackend(tmp_path).get(DETAILS)).data == ["old"]


def test_flush_nowait_writes_durable_keys_only(tmp_path, durable_store):
    durable_store.volatile.set_nowait(CacheEntry(key=DETAILS, data=[1], last_fetch=1.0, ttl=1))
    durable_store.volatile.set_nowait(CacheEntry(key=OLTS, data=[2], last_fetch=1.0, ttl=1))

    assert durable_store.flush_nowait() == 1
    assert len(list(tmp_path.glob("*.json"))) == 1
    assert not list(tmp_path.glob("*.tmp"))


def test_flush_nowait_logs_backends_without_sync_writes(clock, caplog, mocker):
    persistent = mocker.MagicMock()
    persistent.backend_id = "async-only"
    persistent.set_nowait.side_effect = NotImplementedError("no synchronous write")
    store = CacheStore(volatile=MemoryCacheBackend(), persistent=persistent, durable_keys=[DETAILS], clock=clock)
    store.volatile.set_nowait(CacheEntry(key=DETAILS, data=[1], last_fetch=1.0, ttl=1))

    with caplog.at_level(logging.ERROR, logger="onugate.infrastructure.cache.cache_store"):
        assert store.flush_nowait() == 0
    assert "at exit" in caplog.text


def test_flush_nowait_without_persistent_tier(cache_store):
    assert cache_store.flush_nowait() == 0
