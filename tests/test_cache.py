# tests/test_cache.py
import importlib

import orjson
import pytest
from structlog.testing import capture_logs

cache_mod = importlib.import_module("blockproxy.cache")
config = importlib.import_module("blockproxy.config")
blockchain = importlib.import_module("blockproxy.blockchain")

CacheService = cache_mod.CacheService
MemoryBackend = cache_mod.MemoryBackend
RedisBackend = cache_mod.RedisBackend


class RecordingBackend:
    """Бэкенд, который запоминает вызовы set и может падать."""
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.data = {}
        self.sets = []

    async def get(self, key):
        if self.fail:
            raise ConnectionError("cache backend down")
        return self.data.get(key)

    async def set(self, key, value, ttl_ms):
        if self.fail:
            raise ConnectionError("cache backend down")
        self.sets.append((key, value, ttl_ms))
        self.data[key] = value

    async def close(self):
        pass


class FakeRedis:
    def __init__(self):
        self.store = {}
        self.psetex_calls = []
        self.closed = False

    async def get(self, key):
        return self.store.get(key)

    async def psetex(self, key, ms, value):
        self.psetex_calls.append((key, ms))
        self.store[key] = value

    async def aclose(self):
        self.closed = True


# ---------- ключи ----------
def test_generate_key():
    assert CacheService.generate_key("block") == "block"
    assert CacheService.generate_key("block", 12345) == "block:12345"
    assert CacheService.generate_key("tx", "hash123") == "tx:hash123"
    # строка и число дают одинаковый ключ
    assert CacheService.generate_key("block", "12345") == CacheService.generate_key("block", 12345)

def test_generate_key_edge_identifiers():
    assert CacheService.generate_key("block", 0) == "block:0"
    assert CacheService.generate_key("block", "") == "block"
    assert CacheService.generate_key("block", 2**70) == f"block:{2**70}"


# ---------- TTL ----------
@pytest.mark.anyio
async def test_set_uses_default_ttl_in_ms():
    backend = RecordingBackend()
    cache = CacheService(backend, default_ttl=300)
    await cache.set("block:1", {"a": 1})
    assert backend.sets == [("block:1", {"a": 1}, 300000)]

@pytest.mark.anyio
async def test_set_uses_explicit_ttl_in_ms():
    backend = RecordingBackend()
    cache = CacheService(backend, default_ttl=300)
    await cache.set("block:1", {"a": 1}, ttl=600)
    assert backend.sets[-1][2] == 600000

@pytest.mark.anyio
async def test_get_returns_stored_value_and_none_on_miss():
    cache = CacheService(RecordingBackend())
    await cache.set("k", "v")
    assert await cache.get("k") == "v"
    assert await cache.get("missing") is None


# ---------- ошибки бэкенда не выходят наружу ----------
@pytest.mark.anyio
async def test_get_swallows_backend_errors():
    cache = CacheService(RecordingBackend(fail=True))
    with capture_logs() as logs:
        assert await cache.get("block:1") is None
    failed = [e for e in logs if e["event"] == "cache_get_failed"]
    assert failed and failed[0]["key"] == "block:1"
    assert failed[0]["log_level"] == "error"

@pytest.mark.anyio
async def test_set_swallows_backend_errors():
    cache = CacheService(RecordingBackend(fail=True))
    with capture_logs() as logs:
        assert await cache.set("block:1", {"a": 1}) is None
    assert any(e["event"] == "cache_set_failed" for e in logs)


# ---------- MemoryBackend ----------
@pytest.mark.anyio
async def test_memory_backend_expires_entries():
    now = [1000.0]
    backend = MemoryBackend(maxsize=10, timer=lambda: now[0])
    await backend.set("block:1", "info", ttl_ms=5000)

    now[0] = 1004.0
    assert await backend.get("block:1") == "info"
    now[0] = 1006.0
    assert await backend.get("block:1") is None

@pytest.mark.anyio
async def test_memory_backend_is_bounded():
    backend = MemoryBackend(maxsize=2)
    for i in range(3):
        await backend.set(f"block:{i}", i, ttl_ms=60000)
    present = [await backend.get(f"block:{i}") for i in range(3)]
    assert sum(v is not None for v in present) == 2
    assert present[2] == 2


# ---------- RedisBackend ----------
@pytest.mark.anyio
async def test_redis_backend_stores_json_with_ms_ttl():
    fake = FakeRedis()
    backend = RedisBackend(fake)
    info = blockchain.BlockInfo(block_height="7", transaction_count=3, blockhash="h")
    await backend.set("block:7", info, 300000)

    assert fake.psetex_calls == [("block:7", 300000)]
    assert orjson.loads(fake.store["block:7"]) == {
        "blockHeight": "7", "transactionCount": 3, "blockhash": "h"
    }
    # из redis приходит dict, модель из него восстанавливается один в один
    restored = blockchain.BlockInfo.model_validate(await backend.get("block:7"))
    assert restored == info

    await backend.close()
    assert fake.closed


def test_make_backend_picks_by_url():
    assert isinstance(cache_mod.make_backend(config.Settings()), MemoryBackend)
    redis_backend = cache_mod.make_backend(config.Settings(cache_url="redis://localhost:6379/0"))
    assert isinstance(redis_backend, RedisBackend)
