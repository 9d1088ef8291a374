"""
Cache-aside слой: CacheService + бэкенды.

Кэш — чистая оптимизация: любая ошибка бэкенда логируется и превращается
в промах (get) или в потерянную запись (set), но не роняет запрос.

Контракт бэкенда:
  await backend.get(key)                -> value | None
  await backend.set(key, value, ttl_ms) -> None     (TTL в миллисекундах)
"""
from __future__ import annotations
from typing import Any, Optional, Protocol, Union
import time

import orjson
import redis.asyncio as aioredis
import structlog
from cachetools import TLRUCache

from blockproxy.config import Settings
from blockproxy.log import log_error

logger = structlog.get_logger(__name__)

Identifier = Union[str, int, None]


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any, ttl_ms: int) -> None: ...
    async def close(self) -> None: ...


# ---------- in-process ----------
def _expires_at(_key: str, entry: tuple, now: float) -> float:
    # entry = (value, ttl_seconds)
    return now + entry[1]


class MemoryBackend:
    """Ограниченный по размеру кэш в памяти процесса, TTL на каждую запись."""
    def __init__(self, maxsize: int = 1000, timer=time.monotonic) -> None:
        self._data: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_expires_at, timer=timer)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        return None if entry is None else entry[0]

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        self._data[key] = (value, ttl_ms / 1000)

    async def close(self) -> None:
        self._data.clear()


# ---------- redis ----------
def _encode(obj: Any) -> Any:
    if hasattr(obj, "model_dump"):
        return obj.model_dump(by_alias=True, exclude_none=True)
    raise TypeError(f"cannot serialize {type(obj).__name__}")


class RedisBackend:
    """Внешний кэш: значения хранятся как orjson, TTL через PSETEX."""
    def __init__(self, client: aioredis.Redis) -> None:
        self._redis = client

    @classmethod
    def from_url(cls, url: str) -> "RedisBackend":
        return cls(aioredis.from_url(url))

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._redis.get(key)
        return None if raw is None else orjson.loads(raw)

    async def set(self, key: str, value: Any, ttl_ms: int) -> None:
        await self._redis.psetex(key, ttl_ms, orjson.dumps(value, default=_encode))

    async def close(self) -> None:
        await self._redis.aclose()


def make_backend(settings: Settings) -> CacheBackend:
    if settings.cache_url.startswith(("redis://", "rediss://")):
        return RedisBackend.from_url(settings.cache_url)
    return MemoryBackend(maxsize=settings.cache_max)


# ---------- accessor ----------
class CacheService:
    def __init__(self, backend: CacheBackend, default_ttl: int = 300) -> None:
        self._backend = backend
        self._default_ttl = default_ttl

    @staticmethod
    def generate_key(prefix: str, identifier: Identifier = None) -> str:
        """generate_key("block", 12345) -> "block:12345"; 0 — тоже идентификатор."""
        if identifier is None or identifier == "":
            return prefix
        return f"{prefix}:{identifier}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self._backend.get(key)
        except Exception as e:
            log_error(logger, "cache_get_failed", e, {"key": key})
            return None
        logger.debug("cache_get", key=key, hit=value is not None)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Положить value на ttl секунд (или на TTL по умолчанию)."""
        ttl_ms = int((ttl if ttl else self._default_ttl) * 1000)
        try:
            await self._backend.set(key, value, ttl_ms)
        except Exception as e:
            log_error(logger, "cache_set_failed", e, {"key": key})
            return
        logger.debug("cache_set", key=key, ttl_s=ttl_ms // 1000)

    async def close(self) -> None:
        await self._backend.close()
