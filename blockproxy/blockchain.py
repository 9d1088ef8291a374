"""
Чтение блокчейна: высота и информация о блоке (cache-aside).

get_block_info(n):
  1) ключ "block:<n>" -> кэш; попадание возвращаем сразу, RPC не трогаем;
  2) промах -> getBlock(n) только с подписями и без rewards
     (число подписей — единственное, что нам нужно от транзакций);
  3) null / пустой блок -> BlockNotFound (и только он; пропущенный слот — server-error);
  4) нормализуем в BlockInfo, кладём в кэш (best-effort), возвращаем.

Ошибки классифицируются здесь же, один раз: BlockNotFound / UpstreamTimeout /
UpstreamUnreachable / UpstreamError. Повторов (retry) нет.
"""
from __future__ import annotations
from typing import Any, Dict, Optional

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from blockproxy.cache import CacheService
from blockproxy.config import Settings
from blockproxy.errors import (
    BlockNotFound,
    ConfigurationError,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from blockproxy.log import log_error
from blockproxy.rpc import SolanaRpcClient

logger = structlog.get_logger(__name__)

BLOCK_KEY_PREFIX = "block"


class BlockInfo(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    block_height: str
    transaction_count: int = Field(ge=0)
    block_time: Optional[int] = None
    blockhash: str


def normalize_block(block_number: int, block: Dict[str, Any]) -> BlockInfo:
    block_time = block.get("blockTime")
    return BlockInfo(
        block_height=str(block_number),
        transaction_count=len(block.get("signatures") or []),
        block_time=int(block_time) if block_time is not None else None,
        blockhash=block["blockhash"],
    )


def _upstream_failure(message: str, exc: BaseException) -> UpstreamError:
    cause = str(exc) or type(exc).__name__
    if isinstance(exc, httpx.TimeoutException):
        return UpstreamTimeout(message, cause=cause)
    if isinstance(exc, httpx.TransportError):
        return UpstreamUnreachable(message, cause=cause)
    return UpstreamError(message, cause=cause)


class BlockchainService:
    def __init__(self, rpc: SolanaRpcClient, cache: CacheService) -> None:
        self._rpc = rpc
        self._cache = cache

    @classmethod
    def from_settings(cls, settings: Settings, cache: CacheService,
                      transport: Optional[httpx.AsyncBaseTransport] = None) -> "BlockchainService":
        """Поднять сервис из конфигурации; без SOLANA_RPC_URL сервис не стартует."""
        if not settings.rpc_url:
            raise ConfigurationError("SOLANA_RPC_URL environment variable is required")
        rpc = SolanaRpcClient.create(settings.rpc_url, settings.commitment, transport=transport)
        # в URL бывает api-key, поэтому в лог — только хост
        logger.info("blockchain_service_initialized",
                    rpc_host=httpx.URL(settings.rpc_url).host, commitment=settings.commitment)
        return cls(rpc, cache)

    async def get_current_block_height(self) -> int:
        try:
            height = await self._rpc.get_block_height()
        except Exception as e:
            log_error(logger, "block_height_fetch_failed", e)
            raise _upstream_failure("Unable to fetch current block height", e) from e
        logger.debug("block_height_fetched", height=height)
        return height

    async def get_block_info(self, block_number: int) -> BlockInfo:
        key = self._cache.generate_key(BLOCK_KEY_PREFIX, block_number)
        cached = await self._cache.get(key)
        if cached is not None:
            try:
                info = BlockInfo.model_validate(cached)
            except ValidationError as e:
                log_error(logger, "block_cache_entry_invalid", e, {"key": key})
            else:
                logger.debug("block_cache_hit", block=block_number)
                return info

        try:
            block = await self._rpc.get_block(
                block_number,
                max_supported_transaction_version=0,
                transaction_details="signatures",
                rewards=False,
            )
        except Exception as e:
            log_error(logger, "block_fetch_failed", e, {"block": block_number})
            cause = str(e) or type(e).__name__
            raise _upstream_failure(f"Unable to fetch block information: {cause}", e) from e

        if not block:
            raise BlockNotFound("Block not found", cause=f"Block {block_number} not found")

        try:
            info = normalize_block(block_number, block)
        except (KeyError, TypeError, ValueError) as e:
            log_error(logger, "block_normalize_failed", e, {"block": block_number})
            raise UpstreamError(f"Unable to fetch block information: malformed block {e}",
                                cause=str(e)) from e

        await self._cache.set(key, info)
        logger.debug("block_fetched", block=block_number, transactions=info.transaction_count)
        return info

    async def get_transaction_count(self, block_number: int) -> int:
        info = await self.get_block_info(block_number)
        return info.transaction_count

    async def aclose(self) -> None:
        await self._rpc.aclose()
