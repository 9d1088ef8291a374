"""
Тонкий HTTP-прокси перед RPC-нодой Solana на Python + FastAPI.

Отдаёт два read-only эндпойнта — текущую высоту блокчейна и информацию о блоке
по номеру — и держит перед нодой cache-aside слой:

проверили кэш → на промахе сходили в RPC → нормализовали ответ → положили в кэш →
перевели ошибки апстрима в понятные HTTP-категории (404 / 500).

Данные финализированного блока не меняются, поэтому гонка двух одновременных
промахов по одному блоку безвредна: оба сходят в RPC, оба запишут одно и то же.

Install & run:
  pip install -e ".[test]"
  SOLANA_RPC_URL=https://api.mainnet-beta.solana.com fastapi dev blockproxy/main.py
  # или
  SOLANA_RPC_URL=... python -m blockproxy
Test:
  pytest

API:
  GET /health
  GET /blockchain/block-height                -> {"blockHeight": "<decimal>"}
  GET /blockchain/block-info/{blockNumber}    -> {"blockHeight", "transactionCount", "blockTime"?, "blockhash"}

Notes:
- Ошибки отдаются в формате FastAPI: {"detail": "<message>"}.
- Лимит запросов на клиента — RATE_LIMIT (по умолчанию "5/10 seconds").
"""


from __future__ import annotations
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

import httpx
import structlog
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from blockproxy.blockchain import BlockchainService, BlockInfo
from blockproxy.cache import CacheService, make_backend
from blockproxy.config import Settings, load_settings
from blockproxy.errors import (
    BlockchainError,
    BlockNotFound,
    UpstreamError,
    UpstreamTimeout,
    UpstreamUnreachable,
)
from blockproxy.log import configure_logging

logger = structlog.get_logger(__name__)

# --- публичные сообщения об ошибках ---
UNREACHABLE = "Unable to connect to blockchain network"
HEIGHT_FAILED = "Unable to fetch current block height"
NETWORK_ERROR = "Blockchain network error - please try again later"
TIMEOUT = "Request timeout - blockchain network is slow"


# ---------- перевод ошибок в HTTP ----------
def height_error(exc: BaseException) -> HTTPException:
    texts = [str(exc)]
    if isinstance(exc, BlockchainError) and exc.cause:
        texts.append(exc.cause)
    if isinstance(exc, UpstreamUnreachable) or any("RPC" in t or "network" in t for t in texts):
        return HTTPException(status_code=500, detail=UNREACHABLE)
    logger.error("block_height_request_failed", error=" | ".join(texts))
    return HTTPException(status_code=500, detail=HEIGHT_FAILED)


def block_info_error(block_number: int, exc: BaseException) -> HTTPException:
    """Цепочка проверок, первое совпадение выигрывает."""
    message = str(exc)

    # server-error, уже классифицированный сервисом
    if isinstance(exc, UpstreamError):
        if isinstance(exc, UpstreamTimeout) or "timeout" in message:
            return HTTPException(status_code=500, detail=TIMEOUT)
        if isinstance(exc, UpstreamUnreachable):
            return HTTPException(status_code=500, detail=NETWORK_ERROR)
        return HTTPException(status_code=500, detail=message)

    if (isinstance(exc, BlockNotFound)
            or "Block not found" in message or "slot was skipped" in message):
        return HTTPException(status_code=404, detail=f"Block {block_number} not found or was skipped")
    if "RPC connection failed" in message or "network" in message:
        return HTTPException(status_code=500, detail=NETWORK_ERROR)
    if "timeout" in message:
        return HTTPException(status_code=500, detail=TIMEOUT)

    # сырой текст апстрима уходит клиенту
    logger.error("block_info_request_failed", block=block_number, error=message)
    return HTTPException(status_code=500, detail=f"Unable to fetch block {block_number} - {message}")


def build_app(settings: Optional[Settings] = None,
              transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    cfg = settings or load_settings()
    state: Dict[str, Any] = {}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(cfg.log_level, json_logs=cfg.json_logs)
        cache = CacheService(make_backend(cfg), default_ttl=cfg.cache_ttl)
        # без SOLANA_RPC_URL тут вылетит ConfigurationError и приложение не поднимется
        try:
            state["blockchain"] = BlockchainService.from_settings(cfg, cache, transport=transport)
        except Exception:
            await cache.close()
            raise
        state["cache"] = cache

        yield

        await state["blockchain"].aclose()
        await cache.close()

    app = FastAPI(
        title="Solana block proxy",
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )

    # --- rate limit (slowapi) и CORS ---
    limiter = Limiter(
        key_func=get_remote_address,
        default_limits=[cfg.rate_limit] if cfg.rate_limit else [],
        enabled=bool(cfg.rate_limit),
    )
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(cfg.cors_origins),
        allow_methods=["GET"],
        allow_headers=["*"],
    )

    @app.get("/health", response_model=dict)
    async def health() -> dict:
        return {"ok": True}

    @app.get("/blockchain/block-height", response_model=dict)
    async def get_block_height() -> dict:
        try:
            height = await state["blockchain"].get_current_block_height()
        except Exception as e:
            raise height_error(e) from e
        return {"blockHeight": str(height)}

    @app.get(
        "/blockchain/block-info/{block_number}",
        response_model=BlockInfo,
        response_model_exclude_none=True,
    )
    async def get_block_info(block_number: int) -> BlockInfo:
        """Информация о блоке; номер не валидируем — отрицательные отклонит сама нода."""
        try:
            return await state["blockchain"].get_block_info(block_number)
        except Exception as e:
            raise block_info_error(block_number, e) from e

    return app

# для fastapi dev blockproxy/main.py
app = build_app()
