from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple
import os

from dotenv import load_dotenv

DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://127.0.0.1:3000")


@dataclass(frozen=True)
class Settings:
    rpc_url: str = ""
    commitment: str = "confirmed"
    cache_ttl: int = 300            # секунды
    cache_max: int = 1000
    cache_url: str = ""             # пусто -> in-process кэш
    rate_limit: str = "5/10 seconds"
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    port: int = 3001
    environment: str = "development"
    log_level: str = "INFO"

    @property
    def json_logs(self) -> bool:
        return self.environment != "development"


def _split_origins(raw: str) -> Tuple[str, ...]:
    return tuple(o.strip() for o in raw.split(",") if o.strip())


def load_settings() -> Settings:
    """Собрать настройки из окружения (и .env, если он есть)."""
    load_dotenv()
    return Settings(
        # --- апстрим ---
        rpc_url=os.getenv("SOLANA_RPC_URL", "").strip(),
        commitment=os.getenv("SOLANA_COMMITMENT", "confirmed"),
        # --- кэш ---
        cache_ttl=max(1, int(os.getenv("CACHE_TTL", "300"))),
        # TTL по умолчанию (по умолчанию 300 секунд)
        cache_max=max(1, int(os.getenv("MAX_CACHE_SIZE", "1000"))),
        # сколько блоков держим в памяти процесса
        cache_url=os.getenv("CACHE_URL", "").strip(),
        # --- http ---
        rate_limit=os.getenv("RATE_LIMIT", "5/10 seconds").strip(),
        # пустая строка отключает лимитер
        cors_origins=_split_origins(
            os.getenv("CORS_ORIGIN", ",".join(DEFAULT_CORS_ORIGINS))
        ),
        port=int(os.getenv("PORT", "3001")),
        environment=os.getenv("APP_ENV", "development"),
        log_level=os.getenv("LOG_LEVEL", "info").upper(),
    )
