"""Ошибки блокчейн-слоя. Классифицируются один раз — там, где случились."""
from __future__ import annotations
from typing import Optional


class BlockchainError(Exception):
    """Базовая ошибка: message — публичный текст, cause — сырой текст апстрима."""
    def __init__(self, message: str, cause: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


class ConfigurationError(BlockchainError):
    """Фатальная ошибка конфигурации на старте (например, нет SOLANA_RPC_URL)."""


class BlockNotFound(BlockchainError):
    """Блока нет или слот был пропущен."""


class UpstreamError(BlockchainError):
    """Server-error: апстрим RPC не смог ответить."""


class UpstreamTimeout(UpstreamError):
    pass


class UpstreamUnreachable(UpstreamError):
    pass
