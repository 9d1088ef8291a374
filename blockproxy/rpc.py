"""Минимальный JSON-RPC 2.0 клиент к ноде Solana поверх httpx."""
from __future__ import annotations
from typing import Any, Dict, List, Optional
import itertools

import httpx


class RpcError(Exception):
    """Нода вернула объект error вместо result (или HTTP-ошибку; тогда code=None)."""
    def __init__(self, code: Optional[int], message: str, data: Any = None) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.data = data

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} [code {self.code}]"


class SolanaRpcClient:
    def __init__(self, endpoint: str, http: httpx.AsyncClient,
                 commitment: str = "confirmed") -> None:
        self.endpoint = endpoint
        self.commitment = commitment
        self._http = http
        self._ids = itertools.count(1)

    @classmethod
    def create(cls, endpoint: str, commitment: str = "confirmed",
               transport: Optional[httpx.AsyncBaseTransport] = None) -> "SolanaRpcClient":
        return cls(endpoint, httpx.AsyncClient(transport=transport), commitment=commitment)

    async def _call(self, method: str, params: List[Any]) -> Any:
        r = await self._http.post(self.endpoint, json={
            "jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params
        })
        if r.is_error:
            # в тексте HTTPStatusError есть полный URL (а в нём бывает api-key)
            raise RpcError(None, f"HTTP error ({r.status_code}): {r.reason_phrase}")
        body = r.json()
        err = body.get("error")
        if err:
            raise RpcError(err.get("code"), str(err.get("message", "")), err.get("data"))
        return body.get("result")

    async def get_block_height(self) -> int:
        return int(await self._call("getBlockHeight", [{"commitment": self.commitment}]))

    async def get_block(self, slot: int, *, max_supported_transaction_version: int = 0,
                        transaction_details: str = "signatures",
                        rewards: bool = False) -> Optional[Dict[str, Any]]:
        """getBlock(slot); None, если нода ответила result=null."""
        return await self._call("getBlock", [slot, {
            "commitment": self.commitment,
            "encoding": "json",
            "maxSupportedTransactionVersion": max_supported_transaction_version,
            "transactionDetails": transaction_details,
            "rewards": rewards,
        }])

    async def aclose(self) -> None:
        await self._http.aclose()
