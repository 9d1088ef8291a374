# tests/conftest.py
import importlib
import json

import httpx
import pytest
from fastapi.testclient import TestClient

main = importlib.import_module("blockproxy.main")
config = importlib.import_module("blockproxy.config")

RPC_URL = "https://rpc.test.local"


def make_block(signatures=150, block_time=1691234567, blockhash="ABCD1234567890EFGH"):
    """Ответ getBlock с transactionDetails=signatures."""
    block = {"blockhash": blockhash, "blockTime": block_time, "parentSlot": 99999999}
    if signatures is not None:
        block["signatures"] = [f"sig{i}" for i in range(signatures)]
    return block


class FakeRpcNode:
    """Подставная нода Solana для httpx.MockTransport.

    errors[method] — либо исключение (транспорт), либо dict JSON-RPC error.
    """
    def __init__(self):
        self.height = 100000000
        self.blocks = {100000000: make_block()}
        self.errors = {}
        self.calls = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        method, params = body["method"], body["params"]
        self.calls.append((method, params))

        err = self.errors.get(method)
        if isinstance(err, Exception):
            raise err
        if err is not None:
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "error": err})

        if method == "getBlockHeight":
            result = self.height
        elif method == "getBlock":
            result = self.blocks.get(params[0])
        else:
            return httpx.Response(200, json={
                "jsonrpc": "2.0", "id": body["id"],
                "error": {"code": -32601, "message": "Method not found"},
            })
        return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})

    def calls_to(self, method):
        return [params for m, params in self.calls if m == method]


@pytest.fixture()
def rpc_node():
    return FakeRpcNode()


@pytest.fixture()
def settings():
    # лимитер выключен, чтобы не упираться в 5 запросов / 10 секунд
    return config.Settings(rpc_url=RPC_URL, rate_limit="")


@pytest.fixture()
def app(settings, rpc_node):
    return main.build_app(settings, transport=httpx.MockTransport(rpc_node))


@pytest.fixture()
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def anyio_backend():
    return "asyncio"
