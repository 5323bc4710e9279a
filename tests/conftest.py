"""Shared fixtures: a deterministic wallet and an in-process fake ledger.

The fake ledger answers the node's HTTP endpoints through httpx.MockTransport,
so the RPC client, scheduler and engine run unmodified against it.
"""
import asyncio
import base64
import json

import httpx
import pytest

from octwallet.rpc import RpcClient
from octwallet.wallet import Wallet

LEDGER_URL = "http://ledger.test"
ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"


def addr(c: str) -> str:
    """A well-formed address made of one repeated character."""
    return "oct" + c * 44


class FakeLedger:
    def __init__(self, *, balance: float = 1_000.0, nonce: int | None = 0) -> None:
        self.balance = balance
        self.nonce = nonce
        self.staged: list[dict] = []
        self.history: list[dict] | None = None  # None answers 404
        self.details: dict[str, dict] = {}
        self.broken_details: set[str] = set()
        self.submitted: list[dict] = []
        self.events: list[tuple[str, int]] = []
        self.delays: dict[int, float] = {}
        self.replies: dict[int, httpx.Response] = {}
        self.legacy = False
        self.latency = 0.01
        self.calls: list[str] = []

    async def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.calls.append(path)

        if path.startswith("/balance/"):
            body = {"balance": self.balance}
            if self.nonce is not None:
                body["nonce"] = self.nonce
            return httpx.Response(200, json=body)

        if path == "/staging":
            return httpx.Response(200, json={"staged_transactions": list(self.staged)})

        if path.startswith("/address/"):
            if self.history is None:
                return httpx.Response(404, json={"error": "Address not found"})
            return httpx.Response(200, json={"recent_transactions": self.history})

        if path.startswith("/tx/"):
            tx_hash = path.rsplit("/", 1)[1]
            if tx_hash in self.broken_details:
                return httpx.Response(500, text="boom")
            if tx_hash not in self.details:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json={"parsed_tx": self.details[tx_hash]})

        if path == "/send-tx":
            payload = json.loads(request.content)
            n = payload["nonce"]
            self.events.append(("start", n))
            await asyncio.sleep(self.delays.get(n, self.latency))
            self.submitted.append(payload)
            self.events.append(("end", n))
            if n in self.replies:
                return self.replies[n]
            tx_hash = f"hash{n}"
            if self.legacy:
                return httpx.Response(200, text=f"OK {tx_hash}")
            return httpx.Response(
                200, json={"status": "accepted", "tx_hash": tx_hash, "pool_info": {"total_pool_size": len(self.submitted)}}
            )

        return httpx.Response(404, json={"error": f"no route {path}"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def wallet() -> Wallet:
    return Wallet.from_private_key(base64.b64encode(bytes(range(32))).decode())


@pytest.fixture
def other_wallet() -> Wallet:
    return Wallet.from_private_key(base64.b64encode(bytes(range(32, 64))).decode())


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def rpc(ledger: FakeLedger) -> RpcClient:
    return RpcClient(LEDGER_URL, transport=ledger.transport())
