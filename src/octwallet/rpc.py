import json
import logging
from typing import Any

import httpx

import octwallet.constants as C
from octwallet.errors import RpcError, RpcNotFound, RpcTimeout, RpcTransportError
from octwallet.models import (
    Accepted,
    ConfirmedState,
    ConfirmedTransactionRecord,
    PendingPoolEntry,
    Rejected,
    SignedEnvelope,
    SubmitResult,
    TransactionRef,
)

log = logging.getLogger("octwallet.rpc")


def normalize_submit_response(body: Any) -> SubmitResult:
    """Fold the ledger's two success shapes into Accepted, anything else into Rejected.

    Current nodes answer ``{"status": "accepted", "tx_hash": ...}``; older ones
    answer plain text ``"ok <hash>"``.
    """
    if isinstance(body, dict) and body.get("status") == "accepted" and body.get("tx_hash"):
        return Accepted(hash=body["tx_hash"], pool_info=body.get("pool_info"))
    if isinstance(body, str) and body.lower().startswith("ok"):
        parts = body.split()
        if len(parts) > 1:
            return Accepted(hash=parts[-1])
    if isinstance(body, dict) and body.get("error"):
        return Rejected(reason=str(body["error"]))
    return Rejected(reason=body if isinstance(body, str) else json.dumps(body))


def _decode(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class RpcClient:
    """Async client for the ledger's HTTP RPC.

    With ``relay_url`` set every call is wrapped as ``{method, endpoint, rpcUrl,
    payload}`` and posted to the relay, which forwards it verbatim.
    """

    def __init__(
        self,
        base_url: str,
        *,
        relay_url: str | None = None,
        timeout: float = C.RPC_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.relay_url = relay_url
        self.timeout = timeout
        self._http = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "RpcClient":
        return self

    async def __aexit__(self, *exc) -> None:
        await self.aclose()

    async def request(self, method: str, endpoint: str, payload: dict | None = None, *, timeout: float | None = None) -> Any:
        t = timeout if timeout is not None else self.timeout
        try:
            if self.relay_url:
                resp = await self._http.post(
                    self.relay_url,
                    json={"method": method, "endpoint": endpoint, "rpcUrl": self.base_url, "payload": payload},
                    timeout=t,
                )
            else:
                resp = await self._http.request(
                    method,
                    f"{self.base_url}{endpoint}",
                    json=payload if method == "POST" else None,
                    timeout=t,
                )
        except httpx.TimeoutException as e:
            raise RpcTimeout(f"{method} {endpoint} timed out after {t}s") from e
        except httpx.TransportError as e:
            raise RpcTransportError(f"{method} {endpoint} failed: {e}") from e

        body = _decode(resp)
        if resp.status_code == 404:
            raise RpcNotFound(f"{endpoint} not found", status_code=404, body=body)
        if resp.status_code >= 400:
            log.warning("RPC %s %s -> %s: %s", method, endpoint, resp.status_code, str(body)[:200])
            raise RpcError(f"RPC Error {resp.status_code}", status_code=resp.status_code, body=body)
        return body

    async def balance(self, address: str) -> ConfirmedState:
        return ConfirmedState.from_result(await self.request("GET", f"/balance/{address}"))

    async def staging(self) -> list[PendingPoolEntry]:
        body = await self.request("GET", "/staging")
        staged = body.get("staged_transactions") if isinstance(body, dict) else None
        return [PendingPoolEntry.from_dict(tx) for tx in staged or []]

    async def address_history(self, address: str, limit: int = C.ADDRESS_HISTORY_LIMIT) -> list[TransactionRef]:
        body = await self.request("GET", f"/address/{address}?limit={limit}")
        recent = body.get("recent_transactions") if isinstance(body, dict) else None
        return [TransactionRef.from_dict(r) for r in recent or [] if r.get("hash")]

    async def transaction(self, tx_hash: str, epoch: int | None = None) -> ConfirmedTransactionRecord:
        body = await self.request("GET", f"/tx/{tx_hash}")
        parsed = body.get("parsed_tx") if isinstance(body, dict) else None
        if not parsed:
            raise RpcError(f"no parsed_tx for {tx_hash}", body=body)
        return ConfirmedTransactionRecord.from_parsed_tx(tx_hash, parsed, epoch)

    async def send_tx(self, envelope: SignedEnvelope, *, timeout: float | None = None) -> SubmitResult:
        """Submit a signed envelope.

        Rejections (including HTTP error statuses) come back as ``Rejected``;
        transport failures raise.
        """
        try:
            body = await self.request("POST", "/send-tx", envelope.to_payload(), timeout=timeout)
        except (RpcTimeout, RpcTransportError):
            raise
        except RpcError as e:
            return Rejected(reason=e.diagnostic)
        return normalize_submit_response(body)
