import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any

import httpx
from fastapi import APIRouter, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel, ConfigDict, Field

import octwallet.constants as C
from octwallet.config import cfg
from octwallet.errors import RpcError, ValidationError
from octwallet.intents import fee_for_amount, parse_batch_text, total_amount, total_fee
from octwallet.logging_config import setup_logging
from octwallet.models import Progress, TransferIntent
from octwallet.rpc import RpcClient
from octwallet.wallet import Wallet
from octwallet.wallet_core import WalletEngine, periodic_refresh

setup_logging()
log = logging.getLogger("octwallet.app")


@asynccontextmanager
async def lifespan(app: FastAPI):
    stop = asyncio.Event()
    rpc_cfg = cfg["rpc"]
    rpc = RpcClient(
        rpc_cfg["url"],
        relay_url=rpc_cfg.get("relay_url"),
        timeout=float(rpc_cfg.get("timeout", C.RPC_TIMEOUT)),
    )

    private_key = cfg["wallet"].get("private_key")
    if private_key:
        app.state.engine = WalletEngine(Wallet.from_private_key(private_key), rpc, config=cfg)
        log.info("Wallet %s loaded, ledger at %s", app.state.engine.address, rpc.base_url)
    else:
        app.state.engine = None
        log.warning("No private key configured; only the relay is available")
    app.state.stop = stop

    async with asyncio.TaskGroup() as tg:
        if app.state.engine is not None:
            interval = float(cfg.get("refresh", {}).get("balance", C.BALANCE_REFRESH))
            tg.create_task(periodic_refresh(app.state.engine, stop, interval), name="refresh")
        try:
            yield
        finally:
            log.info("Shutting down...")
            stop.set()

    await rpc.aclose()
    log.info("Shutdown complete")


app = FastAPI(
    title="Octra Wallet",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Wallet", "description": "Balance, nonce and history"},
        {"name": "Send", "description": "Sign and submit transfers"},
        {"name": "Relay", "description": "Transparent RPC relay"},
    ],
)

r_wallet = APIRouter(prefix="/wallet", tags=["Wallet"])
r_send = APIRouter(prefix="/send", tags=["Send"])
r_relay = APIRouter(prefix="/api", tags=["Relay"])


class RecipientReq(BaseModel):
    address: str
    amount: float
    message: str | None = None


class SendReq(BaseModel):
    recipients: list[RecipientReq]


class BatchTextReq(BaseModel):
    text: str


class ProxyReq(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    method: str = "GET"
    endpoint: str | None = None
    rpc_url: str | None = Field(default=None, alias="rpcUrl")
    payload: Any = None


def _engine(request: Request) -> WalletEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Wallet not configured")
    return engine


async def _send(engine: WalletEngine, intents: list[TransferIntent]) -> dict:
    if not intents:
        raise HTTPException(status_code=422, detail="No recipients")

    def on_progress(p: Progress) -> None:
        log.info("Progress %s/%s", p.sent, p.total)

    report = await engine.send_many(intents, on_progress=on_progress)
    return report.to_dict()


@app.get("/health")
def health():
    return {"status": "ok"}


@r_wallet.get("")
async def wallet_state(request: Request):
    engine = _engine(request)
    try:
        return await engine.wallet_state()
    except RpcError as e:
        raise HTTPException(status_code=502, detail=f"Failed to get wallet state: {e.diagnostic}")


@r_wallet.get("/history")
async def wallet_history(request: Request):
    engine = _engine(request)
    try:
        history = await engine.history()
    except RpcError as e:
        raise HTTPException(status_code=502, detail=f"Failed to get history: {e.diagnostic}")
    return [p.to_dict() for p in history]


@r_send.post("")
async def send(req: SendReq, request: Request):
    """Send to every recipient; results come back in request order."""
    engine = _engine(request)
    intents = [TransferIntent(recipient=r.address, amount=r.amount, message=r.message) for r in req.recipients]
    return await _send(engine, intents)


@r_send.post("/batch")
async def send_batch_text(req: BatchTextReq, request: Request):
    """Send from ``address amount`` lines."""
    engine = _engine(request)
    try:
        intents = parse_batch_text(req.text)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return await _send(engine, intents)


@app.get("/fees", tags=["Send"])
def fees(amount: list[float] = Query(default=[])):
    intents = [TransferIntent(recipient="", amount=a) for a in amount]
    return {
        "fees": [fee_for_amount(a) for a in amount],
        "total_amount": total_amount(intents),
        "total_fee": total_fee(intents),
    }


@r_relay.post("/proxy")
async def proxy(req: ProxyReq, request: Request):
    """Forward ``method`` + ``endpoint`` + ``payload`` to ``rpcUrl`` unchanged.

    Upstream errors come back with the upstream status and body.
    """
    if not req.rpc_url or not req.endpoint:
        return JSONResponse({"error": "Missing rpcUrl or endpoint"}, status_code=400)

    method = req.method.upper()
    url = f"{req.rpc_url}{req.endpoint}"
    log.debug("Proxy %s %s", method, url)
    transport = getattr(request.app.state, "relay_transport", None)
    try:
        async with httpx.AsyncClient(timeout=C.RPC_TIMEOUT, transport=transport) as http:
            resp = await http.request(
                method,
                url,
                json=req.payload if method == "POST" else None,
                headers={"Accept": "application/json"},
            )
    except Exception as e:
        log.error("Proxy error %s %s: %s", method, url, e)
        return JSONResponse(
            {"error": "An unexpected error occurred in the proxy.", "details": str(e)}, status_code=500
        )

    if resp.is_error:
        try:
            body = resp.json()
        except ValueError:
            body = {"error": resp.text or "RPC Error"}
        log.warning("Proxy upstream %s: %s", resp.status_code, str(body)[:200])
        return JSONResponse(body, status_code=resp.status_code)

    try:
        return JSONResponse(resp.json())
    except ValueError:
        # Legacy nodes answer submissions in plain text
        return PlainTextResponse(resp.text)


app.include_router(r_wallet)
app.include_router(r_send)
app.include_router(r_relay)
