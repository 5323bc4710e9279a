import json

import httpx
import pytest

from octwallet.errors import RpcError, RpcNotFound, RpcTimeout, RpcTransportError
from octwallet.models import Accepted, Rejected, SignedEnvelope
from octwallet.rpc import RpcClient, normalize_submit_response
import octwallet.constants as C

from conftest import LEDGER_URL, addr


def _envelope(wallet, message=None) -> SignedEnvelope:
    return SignedEnvelope(
        sender=wallet.address, recipient=addr("B"), amount="1000000", nonce=1,
        fee_tier=C.FeeTier.LOW, timestamp=1.0, signature="sig", public_key=wallet.public_key, message=message,
    )


@pytest.mark.parametrize(
    "body, expected",
    [
        ({"status": "accepted", "tx_hash": "abc", "pool_info": {"n": 1}}, Accepted("abc", {"n": 1})),
        ({"status": "accepted", "tx_hash": "abc"}, Accepted("abc")),
        ("OK abc", Accepted("abc")),
        ("ok staged abc", Accepted("abc")),
        ({"status": "rejected", "error": "nonce too low"}, Rejected("nonce too low")),
        ("invalid signature", Rejected("invalid signature")),
        ({"status": "pending"}, Rejected('{"status": "pending"}')),
        ("ok", Rejected("ok")),
    ],
)
def test_normalize_submit_response(body, expected):
    assert normalize_submit_response(body) == expected


@pytest.mark.asyncio
async def test_typed_reads(rpc, ledger, wallet):
    ledger.balance, ledger.nonce = 12.5, 4
    ledger.staged = [
        {"from": wallet.address, "to": addr("B"), "amount": "2000000", "nonce": 5, "hash": "s1", "timestamp": 10},
        {"from": addr("C"), "to": wallet.address, "amount_raw": "3000000", "amount": "3", "nonce": 1, "hash": "s2",
         "timestamp": 11, "message": "hi"},
    ]
    ledger.history = [{"hash": "t1", "epoch": 7}, {"hash": "t2"}]
    ledger.details["t1"] = {"from": addr("C"), "to": wallet.address, "amount": "1.5", "nonce": 2, "timestamp": 5}

    state = await rpc.balance(wallet.address)
    assert (state.balance, state.nonce) == (12.5, 4)

    staged = await rpc.staging()
    assert [e.hash for e in staged] == ["s1", "s2"]
    assert staged[1].amount_raw == "3000000"
    assert staged[1].message == "hi"

    refs = await rpc.address_history(wallet.address, 20)
    assert [(r.hash, r.epoch) for r in refs] == [("t1", 7), ("t2", None)]

    rec = await rpc.transaction("t1", epoch=7)
    assert rec.sender == addr("C") and rec.amount_raw == "1.5" and rec.epoch == 7


@pytest.mark.asyncio
async def test_missing_nonce_kept_as_none(rpc, ledger, wallet):
    ledger.nonce = None
    assert (await rpc.balance(wallet.address)).nonce is None


@pytest.mark.asyncio
async def test_404_raises_not_found(rpc, wallet):
    with pytest.raises(RpcNotFound) as ei:
        await rpc.address_history(wallet.address)
    assert ei.value.status_code == 404


@pytest.mark.asyncio
async def test_error_status_keeps_upstream_body():
    client = RpcClient(LEDGER_URL, transport=httpx.MockTransport(lambda r: httpx.Response(503, text="overloaded")))
    with pytest.raises(RpcError) as ei:
        await client.request("GET", "/staging")
    assert ei.value.status_code == 503
    assert ei.value.diagnostic == "overloaded"


@pytest.mark.asyncio
async def test_transport_errors_mapped():
    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(RpcTimeout):
        await RpcClient(LEDGER_URL, transport=httpx.MockTransport(timeout)).request("GET", "/staging")
    with pytest.raises(RpcTransportError):
        await RpcClient(LEDGER_URL, transport=httpx.MockTransport(refused)).request("GET", "/staging")


@pytest.mark.asyncio
async def test_send_tx_posts_payload(rpc, ledger, wallet):
    res = await rpc.send_tx(_envelope(wallet, message="memo"))
    assert res == Accepted("hash1", {"total_pool_size": 1})
    sent = ledger.submitted[0]
    assert sent["to_"] == addr("B") and sent["ou"] == "1" and sent["message"] == "memo"


@pytest.mark.asyncio
async def test_send_tx_http_rejection_is_rejected(wallet):
    def handler(request):
        return httpx.Response(400, json={"error": "insufficient balance"})

    client = RpcClient(LEDGER_URL, transport=httpx.MockTransport(handler))
    assert await client.send_tx(_envelope(wallet)) == Rejected("insufficient balance")


@pytest.mark.asyncio
async def test_relay_mode_wraps_every_call(wallet):
    seen = []

    def handler(request):
        seen.append((request.method, str(request.url), json.loads(request.content)))
        return httpx.Response(200, json={"balance": 1, "nonce": 2})

    client = RpcClient(LEDGER_URL, relay_url="http://relay.test/api/proxy", transport=httpx.MockTransport(handler))
    await client.balance(wallet.address)
    await client.send_tx(_envelope(wallet))

    assert seen[0] == (
        "POST", "http://relay.test/api/proxy",
        {"method": "GET", "endpoint": f"/balance/{wallet.address}", "rpcUrl": LEDGER_URL, "payload": None},
    )
    assert seen[1][2]["method"] == "POST"
    assert seen[1][2]["endpoint"] == "/send-tx"
    assert seen[1][2]["payload"]["from"] == wallet.address
