import asyncio
import logging
from collections.abc import Iterable, Mapping, Sequence

import octwallet.constants as C
from octwallet.models import (
    ConfirmedTransactionRecord,
    PendingPoolEntry,
    ProcessedTransaction,
    TransactionRef,
)
from octwallet.rpc import RpcClient
from octwallet.wallet import Wallet

log = logging.getLogger("octwallet.history")


def parse_amount(raw: str | int | float | None) -> float:
    """Decimal strings are whole units, integer strings are micro-units.

    ``"10.5"`` and ``"10500000"`` both give 10.5; anything else reads as 0.
    """
    s = str(raw or "0").strip()
    try:
        if "." in s:
            return float(s)
        return int(s) / C.MICRO
    except ValueError:
        log.debug("Unparseable amount %r, counting it as 0", raw)
        return 0.0


def _processed(wallet: Wallet, tx_hash: str, sender: str, recipient: str, amount_raw: str,
               nonce: int, timestamp: float, message: str | None, epoch: int | None) -> ProcessedTransaction:
    incoming = recipient == wallet.address
    return ProcessedTransaction(
        hash=tx_hash,
        amount=parse_amount(amount_raw),
        counterparty=sender if incoming else recipient,
        direction=C.Direction.IN if incoming else C.Direction.OUT,
        nonce=nonce,
        timestamp=timestamp,
        ok=True,
        epoch=epoch,
        message=message or None,
    )


def merged_history(
    wallet: Wallet,
    confirmed_refs: Sequence[TransactionRef],
    confirmed_details_by_hash: Mapping[str, ConfirmedTransactionRecord],
    pending_pool: Iterable[PendingPoolEntry],
    limit: int = C.HISTORY_FEED_LIMIT,
) -> list[ProcessedTransaction]:
    """Confirmed records plus this wallet's pending entries, newest first.

    Refs without a fetched detail are skipped. A hash shows up at most once and
    the confirmed record wins over a pending one. Pending entries never carry an
    epoch.
    """
    out: list[ProcessedTransaction] = []
    seen: set[str] = set()

    for ref in confirmed_refs:
        tx = confirmed_details_by_hash.get(ref.hash)
        if tx is None or ref.hash in seen:
            continue
        epoch = ref.epoch if ref.epoch is not None else tx.epoch
        out.append(_processed(wallet, ref.hash, tx.sender, tx.recipient, tx.amount_raw,
                              tx.nonce, tx.timestamp, tx.message, epoch))
        seen.add(ref.hash)

    for entry in pending_pool:
        if entry.sender != wallet.address or not entry.hash or entry.hash in seen:
            continue
        out.append(_processed(wallet, entry.hash, entry.sender, entry.recipient, entry.amount_raw,
                              entry.nonce, entry.timestamp, entry.message, None))
        seen.add(entry.hash)

    out.sort(key=lambda p: p.timestamp, reverse=True)
    return out[:limit]


async def fetch_details(rpc: RpcClient, refs: Sequence[TransactionRef]) -> dict[str, ConfirmedTransactionRecord]:
    """Fetch every ref's detail concurrently; failed lookups are left out."""
    results = await asyncio.gather(
        *(rpc.transaction(ref.hash, ref.epoch) for ref in refs), return_exceptions=True
    )
    details: dict[str, ConfirmedTransactionRecord] = {}
    for ref, res in zip(refs, results):
        if isinstance(res, BaseException):
            log.debug("Detail fetch failed for %s: %s", ref.hash, res)
            continue
        details[ref.hash] = res
    return details
