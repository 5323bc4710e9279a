import asyncio
import logging
from collections.abc import Iterable
from typing import Any

import octwallet.constants as C
from octwallet.batch import BatchScheduler, ProgressCallback
from octwallet.errors import RpcNotFound
from octwallet.history import fetch_details, merged_history
from octwallet.models import (
    BatchReport,
    ConfirmedState,
    ConfirmedTransactionRecord,
    PendingPoolEntry,
    ProcessedTransaction,
    SendResult,
    TransactionRef,
    TransferIntent,
)
from octwallet.nonce import effective_nonce
from octwallet.reconciler import OptimisticReconciler
from octwallet.rpc import RpcClient
from octwallet.store import STAGING_KEY, CacheStore, balance_key, history_key, tx_key
from octwallet.wallet import Wallet

log = logging.getLogger("octwallet.core")


class WalletEngine:
    def __init__(self, wallet: Wallet, rpc: RpcClient, *, store: CacheStore | None = None, config: dict | None = None):
        self.wallet = wallet
        self.rpc = rpc
        self.config = config or {}

        # Shared by every reader and writer below; inject one to share it further
        self.store: CacheStore = store or CacheStore()
        self.reconciler = OptimisticReconciler(self.store)

        submit = self.config.get("submit", {})
        self.scheduler = BatchScheduler(
            rpc,
            self.reconciler,
            chunk_size=int(submit.get("chunk_size", C.CHUNK_SIZE)),
            submit_timeout=float(submit.get("timeout", C.SUBMIT_TIMEOUT)),
        )

        refresh = self.config.get("refresh", {})
        self.balance_ttl = float(refresh.get("balance", C.BALANCE_REFRESH))
        self.staging_ttl = float(refresh.get("staging", C.STAGING_REFRESH))
        self.history_ttl = float(refresh.get("history", C.HISTORY_REFRESH))

        hist = self.config.get("history", {})
        self.address_limit = int(hist.get("address_limit", C.ADDRESS_HISTORY_LIMIT))
        self.feed_limit = int(hist.get("feed_limit", C.HISTORY_FEED_LIMIT))

        # Two overlapping passes from this engine would read the same base nonce
        self._send_lock = asyncio.Lock()

    @property
    def address(self) -> str:
        return self.wallet.address

    async def confirmed_state(self) -> ConfirmedState:
        state = await self.store.read(
            balance_key(self.address), lambda: self.rpc.balance(self.address), self.balance_ttl
        )
        self.store.prune_confirmed(self.address, state.nonce)
        return state

    async def pending_pool(self) -> list[PendingPoolEntry]:
        """Ledger pool snapshot with our just-submitted transactions in front."""
        snapshot = await self.store.read(STAGING_KEY, self.rpc.staging, self.staging_ttl)
        return self.store.pending_view(snapshot, as_of=self.store.fetched_at(STAGING_KEY))

    async def next_nonce(self) -> int:
        """Effective nonce: the last one in use. The next transaction takes this + 1."""
        state, pool = await asyncio.gather(self.confirmed_state(), self.pending_pool())
        return effective_nonce(self.wallet, state, pool)

    async def wallet_state(self) -> dict[str, Any]:
        state, pool = await asyncio.gather(self.confirmed_state(), self.pending_pool())
        own = [e for e in pool if e.sender == self.address]
        return {
            "address": self.address,
            "balance": state.balance,
            "nonce": effective_nonce(self.wallet, state, pool),
            "confirmed_nonce": state.nonce or 0,
            "pending": len(own),
        }

    async def send_many(self, intents: Iterable[TransferIntent], *, on_progress: ProgressCallback | None = None) -> BatchReport:
        intents = list(intents)
        async with self._send_lock:
            state, pool = await asyncio.gather(self.confirmed_state(), self.pending_pool())
            base = effective_nonce(self.wallet, state, pool)
            log.info("Sending %s transfers from nonce %s (balance %.6f)", len(intents), base + 1, state.balance)
            results = await self.scheduler.submit_all(
                self.wallet, intents, base, balance=state.balance, on_progress=on_progress
            )
        report = BatchReport(results=results)
        log.info("Sent %s/%s", report.succeeded, len(results))
        return report

    async def send(self, intent: TransferIntent, *, nonce: int | None = None) -> SendResult:
        """Send a single transfer, at ``nonce`` if given, else at the next free one."""
        if nonce is None:
            return (await self.send_many([intent])).results[0]
        state = await self.confirmed_state()
        results = await self.scheduler.submit_all(self.wallet, [intent], nonce - 1, balance=state.balance)
        return results[0]

    async def _address_refs(self) -> list[TransactionRef]:
        async def fetch() -> list[TransactionRef]:
            try:
                return await self.rpc.address_history(self.address, self.address_limit)
            except RpcNotFound:
                # No ledger history yet
                log.debug("No history for %s", self.address)
                return []

        return await self.store.read(history_key(self.address), fetch, self.history_ttl)

    async def _details(self, refs: list[TransactionRef]) -> dict[str, ConfirmedTransactionRecord]:
        live = {tx_key(ref.hash) for ref in refs}
        # Only details for the current address refs stay cached
        for key in self.store.keys(tx_key("")):
            if key not in live:
                self.store.evict(key)

        details: dict[str, ConfirmedTransactionRecord] = {}
        missing = []
        for ref in refs:
            cached = self.store.peek(tx_key(ref.hash))
            if cached is not None:
                details[ref.hash] = cached
            else:
                missing.append(ref)
        if missing:
            fetched = await fetch_details(self.rpc, missing)
            for tx_hash, rec in fetched.items():
                # Confirmed transactions never change
                self.store.write(tx_key(tx_hash), rec)
            details.update(fetched)
        return details

    async def history(self) -> list[ProcessedTransaction]:
        refs, pool = await asyncio.gather(self._address_refs(), self.pending_pool())
        details = await self._details(refs)
        return merged_history(self.wallet, refs, details, pool, limit=self.feed_limit)

    async def refresh(self) -> None:
        """Mark the periodic keys stale and read them back."""
        for key in (balance_key(self.address), STAGING_KEY, history_key(self.address)):
            self.store.invalidate(key)
        await asyncio.gather(self.confirmed_state(), self.pending_pool(), self._address_refs())


async def periodic_refresh(engine: WalletEngine, stop: asyncio.Event, interval: float = C.BALANCE_REFRESH):
    while not stop.is_set():
        try:
            await engine.refresh()
        except asyncio.CancelledError:
            raise
        except Exception:
            log.exception("[refresh] failed; continuing")
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval)
        except TimeoutError:
            pass
