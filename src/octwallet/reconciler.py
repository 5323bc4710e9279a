import logging
import time
from collections.abc import Callable

from octwallet.models import PendingPoolEntry, TransferIntent
from octwallet.store import CacheStore, balance_key
from octwallet.txn_factory.builder import to_micro
from octwallet.wallet import Wallet

log = logging.getLogger("octwallet.reconciler")


class OptimisticReconciler:
    """Makes an accepted submission visible locally before the ledger's pool shows it."""

    def __init__(self, store: CacheStore, *, clock: Callable[[], float] = time.time) -> None:
        self.store = store
        self._clock = clock

    def on_success(self, wallet: Wallet, intent: TransferIntent, assigned_nonce: int, tx_hash: str) -> None:
        entry = PendingPoolEntry(
            sender=wallet.address,
            recipient=intent.recipient,
            amount_raw=to_micro(intent.amount),
            nonce=assigned_nonce,
            hash=tx_hash,
            timestamp=self._clock(),
            message=intent.message or None,
        )
        self.store.add_pending(entry)
        # Balance and nonce refetch on the next read; nobody waits for it here
        self.store.invalidate(balance_key(wallet.address))
        log.debug("Staged locally nonce=%s hash=%s", assigned_nonce, tx_hash)
