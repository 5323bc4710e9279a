from collections.abc import Iterable

from octwallet.models import ConfirmedState, PendingPoolEntry
from octwallet.wallet import Wallet


def effective_nonce(
    wallet: Wallet,
    confirmed_state: ConfirmedState | None,
    pending_pool: Iterable[PendingPoolEntry],
) -> int:
    """Highest nonce this wallet has used, confirmed or still in the pool.

    The next transaction goes out with ``effective_nonce(...) + 1``. Entries from
    other wallets are ignored. A missing confirmed nonce counts as 0.
    """
    confirmed = confirmed_state.nonce if confirmed_state is not None else None
    base = confirmed or 0

    own = [e.nonce for e in pending_pool if e.sender == wallet.address]
    if not own:
        return base
    return max(base, max(own))
