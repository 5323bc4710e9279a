"""Key-addressed read cache shared by the engine's readers and writers.

Values are refreshed when their TTL lapses or after ``invalidate``. An entry's
``fetched_at`` is when its fetch was issued, not when it returned. Writes are
last-writer-wins per key; concurrent readers of a cold key share one fetch.

Just-submitted transactions are not written into the cached staging snapshot.
They go into a local pending overlay that ``pending_view`` merges with whatever
authoritative snapshot the ledger last returned. An overlay entry lives until
the first snapshot requested after it was added; that snapshot either carries
it or the ledger has dropped it.
"""

import asyncio
import logging
import time
from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from octwallet.models import PendingPoolEntry

log = logging.getLogger("octwallet.store")

STAGING_KEY = "staging"


def balance_key(address: str) -> str:
    return f"balance:{address}"


def history_key(address: str) -> str:
    return f"history:{address}"


def tx_key(tx_hash: str) -> str:
    return f"tx:{tx_hash}"


@dataclass
class CacheEntry:
    value: Any
    fetched_at: float
    stale: bool = False


@dataclass
class _KeyRecord:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    entry: CacheEntry | None = None


class CacheStore:
    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._keys: dict[str, _KeyRecord] = {}
        # (added_at, entry), newest first
        self._overlay: deque[tuple[float, PendingPoolEntry]] = deque()

    def _record_for(self, key: str) -> _KeyRecord:
        rec = self._keys.get(key)
        if rec is None:
            rec = _KeyRecord()
            self._keys[key] = rec
        return rec

    def _fresh(self, entry: CacheEntry | None, ttl: float | None) -> bool:
        if entry is None or entry.stale:
            return False
        if ttl is None:
            return True
        return self._clock() - entry.fetched_at < ttl

    async def read(self, key: str, fetcher: Callable[[], Awaitable[Any]], ttl: float | None) -> Any:
        """Return the cached value for ``key``, fetching it when missing, expired or stale.

        ``ttl=None`` caches forever (until invalidated). Fetch errors propagate and
        leave the previous entry in place.
        """
        rec = self._record_for(key)
        if self._fresh(rec.entry, ttl):
            return rec.entry.value

        async with rec.lock:
            # Someone else may have refreshed while we waited
            if self._fresh(rec.entry, ttl):
                return rec.entry.value
            log.debug("Fetching %s", key)
            issued = self._clock()
            value = await fetcher()
            rec.entry = CacheEntry(value=value, fetched_at=issued)
            return value

    def peek(self, key: str) -> Any | None:
        rec = self._keys.get(key)
        return rec.entry.value if rec and rec.entry else None

    def write(self, key: str, value: Any) -> None:
        self._record_for(key).entry = CacheEntry(value=value, fetched_at=self._clock())

    def invalidate(self, key: str) -> None:
        rec = self._keys.get(key)
        if rec and rec.entry:
            rec.entry.stale = True
            log.debug("Invalidated %s", key)

    def is_stale(self, key: str) -> bool:
        rec = self._keys.get(key)
        return rec is None or rec.entry is None or rec.entry.stale

    def fetched_at(self, key: str) -> float | None:
        rec = self._keys.get(key)
        return rec.entry.fetched_at if rec and rec.entry else None

    def keys(self, prefix: str = "") -> list[str]:
        return [k for k in self._keys if k.startswith(prefix)]

    def evict(self, key: str) -> None:
        self._keys.pop(key, None)

    # Pending overlay

    def add_pending(self, entry: PendingPoolEntry) -> None:
        self._overlay.appendleft((self._clock(), entry))

    def overlay(self) -> list[PendingPoolEntry]:
        return [e for _, e in self._overlay]

    def pending_view(self, snapshot: Iterable[PendingPoolEntry] | None, *, as_of: float | None = None) -> list[PendingPoolEntry]:
        """Local overlay first, then the authoritative snapshot, one entry per hash.

        Overlay entries the snapshot already carries are retired. With ``as_of``
        (when the snapshot was requested), entries added before it are retired
        too: the ledger has either pooled or dropped them by then.
        """
        snapshot = list(snapshot or [])
        seen = {e.hash for e in snapshot if e.hash}
        kept = deque(
            (added, e) for added, e in self._overlay
            if e.hash not in seen and (as_of is None or added >= as_of)
        )
        if len(kept) != len(self._overlay):
            log.debug("Retired %s overlay entries", len(self._overlay) - len(kept))
            self._overlay = kept
        return [*self.overlay(), *snapshot]

    def prune_confirmed(self, address: str, confirmed_nonce: int | None) -> None:
        """Drop overlay entries from ``address`` the ledger has confirmed."""
        if confirmed_nonce is None:
            return
        self._overlay = deque(
            (added, e) for added, e in self._overlay
            if not (e.sender == address and e.nonce <= confirmed_nonce)
        )
