import asyncio

import pytest

from octwallet.models import PendingPoolEntry
from octwallet.store import CacheStore, balance_key


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def _entry(tx_hash: str, nonce: int, sender: str = "me") -> PendingPoolEntry:
    return PendingPoolEntry(sender=sender, recipient="you", amount_raw="1", nonce=nonce, hash=tx_hash, timestamp=0.0)


class Counter:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        await asyncio.sleep(0.01)
        return self.calls


@pytest.mark.asyncio
async def test_read_caches_until_ttl():
    clock = FakeClock()
    store = CacheStore(clock=clock)
    fetch = Counter()

    assert await store.read("k", fetch, ttl=30) == 1
    clock.now += 29
    assert await store.read("k", fetch, ttl=30) == 1
    clock.now += 2
    assert await store.read("k", fetch, ttl=30) == 2


@pytest.mark.asyncio
async def test_invalidate_forces_refetch():
    store = CacheStore()
    fetch = Counter()
    await store.read("k", fetch, ttl=None)
    assert not store.is_stale("k")

    store.invalidate("k")
    assert store.is_stale("k")
    assert store.peek("k") == 1  # still readable while stale
    assert await store.read("k", fetch, ttl=None) == 2


@pytest.mark.asyncio
async def test_concurrent_cold_reads_share_one_fetch():
    store = CacheStore()
    fetch = Counter()
    results = await asyncio.gather(*(store.read("k", fetch, ttl=10) for _ in range(5)))
    assert results == [1] * 5
    assert fetch.calls == 1


@pytest.mark.asyncio
async def test_fetch_error_keeps_previous_value():
    store = CacheStore()
    store.write("k", "old")
    store.invalidate("k")

    async def boom():
        raise RuntimeError("down")

    with pytest.raises(RuntimeError):
        await store.read("k", boom, ttl=10)
    assert store.peek("k") == "old"


def test_write_is_last_writer_wins():
    store = CacheStore()
    store.write(balance_key("a"), 1)
    store.write(balance_key("a"), 2)
    assert store.peek(balance_key("a")) == 2
    assert store.peek(balance_key("b")) is None


def test_overlay_goes_in_front_newest_first():
    store = CacheStore()
    store.add_pending(_entry("l1", 5))
    store.add_pending(_entry("l2", 6))
    view = store.pending_view([_entry("s1", 4, sender="other")])
    assert [e.hash for e in view] == ["l2", "l1", "s1"]


def test_overlay_retires_once_pool_has_it():
    store = CacheStore()
    store.add_pending(_entry("h1", 5))
    store.add_pending(_entry("h2", 6))

    view = store.pending_view([_entry("h1", 5)])
    assert [e.hash for e in view] == ["h2", "h1"]
    assert [e.hash for e in store.overlay()] == ["h2"]


def test_empty_snapshot_keeps_overlay():
    store = CacheStore()
    store.add_pending(_entry("h1", 5))
    assert [e.hash for e in store.pending_view(None)] == ["h1"]
    assert [e.hash for e in store.pending_view([])] == ["h1"]


def test_prune_confirmed_only_drops_own_confirmed():
    store = CacheStore()
    store.add_pending(_entry("a", 3))
    store.add_pending(_entry("b", 4))
    store.add_pending(_entry("c", 4, sender="other"))
    store.prune_confirmed("me", 3)
    assert sorted(e.hash for e in store.overlay()) == ["b", "c"]
    store.prune_confirmed("me", None)
    assert len(store.overlay()) == 2


def test_snapshot_requested_later_retires_missing_entries():
    clock = FakeClock()
    store = CacheStore(clock=clock)
    store.add_pending(_entry("old", 5))
    clock.now += 1
    as_of = clock()
    clock.now += 1
    store.add_pending(_entry("new", 6))

    view = store.pending_view([_entry("s1", 4, sender="other")], as_of=as_of)

    assert [e.hash for e in view] == ["new", "s1"]
    assert [e.hash for e in store.overlay()] == ["new"]


@pytest.mark.asyncio
async def test_fetched_at_is_when_the_fetch_was_issued():
    clock = FakeClock()
    store = CacheStore(clock=clock)

    async def slow():
        clock.now += 5
        return []

    await store.read("k", slow, ttl=None)
    assert store.fetched_at("k") == 100.0
    assert store.fetched_at("missing") is None


def test_keys_and_evict():
    store = CacheStore()
    store.write("tx:a", 1)
    store.write("tx:b", 2)
    store.write("balance:me", 3)
    store.evict("tx:a")
    store.evict("tx:zzz")
    assert store.keys("tx:") == ["tx:b"]
    assert store.peek("tx:a") is None
