import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import TypeVar

import octwallet.constants as C
from octwallet.errors import RpcError, RpcTimeout
from octwallet.intents import validate_batch
from octwallet.models import (
    Accepted,
    Failure,
    Outcome,
    Progress,
    Rejected,
    SendResult,
    Success,
    TransferIntent,
)
from octwallet.reconciler import OptimisticReconciler
from octwallet.rpc import RpcClient
from octwallet.txn_factory.builder import build
from octwallet.wallet import Wallet

log = logging.getLogger("octwallet.batch")

T = TypeVar("T")

ProgressCallback = Callable[[Progress], Awaitable[None] | None]


def chunked(items: Sequence[T], size: int) -> list[list[T]]:
    if size < 1:
        raise ValueError("chunk size must be positive")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


@dataclass(slots=True)
class Slot:
    intent: TransferIntent
    nonce: int | None = None
    failure: Failure | None = None


def assign_nonces(intents: Iterable[TransferIntent], base_nonce: int, *, balance: float | None = None) -> list[Slot]:
    """Validate the whole pass, then hand out nonces, all before anything is sent.

    The i-th intent gets ``base_nonce + 1 + i``. If any intent is invalid, or the
    total exceeds ``balance``, nothing is assigned and every intent fails with
    that reason, so a pass never leaves a gap in the sequence.
    """
    intents = list(intents)
    reason = validate_batch(intents, balance)
    if reason is not None:
        log.warning("Pass of %s rejected before sending: %s", len(intents), reason)
        return [Slot(intent=intent, failure=Failure(reason=reason)) for intent in intents]
    return [Slot(intent=intent, nonce=base_nonce + 1 + i) for i, intent in enumerate(intents)]


async def _report(on_progress: ProgressCallback | None, progress: Progress) -> None:
    if on_progress is None:
        return
    try:
        res = on_progress(progress)
        if inspect.isawaitable(res):
            await res
    except Exception:
        log.exception("Progress callback failed at %s/%s; continuing", progress.sent, progress.total)


class BatchScheduler:
    def __init__(
        self,
        rpc: RpcClient,
        reconciler: OptimisticReconciler | None = None,
        *,
        chunk_size: int = C.CHUNK_SIZE,
        submit_timeout: float = C.SUBMIT_TIMEOUT,
        timestamp_source: Callable[[], float] = time.time,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.rpc = rpc
        self.reconciler = reconciler
        self.chunk_size = chunk_size
        self.submit_timeout = submit_timeout
        self._timestamp_source = timestamp_source
        self._clock = clock

    async def submit_all(
        self,
        wallet: Wallet,
        intents: Iterable[TransferIntent],
        base_nonce: int,
        *,
        balance: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> list[SendResult]:
        """Sign and submit ``intents`` chunk by chunk, one outcome per intent, in order.

        Members of a chunk go out concurrently and the next chunk starts only once
        every member has an outcome. A failing member never cancels its siblings.
        """
        # Nonces are fixed here, before the first await
        slots = assign_nonces(intents, base_nonce, balance=balance)
        total = len(slots)
        sent = 0
        results: list[SendResult] = []

        for n, chunk in enumerate(chunked(slots, self.chunk_size), start=1):
            log.info("Chunk %s: submitting %s txns (%s/%s total)", n, len(chunk), sent + len(chunk), total)
            async with asyncio.TaskGroup() as tg:
                tasks = [tg.create_task(self._run(wallet, s)) for s in chunk]

            results.extend(SendResult(intent=s.intent, nonce=s.nonce, outcome=t.result()) for s, t in zip(chunk, tasks))
            sent += len(chunk)
            await _report(on_progress, Progress(sent=sent, total=total))

        ok = sum(1 for r in results if r.ok)
        log.info("Batch complete: %s/%s accepted", ok, total)
        return results

    async def _run(self, wallet: Wallet, slot: Slot) -> Outcome:
        if slot.failure is not None:
            return slot.failure
        return await self.submit_one(wallet, slot.intent, slot.nonce)

    async def submit_one(self, wallet: Wallet, intent: TransferIntent, nonce: int) -> Outcome:
        """Build, sign and submit one intent. Never raises."""
        t0 = self._clock()
        try:
            envelope = build(wallet, intent, nonce, self._timestamp_source)
            res = await asyncio.wait_for(
                self.rpc.send_tx(envelope, timeout=self.submit_timeout), timeout=self.submit_timeout
            )
        except KeyError as e:
            log.error("Cannot sign nonce=%s: %s", nonce, e)
            return Failure(reason=f"{C.FailureReason.NO_KEYPAIR}: {e.args[0] if e.args else e}")
        except (TimeoutError, RpcTimeout):
            log.error("timeout nonce=%s to=%s", nonce, intent.recipient)
            return Failure(reason=str(C.FailureReason.TIMEOUT), response_time=self._clock() - t0)
        except RpcError as e:
            log.error("submit error nonce=%s: %s", nonce, e)
            return Failure(reason=e.diagnostic, response_time=self._clock() - t0)
        except Exception as e:
            log.error("submit error nonce=%s: %s", nonce, e)
            return Failure(reason=str(e) or type(e).__name__, response_time=self._clock() - t0)

        elapsed = self._clock() - t0
        match res:
            case Accepted(hash=tx_hash, pool_info=pool_info):
                log.debug("accepted nonce=%s hash=%s (%.2fs)", nonce, tx_hash, elapsed)
                if self.reconciler is not None:
                    self.reconciler.on_success(wallet, intent, nonce, tx_hash)
                return Success(hash=tx_hash, response_time=elapsed, pool_info=pool_info)
            case Rejected(reason=reason):
                log.warning("REJECTED nonce=%s to=%s: %s", nonce, intent.recipient, reason)
                return Failure(reason=reason, response_time=elapsed)
