"""Ledger and wallet data structures.

Wire payloads use ``from``/``to`` (``to_`` on submission), which collide with
Python keywords, so the dataclasses name them ``sender``/``recipient`` and
translate in ``from_dict``/``to_dict``.
"""

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, ClassVar

import octwallet.constants as C


def _amount_raw(d: dict) -> str:
    raw = d.get("amount_raw") or d.get("amount")
    return str(raw) if raw is not None else "0"


@dataclass(slots=True)
class ConfirmedState:
    """Balance and confirmed nonce as last reported by the ledger."""

    balance: float
    nonce: int | None
    fetched_at: float = field(default_factory=time.time)

    @classmethod
    def from_result(cls, result: dict) -> "ConfirmedState":
        nonce = result.get("nonce")
        return cls(
            balance=float(result.get("balance") or 0),
            nonce=int(nonce) if nonce is not None else None,
        )


@dataclass(slots=True)
class PendingPoolEntry:
    sender: str
    recipient: str
    amount_raw: str
    nonce: int
    hash: str
    timestamp: float
    message: str | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "PendingPoolEntry":
        return cls(
            sender=d.get("from", ""),
            recipient=d.get("to", ""),
            amount_raw=_amount_raw(d),
            nonce=int(d.get("nonce") or 0),
            hash=d.get("hash", ""),
            timestamp=float(d.get("timestamp") or 0),
            message=d.get("message") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        d = {
            "from": self.sender,
            "to": self.recipient,
            "amount": self.amount_raw,
            "nonce": self.nonce,
            "hash": self.hash,
            "timestamp": self.timestamp,
        }
        if self.message:
            d["message"] = self.message
        return d


@dataclass(frozen=True, slots=True)
class TransactionRef:
    hash: str
    epoch: int | None = None

    @classmethod
    def from_dict(cls, d: dict) -> "TransactionRef":
        return cls(hash=d["hash"], epoch=d.get("epoch"))


@dataclass(frozen=True, slots=True)
class ConfirmedTransactionRecord:
    hash: str
    sender: str
    recipient: str
    amount_raw: str
    nonce: int
    timestamp: float
    message: str | None = None
    epoch: int | None = None

    @classmethod
    def from_parsed_tx(cls, tx_hash: str, parsed: dict, epoch: int | None = None) -> "ConfirmedTransactionRecord":
        return cls(
            hash=tx_hash,
            sender=parsed.get("from", ""),
            recipient=parsed.get("to", ""),
            amount_raw=_amount_raw(parsed),
            nonce=int(parsed.get("nonce") or 0),
            timestamp=float(parsed.get("timestamp") or 0),
            message=parsed.get("message") or None,
            epoch=epoch,
        )


@dataclass(frozen=True, slots=True)
class TransferIntent:
    recipient: str
    amount: float
    message: str | None = None


@dataclass(frozen=True, slots=True)
class SignedEnvelope:
    sender: str
    recipient: str
    amount: str  # micro-units
    nonce: int
    fee_tier: C.FeeTier
    timestamp: float
    signature: str
    public_key: str
    message: str | None = None

    def signable(self) -> dict[str, Any]:
        # Key order is part of the signature
        return {
            "from": self.sender,
            "to_": self.recipient,
            "amount": self.amount,
            "nonce": self.nonce,
            "ou": str(self.fee_tier),
            "timestamp": self.timestamp,
        }

    def to_payload(self) -> dict[str, Any]:
        payload = self.signable()
        payload["signature"] = self.signature
        payload["public_key"] = self.public_key
        if self.message:
            payload["message"] = self.message
        return payload


@dataclass(slots=True)
class ProcessedTransaction:
    hash: str
    amount: float
    counterparty: str
    direction: C.Direction
    nonce: int
    timestamp: float
    ok: bool = True
    epoch: int | None = None
    message: str | None = None

    @property
    def time(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "time": self.time.isoformat(),
            "hash": self.hash,
            "amount": self.amount,
            "to": self.counterparty,
            "type": str(self.direction),
            "nonce": self.nonce,
            "epoch": self.epoch,
            "ok": self.ok,
            "message": self.message,
        }


# Submission response, normalized at the RPC boundary
@dataclass(frozen=True, slots=True)
class Accepted:
    hash: str
    pool_info: dict | None = None


@dataclass(frozen=True, slots=True)
class Rejected:
    reason: str


SubmitResult = Accepted | Rejected


# Per-intent outcome of a scheduling pass
@dataclass(frozen=True, slots=True)
class Success:
    ok: ClassVar[bool] = True
    hash: str
    response_time: float
    pool_info: dict | None = None


@dataclass(frozen=True, slots=True)
class Failure:
    ok: ClassVar[bool] = False
    reason: str
    response_time: float | None = None


Outcome = Success | Failure


@dataclass(frozen=True, slots=True)
class SendResult:
    intent: TransferIntent
    nonce: int | None
    outcome: Outcome

    @property
    def ok(self) -> bool:
        return self.outcome.ok

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "recipient": self.intent.recipient,
            "amount": self.intent.amount,
            "nonce": self.nonce,
            "success": self.ok,
        }
        match self.outcome:
            case Success(hash=h, response_time=rt, pool_info=pi):
                d.update(tx_hash=h, response_time=rt, pool_info=pi)
            case Failure(reason=r, response_time=rt):
                d.update(error=r, response_time=rt)
        if self.intent.message:
            d["message"] = self.intent.message
        return d


@dataclass(frozen=True, slots=True)
class Progress:
    sent: int
    total: int


@dataclass(slots=True)
class BatchReport:
    results: list[SendResult]

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return len(self.results) - self.succeeded

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": len(self.results),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "results": [r.to_dict() for r in self.results],
        }
