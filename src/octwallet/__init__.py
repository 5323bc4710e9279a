from octwallet.models import (
    Accepted,
    BatchReport,
    ConfirmedState,
    ConfirmedTransactionRecord,
    Failure,
    PendingPoolEntry,
    ProcessedTransaction,
    Progress,
    Rejected,
    SendResult,
    SignedEnvelope,
    Success,
    TransactionRef,
    TransferIntent,
)
from octwallet.nonce import effective_nonce
from octwallet.wallet import Wallet

__all__ = [
    "Accepted",
    "BatchReport",
    "ConfirmedState",
    "ConfirmedTransactionRecord",
    "Failure",
    "PendingPoolEntry",
    "ProcessedTransaction",
    "Progress",
    "Rejected",
    "SendResult",
    "SignedEnvelope",
    "Success",
    "TransactionRef",
    "TransferIntent",
    "Wallet",
    "effective_nonce",
]
