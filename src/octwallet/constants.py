import re
from typing import Final
from enum import StrEnum

# Amounts travel as integer micro-units
MICRO: Final = 1_000_000

ADDRESS_PREFIX: Final = "oct"
ADDRESS_RE: Final = re.compile(r"^oct[1-9A-HJ-NP-Za-km-z]{44}$")


class FeeTier(StrEnum):
    LOW  = "1"
    HIGH = "3"


class Direction(StrEnum):
    IN  = "in"
    OUT = "out"


class FailureReason(StrEnum):
    TIMEOUT              = "timeout"
    INVALID_ADDRESS      = "invalid address"
    INVALID_AMOUNT       = "invalid amount"
    INSUFFICIENT_BALANCE = "insufficient balance"
    NO_KEYPAIR           = "wallet has no usable keypair"


# Whole units at or above which the high fee tier applies
FEE_TIER_THRESHOLD: Final = 1000
FEE_BY_TIER: Final = {FeeTier.LOW: 0.001, FeeTier.HIGH: 0.003}

# Signature timestamps get up to this much random jitter (seconds)
TIMESTAMP_JITTER: Final = 0.01

CHUNK_SIZE = 5
SUBMIT_TIMEOUT = 10.0
RPC_TIMEOUT = 10.0

BALANCE_REFRESH = 30.0
STAGING_REFRESH = 30.0
HISTORY_REFRESH = 60.0

ADDRESS_HISTORY_LIMIT = 20
HISTORY_FEED_LIMIT = 50

__all__ = [
    "ADDRESS_HISTORY_LIMIT",
    "ADDRESS_PREFIX",
    "ADDRESS_RE",
    "BALANCE_REFRESH",
    "CHUNK_SIZE",
    "FEE_BY_TIER",
    "FEE_TIER_THRESHOLD",
    "HISTORY_FEED_LIMIT",
    "HISTORY_REFRESH",
    "MICRO",
    "RPC_TIMEOUT",
    "STAGING_REFRESH",
    "SUBMIT_TIMEOUT",
    "TIMESTAMP_JITTER",

    ######
    "Direction",
    "FailureReason",
    "FeeTier",
]
