from octwallet.txn_factory.builder import (
    build,
    canonical_bytes,
    fee_tier,
    to_micro,
    verify_envelope,
)

__all__ = [
    "build",
    "canonical_bytes",
    "fee_tier",
    "to_micro",
    "verify_envelope",
]
