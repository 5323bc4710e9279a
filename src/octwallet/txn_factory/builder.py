import base64
import json
import logging
import random
import time
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal, ROUND_FLOOR

import nacl.exceptions
import nacl.signing

import octwallet.constants as C
from octwallet.models import SignedEnvelope, TransferIntent
from octwallet.wallet import Wallet

log = logging.getLogger("octwallet.txn")

TimestampSource = Callable[[], float]


def to_micro(amount: float | str | Decimal) -> str:
    """Whole units -> integer micro-units string, floored.

    Goes through Decimal(str(...)) so 0.57 becomes 570000 rather than the
    569999 a float multiply produces.
    """
    micro = Decimal(str(amount)) * C.MICRO
    return str(int(micro.to_integral_value(rounding=ROUND_FLOOR)))


def fee_tier(amount: float) -> C.FeeTier:
    return C.FeeTier.LOW if amount < C.FEE_TIER_THRESHOLD else C.FeeTier.HIGH


def jittered_timestamp(timestamp_source: TimestampSource = time.time, rng: Callable[[], float] = random.random) -> float:
    # The jitter only keeps back-to-back transactions from sharing a timestamp
    return timestamp_source() + rng() * C.TIMESTAMP_JITTER


def canonical_bytes(signable: dict) -> bytes:
    return json.dumps(signable, separators=(",", ":")).encode()


def build(
    wallet: Wallet,
    intent: TransferIntent,
    nonce: int,
    timestamp_source: TimestampSource = time.time,
    *,
    rng: Callable[[], float] = random.random,
) -> SignedEnvelope:
    """Build and sign the transfer envelope for ``intent`` at ``nonce``.

    The signature covers from, to_, amount, nonce, ou and timestamp, serialized as
    compact JSON in that order. ``message`` rides along unsigned.

    Raises:
        KeyError: the wallet has no usable private key.
    """
    sk = wallet.signing_key()

    unsigned = SignedEnvelope(
        sender=wallet.address,
        recipient=intent.recipient,
        amount=to_micro(intent.amount),
        nonce=int(nonce),
        fee_tier=fee_tier(intent.amount),
        timestamp=jittered_timestamp(timestamp_source, rng),
        signature="",
        public_key=wallet.public_key,
        message=intent.message or None,
    )
    blob = canonical_bytes(unsigned.signable())
    signature = base64.b64encode(sk.sign(blob).signature).decode()
    log.debug("Signed nonce=%s to=%s amount=%s", unsigned.nonce, unsigned.recipient, unsigned.amount)

    return replace(unsigned, signature=signature)


def verify_envelope(envelope: SignedEnvelope) -> bool:
    try:
        vk = nacl.signing.VerifyKey(base64.b64decode(envelope.public_key))
        vk.verify(canonical_bytes(envelope.signable()), base64.b64decode(envelope.signature))
    except (nacl.exceptions.BadSignatureError, ValueError):
        return False
    return True

