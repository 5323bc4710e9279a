import math
from collections.abc import Iterable

import octwallet.constants as C
from octwallet.errors import ValidationError
from octwallet.models import TransferIntent
from octwallet.txn_factory.builder import fee_tier
from octwallet.wallet import is_valid_address


def parse_batch_text(text: str) -> list[TransferIntent]:
    """Parse ``address amount`` lines into intents.

    Blank lines and lines with fewer than two columns are skipped; extra columns
    are ignored.
    """
    intents = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        parts = line.split()
        if len(parts) < 2:
            continue
        address, amount = parts[0], parts[1]
        try:
            value = float(amount)
        except ValueError:
            raise ValidationError(f"line {lineno}: amount {amount!r} is not a number") from None
        intents.append(TransferIntent(recipient=address, amount=value))
    return intents


def validate_intent(intent: TransferIntent) -> str | None:
    """Return why ``intent`` can't be sent, or None if it looks fine."""
    if not is_valid_address(intent.recipient):
        return f"{C.FailureReason.INVALID_ADDRESS}: {intent.recipient or 'empty'}"
    if not math.isfinite(intent.amount) or intent.amount <= 0:
        return f"{C.FailureReason.INVALID_AMOUNT} for address {intent.recipient}"
    return None


def validate_batch(intents: Iterable[TransferIntent], balance: float | None = None) -> str | None:
    """First reason the whole pass can't be sent, or None.

    Checks every intent, then the total against ``balance`` when given.
    """
    intents = list(intents)
    for intent in intents:
        reason = validate_intent(intent)
        if reason is not None:
            return reason
    total = total_amount(intents)
    if balance is not None and total > balance:
        return f"{C.FailureReason.INSUFFICIENT_BALANCE} ({balance:.6f} < {total:.6f})"
    return None


def fee_for_amount(amount: float) -> float:
    return C.FEE_BY_TIER[fee_tier(amount)]


def total_amount(intents: Iterable[TransferIntent]) -> float:
    return sum(i.amount for i in intents)


def total_fee(intents: Iterable[TransferIntent]) -> float:
    return sum(fee_for_amount(i.amount) for i in intents)
