"""Balance calculator - the spendable balance is a fold over the ledger"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol

from yield_ledger.domain.exceptions import InvalidAmount
from yield_ledger.domain.models import CREDIT_KINDS, TransactionKind, TransactionStatus

CENT = Decimal("0.01")


class LedgerEntry(Protocol):
    kind: TransactionKind
    amount: Decimal
    status: TransactionStatus


def to_money(value) -> Decimal:
    """
    Normalise a numeric value to a two-place Decimal.

    Floats are routed through str() so that values coming back from drivers
    without native decimals (SQLite) do not carry binary noise.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)
    except (ArithmeticError, ValueError, TypeError) as e:
        raise InvalidAmount(f"Invalid amount: {value!r}") from e


def require_positive(value) -> Decimal:
    amount = to_money(value)
    if amount <= 0:
        raise InvalidAmount(f"Amount must be positive, got {amount}")
    return amount


def signed_amount(kind: TransactionKind, amount: Decimal) -> Decimal:
    """Credits add, debits subtract; stored amounts are never negative"""
    return amount if kind in CREDIT_KINDS else -amount


def fold_balance(entries: Iterable[LedgerEntry]) -> Decimal:
    """
    Sum signed amounts over Completed entries only.

    Pending, Failed and Cancelled entries never contribute, so in-flight
    writes cannot move the result. Order of entries is irrelevant.
    """
    total = Decimal("0")
    for entry in entries:
        if entry.status != TransactionStatus.COMPLETED:
            continue
        total += signed_amount(entry.kind, to_money(entry.amount))
    return to_money(total)
