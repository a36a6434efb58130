"""Domain models - pure Python dataclasses and closed status variants"""

from dataclasses import dataclass
from datetime import date, time
from decimal import Decimal
from enum import Enum
from typing import Dict, FrozenSet

from yield_ledger.domain.exceptions import InvalidStatusTransition


class TransactionKind(str, Enum):
    """Balance-affecting event type; the sign of the amount is implied by the kind"""

    CREDIT_DEPOSIT = "credit_deposit"
    CREDIT_REFERRAL = "credit_referral"
    DEBIT_WITHDRAWAL = "debit_withdrawal"
    DEBIT_PURCHASE = "debit_purchase"


CREDIT_KINDS: FrozenSet[TransactionKind] = frozenset(
    {TransactionKind.CREDIT_DEPOSIT, TransactionKind.CREDIT_REFERRAL}
)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMPLETED = "completed"


class RechargeStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class RewardStatus(str, Enum):
    COMPLETED = "completed"
    WITHDRAWN = "withdrawn"


# Legal status edges. Anything absent is refused.
TRANSACTION_TRANSITIONS: Dict[TransactionStatus, FrozenSet[TransactionStatus]] = {
    TransactionStatus.PENDING: frozenset(
        {TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED}
    ),
    TransactionStatus.COMPLETED: frozenset(),
    TransactionStatus.FAILED: frozenset(),
    TransactionStatus.CANCELLED: frozenset(),
}

WITHDRAWAL_TRANSITIONS: Dict[WithdrawalStatus, FrozenSet[WithdrawalStatus]] = {
    WithdrawalStatus.PENDING: frozenset({WithdrawalStatus.APPROVED, WithdrawalStatus.REJECTED}),
    WithdrawalStatus.APPROVED: frozenset({WithdrawalStatus.COMPLETED}),
    WithdrawalStatus.REJECTED: frozenset(),
    WithdrawalStatus.COMPLETED: frozenset(),
}

RECHARGE_TRANSITIONS: Dict[RechargeStatus, FrozenSet[RechargeStatus]] = {
    RechargeStatus.PENDING: frozenset({RechargeStatus.APPROVED, RechargeStatus.REJECTED}),
    RechargeStatus.APPROVED: frozenset(),
    RechargeStatus.REJECTED: frozenset(),
}

REWARD_TRANSITIONS: Dict[RewardStatus, FrozenSet[RewardStatus]] = {
    RewardStatus.COMPLETED: frozenset({RewardStatus.WITHDRAWN}),
    RewardStatus.WITHDRAWN: frozenset(),
}


def check_transition(table: Dict, current: Enum, new: Enum, entity: str) -> None:
    """Raise InvalidStatusTransition unless current -> new is an edge of table"""
    if new not in table.get(current, frozenset()):
        raise InvalidStatusTransition(
            f"{entity} cannot move from {current.value} to {new.value}"
        )


@dataclass
class Product:
    """Income-generating product as served by the catalog"""

    product_id: str
    title: str
    price: Decimal
    daily_income: Decimal
    duration_days: int
    level: int = 1

    @property
    def total_return(self) -> Decimal:
        return self.daily_income * self.duration_days


@dataclass
class PayoutMethod:
    """Settlement target owned by an account (bank account, UPI handle, QR)"""

    method_id: str
    account: str
    type: str
    destination: str


@dataclass
class WithdrawalPolicy:
    """Limits applied to every withdrawal submission"""

    minimum_amount: Decimal
    daily_limit: Decimal
    tax_rate: Decimal
    window_open: time
    window_close: time
    blocked_weekdays: FrozenSet[int]


@dataclass
class WithdrawalAllowance:
    """Today's withdrawal headroom for one account"""

    daily_limit: Decimal
    used_today: Decimal
    remaining_today: Decimal
    minimum_amount: Decimal
    tax_rate: Decimal
    window_open: time
    window_close: time
    window_open_now: bool


@dataclass
class AccrualSummary:
    """End-of-run report of one accrual pass"""

    grant_date: date
    checked: int = 0
    granted: int = 0
    skipped: int = 0
    duplicates: int = 0
    failed: int = 0
    total_amount: Decimal = Decimal("0")


@dataclass
class ReferralTotals:
    """Referral rewards earned by a referrer, split by reward status"""

    account: str
    completed_amount: Decimal
    completed_count: int
    withdrawn_amount: Decimal
    withdrawn_count: int

    @property
    def total_amount(self) -> Decimal:
        return self.completed_amount + self.withdrawn_amount


@dataclass
class IncomeTotals:
    account: str
    total_income: Decimal
    grant_count: int
