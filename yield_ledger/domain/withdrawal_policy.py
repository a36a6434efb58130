"""Withdrawal policy rules - pure checks used by the withdrawal engine"""

from datetime import datetime
from decimal import Decimal
from typing import Tuple

from yield_ledger.domain.balance import to_money
from yield_ledger.domain.exceptions import (
    BelowMinimum,
    DailyLimitExceeded,
    InsufficientBalance,
    WindowClosed,
)
from yield_ledger.domain.models import WithdrawalPolicy


def is_window_open(local_now: datetime, policy: WithdrawalPolicy) -> bool:
    """
    Requests are accepted on working days between window_open (inclusive)
    and window_close (exclusive), in platform-local time.
    """
    if local_now.weekday() in policy.blocked_weekdays:
        return False
    current = local_now.time().replace(tzinfo=None)
    return policy.window_open <= current < policy.window_close


def compute_tax(amount: Decimal, tax_rate: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split a withdrawal into (tax, net).

    Example:
        600 at 15% -> tax 90.00, net 510.00
    """
    tax = to_money(amount * tax_rate)
    return tax, to_money(amount - tax)


def remaining_allowance(used_today: Decimal, policy: WithdrawalPolicy) -> Decimal:
    return max(to_money(policy.daily_limit - used_today), Decimal("0.00"))


def check_window(local_now: datetime, policy: WithdrawalPolicy) -> None:
    if not is_window_open(local_now, policy):
        raise WindowClosed(
            f"Withdrawals are accepted {policy.window_open:%H:%M} - "
            f"{policy.window_close:%H:%M} on working days"
        )


def check_minimum(amount: Decimal, policy: WithdrawalPolicy) -> None:
    if amount < policy.minimum_amount:
        raise BelowMinimum(f"Minimum withdrawal is {to_money(policy.minimum_amount)}")


def check_daily_limit(amount: Decimal, used_today: Decimal, policy: WithdrawalPolicy) -> None:
    if used_today + amount > policy.daily_limit:
        raise DailyLimitExceeded(
            f"Daily withdrawal limit is {to_money(policy.daily_limit)}; "
            f"{remaining_allowance(used_today, policy)} remaining today"
        )


def check_balance(amount: Decimal, balance: Decimal) -> None:
    if balance < amount:
        raise InsufficientBalance(f"Insufficient balance: available {to_money(balance)}")
