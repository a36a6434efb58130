"""Unit tests for the closed status transition tables"""

import pytest
from yield_ledger.domain.exceptions import InvalidStatusTransition
from yield_ledger.domain.models import (
    RECHARGE_TRANSITIONS,
    REWARD_TRANSITIONS,
    TRANSACTION_TRANSITIONS,
    WITHDRAWAL_TRANSITIONS,
    RechargeStatus,
    RewardStatus,
    TransactionStatus,
    WithdrawalStatus,
    check_transition,
)


@pytest.mark.parametrize(
    "new",
    [TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED],
)
def test_pending_transaction_can_settle(new):
    check_transition(TRANSACTION_TRANSITIONS, TransactionStatus.PENDING, new, "Transaction")


@pytest.mark.parametrize(
    "current",
    [TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.CANCELLED],
)
def test_settled_transaction_is_final(current):
    for new in TransactionStatus:
        if new == current:
            continue
        with pytest.raises(InvalidStatusTransition):
            check_transition(TRANSACTION_TRANSITIONS, current, new, "Transaction")


def test_withdrawal_flow():
    check_transition(WITHDRAWAL_TRANSITIONS, WithdrawalStatus.PENDING, WithdrawalStatus.APPROVED, "W")
    check_transition(WITHDRAWAL_TRANSITIONS, WithdrawalStatus.APPROVED, WithdrawalStatus.COMPLETED, "W")
    check_transition(WITHDRAWAL_TRANSITIONS, WithdrawalStatus.PENDING, WithdrawalStatus.REJECTED, "W")


def test_withdrawal_cannot_skip_or_reverse():
    with pytest.raises(InvalidStatusTransition):
        check_transition(WITHDRAWAL_TRANSITIONS, WithdrawalStatus.PENDING, WithdrawalStatus.COMPLETED, "W")
    with pytest.raises(InvalidStatusTransition):
        check_transition(WITHDRAWAL_TRANSITIONS, WithdrawalStatus.APPROVED, WithdrawalStatus.REJECTED, "W")
    with pytest.raises(InvalidStatusTransition) as exc:
        check_transition(WITHDRAWAL_TRANSITIONS, WithdrawalStatus.REJECTED, WithdrawalStatus.PENDING, "Withdrawal 7")
    assert str(exc.value) == "Withdrawal 7 cannot move from rejected to pending"


def test_recharge_and_reward_tables():
    check_transition(RECHARGE_TRANSITIONS, RechargeStatus.PENDING, RechargeStatus.APPROVED, "R")
    with pytest.raises(InvalidStatusTransition):
        check_transition(RECHARGE_TRANSITIONS, RechargeStatus.APPROVED, RechargeStatus.REJECTED, "R")

    check_transition(REWARD_TRANSITIONS, RewardStatus.COMPLETED, RewardStatus.WITHDRAWN, "Reward")
    with pytest.raises(InvalidStatusTransition):
        check_transition(REWARD_TRANSITIONS, RewardStatus.WITHDRAWN, RewardStatus.COMPLETED, "Reward")
