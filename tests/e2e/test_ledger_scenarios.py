"""
End-to-end scenarios over the service layer.

Each test walks one account story from an empty ledger, committing between
steps the way separate API calls would.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy.orm import Session
from yield_ledger.domain.exceptions import DailyLimitExceeded
from yield_ledger.domain.models import Product, TransactionKind
from yield_ledger.infrastructure.database.models import IncomeGrant, LedgerTransaction, ReferralReward
from yield_ledger.infrastructure.database.repositories import ProductRepository
from yield_ledger.services.accrual import AccrualEngine
from yield_ledger.services.purchases import PurchaseService
from yield_ledger.services.referrals import ReferralService
from yield_ledger.services.withdrawals import WithdrawalService


@pytest.fixture
def withdrawals(db, ledger, credentials, payouts, policy, clock) -> WithdrawalService:
    return WithdrawalService(db, credentials=credentials, payouts=payouts, policy=policy, ledger=ledger, clock=clock)


def count(db: Session, kind: TransactionKind, account: str) -> int:
    return (
        db.query(LedgerTransaction)
        .filter(LedgerTransaction.kind == kind, LedgerTransaction.account == account)
        .count()
    )


def test_deposit_then_withdraw_then_capped(db, ledger, withdrawals):
    """Deposit 1000, withdraw 600 at 15%, then 500 more against a 1000 cap"""
    ledger.record_deposit("acct_a", Decimal("1000"))
    db.commit()
    assert ledger.balance_of("acct_a") == Decimal("1000.00")

    first = withdrawals.submit("acct_a", Decimal("600"), "secret-a", "pm_a")
    db.commit()
    assert ledger.balance_of("acct_a") == Decimal("400.00")
    assert first.net_amount == Decimal("510.00")

    with pytest.raises(DailyLimitExceeded) as exc:
        withdrawals.submit("acct_a", Decimal("500"), "secret-a", "pm_a")
    db.rollback()
    assert "400.00 remaining today" in exc.value.message
    assert count(db, TransactionKind.DEBIT_WITHDRAWAL, "acct_a") == 1


def test_investment_accrues_once_per_day_until_expiry(db, ledger, clock):
    """dailyIncome=90, durationDays=120, purchased on day 0"""
    ProductRepository(db).upsert(
        Product(product_id="plan_90", title="Plan 90", price=Decimal("1000"), daily_income=Decimal("90"), duration_days=120)
    )
    ledger.record_deposit("acct_a", Decimal("1000"))
    investment = PurchaseService(db, ledger=ledger, clock=clock).purchase("acct_a", "plan_90")
    db.commit()
    day_0 = investment.purchase_date
    engine = AccrualEngine(db, ledger=ledger, clock=clock)

    assert engine.run(day_0 + timedelta(days=1)).granted == 1
    assert engine.run(day_0 + timedelta(days=1)).granted == 0
    assert engine.run(day_0 + timedelta(days=121)).granted == 0

    assert db.query(IncomeGrant).count() == 1
    assert ledger.balance_of("acct_a") == Decimal("90.00")


def test_referral_rewarded_on_first_purchase_only(db, ledger, clock, products):
    referrals = ReferralService(db, ledger=ledger, reward_amount=Decimal("300"), clock=clock)
    purchases = PurchaseService(db, ledger=ledger, referrals=referrals, clock=clock)
    referrals.assign_referrer("acct_b", "acct_r")
    ledger.record_deposit("acct_b", Decimal("3000"))
    db.commit()

    purchases.purchase("acct_b", "sprint")
    db.commit()
    purchases.purchase("acct_b", "starter")
    db.commit()

    assert count(db, TransactionKind.CREDIT_REFERRAL, "acct_r") == 1
    assert db.query(ReferralReward).count() == 1
    assert ledger.balance_of("acct_r") == Decimal("300.00")


def test_rejected_withdrawal_nets_to_zero(db, ledger, withdrawals):
    ledger.record_deposit("acct_a", Decimal("1000"))
    db.commit()
    before = ledger.balance_of("acct_a")

    request = withdrawals.submit("acct_a", Decimal("600"), "secret-a", "pm_a")
    db.commit()
    original = db.get(LedgerTransaction, request.funding_transaction_id)
    original_state = (original.amount, original.kind, original.status, original.account, original.created_at)

    withdrawals.reject_withdrawal(request.id, reason="Payout bounced")
    db.commit()

    assert ledger.balance_of("acct_a") == before
    db.expire_all()
    original = db.get(LedgerTransaction, request.funding_transaction_id)
    assert (original.amount, original.kind, original.status, original.account, original.created_at) == original_state
    assert count(db, TransactionKind.CREDIT_DEPOSIT, "acct_a") == 2


def test_month_of_income_then_payout(db, ledger, credentials, payouts, policy, clock, products):
    """Buy, accrue daily for a month, withdraw part of the income"""
    policy.daily_limit = Decimal("50000")
    ledger.record_deposit("acct_a", Decimal("500"))
    investment = PurchaseService(db, ledger=ledger, clock=clock).purchase("acct_a", "starter")
    db.commit()

    engine = AccrualEngine(db, ledger=ledger, clock=clock)
    summaries = engine.backfill(investment.purchase_date, investment.purchase_date + timedelta(days=29))
    assert sum(s.granted for s in summaries) == 30
    # 30 days at 90
    assert ledger.balance_of("acct_a") == Decimal("2700.00")

    # Thirty days later is a Friday, 11:30 local
    clock.advance(days=30)
    assert clock.now.date() == date(2026, 4, 10)
    service = WithdrawalService(db, credentials=credentials, payouts=payouts, policy=policy, ledger=ledger, clock=clock)
    request = service.submit("acct_a", Decimal("2000"), "secret-a", "pm_a")
    service.approve_withdrawal(request.id, external_ref="UTR-2026-04-10")
    db.commit()

    assert ledger.balance_of("acct_a") == Decimal("700.00")
    assert request.net_amount == Decimal("1700.00")
