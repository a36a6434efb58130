"""Integration tests for the daily accrual engine"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from sqlalchemy.orm import Session
from yield_ledger.domain.models import Product, TransactionKind, TransactionStatus
from yield_ledger.infrastructure.database.models import IncomeGrant, Investment, LedgerTransaction
from yield_ledger.infrastructure.database.repositories import ProductRepository
from yield_ledger.services.accrual import AccrualEngine, income_transaction_id
from yield_ledger.services.ledger import LedgerService
from yield_ledger.services.purchases import PurchaseService

pytestmark = pytest.mark.integration

DAY_0 = date(2026, 3, 11)


@pytest.fixture
def engine(db: Session, ledger: LedgerService, clock) -> AccrualEngine:
    return AccrualEngine(db, ledger=ledger, clock=clock)


@pytest.fixture
def investment(db: Session, ledger: LedgerService, clock, products) -> Investment:
    ledger.record_deposit("acct_a", Decimal("500"))
    investment = PurchaseService(db, ledger=ledger, clock=clock).purchase("acct_a", "starter")
    db.commit()
    return investment


def income_rows(db: Session):
    return (
        db.query(LedgerTransaction)
        .filter(LedgerTransaction.id.like("INC-%"))
        .all()
    )


def test_grants_daily_income_once(db, engine, ledger, investment):
    summary = engine.run(DAY_0 + timedelta(days=1))

    assert summary.granted == 1
    assert summary.total_amount == Decimal("90.00")
    assert ledger.balance_of("acct_a") == Decimal("90.00")

    grant = db.query(IncomeGrant).one()
    assert grant.day_number == 2
    assert grant.transaction_id == income_transaction_id(investment.id, DAY_0 + timedelta(days=1))

    credit = db.get(LedgerTransaction, grant.transaction_id)
    assert credit.kind == TransactionKind.CREDIT_DEPOSIT
    assert credit.details["investmentId"] == str(investment.id)
    assert credit.details["dayNumber"] == 2
    assert credit.details["grantDate"] == "2026-03-12"


def test_rerun_same_day_is_idempotent(db, engine, ledger, investment):
    grant_date = DAY_0 + timedelta(days=1)
    engine.run(grant_date)
    second = engine.run(grant_date)
    third = engine.run(grant_date)

    assert second.granted == 0 and second.duplicates == 1
    assert third.duplicates == 1
    assert db.query(IncomeGrant).count() == 1
    assert len(income_rows(db)) == 1
    assert ledger.balance_of("acct_a") == Decimal("90.00")


def test_separate_sessions_cannot_double_grant(db, other_db, investment, clock):
    """Two workers with their own sessions accrue the same day"""
    AccrualEngine(db, clock=clock).run(DAY_0 + timedelta(days=1))
    summary = AccrualEngine(other_db, clock=clock).run(DAY_0 + timedelta(days=1))

    assert summary.duplicates == 1
    assert db.query(IncomeGrant).count() == 1


def test_default_grant_date_is_platform_today(db, engine, investment, clock):
    # 20:00 UTC on the 11th is the 12th in Kolkata
    clock.now = clock.now.replace(hour=20)

    summary = engine.run()

    assert summary.grant_date == DAY_0 + timedelta(days=1)


def test_expired_investment_gets_nothing(db, engine, ledger, investment):
    summary = engine.run(DAY_0 + timedelta(days=121))

    # Older than the longest product in the catalog: not even loaded
    assert summary.checked == 0
    assert summary.granted == 0
    assert ledger.balance_of("acct_a") == Decimal("0.00")


def test_short_product_expires_while_longer_ones_run(db, engine, ledger, clock, products):
    ledger.record_deposit("acct_b", Decimal("200"))
    PurchaseService(db, ledger=ledger, clock=clock).purchase("acct_b", "sprint")
    db.commit()

    # Day 4 of a 3-day product, well inside the 120-day catalog maximum
    summary = engine.run(DAY_0 + timedelta(days=3))

    assert summary.checked == 1
    assert summary.skipped == 1
    assert ledger.balance_of("acct_b") == Decimal("0.00")


def test_last_day_still_pays(db, engine, investment):
    summary = engine.run(DAY_0 + timedelta(days=119))
    assert summary.granted == 1
    assert db.query(IncomeGrant).one().day_number == 120


def test_backfill_catches_up_missed_days(db, engine, ledger, investment):
    summaries = engine.backfill(DAY_0, DAY_0 + timedelta(days=4))

    assert [s.granted for s in summaries] == [1, 1, 1, 1, 1]
    # 5 days at 90
    assert ledger.balance_of("acct_a") == Decimal("450.00")

    # Overlaps an already accrued range
    again = engine.backfill(DAY_0 + timedelta(days=3), DAY_0 + timedelta(days=5))
    assert [s.granted for s in again] == [0, 0, 1]
    assert ledger.balance_of("acct_a") == Decimal("540.00")


def test_short_product_stops_after_duration(db, ledger, engine, clock, products):
    ledger.record_deposit("acct_b", Decimal("200"))
    PurchaseService(db, ledger=ledger, clock=clock).purchase("acct_b", "sprint")
    db.commit()

    engine.backfill(DAY_0, DAY_0 + timedelta(days=10))

    # sprint: 25 a day for 3 days
    assert ledger.balance_of("acct_b") == Decimal("75.00")
    assert [g.day_number for g in engine.income_for_account("acct_b")] == [3, 2, 1]


def test_pending_funding_is_skipped(db, engine, ledger, products, clock):
    funding = ledger.append(
        "acct_c",
        TransactionKind.DEBIT_PURCHASE,
        Decimal("500"),
        status=TransactionStatus.PENDING,
    )
    db.add(
        Investment(
            account="acct_c",
            product_id="starter",
            purchase_price=Decimal("500"),
            purchase_date=DAY_0,
            funding_transaction_id=funding.id,
        )
    )
    db.commit()

    summary = engine.run(DAY_0 + timedelta(days=1))

    assert summary.skipped == 1
    assert db.query(IncomeGrant).count() == 0


def test_zero_income_product_is_skipped(db, engine, ledger, clock, products):
    ProductRepository(db).upsert(
        Product(product_id="promo", title="Promo", price=Decimal("10"), daily_income=Decimal("0"), duration_days=30)
    )
    ledger.record_deposit("acct_a", Decimal("10"))
    PurchaseService(db, ledger=ledger, clock=clock).purchase("acct_a", "promo")
    db.commit()

    summary = engine.run(DAY_0 + timedelta(days=1))

    assert summary.skipped == 1
    assert summary.granted == 0


class PartialCatalog:
    """Catalog that has lost one product definition"""

    def __init__(self, db, missing):
        self.repo = ProductRepository(db)
        self.missing = missing

    def get_product(self, product_id):
        if product_id == self.missing:
            return None
        return self.repo.get_product(product_id)


def test_missing_product_fails_only_that_investment(db, ledger, clock, products):
    for account, product_id in (("acct_a", "starter"), ("acct_b", "gold")):
        ledger.record_deposit(account, Decimal("2000"))
        PurchaseService(db, ledger=ledger, clock=clock).purchase(account, product_id)
    db.commit()

    engine = AccrualEngine(db, catalog=PartialCatalog(db, "gold"), ledger=ledger, clock=clock)
    summary = engine.run(DAY_0 + timedelta(days=1))

    assert summary.checked == 2
    assert summary.failed == 1
    assert summary.granted == 1
    assert ledger.balance_of("acct_a") == Decimal("1590.00")


def test_income_reads(db, engine, investment):
    engine.backfill(DAY_0, DAY_0 + timedelta(days=2))

    grants = engine.income_for_investment(investment.id)
    assert [g.grant_date for g in grants] == [DAY_0, DAY_0 + timedelta(days=1), DAY_0 + timedelta(days=2)]

    totals = engine.totals("acct_a")
    assert totals.total_income == Decimal("270.00")
    assert totals.grant_count == 3
