"""Integration tests for recharge requests"""

import pytest
from decimal import Decimal
from sqlalchemy.orm import Session
from yield_ledger.domain.exceptions import DuplicateRechargeReference, InvalidStatusTransition
from yield_ledger.domain.models import RechargeStatus
from yield_ledger.infrastructure.database.models import LedgerTransaction
from yield_ledger.services.ledger import LedgerService
from yield_ledger.services.recharges import RechargeService

pytestmark = pytest.mark.integration


@pytest.fixture
def recharges(db: Session, ledger: LedgerService, clock) -> RechargeService:
    return RechargeService(db, ledger=ledger, clock=clock)


def test_submission_does_not_credit(db, ledger, recharges):
    request = recharges.submit("acct_a", Decimal("1500"), " UTR0001 ")
    db.commit()

    assert request.status == RechargeStatus.PENDING
    assert request.utr == "UTR0001"
    assert ledger.balance_of("acct_a") == Decimal("0.00")


def test_utr_can_only_be_used_once(db, recharges):
    recharges.submit("acct_a", Decimal("1500"), "UTR0001")
    db.commit()

    with pytest.raises(DuplicateRechargeReference):
        recharges.submit("acct_b", Decimal("99"), "UTR0001")


def test_approve_credits_requested_amount(db, ledger, recharges):
    request = recharges.submit("acct_a", Decimal("1500"), "UTR0001")
    recharges.approve(request.id, reviewed_by="admin_1")
    db.commit()

    assert ledger.balance_of("acct_a") == Decimal("1500.00")
    deposit = db.get(LedgerTransaction, request.deposit_transaction_id)
    assert deposit.external_ref == "UTR0001"
    assert deposit.details["source"] == "recharge"
    assert request.approved_amount == Decimal("1500.00")


def test_approve_with_adjusted_amount(db, ledger, recharges):
    request = recharges.submit("acct_a", Decimal("1500"), "UTR0001")
    recharges.approve(request.id, approved_amount=Decimal("1450"), notes="Bank fee deducted")
    db.commit()

    assert ledger.balance_of("acct_a") == Decimal("1450.00")
    assert request.admin_notes == "Bank fee deducted"


def test_reject_has_no_ledger_effect(db, ledger, recharges):
    request = recharges.submit("acct_a", Decimal("1500"), "UTR0001")
    recharges.reject(request.id, reason="UTR not found in statement")
    db.commit()

    assert request.status == RechargeStatus.REJECTED
    assert db.query(LedgerTransaction).count() == 0


def test_only_pending_requests_are_reviewed(db, ledger, recharges):
    request = recharges.submit("acct_a", Decimal("1500"), "UTR0001")
    recharges.approve(request.id)
    db.commit()

    with pytest.raises(InvalidStatusTransition):
        recharges.approve(request.id)
    with pytest.raises(InvalidStatusTransition):
        recharges.reject(request.id)
    db.rollback()
    assert ledger.balance_of("acct_a") == Decimal("1500.00")


def test_listing(db, recharges):
    first = recharges.submit("acct_a", Decimal("100"), "UTR1")
    recharges.submit("acct_a", Decimal("200"), "UTR2")
    recharges.submit("acct_b", Decimal("300"), "UTR3")
    recharges.reject(first.id)
    db.commit()

    assert len(recharges.history("acct_a")) == 2
    assert len(recharges.list(RechargeStatus.PENDING)) == 2
    assert len(recharges.list()) == 3


def test_stale_reviewer_cannot_approve_a_rejected_recharge(db, other_db, ledger, recharges, clock):
    request_id = recharges.submit("acct_a", Decimal("1500"), "UTR0001").id
    db.commit()

    other_db.expire_on_commit = False
    second_reviewer = RechargeService(other_db, clock=clock)
    assert second_reviewer.get(request_id).status == RechargeStatus.PENDING
    other_db.commit()

    recharges.reject(request_id, reason="UTR not found in statement")
    db.commit()

    with pytest.raises(InvalidStatusTransition):
        second_reviewer.approve(request_id)
    other_db.rollback()

    assert ledger.balance_of("acct_a") == Decimal("0.00")
    assert db.query(LedgerTransaction).count() == 0
