"""Admin settlement endpoints - withdrawals, recharges, manual credits and accrual runs"""

import logging
import uuid
from typing import Callable, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from yield_ledger.api.dependencies import get_auth_client, get_clock, get_payout_client, get_request_id
from yield_ledger.api.errors import to_http_exception
from yield_ledger.api.v1.schemas import (
    AccrualRunRequest,
    AccrualSummarySchema,
    DepositRequest,
    RechargeApproveRequest,
    RechargeListResponse,
    RechargeSchema,
    ReconciliationResponse,
    ReferralRewardListResponse,
    ReferralRewardSchema,
    RejectRequest,
    TransactionSchema,
    WithdrawalApproveRequest,
    WithdrawalCompleteRequest,
    WithdrawalListResponse,
    WithdrawalSchema,
)
from yield_ledger.domain.exceptions import DomainException
from yield_ledger.domain.models import RechargeStatus, WithdrawalStatus
from yield_ledger.infrastructure.clients.auth import AuthClient
from yield_ledger.infrastructure.clients.payout import PayoutMethodClient
from yield_ledger.infrastructure.database.session import get_db
from yield_ledger.services.accrual import AccrualEngine
from yield_ledger.services.ledger import LedgerService
from yield_ledger.services.recharges import RechargeService
from yield_ledger.services.referrals import ReferralService
from yield_ledger.services.withdrawals import WithdrawalService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin")


def get_withdrawal_service(
    db: Session = Depends(get_db),
    auth_client: AuthClient = Depends(get_auth_client),
    payout_client: PayoutMethodClient = Depends(get_payout_client),
    clock: Callable = Depends(get_clock),
) -> WithdrawalService:
    return WithdrawalService(db, credentials=auth_client, payouts=payout_client, clock=clock)


# Withdrawals

@router.get("/withdrawals", response_model=WithdrawalListResponse)
def list_withdrawals(
    status: Optional[WithdrawalStatus] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    return WithdrawalListResponse(
        withdrawals=[WithdrawalSchema.from_row(w) for w in service.list(status, limit=limit, offset=offset)]
    )


@router.post("/withdrawals/{request_id}/approve", response_model=WithdrawalSchema)
def approve_withdrawal(
    request_id: uuid.UUID,
    body: WithdrawalApproveRequest,
    request: Request,
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    """Pending -> Approved, or straight to Completed when the payout reference is supplied"""
    try:
        withdrawal = service.approve_withdrawal(request_id, body.external_ref, body.reviewed_by, body.notes)
        service.db.commit()
    except DomainException as e:
        service.db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return WithdrawalSchema.from_row(withdrawal)


@router.post("/withdrawals/{request_id}/complete", response_model=WithdrawalSchema)
def complete_withdrawal(
    request_id: uuid.UUID,
    body: WithdrawalCompleteRequest,
    request: Request,
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    try:
        withdrawal = service.complete_withdrawal(request_id, body.external_ref, body.reviewed_by, body.notes)
        service.db.commit()
    except DomainException as e:
        service.db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return WithdrawalSchema.from_row(withdrawal)


@router.post("/withdrawals/{request_id}/reject", response_model=WithdrawalSchema)
def reject_withdrawal(
    request_id: uuid.UUID,
    body: RejectRequest,
    request: Request,
    service: WithdrawalService = Depends(get_withdrawal_service),
):
    """Pending -> Rejected; the reserved amount is credited back in full"""
    try:
        withdrawal = service.reject_withdrawal(request_id, body.reason, body.reviewed_by)
        service.db.commit()
    except DomainException as e:
        service.db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return WithdrawalSchema.from_row(withdrawal)


# Recharges

@router.get("/recharges", response_model=RechargeListResponse)
def list_recharges(
    status: Optional[RechargeStatus] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    return RechargeListResponse(
        recharges=[RechargeSchema.from_row(r) for r in RechargeService(db).list(status, limit=limit, offset=offset)]
    )


@router.post("/recharges/{recharge_id}/approve", response_model=RechargeSchema)
def approve_recharge(
    recharge_id: uuid.UUID,
    body: RechargeApproveRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    try:
        recharge = RechargeService(db, clock=clock).approve(
            recharge_id, body.approved_amount, body.reviewed_by, body.notes
        )
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return RechargeSchema.from_row(recharge)


@router.post("/recharges/{recharge_id}/reject", response_model=RechargeSchema)
def reject_recharge(
    recharge_id: uuid.UUID,
    body: RejectRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    try:
        recharge = RechargeService(db, clock=clock).reject(recharge_id, body.reason, body.reviewed_by)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return RechargeSchema.from_row(recharge)


# Manual credits

@router.post("/accounts/{account}/deposits", response_model=TransactionSchema, status_code=201)
def record_deposit(
    account: str,
    body: DepositRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    """Append a Completed Credit-Deposit; corrections are always new rows"""
    try:
        row = LedgerService(db, clock=clock).record_deposit(
            account,
            body.amount,
            source="admin_adjustment",
            external_ref=body.external_ref,
            description=body.note,
        )
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return TransactionSchema.from_row(row)


@router.get("/accounts/{account}/reconcile", response_model=ReconciliationResponse)
def reconcile_balance(account: str, db: Session = Depends(get_db)):
    ledger = LedgerService(db)
    balance = ledger.balance_of(account)
    replayed = ledger.replay_balance(account)
    if balance != replayed:
        logger.error(
            "Balance replay mismatch",
            extra={"account": account, "balance": str(balance), "replayed_balance": str(replayed)},
        )
    return ReconciliationResponse(
        account=account, balance=balance, replayed_balance=replayed, consistent=balance == replayed
    )


# Referrals

@router.post("/referrals/{referrer}/settle", response_model=ReferralRewardListResponse)
def settle_referral_rewards(referrer: str, db: Session = Depends(get_db), clock: Callable = Depends(get_clock)):
    """Mark the referrer's Completed rewards as Withdrawn (bookkeeping only)"""
    settled = ReferralService(db, clock=clock).settle_rewards(referrer)
    db.commit()
    return ReferralRewardListResponse(
        account=referrer,
        rewards=[ReferralRewardSchema.from_row(r) for r in settled],
    )


# Accrual

@router.post("/accrual/run", response_model=AccrualSummarySchema)
def run_accrual(
    body: Optional[AccrualRunRequest] = None,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    """
    Trigger the daily accrual by hand. Re-running a day that was already
    accrued grants nothing new.
    """
    grant_date = body.grant_date if body else None
    summary = AccrualEngine(db, clock=clock).run(grant_date)
    return AccrualSummarySchema(
        grant_date=summary.grant_date,
        checked=summary.checked,
        granted=summary.granted,
        skipped=summary.skipped,
        duplicates=summary.duplicates,
        failed=summary.failed,
        total_amount=summary.total_amount,
    )
