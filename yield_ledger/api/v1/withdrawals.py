"""Withdrawal submission and read endpoints"""

import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from yield_ledger.api.dependencies import get_auth_client, get_clock, get_payout_client, get_request_id
from yield_ledger.api.errors import to_http_exception
from yield_ledger.api.v1.schemas import (
    AllowanceResponse,
    WithdrawalListResponse,
    WithdrawalSchema,
    WithdrawalSubmitRequest,
)
from yield_ledger.domain.exceptions import DomainException
from yield_ledger.infrastructure.clients.auth import AuthClient
from yield_ledger.infrastructure.clients.payout import PayoutMethodClient
from yield_ledger.infrastructure.database.session import get_db
from yield_ledger.services.withdrawals import WithdrawalService

router = APIRouter()


@router.post("/accounts/{account}/withdrawals", response_model=WithdrawalSchema, status_code=201)
def submit_withdrawal(
    account: str,
    body: WithdrawalSubmitRequest,
    request: Request,
    db: Session = Depends(get_db),
    auth_client: AuthClient = Depends(get_auth_client),
    payout_client: PayoutMethodClient = Depends(get_payout_client),
    clock: Callable = Depends(get_clock),
):
    """
    Request a payout. The full amount is debited immediately and held until
    an admin completes or rejects the request.

    Refusals return 400 (401 for a wrong withdrawal password) with the
    violated rule as `code`.
    """
    request_id = get_request_id(request)
    service = WithdrawalService(db, credentials=auth_client, payouts=payout_client, clock=clock)
    try:
        withdrawal = service.submit(account, body.amount, body.credential, body.payout_method_id)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, request_id) from e
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return WithdrawalSchema.from_row(withdrawal)


@router.get("/accounts/{account}/withdrawals", response_model=WithdrawalListResponse)
def list_withdrawals(
    account: str,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
    auth_client: AuthClient = Depends(get_auth_client),
    payout_client: PayoutMethodClient = Depends(get_payout_client),
):
    service = WithdrawalService(db, credentials=auth_client, payouts=payout_client)
    return WithdrawalListResponse(
        withdrawals=[WithdrawalSchema.from_row(w) for w in service.history(account, limit=limit)]
    )


@router.get("/accounts/{account}/withdrawals/allowance", response_model=AllowanceResponse)
def get_allowance(
    account: str,
    db: Session = Depends(get_db),
    auth_client: AuthClient = Depends(get_auth_client),
    payout_client: PayoutMethodClient = Depends(get_payout_client),
    clock: Callable = Depends(get_clock),
):
    """Today's remaining withdrawal headroom on the platform calendar"""
    allowance = WithdrawalService(db, credentials=auth_client, payouts=payout_client, clock=clock).allowance(account)
    return AllowanceResponse(
        account=account,
        daily_limit=allowance.daily_limit,
        used_today=allowance.used_today,
        remaining_today=allowance.remaining_today,
        minimum_amount=allowance.minimum_amount,
        tax_rate=allowance.tax_rate,
        window_open=allowance.window_open,
        window_close=allowance.window_close,
        window_open_now=allowance.window_open_now,
    )
