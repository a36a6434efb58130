"""Recharge (deposit claim) endpoints for account holders"""

from typing import Callable

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from yield_ledger.api.dependencies import get_clock, get_request_id
from yield_ledger.api.errors import to_http_exception
from yield_ledger.api.v1.schemas import RechargeListResponse, RechargeSchema, RechargeSubmitRequest
from yield_ledger.domain.exceptions import DomainException
from yield_ledger.infrastructure.database.session import get_db
from yield_ledger.services.recharges import RechargeService

router = APIRouter()


@router.post("/accounts/{account}/recharges", response_model=RechargeSchema, status_code=201)
def submit_recharge(
    account: str,
    body: RechargeSubmitRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    """Record a bank transfer claim; the balance changes only once an admin approves it"""
    try:
        recharge = RechargeService(db, clock=clock).submit(account, body.amount, body.utr)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return RechargeSchema.from_row(recharge)


@router.get("/accounts/{account}/recharges", response_model=RechargeListResponse)
def list_recharges(
    account: str,
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return RechargeListResponse(
        recharges=[RechargeSchema.from_row(r) for r in RechargeService(db).history(account, limit=limit)]
    )
