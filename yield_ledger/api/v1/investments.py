"""Investment purchase and income-grant endpoints"""

import logging
import uuid
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.orm import Session

from yield_ledger.api.dependencies import get_clock, get_request_id
from yield_ledger.api.errors import to_http_exception
from yield_ledger.api.v1.schemas import (
    IncomeGrantSchema,
    IncomeHistoryResponse,
    InvestmentIncomeResponse,
    InvestmentListResponse,
    InvestmentSchema,
    PurchaseRequest,
)
from yield_ledger.domain.balance import to_money
from yield_ledger.domain.exceptions import DomainException
from yield_ledger.infrastructure.database.repositories import ProductRepository
from yield_ledger.infrastructure.database.session import get_db
from yield_ledger.services.accrual import AccrualEngine
from yield_ledger.services.purchases import PurchaseService, describe_position

router = APIRouter()


def _investment_schema(investment, service: PurchaseService) -> InvestmentSchema:
    product = ProductRepository(service.db).get_product(investment.product_id)
    position = describe_position(investment, product, service.today())
    return InvestmentSchema(
        investment_id=str(investment.id),
        account=investment.account,
        product_id=investment.product_id,
        purchase_price=to_money(investment.purchase_price),
        purchase_date=investment.purchase_date,
        funding_transaction_id=investment.funding_transaction_id,
        days_elapsed=position["days_elapsed"],
        is_active=position["is_active"],
        duration_days=position["duration_days"],
        daily_income=position["daily_income"],
        total_return=to_money(position["total_return"]),
    )


@router.post("/accounts/{account}/investments", response_model=InvestmentSchema, status_code=201)
def purchase_product(
    account: str,
    body: PurchaseRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    """
    Buy a product from the derived balance.

    Flow:
    1. Resolve the product from the catalog
    2. Refuse a repeat purchase and check the balance
    3. Append the Debit-Purchase and create the investment
    4. Reward the account's referrer on its first purchase
    """
    request_id = get_request_id(request)
    service = PurchaseService(db, clock=clock)
    try:
        investment = service.purchase(account, body.product_id)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, request_id) from e
    except Exception as e:
        db.rollback()
        logging.error(f"Unexpected error: {e}", extra={"request_id": request_id})
        raise HTTPException(status_code=500, detail="Internal server error")

    return _investment_schema(investment, service)


@router.get("/accounts/{account}/investments", response_model=InvestmentListResponse)
def list_investments(
    account: str,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    service = PurchaseService(db, clock=clock)
    return InvestmentListResponse(
        account=account,
        investments=[_investment_schema(inv, service) for inv in service.list_for(account)],
    )


@router.get("/investments/{investment_id}/income", response_model=InvestmentIncomeResponse)
def get_investment_income(investment_id: uuid.UUID, request: Request, db: Session = Depends(get_db)):
    try:
        grants = AccrualEngine(db).income_for_investment(investment_id)
    except DomainException as e:
        raise to_http_exception(e, get_request_id(request)) from e
    return InvestmentIncomeResponse(
        investment_id=str(investment_id),
        grants=[IncomeGrantSchema.from_row(grant) for grant in grants],
    )


@router.get("/accounts/{account}/income", response_model=IncomeHistoryResponse)
def get_account_income(
    account: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    engine = AccrualEngine(db)
    totals = engine.totals(account)
    return IncomeHistoryResponse(
        account=account,
        total_income=totals.total_income,
        grant_count=totals.grant_count,
        grants=[IncomeGrantSchema.from_row(g) for g in engine.income_for_account(account, limit=limit, offset=offset)],
    )
