"""GET /v1/accounts/{account}/... - derived balance and ledger history"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from yield_ledger.api.v1.schemas import (
    AccountStatsResponse,
    BalanceResponse,
    TransactionHistoryResponse,
    TransactionSchema,
)
from yield_ledger.domain.models import TransactionKind, TransactionStatus
from yield_ledger.infrastructure.database.repositories import IncomeGrantRepository
from yield_ledger.infrastructure.database.session import get_db
from yield_ledger.services.ledger import LedgerService

router = APIRouter()


@router.get("/accounts/{account}/balance", response_model=BalanceResponse)
def get_balance(account: str, db: Session = Depends(get_db)):
    """Balance is re-derived from Completed transactions on every call"""
    return BalanceResponse(account=account, balance=LedgerService(db).balance_of(account))


@router.get("/accounts/{account}/transactions", response_model=TransactionHistoryResponse)
def get_transactions(
    account: str,
    kind: Optional[List[TransactionKind]] = Query(None),
    status: Optional[List[TransactionStatus]] = Query(None),
    start: Optional[datetime] = Query(None, description="Inclusive lower bound on created_at"),
    end: Optional[datetime] = Query(None, description="Exclusive upper bound on created_at"),
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
):
    """
    Transaction history, newest first.

    Filters may be combined; kind and status accept repeated values.
    """
    rows = LedgerService(db).history(
        account,
        kinds=kind,
        statuses=status,
        start=start,
        end=end,
        limit=limit,
        offset=offset,
    )
    return TransactionHistoryResponse(
        account=account,
        transactions=[TransactionSchema.from_row(row) for row in rows],
    )


@router.get("/accounts/{account}/stats", response_model=AccountStatsResponse)
def get_account_stats(account: str, db: Session = Depends(get_db)):
    ledger = LedgerService(db)
    total_income, grant_count = IncomeGrantRepository(db).totals(account)
    return AccountStatsResponse(
        account=account,
        balance=ledger.balance_of(account),
        totals_by_kind={kind.value: amount for kind, amount in ledger.totals_by_kind(account).items()},
        total_income=total_income,
        income_grant_count=grant_count,
    )
