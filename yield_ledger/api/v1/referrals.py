"""Referral link and reward endpoints"""

from typing import Callable

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from yield_ledger.api.dependencies import get_clock, get_request_id
from yield_ledger.api.errors import to_http_exception
from yield_ledger.api.v1.schemas import (
    ReferralLinkSchema,
    ReferralRewardListResponse,
    ReferralRewardSchema,
    ReferralSummaryResponse,
    ReferrerAssignRequest,
)
from yield_ledger.domain.exceptions import DomainException
from yield_ledger.infrastructure.database.session import get_db
from yield_ledger.services.referrals import ReferralService

router = APIRouter()


def _link_schema(link) -> ReferralLinkSchema:
    return ReferralLinkSchema(account=link.account, referrer=link.referrer, created_at=link.created_at)


@router.put("/accounts/{account}/referrer", response_model=ReferralLinkSchema)
def assign_referrer(
    account: str,
    body: ReferrerAssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    clock: Callable = Depends(get_clock),
):
    """Record who referred account. Repeating the same referrer is a no-op; changing it is refused."""
    try:
        link = ReferralService(db, clock=clock).assign_referrer(account, body.referrer)
        db.commit()
    except DomainException as e:
        db.rollback()
        raise to_http_exception(e, get_request_id(request)) from e
    return _link_schema(link)


@router.get("/accounts/{account}/referrals", response_model=ReferralSummaryResponse)
def get_referral_summary(account: str, db: Session = Depends(get_db)):
    service = ReferralService(db)
    totals = service.totals(account)
    return ReferralSummaryResponse(
        account=account,
        referred_accounts=[_link_schema(link) for link in service.referred_accounts(account)],
        completed_amount=totals.completed_amount,
        completed_count=totals.completed_count,
        withdrawn_amount=totals.withdrawn_amount,
        withdrawn_count=totals.withdrawn_count,
        total_amount=totals.total_amount,
    )


@router.get("/accounts/{account}/referral-rewards", response_model=ReferralRewardListResponse)
def list_referral_rewards(account: str, db: Session = Depends(get_db)):
    return ReferralRewardListResponse(
        account=account,
        rewards=[ReferralRewardSchema.from_row(r) for r in ReferralService(db).rewards(account)],
    )
