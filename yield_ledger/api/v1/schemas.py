"""Pydantic schemas for API request/response validation"""

from pydantic import BaseModel, Field
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Dict, List, Optional


# Ledger

class TransactionSchema(BaseModel):
    """Single ledger transaction"""

    transaction_id: str
    account: str
    kind: str
    amount: Decimal
    status: str
    external_ref: Optional[str] = None
    metadata: Dict[str, Any] = {}
    description: Optional[str] = None
    created_at: datetime
    status_changed_at: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "TransactionSchema":
        return cls(
            transaction_id=row.id,
            account=row.account,
            kind=row.kind.value,
            amount=row.amount,
            status=row.status.value,
            external_ref=row.external_ref,
            metadata=row.details or {},
            description=row.description,
            created_at=row.created_at,
            status_changed_at=row.status_changed_at,
        )


class BalanceResponse(BaseModel):
    """Response for GET /v1/accounts/{account}/balance"""

    account: str
    balance: Decimal


class TransactionHistoryResponse(BaseModel):
    account: str
    transactions: List[TransactionSchema]


class AccountStatsResponse(BaseModel):
    """Completed totals per transaction kind alongside the derived balance"""

    account: str
    balance: Decimal
    totals_by_kind: Dict[str, Decimal]
    total_income: Decimal
    income_grant_count: int


class ReconciliationResponse(BaseModel):
    """Aggregated balance next to a row-by-row replay of the same ledger"""

    account: str
    balance: Decimal
    replayed_balance: Decimal
    consistent: bool


class DepositRequest(BaseModel):
    """Request body for POST /v1/admin/accounts/{account}/deposits"""

    amount: Decimal = Field(..., gt=0)
    note: Optional[str] = None
    external_ref: Optional[str] = None


# Products and investments

class ProductSchema(BaseModel):
    product_id: str
    title: str
    price: Decimal
    daily_income: Decimal
    duration_days: int
    level: int
    total_return: Decimal


class ProductUpsertRequest(BaseModel):
    """Request body for PUT /v1/admin/products/{product_id}"""

    title: str = Field(..., min_length=1)
    price: Decimal = Field(..., gt=0)
    daily_income: Decimal = Field(..., ge=0)
    duration_days: int = Field(..., gt=0)
    level: int = Field(1, ge=1)


class PurchaseRequest(BaseModel):
    """Request body for POST /v1/accounts/{account}/investments"""

    product_id: str = Field(..., min_length=1)


class InvestmentSchema(BaseModel):
    investment_id: str
    account: str
    product_id: str
    purchase_price: Decimal
    purchase_date: date
    funding_transaction_id: str
    days_elapsed: int
    is_active: bool
    duration_days: int
    daily_income: Decimal
    total_return: Decimal


class InvestmentListResponse(BaseModel):
    account: str
    investments: List[InvestmentSchema]


class IncomeGrantSchema(BaseModel):
    grant_id: str
    investment_id: str
    grant_date: date
    day_number: int
    amount: Decimal
    transaction_id: str

    @classmethod
    def from_row(cls, row) -> "IncomeGrantSchema":
        return cls(
            grant_id=str(row.id),
            investment_id=str(row.investment_id),
            grant_date=row.grant_date,
            day_number=row.day_number,
            amount=row.amount,
            transaction_id=row.transaction_id,
        )


class IncomeHistoryResponse(BaseModel):
    account: str
    total_income: Decimal
    grant_count: int
    grants: List[IncomeGrantSchema]


class InvestmentIncomeResponse(BaseModel):
    investment_id: str
    grants: List[IncomeGrantSchema]


# Withdrawals

class WithdrawalSubmitRequest(BaseModel):
    """Request body for POST /v1/accounts/{account}/withdrawals"""

    amount: Decimal
    credential: str = Field(..., min_length=1, description="Withdrawal password")
    payout_method_id: str = Field(..., min_length=1)


class WithdrawalSchema(BaseModel):
    request_id: str
    account: str
    requested_amount: Decimal
    tax: Decimal
    net_amount: Decimal
    status: str
    request_date: date
    funding_transaction_id: str
    refund_transaction_id: Optional[str] = None
    payout_method_id: str
    payout_type: str
    payout_destination: str
    external_ref: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "WithdrawalSchema":
        return cls(
            request_id=str(row.id),
            account=row.account,
            requested_amount=row.requested_amount,
            tax=row.tax,
            net_amount=row.net_amount,
            status=row.status.value,
            request_date=row.request_date,
            funding_transaction_id=row.funding_transaction_id,
            refund_transaction_id=row.refund_transaction_id,
            payout_method_id=row.payout_method_id,
            payout_type=row.payout_type,
            payout_destination=row.payout_destination,
            external_ref=row.external_ref,
            admin_notes=row.admin_notes,
            reviewed_by=row.reviewed_by,
            reviewed_at=row.reviewed_at,
            created_at=row.created_at,
        )


class WithdrawalListResponse(BaseModel):
    withdrawals: List[WithdrawalSchema]


class AllowanceResponse(BaseModel):
    """Response for GET /v1/accounts/{account}/withdrawals/allowance"""

    account: str
    daily_limit: Decimal
    used_today: Decimal
    remaining_today: Decimal
    minimum_amount: Decimal
    tax_rate: Decimal
    window_open: time
    window_close: time
    window_open_now: bool


class WithdrawalApproveRequest(BaseModel):
    external_ref: Optional[str] = Field(None, description="Payout reference (UTR); completes the request when given")
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


class WithdrawalCompleteRequest(BaseModel):
    external_ref: Optional[str] = None
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


class RejectRequest(BaseModel):
    reason: Optional[str] = None
    reviewed_by: Optional[str] = None


# Recharges

class RechargeSubmitRequest(BaseModel):
    """Request body for POST /v1/accounts/{account}/recharges"""

    amount: Decimal = Field(..., gt=0)
    utr: str = Field(..., min_length=1, description="Bank transfer reference")


class RechargeSchema(BaseModel):
    recharge_id: str
    account: str
    amount: Decimal
    utr: str
    status: str
    approved_amount: Optional[Decimal] = None
    deposit_transaction_id: Optional[str] = None
    admin_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "RechargeSchema":
        return cls(
            recharge_id=str(row.id),
            account=row.account,
            amount=row.amount,
            utr=row.utr,
            status=row.status.value,
            approved_amount=row.approved_amount,
            deposit_transaction_id=row.deposit_transaction_id,
            admin_notes=row.admin_notes,
            reviewed_by=row.reviewed_by,
            reviewed_at=row.reviewed_at,
            created_at=row.created_at,
        )


class RechargeListResponse(BaseModel):
    recharges: List[RechargeSchema]


class RechargeApproveRequest(BaseModel):
    approved_amount: Optional[Decimal] = Field(None, gt=0, description="Defaults to the requested amount")
    reviewed_by: Optional[str] = None
    notes: Optional[str] = None


# Referrals

class ReferrerAssignRequest(BaseModel):
    """Request body for PUT /v1/accounts/{account}/referrer"""

    referrer: str = Field(..., min_length=1)


class ReferralLinkSchema(BaseModel):
    account: str
    referrer: str
    created_at: datetime


class ReferralRewardSchema(BaseModel):
    reward_id: str
    referrer_account: str
    referred_account: str
    amount: Decimal
    purchase_amount: Decimal
    status: str
    triggering_transaction_id: str
    reward_transaction_id: str
    withdrawn_at: Optional[datetime] = None
    created_at: datetime

    @classmethod
    def from_row(cls, row) -> "ReferralRewardSchema":
        return cls(
            reward_id=str(row.id),
            referrer_account=row.referrer_account,
            referred_account=row.referred_account,
            amount=row.amount,
            purchase_amount=row.purchase_amount,
            status=row.status.value,
            triggering_transaction_id=row.triggering_transaction_id,
            reward_transaction_id=row.reward_transaction_id,
            withdrawn_at=row.withdrawn_at,
            created_at=row.created_at,
        )


class ReferralSummaryResponse(BaseModel):
    """Referred accounts plus reward totals split Completed vs Withdrawn"""

    account: str
    referred_accounts: List[ReferralLinkSchema]
    completed_amount: Decimal
    completed_count: int
    withdrawn_amount: Decimal
    withdrawn_count: int
    total_amount: Decimal


class ReferralRewardListResponse(BaseModel):
    account: str
    rewards: List[ReferralRewardSchema]


# Accrual

class AccrualRunRequest(BaseModel):
    """Request body for POST /v1/admin/accrual/run"""

    grant_date: Optional[date] = Field(None, description="Platform-local day to accrue; defaults to today")


class AccrualSummarySchema(BaseModel):
    grant_date: date
    checked: int
    granted: int
    skipped: int
    duplicates: int
    failed: int
    total_amount: Decimal
