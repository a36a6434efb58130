"""Data access layer for ledger, investment, referral and request entities"""

import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
from sqlalchemy import case, func, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from yield_ledger.domain.balance import to_money
from yield_ledger.domain.models import (
    CREDIT_KINDS,
    Product as CatalogProduct,
    RechargeStatus,
    RewardStatus,
    TransactionKind,
    TransactionStatus,
    WithdrawalStatus,
)
from yield_ledger.infrastructure.database.models import (
    IncomeGrant,
    Investment,
    LedgerTransaction,
    Product,
    RechargeRequest,
    ReferralLink,
    ReferralReward,
    WithdrawalRequest,
)


def insert_unless_conflict(db: Session, row) -> bool:
    """
    Insert row inside a savepoint.

    Returns False when a unique constraint rejects it; the surrounding
    transaction is left intact. This is the insert-and-detect-conflict gate
    used instead of check-then-insert.
    """
    try:
        with db.begin_nested():
            db.add(row)
            db.flush()
    except IntegrityError:
        return False
    return True


def _locked(query):
    """
    Row-locked single read for a status transition.

    SELECT ... FOR UPDATE makes a second reviewer wait for the first to
    commit; populate_existing() then overwrites any copy already in the
    identity map, so the status checked is the committed one.
    """
    return query.populate_existing().with_for_update().one_or_none()


class TransactionRepository:
    """Append/read access to the ledger. There is deliberately no update method."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, transaction_id: str) -> Optional[LedgerTransaction]:
        return self.db.get(LedgerTransaction, transaction_id)

    def get_for_update(self, transaction_id: str) -> Optional[LedgerTransaction]:
        return _locked(self.db.query(LedgerTransaction).filter(LedgerTransaction.id == transaction_id))

    def lock_account(self, account: str) -> None:
        """
        Serialize balance-debiting writes of one account until commit.

        On PostgreSQL a transaction-scoped advisory lock is taken so the
        balance and daily-cap reads of a second writer observe the first
        writer's debit. SQLite already serializes writers.
        """
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:account))"), {"account": account})

    def balance_of(self, account: str) -> Decimal:
        """Signed sum over Completed rows, computed by the database"""
        signed = case(
            (LedgerTransaction.kind.in_(list(CREDIT_KINDS)), LedgerTransaction.amount),
            else_=-LedgerTransaction.amount,
        )
        total = (
            self.db.query(func.coalesce(func.sum(signed), 0))
            .filter(
                LedgerTransaction.account == account,
                LedgerTransaction.status == TransactionStatus.COMPLETED,
            )
            .scalar()
        )
        return to_money(total)

    def totals_by_kind(self, account: str) -> Dict[TransactionKind, Decimal]:
        rows = (
            self.db.query(LedgerTransaction.kind, func.sum(LedgerTransaction.amount))
            .filter(
                LedgerTransaction.account == account,
                LedgerTransaction.status == TransactionStatus.COMPLETED,
            )
            .group_by(LedgerTransaction.kind)
            .all()
        )
        totals = {kind: Decimal("0.00") for kind in TransactionKind}
        for kind, amount in rows:
            totals[TransactionKind(kind)] = to_money(amount)
        return totals

    def history(
        self,
        account: str,
        kinds: Optional[Iterable[TransactionKind]] = None,
        statuses: Optional[Iterable[TransactionStatus]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[LedgerTransaction]:
        """Newest first; start is inclusive, end exclusive"""
        query = self.db.query(LedgerTransaction).filter(LedgerTransaction.account == account)
        if kinds:
            query = query.filter(LedgerTransaction.kind.in_(list(kinds)))
        if statuses:
            query = query.filter(LedgerTransaction.status.in_(list(statuses)))
        if start is not None:
            query = query.filter(LedgerTransaction.created_at >= start)
        if end is not None:
            query = query.filter(LedgerTransaction.created_at < end)
        return (
            query.order_by(LedgerTransaction.created_at.desc(), LedgerTransaction.id)
            .offset(offset)
            .limit(limit)
            .all()
        )

    def all_for(self, account: str) -> List[LedgerTransaction]:
        return (
            self.db.query(LedgerTransaction)
            .filter(LedgerTransaction.account == account)
            .order_by(LedgerTransaction.created_at)
            .all()
        )


class ProductRepository:
    """DB-backed product catalog"""

    def __init__(self, db: Session):
        self.db = db

    def get(self, product_id: str) -> Optional[Product]:
        return self.db.get(Product, product_id)

    def max_duration_days(self) -> Optional[int]:
        return self.db.query(func.max(Product.duration_days)).scalar()

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        row = self.get(product_id)
        if row is None:
            return None
        return CatalogProduct(
            product_id=row.id,
            title=row.title,
            price=to_money(row.price),
            daily_income=to_money(row.daily_income),
            duration_days=row.duration_days,
            level=row.level,
        )

    def upsert(self, product: CatalogProduct) -> Product:
        row = self.get(product.product_id)
        if row is None:
            row = Product(id=product.product_id)
            self.db.add(row)
        row.title = product.title
        row.price = product.price
        row.daily_income = product.daily_income
        row.duration_days = product.duration_days
        row.level = product.level
        self.db.flush()
        return row

    def list_all(self) -> List[Product]:
        return self.db.query(Product).order_by(Product.level, Product.price).all()


class InvestmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, investment_id: uuid.UUID) -> Optional[Investment]:
        return self.db.get(Investment, investment_id)

    def find(self, account: str, product_id: str) -> Optional[Investment]:
        return (
            self.db.query(Investment)
            .filter(Investment.account == account, Investment.product_id == product_id)
            .first()
        )

    def list_by_account(self, account: str) -> List[Investment]:
        return (
            self.db.query(Investment)
            .filter(Investment.account == account)
            .order_by(Investment.purchase_date.desc(), Investment.created_at.desc())
            .all()
        )

    def accrual_candidates(self, on_date: date, max_duration_days: Optional[int] = None) -> List[Investment]:
        """
        Investments purchased on or before on_date that may still be active.

        An investment is active while days elapsed < duration, so anything
        bought max_duration_days or more before on_date has expired whatever
        its product.
        """
        query = self.db.query(Investment).filter(Investment.purchase_date <= on_date)
        if max_duration_days is not None:
            query = query.filter(Investment.purchase_date > on_date - timedelta(days=max_duration_days))
        return query.order_by(Investment.purchase_date, Investment.id).all()


class IncomeGrantRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_by_investment(self, investment_id: uuid.UUID) -> List[IncomeGrant]:
        return (
            self.db.query(IncomeGrant)
            .filter(IncomeGrant.investment_id == investment_id)
            .order_by(IncomeGrant.grant_date)
            .all()
        )

    def list_by_account(self, account: str, limit: int = 50, offset: int = 0) -> List[IncomeGrant]:
        return (
            self.db.query(IncomeGrant)
            .filter(IncomeGrant.account == account)
            .order_by(IncomeGrant.grant_date.desc(), IncomeGrant.created_at.desc())
            .offset(offset)
            .limit(limit)
            .all()
        )

    def totals(self, account: str) -> tuple[Decimal, int]:
        total, count = (
            self.db.query(func.coalesce(func.sum(IncomeGrant.amount), 0), func.count(IncomeGrant.id))
            .filter(IncomeGrant.account == account)
            .one()
        )
        return to_money(total), count


class ReferralRepository:
    def __init__(self, db: Session):
        self.db = db

    def referrer_of(self, account: str) -> Optional[str]:
        link = self.db.get(ReferralLink, account)
        return link.referrer if link else None

    def referred_by(self, referrer: str) -> List[ReferralLink]:
        return (
            self.db.query(ReferralLink)
            .filter(ReferralLink.referrer == referrer)
            .order_by(ReferralLink.created_at.desc())
            .all()
        )

    def rewards_for(self, referrer: str) -> List[ReferralReward]:
        return (
            self.db.query(ReferralReward)
            .filter(ReferralReward.referrer_account == referrer)
            .order_by(ReferralReward.created_at.desc())
            .all()
        )

    def totals_by_status(self, referrer: str) -> Dict[RewardStatus, tuple[Decimal, int]]:
        rows = (
            self.db.query(
                ReferralReward.status,
                func.sum(ReferralReward.amount),
                func.count(ReferralReward.id),
            )
            .filter(ReferralReward.referrer_account == referrer)
            .group_by(ReferralReward.status)
            .all()
        )
        totals = {status: (Decimal("0.00"), 0) for status in RewardStatus}
        for status, amount, count in rows:
            totals[RewardStatus(status)] = (to_money(amount), count)
        return totals


class WithdrawalRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, request_id: uuid.UUID) -> Optional[WithdrawalRequest]:
        return self.db.get(WithdrawalRequest, request_id)

    def get_for_update(self, request_id: uuid.UUID) -> Optional[WithdrawalRequest]:
        return _locked(self.db.query(WithdrawalRequest).filter(WithdrawalRequest.id == request_id))

    def add(self, row: WithdrawalRequest) -> WithdrawalRequest:
        self.db.add(row)
        self.db.flush()
        return row

    def used_on(self, account: str, request_date: date) -> Decimal:
        """Sum of every submission of the day, whatever its settlement outcome"""
        total = (
            self.db.query(func.coalesce(func.sum(WithdrawalRequest.requested_amount), 0))
            .filter(
                WithdrawalRequest.account == account,
                WithdrawalRequest.request_date == request_date,
            )
            .scalar()
        )
        return to_money(total)

    def list_by_account(self, account: str, limit: int = 50) -> List[WithdrawalRequest]:
        return (
            self.db.query(WithdrawalRequest)
            .filter(WithdrawalRequest.account == account)
            .order_by(WithdrawalRequest.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_by_status(self, status: Optional[WithdrawalStatus] = None, limit: int = 50, offset: int = 0) -> List[WithdrawalRequest]:
        query = self.db.query(WithdrawalRequest)
        if status is not None:
            query = query.filter(WithdrawalRequest.status == status)
        return query.order_by(WithdrawalRequest.created_at.desc()).offset(offset).limit(limit).all()


class RechargeRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, request_id: uuid.UUID) -> Optional[RechargeRequest]:
        return self.db.get(RechargeRequest, request_id)

    def get_for_update(self, request_id: uuid.UUID) -> Optional[RechargeRequest]:
        return _locked(self.db.query(RechargeRequest).filter(RechargeRequest.id == request_id))

    def list_by_account(self, account: str, limit: int = 50) -> List[RechargeRequest]:
        return (
            self.db.query(RechargeRequest)
            .filter(RechargeRequest.account == account)
            .order_by(RechargeRequest.created_at.desc())
            .limit(limit)
            .all()
        )

    def list_by_status(self, status: Optional[RechargeStatus] = None, limit: int = 50, offset: int = 0) -> List[RechargeRequest]:
        query = self.db.query(RechargeRequest)
        if status is not None:
            query = query.filter(RechargeRequest.status == status)
        return query.order_by(RechargeRequest.created_at.desc()).offset(offset).limit(limit).all()
