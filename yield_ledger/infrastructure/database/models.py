"""SQLAlchemy ORM models for the ledger, investments and their idempotency records"""

import uuid
from datetime import datetime, timezone
from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import declarative_base, relationship

from yield_ledger.domain.models import (
    RechargeStatus,
    RewardStatus,
    TransactionKind,
    TransactionStatus,
    WithdrawalStatus,
)

Base = declarative_base()

MONEY = Numeric(18, 2)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _status_enum(enum_cls, name: str) -> Enum:
    # Stored as plain strings so adding a variant needs no ALTER TYPE
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=32,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


class LedgerTransaction(Base):
    """
    Append-only money movement. The only persisted source of monetary truth.

    Once written, account/kind/amount/metadata never change (see immutability.py);
    status moves at most once out of pending.
    """

    __tablename__ = "ledger_transaction"

    id = Column(Text, primary_key=True)
    account = Column(Text, nullable=False)
    kind = Column(_status_enum(TransactionKind, "transaction_kind"), nullable=False)
    amount = Column(MONEY, nullable=False)
    status = Column(_status_enum(TransactionStatus, "transaction_status"), nullable=False)
    external_ref = Column(Text, nullable=True)
    details = Column("metadata", JSON, nullable=False, default=dict)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    status_changed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_ledger_transaction_amount_positive"),
        Index("ix_ledger_transaction_account_created", "account", "created_at"),
        Index("ix_ledger_transaction_account_status", "account", "status"),
    )


class Product(Base):
    """Catalog entry describing an income-generating product"""

    __tablename__ = "product"

    id = Column(Text, primary_key=True)
    title = Column(Text, nullable=False)
    price = Column(MONEY, nullable=False)
    daily_income = Column(MONEY, nullable=False)
    duration_days = Column(Integer, nullable=False)
    level = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        CheckConstraint("price > 0", name="ck_product_price_positive"),
        CheckConstraint("duration_days > 0", name="ck_product_duration_positive"),
    )


class Investment(Base):
    """Purchased position; active while daysElapsed < product.duration_days"""

    __tablename__ = "investment"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account = Column(Text, nullable=False, index=True)
    product_id = Column(Text, ForeignKey("product.id"), nullable=False)
    purchase_price = Column(MONEY, nullable=False)
    purchase_date = Column(Date, nullable=False)
    funding_transaction_id = Column(
        Text, ForeignKey("ledger_transaction.id"), nullable=False, unique=True
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    product = relationship("Product")
    funding_transaction = relationship("LedgerTransaction")
    grants = relationship("IncomeGrant", back_populates="investment", order_by="IncomeGrant.grant_date")

    __table_args__ = (
        UniqueConstraint("account", "product_id", name="uq_investment_account_product"),
    )


class IncomeGrant(Base):
    """
    Accrual idempotency record. The unique (investment_id, grant_date) pair is
    the gate that guarantees at most one income credit per investment per day.
    """

    __tablename__ = "income_grant"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account = Column(Text, nullable=False, index=True)
    investment_id = Column(UUID(as_uuid=True), ForeignKey("investment.id"), nullable=False)
    grant_date = Column(Date, nullable=False)
    day_number = Column(Integer, nullable=False)
    amount = Column(MONEY, nullable=False)
    transaction_id = Column(Text, nullable=False, unique=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    investment = relationship("Investment", back_populates="grants")

    __table_args__ = (
        UniqueConstraint("investment_id", "grant_date", name="uq_income_grant_investment_date"),
    )


class ReferralLink(Base):
    """Permanent referrer of an account, recorded once at account creation"""

    __tablename__ = "referral_link"

    account = Column(Text, primary_key=True)
    referrer = Column(Text, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


class ReferralReward(Base):
    """One-time reward; unique per (referrer, referred) pair"""

    __tablename__ = "referral_reward"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    referrer_account = Column(Text, nullable=False, index=True)
    referred_account = Column(Text, nullable=False)
    triggering_transaction_id = Column(Text, ForeignKey("ledger_transaction.id"), nullable=False)
    reward_transaction_id = Column(Text, nullable=False, unique=True)
    amount = Column(MONEY, nullable=False)
    purchase_amount = Column(MONEY, nullable=False)
    status = Column(_status_enum(RewardStatus, "reward_status"), nullable=False, default=RewardStatus.COMPLETED)
    withdrawn_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        UniqueConstraint("referrer_account", "referred_account", name="uq_referral_reward_pair"),
    )


class WithdrawalRequest(Base):
    """Payout awaiting human settlement; funds were reserved by funding_transaction_id"""

    __tablename__ = "withdrawal_request"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account = Column(Text, nullable=False, index=True)
    requested_amount = Column(MONEY, nullable=False)
    tax = Column(MONEY, nullable=False)
    net_amount = Column(MONEY, nullable=False)
    status = Column(_status_enum(WithdrawalStatus, "withdrawal_status"), nullable=False)
    request_date = Column(Date, nullable=False)
    funding_transaction_id = Column(Text, ForeignKey("ledger_transaction.id"), nullable=False, unique=True)
    refund_transaction_id = Column(Text, ForeignKey("ledger_transaction.id"), nullable=True)
    payout_method_id = Column(Text, nullable=False)
    payout_type = Column(Text, nullable=False)
    payout_destination = Column(Text, nullable=False)
    external_ref = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    funding_transaction = relationship("LedgerTransaction", foreign_keys=[funding_transaction_id])

    __table_args__ = (
        Index("ix_withdrawal_request_account_date", "account", "request_date"),
    )


class RechargeRequest(Base):
    """Deposit claim backed by a bank reference (UTR), settled by an admin"""

    __tablename__ = "recharge_request"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    account = Column(Text, nullable=False, index=True)
    amount = Column(MONEY, nullable=False)
    utr = Column(Text, nullable=False, unique=True)
    status = Column(_status_enum(RechargeStatus, "recharge_status"), nullable=False)
    approved_amount = Column(MONEY, nullable=True)
    deposit_transaction_id = Column(Text, ForeignKey("ledger_transaction.id"), nullable=True)
    admin_notes = Column(Text, nullable=True)
    reviewed_by = Column(Text, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
