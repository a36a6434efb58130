"""Investment purchases paid from the derived balance"""

import logging
from datetime import date, datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from yield_ledger.config import settings
from yield_ledger.domain import accrual
from yield_ledger.domain.collaborators import ProductCatalog
from yield_ledger.domain.exceptions import (
    DuplicatePurchase,
    InsufficientBalance,
    InvestmentNotFound,
    ProductNotFound,
)
from yield_ledger.domain.models import Product, TransactionKind
from yield_ledger.infrastructure.database.models import Investment
from yield_ledger.infrastructure.database.repositories import (
    InvestmentRepository,
    ProductRepository,
)
from yield_ledger.services.ledger import LedgerService
from yield_ledger.services.referrals import ReferralService
from yield_ledger.utils.date_utils import platform_date

logger = logging.getLogger(__name__)


class PurchaseService:
    """
    Buys a product for an account.

    The Debit-Purchase and the Investment it funds are flushed together in
    the caller's transaction; the referral trigger then runs against the
    completed purchase.
    """

    def __init__(
        self,
        db: Session,
        catalog: Optional[ProductCatalog] = None,
        ledger: Optional[LedgerService] = None,
        referrals: Optional[ReferralService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tz_name: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz_name = tz_name or settings.platform_timezone
        self.catalog = catalog or ProductRepository(db)
        self.ledger = ledger or LedgerService(db, clock=self.clock)
        self.referrals = referrals or ReferralService(db, ledger=self.ledger, clock=self.clock)
        self.investments = InvestmentRepository(db)

    def purchase(self, account: str, product_id: str) -> Investment:
        product = self.catalog.get_product(product_id)
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found")

        if self.investments.find(account, product_id) is not None:
            raise DuplicatePurchase(f"Product {product.title} was already purchased")

        self.ledger.transactions.lock_account(account)
        balance = self.ledger.balance_of(account)
        if balance < product.price:
            raise InsufficientBalance(
                f"Insufficient balance: {product.title} costs {product.price}, available {balance}"
            )

        now = self.clock()
        try:
            with self.db.begin_nested():
                funding = self.ledger.append(
                    account=account,
                    kind=TransactionKind.DEBIT_PURCHASE,
                    amount=product.price,
                    metadata={
                        "source": "purchase",
                        "productId": product.product_id,
                        "productTitle": product.title,
                        "level": product.level,
                    },
                    description=f"Purchase of {product.title}",
                )
                investment = Investment(
                    account=account,
                    product_id=product.product_id,
                    purchase_price=product.price,
                    purchase_date=platform_date(now, self.tz_name),
                    funding_transaction_id=funding.id,
                    created_at=now,
                )
                self.db.add(investment)
                self.db.flush()
        except IntegrityError as e:
            # Lost a race against a concurrent purchase of the same product
            raise DuplicatePurchase(f"Product {product.title} was already purchased") from e

        logger.info(
            "Investment purchased",
            extra={
                "account": account,
                "product_id": product.product_id,
                "investment_id": str(investment.id),
                "amount": str(product.price),
            },
        )

        self.referrals.on_purchase_completed(account, funding.id, product.price)
        return investment

    def get(self, investment_id) -> Investment:
        investment = self.investments.get(investment_id)
        if investment is None:
            raise InvestmentNotFound(f"Investment {investment_id} not found")
        return investment

    def list_for(self, account: str) -> List[Investment]:
        return self.investments.list_by_account(account)

    def today(self) -> date:
        return platform_date(self.clock(), self.tz_name)


def describe_position(investment: Investment, product: Product, on_date: date) -> dict:
    """Derived, never stored: days elapsed, activity and expected total return"""
    elapsed = accrual.days_elapsed(investment.purchase_date, on_date)
    return {
        "days_elapsed": elapsed,
        "is_active": accrual.is_active(investment.purchase_date, product.duration_days, on_date),
        "duration_days": product.duration_days,
        "daily_income": product.daily_income,
        "total_return": product.total_return,
    }
