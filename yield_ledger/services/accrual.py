"""Daily accrual engine - credits each active investment once per platform day"""

import logging
import time
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from yield_ledger.config import settings
from yield_ledger.domain import accrual
from yield_ledger.domain.balance import to_money
from yield_ledger.domain.collaborators import ProductCatalog
from yield_ledger.domain.exceptions import InvestmentNotFound, ProductNotFound
from yield_ledger.domain.models import (
    AccrualSummary,
    IncomeTotals,
    TransactionKind,
    TransactionStatus,
)
from yield_ledger.infrastructure.database.models import IncomeGrant
from yield_ledger.infrastructure.database.repositories import (
    IncomeGrantRepository,
    InvestmentRepository,
    ProductRepository,
    insert_unless_conflict,
)
from yield_ledger.infrastructure.observability.logging import log_accrual_summary
from yield_ledger.infrastructure.observability.metrics import (
    accrual_run_duration_histogram,
    record_accrual_summary,
)
from yield_ledger.services.ledger import LedgerService
from yield_ledger.utils.date_utils import generate_date_range, platform_date

logger = logging.getLogger(__name__)

GRANTED = "granted"
SKIPPED = "skipped"
DUPLICATE = "duplicate"


def income_transaction_id(investment_id, grant_date: date) -> str:
    return f"INC-{investment_id.hex}-{grant_date:%Y%m%d}"


class AccrualEngine:
    """
    Grants one day of income to every active investment.

    Each investment is settled in its own database transaction, so one bad
    position never blocks the rest of the run. The unique
    (investment_id, grant_date) constraint on income_grant decides which of
    several concurrent or repeated runs appends the credit.
    """

    def __init__(
        self,
        db: Session,
        catalog: Optional[ProductCatalog] = None,
        ledger: Optional[LedgerService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tz_name: Optional[str] = None,
    ):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz_name = tz_name or settings.platform_timezone
        self.catalog = catalog or ProductRepository(db)
        self.ledger = ledger or LedgerService(db, clock=self.clock)
        self.products = ProductRepository(db)
        self.investments = InvestmentRepository(db)
        self.grants = IncomeGrantRepository(db)

    def today(self) -> date:
        return platform_date(self.clock(), self.tz_name)

    def run(self, grant_date: Optional[date] = None) -> AccrualSummary:
        """
        Accrue income for grant_date (default: the current platform day).

        Safe to run any number of times for the same date: investments that
        already hold a grant are counted as duplicates and nothing is appended.
        """
        grant_date = grant_date or self.today()
        summary = AccrualSummary(grant_date=grant_date, total_amount=Decimal("0.00"))
        start_time = time.time()

        candidates = self.investments.accrual_candidates(grant_date, self.products.max_duration_days())
        investment_ids = [inv.id for inv in candidates]
        logger.info(
            "Accrual run started",
            extra={"step": "accrual_start", "grant_date": grant_date.isoformat(), "candidates": len(investment_ids)},
        )

        for investment_id in investment_ids:
            summary.checked += 1
            try:
                outcome, amount = self._accrue(investment_id, grant_date)
                self.db.commit()
            except Exception as e:
                self.db.rollback()
                summary.failed += 1
                logger.error(
                    "Accrual failed for investment",
                    extra={
                        "investment_id": str(investment_id),
                        "grant_date": grant_date.isoformat(),
                        "error": str(e),
                    },
                )
                continue

            if outcome == GRANTED:
                summary.granted += 1
                summary.total_amount = to_money(summary.total_amount + amount)
            elif outcome == DUPLICATE:
                summary.duplicates += 1
            else:
                summary.skipped += 1

        elapsed = time.time() - start_time
        accrual_run_duration_histogram.observe(elapsed)
        record_accrual_summary(summary.granted, summary.skipped, summary.duplicates, summary.failed)
        log_accrual_summary(summary, round(elapsed * 1000, 2))
        return summary

    def backfill(self, start: date, end: date) -> List[AccrualSummary]:
        """Run the accrual for every day from start to end inclusive, in order"""
        return [self.run(day) for day in generate_date_range(start, end)]

    def _accrue(self, investment_id, grant_date: date):
        investment = self.investments.get(investment_id)
        if investment is None:
            raise InvestmentNotFound(f"Investment {investment_id} not found")

        product = self.catalog.get_product(investment.product_id)
        if product is None:
            raise ProductNotFound(f"Product {investment.product_id} not found")

        if product.daily_income <= 0:
            return SKIPPED, None

        funding = self.ledger.transactions.get(investment.funding_transaction_id)
        if funding is None or TransactionStatus(funding.status) != TransactionStatus.COMPLETED:
            return SKIPPED, None

        if not accrual.is_active(investment.purchase_date, product.duration_days, grant_date):
            return SKIPPED, None

        day = accrual.day_number(investment.purchase_date, grant_date)
        transaction_id = income_transaction_id(investment.id, grant_date)
        grant = IncomeGrant(
            account=investment.account,
            investment_id=investment.id,
            grant_date=grant_date,
            day_number=day,
            amount=product.daily_income,
            transaction_id=transaction_id,
            created_at=self.clock(),
        )
        if not insert_unless_conflict(self.db, grant):
            logger.debug(
                "Income already granted",
                extra={"investment_id": str(investment.id), "grant_date": grant_date.isoformat()},
            )
            return DUPLICATE, None

        self.ledger.append(
            account=investment.account,
            kind=TransactionKind.CREDIT_DEPOSIT,
            amount=product.daily_income,
            transaction_id=transaction_id,
            metadata={
                "source": "daily_income",
                "investmentId": str(investment.id),
                "productId": product.product_id,
                "grantDate": grant_date.isoformat(),
                "dayNumber": day,
                "totalDays": product.duration_days,
            },
            description=f"Day {day}/{product.duration_days} income from {product.title}",
        )
        return GRANTED, product.daily_income

    def income_for_investment(self, investment_id) -> List[IncomeGrant]:
        if self.investments.get(investment_id) is None:
            raise InvestmentNotFound(f"Investment {investment_id} not found")
        return self.grants.list_by_investment(investment_id)

    def income_for_account(self, account: str, limit: int = 50, offset: int = 0) -> List[IncomeGrant]:
        return self.grants.list_by_account(account, limit=limit, offset=offset)

    def totals(self, account: str) -> IncomeTotals:
        total, count = self.grants.totals(account)
        return IncomeTotals(account=account, total_income=total, grant_count=count)
