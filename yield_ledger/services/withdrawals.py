"""Withdrawal policy engine and admin settlement of withdrawal requests"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from yield_ledger.config import settings
from yield_ledger.domain import withdrawal_policy as rules
from yield_ledger.domain.balance import require_positive, to_money
from yield_ledger.domain.collaborators import CredentialVerifier, PayoutMethodDirectory
from yield_ledger.domain.exceptions import (
    InvalidAmount,
    InvalidCredential,
    NoPayoutMethod,
    WithdrawalNotFound,
    WithdrawalRejected,
)
from yield_ledger.domain.models import (
    WITHDRAWAL_TRANSITIONS,
    TransactionKind,
    WithdrawalAllowance,
    WithdrawalPolicy,
    WithdrawalStatus,
    check_transition,
)
from yield_ledger.infrastructure.database.models import WithdrawalRequest
from yield_ledger.infrastructure.database.repositories import WithdrawalRepository
from yield_ledger.infrastructure.observability.logging import log_withdrawal_outcome
from yield_ledger.infrastructure.observability.metrics import (
    record_withdrawal,
    withdrawal_settlement_counter,
)
from yield_ledger.services.ledger import LedgerService
from yield_ledger.utils.date_utils import to_platform_time

logger = logging.getLogger(__name__)


def policy_from_settings() -> WithdrawalPolicy:
    return WithdrawalPolicy(
        minimum_amount=to_money(settings.withdrawal_min_amount),
        daily_limit=to_money(settings.withdrawal_daily_limit),
        tax_rate=settings.withdrawal_tax_rate,
        window_open=settings.withdrawal_window_open,
        window_close=settings.withdrawal_window_close,
        blocked_weekdays=frozenset(settings.withdrawal_blocked_weekdays),
    )


def refund_transaction_id(request_id: uuid.UUID) -> str:
    return f"REF-{request_id.hex}"


class WithdrawalService:
    """
    Accepts withdrawal requests against the derived balance.

    Rules are checked in a fixed order and the first violation is raised.
    An accepted request debits the full amount immediately, so a second
    request from the same account sees the reduced balance and the raised
    daily usage. Rejecting a request appends a compensating credit; the
    original debit is never touched.
    """

    def __init__(
        self,
        db: Session,
        credentials: CredentialVerifier,
        payouts: PayoutMethodDirectory,
        policy: Optional[WithdrawalPolicy] = None,
        ledger: Optional[LedgerService] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tz_name: Optional[str] = None,
    ):
        self.db = db
        self.credentials = credentials
        self.payouts = payouts
        self.policy = policy or policy_from_settings()
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz_name = tz_name or settings.platform_timezone
        self.ledger = ledger or LedgerService(db, clock=self.clock)
        self.withdrawals = WithdrawalRepository(db)

    def submit(self, account: str, amount, credential: str, payout_method_id: str) -> WithdrawalRequest:
        request_id = uuid.uuid4()
        try:
            amount = require_positive(amount)
        except InvalidAmount:
            record_withdrawal("invalid_amount")
            raise

        try:
            if not self.credentials.verify_withdrawal_credential(account, credential):
                raise InvalidCredential("Withdrawal password is incorrect")

            local_now = to_platform_time(self.clock(), self.tz_name)
            rules.check_window(local_now, self.policy)
            rules.check_minimum(amount, self.policy)

            # Cap and balance reads below must see any concurrent debit of this account
            self.ledger.transactions.lock_account(account)
            request_date = local_now.date()
            used_today = self.withdrawals.used_on(account, request_date)
            rules.check_daily_limit(amount, used_today, self.policy)

            rules.check_balance(amount, self.ledger.balance_of(account))

            method = self.payouts.get_payout_method(account, payout_method_id)
            if method is None or method.account != account:
                raise NoPayoutMethod("No payout method on file for this account")
        except WithdrawalRejected as e:
            record_withdrawal(e.code)
            log_withdrawal_outcome(str(request_id), account, str(amount), e.code)
            raise

        tax, net_amount = rules.compute_tax(amount, self.policy.tax_rate)
        funding = self.ledger.append(
            account=account,
            kind=TransactionKind.DEBIT_WITHDRAWAL,
            amount=amount,
            transaction_id=f"WTH-{request_id.hex}",
            metadata={
                "source": "withdrawal",
                "withdrawalRequestId": str(request_id),
                "tax": str(tax),
                "netAmount": str(net_amount),
                "payoutMethodId": method.method_id,
                "payoutType": method.type,
            },
            description=f"Withdrawal of {amount} ({net_amount} after tax)",
        )
        request = self.withdrawals.add(
            WithdrawalRequest(
                id=request_id,
                account=account,
                requested_amount=amount,
                tax=tax,
                net_amount=net_amount,
                status=WithdrawalStatus.PENDING,
                request_date=request_date,
                funding_transaction_id=funding.id,
                payout_method_id=method.method_id,
                payout_type=method.type,
                payout_destination=method.destination,
                created_at=self.clock(),
            )
        )

        record_withdrawal("accepted")
        log_withdrawal_outcome(str(request_id), account, str(amount), "accepted")
        return request

    def allowance(self, account: str) -> WithdrawalAllowance:
        local_now = to_platform_time(self.clock(), self.tz_name)
        used_today = self.withdrawals.used_on(account, local_now.date())
        return WithdrawalAllowance(
            daily_limit=self.policy.daily_limit,
            used_today=used_today,
            remaining_today=rules.remaining_allowance(used_today, self.policy),
            minimum_amount=self.policy.minimum_amount,
            tax_rate=self.policy.tax_rate,
            window_open=self.policy.window_open,
            window_close=self.policy.window_close,
            window_open_now=rules.is_window_open(local_now, self.policy),
        )

    def get(self, request_id, for_update: bool = False) -> WithdrawalRequest:
        if for_update:
            request = self.withdrawals.get_for_update(request_id)
        else:
            request = self.withdrawals.get(request_id)
        if request is None:
            raise WithdrawalNotFound(f"Withdrawal request {request_id} not found")
        return request

    def history(self, account: str, limit: int = 50) -> List[WithdrawalRequest]:
        return self.withdrawals.list_by_account(account, limit=limit)

    def list(self, status: Optional[WithdrawalStatus] = None, limit: int = 50, offset: int = 0) -> List[WithdrawalRequest]:
        return self.withdrawals.list_by_status(status, limit=limit, offset=offset)

    def approve_withdrawal(
        self,
        request_id,
        external_ref: Optional[str] = None,
        reviewed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> WithdrawalRequest:
        """
        Pending -> Approved. When the payout reference is already known the
        request moves straight on to Completed.
        """
        request = self.get(request_id, for_update=True)
        self._move(request, WithdrawalStatus.APPROVED, reviewed_by, notes)
        if external_ref:
            self._move(request, WithdrawalStatus.COMPLETED, reviewed_by, notes)
            request.external_ref = external_ref
        self.db.flush()
        return request

    def complete_withdrawal(
        self,
        request_id,
        external_ref: Optional[str] = None,
        reviewed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> WithdrawalRequest:
        request = self.get(request_id, for_update=True)
        self._move(request, WithdrawalStatus.COMPLETED, reviewed_by, notes)
        if external_ref:
            request.external_ref = external_ref
        self.db.flush()
        return request

    def reject_withdrawal(
        self,
        request_id,
        reason: Optional[str] = None,
        reviewed_by: Optional[str] = None,
    ) -> WithdrawalRequest:
        """Release the reservation with a full, tax-free compensating credit"""
        request = self.get(request_id, for_update=True)
        self._move(request, WithdrawalStatus.REJECTED, reviewed_by, reason)

        refund = self.ledger.record_deposit(
            account=request.account,
            amount=request.requested_amount,
            source="withdrawal_refund",
            transaction_id=refund_transaction_id(request.id),
            description="Refund of rejected withdrawal",
            extra_metadata={
                "withdrawalRequestId": str(request.id),
                "reversedTransactionId": request.funding_transaction_id,
                "reason": reason,
            },
        )
        request.refund_transaction_id = refund.id
        self.db.flush()
        return request

    def _move(
        self,
        request: WithdrawalRequest,
        new_status: WithdrawalStatus,
        reviewed_by: Optional[str],
        notes: Optional[str],
    ) -> None:
        current = WithdrawalStatus(request.status)
        check_transition(WITHDRAWAL_TRANSITIONS, current, new_status, f"Withdrawal request {request.id}")
        request.status = new_status
        request.reviewed_at = self.clock()
        if reviewed_by:
            request.reviewed_by = reviewed_by
        if notes:
            request.admin_notes = notes
        withdrawal_settlement_counter.labels(status=new_status.value).inc()
        logger.info(
            "Withdrawal request status changed",
            extra={
                "withdrawal_request_id": str(request.id),
                "account": request.account,
                "from_status": current.value,
                "to_status": new_status.value,
                "reviewed_by": reviewed_by,
            },
        )
