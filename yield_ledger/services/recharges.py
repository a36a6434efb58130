"""Recharge requests - deposits claimed against a bank reference and settled by an admin"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from yield_ledger.domain.balance import require_positive
from yield_ledger.domain.exceptions import DuplicateRechargeReference, RechargeNotFound
from yield_ledger.domain.models import RECHARGE_TRANSITIONS, RechargeStatus, check_transition
from yield_ledger.infrastructure.database.models import RechargeRequest
from yield_ledger.infrastructure.database.repositories import RechargeRepository, insert_unless_conflict
from yield_ledger.services.ledger import LedgerService

logger = logging.getLogger(__name__)


class RechargeService:
    def __init__(
        self,
        db: Session,
        ledger: Optional[LedgerService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.db = db
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.ledger = ledger or LedgerService(db, clock=self.clock)
        self.recharges = RechargeRepository(db)

    def submit(self, account: str, amount, utr: str) -> RechargeRequest:
        amount = require_positive(amount)
        utr = utr.strip()
        request = RechargeRequest(
            id=uuid.uuid4(),
            account=account,
            amount=amount,
            utr=utr,
            status=RechargeStatus.PENDING,
            created_at=self.clock(),
        )
        # UTR uniqueness is enforced by the table, not by a lookup
        if not insert_unless_conflict(self.db, request):
            raise DuplicateRechargeReference(f"UTR {utr} has already been submitted")
        logger.info(
            "Recharge submitted",
            extra={"recharge_id": str(request.id), "account": account, "amount": str(amount)},
        )
        return request

    def get(self, request_id, for_update: bool = False) -> RechargeRequest:
        if for_update:
            request = self.recharges.get_for_update(request_id)
        else:
            request = self.recharges.get(request_id)
        if request is None:
            raise RechargeNotFound(f"Recharge request {request_id} not found")
        return request

    def approve(
        self,
        request_id,
        approved_amount=None,
        reviewed_by: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> RechargeRequest:
        """Pending -> Approved, crediting approved_amount (defaults to the requested amount)"""
        request = self.get(request_id, for_update=True)
        self._move(request, RechargeStatus.APPROVED, reviewed_by, notes)
        amount = require_positive(approved_amount if approved_amount is not None else request.amount)

        deposit = self.ledger.record_deposit(
            account=request.account,
            amount=amount,
            source="recharge",
            external_ref=request.utr,
            transaction_id=f"RCH-{request.id.hex}",
            description="Recharge approved",
            extra_metadata={"rechargeRequestId": str(request.id)},
        )
        request.approved_amount = amount
        request.deposit_transaction_id = deposit.id
        self.db.flush()
        return request

    def reject(self, request_id, reason: Optional[str] = None, reviewed_by: Optional[str] = None) -> RechargeRequest:
        request = self.get(request_id, for_update=True)
        self._move(request, RechargeStatus.REJECTED, reviewed_by, reason)
        self.db.flush()
        return request

    def history(self, account: str, limit: int = 50) -> List[RechargeRequest]:
        return self.recharges.list_by_account(account, limit=limit)

    def list(self, status: Optional[RechargeStatus] = None, limit: int = 50, offset: int = 0) -> List[RechargeRequest]:
        return self.recharges.list_by_status(status, limit=limit, offset=offset)

    def _move(self, request: RechargeRequest, new_status: RechargeStatus, reviewed_by, notes) -> None:
        current = RechargeStatus(request.status)
        check_transition(RECHARGE_TRANSITIONS, current, new_status, f"Recharge request {request.id}")
        request.status = new_status
        request.reviewed_at = self.clock()
        request.reviewed_by = reviewed_by
        request.admin_notes = notes
        logger.info(
            "Recharge request reviewed",
            extra={
                "recharge_id": str(request.id),
                "account": request.account,
                "status": new_status.value,
                "reviewed_by": reviewed_by,
            },
        )
