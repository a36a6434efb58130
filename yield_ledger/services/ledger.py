"""Ledger store API - append-only writes and derived balances"""

import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from yield_ledger.domain.balance import fold_balance, require_positive
from yield_ledger.domain.exceptions import TransactionNotFound
from yield_ledger.domain.models import (
    TRANSACTION_TRANSITIONS,
    TransactionKind,
    TransactionStatus,
    check_transition,
)
from yield_ledger.infrastructure.database.models import LedgerTransaction
from yield_ledger.infrastructure.database.repositories import TransactionRepository, insert_unless_conflict
from yield_ledger.infrastructure.observability.metrics import record_ledger_append

logger = logging.getLogger(__name__)

ID_PREFIXES = {
    TransactionKind.CREDIT_DEPOSIT: "DEP",
    TransactionKind.CREDIT_REFERRAL: "RFL",
    TransactionKind.DEBIT_WITHDRAWAL: "WTH",
    TransactionKind.DEBIT_PURCHASE: "PUR",
}


def new_transaction_id(kind: TransactionKind) -> str:
    return f"{ID_PREFIXES[kind]}-{uuid.uuid4().hex}"


class LedgerService:
    """
    Single write path into the ledger.

    append() is idempotent on the transaction id: re-appending an id that
    already exists returns the stored row untouched. Nothing in this class
    edits amount, kind or account; corrections are new offsetting rows.
    """

    def __init__(self, db: Session, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.transactions = TransactionRepository(db)
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def append(
        self,
        account: str,
        kind: TransactionKind,
        amount,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        transaction_id: Optional[str] = None,
        external_ref: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
    ) -> LedgerTransaction:
        amount = require_positive(amount)
        transaction_id = transaction_id or new_transaction_id(kind)

        existing = self.transactions.get(transaction_id)
        if existing is not None:
            logger.debug(
                "Ledger append replayed",
                extra={"transaction_id": transaction_id, "account": existing.account},
            )
            return existing

        row = LedgerTransaction(
            id=transaction_id,
            account=account,
            kind=kind,
            amount=amount,
            status=status,
            external_ref=external_ref,
            details=dict(metadata or {}),
            description=description,
            created_at=self.clock(),
        )
        if not insert_unless_conflict(self.db, row):
            # A concurrent writer appended the same id first
            return self.transactions.get(transaction_id)

        record_ledger_append(kind.value)
        logger.debug(
            "Ledger transaction appended",
            extra={
                "transaction_id": transaction_id,
                "account": account,
                "kind": kind.value,
                "amount": str(amount),
                "status": status.value,
            },
        )
        return row

    def get(self, transaction_id: str) -> LedgerTransaction:
        row = self.transactions.get(transaction_id)
        if row is None:
            raise TransactionNotFound(f"Transaction {transaction_id} not found")
        return row

    def transition_status(self, transaction_id: str, new_status: TransactionStatus) -> LedgerTransaction:
        """Move a pending transaction to completed, failed or cancelled, exactly once"""
        row = self.transactions.get_for_update(transaction_id)
        if row is None:
            raise TransactionNotFound(f"Transaction {transaction_id} not found")
        check_transition(TRANSACTION_TRANSITIONS, TransactionStatus(row.status), new_status, f"Transaction {transaction_id}")
        row.status = new_status
        row.status_changed_at = self.clock()
        self.db.flush()
        logger.info(
            "Ledger transaction status changed",
            extra={"transaction_id": transaction_id, "status": new_status.value},
        )
        return row

    def balance_of(self, account: str) -> Decimal:
        return self.transactions.balance_of(account)

    def replay_balance(self, account: str) -> Decimal:
        """Recompute the balance row by row; must always equal balance_of()"""
        return fold_balance(self.transactions.all_for(account))

    def history(self, account: str, **filters) -> List[LedgerTransaction]:
        return self.transactions.history(account, **filters)

    def totals_by_kind(self, account: str) -> Dict[TransactionKind, Decimal]:
        return self.transactions.totals_by_kind(account)

    def record_deposit(
        self,
        account: str,
        amount,
        source: str = "admin_adjustment",
        external_ref: Optional[str] = None,
        transaction_id: Optional[str] = None,
        description: Optional[str] = None,
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> LedgerTransaction:
        """Completed Credit-Deposit; used for recharges, refunds and admin corrections"""
        metadata = {"source": source}
        metadata.update(extra_metadata or {})
        return self.append(
            account=account,
            kind=TransactionKind.CREDIT_DEPOSIT,
            amount=amount,
            transaction_id=transaction_id,
            external_ref=external_ref,
            metadata=metadata,
            description=description,
        )
