"""
ORM-level guards that make ledger history impossible to rewrite.

Every flush that updates a LedgerTransaction passes through
_guard_ledger_update: any change to a recorded field raises
ImmutableTransactionError, and a status change must be an edge of
TRANSACTION_TRANSITIONS as read from the database row itself (the in-memory
value may be stale or expired). Deleting a ledger row is refused outright.

Listeners are registered when this module is imported, which session.py
does at startup.
"""

import logging

from sqlalchemy import event, inspect, select

from yield_ledger.domain.exceptions import ImmutableTransactionError, InvalidStatusTransition
from yield_ledger.domain.models import TRANSACTION_TRANSITIONS, TransactionStatus, check_transition
from yield_ledger.infrastructure.database.models import LedgerTransaction

logger = logging.getLogger(__name__)

FROZEN_FIELDS = (
    "id",
    "account",
    "kind",
    "amount",
    "external_ref",
    "details",
    "description",
    "created_at",
)


@event.listens_for(LedgerTransaction, "before_update")
def _guard_ledger_update(mapper, connection, target):
    state = inspect(target)

    for field in FROZEN_FIELDS:
        if state.attrs[field].history.has_changes():
            logger.error(
                "Blocked ledger mutation",
                extra={"transaction_id": target.id, "field": field},
            )
            raise ImmutableTransactionError(
                f"Ledger transaction {target.id}: field '{field}' is immutable"
            )

    if not state.attrs["status"].history.has_changes():
        return

    table = LedgerTransaction.__table__
    stored = connection.execute(select(table.c.status).where(table.c.id == target.id)).scalar_one()
    current = TransactionStatus(stored)
    new = TransactionStatus(target.status)
    if current == new:
        return
    try:
        check_transition(TRANSACTION_TRANSITIONS, current, new, f"Transaction {target.id}")
    except InvalidStatusTransition:
        logger.error(
            "Blocked ledger status change",
            extra={"transaction_id": target.id, "from": current.value, "to": new.value},
        )
        raise


@event.listens_for(LedgerTransaction, "before_delete")
def _guard_ledger_delete(mapper, connection, target):
    logger.error("Blocked ledger deletion", extra={"transaction_id": target.id})
    raise ImmutableTransactionError(f"Ledger transaction {target.id} cannot be deleted")
