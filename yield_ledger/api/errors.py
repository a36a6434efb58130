"""Translation of domain exceptions into HTTP responses"""

import logging

from fastapi import HTTPException

from yield_ledger.domain.exceptions import (
    CollaboratorError,
    DomainException,
    DuplicatePurchase,
    DuplicateRechargeReference,
    ImmutableTransactionError,
    InvalidAmount,
    InvalidCredential,
    InvalidStatusTransition,
    InvestmentNotFound,
    ProductNotFound,
    RechargeNotFound,
    ReferrerAlreadyAssigned,
    SelfReferral,
    TransactionNotFound,
    WithdrawalNotFound,
    WithdrawalRejected,
)

logger = logging.getLogger(__name__)

NOT_FOUND = (TransactionNotFound, InvestmentNotFound, WithdrawalNotFound, RechargeNotFound)
CONFLICTS = (
    InvalidStatusTransition,
    DuplicatePurchase,
    DuplicateRechargeReference,
    ReferrerAlreadyAssigned,
    ImmutableTransactionError,
)


def to_http_exception(e: DomainException, request_id: str) -> HTTPException:
    """
    Map a domain exception to an HTTPException.

    Policy violations keep their rule code so clients can show an actionable
    message; dependency failures become a generic retryable 503.
    """
    if isinstance(e, InvalidCredential):
        return HTTPException(status_code=401, detail={"code": e.code, "message": e.message})
    if isinstance(e, WithdrawalRejected):
        return HTTPException(status_code=400, detail={"code": e.code, "message": e.message})
    if isinstance(e, InvalidAmount):
        return HTTPException(status_code=400, detail={"code": "invalid_amount", "message": str(e)})
    if isinstance(e, SelfReferral):
        return HTTPException(status_code=400, detail={"code": "self_referral", "message": str(e)})
    if isinstance(e, NOT_FOUND):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, CONFLICTS):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, (ProductNotFound, CollaboratorError)):
        logger.error(f"Dependency error: {e}", extra={"request_id": request_id})
        return HTTPException(status_code=503, detail="Service temporarily unavailable, please retry")

    logger.error(f"Unhandled domain error: {e}", extra={"request_id": request_id})
    return HTTPException(status_code=500, detail="Internal server error")
