"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class InvalidAmount(DomainException):
    """Amount is missing, malformed or not strictly positive"""

    pass


class InvalidStatusTransition(DomainException):
    """Requested status change is not an edge of the transition table"""

    pass


class ImmutableTransactionError(DomainException):
    """Attempt to alter or delete recorded ledger history"""

    pass


class ProductNotFound(DomainException):
    """Product catalog has no definition for the requested product"""

    pass


class TransactionNotFound(DomainException):
    pass


class InvestmentNotFound(DomainException):
    pass


class WithdrawalNotFound(DomainException):
    pass


class RechargeNotFound(DomainException):
    pass


class DuplicatePurchase(DomainException):
    """Account already holds this product"""

    pass


class DuplicateRechargeReference(DomainException):
    """Bank reference (UTR) was already used by another recharge request"""

    pass


class ReferrerAlreadyAssigned(DomainException):
    """An account's referrer is permanent once recorded"""

    pass


class SelfReferral(DomainException):
    pass


class CollaboratorError(DomainException):
    """Auth or payout-method service returned an error or is unavailable"""

    pass


class WithdrawalRejected(DomainException):
    """A withdrawal policy rule refused the request; code names the rule"""

    code = "withdrawal_rejected"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidCredential(WithdrawalRejected):
    code = "invalid_credential"


class WindowClosed(WithdrawalRejected):
    code = "window_closed"


class BelowMinimum(WithdrawalRejected):
    code = "below_minimum"


class DailyLimitExceeded(WithdrawalRejected):
    code = "daily_limit_exceeded"


class InsufficientBalance(WithdrawalRejected):
    """Also raised by purchases paid from the derived balance"""

    code = "insufficient_balance"


class NoPayoutMethod(WithdrawalRejected):
    code = "no_payout_method"
