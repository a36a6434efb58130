"""Interfaces of the services the ledger core calls but does not implement"""

from typing import Optional, Protocol

from yield_ledger.domain.models import PayoutMethod, Product


class CredentialVerifier(Protocol):
    def verify_withdrawal_credential(self, account: str, secret: str) -> bool: ...


class PayoutMethodDirectory(Protocol):
    def get_payout_method(self, account: str, method_id: str) -> Optional[PayoutMethod]: ...


class ProductCatalog(Protocol):
    def get_product(self, product_id: str) -> Optional[Product]: ...
