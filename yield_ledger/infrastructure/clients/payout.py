"""Payout-method collaborator client - resolves where a withdrawal is paid to"""

from typing import Optional

import httpx

from yield_ledger.config import settings
from yield_ledger.domain.exceptions import CollaboratorError
from yield_ledger.domain.models import PayoutMethod
from yield_ledger.infrastructure.clients.base import CollaboratorClient


class PayoutMethodClient(CollaboratorClient):
    """Client for the external payout-method directory"""

    name = "payout"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(base_url or settings.payout_api_base, timeout, client)

    def get_payout_method(self, account: str, method_id: str) -> Optional[PayoutMethod]:
        """
        Fetch a payout method of account; None when it is not on file.

        Bank/UPI formats are not validated here, only stored on the request.
        """
        response = self._request("GET", f"/accounts/{account}/payout-methods/{method_id}")
        if response.status_code == 404:
            return None
        data = self._json(response)
        try:
            return PayoutMethod(
                method_id=data["method_id"],
                account=data["account"],
                type=data["type"],
                destination=data["destination"],
            )
        except (KeyError, TypeError) as e:
            raise CollaboratorError(f"Invalid payout method data: {e}") from e
