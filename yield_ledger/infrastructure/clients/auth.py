"""Auth collaborator client - verifies the withdrawal password of an account"""

from typing import Optional

import httpx

from yield_ledger.config import settings
from yield_ledger.domain.exceptions import CollaboratorError
from yield_ledger.infrastructure.clients.base import CollaboratorClient


class AuthClient(CollaboratorClient):
    """Client for the external auth service"""

    name = "auth"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        super().__init__(base_url or settings.auth_api_base, timeout, client)

    def verify_withdrawal_credential(self, account: str, secret: str) -> bool:
        """
        Ask the auth service whether secret is the account's withdrawal password.

        An unknown account is simply not verified.

        Raises:
            CollaboratorError: On timeout, 5xx errors, or invalid response
        """
        response = self._request(
            "POST",
            "/auth/withdrawal-credential/verify",
            json={"account": account, "secret": secret},
        )
        if response.status_code == 404:
            return False
        data = self._json(response)
        try:
            return bool(data["valid"])
        except (KeyError, TypeError) as e:
            raise CollaboratorError(f"Invalid response from auth: {e}") from e
