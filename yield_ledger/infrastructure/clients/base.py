"""Shared HTTP plumbing for collaborator clients, with retry on transient failures"""

import time
from typing import Any, Optional

import httpx

from yield_ledger.config import settings
from yield_ledger.domain.exceptions import CollaboratorError
from yield_ledger.infrastructure.observability.metrics import collaborator_failure_counter


class CollaboratorClient:
    """
    Base for the auth and payout-method clients.

    A preconfigured httpx.Client may be injected (tests pass a FastAPI
    TestClient bound to the mock collaborators); otherwise a short-lived
    client is opened per call.
    """

    name = "collaborator"

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout or settings.http_timeout_seconds
        self.client = client
        self.max_retries = settings.collaborator_max_retries
        self.backoff_base = settings.collaborator_backoff_base

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Send a request, retrying 5xx responses and network failures.

        Retry strategy:
        - Exponential backoff: base, 2*base, 4*base ...
        - 4xx responses are returned to the caller without retry

        Raises:
            CollaboratorError: When every attempt failed
        """
        attempt = 0
        while True:
            try:
                response = self._send(method, path, **kwargs)
                if response.status_code >= 500:
                    response.raise_for_status()
                return response
            except httpx.TimeoutException as e:
                error = CollaboratorError(f"{self.name} timeout after {self.timeout}s")
                cause = e
            except httpx.HTTPStatusError as e:
                error = CollaboratorError(f"{self.name} error: {e.response.status_code}")
                cause = e
            except httpx.RequestError as e:
                error = CollaboratorError(f"{self.name} unreachable: {e}")
                cause = e

            attempt += 1
            collaborator_failure_counter.labels(collaborator=self.name).inc()
            if attempt >= self.max_retries:
                raise error from cause
            time.sleep(self.backoff_base * (2 ** (attempt - 1)))

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        if self.client is not None:
            return self.client.request(method, path, **kwargs)
        with httpx.Client(base_url=self.base_url, timeout=self.timeout) as client:
            return client.request(method, path, **kwargs)

    def _json(self, response: httpx.Response) -> dict:
        try:
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            raise CollaboratorError(f"{self.name} error: {e.response.status_code}") from e
        except ValueError as e:
            raise CollaboratorError(f"Invalid response from {self.name}: {e}") from e
