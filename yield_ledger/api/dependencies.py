"""Dependency injection for FastAPI endpoints"""

from datetime import datetime, timezone
from typing import Callable

from fastapi import Request

from yield_ledger.infrastructure.clients.auth import AuthClient
from yield_ledger.infrastructure.clients.payout import PayoutMethodClient


def get_request_id(request: Request) -> str:
    """Extract request ID from request state"""
    return getattr(request.state, "request_id", "unknown")


def get_auth_client() -> AuthClient:
    """Provide auth collaborator client instance"""
    return AuthClient()


def get_payout_client() -> PayoutMethodClient:
    """Provide payout-method collaborator client instance"""
    return PayoutMethodClient()


def get_clock() -> Callable[[], datetime]:
    """Wall clock used by the engines; overridden in tests to pin the platform day"""
    return lambda: datetime.now(timezone.utc)
