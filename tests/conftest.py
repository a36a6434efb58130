"""Pytest fixtures for testing"""

import pytest
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, Generator, Optional, Tuple
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from yield_ledger.api.dependencies import get_auth_client, get_clock, get_payout_client
from yield_ledger.api.main import create_app
from yield_ledger.domain.exceptions import CollaboratorError
from yield_ledger.domain.models import PayoutMethod, Product, WithdrawalPolicy
from yield_ledger.infrastructure.database.models import Base
from yield_ledger.infrastructure.database.repositories import ProductRepository
from yield_ledger.infrastructure.database.session import enable_sqlite_savepoints, get_db
from yield_ledger.services.ledger import LedgerService


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = enable_sqlite_savepoints(
    create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Wednesday 2026-03-11, 11:30 in Asia/Kolkata: inside the withdrawal window
FIXED_NOW = datetime(2026, 3, 11, 6, 0, tzinfo=timezone.utc)


class FixedClock:
    """Callable clock that only moves when a test moves it"""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeCredentials:
    def __init__(self, secrets: Optional[Dict[str, str]] = None, fail: bool = False):
        self.secrets = secrets or {}
        self.fail = fail

    def verify_withdrawal_credential(self, account: str, secret: str) -> bool:
        if self.fail:
            raise CollaboratorError("auth unreachable")
        return self.secrets.get(account) == secret


class FakePayouts:
    def __init__(self, methods: Optional[Dict[Tuple[str, str], PayoutMethod]] = None):
        self.methods = methods or {}

    def add(self, account: str, method_id: str, type: str = "upi", destination: str = "someone@upi") -> PayoutMethod:
        method = PayoutMethod(method_id=method_id, account=account, type=type, destination=destination)
        self.methods[(account, method_id)] = method
        return method

    def get_payout_method(self, account: str, method_id: str) -> Optional[PayoutMethod]:
        return self.methods.get((account, method_id))


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db: Session) -> sessionmaker:
    """Session factory bound to the test database"""
    return TestingSessionLocal


@pytest.fixture
def other_db(db: Session) -> Generator[Session, None, None]:
    """Second session on the same database, standing in for another worker"""
    other = TestingSessionLocal()
    try:
        yield other
    finally:
        other.close()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()


@pytest.fixture
def credentials() -> FakeCredentials:
    return FakeCredentials({"acct_a": "secret-a", "acct_b": "secret-b"})


@pytest.fixture
def payouts() -> FakePayouts:
    payouts = FakePayouts()
    payouts.add("acct_a", "pm_a", destination="a@upi")
    payouts.add("acct_b", "pm_b", destination="b@upi")
    return payouts


@pytest.fixture
def policy() -> WithdrawalPolicy:
    """Small limits so scenarios stay readable"""
    return WithdrawalPolicy(
        minimum_amount=Decimal("100.00"),
        daily_limit=Decimal("1000.00"),
        tax_rate=Decimal("0.15"),
        window_open=time(0, 30),
        window_close=time(17, 0),
        blocked_weekdays=frozenset({5, 6}),
    )


@pytest.fixture
def ledger(db: Session, clock: FixedClock) -> LedgerService:
    return LedgerService(db, clock=clock)


@pytest.fixture
def products(db: Session) -> Dict[str, Product]:
    """Catalog seeded with a 120-day, a 3-day and a higher-level product"""
    catalog = {
        "starter": Product(
            product_id="starter",
            title="Starter Plan",
            price=Decimal("500.00"),
            daily_income=Decimal("90.00"),
            duration_days=120,
            level=1,
        ),
        "sprint": Product(
            product_id="sprint",
            title="Sprint Plan",
            price=Decimal("200.00"),
            daily_income=Decimal("25.00"),
            duration_days=3,
            level=1,
        ),
        "gold": Product(
            product_id="gold",
            title="Gold Plan",
            price=Decimal("2000.00"),
            daily_income=Decimal("150.00"),
            duration_days=60,
            level=2,
        ),
    }
    repo = ProductRepository(db)
    for product in catalog.values():
        repo.upsert(product)
    db.commit()
    return catalog


@pytest.fixture
def client(
    db: Session,
    clock: FixedClock,
    credentials: FakeCredentials,
    payouts: FakePayouts,
) -> TestClient:
    """Create FastAPI test client with test database and fake collaborators"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    app.dependency_overrides[get_auth_client] = lambda: credentials
    app.dependency_overrides[get_payout_client] = lambda: payouts
    return TestClient(app)
