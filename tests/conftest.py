"""Pytest fixtures for testing"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")

import pytest
from decimal import Decimal
from typing import Generator
from unittest.mock import AsyncMock, patch
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from coop_approvals.api.main import create_app
from coop_approvals.infrastructure.database.models import (
    Base,
    PersonalSavingsPlan,
    SavingsContribution,
    SavingsRecord,
)
from coop_approvals.infrastructure.database.session import get_db


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

MEMBER_ID = "member_1"


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


@pytest.fixture(autouse=True)
def mock_notifications() -> Generator[AsyncMock, None, None]:
    """Keep background notification tasks off the network"""
    with patch(
        "coop_approvals.infrastructure.clients.notifications.NotificationClient.send_event",
        new_callable=AsyncMock,
    ) as mock_send:
        yield mock_send


@pytest.fixture
def client(db: Session) -> TestClient:
    """Create FastAPI test client with test database"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    return TestClient(app)


@pytest.fixture
def savings(db: Session) -> SavingsRecord:
    """Member with ₦20,000 saved over four monthly contributions"""
    record = SavingsRecord(
        member_id=MEMBER_ID,
        balance=Decimal("20000.00"),
        total_savings_amount=Decimal("20000.00"),
    )
    db.add(record)
    for _ in range(4):
        db.add(SavingsContribution(member_id=MEMBER_ID, amount=Decimal("5000.00")))
    db.commit()
    return record


@pytest.fixture
def personal_plan(db: Session) -> PersonalSavingsPlan:
    plan = PersonalSavingsPlan(
        member_id=MEMBER_ID,
        plan_name="School fees",
        current_balance=Decimal("5000.00"),
    )
    db.add(plan)
    db.commit()
    return plan
