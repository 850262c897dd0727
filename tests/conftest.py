import os
from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from repairdesk.database import init_db
from repairdesk.models import Customer, Ticket
from repairdesk.services.delivery_client import DeliveryError, DeliveryResult


class FakeGateway:
    """Stands in for WhatsAppGatewayClient; records what would have been sent."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: list[dict] = []

    async def send(self, to, text, metadata=None, cancel_event=None):
        self.sent.append({"to": to, "text": text, "metadata": metadata or {}})
        if self.fail:
            raise DeliveryError("gateway unavailable", attempts=3, last_error="503")
        return DeliveryResult(message_id=f"wamid-{len(self.sent)}", status="sent")


@pytest.fixture
def db_session():
    """Mock database session."""
    return Mock()


@pytest.fixture
def session():
    """Real session on a private in-memory SQLite database."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    db = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield db
    finally:
        db.close()
        engine.dispose()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(fail=True)


@pytest.fixture
def make_customer(session):
    def _make(phone="+60123456789", name="Aminah"):
        now = datetime.now(timezone.utc)
        customer = Customer(name=name, phone=phone, created_at=now, updated_at=now)
        session.add(customer)
        session.commit()
        return customer

    return _make


@pytest.fixture
def make_ticket(session):
    def _make(customer, number="T-0001", status="awaiting_approval", estimated_cost=None, age_minutes=0):
        stamp = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
        ticket = Ticket(
            ticket_number=number,
            customer_id=customer.id,
            device_type="phone",
            device_brand="Samsung",
            device_model="Galaxy S21",
            problem_description="Screen cracked after a fall",
            status=status,
            estimated_cost=estimated_cost,
            created_at=stamp,
            updated_at=stamp,
        )
        session.add(ticket)
        session.commit()
        return ticket

    return _make
