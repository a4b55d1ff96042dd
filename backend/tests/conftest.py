"""
Shared pytest fixtures.

Every test gets its own in-memory SQLite database, a TestClient wired to it
and a recorded stand-in for the MailerSend HTTP API.
"""
import os
import uuid

# Must be set before crm.config is imported
os.environ.setdefault("DATABASE_URL", "sqlite://")

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from crm.database import Base, get_db
import crm.models  # noqa: F401  registers every table on Base.metadata
from crm.main import app
from crm.models.customer import Customer
from crm.services.email_dispatch_service import EmailDispatchService, get_email_dispatch_service
from crm.services.mailersend_service import MailerSendService
from crm.utils.retry import RetryPolicy

USER_ID = uuid.UUID("11111111-1111-1111-1111-111111111111")
OTHER_USER_ID = uuid.UUID("22222222-2222-2222-2222-222222222222")


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()


class MailProvider:
    """Records requests sent to the mail API and answers with a configurable status"""

    def __init__(self):
        self.requests = []
        self.status_code = 202
        self.error_body = ""

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.status_code >= 400:
            return httpx.Response(self.status_code, text=self.error_body)
        return httpx.Response(self.status_code, headers={"X-Message-Id": "msg-123"})


@pytest.fixture
def mail_provider():
    return MailProvider()


@pytest.fixture
def dispatcher(mail_provider):
    provider = MailerSendService(
        api_key="test-key",
        api_url="https://mail.test/v1",
        sender_email="portal@crm.test",
        transport=httpx.MockTransport(mail_provider.handler),
    )
    return EmailDispatchService(provider=provider)


@pytest.fixture
def client(db, dispatcher):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_dispatch_service] = lambda: dispatcher
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"X-User-Id": str(USER_ID)}


@pytest.fixture
def no_sleep_retry():
    """Retry policy with recorded, instant backoff"""
    delays = []
    policy = RetryPolicy(max_attempts=3, base_delay=1.0, max_delay=10.0, sleep=delays.append)
    policy.delays = delays
    return policy


@pytest.fixture
def customer(db):
    customer = Customer(
        user_id=USER_ID,
        customer_number="CUS-TEST0001",
        first_name="Jane",
        last_name="Doe",
        email="jane@example.com",
        address="1 Main St",
    )
    db.add(customer)
    db.commit()
    db.refresh(customer)
    return customer
