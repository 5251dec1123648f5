"""Shared test fixtures for the QR Pay core tests.

Uses a file-backed SQLite database so tests run without PostgreSQL.
"""

from __future__ import annotations

import itertools
import json
import os
import uuid
from datetime import datetime

# Override DATABASE_URL before importing anything from qrpay: the Settings
# model reads .env eagerly via pydantic-settings, and the module-level
# ``engine`` in qrpay.core.database would try to connect to PostgreSQL.
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from fastapi.testclient import TestClient
from unittest.mock import MagicMock

from qrpay.core.config import Settings
from qrpay.core.database import Base, get_db
from qrpay.main import app
from qrpay.models.enums import SettlementMode, VerificationStatus
from qrpay.models.merchant import Merchant
from qrpay.services.payments.processor import (
    PaymentProcessor,
    ProcessorOrder,
    get_processor,
)
from qrpay.services.payments.signatures import compute_signature

# Use SQLite file-based database for tests (no PostgreSQL needed)
TEST_DATABASE_URL = "sqlite:///./test.db"

# Fixed clock for service-level tests
NOW = datetime(2024, 3, 1, 12, 0, 0)

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)


@event.listens_for(engine, "connect")
def _set_sqlite_pragma(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session():
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def session_factory(db_session):
    """Open extra sessions on the same database (a second 'worker')."""
    sessions = []

    def _open():
        session = TestingSessionLocal()
        sessions.append(session)
        return session

    yield _open
    for session in sessions:
        session.close()


@pytest.fixture
def config() -> Settings:
    return Settings(
        database_url=TEST_DATABASE_URL,
        token_secret="test-token-secret-with-enough-length",
        processor_key_id="rzp_test_key",
        processor_key_secret="test-key-secret",
        processor_webhook_secret="test-webhook-secret",
    )


@pytest.fixture
def processor() -> MagicMock:
    """Processor stand-in that opens orders order_0001, order_0002, ..."""
    counter = itertools.count(1)
    mock = MagicMock(spec=PaymentProcessor)
    mock.name = "mock"

    def _create_order(amount, currency, receipt, notes, transfers=None):
        return ProcessorOrder(
            reference=f"order_{next(counter):04d}",
            amount=amount,
            currency=currency,
        )

    def _checkout_params(reference, amount, currency):
        return {
            "processor": "mock",
            "key": "rzp_test_key",
            "order_id": reference,
            "amount": amount,
            "currency": currency,
        }

    mock.create_order.side_effect = _create_order
    mock.checkout_params.side_effect = _checkout_params
    return mock


@pytest.fixture
def make_merchant(db_session):
    """Insert a merchant; VERIFIED, 6% and platform-managed unless overridden."""

    def _make(**overrides) -> Merchant:
        values = {
            "id": uuid.uuid4(),
            "business_name": "Chai Point",
            "category": "CAFE",
            "discount_rate": 6,
            "settlement_mode": SettlementMode.PLATFORM_MANAGED,
            "verification_status": VerificationStatus.VERIFIED,
            "direct_payout_enabled": True,
        }
        values.update(overrides)
        merchant = Merchant(**values)
        db_session.add(merchant)
        db_session.commit()
        db_session.refresh(merchant)
        return merchant

    return _make


@pytest.fixture
def now() -> datetime:
    return NOW


def _webhook_body(event: str, reference: str, payment_id: str = "pay_001") -> bytes:
    entity = {"id": payment_id, "order_id": reference, "status": "captured"}
    if event == "payment.failed":
        entity["status"] = "failed"
        entity["error_description"] = "Card declined"
    return json.dumps(
        {"event": event, "payload": {"payment": {"entity": entity}}}
    ).encode("utf-8")


@pytest.fixture
def webhook_body():
    """Builder for processor webhook bodies in the processor's envelope."""
    return _webhook_body


@pytest.fixture
def sign():
    """Hex HMAC-SHA256 signer, as the processor signs deliveries."""
    return compute_signature


@pytest.fixture(scope="function")
def client(db_session, processor):
    """FastAPI test client with overridden DB and processor dependencies."""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_processor] = lambda: processor
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def pay_bill(db_session, config, processor):
    """Run a bill through issue -> scan -> pay -> capture; return the Order."""
    from qrpay.services.billing.issuer import BillIssuer
    from qrpay.services.billing.redeemer import BillRedeemer
    from qrpay.services.ledger.ledger import OrderLedger
    from qrpay.services.payments.orchestrator import PaymentOrchestrator

    counter = itertools.count(1)

    def _pay(merchant: Merchant, gross_amount: int, paid_at: datetime = NOW, payer_id: str = "payer-1"):
        bill = BillIssuer(db_session, config).issue_bill(merchant.id, gross_amount, now=paid_at)
        BillRedeemer(db_session, config).redeem_token(bill.token, payer_id, now=paid_at)
        orchestrator = PaymentOrchestrator(db_session, config, processor)
        attempt = orchestrator.initiate_payment(bill.id, payer_id, now=paid_at).attempt
        body = _webhook_body(
            "payment.captured", attempt.processor_reference, f"pay_{next(counter):04d}"
        )
        orchestrator.handle_webhook(
            body, compute_signature(body, config.processor_webhook_secret), now=paid_at
        )
        return OrderLedger(db_session).get_by_processor_reference(attempt.processor_reference)

    return _pay
