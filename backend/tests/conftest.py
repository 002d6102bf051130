"""
Shared fixtures: in-memory database, mock gateway, users and courses.
"""
import json
import os
import tempfile
from decimal import Decimal

# Must be set before anything from coursepay is imported
os.environ["PAYMENT_GATEWAY"] = "mock"
os.environ["ENVIRONMENT"] = "test"
os.environ["MOCK_GATEWAY_DELAY_SECONDS"] = "0"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="coursepay-logs-")
os.environ["API_BASE_URL"] = "http://testserver"
os.environ["CLIENT_URL"] = "http://client.test"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["PAYMENT_MAINTENANCE_MODE"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from coursepay.config import get_settings
from coursepay.database import Base, get_db, init_db
from coursepay.errors import ValidationError
from coursepay.main import app
from coursepay.models import Course, DiscountCode, User
from coursepay.services.gateways import build_gateway, get_gateway
from coursepay.services.gateways.base import (
    GatewayPayment, GatewayRefund, GatewayStatus, PaymentGateway, WebhookEvent,
)
from coursepay.utils.rate_limiter import reset_rate_limits
from coursepay.utils.security import create_access_token, hash_password

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


class FakeGateway(PaymentGateway):
    """Stripe-shaped gateway under test control: callbacks are verified via ``retrieve``."""

    name = "fake"
    publishable_key = "pk_test_fake"

    def __init__(self):
        self.error = None
        self.retrieve_error = None
        self.statuses = {}
        self.created = []
        self.resumed = []
        self.refunds = []

    def _next_id(self, prefix):
        return f"{prefix}_fake_{len(self.created) + 1}"

    def create_payment_intent(self, request):
        if self.error:
            raise self.error
        gateway_id = self._next_id("pi")
        self.created.append(request)
        return GatewayPayment(gateway_transaction_id=gateway_id, client_secret=f"{gateway_id}_secret")

    def create_checkout_session(self, request, success_url, cancel_url):
        if self.error:
            raise self.error
        gateway_id = self._next_id("cs")
        self.created.append(request)
        return GatewayPayment(gateway_transaction_id=gateway_id, payment_url=f"https://pay.test/{gateway_id}")

    def resume(self, gateway_transaction_id, request):
        self.resumed.append(gateway_transaction_id)
        if gateway_transaction_id.startswith("pi_"):
            return GatewayPayment(gateway_transaction_id, client_secret=f"{gateway_transaction_id}_secret")
        return GatewayPayment(gateway_transaction_id, payment_url=f"https://pay.test/{gateway_transaction_id}")

    def retrieve(self, gateway_transaction_id):
        if self.retrieve_error:
            raise self.retrieve_error
        return self.statuses.get(
            gateway_transaction_id,
            GatewayStatus(status="pending", gateway_transaction_id=gateway_transaction_id),
        )

    def refund(self, gateway_transaction_id, amount):
        self.refunds.append((gateway_transaction_id, amount))
        return GatewayRefund(refund_id=f"re_fake_{len(self.refunds)}", status="succeeded", success=True)

    def parse_webhook(self, payload, signature):
        if signature != "valid":
            raise ValidationError("Webhook Error: bad signature")
        data = json.loads(payload)
        return WebhookEvent(
            type=data["type"],
            transaction_id=data.get("transactionId"),
            status=data.get("status"),
            gateway_transaction_id=data.get("gatewayTransactionId"),
            error_code=data.get("errorCode"),
            error_message=data.get("errorMessage"),
            refund_amount=Decimal(str(data["refundAmount"])) if "refundAmount" in data else None,
        )


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture(autouse=True)
def _reset_rate_limits():
    reset_rate_limits()
    yield
    reset_rate_limits()


@pytest.fixture
def db():
    Base.metadata.drop_all(bind=engine)
    init_db(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def gateway():
    return build_gateway()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture
def client(db, gateway):
    def override_get_db():
        session = TestingSessionLocal()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    yield TestClient(app)
    app.dependency_overrides.clear()


def _make_user(db, name, email, role):
    user = User(name=name, email=email, phone="9876543210", password_hash=hash_password("secret123"), role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def student(db):
    return _make_user(db, "Asha Student", "asha@example.com", "student")


@pytest.fixture
def other_student(db):
    return _make_user(db, "Ravi Student", "ravi@example.com", "student")


@pytest.fixture
def admin(db):
    return _make_user(db, "Admin", "admin@example.com", "admin")


@pytest.fixture
def partner(db):
    return _make_user(db, "Partner", "partner@example.com", "partner")


@pytest.fixture
def finance(db):
    return _make_user(db, "Finance", "finance@example.com", "finance")


@pytest.fixture
def university(db):
    return _make_user(db, "Tech University", "uni@example.com", "university")


@pytest.fixture
def auth_headers():
    def make(user):
        return {"Authorization": f"Bearer {create_access_token(user.id, user.role)}"}
    return make


@pytest.fixture
def course(db, university):
    course = Course(
        title="Python for Data Science",
        description="Pandas, NumPy and friends",
        price=1000,
        category="data",
        instructor_id=university.id,
        modules=[{"title": "Intro"}, {"title": "Pandas"}],
    )
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


@pytest.fixture
def cheap_course(db):
    course = Course(title="Mini Course", price=5, category="misc", instructor_name=None, modules=[])
    db.add(course)
    db.commit()
    db.refresh(course)
    return course


@pytest.fixture
def discount(db):
    code = DiscountCode(code="SAVE10", type="percentage", value=10, is_active=True)
    db.add(code)
    db.commit()
    db.refresh(code)
    return code
