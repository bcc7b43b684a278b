"""Pytest fixtures for store service tests."""

import itertools
import os
import tempfile
from decimal import Decimal

# Settings are read at import time, so the environment is prepared before any
# application module is imported.
_db_dir = tempfile.mkdtemp(prefix="store-service-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_db_dir, 'test.db')}"
os.environ["OTEL_EXPORTER_ENABLED"] = "false"
os.environ["PROFILING_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_DATABASE"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["JWT_SECRET"] = "test-secret"
os.environ.pop("GOOGLE_MAPS_API_KEY", None)
os.environ.pop("GOOGLE_CLIENT_ID", None)
os.environ.pop("SMTP_USER", None)
os.environ.pop("SMTP_PASS", None)

import pytest  # noqa: E402

from auth import create_access_token, hash_password  # noqa: E402
from database import SessionLocal, engine  # noqa: E402
from errors import NotificationError  # noqa: E402
from models import Base, Product, ProductCategory, User, UserRole  # noqa: E402
from services.email_service import EmailService  # noqa: E402
from services.order_service import OrderService  # noqa: E402
from services.product_service import ProductService  # noqa: E402
from services.user_service import UserService  # noqa: E402

_sku = itertools.count(1)


class RecordingEmailService(EmailService):
    """Collects outgoing messages instead of sending them."""

    def __init__(self):
        super().__init__()
        self.sent = []

    async def _send(self, message):
        self.sent.append(message)


class FailingEmailService(EmailService):
    """Simulates an SMTP outage."""

    async def _send(self, message):
        raise NotificationError("SMTP server unavailable")


@pytest.fixture(autouse=True)
def reset_database():
    """Give every test empty tables."""
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_product(db):
    """Factory for catalog products."""

    def _make(**overrides):
        values = {
            "name": "Test Laptop",
            "description": "A laptop for tests",
            "price": Decimal("100.00"),
            "category": ProductCategory.LAPTOPS,
            "brand": "Acme",
            "image": "/images/test.jpg",
            "stock": 10,
            "sku": f"TEST-{next(_sku):05d}",
            "discount": 0,
        }
        values.update(overrides)
        product = Product(**values)
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def make_user(db):
    """Factory for user accounts. The password is always 'secret123'."""

    def _make(email="jane@example.com", role=UserRole.CUSTOMER, **overrides):
        values = {
            "full_name": "Jane Doe",
            "email": email,
            "phone": "+15550001111",
            "password_hash": hash_password("secret123"),
            "role": role,
        }
        values.update(overrides)
        user = User(**values)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role=UserRole.ADMIN, full_name="Store Admin")


@pytest.fixture
def product_service():
    return ProductService()


@pytest.fixture
def user_service():
    return UserService()


@pytest.fixture
def email_service():
    return RecordingEmailService()


@pytest.fixture
def order_service(product_service, email_service):
    return OrderService(product_service, email_service)


@pytest.fixture
def address():
    """Factory for address payloads."""

    def _make(**overrides):
        values = {
            "first_name": "Jane",
            "last_name": "Doe",
            "email": "jane@example.com",
            "phone": "+15550001111",
            "address": "1 Main Street",
            "city": "New York",
            "state": "NY",
            "zip_code": "10001",
            "country": "US",
        }
        values.update(overrides)
        return values

    return _make


@pytest.fixture
def client():
    from fastapi.testclient import TestClient
    from main import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def auth_headers():
    def _headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _headers
