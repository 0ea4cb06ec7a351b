import hashlib
import hmac
import json
import os
import time
import uuid

os.environ.setdefault("PYTEST_RUNNING", "1")

import pytest
from fastapi.testclient import TestClient

from core.db import models
from core.db.database import engine, SessionLocal, get_db
from core.utils.feature_flags import refresh_feature_flag_cache

ADMIN_EMAIL = "admin@pawtraits.test"
CRON_SECRET = "cron-secret-for-tests"
STRIPE_WEBHOOK_SECRET = "whsec_test_secret"

_FLAG_ENV = (
    "FEATURE_FULFILLMENT_ENABLED",
    "FEATURE_MESSAGING_ENABLED",
    "FEATURE_REFERRAL_COMMISSIONS_ENABLED",
)


@pytest.fixture(scope="session", autouse=True)
def _schema():
    models.Base.metadata.create_all(bind=engine)
    yield
    models.Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _service_env(monkeypatch):
    """Known configuration for every test; flags default to enabled."""
    for name in _FLAG_ENV + (
        "DEV_MODE",
        "STRIPE_SKIP_SIGNATURE_VERIFICATION",
        "GELATO_WEBHOOK_SECRET",
        "CLOUDINARY_CLOUD_NAME",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("APP_BASE_URL", "https://pawtraits.test")
    monkeypatch.setenv("ADMIN_EMAILS", ADMIN_EMAIL)
    monkeypatch.setenv("CRON_SECRET", CRON_SECRET)
    monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", STRIPE_WEBHOOK_SECRET)
    refresh_feature_flag_cache()
    yield
    refresh_feature_flag_cache()


@pytest.fixture
def db_session():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()
        # Tables are shared by the whole run; empty them between tests.
        with engine.begin() as conn:
            for table in reversed(models.Base.metadata.sorted_tables):
                conn.execute(table.delete())


@pytest.fixture
def db(db_session):
    return db_session


@pytest.fixture
def client(db_session):
    from core.api.main import app

    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture
def sign_stripe_payload():
    """Return ``(body, signature_header)`` for an event signed like Stripe does."""
    def _sign(event, secret=STRIPE_WEBHOOK_SECRET, timestamp=None):
        body = json.dumps(event)
        timestamp = int(time.time()) if timestamp is None else timestamp
        digest = hmac.new(secret.encode("utf-8"), f"{timestamp}.{body}".encode("utf-8"), hashlib.sha256).hexdigest()
        return body, f"t={timestamp},v1={digest}"
    return _sign


@pytest.fixture
def admin_headers():
    return {"x-auth-request-email": ADMIN_EMAIL}


@pytest.fixture
def cron_headers():
    return {"Authorization": f"Bearer {CRON_SECRET}"}


def _email(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:10]}@example.com"


@pytest.fixture
def make_partner(db_session):
    def _make(**fields):
        values = {
            "email": _email("partner"),
            "first_name": "Pat",
            "last_name": "Groomer",
            "business_name": "Happy Paws Grooming",
            "commission_rate": 20,
            "lifetime_commission_rate": 5,
            "approval_status": "approved",
        }
        values.update(fields)
        partner = models.Partner(**values)
        db_session.add(partner)
        db_session.commit()
        db_session.refresh(partner)
        return partner
    return _make


@pytest.fixture
def make_customer(db_session):
    def _make(**fields):
        values = {"email": _email("customer"), "first_name": "Casey", "current_credit_balance": 0}
        values.update(fields)
        customer = models.Customer(**values)
        db_session.add(customer)
        db_session.commit()
        db_session.refresh(customer)
        return customer
    return _make


@pytest.fixture
def make_profile(db_session):
    def _make(email=None, **fields):
        profile = models.UserProfile(email=email or _email("profile"), **fields)
        db_session.add(profile)
        db_session.commit()
        db_session.refresh(profile)
        return profile
    return _make


@pytest.fixture
def make_order(db_session):
    def _make(**fields):
        values = {
            "order_number": f"PW-{uuid.uuid4().hex[:12]}",
            "status": "confirmed",
            "customer_email": _email("buyer"),
            "shipping_first_name": "Jamie",
            "shipping_last_name": "Smith",
            "shipping_address_line_1": "1 High Street",
            "shipping_city": "London",
            "shipping_postcode": "N1 1AA",
            "shipping_country": "United Kingdom",
            "subtotal_amount": 5000,
            "shipping_amount": 500,
            "total_amount": 5500,
            "currency": "GBP",
            "payment_intent_id": f"pi_{uuid.uuid4().hex[:16]}",
            "payment_status": "paid",
        }
        values.update(fields)
        order = models.Order(**values)
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order
    return _make


@pytest.fixture
def make_image(db_session):
    def _make(**fields):
        values = {"title": "Rex the Corgi", "public_url": "https://cdn.pawtraits.test/rex.jpg"}
        values.update(fields)
        image = models.ImageCatalog(**values)
        db_session.add(image)
        db_session.commit()
        db_session.refresh(image)
        return image
    return _make


@pytest.fixture
def make_template(db_session):
    def _make(template_key="order_confirmation", **fields):
        values = {
            "template_key": template_key,
            "name": template_key.replace("_", " ").title(),
            "channels": ["email"],
            "user_types": ["customer"],
            "email_subject_template": "Order {{ order_number }} confirmed",
            "email_body_template": "<p>Hi {{ customer_name }}, thanks for order {{ order_number }}.</p>",
        }
        values.update(fields)
        template = models.MessageTemplate(**values)
        db_session.add(template)
        db_session.commit()
        db_session.refresh(template)
        return template
    return _make
