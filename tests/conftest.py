import json

import bcrypt
import pytest
from fastapi.testclient import TestClient

from config import Settings
from errors import UpstreamPaymentError, ValidationError
from main import create_app
from payments import to_minor_units

ADMIN_USERNAME = "admin"
ADMIN_PASSWORD = "correct horse battery"
ADMIN_PASSWORD_HASH = bcrypt.hashpw(ADMIN_PASSWORD.encode(), bcrypt.gensalt(rounds=4)).decode()
STRIPE_WEBHOOK_SIGNATURE = "t=1,v1=valid"


class FakeStripe:
    def __init__(self):
        self.intents = {}
        self.created = []
        self.unavailable = False

    def add_intent(self, intent_id, amount, status="succeeded", currency="usd"):
        self.intents[intent_id] = {"id": intent_id, "status": status, "amount": amount, "currency": currency}

    def create_intent(self, amount, currency, description, receipt_email, metadata):
        intent_id = f"pi_test_{len(self.created) + 1}"
        self.created.append({
            "amount": to_minor_units(amount),
            "currency": currency,
            "description": description,
            "receipt_email": receipt_email,
            "metadata": metadata,
        })
        self.add_intent(intent_id, to_minor_units(amount), status="requires_payment_method", currency=currency)
        return {"id": intent_id, "client_secret": f"{intent_id}_secret"}

    def retrieve_intent(self, payment_intent_id):
        if self.unavailable or payment_intent_id not in self.intents:
            raise UpstreamPaymentError("Failed to verify payment")
        return dict(self.intents[payment_intent_id])

    def construct_event(self, payload, signature):
        if signature != STRIPE_WEBHOOK_SIGNATURE:
            raise ValidationError("Invalid webhook signature")
        return json.loads(payload)


class FakePayPal:
    def __init__(self):
        self.payments = []
        self.execute_state = "approved"

    def create_payment(self, amount, order_id, return_url, cancel_url, customer_email=None, items=None):
        self.payments.append({"amount": amount, "order_id": order_id, "return_url": return_url, "cancel_url": cancel_url})
        return {"id": "PAY-TEST-1", "approval_url": "https://www.sandbox.paypal.com/checkoutnow?token=EC-1"}

    def execute_payment(self, payment_id, payer_id):
        return {"id": payment_id, "state": self.execute_state, "total": "42.00", "currency": "USD"}

    def verify_webhook(self, headers, event):
        return headers.get("paypal-transmission-sig") == "valid"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        environment="test",
        database_url=f"sqlite:///{tmp_path / 'storefront.sqlite'}",
        admin_username=ADMIN_USERNAME,
        admin_password_hash=ADMIN_PASSWORD_HASH,
        admin_token_secret="test-token-secret-0123456789",
        stripe_public_key="pk_test_123",
        login_rate_limit=100,
        payment_rate_limit=100,
    )


@pytest.fixture
def fake_stripe():
    return FakeStripe()


@pytest.fixture
def fake_paypal():
    return FakePayPal()


@pytest.fixture
def app(settings, fake_stripe, fake_paypal):
    return create_app(settings, stripe_gateway=fake_stripe, paypal_gateway=fake_paypal)


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def store(app, client):
    return app.state.store


@pytest.fixture
def admin_headers(client):
    r = client.post("/api/admin/login", json={"username": ADMIN_USERNAME, "password": ADMIN_PASSWORD})
    assert r.status_code == 200
    return {"Authorization": f"Bearer {r.json()['token']}"}


def order_payload(total=10.0, email="jane@example.com", method="manual", **extra):
    payload = {
        "items": [{"productId": 1, "name": "Premium Shoes", "price": total, "quantity": 1}],
        "total": total,
        "customer": {"name": "Jane Doe", "email": email, "address": "1 Main St"},
        "paymentMethod": method,
    }
    payload.update(extra)
    return payload


@pytest.fixture
def make_order():
    return order_payload
