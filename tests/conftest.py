import json
from decimal import Decimal

import pytest

from core import create_app, db, Book
from errors import PaymentProviderError, WebhookSignatureError
from payments import CheckoutSession, SessionStatus, WebhookEvent

ADMIN_PASSWORD = "letmein"


class FakeGateway:
    """In-memory stand-in for the Stripe gateway."""

    def __init__(self):
        self.created = []
        self.sessions = {}
        self.fail_with = None

    def create_checkout_session(self, email, items, success_url, cancel_url):
        if self.fail_with is not None:
            raise self.fail_with
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append({"id": session_id, "email": email, "items": items,
                             "success_url": success_url, "cancel_url": cancel_url})
        self.sessions[session_id] = SessionStatus(id=session_id, payment_status="unpaid", email=email)
        return CheckoutSession(id=session_id, url=f"https://checkout.example/{session_id}")

    def pay(self, session_id, payment_intent_id="pi_test_1"):
        status = self.sessions[session_id]
        status.payment_status = "paid"
        status.payment_intent_id = payment_intent_id
        return status

    def retrieve_session(self, session_id):
        if session_id not in self.sessions:
            raise PaymentProviderError("Unknown checkout session")
        return self.sessions[session_id]

    def construct_event(self, payload, signature):
        if signature != "valid-signature":
            raise WebhookSignatureError("Webhook signature verification failed")
        data = json.loads(payload)
        session = self.sessions.get(data["id"]) or SessionStatus(id=data["id"], payment_status="paid")
        return WebhookEvent(type=data["type"], session=session)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def app(gateway, tmp_path):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test-secret",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "SEED_CATALOG": False,
        "PAYMENT_GATEWAY": gateway,
        "ADMIN_PASSWORD": ADMIN_PASSWORD,
        "UPLOAD_FOLDER": str(tmp_path / "uploads"),
        "SITE_URL": "http://shop.test",
        "SMTP_HOST": "",
        "LULU_API_TOKEN": "",
    })
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def admin_client(client):
    client.post("/admin/login", data={"password": ADMIN_PASSWORD})
    return client


@pytest.fixture
def books(app):
    echoes = Book(title="Echoes", author="C. S. Logan", price=Decimal("12.50"),
                  cover_url="http://cdn.test/echoes.png", pdf_url="http://cdn.test/echoes.pdf")
    harbour = Book(title="The Quiet Harbour", author="C. S. Logan", price=Decimal("8.00"))
    sampler = Book(title="A Taste of Salt", author="C. S. Logan", price=Decimal("0"), is_free=True,
                   pdf_url="http://cdn.test/salt.pdf")
    db.session.add_all([echoes, harbour, sampler])
    db.session.commit()
    return {"echoes": echoes, "harbour": harbour, "sampler": sampler}


def line_item(title="Echoes", price=Decimal("12.50"), quantity=1, **extra):
    item = {"title": title, "author": "C. S. Logan", "price": price, "quantity": quantity}
    item.update(extra)
    return item
