# payments.py
from dataclasses import dataclass, field
import json

import stripe

from core import logger
from errors import PaymentProviderError, WebhookSignatureError
from pricing import to_minor_units


@dataclass
class CheckoutSession:
    id: str
    url: str = ""


@dataclass
class SessionStatus:
    id: str
    payment_status: str
    email: str = ""
    payment_intent_id: str = ""
    metadata: dict = field(default_factory=dict)

    @property
    def paid(self):
        return self.payment_status in ("paid", "no_payment_required")


@dataclass
class WebhookEvent:
    type: str
    session: SessionStatus = None


def session_line_items(items, currency):
    line_items = []
    for item in items:
        product = {"name": item["title"]}
        if item.get("author"):
            product["description"] = item["author"]
        if item.get("cover_url"):
            product["images"] = [item["cover_url"]]
        line_items.append({
            "price_data": {
                "currency": currency,
                "product_data": product,
                "unit_amount": to_minor_units(item["price"]),
            },
            "quantity": item["quantity"],
        })
    return line_items


def session_metadata(items):
    # Stripe metadata values are strings capped at 500 chars
    compact = [{"id": i.get("book_id") or "", "quantity": i["quantity"]} for i in items]
    return {"items": json.dumps(compact, separators=(",", ":"))[:500]}


def _get(obj, name):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def session_status(session):
    intent = _get(session, "payment_intent")
    if intent is not None and not isinstance(intent, str):
        intent = _get(intent, "id")
    email = _get(_get(session, "customer_details"), "email") or _get(session, "customer_email")
    metadata = _get(session, "metadata")
    return SessionStatus(
        id=_get(session, "id"),
        payment_status=_get(session, "payment_status") or "",
        email=email or "",
        payment_intent_id=intent or "",
        metadata={k: metadata[k] for k in metadata.keys()} if metadata else {},
    )


class StripeGateway:
    def __init__(self, api_key, webhook_secret="", currency="gbp"):
        self.api_key = api_key
        self.webhook_secret = webhook_secret
        self.currency = currency

    def _require_key(self):
        if not self.api_key:
            raise PaymentProviderError("Payments are not configured")

    def create_checkout_session(self, email, items, success_url, cancel_url, shipping_countries=("GB",)):
        self._require_key()
        try:
            session = stripe.checkout.Session.create(
                api_key=self.api_key,
                mode="payment",
                payment_method_types=["card"],
                line_items=session_line_items(items, self.currency),
                customer_email=email,
                shipping_address_collection={"allowed_countries": list(shipping_countries)},
                metadata=session_metadata(items),
                success_url=success_url,
                cancel_url=cancel_url,
            )
        except stripe.StripeError as e:
            logger.exception("Stripe checkout session error")
            raise PaymentProviderError("Failed to create checkout session", provider_message=str(e))
        return CheckoutSession(id=_get(session, "id"), url=_get(session, "url") or "")

    def retrieve_session(self, session_id):
        self._require_key()
        try:
            session = stripe.checkout.Session.retrieve(
                session_id, api_key=self.api_key, expand=["payment_intent"]
            )
        except stripe.InvalidRequestError as e:
            logger.warning("Stripe session %s not retrievable: %s", session_id, e)
            raise PaymentProviderError("Unknown checkout session", provider_message=str(e))
        except stripe.StripeError as e:
            logger.exception("Stripe session retrieval error")
            raise PaymentProviderError("Failed to retrieve checkout session", provider_message=str(e))
        return session_status(session)

    def construct_event(self, payload, signature):
        if not self.webhook_secret:
            raise WebhookSignatureError("Webhook secret is not configured")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}")
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(f"Webhook signature verification failed: {e}")
        event_type = _get(event, "type") or ""
        session = None
        if event_type.startswith("checkout.session."):
            session = session_status(_get(_get(event, "data"), "object"))
        return WebhookEvent(type=event_type, session=session)
