# checkout.py
from decimal import Decimal, InvalidOperation

from core import logger
from errors import ValidationError
from orders import create_pending_order

# incoming JSON uses the storefront's camelCase names
BUYER_ALIASES = {
    "first_name": ("first_name", "firstName"),
    "last_name": ("last_name", "lastName"),
    "email": ("email",),
    "address": ("address",),
    "city": ("city",),
    "zip_code": ("zip_code", "zipCode"),
    "country": ("country",),
}
ITEM_ALIASES = {
    "book_id": ("book_id", "id"),
    "title": ("title",),
    "author": ("author",),
    "description": ("description",),
    "cover_url": ("cover_url", "coverUrl", "image"),
    "interior_url": ("interior_url", "interiorUrl", "pdf_url", "pdfUrl"),
}


def _pick(data, names):
    for name in names:
        value = data.get(name)
        if value not in (None, ""):
            return value
    return None


def parse_price(value):
    if isinstance(value, bool) or value is None:
        return None
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return price if price.is_finite() else None


def parse_quantity(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def normalize_buyer(data):
    return {name: str(_pick(data, aliases) or "").strip() for name, aliases in BUYER_ALIASES.items()}


def normalize_items(items):
    """Validate checkout items, failing on the first bad one.

    Returns line-item snapshots with Decimal prices and int quantities.
    """
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("Cart is empty")
    normalized = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Item {index} is not an object", item_index=index)
        price = parse_price(raw.get("price"))
        if price is None:
            raise ValidationError(f"Item {index} has an invalid price: {raw.get('price')!r}", item_index=index)
        if price <= 0:
            raise ValidationError(f"Item {index} must have a positive price", item_index=index)
        quantity = parse_quantity(raw.get("quantity", 1))
        if quantity is None or quantity < 1:
            raise ValidationError(f"Item {index} has an invalid quantity: {raw.get('quantity')!r}",
                                  item_index=index)
        item = {name: _pick(raw, aliases) for name, aliases in ITEM_ALIASES.items()}
        if not item["title"]:
            raise ValidationError(f"Item {index} is missing a title", item_index=index)
        item.update(price=price, quantity=quantity, is_free=bool(raw.get("is_free") or raw.get("isFree")))
        normalized.append(item)
    return normalized


def start_checkout(gateway, email, buyer, items, success_url, cancel_url, postage=None):
    """Create the provider session, then persist the order as pending.

    Nothing reaches the provider or the database unless every item validates.
    """
    email = (email or "").strip()
    if not email or "@" not in email:
        raise ValidationError("A valid email address is required")
    line_items = normalize_items(items)

    session = gateway.create_checkout_session(email, line_items, success_url, cancel_url)
    buyer = dict(buyer or {}, email=email)
    create_pending_order(session.id, buyer, line_items, postage=postage)
    logger.info("checkout session %s opened for %s (%d items)", session.id, email, len(line_items))
    return session
