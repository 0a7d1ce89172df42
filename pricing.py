# pricing.py
from collections.abc import Mapping
from decimal import Decimal, ROUND_HALF_UP
import math

from core import logger, DEFAULT_POSTAGE

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def field(record, name, default=None):
    if isinstance(record, Mapping):
        return record.get(name, default)
    return getattr(record, name, default)


def as_decimal(value):
    """Return value as a Decimal, or None when it isn't a finite number.

    Strings are never coerced, even when they look numeric.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        return Decimal(str(value)) if math.isfinite(value) else None
    return None


def money(value):
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def line_total(item):
    """Contribution of one line item, or None when the item is anomalous."""
    raw_price = field(item, "price")
    raw_qty = field(item, "quantity")
    price = Decimal(0) if raw_price is None else as_decimal(raw_price)
    qty = Decimal(1) if raw_qty is None else as_decimal(raw_qty)
    if price is None or qty is None:
        return None
    if price < 0 or qty < 0:
        return None
    return price * qty


def calculate_total_price(items):
    total = Decimal(0)
    for item in items or ():
        contribution = line_total(item)
        if contribution is None:
            logger.warning(
                "Invalid price or quantity for item %r: price=%r quantity=%r",
                field(item, "title"), field(item, "price"), field(item, "quantity"),
            )
            continue
        total += contribution
    return money(total)


def order_total(order):
    stored = as_decimal(field(order, "total_price"))
    if stored is not None:
        return money(stored)
    return calculate_total_price(field(order, "items") or ())


def postage_cost(order, default=DEFAULT_POSTAGE):
    raw = field(order, "postage_cost")
    if raw is None:
        return money(default)
    cost = as_decimal(raw)
    if cost is None:
        logger.warning("Invalid postageCost for order %s: %r", field(order, "id"), raw)
        return ZERO
    return money(cost)


def to_minor_units(amount):
    """Decimal pounds -> integer pence, as payment providers expect."""
    return int((Decimal(amount) * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP))
