# orders.py
from sqlalchemy import func

from core import db, logger, Order, OrderItem, ORDER_STATUSES, ACTIVE_STATUSES
from errors import ValidationError, NotFoundError, RevisionConflict
from pricing import calculate_total_price

BUYER_FIELDS = ("first_name", "last_name", "email", "address", "city", "zip_code", "country")
ITEM_FIELDS = ("book_id", "title", "author", "description", "price", "quantity",
               "cover_url", "interior_url", "is_free")


def validate_status(value):
    if not isinstance(value, str) or value not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status: {value!r}", allowed=list(ORDER_STATUSES))
    return value


def parse_revision(raw):
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid revision: {raw!r}")


# --- Store ---
def create_pending_order(session_id, buyer, items, postage=None):
    if not session_id:
        raise ValidationError("Missing checkout session id")
    order = Order(id=session_id, status="pending", postage_cost=postage)
    for name in BUYER_FIELDS:
        setattr(order, name, (buyer.get(name) or "").strip())
    for position, item in enumerate(items):
        values = {k: item.get(k) for k in ITEM_FIELDS}
        values["is_free"] = bool(values["is_free"])
        order.items.append(OrderItem(position=position, **values))
    order.total_price = calculate_total_price(items)
    db.session.add(order)
    db.session.commit()
    logger.info("order %s created pending (total=%s, items=%d)", order.id, order.total_price, len(items))
    return order


def get_order(order_id):
    order = db.session.get(Order, order_id) if order_id else None
    if order is None:
        raise NotFoundError(f"Order not found: {order_id}")
    return order


def list_active_orders():
    return (Order.query.filter(Order.status.in_(ACTIVE_STATUSES))
            .order_by(Order.created_at.desc()).all())


def list_archived_orders():
    return Order.query.filter_by(status="archived").order_by(Order.created_at.desc()).all()


# --- Status machine ---
def _write_status(order_id, values, expected_revision=None):
    stmt = db.update(Order).where(Order.id == order_id)
    if expected_revision is not None:
        stmt = stmt.where(Order.revision == expected_revision)
    values = dict(values, revision=Order.revision + 1, updated_at=func.now())
    result = db.session.execute(stmt.values(**values).execution_options(synchronize_session=False))
    if result.rowcount != 1:
        db.session.rollback()
        raise RevisionConflict(
            f"Order {order_id} changed since revision {expected_revision}; reload and retry",
            order_id=order_id,
        )
    db.session.commit()
    order = db.session.get(Order, order_id)
    db.session.refresh(order)
    return order


def set_status(order_id, new_status, expected_revision=None):
    status = validate_status(new_status)
    current = get_order(order_id)
    previous = current.status
    order = _write_status(order_id, {"status": status}, expected_revision)
    logger.info("order %s: %s -> %s (rev %d)", order_id, previous, status, order.revision)
    return order


def confirm_payment(order_id, payment_intent_id=None):
    get_order(order_id)
    values = {"status": "success"}
    if payment_intent_id:
        values["payment_intent_id"] = payment_intent_id
    order = _write_status(order_id, values)
    logger.info("order %s confirmed (payment=%s)", order_id, payment_intent_id)
    return order


# --- Fulfilment ---
def claim_fulfillment(order_id):
    """Mark the order as being fulfilled; False when an earlier delivery already did."""
    stmt = (db.update(Order)
            .where(Order.id == order_id, Order.fulfilled_at.is_(None))
            .values(fulfilled_at=func.now())
            .execution_options(synchronize_session=False))
    claimed = db.session.execute(stmt).rowcount == 1
    db.session.commit()
    if not claimed:
        logger.info("order %s already fulfilled; skipping", order_id)
    return claimed


def release_fulfillment(order_id):
    stmt = (db.update(Order)
            .where(Order.id == order_id)
            .values(fulfilled_at=None)
            .execution_options(synchronize_session=False))
    db.session.execute(stmt)
    db.session.commit()
