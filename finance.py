# finance.py
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation

from flask import current_app, session

from core import DEFAULT_POSTAGE
from errors import ValidationError
from pricing import field, money, order_total, postage_cost, ZERO

HUNDRED = Decimal(100)


@dataclass
class FinanceSummary:
    book_title: str
    units_sold: int = 0
    revenue: Decimal = ZERO
    tax: Decimal = ZERO


@dataclass
class FinanceReport:
    tax_rate: Decimal
    rows: list
    total_revenue: Decimal
    total_units_sold: int
    total_postage: Decimal
    total_tax: Decimal
    net_revenue: Decimal


def _first_item(order):
    items = field(order, "items") or ()
    return items[0] if len(items) else None


def _match_row(order, by_id, by_title):
    item = _first_item(order)
    if item is None:
        return None
    # legacy items carry no id; deleted books are gone from by_id
    row = by_id.get(field(item, "book_id"))
    return row or by_title.get(field(item, "title"))


def summarize(books, active_orders, archived_orders, tax_rate, default_postage=DEFAULT_POSTAGE):
    rate = parse_tax_rate(tax_rate)
    by_title = {}
    by_id = {}
    for book in books:
        title = field(book, "title")
        row = by_title.get(title)
        if row is None:
            row = by_title[title] = FinanceSummary(book_title=title)
        by_id[field(book, "id")] = row

    all_orders = list(active_orders) + list(archived_orders)
    for order in all_orders:
        row = _match_row(order, by_id, by_title)
        if row is None:
            continue
        row.units_sold += 1
        row.revenue += order_total(order)

    rows = list(by_title.values())
    for row in rows:
        row.revenue = money(row.revenue)
        row.tax = row.revenue * rate / HUNDRED

    # tax and net stay unrounded; templates format them to pence
    total_revenue = money(sum((row.revenue for row in rows), ZERO))
    total_tax = total_revenue * rate / HUNDRED
    return FinanceReport(
        tax_rate=rate,
        rows=rows,
        total_revenue=total_revenue,
        total_units_sold=sum(row.units_sold for row in rows),
        total_postage=money(sum((postage_cost(o, default_postage) for o in all_orders), ZERO)),
        total_tax=total_tax,
        net_revenue=total_revenue * (1 - rate / HUNDRED),
    )


def parse_tax_rate(raw):
    if isinstance(raw, bool):
        raise ValidationError(f"Invalid tax rate: {raw!r}")
    try:
        rate = Decimal(str(raw).strip()) if not isinstance(raw, Decimal) else raw
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid tax rate: {raw!r}")
    if not rate.is_finite() or rate < 0 or rate > HUNDRED:
        raise ValidationError(f"Tax rate must be between 0 and 100, got {raw!r}")
    return rate


# --- Admin tax-rate setting (kept in the admin's session) ---
def current_tax_rate():
    stored = session.get("tax_rate")
    if stored is not None:
        try:
            return parse_tax_rate(stored)
        except ValidationError:
            session.pop("tax_rate", None)
    return parse_tax_rate(current_app.config["DEFAULT_TAX_RATE"])


def store_tax_rate(raw):
    """Validate and persist a new rate; on error the previous rate stays."""
    rate = parse_tax_rate(raw)
    session["tax_rate"] = str(rate)
    return rate
