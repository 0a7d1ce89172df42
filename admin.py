# admin.py
from flask import (
    Blueprint, render_template, redirect, url_for, session, request, flash, jsonify, current_app,
)
from decimal import Decimal, InvalidOperation
import hmac

from core import db, logger, Book, ORDER_STATUSES
from errors import BookstoreError, ValidationError
from finance import summarize, current_tax_rate, store_tax_rate
from orders import set_status, parse_revision, list_active_orders, list_archived_orders
from pricing import order_total, postage_cost
from storage import upload, has_upload, COVER_TYPES, PDF_TYPES

admin_bp = Blueprint("admin", __name__)
admin_bp.add_app_template_global(order_total)
admin_bp.add_app_template_global(postage_cost)

PUBLIC_ENDPOINTS = ("admin.admin_login",)


def require_admin():
    if session.get("is_admin"):
        return None
    if request.is_json:
        return jsonify({"error": "Admin login required"}), 401
    return redirect(url_for("admin.admin_login"))


@admin_bp.before_request
def guard():
    if request.endpoint in PUBLIC_ENDPOINTS:
        return None
    return require_admin()


def book_form_values(form):
    """Parse the book form; raises ValidationError on bad input."""
    title = form.get("title", "").strip()
    author = form.get("author", "").strip()
    if not title or not author:
        raise ValidationError("Please provide title and author.")
    is_free = form.get("is_free") in ("on", "true", "1", "yes")
    raw_price = form.get("price", "").strip() or "0"
    try:
        price = Decimal(raw_price)
    except InvalidOperation:
        raise ValidationError("Invalid price.")
    if not price.is_finite() or price < 0:
        raise ValidationError("Price must be zero or more.")
    return {
        "title": title,
        "author": author,
        "bio": form.get("bio", "").strip() or None,
        "description": form.get("description", "").strip() or None,
        "price": price.quantize(Decimal("0.01")),
        "is_free": is_free,
    }


def uploaded_assets(files):
    """Upload any supplied cover/pdf files; absent files leave the old URL alone."""
    assets = {}
    if has_upload(files.get("cover")):
        assets["cover_url"] = upload(files["cover"], "covers", COVER_TYPES)
    if has_upload(files.get("pdf")):
        assets["pdf_url"] = upload(files["pdf"], "pdfs", PDF_TYPES)
    return assets


@admin_bp.route("/login", methods=["GET", "POST"])
def admin_login():
    if request.method == "POST":
        pwd = request.form.get("password", "")
        expected = current_app.config["ADMIN_PASSWORD"]
        if hmac.compare_digest(pwd.encode(), expected.encode()):
            session["is_admin"] = True
            return redirect(url_for("admin.admin"))
        logger.warning("failed admin login from %s", request.remote_addr)
        flash("Incorrect password.", "error")
    return render_template("admin_login.html")


@admin_bp.route("/logout")
def admin_logout():
    session.pop("is_admin", None)
    flash("Logged out.", "success")
    return redirect(url_for("shop.index"))


@admin_bp.route("/")
def admin():
    books = Book.query.order_by(Book.created_at.desc(), Book.title).all()
    return render_template("admin.html", books=books)


# --- Books ---
@admin_bp.route("/new", methods=["GET", "POST"])
def admin_new():
    if request.method == "POST":
        try:
            values = book_form_values(request.form)
            values.update(uploaded_assets(request.files))
        except ValidationError as e:
            flash(e.message, "error")
            return redirect(url_for("admin.admin_new"))
        book = Book(**values)
        db.session.add(book)
        db.session.commit()
        logger.info("book %s created: %s", book.id, book.title)
        flash("Book created.", "success")
        return redirect(url_for("admin.admin"))
    return render_template("admin_edit.html", book=None)


@admin_bp.route("/edit/<book_id>", methods=["GET", "POST"])
def admin_edit(book_id):
    bk = db.get_or_404(Book, book_id)
    if request.method == "POST":
        try:
            values = book_form_values(request.form)
            values.update(uploaded_assets(request.files))
        except ValidationError as e:
            flash(e.message, "error")
            return redirect(url_for("admin.admin_edit", book_id=bk.id))
        for name, value in values.items():
            setattr(bk, name, value)
        db.session.commit()
        logger.info("book %s updated", bk.id)
        flash("Book updated.", "success")
        return redirect(url_for("admin.admin"))
    return render_template("admin_edit.html", book=bk)


@admin_bp.route("/delete/<book_id>", methods=["POST"])
def admin_delete(book_id):
    bk = db.get_or_404(Book, book_id)
    db.session.delete(bk)
    db.session.commit()
    logger.info("book %s deleted", book_id)
    flash("Book deleted.", "success")
    return redirect(url_for("admin.admin"))


# --- Orders ---
@admin_bp.route("/orders")
def admin_orders():
    return render_template(
        "admin_orders.html",
        orders=list_active_orders(),
        archived=list_archived_orders(),
        statuses=ORDER_STATUSES,
    )


@admin_bp.route("/orders/<order_id>/status", methods=["POST"])
def admin_order_status(order_id):
    if request.is_json:
        data = request.get_json(silent=True) or {}
        order = set_status(order_id, data.get("status"), parse_revision(data.get("revision")))
        return jsonify({"id": order.id, "status": order.status, "revision": order.revision})
    try:
        order = set_status(order_id, request.form.get("status"), parse_revision(request.form.get("revision")))
    except BookstoreError as e:
        flash(e.message, "error")
    else:
        flash(f"Order marked as {order.status}.", "success")
    return redirect(url_for("admin.admin_orders"))


# --- Finance ---
@admin_bp.route("/finance")
def admin_finance():
    report = summarize(
        Book.query.order_by(Book.created_at, Book.title).all(),
        list_active_orders(),
        list_archived_orders(),
        current_tax_rate(),
        current_app.config["DEFAULT_POSTAGE"],
    )
    return render_template("admin_finance.html", report=report)


@admin_bp.route("/finance/tax-rate", methods=["POST"])
def admin_tax_rate():
    try:
        rate = store_tax_rate(request.form.get("tax_rate", ""))
    except ValidationError as e:
        flash(e.message, "error")
    else:
        flash(f"Tax rate set to {rate}%.", "success")
    return redirect(url_for("admin.admin_finance"))
