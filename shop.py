# shop.py
from flask import (
    Blueprint, render_template, redirect, url_for, request, flash, jsonify,
    current_app, send_from_directory,
)

from core import db, logger, Book, payment_gateway
from cart import load_cart, save_cart
from checkout import start_checkout, normalize_buyer
from errors import BookstoreError, ValidationError, NotFoundError, EmailDeliveryError, FulfillmentError
from fulfillment import forward_to_print
from mailer import send_free_pdf, send_order_confirmation
from orders import confirm_payment, claim_fulfillment, release_fulfillment

shop_bp = Blueprint("shop", __name__)


# --- Helpers (storefront-specific) ---
def checkout_urls():
    site = current_app.config["SITE_URL"]
    return f"{site}/success?session_id={{CHECKOUT_SESSION_ID}}", f"{site}/checkout"


def confirm_checkout_session(session_id):
    """Look the session up with the provider and mark its order paid."""
    status = payment_gateway().retrieve_session(session_id)
    if not status.paid:
        raise ValidationError("Payment has not completed for this session", payment_status=status.payment_status)
    order = confirm_payment(session_id, status.payment_intent_id)
    return order, status


@shop_bp.app_context_processor
def inject_cart_count():
    return {"cart_count": load_cart().count}


# --- Routes: Storefront ---
@shop_bp.route("/")
def index():
    books = Book.query.order_by(Book.created_at.desc(), Book.title).all()
    paid = [b for b in books if not b.is_free]
    free = [b for b in books if b.is_free]
    return render_template("index.html", books=paid, free_books=free)


@shop_bp.route("/book/<book_id>")
def book_detail(book_id):
    book = db.get_or_404(Book, book_id)
    return render_template("book.html", book=book)


@shop_bp.route("/uploads/<path:name>")
def uploaded_file(name):
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], name)


@shop_bp.route("/cart/add/<book_id>", methods=["POST"])
def add_to_cart(book_id):
    book = db.session.get(Book, book_id)
    if not book:
        flash("Book not found.", "error")
        return redirect(url_for("shop.index"))
    if book.is_free:
        flash(f"'{book.title}' is free and can't be added to the cart: enter your email to get the PDF.", "error")
        return redirect(url_for("shop.book_detail", book_id=book.id))
    cart = load_cart()
    cart.add(book)
    save_cart(cart)
    flash(f"Added '{book.title}' to cart.", "success")
    return redirect(request.referrer or url_for("shop.index"))


@shop_bp.route("/cart", methods=["GET", "POST"])
def cart_view():
    cart = load_cart()
    if request.method == "POST":
        for key, val in request.form.items():
            if not key.startswith("qty-"):
                continue
            book_id = key.replace("qty-", "", 1)
            try:
                qty = int(val)
            except ValueError:
                qty = 0
            cart.update_quantity(book_id, qty)
        save_cart(cart)
        flash("Cart updated.", "success")
        return redirect(url_for("shop.cart_view"))
    return render_template("cart.html", cart=cart)


@shop_bp.route("/cart/remove/<book_id>", methods=["POST"])
def remove(book_id):
    cart = load_cart()
    cart.remove(book_id)
    save_cart(cart)
    flash("Item removed.", "success")
    return redirect(url_for("shop.cart_view"))


@shop_bp.route("/cart/clear", methods=["POST"])
def clear_cart():
    cart = load_cart()
    cart.clear()
    save_cart(cart)
    return redirect(url_for("shop.cart_view"))


@shop_bp.route("/checkout", methods=["GET", "POST"])
def checkout():
    cart = load_cart()
    if not len(cart):
        flash("Your cart is empty.", "error")
        return redirect(url_for("shop.index"))

    if request.method == "POST":
        buyer = normalize_buyer(request.form)
        missing = [name for name in ("first_name", "last_name", "email", "address", "city", "zip_code", "country")
                   if not buyer[name]]
        if missing:
            flash("Please fill in your name, email and shipping address.", "error")
            return redirect(url_for("shop.checkout"))
        success_url, cancel_url = checkout_urls()
        try:
            session = start_checkout(payment_gateway(), buyer["email"], buyer, cart.line_items(),
                                     success_url, cancel_url)
        except BookstoreError as e:
            flash(e.message, "error")
            return redirect(url_for("shop.checkout"))
        return redirect(session.url or url_for("shop.success", session_id=session.id), code=303)

    return render_template("checkout.html", cart=cart)


@shop_bp.route("/success")
def success():
    session_id = request.args.get("session_id", "")
    if not session_id:
        flash("Missing checkout session.", "error")
        return redirect(url_for("shop.index"))
    try:
        order, status = confirm_checkout_session(session_id)
    except BookstoreError as e:
        flash(e.message, "error")
        return render_template("success.html", order=None, email=None)
    cart = load_cart()
    cart.clear()
    save_cart(cart)
    return render_template("success.html", order=order, email=status.email)


@shop_bp.route("/free/<book_id>", methods=["POST"])
def free_pdf(book_id):
    book = db.get_or_404(Book, book_id)
    email = request.form.get("email", "").strip()
    if not book.is_free or not book.pdf_url:
        flash("This book is not available as a free PDF.", "error")
    elif not email or "@" not in email:
        flash("Please provide a valid email.", "error")
    elif send_free_pdf(email, book.title, book.pdf_url, book.author):
        flash(f"'{book.title}' is on its way to {email}.", "success")
    else:
        flash("We couldn't send the email right now. Please try again.", "error")
    return redirect(url_for("shop.book_detail", book_id=book.id))


# --- Routes: JSON API ---
@shop_bp.route("/api/books")
def api_books():
    books = Book.query.order_by(Book.created_at.desc(), Book.title).all()
    return jsonify([b.to_dict() for b in books])


@shop_bp.route("/api/create-checkout-session", methods=["POST"])
def api_create_checkout_session():
    data = request.get_json(silent=True) or {}
    details = data.get("orderDetails", data)
    if not isinstance(details, dict):
        raise ValidationError("orderDetails must be an object")
    buyer = normalize_buyer(details)
    success_url, cancel_url = checkout_urls()
    session = start_checkout(payment_gateway(), buyer["email"], buyer, details.get("items"),
                             success_url, cancel_url)
    return jsonify({"sessionId": session.id, "url": session.url})


@shop_bp.route("/api/confirm-payment", methods=["POST"])
def api_confirm_payment():
    data = request.get_json(silent=True) or {}
    session_id = data.get("sessionId")
    if not session_id:
        raise ValidationError("Missing sessionId")
    order, status = confirm_checkout_session(session_id)
    return jsonify({"success": True, "email": status.email or order.email,
                    "paymentIntentId": status.payment_intent_id})


@shop_bp.route("/api/webhook", methods=["POST"])
def api_webhook():
    event = payment_gateway().construct_event(
        request.get_data(), request.headers.get("Stripe-Signature", "")
    )
    if event.type != "checkout.session.completed":
        return jsonify({"received": True})

    session = event.session
    logger.info("payment confirmed by webhook: %s (%s)", session.id, session.email)
    try:
        order = confirm_payment(session.id, session.payment_intent_id)
    except NotFoundError:
        logger.error("webhook for unknown order %s", session.id)
        raise
    # the provider redelivers events; only the first delivery fulfils
    if not claim_fulfillment(order.id):
        return jsonify({"received": True, "orderId": order.id, "duplicate": True})
    try:
        job_id = forward_to_print(order)
    except FulfillmentError:
        release_fulfillment(order.id)
        raise
    send_order_confirmation(order)
    return jsonify({"received": True, "orderId": order.id, "printJobId": job_id})


@shop_bp.route("/api/send-pdf", methods=["POST"])
def api_send_pdf():
    data = request.get_json(silent=True) or {}
    email, title, pdf_url = data.get("email"), data.get("bookTitle"), data.get("pdfUrl")
    if not email or not title or not pdf_url:
        raise ValidationError("Missing required fields")
    if not send_free_pdf(email, title, pdf_url, data.get("author") or ""):
        raise EmailDeliveryError("Failed to send email")
    return jsonify({"success": True})
