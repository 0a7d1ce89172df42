# core.py
from flask import Flask, current_app
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import func
from dotenv import load_dotenv
from decimal import Decimal
import logging
import uuid
import os

# --- Logging (shared across blueprints) ---
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("bookhaven")

# --- DB handle (imported by blueprints) ---
db = SQLAlchemy()

# --- Constants shared across blueprints ---
DEFAULT_POSTAGE = Decimal("5.00")
DEFAULT_TAX_RATE = Decimal("20")     # percent
ORDER_STATUSES = ("pending", "completed", "success", "archived")
ACTIVE_STATUSES = ("pending", "completed", "success")


def new_id():
    return uuid.uuid4().hex


# --- Models ---
class Book(db.Model):
    __tablename__ = "books"

    id = db.Column(db.String(32), primary_key=True, default=new_id)
    title = db.Column(db.String(200), nullable=False)
    author = db.Column(db.String(120), nullable=False)
    bio = db.Column(db.Text, nullable=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    is_free = db.Column(db.Boolean, nullable=False, default=False)
    cover_url = db.Column(db.String(500), nullable=True)
    pdf_url = db.Column(db.String(500), nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "bio": self.bio,
            "description": self.description,
            "price": str(self.price),
            "isFree": self.is_free,
            "coverUrl": self.cover_url,
            "pdfUrl": self.pdf_url,
        }


class Order(db.Model):
    __tablename__ = "orders"

    id = db.Column(db.String(255), primary_key=True)  # checkout session id
    first_name = db.Column(db.String(120), nullable=False, default="")
    last_name = db.Column(db.String(120), nullable=False, default="")
    email = db.Column(db.String(200), nullable=False)
    address = db.Column(db.String(300), nullable=False, default="")
    city = db.Column(db.String(120), nullable=False, default="")
    zip_code = db.Column(db.String(20), nullable=False, default="")
    country = db.Column(db.String(60), nullable=False, default="")
    status = db.Column(db.String(20), nullable=False, default="pending")
    total_price = db.Column(db.Numeric(10, 2), nullable=False)
    postage_cost = db.Column(db.Numeric(10, 2), nullable=True)  # None -> DEFAULT_POSTAGE
    payment_intent_id = db.Column(db.String(255), nullable=True)
    revision = db.Column(db.Integer, nullable=False, default=1)
    fulfilled_at = db.Column(db.DateTime, nullable=True)  # set once print + email are dispatched
    created_at = db.Column(db.DateTime, nullable=False, server_default=func.now())
    updated_at = db.Column(db.DateTime, nullable=True)

    items = db.relationship(
        "OrderItem",
        backref="order",
        order_by="OrderItem.position",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def buyer_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def first_item(self):
        return self.items[0] if self.items else None


class OrderItem(db.Model):
    __tablename__ = "order_items"

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.String(255), db.ForeignKey("orders.id"), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)
    book_id = db.Column(db.String(32), nullable=True)  # snapshot; no FK so deletes don't cascade
    title = db.Column(db.String(200), nullable=False)
    author = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)
    price = db.Column(db.Numeric(10, 2), nullable=True)
    quantity = db.Column(db.Integer, nullable=True)
    cover_url = db.Column(db.String(500), nullable=True)
    interior_url = db.Column(db.String(500), nullable=True)
    is_free = db.Column(db.Boolean, nullable=False, default=False)


def seed_if_empty():
    """Seed initial books on first run."""
    if Book.query.count() > 0:
        return
    books = [
        {"title": "Echoes of the Tide", "author": "C. S. Logan", "price": Decimal("12.99"),
         "description": "A coastal mystery in paperback."},
        {"title": "The Quiet Harbour", "author": "C. S. Logan", "price": Decimal("10.99"),
         "description": "Short stories from the north shore."},
        {"title": "A Taste of Salt", "author": "C. S. Logan", "price": Decimal("0.00"), "is_free": True,
         "description": "Free sampler, delivered as a PDF."},
    ]
    for b in books:
        db.session.add(Book(**b))
    db.session.commit()


def _env_decimal(name, default):
    raw = os.environ.get(name)
    return Decimal(raw) if raw else default


def create_app(test_config=None):
    app = Flask(__name__)

    # --- Config ---
    BASE_DIR = os.path.abspath(os.path.dirname(__file__))
    load_dotenv(os.path.join(BASE_DIR, ".env"))
    DB_PATH = os.path.join(BASE_DIR, "bookstore.db")
    app.config.from_mapping(
        SECRET_KEY=os.environ.get("SECRET_KEY", "dev-secret-change-me"),
        SQLALCHEMY_DATABASE_URI=os.environ.get("DATABASE_URL", f"sqlite:///{DB_PATH}"),
        SQLALCHEMY_TRACK_MODIFICATIONS=False,
        ADMIN_PASSWORD=os.environ.get("ADMIN_PASSWORD", "admin123"),
        SITE_URL=os.environ.get("SITE_URL", "http://localhost:5000").rstrip("/"),
        CURRENCY=os.environ.get("CURRENCY", "gbp"),
        DEFAULT_TAX_RATE=_env_decimal("DEFAULT_TAX_RATE", DEFAULT_TAX_RATE),
        DEFAULT_POSTAGE=_env_decimal("DEFAULT_POSTAGE", DEFAULT_POSTAGE),
        STRIPE_SECRET_KEY=os.environ.get("STRIPE_SECRET_KEY", ""),
        STRIPE_WEBHOOK_SECRET=os.environ.get("STRIPE_WEBHOOK_SECRET", ""),
        UPLOAD_FOLDER=os.environ.get("UPLOAD_FOLDER", os.path.join(BASE_DIR, "static", "uploads")),
        SMTP_HOST=os.environ.get("SMTP_HOST", ""),
        SMTP_PORT=int(os.environ.get("SMTP_PORT", "587")),
        SMTP_USER=os.environ.get("SMTP_USER", ""),
        SMTP_PASS=os.environ.get("SMTP_PASS", ""),
        MAIL_FROM=os.environ.get("MAIL_FROM", "Book Haven <noreply@example.com>"),
        LULU_API_URL=os.environ.get("LULU_API_URL", "https://api.lulu.com/print-jobs/"),
        LULU_API_TOKEN=os.environ.get("LULU_API_TOKEN", ""),
        SEED_CATALOG=True,
    )
    if test_config:
        app.config.update(test_config)

    db.init_app(app)

    # Payment gateway is swappable (tests inject a fake)
    from payments import StripeGateway
    app.extensions["payment_gateway"] = app.config.get("PAYMENT_GATEWAY") or StripeGateway(
        app.config["STRIPE_SECRET_KEY"], app.config["STRIPE_WEBHOOK_SECRET"], app.config["CURRENCY"]
    )

    # Register blueprints (import inside to avoid circular imports)
    from errors import register_error_handlers
    from shop import shop_bp
    from admin import admin_bp
    register_error_handlers(app)
    app.register_blueprint(shop_bp)          # storefront at /
    app.register_blueprint(admin_bp, url_prefix="/admin")

    # Ensure tables exist at startup
    with app.app_context():
        db.create_all()
        if app.config["SEED_CATALOG"]:
            seed_if_empty()

    logger.info("bookstore app created (db=%s)", app.config["SQLALCHEMY_DATABASE_URI"])
    return app


def payment_gateway(app=None):
    return (app or current_app).extensions["payment_gateway"]
