# cart.py
from decimal import Decimal, InvalidOperation

from flask import session

from core import logger
from pricing import money, field, ZERO

SESSION_KEY = "cart"
_OPTIONAL_TEXT = ("author", "description", "cover_url", "pdf_url", "interior_url")


class CartItem:
    __slots__ = ("book_id", "title", "author", "description", "price", "quantity",
                 "is_free", "cover_url", "pdf_url", "interior_url")

    def __init__(self, book_id, title, price, quantity=1, author="", description="",
                 is_free=False, cover_url="", pdf_url="", interior_url=""):
        self.book_id = book_id
        self.title = title
        self.author = author
        self.description = description
        self.price = price
        self.quantity = quantity
        self.is_free = is_free
        self.cover_url = cover_url
        self.pdf_url = pdf_url
        self.interior_url = interior_url

    @property
    def line_total(self):
        return money(self.price * self.quantity)

    @classmethod
    def from_book(cls, book, quantity=1):
        return cls(
            book_id=book.id,
            title=book.title,
            author=book.author or "",
            description=book.description or "",
            price=Decimal(str(book.price)),
            quantity=quantity,
            is_free=bool(book.is_free),
            cover_url=book.cover_url or "",
            pdf_url=book.pdf_url or "",
            interior_url=book.pdf_url or "",
        )

    def to_dict(self):
        data = {name: getattr(self, name) for name in self.__slots__}
        data["price"] = str(self.price)
        return data

    def to_line_item(self):
        """Order line-item snapshot of this cart entry."""
        return {
            "book_id": self.book_id,
            "title": self.title,
            "author": self.author,
            "description": self.description,
            "price": self.price,
            "quantity": self.quantity,
            "cover_url": self.cover_url,
            "interior_url": self.interior_url or self.pdf_url,
            "is_free": self.is_free,
        }

    @classmethod
    def from_dict(cls, data):
        """Build an item from stored data, or return None if any field is off."""
        if not isinstance(data, dict):
            return None
        book_id, title = data.get("book_id"), data.get("title")
        if not isinstance(book_id, str) or not book_id or not isinstance(title, str):
            return None
        quantity = data.get("quantity")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            return None
        raw_price = data.get("price")
        if not isinstance(raw_price, str):
            return None
        try:
            price = Decimal(raw_price)
        except InvalidOperation:
            return None
        if not price.is_finite() or price < 0:
            return None
        is_free = data.get("is_free", False)
        if not isinstance(is_free, bool):
            return None
        text = {}
        for name in _OPTIONAL_TEXT:
            value = data.get(name, "")
            if value is None:
                value = ""
            if not isinstance(value, str):
                return None
            text[name] = value
        return cls(book_id=book_id, title=title, price=price, quantity=quantity,
                   is_free=is_free, **text)


class Cart:
    def __init__(self, items=None):
        self._items = {}
        for item in items or ():
            existing = self._items.get(item.book_id)
            if existing is not None:
                existing.quantity += item.quantity
            else:
                self._items[item.book_id] = item

    def __iter__(self):
        return iter(self._items.values())

    def __len__(self):
        return len(self._items)

    def __contains__(self, book_id):
        return book_id in self._items

    @property
    def items(self):
        return list(self._items.values())

    @property
    def count(self):
        return sum(item.quantity for item in self._items.values())

    @property
    def subtotal(self):
        return money(sum((item.price * item.quantity for item in self._items.values()), ZERO))

    def get(self, book_id):
        return self._items.get(book_id)

    # --- Mutations ---
    def add(self, book, quantity=1):
        existing = self._items.get(field(book, "id"))
        if existing is not None:
            existing.quantity += quantity
            return existing
        item = CartItem.from_book(book, quantity)
        self._items[item.book_id] = item
        return item

    def remove(self, book_id):
        return self._items.pop(book_id, None)

    def update_quantity(self, book_id, quantity):
        if quantity <= 0:
            return self.remove(book_id)
        item = self._items.get(book_id)
        if item is not None:
            item.quantity = quantity
        return item

    def clear(self):
        self._items.clear()

    def line_items(self):
        return [item.to_line_item() for item in self._items.values()]

    # --- Serialization ---
    def to_session(self):
        return [item.to_dict() for item in self._items.values()]

    @classmethod
    def from_session(cls, data):
        if not isinstance(data, list):
            if data is not None:
                logger.warning("discarding cart with unexpected shape: %s", type(data).__name__)
            return cls()
        items = []
        for raw in data:
            item = CartItem.from_dict(raw)
            if item is None:
                logger.warning("discarding invalid cart entry: %r", raw)
                continue
            items.append(item)
        return cls(items)


def load_cart():
    return Cart.from_session(session.get(SESSION_KEY))


def save_cart(cart):
    session[SESSION_KEY] = cart.to_session()
