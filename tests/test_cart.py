from decimal import Decimal
from types import SimpleNamespace

from cart import Cart, CartItem, load_cart, save_cart


def book(book_id="b1", title="Echoes", price="12.50", is_free=False):
    return SimpleNamespace(id=book_id, title=title, author="C. S. Logan", description=None,
                           price=Decimal(price), is_free=is_free, cover_url=None, pdf_url="http://cdn.test/x.pdf")


def test_adding_same_book_merges_quantity():
    cart = Cart()
    cart.add(book())
    cart.add(book())
    cart.add(book("b2", "Harbour", "8.00"))
    assert len(cart) == 2
    assert cart.get("b1").quantity == 2
    assert cart.count == 3
    assert cart.subtotal == Decimal("33.00")


def test_update_remove_clear():
    cart = Cart()
    cart.add(book())
    cart.add(book("b2", "Harbour", "8.00"))
    cart.update_quantity("b1", 4)
    assert cart.get("b1").line_total == Decimal("50.00")
    cart.update_quantity("b2", 0)
    assert "b2" not in cart
    cart.remove("b1")
    assert len(cart) == 0
    cart.add(book())
    cart.clear()
    assert cart.items == []


def test_updating_unknown_item_is_a_noop():
    cart = Cart()
    assert cart.update_quantity("ghost", 3) is None
    assert len(cart) == 0


def test_session_round_trip():
    cart = Cart()
    cart.add(book(), quantity=2)
    restored = Cart.from_session(cart.to_session())
    item = restored.get("b1")
    assert item.quantity == 2
    assert item.price == Decimal("12.50")
    assert item.interior_url == "http://cdn.test/x.pdf"


def test_invalid_entries_are_discarded():
    stored = [
        {"book_id": "ok", "title": "Fine", "price": "3.50", "quantity": 2},
        {"book_id": "p", "title": "Bad price", "price": "abc", "quantity": 1},
        {"book_id": "f", "title": "Float price", "price": 3.5, "quantity": 1},
        {"book_id": 5, "title": "Bad id", "price": "1", "quantity": 1},
        {"book_id": "q", "title": "Bool qty", "price": "1", "quantity": True},
        {"book_id": "z", "title": "Zero qty", "price": "1", "quantity": 0},
        {"book_id": "n", "title": "Neg", "price": "-1", "quantity": 1},
        {"book_id": "a", "title": "Bad author", "price": "1", "quantity": 1, "author": 7},
        "junk",
        None,
    ]
    cart = Cart.from_session(stored)
    assert [i.book_id for i in cart] == ["ok"]


def test_duplicate_stored_entries_merge():
    stored = [
        {"book_id": "b1", "title": "Echoes", "price": "12.50", "quantity": 2},
        {"book_id": "b1", "title": "Echoes", "price": "12.50", "quantity": 3},
    ]
    cart = Cart.from_session(stored)
    assert len(cart) == 1
    assert cart.get("b1").quantity == 5


def test_legacy_cart_shape_is_dropped():
    # older carts were a {slug: qty} mapping
    assert len(Cart.from_session({"sapiens": 2})) == 0
    assert len(Cart.from_session(None)) == 0


def test_line_items_snapshot():
    cart = Cart()
    cart.add(book(), quantity=3)
    (item,) = cart.line_items()
    assert item["book_id"] == "b1"
    assert item["price"] == Decimal("12.50")
    assert item["quantity"] == 3
    assert item["interior_url"] == "http://cdn.test/x.pdf"


def test_load_and_save_use_the_session(app):
    with app.test_request_context():
        cart = load_cart()
        cart.add(book())
        save_cart(cart)
        assert load_cart().get("b1").quantity == 1


def test_from_dict_rejects_non_mapping():
    assert CartItem.from_dict(["b1", 1]) is None
