import re
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import patch

import pytest

from ageless.models_sqlalchemy.models import AuctionWin, Cart, Coupon, Notification, Order, VendorEarning
from ageless.services import auctions, cart, orders
from ageless.services.errors import CouponInvalid, NotFoundError, PaymentFailed, PermissionDenied, ValidationFailed

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def stripe_ok():
    with patch("ageless.services.stripe_gateway.ensure_customer", return_value="cus_123") as customer, \
            patch("ageless.services.stripe_gateway.attach_payment_method") as attach, \
            patch("ageless.services.stripe_gateway.charge", return_value={"id": "pi_123"}) as charge:
        yield {"customer": customer, "attach": attach, "charge": charge}


def _coupon(db, code="TAKE5", discount_type="fixed_amount", value="5.00"):
    coupon = Coupon(code=code, discount_type=discount_type, discount_value=Decimal(value))
    db.add(coupon)
    db.commit()
    return coupon


def test_add_item_merges_duplicates(db, make_user, make_vendor, make_book):
    user = make_user()
    book = make_book(make_vendor(), quantity=3)

    cart.add_item(db, user.id, book_id=book.id)
    entry = cart.add_item(db, user.id, book_id=book.id, quantity=2)

    assert entry.quantity == 3
    summary = cart.cart_summary(db, user.id)
    assert summary["item_count"] == 3
    assert summary["subtotal"] == 300.0
    assert len(summary["items"]) == 1


def test_add_item_validation(db, make_user, make_vendor, make_book):
    user = make_user()
    vendor = make_vendor()
    book = make_book(vendor)

    with pytest.raises(ValidationFailed, match="Provide exactly one of bookId or productId"):
        cart.add_item(db, user.id)
    with pytest.raises(ValidationFailed, match="Quantity must be at least 1"):
        cart.add_item(db, user.id, book_id=book.id, quantity=0)
    with pytest.raises(NotFoundError, match="Book not found"):
        cart.add_item(db, user.id, book_id="missing")
    with pytest.raises(ValidationFailed, match="is not available"):
        cart.add_item(db, user.id, book_id=make_book(vendor, status="draft").id)


def test_add_item_rejects_books_in_active_auction(db, make_user, make_vendor, make_book):
    vendor = make_vendor()
    book = make_book(vendor)
    auctions.create_auction(db, vendor, "book", book.id, "10", end_date=datetime.utcnow() + timedelta(days=2))

    with pytest.raises(ValidationFailed, match="currently in an active auction"):
        cart.add_item(db, make_user().id, book_id=book.id)


def test_update_and_remove_items(db, make_user, make_vendor, make_product):
    user = make_user()
    entry = cart.add_item(db, user.id, product_id=make_product(make_vendor(), quantity=5).id)

    assert cart.update_item_quantity(db, user.id, entry.id, 4).quantity == 4
    with pytest.raises(PermissionDenied):
        cart.update_item_quantity(db, make_user().id, entry.id, 1)

    cart.remove_item(db, user.id, entry.id)
    assert cart.cart_summary(db, user.id)["items"] == []


def test_apply_coupon_and_drop_when_invalid(db, make_user, make_vendor, make_book):
    user = make_user()
    cart.add_item(db, user.id, book_id=make_book(make_vendor()).id)
    coupon = _coupon(db)

    applied = cart.apply_coupon(db, user.id, "take5")
    assert applied["discount_amount"] == 5.0
    assert cart.cart_summary(db, user.id)["coupon"]["code"] == "TAKE5"

    coupon.is_active = False
    db.commit()
    assert cart.cart_summary(db, user.id)["coupon"] is None
    assert db.query(Cart).filter(Cart.user_id == user.id).one().coupon_code is None

    with pytest.raises(CouponInvalid):
        cart.apply_coupon(db, user.id, "NOPE")


def test_generate_order_number():
    number = orders.generate_order_number(NOW)
    assert re.fullmatch(r"AL-20260301-[A-Z0-9]{6}", number)

    with patch("ageless.services.orders.secrets.choice", return_value="Z"):
        assert orders.generate_order_number(NOW) == "AL-20260301-ZZZZZZ"
    assert set("GHKXYZ") <= set(orders.ORDER_SUFFIX_ALPHABET)


async def test_create_order_from_cart(db, make_user, make_vendor, make_book, stripe_ok):
    user = make_user()
    vendor = make_vendor()
    book = make_book(vendor, price="100.00")
    cart.add_item(db, user.id, book_id=book.id)
    cart.apply_coupon(db, user.id, _coupon(db).code)

    order = await orders.create_order(db, user, None, "pm_card_visa", shipping_address={"city": "Bath"})

    assert order.subtotal == Decimal("100.00")
    assert order.tax == Decimal("8.00")
    assert order.shipping_cost == Decimal("10.00")
    assert order.discount == Decimal("5.00")
    assert order.total == Decimal("113.00")
    assert order.status == "paid"
    assert order.stripe_payment_intent_id == "pi_123"
    assert order.billing_address == {"city": "Bath"}
    stripe_ok["charge"].assert_called_once()
    assert stripe_ok["charge"].call_args[0][0] == Decimal("113.00")

    db.refresh(book)
    assert book.quantity == 0
    assert book.status == "sold"
    assert cart.cart_summary(db, user.id)["items"] == []

    earning = db.query(VendorEarning).filter(VendorEarning.order_id == order.id).one()
    assert earning.net_amount == Decimal("92.00")
    types = {n.type for n in db.query(Notification).all()}
    assert {"ORDER_CONFIRMATION", "ORDER_NEW_VENDOR"} <= types


async def test_create_order_skips_invalid_coupon(db, make_user, make_vendor, make_book, stripe_ok):
    user = make_user()
    book = make_book(make_vendor(), price="50.00")

    order = await orders.create_order(
        db, user, [{"book_id": book.id, "quantity": 1}], "pm_card_visa", coupon_code="BOGUS"
    )
    assert order.discount == Decimal("0.00")
    assert order.total == Decimal("64.00")
    assert order.coupon_code is None


async def test_create_order_requires_payment_and_items(db, make_user):
    user = make_user()
    with pytest.raises(ValidationFailed, match="Payment method is required"):
        await orders.create_order(db, user, [], None)
    with pytest.raises(ValidationFailed, match="at least one item"):
        await orders.create_order(db, user, None, "pm_card_visa")


async def test_create_order_out_of_stock(db, make_user, make_vendor, make_book, stripe_ok):
    book = make_book(make_vendor(), title="Leaves of Grass", quantity=1)
    with pytest.raises(ValidationFailed, match="Leaves of Grass: Only 1 available"):
        await orders.create_order(db, make_user(), [{"book_id": book.id, "quantity": 2}], "pm_card_visa")
    stripe_ok["charge"].assert_not_called()


async def test_create_order_rejects_non_positive_quantity(db, make_user, make_vendor, make_book, stripe_ok):
    vendor = make_vendor()
    folio = make_book(vendor, price="500.00", quantity=1)
    octavo = make_book(vendor, price="100.00", quantity=1)

    for quantity in (-4, 0):
        with pytest.raises(ValidationFailed, match="Quantity must be at least 1"):
            await orders.create_order(
                db, make_user(),
                [{"book_id": folio.id, "quantity": 1}, {"book_id": octavo.id, "quantity": quantity}],
                "pm_card_visa",
            )

    stripe_ok["charge"].assert_not_called()
    assert db.query(Order).count() == 0
    for book in (folio, octavo):
        db.refresh(book)
        assert book.quantity == 1
        assert book.status == "published"


async def test_failed_charge_rolls_back_reservation(db, make_user, make_vendor, make_book):
    user = make_user()
    book = make_book(make_vendor())

    with patch("ageless.services.stripe_gateway.ensure_customer", return_value="cus_123"), \
            patch("ageless.services.stripe_gateway.attach_payment_method"), \
            patch("ageless.services.stripe_gateway.charge", side_effect=PaymentFailed("Payment failed: declined")):
        with pytest.raises(PaymentFailed):
            await orders.create_order(db, user, [{"book_id": book.id}], "pm_card_declined")

    db.refresh(book)
    assert book.quantity == 1
    assert book.status == "published"
    assert db.query(Order).count() == 0


async def test_status_transitions(db, make_user, make_vendor, make_book, stripe_ok):
    user = make_user()
    vendor = make_vendor()
    delivered_book = make_book(vendor)
    cancelled_book = make_book(vendor)

    delivered = await orders.create_order(db, user, [{"book_id": delivered_book.id}], "pm_card_visa")
    orders.update_order_status(db, delivered, "delivered")
    db.refresh(vendor)
    assert vendor.balance_available == Decimal("92.00")
    assert vendor.balance_pending == Decimal("0.00")

    cancelled = await orders.create_order(db, user, [{"book_id": cancelled_book.id}], "pm_card_visa")
    orders.update_order_status(db, cancelled, "refunded")
    db.refresh(cancelled_book)
    assert cancelled_book.quantity == 1
    assert cancelled_book.status == "published"
    assert cancelled.payment_status == "refunded"

    with pytest.raises(ValidationFailed, match="Invalid order status"):
        orders.update_order_status(db, cancelled, "lost")


async def test_vendor_fulfillment(db, make_user, make_vendor, make_book, stripe_ok):
    user = make_user()
    vendor = make_vendor()
    order = await orders.create_order(db, user, [{"book_id": make_book(vendor).id}], "pm_card_visa")

    with pytest.raises(PermissionDenied):
        orders.update_fulfillment(db, make_vendor(), order.id, "shipped")

    shipped = orders.update_fulfillment(db, vendor, order.id, "shipped", tracking_number="1Z999", carrier="UPS")
    assert shipped.status == "shipped"
    assert shipped.items[0].tracking_number == "1Z999"
    assert shipped.items[0].shipped_at is not None
    assert db.query(Notification).filter(Notification.type == "order_shipped").count() == 1

    listing = orders.list_vendor_orders(db, vendor.id)
    assert listing["total"] == 1
    assert listing["items"][0]["order_number"] == order.order_number


async def test_pay_auction_win(db, make_user, make_vendor, make_book, stripe_ok):
    vendor = make_vendor()
    book = make_book(vendor, title="Moby-Dick, first edition")
    winner = make_user()
    auction = auctions.create_auction(
        db, vendor, "book", book.id, "200", end_date=NOW + timedelta(days=1),
        start_date=NOW - timedelta(hours=1), now=NOW,
    )
    await auctions.place_bid(db, auction.id, winner, "250", now=NOW)
    auctions.process_auction_ending(db, auction.id, NOW + timedelta(days=1, minutes=1))
    win = db.query(AuctionWin).one()

    with pytest.raises(NotFoundError):
        await orders.pay_auction_win(db, make_user(), win.id, "pm_card_visa", now=NOW + timedelta(days=1, hours=2))
    with pytest.raises(ValidationFailed, match="deadline"):
        await orders.pay_auction_win(db, winner, win.id, "pm_card_visa", now=NOW + timedelta(days=4))

    order = await orders.pay_auction_win(db, winner, win.id, "pm_card_visa", now=NOW + timedelta(days=1, hours=2))
    assert order.total == Decimal("280.00")
    db.refresh(win)
    db.refresh(book)
    assert win.status == "paid"
    assert win.order_id == order.id
    assert book.status == "sold"
    assert book.auction_locked_until is None

    with pytest.raises(ValidationFailed, match="already paid"):
        await orders.pay_auction_win(db, winner, win.id, "pm_card_visa", now=NOW + timedelta(days=1, hours=3))

    winnings = orders.list_winnings(db, winner.id)
    assert winnings[0]["item"]["title"] == "Moby-Dick, first edition"


async def test_auction_win_order_status_changes_keep_single_earning(db, make_user, make_vendor, make_book, stripe_ok):
    vendor = make_vendor()
    book = make_book(vendor)
    winner = make_user()
    auction = auctions.create_auction(
        db, vendor, "book", book.id, "100", end_date=NOW + timedelta(days=1),
        start_date=NOW - timedelta(hours=1), now=NOW,
    )
    await auctions.place_bid(db, auction.id, winner, "100", now=NOW)
    auctions.process_auction_ending(db, auction.id, NOW + timedelta(days=1, minutes=1))
    win = db.query(AuctionWin).one()

    order = await orders.pay_auction_win(db, winner, win.id, "pm_card_visa", now=NOW + timedelta(days=1, hours=2))
    orders.update_order_status(db, order, "shipped")
    orders.update_order_status(db, order, "completed")
    orders.update_order_status(db, order, "delivered")

    earnings = db.query(VendorEarning).filter(VendorEarning.vendor_id == vendor.id).all()
    assert [e.transaction_type for e in earnings] == ["auction_sale"]
    db.refresh(vendor)
    assert vendor.lifetime_gross_sales == Decimal("100.00")
    assert vendor.total_sales == 1
    assert vendor.balance_pending == Decimal("0.00")
    assert vendor.balance_available == Decimal("92.00")
