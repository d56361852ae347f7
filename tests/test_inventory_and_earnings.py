from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from ageless.models_sqlalchemy.models import Auction, Order, OrderItem, VendorEarning
from ageless.services import earnings, inventory, vendors
from ageless.services.errors import ValidationFailed


def _order(db, user, lines, number="AL-20260301-ABC123"):
    order = Order(order_number=number, user_id=user.id, status="paid", payment_status="paid")
    for vendor, gross in lines:
        order.items.append(
            OrderItem(vendor_id=vendor.id, title="Folio", quantity=1, price=Decimal(gross), subtotal=Decimal(gross))
        )
    db.add(order)
    db.commit()
    db.refresh(order)
    return order


def test_reserve_book_decrements_and_marks_sold(db, make_vendor, make_book):
    book = make_book(make_vendor(), quantity=2)

    result = inventory.reserve_book(db, book.id)
    assert result.success
    assert book.quantity == 1
    assert book.status == "published"

    inventory.reserve_book(db, book.id)
    assert book.quantity == 0
    assert book.status == "sold"


def test_reserve_book_errors(db, make_vendor, make_book):
    vendor = make_vendor()
    book = make_book(vendor, quantity=2)

    result = inventory.reserve_book(db, book.id, quantity=3)
    assert not result.success
    assert result.error == "Only 2 available"

    empty = make_book(vendor, quantity=0)
    assert inventory.reserve_book(db, empty.id).error == "Out of stock"
    assert inventory.reserve_book(db, "missing").error == "Book not found"

    for quantity in (0, -4):
        result = inventory.reserve_book(db, book.id, quantity=quantity)
        assert result.error == "Quantity must be at least 1"
    assert book.quantity == 2


def test_untracked_product_checks_status_only(db, make_vendor, make_product):
    vendor = make_vendor()
    product = make_product(vendor, quantity=0, track_quantity=False)
    assert inventory.reserve_product(db, product.id).success

    product.status = "inactive"
    db.commit()
    assert inventory.reserve_product(db, product.id).error == "Product is no longer available"


def test_release_book_revives_sold_item(db, make_vendor, make_book):
    book = make_book(make_vendor(), quantity=0, status="sold")
    result = inventory.release_book(db, book.id)
    assert result.success
    assert book.quantity == 1
    assert book.status == "published"


def test_split_amount():
    assert earnings.split_amount(100, Decimal("0.08")) == (Decimal("8.00"), Decimal("92.00"))
    assert earnings.split_amount("19.99", Decimal("0.10")) == (Decimal("2.00"), Decimal("17.99"))


def test_commission_rate_falls_back_to_default(make_vendor):
    vendor = make_vendor(commission_rate=Decimal("0"))
    assert earnings.commission_rate_for(vendor) == Decimal("0.08")


def test_order_commission_is_idempotent_and_settles(db, make_user, make_vendor):
    buyer = make_user()
    first, second = make_vendor(), make_vendor(commission_rate=Decimal("0.1000"))
    order = _order(db, buyer, [(first, "100.00"), (second, "50.00")])

    created = earnings.process_order_commission(db, order)
    db.commit()
    assert len(created) == 2
    assert earnings.process_order_commission(db, order) == []
    assert db.query(VendorEarning).count() == 2

    db.refresh(first)
    db.refresh(second)
    assert first.balance_pending == Decimal("92.00")
    assert second.balance_pending == Decimal("45.00")
    assert first.lifetime_commission == Decimal("8.00")
    assert first.total_sales == 1

    assert earnings.settle_order_earnings(db, order) == 2
    db.commit()
    db.refresh(first)
    assert first.balance_pending == Decimal("0.00")
    assert first.balance_available == Decimal("92.00")
    assert earnings.settle_order_earnings(db, order) == 0


def test_auction_commission_credits_available_balance(db, make_vendor):
    vendor = make_vendor()
    auction = Auction(id="auction-1", auctionable_type="book", auctionable_id="b", vendor_id=vendor.id,
                      starting_price=Decimal("10.00"), start_date=vendor.created_at, end_date=vendor.created_at)
    db.add(auction)
    db.commit()

    earning = earnings.process_auction_commission(db, auction, Decimal("250.00"))
    db.commit()
    db.refresh(vendor)

    assert earning.transaction_type == "auction_sale"
    assert earning.net_amount == Decimal("230.00")
    assert vendor.balance_available == Decimal("230.00")
    assert vendor.balance_pending == Decimal("0.00")


def test_sales_report_averages_orders_only(db, make_user, make_vendor):
    buyer = make_user()
    vendor = make_vendor()
    for number, gross in (("AL-20260301-AAAAAA", "200.00"), ("AL-20260301-BBBBBB", "100.00")):
        earnings.process_order_commission(db, _order(db, buyer, [(vendor, gross)], number=number))
    auction = Auction(id="auction-2", auctionable_type="book", auctionable_id="b", vendor_id=vendor.id,
                      starting_price=Decimal("10.00"), start_date=vendor.created_at, end_date=vendor.created_at)
    db.add(auction)
    db.commit()
    earnings.process_auction_commission(db, auction, Decimal("1000.00"))
    db.commit()

    report = vendors.sales_report(db, vendor, "all")
    assert report["gross_sales"] == 1300.0
    assert report["commission"] == 104.0
    assert report["net_earnings"] == 1196.0
    assert report["order_count"] == 2
    assert report["auction_sales"] == 1
    assert report["average_order_value"] == 150.0
    assert report["top_items"] == [{"title": "Folio", "quantity": 2, "revenue": 300.0}]
    assert sum(day["gross"] for day in report["daily"]) == 1300.0

    later = vendors.sales_report(db, vendor, "7d", now=datetime.utcnow() + timedelta(days=30))
    assert later["gross_sales"] == 0.0
    assert later["order_count"] == 0
    assert later["average_order_value"] == 0.0
    assert later["top_items"] == []

    with pytest.raises(ValidationFailed, match="Invalid period: 2y"):
        vendors.sales_report(db, vendor, "2y")
