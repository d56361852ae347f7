from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from ageless.models_sqlalchemy.models import Notification, User
from ageless.services import offers
from ageless.services.errors import NotFoundError, PermissionDenied, ValidationFailed


def test_vendor_offer_uses_sale_price_and_notifies_buyer(db, make_vendor, make_book, make_user):
    vendor = make_vendor()
    book = make_book(vendor, price="120.00", sale_price=Decimal("100.00"))
    buyer = make_user()

    offer = offers.create_vendor_offer(db, vendor, buyer.id, "book", book.id, "85", message="For a loyal reader")

    assert offer.original_price == Decimal("100.00")
    assert offer.offer_price == Decimal("85.00")
    assert offer.initiated_by == "vendor"
    note = db.query(Notification).filter(Notification.user_id == buyer.id).one()
    assert note.type == "custom_offer"
    assert note.data["offerId"] == offer.id

    with pytest.raises(ValidationFailed, match="pending offer already exists"):
        offers.create_vendor_offer(db, vendor, buyer.id, "book", book.id, "80")


def test_vendor_offer_validation(db, make_vendor, make_book, make_user):
    vendor = make_vendor()
    book = make_book(vendor)
    buyer = make_user()

    with pytest.raises(PermissionDenied):
        offers.create_vendor_offer(db, make_vendor(), buyer.id, "book", book.id, "50")
    with pytest.raises(NotFoundError, match="Target user"):
        offers.create_vendor_offer(db, vendor, "nobody", "book", book.id, "50")
    with pytest.raises(ValidationFailed, match="greater than 0"):
        offers.create_vendor_offer(db, vendor, buyer.id, "book", book.id, "0")
    with pytest.raises(ValidationFailed, match="itemType"):
        offers.create_vendor_offer(db, vendor, buyer.id, "scroll", book.id, "50")


def test_buyer_accepts_vendor_offer(db, make_vendor, make_book, make_user):
    vendor = make_vendor()
    buyer = make_user()
    offer = offers.create_vendor_offer(db, vendor, buyer.id, "book", make_book(vendor).id, "70")

    with pytest.raises(PermissionDenied):
        offers.respond_as_buyer(db, offer.id, make_user(), "accept")

    accepted = offers.respond_as_buyer(db, offer.id, buyer, "accept")
    assert accepted.status == "accepted"
    assert accepted.responded_at is not None
    assert db.query(Notification).filter(
        Notification.user_id == vendor.user_id, Notification.type == "offer_accepted"
    ).count() == 1

    with pytest.raises(ValidationFailed, match="Offer is already accepted"):
        offers.respond_as_buyer(db, offer.id, buyer, "decline")


def test_expired_offer_cannot_be_accepted(db, make_vendor, make_book, make_user):
    vendor = make_vendor()
    buyer = make_user()
    offer = offers.create_vendor_offer(db, vendor, buyer.id, "book", make_book(vendor).id, "70")
    offer.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(ValidationFailed, match="This offer has expired"):
        offers.respond_as_buyer(db, offer.id, buyer, "accept")
    db.refresh(offer)
    assert offer.status == "expired"


def test_buyer_offer_flow(db, make_vendor, make_product, make_user):
    vendor = make_vendor()
    product = make_product(vendor)
    buyer = make_user()
    owner = db.get(User, vendor.user_id)

    with pytest.raises(ValidationFailed, match="your own item"):
        offers.create_buyer_offer(db, owner, "product", product.id, "30")

    offer = offers.create_buyer_offer(db, buyer, "product", product.id, "30")
    assert offer.initiated_by == "buyer"
    with pytest.raises(ValidationFailed, match="already have a pending offer"):
        offers.create_buyer_offer(db, buyer, "product", product.id, "32")

    declined = offers.respond_as_vendor(db, offer.id, vendor, "decline")
    assert declined.status == "declined"
    assert db.query(Notification).filter(
        Notification.user_id == buyer.id, Notification.type == "offer_declined"
    ).count() == 1


def test_cancel_and_list_offers(db, make_vendor, make_book, make_user):
    vendor = make_vendor()
    buyer = make_user()
    offer = offers.create_vendor_offer(db, vendor, buyer.id, "book", make_book(vendor).id, "70")

    assert len(offers.list_user_offers(db, buyer.id)) == 1
    assert offers.list_vendor_offers(db, vendor.id, initiated_by="vendor")["total"] == 1

    offers.cancel_offer(db, offer.id, vendor)
    assert offers.list_user_offers(db, buyer.id) == []
    assert offers.list_user_offers(db, buyer.id, include_all=True)[0]["status"] == "cancelled"
    with pytest.raises(ValidationFailed, match="Only pending offers"):
        offers.cancel_offer(db, offer.id, vendor)

    with pytest.raises(PermissionDenied):
        offers.offer_detail(db, offer.id, make_user())
    assert offers.offer_detail(db, offer.id, buyer)["item"]["price"] == 100.0
