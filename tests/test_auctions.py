from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from ageless.models_sqlalchemy.models import Auction, AuctionBid, AuctionWin, Notification, User
from ageless.services import auctions
from ageless.services.errors import NotFoundError, PermissionDenied, ValidationFailed

NOW = datetime(2026, 3, 1, 12, 0, 0)


@pytest.fixture
def seller(make_vendor):
    return make_vendor()


@pytest.fixture
def auction(db, seller, make_book):
    book = make_book(seller, title="Paradise Lost, 1667")
    return auctions.create_auction(
        db,
        seller,
        "book",
        book.id,
        starting_price="100.00",
        end_date=NOW + timedelta(days=7),
        start_date=NOW - timedelta(hours=1),
        now=NOW,
    )


def test_create_auction_sets_status_and_locks_item(db, seller, make_book):
    book = make_book(seller)
    upcoming = auctions.create_auction(
        db, seller, "book", book.id, "50", end_date=NOW + timedelta(days=3),
        start_date=NOW + timedelta(days=1), now=NOW,
    )
    assert upcoming.status == "upcoming"
    assert upcoming.starting_price == Decimal("50.00")
    db.refresh(book)
    assert book.auction_locked_until == NOW + timedelta(days=3)

    with pytest.raises(ValidationFailed, match="already has an open auction"):
        auctions.create_auction(db, seller, "book", book.id, "50", end_date=NOW + timedelta(days=3), now=NOW)


def test_create_auction_validation(db, seller, make_vendor, make_book):
    book = make_book(seller)
    end = NOW + timedelta(days=1)
    with pytest.raises(ValidationFailed, match="auctionable_type"):
        auctions.create_auction(db, seller, "map", book.id, "10", end_date=end, now=NOW)
    with pytest.raises(ValidationFailed, match="End date must be after start date"):
        auctions.create_auction(db, seller, "book", book.id, "10", end_date=NOW - timedelta(days=1), now=NOW)
    with pytest.raises(ValidationFailed, match="Starting price"):
        auctions.create_auction(db, seller, "book", book.id, "0", end_date=end, now=NOW)
    with pytest.raises(ValidationFailed, match="Reserve price"):
        auctions.create_auction(db, seller, "book", book.id, "10", end_date=end, reserve_price="5", now=NOW)
    with pytest.raises(NotFoundError):
        auctions.create_auction(db, seller, "book", "missing", "10", end_date=end, now=NOW)
    with pytest.raises(PermissionDenied):
        auctions.create_auction(db, make_vendor(), "book", book.id, "10", end_date=end, now=NOW)


def test_minimum_bid():
    fresh = Auction(starting_price=Decimal("25.00"), current_bid=None, bid_count=0)
    assert auctions.minimum_bid(fresh) == Decimal("25.00")
    bidding = Auction(starting_price=Decimal("25.00"), current_bid=Decimal("40.00"), bid_count=2)
    assert auctions.minimum_bid(bidding) == Decimal("41.00")


async def test_place_bid_outbids_previous_bidder(db, auction, make_user):
    first, second = make_user(), make_user()

    bid = await auctions.place_bid(db, auction.id, first, "100.00", now=NOW)
    assert bid.status == "winning"

    await auctions.place_bid(db, auction.id, second, "101.00", now=NOW)
    db.refresh(auction)
    db.refresh(bid)
    assert auction.current_bid == Decimal("101.00")
    assert auction.bid_count == 2
    assert bid.status == "outbid"

    note = db.query(Notification).filter(Notification.user_id == first.id).one()
    assert note.type == "auction_outbid"
    assert "Current bid: $101.00." in note.message
    assert note.data["auctionId"] == auction.id


async def test_place_bid_below_minimum(db, auction, make_user):
    with pytest.raises(ValidationFailed) as exc:
        await auctions.place_bid(db, auction.id, make_user(), "99.99", now=NOW)
    assert exc.value.message == "Bid must be at least $100.00"


async def test_place_bid_rules(db, auction, seller, make_user):
    bidder = make_user()
    seller_user = db.get(User, seller.user_id)

    with pytest.raises(ValidationFailed, match="cannot bid on your own auction"):
        await auctions.place_bid(db, auction.id, seller_user, "150", now=NOW)

    await auctions.place_bid(db, auction.id, bidder, "100", now=NOW)
    with pytest.raises(ValidationFailed, match="already have the highest bid"):
        await auctions.place_bid(db, auction.id, bidder, "120", now=NOW)

    with pytest.raises(ValidationFailed, match="Auction has ended"):
        await auctions.place_bid(db, auction.id, make_user(), "200", now=NOW + timedelta(days=8))

    with pytest.raises(NotFoundError):
        await auctions.place_bid(db, "missing", bidder, "100", now=NOW)


async def test_place_bid_on_upcoming_auction(db, seller, make_book, make_user):
    book = make_book(seller)
    upcoming = auctions.create_auction(
        db, seller, "book", book.id, "10", end_date=NOW + timedelta(days=3),
        start_date=NOW + timedelta(days=1), now=NOW,
    )
    with pytest.raises(ValidationFailed, match="Auction is not active"):
        await auctions.place_bid(db, upcoming.id, make_user(), "10", now=NOW)


async def test_ending_with_winner_records_win_and_commission(db, auction, seller, make_user):
    first, second = make_user(), make_user()
    await auctions.place_bid(db, auction.id, first, "100", now=NOW)
    await auctions.place_bid(db, auction.id, second, "180", now=NOW)

    ended_at = auction.end_date + timedelta(minutes=1)
    outcome = auctions.process_auction_ending(db, auction.id, ended_at)

    assert outcome["status"] == "ended_sold"
    assert outcome["winner_id"] == second.id
    assert outcome["amount"] == Decimal("180.00")

    db.refresh(auction)
    assert auction.winner_id == second.id
    assert auction.payment_deadline == auction.end_date + timedelta(hours=48)
    win = db.query(AuctionWin).filter(AuctionWin.auction_id == auction.id).one()
    assert win.status == "pending_payment"
    statuses = {b.user_id: b.status for b in db.query(AuctionBid).all()}
    assert statuses == {first.id: "lost", second.id: "won"}

    db.refresh(seller)
    assert seller.balance_available == Decimal("165.60")

    assert auctions.process_auction_ending(db, auction.id, ended_at) is None


def test_ending_without_bids(db, auction):
    outcome = auctions.process_auction_ending(db, auction.id, NOW + timedelta(days=8))
    assert outcome["status"] == "ended_no_bids"
    assert outcome["reason"] == "NO_BIDS"


async def test_ending_below_reserve(db, seller, make_book, make_user):
    book = make_book(seller)
    reserved = auctions.create_auction(
        db, seller, "book", book.id, "50", end_date=NOW + timedelta(days=1),
        start_date=NOW - timedelta(hours=1), reserve_price="500", now=NOW,
    )
    await auctions.place_bid(db, reserved.id, make_user(), "60", now=NOW)

    outcome = auctions.process_auction_ending(db, reserved.id, NOW + timedelta(days=2))
    assert outcome["status"] == "ended_reserve_not_met"
    assert outcome["winner_id"] is None
    assert db.query(AuctionWin).count() == 0


async def test_update_auction_statuses_activates_and_ends(db, auction, seller, make_book, make_user):
    book = make_book(seller)
    later = auctions.create_auction(
        db, seller, "book", book.id, "10", end_date=NOW + timedelta(days=30),
        start_date=NOW + timedelta(hours=1), now=NOW,
    )
    winner = make_user()
    await auctions.place_bid(db, auction.id, winner, "100", now=NOW)

    result = await auctions.update_auction_statuses(db, NOW + timedelta(days=8))
    assert result == {"activated": 1, "ended": 1}

    db.refresh(later)
    assert later.status == "active"
    notice = db.query(Notification).filter(
        Notification.user_id == winner.id, Notification.type == "AUCTION_WON_PAYMENT_DUE"
    ).one()
    assert notice.data["entityId"] == auction.id

    again = await auctions.update_auction_statuses(db, NOW + timedelta(days=8))
    assert again == {"activated": 0, "ended": 0}


def test_relist_requires_unsold_auction(db, auction, seller):
    with pytest.raises(ValidationFailed, match="Only unsold auctions can be relisted"):
        auctions.relist_auction(db, auction, seller, None)

    auctions.process_auction_ending(db, auction.id, NOW + timedelta(days=8))
    db.refresh(auction)
    relisted = auctions.relist_auction(db, auction, seller, None, starting_price="80", duration_days=5, now=NOW)

    assert relisted.status == "active"
    assert relisted.relist_count == 1
    assert relisted.parent_auction_id == auction.id
    assert relisted.starting_price == Decimal("80.00")
    assert relisted.end_date == NOW + timedelta(days=5)


def test_relist_limit(db, auction, seller):
    auction.relist_max_count = 1
    auction.relist_count = 1
    db.commit()
    auctions.process_auction_ending(db, auction.id, NOW + timedelta(days=8))
    db.refresh(auction)
    with pytest.raises(ValidationFailed, match=r"Maximum relist limit \(1\) reached"):
        auctions.relist_auction(db, auction, seller, None, now=NOW)


def test_conversion_price_sources():
    base = dict(starting_price=Decimal("40.00"), reserve_price=Decimal("60.00"), current_bid=Decimal("55.00"))
    assert auctions.conversion_price(Auction(convert_price_source="RESERVE", **base)) == Decimal("60.00")
    assert auctions.conversion_price(Auction(convert_price_source="HIGHEST_BID", **base)) == Decimal("55.00")
    marked_up = Auction(convert_price_source="STARTING_BID", convert_price_markup_bps=1500, **base)
    assert auctions.conversion_price(marked_up) == Decimal("46.00")
    assert auctions.conversion_price(Auction(**base), "75") == Decimal("75.00")
    with pytest.raises(ValidationFailed, match="Price required"):
        auctions.conversion_price(Auction(convert_price_source="MANUAL", **base))


def test_convert_to_fixed_and_unlist(db, seller, make_book):
    book = make_book(seller, status="draft")
    auction = auctions.create_auction(
        db, seller, "book", book.id, "40", end_date=NOW + timedelta(days=1),
        start_date=NOW - timedelta(hours=1), now=NOW,
    )
    auctions.process_auction_ending(db, auction.id, NOW + timedelta(days=2))
    db.refresh(auction)

    result = auctions.convert_to_fixed(db, auction, seller, None, price="95")
    assert result == {"item_type": "book", "item_id": book.id, "price": 95.0}
    db.refresh(book)
    assert book.status == "published"
    assert book.price == Decimal("95.00")
    assert auction.status == "cancelled"

    with pytest.raises(ValidationFailed):
        auctions.unlist_auction(db, auction, seller, None)


def test_unlist_archives_item(db, auction, seller):
    auctions.process_auction_ending(db, auction.id, NOW + timedelta(days=8))
    db.refresh(auction)
    auctions.unlist_auction(db, auction, seller, None)
    item = auctions.get_auctionable_item(db, auction)
    assert item.status == "archived"
    assert item.auction_locked_until is None


async def test_cancel_auction(db, auction, seller, make_vendor, make_user):
    with pytest.raises(PermissionDenied):
        auctions.cancel_auction(db, auction, make_vendor(), None)

    await auctions.place_bid(db, auction.id, make_user(), "100", now=NOW)
    with pytest.raises(ValidationFailed, match="Auctions with bids cannot be cancelled"):
        auctions.cancel_auction(db, auction, seller, None)


def test_cancel_auction_without_bids(db, auction, seller, make_user):
    admin = make_user(role="admin")
    cancelled = auctions.cancel_auction(db, auction, None, admin)
    assert cancelled.status == "cancelled"
    assert auctions.is_item_in_active_auction(db, "book", auction.auctionable_id, NOW) is False


def test_is_item_in_active_auction(db, auction):
    assert auctions.is_item_in_active_auction(db, "book", auction.auctionable_id, NOW)
    assert not auctions.is_item_in_active_auction(db, "book", auction.auctionable_id, NOW + timedelta(days=8))


async def test_bid_listing_masks_bidder_name(db, auction, make_user):
    bidder = make_user(first_name="Mary", last_name="Shelley")
    await auctions.place_bid(db, auction.id, bidder, "100", now=NOW)
    listing = auctions.list_auction_bids(db, auction.id)
    assert listing["total"] == 1
    assert listing["items"][0]["bidder"] == "Mary S."

    active = auctions.list_user_active_bids(db, bidder.id)
    assert active[0]["is_winning"] is True
    assert active[0]["auction"]["minimum_bid"] == 101.0
