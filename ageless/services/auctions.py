"""Auction lifecycle: creation, bidding, ending and vendor follow-up actions.

Status flow::

    upcoming -> active -> ended_sold | ended_no_bids | ended_reserve_not_met
                                 \\-> cancelled (converted or unlisted after no sale)

Ending an auction happens in ``process_auction_ending`` under a row lock so a
second worker that picks the same auction sees it is no longer active and
skips it.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models_sqlalchemy import SessionLocal
from ageless.models_sqlalchemy.models import (
    Auction,
    AuctionBid,
    AuctionWin,
    Book,
    Product,
    User,
    Vendor,
)
from ageless.services import notifications
from ageless.services.earnings import process_auction_commission
from ageless.services.errors import NotFoundError, PermissionDenied, ValidationFailed
from ageless.services.messaging import send_sms, send_templated_email
from ageless.utils.logger import logger
from ageless.utils.money import format_usd, quantize, to_decimal

BID_INCREMENT = Decimal("1.00")
UNSOLD_STATUSES = ("ended_no_bids", "ended_reserve_not_met")
OPEN_STATUSES = ("upcoming", "active")
END_POLICIES = ("NONE", "RELIST_AUCTION", "CONVERT_FIXED", "UNLIST")
PRICE_SOURCES = ("MANUAL", "RESERVE", "HIGHEST_BID", "STARTING_BID")


# ---- Helpers ----


def get_auctionable_item(db: Session, auction: Auction) -> Optional[Union[Book, Product]]:
    if auction.auctionable_type == "book":
        return db.query(Book).filter(Book.id == auction.auctionable_id).first()
    if auction.auctionable_type == "product":
        return db.query(Product).filter(Product.id == auction.auctionable_id).first()
    return None


def _item_title(db: Session, auction: Auction) -> str:
    item = get_auctionable_item(db, auction)
    return item.title if item else "auction item"


def get_auction(db: Session, auction_id: str) -> Auction:
    auction = db.query(Auction).filter(Auction.id == auction_id).first()
    if auction is None:
        raise NotFoundError("Auction not found")
    return auction


def minimum_bid(auction: Auction) -> Decimal:
    if auction.current_bid is not None and (auction.bid_count or 0) > 0:
        return quantize(to_decimal(auction.current_bid) + BID_INCREMENT)
    return quantize(auction.starting_price)


def _ensure_owner(auction: Auction, vendor: Optional[Vendor], user: Optional[User]) -> None:
    if user is not None and user.role == "admin":
        return
    if vendor is None or auction.vendor_id != vendor.id:
        raise PermissionDenied("Unauthorized")


def serialize_bid(bid: AuctionBid, include_user: bool = True) -> Dict[str, Any]:
    data = {
        "id": bid.id,
        "auction_id": bid.auction_id,
        "user_id": bid.user_id,
        "amount": float(quantize(bid.amount)),
        "status": bid.status,
        "created_at": bid.created_at.isoformat() if bid.created_at else None,
    }
    if include_user and bid.user is not None:
        # Bidders are shown by first name and initial only.
        last_initial = (bid.user.last_name or "")[:1]
        data["bidder"] = f"{bid.user.first_name or 'Bidder'} {last_initial}.".strip()
    return data


def serialize_auction(auction: Auction, item: Optional[Union[Book, Product]] = None) -> Dict[str, Any]:
    data = {
        "id": auction.id,
        "auctionable_type": auction.auctionable_type,
        "auctionable_id": auction.auctionable_id,
        "vendor_id": auction.vendor_id,
        "starting_price": float(quantize(auction.starting_price)),
        "reserve_met": (
            auction.reserve_price is None
            or (auction.current_bid is not None and auction.current_bid >= auction.reserve_price)
        ),
        "current_bid": float(quantize(auction.current_bid)) if auction.current_bid is not None else None,
        "minimum_bid": float(minimum_bid(auction)),
        "bid_count": auction.bid_count or 0,
        "start_date": auction.start_date.isoformat() if auction.start_date else None,
        "end_date": auction.end_date.isoformat() if auction.end_date else None,
        "status": auction.status,
        "winner_id": auction.winner_id,
        "ended_at": auction.ended_at.isoformat() if auction.ended_at else None,
        "end_outcome_reason": auction.end_outcome_reason,
        "payment_deadline": auction.payment_deadline.isoformat() if auction.payment_deadline else None,
        "relist_count": auction.relist_count or 0,
        "parent_auction_id": auction.parent_auction_id,
        "end_policy_on_no_sale": auction.end_policy_on_no_sale,
    }
    if item is not None:
        data["item"] = {"id": item.id, "title": item.title, "status": item.status}
    return data


# ---- Creation ----


def create_auction(
    db: Session,
    vendor: Vendor,
    auctionable_type: str,
    auctionable_id: str,
    starting_price: Any,
    end_date: datetime,
    start_date: Optional[datetime] = None,
    reserve_price: Any = None,
    payment_window_hours: int = 48,
    end_policy_on_no_sale: str = "NONE",
    relist_delay_hours: Optional[int] = None,
    relist_max_count: Optional[int] = None,
    convert_price_source: Optional[str] = None,
    convert_price_markup_bps: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Auction:
    now = now or datetime.utcnow()
    start_date = start_date or now

    if auctionable_type not in ("book", "product"):
        raise ValidationFailed("auctionable_type must be 'book' or 'product'")
    if end_date <= start_date:
        raise ValidationFailed("End date must be after start date")
    if to_decimal(starting_price) <= 0:
        raise ValidationFailed("Starting price must be greater than 0")
    if reserve_price is not None and to_decimal(reserve_price) < to_decimal(starting_price):
        raise ValidationFailed("Reserve price cannot be lower than the starting price")
    if end_policy_on_no_sale not in END_POLICIES:
        raise ValidationFailed(f"Invalid end policy: {end_policy_on_no_sale}")
    if convert_price_source is not None and convert_price_source not in PRICE_SOURCES:
        raise ValidationFailed(f"Invalid convert price source: {convert_price_source}")

    lookup = Auction(auctionable_type=auctionable_type, auctionable_id=auctionable_id)
    item = get_auctionable_item(db, lookup)
    if item is None:
        raise NotFoundError("Auction item not found")
    if item.vendor_id != vendor.id:
        raise PermissionDenied("You can only auction your own items")

    open_auction = (
        db.query(Auction)
        .filter(
            Auction.auctionable_type == auctionable_type,
            Auction.auctionable_id == auctionable_id,
            Auction.status.in_(OPEN_STATUSES),
        )
        .first()
    )
    if open_auction:
        raise ValidationFailed("This item already has an open auction")

    auction = Auction(
        auctionable_type=auctionable_type,
        auctionable_id=auctionable_id,
        vendor_id=vendor.id,
        starting_price=quantize(starting_price),
        reserve_price=quantize(reserve_price) if reserve_price is not None else None,
        current_bid=None,
        bid_count=0,
        start_date=start_date,
        end_date=end_date,
        status="upcoming" if start_date > now else "active",
        payment_window_hours=payment_window_hours or 48,
        end_policy_on_no_sale=end_policy_on_no_sale,
        relist_delay_hours=relist_delay_hours,
        relist_max_count=relist_max_count,
        convert_price_source=convert_price_source,
        convert_price_markup_bps=convert_price_markup_bps,
    )
    db.add(auction)
    item.auction_locked_until = end_date
    db.commit()
    db.refresh(auction)
    logger.info("[auctions] Auction %s created for %s %s status=%s",
                auction.id, auctionable_type, auctionable_id, auction.status)
    return auction


def update_end_policy(
    db: Session,
    auction: Auction,
    vendor: Optional[Vendor],
    user: Optional[User],
    updates: Dict[str, Any],
) -> Auction:
    _ensure_owner(auction, vendor, user)
    if auction.status not in OPEN_STATUSES:
        raise ValidationFailed("Can only update policy for upcoming or active auctions")
    policy = updates.get("end_policy_on_no_sale")
    if policy is not None and policy not in END_POLICIES:
        raise ValidationFailed(f"Invalid end policy: {policy}")
    source = updates.get("convert_price_source")
    if source is not None and source not in PRICE_SOURCES:
        raise ValidationFailed(f"Invalid convert price source: {source}")

    for field in (
        "end_policy_on_no_sale",
        "relist_delay_hours",
        "relist_max_count",
        "convert_price_source",
        "convert_price_markup_bps",
    ):
        if field in updates and updates[field] is not None:
            setattr(auction, field, updates[field])
    db.commit()
    db.refresh(auction)
    return auction


# ---- Bidding ----


async def place_bid(
    db: Session,
    auction_id: str,
    user: User,
    amount: Any,
    sms_opt_in: bool = False,
    phone_number: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AuctionBid:
    now = now or datetime.utcnow()

    if sms_opt_in and phone_number:
        user.phone_number = phone_number
        user.sms_opt_in = True

    auction = db.query(Auction).filter(Auction.id == auction_id).with_for_update().first()
    if auction is None:
        raise NotFoundError("Auction not found")
    if auction.status != "active":
        raise ValidationFailed("Auction is not active")
    if now > auction.end_date:
        raise ValidationFailed("Auction has ended")

    vendor = db.query(Vendor).filter(Vendor.id == auction.vendor_id).first()
    if vendor is not None and vendor.user_id == user.id:
        raise ValidationFailed("You cannot bid on your own auction")

    amount = quantize(amount)
    min_bid = minimum_bid(auction)
    if amount < min_bid:
        raise ValidationFailed(f"Bid must be at least ${min_bid}")

    already_winning = (
        db.query(AuctionBid)
        .filter(
            AuctionBid.auction_id == auction.id,
            AuctionBid.user_id == user.id,
            AuctionBid.status == "winning",
        )
        .first()
    )
    if already_winning:
        raise ValidationFailed("You already have the highest bid on this auction")

    bid = AuctionBid(auction_id=auction.id, user_id=user.id, amount=amount, status="winning", created_at=now)
    db.add(bid)
    db.flush()

    outbid = (
        db.query(AuctionBid)
        .filter(
            AuctionBid.auction_id == auction.id,
            AuctionBid.id != bid.id,
            AuctionBid.status.in_(("active", "winning")),
        )
        .all()
    )
    outbid_users = []
    for previous in outbid:
        previous.status = "outbid"
        if previous.user is not None and previous.user_id != user.id:
            outbid_users.append(previous.user)

    auction.current_bid = amount
    auction.bid_count = (auction.bid_count or 0) + 1
    db.commit()
    db.refresh(bid)
    logger.info("[auctions] Bid %s placed on %s amount=%s by user=%s", bid.id, auction.id, amount, user.id)

    title = _item_title(db, auction)
    for outbid_user in outbid_users:
        notifications.notify(
            db,
            outbid_user.id,
            "auction_outbid",
            "You've been outbid",
            f'You\'ve been outbid on "{title}". Current bid: {format_usd(amount)}.',
            {"entityId": auction.id, "auctionId": auction.id, "currentBid": float(amount)},
        )
        if outbid_user.sms_opt_in and outbid_user.phone_number:
            await send_sms(
                outbid_user.phone_number,
                f'Ageless Literature: You\'ve been outbid on "{title}". Current bid: {format_usd(amount)}. '
                f"Place a new bid at {settings.FRONTEND_URL}/auctions/{auction.id}",
            )
    return bid


def list_auction_bids(db: Session, auction_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
    query = db.query(AuctionBid).filter(AuctionBid.auction_id == auction_id)
    total = query.count()
    rows = (
        query.order_by(AuctionBid.amount.desc(), AuctionBid.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "items": [serialize_bid(b) for b in rows],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit if limit else 0,
    }


def list_user_bids(
    db: Session, user_id: str, status: Optional[str] = None, page: int = 1, limit: int = 20
) -> Dict[str, Any]:
    query = db.query(AuctionBid).filter(AuctionBid.user_id == user_id)
    if status:
        query = query.filter(AuctionBid.status == status)
    total = query.count()
    rows = query.order_by(AuctionBid.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    items = []
    for bid in rows:
        entry = serialize_bid(bid, include_user=False)
        entry["auction"] = serialize_auction(bid.auction)
        items.append(entry)
    return {"items": items, "total": total, "page": page, "limit": limit}


def list_user_active_bids(db: Session, user_id: str) -> List[Dict[str, Any]]:
    """The user's latest bid on each auction that is still running."""
    rows = (
        db.query(AuctionBid)
        .join(Auction, Auction.id == AuctionBid.auction_id)
        .filter(AuctionBid.user_id == user_id, Auction.status == "active")
        .order_by(AuctionBid.created_at.desc())
        .all()
    )
    seen = set()
    result = []
    for bid in rows:
        if bid.auction_id in seen:
            continue
        seen.add(bid.auction_id)
        entry = serialize_bid(bid, include_user=False)
        entry["is_winning"] = bid.status == "winning"
        entry["auction"] = serialize_auction(bid.auction)
        result.append(entry)
    return result


def list_auctions(
    db: Session,
    status: Optional[str] = "active",
    auctionable_type: Optional[str] = None,
    vendor_id: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(Auction)
    if status and status != "all":
        query = query.filter(Auction.status == status)
    if auctionable_type:
        query = query.filter(Auction.auctionable_type == auctionable_type)
    if vendor_id:
        query = query.filter(Auction.vendor_id == vendor_id)
    total = query.count()
    rows = query.order_by(Auction.end_date.asc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [serialize_auction(a, get_auctionable_item(db, a)) for a in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def auction_detail(db: Session, auction_id: str, bid_limit: int = 10) -> Dict[str, Any]:
    auction = get_auction(db, auction_id)
    data = serialize_auction(auction, get_auctionable_item(db, auction))
    data["reserve_price"] = float(quantize(auction.reserve_price)) if auction.reserve_price is not None else None
    data["bids"] = list_auction_bids(db, auction.id, 1, bid_limit)["items"]
    return data


# ---- Ending ----


def activate_due_auctions(db: Session, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    count = (
        db.query(Auction)
        .filter(Auction.status == "upcoming", Auction.start_date <= now)
        .update({Auction.status: "active"}, synchronize_session=False)
    )
    db.commit()
    if count:
        logger.info("[auctions] Activated %s upcoming auction(s)", count)
    return count


def process_auction_ending(db: Session, auction_id: str, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """End one auction in its own transaction. Returns the outcome, or None if skipped."""
    now = now or datetime.utcnow()
    try:
        auction = db.query(Auction).filter(Auction.id == auction_id).with_for_update().first()
        if auction is None or auction.status != "active":
            db.rollback()
            return None

        bids = (
            db.query(AuctionBid)
            .filter(AuctionBid.auction_id == auction.id)
            .order_by(AuctionBid.amount.desc(), AuctionBid.created_at.asc())
            .all()
        )
        auction.ended_at = now
        outcome: Dict[str, Any] = {"auction_id": auction.id, "winner_id": None, "amount": None}

        if not bids:
            auction.status = "ended_no_bids"
            auction.end_outcome_reason = "NO_BIDS"
        else:
            highest = bids[0]
            reserve = auction.reserve_price
            if reserve is not None and highest.amount < reserve:
                auction.status = "ended_reserve_not_met"
                auction.end_outcome_reason = "RESERVE_NOT_MET"
                auction.winner_bid_id = highest.id
                for bid in bids:
                    bid.status = "lost"
            else:
                auction.status = "ended_sold"
                auction.end_outcome_reason = "SOLD"
                auction.winner_id = highest.user_id
                auction.winner_bid_id = highest.id
                auction.payment_deadline = auction.end_date + timedelta(hours=auction.payment_window_hours or 48)
                for bid in bids:
                    bid.status = "won" if bid.id == highest.id else "lost"
                db.add(
                    AuctionWin(
                        auction_id=auction.id,
                        user_id=highest.user_id,
                        winning_amount=highest.amount,
                        status="pending_payment",
                        won_at=now,
                    )
                )
                process_auction_commission(db, auction, highest.amount)
                outcome["winner_id"] = highest.user_id
                outcome["amount"] = quantize(highest.amount)

        outcome["status"] = auction.status
        outcome["reason"] = auction.end_outcome_reason
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info("[auctions] Auction %s ended: %s", auction_id, outcome["reason"])
    return outcome


async def notify_auction_winner(db: Session, auction: Auction) -> bool:
    """Email/SMS the winner once. Returns False when already notified or no winner."""
    if not auction.winner_id:
        return False
    winner = db.query(User).filter(User.id == auction.winner_id).first()
    if winner is None:
        return False

    title = _item_title(db, auction)
    amount = quantize(auction.current_bid)
    payment_link = f"{settings.FRONTEND_URL.rstrip('/')}/account/winnings"
    deadline = auction.payment_deadline.strftime("%Y-%m-%d %H:%M UTC") if auction.payment_deadline else ""

    sent = False
    if winner.email_notifications:
        marker = notifications.notify_once(
            db,
            winner.id,
            "AUCTION_WON_PAYMENT_DUE",
            "You won an auction!",
            f'You won "{title}" for ${amount}. Payment is due by {deadline}.',
            entity_id=auction.id,
            data={"auctionId": auction.id, "winningAmount": float(amount), "paymentLink": payment_link},
        )
        if marker is not None:
            await send_templated_email(
                "auction_won_payment_due",
                winner.email,
                {
                    "user_name": winner.first_name or "Collector",
                    "auction_title": title,
                    "winning_amount": amount,
                    "payment_deadline": deadline,
                    "payment_link": payment_link,
                },
            )
            sent = True

    if winner.sms_opt_in and winner.phone_number:
        marker = notifications.notify_once(
            db,
            winner.id,
            "SMS_AUCTION_WON_PAYMENT_DUE",
            "Auction won (SMS)",
            f"SMS sent for auction {auction.id}",
            entity_id=auction.id,
        )
        if marker is not None:
            await send_sms(
                winner.phone_number,
                f'Ageless Literature: You won "{title}" for ${amount}. Pay by {deadline}: {payment_link}',
            )
            sent = True
    return sent


def _log_no_sale_policy(auction: Auction) -> None:
    policy = auction.end_policy_on_no_sale or "NONE"
    if policy == "NONE":
        return
    if policy == "RELIST_AUCTION":
        max_count = auction.relist_max_count or 0
        if max_count and (auction.relist_count or 0) >= max_count:
            logger.info("[auctions] Auction %s reached relist limit (%s); not relisting", auction.id, max_count)
            return
        logger.info(
            "[auctions] Auction %s eligible for relist after %sh (relist %s of %s)",
            auction.id,
            auction.relist_delay_hours or 0,
            (auction.relist_count or 0) + 1,
            max_count or "unlimited",
        )
    elif policy == "CONVERT_FIXED":
        logger.info("[auctions] Auction %s eligible for conversion to fixed price (source=%s)",
                    auction.id, auction.convert_price_source or "MANUAL")
    elif policy == "UNLIST":
        logger.info("[auctions] Auction %s eligible for unlisting", auction.id)


async def update_auction_statuses(db: Optional[Session] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    """Activate started auctions and end expired ones. Safe to run concurrently."""
    now = now or datetime.utcnow()
    own_session = db is None
    db = db or SessionLocal()
    try:
        activated = activate_due_auctions(db, now)
        due_ids = [
            row[0]
            for row in db.query(Auction.id)
            .filter(Auction.status == "active", Auction.end_date <= now)
            .all()
        ]

        ended = 0
        for auction_id in due_ids:
            try:
                outcome = process_auction_ending(db, auction_id, now)
            except Exception as exc:
                logger.error("[auctions] Failed to end auction %s: %s", auction_id, exc, exc_info=True)
                continue
            if outcome is None:
                continue
            ended += 1

            auction = db.query(Auction).filter(Auction.id == auction_id).first()
            try:
                if outcome["status"] == "ended_sold":
                    await notify_auction_winner(db, auction)
                else:
                    _log_no_sale_policy(auction)
            except Exception as exc:
                db.rollback()
                logger.error("[auctions] Post-end follow-up failed for %s: %s", auction_id, exc, exc_info=True)

        return {"activated": activated, "ended": ended}
    finally:
        if own_session:
            db.close()


def auction_status_stats(db: Session) -> Dict[str, int]:
    rows = db.query(Auction.status, func.count(Auction.id)).group_by(Auction.status).all()
    stats = {status: 0 for status in ("upcoming", "active", "ended_sold", "ended_no_bids",
                                      "ended_reserve_not_met", "cancelled")}
    for status, count in rows:
        stats[status] = count
    stats["total"] = sum(count for _, count in rows)
    return stats


# ---- Vendor actions on unsold auctions ----


def _unsold_item(db: Session, auction: Auction, vendor, user, action: str):
    _ensure_owner(auction, vendor, user)
    if auction.status not in UNSOLD_STATUSES:
        raise ValidationFailed(f"Only unsold auctions can be {action}")
    item = get_auctionable_item(db, auction)
    if item is None:
        raise NotFoundError("Auction item not found")
    return item


def relist_auction(
    db: Session,
    auction: Auction,
    vendor: Optional[Vendor],
    user: Optional[User],
    starting_price: Any = None,
    reserve_price: Any = None,
    duration_days: int = 7,
    now: Optional[datetime] = None,
) -> Auction:
    item = _unsold_item(db, auction, vendor, user, "relisted")
    if item.track_quantity and (item.quantity or 0) < 1:
        raise ValidationFailed("Item is out of stock and cannot be relisted")

    max_relists = auction.relist_max_count or 0
    if max_relists > 0 and (auction.relist_count or 0) >= max_relists:
        raise ValidationFailed(f"Maximum relist limit ({max_relists}) reached")
    if duration_days is None or duration_days < 1:
        raise ValidationFailed("Duration must be at least 1 day")

    now = now or datetime.utcnow()
    end_date = now + timedelta(days=duration_days)
    relisted = Auction(
        auctionable_type=auction.auctionable_type,
        auctionable_id=auction.auctionable_id,
        vendor_id=auction.vendor_id,
        starting_price=quantize(starting_price) if starting_price else auction.starting_price,
        reserve_price=quantize(reserve_price) if reserve_price is not None else auction.reserve_price,
        current_bid=None,
        bid_count=0,
        start_date=now,
        end_date=end_date,
        status="active",
        relist_count=(auction.relist_count or 0) + 1,
        parent_auction_id=auction.parent_auction_id or auction.id,
        payment_window_hours=auction.payment_window_hours,
        end_policy_on_no_sale=auction.end_policy_on_no_sale,
        relist_delay_hours=auction.relist_delay_hours,
        relist_max_count=auction.relist_max_count,
        convert_price_source=auction.convert_price_source,
        convert_price_markup_bps=auction.convert_price_markup_bps,
    )
    db.add(relisted)
    item.auction_locked_until = end_date
    db.commit()
    db.refresh(relisted)
    logger.info("[auctions] Auction %s relisted as %s (relist #%s)", auction.id, relisted.id, relisted.relist_count)
    return relisted


def conversion_price(auction: Auction, price: Any = None) -> Decimal:
    if price:
        return quantize(price)
    source = auction.convert_price_source or "MANUAL"
    if source == "RESERVE" and auction.reserve_price is not None:
        base = to_decimal(auction.reserve_price)
    elif source == "HIGHEST_BID":
        base = to_decimal(auction.current_bid or auction.starting_price)
    elif source == "STARTING_BID":
        base = to_decimal(auction.starting_price)
    else:
        raise ValidationFailed("Price required for manual conversion")

    markup = auction.convert_price_markup_bps or 0
    if markup > 0:
        base = base * (Decimal("1") + Decimal(markup) / Decimal("10000"))
    return quantize(base)


def convert_to_fixed(
    db: Session,
    auction: Auction,
    vendor: Optional[Vendor],
    user: Optional[User],
    price: Any = None,
) -> Dict[str, Any]:
    item = _unsold_item(db, auction, vendor, user, "converted to fixed price")
    if item.track_quantity and (item.quantity or 0) < 1:
        raise ValidationFailed("Item is out of stock and cannot be converted")

    fixed_price = conversion_price(auction, price)
    item.price = fixed_price
    item.status = "published" if isinstance(item, Book) else "active"
    item.auction_locked_until = None
    auction.status = "cancelled"
    db.commit()
    logger.info("[auctions] Auction %s converted to fixed price %s", auction.id, fixed_price)
    return {
        "item_type": auction.auctionable_type,
        "item_id": auction.auctionable_id,
        "price": float(fixed_price),
    }


def unlist_auction(
    db: Session,
    auction: Auction,
    vendor: Optional[Vendor],
    user: Optional[User],
) -> Dict[str, Any]:
    item = _unsold_item(db, auction, vendor, user, "unlisted")
    item.status = "archived"
    item.auction_locked_until = None
    auction.status = "cancelled"
    db.commit()
    logger.info("[auctions] Auction %s unlisted; item archived", auction.id)
    return {"item_type": auction.auctionable_type, "item_id": auction.auctionable_id}


def cancel_auction(db: Session, auction: Auction, vendor: Optional[Vendor], user: Optional[User]) -> Auction:
    """Vendors may pull an auction before anyone has bid."""
    _ensure_owner(auction, vendor, user)
    if auction.status not in OPEN_STATUSES:
        raise ValidationFailed("Only upcoming or active auctions can be cancelled")
    if (auction.bid_count or 0) > 0:
        raise ValidationFailed("Auctions with bids cannot be cancelled")
    item = get_auctionable_item(db, auction)
    if item is not None:
        item.auction_locked_until = None
    auction.status = "cancelled"
    db.commit()
    db.refresh(auction)
    return auction


def is_item_in_active_auction(db: Session, item_type: str, item_id: str, now: Optional[datetime] = None) -> bool:
    now = now or datetime.utcnow()
    return (
        db.query(Auction)
        .filter(
            Auction.auctionable_type == item_type,
            Auction.auctionable_id == item_id,
            Auction.status == "active",
            Auction.end_date > now,
        )
        .first()
        is not None
    )
