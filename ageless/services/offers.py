"""Custom price offers between vendors and buyers."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Union

from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Book, CustomOffer, Product, User, Vendor
from ageless.services import notifications
from ageless.services.errors import NotFoundError, PermissionDenied, ValidationFailed
from ageless.services.line_items import effective_price
from ageless.utils.logger import logger
from ageless.utils.money import quantize, to_decimal

DEFAULT_EXPIRY_DAYS = 7


def _load_item(db: Session, item_type: str, item_id: str) -> Optional[Union[Book, Product]]:
    if item_type == "book":
        return db.query(Book).filter(Book.id == item_id).first()
    if item_type == "product":
        return db.query(Product).filter(Product.id == item_id).first()
    raise ValidationFailed("itemType must be 'book' or 'product'")


def _validate_price(offer_price: Any):
    price = to_decimal(offer_price)
    if price <= 0:
        raise ValidationFailed("Offer price must be greater than 0")
    return quantize(price)


def serialize_offer(offer: CustomOffer, item: Optional[Union[Book, Product]] = None) -> Dict[str, Any]:
    data = {
        "id": offer.id,
        "vendor_id": offer.vendor_id,
        "user_id": offer.user_id,
        "item_type": offer.item_type,
        "item_id": offer.item_id,
        "original_price": float(quantize(offer.original_price)),
        "offer_price": float(quantize(offer.offer_price)),
        "message": offer.message,
        "status": offer.status,
        "initiated_by": offer.initiated_by,
        "expires_at": offer.expires_at.isoformat() if offer.expires_at else None,
        "responded_at": offer.responded_at.isoformat() if offer.responded_at else None,
        "created_at": offer.created_at.isoformat() if offer.created_at else None,
    }
    if item is not None:
        data["item"] = {"id": item.id, "title": item.title, "price": float(quantize(item.price))}
    return data


def _pending_duplicate(db: Session, vendor_id: str, user_id: str, item_type: str, item_id: str, initiated_by: str):
    return (
        db.query(CustomOffer)
        .filter(
            CustomOffer.vendor_id == vendor_id,
            CustomOffer.user_id == user_id,
            CustomOffer.item_type == item_type,
            CustomOffer.item_id == item_id,
            CustomOffer.status == "pending",
            CustomOffer.initiated_by == initiated_by,
        )
        .first()
    )


def create_vendor_offer(
    db: Session,
    vendor: Vendor,
    target_user_id: str,
    item_type: str,
    item_id: str,
    offer_price: Any,
    message: Optional[str] = None,
    expires_in_days: Optional[int] = None,
) -> CustomOffer:
    item = _load_item(db, item_type, item_id)
    if item is None:
        raise NotFoundError("Item not found")
    if item.vendor_id != vendor.id:
        raise PermissionDenied("You can only make offers on your own items")

    target = db.query(User).filter(User.id == target_user_id).first()
    if target is None:
        raise NotFoundError("Target user not found")

    price = _validate_price(offer_price)
    if _pending_duplicate(db, vendor.id, target.id, item_type, item_id, "vendor"):
        raise ValidationFailed("A pending offer already exists for this user and item")

    days = expires_in_days or DEFAULT_EXPIRY_DAYS
    offer = CustomOffer(
        vendor_id=vendor.id,
        user_id=target.id,
        item_type=item_type,
        item_id=item_id,
        original_price=effective_price(item),
        offer_price=price,
        message=message,
        status="pending",
        initiated_by="vendor",
        expires_at=datetime.utcnow() + timedelta(days=days),
    )
    db.add(offer)
    db.commit()
    db.refresh(offer)

    notifications.notify(
        db,
        target.id,
        "custom_offer",
        "You received a special offer",
        f'{vendor.shop_name} offered you "{item.title}" for ${price}.',
        {"entityId": offer.id, "offerId": offer.id, "itemType": item_type, "itemId": item_id},
    )
    logger.info("[offers] Vendor %s offered %s %s to user=%s at %s", vendor.id, item_type, item_id, target.id, price)
    return offer


def create_buyer_offer(
    db: Session,
    user: User,
    item_type: str,
    item_id: str,
    offer_price: Any,
    message: Optional[str] = None,
) -> CustomOffer:
    item = _load_item(db, item_type, item_id)
    if item is None:
        raise NotFoundError("Item not found")

    vendor = db.query(Vendor).filter(Vendor.id == item.vendor_id).first()
    if vendor is None:
        raise NotFoundError("Vendor not found")
    if vendor.user_id == user.id:
        raise ValidationFailed("You cannot make an offer on your own item")

    price = _validate_price(offer_price)
    if _pending_duplicate(db, vendor.id, user.id, item_type, item_id, "buyer"):
        raise ValidationFailed("You already have a pending offer on this item")

    offer = CustomOffer(
        vendor_id=vendor.id,
        user_id=user.id,
        item_type=item_type,
        item_id=item_id,
        original_price=effective_price(item),
        offer_price=price,
        message=message,
        status="pending",
        initiated_by="buyer",
        expires_at=datetime.utcnow() + timedelta(days=DEFAULT_EXPIRY_DAYS),
    )
    db.add(offer)
    db.commit()
    db.refresh(offer)

    notifications.notify(
        db,
        vendor.user_id,
        "buyer_offer",
        "New offer on your item",
        f'A buyer offered ${price} for "{item.title}".',
        {"entityId": offer.id, "offerId": offer.id, "itemType": item_type, "itemId": item_id},
    )
    return offer


def get_offer(db: Session, offer_id: str) -> CustomOffer:
    offer = db.query(CustomOffer).filter(CustomOffer.id == offer_id).first()
    if offer is None:
        raise NotFoundError("Offer not found")
    return offer


def _respond(db: Session, offer: CustomOffer, action: str, now: Optional[datetime] = None) -> CustomOffer:
    if action not in ("accept", "decline"):
        raise ValidationFailed("Action must be 'accept' or 'decline'")
    if offer.status != "pending":
        raise ValidationFailed(f"Offer is already {offer.status}")

    now = now or datetime.utcnow()
    if offer.expires_at and offer.expires_at < now:
        offer.status = "expired"
        db.commit()
        raise ValidationFailed("This offer has expired")

    offer.status = "accepted" if action == "accept" else "declined"
    offer.responded_at = now
    db.commit()
    db.refresh(offer)
    logger.info("[offers] Offer %s %s", offer.id, offer.status)
    return offer


def respond_as_buyer(db: Session, offer_id: str, user: User, action: str) -> CustomOffer:
    """Buyer answers a vendor-initiated offer."""
    offer = get_offer(db, offer_id)
    if offer.user_id != user.id or offer.initiated_by != "vendor":
        raise PermissionDenied("Unauthorized")
    offer = _respond(db, offer, action)

    vendor = db.query(Vendor).filter(Vendor.id == offer.vendor_id).first()
    if vendor is not None:
        notifications.notify(
            db,
            vendor.user_id,
            f"offer_{offer.status}",
            f"Offer {offer.status}",
            f"Your offer of ${quantize(offer.offer_price)} was {offer.status}.",
            {"entityId": offer.id, "offerId": offer.id},
        )
    return offer


def respond_as_vendor(db: Session, offer_id: str, vendor: Vendor, action: str) -> CustomOffer:
    """Vendor answers a buyer-initiated offer."""
    offer = get_offer(db, offer_id)
    if offer.vendor_id != vendor.id or offer.initiated_by != "buyer":
        raise PermissionDenied("Unauthorized")
    offer = _respond(db, offer, action)
    notifications.notify(
        db,
        offer.user_id,
        f"offer_{offer.status}",
        f"Offer {offer.status}",
        f"{vendor.shop_name} {offer.status} your offer of ${quantize(offer.offer_price)}.",
        {"entityId": offer.id, "offerId": offer.id},
    )
    return offer


def cancel_offer(db: Session, offer_id: str, vendor: Vendor) -> CustomOffer:
    offer = get_offer(db, offer_id)
    if offer.vendor_id != vendor.id:
        raise PermissionDenied("Unauthorized")
    if offer.status != "pending":
        raise ValidationFailed("Only pending offers can be cancelled")
    offer.status = "cancelled"
    db.commit()
    db.refresh(offer)
    return offer


def list_user_offers(db: Session, user_id: str, include_all: bool = False):
    query = db.query(CustomOffer).filter(CustomOffer.user_id == user_id)
    if not include_all:
        query = query.filter(
            CustomOffer.status == "pending",
            (CustomOffer.expires_at.is_(None)) | (CustomOffer.expires_at > datetime.utcnow()),
        )
    return [serialize_offer(o, _load_item(db, o.item_type, o.item_id))
            for o in query.order_by(CustomOffer.created_at.desc()).all()]


def list_vendor_offers(
    db: Session,
    vendor_id: str,
    status: Optional[str] = None,
    initiated_by: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(CustomOffer).filter(CustomOffer.vendor_id == vendor_id)
    if status:
        query = query.filter(CustomOffer.status == status)
    if initiated_by:
        query = query.filter(CustomOffer.initiated_by == initiated_by)
    total = query.count()
    rows = query.order_by(CustomOffer.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [serialize_offer(o) for o in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def offer_detail(db: Session, offer_id: str, user: User) -> Dict[str, Any]:
    offer = get_offer(db, offer_id)
    vendor = db.query(Vendor).filter(Vendor.id == offer.vendor_id).first()
    is_vendor = vendor is not None and vendor.user_id == user.id
    if offer.user_id != user.id and not is_vendor and user.role != "admin":
        raise PermissionDenied("Unauthorized")
    return serialize_offer(offer, _load_item(db, offer.item_type, offer.item_id))
