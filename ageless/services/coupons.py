"""Coupon validation, discount calculation and redemption tracking."""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Coupon, CouponRedemption
from ageless.services.errors import ConflictError, CouponInvalid, NotFoundError, ValidationFailed
from ageless.services.line_items import LineItem
from ageless.utils.money import quantize, to_decimal

DISCOUNT_TYPES = ("percentage", "fixed_amount", "free_shipping")
SCOPES = ("global", "vendor", "products", "categories")


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def _targets(coupon: Coupon) -> Dict[str, List[str]]:
    applies_to = coupon.applies_to or {}
    return {
        "book_ids": [str(x) for x in applies_to.get("book_ids") or []],
        "product_ids": [str(x) for x in applies_to.get("product_ids") or []],
        "category_ids": [str(x) for x in applies_to.get("category_ids") or []],
    }


def _is_targeted(coupon: Coupon, item: LineItem) -> bool:
    targets = _targets(coupon)
    return bool(
        (item.book_id and item.book_id in targets["book_ids"])
        or (item.product_id and item.product_id in targets["product_ids"])
    )


def validate_coupon(
    db: Session,
    code: Optional[str],
    user_id: Optional[str],
    items: List[LineItem],
    subtotal: Any,
    now: Optional[datetime] = None,
) -> Coupon:
    """Return the coupon when it can be applied to ``items``; raise CouponInvalid otherwise."""
    if not code or not code.strip():
        raise CouponInvalid("Coupon code is required")

    coupon = db.query(Coupon).filter(Coupon.code == normalize_code(code)).first()
    if coupon is None:
        raise CouponInvalid("Invalid coupon code")

    if not coupon.is_active:
        raise CouponInvalid("This coupon is no longer active")

    now = now or datetime.utcnow()
    if coupon.starts_at and coupon.starts_at > now:
        raise CouponInvalid("This coupon is not yet active")
    if coupon.expires_at and coupon.expires_at < now:
        raise CouponInvalid("This coupon has expired")

    if coupon.usage_limit is not None and (coupon.usage_count or 0) >= coupon.usage_limit:
        raise CouponInvalid("This coupon has reached its usage limit")

    if user_id and coupon.per_user_limit:
        used = (
            db.query(CouponRedemption)
            .filter(CouponRedemption.coupon_id == coupon.id, CouponRedemption.user_id == user_id)
            .count()
        )
        if used >= coupon.per_user_limit:
            raise CouponInvalid("You have already used this coupon the maximum number of times")

    if coupon.minimum_order_amount and to_decimal(subtotal) < coupon.minimum_order_amount:
        raise CouponInvalid(f"Minimum order amount of ${quantize(coupon.minimum_order_amount)} required")

    if coupon.scope == "vendor" and coupon.vendor_id:
        if not any(i.vendor_id == coupon.vendor_id for i in items):
            raise CouponInvalid("This coupon is only valid for a specific vendor's products")

    if coupon.scope == "products" and coupon.applies_to:
        if not any(_is_targeted(coupon, i) for i in items):
            raise CouponInvalid("This coupon does not apply to any items in your cart")

    if coupon.scope == "categories" and coupon.applies_to:
        wanted = set(_targets(coupon)["category_ids"])
        if not any(wanted.intersection(i.category_ids) for i in items):
            raise CouponInvalid("This coupon does not apply to any item categories in your cart")

    return coupon


def calculate_discount(
    coupon: Coupon,
    items: List[LineItem],
    subtotal: Any,
    shipping_cost: Any = Decimal("10.00"),
) -> Decimal:
    subtotal = to_decimal(subtotal)
    value = to_decimal(coupon.discount_value)

    if coupon.discount_type == "percentage":
        if coupon.scope == "vendor" and coupon.vendor_id:
            base = sum((i.subtotal for i in items if i.vendor_id == coupon.vendor_id), Decimal("0"))
        elif coupon.scope == "products" and coupon.applies_to:
            base = sum((i.subtotal for i in items if _is_targeted(coupon, i)), Decimal("0"))
        else:
            base = subtotal
        discount = base * value / Decimal("100")
        if coupon.maximum_discount_amount:
            discount = min(discount, to_decimal(coupon.maximum_discount_amount))
    elif coupon.discount_type == "fixed_amount":
        discount = min(value, subtotal)
    elif coupon.discount_type == "free_shipping":
        discount = to_decimal(shipping_cost)
    else:
        discount = Decimal("0")

    return quantize(discount)


def record_redemption(
    db: Session,
    coupon: Coupon,
    user_id: str,
    order_id: Optional[str],
    discount_amount: Any,
) -> CouponRedemption:
    """Add the redemption row and bump ``usage_count``; the caller commits."""
    redemption = CouponRedemption(
        coupon_id=coupon.id,
        user_id=user_id,
        order_id=order_id,
        discount_amount=quantize(discount_amount),
    )
    db.add(redemption)
    db.query(Coupon).filter(Coupon.id == coupon.id).update(
        {Coupon.usage_count: Coupon.usage_count + 1}, synchronize_session=False
    )
    db.flush()
    return redemption


def discount_summary(coupon: Coupon, discount_amount: Any) -> Dict[str, Any]:
    value = to_decimal(coupon.discount_value)
    if coupon.discount_type == "percentage":
        label = f"{value.normalize():f}% off"
    elif coupon.discount_type == "fixed_amount":
        label = f"${quantize(value)} off"
    elif coupon.discount_type == "free_shipping":
        label = "Free shipping"
    else:
        label = "Discount"
    return {
        "code": coupon.code,
        "label": label,
        "discount_type": coupon.discount_type,
        "discount_value": float(value),
        "discount_amount": float(quantize(discount_amount)),
    }


# ---- Management (admin and vendor CRUD) ----

COUPON_FIELDS = (
    "name",
    "description",
    "discount_type",
    "discount_value",
    "minimum_order_amount",
    "maximum_discount_amount",
    "usage_limit",
    "per_user_limit",
    "starts_at",
    "expires_at",
    "is_active",
    "scope",
    "applies_to",
)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _money(value) -> Optional[float]:
    return float(quantize(value)) if value is not None else None


def serialize_coupon(coupon: Coupon) -> Dict[str, Any]:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "name": coupon.name,
        "description": coupon.description,
        "discount_type": coupon.discount_type,
        "discount_value": _money(coupon.discount_value),
        "minimum_order_amount": _money(coupon.minimum_order_amount),
        "maximum_discount_amount": _money(coupon.maximum_discount_amount),
        "usage_limit": coupon.usage_limit,
        "usage_count": coupon.usage_count or 0,
        "per_user_limit": coupon.per_user_limit,
        "starts_at": _iso(coupon.starts_at),
        "expires_at": _iso(coupon.expires_at),
        "is_active": bool(coupon.is_active),
        "scope": coupon.scope,
        "vendor_id": coupon.vendor_id,
        "applies_to": coupon.applies_to,
        "created_by_type": coupon.created_by_type,
        "created_at": _iso(coupon.created_at),
    }


def _check_coupon_fields(data: Dict[str, Any]) -> None:
    discount_type = data.get("discount_type")
    if discount_type is not None and discount_type not in DISCOUNT_TYPES:
        raise ValidationFailed(f"Invalid discount type: {discount_type}")
    scope = data.get("scope")
    if scope is not None and scope not in SCOPES:
        raise ValidationFailed(f"Invalid coupon scope: {scope}")
    value = data.get("discount_value")
    if value is not None:
        value = to_decimal(value)
        if value < 0:
            raise ValidationFailed("Discount value cannot be negative")
        if discount_type == "percentage" and value > 100:
            raise ValidationFailed("Percentage discount cannot exceed 100")
    starts_at, expires_at = data.get("starts_at"), data.get("expires_at")
    if starts_at and expires_at and expires_at <= starts_at:
        raise ValidationFailed("Expiry must be after the start date")


def list_coupons(
    db: Session, vendor_id: Optional[str] = None, page: int = 1, limit: int = 20
) -> Dict[str, Any]:
    query = db.query(Coupon)
    if vendor_id:
        query = query.filter(Coupon.vendor_id == vendor_id)
    total = query.count()
    rows = query.order_by(Coupon.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [serialize_coupon(c) for c in rows], "total": total, "page": page, "limit": limit}


def get_coupon(db: Session, coupon_id: str, vendor_id: Optional[str] = None) -> Coupon:
    query = db.query(Coupon).filter(Coupon.id == coupon_id)
    if vendor_id:
        query = query.filter(Coupon.vendor_id == vendor_id)
    coupon = query.first()
    if coupon is None:
        raise NotFoundError("Coupon not found")
    return coupon


def create_coupon(
    db: Session,
    data: Dict[str, Any],
    created_by_type: str = "admin",
    created_by_id: Optional[str] = None,
    vendor_id: Optional[str] = None,
) -> Coupon:
    """Create a coupon. Vendor-created coupons are always scoped to that vendor."""
    code = normalize_code(data.get("code"))
    if not code:
        raise ValidationFailed("Coupon code is required")
    if not data.get("discount_type"):
        raise ValidationFailed("Discount type is required")
    _check_coupon_fields(data)
    if db.query(Coupon).filter(Coupon.code == code).first():
        raise ConflictError("Coupon code already exists")

    coupon = Coupon(code=code, created_by_type=created_by_type, created_by_id=created_by_id)
    for field in COUPON_FIELDS:
        if data.get(field) is not None:
            setattr(coupon, field, data[field])
    if created_by_type == "vendor":
        coupon.scope = "vendor"
        coupon.vendor_id = vendor_id
    else:
        coupon.vendor_id = data.get("vendor_id")
    db.add(coupon)
    db.commit()
    db.refresh(coupon)
    return coupon


def update_coupon(db: Session, coupon: Coupon, data: Dict[str, Any], vendor_scoped: bool = False) -> Coupon:
    merged = {"discount_type": coupon.discount_type, **{k: v for k, v in data.items() if v is not None}}
    _check_coupon_fields(merged)
    if data.get("code"):
        code = normalize_code(data["code"])
        clash = db.query(Coupon).filter(Coupon.code == code, Coupon.id != coupon.id).first()
        if clash:
            raise ConflictError("Coupon code already exists")
        coupon.code = code
    for field in COUPON_FIELDS:
        if field in data and data[field] is not None:
            setattr(coupon, field, data[field])
    if vendor_scoped:
        coupon.scope = "vendor"
    elif "vendor_id" in data:
        coupon.vendor_id = data["vendor_id"]
    db.commit()
    db.refresh(coupon)
    return coupon


def delete_coupon(db: Session, coupon: Coupon) -> None:
    db.delete(coupon)
    db.commit()
