"""Vendor accounts: applications, shop settings, catalog management,
dashboards and admin moderation."""
from __future__ import annotations

import re
from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func
from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models_sqlalchemy.models import (
    Auction,
    Book,
    BookMedia,
    Category,
    CustomOffer,
    Order,
    OrderItem,
    Product,
    User,
    Vendor,
    VendorEarning,
)
from ageless.services.catalog import generate_sid, serialize_book, serialize_product, slugify
from ageless.services.errors import ConflictError, NotFoundError, ValidationFailed
from ageless.services.messaging import send_templated_email
from ageless.services.payouts import PAYOUT_METHODS, validate_paypal_email
from ageless.utils.logger import logger
from ageless.utils.money import quantize, to_decimal
from ageless.utils.phone import is_valid_phone, normalize_phone

PROFILE_FIELDS = ("shop_name", "description", "website", "social_links", "logo_url", "banner_url", "phone_number")
BOOK_FIELDS = (
    "title", "author", "isbn", "description", "short_description", "price", "sale_price",
    "quantity", "track_quantity", "condition", "category", "status", "publisher",
    "publication_year", "edition", "language", "binding", "is_signed", "weight", "keywords", "menu_order",
)
PRODUCT_FIELDS = (
    "title", "description", "price", "sale_price", "compare_at_price", "cost", "sku", "quantity",
    "track_quantity", "low_stock_threshold", "images", "condition", "status", "tags",
)
MONEY_FIELDS = ("price", "sale_price", "compare_at_price", "cost", "weight")
BOOK_STATUSES = ("draft", "pending", "published", "sold", "archived")
PRODUCT_STATUSES = ("draft", "active", "inactive", "sold", "archived")
REPORT_PERIODS = {"7d": 7, "30d": 30, "90d": 90, "365d": 365, "all": None}
OPEN_ORDER_STATUSES = ("pending", "paid", "processing")

_SHOP_URL_RE = re.compile(r"^[a-z0-9][a-z0-9\-]{1,98}[a-z0-9]$")


def serialize_vendor(vendor: Vendor, private: bool = False) -> Dict[str, Any]:
    data = {
        "id": vendor.id,
        "shop_name": vendor.shop_name,
        "shop_url": vendor.shop_url,
        "description": vendor.description,
        "website": vendor.website,
        "social_links": vendor.social_links or {},
        "logo_url": vendor.logo_url,
        "banner_url": vendor.banner_url,
        "is_featured": bool(vendor.is_featured),
        "status": vendor.status,
        "created_at": vendor.created_at.isoformat() if vendor.created_at else None,
    }
    if private:
        data.update(
            {
                "user_id": vendor.user_id,
                "phone_number": vendor.phone_number,
                "commission_rate": float(to_decimal(vendor.commission_rate)),
                "balance_available": float(quantize(vendor.balance_available)),
                "balance_pending": float(quantize(vendor.balance_pending)),
                "balance_paid": float(quantize(vendor.balance_paid)),
                "lifetime_gross_sales": float(quantize(vendor.lifetime_gross_sales)),
                "lifetime_commission": float(quantize(vendor.lifetime_commission)),
                "lifetime_vendor_earnings": float(quantize(vendor.lifetime_vendor_earnings)),
                "total_sales": vendor.total_sales or 0,
                "rejection_reason": vendor.rejection_reason,
                "suspension_reason": vendor.suspension_reason,
                "approved_at": vendor.approved_at.isoformat() if vendor.approved_at else None,
                "stripe_account_id": vendor.stripe_account_id,
                "stripe_account_status": vendor.stripe_account_status,
                "payout_method": vendor.payout_method,
                "paypal_email": vendor.paypal_email,
            }
        )
    return data


# ---- Applications & settings ----


async def apply_as_vendor(
    db: Session,
    user: User,
    shop_name: str,
    shop_url: Optional[str] = None,
    description: Optional[str] = None,
    phone_number: Optional[str] = None,
    website: Optional[str] = None,
) -> Vendor:
    if db.query(Vendor).filter(Vendor.user_id == user.id).first():
        raise ValidationFailed("Vendor profile already exists")
    if not shop_name or not shop_name.strip():
        raise ValidationFailed("Shop name is required")

    slug = slugify(shop_url or shop_name)
    if not _SHOP_URL_RE.match(slug):
        raise ValidationFailed("Shop URL must be 3-100 characters of letters, numbers and dashes")
    if db.query(Vendor).filter(Vendor.shop_url == slug).first():
        raise ConflictError("Shop URL is already taken")
    if phone_number and not is_valid_phone(phone_number):
        raise ValidationFailed("Invalid phone number")

    vendor = Vendor(
        user_id=user.id,
        shop_name=shop_name.strip(),
        shop_url=slug,
        description=description,
        website=website,
        phone_number=normalize_phone(phone_number) if phone_number else None,
        status="pending",
        commission_rate=to_decimal(settings.DEFAULT_COMMISSION_RATE),
    )
    db.add(vendor)
    db.commit()
    db.refresh(vendor)
    logger.info("[vendors] Application submitted user=%s shop=%s", user.id, slug)

    await send_templated_email(
        "vendor-application-submitted",
        user.email,
        {"user_name": user.first_name or "there", "shop_name": vendor.shop_name},
    )
    if settings.ADMIN_NOTIFICATION_EMAIL:
        await send_templated_email(
            "vendor-application-submitted",
            settings.ADMIN_NOTIFICATION_EMAIL,
            {"user_name": "Admin", "shop_name": vendor.shop_name},
        )
    return vendor


def get_vendor_for_user(db: Session, user_id: str) -> Vendor:
    vendor = db.query(Vendor).filter(Vendor.user_id == user_id).first()
    if vendor is None:
        raise NotFoundError("Vendor profile not found")
    return vendor


def update_vendor_profile(db: Session, vendor: Vendor, updates: Dict[str, Any]) -> Vendor:
    for field in PROFILE_FIELDS:
        if field not in updates:
            continue
        value = updates[field]
        if field == "phone_number" and value:
            if not is_valid_phone(value):
                raise ValidationFailed("Invalid phone number")
            value = normalize_phone(value)
        if field == "shop_name" and not (value or "").strip():
            raise ValidationFailed("Shop name cannot be empty")
        setattr(vendor, field, value)

    if "paypal_email" in updates:
        errors = validate_paypal_email(updates["paypal_email"])
        if errors:
            raise ValidationFailed(errors[0], errors)
        vendor.paypal_email = updates["paypal_email"].strip().lower()
    if "payout_method" in updates and updates["payout_method"] is not None:
        if updates["payout_method"] not in PAYOUT_METHODS:
            raise ValidationFailed("Payout method must be 'stripe' or 'paypal'")
        vendor.payout_method = updates["payout_method"]

    db.commit()
    db.refresh(vendor)
    return vendor


def public_vendor_page(db: Session, shop_url: str) -> Dict[str, Any]:
    vendor = db.query(Vendor).filter(Vendor.shop_url == shop_url).first()
    if vendor is None or vendor.status not in ("approved", "active"):
        raise NotFoundError("Vendor not found")
    books = (
        db.query(Book)
        .filter(Book.vendor_id == vendor.id, Book.status == "published")
        .order_by(Book.menu_order.asc(), Book.created_at.desc())
        .limit(100)
        .all()
    )
    products = (
        db.query(Product)
        .filter(Product.vendor_id == vendor.id, Product.status == "active")
        .order_by(Product.created_at.desc())
        .limit(100)
        .all()
    )
    data = serialize_vendor(vendor)
    data["books"] = [serialize_book(b) for b in books]
    data["products"] = [serialize_product(p) for p in products]
    return data


def list_public_vendors(db: Session, featured_only: bool = False) -> List[Dict[str, Any]]:
    query = db.query(Vendor).filter(Vendor.status.in_(("approved", "active")))
    if featured_only:
        query = query.filter(Vendor.is_featured.is_(True))
    return [serialize_vendor(v) for v in query.order_by(Vendor.shop_name.asc()).all()]


# ---- Vendor catalog ----


def _model_for(item_type: str):
    if item_type == "book":
        return Book, BOOK_FIELDS, BOOK_STATUSES
    if item_type == "product":
        return Product, PRODUCT_FIELDS, PRODUCT_STATUSES
    raise ValidationFailed("Item type must be 'book' or 'product'")


def _assign_fields(item, allowed, data: Dict[str, Any], statuses) -> None:
    for field in allowed:
        if field not in data:
            continue
        value = data[field]
        if field in MONEY_FIELDS and value is not None:
            value = quantize(value)
            if value < 0:
                raise ValidationFailed(f"{field} cannot be negative")
        if field == "quantity" and value is not None and int(value) < 0:
            raise ValidationFailed("Quantity cannot be negative")
        if field == "status" and value not in statuses:
            raise ValidationFailed(f"Invalid status: {value}")
        setattr(item, field, value)


def _set_categories(db: Session, item, category_ids: Optional[List[str]]) -> None:
    if category_ids is None:
        return
    categories = db.query(Category).filter(Category.id.in_(category_ids)).all() if category_ids else []
    if len(categories) != len(set(category_ids)):
        raise ValidationFailed("One or more categories do not exist")
    item.categories = categories


def serialize_item(item, detail: bool = True) -> Dict[str, Any]:
    return serialize_book(item, detail) if isinstance(item, Book) else serialize_product(item, detail)


def create_item(db: Session, vendor: Vendor, item_type: str, data: Dict[str, Any]) -> Union[Book, Product]:
    model, allowed, statuses = _model_for(item_type)
    if not data.get("title") or data.get("price") is None:
        raise ValidationFailed("Title and price are required")

    item = model(vendor_id=vendor.id, sid=generate_sid("BK" if item_type == "book" else "CL"))
    _assign_fields(item, allowed, data, statuses)
    if item.status is None:
        item.status = "draft"
    _set_categories(db, item, data.get("category_ids"))
    db.add(item)

    if item_type == "book":
        for position, url in enumerate(data.get("images") or []):
            item.media.append(
                BookMedia(image_url=url, thumbnail_url=url, display_order=position, is_primary=position == 0)
            )
    db.commit()
    db.refresh(item)
    logger.info("[vendors] %s %s created by vendor=%s", item_type, item.id, vendor.id)
    return item


def get_vendor_item(db: Session, vendor: Vendor, item_type: str, item_id: str) -> Union[Book, Product]:
    model, _, _ = _model_for(item_type)
    item = db.query(model).filter(model.id == item_id, model.vendor_id == vendor.id).first()
    if item is None:
        raise NotFoundError(f"{item_type.capitalize()} not found")
    return item


def update_item(db: Session, vendor: Vendor, item_type: str, item_id: str, data: Dict[str, Any]):
    model, allowed, statuses = _model_for(item_type)
    item = get_vendor_item(db, vendor, item_type, item_id)
    _assign_fields(item, allowed, data, statuses)
    _set_categories(db, item, data.get("category_ids"))
    if item_type == "book" and data.get("images") is not None:
        item.media = [
            BookMedia(image_url=url, thumbnail_url=url, display_order=position, is_primary=position == 0)
            for position, url in enumerate(data["images"])
        ]
    db.commit()
    db.refresh(item)
    return item


def archive_item(db: Session, vendor: Vendor, item_type: str, item_id: str) -> None:
    """Vendors archive rather than delete so order history keeps its references."""
    item = get_vendor_item(db, vendor, item_type, item_id)
    item.status = "archived"
    db.commit()


def set_item_status(db: Session, vendor: Vendor, item_type: str, item_id: str, status: str):
    allowed = ("draft", "published", "archived") if item_type == "book" else ("draft", "active", "inactive", "archived")
    if status not in allowed:
        raise ValidationFailed("Invalid status value")
    item = get_vendor_item(db, vendor, item_type, item_id)
    item.status = status
    db.commit()
    db.refresh(item)
    return item


def set_item_quantity(db: Session, vendor: Vendor, item_type: str, item_id: str, quantity: int):
    if quantity is None or quantity < 0:
        raise ValidationFailed("Quantity must be a non-negative number")
    item = get_vendor_item(db, vendor, item_type, item_id)
    item.quantity = quantity
    if quantity == 0 and item.track_quantity:
        item.status = "sold"
    elif quantity > 0 and item.status == "sold":
        item.status = "published" if item_type == "book" else "active"
    db.commit()
    db.refresh(item)
    return item


def list_vendor_items(
    db: Session,
    vendor: Vendor,
    item_type: str,
    status: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    model, _, _ = _model_for(item_type)
    query = db.query(model).filter(model.vendor_id == vendor.id)
    if status:
        query = query.filter(model.status == status)
    if q:
        query = query.filter(model.title.ilike(f"%{q}%"))
    total = query.count()
    rows = query.order_by(model.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [serialize_item(i, detail=False) for i in rows], "total": total, "page": page, "limit": limit}


# ---- Dashboard & reports ----


def vendor_dashboard(db: Session, vendor: Vendor) -> Dict[str, Any]:
    books = db.query(Book).filter(Book.vendor_id == vendor.id, Book.status != "archived").count()
    products = db.query(Product).filter(Product.vendor_id == vendor.id, Product.status != "archived").count()
    active_auctions = db.query(Auction).filter(Auction.vendor_id == vendor.id, Auction.status == "active").count()
    pending_offers = (
        db.query(CustomOffer).filter(CustomOffer.vendor_id == vendor.id, CustomOffer.status == "pending").count()
    )
    open_orders = (
        db.query(func.count(func.distinct(Order.id)))
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(OrderItem.vendor_id == vendor.id, Order.status.in_(OPEN_ORDER_STATUSES))
        .scalar()
    ) or 0

    return {
        "vendor": serialize_vendor(vendor, private=True),
        "balances": {
            "available": float(quantize(vendor.balance_available)),
            "pending": float(quantize(vendor.balance_pending)),
            "paid": float(quantize(vendor.balance_paid)),
        },
        "lifetime": {
            "gross_sales": float(quantize(vendor.lifetime_gross_sales)),
            "commission": float(quantize(vendor.lifetime_commission)),
            "earnings": float(quantize(vendor.lifetime_vendor_earnings)),
            "total_sales": vendor.total_sales or 0,
        },
        "counts": {
            "books": books,
            "products": products,
            "active_auctions": active_auctions,
            "pending_offers": pending_offers,
            "open_orders": open_orders,
        },
    }


def serialize_earning(e: VendorEarning) -> Dict[str, Any]:
    return {
        "id": e.id,
        "order_id": e.order_id,
        "auction_id": e.auction_id,
        "amount": float(quantize(e.amount)),
        "platform_fee": float(quantize(e.platform_fee)),
        "net_amount": float(quantize(e.net_amount)),
        "commission_rate_bps": e.commission_rate_bps,
        "transaction_type": e.transaction_type,
        "status": e.status,
        "paid_out": bool(e.paid_out),
        "created_at": e.created_at.isoformat() if e.created_at else None,
    }


def list_earnings(
    db: Session, vendor: Vendor, status: Optional[str] = None, page: int = 1, limit: int = 20
) -> Dict[str, Any]:
    query = db.query(VendorEarning).filter(VendorEarning.vendor_id == vendor.id)
    if status:
        query = query.filter(VendorEarning.status == status)
    total = query.count()
    rows = query.order_by(VendorEarning.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [serialize_earning(e) for e in rows], "total": total, "page": page, "limit": limit}


def sales_report(db: Session, vendor: Vendor, period: str = "30d", now: Optional[datetime] = None) -> Dict[str, Any]:
    if period not in REPORT_PERIODS:
        raise ValidationFailed(f"Invalid period: {period}")
    now = now or datetime.utcnow()
    days = REPORT_PERIODS[period]
    since = now - timedelta(days=days) if days else None

    query = db.query(VendorEarning).filter(VendorEarning.vendor_id == vendor.id)
    if since is not None:
        query = query.filter(VendorEarning.created_at >= since)
    earnings = query.all()

    gross = sum((to_decimal(e.amount) for e in earnings), Decimal("0"))
    commission = sum((to_decimal(e.platform_fee) for e in earnings), Decimal("0"))
    net = sum((to_decimal(e.net_amount) for e in earnings), Decimal("0"))
    order_ids = {e.order_id for e in earnings if e.order_id}
    order_gross = sum((to_decimal(e.amount) for e in earnings if e.order_id), Decimal("0"))
    auction_sales = sum(1 for e in earnings if e.auction_id)

    daily: Dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for e in earnings:
        daily[e.created_at.date().isoformat()] += to_decimal(e.amount)

    items_query = (
        db.query(OrderItem.title, func.sum(OrderItem.quantity), func.sum(OrderItem.subtotal))
        .join(Order, Order.id == OrderItem.order_id)
        .filter(OrderItem.vendor_id == vendor.id, Order.status.notin_(("cancelled", "refunded")))
    )
    if since is not None:
        items_query = items_query.filter(Order.created_at >= since)
    top_items = (
        items_query.group_by(OrderItem.title)
        .order_by(func.sum(OrderItem.subtotal).desc())
        .limit(5)
        .all()
    )

    return {
        "period": period,
        "gross_sales": float(quantize(gross)),
        "commission": float(quantize(commission)),
        "net_earnings": float(quantize(net)),
        "order_count": len(order_ids),
        "auction_sales": auction_sales,
        "average_order_value": float(quantize(order_gross / len(order_ids))) if order_ids else 0.0,
        "top_items": [
            {"title": title, "quantity": int(qty or 0), "revenue": float(quantize(revenue or 0))}
            for title, qty, revenue in top_items
        ],
        "daily": [{"date": day, "gross": float(quantize(amount))} for day, amount in sorted(daily.items())],
    }


# ---- Admin moderation ----


def get_vendor(db: Session, vendor_id: str) -> Vendor:
    vendor = db.query(Vendor).filter(Vendor.id == vendor_id).first()
    if vendor is None:
        raise NotFoundError("Vendor not found")
    return vendor


def list_vendors(
    db: Session, status: Optional[str] = None, q: Optional[str] = None, page: int = 1, limit: int = 20
) -> Dict[str, Any]:
    query = db.query(Vendor)
    if status:
        query = query.filter(Vendor.status == status)
    if q:
        query = query.filter(Vendor.shop_name.ilike(f"%{q}%"))
    total = query.count()
    rows = query.order_by(Vendor.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [serialize_vendor(v, private=True) for v in rows], "total": total, "page": page, "limit": limit}


async def approve_vendor(db: Session, vendor: Vendor, admin_id: str) -> Vendor:
    vendor.status = "approved"
    vendor.approved_at = datetime.utcnow()
    vendor.approved_by = admin_id
    vendor.rejection_reason = None
    if vendor.user is not None and vendor.user.role != "admin":
        vendor.user.role = "vendor"
    db.commit()
    db.refresh(vendor)
    logger.info("[vendors] Vendor %s approved by %s", vendor.id, admin_id)
    await send_templated_email(
        "vendor-application-approved",
        vendor.user.email if vendor.user else None,
        {
            "shop_name": vendor.shop_name,
            "shop_link": f"{settings.FRONTEND_URL.rstrip('/')}/shop/{vendor.shop_url}",
        },
    )
    return vendor


async def reject_vendor(db: Session, vendor: Vendor, reason: Optional[str]) -> Vendor:
    if not reason or not reason.strip():
        raise ValidationFailed("Rejection reason is required")
    vendor.status = "rejected"
    vendor.rejection_reason = reason.strip()
    db.commit()
    db.refresh(vendor)
    await send_templated_email(
        "vendor-application-rejected", vendor.user.email if vendor.user else None, {"reason": vendor.rejection_reason}
    )
    return vendor


async def suspend_vendor(db: Session, vendor: Vendor, reason: Optional[str]) -> Vendor:
    vendor.status = "suspended"
    vendor.suspension_reason = (reason or "").strip() or None
    db.commit()
    db.refresh(vendor)
    await send_templated_email(
        "vendor-suspended",
        vendor.user.email if vendor.user else None,
        {"reason": vendor.suspension_reason or "Not specified"},
    )
    return vendor


def reactivate_vendor(db: Session, vendor: Vendor) -> Vendor:
    if vendor.status not in ("suspended", "archived"):
        raise ValidationFailed(f"Cannot reactivate vendor with status: {vendor.status}")
    vendor.status = "approved"
    vendor.suspension_reason = None
    db.commit()
    db.refresh(vendor)
    return vendor


def set_commission_rate(db: Session, vendor: Vendor, rate: Any) -> Vendor:
    rate = to_decimal(rate)
    if rate < 0 or rate > 1:
        raise ValidationFailed("Commission rate must be between 0 and 1")
    vendor.commission_rate = rate
    db.commit()
    db.refresh(vendor)
    return vendor


def set_featured(db: Session, vendor: Vendor, featured: bool) -> Vendor:
    vendor.is_featured = bool(featured)
    db.commit()
    db.refresh(vendor)
    return vendor
