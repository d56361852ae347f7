from __future__ import annotations

import secrets
import string
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Book, Order, Product, User, Vendor, VendorEarning
from ageless.services.auctions import auction_status_stats
from ageless.services.catalog import serialize_book, serialize_product
from ageless.services.errors import ConflictError, NotFoundError, ValidationFailed
from ageless.services.passwords import hash_password
from ageless.utils.logger import logger
from ageless.utils.money import quantize

ROLES = ("admin", "vendor", "customer")
USER_STATUSES = ("active", "inactive", "pending", "revoked")


def serialize_user(user: User) -> Dict[str, Any]:
    return {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "role": user.role,
        "status": user.status,
        "phone_number": user.phone_number,
        "last_login_at": user.last_login_at.isoformat() if user.last_login_at else None,
        "created_at": user.created_at.isoformat() if user.created_at else None,
        "vendor_id": user.vendor.id if user.vendor else None,
    }


def list_users(
    db: Session,
    role: Optional[str] = None,
    status: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(User)
    if role:
        query = query.filter(User.role == role)
    if status:
        query = query.filter(User.status == status)
    if q:
        like = f"%{q}%"
        query = query.filter(or_(User.email.ilike(like), User.first_name.ilike(like), User.last_name.ilike(like)))
    total = query.count()
    rows = query.order_by(User.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [serialize_user(u) for u in rows], "total": total, "page": page, "limit": limit}


def get_user(db: Session, user_id: str) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFoundError("User not found")
    return user


def update_user(db: Session, user: User, updates: Dict[str, Any]) -> User:
    if updates.get("role") is not None:
        if updates["role"] not in ROLES:
            raise ValidationFailed(f"Invalid role: {updates['role']}")
        user.role = updates["role"]
    if updates.get("status") is not None:
        if updates["status"] not in USER_STATUSES:
            raise ValidationFailed(f"Invalid status: {updates['status']}")
        user.status = updates["status"]
    for field in ("first_name", "last_name"):
        if field in updates and updates[field] is not None:
            setattr(user, field, updates[field])
    db.commit()
    db.refresh(user)
    return user


def _temporary_password(length: int = 16) -> str:
    alphabet = string.ascii_letters + string.digits
    body = "".join(secrets.choice(alphabet) for _ in range(length - 4))
    return body + secrets.choice(string.ascii_uppercase) + secrets.choice(string.digits) + "!" + secrets.choice(string.ascii_lowercase)


def create_user(
    db: Session,
    email: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    role: str = "customer",
) -> Tuple[User, str]:
    """Create an account with a one-off temporary password, returned once to the admin."""
    email = email.strip().lower()
    if role not in ROLES:
        raise ValidationFailed(f"Invalid role: {role}")
    if db.query(User).filter(User.email == email).first():
        raise ConflictError("Email already registered")

    temporary = _temporary_password()
    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        role=role,
        status="active",
        password_hash=hash_password(temporary),
        preferences={"must_reset_password": True},
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("[admin] User %s created with role=%s", user.email, role)
    return user, temporary


def delete_user(db: Session, user: User, acting_admin: User) -> None:
    if user.id == acting_admin.id:
        raise ValidationFailed("You cannot delete your own account")
    db.delete(user)
    db.commit()
    logger.info("[admin] User %s deleted by %s", user.email, acting_admin.email)


# ---- Catalog moderation ----


def _item_model(item_type: str):
    if item_type == "book":
        return Book
    if item_type == "product":
        return Product
    raise ValidationFailed("Item type must be 'book' or 'product'")


def list_items(
    db: Session,
    item_type: str,
    status: Optional[str] = None,
    vendor_id: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    model = _item_model(item_type)
    query = db.query(model)
    if status:
        query = query.filter(model.status == status)
    if vendor_id:
        query = query.filter(model.vendor_id == vendor_id)
    if q:
        query = query.filter(model.title.ilike(f"%{q}%"))
    total = query.count()
    rows = query.order_by(model.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    serialize = serialize_book if item_type == "book" else serialize_product
    return {"items": [serialize(i) for i in rows], "total": total, "page": page, "limit": limit}


def set_item_status(db: Session, item_type: str, item_id: str, status: str):
    model = _item_model(item_type)
    allowed = ("draft", "pending", "published", "sold", "archived") if item_type == "book" else (
        "draft", "active", "inactive", "sold", "archived"
    )
    if status not in allowed:
        raise ValidationFailed(f"Invalid status: {status}")
    item = db.query(model).filter(model.id == item_id).first()
    if item is None:
        raise NotFoundError(f"{item_type.capitalize()} not found")
    item.status = status
    db.commit()
    db.refresh(item)
    return item


def delete_item(db: Session, item_type: str, item_id: str) -> None:
    model = _item_model(item_type)
    item = db.query(model).filter(model.id == item_id).first()
    if item is None:
        raise NotFoundError(f"{item_type.capitalize()} not found")
    db.delete(item)
    db.commit()


def list_orders(
    db: Session,
    status: Optional[str] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
):
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if q:
        query = query.filter(Order.order_number.ilike(f"%{q}%"))
    total = query.count()
    rows = query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return rows, total


def dashboard_stats(db: Session) -> Dict[str, Any]:
    revenue = (
        db.query(func.coalesce(func.sum(Order.total), 0)).filter(Order.payment_status == "completed").scalar()
    )
    commission = db.query(func.coalesce(func.sum(VendorEarning.platform_fee), 0)).scalar()
    return {
        "users": db.query(User).count(),
        "vendors": db.query(Vendor).count(),
        "pending_vendors": db.query(Vendor).filter(Vendor.status == "pending").count(),
        "books": db.query(Book).count(),
        "products": db.query(Product).count(),
        "orders": db.query(Order).count(),
        "revenue": float(quantize(revenue or Decimal("0"))),
        "platform_commission": float(quantize(commission or Decimal("0"))),
        "auctions": auction_status_stats(db),
    }
