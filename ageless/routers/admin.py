from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import Order, User
from ageless.services import admin, catalog, coupons, orders, payouts, vendors
from ageless.services.auth import admin_required
from ageless.services.errors import NotFoundError
from ageless.utils.logger import logger

router = APIRouter(prefix="/api/admin", tags=["admin"])

ITEM_KINDS = {"books": "book", "products": "product"}


class AdminUserCreate(BaseModel):
    email: EmailStr
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: str = "customer"


class AdminUserUpdate(BaseModel):
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    role: Optional[str] = None
    status: Optional[str] = None


class ReasonRequest(BaseModel):
    reason: Optional[str] = None


class CommissionRequest(BaseModel):
    commission_rate: Decimal = Field(..., alias="commissionRate")

    class Config:
        populate_by_name = True


class FeatureRequest(BaseModel):
    featured: bool


class StatusUpdate(BaseModel):
    status: str


class CategoryPayload(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    parent_id: Optional[str] = None
    image_url: Optional[str] = None


class CouponPayload(BaseModel):
    code: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    discount_type: Optional[str] = None
    discount_value: Optional[Decimal] = None
    minimum_order_amount: Optional[Decimal] = None
    maximum_discount_amount: Optional[Decimal] = None
    usage_limit: Optional[int] = None
    per_user_limit: Optional[int] = None
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    is_active: Optional[bool] = None
    scope: Optional[str] = None
    vendor_id: Optional[str] = None
    applies_to: Optional[Dict[str, List[str]]] = None


class WithdrawalAction(BaseModel):
    admin_notes: Optional[str] = None
    reason: Optional[str] = None
    transaction_id: Optional[str] = None


# ---- Dashboard ----


@router.get("/dashboard")
async def dashboard(current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return admin.dashboard_stats(db)


# ---- Users ----


@router.get("/users")
async def list_users(
    role: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    return admin.list_users(db, role, status_filter, q, page, limit)


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    payload: AdminUserCreate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    user, temporary_password = admin.create_user(
        db, payload.email, payload.first_name, payload.last_name, payload.role
    )
    return {"user": admin.serialize_user(user), "temporary_password": temporary_password}


@router.get("/users/{user_id}")
async def get_user(user_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return admin.serialize_user(admin.get_user(db, user_id))


@router.patch("/users/{user_id}")
async def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    user = admin.update_user(db, admin.get_user(db, user_id), payload.model_dump(exclude_unset=True))
    return admin.serialize_user(user)


@router.delete("/users/{user_id}")
async def delete_user(user_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    admin.delete_user(db, admin.get_user(db, user_id), current_user)
    return {"message": "User deleted"}


# ---- Vendors ----


@router.get("/vendors")
async def list_vendors(
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    return vendors.list_vendors(db, status_filter, q, page, limit)


@router.get("/vendors/{vendor_id}")
async def get_vendor(vendor_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return vendors.serialize_vendor(vendors.get_vendor(db, vendor_id), private=True)


@router.post("/vendors/{vendor_id}/approve")
async def approve_vendor(vendor_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    vendor = await vendors.approve_vendor(db, vendors.get_vendor(db, vendor_id), current_user.id)
    return vendors.serialize_vendor(vendor, private=True)


@router.post("/vendors/{vendor_id}/reject")
async def reject_vendor(
    vendor_id: str,
    payload: ReasonRequest,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    vendor = await vendors.reject_vendor(db, vendors.get_vendor(db, vendor_id), payload.reason)
    return vendors.serialize_vendor(vendor, private=True)


@router.post("/vendors/{vendor_id}/suspend")
async def suspend_vendor(
    vendor_id: str,
    payload: ReasonRequest,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    vendor = await vendors.suspend_vendor(db, vendors.get_vendor(db, vendor_id), payload.reason)
    return vendors.serialize_vendor(vendor, private=True)


@router.post("/vendors/{vendor_id}/reactivate")
async def reactivate_vendor(
    vendor_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)
):
    return vendors.serialize_vendor(vendors.reactivate_vendor(db, vendors.get_vendor(db, vendor_id)), private=True)


@router.patch("/vendors/{vendor_id}/commission")
async def set_commission(
    vendor_id: str,
    payload: CommissionRequest,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    vendor = vendors.set_commission_rate(db, vendors.get_vendor(db, vendor_id), payload.commission_rate)
    return vendors.serialize_vendor(vendor, private=True)


@router.patch("/vendors/{vendor_id}/featured")
async def set_featured(
    vendor_id: str,
    payload: FeatureRequest,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    vendor = vendors.set_featured(db, vendors.get_vendor(db, vendor_id), payload.featured)
    return vendors.serialize_vendor(vendor, private=True)


# ---- Categories ----


@router.post("/categories", status_code=status.HTTP_201_CREATED)
async def create_category(
    payload: CategoryPayload,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    category = catalog.create_category(db, payload.name, payload.description, payload.parent_id, payload.image_url)
    return catalog.serialize_category(category)


@router.put("/categories/{category_id}")
async def update_category(
    category_id: str,
    payload: CategoryPayload,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    category = catalog.update_category(db, category_id, payload.model_dump(exclude_unset=True))
    return catalog.serialize_category(category)


@router.delete("/categories/{category_id}")
async def delete_category(
    category_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)
):
    catalog.delete_category(db, category_id)
    return {"message": "Category deleted"}


# ---- Coupons ----


@router.get("/coupons")
async def list_coupons(
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    return coupons.list_coupons(db, vendor_id=vendor_id, page=page, limit=limit)


@router.post("/coupons", status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponPayload,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    coupon = coupons.create_coupon(
        db, payload.model_dump(exclude_unset=True), created_by_type="admin", created_by_id=current_user.id
    )
    return coupons.serialize_coupon(coupon)


@router.get("/coupons/{coupon_id}")
async def get_coupon(coupon_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return coupons.serialize_coupon(coupons.get_coupon(db, coupon_id))


@router.put("/coupons/{coupon_id}")
async def update_coupon(
    coupon_id: str,
    payload: CouponPayload,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    coupon = coupons.update_coupon(db, coupons.get_coupon(db, coupon_id), payload.model_dump(exclude_unset=True))
    return coupons.serialize_coupon(coupon)


@router.delete("/coupons/{coupon_id}")
async def delete_coupon(coupon_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    coupons.delete_coupon(db, coupons.get_coupon(db, coupon_id))
    return {"message": "Coupon deleted"}


# ---- Orders ----


@router.get("/orders")
async def list_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    rows, total = admin.list_orders(db, status_filter, q, page, limit)
    return {"items": [orders.serialize_order(o) for o in rows], "total": total, "page": page, "limit": limit}


def _order_or_404(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


@router.get("/orders/{order_id}")
async def get_order(order_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)):
    return orders.serialize_order(_order_or_404(db, order_id))


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    payload: StatusUpdate,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    order = orders.update_order_status(db, _order_or_404(db, order_id), payload.status)
    logger.info(f"[admin] Order {order.order_number} set to {order.status} by {current_user.email}")
    return orders.serialize_order(order)


# ---- Withdrawals ----


@router.get("/withdrawals")
async def list_withdrawals(
    status_filter: Optional[str] = Query(None, alias="status"),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    return payouts.list_withdrawals(db, vendor_id=vendor_id, status=status_filter, page=page, limit=limit)


@router.get("/withdrawals/{withdrawal_id}")
async def get_withdrawal(
    withdrawal_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)
):
    withdrawal = payouts.get_withdrawal(db, withdrawal_id)
    data = payouts.serialize_withdrawal(withdrawal)
    data["vendor"] = vendors.serialize_vendor(withdrawal.vendor, private=True) if withdrawal.vendor else None
    return data


@router.post("/withdrawals/{withdrawal_id}/approve")
async def approve_withdrawal(
    withdrawal_id: str,
    payload: WithdrawalAction,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    withdrawal = await payouts.approve_withdrawal(
        db, payouts.get_withdrawal(db, withdrawal_id), current_user.id, payload.admin_notes
    )
    return payouts.serialize_withdrawal(withdrawal)


@router.post("/withdrawals/{withdrawal_id}/reject")
async def reject_withdrawal(
    withdrawal_id: str,
    payload: WithdrawalAction,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    withdrawal = await payouts.reject_withdrawal(
        db, payouts.get_withdrawal(db, withdrawal_id), current_user.id, payload.reason
    )
    return payouts.serialize_withdrawal(withdrawal)


@router.post("/withdrawals/{withdrawal_id}/process")
async def process_withdrawal(
    withdrawal_id: str, current_user: User = Depends(admin_required), db: Session = Depends(get_db)
):
    result = await payouts.process_withdrawal(db, payouts.get_withdrawal(db, withdrawal_id), current_user.id)
    return {
        "withdrawal": payouts.serialize_withdrawal(result["withdrawal"]),
        "manual": result["manual"],
        "transaction_id": result["transaction_id"],
    }


@router.post("/withdrawals/{withdrawal_id}/complete")
async def complete_withdrawal(
    withdrawal_id: str,
    payload: WithdrawalAction,
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    withdrawal = await payouts.complete_withdrawal(
        db, payouts.get_withdrawal(db, withdrawal_id), current_user.id, payload.transaction_id, payload.admin_notes
    )
    return payouts.serialize_withdrawal(withdrawal)


# ---- Books and products ----


@router.get("/{item_kind}")
async def list_items(
    item_kind: str = Path(..., pattern="^(books|products)$"),
    status_filter: Optional[str] = Query(None, alias="status"),
    vendor_id: Optional[str] = Query(None, alias="vendorId"),
    q: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    return admin.list_items(db, ITEM_KINDS[item_kind], status_filter, vendor_id, q, page, limit)


@router.patch("/{item_kind}/{item_id}/status")
async def set_item_status(
    item_id: str,
    payload: StatusUpdate,
    item_kind: str = Path(..., pattern="^(books|products)$"),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    item = admin.set_item_status(db, ITEM_KINDS[item_kind], item_id, payload.status)
    return vendors.serialize_item(item)


@router.delete("/{item_kind}/{item_id}")
async def delete_item(
    item_id: str,
    item_kind: str = Path(..., pattern="^(books|products)$"),
    current_user: User = Depends(admin_required),
    db: Session = Depends(get_db),
):
    admin.delete_item(db, ITEM_KINDS[item_kind], item_id)
    return {"message": "Item deleted"}
