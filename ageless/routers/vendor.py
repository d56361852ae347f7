from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User, Vendor
from ageless.services import coupons, orders, vendors
from ageless.services.auth import get_current_active_user, vendor_required

router = APIRouter(prefix="/api/vendor", tags=["vendor"])

ITEM_KINDS = {"books": "book", "products": "product"}


class VendorApplication(BaseModel):
    shop_name: str = Field(..., alias="shopName")
    shop_url: Optional[str] = Field(None, alias="shopUrl")
    description: Optional[str] = None
    phone_number: Optional[str] = Field(None, alias="phoneNumber")
    website: Optional[str] = None

    class Config:
        populate_by_name = True


class VendorProfileUpdate(BaseModel):
    shop_name: Optional[str] = None
    description: Optional[str] = None
    website: Optional[str] = None
    social_links: Optional[Dict[str, str]] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    phone_number: Optional[str] = None
    paypal_email: Optional[str] = None
    payout_method: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str


class QuantityUpdate(BaseModel):
    quantity: int


class FulfillmentUpdate(BaseModel):
    fulfillment_status: str = Field(..., alias="fulfillmentStatus")
    tracking_number: Optional[str] = Field(None, alias="trackingNumber")
    carrier: Optional[str] = None

    class Config:
        populate_by_name = True


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
    applies_to: Optional[Dict[str, List[str]]] = None


def _item_type(item_kind: str) -> str:
    return ITEM_KINDS[item_kind]


@router.post("/apply", status_code=status.HTTP_201_CREATED)
async def apply(
    payload: VendorApplication,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    vendor = await vendors.apply_as_vendor(
        db,
        current_user,
        payload.shop_name,
        shop_url=payload.shop_url,
        description=payload.description,
        phone_number=payload.phone_number,
        website=payload.website,
    )
    return {"message": "Application submitted", "vendor": vendors.serialize_vendor(vendor, private=True)}


@router.get("/profile")
async def get_profile(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    """Visible to pending and rejected applicants too, so they can track their status."""
    return vendors.serialize_vendor(vendors.get_vendor_for_user(db, current_user.id), private=True)


@router.patch("/profile")
async def update_profile(
    payload: VendorProfileUpdate,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    vendor = vendors.update_vendor_profile(db, vendor, payload.model_dump(exclude_unset=True))
    return vendors.serialize_vendor(vendor, private=True)


@router.get("/dashboard")
async def dashboard(vendor: Vendor = Depends(vendor_required), db: Session = Depends(get_db)):
    return vendors.vendor_dashboard(db, vendor)


@router.get("/earnings")
async def earnings(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return vendors.list_earnings(db, vendor, status_filter, page, limit)


@router.get("/reports/sales")
async def sales_report(
    period: str = Query("30d"),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return vendors.sales_report(db, vendor, period)


# ---- Orders ----


@router.get("/orders")
async def vendor_orders(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return orders.list_vendor_orders(db, vendor.id, status_filter, page, limit)


@router.patch("/orders/{order_id}/fulfillment")
async def update_fulfillment(
    order_id: str,
    payload: FulfillmentUpdate,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    order = orders.update_fulfillment(
        db, vendor, order_id, payload.fulfillment_status, payload.tracking_number, payload.carrier
    )
    return orders.serialize_order(order, vendor_id=vendor.id)


# ---- Coupons ----


@router.get("/coupons")
async def list_coupons(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return coupons.list_coupons(db, vendor_id=vendor.id, page=page, limit=limit)


@router.post("/coupons", status_code=status.HTTP_201_CREATED)
async def create_coupon(
    payload: CouponPayload,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    coupon = coupons.create_coupon(
        db,
        payload.model_dump(exclude_unset=True),
        created_by_type="vendor",
        created_by_id=vendor.user_id,
        vendor_id=vendor.id,
    )
    return coupons.serialize_coupon(coupon)


@router.put("/coupons/{coupon_id}")
async def update_coupon(
    coupon_id: str,
    payload: CouponPayload,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    coupon = coupons.get_coupon(db, coupon_id, vendor_id=vendor.id)
    coupon = coupons.update_coupon(db, coupon, payload.model_dump(exclude_unset=True), vendor_scoped=True)
    return coupons.serialize_coupon(coupon)


@router.delete("/coupons/{coupon_id}")
async def delete_coupon(
    coupon_id: str,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    coupons.delete_coupon(db, coupons.get_coupon(db, coupon_id, vendor_id=vendor.id))
    return {"message": "Coupon deleted"}


# ---- Catalog (books and products) ----
# Registered last: "/{item_kind}" would otherwise shadow the fixed paths above.


@router.get("/{item_kind}")
async def list_items(
    item_kind: str = Path(..., pattern="^(books|products)$"),
    status_filter: Optional[str] = Query(None, alias="status"),
    q: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return vendors.list_vendor_items(db, vendor, _item_type(item_kind), status_filter, q, page, limit)


@router.post("/{item_kind}", status_code=status.HTTP_201_CREATED)
async def create_item(
    data: Dict[str, Any],
    item_kind: str = Path(..., pattern="^(books|products)$"),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    item = vendors.create_item(db, vendor, _item_type(item_kind), data)
    return vendors.serialize_item(item)


@router.get("/{item_kind}/{item_id}")
async def get_item(
    item_id: str,
    item_kind: str = Path(..., pattern="^(books|products)$"),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return vendors.serialize_item(vendors.get_vendor_item(db, vendor, _item_type(item_kind), item_id))


@router.put("/{item_kind}/{item_id}")
async def update_item(
    item_id: str,
    data: Dict[str, Any],
    item_kind: str = Path(..., pattern="^(books|products)$"),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return vendors.serialize_item(vendors.update_item(db, vendor, _item_type(item_kind), item_id, data))


@router.delete("/{item_kind}/{item_id}")
async def archive_item(
    item_id: str,
    item_kind: str = Path(..., pattern="^(books|products)$"),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    vendors.archive_item(db, vendor, _item_type(item_kind), item_id)
    return {"message": "Item archived"}


@router.patch("/{item_kind}/{item_id}/status")
async def update_item_status(
    item_id: str,
    payload: StatusUpdate,
    item_kind: str = Path(..., pattern="^(books|products)$"),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    item = vendors.set_item_status(db, vendor, _item_type(item_kind), item_id, payload.status)
    return vendors.serialize_item(item)


@router.patch("/{item_kind}/{item_id}/quantity")
async def update_item_quantity(
    item_id: str,
    payload: QuantityUpdate,
    item_kind: str = Path(..., pattern="^(books|products)$"),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    item = vendors.set_item_quantity(db, vendor, _item_type(item_kind), item_id, payload.quantity)
    return vendors.serialize_item(item)


public_router = APIRouter(prefix="/api/vendors", tags=["vendors"])


@public_router.get("")
async def list_public_vendors(
    featured: bool = Query(False),
    db: Session = Depends(get_db),
):
    return {"items": vendors.list_public_vendors(db, featured_only=featured)}


@public_router.get("/{shop_url}")
async def public_vendor_page(shop_url: str, db: Session = Depends(get_db)):
    return vendors.public_vendor_page(db, shop_url)
