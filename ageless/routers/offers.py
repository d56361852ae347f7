from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User, Vendor
from ageless.services import offers
from ageless.services.auth import get_current_active_user, vendor_required

router = APIRouter(prefix="/api/offers", tags=["offers"])


class VendorOfferCreate(BaseModel):
    user_id: str = Field(..., alias="userId")
    item_type: str = Field(..., alias="itemType")
    item_id: str = Field(..., alias="itemId")
    offer_price: Decimal = Field(..., alias="offerPrice")
    message: Optional[str] = None
    expires_in_days: Optional[int] = Field(None, alias="expiresInDays", ge=1, le=90)

    class Config:
        populate_by_name = True


class BuyerOfferCreate(BaseModel):
    item_type: str = Field(..., alias="itemType")
    item_id: str = Field(..., alias="itemId")
    offer_price: Decimal = Field(..., alias="offerPrice")
    message: Optional[str] = None

    class Config:
        populate_by_name = True


class OfferResponse(BaseModel):
    action: str  # accept | decline


@router.post("", status_code=status.HTTP_201_CREATED)
async def make_buyer_offer(
    payload: BuyerOfferCreate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    offer = offers.create_buyer_offer(
        db, current_user, payload.item_type, payload.item_id, payload.offer_price, payload.message
    )
    return offers.serialize_offer(offer)


@router.post("/vendor", status_code=status.HTTP_201_CREATED)
async def make_vendor_offer(
    payload: VendorOfferCreate,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    offer = offers.create_vendor_offer(
        db,
        vendor,
        payload.user_id,
        payload.item_type,
        payload.item_id,
        payload.offer_price,
        message=payload.message,
        expires_in_days=payload.expires_in_days,
    )
    return offers.serialize_offer(offer)


@router.get("/vendor")
async def list_vendor_offers(
    status_filter: Optional[str] = Query(None, alias="status"),
    initiated_by: Optional[str] = Query(None, alias="initiatedBy"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return offers.list_vendor_offers(db, vendor.id, status_filter, initiated_by, page, limit)


@router.get("/{offer_id}")
async def get_offer(
    offer_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return offers.offer_detail(db, offer_id, current_user)


@router.post("/{offer_id}/respond")
async def respond_to_offer(
    offer_id: str,
    payload: OfferResponse,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    offer = offers.respond_as_buyer(db, offer_id, current_user, payload.action)
    return offers.serialize_offer(offer)


@router.post("/vendor/{offer_id}/respond")
async def vendor_respond_to_offer(
    offer_id: str,
    payload: OfferResponse,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    offer = offers.respond_as_vendor(db, offer_id, vendor, payload.action)
    return offers.serialize_offer(offer)


@router.post("/vendor/{offer_id}/cancel")
async def cancel_offer(
    offer_id: str,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return offers.serialize_offer(offers.cancel_offer(db, offer_id, vendor))
