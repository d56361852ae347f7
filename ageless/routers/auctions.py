from datetime import datetime
from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User, Vendor
from ageless.services import auctions
from ageless.services.auth import get_current_active_user, vendor_required

router = APIRouter(prefix="/api/auctions", tags=["auctions"])


class CreateAuctionRequest(BaseModel):
    auctionable_type: str = Field(..., alias="auctionableType")
    auctionable_id: str = Field(..., alias="auctionableId")
    starting_price: Decimal = Field(..., alias="startingPrice")
    reserve_price: Optional[Decimal] = Field(None, alias="reservePrice")
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: datetime = Field(..., alias="endDate")
    payment_window_hours: int = Field(48, alias="paymentWindowHours", ge=1)
    end_policy_on_no_sale: str = Field("NONE", alias="endPolicyOnNoSale")
    relist_delay_hours: Optional[int] = Field(None, alias="relistDelayHours")
    relist_max_count: Optional[int] = Field(None, alias="relistMaxCount")
    convert_price_source: Optional[str] = Field(None, alias="convertPriceSource")
    convert_price_markup_bps: Optional[int] = Field(None, alias="convertPriceMarkupBps")

    class Config:
        populate_by_name = True


class EndPolicyUpdate(BaseModel):
    end_policy_on_no_sale: Optional[str] = None
    relist_delay_hours: Optional[int] = None
    relist_max_count: Optional[int] = None
    convert_price_source: Optional[str] = None
    convert_price_markup_bps: Optional[int] = None


class BidRequest(BaseModel):
    amount: Decimal
    sms_opt_in: bool = Field(False, alias="smsOptIn")
    phone_number: Optional[str] = Field(None, alias="phoneNumber")

    class Config:
        populate_by_name = True


class RelistRequest(BaseModel):
    starting_price: Optional[Decimal] = None
    reserve_price: Optional[Decimal] = None
    duration_days: int = 7


class ConvertRequest(BaseModel):
    price: Optional[Decimal] = None


def _owner_context(db: Session, user: User):
    vendor = db.query(Vendor).filter(Vendor.user_id == user.id).first()
    return vendor, user


@router.get("")
async def list_auctions(
    status_filter: str = Query("active", alias="status"),
    auctionable_type: Optional[str] = Query(None, alias="type"),
    vendor_id: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return auctions.list_auctions(db, status_filter, auctionable_type, vendor_id, page, limit)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_auction(
    payload: CreateAuctionRequest,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    auction = auctions.create_auction(
        db,
        vendor,
        payload.auctionable_type,
        payload.auctionable_id,
        payload.starting_price,
        payload.end_date,
        start_date=payload.start_date,
        reserve_price=payload.reserve_price,
        payment_window_hours=payload.payment_window_hours,
        end_policy_on_no_sale=payload.end_policy_on_no_sale,
        relist_delay_hours=payload.relist_delay_hours,
        relist_max_count=payload.relist_max_count,
        convert_price_source=payload.convert_price_source,
        convert_price_markup_bps=payload.convert_price_markup_bps,
    )
    return auctions.serialize_auction(auction, auctions.get_auctionable_item(db, auction))


@router.get("/{auction_id}")
async def get_auction(auction_id: str, db: Session = Depends(get_db)):
    return auctions.auction_detail(db, auction_id)


@router.get("/{auction_id}/bids")
async def get_auction_bids(
    auction_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    auctions.get_auction(db, auction_id)
    return auctions.list_auction_bids(db, auction_id, page, limit)


@router.post("/{auction_id}/bids", status_code=status.HTTP_201_CREATED)
async def place_bid(
    auction_id: str,
    payload: BidRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    bid = await auctions.place_bid(
        db,
        auction_id,
        current_user,
        payload.amount,
        sms_opt_in=payload.sms_opt_in,
        phone_number=payload.phone_number,
    )
    auction = auctions.get_auction(db, auction_id)
    return {
        "message": "Bid placed successfully",
        "bid": auctions.serialize_bid(bid, include_user=False),
        "auction": auctions.serialize_auction(auction),
    }


@router.patch("/{auction_id}/end-policy")
async def update_end_policy(
    auction_id: str,
    payload: EndPolicyUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    vendor, user = _owner_context(db, current_user)
    auction = auctions.get_auction(db, auction_id)
    auction = auctions.update_end_policy(db, auction, vendor, user, payload.model_dump(exclude_unset=True))
    return auctions.serialize_auction(auction)


@router.post("/{auction_id}/cancel")
async def cancel_auction(
    auction_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    vendor, user = _owner_context(db, current_user)
    auction = auctions.cancel_auction(db, auctions.get_auction(db, auction_id), vendor, user)
    return auctions.serialize_auction(auction)


@router.post("/{auction_id}/relist", status_code=status.HTTP_201_CREATED)
async def relist_auction(
    auction_id: str,
    payload: RelistRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    vendor, user = _owner_context(db, current_user)
    relisted = auctions.relist_auction(
        db,
        auctions.get_auction(db, auction_id),
        vendor,
        user,
        starting_price=payload.starting_price,
        reserve_price=payload.reserve_price,
        duration_days=payload.duration_days,
    )
    return {"message": "Auction relisted", "auction": auctions.serialize_auction(relisted)}


@router.post("/{auction_id}/convert-to-fixed")
async def convert_to_fixed(
    auction_id: str,
    payload: ConvertRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    vendor, user = _owner_context(db, current_user)
    result = auctions.convert_to_fixed(db, auctions.get_auction(db, auction_id), vendor, user, payload.price)
    return {"message": "Item converted to fixed price", **result}


@router.post("/{auction_id}/unlist")
async def unlist_auction(
    auction_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    vendor, user = _owner_context(db, current_user)
    result = auctions.unlist_auction(db, auctions.get_auction(db, auction_id), vendor, user)
    return {"message": "Item unlisted", **result}
