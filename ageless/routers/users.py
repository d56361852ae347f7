from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ageless.models.user import ProfileUpdate, UserResponse
from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User
from ageless.services import auctions, offers, orders
from ageless.services.auth import get_current_active_user
from ageless.utils.phone import is_valid_phone, normalize_phone

router = APIRouter(prefix="/api", tags=["users"])


class PayWinRequest(BaseModel):
    payment_method_id: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None


@router.get("/users/me", response_model=UserResponse)
async def get_profile(current_user: User = Depends(get_current_active_user)):
    return current_user


@router.patch("/users/me", response_model=UserResponse)
async def update_profile(
    payload: ProfileUpdate,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    updates = payload.model_dump(exclude_unset=True)
    if updates.get("phone_number"):
        if not is_valid_phone(updates["phone_number"]):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid phone number. Use international format, e.g. +15551234567",
            )
        updates["phone_number"] = normalize_phone(updates["phone_number"])

    for field, value in updates.items():
        setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return current_user


@router.get("/user/bids")
async def my_bids(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return auctions.list_user_bids(db, current_user.id, status_filter, page, limit)


@router.get("/user/active-bids")
async def my_active_bids(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return {"items": auctions.list_user_active_bids(db, current_user.id)}


@router.get("/user/winnings")
async def my_winnings(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return {"items": orders.list_winnings(db, current_user.id)}


@router.post("/user/winnings/{win_id}/pay")
async def pay_winning(
    win_id: str,
    payload: PayWinRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    order = await orders.pay_auction_win(
        db, current_user, win_id, payload.payment_method_id, payload.shipping_address
    )
    return {"message": "Payment successful", "order": orders.serialize_order(order)}


@router.get("/user/offers")
async def my_offers(
    include_all: bool = Query(False),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return {"items": offers.list_user_offers(db, current_user.id, include_all)}
