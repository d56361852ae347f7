from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User
from ageless.services import cart as cart_service
from ageless.services.auth import get_current_active_user

router = APIRouter(prefix="/api/cart", tags=["cart"])


class AddToCartRequest(BaseModel):
    book_id: Optional[str] = Field(None, alias="bookId")
    product_id: Optional[str] = Field(None, alias="productId")
    quantity: int = 1

    class Config:
        populate_by_name = True


class UpdateCartItemRequest(BaseModel):
    quantity: int


class ApplyCouponRequest(BaseModel):
    code: str


@router.get("")
async def get_cart(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return cart_service.cart_summary(db, current_user.id)


@router.post("/items")
async def add_to_cart(
    payload: AddToCartRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    cart_service.add_item(db, current_user.id, payload.book_id, payload.product_id, payload.quantity)
    return cart_service.cart_summary(db, current_user.id)


@router.put("/items/{item_id}")
async def update_cart_item(
    item_id: str,
    payload: UpdateCartItemRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    cart_service.update_item_quantity(db, current_user.id, item_id, payload.quantity)
    return cart_service.cart_summary(db, current_user.id)


@router.delete("/items/{item_id}")
async def remove_cart_item(
    item_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    cart_service.remove_item(db, current_user.id, item_id)
    return cart_service.cart_summary(db, current_user.id)


@router.delete("")
async def clear_cart(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    cart_service.clear_cart(db, current_user.id)
    return {"message": "Cart cleared"}


@router.post("/coupon")
async def apply_coupon(
    payload: ApplyCouponRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return {"coupon": cart_service.apply_coupon(db, current_user.id, payload.code)}


@router.delete("/coupon")
async def remove_coupon(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    cart_service.remove_coupon(db, current_user.id)
    return {"message": "Coupon removed"}
