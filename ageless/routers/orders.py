from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User
from ageless.services import orders
from ageless.services.auth import get_current_active_user
from ageless.utils.logger import logger, sanitize_payload

router = APIRouter(prefix="/api/orders", tags=["orders"])


class OrderItemRequest(BaseModel):
    book_id: Optional[str] = Field(None, alias="bookId")
    product_id: Optional[str] = Field(None, alias="productId")
    quantity: int = Field(1, ge=1)

    class Config:
        populate_by_name = True


class CreateOrderRequest(BaseModel):
    items: Optional[List[OrderItemRequest]] = None
    payment_method_id: Optional[str] = Field(None, alias="paymentMethodId")
    shipping_address: Optional[Dict[str, Any]] = Field(None, alias="shippingAddress")
    billing_address: Optional[Dict[str, Any]] = Field(None, alias="billingAddress")
    coupon_code: Optional[str] = Field(None, alias="couponCode")
    notes: Optional[str] = None

    class Config:
        populate_by_name = True


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: CreateOrderRequest,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    logger.info(f"Checkout request user={current_user.id} payload={sanitize_payload(payload.model_dump())}")
    items = [i.model_dump() for i in payload.items] if payload.items else None
    order = await orders.create_order(
        db,
        current_user,
        items,
        payload.payment_method_id,
        shipping_address=payload.shipping_address,
        billing_address=payload.billing_address,
        coupon_code=payload.coupon_code,
        notes=payload.notes,
    )
    return orders.serialize_order(order)


@router.get("")
async def list_orders(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return orders.list_user_orders(db, current_user.id, page, limit)


@router.get("/{order_id}")
async def get_order(
    order_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return orders.serialize_order(orders.get_order_for_user(db, order_id, current_user))
