from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import User
from ageless.services import wishlist
from ageless.services.auth import get_current_active_user

router = APIRouter(prefix="/api/wishlist", tags=["wishlist"])


class WishlistAdd(BaseModel):
    book_id: Optional[str] = Field(None, alias="bookId")
    product_id: Optional[str] = Field(None, alias="productId")

    class Config:
        populate_by_name = True


@router.get("")
async def get_wishlist(
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return {"items": wishlist.list_wishlist(db, current_user.id)}


@router.post("")
async def add_to_wishlist(
    payload: WishlistAdd,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    return wishlist.add_to_wishlist(db, current_user.id, payload.book_id, payload.product_id)


@router.delete("/{entry_id}")
async def remove_from_wishlist(
    entry_id: str,
    current_user: User = Depends(get_current_active_user),
    db: Session = Depends(get_db),
):
    wishlist.remove_from_wishlist(db, current_user.id, entry_id)
    return {"message": "Removed from wishlist"}
