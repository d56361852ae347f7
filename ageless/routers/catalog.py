from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.services import catalog

router = APIRouter(prefix="/api", tags=["catalog"])


@router.get("/books")
async def list_books(
    q: Optional[str] = Query(None, description="Search title or author"),
    category: Optional[str] = Query(None, description="Category slug"),
    vendor_id: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    condition: Optional[str] = Query(None),
    sort: str = Query("newest"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return catalog.list_books(db, q, category, vendor_id, min_price, max_price, condition, sort, page, limit)


@router.get("/books/{key}")
async def get_book(key: str, db: Session = Depends(get_db)):
    """Book detail by id or SID."""
    return catalog.book_detail(db, key)


@router.get("/products")
async def list_products(
    q: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    vendor_id: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    condition: Optional[str] = Query(None),
    sort: str = Query("newest"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return catalog.list_products(db, q, category, vendor_id, min_price, max_price, condition, sort, page, limit)


@router.get("/products/{key}")
async def get_product(key: str, db: Session = Depends(get_db)):
    return catalog.product_detail(db, key)


@router.get("/categories")
async def list_categories(db: Session = Depends(get_db)):
    return {"items": catalog.list_categories(db)}


@router.get("/categories/{slug}")
async def get_category(slug: str, db: Session = Depends(get_db)):
    return catalog.serialize_category(catalog.get_category_by_slug(db, slug))
