"""Public catalog queries and category management."""
from __future__ import annotations

import re
import secrets
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import (
    Book,
    Category,
    Product,
    Vendor,
    book_categories,
    product_categories,
)
from ageless.services.errors import ConflictError, NotFoundError, ValidationFailed
from ageless.services.line_items import effective_price
from ageless.utils.money import quantize

MAX_PAGE_SIZE = 100
RELATED_LIMIT = 8
SORTS = ("newest", "price_asc", "price_desc", "title")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", (value or "").lower()).strip("-")
    return slug or "item"


def generate_sid(prefix: str) -> str:
    return f"{prefix}-{secrets.token_hex(4).upper()}"


def _money(value) -> Optional[float]:
    return float(quantize(value)) if value is not None else None


def serialize_book(book: Book, detail: bool = False) -> Dict[str, Any]:
    media = sorted(book.media or [], key=lambda m: m.display_order or 0)
    data = {
        "id": book.id,
        "sid": book.sid,
        "vendor_id": book.vendor_id,
        "title": book.title,
        "author": book.author,
        "isbn": book.isbn,
        "price": _money(book.price),
        "sale_price": _money(book.sale_price),
        "effective_price": float(effective_price(book)),
        "quantity": book.quantity,
        "condition": book.condition,
        "category": book.category,
        "status": book.status,
        "is_signed": bool(book.is_signed),
        "image_url": media[0].image_url if media else None,
        "created_at": book.created_at.isoformat() if book.created_at else None,
    }
    if detail:
        data.update(
            {
                "description": book.description,
                "short_description": book.short_description,
                "publisher": book.publisher,
                "publication_year": book.publication_year,
                "edition": book.edition,
                "language": book.language,
                "binding": book.binding,
                "weight": _money(book.weight),
                "views": book.views,
                "auction_locked_until": book.auction_locked_until.isoformat() if book.auction_locked_until else None,
                "media": [
                    {
                        "id": m.id,
                        "image_url": m.image_url,
                        "thumbnail_url": m.thumbnail_url,
                        "display_order": m.display_order,
                        "is_primary": bool(m.is_primary),
                    }
                    for m in media
                ],
                "categories": [{"id": c.id, "name": c.name, "slug": c.slug} for c in book.categories],
                "vendor": _vendor_brief(book.vendor),
            }
        )
    return data


def serialize_product(product: Product, detail: bool = False) -> Dict[str, Any]:
    images = product.images or []
    data = {
        "id": product.id,
        "sid": product.sid,
        "vendor_id": product.vendor_id,
        "title": product.title,
        "price": _money(product.price),
        "sale_price": _money(product.sale_price),
        "effective_price": float(effective_price(product)),
        "quantity": product.quantity,
        "condition": product.condition,
        "status": product.status,
        "image_url": images[0] if images else None,
        "created_at": product.created_at.isoformat() if product.created_at else None,
    }
    if detail:
        data.update(
            {
                "description": product.description,
                "compare_at_price": _money(product.compare_at_price),
                "sku": product.sku,
                "images": images,
                "tags": product.tags or [],
                "views": product.views,
                "low_stock_threshold": product.low_stock_threshold,
                "categories": [{"id": c.id, "name": c.name, "slug": c.slug} for c in product.categories],
                "vendor": _vendor_brief(product.vendor),
            }
        )
    return data


def _vendor_brief(vendor: Optional[Vendor]) -> Optional[Dict[str, Any]]:
    if vendor is None:
        return None
    return {"id": vendor.id, "shop_name": vendor.shop_name, "shop_url": vendor.shop_url, "logo_url": vendor.logo_url}


def _paginate(query, page: int, limit: int):
    page = max(page or 1, 1)
    limit = min(max(limit or 20, 1), MAX_PAGE_SIZE)
    total = query.count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, {"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit}


def _apply_sort(query, model, sort: Optional[str]):
    if sort == "price_asc":
        return query.order_by(model.price.asc())
    if sort == "price_desc":
        return query.order_by(model.price.desc())
    if sort == "title":
        return query.order_by(model.title.asc())
    return query.order_by(model.created_at.desc())


def list_books(
    db: Session,
    q: Optional[str] = None,
    category: Optional[str] = None,
    vendor_id: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    condition: Optional[str] = None,
    sort: Optional[str] = "newest",
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(Book).filter(Book.status == "published")
    if q:
        like = f"%{q}%"
        query = query.filter(or_(Book.title.ilike(like), Book.author.ilike(like)))
    if category:
        query = query.join(book_categories, book_categories.c.book_id == Book.id).join(
            Category, Category.id == book_categories.c.category_id
        ).filter(Category.slug == category)
    if vendor_id:
        query = query.filter(Book.vendor_id == vendor_id)
    if min_price is not None:
        query = query.filter(Book.price >= min_price)
    if max_price is not None:
        query = query.filter(Book.price <= max_price)
    if condition:
        query = query.filter(Book.condition == condition)

    rows, pagination = _paginate(_apply_sort(query, Book, sort), page, limit)
    return {"items": [serialize_book(b) for b in rows], "pagination": pagination}


def list_products(
    db: Session,
    q: Optional[str] = None,
    category: Optional[str] = None,
    vendor_id: Optional[str] = None,
    min_price: Optional[float] = None,
    max_price: Optional[float] = None,
    condition: Optional[str] = None,
    sort: Optional[str] = "newest",
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(Product).filter(Product.status == "active")
    if q:
        query = query.filter(Product.title.ilike(f"%{q}%"))
    if category:
        query = query.join(product_categories, product_categories.c.product_id == Product.id).join(
            Category, Category.id == product_categories.c.category_id
        ).filter(Category.slug == category)
    if vendor_id:
        query = query.filter(Product.vendor_id == vendor_id)
    if min_price is not None:
        query = query.filter(Product.price >= min_price)
    if max_price is not None:
        query = query.filter(Product.price <= max_price)
    if condition:
        query = query.filter(Product.condition == condition)

    rows, pagination = _paginate(_apply_sort(query, Product, sort), page, limit)
    return {"items": [serialize_product(p) for p in rows], "pagination": pagination}


def _by_id_or_sid(db: Session, model, key: str):
    return db.query(model).filter(or_(model.id == key, model.sid == key)).first()


def _related(db: Session, model, item, visible_status: str) -> List[Union[Book, Product]]:
    category_ids = [c.id for c in item.categories]
    query = db.query(model).filter(model.id != item.id, model.status == visible_status)
    if category_ids:
        query = query.filter(
            or_(model.vendor_id == item.vendor_id, model.categories.any(Category.id.in_(category_ids)))
        )
    else:
        query = query.filter(model.vendor_id == item.vendor_id)
    return query.order_by(model.created_at.desc()).limit(RELATED_LIMIT).all()


def book_detail(db: Session, key: str) -> Dict[str, Any]:
    book = _by_id_or_sid(db, Book, key)
    if book is None or book.status in ("draft", "archived"):
        raise NotFoundError("Book not found")
    book.views = (book.views or 0) + 1
    db.commit()
    data = serialize_book(book, detail=True)
    data["related"] = [serialize_book(b) for b in _related(db, Book, book, "published")]
    return data


def product_detail(db: Session, key: str) -> Dict[str, Any]:
    product = _by_id_or_sid(db, Product, key)
    if product is None or product.status in ("draft", "archived"):
        raise NotFoundError("Product not found")
    product.views = (product.views or 0) + 1
    db.commit()
    data = serialize_product(product, detail=True)
    data["related"] = [serialize_product(p) for p in _related(db, Product, product, "active")]
    return data


# ---- Categories ----


def serialize_category(category: Category, counts: Optional[Dict[str, int]] = None) -> Dict[str, Any]:
    data = {
        "id": category.id,
        "name": category.name,
        "slug": category.slug,
        "description": category.description,
        "parent_id": category.parent_id,
        "image_url": category.image_url,
    }
    if counts is not None:
        data["item_count"] = counts.get(category.id, 0)
    return data


def list_categories(db: Session) -> List[Dict[str, Any]]:
    counts: Dict[str, int] = {}
    book_rows = (
        db.query(book_categories.c.category_id, func.count())
        .join(Book, Book.id == book_categories.c.book_id)
        .filter(Book.status == "published")
        .group_by(book_categories.c.category_id)
        .all()
    )
    product_rows = (
        db.query(product_categories.c.category_id, func.count())
        .join(Product, Product.id == product_categories.c.product_id)
        .filter(Product.status == "active")
        .group_by(product_categories.c.category_id)
        .all()
    )
    for category_id, count in list(book_rows) + list(product_rows):
        counts[category_id] = counts.get(category_id, 0) + count

    categories = db.query(Category).order_by(Category.name.asc()).all()
    return [serialize_category(c, counts) for c in categories]


def get_category_by_slug(db: Session, slug: str) -> Category:
    category = db.query(Category).filter(Category.slug == slug).first()
    if category is None:
        raise NotFoundError("Category not found")
    return category


def _unique_slug(db: Session, name: str, exclude_id: Optional[str] = None) -> str:
    slug = slugify(name)
    query = db.query(Category).filter(Category.slug == slug)
    if exclude_id:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise ConflictError(f"A category with slug '{slug}' already exists")
    return slug


def create_category(
    db: Session,
    name: str,
    description: Optional[str] = None,
    parent_id: Optional[str] = None,
    image_url: Optional[str] = None,
) -> Category:
    if not name or not name.strip():
        raise ValidationFailed("Category name is required")
    if parent_id and db.query(Category).filter(Category.id == parent_id).first() is None:
        raise NotFoundError("Parent category not found")
    category = Category(
        name=name.strip(),
        slug=_unique_slug(db, name),
        description=description,
        parent_id=parent_id,
        image_url=image_url,
    )
    db.add(category)
    db.commit()
    db.refresh(category)
    return category


def update_category(db: Session, category_id: str, updates: Dict[str, Any]) -> Category:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFoundError("Category not found")

    if updates.get("name"):
        category.name = updates["name"].strip()
        category.slug = _unique_slug(db, updates["name"], exclude_id=category.id)
    if "parent_id" in updates:
        parent_id = updates["parent_id"]
        if parent_id == category.id:
            raise ValidationFailed("A category cannot be its own parent")
        if parent_id and db.query(Category).filter(Category.id == parent_id).first() is None:
            raise NotFoundError("Parent category not found")
        category.parent_id = parent_id
    for field in ("description", "image_url"):
        if field in updates:
            setattr(category, field, updates[field])
    db.commit()
    db.refresh(category)
    return category


def delete_category(db: Session, category_id: str) -> None:
    category = db.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise NotFoundError("Category not found")
    if db.query(Category).filter(Category.parent_id == category.id).count():
        raise ValidationFailed("Cannot delete a category that has subcategories")
    db.delete(category)
    db.commit()
