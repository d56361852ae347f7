from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Book, Product, WishlistItem
from ageless.services.catalog import serialize_book, serialize_product
from ageless.services.errors import NotFoundError, ValidationFailed


def _serialize(entry: WishlistItem) -> Dict[str, Any]:
    return {
        "id": entry.id,
        "book_id": entry.book_id,
        "product_id": entry.product_id,
        "created_at": entry.created_at.isoformat() if entry.created_at else None,
        "item": serialize_book(entry.book) if entry.book else (
            serialize_product(entry.product) if entry.product else None
        ),
    }


def list_wishlist(db: Session, user_id: str) -> List[Dict[str, Any]]:
    rows = (
        db.query(WishlistItem)
        .filter(WishlistItem.user_id == user_id)
        .order_by(WishlistItem.created_at.desc())
        .all()
    )
    return [_serialize(e) for e in rows]


def add_to_wishlist(
    db: Session, user_id: str, book_id: Optional[str] = None, product_id: Optional[str] = None
) -> Dict[str, Any]:
    """Adding an item that is already saved returns the existing entry."""
    if bool(book_id) == bool(product_id):
        raise ValidationFailed("Provide exactly one of bookId or productId")
    if book_id and db.query(Book).filter(Book.id == book_id).first() is None:
        raise NotFoundError("Book not found")
    if product_id and db.query(Product).filter(Product.id == product_id).first() is None:
        raise NotFoundError("Product not found")

    query = db.query(WishlistItem).filter(WishlistItem.user_id == user_id)
    if book_id:
        query = query.filter(WishlistItem.book_id == book_id)
    else:
        query = query.filter(WishlistItem.product_id == product_id)
    entry = query.first()
    if entry is None:
        entry = WishlistItem(user_id=user_id, book_id=book_id, product_id=product_id)
        db.add(entry)
        db.commit()
        db.refresh(entry)
    return _serialize(entry)


def remove_from_wishlist(db: Session, user_id: str, entry_id: str) -> None:
    entry = (
        db.query(WishlistItem)
        .filter(WishlistItem.id == entry_id, WishlistItem.user_id == user_id)
        .first()
    )
    if entry is None:
        raise NotFoundError("Wishlist item not found")
    db.delete(entry)
    db.commit()
