"""Stock reservation for books and products.

Callers own the transaction: these helpers only mutate rows and never commit.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Book, Product


@dataclass
class InventoryResult:
    success: bool
    item: Optional[Any] = None
    error: Optional[str] = None


def _reserve(item, quantity: int, unavailable_statuses, label: str) -> InventoryResult:
    if item is None:
        return InventoryResult(False, error=f"{label} not found")
    if quantity < 1:
        return InventoryResult(False, item, "Quantity must be at least 1")

    if not item.track_quantity:
        if item.status in unavailable_statuses:
            return InventoryResult(False, item, f"{label} is no longer available")
        return InventoryResult(True, item)

    available = item.quantity or 0
    if available <= 0:
        return InventoryResult(False, item, "Out of stock")
    if available < quantity:
        return InventoryResult(False, item, f"Only {available} available")

    item.quantity = available - quantity
    if item.quantity == 0:
        item.status = "sold"
    return InventoryResult(True, item)


def _lock(db: Session, model, item_id: str):
    return db.query(model).filter(model.id == item_id).with_for_update().first()


def reserve_book(db: Session, book_id: str, quantity: int = 1) -> InventoryResult:
    return _reserve(_lock(db, Book, book_id), quantity, ("sold", "archived"), "Book")


def reserve_product(db: Session, product_id: str, quantity: int = 1) -> InventoryResult:
    return _reserve(_lock(db, Product, product_id), quantity, ("sold", "archived", "inactive"), "Product")


def _release(item, quantity: int, revived_status: str, label: str) -> InventoryResult:
    if item is None:
        return InventoryResult(False, error=f"{label} not found")
    if item.track_quantity:
        item.quantity = (item.quantity or 0) + quantity
    if item.status == "sold":
        item.status = revived_status
    return InventoryResult(True, item)


def release_book(db: Session, book_id: str, quantity: int = 1) -> InventoryResult:
    return _release(_lock(db, Book, book_id), quantity, "published", "Book")


def release_product(db: Session, product_id: str, quantity: int = 1) -> InventoryResult:
    return _release(_lock(db, Product, product_id), quantity, "active", "Product")
