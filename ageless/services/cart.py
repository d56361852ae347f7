from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Book, Cart, CartItem, Product
from ageless.services import coupons
from ageless.services.auctions import is_item_in_active_auction
from ageless.services.errors import CouponInvalid, NotFoundError, PermissionDenied, ValidationFailed
from ageless.services.line_items import LineItem, effective_price, items_subtotal, line_item_for
from ageless.utils.logger import logger
from ageless.utils.money import quantize


def get_or_create_cart(db: Session, user_id: str) -> Cart:
    cart = db.query(Cart).filter(Cart.user_id == user_id).first()
    if cart is None:
        cart = Cart(user_id=user_id)
        db.add(cart)
        db.commit()
        db.refresh(cart)
    return cart


def cart_line_items(cart: Cart) -> List[LineItem]:
    lines = []
    for entry in cart.items:
        item = entry.book or entry.product
        if item is None:
            continue
        lines.append(line_item_for(item, entry.quantity))
    return lines


def add_item(
    db: Session,
    user_id: str,
    book_id: Optional[str] = None,
    product_id: Optional[str] = None,
    quantity: int = 1,
) -> CartItem:
    if bool(book_id) == bool(product_id):
        raise ValidationFailed("Provide exactly one of bookId or productId")
    if quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")

    if book_id:
        item = db.query(Book).filter(Book.id == book_id).first()
        item_type, unavailable = "book", ("sold", "archived", "draft")
    else:
        item = db.query(Product).filter(Product.id == product_id).first()
        item_type, unavailable = "product", ("sold", "archived", "draft", "inactive")
    if item is None:
        raise NotFoundError(f"{item_type.capitalize()} not found")
    if item.status in unavailable:
        raise ValidationFailed(f"{item.title} is not available")
    if is_item_in_active_auction(db, item_type, item.id):
        raise ValidationFailed("This item is currently in an active auction. Please place a bid instead.")

    cart = get_or_create_cart(db, user_id)
    existing = next(
        (e for e in cart.items if (book_id and e.book_id == book_id) or (product_id and e.product_id == product_id)),
        None,
    )
    if existing is not None:
        existing.quantity += quantity
        entry = existing
    else:
        entry = CartItem(cart_id=cart.id, book_id=book_id, product_id=product_id, quantity=quantity)
        db.add(entry)
    db.commit()
    db.refresh(entry)
    return entry


def _owned_item(db: Session, user_id: str, item_id: str) -> CartItem:
    entry = db.query(CartItem).filter(CartItem.id == item_id).first()
    if entry is None:
        raise NotFoundError("Cart item not found")
    if entry.cart.user_id != user_id:
        raise PermissionDenied("Unauthorized")
    return entry


def update_item_quantity(db: Session, user_id: str, item_id: str, quantity: int) -> CartItem:
    if quantity is None or quantity < 1:
        raise ValidationFailed("Quantity must be at least 1")
    entry = _owned_item(db, user_id, item_id)
    entry.quantity = quantity
    db.commit()
    db.refresh(entry)
    return entry


def remove_item(db: Session, user_id: str, item_id: str) -> None:
    entry = _owned_item(db, user_id, item_id)
    db.delete(entry)
    db.commit()


def clear_cart(db: Session, user_id: str) -> None:
    cart = get_or_create_cart(db, user_id)
    for entry in list(cart.items):
        db.delete(entry)
    cart.coupon_code = None
    db.commit()


def apply_coupon(db: Session, user_id: str, code: str) -> Dict[str, Any]:
    cart = get_or_create_cart(db, user_id)
    lines = cart_line_items(cart)
    subtotal = items_subtotal(lines)
    coupon = coupons.validate_coupon(db, code, user_id, lines, subtotal)
    discount = coupons.calculate_discount(coupon, lines, subtotal)
    cart.coupon_code = coupon.code
    db.commit()
    return coupons.discount_summary(coupon, discount)


def remove_coupon(db: Session, user_id: str) -> None:
    cart = get_or_create_cart(db, user_id)
    cart.coupon_code = None
    db.commit()


def _serialize_entry(entry: CartItem) -> Optional[Dict[str, Any]]:
    item = entry.book or entry.product
    if item is None:
        return None
    price = effective_price(item)
    return {
        "id": entry.id,
        "book_id": entry.book_id,
        "product_id": entry.product_id,
        "title": item.title,
        "vendor_id": item.vendor_id,
        "quantity": entry.quantity,
        "price": float(price),
        "subtotal": float(quantize(price * entry.quantity)),
    }


def cart_summary(db: Session, user_id: str) -> Dict[str, Any]:
    cart = get_or_create_cart(db, user_id)
    lines = cart_line_items(cart)
    subtotal = items_subtotal(lines)

    coupon_info = None
    if cart.coupon_code:
        try:
            coupon = coupons.validate_coupon(db, cart.coupon_code, user_id, lines, subtotal)
            coupon_info = coupons.discount_summary(coupon, coupons.calculate_discount(coupon, lines, subtotal))
        except CouponInvalid as exc:
            logger.info("[cart] Clearing coupon %s for user=%s: %s", cart.coupon_code, user_id, exc.message)
            cart.coupon_code = None
            db.commit()

    items = [s for s in (_serialize_entry(e) for e in cart.items) if s is not None]
    return {
        "id": cart.id,
        "items": items,
        "item_count": sum(i["quantity"] for i in items),
        "subtotal": float(subtotal),
        "coupon": coupon_info,
    }
