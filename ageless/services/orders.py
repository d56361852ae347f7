"""Checkout and order lifecycle.

``create_order`` reserves stock, charges the buyer through Stripe and writes
the order in one transaction; commissions and notifications run afterwards
and never undo a paid order.
"""
from __future__ import annotations

import secrets
import string
from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models_sqlalchemy.models import (
    Auction,
    AuctionWin,
    Cart,
    Order,
    OrderItem,
    User,
    Vendor,
)
from ageless.services import coupons, earnings, inventory, notifications, stripe_gateway
from ageless.services.auctions import get_auctionable_item
from ageless.services.errors import (
    CouponInvalid,
    NotFoundError,
    PermissionDenied,
    ValidationFailed,
)
from ageless.services.line_items import LineItem, items_subtotal, line_item_for
from ageless.services.messaging import send_sms, send_templated_email
from ageless.utils.logger import logger
from ageless.utils.money import quantize, to_decimal

ORDER_STATUSES = ("pending", "paid", "processing", "shipped", "delivered", "completed", "cancelled", "refunded")
FULFILLMENT_STATUSES = ("unfulfilled", "processing", "shipped", "delivered")
ORDER_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_order_number(now: Optional[datetime] = None) -> str:
    now = now or datetime.utcnow()
    suffix = "".join(secrets.choice(ORDER_SUFFIX_ALPHABET) for _ in range(6))
    return f"AL-{now.strftime('%Y%m%d')}-{suffix}"


def serialize_order_item(item: OrderItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "vendor_id": item.vendor_id,
        "book_id": item.book_id,
        "product_id": item.product_id,
        "title": item.title,
        "quantity": item.quantity,
        "price": float(quantize(item.price)),
        "subtotal": float(quantize(item.subtotal)),
        "fulfillment_status": item.fulfillment_status,
        "tracking_number": item.tracking_number,
        "carrier": item.carrier,
        "shipped_at": item.shipped_at.isoformat() if item.shipped_at else None,
    }


def serialize_order(order: Order, vendor_id: Optional[str] = None) -> Dict[str, Any]:
    items = order.items if vendor_id is None else [i for i in order.items if i.vendor_id == vendor_id]
    return {
        "id": order.id,
        "order_number": order.order_number,
        "user_id": order.user_id,
        "status": order.status,
        "payment_status": order.payment_status,
        "payment_method": order.payment_method,
        "subtotal": float(quantize(order.subtotal)),
        "tax": float(quantize(order.tax)),
        "shipping_cost": float(quantize(order.shipping_cost)),
        "discount": float(quantize(order.discount)),
        "total": float(quantize(order.total)),
        "coupon_code": order.coupon_code,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "items": [serialize_order_item(i) for i in items],
        "created_at": order.created_at.isoformat() if order.created_at else None,
    }


def _reserve_lines(db: Session, requested: List[Dict[str, Any]]) -> List[LineItem]:
    lines: List[LineItem] = []
    for entry in requested:
        quantity = entry.get("quantity")
        quantity = 1 if quantity is None else int(quantity)
        if quantity < 1:
            raise ValidationFailed("Quantity must be at least 1")
        book_id, product_id = entry.get("book_id"), entry.get("product_id")
        if book_id:
            result = inventory.reserve_book(db, book_id, quantity)
        elif product_id:
            result = inventory.reserve_product(db, product_id, quantity)
        else:
            raise ValidationFailed("Each item needs a bookId or productId")

        if not result.success:
            label = result.item.title if result.item is not None else (book_id or product_id)
            raise ValidationFailed(f"{label}: {result.error}")
        lines.append(line_item_for(result.item, quantity))
    return lines


def _cart_requested_items(cart: Optional[Cart]) -> List[Dict[str, Any]]:
    if cart is None:
        return []
    return [
        {"book_id": e.book_id, "product_id": e.product_id, "quantity": e.quantity}
        for e in cart.items
    ]


def _resolve_coupon(db: Session, code: Optional[str], user: User, lines: List[LineItem], subtotal, shipping):
    if not code:
        return None, Decimal("0.00")
    try:
        coupon = coupons.validate_coupon(db, code, user.id, lines, subtotal)
    except CouponInvalid as exc:
        logger.info("[orders] Coupon %s skipped for user=%s: %s", code, user.id, exc.message)
        return None, Decimal("0.00")
    return coupon, coupons.calculate_discount(coupon, lines, subtotal, shipping)


def _charge(user: User, amount, payment_method_id: str, description: str, metadata: Dict[str, Any]) -> str:
    customer_id = stripe_gateway.ensure_customer(user)
    stripe_gateway.attach_payment_method(payment_method_id, customer_id)
    intent = stripe_gateway.charge(amount, customer_id, payment_method_id, description, metadata)
    return intent["id"]


async def create_order(
    db: Session,
    user: User,
    items: Optional[List[Dict[str, Any]]],
    payment_method_id: Optional[str],
    shipping_address: Optional[Dict[str, Any]] = None,
    billing_address: Optional[Dict[str, Any]] = None,
    coupon_code: Optional[str] = None,
    notes: Optional[str] = None,
) -> Order:
    if not payment_method_id:
        raise ValidationFailed("Payment method is required")

    cart = db.query(Cart).filter(Cart.user_id == user.id).first()
    requested = items or _cart_requested_items(cart)
    if not requested:
        raise ValidationFailed("Order must contain at least one item")

    try:
        lines = _reserve_lines(db, requested)
        subtotal = items_subtotal(lines)
        tax = quantize(subtotal * to_decimal(settings.TAX_RATE))
        shipping = quantize(settings.FLAT_SHIPPING_COST)

        code = coupon_code or (cart.coupon_code if cart else None)
        coupon, discount = _resolve_coupon(db, code, user, lines, subtotal, shipping)
        total = max(quantize(subtotal + tax + shipping - discount), Decimal("0.00"))

        order_number = generate_order_number()
        intent_id = _charge(
            user,
            total,
            payment_method_id,
            f"Ageless Literature order {order_number}",
            {"order_number": order_number, "user_id": user.id},
        )

        order = Order(
            order_number=order_number,
            user_id=user.id,
            status="paid",
            payment_status="completed",
            payment_method="stripe",
            stripe_payment_intent_id=intent_id,
            subtotal=subtotal,
            tax=tax,
            shipping_cost=shipping,
            discount=discount,
            total=total,
            coupon_id=coupon.id if coupon else None,
            coupon_code=coupon.code if coupon else None,
            shipping_address=shipping_address,
            billing_address=billing_address or shipping_address,
            notes=notes,
        )
        db.add(order)
        db.flush()
        for line in lines:
            db.add(
                OrderItem(
                    order_id=order.id,
                    vendor_id=line.vendor_id,
                    book_id=line.book_id,
                    product_id=line.product_id,
                    title=line.title,
                    quantity=line.quantity,
                    price=line.unit_price,
                    subtotal=line.subtotal,
                )
            )

        if coupon is not None:
            coupons.record_redemption(db, coupon, user.id, order.id, discount)
        if cart is not None:
            cart.coupon_code = None
            if not items:
                for entry in list(cart.items):
                    db.delete(entry)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("[orders] Order %s created for user=%s total=%s", order.order_number, user.id, order.total)
    await _after_order(db, order, user)
    return order


async def _after_order(db: Session, order: Order, user: User) -> None:
    try:
        earnings.process_order_commission(db, order)
        db.commit()
    except Exception as exc:
        db.rollback()
        logger.error("[orders] Commission processing failed for %s: %s", order.order_number, exc, exc_info=True)

    try:
        await send_order_notifications(db, order, user)
    except Exception as exc:
        db.rollback()
        logger.error("[orders] Notifications failed for %s: %s", order.order_number, exc, exc_info=True)


async def send_order_notifications(db: Session, order: Order, user: User) -> None:
    order_link = f"{settings.FRONTEND_URL.rstrip('/')}/account/orders/{order.id}"

    marker = notifications.notify_once(
        db,
        user.id,
        "ORDER_CONFIRMATION",
        "Order confirmed",
        f"Your order {order.order_number} has been confirmed.",
        entity_id=order.id,
        data={"orderNumber": order.order_number},
    )
    if marker is not None:
        items_list = "".join(
            f"<li>{i.title} x {i.quantity} - ${quantize(i.subtotal)}</li>" for i in order.items
        )
        await send_templated_email(
            "order_confirmation_buyer",
            user.email,
            {
                "user_name": user.first_name or "Collector",
                "order_number": order.order_number,
                "order_total": quantize(order.total),
                "items_list": items_list,
                "order_link": order_link,
            },
        )
        if user.sms_opt_in and user.phone_number:
            await send_sms(
                user.phone_number,
                f"Ageless Literature: Order {order.order_number} confirmed. Total ${quantize(order.total)}.",
            )

    by_vendor: Dict[str, List[OrderItem]] = defaultdict(list)
    for item in order.items:
        if item.vendor_id:
            by_vendor[item.vendor_id].append(item)

    for vendor_id, vendor_items in by_vendor.items():
        vendor = db.query(Vendor).filter(Vendor.id == vendor_id).first()
        if vendor is None or vendor.user is None:
            continue
        marker = notifications.notify_once(
            db,
            vendor.user_id,
            "ORDER_NEW_VENDOR",
            "New order",
            f"Order {order.order_number} includes {len(vendor_items)} of your item(s).",
            entity_id=order.id,
            vendor_id=vendor.id,
            data={"orderNumber": order.order_number},
        )
        if marker is None:
            continue
        vendor_total = quantize(sum((to_decimal(i.subtotal) for i in vendor_items), Decimal("0")))
        await send_templated_email(
            "order_new_vendor",
            vendor.user.email,
            {
                "vendor_name": vendor.shop_name,
                "order_number": order.order_number,
                "items_list": "".join(f"<li>{i.title} x {i.quantity}</li>" for i in vendor_items),
                "vendor_total": vendor_total,
                "order_link": f"{settings.FRONTEND_URL.rstrip('/')}/vendor/orders/{order.id}",
            },
        )


def list_user_orders(db: Session, user_id: str, page: int = 1, limit: int = 20) -> Dict[str, Any]:
    query = db.query(Order).filter(Order.user_id == user_id)
    total = query.count()
    rows = query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [serialize_order(o) for o in rows], "total": total, "page": page, "limit": limit}


def get_order_for_user(db: Session, order_id: str, user: User) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    if order.user_id != user.id and user.role != "admin":
        raise PermissionDenied("Unauthorized")
    return order


def _release_inventory(db: Session, order: Order) -> None:
    for item in order.items:
        if item.book_id:
            inventory.release_book(db, item.book_id, item.quantity)
        elif item.product_id:
            inventory.release_product(db, item.product_id, item.quantity)


def update_order_status(db: Session, order: Order, status: str) -> Order:
    if status not in ORDER_STATUSES:
        raise ValidationFailed(f"Invalid order status: {status}")

    previous = order.status
    if previous == status:
        return order
    order.status = status

    if status in ("paid", "completed") and previous not in ("paid", "completed"):
        earnings.process_order_commission(db, order)
    if status == "delivered":
        earnings.settle_order_earnings(db, order)
    if status in ("cancelled", "refunded") and previous not in ("cancelled", "refunded"):
        _release_inventory(db, order)
        if status == "refunded":
            order.payment_status = "refunded"

    db.commit()
    db.refresh(order)
    logger.info("[orders] Order %s status %s -> %s", order.order_number, previous, status)
    return order


# ---- Vendor views ----


def list_vendor_orders(
    db: Session, vendor_id: str, status: Optional[str] = None, page: int = 1, limit: int = 20
) -> Dict[str, Any]:
    query = (
        db.query(Order)
        .join(OrderItem, OrderItem.order_id == Order.id)
        .filter(OrderItem.vendor_id == vendor_id)
        .distinct()
    )
    if status:
        query = query.filter(Order.status == status)
    total = query.count()
    rows = query.order_by(Order.created_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {
        "items": [serialize_order(o, vendor_id=vendor_id) for o in rows],
        "total": total,
        "page": page,
        "limit": limit,
    }


def update_fulfillment(
    db: Session,
    vendor: Vendor,
    order_id: str,
    fulfillment_status: str,
    tracking_number: Optional[str] = None,
    carrier: Optional[str] = None,
) -> Order:
    if fulfillment_status not in FULFILLMENT_STATUSES:
        raise ValidationFailed(f"Invalid fulfillment status: {fulfillment_status}")
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    own_items = [i for i in order.items if i.vendor_id == vendor.id]
    if not own_items:
        raise PermissionDenied("This order has no items from your shop")

    now = datetime.utcnow()
    for item in own_items:
        item.fulfillment_status = fulfillment_status
        if tracking_number is not None:
            item.tracking_number = tracking_number
        if carrier is not None:
            item.carrier = carrier
        if fulfillment_status == "shipped" and item.shipped_at is None:
            item.shipped_at = now

    if all(i.fulfillment_status == "shipped" for i in order.items) and order.status in ("paid", "processing"):
        order.status = "shipped"
    db.commit()
    db.refresh(order)

    if fulfillment_status == "shipped" and order.user_id:
        notifications.notify(
            db,
            order.user_id,
            "order_shipped",
            "Your order has shipped",
            f"Items from {vendor.shop_name} in order {order.order_number} have shipped.",
            {"entityId": order.id, "trackingNumber": tracking_number, "carrier": carrier},
        )
    return order


# ---- Auction winnings ----


def serialize_win(db: Session, win: AuctionWin) -> Dict[str, Any]:
    auction = win.auction
    item = get_auctionable_item(db, auction) if auction else None
    return {
        "id": win.id,
        "auction_id": win.auction_id,
        "winning_amount": float(quantize(win.winning_amount)),
        "status": win.status,
        "order_id": win.order_id,
        "won_at": win.won_at.isoformat() if win.won_at else None,
        "paid_at": win.paid_at.isoformat() if win.paid_at else None,
        "payment_deadline": auction.payment_deadline.isoformat() if auction and auction.payment_deadline else None,
        "item": {"id": item.id, "title": item.title} if item else None,
    }


def list_winnings(db: Session, user_id: str) -> List[Dict[str, Any]]:
    wins = db.query(AuctionWin).filter(AuctionWin.user_id == user_id).order_by(AuctionWin.won_at.desc()).all()
    return [serialize_win(db, w) for w in wins]


async def pay_auction_win(
    db: Session,
    user: User,
    win_id: str,
    payment_method_id: Optional[str],
    shipping_address: Optional[Dict[str, Any]] = None,
    now: Optional[datetime] = None,
) -> Order:
    now = now or datetime.utcnow()
    if not payment_method_id:
        raise ValidationFailed("Payment method is required")

    win = db.query(AuctionWin).filter(AuctionWin.id == win_id).with_for_update().first()
    if win is None or win.user_id != user.id:
        raise NotFoundError("Auction win not found")
    if win.status != "pending_payment":
        raise ValidationFailed(f"This win is already {win.status}")

    auction = db.query(Auction).filter(Auction.id == win.auction_id).first()
    if auction.payment_deadline and auction.payment_deadline < now:
        raise ValidationFailed("The payment deadline for this auction has passed")

    item = get_auctionable_item(db, auction)
    if item is None:
        raise NotFoundError("Auction item not found")

    try:
        amount = quantize(win.winning_amount)
        shipping = quantize(settings.FLAT_SHIPPING_COST)
        tax = quantize(amount * to_decimal(settings.TAX_RATE))
        total = quantize(amount + tax + shipping)
        order_number = generate_order_number(now)

        intent_id = _charge(
            user,
            total,
            payment_method_id,
            f"Ageless Literature auction {auction.id}",
            {"order_number": order_number, "auction_id": auction.id, "user_id": user.id},
        )

        order = Order(
            order_number=order_number,
            user_id=user.id,
            status="paid",
            payment_status="completed",
            payment_method="stripe",
            stripe_payment_intent_id=intent_id,
            subtotal=amount,
            tax=tax,
            shipping_cost=shipping,
            discount=Decimal("0.00"),
            total=total,
            shipping_address=shipping_address,
            billing_address=shipping_address,
            notes=f"Auction {auction.id}",
        )
        db.add(order)
        db.flush()
        db.add(
            OrderItem(
                order_id=order.id,
                vendor_id=auction.vendor_id,
                book_id=item.id if auction.auctionable_type == "book" else None,
                product_id=item.id if auction.auctionable_type == "product" else None,
                title=item.title,
                quantity=1,
                price=amount,
                subtotal=amount,
            )
        )

        if item.track_quantity and (item.quantity or 0) > 0:
            item.quantity -= 1
        if not item.track_quantity or item.quantity == 0:
            item.status = "sold"
        item.auction_locked_until = None

        win.status = "paid"
        win.paid_at = now
        win.order_id = order.id
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info("[orders] Auction win %s paid with order %s", win.id, order.order_number)
    try:
        await send_order_notifications(db, order, user)
    except Exception as exc:
        db.rollback()
        logger.error("[orders] Notifications failed for %s: %s", order.order_number, exc, exc_info=True)
    return order
