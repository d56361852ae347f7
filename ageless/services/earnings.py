"""Vendor commission bookkeeping.

Order sales land in ``balance_pending`` and move to ``balance_available``
when the order is delivered; auction sales are credited as available
immediately. Helpers flush but never commit.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models_sqlalchemy.models import Auction, AuctionWin, Order, Vendor, VendorEarning
from ageless.utils.logger import logger
from ageless.utils.money import quantize, to_decimal


def commission_rate_for(vendor: Vendor) -> Decimal:
    rate = to_decimal(vendor.commission_rate) if vendor.commission_rate is not None else Decimal("0")
    if rate <= 0:
        rate = to_decimal(settings.DEFAULT_COMMISSION_RATE)
    return rate


def split_amount(gross, rate: Decimal):
    """Return (platform_fee, net) for a gross sale amount."""
    gross = quantize(gross)
    fee = quantize(gross * rate)
    return fee, quantize(gross - fee)


def _credit_lifetime(vendor: Vendor, gross: Decimal, fee: Decimal, net: Decimal) -> None:
    vendor.lifetime_gross_sales = quantize(to_decimal(vendor.lifetime_gross_sales) + gross)
    vendor.lifetime_commission = quantize(to_decimal(vendor.lifetime_commission) + fee)
    vendor.lifetime_vendor_earnings = quantize(to_decimal(vendor.lifetime_vendor_earnings) + net)
    vendor.total_sales = (vendor.total_sales or 0) + 1


def process_order_commission(db: Session, order: Order) -> List[VendorEarning]:
    """Create one pending earning per vendor line.

    A second call for the same order is a no-op, as is any call for an order
    that pays an auction win.
    """
    existing = db.query(VendorEarning).filter(VendorEarning.order_id == order.id).count()
    if existing:
        logger.info("[earnings] Commission already processed for order=%s", order.order_number)
        return []
    if db.query(AuctionWin).filter(AuctionWin.order_id == order.id).first() is not None:
        # commission was booked when the auction closed
        logger.info("[earnings] Order %s settles an auction win; no order commission", order.order_number)
        return []

    created: List[VendorEarning] = []
    for item in order.items:
        if not item.vendor_id:
            continue
        vendor = db.query(Vendor).filter(Vendor.id == item.vendor_id).with_for_update().first()
        if vendor is None:
            continue

        rate = commission_rate_for(vendor)
        gross = quantize(item.subtotal)
        fee, net = split_amount(gross, rate)

        earning = VendorEarning(
            vendor_id=vendor.id,
            order_id=order.id,
            order_item_id=item.id,
            amount=gross,
            platform_fee=fee,
            net_amount=net,
            commission_rate_bps=int((rate * 10000).to_integral_value()),
            transaction_type="product_sale" if item.product_id else "book_sale",
            status="pending",
        )
        db.add(earning)
        created.append(earning)

        vendor.balance_pending = quantize(to_decimal(vendor.balance_pending) + net)
        _credit_lifetime(vendor, gross, fee, net)

    db.flush()
    logger.info("[earnings] Order %s commission recorded for %s line(s)", order.order_number, len(created))
    return created


def settle_order_earnings(db: Session, order: Order) -> int:
    """Move pending earnings of a delivered order into the vendors' available balance."""
    earnings = (
        db.query(VendorEarning)
        .filter(VendorEarning.order_id == order.id, VendorEarning.status == "pending")
        .all()
    )
    now = datetime.utcnow()
    for earning in earnings:
        vendor = db.query(Vendor).filter(Vendor.id == earning.vendor_id).with_for_update().first()
        if vendor is None:
            continue
        net = quantize(earning.net_amount)
        vendor.balance_pending = max(quantize(to_decimal(vendor.balance_pending) - net), Decimal("0.00"))
        vendor.balance_available = quantize(to_decimal(vendor.balance_available) + net)
        earning.status = "completed"
        earning.completed_at = now
    db.flush()
    if earnings:
        logger.info("[earnings] Settled %s earning(s) for order %s", len(earnings), order.order_number)
    return len(earnings)


def process_auction_commission(db: Session, auction: Auction, amount) -> Optional[VendorEarning]:
    vendor = db.query(Vendor).filter(Vendor.id == auction.vendor_id).with_for_update().first()
    if vendor is None:
        logger.warning("[earnings] Vendor %s missing for auction %s", auction.vendor_id, auction.id)
        return None

    rate = commission_rate_for(vendor)
    gross = quantize(amount)
    fee, net = split_amount(gross, rate)

    earning = VendorEarning(
        vendor_id=vendor.id,
        auction_id=auction.id,
        amount=gross,
        platform_fee=fee,
        net_amount=net,
        commission_rate_bps=int((rate * 10000).to_integral_value()),
        transaction_type="auction_sale",
        status="pending",
    )
    db.add(earning)

    vendor.balance_available = quantize(to_decimal(vendor.balance_available) + net)
    _credit_lifetime(vendor, gross, fee, net)
    db.flush()
    logger.info("[earnings] Auction %s commission: gross=%s fee=%s net=%s", auction.id, gross, fee, net)
    return earning
