"""Stripe and PayPal webhook event handling.

Events arrive already verified; each handler looks up the local payout or
vendor it refers to and logs and ignores events for records we do not know.
"""
from __future__ import annotations

from typing import Any, Dict

from sqlalchemy.orm import Session

from ageless.models_sqlalchemy.models import Vendor
from ageless.services import payouts, stripe_gateway
from ageless.services.messaging import send_templated_email
from ageless.utils.logger import logger
from ageless.utils.money import quantize, to_decimal


# ---- Stripe ----


async def _stripe_account_updated(db: Session, event, account) -> None:
    vendor = db.query(Vendor).filter(Vendor.stripe_account_id == account["id"]).first()
    if vendor is None:
        logger.warning("[webhooks] account.updated for unknown Stripe account %s", account["id"])
        return
    await payouts.apply_account_status(db, vendor, stripe_gateway.account_details(account))


async def _stripe_transfer_created(db: Session, event, transfer) -> None:
    payout = payouts.find_payout(db, "stripe", transfer["id"])
    if payout is None:
        logger.info("[webhooks] transfer.created %s has no matching payout", transfer["id"])
        return
    payout.account_info = {**(payout.account_info or {}), "transfer_status": "in_transit"}
    db.commit()


async def _stripe_transfer_failed(db: Session, event, transfer) -> None:
    payout = payouts.find_payout(db, "stripe", transfer["id"])
    if payout is None:
        logger.warning("[webhooks] transfer.failed %s has no matching payout", transfer["id"])
        return
    reason = transfer.get("failure_message") or "Stripe transfer failed"
    await payouts.reverse_payout(db, payout, reason)


async def _stripe_payout_paid(db: Session, event, bank_payout) -> None:
    logger.info(
        "[webhooks] Stripe bank payout %s paid account=%s amount=%s",
        bank_payout.get("id"), event.get("account"), bank_payout.get("amount"),
    )


async def _stripe_payout_failed(db: Session, event, bank_payout) -> None:
    account_id = event.get("account")
    vendor = db.query(Vendor).filter(Vendor.stripe_account_id == account_id).first() if account_id else None
    if vendor is None:
        logger.warning("[webhooks] payout.failed for unknown Stripe account %s", account_id)
        return

    reason = bank_payout.get("failure_message") or bank_payout.get("failure_code") or "Unknown"
    amount = quantize(to_decimal(bank_payout.get("amount") or 0) / 100)
    logger.warning("[webhooks] Bank payout failed for vendor=%s amount=%s: %s", vendor.id, amount, reason)
    user = vendor.user
    await send_templated_email(
        "bank-payout-failed",
        user.email if user else None,
        {
            "first_name": user.first_name if user else "",
            "shop_name": vendor.shop_name,
            "amount": amount,
            "reason": reason,
        },
    )


STRIPE_HANDLERS = {
    "account.updated": _stripe_account_updated,
    "transfer.created": _stripe_transfer_created,
    "transfer.failed": _stripe_transfer_failed,
    "payout.paid": _stripe_payout_paid,
    "payout.failed": _stripe_payout_failed,
}


async def handle_stripe_event(db: Session, event) -> bool:
    """Dispatch a verified Stripe event. Returns False for event types we do not handle."""
    event_type = event["type"]
    handler = STRIPE_HANDLERS.get(event_type)
    if handler is None:
        logger.info("[webhooks] Unhandled Stripe event type: %s", event_type)
        return False
    logger.info("[webhooks] Stripe event %s (%s)", event.get("id"), event_type)
    await handler(db, event, event["data"]["object"])
    return True


# ---- PayPal ----


def _paypal_error_reason(resource: Dict[str, Any]) -> str:
    errors = resource.get("errors")
    if isinstance(errors, dict):
        errors = [errors]
    messages = [e.get("message") or e.get("name") for e in errors or [] if isinstance(e, dict)]
    messages = [m for m in messages if m]
    return ", ".join(messages) or "PayPal payout failed"


PAYPAL_FAILURES = {
    "PAYMENT.PAYOUTS-ITEM.FAILED": ("failed", None),
    "PAYMENT.PAYOUTS-ITEM.BLOCKED": ("failed", "Payout blocked by PayPal compliance"),
    "PAYMENT.PAYOUTS-ITEM.RETURNED": ("failed", "Payout returned - invalid account details"),
    "PAYMENT.PAYOUTS-ITEM.CANCELED": ("cancelled", "Payout cancelled"),
}


async def handle_paypal_event(db: Session, event: Dict[str, Any]) -> bool:
    """Apply a Payouts item event to the batch it belongs to."""
    event_type = event.get("event_type")
    if event_type != "PAYMENT.PAYOUTS-ITEM.SUCCEEDED" and event_type not in PAYPAL_FAILURES:
        logger.info("[webhooks] Unhandled PayPal event type: %s", event_type)
        return False

    resource = event.get("resource") or {}
    batch_id = resource.get("payout_batch_id")
    payout = payouts.find_payout(db, "paypal", batch_id)
    if payout is None:
        logger.warning("[webhooks] %s for unknown PayPal batch %s", event_type, batch_id)
        return False

    logger.info("[webhooks] PayPal event %s batch=%s payout=%s", event_type, batch_id, payout.id)
    if event_type == "PAYMENT.PAYOUTS-ITEM.SUCCEEDED":
        await payouts.confirm_payout(db, payout, resource.get("transaction_id"))
        return True

    status, reason = PAYPAL_FAILURES[event_type]
    await payouts.reverse_payout(db, payout, reason or _paypal_error_reason(resource), status=status)
    return True
