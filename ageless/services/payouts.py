"""Vendor withdrawals, payouts and Stripe Connect onboarding.

Withdrawal lifecycle::

    pending -> approved -> processing -> completed
       \\          \\            \\-> failed
        \\-> rejected <-/

A withdrawal request never touches balances; money moves only when an admin
processes it, and the available balance is re-checked at that point.
"""
from __future__ import annotations

import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models_sqlalchemy.models import (
    Vendor,
    VendorEarning,
    VendorPayout,
    VendorWithdrawal,
)
from ageless.services import paypal_client, stripe_gateway
from ageless.services.errors import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    ProviderNotConfigured,
    ValidationFailed,
)
from ageless.services.messaging import send_templated_email
from ageless.utils.logger import logger
from ageless.utils.money import quantize, to_decimal

PAYOUT_METHODS = ("stripe", "paypal")
MIN_WITHDRAWAL = Decimal("10.00")
MAX_WITHDRAWAL = Decimal("100000.00")
MAX_NOTES_LENGTH = 1000
OPEN_WITHDRAWAL_STATUSES = ("pending", "approved", "processing")

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ---- Validation ----


def validate_withdrawal_input(amount: Any, method: Optional[str], vendor_notes: Optional[str] = None) -> List[str]:
    """Shape checks on the request body, independent of the vendor's balances."""
    errors: List[str] = []

    if amount in (None, ""):
        errors.append("Amount is required")
    else:
        try:
            value = to_decimal(amount)
        except (InvalidOperation, ValueError):
            value = None
        if value is None or not value.is_finite():
            errors.append("Amount must be a valid number")
        elif value <= 0:
            errors.append("Amount must be greater than 0")
        elif value < MIN_WITHDRAWAL:
            errors.append(f"Minimum withdrawal amount is ${MIN_WITHDRAWAL}")
        elif value > MAX_WITHDRAWAL:
            errors.append("Maximum withdrawal amount is $100,000.00")

    if not method:
        errors.append("Payout method is required")
    elif method not in PAYOUT_METHODS:
        errors.append("Invalid payout method. Must be stripe or paypal")

    if vendor_notes and len(vendor_notes) > MAX_NOTES_LENGTH:
        errors.append(f"Vendor notes must be less than {MAX_NOTES_LENGTH} characters")

    return errors


def validate_withdrawal_for_vendor(vendor: Vendor, amount: Any, method: str) -> List[str]:
    errors: List[str] = []
    amount = to_decimal(amount)
    available = quantize(vendor.balance_available)

    if amount <= 0:
        errors.append("Amount must be greater than 0")
    if amount > available:
        errors.append(f"Insufficient balance. Available: ${available}")
    if amount < MIN_WITHDRAWAL:
        errors.append(f"Minimum withdrawal amount is ${MIN_WITHDRAWAL}")
    if method not in PAYOUT_METHODS:
        errors.append("Invalid payout method")
    if method == "stripe" and not vendor.stripe_account_id:
        errors.append("Stripe Connect account not configured")
    if method == "stripe" and vendor.stripe_account_status != "active":
        errors.append("Stripe Connect account is not active")
    if method == "paypal" and not vendor.paypal_email:
        errors.append("PayPal email not configured")
    return errors


def validate_paypal_email(email: Optional[str]) -> List[str]:
    if not email:
        return ["PayPal email is required"]
    if not _EMAIL_RE.match(email):
        return ["Invalid email format"]
    return []


def _require_status(withdrawal: VendorWithdrawal, allowed, action: str) -> None:
    if withdrawal.status not in allowed:
        raise ValidationFailed(f"Cannot {action} withdrawal with status: {withdrawal.status}")


def _vendor_email(vendor: Vendor) -> Optional[str]:
    return vendor.user.email if vendor.user else None


def serialize_withdrawal(w: VendorWithdrawal) -> Dict[str, Any]:
    return {
        "id": w.id,
        "vendor_id": w.vendor_id,
        "amount": float(quantize(w.amount)),
        "method": w.method,
        "status": w.status,
        "vendor_notes": w.vendor_notes,
        "admin_notes": w.admin_notes,
        "rejection_reason": w.rejection_reason,
        "payout_id": w.payout_id,
        "requested_at": w.requested_at.isoformat() if w.requested_at else None,
        "approved_at": w.approved_at.isoformat() if w.approved_at else None,
        "processed_at": w.processed_at.isoformat() if w.processed_at else None,
        "completed_at": w.completed_at.isoformat() if w.completed_at else None,
    }


# ---- Vendor side ----


async def request_withdrawal(
    db: Session,
    vendor: Vendor,
    amount: Any,
    method: Optional[str],
    vendor_notes: Optional[str] = None,
) -> VendorWithdrawal:
    if vendor.status not in ("approved", "active"):
        raise PermissionDenied("Vendor account must be approved to request withdrawals")

    errors = validate_withdrawal_input(amount, method, vendor_notes)
    if not errors:
        errors = validate_withdrawal_for_vendor(vendor, amount, method)
    if errors:
        raise ValidationFailed(errors[0], errors)

    open_request = (
        db.query(VendorWithdrawal)
        .filter(
            VendorWithdrawal.vendor_id == vendor.id,
            VendorWithdrawal.status.in_(OPEN_WITHDRAWAL_STATUSES),
        )
        .first()
    )
    if open_request:
        raise ConflictError("You already have a pending withdrawal request")

    withdrawal = VendorWithdrawal(
        vendor_id=vendor.id,
        amount=quantize(amount),
        method=method,
        status="pending",
        vendor_notes=vendor_notes,
        requested_at=datetime.utcnow(),
    )
    db.add(withdrawal)
    db.commit()
    db.refresh(withdrawal)
    logger.info("[payouts] Withdrawal %s requested vendor=%s amount=%s method=%s",
                withdrawal.id, vendor.id, withdrawal.amount, method)

    await send_templated_email(
        "vendor-withdrawal-requested", _vendor_email(vendor), {"amount": quantize(amount)}
    )
    return withdrawal


def list_withdrawals(
    db: Session,
    vendor_id: Optional[str] = None,
    status: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> Dict[str, Any]:
    query = db.query(VendorWithdrawal)
    if vendor_id:
        query = query.filter(VendorWithdrawal.vendor_id == vendor_id)
    if status:
        query = query.filter(VendorWithdrawal.status == status)
    total = query.count()
    rows = query.order_by(VendorWithdrawal.requested_at.desc()).offset((page - 1) * limit).limit(limit).all()
    return {"items": [serialize_withdrawal(w) for w in rows], "total": total, "page": page, "limit": limit}


# ---- Admin side ----


def get_withdrawal(db: Session, withdrawal_id: str) -> VendorWithdrawal:
    withdrawal = db.query(VendorWithdrawal).filter(VendorWithdrawal.id == withdrawal_id).first()
    if withdrawal is None:
        raise NotFoundError("Withdrawal not found")
    return withdrawal


async def approve_withdrawal(
    db: Session, withdrawal: VendorWithdrawal, admin_id: str, admin_notes: Optional[str] = None
) -> VendorWithdrawal:
    _require_status(withdrawal, ("pending",), "approve")
    withdrawal.status = "approved"
    withdrawal.approved_at = datetime.utcnow()
    withdrawal.approved_by = admin_id
    if admin_notes:
        withdrawal.admin_notes = admin_notes
    db.commit()
    db.refresh(withdrawal)
    logger.info("[payouts] Withdrawal %s approved by %s", withdrawal.id, admin_id)
    await send_templated_email(
        "vendor-withdrawal-approved", _vendor_email(withdrawal.vendor), {"amount": quantize(withdrawal.amount)}
    )
    return withdrawal


async def reject_withdrawal(
    db: Session, withdrawal: VendorWithdrawal, admin_id: str, reason: Optional[str]
) -> VendorWithdrawal:
    if not reason or not reason.strip():
        raise ValidationFailed("Rejection reason is required")
    _require_status(withdrawal, ("pending", "approved"), "reject")
    withdrawal.status = "rejected"
    withdrawal.rejection_reason = reason.strip()
    withdrawal.processed_at = datetime.utcnow()
    withdrawal.processed_by = admin_id
    db.commit()
    db.refresh(withdrawal)
    logger.info("[payouts] Withdrawal %s rejected by %s", withdrawal.id, admin_id)
    await send_templated_email(
        "vendor-withdrawal-rejected",
        _vendor_email(withdrawal.vendor),
        {"amount": quantize(withdrawal.amount), "reason": withdrawal.rejection_reason},
    )
    return withdrawal


def _mark_earnings_paid(db: Session, vendor_id: str, payout_id: str) -> int:
    now = datetime.utcnow()
    return (
        db.query(VendorEarning)
        .filter(
            VendorEarning.vendor_id == vendor_id,
            VendorEarning.paid_out.is_(False),
            VendorEarning.status == "completed",
        )
        .update(
            {
                VendorEarning.paid_out: True,
                VendorEarning.paid_out_at: now,
                VendorEarning.payout_id: payout_id,
            },
            synchronize_session=False,
        )
    )


def _move_to_paid(vendor: Vendor, amount: Decimal) -> None:
    vendor.balance_available = quantize(to_decimal(vendor.balance_available) - amount)
    vendor.balance_paid = quantize(to_decimal(vendor.balance_paid) + amount)


def _stripe_payout(db: Session, vendor: Vendor, amount: Decimal) -> Dict[str, Any]:
    if not settings.stripe_configured:
        raise ProviderNotConfigured("Stripe is not configured")
    if not vendor.stripe_account_id:
        raise ValidationFailed("Vendor does not have a Stripe Connect account")
    if vendor.stripe_account_status != "active":
        raise ValidationFailed("Vendor Stripe account is not active")

    transfer = stripe_gateway.create_transfer(
        amount,
        vendor.stripe_account_id,
        metadata={"vendor_id": vendor.id, "shop_name": vendor.shop_name},
    )
    now = datetime.utcnow()
    payout = VendorPayout(
        vendor_id=vendor.id,
        amount=amount,
        method="stripe",
        status="paid",
        transaction_id=transfer["id"],
        processed_at=now,
        payout_notes="Stripe Connect transfer",
        account_info={"stripe_account_id": vendor.stripe_account_id},
    )
    db.add(payout)
    db.flush()
    _move_to_paid(vendor, amount)
    _mark_earnings_paid(db, vendor.id, payout.id)
    return {"payout": payout, "manual": False, "transaction_id": transfer["id"]}


async def _paypal_payout(db: Session, vendor: Vendor, amount: Decimal) -> Dict[str, Any]:
    if not vendor.paypal_email:
        raise ValidationFailed("Vendor does not have a PayPal email configured")

    if not settings.paypal_configured:
        payout = VendorPayout(
            vendor_id=vendor.id,
            amount=amount,
            method="paypal",
            status="pending",
            payout_notes="Manual PayPal payout - requires admin to send payment and mark as paid",
            account_info={"paypal_email": vendor.paypal_email},
        )
        db.add(payout)
        db.flush()
        # Held for the manual payout; balance_paid moves when the admin completes it.
        vendor.balance_available = quantize(to_decimal(vendor.balance_available) - amount)
        return {"payout": payout, "manual": True, "transaction_id": None}

    batch = await paypal_client.send_payout(vendor.paypal_email, amount, vendor.id, vendor.shop_name)
    payout = VendorPayout(
        vendor_id=vendor.id,
        amount=amount,
        method="paypal",
        status="processing",
        transaction_id=batch["payout_batch_id"],
        processed_at=datetime.utcnow(),
        payout_notes="PayPal Payouts API - batch processing",
        account_info={
            "paypal_email": vendor.paypal_email,
            "batch_status": batch["batch_status"],
            "sender_batch_id": batch["sender_batch_id"],
        },
    )
    db.add(payout)
    db.flush()
    _move_to_paid(vendor, amount)
    _mark_earnings_paid(db, vendor.id, payout.id)
    return {"payout": payout, "manual": False, "transaction_id": batch["payout_batch_id"]}


async def process_withdrawal(db: Session, withdrawal: VendorWithdrawal, admin_id: str) -> Dict[str, Any]:
    """Send the money for a pending/approved withdrawal through its payout method."""
    _require_status(withdrawal, ("pending", "approved"), "process")
    withdrawal_id = withdrawal.id

    withdrawal.status = "processing"
    withdrawal.processed_at = datetime.utcnow()
    withdrawal.processed_by = admin_id
    db.commit()

    try:
        vendor = db.query(Vendor).filter(Vendor.id == withdrawal.vendor_id).with_for_update().first()
        if vendor is None:
            raise NotFoundError("Vendor not found")

        amount = quantize(withdrawal.amount)
        available = quantize(vendor.balance_available)
        if amount > available:
            raise ValidationFailed(f"Insufficient balance. Available: ${available}, Requested: ${amount}")

        if withdrawal.method == "stripe":
            result = _stripe_payout(db, vendor, amount)
        elif withdrawal.method == "paypal":
            result = await _paypal_payout(db, vendor, amount)
        else:
            raise ValidationFailed(f"Unsupported payout method: {withdrawal.method}")

        withdrawal.payout_id = result["payout"].id
        if result["manual"]:
            withdrawal.status = "processing"
        else:
            withdrawal.status = "completed"
            withdrawal.completed_at = datetime.utcnow()
        db.commit()
    except Exception as e:
        db.rollback()
        failed = db.query(VendorWithdrawal).filter(VendorWithdrawal.id == withdrawal_id).first()
        if failed is not None:
            failed.status = "failed"
            failed.rejection_reason = str(e)
            db.commit()
            vendor_user = failed.vendor.user if failed.vendor else None
            await send_templated_email(
                "payout-failed",
                vendor_user.email if vendor_user else None,
                {
                    "first_name": vendor_user.first_name if vendor_user else "",
                    "amount": quantize(failed.amount),
                    "reason": str(e),
                },
            )
        logger.error("[payouts] Withdrawal %s failed: %s", withdrawal_id, e)
        raise

    db.refresh(withdrawal)
    logger.info(
        "[payouts] Withdrawal %s processed via %s status=%s manual=%s",
        withdrawal.id, withdrawal.method, withdrawal.status, result["manual"],
    )
    if withdrawal.status == "completed":
        await send_templated_email(
            "vendor-withdrawal-completed", _vendor_email(vendor), {"amount": quantize(withdrawal.amount)}
        )
    return {
        "withdrawal": withdrawal,
        "manual": result["manual"],
        "transaction_id": result["transaction_id"],
    }


async def complete_withdrawal(
    db: Session,
    withdrawal: VendorWithdrawal,
    admin_id: str,
    transaction_id: Optional[str] = None,
    admin_notes: Optional[str] = None,
) -> VendorWithdrawal:
    """Mark a manually paid (processing) withdrawal as completed."""
    _require_status(withdrawal, ("processing",), "complete")
    now = datetime.utcnow()
    amount = quantize(withdrawal.amount)

    payout = None
    if withdrawal.payout_id:
        payout = db.query(VendorPayout).filter(VendorPayout.id == withdrawal.payout_id).first()

    vendor = db.query(Vendor).filter(Vendor.id == withdrawal.vendor_id).with_for_update().first()
    if payout is not None and payout.status != "paid":
        if payout.status == "pending" and vendor is not None:
            # Manual payouts only held the funds; record them as paid now.
            vendor.balance_paid = quantize(to_decimal(vendor.balance_paid) + amount)
        payout.status = "paid"
        payout.processed_at = now
        if transaction_id:
            payout.transaction_id = transaction_id
        _mark_earnings_paid(db, withdrawal.vendor_id, payout.id)

    withdrawal.status = "completed"
    withdrawal.completed_at = now
    withdrawal.processed_by = admin_id
    if admin_notes:
        withdrawal.admin_notes = admin_notes
    db.commit()
    db.refresh(withdrawal)
    logger.info("[payouts] Withdrawal %s completed by %s", withdrawal.id, admin_id)

    if vendor is not None:
        await send_templated_email("vendor-withdrawal-completed", _vendor_email(vendor), {"amount": amount})
    return withdrawal


# ---- Provider callbacks ----


def find_payout(db: Session, method: str, transaction_id: Optional[str]) -> Optional[VendorPayout]:
    if not transaction_id:
        return None
    return (
        db.query(VendorPayout)
        .filter(VendorPayout.method == method, VendorPayout.transaction_id == transaction_id)
        .first()
    )


async def confirm_payout(db: Session, payout: VendorPayout, item_transaction_id: Optional[str] = None) -> bool:
    """Mark a payout the provider reports as delivered. Returns False when nothing changed."""
    if payout.status == "paid":
        return False
    if payout.status in ("failed", "cancelled"):
        logger.warning("[payouts] Ignoring success for payout %s already %s", payout.id, payout.status)
        return False

    now = datetime.utcnow()
    amount = quantize(payout.amount)
    vendor = db.query(Vendor).filter(Vendor.id == payout.vendor_id).with_for_update().first()
    if payout.status == "pending" and vendor is not None:
        vendor.balance_paid = quantize(to_decimal(vendor.balance_paid) + amount)
        _mark_earnings_paid(db, payout.vendor_id, payout.id)
    payout.status = "paid"
    payout.processed_at = now
    if item_transaction_id:
        payout.account_info = {**(payout.account_info or {}), "item_transaction_id": item_transaction_id}

    withdrawal = db.query(VendorWithdrawal).filter(VendorWithdrawal.payout_id == payout.id).first()
    if withdrawal is not None and withdrawal.status != "completed":
        withdrawal.status = "completed"
        withdrawal.completed_at = now
    db.commit()
    logger.info("[payouts] Payout %s confirmed by %s", payout.id, payout.method)

    if vendor is not None:
        await send_templated_email("vendor-payout-completed", _vendor_email(vendor), {"amount": amount})
    return True


async def reverse_payout(db: Session, payout: VendorPayout, reason: str, status: str = "failed") -> bool:
    """Give a rejected payout back to the vendor's available balance.

    Earnings tied to the payout become withdrawable again and the linked
    withdrawal is marked failed. Repeat deliveries are ignored.
    """
    if payout.status in ("failed", "cancelled"):
        logger.info("[payouts] Payout %s already %s", payout.id, payout.status)
        return False

    amount = quantize(payout.amount)
    vendor = db.query(Vendor).filter(Vendor.id == payout.vendor_id).with_for_update().first()
    if vendor is not None:
        if payout.status != "pending":
            vendor.balance_paid = max(quantize(to_decimal(vendor.balance_paid) - amount), Decimal("0.00"))
        vendor.balance_available = quantize(to_decimal(vendor.balance_available) + amount)

    db.query(VendorEarning).filter(VendorEarning.payout_id == payout.id).update(
        {VendorEarning.paid_out: False, VendorEarning.paid_out_at: None, VendorEarning.payout_id: None},
        synchronize_session=False,
    )
    payout.status = status
    payout.failure_reason = reason

    withdrawal = db.query(VendorWithdrawal).filter(VendorWithdrawal.payout_id == payout.id).first()
    if withdrawal is not None:
        withdrawal.status = "failed"
        withdrawal.rejection_reason = reason
    db.commit()
    logger.warning("[payouts] Payout %s %s via %s: %s", payout.id, status, payout.method, reason)

    if vendor is not None:
        user = vendor.user
        await send_templated_email(
            "payout-failed",
            _vendor_email(vendor),
            {"first_name": user.first_name if user else "", "amount": amount, "reason": reason},
        )
    return True


# ---- Stripe Connect ----


def connect_account(db: Session, vendor: Vendor) -> str:
    """Create the vendor's Express account, or return the one already linked."""
    if vendor.stripe_account_id:
        return vendor.stripe_account_id
    email = _vendor_email(vendor)
    account_id = stripe_gateway.create_connect_account(email, vendor.shop_name, vendor.shop_url)
    vendor.stripe_account_id = account_id
    vendor.stripe_account_status = "pending"
    vendor.payout_method = "stripe"
    db.commit()
    logger.info("[payouts] Stripe Connect account %s created for vendor=%s", account_id, vendor.id)
    return account_id


def onboarding_link(vendor: Vendor, return_url: Optional[str] = None, refresh_url: Optional[str] = None) -> str:
    if not vendor.stripe_account_id:
        raise ValidationFailed("No Stripe account found. Create one first.")
    default_url = f"{settings.FRONTEND_URL.rstrip('/')}/vendor/settings/payouts"
    return stripe_gateway.create_onboarding_link(
        vendor.stripe_account_id,
        return_url=return_url or f"{default_url}?stripe=success",
        refresh_url=refresh_url or f"{default_url}?stripe=refresh",
    )


async def refresh_account_status(db: Session, vendor: Vendor) -> Dict[str, Any]:
    if not vendor.stripe_account_id:
        return {"connected": False, "status": None}

    details = stripe_gateway.retrieve_account(vendor.stripe_account_id)
    new_status = await apply_account_status(db, vendor, details)
    return {"connected": True, "status": new_status, **details}


async def apply_account_status(db: Session, vendor: Vendor, details: Dict[str, Any]) -> str:
    """Store the Connect status derived from ``details`` and email the vendor when it changes."""
    new_status = stripe_gateway.account_status_from(details)
    previous = vendor.stripe_account_status
    vendor.stripe_account_status = new_status
    db.commit()

    if new_status != previous:
        logger.info("[payouts] Stripe account %s status %s -> %s", vendor.stripe_account_id, previous, new_status)
        user = vendor.user
        variables = {
            "first_name": user.first_name if user else "",
            "shop_name": vendor.shop_name,
            "reason": details.get("disabled_reason") or "",
        }
        if new_status == "active":
            await send_templated_email("stripe-account-active", _vendor_email(vendor), variables)
        elif new_status == "restricted":
            await send_templated_email("stripe-account-restricted", _vendor_email(vendor), variables)
    return new_status


def dashboard_link(vendor: Vendor) -> str:
    if not vendor.stripe_account_id:
        raise ValidationFailed("No Stripe account found")
    return stripe_gateway.create_login_link(vendor.stripe_account_id)
