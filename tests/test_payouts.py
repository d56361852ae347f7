from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from ageless.config import settings
from ageless.models_sqlalchemy.models import VendorPayout, VendorWithdrawal
from ageless.services import payouts
from ageless.services.errors import (
    ConflictError,
    PaymentFailed,
    PermissionDenied,
    ProviderNotConfigured,
    ValidationFailed,
)


@pytest.fixture
def paypal_vendor(make_vendor):
    return make_vendor(balance_available=Decimal("500.00"), paypal_email="folio@paypal.example.com")


@pytest.fixture
def stripe_vendor(make_vendor):
    return make_vendor(
        balance_available=Decimal("500.00"),
        stripe_account_id="acct_123",
        stripe_account_status="active",
    )


def test_validate_withdrawal_input():
    assert payouts.validate_withdrawal_input("50", "paypal") == []
    assert payouts.validate_withdrawal_input(None, "paypal") == ["Amount is required"]
    assert payouts.validate_withdrawal_input("abc", "paypal") == ["Amount must be a valid number"]
    assert payouts.validate_withdrawal_input("5", "paypal") == ["Minimum withdrawal amount is $10.00"]
    assert payouts.validate_withdrawal_input("200000", "paypal") == ["Maximum withdrawal amount is $100,000.00"]
    assert payouts.validate_withdrawal_input("50", "cheque") == ["Invalid payout method. Must be stripe or paypal"]
    assert payouts.validate_withdrawal_input("50", "paypal", "x" * 1001) == [
        "Vendor notes must be less than 1000 characters"
    ]


def test_validate_withdrawal_for_vendor(make_vendor):
    vendor = make_vendor(balance_available=Decimal("40.00"))
    errors = payouts.validate_withdrawal_for_vendor(vendor, "50", "stripe")
    assert "Insufficient balance. Available: $40.00" in errors
    assert "Stripe Connect account not configured" in errors
    assert payouts.validate_withdrawal_for_vendor(vendor, "20", "paypal") == ["PayPal email not configured"]


def test_validate_paypal_email():
    assert payouts.validate_paypal_email(None) == ["PayPal email is required"]
    assert payouts.validate_paypal_email("not-an-email") == ["Invalid email format"]
    assert payouts.validate_paypal_email("folio@paypal.example.com") == []


async def test_request_withdrawal(db, paypal_vendor):
    withdrawal = await payouts.request_withdrawal(db, paypal_vendor, "120.50", "paypal", "Monthly")
    assert withdrawal.status == "pending"
    assert withdrawal.amount == Decimal("120.50")

    db.refresh(paypal_vendor)
    assert paypal_vendor.balance_available == Decimal("500.00")

    with pytest.raises(ConflictError, match="already have a pending withdrawal"):
        await payouts.request_withdrawal(db, paypal_vendor, "20", "paypal")


async def test_request_withdrawal_rejections(db, make_vendor):
    pending = make_vendor(status="pending", balance_available=Decimal("100.00"))
    with pytest.raises(PermissionDenied):
        await payouts.request_withdrawal(db, pending, "20", "paypal")

    poor = make_vendor(balance_available=Decimal("15.00"), paypal_email="p@paypal.example.com")
    with pytest.raises(ValidationFailed) as exc:
        await payouts.request_withdrawal(db, poor, "50", "paypal")
    assert exc.value.message == "Insufficient balance. Available: $15.00"
    assert exc.value.errors == ["Insufficient balance. Available: $15.00"]


async def test_manual_paypal_payout_holds_then_completes(db, paypal_vendor, make_user):
    admin = make_user(role="admin")
    withdrawal = await payouts.request_withdrawal(db, paypal_vendor, "100", "paypal")

    result = await payouts.process_withdrawal(db, withdrawal, admin.id)

    assert result["manual"] is True
    assert result["transaction_id"] is None
    assert result["withdrawal"].status == "processing"
    db.refresh(paypal_vendor)
    assert paypal_vendor.balance_available == Decimal("400.00")
    assert paypal_vendor.balance_paid == Decimal("0.00")
    payout = db.query(VendorPayout).one()
    assert payout.status == "pending"

    completed = await payouts.complete_withdrawal(db, withdrawal, admin.id, transaction_id="PP-998")
    assert completed.status == "completed"
    db.refresh(paypal_vendor)
    db.refresh(payout)
    assert paypal_vendor.balance_paid == Decimal("100.00")
    assert payout.status == "paid"
    assert payout.transaction_id == "PP-998"


async def test_paypal_api_payout(db, paypal_vendor, make_user):
    batch = {"payout_batch_id": "BATCH-1", "batch_status": "PENDING", "sender_batch_id": "payout_1"}
    withdrawal = await payouts.request_withdrawal(db, paypal_vendor, "100", "paypal")

    with patch.object(settings, "PAYPAL_CLIENT_ID", "client"), \
            patch.object(settings, "PAYPAL_CLIENT_SECRET", "secret"), \
            patch("ageless.services.paypal_client.send_payout", new=AsyncMock(return_value=batch)) as send:
        result = await payouts.process_withdrawal(db, withdrawal, make_user(role="admin").id)

    send.assert_awaited_once()
    assert result["manual"] is False
    assert result["transaction_id"] == "BATCH-1"
    assert result["withdrawal"].status == "completed"
    db.refresh(paypal_vendor)
    assert paypal_vendor.balance_paid == Decimal("100.00")


async def test_stripe_payout(db, stripe_vendor, make_user):
    withdrawal = await payouts.request_withdrawal(db, stripe_vendor, "250", "stripe")

    with patch.object(settings, "STRIPE_SECRET_KEY", "sk_test_123"), \
            patch("ageless.services.stripe_gateway.create_transfer", return_value={"id": "tr_1"}) as transfer:
        result = await payouts.process_withdrawal(db, withdrawal, make_user(role="admin").id)

    assert transfer.call_args[0][:2] == (Decimal("250.00"), "acct_123")
    assert result["transaction_id"] == "tr_1"
    assert result["withdrawal"].status == "completed"
    db.refresh(stripe_vendor)
    assert stripe_vendor.balance_available == Decimal("250.00")
    assert stripe_vendor.balance_paid == Decimal("250.00")


async def test_stripe_payout_failure_marks_withdrawal_failed(db, stripe_vendor, make_user):
    withdrawal = await payouts.request_withdrawal(db, stripe_vendor, "250", "stripe")
    withdrawal_id = withdrawal.id

    with patch.object(settings, "STRIPE_SECRET_KEY", "sk_test_123"), \
            patch("ageless.services.stripe_gateway.create_transfer",
                  side_effect=PaymentFailed("Stripe transfer failed: insufficient funds")):
        with pytest.raises(PaymentFailed):
            await payouts.process_withdrawal(db, withdrawal, make_user(role="admin").id)

    failed = db.query(VendorWithdrawal).filter(VendorWithdrawal.id == withdrawal_id).one()
    assert failed.status == "failed"
    assert "insufficient funds" in failed.rejection_reason
    db.refresh(stripe_vendor)
    assert stripe_vendor.balance_available == Decimal("500.00")


async def test_stripe_payout_without_configuration(db, stripe_vendor, make_user):
    withdrawal = await payouts.request_withdrawal(db, stripe_vendor, "50", "stripe")
    with pytest.raises(ProviderNotConfigured):
        await payouts.process_withdrawal(db, withdrawal, make_user(role="admin").id)


async def test_approve_and_reject(db, paypal_vendor, make_user):
    admin = make_user(role="admin")
    withdrawal = await payouts.request_withdrawal(db, paypal_vendor, "50", "paypal")

    approved = await payouts.approve_withdrawal(db, withdrawal, admin.id, "Looks fine")
    assert approved.status == "approved"
    assert approved.admin_notes == "Looks fine"

    with pytest.raises(ValidationFailed, match="Rejection reason is required"):
        await payouts.reject_withdrawal(db, withdrawal, admin.id, "  ")
    rejected = await payouts.reject_withdrawal(db, withdrawal, admin.id, "Bank details mismatch")
    assert rejected.status == "rejected"

    with pytest.raises(ValidationFailed, match="Cannot approve withdrawal with status: rejected"):
        await payouts.approve_withdrawal(db, withdrawal, admin.id)

    listing = payouts.list_withdrawals(db, vendor_id=paypal_vendor.id)
    assert listing["total"] == 1
    assert listing["items"][0]["rejection_reason"] == "Bank details mismatch"


async def test_refresh_account_status(db, make_vendor):
    vendor = make_vendor(stripe_account_id="acct_9", stripe_account_status="pending")
    details = {"id": "acct_9", "charges_enabled": True, "payouts_enabled": True, "disabled_reason": None}

    with patch("ageless.services.stripe_gateway.retrieve_account", return_value=details):
        status = await payouts.refresh_account_status(db, vendor)

    assert status["connected"] is True
    assert status["status"] == "active"
    assert vendor.stripe_account_status == "active"

    unlinked = make_vendor()
    assert await payouts.refresh_account_status(db, unlinked) == {"connected": False, "status": None}
