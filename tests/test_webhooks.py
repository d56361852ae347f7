import json
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from ageless.config import settings
from ageless.models_sqlalchemy.models import VendorEarning, VendorPayout, VendorWithdrawal
from ageless.services import payouts, webhooks


def _completed_earning(db, vendor, net="100.00"):
    earning = VendorEarning(
        vendor_id=vendor.id,
        amount=Decimal(net),
        platform_fee=Decimal("0.00"),
        net_amount=Decimal(net),
        commission_rate_bps=800,
        transaction_type="book_sale",
        status="completed",
    )
    db.add(earning)
    db.commit()
    return earning


@pytest.fixture
def stripe_payout(db, make_vendor, make_user):
    async def _make():
        vendor = make_vendor(
            balance_available=Decimal("500.00"),
            stripe_account_id="acct_123",
            stripe_account_status="active",
        )
        earning = _completed_earning(db, vendor)
        withdrawal = await payouts.request_withdrawal(db, vendor, "250", "stripe")
        with patch.object(settings, "STRIPE_SECRET_KEY", "sk_test_123"), \
                patch("ageless.services.stripe_gateway.create_transfer", return_value={"id": "tr_1"}):
            await payouts.process_withdrawal(db, withdrawal, make_user(role="admin").id)
        return vendor, withdrawal, earning

    return _make


@pytest.fixture
def paypal_payout(db, make_vendor, make_user):
    async def _make():
        vendor = make_vendor(balance_available=Decimal("500.00"), paypal_email="folio@paypal.example.com")
        withdrawal = await payouts.request_withdrawal(db, vendor, "100", "paypal")
        batch = {"payout_batch_id": "BATCH-1", "batch_status": "PENDING", "sender_batch_id": "payout_1"}
        with patch.object(settings, "PAYPAL_CLIENT_ID", "client"), \
                patch.object(settings, "PAYPAL_CLIENT_SECRET", "secret"), \
                patch("ageless.services.paypal_client.send_payout", new=AsyncMock(return_value=batch)):
            await payouts.process_withdrawal(db, withdrawal, make_user(role="admin").id)
        return vendor, withdrawal

    return _make


def _stripe_event(event_type, obj, **extra):
    return {"id": "evt_1", "type": event_type, "data": {"object": obj}, **extra}


def _paypal_event(event_type, **resource):
    return {"id": "WH-1", "event_type": event_type, "resource": {"payout_batch_id": "BATCH-1", **resource}}


async def test_transfer_failed_restores_balance(db, stripe_payout):
    vendor, withdrawal, earning = await stripe_payout()
    db.refresh(earning)
    assert earning.paid_out is True

    event = _stripe_event("transfer.failed", {"id": "tr_1", "failure_message": "Destination account closed"})
    with patch("ageless.services.payouts.send_templated_email", new=AsyncMock()) as send:
        assert await webhooks.handle_stripe_event(db, event) is True
        await webhooks.handle_stripe_event(db, event)

    payout = db.query(VendorPayout).one()
    assert payout.status == "failed"
    assert payout.failure_reason == "Destination account closed"
    db.refresh(vendor)
    db.refresh(withdrawal)
    db.refresh(earning)
    assert vendor.balance_available == Decimal("500.00")
    assert vendor.balance_paid == Decimal("0.00")
    assert withdrawal.status == "failed"
    assert withdrawal.rejection_reason == "Destination account closed"
    assert earning.paid_out is False
    assert earning.payout_id is None
    send.assert_awaited_once()
    assert send.call_args[0][0] == "payout-failed"


async def test_transfer_created_marks_payout_in_transit(db, stripe_payout):
    await stripe_payout()
    await webhooks.handle_stripe_event(db, _stripe_event("transfer.created", {"id": "tr_1"}))

    payout = db.query(VendorPayout).one()
    assert payout.status == "paid"
    assert payout.account_info["transfer_status"] == "in_transit"
    assert payout.account_info["stripe_account_id"] == "acct_123"


async def test_account_updated_tracks_connect_status(db, make_vendor):
    vendor = make_vendor(stripe_account_id="acct_9", stripe_account_status="pending")
    active = {"id": "acct_9", "charges_enabled": True, "payouts_enabled": True, "requirements": {}}
    restricted = {
        "id": "acct_9",
        "charges_enabled": False,
        "payouts_enabled": False,
        "requirements": {"disabled_reason": "requirements.past_due", "currently_due": ["external_account"]},
    }

    with patch("ageless.services.payouts.send_templated_email", new=AsyncMock()) as send:
        await webhooks.handle_stripe_event(db, _stripe_event("account.updated", active))
        assert vendor.stripe_account_status == "active"
        await webhooks.handle_stripe_event(db, _stripe_event("account.updated", active))
        await webhooks.handle_stripe_event(db, _stripe_event("account.updated", restricted))

    db.refresh(vendor)
    assert vendor.stripe_account_status == "restricted"
    assert [c[0][0] for c in send.call_args_list] == ["stripe-account-active", "stripe-account-restricted"]
    assert send.call_args[0][2]["reason"] == "requirements.past_due"

    unknown = _stripe_event("account.updated", {**active, "id": "acct_unknown"})
    assert await webhooks.handle_stripe_event(db, unknown) is True


async def test_bank_payout_failed_emails_vendor(db, make_vendor):
    make_vendor(stripe_account_id="acct_123", stripe_account_status="active")
    event = _stripe_event(
        "payout.failed",
        {"id": "po_1", "amount": 12550, "failure_message": "The bank account has been closed"},
        account="acct_123",
    )

    with patch("ageless.services.webhooks.send_templated_email", new=AsyncMock()) as send:
        await webhooks.handle_stripe_event(db, event)
        await webhooks.handle_stripe_event(db, {**event, "account": "acct_other"})
        await webhooks.handle_stripe_event(db, _stripe_event("payout.paid", {"id": "po_2", "amount": 500}))

    send.assert_awaited_once()
    template, _, variables = send.call_args[0]
    assert template == "bank-payout-failed"
    assert variables["amount"] == Decimal("125.50")
    assert variables["reason"] == "The bank account has been closed"


async def test_unhandled_stripe_event_is_acknowledged(db):
    assert await webhooks.handle_stripe_event(db, _stripe_event("charge.refunded", {"id": "ch_1"})) is False


async def test_paypal_item_succeeded_then_returned(db, paypal_payout):
    vendor, withdrawal = await paypal_payout()

    with patch("ageless.services.payouts.send_templated_email", new=AsyncMock()) as send:
        await webhooks.handle_paypal_event(
            db, _paypal_event("PAYMENT.PAYOUTS-ITEM.SUCCEEDED", transaction_id="5UX12345")
        )
        payout = db.query(VendorPayout).one()
        assert payout.status == "paid"
        assert payout.account_info["item_transaction_id"] == "5UX12345"
        db.refresh(vendor)
        assert vendor.balance_paid == Decimal("100.00")
        assert vendor.balance_available == Decimal("400.00")

        await webhooks.handle_paypal_event(db, _paypal_event("PAYMENT.PAYOUTS-ITEM.RETURNED"))

    db.refresh(payout)
    db.refresh(vendor)
    db.refresh(withdrawal)
    assert payout.status == "failed"
    assert payout.failure_reason == "Payout returned - invalid account details"
    assert vendor.balance_available == Decimal("500.00")
    assert vendor.balance_paid == Decimal("0.00")
    assert withdrawal.status == "failed"
    assert [c[0][0] for c in send.call_args_list] == ["vendor-payout-completed", "payout-failed"]


async def test_paypal_item_failed_uses_provider_message(db, paypal_payout):
    vendor, withdrawal = await paypal_payout()
    event = _paypal_event(
        "PAYMENT.PAYOUTS-ITEM.FAILED",
        errors={"name": "RECEIVER_UNREGISTERED", "message": "Receiver is unregistered"},
    )

    await webhooks.handle_paypal_event(db, event)
    await webhooks.handle_paypal_event(db, event)

    payout = db.query(VendorPayout).one()
    assert payout.failure_reason == "Receiver is unregistered"
    db.refresh(vendor)
    assert vendor.balance_available == Decimal("500.00")
    assert vendor.balance_paid == Decimal("0.00")
    assert db.query(VendorWithdrawal).one().rejection_reason == "Receiver is unregistered"


@pytest.mark.parametrize(
    "event_type, status, reason",
    [
        ("PAYMENT.PAYOUTS-ITEM.BLOCKED", "failed", "Payout blocked by PayPal compliance"),
        ("PAYMENT.PAYOUTS-ITEM.CANCELED", "cancelled", "Payout cancelled"),
    ],
)
async def test_paypal_item_blocked_or_cancelled(db, paypal_payout, event_type, status, reason):
    vendor, _ = await paypal_payout()
    await webhooks.handle_paypal_event(db, _paypal_event(event_type))

    payout = db.query(VendorPayout).one()
    assert payout.status == status
    assert payout.failure_reason == reason
    db.refresh(vendor)
    assert vendor.balance_available == Decimal("500.00")


async def test_paypal_event_for_unknown_batch(db, paypal_payout):
    await paypal_payout()
    event = {"event_type": "PAYMENT.PAYOUTS-ITEM.FAILED", "resource": {"payout_batch_id": "BATCH-404"}}
    assert await webhooks.handle_paypal_event(db, event) is False
    assert await webhooks.handle_paypal_event(db, {"event_type": "CHECKOUT.ORDER.APPROVED"}) is False
    assert db.query(VendorPayout).one().status == "processing"


def test_stripe_route_rejects_bad_signature(client):
    with patch.object(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test"):
        resp = client.post(
            "/api/webhooks/stripe",
            content=b'{"type": "transfer.failed"}',
            headers={"stripe-signature": "t=1,v1=deadbeef"},
        )
    assert resp.status_code == 400
    assert resp.json()["detail"] == "Invalid webhook signature"

    unconfigured = client.post("/api/webhooks/stripe", content=b"{}")
    assert unconfigured.status_code == 503


def test_stripe_route_dispatches_verified_event(client, db, make_vendor):
    vendor = make_vendor(stripe_account_id="acct_9", stripe_account_status="pending")
    event = _stripe_event("account.updated", {"id": "acct_9", "charges_enabled": True, "payouts_enabled": True})

    with patch.object(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test"), \
            patch("ageless.services.stripe_gateway.stripe.Webhook.construct_event", return_value=event) as construct:
        resp = client.post("/api/webhooks/stripe", content=b"raw-body", headers={"stripe-signature": "sig"})

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    assert construct.call_args[0] == (b"raw-body", "sig", "whsec_test")
    db.refresh(vendor)
    assert vendor.stripe_account_status == "active"


def test_stripe_route_reports_processing_failure(client):
    event = _stripe_event("transfer.failed", {"id": "tr_1"})
    with patch.object(settings, "STRIPE_WEBHOOK_SECRET", "whsec_test"), \
            patch("ageless.services.stripe_gateway.stripe.Webhook.construct_event", return_value=event), \
            patch("ageless.services.webhooks.handle_stripe_event", new=AsyncMock(side_effect=RuntimeError("db down"))):
        resp = client.post("/api/webhooks/stripe", content=b"{}", headers={"stripe-signature": "sig"})
    assert resp.status_code == 500
    assert resp.json()["detail"] == "Webhook processing failed"


def test_paypal_route_verifies_signature(client):
    body = json.dumps(_paypal_event("PAYMENT.PAYOUTS-ITEM.SUCCEEDED"))
    with patch.object(settings, "PAYPAL_CLIENT_ID", "client"), \
            patch.object(settings, "PAYPAL_CLIENT_SECRET", "secret"), \
            patch.object(settings, "PAYPAL_WEBHOOK_ID", "WH-ID"), \
            patch("ageless.services.paypal_client.verify_webhook_signature",
                  new=AsyncMock(return_value=False)) as verify:
        resp = client.post("/api/webhooks/paypal", content=body)

    assert resp.status_code == 401
    verify.assert_awaited_once()
    assert verify.call_args[0][1]["event_type"] == "PAYMENT.PAYOUTS-ITEM.SUCCEEDED"

    assert client.post("/api/webhooks/paypal", content=b"not json").status_code == 400


def test_paypal_route_processes_event(client, db, make_vendor):
    vendor = make_vendor(balance_available=Decimal("0.00"), balance_paid=Decimal("75.00"))
    db.add(VendorPayout(vendor_id=vendor.id, amount=Decimal("75.00"), method="paypal",
                        status="processing", transaction_id="BATCH-1"))
    db.commit()

    with patch("ageless.services.paypal_client.verify_webhook_signature", new=AsyncMock()) as verify:
        resp = client.post("/api/webhooks/paypal", json=_paypal_event("PAYMENT.PAYOUTS-ITEM.CANCELED"))

    assert resp.status_code == 200
    assert resp.json() == {"received": True}
    verify.assert_not_awaited()
    db.refresh(vendor)
    assert vendor.balance_available == Decimal("75.00")
    assert vendor.balance_paid == Decimal("0.00")
    assert db.query(VendorPayout).one().status == "cancelled"
