from __future__ import annotations

import time
from typing import Any, Dict

import httpx

from ageless.config import settings
from ageless.services.errors import PaymentFailed, ProviderNotConfigured
from ageless.utils.logger import logger
from ageless.utils.money import quantize


async def get_access_token() -> str:
    if not settings.paypal_configured:
        raise ProviderNotConfigured("PayPal credentials not configured")

    url = f"{settings.paypal_base_url}/v1/oauth2/token"
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=5.0)) as client:
            resp = await client.post(
                url,
                data={"grant_type": "client_credentials"},
                auth=(settings.PAYPAL_CLIENT_ID, settings.PAYPAL_CLIENT_SECRET),
                headers={"Accept": "application/json"},
            )
    except httpx.RequestError as exc:
        logger.error("[paypal] OAuth request error: %s", exc)
        raise PaymentFailed("Failed to get PayPal access token")

    if resp.status_code != 200:
        logger.error("[paypal] OAuth failed status=%s body=%s", resp.status_code, resp.text)
        raise PaymentFailed("Failed to get PayPal access token")
    return resp.json()["access_token"]


async def send_payout(receiver_email: str, amount, vendor_id: str, shop_name: str) -> Dict[str, Any]:
    """Submit a single-item Payouts batch. Returns the batch header."""
    token = await get_access_token()
    stamp = int(time.time() * 1000)
    batch = {
        "sender_batch_header": {
            "sender_batch_id": f"payout_{stamp}_{vendor_id}",
            "email_subject": "You have a payout from Ageless Literature",
            "email_message": "Your earnings payout has been processed.",
        },
        "items": [
            {
                "recipient_type": "EMAIL",
                "amount": {"value": f"{quantize(amount)}", "currency": "USD"},
                "receiver": receiver_email,
                "note": f"Vendor earnings payout for {shop_name}",
                "sender_item_id": f"{vendor_id}_{stamp}",
            }
        ],
    }

    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(30.0, connect=5.0)) as client:
            resp = await client.post(
                f"{settings.paypal_base_url}/v1/payments/payouts",
                json=batch,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            )
    except httpx.RequestError as exc:
        logger.error("[paypal] Payout request error vendor=%s: %s", vendor_id, exc)
        raise PaymentFailed("PayPal payout failed")

    data = resp.json() if resp.content else {}
    if resp.status_code >= 400:
        logger.error("[paypal] Payout rejected vendor=%s status=%s body=%s", vendor_id, resp.status_code, data)
        raise PaymentFailed(data.get("message") or "PayPal payout failed")

    header = data.get("batch_header") or {}
    logger.info(
        "[paypal] Payout batch %s submitted vendor=%s status=%s",
        header.get("payout_batch_id"),
        vendor_id,
        header.get("batch_status"),
    )
    return {
        "payout_batch_id": header.get("payout_batch_id"),
        "batch_status": header.get("batch_status"),
        "sender_batch_id": batch["sender_batch_header"]["sender_batch_id"],
    }


async def verify_webhook_signature(headers, event: Dict[str, Any]) -> bool:
    """Ask PayPal whether a webhook delivery was signed for ``PAYPAL_WEBHOOK_ID``."""
    token = await get_access_token()
    body = {
        "auth_algo": headers.get("paypal-auth-algo"),
        "cert_url": headers.get("paypal-cert-url"),
        "transmission_id": headers.get("paypal-transmission-id"),
        "transmission_sig": headers.get("paypal-transmission-sig"),
        "transmission_time": headers.get("paypal-transmission-time"),
        "webhook_id": settings.PAYPAL_WEBHOOK_ID,
        "webhook_event": event,
    }
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(20.0, connect=5.0)) as client:
            resp = await client.post(
                f"{settings.paypal_base_url}/v1/notifications/verify-webhook-signature",
                json=body,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
            )
    except httpx.RequestError as exc:
        logger.error("[paypal] Webhook verification request error: %s", exc)
        return False

    if resp.status_code != 200:
        logger.error("[paypal] Webhook verification failed status=%s body=%s", resp.status_code, resp.text)
        return False
    return resp.json().get("verification_status") == "SUCCESS"
