"""Thin wrapper over the Stripe SDK for checkout charges and Connect payouts.

Every call checks configuration first and converts ``stripe.error.StripeError``
into ``PaymentFailed`` so callers deal with one exception family.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import stripe

from ageless.config import settings
from ageless.services.errors import PaymentFailed, ProviderNotConfigured, ValidationFailed
from ageless.utils.logger import logger
from ageless.utils.money import to_cents


def _client_ready() -> None:
    if not settings.stripe_configured:
        raise ProviderNotConfigured("Stripe is not configured")
    stripe.api_key = settings.STRIPE_SECRET_KEY


def ensure_customer(user) -> str:
    """Return the user's Stripe customer id, creating the customer on first use."""
    _client_ready()
    if user.stripe_customer_id:
        return user.stripe_customer_id
    try:
        customer = stripe.Customer.create(
            email=user.email,
            name=user.full_name,
            metadata={"user_id": str(user.id)},
        )
    except stripe.error.StripeError as e:
        logger.error("[stripe] Customer.create failed for user=%s: %s", user.id, e)
        raise PaymentFailed(f"Payment provider error: {e.user_message or str(e)}")
    user.stripe_customer_id = customer.id
    return customer.id


def attach_payment_method(payment_method_id: str, customer_id: str) -> None:
    _client_ready()
    try:
        stripe.PaymentMethod.attach(payment_method_id, customer=customer_id)
    except stripe.error.StripeError as e:
        message = str(e)
        if "already been attached" in message or "already attached" in message:
            return
        logger.error("[stripe] PaymentMethod.attach failed pm=%s: %s", payment_method_id, e)
        raise PaymentFailed(f"Payment method could not be used: {e.user_message or message}")


def charge(
    amount,
    customer_id: str,
    payment_method_id: str,
    description: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Create and confirm a PaymentIntent. Raises PaymentFailed unless it succeeded."""
    _client_ready()
    try:
        intent = stripe.PaymentIntent.create(
            amount=to_cents(amount),
            currency="usd",
            customer=customer_id,
            payment_method=payment_method_id,
            confirm=True,
            description=description,
            metadata=metadata or {},
            automatic_payment_methods={"enabled": True, "allow_redirects": "never"},
        )
    except stripe.error.StripeError as e:
        logger.error("[stripe] PaymentIntent.create failed: %s", e)
        raise PaymentFailed(f"Payment failed: {e.user_message or str(e)}")

    if intent.status != "succeeded":
        logger.warning("[stripe] PaymentIntent %s ended in status=%s", intent.id, intent.status)
        raise PaymentFailed(f"Payment not completed (status: {intent.status})")
    return {"id": intent.id, "status": intent.status}


def create_transfer(amount, destination: str, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    _client_ready()
    try:
        transfer = stripe.Transfer.create(
            amount=to_cents(amount),
            currency="usd",
            destination=destination,
            metadata=metadata or {},
        )
    except stripe.error.StripeError as e:
        logger.error("[stripe] Transfer.create to %s failed: %s", destination, e)
        raise PaymentFailed(f"Stripe transfer failed: {e.user_message or str(e)}")
    return {"id": transfer.id}


def create_connect_account(email: str, shop_name: str, shop_url: Optional[str] = None) -> str:
    _client_ready()
    business_profile = {"name": shop_name}
    if shop_url:
        business_profile["url"] = f"{settings.FRONTEND_URL.rstrip('/')}/shop/{shop_url}"
    try:
        account = stripe.Account.create(
            type="express",
            country="US",
            email=email,
            capabilities={"transfers": {"requested": True}},
            business_profile=business_profile,
        )
    except stripe.error.StripeError as e:
        logger.error("[stripe] Account.create failed for %s: %s", email, e)
        raise PaymentFailed(f"Could not create Stripe account: {e.user_message or str(e)}")
    return account.id


def create_onboarding_link(account_id: str, return_url: str, refresh_url: str) -> str:
    _client_ready()
    try:
        link = stripe.AccountLink.create(
            account=account_id,
            refresh_url=refresh_url,
            return_url=return_url,
            type="account_onboarding",
        )
    except stripe.error.StripeError as e:
        logger.error("[stripe] AccountLink.create failed for %s: %s", account_id, e)
        raise PaymentFailed(f"Could not create onboarding link: {e.user_message or str(e)}")
    return link.url


def retrieve_account(account_id: str) -> Dict[str, Any]:
    _client_ready()
    try:
        account = stripe.Account.retrieve(account_id)
    except stripe.error.StripeError as e:
        logger.error("[stripe] Account.retrieve failed for %s: %s", account_id, e)
        raise PaymentFailed(f"Could not load Stripe account: {e.user_message or str(e)}")
    return account_details(account)


def account_details(account) -> Dict[str, Any]:
    """Flatten a Connect account object (or webhook payload) into the fields we track."""
    requirements = account.get("requirements") or {}
    return {
        "id": account.get("id"),
        "charges_enabled": bool(account.get("charges_enabled")),
        "payouts_enabled": bool(account.get("payouts_enabled")),
        "details_submitted": bool(account.get("details_submitted")),
        "disabled_reason": requirements.get("disabled_reason"),
        "currently_due": list(requirements.get("currently_due") or []),
    }


def create_login_link(account_id: str) -> str:
    _client_ready()
    try:
        link = stripe.Account.create_login_link(account_id)
    except stripe.error.StripeError as e:
        logger.error("[stripe] create_login_link failed for %s: %s", account_id, e)
        raise PaymentFailed(f"Could not create dashboard link: {e.user_message or str(e)}")
    return link.url


def account_status_from(details: Dict[str, Any]) -> str:
    if details.get("charges_enabled") and details.get("payouts_enabled"):
        return "active"
    if details.get("disabled_reason"):
        return "restricted"
    return "pending"


def construct_webhook_event(payload: bytes, signature: Optional[str]):
    """Verify a webhook delivery against ``STRIPE_WEBHOOK_SECRET`` and parse it."""
    if not settings.STRIPE_WEBHOOK_SECRET:
        raise ProviderNotConfigured("Stripe webhook secret is not configured")
    try:
        return stripe.Webhook.construct_event(payload, signature or "", settings.STRIPE_WEBHOOK_SECRET)
    except ValueError as e:
        logger.warning("[stripe] Webhook payload could not be parsed: %s", e)
        raise ValidationFailed("Invalid webhook payload")
    except stripe.error.SignatureVerificationError as e:
        logger.warning("[stripe] Webhook signature verification failed: %s", e)
        raise ValidationFailed("Invalid webhook signature")
