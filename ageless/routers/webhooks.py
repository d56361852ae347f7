import json

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ageless.config import settings
from ageless.models_sqlalchemy import get_db
from ageless.services import paypal_client, stripe_gateway, webhooks
from ageless.services.errors import PaymentFailed
from ageless.utils.logger import logger

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Stripe Connect events. The raw body is needed for signature verification."""
    payload = await request.body()
    event = stripe_gateway.construct_webhook_event(payload, request.headers.get("stripe-signature"))

    try:
        await webhooks.handle_stripe_event(db, event)
    except Exception as e:
        db.rollback()
        logger.error(f"Stripe webhook {event.get('type')} processing failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )
    return {"received": True}


@router.post("/paypal")
async def paypal_webhook(request: Request, db: Session = Depends(get_db)):
    try:
        event = json.loads(await request.body())
        if not isinstance(event, dict):
            raise ValueError("webhook body must be a JSON object")
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid webhook payload")

    if settings.PAYPAL_WEBHOOK_ID and settings.paypal_configured:
        try:
            verified = await paypal_client.verify_webhook_signature(request.headers, event)
        except PaymentFailed:
            verified = False
        if not verified:
            logger.warning(f"PayPal webhook signature rejected for event {event.get('id')}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook signature")

    try:
        await webhooks.handle_paypal_event(db, event)
    except Exception as e:
        db.rollback()
        logger.error(f"PayPal webhook {event.get('event_type')} processing failed: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )
    return {"received": True}
