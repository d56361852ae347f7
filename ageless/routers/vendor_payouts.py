from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from ageless.models_sqlalchemy import get_db
from ageless.models_sqlalchemy.models import Vendor
from ageless.services import payouts
from ageless.services.auth import vendor_required
from ageless.utils.money import quantize

router = APIRouter(prefix="/api/vendor", tags=["vendor-payouts"])


class WithdrawalRequest(BaseModel):
    amount: Decimal
    method: str
    vendor_notes: Optional[str] = None


class OnboardingLinkRequest(BaseModel):
    return_url: Optional[str] = None
    refresh_url: Optional[str] = None


@router.get("/balance")
async def get_balance(vendor: Vendor = Depends(vendor_required)):
    return {
        "available": float(quantize(vendor.balance_available)),
        "pending": float(quantize(vendor.balance_pending)),
        "paid": float(quantize(vendor.balance_paid)),
        "payout_method": vendor.payout_method,
        "stripe_account_status": vendor.stripe_account_status,
        "paypal_email": vendor.paypal_email,
    }


@router.get("/withdrawals")
async def list_withdrawals(
    status_filter: Optional[str] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    return payouts.list_withdrawals(db, vendor_id=vendor.id, status=status_filter, page=page, limit=limit)


@router.post("/withdrawals", status_code=status.HTTP_201_CREATED)
async def request_withdrawal(
    payload: WithdrawalRequest,
    vendor: Vendor = Depends(vendor_required),
    db: Session = Depends(get_db),
):
    withdrawal = await payouts.request_withdrawal(db, vendor, payload.amount, payload.method, payload.vendor_notes)
    return {"message": "Withdrawal requested", "withdrawal": payouts.serialize_withdrawal(withdrawal)}


@router.post("/stripe/connect")
async def stripe_connect(vendor: Vendor = Depends(vendor_required), db: Session = Depends(get_db)):
    account_id = payouts.connect_account(db, vendor)
    return {"account_id": account_id, "onboarding_url": payouts.onboarding_link(vendor)}


@router.post("/stripe/onboarding-link")
async def stripe_onboarding_link(
    payload: OnboardingLinkRequest,
    vendor: Vendor = Depends(vendor_required),
):
    return {"url": payouts.onboarding_link(vendor, payload.return_url, payload.refresh_url)}


@router.get("/stripe/status")
async def stripe_status(vendor: Vendor = Depends(vendor_required), db: Session = Depends(get_db)):
    return await payouts.refresh_account_status(db, vendor)


@router.get("/stripe/dashboard-link")
async def stripe_dashboard_link(vendor: Vendor = Depends(vendor_required)):
    return {"url": payouts.dashboard_link(vendor)}
