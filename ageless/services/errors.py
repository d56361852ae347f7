"""Domain exceptions raised by the service layer.

Routers let these propagate; ``ageless.main`` converts them into JSON
responses carrying ``status_code``. Services never raise HTTPException so
they stay usable from background workers.
"""
from __future__ import annotations

from typing import List, Optional


class MarketplaceError(Exception):
    status_code = 400

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        super().__init__(message)
        self.message = message
        self.errors = errors or []


class NotFoundError(MarketplaceError):
    status_code = 404


class ValidationFailed(MarketplaceError):
    status_code = 400


class PermissionDenied(MarketplaceError):
    status_code = 403


class ConflictError(MarketplaceError):
    status_code = 409


class ProviderNotConfigured(MarketplaceError):
    status_code = 503


class PaymentFailed(MarketplaceError):
    status_code = 400


class CouponInvalid(ValidationFailed):
    pass
