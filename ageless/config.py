from pydantic_settings import BaseSettings
from typing import List, Optional
import os
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    SECRET_KEY: str = "your-secret-key-change-in-production"
    JWT_SECRET: Optional[str] = None
    ALGORITHM: str = "HS256"
    # Storefront sessions are long-lived; vendors keep dashboards open all day.
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7
    DEBUG: bool = False

    @property
    def secret_key(self) -> str:
        return self.JWT_SECRET or self.SECRET_KEY

    # DATABASE_URL must be provided via environment (Postgres in production).
    DATABASE_URL: str = os.getenv("DATABASE_URL", "")

    ALLOWED_ORIGINS: str = "http://localhost:3000"
    FRONTEND_URL: str = "http://localhost:3000"

    # Stripe (checkout + Connect payouts). When missing, payment and payout
    # endpoints answer 503 instead of failing with a generic 500.
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    # PayPal Payouts API. Without credentials PayPal withdrawals fall back to
    # manual processing by an admin.
    PAYPAL_CLIENT_ID: Optional[str] = None
    PAYPAL_CLIENT_SECRET: Optional[str] = None
    PAYPAL_MODE: str = "sandbox"  # "sandbox" or "live"
    # Webhook signatures are only checked with PayPal when this is set.
    PAYPAL_WEBHOOK_ID: Optional[str] = None

    SENDGRID_API_KEY: Optional[str] = None
    SENDGRID_FROM_EMAIL: str = "noreply@agelessliterature.com"
    SENDGRID_FROM_NAME: str = "Ageless Literature"
    ADMIN_NOTIFICATION_EMAIL: Optional[str] = None

    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_FROM_NUMBER: Optional[str] = None

    # Import staging store. Falls back to process memory when unset or unreachable.
    REDIS_URL: Optional[str] = None

    # Accounts imported from the old WordPress shop may sign in with their
    # phpass/MD5 hashes until the cutoff date (YYYY-MM-DD, inclusive).
    AUTH_LEGACY_WP_ENABLED: bool = False
    AUTH_LEGACY_WP_CUTOFF_DATE: Optional[str] = None

    DEFAULT_COMMISSION_RATE: float = 0.08
    TAX_RATE: float = 0.08
    FLAT_SHIPPING_COST: float = 10.00

    AUCTION_STATUS_INTERVAL_SEC: int = 60
    START_BACKGROUND_WORKERS: bool = True

    class Config:
        env_file = None
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def origins(self) -> List[str]:
        items = [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]
        if self.FRONTEND_URL and self.FRONTEND_URL not in items:
            items.append(self.FRONTEND_URL)
        return items

    @property
    def stripe_configured(self) -> bool:
        return bool(self.STRIPE_SECRET_KEY)

    @property
    def paypal_configured(self) -> bool:
        return bool(self.PAYPAL_CLIENT_ID and self.PAYPAL_CLIENT_SECRET)

    @property
    def paypal_base_url(self) -> str:
        if self.PAYPAL_MODE == "live":
            return "https://api-m.paypal.com"
        return "https://api-m.sandbox.paypal.com"

    @property
    def email_enabled(self) -> bool:
        return bool(self.SENDGRID_API_KEY)

    @property
    def sms_enabled(self) -> bool:
        return bool(self.TWILIO_ACCOUNT_SID and self.TWILIO_AUTH_TOKEN and self.TWILIO_FROM_NUMBER)


if not os.getenv("DATABASE_URL"):
    raise RuntimeError("DATABASE_URL is required.")

settings = Settings()
