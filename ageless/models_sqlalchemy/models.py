from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Text,
    ForeignKey,
    Boolean,
    Index,
    Numeric,
    JSON,
    Table,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from datetime import datetime
from decimal import Decimal
import enum
import uuid

from . import Base


# JSONB on Postgres, plain JSON elsewhere (SQLite in development/tests).
JSONType = JSON().with_variant(JSONB(), "postgresql")


def _uuid() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    admin = "admin"
    vendor = "vendor"
    customer = "customer"


class UserStatus(str, enum.Enum):
    active = "active"
    inactive = "inactive"
    pending = "pending"
    revoked = "revoked"


class VendorStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"
    active = "active"
    suspended = "suspended"
    archived = "archived"


class BookStatus(str, enum.Enum):
    draft = "draft"
    pending = "pending"
    published = "published"
    sold = "sold"
    archived = "archived"


class ProductStatus(str, enum.Enum):
    draft = "draft"
    active = "active"
    inactive = "inactive"
    sold = "sold"
    archived = "archived"


class AuctionStatus(str, enum.Enum):
    upcoming = "upcoming"
    active = "active"
    ended_sold = "ended_sold"
    ended_no_bids = "ended_no_bids"
    ended_reserve_not_met = "ended_reserve_not_met"
    cancelled = "cancelled"


class BidStatus(str, enum.Enum):
    active = "active"
    winning = "winning"
    outbid = "outbid"
    won = "won"
    lost = "lost"


class OfferStatus(str, enum.Enum):
    pending = "pending"
    accepted = "accepted"
    declined = "declined"
    expired = "expired"
    cancelled = "cancelled"


class WithdrawalStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    processing = "processing"
    completed = "completed"
    rejected = "rejected"
    failed = "failed"


class OrderStatus(str, enum.Enum):
    pending = "pending"
    paid = "paid"
    processing = "processing"
    shipped = "shipped"
    delivered = "delivered"
    completed = "completed"
    cancelled = "cancelled"
    refunded = "refunded"


book_categories = Table(
    "book_categories",
    Base.metadata,
    Column("book_id", String(36), ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", String(36), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)

product_categories = Table(
    "product_categories",
    Base.metadata,
    Column("product_id", String(36), ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
    Column("category_id", String(36), ForeignKey("categories.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=True)
    first_name = Column(String(100), nullable=True)
    last_name = Column(String(100), nullable=True)
    role = Column(String(20), nullable=False, default="customer", index=True)
    status = Column(String(20), nullable=False, default="active", index=True)

    phone_number = Column(String(32), nullable=True)
    email_notifications = Column(Boolean, nullable=False, default=True)
    sms_opt_in = Column(Boolean, nullable=False, default=False)
    preferences = Column(JSONType, nullable=True)
    shipping_address = Column(JSONType, nullable=True)
    billing_address = Column(JSONType, nullable=True)
    default_language = Column(String(10), nullable=True, default="en")
    timezone = Column(String(64), nullable=True)

    stripe_customer_id = Column(String(255), nullable=True)

    # WordPress import: phpass ("$P$"/"$H$") or raw md5 hashes.
    legacy_password_hash = Column(String(255), nullable=True)
    legacy_password_type = Column(String(20), nullable=True)
    password_migrated_at = Column(DateTime, nullable=True)

    last_login_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    vendor = relationship("Vendor", back_populates="user", uselist=False, passive_deletes=True)

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.active


class PasswordResetToken(Base):
    __tablename__ = "password_reset_tokens"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    token_hash = Column(String(64), nullable=False, unique=True)
    expires_at = Column(DateTime, nullable=False)
    used_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Vendor(Base):
    __tablename__ = "vendors"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    shop_name = Column(String(255), nullable=False)
    shop_url = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    website = Column(String(500), nullable=True)
    phone_number = Column(String(32), nullable=True)
    logo_url = Column(String(500), nullable=True)
    banner_url = Column(String(500), nullable=True)
    social_links = Column(JSONType, nullable=True)

    commission_rate = Column(Numeric(5, 4), nullable=False, default=Decimal("0.0800"))
    balance_available = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    balance_pending = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    balance_paid = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    lifetime_gross_sales = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    lifetime_commission = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    lifetime_vendor_earnings = Column(Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_sales = Column(Integer, nullable=False, default=0)

    status = Column(String(20), nullable=False, default="pending", index=True)
    rejection_reason = Column(Text, nullable=True)
    suspension_reason = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(36), nullable=True)
    is_featured = Column(Boolean, nullable=False, default=False)

    stripe_account_id = Column(String(255), nullable=True)
    stripe_account_status = Column(String(20), nullable=True)
    payout_method = Column(String(20), nullable=True)
    paypal_email = Column(String(255), nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User", back_populates="vendor")


class Category(Base):
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(String(255), nullable=False)
    slug = Column(String(255), nullable=False, unique=True, index=True)
    description = Column(Text, nullable=True)
    parent_id = Column(String(36), ForeignKey("categories.id", ondelete="SET NULL"), nullable=True)
    image_url = Column(String(500), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    parent = relationship("Category", remote_side=[id], backref="children")


class Book(Base):
    __tablename__ = "books"

    id = Column(String(36), primary_key=True, default=_uuid)
    sid = Column(String(64), nullable=True, unique=True, index=True)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    author = Column(String(255), nullable=True, index=True)
    isbn = Column(String(32), nullable=True, index=True)
    description = Column(Text, nullable=True)
    short_description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    sale_price = Column(Numeric(10, 2), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    track_quantity = Column(Boolean, nullable=False, default=True)
    condition = Column(String(32), nullable=True)
    category = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default="draft", index=True)
    publisher = Column(String(255), nullable=True)
    publication_year = Column(Integer, nullable=True)
    edition = Column(String(255), nullable=True)
    language = Column(String(64), nullable=True, default="English")
    binding = Column(String(64), nullable=True)
    is_signed = Column(Boolean, nullable=False, default=False)
    weight = Column(Numeric(8, 2), nullable=True)
    keywords = Column(Text, nullable=True)
    wp_post_id = Column(Integer, nullable=True, index=True)
    views = Column(Integer, nullable=False, default=0)
    menu_order = Column(Integer, nullable=False, default=0)
    auction_locked_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    vendor = relationship("Vendor")
    media = relationship(
        "BookMedia",
        back_populates="book",
        cascade="all, delete-orphan",
        order_by="BookMedia.display_order",
    )
    categories = relationship("Category", secondary=book_categories)

    __table_args__ = (
        Index("idx_books_vendor_status", "vendor_id", "status"),
    )


class BookMedia(Base):
    __tablename__ = "book_media"

    id = Column(String(36), primary_key=True, default=_uuid)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    image_url = Column(String(1000), nullable=False)
    thumbnail_url = Column(String(1000), nullable=True)
    display_order = Column(Integer, nullable=False, default=0)
    is_primary = Column(Boolean, nullable=False, default=False)

    book = relationship("Book", back_populates="media")


class Product(Base):
    __tablename__ = "products"

    id = Column(String(36), primary_key=True, default=_uuid)
    sid = Column(String(64), nullable=True, unique=True, index=True)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Numeric(10, 2), nullable=False)
    sale_price = Column(Numeric(10, 2), nullable=True)
    compare_at_price = Column(Numeric(10, 2), nullable=True)
    cost = Column(Numeric(10, 2), nullable=True)
    sku = Column(String(100), nullable=True, index=True)
    quantity = Column(Integer, nullable=False, default=1)
    track_quantity = Column(Boolean, nullable=False, default=True)
    low_stock_threshold = Column(Integer, nullable=False, default=1)
    images = Column(JSONType, nullable=True)
    condition = Column(String(32), nullable=True)
    status = Column(String(20), nullable=False, default="draft", index=True)
    tags = Column(JSONType, nullable=True)
    views = Column(Integer, nullable=False, default=0)
    auction_locked_until = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    vendor = relationship("Vendor")
    categories = relationship("Category", secondary=product_categories)

    __table_args__ = (
        Index("idx_products_vendor_status", "vendor_id", "status"),
    )


class Cart(Base):
    __tablename__ = "carts"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    coupon_code = Column(String(64), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    items = relationship("CartItem", back_populates="cart", cascade="all, delete-orphan")


class CartItem(Base):
    __tablename__ = "cart_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    cart_id = Column(String(36), ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=True)
    quantity = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    cart = relationship("Cart", back_populates="items")
    book = relationship("Book")
    product = relationship("Product")


class WishlistItem(Base):
    __tablename__ = "wishlist_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="CASCADE"), nullable=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="CASCADE"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    book = relationship("Book")
    product = relationship("Product")

    __table_args__ = (
        UniqueConstraint("user_id", "book_id", "product_id", name="uq_wishlist_user_item"),
    )


class Order(Base):
    __tablename__ = "orders"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_number = Column(String(32), nullable=False, unique=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(32), nullable=True, default="stripe")
    stripe_payment_intent_id = Column(String(255), nullable=True)
    subtotal = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    tax = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    shipping_cost = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    discount = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    coupon_id = Column(String(36), ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)
    coupon_code = Column(String(64), nullable=True)
    shipping_address = Column(JSONType, nullable=True)
    billing_address = Column(JSONType, nullable=True)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    user = relationship("User")
    items = relationship("OrderItem", back_populates="order", cascade="all, delete-orphan")


class OrderItem(Base):
    __tablename__ = "order_items"

    id = Column(String(36), primary_key=True, default=_uuid)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="SET NULL"), nullable=True, index=True)
    book_id = Column(String(36), ForeignKey("books.id", ondelete="SET NULL"), nullable=True)
    product_id = Column(String(36), ForeignKey("products.id", ondelete="SET NULL"), nullable=True)
    title = Column(String(500), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)
    fulfillment_status = Column(String(20), nullable=False, default="unfulfilled")
    tracking_number = Column(String(255), nullable=True)
    carrier = Column(String(64), nullable=True)
    shipped_at = Column(DateTime, nullable=True)

    order = relationship("Order", back_populates="items")
    book = relationship("Book")
    product = relationship("Product")


class Coupon(Base):
    __tablename__ = "coupons"

    id = Column(String(36), primary_key=True, default=_uuid)
    code = Column(String(64), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)  # percentage | fixed_amount | free_shipping
    discount_value = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    minimum_order_amount = Column(Numeric(10, 2), nullable=True)
    maximum_discount_amount = Column(Numeric(10, 2), nullable=True)
    usage_limit = Column(Integer, nullable=True)
    usage_count = Column(Integer, nullable=False, default=0)
    per_user_limit = Column(Integer, nullable=True, default=1)
    starts_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    scope = Column(String(20), nullable=False, default="global")  # global | vendor | products | categories
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=True, index=True)
    applies_to = Column(JSONType, nullable=True)
    created_by_type = Column(String(20), nullable=False, default="admin")
    created_by_id = Column(String(36), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)


class CouponRedemption(Base):
    __tablename__ = "coupon_redemptions"

    id = Column(String(36), primary_key=True, default=_uuid)
    coupon_id = Column(String(36), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    discount_amount = Column(Numeric(10, 2), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class Auction(Base):
    __tablename__ = "auctions"

    id = Column(String(36), primary_key=True, default=_uuid)
    auctionable_type = Column(String(20), nullable=False)  # book | product
    auctionable_id = Column(String(36), nullable=False)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    starting_price = Column(Numeric(10, 2), nullable=False)
    reserve_price = Column(Numeric(10, 2), nullable=True)
    current_bid = Column(Numeric(10, 2), nullable=True)
    bid_count = Column(Integer, nullable=False, default=0)
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    status = Column(String(32), nullable=False, default="upcoming", index=True)

    winner_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    winner_bid_id = Column(String(36), nullable=True)
    ended_at = Column(DateTime, nullable=True)
    end_outcome_reason = Column(String(32), nullable=True)
    payment_window_hours = Column(Integer, nullable=False, default=48)
    payment_deadline = Column(DateTime, nullable=True)

    relist_count = Column(Integer, nullable=False, default=0)
    parent_auction_id = Column(String(36), ForeignKey("auctions.id", ondelete="SET NULL"), nullable=True)

    end_policy_on_no_sale = Column(String(32), nullable=False, default="NONE")
    relist_delay_hours = Column(Integer, nullable=True)
    relist_max_count = Column(Integer, nullable=True)
    convert_price_source = Column(String(32), nullable=True)
    convert_price_markup_bps = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    vendor = relationship("Vendor")
    winner = relationship("User")
    bids = relationship("AuctionBid", back_populates="auction", cascade="all, delete-orphan")

    __table_args__ = (
        Index("idx_auctions_item", "auctionable_type", "auctionable_id"),
        Index("idx_auctions_status_end", "status", "end_date"),
    )


class AuctionBid(Base):
    __tablename__ = "auction_bids"

    id = Column(String(36), primary_key=True, default=_uuid)
    auction_id = Column(String(36), ForeignKey("auctions.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    auction = relationship("Auction", back_populates="bids")
    user = relationship("User")


class AuctionWin(Base):
    __tablename__ = "auction_wins"

    id = Column(String(36), primary_key=True, default=_uuid)
    auction_id = Column(String(36), ForeignKey("auctions.id", ondelete="CASCADE"), nullable=False, unique=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    winning_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String(20), nullable=False, default="pending_payment")
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True)
    won_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    paid_at = Column(DateTime, nullable=True)

    auction = relationship("Auction")


class CustomOffer(Base):
    __tablename__ = "custom_offers"

    id = Column(String(36), primary_key=True, default=_uuid)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    item_type = Column(String(20), nullable=False)  # book | product
    item_id = Column(String(36), nullable=False)
    original_price = Column(Numeric(10, 2), nullable=False)
    offer_price = Column(Numeric(10, 2), nullable=False)
    message = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    initiated_by = Column(String(10), nullable=False, default="vendor")
    expires_at = Column(DateTime, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    vendor = relationship("Vendor")
    user = relationship("User")


class VendorEarning(Base):
    __tablename__ = "vendor_earnings"

    id = Column(String(36), primary_key=True, default=_uuid)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    order_id = Column(String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True, index=True)
    order_item_id = Column(String(36), ForeignKey("order_items.id", ondelete="SET NULL"), nullable=True)
    auction_id = Column(String(36), ForeignKey("auctions.id", ondelete="SET NULL"), nullable=True)
    amount = Column(Numeric(10, 2), nullable=False)
    platform_fee = Column(Numeric(10, 2), nullable=False)
    net_amount = Column(Numeric(10, 2), nullable=False)
    commission_rate_bps = Column(Integer, nullable=False)
    transaction_type = Column(String(20), nullable=False)  # book_sale | product_sale | auction_sale
    status = Column(String(20), nullable=False, default="pending", index=True)
    paid_out = Column(Boolean, nullable=False, default=False)
    paid_out_at = Column(DateTime, nullable=True)
    payout_id = Column(String(36), ForeignKey("vendor_payouts.id", ondelete="SET NULL"), nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class VendorPayout(Base):
    __tablename__ = "vendor_payouts"

    id = Column(String(36), primary_key=True, default=_uuid)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(20), nullable=False)  # stripe | paypal
    status = Column(String(20), nullable=False, default="pending")
    transaction_id = Column(String(255), nullable=True)
    account_info = Column(JSONType, nullable=True)
    payout_notes = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    processed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class VendorWithdrawal(Base):
    __tablename__ = "vendor_withdrawals"

    id = Column(String(36), primary_key=True, default=_uuid)
    vendor_id = Column(String(36), ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    method = Column(String(20), nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    vendor_notes = Column(Text, nullable=True)
    admin_notes = Column(Text, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    payout_id = Column(String(36), ForeignKey("vendor_payouts.id", ondelete="SET NULL"), nullable=True)
    requested_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    approved_at = Column(DateTime, nullable=True)
    approved_by = Column(String(36), nullable=True)
    processed_at = Column(DateTime, nullable=True)
    processed_by = Column(String(36), nullable=True)
    completed_at = Column(DateTime, nullable=True)

    vendor = relationship("Vendor")


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=_uuid)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(String(64), nullable=False, index=True)
    title = Column(String(255), nullable=True)
    message = Column(Text, nullable=True)
    data = Column(JSONType, nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    __table_args__ = (
        Index("idx_notifications_user_read", "user_id", "is_read"),
    )
