"""initial marketplace schema

Revision ID: marketplace_001
Revises:
Create Date: 2026-03-01

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = 'marketplace_001'
down_revision = None
branch_labels = None
depends_on = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def _id():
    return sa.Column('id', sa.String(36), primary_key=True)


def _timestamps(updated=True):
    cols = [sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now())]
    if updated:
        cols.append(sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()))
    return cols


def upgrade():
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()
    if 'users' in existing_tables:
        # Database was bootstrapped with metadata.create_all; nothing to do.
        return

    op.create_table(
        'users',
        _id(),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=True),
        sa.Column('first_name', sa.String(100), nullable=True),
        sa.Column('last_name', sa.String(100), nullable=True),
        sa.Column('role', sa.String(20), nullable=False, server_default='customer'),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('phone_number', sa.String(32), nullable=True),
        sa.Column('email_notifications', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('sms_opt_in', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('preferences', JSONType, nullable=True),
        sa.Column('shipping_address', JSONType, nullable=True),
        sa.Column('billing_address', JSONType, nullable=True),
        sa.Column('default_language', sa.String(10), nullable=True),
        sa.Column('timezone', sa.String(64), nullable=True),
        sa.Column('stripe_customer_id', sa.String(255), nullable=True),
        sa.Column('legacy_password_hash', sa.String(255), nullable=True),
        sa.Column('legacy_password_type', sa.String(20), nullable=True),
        sa.Column('password_migrated_at', sa.DateTime(), nullable=True),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)
    op.create_index('ix_users_role', 'users', ['role'])
    op.create_index('ix_users_status', 'users', ['status'])

    op.create_table(
        'password_reset_tokens',
        _id(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('token_hash', sa.String(64), nullable=False, unique=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('used_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_password_reset_tokens_user_id', 'password_reset_tokens', ['user_id'])

    op.create_table(
        'vendors',
        _id(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('shop_name', sa.String(255), nullable=False),
        sa.Column('shop_url', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('website', sa.String(500), nullable=True),
        sa.Column('phone_number', sa.String(32), nullable=True),
        sa.Column('logo_url', sa.String(500), nullable=True),
        sa.Column('banner_url', sa.String(500), nullable=True),
        sa.Column('social_links', JSONType, nullable=True),
        sa.Column('commission_rate', sa.Numeric(5, 4), nullable=False, server_default='0.0800'),
        sa.Column('balance_available', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('balance_pending', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('balance_paid', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('lifetime_gross_sales', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('lifetime_commission', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('lifetime_vendor_earnings', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_sales', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('suspension_reason', sa.Text(), nullable=True),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(36), nullable=True),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('stripe_account_id', sa.String(255), nullable=True),
        sa.Column('stripe_account_status', sa.String(20), nullable=True),
        sa.Column('payout_method', sa.String(20), nullable=True),
        sa.Column('paypal_email', sa.String(255), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_vendors_shop_url', 'vendors', ['shop_url'], unique=True)
    op.create_index('ix_vendors_status', 'vendors', ['status'])

    op.create_table(
        'categories',
        _id(),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('slug', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.String(36), sa.ForeignKey('categories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('image_url', sa.String(500), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_categories_slug', 'categories', ['slug'], unique=True)

    op.create_table(
        'books',
        _id(),
        sa.Column('sid', sa.String(64), nullable=True),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('author', sa.String(255), nullable=True),
        sa.Column('isbn', sa.String(32), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('short_description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('sale_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('track_quantity', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('condition', sa.String(32), nullable=True),
        sa.Column('category', sa.String(255), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('publisher', sa.String(255), nullable=True),
        sa.Column('publication_year', sa.Integer(), nullable=True),
        sa.Column('edition', sa.String(255), nullable=True),
        sa.Column('language', sa.String(64), nullable=True),
        sa.Column('binding', sa.String(64), nullable=True),
        sa.Column('is_signed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('weight', sa.Numeric(8, 2), nullable=True),
        sa.Column('keywords', sa.Text(), nullable=True),
        sa.Column('wp_post_id', sa.Integer(), nullable=True),
        sa.Column('views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('menu_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auction_locked_until', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_books_sid', 'books', ['sid'], unique=True)
    op.create_index('ix_books_vendor_id', 'books', ['vendor_id'])
    op.create_index('ix_books_author', 'books', ['author'])
    op.create_index('ix_books_isbn', 'books', ['isbn'])
    op.create_index('ix_books_status', 'books', ['status'])
    op.create_index('ix_books_wp_post_id', 'books', ['wp_post_id'])
    op.create_index('idx_books_vendor_status', 'books', ['vendor_id', 'status'])

    op.create_table(
        'book_media',
        _id(),
        sa.Column('book_id', sa.String(36), sa.ForeignKey('books.id', ondelete='CASCADE'), nullable=False),
        sa.Column('image_url', sa.String(1000), nullable=False),
        sa.Column('thumbnail_url', sa.String(1000), nullable=True),
        sa.Column('display_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_primary', sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index('ix_book_media_book_id', 'book_media', ['book_id'])

    op.create_table(
        'products',
        _id(),
        sa.Column('sid', sa.String(64), nullable=True),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('sale_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('compare_at_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('cost', sa.Numeric(10, 2), nullable=True),
        sa.Column('sku', sa.String(100), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('track_quantity', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('low_stock_threshold', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('images', JSONType, nullable=True),
        sa.Column('condition', sa.String(32), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='draft'),
        sa.Column('tags', JSONType, nullable=True),
        sa.Column('views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('auction_locked_until', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_products_sid', 'products', ['sid'], unique=True)
    op.create_index('ix_products_vendor_id', 'products', ['vendor_id'])
    op.create_index('ix_products_sku', 'products', ['sku'])
    op.create_index('ix_products_status', 'products', ['status'])
    op.create_index('idx_products_vendor_status', 'products', ['vendor_id', 'status'])

    op.create_table(
        'book_categories',
        sa.Column('book_id', sa.String(36), sa.ForeignKey('books.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('category_id', sa.String(36), sa.ForeignKey('categories.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_table(
        'product_categories',
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('category_id', sa.String(36), sa.ForeignKey('categories.id', ondelete='CASCADE'), primary_key=True),
    )

    op.create_table(
        'carts',
        _id(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('coupon_code', sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_table(
        'cart_items',
        _id(),
        sa.Column('cart_id', sa.String(36), sa.ForeignKey('carts.id', ondelete='CASCADE'), nullable=False),
        sa.Column('book_id', sa.String(36), sa.ForeignKey('books.id', ondelete='CASCADE'), nullable=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(updated=False),
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])

    op.create_table(
        'wishlist_items',
        _id(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('book_id', sa.String(36), sa.ForeignKey('books.id', ondelete='CASCADE'), nullable=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='CASCADE'), nullable=True),
        *_timestamps(updated=False),
        sa.UniqueConstraint('user_id', 'book_id', 'product_id', name='uq_wishlist_user_item'),
    )
    op.create_index('ix_wishlist_items_user_id', 'wishlist_items', ['user_id'])

    op.create_table(
        'coupons',
        _id(),
        sa.Column('code', sa.String(64), nullable=False),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('discount_type', sa.String(20), nullable=False),
        sa.Column('discount_value', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('minimum_order_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('maximum_discount_amount', sa.Numeric(10, 2), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('per_user_limit', sa.Integer(), nullable=True, server_default='1'),
        sa.Column('starts_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('scope', sa.String(20), nullable=False, server_default='global'),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=True),
        sa.Column('applies_to', JSONType, nullable=True),
        sa.Column('created_by_type', sa.String(20), nullable=False, server_default='admin'),
        sa.Column('created_by_id', sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_coupons_code', 'coupons', ['code'], unique=True)
    op.create_index('ix_coupons_vendor_id', 'coupons', ['vendor_id'])

    op.create_table(
        'orders',
        _id(),
        sa.Column('order_number', sa.String(32), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(32), nullable=True),
        sa.Column('stripe_payment_intent_id', sa.String(255), nullable=True),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('tax', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('shipping_cost', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(10, 2), nullable=False, server_default='0'),
        sa.Column('coupon_id', sa.String(36), sa.ForeignKey('coupons.id', ondelete='SET NULL'), nullable=True),
        sa.Column('coupon_code', sa.String(64), nullable=True),
        sa.Column('shipping_address', JSONType, nullable=True),
        sa.Column('billing_address', JSONType, nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_created_at', 'orders', ['created_at'])

    op.create_table(
        'order_items',
        _id(),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='SET NULL'), nullable=True),
        sa.Column('book_id', sa.String(36), sa.ForeignKey('books.id', ondelete='SET NULL'), nullable=True),
        sa.Column('product_id', sa.String(36), sa.ForeignKey('products.id', ondelete='SET NULL'), nullable=True),
        sa.Column('title', sa.String(500), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('subtotal', sa.Numeric(10, 2), nullable=False),
        sa.Column('fulfillment_status', sa.String(20), nullable=False, server_default='unfulfilled'),
        sa.Column('tracking_number', sa.String(255), nullable=True),
        sa.Column('carrier', sa.String(64), nullable=True),
        sa.Column('shipped_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_vendor_id', 'order_items', ['vendor_id'])

    op.create_table(
        'coupon_redemptions',
        _id(),
        sa.Column('coupon_id', sa.String(36), sa.ForeignKey('coupons.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('discount_amount', sa.Numeric(10, 2), nullable=False),
        *_timestamps(updated=False),
    )
    op.create_index('ix_coupon_redemptions_coupon_id', 'coupon_redemptions', ['coupon_id'])
    op.create_index('ix_coupon_redemptions_user_id', 'coupon_redemptions', ['user_id'])

    op.create_table(
        'auctions',
        _id(),
        sa.Column('auctionable_type', sa.String(20), nullable=False),
        sa.Column('auctionable_id', sa.String(36), nullable=False),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('starting_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('reserve_price', sa.Numeric(10, 2), nullable=True),
        sa.Column('current_bid', sa.Numeric(10, 2), nullable=True),
        sa.Column('bid_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('start_date', sa.DateTime(), nullable=False),
        sa.Column('end_date', sa.DateTime(), nullable=False),
        sa.Column('status', sa.String(32), nullable=False, server_default='upcoming'),
        sa.Column('winner_id', sa.String(36), sa.ForeignKey('users.id', ondelete='SET NULL'), nullable=True),
        sa.Column('winner_bid_id', sa.String(36), nullable=True),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('end_outcome_reason', sa.String(32), nullable=True),
        sa.Column('payment_window_hours', sa.Integer(), nullable=False, server_default='48'),
        sa.Column('payment_deadline', sa.DateTime(), nullable=True),
        sa.Column('relist_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('parent_auction_id', sa.String(36), sa.ForeignKey('auctions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('end_policy_on_no_sale', sa.String(32), nullable=False, server_default='NONE'),
        sa.Column('relist_delay_hours', sa.Integer(), nullable=True),
        sa.Column('relist_max_count', sa.Integer(), nullable=True),
        sa.Column('convert_price_source', sa.String(32), nullable=True),
        sa.Column('convert_price_markup_bps', sa.Integer(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_auctions_vendor_id', 'auctions', ['vendor_id'])
    op.create_index('ix_auctions_end_date', 'auctions', ['end_date'])
    op.create_index('ix_auctions_status', 'auctions', ['status'])
    op.create_index('idx_auctions_item', 'auctions', ['auctionable_type', 'auctionable_id'])
    op.create_index('idx_auctions_status_end', 'auctions', ['status', 'end_date'])

    op.create_table(
        'auction_bids',
        _id(),
        sa.Column('auction_id', sa.String(36), sa.ForeignKey('auctions.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        *_timestamps(updated=False),
    )
    op.create_index('ix_auction_bids_auction_id', 'auction_bids', ['auction_id'])
    op.create_index('ix_auction_bids_user_id', 'auction_bids', ['user_id'])

    op.create_table(
        'auction_wins',
        _id(),
        sa.Column('auction_id', sa.String(36), sa.ForeignKey('auctions.id', ondelete='CASCADE'), nullable=False, unique=True),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('winning_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending_payment'),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('won_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_auction_wins_user_id', 'auction_wins', ['user_id'])

    op.create_table(
        'custom_offers',
        _id(),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('item_type', sa.String(20), nullable=False),
        sa.Column('item_id', sa.String(36), nullable=False),
        sa.Column('original_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('offer_price', sa.Numeric(10, 2), nullable=False),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('initiated_by', sa.String(10), nullable=False, server_default='vendor'),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('responded_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_custom_offers_vendor_id', 'custom_offers', ['vendor_id'])
    op.create_index('ix_custom_offers_user_id', 'custom_offers', ['user_id'])
    op.create_index('ix_custom_offers_status', 'custom_offers', ['status'])

    op.create_table(
        'vendor_payouts',
        _id(),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('transaction_id', sa.String(255), nullable=True),
        sa.Column('account_info', JSONType, nullable=True),
        sa.Column('payout_notes', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_vendor_payouts_vendor_id', 'vendor_payouts', ['vendor_id'])

    op.create_table(
        'vendor_earnings',
        _id(),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('order_id', sa.String(36), sa.ForeignKey('orders.id', ondelete='SET NULL'), nullable=True),
        sa.Column('order_item_id', sa.String(36), sa.ForeignKey('order_items.id', ondelete='SET NULL'), nullable=True),
        sa.Column('auction_id', sa.String(36), sa.ForeignKey('auctions.id', ondelete='SET NULL'), nullable=True),
        sa.Column('amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('platform_fee', sa.Numeric(10, 2), nullable=False),
        sa.Column('net_amount', sa.Numeric(10, 2), nullable=False),
        sa.Column('commission_rate_bps', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('paid_out', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid_out_at', sa.DateTime(), nullable=True),
        sa.Column('payout_id', sa.String(36), sa.ForeignKey('vendor_payouts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_vendor_earnings_vendor_id', 'vendor_earnings', ['vendor_id'])
    op.create_index('ix_vendor_earnings_order_id', 'vendor_earnings', ['order_id'])
    op.create_index('ix_vendor_earnings_status', 'vendor_earnings', ['status'])

    op.create_table(
        'vendor_withdrawals',
        _id(),
        sa.Column('vendor_id', sa.String(36), sa.ForeignKey('vendors.id', ondelete='CASCADE'), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('method', sa.String(20), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='pending'),
        sa.Column('vendor_notes', sa.Text(), nullable=True),
        sa.Column('admin_notes', sa.Text(), nullable=True),
        sa.Column('rejection_reason', sa.Text(), nullable=True),
        sa.Column('payout_id', sa.String(36), sa.ForeignKey('vendor_payouts.id', ondelete='SET NULL'), nullable=True),
        sa.Column('requested_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('approved_at', sa.DateTime(), nullable=True),
        sa.Column('approved_by', sa.String(36), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('processed_by', sa.String(36), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
    )
    op.create_index('ix_vendor_withdrawals_vendor_id', 'vendor_withdrawals', ['vendor_id'])
    op.create_index('ix_vendor_withdrawals_status', 'vendor_withdrawals', ['status'])

    op.create_table(
        'notifications',
        _id(),
        sa.Column('user_id', sa.String(36), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('type', sa.String(64), nullable=False),
        sa.Column('title', sa.String(255), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('data', JSONType, nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('read_at', sa.DateTime(), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])
    op.create_index('ix_notifications_type', 'notifications', ['type'])
    op.create_index('ix_notifications_created_at', 'notifications', ['created_at'])
    op.create_index('idx_notifications_user_read', 'notifications', ['user_id', 'is_read'])


def downgrade():
    for table in (
        'notifications',
        'vendor_withdrawals',
        'vendor_earnings',
        'vendor_payouts',
        'custom_offers',
        'auction_wins',
        'auction_bids',
        'auctions',
        'coupon_redemptions',
        'order_items',
        'orders',
        'coupons',
        'wishlist_items',
        'cart_items',
        'carts',
        'product_categories',
        'book_categories',
        'products',
        'book_media',
        'books',
        'categories',
        'vendors',
        'password_reset_tokens',
        'users',
    ):
        op.drop_table(table)
