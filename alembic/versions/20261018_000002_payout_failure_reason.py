"""Add failure_reason to vendor_payouts

Revision ID: payout_failure_reason_002
Revises: marketplace_001
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision = "payout_failure_reason_002"
down_revision = "marketplace_001"
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Record why Stripe or PayPal rejected a payout after it was sent."""
    conn = op.get_bind()
    inspector = inspect(conn)

    columns = {c["name"] for c in inspector.get_columns("vendor_payouts")}
    if "failure_reason" not in columns:
        op.add_column("vendor_payouts", sa.Column("failure_reason", sa.Text(), nullable=True))


def downgrade() -> None:
    conn = op.get_bind()
    inspector = inspect(conn)

    columns = {c["name"] for c in inspector.get_columns("vendor_payouts")}
    if "failure_reason" in columns:
        op.drop_column("vendor_payouts", "failure_reason")
