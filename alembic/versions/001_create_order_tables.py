"""Create orders, order_items, order_status_history and order_notes tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create order tables."""
    op.create_table(
        "orders",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("version", sa.Integer, nullable=False, server_default="1"),
        sa.Column("user_id", sa.String(36), nullable=True, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="PENDING", index=True),
        # Amounts (IDR)
        sa.Column("total_amount", sa.Integer, nullable=False),
        sa.Column("shipping_cost", sa.Integer, nullable=False, server_default="0"),
        # Customer info
        sa.Column("customer_name", sa.String(255), nullable=False),
        sa.Column("customer_email", sa.String(255), nullable=False, index=True),
        sa.Column("customer_phone", sa.String(50), nullable=False),
        # Shipping address
        sa.Column("shipping_address", sa.Text, nullable=False, server_default=""),
        sa.Column("city", sa.String(100), nullable=False, server_default=""),
        sa.Column("postal_code", sa.String(20), nullable=False, server_default=""),
        # Courier selection
        sa.Column("courier_code", sa.String(50), nullable=True),
        sa.Column("courier_name", sa.String(100), nullable=True),
        sa.Column("service_code", sa.String(50), nullable=True),
        sa.Column("service_name", sa.String(100), nullable=True),
        sa.Column("estimated_delivery_days", sa.String(20), nullable=True),
        sa.Column("is_local_delivery", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("total_weight_kg", sa.Float, nullable=False, server_default="1.0"),
        # Provider references
        sa.Column("external_id", sa.String(100), nullable=True, index=True),
        sa.Column("invoice_url", sa.Text, nullable=True),
        sa.Column("shipment_id", sa.String(100), nullable=True, unique=True),
        sa.Column("shipment_status", sa.String(50), nullable=True),
        sa.Column("tracking_number", sa.String(100), nullable=True),
        sa.Column("shipping_notes", sa.Text, nullable=True),
        # Guest tracking
        sa.Column("tracking_token", sa.String(64), nullable=False),
        sa.Column("tracking_access_token", sa.String(64), nullable=True, unique=True),
        sa.Column("tracking_access_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_reason", sa.Text, nullable=True),
        # Timestamps
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("shipped_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "order_items",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("product_id", sa.String(100), nullable=False),
        sa.Column("product_name", sa.String(500), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("price", sa.Integer, nullable=False),
        sa.Column("weight_grams", sa.Integer, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    # Audit trail: one row per real status transition
    op.create_table(
        "order_status_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("from_status", sa.String(20), nullable=True),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("reason", sa.Text, nullable=True),
        sa.Column("actor", sa.String(100), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "order_notes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "order_id",
            sa.String(36),
            sa.ForeignKey("orders.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("note", sa.Text, nullable=False),
        sa.Column("author", sa.String(100), nullable=True),
        sa.Column("is_internal", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )


def downgrade() -> None:
    """Drop order tables."""
    op.drop_table("order_notes")
    op.drop_table("order_status_history")
    op.drop_table("order_items")
    op.drop_table("orders")
