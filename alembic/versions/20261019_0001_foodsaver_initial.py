"""foodsaver initial schema: businesses, listings, reservations, payments, notifications

Revision ID: 20261019_0001
Revises:
Create Date: 2026-10-19 09:00:00
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261019_0001"
down_revision = None
branch_labels = None
depends_on = None

TS = sa.DateTime(timezone=True)


def upgrade():
    op.create_table(
        "businesses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("company_name", sa.String(255), nullable=False),
        sa.Column("company_code", sa.String(32), nullable=False, unique=True),
        sa.Column("owner_user_id", sa.BigInteger, nullable=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("phone", sa.String(32), nullable=True),
        sa.Column("created_at", TS, nullable=False),
    )

    op.create_table(
        "branches",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "business_id",
            sa.Integer,
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("branch_code", sa.String(32), nullable=False, unique=True),
        sa.Column("address", sa.Text, nullable=True),
        sa.Column("operating_hours", sa.String(255), nullable=True),
        sa.Column("manager_name", sa.String(255), nullable=True),
        sa.Column("manager_phone", sa.String(32), nullable=True),
        sa.Column("manager_user_id", sa.BigInteger, nullable=True),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_branches_business", "branches", ["business_id"])

    op.create_table(
        "food_listings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "business_id",
            sa.Integer,
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "branch_id",
            sa.Integer,
            sa.ForeignKey("branches.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("original_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("pickup_start", TS, nullable=False),
        sa.Column("pickup_end", TS, nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="AVAILABLE"),
        sa.Column("pickup_status", sa.String(16), nullable=False, server_default="normal"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.CheckConstraint("quantity >= 0", name="ck_food_listings_quantity_non_negative"),
    )
    op.create_index("ix_food_listings_business", "food_listings", ["business_id"])
    op.create_index("ix_food_listings_sweep", "food_listings", ["status", "pickup_status", "id"])

    op.create_table(
        "reservations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("reservation_number", sa.String(64), nullable=False, unique=True),
        sa.Column("customer_id", sa.BigInteger, nullable=False),
        sa.Column("business_id", sa.Integer, nullable=False),
        sa.Column("pickup_time", TS, nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("confirmation_code", sa.String(16), nullable=True),
        sa.Column("code_issued_at", TS, nullable=True),
        sa.Column("pickup_confirmed_at", TS, nullable=True),
        sa.Column("cancellation_reason", sa.Text, nullable=True),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
    )
    op.create_index("ix_reservations_customer", "reservations", ["customer_id", "created_at"])
    op.create_index("ix_reservations_business", "reservations", ["business_id", "created_at"])

    op.create_table(
        "reservation_items",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id",
            sa.Integer,
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("listing_id", sa.Integer, sa.ForeignKey("food_listings.id"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("price", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", TS, nullable=False),
        sa.Column("updated_at", TS, nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_reservation_items_quantity_positive"),
    )
    op.create_index("ix_reservation_items_reservation", "reservation_items", ["reservation_id"])
    op.create_index("ix_reservation_items_listing", "reservation_items", ["listing_id", "status"])

    op.create_table(
        "payment_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "reservation_id",
            sa.Integer,
            sa.ForeignKey("reservations.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(8), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("transaction_id", sa.String(64), nullable=False, unique=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="PENDING"),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index(
        "ix_payment_transactions_reservation",
        "payment_transactions",
        ["reservation_id", "status"],
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False),
        sa.Column("kind", sa.String(32), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("payload", sa.JSON, nullable=True),
        sa.Column("reference_id", sa.String(64), nullable=True),
        sa.Column("reference_type", sa.String(32), nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", TS, nullable=False),
    )
    op.create_index("ix_notifications_user", "notifications", ["user_id", "is_read"])

    op.create_table(
        "user_notification_preferences",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.BigInteger, nullable=False, unique=True),
        sa.Column("email_notifications", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("push_notifications", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("sms_notifications", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("notification_types", sa.JSON, nullable=True),
        sa.Column("updated_at", TS, nullable=False),
    )


def downgrade():
    op.drop_table("user_notification_preferences")
    op.drop_index("ix_notifications_user", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_payment_transactions_reservation", table_name="payment_transactions")
    op.drop_table("payment_transactions")
    op.drop_index("ix_reservation_items_listing", table_name="reservation_items")
    op.drop_index("ix_reservation_items_reservation", table_name="reservation_items")
    op.drop_table("reservation_items")
    op.drop_index("ix_reservations_business", table_name="reservations")
    op.drop_index("ix_reservations_customer", table_name="reservations")
    op.drop_table("reservations")
    op.drop_index("ix_food_listings_sweep", table_name="food_listings")
    op.drop_index("ix_food_listings_business", table_name="food_listings")
    op.drop_table("food_listings")
    op.drop_index("ix_branches_business", table_name="branches")
    op.drop_table("branches")
    op.drop_table("businesses")
