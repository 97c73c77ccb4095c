"""initial schema: agencies, agents, otps, listings, bookings, availability, commissions, sales

Revision ID: 3c1e9d7a5b20
Revises:
Create Date: 2026-01-01 00:00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3c1e9d7a5b20"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

Money = sa.Numeric(12, 2)
Rate = sa.Numeric(5, 2)


def _timestamps() -> list:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "agencies",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("primary_color", sa.String(length=32), nullable=True),
        sa.Column("secondary_color", sa.String(length=32), nullable=True),
        sa.Column("logo", sa.String(length=1024), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("website", sa.String(length=1024), nullable=True),
        sa.Column("locations", sa.JSON(), nullable=False),
        sa.Column("commission_rate", Rate, nullable=False, server_default="10"),
        *_timestamps(),
    )
    op.create_index("ix_agencies_id", "agencies", ["id"])

    op.create_table(
        "agents",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="agent"),
        sa.Column("email_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("onboarding_step", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("agency_id", sa.Integer(), sa.ForeignKey("agencies.id"), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_agents_id", "agents", ["id"])
    op.create_index("ix_agents_email", "agents", ["email"], unique=True)
    op.create_index("ix_agents_role", "agents", ["role"])
    op.create_index("ix_agents_agency_id", "agents", ["agency_id"])

    op.create_table(
        "email_otps",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("code_hash", sa.String(length=255), nullable=False),
        sa.Column("purpose", sa.String(length=32), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("used", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_email_otps_id", "email_otps", ["id"])
    op.create_index("ix_email_otps_email", "email_otps", ["email"])
    op.create_index("ix_email_otps_email_purpose", "email_otps", ["email", "purpose"])

    op.create_table(
        "properties",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("agency_id", sa.Integer(), sa.ForeignKey("agencies.id"), nullable=False),
        sa.Column("created_by_id", sa.Integer(), sa.ForeignKey("agents.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("property_type", sa.String(length=64), nullable=False),
        sa.Column("price", Money, nullable=False),
        sa.Column("price_type", sa.String(length=16), nullable=False, server_default="night"),
        sa.Column("beds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("baths", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sqm", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("media", sa.JSON(), nullable=False),
        sa.Column("license_number", sa.String(length=128), nullable=True),
        sa.Column("minimum_stay_value", sa.Integer(), nullable=True),
        sa.Column("minimum_stay_unit", sa.String(length=16), nullable=True),
        sa.Column("classification", sa.String(length=16), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        *_timestamps(),
    )
    op.create_index("ix_properties_id", "properties", ["id"])
    op.create_index("ix_properties_agency_id", "properties", ["agency_id"])
    op.create_index("ix_properties_created_by_id", "properties", ["created_by_id"])
    op.create_index("ix_properties_status", "properties", ["status"])

    op.create_table(
        "sales_properties",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("agency_id", sa.Integer(), sa.ForeignKey("agencies.id"), nullable=False),
        sa.Column("agent_id", sa.Integer(), sa.ForeignKey("agents.id", ondelete="SET NULL"), nullable=True),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=False),
        sa.Column("property_type", sa.String(length=64), nullable=False),
        sa.Column("price", Money, nullable=False),
        sa.Column("beds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("baths", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("sqm", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("media", sa.JSON(), nullable=False),
        sa.Column("license_number", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
        *_timestamps(),
    )
    op.create_index("ix_sales_properties_id", "sales_properties", ["id"])
    op.create_index("ix_sales_properties_agency_id", "sales_properties", ["agency_id"])
    op.create_index("ix_sales_properties_agent_id", "sales_properties", ["agent_id"])
    op.create_index("ix_sales_properties_status", "sales_properties", ["status"])

    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("owner_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("booking_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("client_name", sa.String(length=255), nullable=False),
        sa.Column("client_email", sa.String(length=255), nullable=False),
        sa.Column("client_phone", sa.String(length=64), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("check_in", sa.Date(), nullable=False),
        sa.Column("check_out", sa.Date(), nullable=False),
        sa.Column("duration", sa.String(length=32), nullable=False),
        sa.Column("total_amount", Money, nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_property_id", "bookings", ["property_id"])
    op.create_index("ix_bookings_owner_agent_id", "bookings", ["owner_agent_id"])
    op.create_index("ix_bookings_booking_agent_id", "bookings", ["booking_agent_id"])
    op.create_index("ix_bookings_check_in", "bookings", ["check_in"])
    op.create_index("ix_bookings_property_check_in", "bookings", ["property_id", "check_in"])
    op.create_index("ix_bookings_status", "bookings", ["status"])

    op.create_table(
        "property_availability",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("properties.id"), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=True),
        sa.Column("notes", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_property_availability_id", "property_availability", ["id"])
    op.create_index("ix_property_availability_property_id", "property_availability", ["property_id"])
    op.create_index("ix_property_availability_booking_id", "property_availability", ["booking_id"])
    op.create_index(
        "ix_availability_property_range", "property_availability", ["property_id", "start_date", "end_date"]
    )

    op.create_table(
        "commissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("booking_id", sa.Integer(), sa.ForeignKey("bookings.id"), nullable=False),
        sa.Column("owner_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("booking_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("commission_rate", Rate, nullable=False),
        sa.Column("total_amount", Money, nullable=False),
        sa.Column("owner_commission", Money, nullable=False),
        sa.Column("booking_commission", Money, nullable=False),
        sa.Column("platform_fee", Money, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_commissions_id", "commissions", ["id"])
    op.create_index("ix_commissions_booking_id", "commissions", ["booking_id"], unique=True)
    op.create_index("ix_commissions_owner_agent_id", "commissions", ["owner_agent_id"])
    op.create_index("ix_commissions_booking_agent_id", "commissions", ["booking_agent_id"])
    op.create_index("ix_commissions_status", "commissions", ["status"])

    op.create_table(
        "sales_transactions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("property_id", sa.Integer(), sa.ForeignKey("sales_properties.id"), nullable=False),
        sa.Column("seller_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("buyer_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("buyer_name", sa.String(length=255), nullable=False),
        sa.Column("buyer_email", sa.String(length=255), nullable=False),
        sa.Column("buyer_phone", sa.String(length=64), nullable=True),
        sa.Column("sale_price", Money, nullable=False),
        sa.Column("sale_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        *_timestamps(),
    )
    op.create_index("ix_sales_transactions_id", "sales_transactions", ["id"])
    op.create_index("ix_sales_transactions_property_id", "sales_transactions", ["property_id"])
    op.create_index("ix_sales_transactions_seller_agent_id", "sales_transactions", ["seller_agent_id"])
    op.create_index("ix_sales_transactions_buyer_agent_id", "sales_transactions", ["buyer_agent_id"])
    op.create_index("ix_sales_transactions_status", "sales_transactions", ["status"])

    op.create_table(
        "sales_commissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True, nullable=False),
        sa.Column("transaction_id", sa.Integer(), sa.ForeignKey("sales_transactions.id"), nullable=False),
        sa.Column("seller_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("buyer_agent_id", sa.Integer(), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("commission_rate", Rate, nullable=False),
        sa.Column("total_amount", Money, nullable=False),
        sa.Column("seller_commission", Money, nullable=False),
        sa.Column("buyer_commission", Money, nullable=False),
        sa.Column("platform_fee", Money, nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_sales_commissions_id", "sales_commissions", ["id"])
    op.create_index("ix_sales_commissions_transaction_id", "sales_commissions", ["transaction_id"], unique=True)
    op.create_index("ix_sales_commissions_seller_agent_id", "sales_commissions", ["seller_agent_id"])
    op.create_index("ix_sales_commissions_buyer_agent_id", "sales_commissions", ["buyer_agent_id"])
    op.create_index("ix_sales_commissions_status", "sales_commissions", ["status"])


def downgrade() -> None:
    # Children first; dropping a table drops its indexes
    for table in (
        "sales_commissions",
        "sales_transactions",
        "commissions",
        "property_availability",
        "bookings",
        "sales_properties",
        "properties",
        "email_otps",
        "agents",
        "agencies",
    ):
        op.drop_table(table)
