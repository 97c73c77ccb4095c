# SQLAlchemy ORM models for agencies, agents, listings, bookings and commissions.
# Keep business logic out of models; booking rules live in booking_service/availability/commissions.
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import declarative_mixin, relationship

from .db import Base

# Money: two decimal places, large enough for sale prices
Money = Numeric(12, 2)


@declarative_mixin
class TimestampMixin:
    """Common UTC-aware timestamps automatically managed by the database.

    - created_at: set on insert
    - updated_at: set on insert and updated on each modification
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


class Agency(Base, TimestampMixin):
    """Tenant organization owning agents and listings; branding is set during onboarding."""
    __tablename__ = "agencies"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    primary_color = Column(String(32), nullable=True)
    secondary_color = Column(String(32), nullable=True)
    logo = Column(String(1024), nullable=True)
    phone = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    website = Column(String(1024), nullable=True)
    locations = Column(JSON, nullable=False, default=list)
    # percentage of a booking's total taken as commission
    commission_rate = Column(Numeric(5, 2), nullable=False, default=10)


class Agent(Base, TimestampMixin):
    """Agency member who signs in with emailed one-time passcodes.

    Roles:
    - admin: may list commissions platform-wide and delete agents
    - agent: manages listings and bookings
    onboarding_step runs 0..4 (1 = registered, 2 = email verified, 3 = branding, 4 = contact).
    """
    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    phone = Column(String(64), nullable=True)
    role = Column(String(20), nullable=False, default="agent", index=True)
    email_verified = Column(Boolean, nullable=False, default=False)
    onboarding_step = Column(Integer, nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=True, index=True)

    agency = relationship("Agency", lazy="joined")


class EmailOtp(Base):
    """Hashed one-time passcode for registration or login."""
    __tablename__ = "email_otps"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), nullable=False, index=True)
    code_hash = Column(String(255), nullable=False)
    purpose = Column(String(32), nullable=False)  # "registration" or "login"
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_email_otps_email_purpose", "email", "purpose"),
    )


class Property(Base, TimestampMixin):
    """Rental listing owned by an agency.

    status: draft -> published -> archived
    classification is derived from the minimum stay (>= 3 months is Long-Term).
    """
    __tablename__ = "properties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    created_by_id = Column(Integer, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=False)
    property_type = Column(String(64), nullable=False)
    price = Column(Money, nullable=False)
    price_type = Column(String(16), nullable=False, default="night")
    beds = Column(Integer, nullable=False, default=0)
    baths = Column(Integer, nullable=False, default=0)
    sqm = Column(Integer, nullable=False, default=0)
    amenities = Column(JSON, nullable=False, default=list)
    media = Column(JSON, nullable=False, default=list)
    license_number = Column(String(128), nullable=True)
    minimum_stay_value = Column(Integer, nullable=True)
    minimum_stay_unit = Column(String(16), nullable=True)
    classification = Column(String(16), nullable=True)
    status = Column(String(20), nullable=False, default="draft", index=True)

    agency = relationship("Agency", lazy="joined")


class SalesProperty(Base, TimestampMixin):
    """Listing offered for sale; becomes 'sold' when a transaction completes."""
    __tablename__ = "sales_properties"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    agency_id = Column(Integer, ForeignKey("agencies.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id", ondelete="SET NULL"), nullable=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    location = Column(String(255), nullable=False)
    property_type = Column(String(64), nullable=False)
    price = Column(Money, nullable=False)
    beds = Column(Integer, nullable=False, default=0)
    baths = Column(Integer, nullable=False, default=0)
    sqm = Column(Integer, nullable=False, default=0)
    amenities = Column(JSON, nullable=False, default=list)
    media = Column(JSON, nullable=False, default=list)
    license_number = Column(String(128), nullable=True)
    status = Column(String(20), nullable=False, default="draft", index=True)

    agency = relationship("Agency", lazy="joined")


class PropertyAvailability(Base, TimestampMixin):
    """Date range for a rental; is_available=False rows are blocks (usually created by a booking)."""
    __tablename__ = "property_availability"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False, default=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=True, index=True)
    notes = Column(String(255), nullable=True)

    # Conflict checks scan blocked ranges per property
    __table_args__ = (
        Index("ix_availability_property_range", "property_id", "start_date", "end_date"),
    )


class Booking(Base, TimestampMixin):
    """Reservation of a rental taken by a booking agent on behalf of a client.

    Status transitions:
    pending -> confirmed -> paid
    pending/confirmed -> cancellation_requested -> cancelled
    any non-terminal -> cancelled / archived
    Terminal: cancelled, archived
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("properties.id"), nullable=False, index=True)
    owner_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    booking_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    client_name = Column(String(255), nullable=False)
    client_email = Column(String(255), nullable=False)
    client_phone = Column(String(64), nullable=False)
    notes = Column(Text, nullable=True)
    check_in = Column(Date, nullable=False, index=True)
    check_out = Column(Date, nullable=False)
    duration = Column(String(32), nullable=False)
    total_amount = Column(Money, nullable=False)
    status = Column(String(32), nullable=False, default="pending")

    property = relationship("Property", lazy="joined")
    owner_agent = relationship("Agent", foreign_keys=[owner_agent_id], lazy="joined")
    booking_agent = relationship("Agent", foreign_keys=[booking_agent_id], lazy="joined")
    commission = relationship("Commission", back_populates="booking", uselist=False, lazy="joined")
    availability = relationship("PropertyAvailability", lazy="selectin", order_by="PropertyAvailability.start_date")

    __table_args__ = (
        Index("ix_bookings_property_check_in", "property_id", "check_in"),
        Index("ix_bookings_status", "status"),
    )


class Commission(Base, TimestampMixin):
    """Three-way split of a booking's commission (owner agent / booking agent / platform)."""
    __tablename__ = "commissions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True, index=True)
    owner_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    booking_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    total_amount = Column(Money, nullable=False)
    owner_commission = Column(Money, nullable=False)
    booking_commission = Column(Money, nullable=False)
    platform_fee = Column(Money, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    booking = relationship("Booking", back_populates="commission")


class SalesTransaction(Base, TimestampMixin):
    """Sale of a SalesProperty brokered by a seller agent and a buyer agent."""
    __tablename__ = "sales_transactions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    property_id = Column(Integer, ForeignKey("sales_properties.id"), nullable=False, index=True)
    seller_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    buyer_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    buyer_name = Column(String(255), nullable=False)
    buyer_email = Column(String(255), nullable=False)
    buyer_phone = Column(String(64), nullable=True)
    sale_price = Column(Money, nullable=False)
    sale_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)

    property = relationship("SalesProperty", lazy="joined")
    commission = relationship("SalesCommission", back_populates="transaction", uselist=False, lazy="joined")


class SalesCommission(Base, TimestampMixin):
    """Seller/buyer/platform split of a sale's commission."""
    __tablename__ = "sales_commissions"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    transaction_id = Column(Integer, ForeignKey("sales_transactions.id"), nullable=False, unique=True, index=True)
    seller_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    buyer_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    commission_rate = Column(Numeric(5, 2), nullable=False)
    total_amount = Column(Money, nullable=False)
    seller_commission = Column(Money, nullable=False)
    buyer_commission = Column(Money, nullable=False)
    platform_fee = Column(Money, nullable=False)
    status = Column(String(20), nullable=False, default="pending", index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    transaction = relationship("SalesTransaction", back_populates="commission")
