# Pydantic models (request/response DTOs) used by the API layer.
# Money goes in as Decimal and comes out as JSON numbers; business rules live in the services.
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

BookingStatus = Literal["pending", "confirmed", "paid", "cancellation_requested", "cancelled", "archived"]
PropertyStatus = Literal["draft", "published", "archived"]
SalesPropertyStatus = Literal["draft", "published", "archived", "sold"]
SalesTransactionStatus = Literal["pending", "completed", "cancelled"]
StayUnit = Literal["days", "weeks", "months", "years"]
Role = Literal["admin", "agent"]


def _normalize_email(v):
    if isinstance(v, str):
        v = v.strip().lower()
    return v


def _strip(v):
    if isinstance(v, str):
        v = v.strip()
    return v


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class MessageResponse(BaseModel):
    success: bool = True
    message: str


# Agencies and agents

class AgencyRead(BaseModel):
    id: int
    name: str
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    logo: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    website: Optional[str] = None
    locations: List[str] = []
    commission_rate: float

    model_config = ConfigDict(from_attributes=True)


# Compact agent shape embedded in bookings/commissions
class AgentSummary(BaseModel):
    id: int
    name: Optional[str] = None
    email: str
    agency_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class AgentRead(BaseModel):
    id: int
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    role: Role
    email_verified: bool
    onboarding_step: int
    is_active: bool
    agency_id: Optional[int] = None
    agency: Optional[AgencyRead] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Authentication

class OtpRequest(BaseModel):
    email: EmailStr
    name: Optional[str] = Field(None, max_length=255)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class LoginOtpRequest(BaseModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)


class OtpVerify(BaseModel):
    email: EmailStr
    code: str = Field(..., pattern=r"^\d{6}$")

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("code", mode="before")
    @classmethod
    def strip_code(cls, v: str) -> str:
        return _strip(v)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    agent: AgentRead


# Profile and onboarding

class ProfileUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    phone: Optional[str] = Field(None, max_length=64)
    # Agency fields editable from account settings
    agency_name: Optional[str] = Field(None, min_length=1, max_length=255)
    agency_phone: Optional[str] = Field(None, max_length=64)
    agency_email: Optional[EmailStr] = None
    website: Optional[str] = Field(None, max_length=1024)
    locations: Optional[List[str]] = None
    logo: Optional[str] = Field(None, max_length=1024)
    primary_color: Optional[str] = Field(None, max_length=32)
    secondary_color: Optional[str] = Field(None, max_length=32)


class OnboardingBranding(BaseModel):
    agency_name: str = Field(..., min_length=1, max_length=255)
    primary_color: str = Field(..., min_length=1, max_length=32)
    secondary_color: Optional[str] = Field(None, max_length=32)
    logo: Optional[str] = Field(None, max_length=1024)

    @field_validator("agency_name", mode="before")
    @classmethod
    def strip_name(cls, v: str) -> str:
        return _strip(v)


class OnboardingContact(BaseModel):
    phone: str = Field(..., min_length=5, max_length=64)
    email: Optional[EmailStr] = None
    website: Optional[str] = Field(None, max_length=1024)
    locations: List[str] = Field(..., min_length=1)


# Rental properties

class PropertyBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255)
    property_type: str = Field(..., min_length=1, max_length=64)
    price: Decimal = Field(..., ge=0)
    price_type: Literal["night", "week", "month"] = "night"
    beds: int = Field(0, ge=0)
    baths: int = Field(0, ge=0)
    sqm: int = Field(0, ge=0)
    amenities: List[str] = []
    media: List[str] = []
    license_number: Optional[str] = Field(None, max_length=128)
    minimum_stay_value: Optional[int] = Field(None, ge=0)
    minimum_stay_unit: Optional[StayUnit] = None

    @field_validator("title", "location", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip(v)


class PropertyCreate(PropertyBase):
    pass


class PropertyUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    property_type: Optional[str] = Field(None, min_length=1, max_length=64)
    price: Optional[Decimal] = Field(None, ge=0)
    price_type: Optional[Literal["night", "week", "month"]] = None
    beds: Optional[int] = Field(None, ge=0)
    baths: Optional[int] = Field(None, ge=0)
    sqm: Optional[int] = Field(None, ge=0)
    amenities: Optional[List[str]] = None
    media: Optional[List[str]] = None
    license_number: Optional[str] = Field(None, max_length=128)
    minimum_stay_value: Optional[int] = Field(None, ge=0)
    minimum_stay_unit: Optional[StayUnit] = None


class PropertyRead(PropertyBase):
    id: int
    agency_id: int
    created_by_id: Optional[int] = None
    price: float
    classification: Optional[str] = None
    status: PropertyStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# Compact property shape embedded in bookings
class PropertySummary(BaseModel):
    id: int
    title: str
    location: str
    agency_id: int

    model_config = ConfigDict(from_attributes=True)


class PropertyListResponse(BaseModel):
    items: List[PropertyRead]
    pagination: Pagination


class PropertyStatusUpdate(BaseModel):
    status: PropertyStatus


class BulkStatusUpdate(BaseModel):
    property_ids: List[int] = Field(..., min_length=1)
    status: PropertyStatus


class BulkStatusResponse(BaseModel):
    updated: int
    status: PropertyStatus


class PropertyStatsResponse(BaseModel):
    total_properties: int
    published_properties: int
    confirmed_bookings: int
    confirmed_revenue: float
    recent_properties: List[PropertyRead]


# Availability

class AvailabilityRead(BaseModel):
    id: int
    property_id: int
    start_date: date
    end_date: date
    is_available: bool
    booking_id: Optional[int] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class AvailabilityCreate(BaseModel):
    start_date: date
    end_date: date
    is_available: bool = True
    notes: Optional[str] = Field(None, max_length=255)


# Commissions

class CommissionRead(BaseModel):
    id: int
    booking_id: int
    owner_agent_id: int
    booking_agent_id: int
    commission_rate: float
    total_amount: float
    owner_commission: float
    booking_commission: float
    platform_fee: float
    status: Literal["pending", "paid"]
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Bookings

class BookingCreate(BaseModel):
    property_id: int = Field(..., ge=1)
    owner_agent_id: int = Field(..., ge=1)
    booking_agent_id: Optional[int] = Field(None, ge=1)
    client_name: str = Field(..., min_length=2, max_length=255)
    client_email: EmailStr
    client_phone: str = Field(..., min_length=5, max_length=64)
    notes: Optional[str] = None
    check_in: date
    check_out: date
    total_amount: Decimal = Field(..., gt=0)

    @field_validator("client_name", "client_phone", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip(v)


class BookingUpdate(BaseModel):
    client_name: Optional[str] = Field(None, min_length=2, max_length=255)
    client_email: Optional[EmailStr] = None
    client_phone: Optional[str] = Field(None, min_length=5, max_length=64)
    notes: Optional[str] = None
    check_in: Optional[date] = None
    check_out: Optional[date] = None
    total_amount: Optional[Decimal] = Field(None, gt=0)
    status: Optional[BookingStatus] = None


class BookingStatusUpdate(BaseModel):
    status: BookingStatus


class BookingRead(BaseModel):
    id: int
    property_id: int
    owner_agent_id: int
    booking_agent_id: int
    client_name: str
    client_email: str
    client_phone: str
    notes: Optional[str] = None
    check_in: date
    check_out: date
    duration: str
    total_amount: float
    status: BookingStatus
    created_at: datetime
    property: Optional[PropertySummary] = None
    owner_agent: Optional[AgentSummary] = None
    booking_agent: Optional[AgentSummary] = None
    commission: Optional[CommissionRead] = None
    availability: List[AvailabilityRead] = []

    model_config = ConfigDict(from_attributes=True)


class BookingCreateResponse(BaseModel):
    booking: BookingRead
    commission: CommissionRead


class BookingActionResponse(BaseModel):
    booking: BookingRead
    message: str


class BookingListStats(BaseModel):
    total_bookings: int
    total_revenue: float
    status_breakdown: Dict[str, int] = {}


class BookingListResponse(BaseModel):
    bookings: List[BookingRead]
    pagination: Pagination
    stats: BookingListStats


class AgentBookingStats(BaseModel):
    total_bookings: int
    total_revenue: float
    total_commission: float
    owner_commission: float
    booking_commission: float


class AgentBookingsResponse(BaseModel):
    bookings: List[BookingRead]
    stats: AgentBookingStats


class PropertyBookingsResponse(BaseModel):
    bookings: List[BookingRead]
    availability: List[AvailabilityRead]


class OverallStats(BaseModel):
    total_bookings: int
    total_revenue: float
    average_booking_value: float


class StatusStat(BaseModel):
    status: str
    count: int
    revenue: float


class MonthlyTrend(BaseModel):
    month: str  # YYYY-MM
    booking_count: int
    total_revenue: float


class TopProperty(BaseModel):
    property_id: int
    title: Optional[str] = None
    location: Optional[str] = None
    booking_count: int
    total_revenue: float


class CommissionTotals(BaseModel):
    total_commission: float
    platform_earnings: float
    agent_earnings: float


class BookingStatsResponse(BaseModel):
    overall: OverallStats
    status_breakdown: List[StatusStat]
    monthly_trends: List[MonthlyTrend]
    top_properties: List[TopProperty]
    commissions: CommissionTotals


# Sales

class SalesPropertyBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    location: str = Field(..., min_length=1, max_length=255)
    property_type: str = Field(..., min_length=1, max_length=64)
    price: Decimal = Field(..., ge=0)
    beds: int = Field(0, ge=0)
    baths: int = Field(0, ge=0)
    sqm: int = Field(0, ge=0)
    amenities: List[str] = []
    media: List[str] = []
    license_number: Optional[str] = Field(None, max_length=128)

    @field_validator("title", "location", mode="before")
    @classmethod
    def strip_text(cls, v: str) -> str:
        return _strip(v)


class SalesPropertyCreate(SalesPropertyBase):
    pass


class SalesPropertyUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    location: Optional[str] = Field(None, min_length=1, max_length=255)
    property_type: Optional[str] = Field(None, min_length=1, max_length=64)
    price: Optional[Decimal] = Field(None, ge=0)
    beds: Optional[int] = Field(None, ge=0)
    baths: Optional[int] = Field(None, ge=0)
    sqm: Optional[int] = Field(None, ge=0)
    amenities: Optional[List[str]] = None
    media: Optional[List[str]] = None
    license_number: Optional[str] = Field(None, max_length=128)
    status: Optional[Literal["draft", "published", "archived"]] = None


class SalesPropertyRead(SalesPropertyBase):
    id: int
    agency_id: int
    agent_id: Optional[int] = None
    price: float
    status: SalesPropertyStatus
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class SalesCommissionRead(BaseModel):
    id: int
    transaction_id: int
    seller_agent_id: int
    buyer_agent_id: int
    commission_rate: float
    total_amount: float
    seller_commission: float
    buyer_commission: float
    platform_fee: float
    status: Literal["pending", "paid"]
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class SalesTransactionCreate(BaseModel):
    property_id: int = Field(..., ge=1)
    seller_agent_id: int = Field(..., ge=1)
    buyer_agent_id: int = Field(..., ge=1)
    buyer_name: str = Field(..., min_length=1, max_length=255)
    buyer_email: EmailStr
    buyer_phone: Optional[str] = Field(None, max_length=64)
    sale_price: Decimal = Field(..., gt=0)
    sale_date: date


class SalesTransactionStatusUpdate(BaseModel):
    status: SalesTransactionStatus


class SalesTransactionRead(BaseModel):
    id: int
    property_id: int
    seller_agent_id: int
    buyer_agent_id: int
    buyer_name: str
    buyer_email: str
    buyer_phone: Optional[str] = None
    sale_price: float
    sale_date: date
    status: SalesTransactionStatus
    created_at: datetime
    commission: Optional[SalesCommissionRead] = None

    model_config = ConfigDict(from_attributes=True)


# Storage

class UploadUrlRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    file_type: Optional[str] = Field(None, max_length=128)


class UploadUrlResponse(BaseModel):
    upload_url: str
    public_id: str
    params: Dict[str, object]


class UploadResponse(BaseModel):
    public_id: str
    url: str
