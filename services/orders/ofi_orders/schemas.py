"""
Pydantic schemas for request/response validation in the Orders service.

These schemas define the structure of data for API requests and responses.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from decimal import Decimal
from pydantic import BaseModel, EmailStr, Field, field_validator


class UserCreate(BaseModel):
    """Schema for registering a customer."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: Optional[str] = None
    address: Optional[str] = None


class User(UserCreate):
    """Customer as returned by the API."""
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class TailorCreate(BaseModel):
    """Schema for registering a tailor."""
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str
    address: str
    description: Optional[str] = None
    profile_image: Optional[str] = None


class Tailor(TailorCreate):
    """
    Tailor as returned by the API.

    total_orders and revenue are rollups over the tailor's completed orders;
    rating and total_reviews are rollups over their reviews.
    """
    id: int
    rating: Decimal
    total_reviews: int
    total_orders: int
    revenue: Decimal
    is_verified: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DesignCreate(BaseModel):
    """Schema for publishing a design."""
    tailor_id: int
    name: str = Field(..., min_length=1)
    description: str
    category: str = Field(..., description="agbada, ankara, dashiki, kaftan, ...")
    price: Decimal = Field(..., ge=0)
    images: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class Design(DesignCreate):
    """Design as returned by the API."""
    id: int
    is_active: bool
    is_trending: bool
    created_at: datetime

    class Config:
        from_attributes = True


class MeasurementUpdate(BaseModel):
    """Schema for updating measurements. All fields are optional."""
    chest: Optional[Decimal] = Field(None, ge=0)
    waist: Optional[Decimal] = Field(None, ge=0)
    hip: Optional[Decimal] = Field(None, ge=0)
    shoulder_width: Optional[Decimal] = Field(None, ge=0)
    arm_length: Optional[Decimal] = Field(None, ge=0)
    height: Optional[Decimal] = Field(None, ge=0)
    weight: Optional[Decimal] = Field(None, ge=0)
    units: Optional[str] = Field(None, pattern="^(inches|cm)$")

    @field_validator("units")
    @classmethod
    def units_not_null(cls, value):
        # units may be omitted from an update but never cleared
        if value is None:
            raise ValueError("units cannot be null")
        return value


class MeasurementCreate(MeasurementUpdate):
    """Schema for recording a customer's measurements."""
    user_id: int
    units: str = Field("inches", pattern="^(inches|cm)$")


class Measurement(MeasurementCreate):
    """Measurement as returned by the API."""
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class StylePreferenceCreate(BaseModel):
    """Schema for storing style quiz answers."""
    user_id: int
    occasions: List[str] = Field(default_factory=list)
    preferred_colors: List[str] = Field(default_factory=list)
    body_type: Optional[str] = None
    style_personality: Optional[str] = None
    budget_range: Optional[str] = None


class StylePreference(StylePreferenceCreate):
    """Style preference as returned by the API."""
    id: int
    completed_at: datetime

    class Config:
        from_attributes = True


class ReviewCreate(BaseModel):
    """Schema for reviewing a tailor after an order."""
    user_id: int
    tailor_id: int
    order_id: int
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = None


class Review(ReviewCreate):
    """Review as returned by the API."""
    id: int
    created_at: datetime

    class Config:
        from_attributes = True


class OrderCreate(BaseModel):
    """
    Schema for placing an order.

    measurements is copied into the order as a snapshot; later changes to the
    customer's measurement record do not affect it.
    """
    user_id: int
    tailor_id: int
    design_id: int
    measurements: Dict[str, str] = Field(default_factory=dict)
    customizations: Optional[Dict[str, Any]] = None
    delivery_address: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=1)
    preferred_delivery_date: Optional[datetime] = None
    special_instructions: Optional[str] = None
    design_price: Decimal = Field(..., ge=0, decimal_places=2)
    customization_fee: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    delivery_fee: Decimal = Field(Decimal("0"), ge=0, decimal_places=2)
    total_amount: Decimal = Field(..., ge=0, decimal_places=2)

    @field_validator("measurements", mode="before")
    @classmethod
    def stringify_measurements(cls, value):
        if isinstance(value, dict):
            return {str(name): str(reading) for name, reading in value.items()}
        return value


class OrderStatusUpdate(BaseModel):
    """Schema for a status transition request."""
    status: str


class Order(OrderCreate):
    """
    Schema for order responses, includes all database fields.

    Attributes:
        id (int): Order's unique identifier
        status (str): Lifecycle status
        version (int): Row version, bumped on every mutation
        created_at (datetime): When the order was created
        updated_at (datetime): When the order last changed
    """
    id: int
    status: str
    version: int
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class OrderWithDetails(Order):
    """Order joined with the design, tailor and customer it references."""
    design: Design
    tailor: Tailor
    user: User


class OrderEvent(BaseModel):
    """
    Schema for order timeline events.

    Attributes:
        id (int): Event ID
        order_id (int): Order identifier
        event_type (str): Type of event (created, status_changed)
        description (str): Human-readable event description
        old_value (str): Previous value (optional)
        new_value (str): New value (optional)
        created_at (datetime): When the event occurred
    """
    id: int
    order_id: int
    event_type: str
    description: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class Commission(BaseModel):
    """Platform commission split of an order amount."""
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    tailor_earnings: Decimal

    class Config:
        from_attributes = True


class OrderCommission(Commission):
    """Commission preview for an order, with the amount the gateway will charge."""
    order_id: int
    gateway_fee: Decimal
    checkout_amount: Decimal


class PaymentInitialize(BaseModel):
    """
    Schema for starting a hosted checkout.

    amount is in major currency units; when omitted, metadata.order_id must
    name an order and its checkout amount is charged.
    """
    email: EmailStr
    amount: Optional[Decimal] = Field(None, gt=0)
    reference: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class PaymentSession(BaseModel):
    """Gateway checkout session handle."""
    success: bool = True
    reference: str
    authorization_url: str
    access_code: str


class Payment(BaseModel):
    """Settlement record as returned by the API."""
    id: int
    reference: str
    order_id: Optional[int] = None
    user_id: Optional[int] = None
    amount: Decimal
    currency: str
    status: str
    channel: Optional[str] = None
    commission_amount: Decimal
    tailor_earnings: Decimal
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentVerification(BaseModel):
    """Result of verifying a transaction with the gateway."""
    success: bool
    status: str
    data: Optional[Payment] = None
    commission: Optional[Commission] = None


class TailorEarnings(BaseModel):
    """Earnings summary over a tailor's completed orders."""
    tailor_id: int
    total_orders: int
    total_revenue: Decimal
    platform_commission: Decimal
    earnings: Decimal
    currency: str
