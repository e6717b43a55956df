"""
SQLAlchemy ORM models for the Orders service.

Defines the database schema for the marketplace entities the order lifecycle
depends on (users, tailors, designs, measurements), the orders themselves,
their timeline events and the payment settlements recorded against them.
"""
from datetime import datetime, timezone
from sqlalchemy import (
    JSON, Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String, Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import relationship
from .database import Base

# JSONB on PostgreSQL, plain JSON everywhere else
JSONType = JSON().with_variant(JSONB, "postgresql")


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns below."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class User(Base):
    """A customer of the marketplace."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=True)
    address = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Tailor(Base):
    """
    A tailor selling designs on the marketplace.

    Attributes:
        rating (Decimal): Mean review rating, recomputed when a review is added
        total_reviews (int): Number of reviews received
        total_orders (int): Number of completed orders
        revenue (Decimal): Sum of total_amount over completed orders
    """
    __tablename__ = "tailors"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)
    phone = Column(String, nullable=False)
    address = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    profile_image = Column(String, nullable=True)
    rating = Column(Numeric(3, 2), nullable=False, default=0)
    total_reviews = Column(Integer, nullable=False, default=0)
    total_orders = Column(Integer, nullable=False, default=0)
    revenue = Column(Numeric(12, 2), nullable=False, default=0)
    is_verified = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Design(Base):
    """A garment design offered by a tailor (agbada, ankara, dashiki, kaftan...)."""
    __tablename__ = "designs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    tailor_id = Column(Integer, ForeignKey("tailors.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    category = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    images = Column(JSONType, nullable=False, default=list)
    tags = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    is_trending = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Measurement(Base):
    """A customer's current body measurements."""
    __tablename__ = "measurements"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    chest = Column(Numeric(4, 1), nullable=True)
    waist = Column(Numeric(4, 1), nullable=True)
    hip = Column(Numeric(4, 1), nullable=True)
    shoulder_width = Column(Numeric(4, 1), nullable=True)
    arm_length = Column(Numeric(4, 1), nullable=True)
    height = Column(Numeric(4, 1), nullable=True)
    weight = Column(Numeric(4, 1), nullable=True)
    units = Column(String, nullable=False, default="inches")
    created_at = Column(DateTime, default=utcnow, nullable=False)


class StylePreference(Base):
    """Answers a customer gave in the style quiz."""
    __tablename__ = "style_preferences"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    occasions = Column(JSONType, nullable=False, default=list)
    preferred_colors = Column(JSONType, nullable=False, default=list)
    body_type = Column(String, nullable=True)
    style_personality = Column(String, nullable=True)
    budget_range = Column(String, nullable=True)
    completed_at = Column(DateTime, default=utcnow, nullable=False)


class Order(Base):
    """
    Order model representing a customer's request to have a design made.

    Attributes:
        id (int): Primary key, assigned on insert
        user_id (int): Ordering customer
        tailor_id (int): Tailor producing the garment
        design_id (int): Design being produced
        measurements (dict): Snapshot of the customer's measurements at order time
        customizations (dict): Optional design customization choices
        design_price, customization_fee, delivery_fee, total_amount (Decimal): Pricing
        status (str): Lifecycle status, see lifecycle.ORDER_SEQUENCE
        version (int): Row version used for compare-and-swap updates
        created_at (datetime): Set once on creation
        updated_at (datetime): Refreshed on every mutation
    """
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    tailor_id = Column(Integer, ForeignKey("tailors.id"), nullable=False, index=True)
    design_id = Column(Integer, ForeignKey("designs.id"), nullable=False)
    customizations = Column(JSONType, nullable=True)
    measurements = Column(JSONType, nullable=False, default=dict)
    delivery_address = Column(Text, nullable=False)
    phone = Column(String, nullable=False)
    preferred_delivery_date = Column(DateTime, nullable=True)
    special_instructions = Column(Text, nullable=True)
    design_price = Column(Numeric(10, 2), nullable=False)
    customization_fee = Column(Numeric(10, 2), nullable=False, default=0)
    delivery_fee = Column(Numeric(10, 2), nullable=False, default=0)
    total_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending", index=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)

    user = relationship("User")
    tailor = relationship("Tailor")
    design = relationship("Design")

    __mapper_args__ = {"version_id_col": version}


class Review(Base):
    """A customer's rating of a tailor for a given order."""
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    tailor_id = Column(Integer, ForeignKey("tailors.id"), nullable=False, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False)
    rating = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class OrderEvent(Base):
    """
    OrderEvent model representing historical events in an order's lifecycle.

    Attributes:
        id (int): Primary key, auto-incrementing event ID
        order_id (int): Foreign key to the order
        event_type (str): Type of event ("created", "status_changed")
        description (str): Human-readable description of the event
        old_value (str): Previous value (for changes, optional)
        new_value (str): New value (for changes, optional)
        created_at (datetime): Timestamp when the event occurred
    """
    __tablename__ = "order_events"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    event_type = Column(String, nullable=False)
    description = Column(Text, nullable=False)
    old_value = Column(String, nullable=True)
    new_value = Column(String, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Payment(Base):
    """
    Settlement recorded once the payment gateway confirms a transaction.

    amount is what the gateway collected (order total plus processing fee);
    commission_amount and tailor_earnings are always split from the order's
    total_amount.
    """
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    reference = Column(String, nullable=False, unique=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False, default="NGN")
    status = Column(String, nullable=False)
    channel = Column(String, nullable=True)
    commission_amount = Column(Numeric(12, 2), nullable=False, default=0)
    tailor_earnings = Column(Numeric(12, 2), nullable=False, default=0)
    paid_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
