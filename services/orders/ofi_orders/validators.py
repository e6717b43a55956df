"""
Validation utilities for the Orders service.

Provides the order status machine and the business rules checked beyond
schema validation.
"""
from typing import Tuple
from decimal import Decimal
from . import schemas

PENDING = "pending"
MEASUREMENTS_VERIFIED = "measurements_verified"
IN_PROGRESS = "in_progress"
QUALITY_CHECK = "quality_check"
SHIPPED = "shipped"
COMPLETED = "completed"
CANCELLED = "cancelled"

# Production phases in the order they must be visited
ORDER_SEQUENCE = (
    PENDING,
    MEASUREMENTS_VERIFIED,
    IN_PROGRESS,
    QUALITY_CHECK,
    SHIPPED,
    COMPLETED,
)

TERMINAL_STATUSES = frozenset({COMPLETED, CANCELLED})

ORDER_STATUSES = frozenset(ORDER_SEQUENCE) | {CANCELLED}

# Older vocabulary still sent by some clients
STATUS_ALIASES = {
    "confirmed": MEASUREMENTS_VERIFIED,
    "delivered": COMPLETED,
}

# Each non-terminal phase may advance one step or be cancelled
VALID_TRANSITIONS = {
    status: (
        frozenset({ORDER_SEQUENCE[index + 1], CANCELLED})
        if status not in TERMINAL_STATUSES else frozenset()
    )
    for index, status in enumerate(ORDER_SEQUENCE)
}
VALID_TRANSITIONS[CANCELLED] = frozenset()


def normalize_status(status: str) -> str:
    """
    Map a client-supplied status onto the canonical vocabulary.

    Returns:
        The canonical status, or the input unchanged if it is unknown
    """
    cleaned = (status or "").strip().lower()
    return STATUS_ALIASES.get(cleaned, cleaned)


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def validate_order_total(order: schemas.OrderCreate) -> Tuple[bool, str]:
    """
    Validate that the order total matches the sum of its price components.

    Args:
        order: Order data submitted by the client

    Returns:
        Tuple of (is_valid, error_message)
    """
    calculated_total = (
        Decimal(str(order.design_price))
        + Decimal(str(order.customization_fee))
        + Decimal(str(order.delivery_fee))
    )
    claimed_total = Decimal(str(order.total_amount))

    if calculated_total != claimed_total:
        return False, f"Order total mismatch: calculated {calculated_total}, claimed {claimed_total}"

    return True, ""


def validate_order_status_transition(old_status: str, new_status: str) -> Tuple[bool, str]:
    """
    Validate that a status transition is allowed.

    Args:
        old_status: Current order status
        new_status: Requested order status (canonical)

    Returns:
        Tuple of (is_valid, error_message)
    """
    if old_status not in VALID_TRANSITIONS:
        return False, f"Unknown status: {old_status}"

    if new_status not in VALID_TRANSITIONS:
        return False, f"Unknown status: {new_status}"

    if new_status not in VALID_TRANSITIONS[old_status]:
        return False, f"Invalid status transition: {old_status} -> {new_status}"

    return True, ""
