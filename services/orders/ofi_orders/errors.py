"""
Exceptions raised by the Orders service core.

Every error here is an expected, recoverable condition; the HTTP layer maps
each class onto a structured JSON response (see main.py).
"""
from typing import Optional


class OrderServiceError(Exception):
    """Base exception for the Orders service."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        super().__init__(self.message)


class ValidationError(OrderServiceError):
    """Raised when input is malformed or breaks a business rule."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


class NotFoundError(OrderServiceError):
    """Raised when a referenced entity does not exist."""

    def __init__(self, entity_name: str, entity_id):
        super().__init__(
            message=f"{entity_name} with id '{entity_id}' not found",
            code="NOT_FOUND"
        )
        self.entity_name = entity_name
        self.entity_id = entity_id


class InvalidTransitionError(OrderServiceError):
    """Raised when a status change is not reachable from the current status."""

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            message=f"Invalid status transition: {current_status} -> {requested_status}",
            code="INVALID_TRANSITION"
        )
        self.current_status = current_status
        self.requested_status = requested_status


class ConcurrentUpdateError(OrderServiceError):
    """Raised when an order row changed underneath an update."""

    def __init__(self, order_id: Optional[int] = None):
        subject = f"Order {order_id}" if order_id is not None else "An order"
        super().__init__(
            message=f"{subject} was modified concurrently",
            code="CONCURRENT_UPDATE"
        )
        self.order_id = order_id


class GatewayError(OrderServiceError):
    """Raised when the payment gateway fails or answers with an unexpected shape."""

    def __init__(self, message: str):
        super().__init__(message=message, code="GATEWAY_ERROR")


class GatewayTimeout(GatewayError):
    """Raised when the payment gateway did not answer in time."""


class SignatureError(OrderServiceError):
    """Raised when a gateway webhook carries a bad signature."""

    def __init__(self):
        super().__init__(message="Invalid signature", code="INVALID_SIGNATURE")
