"""
Persistence interface for the Orders service.

The order lifecycle depends only on this interface; crud.SqlAlchemyStorage is
the database-backed implementation. Mutating order methods stage changes and
commit() persists them together, so an order change, its timeline entry and
any rollups land in one transaction.
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from . import models


class Storage(ABC):
    """Abstract storage over the marketplace entities."""

    # Users

    @abstractmethod
    def get_user(self, user_id: int) -> Optional[models.User]:
        """Find a user by ID."""
        pass

    @abstractmethod
    def get_user_by_email(self, email: str) -> Optional[models.User]:
        """Find a user by email."""
        pass

    @abstractmethod
    def create_user(self, fields: Dict[str, Any]) -> models.User:
        """Create a user."""
        pass

    # Tailors

    @abstractmethod
    def get_tailor(self, tailor_id: int) -> Optional[models.Tailor]:
        """Find a tailor by ID."""
        pass

    @abstractmethod
    def get_tailor_by_email(self, email: str) -> Optional[models.Tailor]:
        """Find a tailor by email."""
        pass

    @abstractmethod
    def create_tailor(self, fields: Dict[str, Any]) -> models.Tailor:
        """Create a tailor."""
        pass

    @abstractmethod
    def refresh_tailor_order_stats(self, tailor_id: int) -> None:
        """Stage total_orders/revenue recomputed from the tailor's completed orders."""
        pass

    @abstractmethod
    def refresh_tailor_review_stats(self, tailor_id: int) -> None:
        """Stage rating/total_reviews recomputed from the tailor's reviews."""
        pass

    # Designs

    @abstractmethod
    def get_design(self, design_id: int) -> Optional[models.Design]:
        """Find a design by ID."""
        pass

    @abstractmethod
    def create_design(self, fields: Dict[str, Any]) -> models.Design:
        """Create a design."""
        pass

    # Measurements and style preferences

    @abstractmethod
    def get_measurement(self, measurement_id: int) -> Optional[models.Measurement]:
        """Find a measurement record by ID."""
        pass

    @abstractmethod
    def get_measurement_by_user(self, user_id: int) -> Optional[models.Measurement]:
        """Find the latest measurement record of a user."""
        pass

    @abstractmethod
    def create_measurement(self, fields: Dict[str, Any]) -> models.Measurement:
        """Create a measurement record."""
        pass

    @abstractmethod
    def update_measurement(self, measurement_id: int, fields: Dict[str, Any]) -> Optional[models.Measurement]:
        """Update a measurement record; None if it does not exist."""
        pass

    @abstractmethod
    def get_style_preference_by_user(self, user_id: int) -> Optional[models.StylePreference]:
        """Find the latest style preference of a user."""
        pass

    @abstractmethod
    def create_style_preference(self, fields: Dict[str, Any]) -> models.StylePreference:
        """Create a style preference."""
        pass

    # Reviews

    @abstractmethod
    def add_review(self, fields: Dict[str, Any]) -> models.Review:
        """Stage a review."""
        pass

    @abstractmethod
    def get_reviews_by_tailor(self, tailor_id: int) -> List[models.Review]:
        """List the reviews of a tailor, newest first."""
        pass

    # Orders

    @abstractmethod
    def get_order(self, order_id: int) -> Optional[models.Order]:
        """Find an order by ID, reloading its state from the store."""
        pass

    @abstractmethod
    def get_orders_by_user(self, user_id: int) -> List[models.Order]:
        """List a customer's orders, newest first."""
        pass

    @abstractmethod
    def get_orders_by_tailor(self, tailor_id: int) -> List[models.Order]:
        """List a tailor's orders, newest first."""
        pass

    @abstractmethod
    def add_order(self, fields: Dict[str, Any]) -> models.Order:
        """Stage a new order and assign its ID."""
        pass

    @abstractmethod
    def set_order_status(self, order: models.Order, status: str, updated_at: datetime) -> models.Order:
        """
        Stage a status change.

        Raises:
            ConcurrentUpdateError: if the order changed since it was read
        """
        pass

    @abstractmethod
    def add_order_event(
        self,
        order_id: int,
        event_type: str,
        description: str,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
    ) -> models.OrderEvent:
        """Stage a timeline entry for an order."""
        pass

    @abstractmethod
    def get_order_events(self, order_id: int) -> List[models.OrderEvent]:
        """List an order's timeline, oldest first."""
        pass

    # Payments

    @abstractmethod
    def get_payment_by_reference(self, reference: str) -> Optional[models.Payment]:
        """Find a settlement by gateway reference."""
        pass

    @abstractmethod
    def add_payment(self, fields: Dict[str, Any]) -> models.Payment:
        """Stage a settlement."""
        pass

    @abstractmethod
    def get_payments_by_user(self, user_id: int) -> List[models.Payment]:
        """List a user's settlements, newest first."""
        pass

    # Unit of work

    @abstractmethod
    def commit(self) -> None:
        """
        Persist staged changes.

        Raises:
            ConcurrentUpdateError: if a staged order update lost a race
        """
        pass

    @abstractmethod
    def rollback(self) -> None:
        """Discard staged changes."""
        pass
