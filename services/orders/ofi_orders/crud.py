"""
CRUD (Create, Read, Update) operations for the Orders service.

SqlAlchemyStorage implements the storage.Storage interface on top of a
SQLAlchemy session. Plain entity creation commits immediately; order,
review and payment writes are staged and persisted by commit().
"""
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from . import models
from .errors import ConcurrentUpdateError
from .storage import Storage

# Set up logging
logger = logging.getLogger(__name__)


class SqlAlchemyStorage(Storage):
    """Storage backed by a SQLAlchemy session (one per request)."""

    def __init__(self, db: Session):
        self.db = db

    def _create(self, model, fields: Dict[str, Any]):
        instance = model(**fields)
        self.db.add(instance)
        self.db.commit()
        self.db.refresh(instance)
        return instance

    def _stage(self, model, fields: Dict[str, Any]):
        instance = model(**fields)
        self.db.add(instance)
        self.db.flush()
        return instance

    # Users

    def get_user(self, user_id: int) -> Optional[models.User]:
        return self.db.get(models.User, user_id)

    def get_user_by_email(self, email: str) -> Optional[models.User]:
        return self.db.query(models.User).filter(models.User.email == email).first()

    def create_user(self, fields: Dict[str, Any]) -> models.User:
        return self._create(models.User, fields)

    # Tailors

    def get_tailor(self, tailor_id: int) -> Optional[models.Tailor]:
        return self.db.get(models.Tailor, tailor_id)

    def get_tailor_by_email(self, email: str) -> Optional[models.Tailor]:
        return self.db.query(models.Tailor).filter(models.Tailor.email == email).first()

    def create_tailor(self, fields: Dict[str, Any]) -> models.Tailor:
        return self._create(models.Tailor, fields)

    def refresh_tailor_order_stats(self, tailor_id: int) -> None:
        tailor = self.get_tailor(tailor_id)
        if tailor is None:
            return
        # Staged status changes must be visible to the aggregate below
        self.db.flush()
        total_orders, revenue = (
            self.db.query(
                func.count(models.Order.id),
                func.coalesce(func.sum(models.Order.total_amount), 0),
            )
            .filter(models.Order.tailor_id == tailor_id, models.Order.status == "completed")
            .one()
        )
        tailor.total_orders = total_orders
        tailor.revenue = Decimal(str(revenue))
        logger.info(f"Tailor {tailor_id} rollup: {total_orders} completed orders, revenue {revenue}")

    def refresh_tailor_review_stats(self, tailor_id: int) -> None:
        tailor = self.get_tailor(tailor_id)
        if tailor is None:
            return
        self.db.flush()
        total_reviews, average = (
            self.db.query(func.count(models.Review.id), func.avg(models.Review.rating))
            .filter(models.Review.tailor_id == tailor_id)
            .one()
        )
        tailor.total_reviews = total_reviews
        tailor.rating = Decimal(str(average or 0)).quantize(Decimal("0.01"))

    # Designs

    def get_design(self, design_id: int) -> Optional[models.Design]:
        return self.db.get(models.Design, design_id)

    def create_design(self, fields: Dict[str, Any]) -> models.Design:
        return self._create(models.Design, fields)

    # Measurements and style preferences

    def get_measurement(self, measurement_id: int) -> Optional[models.Measurement]:
        return self.db.get(models.Measurement, measurement_id)

    def get_measurement_by_user(self, user_id: int) -> Optional[models.Measurement]:
        return (
            self.db.query(models.Measurement)
            .filter(models.Measurement.user_id == user_id)
            .order_by(models.Measurement.id.desc())
            .first()
        )

    def create_measurement(self, fields: Dict[str, Any]) -> models.Measurement:
        return self._create(models.Measurement, fields)

    def update_measurement(self, measurement_id: int, fields: Dict[str, Any]) -> Optional[models.Measurement]:
        measurement = self.get_measurement(measurement_id)
        if measurement is None:
            return None
        for key, value in fields.items():
            setattr(measurement, key, value)
        self.db.commit()
        self.db.refresh(measurement)
        return measurement

    def get_style_preference_by_user(self, user_id: int) -> Optional[models.StylePreference]:
        return (
            self.db.query(models.StylePreference)
            .filter(models.StylePreference.user_id == user_id)
            .order_by(models.StylePreference.id.desc())
            .first()
        )

    def create_style_preference(self, fields: Dict[str, Any]) -> models.StylePreference:
        return self._create(models.StylePreference, fields)

    # Reviews

    def add_review(self, fields: Dict[str, Any]) -> models.Review:
        return self._stage(models.Review, fields)

    def get_reviews_by_tailor(self, tailor_id: int) -> List[models.Review]:
        return (
            self.db.query(models.Review)
            .filter(models.Review.tailor_id == tailor_id)
            .order_by(models.Review.id.desc())
            .all()
        )

    # Orders

    def get_order(self, order_id: int) -> Optional[models.Order]:
        return (
            self.db.query(models.Order)
            .populate_existing()
            .filter(models.Order.id == order_id)
            .first()
        )

    def get_orders_by_user(self, user_id: int) -> List[models.Order]:
        return (
            self.db.query(models.Order)
            .filter(models.Order.user_id == user_id)
            .order_by(models.Order.id.desc())
            .all()
        )

    def get_orders_by_tailor(self, tailor_id: int) -> List[models.Order]:
        return (
            self.db.query(models.Order)
            .filter(models.Order.tailor_id == tailor_id)
            .order_by(models.Order.id.desc())
            .all()
        )

    def add_order(self, fields: Dict[str, Any]) -> models.Order:
        return self._stage(models.Order, fields)

    def set_order_status(self, order: models.Order, status: str, updated_at: datetime) -> models.Order:
        order_id = order.id
        order.status = status
        order.updated_at = updated_at
        try:
            self.db.flush()
        except StaleDataError:
            self.db.rollback()
            logger.warning(f"Order {order_id} changed underneath a status update")
            raise ConcurrentUpdateError(order_id)
        return order

    def add_order_event(
        self,
        order_id: int,
        event_type: str,
        description: str,
        old_value: Optional[str] = None,
        new_value: Optional[str] = None,
    ) -> models.OrderEvent:
        return self._stage(models.OrderEvent, {
            "order_id": order_id,
            "event_type": event_type,
            "description": description,
            "old_value": old_value,
            "new_value": new_value,
        })

    def get_order_events(self, order_id: int) -> List[models.OrderEvent]:
        return (
            self.db.query(models.OrderEvent)
            .filter(models.OrderEvent.order_id == order_id)
            .order_by(models.OrderEvent.id)
            .all()
        )

    # Payments

    def get_payment_by_reference(self, reference: str) -> Optional[models.Payment]:
        return self.db.query(models.Payment).filter(models.Payment.reference == reference).first()

    def add_payment(self, fields: Dict[str, Any]) -> models.Payment:
        return self._stage(models.Payment, fields)

    def get_payments_by_user(self, user_id: int) -> List[models.Payment]:
        return (
            self.db.query(models.Payment)
            .filter(models.Payment.user_id == user_id)
            .order_by(models.Payment.id.desc())
            .all()
        )

    # Unit of work

    def commit(self) -> None:
        try:
            self.db.commit()
        except StaleDataError as e:
            self.db.rollback()
            logger.warning(f"Commit lost a concurrent update: {e}")
            raise ConcurrentUpdateError()

    def rollback(self) -> None:
        self.db.rollback()
