"""
Order lifecycle management.

OrderLifecycleManager owns every change to an order: creation with its price
invariant, status transitions along validators.ORDER_SEQUENCE, the timeline
entries recorded alongside them and the notifications sent once they are
committed (real-time channels and outgoing webhooks).
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List

from . import cache, models, schemas, webhooks
from .commission import calculate_commission, calculate_gateway_fee
from .errors import ConcurrentUpdateError, InvalidTransitionError, NotFoundError, ValidationError
from .realtime import EventBus, order_channel, tailor_channel
from .storage import Storage
from .validators import (
    COMPLETED, ORDER_STATUSES, PENDING, is_terminal, normalize_status,
    validate_order_status_transition, validate_order_total,
)

logger = logging.getLogger(__name__)


def serialize_order(order: models.Order) -> Dict[str, Any]:
    """JSON-ready representation of an order, as sent to subscribers."""
    return schemas.Order.model_validate(order).model_dump(mode="json")


class OrderLifecycleManager:
    """
    State machine and notification fan-out for orders.

    Storage and the event bus are injected; the manager holds no state of
    its own and can be built per request.
    """

    MAX_ATTEMPTS = 3

    def __init__(self, storage: Storage, events: EventBus):
        self.storage = storage
        self.events = events

    def create_order(self, order: schemas.OrderCreate) -> models.Order:
        """
        Place a new order in the pending state.

        Raises:
            NotFoundError: if the customer, tailor or design does not exist
            ValidationError: if the design belongs to another tailor, or
                total_amount is not the sum of its components
        """
        if self.storage.get_user(order.user_id) is None:
            raise NotFoundError("User", order.user_id)
        if self.storage.get_tailor(order.tailor_id) is None:
            raise NotFoundError("Tailor", order.tailor_id)
        design = self.storage.get_design(order.design_id)
        if design is None:
            raise NotFoundError("Design", order.design_id)
        if design.tailor_id != order.tailor_id:
            raise ValidationError(
                f"Design {order.design_id} is not offered by tailor {order.tailor_id}",
                field="design_id",
            )

        is_valid, error_message = validate_order_total(order)
        if not is_valid:
            raise ValidationError(error_message, field="total_amount")

        now = models.utcnow()
        fields = order.model_dump()
        fields.update(status=PENDING, created_at=now, updated_at=now)

        try:
            db_order = self.storage.add_order(fields)
            self.storage.add_order_event(
                order_id=db_order.id,
                event_type="created",
                description=f"Order created with status '{PENDING}'",
                new_value=PENDING,
            )
            self.storage.commit()
        except Exception:
            self.storage.rollback()
            raise

        logger.info(f"Order {db_order.id} placed by user {order.user_id} with tailor {order.tailor_id}")

        payload = serialize_order(db_order)
        self.events.publish(tailor_channel(db_order.tailor_id), "new-order", payload)
        webhooks.notify_order_created(payload)
        return db_order

    def transition_status(self, order_id: int, new_status: str) -> models.Order:
        """
        Move an order to its next phase, or cancel it.

        The update is compare-and-swap on the order's version; when another
        writer wins the race the request is re-validated against the fresh
        status and retried.

        Raises:
            ValidationError: if new_status is not a known status
            NotFoundError: if the order does not exist
            InvalidTransitionError: if new_status is not reachable from the current status
        """
        requested = normalize_status(new_status)
        if requested not in ORDER_STATUSES:
            raise ValidationError(f"Unknown status: {new_status}", field="status")

        for attempt in range(1, self.MAX_ATTEMPTS + 1):
            order = self.storage.get_order(order_id)
            if order is None:
                raise NotFoundError("Order", order_id)

            old_status = order.status
            is_valid, _ = validate_order_status_transition(old_status, requested)
            if not is_valid:
                raise InvalidTransitionError(old_status, requested)

            try:
                self.storage.set_order_status(order, requested, self._next_timestamp(order))
                self.storage.add_order_event(
                    order_id=order_id,
                    event_type="status_changed",
                    description=f"Status changed from '{old_status}' to '{requested}'",
                    old_value=old_status,
                    new_value=requested,
                )
                if requested == COMPLETED:
                    self.storage.refresh_tailor_order_stats(order.tailor_id)
                self.storage.commit()
                break
            except ConcurrentUpdateError:
                logger.info(f"Order {order_id} changed concurrently (attempt {attempt}), re-validating")
                continue
            except Exception:
                self.storage.rollback()
                raise
        else:
            raise ConcurrentUpdateError(order_id)

        logger.info(f"Order {order_id} status changed from '{old_status}' to '{requested}'")

        payload = serialize_order(order)
        cache.invalidate_order(order_id)
        self.events.publish(
            order_channel(order_id),
            "order-status-changed",
            {"orderId": order_id, "status": requested, "order": payload},
        )
        webhooks.notify_order_status_changed(payload, old_status)
        return order

    @staticmethod
    def _next_timestamp(order: models.Order) -> datetime:
        now = models.utcnow()
        if order.updated_at is not None and now <= order.updated_at:
            # Keep updated_at strictly increasing even on a coarse clock
            now = order.updated_at + timedelta(microseconds=1)
        return now

    def get_order(self, order_id: int) -> models.Order:
        """
        Get an order with its design, tailor and customer loaded.

        Raises:
            NotFoundError: if the order does not exist
        """
        order = self.storage.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        return order

    def list_orders_for_user(self, user_id: int) -> List[models.Order]:
        return self.storage.get_orders_by_user(user_id)

    def list_orders_for_tailor(self, tailor_id: int) -> List[models.Order]:
        return self.storage.get_orders_by_tailor(tailor_id)

    def list_active_orders_for_user(self, user_id: int) -> List[models.Order]:
        """Orders of a customer that have not completed or been cancelled."""
        return [order for order in self.list_orders_for_user(user_id) if not is_terminal(order.status)]

    def order_timeline(self, order_id: int) -> List[models.OrderEvent]:
        self.get_order(order_id)
        return self.storage.get_order_events(order_id)

    def preview_commission(self, order: models.Order) -> Dict[str, Any]:
        """Commission split of an order's total with the amount charged at checkout."""
        breakdown = calculate_commission(order.total_amount)
        gateway_fee = calculate_gateway_fee(order.total_amount)
        return {
            "order_id": order.id,
            "base_amount": breakdown.base_amount,
            "commission_rate": breakdown.commission_rate,
            "commission_amount": breakdown.commission_amount,
            "tailor_earnings": breakdown.tailor_earnings,
            "gateway_fee": gateway_fee,
            "checkout_amount": breakdown.base_amount + gateway_fee,
        }
