"""
Payment routes: Paystack hosted checkout, verification and webhooks.

Endpoints:
    POST /payments/initialize: Start a checkout for an order
    GET /payments/verify/{reference}: Verify a transaction and record its settlement
    POST /payments/webhook: Signed gateway callbacks
    GET /payments/history/{user_id}: Settlements paid by a customer
    GET /payments/earnings/{tailor_id}: Earnings over a tailor's completed orders
"""
import json
import logging
import os
import secrets
import string
import time
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from fastapi import APIRouter, Depends, Header, Request, Response, status
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import IntegrityError

from . import models, schemas
from .clients import paystack_client
from .commission import CommissionBreakdown, calculate_commission, checkout_amount
from .dependencies import get_storage
from .errors import GatewayTimeout, NotFoundError, SignatureError, ValidationError
from .storage import Storage
from .validators import COMPLETED

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("ofi_orders.security")

CALLBACK_URL = os.getenv("PAYSTACK_CALLBACK_URL", "")
CURRENCY = os.getenv("PAYMENT_CURRENCY", "NGN")

router = APIRouter(prefix="/payments", tags=["payments"])


def generate_reference() -> str:
    """Transaction reference in the ofi_<millis>_<random> format."""
    alphabet = string.ascii_lowercase + string.digits
    suffix = "".join(secrets.choice(alphabet) for _ in range(9))
    return f"ofi_{int(time.time() * 1000)}_{suffix}"


def _order_id_from(metadata: Any) -> int:
    # The gateway echoes metadata back either as an object or a JSON string
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata) if metadata else {}
        except ValueError:
            metadata = {}
    order_id = metadata.get("order_id") if isinstance(metadata, dict) else None
    if order_id is None:
        raise ValidationError("Payment metadata does not reference an order", field="metadata.order_id")
    try:
        return int(order_id)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid order reference in payment metadata: {order_id}", field="metadata.order_id")


def _parse_paid_at(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Unparseable paid_at timestamp from gateway: {value}")
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def record_settlement(storage: Storage, transaction: Dict[str, Any]) -> Tuple[models.Payment, CommissionBreakdown]:
    """
    Record a successful gateway transaction against its order.

    The commission is split from the order's total_amount, not from the
    amount collected, which also includes the gateway fee. Recording the
    same reference twice returns the first settlement.

    Raises:
        ValidationError: if the transaction does not reference an order, or
            collected less than the order's checkout amount or in another
            currency
        NotFoundError: if the referenced order does not exist
    """
    reference = transaction.get("reference")
    if not reference:
        raise ValidationError("Transaction has no reference", field="reference")

    order_id = _order_id_from(transaction.get("metadata"))
    order = storage.get_order(order_id)
    if order is None:
        raise NotFoundError("Order", order_id)
    breakdown = calculate_commission(order.total_amount)

    existing = storage.get_payment_by_reference(reference)
    if existing is not None:
        return existing, breakdown

    currency = transaction.get("currency") or CURRENCY
    if currency != CURRENCY:
        raise ValidationError(f"Transaction {reference} was paid in {currency}, expected {CURRENCY}", field="currency")
    amount = paystack_client.from_minor_units(transaction["amount"])
    due = checkout_amount(order.total_amount)
    if amount < due:
        raise ValidationError(
            f"Transaction {reference} collected {amount} {currency}, order {order.id} requires {due}",
            field="amount",
        )

    fields = {
        "reference": reference,
        "order_id": order.id,
        "user_id": order.user_id,
        "amount": amount,
        "currency": currency,
        "status": "success",
        "channel": transaction.get("channel"),
        "commission_amount": breakdown.commission_amount,
        "tailor_earnings": breakdown.tailor_earnings,
        "paid_at": _parse_paid_at(transaction.get("paid_at")),
    }
    try:
        payment = storage.add_payment(fields)
        storage.commit()
    except IntegrityError:
        # Webhook and verify raced on the same reference
        storage.rollback()
        payment = storage.get_payment_by_reference(reference)
        if payment is None:
            raise
        return payment, breakdown

    logger.info(
        f"Settlement {reference} recorded for order {order.id}: "
        f"commission {breakdown.commission_amount}, tailor earnings {breakdown.tailor_earnings}"
    )
    return payment, breakdown


def _verification(payment: models.Payment, breakdown: Optional[CommissionBreakdown]) -> schemas.PaymentVerification:
    return schemas.PaymentVerification(
        success=True,
        status=payment.status,
        data=schemas.Payment.model_validate(payment),
        commission=schemas.Commission.model_validate(breakdown) if breakdown is not None else None,
    )


@router.post("/initialize", response_model=schemas.PaymentSession)
async def initialize_payment(
    payment: schemas.PaymentInitialize,
    storage: Storage = Depends(get_storage),
):
    """
    Start a hosted checkout.

    When metadata.order_id names an order and no amount is given, the
    order's checkout amount (total plus gateway fee) is charged.

    Raises:
        ValidationError: 400 if neither an amount nor an order is given
        NotFoundError: 404 if metadata.order_id names an unknown order
        GatewayError: 502 if the gateway refuses the transaction
    """
    amount = payment.amount
    if "order_id" in payment.metadata:
        order_id = _order_id_from(payment.metadata)
        order = storage.get_order(order_id)
        if order is None:
            raise NotFoundError("Order", order_id)
        if amount is None:
            amount = checkout_amount(order.total_amount)
    if amount is None:
        raise ValidationError("amount is required when no order is referenced", field="amount")

    reference = payment.reference or generate_reference()
    session = await paystack_client.initialize_transaction(
        email=payment.email,
        amount=amount,
        reference=reference,
        metadata=payment.metadata,
        callback_url=CALLBACK_URL or None,
    )
    logger.info(f"Checkout {session['reference']} initialized for {amount} {CURRENCY}")
    return schemas.PaymentSession(**session)


@router.get("/verify/{reference}", response_model=schemas.PaymentVerification)
async def verify_payment(
    reference: str,
    response: Response,
    storage: Storage = Depends(get_storage),
):
    """
    Verify a transaction with the gateway and record its settlement.

    Returns:
        200 with the settlement and commission split on success,
        202 with status "pending_verification" if the gateway timed out,
        400 if the gateway reports the transaction did not succeed or it
        collected less than the order's checkout amount
    """
    existing = storage.get_payment_by_reference(reference)
    if existing is not None:
        order = storage.get_order(existing.order_id) if existing.order_id else None
        commission = calculate_commission(order.total_amount) if order is not None else None
        return _verification(existing, commission)

    try:
        transaction = await paystack_client.verify_transaction(reference)
    except GatewayTimeout:
        response.status_code = status.HTTP_202_ACCEPTED
        return schemas.PaymentVerification(success=False, status="pending_verification")

    transaction_status = transaction.get("status") or "failed"
    if transaction_status != "success":
        logger.info(f"Transaction {reference} not successful: {transaction_status}")
        response.status_code = status.HTTP_400_BAD_REQUEST
        return schemas.PaymentVerification(success=False, status=transaction_status)

    transaction.setdefault("reference", reference)
    payment, breakdown = record_settlement(storage, transaction)
    return _verification(payment, breakdown)


@router.post("/webhook")
async def payment_webhook(
    request: Request,
    x_paystack_signature: Optional[str] = Header(None),
    storage: Storage = Depends(get_storage),
):
    """
    Receive gateway events.

    The signature is checked against the raw body before anything in it is
    trusted; a mismatch is rejected with 400.
    """
    raw_body = await request.body()
    if not paystack_client.verify_signature(raw_body, x_paystack_signature):
        client_host = request.client.host if request.client else "unknown"
        security_logger.warning(f"Rejected payment webhook with invalid signature from {client_host}")
        raise SignatureError()

    try:
        event = json.loads(raw_body)
    except ValueError:
        raise ValidationError("Webhook body is not valid JSON")

    event_name = event.get("event")
    data = event.get("data") or {}

    if event_name == "charge.success":
        try:
            record_settlement(storage, data)
        except (ValidationError, NotFoundError) as e:
            logger.warning(f"Successful charge {data.get('reference')} not settled: {e.message}")
    elif event_name == "charge.failed":
        logger.info(f"Payment failed: {data.get('reference')}")
    else:
        logger.info(f"Unhandled payment event: {event_name}")

    return PlainTextResponse("OK")


@router.get("/history/{user_id}", response_model=List[schemas.Payment])
def payment_history(user_id: int, storage: Storage = Depends(get_storage)):
    """Settlements recorded for a customer, newest first."""
    return storage.get_payments_by_user(user_id)


@router.get("/earnings/{tailor_id}", response_model=schemas.TailorEarnings)
def tailor_earnings(tailor_id: int, storage: Storage = Depends(get_storage)):
    """
    Earnings over a tailor's completed orders.

    Commission is split per order, the same way each settlement is.
    """
    if storage.get_tailor(tailor_id) is None:
        raise NotFoundError("Tailor", tailor_id)

    completed = [order for order in storage.get_orders_by_tailor(tailor_id) if order.status == COMPLETED]
    total_revenue = sum((Decimal(str(order.total_amount)) for order in completed), Decimal("0"))
    platform_commission = sum(
        (calculate_commission(order.total_amount).commission_amount for order in completed),
        Decimal("0"),
    )
    return schemas.TailorEarnings(
        tailor_id=tailor_id,
        total_orders=len(completed),
        total_revenue=total_revenue,
        platform_commission=platform_commission,
        earnings=total_revenue - platform_commission,
        currency=CURRENCY,
    )
