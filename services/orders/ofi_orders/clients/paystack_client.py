"""
HTTP client for the Paystack payment gateway.

This module initializes hosted-checkout transactions, verifies them
server-side and checks the signature of webhook callbacks. Nothing the
gateway says is trusted until it has gone through verify_transaction() or
verify_signature().
"""
import hashlib
import hmac
import logging
import os
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Optional

import httpx

from ..errors import GatewayError, GatewayTimeout

logger = logging.getLogger(__name__)

PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "sk_test_your_secret_key")
TIMEOUT = float(os.getenv("PAYSTACK_TIMEOUT", "10.0"))  # seconds

CHANNELS = ["card", "bank", "ussd", "mobile_money"]


def _client(timeout: float) -> httpx.AsyncClient:
    return httpx.AsyncClient(base_url=PAYSTACK_BASE_URL, timeout=timeout)


def _headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {PAYSTACK_SECRET_KEY}",
        "Content-Type": "application/json",
    }


def to_minor_units(amount) -> int:
    """Naira to kobo."""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount) -> Decimal:
    """Kobo to naira."""
    return Decimal(str(amount)) / 100


def _parse(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        raise GatewayError(f"Unexpected gateway response (HTTP {response.status_code})")
    if not isinstance(body, dict):
        raise GatewayError("Unexpected gateway response shape")
    return body


async def initialize_transaction(
    email: str,
    amount,
    reference: str,
    metadata: Optional[Dict[str, Any]] = None,
    callback_url: Optional[str] = None,
) -> Dict[str, str]:
    """
    Start a hosted-checkout transaction.

    Args:
        email: Payer email
        amount: Amount in naira
        reference: Unique transaction reference
        metadata: Free-form data echoed back on verification (carries order_id)
        callback_url: Where the gateway redirects after checkout

    Returns:
        Dict with reference, authorization_url and access_code

    Raises:
        GatewayTimeout: if the gateway did not answer in time
        GatewayError: if the gateway refused the request or answered unexpectedly
    """
    payload = {
        "email": email,
        "amount": to_minor_units(amount),
        "reference": reference,
        "metadata": metadata or {},
        "channels": CHANNELS,
    }
    if callback_url:
        payload["callback_url"] = callback_url

    try:
        async with _client(TIMEOUT) as client:
            response = await client.post("/transaction/initialize", json=payload, headers=_headers())
    except httpx.TimeoutException:
        raise GatewayTimeout("Payment gateway timed out during initialization")
    except httpx.HTTPError as e:
        raise GatewayError(f"Payment gateway error: {str(e)}")

    body = _parse(response)
    if not body.get("status"):
        raise GatewayError(body.get("message") or "Payment initialization failed")

    data = body.get("data") or {}
    try:
        return {
            "reference": data["reference"],
            "authorization_url": data["authorization_url"],
            "access_code": data["access_code"],
        }
    except KeyError as e:
        raise GatewayError(f"Gateway initialization response is missing {e}")


async def verify_transaction(reference: str, timeout: Optional[float] = None) -> Dict[str, Any]:
    """
    Fetch the gateway's record of a transaction.

    Args:
        reference: Transaction reference
        timeout: Seconds to wait for the gateway (defaults to PAYSTACK_TIMEOUT)

    Returns:
        The transaction data (status, amount in kobo, currency, metadata, ...)

    Raises:
        GatewayTimeout: if the gateway did not answer in time; the payment
            may still have gone through
        GatewayError: if the gateway reported an error or answered unexpectedly
    """
    try:
        async with _client(timeout or TIMEOUT) as client:
            response = await client.get(f"/transaction/verify/{reference}", headers=_headers())
    except httpx.TimeoutException:
        logger.warning(f"Verification of {reference} timed out")
        raise GatewayTimeout(f"Payment gateway timed out verifying {reference}")
    except httpx.HTTPError as e:
        raise GatewayError(f"Payment gateway error: {str(e)}")

    body = _parse(response)
    if not body.get("status"):
        raise GatewayError(body.get("message") or "Payment verification failed")

    data = body.get("data")
    if not isinstance(data, dict) or "status" not in data or "amount" not in data:
        raise GatewayError("Gateway verification response has an unexpected shape")
    return data


def verify_signature(raw_body: bytes, signature: Optional[str]) -> bool:
    """
    Check a webhook's x-paystack-signature header.

    The signature is the hex HMAC-SHA512 of the raw request body keyed with
    the secret key.
    """
    if not signature:
        return False
    expected = hmac.new(PAYSTACK_SECRET_KEY.encode(), raw_body, hashlib.sha512).hexdigest()
    # Header values arrive latin-1 decoded and may hold non-ASCII bytes
    return hmac.compare_digest(expected.encode(), signature.encode("latin-1", "replace"))
