"""
Commission and settlement arithmetic.

The platform keeps a fixed percentage of every order's total amount; the rest
is the tailor's. The gateway's processing fee is charged on top of the order
total and never enters the commission split.
"""
import os
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from .errors import ValidationError

COMMISSION_RATE = Decimal(os.getenv("COMMISSION_RATE", "0.05"))
GATEWAY_FEE_RATE = Decimal(os.getenv("GATEWAY_FEE_RATE", "0.015"))

WHOLE_UNIT = Decimal("1")


@dataclass(frozen=True)
class CommissionBreakdown:
    """Split of base_amount between the platform and the tailor."""
    base_amount: Decimal
    commission_rate: Decimal
    commission_amount: Decimal
    tailor_earnings: Decimal


def _round_whole(amount: Decimal) -> Decimal:
    return amount.quantize(WHOLE_UNIT, rounding=ROUND_HALF_UP)


def calculate_commission(base_amount, rate=COMMISSION_RATE) -> CommissionBreakdown:
    """
    Split an amount into platform commission and tailor earnings.

    The commission is rounded half-up to a whole currency unit and the
    earnings are whatever remains, so the two always add up to base_amount.

    Args:
        base_amount: Order total (non-negative)
        rate: Commission rate, 0.05 unless configured otherwise

    Returns:
        CommissionBreakdown

    Raises:
        ValidationError: if base_amount is negative
    """
    base = Decimal(str(base_amount))
    rate = Decimal(str(rate))
    if base < 0:
        raise ValidationError(f"Commission base amount cannot be negative: {base}", field="base_amount")

    commission_amount = _round_whole(base * rate)
    tailor_earnings = base - commission_amount
    assert commission_amount >= 0, f"negative commission {commission_amount} for {base} at {rate}"

    return CommissionBreakdown(
        base_amount=base,
        commission_rate=rate,
        commission_amount=commission_amount,
        tailor_earnings=tailor_earnings,
    )


def calculate_gateway_fee(amount, rate=GATEWAY_FEE_RATE) -> Decimal:
    """Processing fee the gateway adds on top of an amount, rounded half-up."""
    return _round_whole(Decimal(str(amount)) * Decimal(str(rate)))


def checkout_amount(total_amount) -> Decimal:
    """Amount the customer pays at checkout: order total plus gateway fee."""
    total = Decimal(str(total_amount))
    return total + calculate_gateway_fee(total)
