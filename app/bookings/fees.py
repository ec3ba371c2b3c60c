"""
Late-cancellation fee and refund arithmetic.

Pure functions with no I/O. Amounts are Decimals in the payment currency
(KES by default); nothing here rounds or converts currencies.

    is_late(now, start_time, deadline_minutes)
        True once now is past start_time - deadline_minutes

    fee_owed(is_late, configured_fee)
        configured_fee when late, otherwise 0

    refund_owed(payment_amount, is_late, configured_fee)
        max(0, payment_amount - fee_owed(is_late, configured_fee))

Usage:
    from bookings import fees

    late = fees.is_late(timezone.now(), booking.start_time, booking.deadline_minutes)
    amount = fees.refund_owed(payment.amount, late, booking.cancellation_fee)
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal

ZERO = Decimal("0")


def _as_decimal(value, name: str) -> Decimal:
    amount = value if isinstance(value, Decimal) else Decimal(str(value))
    if amount < ZERO:
        raise ValueError(f"{name} must not be negative")
    return amount


def is_late(now: datetime, start_time: datetime, deadline_minutes: int) -> bool:
    """
    Check whether a cancellation at ``now`` is past the free-cancellation cutoff.

    The cutoff instant itself still counts as on time.

    Raises:
        ValueError: deadline_minutes is negative
    """
    if deadline_minutes < 0:
        raise ValueError("deadline_minutes must not be negative")
    return now > start_time - timedelta(minutes=deadline_minutes)


def fee_owed(is_late: bool, configured_fee) -> Decimal:
    """Fee the customer owes for cancelling; zero unless late."""
    fee = _as_decimal(configured_fee, "configured_fee")
    return fee if is_late else ZERO


def refund_owed(payment_amount, is_late: bool, configured_fee) -> Decimal:
    """
    Amount to return to the customer from a booking payment.

    Non-increasing in the fee and never negative.
    """
    amount = _as_decimal(payment_amount, "payment_amount")
    return max(ZERO, amount - fee_owed(is_late, configured_fee))
