"""
Workers for async payment processing.

This module contains Celery tasks for background payment operations:
- Payout executor: Pays businesses for successful booking payments
- Subscription monitor: Suspends businesses with lapsed subscriptions

Usage:
    from payments.workers import (
        execute_booking_payout,
        retry_unpaid_payouts,
        suspend_overdue_businesses,
    )

    execute_booking_payout.delay(str(payment_id))
"""

from payments.workers.payout_executor import (
    execute_booking_payout,
    retry_unpaid_payouts,
)
from payments.workers.subscription_monitor import suspend_overdue_businesses

__all__ = [
    # Payout Executor
    "execute_booking_payout",
    "retry_unpaid_payouts",
    # Subscription Monitor
    "suspend_overdue_businesses",
]
