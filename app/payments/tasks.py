"""
Celery tasks for payment processing.

Celery autodiscovers ``tasks`` modules; the task implementations live in
payments.workers and are re-exported here.

Usage:
    from payments.tasks import execute_booking_payout

    execute_booking_payout.delay(str(payment_id))

    # Typically via celery-beat
    from payments.tasks import suspend_overdue_businesses, retry_unpaid_payouts
"""

from payments.workers import (
    execute_booking_payout,
    retry_unpaid_payouts,
    suspend_overdue_businesses,
)

__all__ = [
    "execute_booking_payout",
    "retry_unpaid_payouts",
    "suspend_overdue_businesses",
]
