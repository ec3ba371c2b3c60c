"""
Payment services for coordinating payment operations.

This module provides:
- PaymentService: Payment state machine (reconciliation, refunds, checkouts)
- PayoutExecutor: Bounded-retry payouts to businesses
- SubscriptionService: Subscription extension and checkout

Usage:
    from payments.services import PaymentService

    result = PaymentService.reconcile_charge(payment, event)

    from payments.services import PayoutExecutor

    result = PayoutExecutor.execute_for_payment(payment_id)

    from payments.services import SubscriptionService

    new_end = SubscriptionService.extend(subscription, plan="PRO_YEARLY")
"""

from payments.services.payment_service import PaymentService, Verification
from payments.services.payout_service import PayoutExecutor
from payments.services.subscription_service import (
    SubscriptionService,
    add_months,
    add_years,
)

__all__ = [
    "PaymentService",
    "PayoutExecutor",
    "SubscriptionService",
    "Verification",
    "add_months",
    "add_years",
]
