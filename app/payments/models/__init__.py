"""
Payment domain models.

This module contains all payment-related models:
- Payment: Booking charges, cancellation fees and plan charges
- Subscription: A business's plan and paid-up period
- SubscriptionPayment: One payment towards a subscription period
- WebhookLog: Idempotency ledger for provider webhooks
- PayoutSettings: Where a business receives payouts
- OperatorAlert: Durable operator-facing alerts
"""

from payments.models.operator_alert import OperatorAlert
from payments.models.payment import Payment
from payments.models.payout_settings import PayoutSettings
from payments.models.subscription import Subscription, SubscriptionPayment
from payments.models.webhook_log import WebhookLog

__all__ = [
    "OperatorAlert",
    "Payment",
    "PayoutSettings",
    "Subscription",
    "SubscriptionPayment",
    "WebhookLog",
]
