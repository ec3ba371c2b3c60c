"""
State and choice enums for payment models.

These are Django TextChoices for database storage and admin integration.
The status enums back django-fsm fields.

State Machines Overview:

Payment States:
    pending → success → refunded
    pending → failed

SubscriptionPayment States:
    pending → success
    pending → failed

Terminal states never change again, except Payment success → refunded.
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    States for the Payment lifecycle.

    Terminal states: FAILED, REFUNDED (SUCCESS only moves to REFUNDED)
    """

    PENDING = "PENDING", "Pending"
    SUCCESS = "SUCCESS", "Success"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"


class PaymentType(models.TextChoices):
    """
    What a Payment pays for.

    BOOKING: Customer paying for a booked service
    CANCELLATION: Customer paying a late cancellation fee
    SUBSCRIPTION: Business paying for its plan
    """

    BOOKING = "BOOKING", "Booking"
    CANCELLATION = "CANCELLATION", "Cancellation fee"
    SUBSCRIPTION = "SUBSCRIPTION", "Subscription"


class PaymentMethod(models.TextChoices):
    """Payment instrument reported by the provider."""

    MPESA = "MPESA", "M-Pesa"
    CARD = "CARD", "Card"
    BANK = "BANK", "Bank"
    OTHER = "OTHER", "Other"


class PaymentProvider(models.TextChoices):
    """Payment gateways the platform integrates with."""

    FLUTTERWAVE = "FLUTTERWAVE", "Flutterwave"
    INTASEND = "INTASEND", "IntaSend"


class SubscriptionPaymentStatus(models.TextChoices):
    """States for the SubscriptionPayment lifecycle."""

    PENDING = "PENDING", "Pending"
    SUCCESS = "SUCCESS", "Success"
    FAILED = "FAILED", "Failed"


class SubscriptionPlan(models.TextChoices):
    """
    Subscription plans.

    *_YEARLY plans extend the period by one calendar year, all others by
    one calendar month.
    """

    BASIC_MONTHLY = "BASIC_MONTHLY", "Basic (monthly)"
    PRO_MONTHLY = "PRO_MONTHLY", "Pro (monthly)"
    PRO_YEARLY = "PRO_YEARLY", "Pro (yearly)"


# Plan prices in the default currency
PLAN_PRICES = {
    SubscriptionPlan.BASIC_MONTHLY: 1000,
    SubscriptionPlan.PRO_MONTHLY: 2500,
    SubscriptionPlan.PRO_YEARLY: 25000,
}


def is_annual_plan(plan: str) -> bool:
    """Check whether a plan renews yearly."""
    return str(plan).upper().endswith("_YEARLY")


class PayoutMethod(models.TextChoices):
    """
    Where a business receives its payouts.

    MPESA_PHONE: M-Pesa B2C to a phone number
    MPESA_TILL: M-Pesa Buy Goods till
    MPESA_PAYBILL: M-Pesa Paybill with account reference
    BANK: Bank account transfer
    """

    MPESA_PHONE = "MPESA_PHONE", "M-Pesa phone"
    MPESA_TILL = "MPESA_TILL", "M-Pesa till"
    MPESA_PAYBILL = "MPESA_PAYBILL", "M-Pesa paybill"
    BANK = "BANK", "Bank account"


class AlertKind(models.TextChoices):
    """
    Reasons an operator must look at a payment.

    PAYOUT_EXHAUSTED: Payout retries used up on transient errors
    PAYOUT_REJECTED: Provider refused the payout (bad destination, no settings)
    STATUS_MISMATCH: Webhook claimed success, provider status said otherwise
    VERIFICATION_FAILED: Provider status could not be fetched in time
    PROCESSING_ERROR: Webhook handler failed after the event was recorded
    """

    PAYOUT_EXHAUSTED = "PAYOUT_EXHAUSTED", "Payout retries exhausted"
    PAYOUT_REJECTED = "PAYOUT_REJECTED", "Payout rejected"
    STATUS_MISMATCH = "STATUS_MISMATCH", "Provider status mismatch"
    VERIFICATION_FAILED = "VERIFICATION_FAILED", "Status verification failed"
    PROCESSING_ERROR = "PROCESSING_ERROR", "Webhook processing error"
