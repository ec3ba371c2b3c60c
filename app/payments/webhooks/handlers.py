"""
Webhook event handlers for provider payment events.

Events are routed by the prefix of their reference (our tx_ref), which
encodes what the charge was for:

    booking-<bookingId>-<ms>            Payment(type=BOOKING)
    cancellation-<bookingId>-<ms>       Payment(type=CANCELLATION)
    subscription-<businessId>-<id>      SubscriptionPayment
    refund-<providerPaymentId>          refund event without a reference

Handlers only run after the idempotency ledger accepted the event, so
each one runs at most once per reference.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("booking")
    def handle_booking_event(event: WebhookEventData, key: str) -> ServiceResult:
        ...

    result = dispatch_webhook(event, key)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult

from payments.adapters import WebhookEventData
from payments.models import Payment, SubscriptionPayment
from payments.services import PaymentService
from payments.state_machines import PaymentType

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps reference prefixes to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEventData, str], ServiceResult]] = {}

UNKNOWN = "UNKNOWN"


def register_handler(prefix: str) -> Callable:
    """
    Decorator to register a handler for a reference prefix.

    Args:
        prefix: Reference prefix without the trailing dash (e.g. "booking")
    """

    def decorator(func: Callable[[WebhookEventData, str], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[prefix] = func
        logger.debug(f"Registered webhook handler for {prefix}-")
        return func

    return decorator


def classify(key: str) -> str | None:
    """Return the registered prefix a reference starts with, if any."""
    for prefix in WEBHOOK_HANDLERS:
        if key.startswith(f"{prefix}-"):
            return prefix
    return None


def ledger_type(key: str) -> str:
    """Ledger type recorded for a reference (prefix upper-cased, or UNKNOWN)."""
    prefix = classify(key)
    return prefix.upper() if prefix else UNKNOWN


def dispatch_webhook(event: WebhookEventData, key: str) -> ServiceResult:
    """
    Dispatch an accepted event to the handler for its reference prefix.

    Unknown prefixes are logged and acknowledged.
    """
    prefix = classify(key)
    if prefix is None:
        logger.info(
            "No handler for webhook reference, acknowledging",
            extra={"reference": key, "event_type": event.event_type},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {prefix} webhook to handler",
        extra={"reference": key, "event_type": event.event_type},
    )
    return WEBHOOK_HANDLERS[prefix](event, key)


# =============================================================================
# Payment Handlers
# =============================================================================


def _handle_payment_event(event: WebhookEventData, key: str) -> ServiceResult:
    payment = Payment.objects.filter(tx_ref=key).first()
    if payment is None and event.is_refund and event.provider_payment_id:
        payment = Payment.objects.filter(provider_payment_id=event.provider_payment_id).first()

    if payment is None:
        logger.info("No local payment for webhook reference", extra={"reference": key})
        return ServiceResult.success(None)

    if event.is_refund:
        return PaymentService.reconcile_refund(payment, refund_reference=event.provider_payment_id)
    return PaymentService.reconcile_charge(payment, event)


@register_handler("booking")
def handle_booking_event(event: WebhookEventData, key: str) -> ServiceResult:
    """Customer payment for a booking."""
    return _handle_payment_event(event, key)


@register_handler("cancellation")
def handle_cancellation_event(event: WebhookEventData, key: str) -> ServiceResult:
    """
    Late-cancellation fee payment.

    On verified success PaymentService cancels the booking.
    """
    return _handle_payment_event(event, key)


@register_handler("subscription")
def handle_subscription_event(event: WebhookEventData, key: str) -> ServiceResult:
    """
    Business subscription payment.

    Resolves to a SubscriptionPayment by reference, falling back to a
    Payment of type SUBSCRIPTION.
    """
    sub_payment = SubscriptionPayment.objects.select_related("subscription").filter(tx_ref=key).first()
    if sub_payment is not None:
        if event.is_refund:
            logger.warning(
                "Refund reported for a subscription payment; no automatic action",
                extra={"reference": key},
            )
            return ServiceResult.success(sub_payment)
        return PaymentService.reconcile_subscription_charge(sub_payment, event)

    payment = Payment.objects.filter(tx_ref=key, type=PaymentType.SUBSCRIPTION).first()
    if payment is None:
        logger.info("No local subscription payment for reference", extra={"reference": key})
        return ServiceResult.success(None)
    if event.is_refund:
        return PaymentService.reconcile_refund(payment, refund_reference=event.provider_payment_id)
    return PaymentService.reconcile_charge(payment, event)


@register_handler("refund")
def handle_refund_event(event: WebhookEventData, key: str) -> ServiceResult:
    """Refund event that carried no reference; resolved by provider id."""
    provider_id = event.provider_payment_id or key.removeprefix("refund-")
    payment = Payment.objects.filter(provider_payment_id=provider_id).first()
    if payment is None:
        logger.info("No local payment for refunded provider id", extra={"provider_payment_id": provider_id})
        return ServiceResult.success(None)
    return PaymentService.reconcile_refund(payment, refund_reference=provider_id)
