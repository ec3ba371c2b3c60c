"""
Payment state machine service.

PaymentService is the only code that moves a Payment or
SubscriptionPayment out of PENDING. It is driven by two callers:

- The webhook dispatcher (payments.webhooks), after the idempotency
  ledger accepted the event
- BookingService, for refunds and cancellation-fee checkouts

Verification Rule:
    A webhook that claims success is never trusted on its own. The
    provider's status endpoint is queried with the provider-assigned id;
    only a verified success moves the payment to SUCCESS. A verified
    non-success or a failed verification moves it to FAILED and raises an
    operator alert. The one exception is a zero-amount cancellation fee,
    which has nothing to verify.

Side Effects (on entering SUCCESS, exactly once):
    BOOKING      -> payout task queued after commit
    SUBSCRIPTION -> subscription period extended
    CANCELLATION -> booking cancelled

Usage:
    from payments.services import PaymentService

    result = PaymentService.reconcile_charge(payment, event)
    if result.success and result.data.status == PaymentStatus.SUCCESS:
        ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.db import IntegrityError, transaction
from django_fsm import TransitionNotAllowed

from core.services import BaseService, ServiceResult

from payments.adapters import StatusResult, WebhookEventData, get_adapter
from payments.alerts import raise_operator_alert
from payments.exceptions import ProviderError
from payments.models import Payment, SubscriptionPayment
from payments.state_machines import (
    AlertKind,
    PaymentStatus,
    PaymentType,
    SubscriptionPaymentStatus,
)

if TYPE_CHECKING:
    from bookings.models import Booking


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

VERIFIED = "VERIFIED"
MISMATCH = "MISMATCH"
UNVERIFIED = "UNVERIFIED"


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class Verification:
    """
    Outcome of re-checking a charge with its provider.

    Attributes:
        outcome: VERIFIED, MISMATCH or UNVERIFIED
        status: Provider status when the call succeeded
        error: Why verification could not complete
    """

    outcome: str
    status: StatusResult | None = None
    error: str | None = None

    @property
    def verified(self) -> bool:
        return self.outcome == VERIFIED


def default_provider() -> str:
    return getattr(settings, "PAYMENTS_DEFAULT_PROVIDER", "INTASEND")


def return_url(reference: str) -> str:
    base = getattr(settings, "PUBLIC_APP_URL", "").rstrip("/")
    return f"{base}/payments/return?reference={reference}"


# =============================================================================
# Payment Service
# =============================================================================


class PaymentService(BaseService):
    """
    Payment state machine: PENDING -> SUCCESS | FAILED, SUCCESS -> REFUNDED.

    Every transition runs inside transaction.atomic() on a row re-read
    with select_for_update(), and re-checks the state before acting.
    Provider calls are always made outside those transactions.

    Usage:
        result = PaymentService.reconcile_charge(payment, event)
        result = PaymentService.refund_payment(payment, amount, reason)
        result = PaymentService.initiate_booking_payment(booking)
    """

    # Provider adapter - can be injected for testing
    _adapter: Any = None

    @classmethod
    def get_adapter(cls, provider: str):
        """Get the adapter for a provider (or the injected test adapter)."""
        return cls._adapter or get_adapter(provider)

    @classmethod
    def set_adapter(cls, adapter) -> None:
        """Set the adapter used for every provider (for testing)."""
        cls._adapter = adapter

    # =========================================================================
    # Verification
    # =========================================================================

    @classmethod
    def verify_with_provider(cls, provider: str, provider_id: str | None) -> Verification:
        """
        Re-query the provider's status endpoint for a charge.

        Runs inside the webhook request, so it makes a single call bounded
        by PAYMENT_PROVIDER_TIMEOUT_SECONDS with no retries; errors and
        timeouts yield UNVERIFIED rather than propagating.
        """
        if not provider_id:
            return Verification(outcome=UNVERIFIED, error="No provider id to verify against")

        try:
            status = cls.get_adapter(provider).check_status(provider_id, retry=False)
        except ProviderError as e:
            cls.get_logger().warning(
                "Provider status verification failed",
                extra={"provider": provider, "provider_payment_id": provider_id, "error": str(e)},
            )
            return Verification(outcome=UNVERIFIED, error=str(e))

        if status.is_success:
            return Verification(outcome=VERIFIED, status=status)
        return Verification(outcome=MISMATCH, status=status)

    # =========================================================================
    # Charge Reconciliation
    # =========================================================================

    @classmethod
    def reconcile_charge(
        cls,
        payment: Payment,
        event: WebhookEventData,
    ) -> ServiceResult[Payment]:
        """
        Apply a provider charge event to a Payment.

        Args:
            payment: Payment the event's reference resolved to
            event: Normalized webhook event

        Returns:
            ServiceResult with the (re-read) Payment. Already-terminal
            payments are returned unchanged.
        """
        logger = cls.get_logger()
        log_context = {
            "payment_id": str(payment.id),
            "tx_ref": payment.tx_ref,
            "payment_type": payment.type,
            "event_type": event.event_type,
            "raw_status": event.raw_status,
        }

        if payment.status != PaymentStatus.PENDING:
            logger.info("Payment already terminal, event ignored", extra=log_context)
            return ServiceResult.success(payment)

        is_free_fee = payment.type == PaymentType.CANCELLATION and payment.amount == 0
        if is_free_fee:
            logger.info("Zero-amount cancellation fee settled without verification", extra=log_context)
            return ServiceResult.success(cls.apply_success(payment.id))

        if event.looks_successful:
            provider_id = event.provider_payment_id or payment.provider_payment_id
            verification = cls.verify_with_provider(payment.provider, provider_id)
            return ServiceResult.success(
                cls._apply_verification(payment, verification, provider_id, log_context)
            )

        if event.is_pending:
            logger.info("Charge still in flight, nothing to apply", extra=log_context)
            return ServiceResult.success(payment)

        logger.info("Provider reported charge failure", extra=log_context)
        return ServiceResult.success(
            cls.apply_failure(payment.id, reason=f"Provider reported '{event.raw_status or 'failed'}'")
        )

    @classmethod
    def _apply_verification(
        cls,
        payment: Payment,
        verification: Verification,
        provider_id: str | None,
        log_context: dict[str, Any],
    ) -> Payment:
        logger = cls.get_logger()

        if verification.verified:
            status = verification.status
            return cls.apply_success(
                payment.id,
                provider_payment_id=status.provider_payment_id or provider_id,
                method=status.method,
            )

        if verification.outcome == MISMATCH:
            reason = f"Webhook reported success but provider status is '{verification.status.raw_status}'"
            kind = AlertKind.STATUS_MISMATCH
        else:
            reason = f"Could not verify charge with provider: {verification.error}"
            kind = AlertKind.VERIFICATION_FAILED

        logger.warning(reason, extra={**log_context, "alert_kind": kind})
        failed = cls.apply_failure(payment.id, reason=reason)
        raise_operator_alert(
            kind,
            f"Payment {payment.tx_ref} marked FAILED: {reason}",
            payment=failed,
            context={"tx_ref": payment.tx_ref, "provider_payment_id": provider_id},
        )
        return failed

    @classmethod
    def apply_success(
        cls,
        payment_id,
        provider_payment_id: str | None = None,
        method: str | None = None,
    ) -> Payment:
        """
        Move a payment to SUCCESS and run its side effects once.

        Returns the payment unchanged if another worker already moved it.
        """
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment_id)
            if payment.status != PaymentStatus.PENDING:
                return payment

            payment.mark_success(provider_payment_id=provider_payment_id, method=method)
            payment.save()
            cls._after_success(payment)

        cls.get_logger().info(
            "Payment succeeded",
            extra={
                "payment_id": str(payment.id),
                "tx_ref": payment.tx_ref,
                "payment_type": payment.type,
                "amount": str(payment.amount),
            },
        )
        return payment

    @classmethod
    def apply_failure(cls, payment_id, reason: str | None = None) -> Payment:
        """Move a payment to FAILED (no-op if it is no longer PENDING)."""
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment_id)
            if payment.status == PaymentStatus.PENDING:
                payment.mark_failed(reason=reason)
                payment.save()
                cls.get_logger().info(
                    "Payment failed",
                    extra={"payment_id": str(payment.id), "tx_ref": payment.tx_ref, "reason": reason},
                )
        return payment

    @classmethod
    def _after_success(cls, payment: Payment) -> None:
        """Side effects of entering SUCCESS. Runs inside the transition's transaction."""
        if payment.type == PaymentType.BOOKING:
            from payments.tasks import execute_booking_payout

            payment_id = str(payment.id)
            transaction.on_commit(lambda: execute_booking_payout.delay(payment_id))

        elif payment.type == PaymentType.SUBSCRIPTION:
            from payments.services.subscription_service import SubscriptionService

            subscription = getattr(payment.business, "subscription", None) if payment.business else None
            if subscription is None:
                cls.get_logger().error(
                    "Subscription payment has no subscription to extend",
                    extra={"payment_id": str(payment.id), "business_id": str(payment.business_id)},
                )
                return
            SubscriptionService.extend(subscription, plan=(payment.metadata or {}).get("plan"))

        elif payment.type == PaymentType.CANCELLATION and payment.booking_id:
            from bookings.services import BookingService

            BookingService.finalize_cancellation(
                payment.booking_id,
                reason=(payment.metadata or {}).get("cancel_reason", ""),
            )

    # =========================================================================
    # Refunds
    # =========================================================================

    @classmethod
    def reconcile_refund(cls, payment: Payment, refund_reference: str | None = None) -> ServiceResult[Payment]:
        """
        Apply a provider refund event: SUCCESS -> REFUNDED.

        Already REFUNDED is a no-op. Any other state is an invalid transition.
        """
        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.status == PaymentStatus.REFUNDED:
                return ServiceResult.success(payment)
            try:
                payment.mark_refunded(refund_reference=refund_reference)
            except TransitionNotAllowed:
                cls.get_logger().warning(
                    "Refund event for a payment that is not SUCCESS",
                    extra={"payment_id": str(payment.id), "status": payment.status},
                )
                return ServiceResult.failure(
                    f"Cannot refund payment in state '{payment.status}'",
                    error_code="INVALID_STATE_TRANSITION",
                )
            payment.save()

        cls.get_logger().info(
            "Payment marked refunded from provider event",
            extra={"payment_id": str(payment.id), "refund_reference": refund_reference},
        )
        return ServiceResult.success(payment)

    @classmethod
    def refund_payment(
        cls,
        payment: Payment,
        amount: Decimal,
        reason: str = "",
    ) -> ServiceResult[Payment]:
        """
        Ask the provider to refund a SUCCESS payment and record the refund.

        Returns:
            ServiceResult with the REFUNDED payment, or failure REFUND_FAILED
            when there is nothing to refund against or the provider refuses.
        """
        logger = cls.get_logger()
        log_context = {"payment_id": str(payment.id), "tx_ref": payment.tx_ref, "amount": str(amount)}

        if payment.status == PaymentStatus.REFUNDED:
            return ServiceResult.success(payment)
        if payment.status != PaymentStatus.SUCCESS:
            return ServiceResult.failure(
                f"Cannot refund payment in state '{payment.status}'",
                error_code="INVALID_STATE_TRANSITION",
            )

        refund_reference = None
        if amount > 0:
            if not payment.provider_payment_id:
                logger.error("Payment has no provider id to refund against", extra=log_context)
                return ServiceResult.failure(
                    "Payment has no provider reference to refund against",
                    error_code="REFUND_FAILED",
                )
            try:
                refund = cls.get_adapter(payment.provider).refund(
                    payment.provider_payment_id,
                    amount,
                    reason=reason,
                )
            except ProviderError as e:
                return cls.handle_exception(
                    e,
                    f"Provider refund failed for {payment.tx_ref}",
                    error_code="REFUND_FAILED",
                )
            refund_reference = refund.id

        with transaction.atomic():
            payment = Payment.objects.select_for_update().get(pk=payment.pk)
            if payment.status == PaymentStatus.SUCCESS:
                payment.mark_refunded(refund_reference=refund_reference)
                payment.metadata = {**(payment.metadata or {}), "refunded_amount": str(amount)}
                payment.save()

        logger.info("Payment refunded", extra={**log_context, "refund_reference": refund_reference})
        return ServiceResult.success(payment)

    # =========================================================================
    # Checkouts
    # =========================================================================

    @classmethod
    def start_checkout(
        cls,
        payment: Payment | SubscriptionPayment,
        customer: dict[str, Any] | None = None,
        redirect_url: str | None = None,
        cancel_url: str | None = None,
    ) -> ServiceResult:
        """
        Create the provider checkout for a PENDING payment.

        On provider failure the pending row is deleted so no orphaned
        PENDING payment blocks the next attempt.
        """
        logger = cls.get_logger()
        metadata = {"payment_id": str(payment.id), "reference": payment.tx_ref}
        if isinstance(payment, Payment):
            metadata["type"] = payment.type
            if payment.booking_id:
                metadata["booking_id"] = str(payment.booking_id)

        try:
            checkout = cls.get_adapter(payment.provider).create_checkout(
                amount=payment.amount,
                currency=payment.currency,
                reference=payment.tx_ref,
                redirect_url=redirect_url or return_url(payment.tx_ref),
                cancel_url=cancel_url,
                metadata=metadata,
                customer=customer,
            )
        except ProviderError as e:
            payment.delete()
            return cls.handle_exception(
                e,
                f"Checkout creation failed for {payment.tx_ref}, pending payment removed",
                error_code="CHECKOUT_FAILED",
            )

        payment.checkout_url = checkout.checkout_url
        update_fields = ["checkout_url", "updated_at"]
        if checkout.provider_invoice_id:
            payment.provider_payment_id = checkout.provider_invoice_id
            update_fields.append("provider_payment_id")
        payment.save(update_fields=update_fields)

        logger.info(
            "Checkout created",
            extra={"tx_ref": payment.tx_ref, "provider": payment.provider},
        )
        return ServiceResult.success(payment)

    @classmethod
    def create_pending_booking_payment(
        cls,
        booking: Booking,
        payment_type: str,
        amount: Decimal,
        metadata: dict[str, Any] | None = None,
    ) -> tuple[Payment, bool]:
        """
        Get or create the single PENDING payment of a type for a booking.

        The conditional unique constraint makes concurrent creators
        converge on one row.

        Returns:
            (payment, created)
        """
        existing = Payment.objects.filter(
            booking=booking, type=payment_type, status=PaymentStatus.PENDING
        ).first()
        if existing:
            return existing, False

        prefix = "cancellation" if payment_type == PaymentType.CANCELLATION else "booking"
        try:
            with transaction.atomic():
                payment = Payment.objects.create(
                    type=payment_type,
                    booking=booking,
                    business=booking.business,
                    amount=amount,
                    provider=default_provider(),
                    tx_ref=Payment.build_tx_ref(prefix, booking.id),
                    metadata=metadata or {},
                )
        except IntegrityError:
            payment = Payment.objects.get(booking=booking, type=payment_type, status=PaymentStatus.PENDING)
            return payment, False
        return payment, True

    @classmethod
    def initiate_booking_payment(
        cls,
        booking: Booking,
        redirect_url: str | None = None,
    ) -> ServiceResult[Payment]:
        """
        Start (or resume) the customer's payment for a booking.

        Returns:
            ServiceResult with the PENDING payment carrying checkout_url
        """
        if booking.is_terminal:
            return ServiceResult.failure(
                f"Cannot pay for a booking in state '{booking.status}'",
                error_code="INVALID_STATE_TRANSITION",
            )
        if Payment.objects.filter(
            booking=booking, type=PaymentType.BOOKING, status=PaymentStatus.SUCCESS
        ).exists():
            return ServiceResult.failure(
                "Booking is already paid",
                error_code="PAYMENT_ALREADY_COMPLETED",
            )

        payment, created = cls.create_pending_booking_payment(
            booking, PaymentType.BOOKING, booking.service.price
        )
        if not created and payment.checkout_url:
            return ServiceResult.success(payment)

        customer = booking.customer
        return cls.start_checkout(
            payment,
            customer={"email": customer.email, "name": customer.name, "phone": customer.phone},
            redirect_url=redirect_url,
        )

    # =========================================================================
    # Subscription Charges
    # =========================================================================

    @classmethod
    def reconcile_subscription_charge(
        cls,
        subscription_payment: SubscriptionPayment,
        event: WebhookEventData,
    ) -> ServiceResult[SubscriptionPayment]:
        """
        Apply a provider charge event to a SubscriptionPayment.

        Same verification rule as reconcile_charge; on verified success the
        subscription period is extended.
        """
        from payments.services.subscription_service import SubscriptionService

        logger = cls.get_logger()
        log_context = {
            "subscription_payment_id": str(subscription_payment.id),
            "tx_ref": subscription_payment.tx_ref,
            "event_type": event.event_type,
            "raw_status": event.raw_status,
        }

        if subscription_payment.status != SubscriptionPaymentStatus.PENDING:
            logger.info("Subscription payment already terminal, event ignored", extra=log_context)
            return ServiceResult.success(subscription_payment)

        if event.is_pending:
            return ServiceResult.success(subscription_payment)

        if not event.looks_successful:
            return ServiceResult.success(
                cls._fail_subscription_payment(
                    subscription_payment.pk, f"Provider reported '{event.raw_status or 'failed'}'"
                )
            )

        provider_id = event.provider_payment_id or subscription_payment.provider_payment_id
        verification = cls.verify_with_provider(subscription_payment.provider, provider_id)

        if not verification.verified:
            if verification.outcome == MISMATCH:
                reason = f"Webhook reported success but provider status is '{verification.status.raw_status}'"
                kind = AlertKind.STATUS_MISMATCH
            else:
                reason = f"Could not verify charge with provider: {verification.error}"
                kind = AlertKind.VERIFICATION_FAILED
            failed = cls._fail_subscription_payment(subscription_payment.pk, reason)
            raise_operator_alert(
                kind,
                f"Subscription payment {failed.tx_ref} marked FAILED: {reason}",
                context={"tx_ref": failed.tx_ref, "provider_payment_id": provider_id},
            )
            return ServiceResult.success(failed)

        with transaction.atomic():
            sub_payment = SubscriptionPayment.objects.select_for_update().get(pk=subscription_payment.pk)
            if sub_payment.status != SubscriptionPaymentStatus.PENDING:
                return ServiceResult.success(sub_payment)
            sub_payment.mark_success(
                provider_payment_id=verification.status.provider_payment_id or provider_id,
                method=verification.status.method,
            )
            sub_payment.new_end_date = SubscriptionService.extend(
                sub_payment.subscription, plan=sub_payment.plan
            )
            sub_payment.save()

        logger.info(
            "Subscription payment succeeded",
            extra={**log_context, "new_end_date": sub_payment.new_end_date.isoformat()},
        )
        return ServiceResult.success(sub_payment)

    @classmethod
    def _fail_subscription_payment(cls, pk, reason: str) -> SubscriptionPayment:
        with transaction.atomic():
            sub_payment = SubscriptionPayment.objects.select_for_update().get(pk=pk)
            if sub_payment.status == SubscriptionPaymentStatus.PENDING:
                sub_payment.mark_failed(reason=reason)
                sub_payment.save()
        return sub_payment
