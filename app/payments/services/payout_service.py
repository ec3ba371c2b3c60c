"""
Payout executor for paying businesses after a successful booking charge.

This module provides the PayoutExecutor class, which sends a business its
share of a booking payment through the payout provider. Each call makes
one provider attempt; the execute_booking_payout Celery task retries
transient failures with ``self.retry``.

Retry Policy:
    - At most PAYOUT_MAX_ATTEMPTS attempts (default: 3)
    - Countdown before retry n (0-indexed): PAYOUT_BACKOFF_BASE_SECONDS * 2**n
    - Only transient provider errors (timeouts, connection failures, 5xx, 429)
      are retried; a 4xx rejection stops immediately
    - Rejection raises a PAYOUT_REJECTED alert, exhaustion a
      PAYOUT_EXHAUSTED alert; the booking payment stays SUCCESS either way
    - Rejections, missing payout settings and exhaustion stamp
      payout_failed_at, which takes the payment out of the retry sweep

Usage:
    from payments.services import PayoutExecutor

    # Low-level: one payout attempt
    payout_id = PayoutExecutor.payout(destination, Decimal("4500"), "payout-<payment>")

    # High-level: pay out a booking payment (what the Celery task calls)
    result = PayoutExecutor.execute_for_payment(payment_id, attempt=self.request.retries)
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from core.exceptions import ValidationError
from core.idempotency import ReplayGuard
from core.services import BaseService, ServiceResult

from payments.adapters import PayoutDestination, get_adapter
from payments.alerts import raise_operator_alert
from payments.exceptions import (
    PayoutError,
    PayoutExhaustedError,
    PayoutRejectedError,
    ProviderError,
)
from payments.models import Payment, PayoutSettings
from payments.state_machines import AlertKind, PaymentStatus, PaymentType


# =============================================================================
# Constants
# =============================================================================

# Seconds a payout claim blocks a concurrent execution for the same payment
PAYOUT_CLAIM_TTL = 300


class PayoutExecutor(BaseService):
    """
    Payout execution with Celery-driven retries.

    Safety Guarantees:
        - A payment already carrying provider_payout_id is never paid again
        - A cache claim keeps two workers from paying the same payment at once
        - The stable reference ``payout-<payment id>`` lets the provider
          recognise repeats of the same payout

    Usage:
        try:
            payout_id = PayoutExecutor.payout(destination, amount, reference, attempt=0)
        except ProviderError:
            ...  # transient, attempts left: retry after delay_for(0)
    """

    # Provider adapter - can be injected for testing
    _adapter: Any = None

    @classmethod
    def get_adapter(cls):
        provider = getattr(settings, "PAYOUT_PROVIDER", "INTASEND")
        return cls._adapter or get_adapter(provider)

    @classmethod
    def set_adapter(cls, adapter) -> None:
        """Set the payout adapter (for testing)."""
        cls._adapter = adapter

    @classmethod
    def max_attempts(cls) -> int:
        return max(1, int(getattr(settings, "PAYOUT_MAX_ATTEMPTS", 3)))

    @classmethod
    def delay_for(cls, attempt: int) -> float:
        """Backoff before retrying after the given 0-indexed attempt."""
        base = float(getattr(settings, "PAYOUT_BACKOFF_BASE_SECONDS", 1.0))
        return base * (2**attempt)

    # =========================================================================
    # Core Operation
    # =========================================================================

    @classmethod
    def payout(
        cls,
        destination: PayoutDestination,
        amount: Decimal,
        reference: str,
        metadata: dict[str, Any] | None = None,
        payment: Payment | None = None,
        attempt: int = 0,
    ) -> str:
        """
        Make one payout attempt.

        Args:
            destination: Where the money goes
            amount: Amount to pay out
            reference: Stable payout reference
            metadata: Extra data forwarded to the provider
            payment: Payment the payout is for (attached to alerts)
            attempt: 0-indexed attempt number

        Returns:
            Provider payout id

        Raises:
            ProviderError: Transient failure with attempts left; the caller
                retries after delay_for(attempt)
            PayoutRejectedError: Provider refused the payout (not retried)
            PayoutExhaustedError: Transient failure on the last attempt
        """
        logger = cls.get_logger()
        max_attempts = cls.max_attempts()
        log_context = {
            "reference": reference,
            "amount": str(amount),
            "method": destination.method,
            "attempt": attempt + 1,
            "max_attempts": max_attempts,
        }

        try:
            payout_id = cls.get_adapter().create_payout(destination, amount, reference, metadata=metadata)
        except ProviderError as e:
            if not e.is_retryable:
                logger.error("Payout rejected by provider", extra={**log_context, "error": str(e)})
                raise_operator_alert(
                    AlertKind.PAYOUT_REJECTED,
                    f"Payout {reference} rejected: {e.message}",
                    payment=payment,
                    context={"reference": reference, "error_code": e.error_code, "attempts": attempt + 1},
                )
                raise PayoutRejectedError(
                    f"Payout {reference} rejected: {e.message}",
                    attempts=attempt + 1,
                ) from e

            if attempt + 1 < max_attempts:
                logger.warning("Transient payout error", extra={**log_context, "error": str(e)})
                raise

            raise_operator_alert(
                AlertKind.PAYOUT_EXHAUSTED,
                f"Payout {reference} failed after {max_attempts} attempts",
                payment=payment,
                context={"reference": reference, "error": str(e), "attempts": max_attempts},
            )
            raise PayoutExhaustedError(
                f"Payout {reference} failed after {max_attempts} attempts: {e}",
                attempts=max_attempts,
            ) from e

        logger.info("Payout created", extra={**log_context, "provider_payout_id": payout_id})
        return payout_id

    # =========================================================================
    # Booking Payouts
    # =========================================================================

    @classmethod
    def execute_for_payment(cls, payment_id, attempt: int = 0) -> ServiceResult[Payment]:
        """
        Pay the business for a successful booking payment.

        Args:
            payment_id: Booking Payment to pay out
            attempt: 0-indexed attempt number (the task's retry count)

        Returns:
            ServiceResult with the payment; failure codes PAYMENT_NOT_FOUND,
            PAYOUT_NOT_ELIGIBLE, PAYOUT_IN_PROGRESS,
            PAYOUT_SETTINGS_MISSING, PAYOUT_SETTINGS_INCOMPLETE,
            PAYOUT_REJECTED, PAYOUT_EXHAUSTED

        Raises:
            ProviderError: Transient failure with attempts left (the
                attempt is recorded before raising)
        """
        logger = cls.get_logger()
        payment = Payment.objects.select_related("business").filter(pk=payment_id).first()
        if payment is None:
            return ServiceResult.failure(f"Payment {payment_id} not found", error_code="PAYMENT_NOT_FOUND")

        if payment.type != PaymentType.BOOKING or payment.status != PaymentStatus.SUCCESS:
            logger.info(
                "Payment not eligible for payout",
                extra={"payment_id": str(payment.id), "type": payment.type, "status": payment.status},
            )
            return ServiceResult.failure(
                "Payment is not a successful booking payment",
                error_code="PAYOUT_NOT_ELIGIBLE",
            )

        if payment.is_paid_out:
            return ServiceResult.success(payment)

        guard = ReplayGuard(scope="booking-payout", ttl=PAYOUT_CLAIM_TTL)
        if not guard.claim(str(payment.id)):
            return ServiceResult.failure("Payout already in progress", error_code="PAYOUT_IN_PROGRESS")

        try:
            return cls._execute_claimed(payment, attempt)
        finally:
            guard.release(str(payment.id))

    @classmethod
    def _execute_claimed(cls, payment: Payment, attempt: int) -> ServiceResult[Payment]:
        payout_settings = PayoutSettings.objects.filter(business_id=payment.business_id).first()
        if payout_settings is None:
            cls._record_failure(payment, "Business has no payout settings", attempts=0, final=True)
            raise_operator_alert(
                AlertKind.PAYOUT_REJECTED,
                f"Payout for payment {payment.tx_ref} skipped: business has no payout settings",
                payment=payment,
                context={"business_id": str(payment.business_id)},
            )
            return ServiceResult.failure("Business has no payout settings", error_code="PAYOUT_SETTINGS_MISSING")

        try:
            destination = payout_settings.as_destination()
        except ValidationError as e:
            cls._record_failure(payment, e.message, attempts=0, final=True)
            raise_operator_alert(
                AlertKind.PAYOUT_REJECTED,
                f"Payout for payment {payment.tx_ref} skipped: {e.message}",
                payment=payment,
                context={"business_id": str(payment.business_id)},
            )
            return ServiceResult.from_exception(e)

        amount = max(Decimal("0"), payment.amount - payment.fee)
        try:
            payout_id = cls.payout(
                destination,
                amount,
                reference=f"payout-{payment.id}",
                metadata={
                    "payment_id": str(payment.id),
                    "booking_id": str(payment.booking_id),
                    "business_id": str(payment.business_id),
                },
                payment=payment,
                attempt=attempt,
            )
        except PayoutError as e:
            cls._record_failure(payment, e.message, attempts=1, final=True)
            return ServiceResult.from_exception(e)
        except ProviderError as e:
            cls._record_failure(payment, e.message, attempts=1, final=False)
            raise

        with transaction.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            locked.provider_payout_id = payout_id
            locked.paid_out_at = timezone.now()
            locked.payout_attempts = locked.payout_attempts + 1
            locked.payout_error = None
            locked.save(
                update_fields=[
                    "provider_payout_id",
                    "paid_out_at",
                    "payout_attempts",
                    "payout_error",
                    "updated_at",
                ]
            )

        return ServiceResult.success(locked)

    @classmethod
    def _record_failure(cls, payment: Payment, error: str, attempts: int, final: bool) -> None:
        update_fields = ["payout_attempts", "payout_error", "updated_at"]
        with transaction.atomic():
            locked = Payment.objects.select_for_update().get(pk=payment.pk)
            locked.payout_attempts = locked.payout_attempts + attempts
            locked.payout_error = error
            if final:
                locked.payout_failed_at = timezone.now()
                update_fields.append("payout_failed_at")
            locked.save(update_fields=update_fields)
