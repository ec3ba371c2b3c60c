"""
Payout worker for paying businesses after successful booking payments.

Tasks:
- execute_booking_payout: Pays out one booking payment (queued by
  PaymentService when a booking payment reaches SUCCESS)
- retry_unpaid_payouts: Periodic sweep re-queuing successful booking
  payments whose payout never went through

Usage:
    from payments.workers import execute_booking_payout

    execute_booking_payout.delay(str(payment.id))
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from payments.exceptions import ProviderError
from payments.models import Payment
from payments.state_machines import PaymentStatus, PaymentType

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum payments re-queued per sweep
BATCH_SIZE = 100

# Minimum age of an unpaid payout before the sweep retries it
RETRY_AFTER = timedelta(hours=1)


# =============================================================================
# Individual Execution Task
# =============================================================================


@shared_task(bind=True, acks_late=True)
def execute_booking_payout(self, payment_id: str) -> dict:
    """
    Pay the business for one successful booking payment.

    Each run makes one payout attempt. A transient provider error is
    retried by Celery after PayoutExecutor.delay_for(retries) seconds,
    up to PAYOUT_MAX_ATTEMPTS attempts in total; the last attempt raises
    the PAYOUT_EXHAUSTED alert instead.

    Args:
        payment_id: UUID of the booking Payment

    Returns:
        Dict with:
        - status: "paid_out" or "failed"
        - payment_id: The payment processed
        - provider_payout_id: Provider payout id when paid out
        - error_code: Failure code when failed

    Raises:
        Retry: Transient provider error with attempts left
    """
    from payments.services import PayoutExecutor

    try:
        payment_uuid = UUID(str(payment_id))
    except ValueError:
        logger.error(f"Invalid payment_id format: {payment_id}")
        return {"status": "failed", "payment_id": str(payment_id), "error_code": "PAYMENT_NOT_FOUND"}

    logger.info(
        "Processing booking payout",
        extra={"payment_id": str(payment_uuid), "celery_retries": self.request.retries},
    )

    try:
        result = PayoutExecutor.execute_for_payment(payment_uuid, attempt=self.request.retries)
    except ProviderError as e:
        countdown = PayoutExecutor.delay_for(self.request.retries)
        logger.warning(
            f"Booking payout attempt failed, retrying in {countdown}s",
            extra={"payment_id": str(payment_uuid), "error": str(e), "celery_retries": self.request.retries},
        )
        raise self.retry(exc=e, countdown=countdown, max_retries=PayoutExecutor.max_attempts() - 1)

    if result.success:
        return {
            "status": "paid_out",
            "payment_id": str(payment_uuid),
            "provider_payout_id": result.data.provider_payout_id,
        }

    logger.warning(
        f"Booking payout not completed: {result.error}",
        extra={"payment_id": str(payment_uuid), "error_code": result.error_code},
    )
    return {
        "status": "failed",
        "payment_id": str(payment_uuid),
        "error_code": result.error_code,
        "error": result.error,
    }


# =============================================================================
# Periodic Task: Retry Unpaid Payouts
# =============================================================================


@shared_task(bind=True)
def retry_unpaid_payouts(self) -> dict:
    """
    Re-queue payouts for successful booking payments still not paid out.

    Picks payments that succeeded more than RETRY_AFTER ago, have no
    provider_payout_id, have not exhausted PAYOUT_MAX_ATTEMPTS in total
    and were not given up on (payout_failed_at set by a rejection,
    missing payout settings or exhaustion).

    Returns:
        Dict with queued_count
    """
    max_attempts = int(getattr(settings, "PAYOUT_MAX_ATTEMPTS", 3))
    cutoff = timezone.now() - RETRY_AFTER

    unpaid = (
        Payment.objects.filter(
            type=PaymentType.BOOKING,
            status=PaymentStatus.SUCCESS,
            provider_payout_id__isnull=True,
            succeeded_at__lte=cutoff,
            payout_attempts__lt=max_attempts,
            payout_failed_at__isnull=True,
        )
        .order_by("succeeded_at")
        .values_list("id", flat=True)[:BATCH_SIZE]
    )

    queued_count = 0
    for payment_id in unpaid:
        execute_booking_payout.delay(str(payment_id))
        queued_count += 1

    logger.info(
        f"Unpaid payout sweep complete: queued {queued_count} payouts",
        extra={"queued_count": queued_count},
    )
    return {"queued_count": queued_count}
