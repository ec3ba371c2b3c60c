"""
Booking state machine service.

BookingService owns every user-driven booking transition. It composes the
fee calculator (bookings.fees), the capability check
(authentication.capabilities) and the payment state machine
(payments.services.PaymentService).

Cancellation Policy (refund first, cancel second):
    On time: the latest successful booking payment is refunded through
    the provider, then the booking is cancelled. If the refund fails the
    booking is left untouched.

    Late: a CANCELLATION payment for the late fee is created and the
    customer is sent to a checkout. The booking is only cancelled when
    that payment reaches SUCCESS (PaymentService calls
    finalize_cancellation).

Concurrency:
    Transitions run inside transaction.atomic() on a booking re-read with
    select_for_update(), and the terminal check is repeated there. No row
    lock is held while a provider is being called.

Error Codes:
    PERMISSION_DENIED: Actor may not perform the action on this booking
    INVALID_STATE_TRANSITION: Booking is terminal (or not in a source state)
    VALIDATION_ERROR: Bad reschedule window
    SLOT_UNAVAILABLE: New window overlaps another active booking
    REFUND_FAILED: Provider refused or could not process the refund
    CHECKOUT_FAILED: Provider could not create the cancellation-fee checkout

Usage:
    from bookings.services import BookingService

    result = BookingService.cancel(booking, actor=request.user, reason="Sick")
    if result.success and result.data.requires_action:
        redirect(result.data.checkout_url)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING

from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.services import BaseService, ServiceResult

from authentication.capabilities import BookingAction, CapabilityService
from bookings import fees
from bookings.models import Booking
from bookings.states import ACTIVE_BOOKING_STATUSES, BookingStatus
from payments.exceptions import InvalidStateTransitionError
from payments.models import Payment
from payments.state_machines import PaymentStatus, PaymentType

if TYPE_CHECKING:
    from authentication.models import User


DEFAULT_SLOT_MINUTES = 60


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class CancellationOutcome:
    """
    Result of a cancel request.

    Attributes:
        booking: Booking as it stands after the request
        cancelled: Booking reached CANCELLED during this request
        already_cancelled: Booking was CANCELLED before the request
        requires_action: Customer must pay a late fee at checkout_url
        checkout_url: Provider checkout for the late fee
        reference: tx_ref of the late-fee payment
        refunded_amount: Amount returned to the customer (on-time cancel)
        payment: Payment that was refunded or is awaiting the fee
    """

    booking: Booking
    cancelled: bool = False
    already_cancelled: bool = False
    requires_action: bool = False
    checkout_url: str | None = None
    reference: str | None = None
    refunded_amount: Decimal | None = None
    payment: Payment | None = None


# =============================================================================
# Booking Service
# =============================================================================


class BookingService(BaseService):
    """
    Booking transitions: cancel, reschedule, complete, no-show.

    A terminal booking (COMPLETED, CANCELLED, NO_SHOW) is never modified
    again. Cancel on an already CANCELLED booking succeeds unchanged.
    """

    @classmethod
    def _terminal_failure(cls, booking: Booking, action: str) -> ServiceResult:
        return ServiceResult.failure(
            f"Cannot {action} a booking in state '{booking.status}'",
            error_code="INVALID_STATE_TRANSITION",
        )

    # =========================================================================
    # Cancel
    # =========================================================================

    @classmethod
    def cancel(
        cls,
        booking: Booking,
        actor: User | None,
        reason: str = "",
    ) -> ServiceResult[CancellationOutcome]:
        """
        Cancel a booking, refunding or charging the late fee first.

        Args:
            booking: Booking to cancel
            actor: User requesting the cancellation
            reason: Free-text reason stored on the booking

        Returns:
            ServiceResult with a CancellationOutcome
        """
        logger = cls.get_logger()

        allowed = CapabilityService.authorize_booking_action(actor, booking, BookingAction.CANCEL)
        if not allowed:
            return allowed

        if booking.status == BookingStatus.CANCELLED:
            return ServiceResult.success(CancellationOutcome(booking=booking, already_cancelled=True))
        if booking.is_terminal:
            return cls._terminal_failure(booking, "cancel")

        late = fees.is_late(timezone.now(), booking.start_time, booking.deadline_minutes)
        log_context = {
            "booking_id": str(booking.id),
            "is_late": late,
            "actor_id": str(getattr(actor, "pk", "")),
        }
        logger.info("Cancellation requested", extra=log_context)

        if late:
            return cls._cancel_late(booking, reason)
        return cls._cancel_on_time(booking, actor, reason)

    @classmethod
    def _cancel_on_time(
        cls,
        booking: Booking,
        actor: User | None,
        reason: str,
    ) -> ServiceResult[CancellationOutcome]:
        from payments.services import PaymentService

        payment = (
            Payment.objects.filter(booking=booking, type=PaymentType.BOOKING)
            .exclude(status__in=[PaymentStatus.FAILED, PaymentStatus.PENDING])
            .order_by("-created_at")
            .first()
        )

        refunded_amount = None
        if payment is not None and payment.status == PaymentStatus.SUCCESS:
            refunded_amount = fees.refund_owed(payment.amount, False, booking.cancellation_fee)
            refund = PaymentService.refund_payment(
                payment,
                refunded_amount,
                reason=reason or "Booking cancelled",
            )
            if not refund:
                cls.get_logger().warning(
                    "Refund failed, booking left unchanged",
                    extra={"booking_id": str(booking.id), "error_code": refund.error_code},
                )
                return ServiceResult.failure(refund.error, error_code="REFUND_FAILED")
            payment = refund.data

        with cls.atomic():
            locked = Booking.objects.select_for_update().get(pk=booking.pk)
            if locked.status == BookingStatus.CANCELLED:
                return ServiceResult.success(
                    CancellationOutcome(booking=locked, already_cancelled=True, payment=payment)
                )
            if locked.is_terminal:
                return cls._terminal_failure(locked, "cancel")
            locked.cancel(reason=reason, actor=actor)
            locked.save()

        cls.get_logger().info(
            "Booking cancelled",
            extra={
                "booking_id": str(locked.id),
                "refunded_amount": str(refunded_amount) if refunded_amount is not None else None,
            },
        )
        return ServiceResult.success(
            CancellationOutcome(
                booking=locked,
                cancelled=True,
                refunded_amount=refunded_amount,
                payment=payment,
            )
        )

    @classmethod
    def _cancel_late(cls, booking: Booking, reason: str) -> ServiceResult[CancellationOutcome]:
        from payments.services import PaymentService

        fee = fees.fee_owed(True, booking.cancellation_fee)
        payment, created = PaymentService.create_pending_booking_payment(
            booking,
            PaymentType.CANCELLATION,
            fee,
            metadata={"cancel_reason": reason},
        )

        if not created and payment.checkout_url:
            return ServiceResult.success(
                CancellationOutcome(
                    booking=booking,
                    requires_action=True,
                    checkout_url=payment.checkout_url,
                    reference=payment.tx_ref,
                    payment=payment,
                )
            )

        if payment.amount == 0:
            payment = PaymentService.apply_success(payment.id)
            booking = Booking.objects.get(pk=booking.pk)
            return ServiceResult.success(
                CancellationOutcome(
                    booking=booking,
                    cancelled=booking.status == BookingStatus.CANCELLED,
                    payment=payment,
                )
            )

        customer = booking.customer
        checkout = PaymentService.start_checkout(
            payment,
            customer={"email": customer.email, "name": customer.name, "phone": customer.phone},
        )
        if not checkout:
            return checkout

        payment = checkout.data
        cls.get_logger().info(
            "Late cancellation awaiting fee payment",
            extra={"booking_id": str(booking.id), "tx_ref": payment.tx_ref, "fee": str(fee)},
        )
        return ServiceResult.success(
            CancellationOutcome(
                booking=booking,
                requires_action=True,
                checkout_url=payment.checkout_url,
                reference=payment.tx_ref,
                payment=payment,
            )
        )

    @classmethod
    def finalize_cancellation(cls, booking_id, reason: str = "") -> Booking:
        """
        Cancel a booking whose late-cancellation fee has been paid.

        Called by PaymentService inside the payment's SUCCESS transaction.

        Raises:
            InvalidStateTransitionError: Booking reached COMPLETED or NO_SHOW
        """
        booking = Booking.objects.select_for_update().get(pk=booking_id)
        if booking.status == BookingStatus.CANCELLED:
            return booking
        if booking.is_terminal:
            raise InvalidStateTransitionError(
                f"Cannot cancel a booking in state '{booking.status}'",
                details={"booking_id": str(booking.id), "current_status": booking.status},
            )

        booking.cancel(reason=reason)
        booking.save()
        cls.get_logger().info(
            "Booking cancelled after late fee payment",
            extra={"booking_id": str(booking.id)},
        )
        return booking

    # =========================================================================
    # Reschedule
    # =========================================================================

    @classmethod
    def _resolve_end_time(
        cls,
        booking: Booking,
        start_time: datetime,
        end_time: datetime | None,
        duration_minutes: int | None,
    ) -> datetime:
        if end_time is not None:
            return end_time
        minutes = duration_minutes or booking.service.duration_minutes or DEFAULT_SLOT_MINUTES
        return start_time + timedelta(minutes=minutes)

    @classmethod
    def slot_taken(cls, booking: Booking, start_time: datetime, end_time: datetime) -> bool:
        """Another active booking of the same business and service overlaps [start, end)."""
        return (
            Booking.objects.filter(
                business_id=booking.business_id,
                service_id=booking.service_id,
                status__in=ACTIVE_BOOKING_STATUSES,
                start_time__lt=end_time,
                end_time__gt=start_time,
            )
            .exclude(pk=booking.pk)
            .exists()
        )

    @classmethod
    def reschedule(
        cls,
        booking: Booking,
        actor: User | None,
        start_time: datetime,
        end_time: datetime | None = None,
        duration_minutes: int | None = None,
    ) -> ServiceResult[Booking]:
        """
        Move a booking to a new window.

        The end of the window comes from end_time, else duration_minutes,
        else the service duration.

        Returns:
            ServiceResult with the RESCHEDULED booking
        """
        allowed = CapabilityService.authorize_booking_action(actor, booking, BookingAction.RESCHEDULE)
        if not allowed:
            return allowed

        if booking.is_terminal:
            return cls._terminal_failure(booking, "reschedule")

        validation = cls.validate_required(start_time=start_time)
        if validation:
            return validation

        now = timezone.now()
        new_end = cls._resolve_end_time(booking, start_time, end_time, duration_minutes)

        if start_time <= now:
            return ServiceResult.failure(
                "New start time must be in the future",
                error_code="VALIDATION_ERROR",
                errors={"start_time": ["Must be in the future."]},
            )
        if new_end <= start_time:
            return ServiceResult.failure(
                "End time must be after start time",
                error_code="VALIDATION_ERROR",
                errors={"end_time": ["Must be after start_time."]},
            )

        with cls.atomic():
            locked = Booking.objects.select_for_update().get(pk=booking.pk)
            if locked.is_terminal:
                return cls._terminal_failure(locked, "reschedule")
            if cls.slot_taken(locked, start_time, new_end):
                return ServiceResult.failure(
                    "Requested slot is already booked",
                    error_code="SLOT_UNAVAILABLE",
                )
            previous_start = locked.start_time
            locked.reschedule(start_time, new_end)
            locked.save()

        cls.get_logger().info(
            "Booking rescheduled",
            extra={
                "booking_id": str(locked.id),
                "previous_start": previous_start.isoformat(),
                "new_start": start_time.isoformat(),
            },
        )
        return ServiceResult.success(locked)

    # =========================================================================
    # Staff Outcomes
    # =========================================================================

    @classmethod
    def _mark_outcome(cls, booking: Booking, actor: User | None, action: str) -> ServiceResult[Booking]:
        allowed = CapabilityService.authorize_booking_action(actor, booking, BookingAction.MARK_OUTCOME)
        if not allowed:
            return allowed

        label = "complete" if action == "complete" else "mark as no-show"
        with cls.atomic():
            locked = Booking.objects.select_for_update().get(pk=booking.pk)
            if locked.is_terminal:
                return cls._terminal_failure(locked, label)
            try:
                if action == "complete":
                    locked.complete(actor=actor)
                else:
                    locked.mark_no_show(actor=actor)
            except TransitionNotAllowed:
                return cls._terminal_failure(locked, label)
            locked.save()

        cls.get_logger().info(
            f"Booking outcome recorded: {locked.status}",
            extra={"booking_id": str(locked.id), "actor_id": str(actor.pk)},
        )
        return ServiceResult.success(locked)

    @classmethod
    def complete(cls, booking: Booking, actor: User | None) -> ServiceResult[Booking]:
        """Staff marks the booking COMPLETED."""
        return cls._mark_outcome(booking, actor, "complete")

    @classmethod
    def mark_no_show(cls, booking: Booking, actor: User | None) -> ServiceResult[Booking]:
        """Staff marks the customer as a NO_SHOW."""
        return cls._mark_outcome(booking, actor, "no_show")
