"""
Tests for BookingService.

Covers:
1. On-time cancellation: refund first, cancel second
2. Late cancellation: fee checkout, booking cancelled only once the fee is paid
3. Terminal immutability and idempotent cancel
4. Capability checks for customers, staff, owners and outsiders
5. Reschedule window rules
6. Staff outcomes (complete / no-show)
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from authentication.tests.factories import UserFactory
from bookings.models import Booking
from bookings.services import BookingService
from bookings.states import BookingStatus
from bookings.tests.factories import BookingFactory
from payments.adapters import WebhookEventData
from payments.exceptions import InvalidStateTransitionError, ProviderRejectedError
from payments.models import Payment
from payments.services import PaymentService
from payments.state_machines import PaymentStatus, PaymentType
from payments.tests.factories import PaymentFactory


def paid(booking: Booking, amount: Decimal = Decimal("1500.00")) -> Payment:
    """Successful booking payment for ``booking``."""
    payment = PaymentFactory(booking=booking, amount=amount)
    payment.mark_success(provider_payment_id=payment.provider_payment_id)
    payment.save()
    return payment


def reload(booking: Booking) -> Booking:
    # Protected FSM fields block refresh_from_db
    return Booking.objects.get(pk=booking.pk)


# =============================================================================
# On-time Cancellation
# =============================================================================


@pytest.mark.django_db
class TestOnTimeCancellation:
    """Cancellation before the deadline refunds the payment, then cancels."""

    def test_refunds_then_cancels(self, confirmed_booking, customer, mock_adapter):
        """
        Given a paid booking two days out
        When the customer cancels
        Then the full amount is refunded and the booking is CANCELLED
        """
        payment = paid(confirmed_booking)

        result = BookingService.cancel(confirmed_booking, actor=customer, reason="Travelling")

        assert result.success
        assert result.data.cancelled is True
        assert result.data.requires_action is False
        assert result.data.refunded_amount == Decimal("1500.00")
        mock_adapter.refund.assert_called_once()
        assert mock_adapter.refund.call_args.args[:2] == (payment.provider_payment_id, Decimal("1500.00"))

        booking = reload(confirmed_booking)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancel_reason == "Travelling"
        assert booking.cancelled_by == customer
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.REFUNDED

    def test_unpaid_booking_is_cancelled_without_refund(self, confirmed_booking, customer, mock_adapter):
        result = BookingService.cancel(confirmed_booking, actor=customer)

        assert result.success
        assert result.data.refunded_amount is None
        mock_adapter.refund.assert_not_called()
        assert reload(confirmed_booking).status == BookingStatus.CANCELLED

    def test_refund_failure_leaves_booking_untouched(self, confirmed_booking, customer, mock_adapter):
        """
        Given the provider refuses the refund
        When the customer cancels on time
        Then REFUND_FAILED is returned and nothing changes
        """
        payment = paid(confirmed_booking)
        mock_adapter.refund.side_effect = ProviderRejectedError("Invoice not refundable", provider="INTASEND")

        result = BookingService.cancel(confirmed_booking, actor=customer)

        assert not result.success
        assert result.error_code == "REFUND_FAILED"
        assert reload(confirmed_booking).status == BookingStatus.CONFIRMED
        assert Payment.objects.get(pk=payment.pk).status == PaymentStatus.SUCCESS

    def test_already_refunded_payment_is_not_refunded_again(self, confirmed_booking, customer, mock_adapter):
        """A crash between refund and cancel is recovered by cancelling without a second refund."""
        payment = paid(confirmed_booking)
        payment.mark_refunded(refund_reference="CB-0")
        payment.save()

        result = BookingService.cancel(confirmed_booking, actor=customer)

        assert result.success
        mock_adapter.refund.assert_not_called()
        assert reload(confirmed_booking).status == BookingStatus.CANCELLED


# =============================================================================
# Late Cancellation
# =============================================================================


@pytest.mark.django_db
class TestLateCancellation:
    """Cancellation inside the deadline requires the late fee first."""

    def test_creates_fee_checkout_and_keeps_booking(self, late_booking, customer, mock_adapter):
        """
        Given a booking starting in 30 minutes with a 120 minute deadline
        When the customer cancels
        Then a PENDING cancellation payment for the fee is created,
        the checkout is returned and the booking is not yet cancelled
        """
        result = BookingService.cancel(late_booking, actor=customer, reason="Stuck in traffic")

        assert result.success
        outcome = result.data
        assert outcome.requires_action is True
        assert outcome.cancelled is False
        assert outcome.checkout_url == "https://pay.example.com/checkout/abc"
        assert outcome.reference.startswith(f"cancellation-{late_booking.id}-")

        fee = Payment.objects.get(booking=late_booking, type=PaymentType.CANCELLATION)
        assert fee.status == PaymentStatus.PENDING
        assert fee.amount == Decimal("500.00")
        assert fee.provider_payment_id == "INV-CHECKOUT"
        assert fee.metadata["cancel_reason"] == "Stuck in traffic"
        assert reload(late_booking).status == BookingStatus.CONFIRMED

    def test_repeat_cancel_reuses_pending_fee(self, late_booking, customer, mock_adapter):
        first = BookingService.cancel(late_booking, actor=customer)
        second = BookingService.cancel(late_booking, actor=customer)

        assert second.data.reference == first.data.reference
        assert Payment.objects.filter(booking=late_booking, type=PaymentType.CANCELLATION).count() == 1
        assert mock_adapter.create_checkout.call_count == 1

    def test_checkout_failure_removes_pending_fee(self, late_booking, customer, mock_adapter):
        mock_adapter.create_checkout.side_effect = ProviderRejectedError("bad request", provider="INTASEND")

        result = BookingService.cancel(late_booking, actor=customer)

        assert not result.success
        assert result.error_code == "CHECKOUT_FAILED"
        assert not Payment.objects.filter(booking=late_booking, type=PaymentType.CANCELLATION).exists()
        assert reload(late_booking).status == BookingStatus.CONFIRMED

    def test_verified_fee_payment_cancels_booking(self, late_booking, customer, mock_adapter):
        """
        Given a late cancellation awaiting its fee
        When a verified success event arrives for the fee
        Then the booking becomes CANCELLED with the stored reason
        """
        result = BookingService.cancel(late_booking, actor=customer, reason="Stuck in traffic")
        fee = result.data.payment

        PaymentService.reconcile_charge(
            Payment.objects.get(pk=fee.pk),
            WebhookEventData(reference=fee.tx_ref, provider_payment_id="INV-CHECKOUT", raw_status="complete"),
        )

        booking = reload(late_booking)
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancel_reason == "Stuck in traffic"
        assert Payment.objects.get(pk=fee.pk).status == PaymentStatus.SUCCESS

    def test_failed_fee_payment_keeps_booking(self, late_booking, customer, mock_adapter):
        result = BookingService.cancel(late_booking, actor=customer)
        fee = result.data.payment

        PaymentService.reconcile_charge(
            Payment.objects.get(pk=fee.pk),
            WebhookEventData(reference=fee.tx_ref, raw_status="failed"),
        )

        assert reload(late_booking).status == BookingStatus.CONFIRMED
        assert Payment.objects.get(pk=fee.pk).status == PaymentStatus.FAILED

    def test_zero_fee_cancels_immediately(self, customer, service, mock_adapter):
        booking = BookingFactory(
            customer=customer,
            service=service,
            start_time=timezone.now() + timedelta(minutes=10),
            late_cancellation_fee=Decimal("0"),
        )

        result = BookingService.cancel(booking, actor=customer)

        assert result.success
        assert result.data.cancelled is True
        mock_adapter.create_checkout.assert_not_called()
        assert reload(booking).status == BookingStatus.CANCELLED


# =============================================================================
# Terminal States & Permissions
# =============================================================================


@pytest.mark.django_db
class TestCancelGuards:
    def test_cancel_on_cancelled_booking_is_a_no_op(self, confirmed_booking, customer, mock_adapter):
        BookingService.cancel(confirmed_booking, actor=customer, reason="first")

        result = BookingService.cancel(reload(confirmed_booking), actor=customer, reason="second")

        assert result.success
        assert result.data.already_cancelled is True
        assert reload(confirmed_booking).cancel_reason == "first"

    @pytest.mark.parametrize("finish", ["complete", "mark_no_show"])
    def test_cancel_on_finished_booking_fails(self, confirmed_booking, customer, finish, mock_adapter):
        getattr(confirmed_booking, finish)()
        confirmed_booking.save()

        result = BookingService.cancel(confirmed_booking, actor=customer)

        assert not result.success
        assert result.error_code == "INVALID_STATE_TRANSITION"
        mock_adapter.refund.assert_not_called()

    def test_other_customer_cannot_cancel(self, confirmed_booking, mock_adapter):
        result = BookingService.cancel(confirmed_booking, actor=UserFactory())

        assert not result.success
        assert result.error_code == "PERMISSION_DENIED"
        assert reload(confirmed_booking).status == BookingStatus.CONFIRMED

    def test_business_staff_can_cancel(self, confirmed_booking, staff_member, mock_adapter):
        result = BookingService.cancel(confirmed_booking, actor=staff_member)

        assert result.success
        assert reload(confirmed_booking).cancelled_by == staff_member

    def test_staff_of_other_business_cannot_cancel(self, confirmed_booking, outside_staff, mock_adapter):
        result = BookingService.cancel(confirmed_booking, actor=outside_staff)

        assert result.error_code == "PERMISSION_DENIED"


@pytest.mark.django_db
class TestFinalizeCancellation:
    def test_cancels_active_booking(self, confirmed_booking):
        booking = BookingService.finalize_cancellation(confirmed_booking.id, reason="fee paid")

        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancel_reason == "fee paid"

    def test_completed_booking_raises(self, confirmed_booking):
        confirmed_booking.complete()
        confirmed_booking.save()

        with pytest.raises(InvalidStateTransitionError):
            BookingService.finalize_cancellation(confirmed_booking.id)

        assert reload(confirmed_booking).status == BookingStatus.COMPLETED


# =============================================================================
# Reschedule
# =============================================================================


@pytest.mark.django_db
class TestReschedule:
    """Tests for BookingService.reschedule."""

    def test_moves_booking_using_service_duration(self, confirmed_booking, customer):
        new_start = timezone.now() + timedelta(days=4)

        result = BookingService.reschedule(confirmed_booking, actor=customer, start_time=new_start)

        assert result.success
        booking = reload(confirmed_booking)
        assert booking.status == BookingStatus.RESCHEDULED
        assert booking.start_time == new_start
        assert booking.end_time == new_start + timedelta(minutes=60)

    def test_explicit_duration(self, confirmed_booking, customer):
        new_start = timezone.now() + timedelta(days=4)

        BookingService.reschedule(confirmed_booking, actor=customer, start_time=new_start, duration_minutes=90)

        assert reload(confirmed_booking).end_time == new_start + timedelta(minutes=90)

    def test_start_in_past_rejected(self, confirmed_booking, customer):
        result = BookingService.reschedule(
            confirmed_booking, actor=customer, start_time=timezone.now() - timedelta(hours=1)
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert "start_time" in result.errors

    def test_end_before_start_rejected(self, confirmed_booking, customer):
        new_start = timezone.now() + timedelta(days=4)

        result = BookingService.reschedule(
            confirmed_booking, actor=customer, start_time=new_start, end_time=new_start - timedelta(minutes=1)
        )

        assert result.error_code == "VALIDATION_ERROR"
        assert "end_time" in result.errors

    def test_inside_cancellation_window_allowed(self, late_booking, customer):
        """
        Given a booking starting in 30 minutes with a 120 minute deadline
        When the customer moves it three days out
        Then the reschedule succeeds; the deadline only governs cancellation fees
        """
        new_start = timezone.now() + timedelta(days=3)

        result = BookingService.reschedule(late_booking, actor=customer, start_time=new_start)

        assert result.success
        booking = reload(late_booking)
        assert booking.status == BookingStatus.RESCHEDULED
        assert booking.start_time == new_start

    def test_overlapping_slot_rejected(self, confirmed_booking, customer, service):
        taken_start = timezone.now() + timedelta(days=6)
        BookingFactory(service=service, start_time=taken_start)

        result = BookingService.reschedule(
            confirmed_booking, actor=customer, start_time=taken_start + timedelta(minutes=30)
        )

        assert result.error_code == "SLOT_UNAVAILABLE"

    def test_cancelled_booking_does_not_block_slot(self, confirmed_booking, customer, service):
        taken_start = timezone.now() + timedelta(days=6)
        other = BookingFactory(service=service, start_time=taken_start)
        other.cancel()
        other.save()

        result = BookingService.reschedule(confirmed_booking, actor=customer, start_time=taken_start)

        assert result.success

    def test_back_to_back_slot_allowed(self, confirmed_booking, customer, service):
        """Windows are half-open, so ending when another starts is no overlap."""
        taken_start = timezone.now() + timedelta(days=6)
        BookingFactory(service=service, start_time=taken_start)

        result = BookingService.reschedule(
            confirmed_booking, actor=customer, start_time=taken_start - timedelta(minutes=60)
        )

        assert result.success

    def test_terminal_booking_rejected(self, confirmed_booking, customer):
        confirmed_booking.cancel()
        confirmed_booking.save()

        result = BookingService.reschedule(
            confirmed_booking, actor=customer, start_time=timezone.now() + timedelta(days=4)
        )

        assert result.error_code == "INVALID_STATE_TRANSITION"


# =============================================================================
# Staff Outcomes
# =============================================================================


@pytest.mark.django_db
class TestStaffOutcomes:
    def test_staff_completes_booking(self, confirmed_booking, staff_member):
        result = BookingService.complete(confirmed_booking, actor=staff_member)

        assert result.success
        booking = reload(confirmed_booking)
        assert booking.status == BookingStatus.COMPLETED
        assert booking.marked_by == staff_member

    def test_owner_marks_no_show(self, confirmed_booking, owner):
        result = BookingService.mark_no_show(confirmed_booking, actor=owner)

        assert result.success
        assert reload(confirmed_booking).status == BookingStatus.NO_SHOW

    def test_customer_cannot_mark_outcome(self, confirmed_booking, customer):
        result = BookingService.complete(confirmed_booking, actor=customer)

        assert result.error_code == "PERMISSION_DENIED"

    def test_outcome_is_final(self, confirmed_booking, staff_member):
        BookingService.complete(confirmed_booking, actor=staff_member)

        result = BookingService.mark_no_show(reload(confirmed_booking), actor=staff_member)

        assert result.error_code == "INVALID_STATE_TRANSITION"
        assert reload(confirmed_booking).status == BookingStatus.COMPLETED
