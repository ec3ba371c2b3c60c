"""
Tests for PaymentService.

Covers charge reconciliation (verification rule, side effects), refunds
and checkouts. The provider adapter is the mock_adapter fixture.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from bookings.models import Booking
from bookings.states import BookingStatus
from bookings.tests.factories import BookingFactory
from payments.adapters import WebhookEventData
from payments.exceptions import ProviderRejectedError, ProviderTimeoutError
from payments.models import OperatorAlert, Payment, Subscription, SubscriptionPayment
from payments.services import PaymentService
from payments.state_machines import (
    AlertKind,
    PaymentMethod,
    PaymentStatus,
    PaymentType,
    SubscriptionPaymentStatus,
)
from payments.tests.factories import PaymentFactory, status_result


def charge_event(payment, raw_status="complete", provider_payment_id="INV-000001"):
    return WebhookEventData(
        event_type="charge.completed",
        reference=payment.tx_ref,
        provider_payment_id=provider_payment_id,
        raw_status=raw_status,
    )


def reload(payment):
    return type(payment).objects.get(pk=payment.pk)


# =============================================================================
# Charge Reconciliation
# =============================================================================


@pytest.mark.django_db
class TestReconcileCharge:
    """Tests for PaymentService.reconcile_charge."""

    def test_verified_success(self, pending_payment, mock_adapter):
        """
        Given a PENDING booking payment
        When a success webhook arrives and the provider confirms it
        Then the payment is SUCCESS with the provider id and method recorded
        """
        mock_adapter.check_status.return_value = status_result("COMPLETE", "INV-000001")

        result = PaymentService.reconcile_charge(pending_payment, charge_event(pending_payment))

        assert result.success
        payment = reload(pending_payment)
        assert payment.status == PaymentStatus.SUCCESS
        assert payment.provider_payment_id == "INV-000001"
        assert payment.method == PaymentMethod.MPESA
        assert payment.succeeded_at is not None
        mock_adapter.check_status.assert_called_once_with("INV-000001", retry=False)

    def test_verifies_with_stored_id_when_event_has_none(self, pending_payment, mock_adapter):
        PaymentService.reconcile_charge(pending_payment, charge_event(pending_payment, provider_payment_id=None))

        mock_adapter.check_status.assert_called_once_with(pending_payment.provider_payment_id, retry=False)

    def test_booking_success_queues_payout_after_commit(
        self, pending_payment, mock_adapter, mocker, django_capture_on_commit_callbacks
    ):
        delay = mocker.patch("payments.tasks.execute_booking_payout.delay")

        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            PaymentService.reconcile_charge(pending_payment, charge_event(pending_payment))

        assert len(callbacks) == 1
        delay.assert_called_once_with(str(pending_payment.id))

    def test_status_mismatch_fails_and_alerts(self, pending_payment, mock_adapter):
        """
        Given a webhook that claims success
        When the provider status endpoint says the charge is still pending
        Then the payment is FAILED and a STATUS_MISMATCH alert is raised
        """
        mock_adapter.check_status.return_value = status_result("PENDING")

        PaymentService.reconcile_charge(pending_payment, charge_event(pending_payment))

        payment = reload(pending_payment)
        assert payment.status == PaymentStatus.FAILED
        assert "pending" in payment.failure_reason
        alert = OperatorAlert.objects.get(payment=payment)
        assert alert.kind == AlertKind.STATUS_MISMATCH

    def test_verification_timeout_fails_and_alerts(self, pending_payment, mock_adapter):
        mock_adapter.check_status.side_effect = ProviderTimeoutError("timed out", provider="INTASEND")

        PaymentService.reconcile_charge(pending_payment, charge_event(pending_payment))

        payment = reload(pending_payment)
        assert payment.status == PaymentStatus.FAILED
        assert OperatorAlert.objects.get(payment=payment).kind == AlertKind.VERIFICATION_FAILED

    def test_no_provider_id_is_unverified(self, mock_adapter):
        payment = PaymentFactory(provider_payment_id=None)

        PaymentService.reconcile_charge(payment, charge_event(payment, provider_payment_id=None))

        assert reload(payment).status == PaymentStatus.FAILED
        assert OperatorAlert.objects.filter(kind=AlertKind.VERIFICATION_FAILED).count() == 1
        mock_adapter.check_status.assert_not_called()

    def test_pending_event_changes_nothing(self, pending_payment, mock_adapter):
        PaymentService.reconcile_charge(pending_payment, charge_event(pending_payment, raw_status="PROCESSING"))

        assert reload(pending_payment).status == PaymentStatus.PENDING
        mock_adapter.check_status.assert_not_called()

    def test_failure_event_fails_without_verification(self, pending_payment, mock_adapter):
        PaymentService.reconcile_charge(pending_payment, charge_event(pending_payment, raw_status="FAILED"))

        payment = reload(pending_payment)
        assert payment.status == PaymentStatus.FAILED
        assert "failed" in payment.failure_reason
        mock_adapter.check_status.assert_not_called()
        assert not OperatorAlert.objects.exists()

    @pytest.mark.parametrize("raw_status", ["complete", "failed"])
    def test_terminal_payment_ignored(self, successful_payment, mock_adapter, raw_status):
        result = PaymentService.reconcile_charge(successful_payment, charge_event(successful_payment, raw_status))

        assert result.success
        assert reload(successful_payment).status == PaymentStatus.SUCCESS
        mock_adapter.check_status.assert_not_called()

    def test_apply_success_is_once_only(self, pending_payment, mock_adapter):
        first = PaymentService.apply_success(pending_payment.id)
        second = PaymentService.apply_success(pending_payment.id)

        assert second.status == PaymentStatus.SUCCESS
        assert second.succeeded_at == first.succeeded_at


@pytest.mark.django_db
class TestCancellationFeeReconciliation:
    def test_verified_fee_cancels_booking(self, cancellation_payment, mock_adapter):
        PaymentService.reconcile_charge(cancellation_payment, charge_event(cancellation_payment))

        assert reload(cancellation_payment).status == PaymentStatus.SUCCESS
        assert Booking.objects.get(pk=cancellation_payment.booking_id).status == BookingStatus.CANCELLED

    def test_failed_fee_leaves_booking_active(self, cancellation_payment, mock_adapter):
        PaymentService.reconcile_charge(cancellation_payment, charge_event(cancellation_payment, raw_status="FAILED"))

        assert Booking.objects.get(pk=cancellation_payment.booking_id).status == BookingStatus.CONFIRMED

    def test_zero_fee_settles_without_verification(self, mock_adapter):
        payment = PaymentFactory(type=PaymentType.CANCELLATION, amount=Decimal("0"), provider_payment_id=None)

        PaymentService.reconcile_charge(payment, charge_event(payment, raw_status="", provider_payment_id=None))

        assert reload(payment).status == PaymentStatus.SUCCESS
        assert Booking.objects.get(pk=payment.booking_id).status == BookingStatus.CANCELLED
        mock_adapter.check_status.assert_not_called()

    def test_cancel_reason_carried_to_booking(self, mock_adapter):
        payment = PaymentFactory(type=PaymentType.CANCELLATION, metadata={"cancel_reason": "Sick"})

        PaymentService.reconcile_charge(payment, charge_event(payment))

        assert Booking.objects.get(pk=payment.booking_id).cancel_reason == "Sick"


# =============================================================================
# Refunds
# =============================================================================


@pytest.mark.django_db
class TestRefundPayment:
    def test_refund_success(self, successful_payment, mock_adapter):
        result = PaymentService.refund_payment(successful_payment, Decimal("1500.00"), reason="Cancelled")

        assert result.success
        payment = reload(successful_payment)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.metadata["refund_reference"] == "CB-1"
        assert payment.metadata["refunded_amount"] == "1500.00"
        mock_adapter.refund.assert_called_once_with(
            successful_payment.provider_payment_id, Decimal("1500.00"), reason="Cancelled"
        )

    def test_provider_refusal_keeps_payment(self, successful_payment, mock_adapter):
        mock_adapter.refund.side_effect = ProviderRejectedError("no", provider="INTASEND", status_code=400)

        result = PaymentService.refund_payment(successful_payment, Decimal("1500.00"))

        assert not result.success
        assert result.error_code == "REFUND_FAILED"
        assert reload(successful_payment).status == PaymentStatus.SUCCESS

    def test_missing_provider_id(self, successful_payment, mock_adapter):
        Payment.objects.filter(pk=successful_payment.pk).update(provider_payment_id=None)

        result = PaymentService.refund_payment(reload(successful_payment), Decimal("10"))

        assert result.error_code == "REFUND_FAILED"
        mock_adapter.refund.assert_not_called()

    def test_zero_amount_needs_no_provider_call(self, successful_payment, mock_adapter):
        result = PaymentService.refund_payment(successful_payment, Decimal("0"))

        assert result.success
        assert reload(successful_payment).status == PaymentStatus.REFUNDED
        mock_adapter.refund.assert_not_called()

    def test_pending_payment_cannot_be_refunded(self, pending_payment, mock_adapter):
        result = PaymentService.refund_payment(pending_payment, Decimal("10"))

        assert result.error_code == "INVALID_STATE_TRANSITION"


@pytest.mark.django_db
class TestReconcileRefund:
    def test_marks_refunded(self, successful_payment):
        result = PaymentService.reconcile_refund(successful_payment, refund_reference="CB-9")

        assert result.success
        assert reload(successful_payment).status == PaymentStatus.REFUNDED

    def test_repeat_is_noop(self, successful_payment):
        PaymentService.reconcile_refund(successful_payment)
        result = PaymentService.reconcile_refund(successful_payment)

        assert result.success

    def test_pending_payment_rejected(self, pending_payment):
        result = PaymentService.reconcile_refund(pending_payment)

        assert result.error_code == "INVALID_STATE_TRANSITION"
        assert reload(pending_payment).status == PaymentStatus.PENDING


# =============================================================================
# Checkouts
# =============================================================================


@pytest.mark.django_db
class TestInitiateBookingPayment:
    def test_creates_pending_payment_with_checkout(self, mock_adapter):
        booking = BookingFactory()

        result = PaymentService.initiate_booking_payment(booking)

        assert result.success
        payment = result.data
        assert payment.status == PaymentStatus.PENDING
        assert payment.amount == booking.service.price
        assert payment.checkout_url == "https://pay.example.com/checkout/abc"
        assert payment.provider_payment_id == "INV-CHECKOUT"
        assert payment.tx_ref.startswith(f"booking-{booking.id}-")
        kwargs = mock_adapter.create_checkout.call_args.kwargs
        assert kwargs["reference"] == payment.tx_ref
        assert kwargs["customer"]["email"] == booking.customer.email

    def test_repeat_reuses_pending_payment(self, mock_adapter):
        booking = BookingFactory()

        first = PaymentService.initiate_booking_payment(booking).data
        second = PaymentService.initiate_booking_payment(booking).data

        assert first.id == second.id
        assert mock_adapter.create_checkout.call_count == 1

    def test_already_paid(self, successful_payment, mock_adapter):
        result = PaymentService.initiate_booking_payment(successful_payment.booking)

        assert result.error_code == "PAYMENT_ALREADY_COMPLETED"

    def test_terminal_booking(self, mock_adapter):
        booking = BookingFactory()
        booking.cancel(reason="gone")
        booking.save()

        result = PaymentService.initiate_booking_payment(booking)

        assert result.error_code == "INVALID_STATE_TRANSITION"
        mock_adapter.create_checkout.assert_not_called()

    def test_checkout_failure_removes_pending_row(self, mock_adapter):
        mock_adapter.create_checkout.side_effect = ProviderTimeoutError("slow", provider="INTASEND")
        booking = BookingFactory()

        result = PaymentService.initiate_booking_payment(booking)

        assert result.error_code == "CHECKOUT_FAILED"
        assert not Payment.objects.filter(booking=booking).exists()


@pytest.mark.django_db
class TestCreatePendingBookingPayment:
    def test_returns_existing_pending(self, pending_payment):
        payment, created = PaymentService.create_pending_booking_payment(
            pending_payment.booking, PaymentType.BOOKING, Decimal("1500")
        )

        assert created is False
        assert payment.id == pending_payment.id

    def test_fee_reference_prefix(self):
        booking = BookingFactory()

        payment, created = PaymentService.create_pending_booking_payment(
            booking, PaymentType.CANCELLATION, Decimal("500")
        )

        assert created is True
        assert payment.tx_ref.startswith(f"cancellation-{booking.id}-")


# =============================================================================
# Subscription Charges
# =============================================================================


@pytest.mark.django_db
class TestReconcileSubscriptionCharge:
    def test_verified_success_extends_subscription(self, subscription_payment, mock_adapter):
        old_end = subscription_payment.subscription.end_date

        result = PaymentService.reconcile_subscription_charge(
            subscription_payment, charge_event(subscription_payment)
        )

        sub_payment = SubscriptionPayment.objects.get(pk=subscription_payment.pk)
        assert result.success
        assert sub_payment.status == SubscriptionPaymentStatus.SUCCESS
        subscription = Subscription.objects.get(pk=subscription_payment.subscription_id)
        assert subscription.end_date > old_end + timedelta(days=27)
        assert sub_payment.new_end_date == subscription.end_date

    def test_mismatch_fails_and_alerts(self, subscription_payment, mock_adapter):
        mock_adapter.check_status.return_value = status_result("FAILED")

        PaymentService.reconcile_subscription_charge(subscription_payment, charge_event(subscription_payment))

        assert SubscriptionPayment.objects.get(pk=subscription_payment.pk).status == SubscriptionPaymentStatus.FAILED
        assert OperatorAlert.objects.get().kind == AlertKind.STATUS_MISMATCH

    def test_failure_event(self, subscription_payment, mock_adapter):
        end_date = subscription_payment.subscription.end_date

        PaymentService.reconcile_subscription_charge(
            subscription_payment, charge_event(subscription_payment, raw_status="CANCELLED")
        )

        assert SubscriptionPayment.objects.get(pk=subscription_payment.pk).status == SubscriptionPaymentStatus.FAILED
        assert Subscription.objects.get(pk=subscription_payment.subscription_id).end_date == end_date
