"""
End-to-end payment journeys through the public endpoints.

Each test drives the API and the webhook endpoint the way a client and a
provider would, with only the provider's HTTP API mocked.
"""

import json
from datetime import timedelta

import pytest
from django.urls import reverse
from django.utils import timezone

from bookings.models import Booking
from bookings.states import BookingStatus
from bookings.tests.factories import BookingFactory
from payments.models import Payment, WebhookLog
from payments.state_machines import PaymentStatus, PaymentType
from payments.tests.factories import PayoutSettingsFactory, status_result

CHALLENGE = "journey-challenge"


@pytest.fixture(autouse=True)
def webhook_secret(settings):
    settings.INTASEND_WEBHOOK_CHALLENGE = CHALLENGE


def deliver(client, payment, state="COMPLETE", invoice="INV-PAID"):
    return client.post(
        reverse("payments:provider_webhook", kwargs={"provider": "intasend"}),
        data=json.dumps({"invoice_id": invoice, "state": state, "api_ref": payment.tx_ref}),
        content_type="application/json",
        headers={"X-IntaSend-Challenge": CHALLENGE},
    )


@pytest.mark.django_db
class TestPayThenPayoutJourney:
    def test_booking_paid_and_business_paid_out(
        self, client, client_for, mock_adapter, django_capture_on_commit_callbacks
    ):
        """
        Given a customer with a pending booking and a business with payout settings
        When the customer checks out and the provider confirms the charge
        Then the payment is SUCCESS and the business is paid once
        """
        booking = BookingFactory()
        PayoutSettingsFactory(business=booking.business)
        mock_adapter.check_status.return_value = status_result("COMPLETE", "INV-PAID")

        checkout = client_for(booking.customer).post(
            reverse("payments:booking_checkout", kwargs={"booking_id": booking.id}), {}, format="json"
        )
        payment = Payment.objects.get(pk=checkout.data["id"])

        with django_capture_on_commit_callbacks(execute=True):
            deliver(client, payment)
        with django_capture_on_commit_callbacks(execute=True):
            deliver(client, payment)

        payment = Payment.objects.get(pk=payment.pk)
        assert payment.status == PaymentStatus.SUCCESS
        assert payment.provider_payout_id == "TRK-1"
        assert mock_adapter.create_payout.call_count == 1


@pytest.mark.django_db
class TestLateCancellationJourney:
    def test_fee_paid_then_booking_cancelled(self, client, client_for, mock_adapter):
        """
        Given a paid booking starting inside the cancellation window
        When the customer cancels, then pays the fee at the checkout
        Then the booking stays active until the fee webhook is verified
        """
        booking = BookingFactory(
            start_time=timezone.now() + timedelta(minutes=30),
            end_time=timezone.now() + timedelta(minutes=90),
        )
        booking.confirm()
        booking.save()
        customer_client = client_for(booking.customer)

        cancel = customer_client.post(
            reverse("bookings:cancel", kwargs={"booking_id": booking.id}), {"reason": "Stuck"}, format="json"
        )

        assert cancel.status_code == 200
        assert cancel.data["requires_action"] is True
        assert Booking.objects.get(pk=booking.pk).status == BookingStatus.CONFIRMED
        fee = Payment.objects.get(booking=booking, type=PaymentType.CANCELLATION)
        assert cancel.data["reference"] == fee.tx_ref

        deliver(client, fee)

        assert Payment.objects.get(pk=fee.pk).status == PaymentStatus.SUCCESS
        cancelled = Booking.objects.get(pk=booking.pk)
        assert cancelled.status == BookingStatus.CANCELLED
        assert cancelled.cancel_reason == "Stuck"
        assert WebhookLog.objects.get(tx_ref=fee.tx_ref).type == "CANCELLATION"
