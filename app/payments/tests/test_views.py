"""
Tests for the payment checkout API views.
"""

import pytest
from django.urls import reverse

from authentication.tests.factories import StaffFactory, UserFactory
from bookings.tests.factories import BookingFactory
from payments.exceptions import ProviderUnavailableError
from payments.models import Payment, SubscriptionPayment


def booking_checkout_url(booking):
    return reverse("payments:booking_checkout", kwargs={"booking_id": booking.id})


def subscription_checkout_url(subscription):
    return reverse("payments:subscription_checkout", kwargs={"subscription_id": subscription.id})


@pytest.mark.django_db
class TestBookingCheckoutView:
    """POST /api/v1/payments/bookings/{id}/checkout/"""

    def test_customer_gets_checkout(self, client_for, mock_adapter):
        booking = BookingFactory()

        response = client_for(booking.customer).post(booking_checkout_url(booking), {}, format="json")

        assert response.status_code == 201
        assert response.data["checkout_url"] == "https://pay.example.com/checkout/abc"
        assert response.data["reference"].startswith(f"booking-{booking.id}-")
        assert response.data["status"] == "PENDING"

    def test_other_customer_forbidden(self, client_for, mock_adapter):
        booking = BookingFactory()

        response = client_for(UserFactory()).post(booking_checkout_url(booking), {}, format="json")

        assert response.status_code == 403
        assert not Payment.objects.exists()

    def test_staff_cannot_pay(self, client_for, mock_adapter):
        booking = BookingFactory()
        staff = StaffFactory()
        booking.business.staff_members.add(staff)

        response = client_for(staff).post(booking_checkout_url(booking), {}, format="json")

        assert response.status_code == 403

    def test_already_paid(self, client_for, successful_payment, mock_adapter):
        booking = successful_payment.booking

        response = client_for(booking.customer).post(booking_checkout_url(booking), {}, format="json")

        assert response.status_code == 409
        assert response.data["error_code"] == "PAYMENT_ALREADY_COMPLETED"

    def test_provider_down(self, client_for, mock_adapter):
        mock_adapter.create_checkout.side_effect = ProviderUnavailableError("down", provider="INTASEND")
        booking = BookingFactory()

        response = client_for(booking.customer).post(booking_checkout_url(booking), {}, format="json")

        assert response.status_code == 502
        assert response.data["error_code"] == "CHECKOUT_FAILED"

    def test_invalid_redirect_url(self, client_for, mock_adapter):
        booking = BookingFactory()

        response = client_for(booking.customer).post(
            booking_checkout_url(booking), {"redirect_url": "not a url"}, format="json"
        )

        assert response.status_code == 400

    def test_requires_authentication(self, api_client):
        booking = BookingFactory()

        assert api_client.post(booking_checkout_url(booking), {}, format="json").status_code == 401


@pytest.mark.django_db
class TestSubscriptionCheckoutView:
    """POST /api/v1/payments/subscriptions/{id}/checkout/"""

    def test_owner_gets_checkout(self, client_for, subscription, mock_adapter):
        response = client_for(subscription.business.owner).post(
            subscription_checkout_url(subscription), {"plan": "PRO_YEARLY"}, format="json"
        )

        assert response.status_code == 201
        sub_payment = SubscriptionPayment.objects.get()
        assert sub_payment.plan == "PRO_YEARLY"
        assert response.data["reference"] == sub_payment.tx_ref

    def test_customer_forbidden(self, client_for, subscription, mock_adapter):
        response = client_for(UserFactory()).post(subscription_checkout_url(subscription), {}, format="json")

        assert response.status_code == 403
        assert response.data["error_code"] == "PERMISSION_DENIED"

    def test_unknown_plan_rejected(self, client_for, subscription, mock_adapter):
        response = client_for(subscription.business.owner).post(
            subscription_checkout_url(subscription), {"plan": "GOLD"}, format="json"
        )

        assert response.status_code == 400
