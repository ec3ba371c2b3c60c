"""
DRF serializers for payments app.

This module provides serializers for:
- Payment and subscription payment display
- Checkout requests (booking payment, subscription renewal)

Related files:
    - models/: Payment, SubscriptionPayment, Subscription
    - views.py: Checkout API views

Usage:
    serializer = PaymentSerializer(payment)
    data = serializer.data
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import Payment, Subscription, SubscriptionPayment
from payments.state_machines import SubscriptionPlan


class PaymentSerializer(serializers.ModelSerializer):
    """
    Payment serializer for API responses.

    Fields:
        id: Payment ID
        type: BOOKING, CANCELLATION or SUBSCRIPTION
        status: PENDING, SUCCESS, FAILED or REFUNDED
        amount / currency: What the customer is charged
        reference: tx_ref sent to the provider
        checkout_url: Where the customer completes payment (while PENDING)
    """

    reference = serializers.CharField(source="tx_ref", read_only=True)

    class Meta:
        model = Payment
        fields = [
            "id",
            "type",
            "status",
            "amount",
            "currency",
            "method",
            "provider",
            "reference",
            "checkout_url",
            "booking",
            "succeeded_at",
            "refunded_at",
            "created_at",
        ]
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    """Current subscription period of a business."""

    class Meta:
        model = Subscription
        fields = ["id", "plan", "amount", "start_date", "end_date", "is_active"]
        read_only_fields = fields


class SubscriptionPaymentSerializer(serializers.ModelSerializer):
    """
    Subscription payment serializer for API responses.

    new_end_date is filled in once the payment succeeds.
    """

    reference = serializers.CharField(source="tx_ref", read_only=True)

    class Meta:
        model = SubscriptionPayment
        fields = [
            "id",
            "plan",
            "status",
            "amount",
            "currency",
            "provider",
            "reference",
            "checkout_url",
            "new_end_date",
            "created_at",
        ]
        read_only_fields = fields


class BookingCheckoutSerializer(serializers.Serializer):
    """
    Serializer for booking payment checkout requests.

    Fields:
        redirect_url: Where the provider sends the customer afterwards
    """

    redirect_url = serializers.URLField(
        required=False,
        help_text="URL to return to after checkout (defaults to the app return page)",
    )


class SubscriptionCheckoutSerializer(serializers.Serializer):
    """
    Serializer for subscription renewal checkout requests.

    Fields:
        plan: Plan to pay for (defaults to the current plan)
        return_url: URL to return to after a completed checkout
        cancel_url: URL to return to if the checkout is abandoned

    Usage:
        serializer = SubscriptionCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        SubscriptionService.initiate_payment(subscription, **serializer.validated_data)
    """

    plan = serializers.ChoiceField(
        choices=SubscriptionPlan.choices,
        required=False,
        help_text="Subscription plan to pay for",
    )
    return_url = serializers.URLField(
        required=False,
        help_text="URL to return to after checkout",
    )
    cancel_url = serializers.URLField(
        required=False,
        help_text="URL to return to if checkout is cancelled",
    )
