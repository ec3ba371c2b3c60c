"""
DRF views for payments app.

This module provides API views for:
- Booking payment checkout
- Subscription renewal checkout

Provider webhooks are plain Django views in payments.webhooks.views.

Related files:
    - services/: PaymentService, SubscriptionService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Endpoints:
    POST /api/v1/payments/bookings/{id}/checkout/ - Pay for a booking
    POST /api/v1/payments/subscriptions/{id}/checkout/ - Renew a subscription
    POST /api/v1/payments/webhooks/{provider}/ - Provider webhook endpoint

Security:
    - All endpoints require authentication except webhooks
    - Webhooks verify the provider signature
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.views import failure_response

from authentication.capabilities import BookingAction, CapabilityService
from bookings.models import Booking
from payments.models import Subscription
from payments.serializers import (
    BookingCheckoutSerializer,
    PaymentSerializer,
    SubscriptionCheckoutSerializer,
    SubscriptionPaymentSerializer,
)
from payments.services import PaymentService, SubscriptionService

logger = logging.getLogger(__name__)


class BookingCheckoutView(APIView):
    """
    Start (or resume) the payment for a booking.

    POST /api/v1/payments/bookings/{id}/checkout/

    Request body:
        {
            "redirect_url": "https://app.example.com/bookings/123"   // optional
        }

    Returns:
        Payment with checkout_url. A pending payment that already has a
        checkout is returned as is.
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Create booking checkout",
        description="Create the provider checkout for a booking payment.",
        tags=["Payments"],
        request=BookingCheckoutSerializer,
        responses={201: PaymentSerializer},
    )
    def post(self, request, booking_id):
        booking = get_object_or_404(Booking.objects.select_related("customer", "service"), pk=booking_id)

        allowed = CapabilityService.authorize_booking_action(request.user, booking, BookingAction.PAY)
        if not allowed:
            return failure_response(allowed)

        serializer = BookingCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = PaymentService.initiate_booking_payment(
            booking,
            redirect_url=serializer.validated_data.get("redirect_url"),
        )
        if not result.success:
            return failure_response(result)

        return Response(PaymentSerializer(result.data).data, status=status.HTTP_201_CREATED)


class SubscriptionCheckoutView(APIView):
    """
    Start a checkout for the next subscription period.

    POST /api/v1/payments/subscriptions/{id}/checkout/

    Request body:
        {
            "plan": "PRO_MONTHLY",                       // optional
            "return_url": "https://example.com/done",    // optional
            "cancel_url": "https://example.com/cancel"   // optional
        }

    Returns:
        SubscriptionPayment with checkout_url
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Create subscription checkout",
        description="Pay for the next period of a business subscription.",
        tags=["Payments"],
        request=SubscriptionCheckoutSerializer,
        responses={201: SubscriptionPaymentSerializer},
    )
    def post(self, request, subscription_id):
        subscription = get_object_or_404(
            Subscription.objects.select_related("business"), pk=subscription_id
        )

        if not CapabilityService.can_manage_business(request.user, subscription.business):
            return Response(
                {
                    "success": False,
                    "error": "Not allowed to manage this subscription",
                    "error_code": "PERMISSION_DENIED",
                },
                status=status.HTTP_403_FORBIDDEN,
            )

        serializer = SubscriptionCheckoutSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = SubscriptionService.initiate_payment(subscription, **serializer.validated_data)
        if not result.success:
            return failure_response(result)

        logger.info(
            "Subscription checkout created",
            extra={"subscription_id": str(subscription.id), "tx_ref": result.data.tx_ref},
        )
        return Response(SubscriptionPaymentSerializer(result.data).data, status=status.HTTP_201_CREATED)
