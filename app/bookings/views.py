"""
DRF views for bookings app.

Endpoints:
    POST /api/v1/bookings/{id}/cancel/ - Cancel (refund first or late fee checkout)
    PATCH /api/v1/bookings/{id}/reschedule/ - Move to a new window
    PATCH /api/v1/bookings/{id}/status/ - Staff marks completed / no-show

Related files:
    - services.py: BookingService
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Security:
    All endpoints require authentication. Which bookings a user may act on
    is decided by authentication.capabilities inside BookingService.

Replays:
    Cancel honours an ``Idempotency-Key`` header. A repeated key returns
    the stored response of the first request; a repeat that arrives while
    the first is still running gets 409 REQUEST_IN_PROGRESS.
"""

from __future__ import annotations

import logging

from django.shortcuts import get_object_or_404
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.idempotency import ReplayGuard
from core.views import failure_response

from bookings.models import Booking
from bookings.serializers import (
    BookingSerializer,
    BookingStatusSerializer,
    CancelBookingSerializer,
    CancellationOutcomeSerializer,
    RescheduleBookingSerializer,
)
from bookings.services import BookingService

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "Idempotency-Key"


def get_booking(booking_id) -> Booking:
    return get_object_or_404(
        Booking.objects.select_related("business", "service", "customer"),
        pk=booking_id,
    )


class BookingCancelView(APIView):
    """
    API view for cancelling a booking.

    POST: Cancel the booking

    URL: /api/v1/bookings/{id}/cancel/

    Request body:
        {
            "reason": "Can't make it"   // optional
        }

    Returns:
        On-time cancel:
            {"requires_action": false, "booking": {...}, "refunded_amount": "1500.00"}
        Late cancel:
            {"requires_action": true, "checkout_url": "...", "reference": "cancellation-..."}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Cancel booking",
        description=(
            "Cancel a booking. Before the cancellation deadline the booking payment is "
            "refunded first; after it the customer must pay the late fee at the returned checkout."
        ),
        tags=["Bookings"],
        parameters=[
            OpenApiParameter(
                name=IDEMPOTENCY_HEADER,
                location=OpenApiParameter.HEADER,
                required=False,
                description="Client key; repeats return the first response",
            ),
        ],
        request=CancelBookingSerializer,
        responses={200: CancellationOutcomeSerializer},
    )
    def post(self, request, booking_id):
        serializer = CancelBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        key = request.headers.get(IDEMPOTENCY_HEADER)
        guard = ReplayGuard(scope=f"booking-cancel:{request.user.pk}:{booking_id}")
        if key:
            replay = guard.recall(key)
            if replay is not None:
                return Response(replay["body"], status=replay["status"])
            if not guard.claim(key):
                return Response(
                    {
                        "success": False,
                        "error": "A request with this Idempotency-Key is still being processed",
                        "error_code": "REQUEST_IN_PROGRESS",
                    },
                    status=status.HTTP_409_CONFLICT,
                )

        try:
            response = self._cancel(request, booking_id, serializer.validated_data["reason"])
        except Exception:
            if key:
                guard.release(key)
            raise

        if key:
            guard.remember(key, response.data, response.status_code)
        return response

    def _cancel(self, request, booking_id, reason: str) -> Response:
        booking = get_booking(booking_id)
        result = BookingService.cancel(booking, actor=request.user, reason=reason)
        if not result.success:
            return failure_response(result)

        outcome = result.data
        data = CancellationOutcomeSerializer(
            {
                "requires_action": outcome.requires_action,
                "checkout_url": outcome.checkout_url,
                "reference": outcome.reference,
                "refunded_amount": outcome.refunded_amount,
                "booking": outcome.booking,
            }
        ).data
        return Response(data, status=status.HTTP_200_OK)


class BookingRescheduleView(APIView):
    """
    API view for rescheduling a booking.

    PATCH: Move the booking to a new window

    URL: /api/v1/bookings/{id}/reschedule/

    Request body:
        {
            "start_time": "2026-11-02T10:00:00Z",
            "end_time": "2026-11-02T11:00:00Z",   // optional
            "duration_minutes": 60                // optional
        }
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Reschedule booking",
        description="Move a booking to a new window that is free for its business and service.",
        tags=["Bookings"],
        request=RescheduleBookingSerializer,
        responses={200: BookingSerializer},
    )
    def patch(self, request, booking_id):
        serializer = RescheduleBookingSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = get_booking(booking_id)
        result = BookingService.reschedule(
            booking,
            actor=request.user,
            start_time=serializer.validated_data["start_time"],
            end_time=serializer.validated_data.get("end_time"),
            duration_minutes=serializer.validated_data.get("duration_minutes"),
        )
        if not result.success:
            return failure_response(result)

        return Response(BookingSerializer(result.data).data)


class BookingStatusView(APIView):
    """
    API view for staff outcomes.

    PATCH: Mark the booking completed or no-show

    URL: /api/v1/bookings/{id}/status/

    Request body:
        {
            "action": "complete" | "no_show"
        }
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        summary="Record booking outcome",
        description="Staff marks a booking completed or the customer as a no-show.",
        tags=["Bookings"],
        request=BookingStatusSerializer,
        responses={200: BookingSerializer},
    )
    def patch(self, request, booking_id):
        serializer = BookingStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        booking = get_booking(booking_id)
        if serializer.validated_data["action"] == BookingStatusSerializer.ACTION_COMPLETE:
            result = BookingService.complete(booking, actor=request.user)
        else:
            result = BookingService.mark_no_show(booking, actor=request.user)

        if not result.success:
            return failure_response(result)

        return Response(BookingSerializer(result.data).data)
