"""
DRF serializers for bookings app.

This module provides serializers for:
- Booking display
- Cancel, reschedule and staff outcome requests
- Cancellation outcomes (cancelled vs. late fee checkout)

Related files:
    - models.py: Business, Service, Booking
    - services.py: BookingService
    - views.py: Booking API views
"""

from __future__ import annotations

from rest_framework import serializers

from bookings.models import Booking


class BookingSerializer(serializers.ModelSerializer):
    """
    Booking serializer for API responses.

    Fields:
        id: Booking ID
        status: Current booking state
        start_time / end_time: Reserved window
        business / service / customer / staff: Related IDs
        cancellation_deadline_minutes / late_cancellation_fee: Policy snapshot
        cancel_reason, cancelled_at, completed_at, no_show_at: Outcome stamps
    """

    class Meta:
        model = Booking
        fields = [
            "id",
            "status",
            "start_time",
            "end_time",
            "business",
            "service",
            "customer",
            "staff",
            "cancellation_deadline_minutes",
            "late_cancellation_fee",
            "cancel_reason",
            "cancelled_at",
            "completed_at",
            "no_show_at",
            "rescheduled_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class CancelBookingSerializer(serializers.Serializer):
    """
    Serializer for cancel requests.

    Fields:
        reason: Optional free-text reason
    """

    reason = serializers.CharField(
        required=False,
        allow_blank=True,
        default="",
        max_length=1000,
        help_text="Why the booking is being cancelled",
    )


class RescheduleBookingSerializer(serializers.Serializer):
    """
    Serializer for reschedule requests.

    Fields:
        start_time: New start (must be in the future)
        end_time: New end (optional)
        duration_minutes: Used when end_time is omitted (optional)

    Note:
        Window rules (future start, end after start, deadline, overlap)
        are enforced by BookingService so API and internal callers share
        one set of checks.
    """

    start_time = serializers.DateTimeField(
        help_text="New start of the booking",
    )
    end_time = serializers.DateTimeField(
        required=False,
        help_text="New end of the booking (defaults to start + duration)",
    )
    duration_minutes = serializers.IntegerField(
        required=False,
        min_value=1,
        help_text="Slot length when end_time is omitted",
    )


class BookingStatusSerializer(serializers.Serializer):
    """Serializer for staff outcome requests."""

    ACTION_COMPLETE = "complete"
    ACTION_NO_SHOW = "no_show"

    action = serializers.ChoiceField(
        choices=[ACTION_COMPLETE, ACTION_NO_SHOW],
        help_text="Outcome to record",
    )


class CancellationOutcomeSerializer(serializers.Serializer):
    """
    Cancel response.

    Either the cancelled booking, or (late cancellation) the checkout the
    customer must complete before the booking is cancelled.
    """

    requires_action = serializers.BooleanField()
    checkout_url = serializers.URLField(allow_null=True, required=False)
    reference = serializers.CharField(allow_null=True, required=False)
    refunded_amount = serializers.DecimalField(
        max_digits=12,
        decimal_places=2,
        allow_null=True,
        required=False,
    )
    booking = BookingSerializer()
