"""
State enum for the Booking model.

Booking States:
    pending ⇄ confirmed ⇄ rescheduled      (non-terminal, reachable via reschedule)
    non-terminal → completed | cancelled | no_show   (terminal, mutually exclusive)
"""

from django.db import models


class BookingStatus(models.TextChoices):
    """
    States for the Booking lifecycle.

    Terminal states: COMPLETED, CANCELLED, NO_SHOW
    """

    PENDING = "PENDING", "Pending"
    CONFIRMED = "CONFIRMED", "Confirmed"
    RESCHEDULED = "RESCHEDULED", "Rescheduled"
    COMPLETED = "COMPLETED", "Completed"
    CANCELLED = "CANCELLED", "Cancelled"
    NO_SHOW = "NO_SHOW", "No-show"


ACTIVE_BOOKING_STATUSES = [
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
    BookingStatus.RESCHEDULED,
]

TERMINAL_BOOKING_STATUSES = [
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.NO_SHOW,
]
