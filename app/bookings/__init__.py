"""
Bookings application.

Owns businesses, their services and the booking lifecycle:
- Business / Service: who sells what, plus cancellation policy defaults
- Booking: reservation with a protected FSM status
- fees: pure late-cancellation fee and refund arithmetic
- BookingService: cancel (refund-first), reschedule, complete, no-show

Usage:
    from bookings.models import Booking
    from bookings.services import BookingService
"""
