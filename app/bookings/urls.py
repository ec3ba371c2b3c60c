"""
URL configuration for the bookings app.

Routes:
    - POST /<id>/cancel/ - Cancel a booking
    - PATCH /<id>/reschedule/ - Reschedule a booking
    - PATCH /<id>/status/ - Staff outcome (complete / no-show)

All routes are prefixed with /api/v1/bookings/ when included in the main URLconf.
"""

from django.urls import path

from bookings.views import BookingCancelView, BookingRescheduleView, BookingStatusView

app_name = "bookings"

urlpatterns = [
    path("<uuid:booking_id>/cancel/", BookingCancelView.as_view(), name="cancel"),
    path("<uuid:booking_id>/reschedule/", BookingRescheduleView.as_view(), name="reschedule"),
    path("<uuid:booking_id>/status/", BookingStatusView.as_view(), name="status"),
]
