"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/<provider>/ - Flutterwave / IntaSend webhook endpoint
    - POST /bookings/<id>/checkout/ - Booking payment checkout
    - POST /subscriptions/<id>/checkout/ - Subscription renewal checkout

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import BookingCheckoutView, SubscriptionCheckoutView
from payments.webhooks.views import provider_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/<str:provider>/", provider_webhook, name="provider_webhook"),
    # Checkouts
    path(
        "bookings/<uuid:booking_id>/checkout/",
        BookingCheckoutView.as_view(),
        name="booking_checkout",
    ),
    path(
        "subscriptions/<uuid:subscription_id>/checkout/",
        SubscriptionCheckoutView.as_view(),
        name="subscription_checkout",
    ),
]
