"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - Authentication endpoints
        token/                     - Obtain JWT pair (email/password)
        token/refresh/             - Refresh access token
    /api/v1/bookings/              - Booking endpoints
        {id}/cancel/               - Cancel (POST, honours Idempotency-Key)
        {id}/reschedule/           - Reschedule (PATCH)
        {id}/status/               - Staff outcome: complete / no-show (PATCH)
    /api/v1/payments/              - Payment endpoints
        webhooks/{provider}/       - Flutterwave / IntaSend webhook (POST)
        bookings/{id}/checkout/    - Booking payment checkout (POST)
        subscriptions/{id}/checkout/ - Subscription renewal checkout (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (JWT)
    path("auth/", include("authentication.urls")),
    # Bookings
    path("bookings/", include("bookings.urls")),
    # Payments
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Booking Marketplace Admin"
admin.site.site_title = "Admin Portal"
admin.site.index_title = "Bookings, payments and operator alerts"
