"""
Payments app configuration.

This app provides the payment side of the reconciliation engine:
- Flutterwave and IntaSend provider adapters
- Webhook ingestion behind an idempotency ledger
- Payment state machine, payouts and subscription extension
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
