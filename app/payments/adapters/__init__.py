"""
Payment provider adapters.

All external payment API calls go through these adapters to ensure
consistent error handling, timeouts and observability.

Usage:
    from payments.adapters import get_adapter

    adapter = get_adapter(payment.provider)
    status = adapter.check_status(payment.provider_payment_id)
    if status.is_success:
        ...
"""

from __future__ import annotations

from payments.adapters.base import (
    CheckoutResult,
    PayoutDestination,
    ProviderAdapter,
    RefundResult,
    StatusResult,
    WebhookEventData,
    backoff_delay,
    normalize_method,
    normalize_status,
)
from payments.adapters.flutterwave_adapter import FlutterwaveAdapter
from payments.adapters.intasend_adapter import IntaSendAdapter
from payments.exceptions import PaymentValidationError
from payments.state_machines import PaymentProvider

ADAPTERS: dict[str, type[ProviderAdapter]] = {
    PaymentProvider.FLUTTERWAVE: FlutterwaveAdapter,
    PaymentProvider.INTASEND: IntaSendAdapter,
}


def get_adapter(provider: str) -> type[ProviderAdapter]:
    """
    Look up the adapter for a provider name (case-insensitive).

    Raises:
        PaymentValidationError: Provider is not supported
    """
    adapter = ADAPTERS.get(str(provider or "").upper())
    if adapter is None:
        raise PaymentValidationError(
            f"Unsupported payment provider: {provider}",
            details={"provider": provider},
        )
    return adapter


__all__ = [
    "ADAPTERS",
    "CheckoutResult",
    "FlutterwaveAdapter",
    "IntaSendAdapter",
    "PayoutDestination",
    "ProviderAdapter",
    "RefundResult",
    "StatusResult",
    "WebhookEventData",
    "backoff_delay",
    "get_adapter",
    "normalize_method",
    "normalize_status",
]
