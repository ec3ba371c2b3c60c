"""
Pytest fixtures for payment tests.

This module provides fixtures for creating payment-related test data and
a mock provider adapter injected into PaymentService and PayoutExecutor.

Usage:
    def test_verified_success(pending_payment, mock_adapter):
        mock_adapter.check_status.return_value = status_result("success")
        ...
"""

from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from payments.adapters import CheckoutResult, RefundResult
from payments.services import PaymentService, PayoutExecutor
from payments.state_machines import PaymentType
from payments.tests.factories import (
    PaymentFactory,
    PayoutSettingsFactory,
    SubscriptionFactory,
    SubscriptionPaymentFactory,
    status_result,
)


# =============================================================================
# Provider Adapter
# =============================================================================


@pytest.fixture
def mock_adapter():
    """
    Mock provider adapter shared by PaymentService and PayoutExecutor.

    Defaults: checkout succeeds, status is success, refund accepted,
    payout returns a tracking id.
    """
    adapter = MagicMock()
    adapter.create_checkout.return_value = CheckoutResult(
        checkout_url="https://pay.example.com/checkout/abc",
        provider_invoice_id="INV-CHECKOUT",
    )
    adapter.check_status.return_value = status_result("success")
    adapter.refund.return_value = RefundResult(id="CB-1", status="pending", amount=Decimal("0"))
    adapter.create_payout.return_value = "TRK-1"

    PaymentService.set_adapter(adapter)
    PayoutExecutor.set_adapter(adapter)
    yield adapter
    PaymentService.set_adapter(None)
    PayoutExecutor.set_adapter(None)


# =============================================================================
# Payments
# =============================================================================


@pytest.fixture
def pending_payment(db):
    """PENDING booking payment with a provider invoice id."""
    return PaymentFactory()


@pytest.fixture
def successful_payment(db):
    """SUCCESS booking payment."""
    payment = PaymentFactory()
    payment.mark_success(provider_payment_id=payment.provider_payment_id)
    payment.save()
    return payment


@pytest.fixture
def cancellation_payment(db):
    """PENDING late-cancellation fee for a confirmed booking."""
    payment = PaymentFactory(type=PaymentType.CANCELLATION, amount=Decimal("500.00"))
    payment.booking.confirm()
    payment.booking.save()
    return payment


@pytest.fixture
def payout_settings(successful_payment):
    """M-Pesa payout settings for the business of successful_payment."""
    return PayoutSettingsFactory(business=successful_payment.business)


# =============================================================================
# Subscriptions
# =============================================================================


@pytest.fixture
def subscription(db):
    return SubscriptionFactory()


@pytest.fixture
def subscription_payment(subscription):
    return SubscriptionPaymentFactory(subscription=subscription)
