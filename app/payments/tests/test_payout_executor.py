"""
Tests for PayoutExecutor: single attempts, operator alerts and the
booking payout flow.
"""

import uuid
from decimal import Decimal

import pytest

from core.idempotency import ReplayGuard
from payments.adapters import PayoutDestination
from payments.exceptions import (
    PayoutExhaustedError,
    PayoutRejectedError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from payments.models import OperatorAlert, Payment
from payments.services import PayoutExecutor
from payments.state_machines import AlertKind, PayoutMethod
from payments.tests.factories import PayoutSettingsFactory

DESTINATION = PayoutDestination(method=PayoutMethod.MPESA_PHONE, account_name="Salon", phone="254700000001")


@pytest.fixture
def payout_policy(settings):
    settings.PAYOUT_MAX_ATTEMPTS = 3
    settings.PAYOUT_BACKOFF_BASE_SECONDS = 1.0
    return settings


def unavailable():
    return ProviderUnavailableError("gateway down", provider="INTASEND", status_code=503)


# =============================================================================
# Single Attempt
# =============================================================================


@pytest.mark.django_db
class TestPayout:
    """Tests for PayoutExecutor.payout."""

    def test_first_attempt_succeeds(self, mock_adapter, payout_policy):
        payout_id = PayoutExecutor.payout(DESTINATION, Decimal("1000"), reference="payout-1")

        assert payout_id == "TRK-1"
        mock_adapter.create_payout.assert_called_once_with(DESTINATION, Decimal("1000"), "payout-1", metadata=None)

    def test_transient_error_with_attempts_left_propagates(self, mock_adapter, payout_policy):
        """
        Given the provider fails with a transient error
        When payout is called for the first of three attempts
        Then the provider error is raised for the caller to retry, with no alert
        """
        mock_adapter.create_payout.side_effect = unavailable()

        with pytest.raises(ProviderUnavailableError):
            PayoutExecutor.payout(DESTINATION, Decimal("1000"), reference="payout-2", attempt=0)

        assert mock_adapter.create_payout.call_count == 1
        assert not OperatorAlert.objects.exists()

    def test_last_attempt_exhausts_and_alerts(self, mock_adapter, payout_policy):
        mock_adapter.create_payout.side_effect = unavailable()

        with pytest.raises(PayoutExhaustedError) as exc_info:
            PayoutExecutor.payout(DESTINATION, Decimal("1000"), reference="payout-3", attempt=2)

        assert exc_info.value.attempts == 3
        assert mock_adapter.create_payout.call_count == 1
        alert = OperatorAlert.objects.get()
        assert alert.kind == AlertKind.PAYOUT_EXHAUSTED
        assert alert.context["reference"] == "payout-3"

    def test_rejection_not_retried(self, mock_adapter, payout_policy):
        mock_adapter.create_payout.side_effect = ProviderRejectedError("bad phone", provider="INTASEND", status_code=400)

        with pytest.raises(PayoutRejectedError) as exc_info:
            PayoutExecutor.payout(DESTINATION, Decimal("1000"), reference="payout-4")

        assert exc_info.value.attempts == 1
        assert mock_adapter.create_payout.call_count == 1
        assert OperatorAlert.objects.get().kind == AlertKind.PAYOUT_REJECTED

    def test_delay_doubles(self, settings):
        settings.PAYOUT_BACKOFF_BASE_SECONDS = 0.5

        assert [PayoutExecutor.delay_for(n) for n in range(4)] == [0.5, 1.0, 2.0, 4.0]

    def test_max_attempts_at_least_one(self, settings):
        settings.PAYOUT_MAX_ATTEMPTS = 0

        assert PayoutExecutor.max_attempts() == 1


# =============================================================================
# Booking Payouts
# =============================================================================


@pytest.mark.django_db
class TestExecuteForPayment:
    def test_pays_amount_net_of_fee(self, successful_payment, payout_settings, mock_adapter):
        Payment.objects.filter(pk=successful_payment.pk).update(fee=Decimal("100.00"))

        result = PayoutExecutor.execute_for_payment(successful_payment.id)

        assert result.success
        payment = Payment.objects.get(pk=successful_payment.pk)
        assert payment.provider_payout_id == "TRK-1"
        assert payment.paid_out_at is not None
        assert payment.payout_attempts == 1
        destination, amount, reference = mock_adapter.create_payout.call_args.args
        assert destination.phone == payout_settings.mpesa_phone
        assert amount == Decimal("1400.00")
        assert reference == f"payout-{successful_payment.id}"

    def test_already_paid_out_not_paid_again(self, successful_payment, payout_settings, mock_adapter):
        Payment.objects.filter(pk=successful_payment.pk).update(provider_payout_id="TRK-OLD")

        result = PayoutExecutor.execute_for_payment(successful_payment.id)

        assert result.success
        assert result.data.provider_payout_id == "TRK-OLD"
        mock_adapter.create_payout.assert_not_called()

    def test_pending_payment_not_eligible(self, pending_payment, mock_adapter):
        result = PayoutExecutor.execute_for_payment(pending_payment.id)

        assert result.error_code == "PAYOUT_NOT_ELIGIBLE"

    def test_unknown_payment(self, db, mock_adapter):
        result = PayoutExecutor.execute_for_payment(uuid.uuid4())

        assert result.error_code == "PAYMENT_NOT_FOUND"

    def test_concurrent_execution_blocked(self, successful_payment, payout_settings, mock_adapter):
        ReplayGuard(scope="booking-payout").claim(str(successful_payment.id))

        result = PayoutExecutor.execute_for_payment(successful_payment.id)

        assert result.error_code == "PAYOUT_IN_PROGRESS"
        mock_adapter.create_payout.assert_not_called()

    def test_missing_settings(self, successful_payment, mock_adapter):
        result = PayoutExecutor.execute_for_payment(successful_payment.id)

        assert result.error_code == "PAYOUT_SETTINGS_MISSING"
        payment = Payment.objects.get(pk=successful_payment.pk)
        assert payment.payout_error
        assert payment.payout_failed_at is not None
        assert payment.payout_attempts == 0
        assert OperatorAlert.objects.get().kind == AlertKind.PAYOUT_REJECTED

    def test_incomplete_settings(self, successful_payment, mock_adapter):
        PayoutSettingsFactory(business=successful_payment.business, method=PayoutMethod.MPESA_TILL, till_number="")

        result = PayoutExecutor.execute_for_payment(successful_payment.id)

        assert result.error_code == "PAYOUT_SETTINGS_INCOMPLETE"
        assert Payment.objects.get(pk=successful_payment.pk).payout_failed_at is not None
        mock_adapter.create_payout.assert_not_called()

    def test_transient_attempt_recorded_without_giving_up(
        self, successful_payment, payout_settings, mock_adapter, payout_policy
    ):
        """
        Given the provider fails with a transient error on the first attempt
        When execute_for_payment runs
        Then the error is raised for a retry and the attempt is counted,
        but the payment is not given up on
        """
        mock_adapter.create_payout.side_effect = unavailable()

        with pytest.raises(ProviderUnavailableError):
            PayoutExecutor.execute_for_payment(successful_payment.id, attempt=0)

        payment = Payment.objects.get(pk=successful_payment.pk)
        assert payment.payout_attempts == 1
        assert payment.payout_error
        assert payment.payout_failed_at is None

    def test_last_attempt_exhausted(self, successful_payment, payout_settings, mock_adapter, payout_policy):
        mock_adapter.create_payout.side_effect = unavailable()
        Payment.objects.filter(pk=successful_payment.pk).update(payout_attempts=2)

        result = PayoutExecutor.execute_for_payment(successful_payment.id, attempt=2)

        assert result.error_code == "PAYOUT_EXHAUSTED"
        payment = Payment.objects.get(pk=successful_payment.pk)
        assert payment.payout_attempts == 3
        assert payment.payout_failed_at is not None
        assert payment.provider_payout_id is None

    def test_rejection_gives_up(self, successful_payment, payout_settings, mock_adapter, payout_policy):
        mock_adapter.create_payout.side_effect = ProviderRejectedError("bad phone", provider="INTASEND", status_code=400)

        result = PayoutExecutor.execute_for_payment(successful_payment.id)

        assert result.error_code == "PAYOUT_REJECTED"
        payment = Payment.objects.get(pk=successful_payment.pk)
        assert payment.payout_attempts == 1
        assert payment.payout_failed_at is not None

    def test_claim_released_after_failed_attempt(self, successful_payment, payout_settings, mock_adapter, payout_policy):
        mock_adapter.create_payout.side_effect = unavailable()
        with pytest.raises(ProviderUnavailableError):
            PayoutExecutor.execute_for_payment(successful_payment.id)

        assert ReplayGuard(scope="booking-payout").claim(str(successful_payment.id))
