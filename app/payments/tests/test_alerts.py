"""
Tests for operator alerts.
"""

import pytest
from django.core import mail

from payments.alerts import raise_operator_alert
from payments.models import OperatorAlert
from payments.state_machines import AlertKind


@pytest.fixture
def alert_recipients(settings):
    settings.ADMINS = [("Operations", "ops@example.com")]
    settings.OPERATOR_ALERT_EMAILS = ["oncall@example.com"]
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"


@pytest.mark.django_db
class TestRaiseOperatorAlert:
    def test_records_alert(self, successful_payment):
        alert = raise_operator_alert(
            AlertKind.PAYOUT_EXHAUSTED,
            "Payout failed",
            payment=successful_payment,
            context={"attempts": 3, "payment_id": successful_payment.id},
        )

        stored = OperatorAlert.objects.get(pk=alert.pk)
        assert stored.kind == AlertKind.PAYOUT_EXHAUSTED
        assert stored.payment_id == successful_payment.id
        assert stored.context == {"attempts": 3, "payment_id": str(successful_payment.id)}
        assert stored.resolved is False

    def test_emails_admins_and_alert_inbox(self, alert_recipients):
        raise_operator_alert(AlertKind.STATUS_MISMATCH, "Webhook lied")

        recipients = sorted(address for message in mail.outbox for address in message.to)
        assert recipients == ["oncall@example.com", "ops@example.com"]
        assert all("[STATUS_MISMATCH] Webhook lied" in message.subject for message in mail.outbox)

    def test_email_failure_does_not_propagate(self, alert_recipients, mocker):
        mocker.patch("payments.alerts.mail_admins", side_effect=OSError("smtp down"))

        alert = raise_operator_alert(AlertKind.PROCESSING_ERROR, "Handler failed")

        assert OperatorAlert.objects.filter(pk=alert.pk).exists()

    def test_logged_as_critical(self, mocker):
        logger = mocker.patch("payments.alerts.logger")

        raise_operator_alert(AlertKind.VERIFICATION_FAILED, "Status check timed out")

        message = logger.critical.call_args.args[0]
        assert message == "Operator alert: Status check timed out"
        assert logger.critical.call_args.kwargs["extra"]["alert_kind"] == AlertKind.VERIFICATION_FAILED


@pytest.mark.django_db
class TestResolve:
    def test_resolve(self):
        alert = raise_operator_alert(AlertKind.PAYOUT_REJECTED, "Bad phone")

        alert.resolve(note="Fixed number, paid manually")
        alert.save()

        stored = OperatorAlert.objects.get(pk=alert.pk)
        assert stored.resolved is True
        assert stored.resolved_at is not None
