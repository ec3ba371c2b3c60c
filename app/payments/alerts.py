"""
Operator alert channel.

Some payment problems cannot be fixed by retrying: a payout the provider
rejected, a webhook that claimed success the provider does not confirm.
raise_operator_alert records them durably (OperatorAlert row), logs at
CRITICAL and emails ADMINS (plus OPERATOR_ALERT_EMAILS).

Usage:
    from payments.alerts import raise_operator_alert
    from payments.state_machines import AlertKind

    raise_operator_alert(
        AlertKind.PAYOUT_EXHAUSTED,
        f"Payout for payment {payment.id} failed after 3 attempts",
        payment=payment,
        context={"error": str(exc)},
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.mail import mail_admins, send_mail

from payments.models import OperatorAlert

if TYPE_CHECKING:
    from payments.models import Payment

logger = logging.getLogger(__name__)


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return str(value)


def raise_operator_alert(
    kind: str,
    message: str,
    payment: Payment | None = None,
    context: dict[str, Any] | None = None,
) -> OperatorAlert:
    """
    Record and broadcast an operator alert.

    Email delivery failures are logged and never propagate; the alert row
    is already committed by then.

    Args:
        kind: AlertKind value
        message: Human-readable summary
        payment: Payment concerned, if any
        context: JSON-serializable details

    Returns:
        The created OperatorAlert
    """
    context = {key: _jsonable(value) for key, value in (context or {}).items()}
    alert = OperatorAlert.objects.create(
        kind=kind,
        message=message,
        payment=payment,
        context=context,
    )

    logger.critical(
        f"Operator alert: {message}",
        extra={
            "alert_id": str(alert.id),
            "alert_kind": kind,
            "payment_id": str(payment.id) if payment else None,
            **{f"ctx_{key}": value for key, value in context.items()},
        },
    )

    subject = f"[{kind}] {message}"[:200]
    body = f"{message}\n\nAlert: {alert.id}\nContext: {context}"
    try:
        mail_admins(subject, body, fail_silently=False)
        recipients = list(getattr(settings, "OPERATOR_ALERT_EMAILS", []) or [])
        if recipients:
            send_mail(
                subject=f"{settings.EMAIL_SUBJECT_PREFIX}{subject}",
                message=body,
                from_email=settings.SERVER_EMAIL,
                recipient_list=recipients,
                fail_silently=False,
            )
    except Exception as e:
        logger.error(
            f"Failed to email operator alert: {e}",
            extra={"alert_id": str(alert.id), "alert_kind": kind},
        )

    return alert
