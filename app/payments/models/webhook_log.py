"""
WebhookLog model: the idempotency ledger for provider webhooks.

A row exists for a reference once an event for it has been accepted for
processing. Rows are inserted once and never updated; the unique
constraint on tx_ref is what makes concurrent duplicate deliveries
lose the race (see payments.idempotency.IdempotencyLedger).

Usage:
    from payments.idempotency import IdempotencyLedger

    result = IdempotencyLedger.record_once("booking-42-1700000000000", "BOOKING", "INTASEND")
    if not result.accepted:
        return HttpResponse("Already processed", status=200)
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider


class WebhookLog(UUIDPrimaryKeyMixin, models.Model):
    """
    Dedup ledger entry for one externally delivered event.

    Fields:
        tx_ref: Idempotency key (our reference, or refund-<provider id>)
        type: Classified event type (BOOKING, SUBSCRIPTION, CANCELLATION, REFUND, UNKNOWN)
        provider: Gateway that delivered the event
        event_type: Provider event name, for audits
        received_at: When the event was first accepted

    Note:
        No updated_at and no status field. Existence of the row is the
        whole meaning; retention is handled outside this app.
    """

    tx_ref = models.CharField(
        max_length=255,
        unique=True,
        help_text="Idempotency key - unique constraint rejects duplicate deliveries",
    )

    type = models.CharField(
        max_length=20,
        db_index=True,
        help_text="Classified event type (from the reference prefix)",
    )

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        blank=True,
        default="",
        help_text="Gateway that delivered the event",
    )

    event_type = models.CharField(
        max_length=100,
        blank=True,
        default="",
        help_text="Provider event name (e.g. 'charge.completed')",
    )

    received_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,
        help_text="When the event was first accepted",
    )

    class Meta:
        ordering = ["-received_at"]
        verbose_name = "Webhook Log"
        verbose_name_plural = "Webhook Logs"

    def __str__(self) -> str:
        return f"WebhookLog({self.tx_ref}, {self.type})"
