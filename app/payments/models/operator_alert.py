"""
OperatorAlert model: durable record of payment problems needing a human.

Alerts are raised through payments.alerts.raise_operator_alert, which also
logs at CRITICAL and emails ADMINS. The row is the durable part: it
survives log rotation and is worked through in the admin.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import AlertKind


class OperatorAlert(UUIDPrimaryKeyMixin, BaseModel):
    """
    One operator-facing alert.

    Fields:
        kind: Alert category
        message: Human-readable summary
        context: Structured details (references, provider errors)
        payment: Payment concerned, when there is one
        resolved / resolved_at / resolution_note: Operator follow-up
    """

    kind = models.CharField(
        max_length=30,
        choices=AlertKind.choices,
        db_index=True,
        help_text="Alert category",
    )

    message = models.TextField(
        help_text="Human-readable summary",
    )

    context = models.JSONField(
        default=dict,
        blank=True,
        help_text="Structured details for investigation",
    )

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="alerts",
        help_text="Payment concerned",
    )

    resolved = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether an operator dealt with the alert",
    )

    resolved_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the alert was resolved",
    )

    resolution_note = models.TextField(
        blank=True,
        default="",
        help_text="What the operator did",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Operator Alert"
        verbose_name_plural = "Operator Alerts"
        indexes = [
            models.Index(fields=["resolved", "kind"], name="alert_resolved_kind_idx"),
        ]

    def __str__(self) -> str:
        return f"OperatorAlert({self.kind}, resolved={self.resolved})"

    def resolve(self, note: str = "") -> None:
        """
        Mark the alert resolved.

        Note: Does not save - caller must save after calling.
        """
        self.resolved = True
        self.resolved_at = timezone.now()
        if note:
            self.resolution_note = note
