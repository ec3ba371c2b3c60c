"""
Payment model for booking charges, cancellation fees and plan charges.

A Payment is created PENDING when a checkout is started and is moved to a
terminal state only by payments.services.PaymentService, in response to
provider status that has been re-verified against the provider's own API.

Usage:
    from payments.models import Payment
    from payments.state_machines import PaymentType

    payment = Payment.objects.create(
        type=PaymentType.CANCELLATION,
        booking=booking,
        business=booking.business,
        amount=booking.cancellation_fee,
        tx_ref=Payment.build_tx_ref("cancellation", booking.id),
    )

    payment.mark_success(provider_payment_id="INV-123", method=PaymentMethod.MPESA)
    payment.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import (
    PaymentMethod,
    PaymentProvider,
    PaymentStatus,
    PaymentType,
)


def default_currency() -> str:
    return getattr(settings, "PAYMENTS_CURRENCY", "KES")


class Payment(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single charge attempt against a payment provider.

    State Flow:
        PENDING -> SUCCESS -> REFUNDED
        PENDING -> FAILED

    Fields:
        type: BOOKING, CANCELLATION or SUBSCRIPTION
        booking / business: Entity the charge belongs to
        amount / fee: Charged amount and provider/platform fee
        status: Current FSM state (protected)
        method / provider: Instrument and gateway
        tx_ref: Our reference sent to the provider (unique per attempt)
        provider_payment_id: Provider-assigned id (invoice/transaction)
        provider_payout_id: Payout id once the business was paid out
        checkout_url: Hosted checkout link handed to the customer

    Note:
        At most one PENDING payment may exist per (booking, type) for
        BOOKING and CANCELLATION payments. The database enforces this with
        a conditional unique constraint.
    """

    # ==========================================================================
    # Classification & Ownership
    # ==========================================================================

    type = models.CharField(
        max_length=20,
        choices=PaymentType.choices,
        db_index=True,
        help_text="What this payment is for",
    )

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Booking this payment belongs to (BOOKING / CANCELLATION)",
    )

    business = models.ForeignKey(
        "bookings.Business",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="payments",
        help_text="Business receiving or paying (payout target, subscriber)",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Charged amount",
    )

    fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0"),
        help_text="Provider or platform fee withheld from the amount",
    )

    currency = models.CharField(
        max_length=3,
        default=default_currency,
        help_text="ISO 4217 currency code",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.PENDING,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current state of the payment (managed by FSM)",
    )

    method = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        null=True,
        blank=True,
        help_text="Payment instrument reported by the provider",
    )

    # ==========================================================================
    # Provider Correlation
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        default=PaymentProvider.INTASEND,
        help_text="Gateway handling this payment",
    )

    tx_ref = models.CharField(
        max_length=200,
        unique=True,
        help_text="Our reference sent to the provider; prefix encodes the payment type",
    )

    provider_payment_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider-assigned id (invoice or transaction id)",
    )

    checkout_url = models.URLField(
        max_length=1000,
        null=True,
        blank=True,
        help_text="Hosted checkout link handed to the payer",
    )

    # ==========================================================================
    # Payout Bookkeeping
    # ==========================================================================

    provider_payout_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Provider payout/transfer id once the business was paid",
    )

    payout_attempts = models.PositiveSmallIntegerField(
        default=0,
        help_text="Payout attempts made for this payment",
    )

    payout_error = models.TextField(
        null=True,
        blank=True,
        help_text="Last payout error",
    )

    payout_failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When payout was given up on",
    )

    paid_out_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payout was accepted by the provider",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    succeeded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was verified successful",
    )

    failed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment failed",
    )

    refunded_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the payment was refunded",
    )

    # ==========================================================================
    # Metadata & Error Info
    # ==========================================================================

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Why the payment failed",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata (provider payloads, refund ids)",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["booking", "type", "status"], name="payment_booking_type_stat_idx"),
            models.Index(fields=["business", "status"], name="payment_business_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="payment_amount_not_negative",
            ),
            models.UniqueConstraint(
                fields=["booking", "type"],
                condition=models.Q(
                    status=PaymentStatus.PENDING,
                    type__in=[PaymentType.BOOKING, PaymentType.CANCELLATION],
                ),
                name="payment_one_pending_per_booking_type",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.tx_ref}, {self.type}, {self.status}, {self.amount} {self.currency})"

    @staticmethod
    def build_tx_ref(prefix: str, *parts) -> str:
        """
        Build a provider reference: ``<prefix>-<part>-...-<epoch ms>``.

        The trailing timestamp makes every attempt unique while the prefix
        lets the webhook dispatcher classify the event.
        """
        stamp = int(timezone.now().timestamp() * 1000)
        return "-".join([prefix, *(str(part) for part in parts), str(stamp)])

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_pending(self) -> bool:
        return self.status == PaymentStatus.PENDING

    @property
    def is_paid_out(self) -> bool:
        return bool(self.provider_payout_id)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.SUCCESS,
    )
    def mark_success(self, provider_payment_id: str | None = None, method: str | None = None):
        """
        Record a verified successful charge.

        Transition: PENDING -> SUCCESS
        """
        self.succeeded_at = timezone.now()
        if provider_payment_id:
            self.provider_payment_id = provider_payment_id
        if method:
            self.method = method

    @transition(
        field=status,
        source=PaymentStatus.PENDING,
        target=PaymentStatus.FAILED,
    )
    def mark_failed(self, reason: str | None = None):
        """
        Record a failed or unverifiable charge.

        Transition: PENDING -> FAILED
        """
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    @transition(
        field=status,
        source=PaymentStatus.SUCCESS,
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self, refund_reference: str | None = None):
        """
        Record that the provider accepted a refund.

        Transition: SUCCESS -> REFUNDED
        """
        self.refunded_at = timezone.now()
        if refund_reference:
            self.metadata = {**(self.metadata or {}), "refund_reference": refund_reference}
