"""
Subscription and SubscriptionPayment models.

Each business has one Subscription. Paying for a plan creates a
SubscriptionPayment; when that payment is verified successful the
subscription period is extended by the subscription extension engine
(payments.services.SubscriptionService.extend).

Usage:
    from payments.models import Subscription, SubscriptionPayment
    from payments.state_machines import SubscriptionPlan

    subscription = Subscription.objects.create(
        business=business,
        plan=SubscriptionPlan.PRO_MONTHLY,
        amount=2500,
    )

    sub_payment = SubscriptionPayment.objects.create(
        subscription=subscription,
        business=business,
        amount=subscription.amount,
        tx_ref=f"subscription-{business.id}-{uuid}-{ts}",
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.models.payment import default_currency
from payments.state_machines import (
    PaymentMethod,
    PaymentProvider,
    SubscriptionPaymentStatus,
    SubscriptionPlan,
)


class Subscription(UUIDPrimaryKeyMixin, BaseModel):
    """
    A business's plan and paid-up period.

    Fields:
        business: Subscribing business (one subscription each)
        plan: Current plan
        amount: Price of one period of the plan
        start_date: Start of the first paid period
        end_date: End of the current paid period
        is_active: Whether the business currently has a paid plan

    Note:
        end_date only ever moves forward through SubscriptionService.extend,
        which bases the extension on max(now, end_date).
    """

    business = models.OneToOneField(
        "bookings.Business",
        on_delete=models.CASCADE,
        related_name="subscription",
        help_text="Subscribing business",
    )

    plan = models.CharField(
        max_length=30,
        choices=SubscriptionPlan.choices,
        default=SubscriptionPlan.BASIC_MONTHLY,
        help_text="Current plan",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Price of one period of the plan",
    )

    # ==========================================================================
    # Period
    # ==========================================================================

    start_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Start of the first paid period",
    )

    end_date = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="End of the current paid period",
    )

    is_active = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether the business currently has a paid plan",
    )

    deactivated_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the subscription lapsed past its grace period",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(fields=["is_active", "end_date"], name="subscription_active_end_idx"),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.business_id}, {self.plan}, active={self.is_active})"


class SubscriptionPayment(UUIDPrimaryKeyMixin, BaseModel):
    """
    One payment towards a subscription period.

    State Flow:
        PENDING -> SUCCESS (subscription extended)
        PENDING -> FAILED

    Fields:
        subscription / business: What is being paid for
        plan: Plan the payment was started for
        amount / currency: Charged amount
        status: Current FSM state (protected)
        provider / tx_ref / provider_payment_id / checkout_url: Provider correlation
        method: Instrument reported by the provider
        new_end_date: Period end after the extension, for receipts
    """

    subscription = models.ForeignKey(
        Subscription,
        on_delete=models.PROTECT,
        related_name="payments",
        help_text="Subscription being paid for",
    )

    business = models.ForeignKey(
        "bookings.Business",
        on_delete=models.PROTECT,
        related_name="subscription_payments",
        help_text="Paying business",
    )

    plan = models.CharField(
        max_length=30,
        choices=SubscriptionPlan.choices,
        help_text="Plan this payment buys a period of",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Charged amount",
    )

    currency = models.CharField(
        max_length=3,
        default=default_currency,
        help_text="ISO 4217 currency code",
    )

    status = FSMField(
        default=SubscriptionPaymentStatus.PENDING,
        choices=SubscriptionPaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the subscription payment (managed by FSM)",
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
        help_text="Our reference sent to the provider",
    )

    provider_payment_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider-assigned id",
    )

    checkout_url = models.URLField(
        max_length=1000,
        null=True,
        blank=True,
        help_text="Hosted checkout link",
    )

    method = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        null=True,
        blank=True,
        help_text="Payment instrument reported by the provider",
    )

    # ==========================================================================
    # Outcome
    # ==========================================================================

    succeeded_at = models.DateTimeField(null=True, blank=True, help_text="When verified successful")
    failed_at = models.DateTimeField(null=True, blank=True, help_text="When the payment failed")
    failure_reason = models.TextField(null=True, blank=True, help_text="Why the payment failed")

    new_end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Subscription end date after this payment extended it",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Subscription Payment"
        verbose_name_plural = "Subscription Payments"

    def __str__(self) -> str:
        return f"SubscriptionPayment({self.tx_ref}, {self.status})"

    @property
    def is_pending(self) -> bool:
        return self.status == SubscriptionPaymentStatus.PENDING

    @transition(
        field=status,
        source=SubscriptionPaymentStatus.PENDING,
        target=SubscriptionPaymentStatus.SUCCESS,
    )
    def mark_success(self, provider_payment_id: str | None = None, method: str | None = None):
        """Transition: PENDING -> SUCCESS"""
        self.succeeded_at = timezone.now()
        if provider_payment_id:
            self.provider_payment_id = provider_payment_id
        if method:
            self.method = method

    @transition(
        field=status,
        source=SubscriptionPaymentStatus.PENDING,
        target=SubscriptionPaymentStatus.FAILED,
    )
    def mark_failed(self, reason: str | None = None):
        """Transition: PENDING -> FAILED"""
        self.failed_at = timezone.now()
        if reason:
            self.failure_reason = reason
