import decimal
import uuid

import django.db.models.deletion
import django_fsm
import payments.models.payment
from django.db import migrations, models

PROVIDER_CHOICES = [("FLUTTERWAVE", "Flutterwave"), ("INTASEND", "IntaSend")]
METHOD_CHOICES = [("MPESA", "M-Pesa"), ("CARD", "Card"), ("BANK", "Bank"), ("OTHER", "Other")]
PLAN_CHOICES = [
    ("BASIC_MONTHLY", "Basic (monthly)"),
    ("PRO_MONTHLY", "Pro (monthly)"),
    ("PRO_YEARLY", "Pro (yearly)"),
]


def timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"),
        ),
        (
            "updated_at",
            models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
        ),
    ]


def uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=[
                *timestamps(),
                uuid_pk(),
                (
                    "type",
                    models.CharField(
                        choices=[
                            ("BOOKING", "Booking"),
                            ("CANCELLATION", "Cancellation fee"),
                            ("SUBSCRIPTION", "Subscription"),
                        ],
                        db_index=True,
                        help_text="What this payment is for",
                        max_length=20,
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, help_text="Charged amount", max_digits=12)),
                (
                    "fee",
                    models.DecimalField(
                        decimal_places=2,
                        default=decimal.Decimal("0"),
                        help_text="Provider or platform fee withheld from the amount",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default=payments.models.payment.default_currency,
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("SUCCESS", "Success"),
                            ("FAILED", "Failed"),
                            ("REFUNDED", "Refunded"),
                        ],
                        db_index=True,
                        default="PENDING",
                        help_text="Current state of the payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "method",
                    models.CharField(
                        blank=True,
                        choices=METHOD_CHOICES,
                        help_text="Payment instrument reported by the provider",
                        max_length=10,
                        null=True,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=PROVIDER_CHOICES,
                        default="INTASEND",
                        help_text="Gateway handling this payment",
                        max_length=20,
                    ),
                ),
                (
                    "tx_ref",
                    models.CharField(
                        help_text="Our reference sent to the provider; prefix encodes the payment type",
                        max_length=200,
                        unique=True,
                    ),
                ),
                (
                    "provider_payment_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Provider-assigned id (invoice or transaction id)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "checkout_url",
                    models.URLField(
                        blank=True, help_text="Hosted checkout link handed to the payer", max_length=1000, null=True
                    ),
                ),
                (
                    "provider_payout_id",
                    models.CharField(
                        blank=True,
                        help_text="Provider payout/transfer id once the business was paid",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "payout_attempts",
                    models.PositiveSmallIntegerField(default=0, help_text="Payout attempts made for this payment"),
                ),
                ("payout_error", models.TextField(blank=True, help_text="Last payout error", null=True)),
                (
                    "payout_failed_at",
                    models.DateTimeField(blank=True, help_text="When payout was given up on", null=True),
                ),
                (
                    "paid_out_at",
                    models.DateTimeField(
                        blank=True, help_text="When the payout was accepted by the provider", null=True
                    ),
                ),
                (
                    "succeeded_at",
                    models.DateTimeField(blank=True, help_text="When the payment was verified successful", null=True),
                ),
                ("failed_at", models.DateTimeField(blank=True, help_text="When the payment failed", null=True)),
                ("refunded_at", models.DateTimeField(blank=True, help_text="When the payment was refunded", null=True)),
                ("failure_reason", models.TextField(blank=True, help_text="Why the payment failed", null=True)),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON metadata (provider payloads, refund ids)",
                    ),
                ),
                (
                    "booking",
                    models.ForeignKey(
                        blank=True,
                        help_text="Booking this payment belongs to (BOOKING / CANCELLATION)",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="bookings.booking",
                    ),
                ),
                (
                    "business",
                    models.ForeignKey(
                        blank=True,
                        help_text="Business receiving or paying (payout target, subscriber)",
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="bookings.business",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking", "type", "status"], name="payment_booking_type_stat_idx"),
                    models.Index(fields=["business", "status"], name="payment_business_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0)),
                        name="payment_amount_not_negative",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("status", "PENDING"), ("type__in", ["BOOKING", "CANCELLATION"])),
                        fields=("booking", "type"),
                        name="payment_one_pending_per_booking_type",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Subscription",
            fields=[
                *timestamps(),
                uuid_pk(),
                (
                    "plan",
                    models.CharField(
                        choices=PLAN_CHOICES,
                        default="BASIC_MONTHLY",
                        help_text="Current plan",
                        max_length=30,
                    ),
                ),
                (
                    "amount",
                    models.DecimalField(decimal_places=2, help_text="Price of one period of the plan", max_digits=12),
                ),
                (
                    "start_date",
                    models.DateTimeField(blank=True, help_text="Start of the first paid period", null=True),
                ),
                (
                    "end_date",
                    models.DateTimeField(
                        blank=True, db_index=True, help_text="End of the current paid period", null=True
                    ),
                ),
                (
                    "is_active",
                    models.BooleanField(
                        db_index=True, default=False, help_text="Whether the business currently has a paid plan"
                    ),
                ),
                (
                    "deactivated_at",
                    models.DateTimeField(
                        blank=True, help_text="When the subscription lapsed past its grace period", null=True
                    ),
                ),
                (
                    "business",
                    models.OneToOneField(
                        help_text="Subscribing business",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscription",
                        to="bookings.business",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["is_active", "end_date"], name="subscription_active_end_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubscriptionPayment",
            fields=[
                *timestamps(),
                uuid_pk(),
                (
                    "plan",
                    models.CharField(
                        choices=PLAN_CHOICES, help_text="Plan this payment buys a period of", max_length=30
                    ),
                ),
                ("amount", models.DecimalField(decimal_places=2, help_text="Charged amount", max_digits=12)),
                (
                    "currency",
                    models.CharField(
                        default=payments.models.payment.default_currency,
                        help_text="ISO 4217 currency code",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("PENDING", "Pending"), ("SUCCESS", "Success"), ("FAILED", "Failed")],
                        db_index=True,
                        default="PENDING",
                        help_text="Current state of the subscription payment (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        choices=PROVIDER_CHOICES,
                        default="INTASEND",
                        help_text="Gateway handling this payment",
                        max_length=20,
                    ),
                ),
                (
                    "tx_ref",
                    models.CharField(help_text="Our reference sent to the provider", max_length=200, unique=True),
                ),
                (
                    "provider_payment_id",
                    models.CharField(
                        blank=True, db_index=True, help_text="Provider-assigned id", max_length=255, null=True
                    ),
                ),
                (
                    "checkout_url",
                    models.URLField(blank=True, help_text="Hosted checkout link", max_length=1000, null=True),
                ),
                (
                    "method",
                    models.CharField(
                        blank=True,
                        choices=METHOD_CHOICES,
                        help_text="Payment instrument reported by the provider",
                        max_length=10,
                        null=True,
                    ),
                ),
                ("succeeded_at", models.DateTimeField(blank=True, help_text="When verified successful", null=True)),
                ("failed_at", models.DateTimeField(blank=True, help_text="When the payment failed", null=True)),
                ("failure_reason", models.TextField(blank=True, help_text="Why the payment failed", null=True)),
                (
                    "new_end_date",
                    models.DateTimeField(
                        blank=True,
                        help_text="Subscription end date after this payment extended it",
                        null=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(blank=True, default=dict, help_text="Arbitrary JSON metadata"),
                ),
                (
                    "business",
                    models.ForeignKey(
                        help_text="Paying business",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscription_payments",
                        to="bookings.business",
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        help_text="Subscription being paid for",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="payments.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription Payment",
                "verbose_name_plural": "Subscription Payments",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="WebhookLog",
            fields=[
                uuid_pk(),
                (
                    "tx_ref",
                    models.CharField(
                        help_text="Idempotency key - unique constraint rejects duplicate deliveries",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "type",
                    models.CharField(
                        db_index=True, help_text="Classified event type (from the reference prefix)", max_length=20
                    ),
                ),
                (
                    "provider",
                    models.CharField(
                        blank=True,
                        choices=PROVIDER_CHOICES,
                        default="",
                        help_text="Gateway that delivered the event",
                        max_length=20,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Provider event name (e.g. 'charge.completed')",
                        max_length=100,
                    ),
                ),
                (
                    "received_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="When the event was first accepted"
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Log",
                "verbose_name_plural": "Webhook Logs",
                "ordering": ["-received_at"],
            },
        ),
        migrations.CreateModel(
            name="PayoutSettings",
            fields=[
                *timestamps(),
                uuid_pk(),
                (
                    "method",
                    models.CharField(
                        choices=[
                            ("MPESA_PHONE", "M-Pesa phone"),
                            ("MPESA_TILL", "M-Pesa till"),
                            ("MPESA_PAYBILL", "M-Pesa paybill"),
                            ("BANK", "Bank account"),
                        ],
                        default="MPESA_PHONE",
                        help_text="Destination variant",
                        max_length=20,
                    ),
                ),
                (
                    "mpesa_phone",
                    models.CharField(blank=True, default="", help_text="M-Pesa phone number", max_length=20),
                ),
                (
                    "till_number",
                    models.CharField(blank=True, default="", help_text="M-Pesa till number", max_length=20),
                ),
                (
                    "paybill_number",
                    models.CharField(blank=True, default="", help_text="M-Pesa paybill number", max_length=20),
                ),
                (
                    "account_reference",
                    models.CharField(
                        blank=True, default="", help_text="Account reference for paybill payments", max_length=50
                    ),
                ),
                ("bank_code", models.CharField(blank=True, default="", help_text="Bank code", max_length=20)),
                (
                    "bank_account",
                    models.CharField(blank=True, default="", help_text="Bank account number", max_length=50),
                ),
                (
                    "account_name",
                    models.CharField(blank=True, default="", help_text="Registered account name", max_length=150),
                ),
                (
                    "business",
                    models.OneToOneField(
                        help_text="Business being paid",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payout_settings",
                        to="bookings.business",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout Settings",
                "verbose_name_plural": "Payout Settings",
            },
        ),
        migrations.CreateModel(
            name="OperatorAlert",
            fields=[
                *timestamps(),
                uuid_pk(),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("PAYOUT_EXHAUSTED", "Payout retries exhausted"),
                            ("PAYOUT_REJECTED", "Payout rejected"),
                            ("STATUS_MISMATCH", "Provider status mismatch"),
                            ("VERIFICATION_FAILED", "Status verification failed"),
                            ("PROCESSING_ERROR", "Webhook processing error"),
                        ],
                        db_index=True,
                        help_text="Alert category",
                        max_length=30,
                    ),
                ),
                ("message", models.TextField(help_text="Human-readable summary")),
                (
                    "context",
                    models.JSONField(blank=True, default=dict, help_text="Structured details for investigation"),
                ),
                (
                    "resolved",
                    models.BooleanField(
                        db_index=True, default=False, help_text="Whether an operator dealt with the alert"
                    ),
                ),
                (
                    "resolved_at",
                    models.DateTimeField(blank=True, help_text="When the alert was resolved", null=True),
                ),
                (
                    "resolution_note",
                    models.TextField(blank=True, default="", help_text="What the operator did"),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        help_text="Payment concerned",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="alerts",
                        to="payments.payment",
                    ),
                ),
            ],
            options={
                "verbose_name": "Operator Alert",
                "verbose_name_plural": "Operator Alerts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["resolved", "kind"], name="alert_resolved_kind_idx"),
                ],
            },
        ),
    ]
