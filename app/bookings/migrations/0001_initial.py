import uuid

import bookings.models
import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Business",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(help_text="Public business name", max_length=200)),
                ("email", models.EmailField(blank=True, default="", help_text="Business contact email", max_length=254)),
                (
                    "cancellation_deadline_minutes",
                    models.PositiveIntegerField(
                        default=bookings.models.default_cancellation_deadline_minutes,
                        help_text="Minutes before start after which a cancellation is late",
                    ),
                ),
                (
                    "late_cancellation_fee",
                    models.DecimalField(
                        decimal_places=2,
                        default=bookings.models.default_late_cancellation_fee,
                        help_text="Fee charged for a late cancellation",
                        max_digits=12,
                    ),
                ),
                (
                    "suspended",
                    models.BooleanField(
                        default=False, help_text="Whether the business is suspended for an unpaid subscription"
                    ),
                ),
                (
                    "suspended_at",
                    models.DateTimeField(blank=True, help_text="When the business was suspended", null=True),
                ),
                (
                    "owner",
                    models.ForeignKey(
                        help_text="User who owns this business",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="owned_businesses",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "staff_members",
                    models.ManyToManyField(
                        blank=True,
                        help_text="Users who work for this business",
                        related_name="staff_businesses",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Business",
                "verbose_name_plural": "Businesses",
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Service",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("name", models.CharField(help_text="Service name", max_length=200)),
                (
                    "price",
                    models.DecimalField(decimal_places=2, help_text="Price charged for one booking", max_digits=12),
                ),
                (
                    "duration_minutes",
                    models.PositiveIntegerField(default=60, help_text="Default slot length in minutes"),
                ),
                ("is_active", models.BooleanField(default=True, help_text="Whether the service can be booked")),
                (
                    "business",
                    models.ForeignKey(
                        help_text="Business offering this service",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="services",
                        to="bookings.business",
                    ),
                ),
            ],
            options={
                "verbose_name": "Service",
                "verbose_name_plural": "Services",
                "ordering": ["business", "name"],
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True, db_index=True, help_text="Timestamp when this record was created"
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified"),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                ("start_time", models.DateTimeField(db_index=True, help_text="Start of the reserved window")),
                ("end_time", models.DateTimeField(help_text="End of the reserved window (exclusive)")),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("PENDING", "Pending"),
                            ("CONFIRMED", "Confirmed"),
                            ("RESCHEDULED", "Rescheduled"),
                            ("COMPLETED", "Completed"),
                            ("CANCELLED", "Cancelled"),
                            ("NO_SHOW", "No-show"),
                        ],
                        db_index=True,
                        default="PENDING",
                        help_text="Current state of the booking (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "cancellation_deadline_minutes",
                    models.PositiveIntegerField(
                        blank=True,
                        help_text="Minutes before start after which a cancellation is late (copied from business)",
                        null=True,
                    ),
                ),
                (
                    "late_cancellation_fee",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Late cancellation fee (copied from business)",
                        max_digits=12,
                        null=True,
                    ),
                ),
                (
                    "cancel_reason",
                    models.TextField(blank=True, default="", help_text="Reason given for the cancellation"),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(blank=True, help_text="When the booking was cancelled", null=True),
                ),
                (
                    "completed_at",
                    models.DateTimeField(blank=True, help_text="When staff marked the booking completed", null=True),
                ),
                (
                    "no_show_at",
                    models.DateTimeField(
                        blank=True, help_text="When staff marked the customer as a no-show", null=True
                    ),
                ),
                (
                    "rescheduled_at",
                    models.DateTimeField(blank=True, help_text="When the booking was last rescheduled", null=True),
                ),
                (
                    "business",
                    models.ForeignKey(
                        help_text="Business the booking is with",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="bookings.business",
                    ),
                ),
                (
                    "cancelled_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who requested the cancellation",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="cancelled_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "customer",
                    models.ForeignKey(
                        help_text="Customer who made the booking",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "marked_by",
                    models.ForeignKey(
                        blank=True,
                        help_text="Staff member who recorded the outcome",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="marked_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "service",
                    models.ForeignKey(
                        help_text="Service being booked",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="bookings.service",
                    ),
                ),
                (
                    "staff",
                    models.ForeignKey(
                        blank=True,
                        help_text="Staff member assigned to the booking",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="assigned_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking",
                "verbose_name_plural": "Bookings",
                "ordering": ["-start_time"],
                "indexes": [
                    models.Index(fields=["business", "service", "start_time"], name="booking_biz_svc_start_idx"),
                    models.Index(fields=["customer", "status"], name="booking_customer_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("end_time__gt", models.F("start_time"))),
                        name="booking_end_after_start",
                    ),
                ],
            },
        ),
    ]
