"""
Business, Service and Booking models.

A Business sells Services; a customer reserves a Service slot as a
Booking. The business's cancellation policy (deadline and late fee) is
copied onto each Booking when it is created, so later policy changes do
not alter bookings already made.

Booking status is a protected django-fsm field. Transitions are only
reachable through the methods below and are driven by
bookings.services.BookingService (user actions) and
payments.services.PaymentService (a paid cancellation fee).

Usage:
    from bookings.models import Booking, Business, Service

    booking = Booking.objects.create(
        customer=user,
        business=business,
        service=service,
        start_time=start,
        end_time=start + timedelta(minutes=service.duration_minutes),
    )

    booking.complete(actor=staff)
    booking.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from bookings.states import (
    ACTIVE_BOOKING_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    BookingStatus,
)


def default_cancellation_deadline_minutes() -> int:
    return getattr(settings, "DEFAULT_CANCELLATION_DEADLINE_MINUTES", 120)


def default_late_cancellation_fee() -> Decimal:
    return Decimal(str(getattr(settings, "DEFAULT_LATE_CANCELLATION_FEE", "5000")))


class Business(UUIDPrimaryKeyMixin, BaseModel):
    """
    A business listed on the marketplace.

    Fields:
        name: Public business name
        email: Contact email (receipts, payout notices)
        owner: User who owns the business
        staff_members: Users who work for the business
        cancellation_deadline_minutes: Free-cancellation cutoff before start
        late_cancellation_fee: Fee charged for cancelling after the cutoff
        suspended: Set when the subscription lapses past its grace period
    """

    name = models.CharField(
        max_length=200,
        help_text="Public business name",
    )

    email = models.EmailField(
        blank=True,
        default="",
        help_text="Business contact email",
    )

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="owned_businesses",
        help_text="User who owns this business",
    )

    staff_members = models.ManyToManyField(
        settings.AUTH_USER_MODEL,
        blank=True,
        related_name="staff_businesses",
        help_text="Users who work for this business",
    )

    # ==========================================================================
    # Cancellation Policy
    # ==========================================================================

    cancellation_deadline_minutes = models.PositiveIntegerField(
        default=default_cancellation_deadline_minutes,
        help_text="Minutes before start after which a cancellation is late",
    )

    late_cancellation_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=default_late_cancellation_fee,
        help_text="Fee charged for a late cancellation",
    )

    # ==========================================================================
    # Account Status
    # ==========================================================================

    suspended = models.BooleanField(
        default=False,
        help_text="Whether the business is suspended for an unpaid subscription",
    )

    suspended_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the business was suspended",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Business"
        verbose_name_plural = "Businesses"

    def __str__(self) -> str:
        return self.name


class Service(UUIDPrimaryKeyMixin, BaseModel):
    """
    A bookable service offered by a business.

    Fields:
        business: Business offering the service
        name: Service name
        price: Price charged for a booking
        duration_minutes: Default slot length
    """

    business = models.ForeignKey(
        Business,
        on_delete=models.CASCADE,
        related_name="services",
        help_text="Business offering this service",
    )

    name = models.CharField(
        max_length=200,
        help_text="Service name",
    )

    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Price charged for one booking",
    )

    duration_minutes = models.PositiveIntegerField(
        default=60,
        help_text="Default slot length in minutes",
    )

    is_active = models.BooleanField(
        default=True,
        help_text="Whether the service can be booked",
    )

    class Meta:
        ordering = ["business", "name"]
        verbose_name = "Service"
        verbose_name_plural = "Services"

    def __str__(self) -> str:
        return f"{self.name} ({self.business})"


class Booking(UUIDPrimaryKeyMixin, BaseModel):
    """
    A customer's reservation of a service slot.

    State Flow:
        PENDING -> CONFIRMED -> (RESCHEDULED)* -> COMPLETED | NO_SHOW
        any non-terminal -> CANCELLED

    Fields:
        customer: User who made the booking
        business / service: What was booked
        staff: Staff member assigned (optional)
        start_time / end_time: Reserved window [start, end)
        status: Current FSM state (protected)
        cancellation_deadline_minutes / late_cancellation_fee: Policy snapshot
        cancel_reason, cancelled_at, cancelled_by: Cancellation stamps
        completed_at, no_show_at, marked_by: Staff outcome stamps

    Note:
        Once terminal, a booking is never modified again. Services check
        is_terminal under select_for_update before any transition and
        fail closed.
    """

    # ==========================================================================
    # Parties
    # ==========================================================================

    customer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="bookings",
        help_text="Customer who made the booking",
    )

    business = models.ForeignKey(
        Business,
        on_delete=models.PROTECT,
        related_name="bookings",
        help_text="Business the booking is with",
    )

    service = models.ForeignKey(
        Service,
        on_delete=models.PROTECT,
        related_name="bookings",
        help_text="Service being booked",
    )

    staff = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="assigned_bookings",
        help_text="Staff member assigned to the booking",
    )

    # ==========================================================================
    # Schedule & State
    # ==========================================================================

    start_time = models.DateTimeField(
        db_index=True,
        help_text="Start of the reserved window",
    )

    end_time = models.DateTimeField(
        help_text="End of the reserved window (exclusive)",
    )

    status = FSMField(
        default=BookingStatus.PENDING,
        choices=BookingStatus.choices,
        db_index=True,
        protected=True,  # Prevent direct assignment outside transitions
        help_text="Current state of the booking (managed by FSM)",
    )

    # ==========================================================================
    # Cancellation Policy Snapshot
    # ==========================================================================

    cancellation_deadline_minutes = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="Minutes before start after which a cancellation is late (copied from business)",
    )

    late_cancellation_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Late cancellation fee (copied from business)",
    )

    # ==========================================================================
    # Outcome Stamps
    # ==========================================================================

    cancel_reason = models.TextField(
        blank=True,
        default="",
        help_text="Reason given for the cancellation",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the booking was cancelled",
    )

    cancelled_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="cancelled_bookings",
        help_text="User who requested the cancellation",
    )

    completed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When staff marked the booking completed",
    )

    no_show_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When staff marked the customer as a no-show",
    )

    marked_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="marked_bookings",
        help_text="Staff member who recorded the outcome",
    )

    rescheduled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the booking was last rescheduled",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-start_time"]
        verbose_name = "Booking"
        verbose_name_plural = "Bookings"
        indexes = [
            models.Index(fields=["business", "service", "start_time"], name="booking_biz_svc_start_idx"),
            models.Index(fields=["customer", "status"], name="booking_customer_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(end_time__gt=models.F("start_time")),
                name="booking_end_after_start",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status}, {self.start_time:%Y-%m-%d %H:%M})"

    def save(self, *args, **kwargs):
        """Copy the business cancellation policy onto new bookings."""
        if self._state.adding:
            if self.cancellation_deadline_minutes is None:
                self.cancellation_deadline_minutes = self.business.cancellation_deadline_minutes
            if self.late_cancellation_fee is None:
                self.late_cancellation_fee = self.business.late_cancellation_fee
        super().save(*args, **kwargs)

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        """Check if the booking reached COMPLETED, CANCELLED or NO_SHOW."""
        return self.status in TERMINAL_BOOKING_STATUSES

    @property
    def deadline_minutes(self) -> int:
        """Effective cancellation deadline."""
        if self.cancellation_deadline_minutes is None:
            return default_cancellation_deadline_minutes()
        return self.cancellation_deadline_minutes

    @property
    def cancellation_fee(self) -> Decimal:
        """Effective late cancellation fee."""
        if self.late_cancellation_fee is None:
            return default_late_cancellation_fee()
        return self.late_cancellation_fee

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=BookingStatus.PENDING,
        target=BookingStatus.CONFIRMED,
    )
    def confirm(self):
        """
        Confirm a pending booking.

        Transition: PENDING -> CONFIRMED
        """

    @transition(
        field=status,
        source=ACTIVE_BOOKING_STATUSES,
        target=BookingStatus.RESCHEDULED,
    )
    def reschedule(self, start_time, end_time):
        """
        Move the booking to a new window.

        Transition: PENDING/CONFIRMED/RESCHEDULED -> RESCHEDULED
        """
        self.start_time = start_time
        self.end_time = end_time
        self.rescheduled_at = timezone.now()

    @transition(
        field=status,
        source=ACTIVE_BOOKING_STATUSES,
        target=BookingStatus.COMPLETED,
    )
    def complete(self, actor=None):
        """
        Record that the service was delivered.

        Transition: PENDING/CONFIRMED/RESCHEDULED -> COMPLETED
        """
        self.completed_at = timezone.now()
        self.marked_by = actor

    @transition(
        field=status,
        source=ACTIVE_BOOKING_STATUSES,
        target=BookingStatus.NO_SHOW,
    )
    def mark_no_show(self, actor=None):
        """
        Record that the customer did not turn up.

        Transition: PENDING/CONFIRMED/RESCHEDULED -> NO_SHOW
        """
        self.no_show_at = timezone.now()
        self.marked_by = actor

    @transition(
        field=status,
        source=ACTIVE_BOOKING_STATUSES,
        target=BookingStatus.CANCELLED,
    )
    def cancel(self, reason: str = "", actor=None):
        """
        Cancel the booking.

        Transition: PENDING/CONFIRMED/RESCHEDULED -> CANCELLED

        Only called once the refund (on-time) or the fee payment (late)
        has succeeded.
        """
        self.cancelled_at = timezone.now()
        if reason:
            self.cancel_reason = reason
        if actor is not None:
            self.cancelled_by = actor
