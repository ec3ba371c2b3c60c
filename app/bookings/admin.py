"""
Booking admin configuration.

Booking status is a protected django-fsm field; transitions go through
BookingService, so status is read-only here.
"""

from django.contrib import admin

from bookings.models import Booking, Business, Service


class ServiceInline(admin.TabularInline):
    model = Service
    extra = 0
    fields = ["name", "price", "duration_minutes", "is_active"]


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    """Admin configuration for Business."""

    list_display = [
        "name",
        "owner",
        "cancellation_deadline_minutes",
        "late_cancellation_fee",
        "suspended",
        "created_at",
    ]
    list_filter = ["suspended"]
    search_fields = ["name", "email", "owner__email"]
    readonly_fields = ["id", "suspended_at", "created_at", "updated_at"]
    raw_id_fields = ["owner"]
    filter_horizontal = ["staff_members"]
    inlines = [ServiceInline]


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    """Admin configuration for Service."""

    list_display = ["name", "business", "price", "duration_minutes", "is_active"]
    list_filter = ["is_active"]
    search_fields = ["name", "business__name"]
    raw_id_fields = ["business"]


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    """
    Admin configuration for Booking.

    State changes should be made through the service layer, not admin.
    """

    list_display = ["id", "business", "service", "customer", "start_time", "status", "created_at"]
    list_filter = ["status", "business"]
    search_fields = ["id", "customer__email", "business__name"]
    readonly_fields = [
        "id",
        "status",
        "cancelled_at",
        "cancelled_by",
        "completed_at",
        "no_show_at",
        "marked_by",
        "rescheduled_at",
        "created_at",
        "updated_at",
    ]
    raw_id_fields = ["customer", "business", "service", "staff"]
    date_hierarchy = "start_time"
    ordering = ["-start_time"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "status", "customer", "business", "service", "staff"),
            },
        ),
        (
            "Schedule",
            {
                "fields": ("start_time", "end_time", "rescheduled_at"),
            },
        ),
        (
            "Cancellation Policy",
            {
                "fields": ("cancellation_deadline_minutes", "late_cancellation_fee"),
            },
        ),
        (
            "Outcome",
            {
                "fields": (
                    "cancel_reason",
                    "cancelled_at",
                    "cancelled_by",
                    "completed_at",
                    "no_show_at",
                    "marked_by",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for bookings (payments reference them)."""
        return False
